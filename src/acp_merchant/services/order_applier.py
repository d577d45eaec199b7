#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Application of protocol input onto an order aggregate."""

import logging
from typing import Any, Dict, List

from acp_merchant.domain import Address
from acp_merchant.domain import Customer
from acp_merchant.domain import Order
from acp_merchant.domain import OrderItem
from acp_merchant.domain import Shipment
from acp_merchant.mappers import address as address_mapper
from acp_merchant.ports import Catalog
from acp_merchant.ports import OrderMutator
from acp_merchant.ports import ProvinceLookup

logger = logging.getLogger(__name__)


def _quantity(value: Any) -> int:
  if isinstance(value, bool):
    return 0
  try:
    return int(value)
  except (TypeError, ValueError):
    return 0


class CatalogOrderMutator(OrderMutator):
  """Writes items, addresses, shipping choice and buyer onto an order."""

  def __init__(self, catalog: Catalog, provinces: ProvinceLookup):
    self.catalog = catalog
    self.provinces = provinces

  async def apply(self, order: Order, data: Dict[str, Any]) -> None:
    items = data.get("items")
    if isinstance(items, list):
      await self._apply_items(order, items)

    address = data.get("fulfillment_address")
    if isinstance(address, dict):
      shipping_address = address_mapper.decode(
          address, Address(), self.provinces
      )
      order.shipping_address = shipping_address
      order.billing_address = shipping_address.model_copy()

    option_id = data.get("fulfillment_option_id")
    if isinstance(option_id, str):
      await self._apply_shipping_method(order, option_id)

  async def _apply_items(self, order: Order, items: List[Any]) -> None:
    """Replaces the order's items with the requested ones."""
    order.items = []
    for entry in items:
      if not isinstance(entry, dict) or "id" not in entry:
        continue
      quantity = _quantity(entry.get("quantity"))
      if quantity <= 0:
        continue
      code = entry["id"]
      variant = (
          await self.catalog.find_variant_by_code(code)
          if isinstance(code, str)
          else None
      )
      if variant is None:
        logger.warning(
            "Product variant %r not found, skipping item on order %s",
            code,
            order.id,
        )
        continue
      order.items.append(
          OrderItem(
              id=order.allocate_id(),
              variant_id=variant["id"],
              variant_code=variant["code"],
              variant_name=variant["name"],
              quantity=quantity,
              unit_price=variant["price"],
          )
      )
    if order.items and not order.shipments:
      order.shipments.append(Shipment(id=order.allocate_id()))

  async def _apply_shipping_method(self, order: Order, code: str) -> None:
    method = await self.catalog.find_shipping_method_by_code(code)
    if method is None:
      logger.warning(
          "Shipping method %r not found, skipping on order %s", code, order.id
      )
      return
    if not order.shipments:
      return
    order.shipments[0].method = method

  async def apply_buyer(self, order: Order, buyer: Dict[str, Any]) -> None:
    email = buyer.get("email")
    if not isinstance(email, str):
      return

    customer = order.customer
    if customer is None or customer.email != email:
      customer = Customer(email=email)
    for field in ("first_name", "last_name", "phone_number"):
      value = buyer.get(field)
      if isinstance(value, str):
        setattr(customer, field, value)
    order.customer = customer

    billing_address = buyer.get("billing_address")
    if isinstance(billing_address, dict):
      order.billing_address = address_mapper.decode(
          billing_address, Address(), self.provinces
      )
