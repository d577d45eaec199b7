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

"""Reference order recalculation: units, shipping, promotions, taxes, totals.

Only carts are recalculated; a placed order keeps its settled amounts.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from acp_merchant.domain import Adjustment
from acp_merchant.domain import Order
from acp_merchant.domain import OrderItemUnit
from acp_merchant.domain import Shipment
from acp_merchant.enums import AdjustmentType
from acp_merchant.enums import OrderState
from acp_merchant.ports import Catalog
from acp_merchant.ports import OrderProcessor
from acp_merchant.ports import ShippingCalculator
from acp_merchant.ports import ShippingMethodsResolver
from acp_merchant.services import shipping
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_RECALCULATED = (
    AdjustmentType.ORDER_ITEM_PROMOTION,
    AdjustmentType.ORDER_UNIT_PROMOTION,
    AdjustmentType.ORDER_PROMOTION,
    AdjustmentType.ORDER_SHIPPING_PROMOTION,
    AdjustmentType.SHIPPING,
    AdjustmentType.TAX,
)


class PromotionRule(BaseModel):
  id: str
  type: str
  amount: Optional[int] = None
  percentage: Optional[int] = None
  min_subtotal: Optional[int] = None
  eligible_variant_codes: Optional[List[str]] = None
  description: str = ""

  def applies_to_variant(self, code: Optional[str]) -> bool:
    return not self.eligible_variant_codes or code in self.eligible_variant_codes

  def is_eligible(self, subtotal: int, codes: Sequence[str]) -> bool:
    """Order-level eligibility: the minimum subtotal or an eligible item."""
    if self.min_subtotal and subtotal >= self.min_subtotal:
      return True
    if self.eligible_variant_codes:
      return any(code in self.eligible_variant_codes for code in codes)
    return not self.min_subtotal


def _percent_of(amount: int, percentage: int) -> int:
  return amount * percentage // 100


def _tax_of(amount: int, rate_bps: int) -> int:
  return (amount * rate_bps + 5000) // 10000


class ReferenceOrderProcessor(OrderProcessor):
  """Recalculates a cart from the catalog and the promotion and tax rules."""

  def __init__(
      self,
      catalog: Catalog,
      resolver: ShippingMethodsResolver,
      calculators: Mapping[str, ShippingCalculator],
      promotions: Sequence[PromotionRule] = (),
      tax_rates: Optional[Dict[str, int]] = None,
  ):
    self.catalog = catalog
    self.resolver = resolver
    self.calculators = calculators
    self.promotions = list(promotions)
    self.tax_rates = {k.upper(): v for k, v in (tax_rates or {}).items()}

  async def process(self, order: Order) -> None:
    if order.state != OrderState.CART:
      return

    await self._refresh_prices(order)
    self._refresh_units(order)
    order.remove_adjustments(_RECALCULATED)
    self._refresh_shipments(order)
    self._apply_item_promotions(order)
    shipping_charge = self._apply_shipping(order)
    self._apply_order_promotions(order, shipping_charge)
    self._apply_taxes(order)
    order.recalculate_totals()
    logger.debug("Recalculated order %s: total %d", order.id, order.total)

  async def _refresh_prices(self, order: Order) -> None:
    for item in order.items:
      if item.variant_id is None:
        continue
      variant = await self.catalog.find_variant(item.variant_id)
      if variant is not None:
        item.unit_price = variant["price"]

  def _refresh_units(self, order: Order) -> None:
    for item in order.items:
      if len(item.units) > item.quantity:
        item.units = item.units[: item.quantity]
      while len(item.units) < item.quantity:
        item.units.append(OrderItemUnit(id=order.allocate_id()))

  def _refresh_shipments(self, order: Order) -> None:
    if not order.items:
      order.shipments = []
      return
    if not order.shipments:
      order.shipments.append(Shipment(id=order.allocate_id()))

    shipment = order.shipments[0]
    if shipment.method is None:
      return
    supported = {m.id for m in self.resolver.supported_methods(order)}
    if shipment.method.id not in supported:
      logger.info(
          "Shipping method %s no longer available for order %s",
          shipment.method.code,
          order.id,
      )
      shipment.method = None

  def _apply_item_promotions(self, order: Order) -> None:
    for promotion in self.promotions:
      if promotion.type != "item_percentage" or not promotion.percentage:
        continue
      for item in order.items:
        if not promotion.applies_to_variant(item.variant_code):
          continue
        amount = _percent_of(item.unit_price, promotion.percentage)
        if amount <= 0:
          continue
        for unit in item.units:
          unit.adjustments.append(
              Adjustment(
                  type=AdjustmentType.ORDER_UNIT_PROMOTION.value,
                  label=promotion.description,
                  amount=-amount,
                  origin_code=promotion.id,
              )
          )

  def _apply_shipping(self, order: Order) -> int:
    if not order.shipments or order.shipments[0].method is None:
      return 0
    method = order.shipments[0].method
    charge = shipping.calculate_cost(method, order, self.calculators)
    order.adjustments.append(
        Adjustment(
            type=AdjustmentType.SHIPPING.value,
            label=method.name or "Shipping",
            amount=charge,
            origin_code=method.code,
        )
    )
    return charge

  def _apply_order_promotions(self, order: Order, shipping_charge: int) -> None:
    subtotal = sum(
        item.subtotal + item.adjustments_total_recursively()
        for item in order.items
    )
    codes = [item.variant_code for item in order.items if item.variant_code]
    remaining = subtotal
    for promotion in self.promotions:
      if not promotion.is_eligible(subtotal, codes):
        continue
      amount = 0
      adjustment_type = AdjustmentType.ORDER_PROMOTION
      if promotion.type == "order_percentage" and promotion.percentage:
        amount = _percent_of(subtotal, promotion.percentage)
      elif promotion.type == "order_fixed" and promotion.amount:
        amount = promotion.amount
      elif promotion.type == "free_shipping":
        amount = shipping_charge
        adjustment_type = AdjustmentType.ORDER_SHIPPING_PROMOTION
      if adjustment_type == AdjustmentType.ORDER_PROMOTION:
        amount = min(amount, remaining)
        remaining -= amount
      if amount <= 0:
        continue
      order.adjustments.append(
          Adjustment(
              type=adjustment_type.value,
              label=promotion.description,
              amount=-amount,
              origin_code=promotion.id,
          )
      )
      if adjustment_type == AdjustmentType.ORDER_SHIPPING_PROMOTION:
        shipping_charge = 0

  def _apply_taxes(self, order: Order) -> None:
    address = order.shipping_address
    if address is None or not address.country_code:
      return
    rate = self.tax_rates.get(address.country_code.upper())
    if not rate:
      return
    for item in order.items:
      for unit in item.units:
        taxable = item.unit_price + unit.adjustments_total()
        tax = _tax_of(max(0, taxable), rate)
        if tax > 0:
          unit.adjustments.append(
              Adjustment(
                  type=AdjustmentType.TAX.value,
                  label="Tax",
                  amount=tax,
              )
          )
