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

"""Projection of the shipping methods an order supports into options."""

import logging
from typing import List, Mapping, Optional

from acp_merchant.domain import Order
from acp_merchant.domain import ShippingMethod
from acp_merchant.models import FulfillmentOption
from acp_merchant.ports import ShippingCalculator
from acp_merchant.ports import ShippingMethodsResolver
from acp_merchant.services import shipping

logger = logging.getLogger(__name__)


def format_amount(amount: int) -> str:
  """Formats minor units as a two-decimal string, e.g. 1550 -> "15.50"."""
  sign = "-" if amount < 0 else ""
  amount = abs(amount)
  return f"{sign}{amount // 100}.{amount % 100:02d}"


def option_id(method: ShippingMethod) -> str:
  return method.code or f"method_{method.id}"


class FulfillmentMapper:
  """Lists and prices the shipping options of an order's first shipment."""

  def __init__(
      self,
      resolver: ShippingMethodsResolver,
      calculators: Mapping[str, ShippingCalculator],
  ):
    self.resolver = resolver
    self.calculators = calculators

  def map_options(self, order: Order) -> List[FulfillmentOption]:
    if not order.shipments:
      return []
    try:
      methods = self.resolver.supported_methods(order)
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.warning(
          "Could not resolve shipping methods for order %s: %s", order.id, e
      )
      return []

    options = []
    for method in methods:
      cost = format_amount(
          shipping.calculate_cost(method, order, self.calculators)
      )
      option = FulfillmentOption(
          id=option_id(method),
          title=method.name or "Unknown",
          subtotal=cost,
          tax="0.00",
          total=cost,
      )
      if method.description:
        option.subtitle = method.description
      options.append(option)
    return options

  def selected_option_id(self, order: Order) -> Optional[str]:
    if not order.shipments or order.shipments[0].method is None:
      return None
    return option_id(order.shipments[0].method)
