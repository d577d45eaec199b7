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

"""Shipping calculators and the supported shipping methods resolver."""

import logging
from typing import Any, Dict, Iterable, List, Mapping

from acp_merchant.domain import Order
from acp_merchant.domain import ShippingMethod
from acp_merchant.ports import ShippingCalculator
from acp_merchant.ports import ShippingMethodsResolver

logger = logging.getLogger(__name__)


class FlatRateCalculator(ShippingCalculator):
  """Charges `amount` once per shipment."""

  def calculate(self, order: Order, configuration: Dict[str, Any]) -> int:
    del order  # Unused.
    return int(configuration["amount"])


class PerUnitRateCalculator(ShippingCalculator):
  """Charges `amount` for every unit in the order."""

  def calculate(self, order: Order, configuration: Dict[str, Any]) -> int:
    units = sum(item.quantity for item in order.items)
    return int(configuration["amount"]) * units


def default_calculators() -> Dict[str, ShippingCalculator]:
  return {
      "flat_rate": FlatRateCalculator(),
      "per_unit_rate": PerUnitRateCalculator(),
  }


def calculate_cost(
    method: ShippingMethod,
    order: Order,
    calculators: Mapping[str, ShippingCalculator],
) -> int:
  """Computes a method's charge for the order without touching the order.

  A method with no calculator type, an unknown calculator or a failing
  calculator costs nothing.

  Args:
    method: The shipping method to price.
    order: The order being shipped.
    calculators: Calculators keyed by calculator type.

  Returns:
    The charge in minor units.
  """
  calculator = calculators.get(method.calculator) if method.calculator else None
  if calculator is None:
    logger.debug("No calculator for shipping method %s", method.code)
    return 0
  try:
    return calculator.calculate(order, method.configuration)
  except Exception as e:  # pylint: disable=broad-exception-caught
    logger.warning(
        "Shipping calculator %s failed for method %s: %s",
        method.calculator,
        method.code,
        e,
    )
    return 0


class ZoneShippingMethodsResolver(ShippingMethodsResolver):
  """Resolves methods by the country of the order's shipping address.

  Methods without a country list ship everywhere. Until an address is known
  every enabled method is offered.
  """

  def __init__(self, methods: Iterable[ShippingMethod]):
    self._methods = sorted(
        (m for m in methods if m.enabled), key=lambda m: (m.position, m.id)
    )

  def supported_methods(self, order: Order) -> List[ShippingMethod]:
    if not order.shipments:
      return []
    address = order.shipping_address
    country = address.country_code if address else None
    if not country:
      return list(self._methods)
    return [
        m
        for m in self._methods
        if not m.countries or country.upper() in m.countries
    ]
