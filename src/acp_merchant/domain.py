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

"""Order aggregate and checkout session models.

The order aggregate is the merchant-side cart: items with units and
adjustments, a single shipment in practice, addresses, payments and the three
state fields the protocol status is derived from. It is a plain pydantic
model so stores can persist it as a JSON document.

Amounts are integers in minor currency units.
"""

import datetime
from typing import Any, Dict, Iterable, List, Optional

from acp_merchant.enums import AdjustmentType
from acp_merchant.enums import CheckoutState
from acp_merchant.enums import OrderPaymentState
from acp_merchant.enums import OrderState
from acp_merchant.enums import PaymentRequestState
from acp_merchant.enums import PaymentState
from pydantic import BaseModel
from pydantic import Field


def _values(types: Iterable[Any]) -> set:
  return {getattr(t, "value", t) for t in types}


def _sum_adjustments(
    adjustments: Iterable["Adjustment"],
    types: Optional[Iterable[str]] = None,
) -> int:
  wanted = None if types is None else _values(types)
  return sum(
      a.amount
      for a in adjustments
      if wanted is None or a.type in wanted
  )


class Address(BaseModel):
  first_name: Optional[str] = None
  last_name: Optional[str] = None
  phone_number: Optional[str] = None
  street: Optional[str] = None
  city: Optional[str] = None
  postcode: Optional[str] = None
  country_code: Optional[str] = None
  province_code: Optional[str] = None


class Customer(BaseModel):
  email: str
  first_name: Optional[str] = None
  last_name: Optional[str] = None
  phone_number: Optional[str] = None


class Adjustment(BaseModel):
  type: str
  label: str = ""
  amount: int = 0
  origin_code: Optional[str] = None


class OrderItemUnit(BaseModel):
  id: int
  adjustments: List[Adjustment] = Field(default_factory=list)

  def adjustments_total(self, types: Optional[Iterable[str]] = None) -> int:
    return _sum_adjustments(self.adjustments, types)


class OrderItem(BaseModel):
  """A cart line: one variant, its quantity and its settled total."""

  id: int
  variant_id: Optional[int] = None
  variant_code: Optional[str] = None
  variant_name: Optional[str] = None
  quantity: int = 1
  unit_price: int = 0
  units: List[OrderItemUnit] = Field(default_factory=list)
  adjustments: List[Adjustment] = Field(default_factory=list)
  total: int = 0

  @property
  def subtotal(self) -> int:
    return self.unit_price * self.quantity

  def adjustments_total(self, types: Optional[Iterable[str]] = None) -> int:
    return _sum_adjustments(self.adjustments, types)

  def adjustments_total_recursively(
      self, types: Optional[Iterable[str]] = None
  ) -> int:
    return self.adjustments_total(types) + sum(
        unit.adjustments_total(types) for unit in self.units
    )

  def recalculate_total(self) -> None:
    self.total = max(0, self.subtotal + self.adjustments_total_recursively())


class ShippingMethod(BaseModel):
  """Catalog snapshot of a shipping method."""

  id: int
  code: Optional[str] = None
  name: Optional[str] = None
  description: Optional[str] = None
  calculator: Optional[str] = None
  configuration: Dict[str, Any] = Field(default_factory=dict)
  countries: List[str] = Field(default_factory=list)
  position: int = 0
  enabled: bool = True


class Shipment(BaseModel):
  id: int
  method: Optional[ShippingMethod] = None


class Payment(BaseModel):
  id: int
  method_code: Optional[str] = None
  amount: int = 0
  currency_code: str = "USD"
  state: str = PaymentState.CART.value
  details: Dict[str, Any] = Field(default_factory=dict)


class PaymentRequest(BaseModel):
  """A single attempt to run an action (capture) against a payment."""

  hash: str
  payment_id: int
  method_code: Optional[str] = None
  action: str = "capture"
  payload: Dict[str, Any] = Field(default_factory=dict)
  response_data: Dict[str, Any] = Field(default_factory=dict)
  state: str = PaymentRequestState.NEW.value


class Order(BaseModel):
  """The merchant cart and, once placed, the order."""

  id: Optional[int] = None
  version: int = 0
  token_value: Optional[str] = None
  number: Optional[str] = None
  channel_code: str
  currency_code: str
  locale_code: str = "en_US"
  state: str = OrderState.CART.value
  checkout_state: str = CheckoutState.CART.value
  payment_state: str = OrderPaymentState.CART.value
  items: List[OrderItem] = Field(default_factory=list)
  shipments: List[Shipment] = Field(default_factory=list)
  adjustments: List[Adjustment] = Field(default_factory=list)
  shipping_address: Optional[Address] = None
  billing_address: Optional[Address] = None
  customer: Optional[Customer] = None
  payments: List[Payment] = Field(default_factory=list)
  payment_requests: List[PaymentRequest] = Field(default_factory=list)
  items_total: int = 0
  adjustments_total: int = 0
  total: int = 0
  checkout_completed_at: Optional[datetime.datetime] = None
  # Last identifier handed out to a child entity (item, unit, shipment...).
  last_child_id: int = 0

  def allocate_id(self) -> int:
    self.last_child_id += 1
    return self.last_child_id

  def order_adjustments_total(
      self, types: Optional[Iterable[str]] = None
  ) -> int:
    return _sum_adjustments(self.adjustments, types)

  def adjustments_total_recursively(
      self, types: Optional[Iterable[str]] = None
  ) -> int:
    return self.order_adjustments_total(types) + sum(
        item.adjustments_total_recursively(types) for item in self.items
    )

  @property
  def tax_total(self) -> int:
    return self.adjustments_total_recursively([AdjustmentType.TAX])

  def recalculate_totals(self) -> None:
    for item in self.items:
      item.recalculate_total()
    self.items_total = sum(item.total for item in self.items)
    self.adjustments_total = self.order_adjustments_total()
    self.total = max(0, self.items_total + self.adjustments_total)

  def remove_adjustments(self, types: Iterable[str]) -> None:
    """Removes adjustments of the given types at every level."""
    wanted = _values(types)
    self.adjustments = [a for a in self.adjustments if a.type not in wanted]
    for item in self.items:
      item.adjustments = [a for a in item.adjustments if a.type not in wanted]
      for unit in item.units:
        unit.adjustments = [
            a for a in unit.adjustments if a.type not in wanted
        ]

  def last_payment(self) -> Optional[Payment]:
    return self.payments[-1] if self.payments else None

  def completed_payments_total(self) -> int:
    return sum(
        p.amount for p in self.payments if p.state == PaymentState.COMPLETED
    )


class Channel(BaseModel):
  code: str
  name: str = ""
  base_currency_code: str = "USD"
  default_locale_code: str = "en_US"


class CheckoutSession(BaseModel):
  """Protocol metadata paired with exactly one order."""

  id: Optional[int] = None
  acp_id: str
  order_id: int
  channel_code: str
  status: Optional[str] = None
  idempotency_key: Optional[str] = None
  request_hash: Optional[str] = None
  version: int = 0
  created_at: Optional[datetime.datetime] = None
  updated_at: Optional[datetime.datetime] = None


class OrderCompleted(BaseModel):
  """Emitted once a session's order has been paid and placed."""

  acp_session_id: str
  order_id: int
  order_number: str
  order_token: str
  permalink_url: str
  channel_code: str
