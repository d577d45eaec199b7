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

"""Derivation of the protocol session status from the order state."""

from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.enums import CheckoutSessionStatus
from acp_merchant.enums import CheckoutState
from acp_merchant.enums import OrderPaymentState
from acp_merchant.enums import OrderState
from acp_merchant.enums import TERMINAL_STATUSES


def is_ready_for_payment(order: Order) -> bool:
  """Whether the cart has an address, items and a method on every shipment."""
  address = order.shipping_address
  if address is None or not address.street or not address.city:
    return False
  if not order.items:
    return False
  return all(shipment.method is not None for shipment in order.shipments)


def resolve(order: Order) -> CheckoutSessionStatus:
  """Derives the session status; the first matching rule wins."""
  if order.state == OrderState.CANCELLED:
    return CheckoutSessionStatus.CANCELED
  if (
      order.state == OrderState.NEW
      and order.payment_state == OrderPaymentState.PAID
  ):
    return CheckoutSessionStatus.COMPLETED
  if order.checkout_state == CheckoutState.COMPLETED:
    return CheckoutSessionStatus.IN_PROGRESS
  if order.state == OrderState.CART:
    if is_ready_for_payment(order):
      return CheckoutSessionStatus.READY_FOR_PAYMENT
    return CheckoutSessionStatus.NOT_READY_FOR_PAYMENT
  return CheckoutSessionStatus.IN_PROGRESS


def effective_status(
    session: CheckoutSession, order: Order
) -> CheckoutSessionStatus:
  """Pinned status when terminal, otherwise the derived one."""
  if session.status in [s.value for s in TERMINAL_STATUSES]:
    return CheckoutSessionStatus(session.status)
  return resolve(order)


def is_terminal(status: str) -> bool:
  return status in [s.value for s in TERMINAL_STATUSES]
