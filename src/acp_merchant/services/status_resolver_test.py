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

"""Tests for the session status derivation."""

from absl.testing import absltest
from absl.testing import parameterized
from acp_merchant.domain import Address
from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.domain import OrderItem
from acp_merchant.domain import Shipment
from acp_merchant.domain import ShippingMethod
from acp_merchant.enums import CheckoutSessionStatus
from acp_merchant.services import status_resolver

ADDRESS = Address(street="1 Main St", city="Springfield", country_code="US")
METHOD = ShippingMethod(id=1, code="standard")


def _order(**kwargs) -> Order:
  fields = {
      "items": [OrderItem(id=1, variant_code="mug", unit_price=1500)],
      "shipments": [Shipment(id=2, method=METHOD)],
      "shipping_address": ADDRESS,
  }
  fields.update(kwargs)
  return Order(channel_code="default", currency_code="USD", **fields)


class StatusResolverTest(parameterized.TestCase):

  @parameterized.named_parameters(
      ("ready", {}, "ready_for_payment"),
      ("no_address", {"shipping_address": None}, "not_ready_for_payment"),
      (
          "no_street",
          {"shipping_address": Address(city="Springfield")},
          "not_ready_for_payment",
      ),
      ("no_items", {"items": []}, "not_ready_for_payment"),
      (
          "no_method",
          {"shipments": [Shipment(id=2)]},
          "not_ready_for_payment",
      ),
      ("no_shipments", {"shipments": []}, "ready_for_payment"),
      ("cancelled", {"state": "cancelled"}, "canceled"),
      (
          "cancelled_beats_paid",
          {"state": "cancelled", "payment_state": "paid"},
          "canceled",
      ),
      ("paid", {"state": "new", "payment_state": "paid"}, "completed"),
      (
          "checkout_completed",
          {"state": "new", "checkout_state": "completed"},
          "in_progress",
      ),
      ("fulfilled", {"state": "fulfilled"}, "in_progress"),
  )
  def test_resolve(self, fields, expected):
    self.assertEqual(status_resolver.resolve(_order(**fields)).value, expected)

  def test_pinned_terminal_status_wins(self):
    session = CheckoutSession(
        acp_id="acp_sess_1", order_id=1, channel_code="default",
        status="canceled",
    )
    self.assertEqual(
        status_resolver.effective_status(session, _order()),
        CheckoutSessionStatus.CANCELED,
    )

  def test_non_terminal_pin_is_rederived(self):
    session = CheckoutSession(
        acp_id="acp_sess_1", order_id=1, channel_code="default",
        status="not_ready_for_payment",
    )
    self.assertEqual(
        status_resolver.effective_status(session, _order()),
        CheckoutSessionStatus.READY_FOR_PAYMENT,
    )

  def test_is_terminal(self):
    self.assertTrue(status_resolver.is_terminal("completed"))
    self.assertTrue(status_resolver.is_terminal("canceled"))
    self.assertFalse(status_resolver.is_terminal("in_progress"))


if __name__ == "__main__":
  absltest.main()
