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

"""Tests for the order, checkout and payment state machine."""

from absl.testing import absltest
from acp_merchant import state_machine
from acp_merchant.domain import Order
from acp_merchant.domain import Payment


def _order(**kwargs) -> Order:
  return Order(channel_code="default", currency_code="USD", **kwargs)


class StateMachineTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.machine = state_machine.create_state_machine()

  def test_checkout_walks_to_payment_selected(self):
    order = _order()
    for transition in ("address", "select_shipping", "select_payment"):
      self.assertTrue(
          self.machine.can(order, state_machine.ORDER_CHECKOUT, transition)
      )
      self.machine.apply(order, state_machine.ORDER_CHECKOUT, transition)
    self.assertEqual(order.checkout_state, "payment_selected")

  def test_illegal_transition_raises(self):
    order = _order()
    self.assertFalse(
        self.machine.can(order, state_machine.ORDER_CHECKOUT, "complete")
    )
    with self.assertRaises(state_machine.TransitionError):
      self.machine.apply(order, state_machine.ORDER_CHECKOUT, "complete")

  def test_unknown_transition_is_not_allowed(self):
    self.assertFalse(
        self.machine.can(_order(), state_machine.ORDER_CHECKOUT, "teleport")
    )

  def test_complete_places_paid_order(self):
    order = _order(checkout_state="payment_selected", total=1000)
    order.payments.append(Payment(id=1, amount=1000, state="completed"))

    self.machine.apply(order, state_machine.ORDER_CHECKOUT, "complete")

    self.assertEqual(order.checkout_state, "completed")
    self.assertEqual(order.state, "new")
    self.assertEqual(order.payment_state, "paid")

  def test_complete_without_payment_awaits_payment(self):
    order = _order(checkout_state="payment_selected", total=1000)

    self.machine.apply(order, state_machine.ORDER_CHECKOUT, "complete")

    self.assertEqual(order.state, "new")
    self.assertEqual(order.payment_state, "awaiting_payment")

  def test_payment_graph(self):
    payment = Payment(id=1)
    self.assertFalse(self.machine.can(payment, state_machine.PAYMENT, "fail"))
    for transition in ("create", "process", "complete"):
      self.machine.apply(payment, state_machine.PAYMENT, transition)
    self.assertEqual(payment.state, "completed")


if __name__ == "__main__":
  absltest.main()
