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

"""State machine over the order, checkout, payment and request graphs.

Each graph names the attribute it drives on its subject and the legal
transitions between states. Callbacks registered with `after` run once a
transition has been applied, which is how completing the checkout places the
order and resolves its payment state.
"""

import logging
from typing import Any, Callable, Dict, List, Sequence, Tuple

from acp_merchant.domain import Order

logger = logging.getLogger(__name__)

ORDER_CHECKOUT = "order_checkout"
ORDER = "order"
ORDER_PAYMENT = "order_payment"
PAYMENT = "payment"
PAYMENT_REQUEST = "payment_request"

Transition = Tuple[Sequence[str], str]


class Graph:
  """A named set of transitions acting on one attribute of a subject."""

  def __init__(self, name: str, attribute: str, transitions):
    self.name = name
    self.attribute = attribute
    self.transitions: Dict[str, Transition] = dict(transitions)


GRAPHS = {
    ORDER_CHECKOUT: Graph(
        ORDER_CHECKOUT,
        "checkout_state",
        {
            "address": (
                (
                    "cart",
                    "addressed",
                    "shipping_selected",
                    "shipping_skipped",
                    "payment_selected",
                    "payment_skipped",
                ),
                "addressed",
            ),
            "skip_shipping": (("addressed",), "shipping_skipped"),
            "select_shipping": (
                (
                    "addressed",
                    "shipping_selected",
                    "payment_selected",
                    "payment_skipped",
                ),
                "shipping_selected",
            ),
            "skip_payment": (
                ("shipping_selected", "shipping_skipped"),
                "payment_skipped",
            ),
            "select_payment": (
                ("payment_selected", "shipping_skipped", "shipping_selected"),
                "payment_selected",
            ),
            "complete": (("payment_selected", "payment_skipped"), "completed"),
        },
    ),
    ORDER: Graph(
        ORDER,
        "state",
        {
            "create": (("cart",), "new"),
            "cancel": (("new",), "cancelled"),
            "fulfill": (("new",), "fulfilled"),
        },
    ),
    ORDER_PAYMENT: Graph(
        ORDER_PAYMENT,
        "payment_state",
        {
            "request_payment": (("cart",), "awaiting_payment"),
            "pay": (("cart", "awaiting_payment"), "paid"),
        },
    ),
    PAYMENT: Graph(
        PAYMENT,
        "state",
        {
            "create": (("cart",), "new"),
            "process": (("new",), "processing"),
            "complete": (("new", "processing"), "completed"),
            "fail": (("new", "processing"), "failed"),
            "cancel": (("cart", "new", "processing"), "cancelled"),
        },
    ),
    PAYMENT_REQUEST: Graph(
        PAYMENT_REQUEST,
        "state",
        {
            "process": (("new",), "processing"),
            "complete": (("new", "processing"), "completed"),
            "fail": (("new", "processing"), "failed"),
            "cancel": (("new", "processing"), "cancelled"),
        },
    ),
}


class TransitionError(RuntimeError):
  """Raised when applying a transition that is not legal from the state."""


class StateMachine:
  """Applies graph transitions to subjects and runs after-callbacks."""

  def __init__(self, graphs: Dict[str, Graph] = None):
    self._graphs = dict(graphs or GRAPHS)
    self._callbacks: Dict[Tuple[str, str], List[Callable[[Any], None]]] = {}

  def after(
      self, graph: str, transition: str, callback: Callable[[Any], None]
  ) -> None:
    self._callbacks.setdefault((graph, transition), []).append(callback)

  def can(self, subject: Any, graph: str, transition: str) -> bool:
    definition = self._graphs[graph]
    if transition not in definition.transitions:
      return False
    sources, _ = definition.transitions[transition]
    return getattr(subject, definition.attribute) in sources

  def apply(self, subject: Any, graph: str, transition: str) -> None:
    if not self.can(subject, graph, transition):
      definition = self._graphs[graph]
      raise TransitionError(
          f"Transition '{transition}' cannot be applied on '{graph}' from"
          f" state '{getattr(subject, definition.attribute)}'"
      )
    definition = self._graphs[graph]
    _, target = definition.transitions[transition]
    setattr(subject, definition.attribute, target)
    logger.debug("Applied %s.%s -> %s", graph, transition, target)
    for callback in self._callbacks.get((graph, transition), []):
      callback(subject)


def _place_order(order: Order, machine: StateMachine) -> None:
  if machine.can(order, ORDER, "create"):
    machine.apply(order, ORDER, "create")


def _resolve_payment_state(order: Order, machine: StateMachine) -> None:
  if order.completed_payments_total() >= order.total:
    if machine.can(order, ORDER_PAYMENT, "pay"):
      machine.apply(order, ORDER_PAYMENT, "pay")
  elif machine.can(order, ORDER_PAYMENT, "request_payment"):
    machine.apply(order, ORDER_PAYMENT, "request_payment")


def create_state_machine() -> StateMachine:
  """Returns a machine wired with the order placement callbacks."""
  machine = StateMachine()
  machine.after(
      ORDER_CHECKOUT, "complete", lambda order: _place_order(order, machine)
  )
  machine.after(
      ORDER, "create", lambda order: _resolve_payment_state(order, machine)
  )
  return machine
