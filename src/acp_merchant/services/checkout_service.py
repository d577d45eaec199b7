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

"""Checkout service implementing the protocol session operations.

This module provides the `CheckoutService` class, which encapsulates the
business logic for creating, retrieving, updating, completing and cancelling
checkout sessions. It coordinates the order collaborators (mutator,
processor, store), the session repository, the idempotency guard and the
payment capture flow, and serializes results into the protocol format.

Key responsibilities include:
- Idempotent session creation keyed by the Idempotency-Key header.
- Validating requested changes and advancing the checkout state.
- Charging the delegated payment token and placing the order.
- Refusing changes once a session is completed or canceled.
"""

import datetime
import logging
import secrets
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import uuid

from acp_merchant import state_machine
from acp_merchant.domain import Channel
from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.domain import OrderCompleted
from acp_merchant.domain import Payment
from acp_merchant.domain import PaymentRequest
from acp_merchant.enums import CheckoutSessionStatus
from acp_merchant.enums import PaymentRequestState
from acp_merchant.enums import PaymentState
from acp_merchant.exceptions import ConcurrentModificationError
from acp_merchant.exceptions import DuplicateKeyError
from acp_merchant.exceptions import InvalidParameterError
from acp_merchant.exceptions import InvalidRequestError
from acp_merchant.exceptions import MissingParameterError
from acp_merchant.exceptions import PaymentCaptureError
from acp_merchant.exceptions import PaymentFailedError
from acp_merchant.exceptions import ResourceNotFoundError
from acp_merchant.exceptions import SessionNotModifiableError
from acp_merchant.mappers import line_items
from acp_merchant.mappers import totals
from acp_merchant.mappers.session import permalink_url
from acp_merchant.mappers.session import SessionSerializer
from acp_merchant.models import GatewayConfig
from acp_merchant.ports import CheckoutSessionRepository
from acp_merchant.ports import OrderMutator
from acp_merchant.ports import OrderProcessor
from acp_merchant.ports import OrderStore
from acp_merchant.ports import UnitOfWork
from acp_merchant.services import idempotency
from acp_merchant.services import status_resolver
from acp_merchant.services.payment_capture import PaymentCaptureFlow

logger = logging.getLogger(__name__)

# Shared by every service instance of the process.
SESSION_LOCKS = idempotency.KeyedLocks()
IDEMPOTENCY_LOCKS = idempotency.KeyedLocks()

_REUSABLE_PAYMENT_STATES = (PaymentState.CART.value, PaymentState.NEW.value)
_OPEN_REQUEST_STATES = (
    PaymentRequestState.NEW.value,
    PaymentRequestState.PROCESSING.value,
)


def generate_acp_id() -> str:
  return f"acp_sess_{int(time.time())}_{secrets.token_hex(8)}"


def _require_object(data: Any) -> Dict[str, Any]:
  if not isinstance(data, dict):
    raise InvalidRequestError(
        "Request body must be a JSON object", code="invalid_json"
    )
  return data


class CheckoutService:
  """Service for managing checkout sessions and their orders."""

  def __init__(
      self,
      channel: Channel,
      gateway_config: Optional[GatewayConfig],
      orders: OrderStore,
      sessions: CheckoutSessionRepository,
      unit_of_work: UnitOfWork,
      mutator: OrderMutator,
      processor: OrderProcessor,
      serializer: SessionSerializer,
      machine: state_machine.StateMachine,
      capture_flow: PaymentCaptureFlow,
      listeners: Sequence[Callable[[OrderCompleted], None]] = (),
      session_locks: idempotency.KeyedLocks = SESSION_LOCKS,
      idempotency_locks: idempotency.KeyedLocks = IDEMPOTENCY_LOCKS,
  ):
    self.channel = channel
    self.gateway_config = gateway_config
    self.orders = orders
    self.sessions = sessions
    self.unit_of_work = unit_of_work
    self.mutator = mutator
    self.processor = processor
    self.serializer = serializer
    self.machine = machine
    self.capture_flow = capture_flow
    self.listeners: List[Callable[[OrderCompleted], None]] = list(listeners)
    self.session_locks = session_locks
    self.idempotency_locks = idempotency_locks
    self.guard = idempotency.IdempotencyGuard(sessions)

  def _serialize(self, session: CheckoutSession, order: Order) -> Dict[str, Any]:
    return self.serializer.serialize(session, order, self.gateway_config)

  async def _load(self, acp_id: str) -> Tuple[CheckoutSession, Order]:
    session = await self.sessions.find_by_acp_id(acp_id)
    if session is None:
      raise ResourceNotFoundError(f"Checkout session {acp_id} not found")
    order = await self.orders.find(session.order_id)
    if order is None:
      raise RuntimeError(f"Checkout session {acp_id} has no order")
    return session, order

  def _ensure_modifiable(
      self, session: CheckoutSession, order: Order, action: str
  ) -> None:
    """Ensures that the session is in a state that allows modification."""
    status = status_resolver.effective_status(session, order)
    if status_resolver.is_terminal(status.value):
      raise SessionNotModifiableError(
          f"Cannot {action} checkout session in state '{status.value}'"
      )

  def _advance_checkout(self, order: Order) -> None:
    """Moves the checkout forward for the address and shipping choice."""
    graph = state_machine.ORDER_CHECKOUT
    if order.shipping_address is not None and self.machine.can(
        order, graph, "address"
    ):
      self.machine.apply(order, graph, "address")
    if any(s.method is not None for s in order.shipments) and self.machine.can(
        order, graph, "select_shipping"
    ):
      self.machine.apply(order, graph, "select_shipping")

  async def create_checkout(
      self,
      data: Any,
      raw_body: bytes,
      idempotency_key: Optional[str] = None,
  ) -> Dict[str, Any]:
    """Creates a checkout session, or replays the one created for the key.

    Args:
      data: The decoded request body.
      raw_body: The exact request bytes, hashed for idempotency.
      idempotency_key: The Idempotency-Key header, if any.

    Returns:
      The serialized session.

    Raises:
      MissingParameterError: `items` is missing or empty.
      IdempotencyConflictError: The key was used with another body.
    """
    data = _require_object(data)
    if not data:
      raise InvalidRequestError("Request body is required", code="invalid_json")
    items = data.get("items")
    if not isinstance(items, list) or not items:
      raise MissingParameterError("items is required", param="$.items")

    body_hash = idempotency.hash_body(raw_body)
    if not idempotency_key:
      return await self._create(data, None, body_hash)

    async with self.idempotency_locks.hold(idempotency_key):
      existing = await self.guard.check(idempotency_key, body_hash)
      if existing is not None:
        return await self._serialize_existing(existing)
      try:
        return await self._create(data, idempotency_key, body_hash)
      except DuplicateKeyError:
        # Another process stored the key first.
        await self.unit_of_work.rollback()
        existing = await self.guard.check(idempotency_key, body_hash)
        if existing is None:
          raise ConcurrentModificationError(
              "Checkout session creation raced with another request"
          ) from None
        return await self._serialize_existing(existing)

  async def _serialize_existing(
      self, session: CheckoutSession
  ) -> Dict[str, Any]:
    order = await self.orders.find(session.order_id)
    if order is None:
      raise RuntimeError(f"Checkout session {session.acp_id} has no order")
    return self._serialize(session, order)

  async def _create(
      self,
      data: Dict[str, Any],
      idempotency_key: Optional[str],
      body_hash: str,
  ) -> Dict[str, Any]:
    logger.info("Creating checkout session on channel %s", self.channel.code)
    order = await self.orders.create_cart(self.channel)
    await self.mutator.apply(order, data)
    buyer = data.get("buyer")
    if isinstance(buyer, dict):
      await self.mutator.apply_buyer(order, buyer)
    await self.processor.process(order)
    self._advance_checkout(order)
    await self.orders.save(order)

    session = CheckoutSession(
        acp_id=generate_acp_id(),
        order_id=order.id,
        channel_code=self.channel.code,
        status=status_resolver.resolve(order).value,
        idempotency_key=idempotency_key,
        request_hash=body_hash if idempotency_key else None,
    )
    await self.sessions.add(session)
    await self.unit_of_work.commit()
    logger.info(
        "Created checkout session %s for order %s", session.acp_id, order.id
    )
    return self._serialize(session, order)

  async def get_checkout(self, acp_id: str) -> Dict[str, Any]:
    """Retrieves a checkout session."""
    session, order = await self._load(acp_id)
    return self._serialize(session, order)

  async def update_checkout(self, acp_id: str, data: Any) -> Dict[str, Any]:
    """Applies item, address, shipping and buyer changes to a session."""
    data = _require_object(data)
    if not data:
      raise InvalidRequestError("Request body is required", code="invalid_json")
    logger.info("Updating checkout session %s", acp_id)
    async with self.session_locks.hold(acp_id):
      session, order = await self._load(acp_id)
      self._ensure_modifiable(session, order, "update")

      option_id = data.get("fulfillment_option_id")
      if isinstance(option_id, str):
        available = {
            option.id
            for option in self.serializer.fulfillment_mapper.map_options(order)
        }
        if option_id not in available:
          raise InvalidParameterError(
              f"Fulfillment option {option_id} is not available",
              param="$.fulfillment_option_id",
          )

      await self.mutator.apply(order, data)
      buyer = data.get("buyer")
      if isinstance(buyer, dict):
        await self.mutator.apply_buyer(order, buyer)
      await self.processor.process(order)
      self._advance_checkout(order)

      session.status = status_resolver.resolve(order).value
      await self.orders.save(order)
      await self.sessions.save(session)
      await self.unit_of_work.commit()
      return self._serialize(session, order)

  async def complete_checkout(self, acp_id: str, data: Any) -> Dict[str, Any]:
    """Charges the delegated token and places the session's order."""
    data = _require_object(data)
    logger.info("Completing checkout session %s", acp_id)
    async with self.session_locks.hold(acp_id):
      session, order = await self._load(acp_id)
      self._ensure_modifiable(session, order, "complete")

      payment_data = data.get("payment_data")
      if not isinstance(payment_data, dict):
        raise MissingParameterError(
            "payment_data is required", param="$.payment_data"
        )
      token = payment_data.get("token")
      if not isinstance(token, str) or not token:
        raise MissingParameterError(
            "payment_data.token is required", param="$.payment_data.token"
        )
      provider = payment_data.get("provider")
      if not isinstance(provider, str) or not provider:
        raise MissingParameterError(
            "payment_data.provider is required",
            param="$.payment_data.provider",
        )

      buyer = data.get("buyer")
      if isinstance(buyer, dict):
        await self.mutator.apply_buyer(order, buyer)

      if (
          status_resolver.resolve(order)
          != CheckoutSessionStatus.READY_FOR_PAYMENT
      ):
        raise InvalidRequestError(
            "Checkout session is not ready for payment",
            code="session_not_ready",
        )
      config = self.gateway_config
      if config is None or not config.payment_method_code:
        raise InvalidRequestError(
            "ACP payment method is not configured for this channel",
            code="payment_method_not_configured",
        )

      previous_checkout_state = order.checkout_state
      payment = self._resolve_payment(order, config.payment_method_code)
      graph = state_machine.ORDER_CHECKOUT
      if self.machine.can(order, graph, "select_payment"):
        self.machine.apply(order, graph, "select_payment")
      if not self.machine.can(order, graph, "complete"):
        order.checkout_state = previous_checkout_state
        raise InvalidRequestError(
            "Checkout session is not ready for payment",
            code="session_not_ready",
        )

      request = self._create_capture_request(order, payment, token, provider)
      try:
        await self.capture_flow.capture(
            request, payment, config.psp, config.signature_secret
        )
        if payment.state != PaymentState.COMPLETED:
          raise PaymentCaptureError("Payment was not completed")
      except PaymentCaptureError as e:
        logger.error(
            "Payment capture failed for session %s: %s", session.acp_id, e
        )
        order.checkout_state = previous_checkout_state
        if self.machine.can(request, state_machine.PAYMENT_REQUEST, "fail"):
          self.machine.apply(request, state_machine.PAYMENT_REQUEST, "fail")
        await self.orders.save(order)
        await self.unit_of_work.commit()
        raise PaymentFailedError(f"Payment failed: {e}") from e

      self.machine.apply(order, graph, "complete")
      order.checkout_completed_at = datetime.datetime.now(
          datetime.timezone.utc
      )
      await self.orders.assign_number(order)
      session.status = CheckoutSessionStatus.COMPLETED.value
      await self.orders.save(order)
      await self.sessions.save(session)
      await self.unit_of_work.commit()
      logger.info(
          "Completed checkout session %s as order %s",
          session.acp_id,
          order.number,
      )

      response = self._serialize(session, order)
      event = OrderCompleted(
          acp_session_id=session.acp_id,
          order_id=order.id,
          order_number=order.number,
          order_token=order.token_value,
          permalink_url=permalink_url(
              self.serializer.base_url, order.token_value
          ),
          channel_code=session.channel_code,
      )
      for listener in self.listeners:
        listener(event)
      return response

  def _resolve_payment(self, order: Order, method_code: str) -> Payment:
    """Returns the order's open payment, creating one when needed."""
    payment = order.last_payment()
    if payment is None or payment.state not in _REUSABLE_PAYMENT_STATES:
      payment = Payment(id=order.allocate_id())
      order.payments.append(payment)
    payment.method_code = method_code
    payment.amount = order.total
    payment.currency_code = order.currency_code
    return payment

  def _create_capture_request(
      self, order: Order, payment: Payment, token: str, provider: str
  ) -> PaymentRequest:
    for stale in order.payment_requests:
      if stale.state in _OPEN_REQUEST_STATES and self.machine.can(
          stale, state_machine.PAYMENT_REQUEST, "cancel"
      ):
        self.machine.apply(stale, state_machine.PAYMENT_REQUEST, "cancel")
    request = PaymentRequest(
        hash=str(uuid.uuid4()),
        payment_id=payment.id,
        method_code=payment.method_code,
        action="capture",
        payload={"token": token, "provider": provider},
    )
    order.payment_requests.append(request)
    return request

  async def cancel_checkout(self, acp_id: str) -> Dict[str, Any]:
    """Cancels a session; the order itself is left untouched."""
    logger.info("Canceling checkout session %s", acp_id)
    async with self.session_locks.hold(acp_id):
      session, order = await self._load(acp_id)
      self._ensure_modifiable(session, order, "cancel")
      session.status = CheckoutSessionStatus.CANCELED.value
      await self.sessions.save(session)
      await self.unit_of_work.commit()
      return self._serialize(session, order)

  async def get_order(self, token_value: str) -> Dict[str, Any]:
    """Summarizes an order for its permalink."""
    order = await self.orders.find_by_token(token_value)
    if order is None:
      raise ResourceNotFoundError("Order not found")
    return {
        "number": order.number,
        "state": order.state,
        "payment_state": order.payment_state,
        "checkout_state": order.checkout_state,
        "currency": order.currency_code.lower(),
        "line_items": [
            item.model_dump(mode="json")
            for item in line_items.map_line_items(order)
        ],
        "totals": [t.model_dump(mode="json") for t in totals.map_totals(order)],
    }
