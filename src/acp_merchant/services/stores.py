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

"""SQL implementations of the collaborator interfaces."""

import logging
import secrets
from typing import Any, Dict, Iterable, List, Optional

from acp_merchant import db
from acp_merchant.domain import Channel
from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.domain import ShippingMethod
from acp_merchant.exceptions import ConcurrentModificationError
from acp_merchant.exceptions import DuplicateKeyError
from acp_merchant.models import GatewayConfig
from acp_merchant.ports import Catalog
from acp_merchant.ports import CheckoutSessionRepository
from acp_merchant.ports import GatewayConfigProvider
from acp_merchant.ports import OrderStore
from acp_merchant.ports import ProvinceLookup
from acp_merchant.ports import UnitOfWork
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Columns of the orders table that are not part of the JSON document.
_ORDER_COLUMNS = {"id", "version", "token_value", "number"}


def generate_token() -> str:
  """64 URL-safe characters."""
  return secrets.token_urlsafe(48)


def to_shipping_method(record: db.ShippingMethod) -> ShippingMethod:
  return ShippingMethod(
      id=record.id,
      code=record.code,
      name=record.name,
      description=record.description,
      calculator=record.calculator,
      configuration=record.configuration or {},
      countries=[c.upper() for c in record.countries or []],
      position=record.position or 0,
      enabled=bool(record.enabled),
  )


class SqlUnitOfWork(UnitOfWork):

  def __init__(self, session: AsyncSession):
    self.session = session

  async def commit(self) -> None:
    await self.session.commit()

  async def rollback(self) -> None:
    await self.session.rollback()


class SqlOrderStore(OrderStore):
  """Stores orders as versioned JSON documents."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def create_cart(self, channel: Channel) -> Order:
    return Order(
        channel_code=channel.code,
        currency_code=channel.base_currency_code,
        locale_code=channel.default_locale_code,
        token_value=generate_token(),
    )

  def _to_order(self, record: Optional[db.Order]) -> Optional[Order]:
    if record is None:
      return None
    data = dict(record.data or {})
    data.update(
        id=record.id,
        version=record.version,
        token_value=record.token_value,
        number=record.number,
    )
    return Order.model_validate(data)

  async def find(self, order_id: int) -> Optional[Order]:
    return self._to_order(await db.get_order(self.session, order_id))

  async def find_by_token(self, token_value: str) -> Optional[Order]:
    return self._to_order(await db.get_order_by_token(self.session, token_value))

  async def save(self, order: Order) -> Order:
    data = order.model_dump(mode="json", exclude=_ORDER_COLUMNS)
    if order.id is None:
      record = await db.insert_order(
          self.session, order.token_value, order.channel_code, data
      )
      order.id = record.id
      order.version = record.version
      return order

    updated = await db.update_order(
        self.session, order.id, order.version, order.number, data
    )
    if not updated:
      raise ConcurrentModificationError(
          f"Order {order.id} was modified concurrently"
      )
    order.version += 1
    return order

  async def assign_number(self, order: Order) -> None:
    if order.number:
      return
    sequence = await db.next_order_sequence(self.session)
    if sequence is None:
      raise ConcurrentModificationError("Order number sequence is contended")
    order.number = f"{sequence:09d}"


class SqlCheckoutSessionRepository(CheckoutSessionRepository):
  """Checkout sessions in the transactions database."""

  def __init__(self, session: AsyncSession):
    self.session = session

  @staticmethod
  def _to_session(
      record: Optional[db.CheckoutSession],
  ) -> Optional[CheckoutSession]:
    if record is None:
      return None
    return CheckoutSession(
        id=record.id,
        acp_id=record.acp_id,
        order_id=record.order_id,
        channel_code=record.channel_code,
        status=record.status,
        idempotency_key=record.idempotency_key,
        request_hash=record.request_hash,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )

  def _to_sessions(
      self, records: Iterable[db.CheckoutSession]
  ) -> List[CheckoutSession]:
    return [self._to_session(r) for r in records]

  async def find_by_acp_id(self, acp_id: str) -> Optional[CheckoutSession]:
    return self._to_session(
        await db.get_checkout_session_by_acp_id(self.session, acp_id)
    )

  async def find_by_idempotency_key(
      self, idempotency_key: str
  ) -> Optional[CheckoutSession]:
    return self._to_session(
        await db.get_checkout_session_by_idempotency_key(
            self.session, idempotency_key
        )
    )

  async def find_active(self) -> List[CheckoutSession]:
    return self._to_sessions(
        await db.list_checkout_sessions(self.session, active_only=True)
    )

  async def find_by_status(self, status: str) -> List[CheckoutSession]:
    return self._to_sessions(
        await db.list_checkout_sessions(self.session, status=status)
    )

  async def add(self, session: CheckoutSession) -> CheckoutSession:
    try:
      record = await db.insert_checkout_session(
          self.session,
          {
              "acp_id": session.acp_id,
              "order_id": session.order_id,
              "channel_code": session.channel_code,
              "status": session.status,
              "idempotency_key": session.idempotency_key,
              "request_hash": session.request_hash,
          },
      )
    except IntegrityError as e:
      raise DuplicateKeyError(str(e.orig)) from e
    session.id = record.id
    session.version = record.version
    session.created_at = record.created_at
    session.updated_at = record.updated_at
    return session

  async def save(self, session: CheckoutSession) -> CheckoutSession:
    updated = await db.update_checkout_session(
        self.session,
        session.id,
        session.version,
        {
            "status": session.status,
            "idempotency_key": session.idempotency_key,
            "request_hash": session.request_hash,
        },
    )
    if not updated:
      raise ConcurrentModificationError(
          f"Checkout session {session.acp_id} was modified concurrently"
      )
    session.version += 1
    return session


class SqlCatalog(Catalog):
  """Catalog lookups against the catalog database."""

  def __init__(self, session: AsyncSession):
    self.session = session

  @staticmethod
  def _variant(record: Optional[db.ProductVariant]) -> Optional[Dict[str, Any]]:
    if record is None:
      return None
    return {
        "id": record.id,
        "code": record.code,
        "name": record.name,
        "price": record.price or 0,
    }

  async def find_variant_by_code(self, code: str) -> Optional[Dict[str, Any]]:
    return self._variant(await db.get_variant_by_code(self.session, code))

  async def find_variant(self, variant_id: int) -> Optional[Dict[str, Any]]:
    return self._variant(await db.get_variant(self.session, variant_id))

  async def find_shipping_method_by_code(
      self, code: str
  ) -> Optional[ShippingMethod]:
    record = await db.get_shipping_method_by_code(self.session, code)
    return to_shipping_method(record) if record else None


class SqlGatewayConfigProvider(GatewayConfigProvider):
  """Channels and their ACP gateway configuration."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def get(self, channel_code: str) -> Optional[GatewayConfig]:
    raw = await db.get_gateway_config(self.session, channel_code)
    if raw is None:
      return None
    return GatewayConfig.model_validate(raw)

  async def get_channel(self, channel_code: str) -> Optional[Channel]:
    record = await db.get_channel(self.session, channel_code)
    if record is None:
      return None
    return Channel(
        code=record.code,
        name=record.name or "",
        base_currency_code=record.base_currency_code or "USD",
        default_locale_code=record.default_locale_code or "en_US",
    )


class StaticProvinceLookup(ProvinceLookup):
  """Province lookup over a preloaded list of `(country, code)` pairs.

  Codes are stored in the `US-CA` form; `CA` and `US-CA` both match.
  """

  def __init__(self, provinces: Iterable[db.Province]):
    self._codes = {
        (p.country_code.upper(), p.code.upper()) for p in provinces
    }

  def exists(self, country_code: str, code: str) -> bool:
    country = country_code.upper()
    code = code.upper()
    return (country, code) in self._codes or (
        (country, f"{country}-{code}") in self._codes
    )
