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

"""Database management and persistence layer for the checkout server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It uses SQLAlchemy with
SQLite (via aiosqlite) and separates catalog data from transactional data:

- Catalog: product variants, shipping methods, provinces, promotions and tax
  rates.
- Transactions: channels, their ACP gateway configuration, orders (stored as
  JSON documents with a version counter), checkout sessions and the order
  number sequence.

Orders and checkout sessions are updated with `UPDATE ... WHERE version = ?`;
a helper reports a lost race by returning False.
"""

import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

CatalogBase = declarative_base()
TransactionBase = declarative_base()

TERMINAL_SESSION_STATUSES = ("completed", "canceled")


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.catalog_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.catalog_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def _init_engine(self, path: str, base) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)
    # WAL lets the import tool and the server share the files.
    async with engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))
    async with engine.begin() as conn:
      await conn.run_sync(base.metadata.create_all)
    return engine

  async def init_dbs(self, catalog_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    self.catalog_engine = await self._init_engine(catalog_path, CatalogBase)
    self.catalog_session_factory = sessionmaker(
        self.catalog_engine, expire_on_commit=False, class_=AsyncSession
    )
    self.transactions_engine = await self._init_engine(
        transactions_path, TransactionBase
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.catalog_engine:
      await self.catalog_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


def _now() -> datetime.datetime:
  return datetime.datetime.now(datetime.timezone.utc)


class ProductVariant(CatalogBase):
  __tablename__ = "product_variants"

  id = Column(Integer, primary_key=True)
  code = Column(String, unique=True, index=True)
  name = Column(String)
  price = Column(Integer)  # Price in cents
  enabled = Column(Boolean, default=True)


class ShippingMethod(CatalogBase):
  __tablename__ = "shipping_methods"

  id = Column(Integer, primary_key=True)
  code = Column(String, unique=True, index=True)
  name = Column(String)
  description = Column(String, nullable=True)
  calculator = Column(String, nullable=True)  # e.g., 'flat_rate'
  configuration = Column(JSON, nullable=True)
  countries = Column(JSON, nullable=True)  # Empty means every country
  enabled = Column(Boolean, default=True)
  position = Column(Integer, default=0)


class Province(CatalogBase):
  __tablename__ = "provinces"

  code = Column(String, primary_key=True)  # e.g., 'US-CA'
  country_code = Column(String, index=True)
  name = Column(String)


class Promotion(CatalogBase):
  __tablename__ = "promotions"

  id = Column(String, primary_key=True)
  # 'free_shipping', 'order_percentage', 'order_fixed' or 'item_percentage'
  type = Column(String)
  amount = Column(Integer, nullable=True)  # In cents
  percentage = Column(Integer, nullable=True)
  min_subtotal = Column(Integer, nullable=True)  # In cents
  eligible_variant_codes = Column(JSON, nullable=True)
  description = Column(String)


class TaxRate(CatalogBase):
  __tablename__ = "tax_rates"

  id = Column(String, primary_key=True)
  country_code = Column(String, index=True)
  rate_bps = Column(Integer)  # Basis points, 825 is 8.25%
  name = Column(String)


class Channel(TransactionBase):
  __tablename__ = "channels"

  code = Column(String, primary_key=True)
  name = Column(String)
  base_currency_code = Column(String)
  default_locale_code = Column(String)


class GatewayConfig(TransactionBase):
  __tablename__ = "gateway_configs"

  channel_code = Column(String, ForeignKey("channels.code"), primary_key=True)
  config = Column(JSON)


class Order(TransactionBase):
  __tablename__ = "orders"

  id = Column(Integer, primary_key=True, autoincrement=True)
  token_value = Column(String, unique=True, index=True)
  number = Column(String, unique=True, nullable=True)
  channel_code = Column(String)
  version = Column(Integer, default=1, nullable=False)
  # SQLAlchemy JSON type handles serialization automatically
  data = Column(JSON)


class CheckoutSession(TransactionBase):
  __tablename__ = "checkout_sessions"

  id = Column(Integer, primary_key=True, autoincrement=True)
  acp_id = Column(String, unique=True, index=True, nullable=False)
  order_id = Column(Integer, ForeignKey("orders.id"), unique=True)
  channel_code = Column(String)
  status = Column(String, nullable=True, index=True)
  idempotency_key = Column(String, unique=True, nullable=True)
  request_hash = Column(String, nullable=True)
  version = Column(Integer, default=1, nullable=False)
  created_at = Column(DateTime, default=_now)
  updated_at = Column(DateTime, default=_now)


class OrderSequence(TransactionBase):
  __tablename__ = "order_sequences"

  id = Column(Integer, primary_key=True)
  idx = Column(Integer, default=0, nullable=False)


# --- Data Access Helpers ---


async def get_variant_by_code(
    session: AsyncSession, code: str
) -> Optional[ProductVariant]:
  """Retrieves an enabled product variant by code."""
  result = await session.execute(
      select(ProductVariant).where(
          ProductVariant.code == code, ProductVariant.enabled.is_(True)
      )
  )
  return result.scalar_one_or_none()


async def get_variant(
    session: AsyncSession, variant_id: int
) -> Optional[ProductVariant]:
  return await session.get(ProductVariant, variant_id)


async def get_shipping_method_by_code(
    session: AsyncSession, code: str
) -> Optional[ShippingMethod]:
  result = await session.execute(
      select(ShippingMethod).where(ShippingMethod.code == code)
  )
  return result.scalar_one_or_none()


async def get_shipping_methods(session: AsyncSession) -> List[ShippingMethod]:
  """Retrieves all shipping methods ordered by position."""
  result = await session.execute(
      select(ShippingMethod).order_by(ShippingMethod.position, ShippingMethod.id)
  )
  return list(result.scalars().all())


async def get_provinces(session: AsyncSession) -> List[Province]:
  result = await session.execute(select(Province))
  return list(result.scalars().all())


async def get_active_promotions(session: AsyncSession) -> List[Promotion]:
  """Retrieves all active promotions."""
  result = await session.execute(select(Promotion).order_by(Promotion.id))
  return list(result.scalars().all())


async def get_tax_rates(session: AsyncSession) -> Dict[str, int]:
  """Retrieves tax rates in basis points keyed by country code."""
  result = await session.execute(select(TaxRate).order_by(TaxRate.id))
  return {r.country_code.upper(): r.rate_bps for r in result.scalars().all()}


async def get_channel(session: AsyncSession, code: str) -> Optional[Channel]:
  return await session.get(Channel, code)


async def get_gateway_config(
    session: AsyncSession, channel_code: str
) -> Optional[Dict[str, Any]]:
  """Retrieves the raw ACP gateway configuration of a channel."""
  record = await session.get(GatewayConfig, channel_code)
  if record:
    return record.config
  return None


async def insert_order(
    session: AsyncSession,
    token_value: str,
    channel_code: str,
    data: Dict[str, Any],
) -> Order:
  """Inserts an order and flushes to obtain its ID."""
  record = Order(
      token_value=token_value,
      channel_code=channel_code,
      version=1,
      data=data,
  )
  session.add(record)
  await session.flush()
  return record


async def update_order(
    session: AsyncSession,
    order_id: int,
    expected_version: int,
    number: Optional[str],
    data: Dict[str, Any],
) -> bool:
  """Updates an order if its version is unchanged.

  Args:
    session: The database session to use.
    order_id: ID of the order row.
    expected_version: Version the caller read.
    number: The order number, if assigned.
    data: The JSON document of the order.

  Returns:
    True if the row was updated, False if another writer got there first.
  """
  stmt = (
      update(Order)
      .where(Order.id == order_id)
      .where(Order.version == expected_version)
      .values(data=data, number=number, version=expected_version + 1)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_order(session: AsyncSession, order_id: int) -> Optional[Order]:
  """Retrieves an order by ID."""
  return await session.get(Order, order_id, populate_existing=True)


async def get_order_by_token(
    session: AsyncSession, token_value: str
) -> Optional[Order]:
  result = await session.execute(
      select(Order).where(Order.token_value == token_value)
  )
  return result.scalar_one_or_none()


async def next_order_sequence(session: AsyncSession) -> Optional[int]:
  """Increments the order number sequence.

  Returns:
    The new value, or None if a concurrent writer incremented it first.
  """
  sequence = await session.get(OrderSequence, 1, populate_existing=True)
  if sequence is None:
    session.add(OrderSequence(id=1, idx=1))
    await session.flush()
    return 1
  stmt = (
      update(OrderSequence)
      .where(OrderSequence.id == 1)
      .where(OrderSequence.idx == sequence.idx)
      .values(idx=sequence.idx + 1)
  )
  result = await session.execute(stmt)
  if result.rowcount == 0:
    return None
  return sequence.idx + 1


async def insert_checkout_session(
    session: AsyncSession, values: Dict[str, Any]
) -> CheckoutSession:
  """Inserts a checkout session; unique violations surface on flush."""
  record = CheckoutSession(**values, version=1)
  session.add(record)
  await session.flush()
  return record


async def update_checkout_session(
    session: AsyncSession,
    session_id: int,
    expected_version: int,
    values: Dict[str, Any],
) -> bool:
  """Updates a checkout session if its version is unchanged."""
  stmt = (
      update(CheckoutSession)
      .where(CheckoutSession.id == session_id)
      .where(CheckoutSession.version == expected_version)
      .values(**values, version=expected_version + 1, updated_at=_now())
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_checkout_session_by_acp_id(
    session: AsyncSession, acp_id: str
) -> Optional[CheckoutSession]:
  """Retrieves a checkout session by its protocol ID."""
  result = await session.execute(
      select(CheckoutSession)
      .where(CheckoutSession.acp_id == acp_id)
      .execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def get_checkout_session_by_idempotency_key(
    session: AsyncSession, idempotency_key: str
) -> Optional[CheckoutSession]:
  result = await session.execute(
      select(CheckoutSession)
      .where(CheckoutSession.idempotency_key == idempotency_key)
      .execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def list_checkout_sessions(
    session: AsyncSession,
    status: Optional[str] = None,
    active_only: bool = False,
) -> List[CheckoutSession]:
  """Lists checkout sessions, newest first."""
  stmt = select(CheckoutSession).order_by(
      CheckoutSession.created_at.desc(), CheckoutSession.id.desc()
  )
  if status is not None:
    stmt = stmt.where(CheckoutSession.status == status)
  if active_only:
    stmt = stmt.where(
        (CheckoutSession.status.is_(None))
        | (CheckoutSession.status.not_in(TERMINAL_SESSION_STATUSES))
    )
  result = await session.execute(stmt)
  return list(result.scalars().all())
