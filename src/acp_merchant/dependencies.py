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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Database session management (Catalog and Transactions DBs).
- Resolution of the channel and its ACP gateway configuration.
- Request authentication over the raw body.
- Service instantiation (CheckoutService and its collaborators).
"""

import logging
from typing import AsyncGenerator, Callable, Optional

from acp_merchant import config
from acp_merchant import db
from acp_merchant import state_machine
from acp_merchant.domain import Channel
from acp_merchant.domain import OrderCompleted
from acp_merchant.mappers.fulfillment import FulfillmentMapper
from acp_merchant.mappers.session import SessionSerializer
from acp_merchant.models import GatewayConfig
from acp_merchant.services import shipping
from acp_merchant.services import stores
from acp_merchant.services.authenticator import RequestAuthenticator
from acp_merchant.services.checkout_service import CheckoutService
from acp_merchant.services.order_applier import CatalogOrderMutator
from acp_merchant.services.order_processor import PromotionRule
from acp_merchant.services.order_processor import ReferenceOrderProcessor
from acp_merchant.services.payment_capture import PaymentCaptureFlow
from acp_merchant.services.webhook_notifier import WebhookNotifier
from fastapi import BackgroundTasks
from fastapi import Depends
from fastapi import Request
import httpx
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def get_catalog_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Catalog DB session."""
  async with db.manager.catalog_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_http_client_factory() -> Callable[..., httpx.AsyncClient]:
  """Dependency provider for outbound HTTP clients (PSP, webhooks)."""
  return httpx.AsyncClient


async def get_channel(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> Channel:
  code = config.get_channel_code()
  channel = await stores.SqlGatewayConfigProvider(
      transactions_session
  ).get_channel(code)
  if channel is None:
    logger.warning("Channel %s not found, using defaults", code)
    return Channel(code=code)
  return channel


async def get_gateway_config(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> Optional[GatewayConfig]:
  """Resolves the channel's ACP gateway configuration once per request."""
  return await stores.SqlGatewayConfigProvider(transactions_session).get(
      config.get_channel_code()
  )


async def authenticate_request(
    request: Request,
    gateway_config: Optional[GatewayConfig] = Depends(get_gateway_config),
) -> bytes:
  """Authenticates the request and returns its raw body."""
  body = await request.body()
  error = RequestAuthenticator().authenticate(
      request.method, request.headers, body, gateway_config
  )
  if error is not None:
    logger.info(
        "Rejected %s %s: %s", request.method, request.url.path, error.code
    )
    raise error
  return body


async def get_checkout_service(
    request: Request,
    background_tasks: BackgroundTasks,
    catalog_session: AsyncSession = Depends(get_catalog_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
    channel: Channel = Depends(get_channel),
    gateway_config: Optional[GatewayConfig] = Depends(get_gateway_config),
    client_factory: Callable[..., httpx.AsyncClient] = Depends(
        get_http_client_factory
    ),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  methods = [
      stores.to_shipping_method(record)
      for record in await db.get_shipping_methods(catalog_session)
  ]
  resolver = shipping.ZoneShippingMethodsResolver(methods)
  calculators = shipping.default_calculators()
  provinces = stores.StaticProvinceLookup(
      await db.get_provinces(catalog_session)
  )
  promotions = [
      PromotionRule(
          id=p.id,
          type=p.type,
          amount=p.amount,
          percentage=p.percentage,
          min_subtotal=p.min_subtotal,
          eligible_variant_codes=p.eligible_variant_codes,
          description=p.description or "",
      )
      for p in await db.get_active_promotions(catalog_session)
  ]
  catalog = stores.SqlCatalog(catalog_session)
  machine = state_machine.create_state_machine()
  notifier = WebhookNotifier(client_factory)

  def schedule_webhook(event: OrderCompleted) -> None:
    if gateway_config is not None and gateway_config.webhook.url:
      background_tasks.add_task(notifier.notify, event, gateway_config.webhook)

  return CheckoutService(
      channel=channel,
      gateway_config=gateway_config,
      orders=stores.SqlOrderStore(transactions_session),
      sessions=stores.SqlCheckoutSessionRepository(transactions_session),
      unit_of_work=stores.SqlUnitOfWork(transactions_session),
      mutator=CatalogOrderMutator(catalog, provinces),
      processor=ReferenceOrderProcessor(
          catalog,
          resolver,
          calculators,
          promotions=promotions,
          tax_rates=await db.get_tax_rates(catalog_session),
      ),
      serializer=SessionSerializer(
          FulfillmentMapper(resolver, calculators), str(request.base_url)
      ),
      machine=machine,
      capture_flow=PaymentCaptureFlow(machine, client_factory),
      listeners=[schedule_webhook],
  )
