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

"""Serialization of a checkout session into its protocol representation."""

from typing import Any, Dict, Optional

from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.enums import CheckoutSessionStatus
from acp_merchant.mappers import address as address_mapper
from acp_merchant.mappers import line_items
from acp_merchant.mappers import totals
from acp_merchant.mappers.fulfillment import FulfillmentMapper
from acp_merchant.models import Buyer
from acp_merchant.models import CheckoutSessionResponse
from acp_merchant.models import GatewayConfig
from acp_merchant.models import OrderReference
from acp_merchant.models import PaymentProvider
from acp_merchant.services import status_resolver


def permalink_url(base_url: str, token_value: str) -> str:
  return f"{base_url.rstrip('/')}/orders/{token_value}"


def map_buyer(order: Order) -> Optional[Buyer]:
  customer = order.customer
  if (
      customer is None
      or customer.email is None
      or customer.first_name is None
      or customer.last_name is None
  ):
    return None
  return Buyer(
      first_name=customer.first_name,
      last_name=customer.last_name,
      email=customer.email,
      phone_number=customer.phone_number,
  )


class SessionSerializer:
  """Builds the protocol response for a session and its order."""

  def __init__(self, fulfillment_mapper: FulfillmentMapper, base_url: str):
    self.fulfillment_mapper = fulfillment_mapper
    self.base_url = base_url.rstrip("/")

  def build(
      self,
      session: CheckoutSession,
      order: Order,
      gateway_config: Optional[GatewayConfig] = None,
  ) -> CheckoutSessionResponse:
    status = status_resolver.effective_status(session, order)
    provider = (
        gateway_config.payment_provider if gateway_config else "stripe"
    )
    response = CheckoutSessionResponse(
        id=session.acp_id,
        status=status.value,
        currency=order.currency_code.lower(),
        line_items=line_items.map_line_items(order),
        totals=totals.map_totals(order),
        fulfillment_options=self.fulfillment_mapper.map_options(order),
        fulfillment_option_id=self.fulfillment_mapper.selected_option_id(order),
        fulfillment_address=address_mapper.encode(order.shipping_address),
        buyer=map_buyer(order),
        payment_provider=PaymentProvider(provider=provider),
    )

    if status == CheckoutSessionStatus.COMPLETED:
      if not order.number or not order.token_value:
        raise RuntimeError("Completed order must have a number and token value")
      response.order = OrderReference(
          id=order.number,
          checkout_session_id=session.acp_id,
          permalink_url=permalink_url(self.base_url, order.token_value),
      )
    return response

  def serialize(
      self,
      session: CheckoutSession,
      order: Order,
      gateway_config: Optional[GatewayConfig] = None,
  ) -> Dict[str, Any]:
    return self.build(session, order, gateway_config).model_dump(
        mode="json", exclude_none=True
    )
