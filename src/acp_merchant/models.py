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

"""Wire models of the checkout protocol and the gateway configuration.

Response models are dumped with `exclude_none=True`, so optional members are
absent from the JSON rather than null.
"""

from typing import List, Optional

from pydantic import BaseModel
from pydantic import Field


class PspConfig(BaseModel):
  """Payment service provider the delegated token is charged against."""

  url: Optional[str] = None
  merchant_secret_key: Optional[str] = None
  charge_endpoint: Optional[str] = None


class WebhookConfig(BaseModel):
  url: Optional[str] = None
  secret: Optional[str] = None


class GatewayConfig(BaseModel):
  """ACP gateway configuration of one channel, resolved once per request."""

  bearer_token: Optional[str] = None
  # Verifies inbound signatures and signs outbound PSP requests.
  signature_secret: Optional[str] = None
  payment_method_code: Optional[str] = None
  payment_provider: str = "stripe"
  psp: PspConfig = Field(default_factory=PspConfig)
  webhook: WebhookConfig = Field(default_factory=WebhookConfig)


class ItemReference(BaseModel):
  id: str
  quantity: int


class Total(BaseModel):
  type: str
  display_text: str
  amount: int


class LineItem(BaseModel):
  id: str
  item: ItemReference
  base_amount: int
  discount: int
  subtotal: int
  tax: int
  total: int


class FulfillmentOption(BaseModel):
  type: str = "shipping"
  id: str
  title: str
  subtitle: Optional[str] = None
  subtotal: str
  tax: str = "0.00"
  total: str


class WireAddress(BaseModel):
  name: Optional[str] = None
  line_one: Optional[str] = None
  line_two: Optional[str] = None
  city: Optional[str] = None
  state: str = ""
  country: Optional[str] = None
  postal_code: Optional[str] = None


class Buyer(BaseModel):
  first_name: str
  last_name: str
  email: str
  phone_number: Optional[str] = None


class PaymentProvider(BaseModel):
  provider: str
  supported_payment_methods: List[str] = Field(
      default_factory=lambda: ["card"]
  )


class OrderReference(BaseModel):
  id: str
  checkout_session_id: str
  permalink_url: str


class CheckoutSessionResponse(BaseModel):
  """A checkout session as seen by the agent."""

  id: str
  status: str
  currency: str
  line_items: List[LineItem] = Field(default_factory=list)
  totals: List[Total] = Field(default_factory=list)
  fulfillment_options: List[FulfillmentOption] = Field(default_factory=list)
  fulfillment_option_id: Optional[str] = None
  fulfillment_address: Optional[WireAddress] = None
  buyer: Optional[Buyer] = None
  payment_provider: PaymentProvider
  messages: List[dict] = Field(default_factory=list)
  links: List[dict] = Field(default_factory=list)
  order: Optional[OrderReference] = None
