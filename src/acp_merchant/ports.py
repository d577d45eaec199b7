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

"""Interfaces of the collaborators the protocol engine consumes.

The engine never touches persistence or the recalculation engine directly;
it is handed implementations of these interfaces. `stores` and the reference
services provide the SQL-backed ones used by the server.
"""

from abc import ABC
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from acp_merchant.domain import Channel
from acp_merchant.domain import CheckoutSession
from acp_merchant.domain import Order
from acp_merchant.domain import ShippingMethod
from acp_merchant.models import GatewayConfig


class OrderStore(ABC):
  """Persistence of order aggregates."""

  @abstractmethod
  async def create_cart(self, channel: Channel) -> Order:
    """Returns a new, unsaved cart bound to the channel."""

  @abstractmethod
  async def find(self, order_id: int) -> Optional[Order]:
    pass

  @abstractmethod
  async def find_by_token(self, token_value: str) -> Optional[Order]:
    pass

  @abstractmethod
  async def save(self, order: Order) -> Order:
    """Inserts or updates the order, checking its version on update."""

  @abstractmethod
  async def assign_number(self, order: Order) -> None:
    """Gives the order its sequential number, if it has none yet."""


class CheckoutSessionRepository(ABC):
  """Persistence and lookups of checkout sessions."""

  @abstractmethod
  async def find_by_acp_id(self, acp_id: str) -> Optional[CheckoutSession]:
    pass

  @abstractmethod
  async def find_by_idempotency_key(
      self, idempotency_key: str
  ) -> Optional[CheckoutSession]:
    pass

  @abstractmethod
  async def find_active(self) -> List[CheckoutSession]:
    """Sessions whose stored status is not terminal, newest first."""

  @abstractmethod
  async def find_by_status(self, status: str) -> List[CheckoutSession]:
    pass

  @abstractmethod
  async def add(self, session: CheckoutSession) -> CheckoutSession:
    """Inserts a session; raises DuplicateKeyError on a reused key."""

  @abstractmethod
  async def save(self, session: CheckoutSession) -> CheckoutSession:
    """Updates a session, checking its version."""


class UnitOfWork(ABC):
  """Transaction boundary shared by the order store and session repository."""

  @abstractmethod
  async def commit(self) -> None:
    pass

  @abstractmethod
  async def rollback(self) -> None:
    pass


class Catalog(ABC):
  """Read access to sellable variants and shipping methods."""

  @abstractmethod
  async def find_variant_by_code(self, code: str) -> Optional[Dict[str, Any]]:
    """Returns `{id, code, name, price}` for an enabled variant."""

  @abstractmethod
  async def find_variant(self, variant_id: int) -> Optional[Dict[str, Any]]:
    pass

  @abstractmethod
  async def find_shipping_method_by_code(
      self, code: str
  ) -> Optional[ShippingMethod]:
    pass


class OrderMutator(ABC):
  """Applies raw protocol input onto an order."""

  @abstractmethod
  async def apply(self, order: Order, data: Dict[str, Any]) -> None:
    """Applies `items`, `fulfillment_address` and `fulfillment_option_id`."""

  @abstractmethod
  async def apply_buyer(self, order: Order, buyer: Dict[str, Any]) -> None:
    pass


class OrderProcessor(ABC):
  """Recalculates units, shipping, promotions, taxes and totals."""

  @abstractmethod
  async def process(self, order: Order) -> None:
    pass


class ProvinceLookup(ABC):

  @abstractmethod
  def exists(self, country_code: str, code: str) -> bool:
    """Whether the country has a province with the code."""


class ShippingMethodsResolver(ABC):

  @abstractmethod
  def supported_methods(self, order: Order) -> List[ShippingMethod]:
    """Methods available for the order's first shipment."""


class ShippingCalculator(ABC):

  @abstractmethod
  def calculate(self, order: Order, configuration: Dict[str, Any]) -> int:
    """Returns the shipping charge in minor units."""


class GatewayConfigProvider(ABC):

  @abstractmethod
  async def get(self, channel_code: str) -> Optional[GatewayConfig]:
    pass

  @abstractmethod
  async def get_channel(self, channel_code: str) -> Optional[Channel]:
    pass
