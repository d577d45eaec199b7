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

"""Order permalink routes."""

from typing import Any, Dict

from acp_merchant import dependencies
from acp_merchant.services.checkout_service import CheckoutService
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Path

router = APIRouter()


@router.get(
    "/orders/{token}",
    response_model=Dict[str, Any],
    operation_id="get_order",
)
async def get_order(
    token_value: str = Path(..., alias="token"),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Get an order by its token."""
  return await checkout_service.get_order(token_value)
