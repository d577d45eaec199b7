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

"""Checkout session routes of the Agentic Commerce Protocol."""

import json
from typing import Any, Dict, Optional

from acp_merchant import dependencies
from acp_merchant.exceptions import InvalidRequestError
from acp_merchant.services.checkout_service import CheckoutService
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from fastapi import Path

router = APIRouter(prefix="/checkout_sessions")


def parse_body(raw_body: bytes) -> Any:
  """Decodes a JSON body; an empty body decodes to an empty object."""
  if not raw_body or not raw_body.strip():
    return {}
  try:
    return json.loads(raw_body)
  except (ValueError, UnicodeDecodeError) as e:
    raise InvalidRequestError(
        f"Request body is not valid JSON: {e}", code="invalid_json"
    ) from e


@router.post(
    "",
    status_code=201,
    response_model=Dict[str, Any],
    operation_id="create_checkout_session",
)
async def create_checkout_session(
    idempotency_key: Optional[str] = Header(None),
    raw_body: bytes = Depends(dependencies.authenticate_request),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Create a checkout session."""
  return await checkout_service.create_checkout(
      parse_body(raw_body), raw_body, idempotency_key
  )


@router.get(
    "/{id}",
    response_model=Dict[str, Any],
    operation_id="get_checkout_session",
)
async def get_checkout_session(
    session_id: str = Path(..., alias="id"),
    raw_body: bytes = Depends(dependencies.authenticate_request),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Retrieve a checkout session."""
  del raw_body  # Unused.
  return await checkout_service.get_checkout(session_id)


@router.post(
    "/{id}",
    response_model=Dict[str, Any],
    operation_id="update_checkout_session",
)
async def update_checkout_session(
    session_id: str = Path(..., alias="id"),
    raw_body: bytes = Depends(dependencies.authenticate_request),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Update a checkout session."""
  return await checkout_service.update_checkout(
      session_id, parse_body(raw_body)
  )


@router.post(
    "/{id}/complete",
    response_model=Dict[str, Any],
    operation_id="complete_checkout_session",
)
async def complete_checkout_session(
    session_id: str = Path(..., alias="id"),
    raw_body: bytes = Depends(dependencies.authenticate_request),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Complete a checkout session by charging the delegated payment token."""
  return await checkout_service.complete_checkout(
      session_id, parse_body(raw_body)
  )


@router.post(
    "/{id}/cancel",
    response_model=Dict[str, Any],
    operation_id="cancel_checkout_session",
)
async def cancel_checkout_session(
    session_id: str = Path(..., alias="id"),
    raw_body: bytes = Depends(dependencies.authenticate_request),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> Dict[str, Any]:
  """Cancel a checkout session."""
  del raw_body  # Unused.
  return await checkout_service.cancel_checkout(session_id)
