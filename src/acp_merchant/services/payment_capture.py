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

"""Capture of a delegated payment token against the payment service provider.

The capture runs synchronously inside the complete request: the PSP is called
once, without retry, and the outcome is written onto the payment and the
payment request before control returns to the caller.
"""

import json
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional
import uuid

from acp_merchant import config
from acp_merchant import state_machine
from acp_merchant.domain import Payment
from acp_merchant.domain import PaymentRequest
from acp_merchant.enums import PaymentRequestState
from acp_merchant.exceptions import PaymentCaptureError
from acp_merchant.models import PspConfig
from acp_merchant.services import signatures
import httpx

logger = logging.getLogger(__name__)

PSP_TIMEOUT_SECONDS = 30.0
USER_AGENT = "acp-merchant/0.1"


def charge_idempotency_key() -> str:
  return f"charge_{int(time.time())}_{secrets.token_hex(8)}"


class PaymentCaptureFlow:
  """Charges a payment request's token and records the outcome."""

  def __init__(
      self,
      machine: state_machine.StateMachine,
      client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
  ):
    self.machine = machine
    self.client_factory = client_factory

  async def capture(
      self,
      request: PaymentRequest,
      payment: Payment,
      psp: PspConfig,
      signature_secret: Optional[str] = None,
  ) -> None:
    """Runs the capture for `request`.

    Args:
      request: The capture request holding `{token, provider}`.
      payment: The payment being captured.
      psp: PSP endpoint and credentials.
      signature_secret: Secret used to sign the charge body, if any.

    Raises:
      PaymentCaptureError: The token, configuration or charge was rejected.
    """
    if request.state == PaymentRequestState.PROCESSING:
      logger.info("Payment request %s is already processing", request.hash)
      return

    token = request.payload.get("token")
    if not isinstance(token, str) or not token:
      raise PaymentCaptureError("Payment token not found in payload")
    if not psp.url:
      raise PaymentCaptureError("PSP URL not configured")
    if not psp.merchant_secret_key:
      raise PaymentCaptureError("PSP merchant secret key not configured")
    if not psp.charge_endpoint:
      raise PaymentCaptureError("PSP charge endpoint not configured")

    try:
      charge = await self._charge(
          psp,
          token,
          payment.amount,
          payment.currency_code.lower(),
          signature_secret,
      )
    except PaymentCaptureError as e:
      payment.details = {
          "error": {
              "type": "psp_error",
              "code": "charge_failed",
              "message": str(e),
          },
          "acp_token": token,
      }
      raise

    payment.details = {
        "psp_payment_intent_id": charge.get("id"),
        "status": charge.get("status"),
        "amount": charge.get("amount"),
        "currency": charge.get("currency"),
        "created": charge.get("created"),
        "vault_token": token,
    }
    for transition in ("create", "process", "complete"):
      if self.machine.can(payment, state_machine.PAYMENT, transition):
        self.machine.apply(payment, state_machine.PAYMENT, transition)

    request.response_data = {
        "payment_intent_id": charge.get("id"),
        "status": "completed",
    }
    for transition in ("process", "complete"):
      if self.machine.can(request, state_machine.PAYMENT_REQUEST, transition):
        self.machine.apply(request, state_machine.PAYMENT_REQUEST, transition)
    logger.info(
        "Captured payment %s with PSP intent %s", payment.id, charge.get("id")
    )

  async def _charge(
      self,
      psp: PspConfig,
      token: str,
      amount: int,
      currency: str,
      signature_secret: Optional[str],
  ) -> Dict[str, Any]:
    endpoint = f"{psp.url.rstrip('/')}/{psp.charge_endpoint.lstrip('/')}"
    body = json.dumps(
        {"shared_payment_token": token, "amount": amount, "currency": currency}
    ).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {psp.merchant_secret_key}",
        "API-Version": config.SUPPORTED_API_VERSION,
        "Accept-Language": "en-US",
        "User-Agent": USER_AGENT,
        "Idempotency-Key": charge_idempotency_key(),
        "Request-Id": f"req_{uuid.uuid4().hex}",
        "Timestamp": signatures.rfc3339_now(),
    }
    if signature_secret:
      headers["Signature"] = signatures.sign_base64url(signature_secret, body)

    try:
      async with self.client_factory(timeout=PSP_TIMEOUT_SECONDS) as client:
        response = await client.post(endpoint, content=body, headers=headers)
    except httpx.HTTPError as e:
      logger.error("PSP request to %s failed: %s", endpoint, e)
      raise PaymentCaptureError(f"PSP request failed: {e}") from e

    try:
      data = response.json()
    except ValueError:
      data = None

    if response.status_code != 201:
      if not isinstance(data, dict):
        raise PaymentCaptureError(
            f"PSP returned status {response.status_code} with invalid response"
        )
      message = str(data.get("message") or "Unknown PSP error")
      logger.error(
          "PSP declined charge with status %d: %s",
          response.status_code,
          message,
      )
      raise PaymentCaptureError(
          f"PSP returned status {response.status_code}: {message}"
      )
    if not isinstance(data, dict):
      raise PaymentCaptureError("Invalid JSON response from PSP")
    return data
