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

"""Best-effort, HMAC-signed notification of completed orders."""

import json
import logging
from typing import Callable
import uuid

from acp_merchant.domain import OrderCompleted
from acp_merchant.models import WebhookConfig
from acp_merchant.services import signatures
import httpx

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10.0


def build_payload(
    event: OrderCompleted, event_type: str = "order_create"
) -> dict:
  return {
      "type": event_type,
      "data": {
          "type": "order",
          "checkout_session_id": event.acp_session_id,
          "permalink_url": event.permalink_url,
          "status": "created",
          "refunds": [],
      },
  }


class WebhookNotifier:
  """Posts order events to the agent's webhook URL.

  Delivery is attempted once. Failures are logged and never reach the
  caller; there is no retry or durable queue.
  """

  def __init__(
      self,
      client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
  ):
    self.client_factory = client_factory

  async def notify(self, event: OrderCompleted, webhook: WebhookConfig) -> bool:
    """Sends the event; returns whether the endpoint accepted it."""
    if not webhook.url:
      return False
    if not webhook.secret:
      logger.error(
          "Webhook URL configured for channel %s without a secret; not"
          " notifying session %s",
          event.channel_code,
          event.acp_session_id,
      )
      return False

    body = json.dumps(build_payload(event)).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "Merchant-Signature": signatures.sign_hex(webhook.secret, body),
        "Request-Id": f"acp_{uuid.uuid4().hex}",
        "Timestamp": signatures.rfc3339_now(),
    }
    try:
      async with self.client_factory(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
        response = await client.post(webhook.url, content=body, headers=headers)
      response.raise_for_status()
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.error(
          "Failed to send webhook for order %s (session %s) to %s: %s",
          event.order_number,
          event.acp_session_id,
          webhook.url,
          e,
      )
      return False
    logger.info(
        "Webhook delivered for order %s (session %s)",
        event.order_number,
        event.acp_session_id,
    )
    return True
