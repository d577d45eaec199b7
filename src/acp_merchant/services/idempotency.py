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

"""Idempotent session creation and in-process keyed locks."""

import asyncio
import contextlib
import hashlib
import logging
from typing import AsyncIterator, Dict, Optional

from acp_merchant.domain import CheckoutSession
from acp_merchant.exceptions import IdempotencyConflictError
from acp_merchant.ports import CheckoutSessionRepository

logger = logging.getLogger(__name__)


def hash_body(raw_body: bytes) -> str:
  """SHA-256 hex digest of the exact request bytes."""
  return hashlib.sha256(raw_body).hexdigest()


class KeyedLocks:
  """One asyncio lock per key, dropped once nobody holds or awaits it."""

  def __init__(self) -> None:
    self._locks: Dict[str, asyncio.Lock] = {}
    self._waiters: Dict[str, int] = {}

  @contextlib.asynccontextmanager
  async def hold(self, key: str) -> AsyncIterator[None]:
    lock = self._locks.setdefault(key, asyncio.Lock())
    self._waiters[key] = self._waiters.get(key, 0) + 1
    try:
      async with lock:
        yield
    finally:
      self._waiters[key] -= 1
      if not self._waiters[key]:
        del self._waiters[key]
        del self._locks[key]


class IdempotencyGuard:
  """Decides whether a create request is new, a replay, or a conflict."""

  def __init__(self, sessions: CheckoutSessionRepository):
    self.sessions = sessions

  async def check(
      self, idempotency_key: Optional[str], body_hash: str
  ) -> Optional[CheckoutSession]:
    """Returns the session to replay, or None when the request is new.

    Args:
      idempotency_key: The Idempotency-Key header; empty means absent.
      body_hash: Hash of the raw request body.

    Returns:
      The previously created session when key and body both match.

    Raises:
      IdempotencyConflictError: The key was used with a different body.
    """
    if not idempotency_key:
      return None
    existing = await self.sessions.find_by_idempotency_key(idempotency_key)
    if existing is None:
      return None
    if existing.request_hash != body_hash:
      logger.info("Idempotency key reused with a different request body")
      raise IdempotencyConflictError(
          "Idempotency key reused with different parameters"
      )
    logger.info("Replaying checkout session %s", existing.acp_id)
    return existing
