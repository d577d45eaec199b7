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

"""Tests for idempotent session creation and keyed locks."""

import asyncio

from absl.testing import absltest
from acp_merchant.domain import CheckoutSession
from acp_merchant.exceptions import IdempotencyConflictError
from acp_merchant.services import idempotency


class FakeSessions:
  """Looks sessions up by idempotency key only."""

  def __init__(self, *sessions):
    self._by_key = {s.idempotency_key: s for s in sessions}

  async def find_by_idempotency_key(self, key):
    return self._by_key.get(key)


def _session(key, body):
  return CheckoutSession(
      acp_id="acp_sess_1_abc",
      order_id=1,
      channel_code="default",
      idempotency_key=key,
      request_hash=idempotency.hash_body(body),
  )


class IdempotencyGuardTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.existing = _session("key-1", b'{"items":[]}')
    self.guard = idempotency.IdempotencyGuard(FakeSessions(self.existing))

  def test_no_key_is_always_new(self):
    self.assertIsNone(
        asyncio.run(self.guard.check(None, idempotency.hash_body(b"")))
    )
    self.assertIsNone(
        asyncio.run(self.guard.check("", idempotency.hash_body(b"")))
    )

  def test_unknown_key_is_new(self):
    self.assertIsNone(
        asyncio.run(self.guard.check("key-2", idempotency.hash_body(b"{}")))
    )

  def test_same_body_replays(self):
    replay = asyncio.run(
        self.guard.check("key-1", idempotency.hash_body(b'{"items":[]}'))
    )
    self.assertIs(replay, self.existing)

  def test_different_body_conflicts(self):
    # Byte-level comparison: whitespace alone is a different request.
    with self.assertRaises(IdempotencyConflictError) as cm:
      asyncio.run(
          self.guard.check("key-1", idempotency.hash_body(b'{"items": []}'))
      )
    self.assertEqual(cm.exception.status_code, 409)
    self.assertEqual(cm.exception.code, "idempotency_conflict")


class KeyedLocksTest(absltest.TestCase):

  def test_serializes_same_key(self):
    locks = idempotency.KeyedLocks()
    events = []

    async def worker(name):
      async with locks.hold("k"):
        events.append(f"{name}-in")
        await asyncio.sleep(0.01)
        events.append(f"{name}-out")

    async def run_both():
      await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(run_both())
    self.assertEqual(events, ["a-in", "a-out", "b-in", "b-out"])
    self.assertEmpty(locks._locks)

  def test_other_keys_do_not_wait(self):
    locks = idempotency.KeyedLocks()

    async def nested():
      async with locks.hold("a"):
        async with locks.hold("b"):
          return True

    self.assertTrue(asyncio.run(nested()))
    self.assertEmpty(locks._locks)


if __name__ == "__main__":
  absltest.main()
