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

"""Integration tests for the ACP merchant server."""

import asyncio
import functools
import json
import os
import shutil
import tempfile
from typing import Any, AsyncGenerator, Dict, Optional

from absl.testing import absltest
from acp_merchant import db
from acp_merchant import dependencies
from acp_merchant import import_csv
from acp_merchant.server import app
from acp_merchant.services import signatures
from acp_merchant.services import stores
from fastapi.testclient import TestClient
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
BEARER_TOKEN = "test-bearer-token"
SIGNATURE_SECRET = "test-signature-secret"
WEBHOOK_SECRET = "test-webhook-secret"
PSP_URL = "https://psp.test"
WEBHOOK_URL = "https://agent.test/webhooks/acp"

CREATE_BODY = {
    "items": [{"id": "mug", "quantity": 2}],
    "buyer": {"email": "ada@example.com"},
}
US_ADDRESS = {
    "name": "Ada Lovelace",
    "line_one": "1 Main St",
    "line_two": "Apt 2",
    "city": "Springfield",
    "state": "US-CA",
    "country": "us",
    "postal_code": "94000",
}
PAYMENT_DATA = {"token": "spt_test_123", "provider": "stripe"}


class IntegrationTest(absltest.TestCase):
  """End-to-end checkout flows through the FastAPI application."""

  def setUp(self) -> None:
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    catalog_url = (
        f"sqlite+aiosqlite:///{os.path.join(self.test_dir, 'catalog.db')}"
    )
    transactions_url = (
        f"sqlite+aiosqlite:///{os.path.join(self.test_dir, 'transactions.db')}"
    )
    # Engines are shared between the seeding loop and the test client loop.
    self.catalog_engine = create_async_engine(catalog_url, poolclass=NullPool)
    self.catalog_session_factory = sessionmaker(
        self.catalog_engine, expire_on_commit=False, class_=AsyncSession
    )
    self.transactions_engine = create_async_engine(
        transactions_url, poolclass=NullPool
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

    async def init_schemas() -> None:
      async with self.catalog_engine.begin() as conn:
        await conn.run_sync(db.CatalogBase.metadata.create_all)
      async with self.transactions_engine.begin() as conn:
        await conn.run_sync(db.TransactionBase.metadata.create_all)

    asyncio.run(init_schemas())

    async def override_get_catalog_db() -> AsyncGenerator[AsyncSession, None]:
      async with self.catalog_session_factory() as session:
        yield session

    async def override_get_transactions_db() -> (
        AsyncGenerator[AsyncSession, None]
    ):
      async with self.transactions_session_factory() as session:
        yield session

    self.psp_requests = []
    self.webhook_requests = []
    self.psp_status = 201
    transport = httpx.MockTransport(self._handle_outbound)

    app.dependency_overrides[dependencies.get_catalog_db] = (
        override_get_catalog_db
    )
    app.dependency_overrides[dependencies.get_transactions_db] = (
        override_get_transactions_db
    )
    app.dependency_overrides[dependencies.get_http_client_factory] = (
        lambda: functools.partial(httpx.AsyncClient, transport=transport)
    )

    self.client = TestClient(app)
    asyncio.run(self._async_seed())

  def tearDown(self) -> None:
    app.dependency_overrides.clear()

    async def dispose_engines() -> None:
      await self.catalog_engine.dispose()
      await self.transactions_engine.dispose()

    asyncio.run(dispose_engines())
    shutil.rmtree(self.test_dir)
    super().tearDown()

  async def _async_seed(self) -> None:
    async with self.catalog_session_factory() as session:
      session.add_all(import_csv.load_catalog(DATA_DIR))
      await session.commit()
    async with self.transactions_session_factory() as session:
      session.add(
          db.Channel(
              code="default",
              name="Default",
              base_currency_code="USD",
              default_locale_code="en_US",
          )
      )
      session.add(
          db.GatewayConfig(
              channel_code="default",
              config={
                  "bearer_token": BEARER_TOKEN,
                  "signature_secret": SIGNATURE_SECRET,
                  "payment_method_code": "acp",
                  "psp": {
                      "url": PSP_URL,
                      "merchant_secret_key": "sk_test",
                      "charge_endpoint": "/v1/charges",
                  },
                  "webhook": {"url": WEBHOOK_URL, "secret": WEBHOOK_SECRET},
              },
          )
      )
      await session.commit()

  def _handle_outbound(self, request: httpx.Request) -> httpx.Response:
    if str(request.url).startswith(PSP_URL):
      self.psp_requests.append(request)
      if self.psp_status != 201:
        return httpx.Response(
            self.psp_status, json={"message": "card_declined"}
        )
      charge = json.loads(request.content)
      return httpx.Response(
          201,
          json={
              "id": f"pi_{len(self.psp_requests)}",
              "status": "succeeded",
              "amount": charge["amount"],
              "currency": charge["currency"],
              "created": 1700000000,
          },
      )
    self.webhook_requests.append(request)
    return httpx.Response(200)

  def _headers(self, **extra: str) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {BEARER_TOKEN}",
        "API-Version": "2025-09-29",
        "Content-Type": "application/json",
    }
    headers.update(extra)
    return headers

  def _post(
      self,
      path: str,
      body: Optional[Dict[str, Any]] = None,
      headers: Optional[Dict[str, str]] = None,
  ) -> httpx.Response:
    content = json.dumps(body).encode("utf-8") if body is not None else b""
    return self.client.post(
        path, content=content, headers=headers or self._headers()
    )

  def _create(self, body=None, **headers) -> Dict[str, Any]:
    response = self._post(
        "/checkout_sessions", body or CREATE_BODY, self._headers(**headers)
    )
    self.assertEqual(response.status_code, 201, response.text)
    return response.json()

  def _make_ready(self) -> Dict[str, Any]:
    session_id = self._create()["id"]
    self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_address": US_ADDRESS},
    )
    response = self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_option_id": "standard"},
    )
    self.assertEqual(response.status_code, 200, response.text)
    return response.json()

  @staticmethod
  def _total(data: Dict[str, Any], total_type: str) -> Optional[int]:
    for total in data["totals"]:
      if total["type"] == total_type:
        return total["amount"]
    return None

  def test_full_checkout_flow(self):
    created = self._create()
    session_id = created["id"]
    self.assertTrue(session_id.startswith("acp_sess_"))
    self.assertEqual(created["status"], "not_ready_for_payment")
    self.assertEqual(created["currency"], "usd")
    self.assertLen(created["line_items"], 1)
    self.assertEqual(
        created["line_items"][0]["item"], {"id": "mug", "quantity": 2}
    )
    self.assertNotIn("buyer", created)
    self.assertEqual(
        [o["id"] for o in created["fulfillment_options"]],
        ["standard", "express", "international"],
    )

    response = self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_address": US_ADDRESS},
    )
    self.assertEqual(response.status_code, 200, response.text)
    addressed = response.json()
    self.assertEqual(addressed["status"], "not_ready_for_payment")
    self.assertEqual(
        addressed["fulfillment_address"],
        {
            "name": "Ada Lovelace",
            "line_one": "1 Main St",
            "line_two": "Apt 2",
            "city": "Springfield",
            "state": "US-CA",
            "country": "US",
            "postal_code": "94000",
        },
    )

    response = self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_option_id": "standard"},
    )
    ready = response.json()
    self.assertEqual(ready["status"], "ready_for_payment")
    self.assertEqual(ready["fulfillment_option_id"], "standard")
    self.assertEqual(self._total(ready, "tax"), 240)
    self.assertEqual(self._total(ready, "fulfillment"), 500)
    self.assertEqual(self._total(ready, "total"), 3740)

    response = self._post(
        f"/checkout_sessions/{session_id}/complete",
        {
            "payment_data": PAYMENT_DATA,
            "buyer": {
                "first_name": "Ada",
                "last_name": "Lovelace",
                "email": "ada@example.com",
            },
        },
    )
    self.assertEqual(response.status_code, 200, response.text)
    completed = response.json()
    self.assertEqual(completed["status"], "completed")
    self.assertEqual(completed["buyer"]["last_name"], "Lovelace")
    order = completed["order"]
    self.assertEqual(order["checkout_session_id"], session_id)
    self.assertEqual(order["id"], "000000001")
    self.assertTrue(order["permalink_url"].startswith("http"))

    self.assertLen(self.psp_requests, 1)
    charge = json.loads(self.psp_requests[0].content)
    self.assertEqual(charge["amount"], 3740)
    self.assertEqual(charge["shared_payment_token"], "spt_test_123")

    self.assertLen(self.webhook_requests, 1)
    webhook = self.webhook_requests[0]
    self.assertTrue(
        signatures.verify_hex(
            WEBHOOK_SECRET,
            webhook.content,
            webhook.headers["Merchant-Signature"],
        )
    )
    payload = json.loads(webhook.content)
    self.assertEqual(payload["type"], "order_create")
    self.assertEqual(payload["data"]["checkout_session_id"], session_id)
    self.assertEqual(payload["data"]["permalink_url"], order["permalink_url"])

    response = self.client.get(
        f"/checkout_sessions/{session_id}", headers=self._headers()
    )
    self.assertEqual(response.json()["status"], "completed")

    token = order["permalink_url"].rsplit("/", 1)[-1]
    response = self.client.get(f"/orders/{token}")
    self.assertEqual(response.status_code, 200, response.text)
    summary = response.json()
    self.assertEqual(summary["number"], "000000001")
    self.assertEqual(summary["state"], "new")
    self.assertEqual(summary["payment_state"], "paid")

  def test_unknown_order_token(self):
    response = self.client.get("/orders/missing")
    self.assertEqual(response.status_code, 404)
    self.assertEqual(response.json()["code"], "resource_not_found")

  def test_idempotent_create(self):
    first = self._create(**{"Idempotency-Key": "idem-1"})
    response = self._post(
        "/checkout_sessions",
        CREATE_BODY,
        self._headers(**{"Idempotency-Key": "idem-1"}),
    )
    self.assertEqual(response.status_code, 201)
    self.assertEqual(response.json(), first)
    self.assertEqual(response.headers["Idempotency-Key"], "idem-1")

    response = self._post(
        "/checkout_sessions",
        {"items": [{"id": "tote", "quantity": 1}]},
        self._headers(**{"Idempotency-Key": "idem-1"}),
    )
    self.assertEqual(response.status_code, 409)
    self.assertEqual(response.json()["code"], "idempotency_conflict")

    async def count_sessions() -> int:
      async with self.transactions_session_factory() as session:
        repository = stores.SqlCheckoutSessionRepository(session)
        return len(await repository.find_active())

    self.assertEqual(asyncio.run(count_sessions()), 1)

  def test_create_validation(self):
    response = self._post("/checkout_sessions", {"items": []})
    self.assertEqual(response.status_code, 400)
    self.assertEqual(
        response.json(),
        {
            "type": "invalid_request",
            "code": "missing_parameter",
            "message": "items is required",
            "param": "$.items",
        },
    )

    response = self.client.post(
        "/checkout_sessions", content=b"{not json", headers=self._headers()
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "invalid_json")

  def test_update_requires_body(self):
    session_id = self._create()["id"]
    for content in (b"", b"{}"):
      response = self.client.post(
          f"/checkout_sessions/{session_id}",
          content=content,
          headers=self._headers(),
      )
      self.assertEqual(response.status_code, 400, content)
      self.assertEqual(
          response.json(),
          {
              "type": "invalid_request",
              "code": "invalid_json",
              "message": "Request body is required",
          },
      )

    async def stored_version() -> int:
      async with self.transactions_session_factory() as session:
        repository = stores.SqlCheckoutSessionRepository(session)
        return (await repository.find_by_acp_id(session_id)).version

    self.assertEqual(asyncio.run(stored_version()), 1)

  def test_unknown_items_are_skipped(self):
    created = self._create(
        {
            "items": [
                {"id": "mug", "quantity": 1},
                {"id": "poster_retired", "quantity": 1},
                {"id": "nope", "quantity": 3},
                {"id": "tote", "quantity": 0},
            ]
        }
    )
    self.assertEqual(
        [li["item"]["id"] for li in created["line_items"]], ["mug"]
    )

  def test_authentication(self):
    response = self._post(
        "/checkout_sessions",
        CREATE_BODY,
        self._headers(Authorization="Bearer wrong"),
    )
    self.assertEqual(response.status_code, 401)
    self.assertEqual(response.json()["code"], "invalid_token")

    headers = self._headers()
    del headers["API-Version"]
    response = self._post("/checkout_sessions", CREATE_BODY, headers)
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "missing_api_version")

  def test_signed_request(self):
    body = json.dumps(CREATE_BODY).encode("utf-8")
    headers = self._headers(
        Signature=signatures.sign_base64url(SIGNATURE_SECRET, body),
        Timestamp=signatures.rfc3339_now(),
    )
    response = self.client.post(
        "/checkout_sessions", content=body, headers=headers
    )
    self.assertEqual(response.status_code, 201, response.text)

    headers["Signature"] = signatures.sign_base64url("wrong", body)
    response = self.client.post(
        "/checkout_sessions", content=body, headers=headers
    )
    self.assertEqual(response.status_code, 401)
    self.assertEqual(response.json()["code"], "signature_validation_failed")

  def test_request_id_is_echoed(self):
    response = self._post(
        "/checkout_sessions",
        CREATE_BODY,
        self._headers(**{"Request-Id": "req-42"}),
    )
    self.assertEqual(response.headers["Request-Id"], "req-42")

    response = self.client.get(
        "/checkout_sessions/acp_sess_missing",
        headers=self._headers(**{"Request-Id": "req-43"}),
    )
    self.assertEqual(response.status_code, 404)
    self.assertEqual(response.headers["Request-Id"], "req-43")

  def test_unavailable_fulfillment_option(self):
    session_id = self._create()["id"]
    self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_address": dict(US_ADDRESS, country="CA", state="")},
    )
    response = self._post(
        f"/checkout_sessions/{session_id}",
        {"fulfillment_option_id": "express"},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["param"], "$.fulfillment_option_id")

  def test_complete_requires_ready_session(self):
    session_id = self._create()["id"]
    response = self._post(
        f"/checkout_sessions/{session_id}/complete",
        {"payment_data": PAYMENT_DATA},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "session_not_ready")
    self.assertEmpty(self.psp_requests)

  def test_complete_requires_payment_data(self):
    session_id = self._make_ready()["id"]
    response = self._post(
        f"/checkout_sessions/{session_id}/complete",
        {"payment_data": {"provider": "stripe"}},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["param"], "$.payment_data.token")

  def test_declined_payment_can_be_retried(self):
    session_id = self._make_ready()["id"]
    self.psp_status = 402
    response = self._post(
        f"/checkout_sessions/{session_id}/complete",
        {"payment_data": PAYMENT_DATA},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "payment_failed")
    self.assertEqual(response.json()["type"], "api_error")

    response = self.client.get(
        f"/checkout_sessions/{session_id}", headers=self._headers()
    )
    self.assertEqual(response.json()["status"], "ready_for_payment")

    self.psp_status = 201
    response = self._post(
        f"/checkout_sessions/{session_id}/complete",
        {"payment_data": PAYMENT_DATA},
    )
    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json()["status"], "completed")
    self.assertLen(self.psp_requests, 2)

  def test_canceled_session_is_frozen(self):
    session_id = self._create()["id"]
    response = self._post(f"/checkout_sessions/{session_id}/cancel")
    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json()["status"], "canceled")

    for path, body in (
        (f"/checkout_sessions/{session_id}", {"items": []}),
        (f"/checkout_sessions/{session_id}/cancel", None),
        (
            f"/checkout_sessions/{session_id}/complete",
            {"payment_data": PAYMENT_DATA},
        ),
    ):
      response = self._post(path, body)
      self.assertEqual(response.status_code, 405, path)
      self.assertEqual(response.json()["code"], "method_not_allowed")

    async def canceled_sessions() -> int:
      async with self.transactions_session_factory() as session:
        repository = stores.SqlCheckoutSessionRepository(session)
        return len(await repository.find_by_status("canceled"))

    self.assertEqual(asyncio.run(canceled_sessions()), 1)

  def test_completed_session_cannot_be_canceled(self):
    session_id = self._make_ready()["id"]
    self._post(
        f"/checkout_sessions/{session_id}/complete",
        {"payment_data": PAYMENT_DATA},
    )
    response = self._post(f"/checkout_sessions/{session_id}/cancel")
    self.assertEqual(response.status_code, 405)


if __name__ == "__main__":
  absltest.main()
