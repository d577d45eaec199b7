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

"""Tests for the catalog and channel import tool."""

import asyncio
import os
import shutil
import tempfile

from absl.testing import absltest
from acp_merchant import db
from acp_merchant import import_csv
from acp_merchant.services import stores

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


class LoadTest(absltest.TestCase):

  def test_bundled_catalog(self):
    records = import_csv.load_catalog(DATA_DIR)
    variants = {r.code: r for r in records if isinstance(r, db.ProductVariant)}
    self.assertEqual(variants["mug"].price, 1500)
    self.assertFalse(variants["poster_retired"].enabled)

    methods = {r.code: r for r in records if isinstance(r, db.ShippingMethod)}
    self.assertEqual(methods["standard"].configuration, {"amount": 500})
    self.assertEqual(methods["standard"].countries, ["US", "CA"])
    self.assertEqual(methods["international"].countries, [])
    self.assertIsNone(methods["international"].description)

    promotions = {r.id: r for r in records if isinstance(r, db.Promotion)}
    self.assertEqual(promotions["tote_sale"].eligible_variant_codes, ["tote"])
    self.assertIsNone(promotions["free_shipping_100"].eligible_variant_codes)
    self.assertEqual(promotions["free_shipping_100"].min_subtotal, 10000)

  def test_missing_files_are_skipped(self):
    empty_dir = tempfile.mkdtemp()
    self.addCleanup(shutil.rmtree, empty_dir)
    self.assertEqual(import_csv.load_catalog(empty_dir), [])
    self.assertEqual(import_csv.load_transactions(empty_dir), [])

  def test_bool_defaults_to_true(self):
    self.assertTrue(import_csv._bool(None))
    self.assertTrue(import_csv._bool("Yes"))
    self.assertFalse(import_csv._bool("false"))


class ImportTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.catalog_path = os.path.join(self.test_dir, "catalog.db")
    self.transactions_path = os.path.join(self.test_dir, "transactions.db")

  def tearDown(self):
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _import(self):
    asyncio.run(
        import_csv.import_csv_data(
            self.catalog_path, self.transactions_path, DATA_DIR
        )
    )

  async def _read_back(self):
    manager = db.DatabaseManager()
    await manager.init_dbs(self.catalog_path, self.transactions_path)
    try:
      async with manager.catalog_session_factory() as session:
        methods = await db.get_shipping_methods(session)
        tax_rates = await db.get_tax_rates(session)
        mug = await stores.SqlCatalog(session).find_variant_by_code("mug")
        retired = await stores.SqlCatalog(session).find_variant_by_code(
            "poster_retired"
        )
      async with manager.transactions_session_factory() as session:
        provider = stores.SqlGatewayConfigProvider(session)
        channel = await provider.get_channel("default")
        gateway_config = await provider.get("default")
    finally:
      await manager.close()
    return methods, tax_rates, mug, retired, channel, gateway_config

  def test_import_is_repeatable(self):
    self._import()
    # A second run replaces the rows instead of duplicating them.
    self._import()

    methods, tax_rates, mug, retired, channel, gateway_config = asyncio.run(
        self._read_back()
    )
    self.assertLen(methods, 3)
    self.assertEqual(tax_rates, {"US": 800, "CA": 500})
    self.assertEqual(mug["price"], 1500)
    self.assertIsNone(retired)
    self.assertEqual(channel.base_currency_code, "USD")
    self.assertEqual(gateway_config.payment_method_code, "acp")
    self.assertEqual(gateway_config.psp.charge_endpoint,
                     "/v1/delegated_payment/charges")
    self.assertIsNone(gateway_config.webhook.url)


if __name__ == "__main__":
  absltest.main()
