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

"""Database initialization script for the checkout server.

This script imports catalog and channel data from CSV files (and the ACP
gateway configuration from JSON) into the configured SQLite databases. It
clears any existing rows of the imported tables before populating them.

Usage:
  acp-merchant-import-csv --catalog_db_path=... --transactions_db_path=...
  --data_dir=...
"""

import asyncio
import csv
import json
import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Sequence

from absl import app as absl_app
from absl import flags
from acp_merchant import config
from acp_merchant import db
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing the catalog CSV files and gateway_configs.json",
)

logger = logging.getLogger(__name__)


def _rows(data_dir: str, name: str) -> Iterator[Dict[str, str]]:
  path = os.path.join(data_dir, name)
  if not os.path.exists(path):
    logger.warning("Skipping missing %s", path)
    return
  with open(path, "r") as f:
    yield from csv.DictReader(f)


def _json(value: Optional[str], default: Any = None) -> Any:
  return json.loads(value) if value else default


def _int(value: Optional[str]) -> Optional[int]:
  return int(value) if value else None


def _bool(value: Optional[str]) -> bool:
  return (value or "true").strip().lower() in ("1", "true", "yes")


def load_catalog(data_dir: str) -> List[Any]:
  """Builds catalog rows from the CSV files in `data_dir`."""
  records: List[Any] = []
  for row in _rows(data_dir, "product_variants.csv"):
    records.append(
        db.ProductVariant(
            id=int(row["id"]),
            code=row["code"],
            name=row["name"],
            price=int(row["price"]),
            enabled=_bool(row.get("enabled")),
        )
    )
  for row in _rows(data_dir, "shipping_methods.csv"):
    records.append(
        db.ShippingMethod(
            id=int(row["id"]),
            code=row["code"],
            name=row["name"],
            description=row.get("description") or None,
            calculator=row.get("calculator") or None,
            configuration=_json(row.get("configuration"), {}),
            countries=_json(row.get("countries"), []),
            enabled=_bool(row.get("enabled")),
            position=_int(row.get("position")) or 0,
        )
    )
  for row in _rows(data_dir, "provinces.csv"):
    records.append(
        db.Province(
            code=row["code"],
            country_code=row["country_code"],
            name=row["name"],
        )
    )
  for row in _rows(data_dir, "promotions.csv"):
    records.append(
        db.Promotion(
            id=row["id"],
            type=row["type"],
            amount=_int(row.get("amount")),
            percentage=_int(row.get("percentage")),
            min_subtotal=_int(row.get("min_subtotal")),
            eligible_variant_codes=_json(row.get("eligible_variant_codes")),
            description=row.get("description", ""),
        )
    )
  for row in _rows(data_dir, "tax_rates.csv"):
    records.append(
        db.TaxRate(
            id=row["id"],
            country_code=row["country_code"],
            rate_bps=int(row["rate_bps"]),
            name=row["name"],
        )
    )
  return records


def load_transactions(data_dir: str) -> List[Any]:
  """Builds channel and gateway configuration rows."""
  records: List[Any] = []
  for row in _rows(data_dir, "channels.csv"):
    records.append(
        db.Channel(
            code=row["code"],
            name=row["name"],
            base_currency_code=row["base_currency_code"],
            default_locale_code=row["default_locale_code"],
        )
    )
  path = os.path.join(data_dir, "gateway_configs.json")
  if os.path.exists(path):
    with open(path, "r") as f:
      for channel_code, gateway_config in json.load(f).items():
        records.append(
            db.GatewayConfig(channel_code=channel_code, config=gateway_config)
        )
  return records


async def import_csv_data(
    catalog_path: str, transactions_path: str, data_dir: str
) -> None:
  """Reads the data files and populates the databases."""
  # Ensure tables exist
  await db.manager.init_dbs(catalog_path, transactions_path)

  try:
    async with db.manager.catalog_session_factory() as session:
      logger.info("Clearing existing catalog...")
      for model in (
          db.ProductVariant,
          db.ShippingMethod,
          db.Province,
          db.Promotion,
          db.TaxRate,
      ):
        await session.execute(delete(model))
      logger.info("Importing catalog from %s...", data_dir)
      session.add_all(load_catalog(data_dir))
      await session.commit()

    async with db.manager.transactions_session_factory() as session:
      logger.info("Clearing existing channels and gateway configs...")
      await session.execute(delete(db.GatewayConfig))
      await session.execute(delete(db.Channel))
      logger.info("Importing channels from %s...", data_dir)
      session.add_all(load_transactions(data_dir))
      await session.commit()

    logger.info("Database population complete.")
  finally:
    await db.manager.close()


def main(argv: Sequence[str]) -> None:
  del argv  # Unused.
  logging.basicConfig(level=logging.INFO)
  catalog_path, transactions_path = config.get_db_paths()
  asyncio.run(
      import_csv_data(
          catalog_path or "catalog.db",
          transactions_path or "transactions.db",
          FLAGS.data_dir,
      )
  )


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
