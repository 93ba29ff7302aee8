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

This script seeds the configured SQLite databases from CSV files: the catalog
goes to the products DB; inventory, coupons, shipping rates and tax rates go to
the transactions DB. Each table is cleared before it is repopulated. Optional
files that are missing leave their table empty.

Usage:
  python import_csv.py --products_db_path=... --transactions_db_path=...
  --data_dir=...
"""

import asyncio
import csv
import logging
import os
from typing import Dict, Iterator, Optional
from absl import app as absl_app
from absl import flags
import db
from db import Discount
from db import Inventory
from db import Product
from db import ShippingRate
from db import TaxRate
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string("products_db_path", "products.db", "Path to products DB")
flags.DEFINE_string(
    "transactions_db_path", "transactions.db", "Path to transactions DB"
)
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing products.csv, inventory.csv and the optional"
    " discounts.csv, shipping_rates.csv and tax_rates.csv",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def read_rows(
    data_dir: str, filename: str, required: bool = False
) -> Iterator[Dict[str, str]]:
  """Yields the rows of a CSV file in `data_dir` as dictionaries."""
  path = os.path.join(data_dir, filename)
  if not os.path.exists(path):
    if required:
      raise FileNotFoundError(path)
    logger.info("%s not found, skipping", filename)
    return
  with open(path, "r", encoding="utf-8") as f:
    yield from csv.DictReader(f)


def _optional_int(value: Optional[str]) -> Optional[int]:
  return int(value) if value else None


async def import_csv_data(
    data_dir: str, products_db_path: str, transactions_db_path: str
) -> None:
  """Reads CSV files and populates the databases."""
  # Ensure tables exist
  await db.manager.init_dbs(products_db_path, transactions_db_path)

  try:
    async with db.manager.products_session_factory() as session:
      logger.info("Clearing existing products...")
      await session.execute(delete(Product))

      logger.info("Importing Products from CSV...")
      session.add_all(
          Product(
              id=row["id"],
              title=row["title"],
              price=int(row["price"]),
              category=row.get("category") or None,
              description=row.get("description") or None,
              image_url=row.get("image_url") or None,
          )
          for row in read_rows(data_dir, "products.csv", required=True)
      )
      await session.commit()

    async with db.manager.transactions_session_factory() as session:
      logger.info("Clearing existing inventory...")
      await session.execute(delete(Inventory))

      logger.info("Importing Inventory from CSV...")
      session.add_all(
          Inventory(product_id=row["product_id"], quantity=int(row["quantity"]))
          for row in read_rows(data_dir, "inventory.csv", required=True)
      )

      logger.info("Clearing existing discounts...")
      await session.execute(delete(Discount))

      logger.info("Importing Discounts from CSV...")
      session.add_all(
          Discount(
              code=row["code"],
              type=row["type"],
              value=int(row["value"]),
              description=row["description"],
              min_subtotal=_optional_int(row.get("min_subtotal")),
              expires_at=row.get("expires_at") or None,
          )
          for row in read_rows(data_dir, "discounts.csv")
      )

      logger.info("Clearing existing shipping rates...")
      await session.execute(delete(ShippingRate))

      logger.info("Importing Shipping Rates from CSV...")
      session.add_all(
          ShippingRate(
              id=row["id"],
              country_code=row["country_code"],
              service_level=row["service_level"],
              price=int(row["price"]),
              title=row["title"],
          )
          for row in read_rows(data_dir, "shipping_rates.csv")
      )

      logger.info("Clearing existing tax rates...")
      await session.execute(delete(TaxRate))

      logger.info("Importing Tax Rates from CSV...")
      session.add_all(
          TaxRate(
              id=row["id"],
              country_code=row["country_code"],
              rate_bps=int(row["rate_bps"]),
              title=row["title"],
          )
          for row in read_rows(data_dir, "tax_rates.csv")
      )
      await session.commit()

    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv) -> None:
  """Main entry point for the CSV import script."""
  del argv
  asyncio.run(
      import_csv_data(
          FLAGS.data_dir, FLAGS.products_db_path, FLAGS.transactions_db_path
      )
  )


if __name__ == "__main__":
  absl_app.run(main)
