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

"""Utility script to dump carts and orders.

This script reads from the configured transactions SQLite database and prints
every stored cart with its status, items and coupons, followed by the orders
that carts were converted into. It is useful for debugging and verifying the
state of the server.

Usage:
  python dump_transactions.py --transactions_db_path=...
"""

import asyncio
import sys
from absl import app as absl_app
from absl import flags
from db import Cart
from db import Order
from services.formatter import to_major_units
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")


def print_cart(cart: Cart) -> None:
  data = cart.data or {}
  print(f"Cart: {cart.handle} [{cart.status}] expires {cart.expires_at}")
  if cart.order_id is not None:
    print(f"  Converted to order {cart.order_id}")
  items = data.get("items", [])
  if items:
    for item in items:
      print(f"  - Product {item['product_id']} x{item['quantity']}")
  else:
    print("  (No items)")
  if data.get("coupons"):
    print(f"  Coupons: {', '.join(data['coupons'])}")


def print_order(order: Order) -> None:
  total = to_major_units(order.total, order.currency)
  print(
      f"Order: {order.id} [{order.status}] cart {order.cart_handle}"
      f" total {total:.2f} {order.currency}"
  )
  for line in (order.data or {}).get("line_items", []):
    line_total = to_major_units(line["total"], order.currency)
    print(
        f"  - {line['name']} (ID: {line['id']}) x{line['quantity']} ="
        f" {line_total:.2f}"
    )


async def dump_transactions():
  """Queries the database and prints all carts and orders."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  db_url = f"sqlite+aiosqlite:///{FLAGS.transactions_db_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  try:
    async with session_factory() as session:
      carts = (
          await session.execute(select(Cart).order_by(Cart.created_at))
      ).scalars().all()
      if not carts:
        print("No carts found.")
      for cart in carts:
        print_cart(cart)
        print("-" * 60)

      orders = (
          await session.execute(select(Order).order_by(Order.id))
      ).scalars().all()
      if not orders:
        print("No orders found.")
      for order in orders:
        print_order(order)
        print("-" * 60)
  finally:
    await engine.dispose()


def main(argv):
  """Main entry point for the transaction dump script."""
  del argv
  asyncio.run(dump_transactions())


if __name__ == "__main__":
  absl_app.run(main)
