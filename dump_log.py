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

"""Utility script to dump request logs from the database.

This script reads and displays the request audit log stored in the
transactions DB: timestamp, method, URL and payload for each request. It can
optionally look up and display the status of the associated cart.

Usage:
  python dump_log.py --transactions_db_path=... [--show_cart]
"""

import asyncio
import json
import sys
from absl import app as absl_app
from absl import flags
from db import Cart
from db import RequestLog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
flags.DEFINE_bool("show_cart", False, "Show the status of the logged cart")


async def dump_logs():
  """Queries the database and prints request logs."""
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
      print("=== REQUEST LOGS ===")
      result = await session.execute(select(RequestLog).order_by(RequestLog.id))
      logs = result.scalars().all()

      if not logs:
        print("No request logs found.")
        return

      for log in logs:
        print(f"[{log.timestamp}] {log.method} {log.url}")
        if log.cart_handle:
          print(f"  Cart: {log.cart_handle}")

          if FLAGS.show_cart:
            cart = await session.get(Cart, log.cart_handle)
            if cart:
              print(f"  Cart Status: {cart.status} (order: {cart.order_id})")

        if log.payload:
          print(f"  Payload: {json.dumps(log.payload, indent=2)}")
        print("-" * 40)
  finally:
    await engine.dispose()


def main(argv):
  """Main entry point for the log dump script."""
  del argv
  asyncio.run(dump_logs())


if __name__ == "__main__":
  absl_app.run(main)
