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

"""Tests for the cart store adapter against a temporary SQLite backend."""

import asyncio
import os
import shutil
import tempfile
from unittest import mock

from absl.testing import absltest
import db
from enums import CheckoutStatus
from exceptions import BackendUnavailableError
from exceptions import OrderCreationFailedError
from exceptions import OutOfStockError
from exceptions import ProductNotFoundError
from exceptions import SessionNotFoundError
from services.cart_store import CartItem
from services.cart_store import CartStore
from services.fulfillment_service import FulfillmentService
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from token_codec import SessionIdentity


class CartStoreTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.products_engine = create_async_engine(
        f"sqlite+aiosqlite:///{os.path.join(self.test_dir, 'p.db')}",
        poolclass=NullPool,
    )
    self.transactions_engine = create_async_engine(
        f"sqlite+aiosqlite:///{os.path.join(self.test_dir, 't.db')}",
        poolclass=NullPool,
    )
    self.products_factory = sessionmaker(
        self.products_engine, expire_on_commit=False, class_=AsyncSession
    )
    self.transactions_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )
    asyncio.run(self._seed())

  def tearDown(self):
    async def dispose() -> None:
      await self.products_engine.dispose()
      await self.transactions_engine.dispose()

    asyncio.run(dispose())
    shutil.rmtree(self.test_dir)
    super().tearDown()

  async def _seed(self) -> None:
    async with self.products_engine.begin() as conn:
      await conn.run_sync(db.ProductBase.metadata.create_all)
    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(db.TransactionBase.metadata.create_all)

    async with self.products_factory() as session:
      session.add_all([
          db.Product(id="42", title="Red Rose Bouquet", price=2500),
          db.Product(id="43", title="Sunflower Bunch", price=1500),
      ])
      await session.commit()
    async with self.transactions_factory() as session:
      session.add_all([
          db.Inventory(product_id="42", quantity=3),
          db.Inventory(product_id="43", quantity=10),
          db.Discount(
              code="TAKE5",
              type="fixed_amount",
              value=500,
              description="$5 off orders over $30",
              min_subtotal=3000,
          ),
          db.Discount(
              code="BIG",
              type="fixed_amount",
              value=100000,
              description="More than any cart",
          ),
          db.Discount(
              code="HALF",
              type="percentage",
              value=50,
              description="Half off",
          ),
      ])
      await session.commit()

  def run_with_store(self, fn, **kwargs):
    """Runs `fn(store)` on a store with fresh sessions, then commits."""

    async def runner():
      async with self.products_factory() as products:
        async with self.transactions_factory() as transactions:
          store = CartStore(
              FulfillmentService(),
              products,
              transactions,
              payment_base_url="https://shop.example/",
              **kwargs,
          )
          result = await fn(store)
          await store.commit()
          return result

    return asyncio.run(runner())

  def test_new_cart_handle_format(self):
    handle = self.run_with_store(lambda store: store.start_or_resume())
    self.assertRegex(handle.cart_handle, r"^t_\d+_[0-9a-f]{16}$")
    self.assertEqual(handle.status, CheckoutStatus.CART)
    self.assertEqual(handle.currency, "USD")
    self.assertIsNone(handle.order_id)

  def test_resume_unknown_cart(self):
    with self.assertRaises(SessionNotFoundError):
      self.run_with_store(
          lambda store: store.start_or_resume(SessionIdentity(0, "t_0_x"))
      )

  def test_find_product(self):
    product = self.run_with_store(lambda store: store.find_product("42"))
    self.assertEqual(product.name, "Red Rose Bouquet")
    self.assertEqual(product.price, 2500)
    self.assertEqual(product.stock, 3)
    with self.assertRaises(ProductNotFoundError):
      self.run_with_store(lambda store: store.find_product("missing"))

  def test_coupon_codes_are_deduplicated(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 2)])
      rejected = await store.set_coupons(handle, ["take5", " TAKE5 ", ""])
      return handle, rejected

    handle, rejected = self.run_with_store(fn)
    self.assertEmpty(rejected)
    self.assertEqual(handle.coupons, ["TAKE5"])

  def test_fixed_discount_is_capped_at_subtotal(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("43", 1)])
      await store.set_coupons(handle, ["BIG"])
      return await store.compute_totals(handle)

    totals = self.run_with_store(fn)
    self.assertEqual(totals.subtotal, 1500)
    self.assertEqual(totals.discount_total, 1500)
    self.assertEqual(totals.total, 0)

  def test_coupons_apply_in_order_to_remaining_amount(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 2)])
      await store.set_coupons(handle, ["TAKE5", "HALF"])
      return await store.compute_totals(handle)

    totals = self.run_with_store(fn)
    # 5000 - 500 = 4500, then half of that.
    self.assertEqual(totals.discount_total, 500 + 2250)
    self.assertEqual(totals.lines[0].total, 5000)

  def test_coupon_stops_discounting_when_cart_no_longer_qualifies(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 2)])
      await store.set_coupons(handle, ["TAKE5"])
      before = await store.compute_totals(handle)
      await store.set_items(handle, [CartItem("42", 1)])
      after = await store.compute_totals(handle)
      return handle, before, after

    handle, before, after = self.run_with_store(fn)
    self.assertEqual(before.discount_total, 500)
    self.assertEqual(after.discount_total, 0)
    self.assertEqual(handle.coupons, ["TAKE5"])

  def test_set_items_validates_before_replacing(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("43", 1)])
      with self.assertRaises(OutOfStockError):
        await store.set_items(handle, [CartItem("42", 1), CartItem("42", 3)])
      return handle

    handle = self.run_with_store(fn)
    self.assertEqual(handle.items, [CartItem("43", 1)])

  def test_checkout_reserves_stock(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 2)])
      order = await store.checkout(handle)
      stock = await db.get_inventory(store.transactions_session, "42")
      return handle, order, stock

    handle, order, stock = self.run_with_store(fn)
    self.assertEqual(stock, 1)
    self.assertEqual(handle.order_id, order.order_id)
    self.assertEqual(handle.status, CheckoutStatus.REQUIRES_ESCALATION)
    self.assertEqual(
        order.payment_url,
        f"https://shop.example/checkout/order-pay/{order.order_id}/"
        f"?pay_for_order=true&key={order.order_key}",
    )
    self.assertEqual(order.total, 5000)

  def test_checkout_fails_when_stock_ran_out(self):
    async def fn(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 3)])
      await db.reserve_stock(store.transactions_session, "42", 1)
      with self.assertRaises(OutOfStockError) as ctx:
        await store.checkout(handle)
      return ctx.exception, handle

    error, handle = self.run_with_store(fn)
    self.assertEqual(error.status_code, 409)
    self.assertIsNone(handle.order_id)

  def test_order_keeps_totals_from_conversion(self):
    async def convert(store):
      handle = await store.start_or_resume()
      await store.set_items(handle, [CartItem("42", 2)])
      await store.set_coupons(handle, ["TAKE5"])
      await store.checkout(handle)
      return handle

    handle = self.run_with_store(convert)

    async def reprice() -> None:
      async with self.products_factory() as session:
        (await session.get(db.Product, "42")).price = 9900
        await session.commit()
      async with self.transactions_factory() as session:
        discount = await session.get(db.Discount, "TAKE5")
        discount.expires_at = "2020-01-01T00:00:00+00:00"
        await session.commit()

    asyncio.run(reprice())

    async def read(store):
      resumed = await store.start_or_resume(handle.identity)
      return await store.get_order_ref(resumed)

    order = self.run_with_store(read)
    self.assertEqual(order.total, 4500)
    self.assertEqual(order.totals.total, 4500)
    self.assertEqual(order.totals.subtotal, 5000)
    self.assertEqual(order.totals.discount_total, 500)
    self.assertEqual(order.totals.lines[0].unit_price, 2500)

  def test_failed_order_insert_leaves_cart_open(self):
    handle = self.run_with_store(lambda store: store.start_or_resume())

    async def add_items(store):
      resumed = await store.start_or_resume(handle.identity)
      await store.set_items(resumed, [CartItem("42", 2)])

    self.run_with_store(add_items)

    async def failing_create_order(*args, **kwargs):
      del args, kwargs  # Unused.
      raise sa_exc.IntegrityError("INSERT INTO orders", {}, Exception("dup"))

    async def convert(store):
      resumed = await store.start_or_resume(handle.identity)
      with self.assertRaises(OrderCreationFailedError) as ctx:
        await store.checkout(resumed)
      await store.rollback()
      return ctx.exception

    with mock.patch.object(db, "create_order", failing_create_order):
      error = self.run_with_store(convert)
    self.assertEqual(error.status_code, 500)
    self.assertEqual(error.code, "ORDER_CREATION_FAILED")

    async def reload(store):
      resumed = await store.start_or_resume(handle.identity)
      stock = await db.get_inventory(store.transactions_session, "42")
      return resumed, stock

    resumed, stock = self.run_with_store(reload)
    self.assertEqual(stock, 3)
    self.assertEqual(resumed.status, CheckoutStatus.CART)
    self.assertIsNone(resumed.order_id)
    self.assertEqual(resumed.items, [CartItem("42", 2)])

  def test_slow_rollback_is_reported_unavailable(self):
    async def slow_rollback():
      await asyncio.sleep(1)

    async def fn(store):
      with mock.patch.object(
          store.transactions_session, "rollback", slow_rollback
      ):
        with self.assertRaises(BackendUnavailableError):
          await store.rollback()

    self.run_with_store(fn, timeout_seconds=0.01)

  def test_slow_backend_is_reported_unavailable(self):
    async def slow_get_product(*args, **kwargs):
      del args, kwargs  # Unused.
      await asyncio.sleep(1)

    with mock.patch.object(db, "get_product", slow_get_product):
      with self.assertRaises(BackendUnavailableError):
        self.run_with_store(
            lambda store: store.find_product("42"), timeout_seconds=0.01
        )


if __name__ == "__main__":
  absltest.main()
