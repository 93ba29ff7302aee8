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

"""Database management and persistence layer for the checkout server.

This module is the commerce engine behind the checkout protocol: schema
definitions, database session management and asynchronous data access helpers.
It utilizes SQLAlchemy with SQLite (via aiosqlite) and implements a
multi-database architecture separating product catalog data from transactional
cart and order data.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- WAL Mode: Automatically enables SQLite Write-Ahead Logging so concurrent
  requests can read while a cart is being written.
- Declarative Models: Defines tables for products, inventory, carts, orders,
  coupons, shipping and tax rates, and request logging.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations on
  the database models.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence

from sqlalchemy import Column
from sqlalchemy import func
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import or_
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(self, products_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    # Products DB Setup
    prod_url = f"sqlite+aiosqlite:///{products_path}"
    self.products_engine = create_async_engine(prod_url, echo=False)

    # Enable WAL mode for Products DB
    async with self.products_engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.products_session_factory = sessionmaker(
        self.products_engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.products_engine.begin() as conn:
      await conn.run_sync(ProductBase.metadata.create_all)

    # Transactions DB Setup (includes Inventory)
    trans_url = f"sqlite+aiosqlite:///{transactions_path}"
    self.transactions_engine = create_async_engine(trans_url, echo=False)

    # Enable WAL mode for Transactions DB
    async with self.transactions_engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(TransactionBase.metadata.create_all)

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  title = Column(String)
  price = Column(Integer)  # Price in minor units
  category = Column(String, nullable=True)
  description = Column(String, nullable=True)
  image_url = Column(String, nullable=True)


class Inventory(TransactionBase):
  __tablename__ = "inventory"

  product_id = Column(String, primary_key=True)
  quantity = Column(Integer, default=0)


class Cart(TransactionBase):
  __tablename__ = "carts"

  handle = Column(String, primary_key=True)
  status = Column(String)
  currency = Column(String)
  order_id = Column(Integer, nullable=True)
  # {"items": [...], "coupons": [...], "shipping_address": {...}}
  data = Column(JSON)
  created_at = Column(String)
  updated_at = Column(String)
  expires_at = Column(String)


class Order(TransactionBase):
  __tablename__ = "orders"

  id = Column(Integer, primary_key=True, autoincrement=True)
  cart_handle = Column(String, index=True)
  order_key = Column(String)
  status = Column(String)
  currency = Column(String)
  total = Column(Integer)  # In minor units
  data = Column(JSON)
  created_at = Column(String)


class RequestLog(TransactionBase):
  __tablename__ = "request_logs"

  id = Column(Integer, primary_key=True, autoincrement=True)
  timestamp = Column(String)
  method = Column(String)
  url = Column(String)
  cart_handle = Column(String, nullable=True)
  payload = Column(JSON, nullable=True)


class Discount(TransactionBase):
  __tablename__ = "discounts"

  code = Column(String, primary_key=True)
  type = Column(String)  # 'percentage', 'fixed_amount' or 'free_shipping'
  value = Column(Integer)  # Percentage (e.g., 10) or amount in minor units
  description = Column(String)
  min_subtotal = Column(Integer, nullable=True)  # In minor units
  expires_at = Column(String, nullable=True)  # ISO 8601


class ShippingRate(TransactionBase):
  __tablename__ = "shipping_rates"

  id = Column(String, primary_key=True)
  country_code = Column(String)  # e.g., 'US', 'default'
  service_level = Column(String)  # e.g., 'standard', 'express'
  price = Column(Integer)  # In minor units
  title = Column(String)


class TaxRate(TransactionBase):
  __tablename__ = "tax_rates"

  id = Column(String, primary_key=True)
  country_code = Column(String)  # e.g., 'US', 'default'
  rate_bps = Column(Integer)  # Basis points, 825 == 8.25%
  title = Column(String)


def utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.timezone.utc)


# --- Data Access Helpers ---


async def get_product(
    session: AsyncSession, product_id: str
) -> Optional[Product]:
  """Retrieves a product by ID."""
  return await session.get(Product, product_id)


async def get_products(
    session: AsyncSession, product_ids: Sequence[str]
) -> Dict[str, Product]:
  """Retrieves several products in one query, keyed by product ID."""
  if not product_ids:
    return {}
  result = await session.execute(
      select(Product).where(Product.id.in_(list(product_ids)))
  )
  return {p.id: p for p in result.scalars().all()}


async def search_products(
    session: AsyncSession, terms: Sequence[str], limit: int = 10
) -> List[Product]:
  """Finds products whose title or category contains any of the terms.

  Args:
    session: The database session to use.
    terms: Lower-case search terms; an empty sequence lists the catalog.
    limit: Maximum number of products returned.

  Returns:
    Matching products ordered by title.
  """
  stmt = select(Product)
  if terms:
    conditions = []
    for term in terms:
      pattern = f"%{term}%"
      conditions.append(func.lower(Product.title).like(pattern))
      conditions.append(func.lower(Product.category).like(pattern))
    stmt = stmt.where(or_(*conditions))
  result = await session.execute(stmt.order_by(Product.title).limit(limit))
  return list(result.scalars().all())


async def get_inventory(
    session: AsyncSession, product_id: str
) -> Optional[int]:
  """Retrieves the inventory quantity for a product."""
  result = await session.execute(
      select(Inventory.quantity).where(Inventory.product_id == product_id)
  )
  return result.scalar_one_or_none()


async def get_inventories(
    session: AsyncSession, product_ids: Sequence[str]
) -> Dict[str, int]:
  """Retrieves inventory quantities for several products."""
  if not product_ids:
    return {}
  result = await session.execute(
      select(Inventory.product_id, Inventory.quantity).where(
          Inventory.product_id.in_(list(product_ids))
      )
  )
  return {row.product_id: row.quantity for row in result}


async def reserve_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> bool:
  """Atomically decrements inventory if sufficient stock exists."""
  stmt = (
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .where(Inventory.quantity >= quantity)
      .values(quantity=Inventory.quantity - quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_discounts_by_codes(
    session: AsyncSession, codes: Sequence[str]
) -> Dict[str, Discount]:
  """Retrieves discounts by code in a single query.

  Codes are matched case-insensitively.

  Args:
    session: The database session to use.
    codes: The discount codes to look up.

  Returns:
    A dict mapping the lower-cased code to its Discount.
  """
  if not codes:
    return {}
  lowered = sorted({c.lower() for c in codes})
  result = await session.execute(
      select(Discount).where(func.lower(Discount.code).in_(lowered))
  )
  return {d.code.lower(): d for d in result.scalars().all()}


async def get_shipping_rates(
    session: AsyncSession, country_code: str
) -> List[ShippingRate]:
  """Retrieves shipping rates for a specific country and default rates.

  Args:
    session: The database session to use.
    country_code: The ISO country code (e.g., 'US') to fetch rates for.

  Returns:
    A list of ShippingRate objects matching the country or 'default'.
  """
  result = await session.execute(
      select(ShippingRate).where(
          ShippingRate.country_code.in_([country_code, "default"])
      )
  )
  return list(result.scalars().all())


async def get_tax_rates(
    session: AsyncSession, country_code: str
) -> List[TaxRate]:
  """Retrieves tax rates for a specific country and default rates."""
  result = await session.execute(
      select(TaxRate).where(TaxRate.country_code.in_([country_code, "default"]))
  )
  return list(result.scalars().all())


async def create_cart(
    session: AsyncSession,
    handle: str,
    status: str,
    currency: str,
    expires_at: datetime.datetime,
) -> Cart:
  """Adds a new, empty cart to the session."""
  now = utcnow().isoformat()
  cart = Cart(
      handle=handle,
      status=status,
      currency=currency,
      order_id=None,
      data={"items": [], "coupons": [], "shipping_address": {}},
      created_at=now,
      updated_at=now,
      expires_at=expires_at.isoformat(),
  )
  session.add(cart)
  await session.flush()
  return cart


async def get_cart(session: AsyncSession, handle: str) -> Optional[Cart]:
  """Retrieves a cart by its handle."""
  return await session.get(Cart, handle)


async def save_cart(
    session: AsyncSession,
    handle: str,
    status: str,
    cart_data: Dict[str, Any],
    expires_at: Optional[datetime.datetime] = None,
    order_id: Optional[int] = None,
) -> None:
  """Writes the mutable state of an existing cart."""
  cart = await session.get(Cart, handle)
  if cart is None:
    raise LookupError(f"Cart {handle} does not exist")
  cart.status = status
  # JSON columns only register changes on reassignment.
  cart.data = dict(cart_data)
  cart.updated_at = utcnow().isoformat()
  if expires_at is not None:
    cart.expires_at = expires_at.isoformat()
  if order_id is not None:
    cart.order_id = order_id


async def create_order(
    session: AsyncSession,
    cart_handle: str,
    order_key: str,
    status: str,
    currency: str,
    total: int,
    order_data: Dict[str, Any],
) -> Order:
  """Persists a new order and returns it with its assigned ID."""
  order = Order(
      cart_handle=cart_handle,
      order_key=order_key,
      status=status,
      currency=currency,
      total=total,
      data=order_data,
      created_at=utcnow().isoformat(),
  )
  session.add(order)
  await session.flush()
  return order


async def get_order(session: AsyncSession, order_id: int) -> Optional[Order]:
  """Retrieves an order by ID."""
  return await session.get(Order, order_id)


async def log_request(
    session: AsyncSession,
    method: str,
    url: str,
    cart_handle: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
  """Logs an HTTP request to the database."""
  log_entry = RequestLog(
      timestamp=utcnow().isoformat(),
      method=method,
      url=url,
      cart_handle=cart_handle,
      payload=payload,
  )
  session.add(log_entry)
