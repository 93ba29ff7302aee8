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

"""Session store adapter over the commerce backend.

`CartStore` is the only component that reads or writes cart and order state.
Every call takes an explicit `SessionHandle`, the in-memory view of one cart
rehydrated from the backend at the start of a request, and writes changes back
through the transactions session. Committing or rolling back is left to the
caller so a whole protocol operation is applied atomically.

Amounts are integers in the minor unit of the cart's currency.

Every public coroutine is bounded by the configured backend timeout. Timeouts
and connection-level database failures surface as `BackendUnavailableError`
and are never retried here.
"""

import asyncio
import dataclasses
import datetime
from decimal import Decimal
from decimal import ROUND_HALF_UP
import functools
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple
import uuid

import db
from enums import CheckoutStatus
from enums import DiscountType
from enums import OrderStatus
from exceptions import AlreadyCompletedError
from exceptions import BackendUnavailableError
from exceptions import CouponRejectedError
from exceptions import EmptyCartError
from exceptions import OrderCreationFailedError
from exceptions import OutOfStockError
from exceptions import ProductNotFoundError
from exceptions import SessionNotFoundError
from services.fulfillment_service import FulfillmentService
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession
from token_codec import SessionIdentity

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError)


@dataclasses.dataclass
class CartItem:
  product_id: str
  quantity: int


@dataclasses.dataclass
class SessionHandle:
  """Explicit handle on one backend cart for the duration of a request."""

  cart_handle: str
  status: CheckoutStatus
  currency: str
  items: List[CartItem] = dataclasses.field(default_factory=list)
  coupons: List[str] = dataclasses.field(default_factory=list)
  shipping_address: Dict[str, str] = dataclasses.field(default_factory=dict)
  order_id: Optional[int] = None

  @property
  def identity(self) -> SessionIdentity:
    return SessionIdentity(
        order_id=self.order_id or 0, cart_handle=self.cart_handle
    )

  @property
  def is_converted(self) -> bool:
    return self.order_id is not None

  def to_data(self) -> Dict[str, Any]:
    return {
        "items": [
            {"product_id": i.product_id, "quantity": i.quantity}
            for i in self.items
        ],
        "coupons": list(self.coupons),
        "shipping_address": dict(self.shipping_address),
    }

  @classmethod
  def from_row(cls, cart: db.Cart) -> "SessionHandle":
    data = cart.data or {}
    return cls(
        cart_handle=cart.handle,
        status=CheckoutStatus(cart.status),
        currency=cart.currency,
        items=[
            CartItem(product_id=i["product_id"], quantity=i["quantity"])
            for i in data.get("items", [])
        ],
        coupons=list(data.get("coupons", [])),
        shipping_address=dict(data.get("shipping_address") or {}),
        order_id=cart.order_id,
    )


@dataclasses.dataclass(frozen=True)
class ProductInfo:
  id: str
  name: str
  price: int
  stock: int


@dataclasses.dataclass(frozen=True)
class LineTotal:
  product_id: str
  name: str
  quantity: int
  unit_price: int
  total: int


@dataclasses.dataclass(frozen=True)
class CartTotals:
  lines: Tuple[LineTotal, ...]
  subtotal: int
  discount_total: int
  shipping_total: int
  tax_total: int
  total: int


@dataclasses.dataclass(frozen=True)
class OrderRef:
  order_id: int
  order_key: str
  status: OrderStatus
  payment_url: str
  total: int
  totals: Optional[CartTotals] = None


def _totals_from_order(order: db.Order) -> CartTotals:
  """Rebuilds the totals snapshotted on an order when it was created."""
  data = order.data or {}
  amounts = data.get("totals", {})
  return CartTotals(
      lines=tuple(
          LineTotal(
              product_id=line["id"],
              name=line["name"],
              quantity=line["quantity"],
              unit_price=line["unit_price"],
              total=line["total"],
          )
          for line in data.get("line_items", [])
      ),
      subtotal=amounts.get("subtotal", 0),
      discount_total=amounts.get("discount_total", 0),
      shipping_total=amounts.get("shipping_total", 0),
      tax_total=amounts.get("tax_total", 0),
      total=order.total,
  )


def new_cart_handle() -> str:
  """Returns a fresh cart handle, t_{unix time}_{random}."""
  return f"t_{int(time.time())}_{uuid.uuid4().hex[:16]}"


def merge_items(items: Sequence[CartItem]) -> List[CartItem]:
  """Folds repeated products into one line, keeping first-seen order."""
  merged: Dict[str, CartItem] = {}
  for item in items:
    if item.product_id in merged:
      merged[item.product_id].quantity += item.quantity
    else:
      merged[item.product_id] = CartItem(item.product_id, item.quantity)
  return list(merged.values())


def _backend_call(method):
  """Bounds a backend coroutine by the store timeout."""

  @functools.wraps(method)
  async def wrapper(self, *args, **kwargs):
    try:
      return await asyncio.wait_for(
          method(self, *args, **kwargs), timeout=self.timeout_seconds
      )
    except asyncio.TimeoutError:
      logger.error(
          "Backend call %s timed out after %ss",
          method.__name__,
          self.timeout_seconds,
      )
      raise BackendUnavailableError(
          f"Commerce backend timed out during {method.__name__}"
      ) from None
    except _CONNECTION_ERRORS as e:
      logger.error("Backend call %s failed: %s", method.__name__, e)
      raise BackendUnavailableError() from e

  return wrapper


class CartStore:
  """Adapter owning all reads and writes of carts and orders."""

  def __init__(
      self,
      fulfillment_service: FulfillmentService,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      currency: str = "USD",
      session_ttl: datetime.timedelta = datetime.timedelta(hours=48),
      timeout_seconds: float = 10.0,
      payment_base_url: str = "",
  ):
    self.fulfillment_service = fulfillment_service
    self.products_session = products_session
    self.transactions_session = transactions_session
    self.currency = currency.upper()
    self.session_ttl = session_ttl
    self.timeout_seconds = timeout_seconds
    self.payment_base_url = payment_base_url.rstrip("/")

  # --- Session lifecycle ---

  @_backend_call
  async def start_or_resume(
      self, identity: Optional[SessionIdentity] = None
  ) -> SessionHandle:
    """Provisions a new cart, or rehydrates the one `identity` points at.

    Args:
      identity: The decoded token, or None to start a new session.

    Returns:
      The SessionHandle for the cart.

    Raises:
      SessionNotFoundError: If the backend holds no live cart for identity.
    """
    if identity is None:
      handle = new_cart_handle()
      cart = await db.create_cart(
          self.transactions_session,
          handle,
          CheckoutStatus.CART.value,
          self.currency,
          db.utcnow() + self.session_ttl,
      )
      logger.info("Provisioned cart %s", handle)
      return SessionHandle.from_row(cart)

    cart = await db.get_cart(self.transactions_session, identity.cart_handle)
    if cart is None:
      raise SessionNotFoundError()
    if identity.order_id and identity.order_id != cart.order_id:
      raise SessionNotFoundError()
    if cart.order_id is None and self._is_expired(cart):
      logger.info("Cart %s has expired", cart.handle)
      raise SessionNotFoundError("Checkout session has expired")
    return SessionHandle.from_row(cart)

  def _is_expired(self, cart: db.Cart) -> bool:
    if not cart.expires_at:
      return False
    return datetime.datetime.fromisoformat(cart.expires_at) <= db.utcnow()

  async def _persist(self, handle: SessionHandle) -> None:
    expires_at = None
    if not handle.is_converted:
      expires_at = db.utcnow() + self.session_ttl
    await db.save_cart(
        self.transactions_session,
        handle.cart_handle,
        handle.status.value,
        handle.to_data(),
        expires_at=expires_at,
        order_id=handle.order_id,
    )

  async def commit(self) -> None:
    try:
      await asyncio.wait_for(
          self.transactions_session.commit(), timeout=self.timeout_seconds
      )
    except asyncio.TimeoutError:
      raise BackendUnavailableError("Commerce backend timed out") from None
    except _CONNECTION_ERRORS as e:
      raise BackendUnavailableError() from e

  async def rollback(self) -> None:
    try:
      await asyncio.wait_for(
          self.transactions_session.rollback(), timeout=self.timeout_seconds
      )
    except asyncio.TimeoutError:
      raise BackendUnavailableError("Commerce backend timed out") from None
    except _CONNECTION_ERRORS as e:
      raise BackendUnavailableError() from e

  # --- Catalog ---

  @_backend_call
  async def find_product(self, product_id: str) -> ProductInfo:
    """Looks up a product with its current stock level."""
    product = await db.get_product(self.products_session, product_id)
    if product is None:
      raise ProductNotFoundError(product_id)
    stock = await db.get_inventory(self.transactions_session, product_id)
    return ProductInfo(
        id=product.id, name=product.title, price=product.price, stock=stock or 0
    )

  # --- Mutations ---

  @_backend_call
  async def set_items(
      self, handle: SessionHandle, items: Sequence[CartItem]
  ) -> None:
    """Replaces the cart contents with `items`.

    Every item is validated before the cart is touched, so a failure leaves
    the previous contents in place.

    Raises:
      ProductNotFoundError: For the first unknown product id.
      OutOfStockError: If a requested quantity exceeds available stock.
    """
    merged = merge_items(items)
    product_ids = [i.product_id for i in merged]
    products = await db.get_products(self.products_session, product_ids)
    for item in merged:
      if item.product_id not in products:
        raise ProductNotFoundError(item.product_id)

    stock = await db.get_inventories(self.transactions_session, product_ids)
    for item in merged:
      available = stock.get(item.product_id)
      if available is None or available < item.quantity:
        raise OutOfStockError(f"Insufficient stock for item {item.product_id}")

    handle.items = merged
    await self._persist(handle)

  @_backend_call
  async def set_coupons(
      self, handle: SessionHandle, codes: Sequence[str]
  ) -> List[CouponRejectedError]:
    """Removes all applied coupons, then applies `codes` in order.

    Application is best effort: a rejected code is reported and the remaining
    codes are still applied.

    Returns:
      The rejection for every code that could not be applied.
    """
    unique_codes = []
    seen = set()
    for code in codes:
      code = code.strip()
      if code and code.lower() not in seen:
        seen.add(code.lower())
        unique_codes.append(code)

    handle.coupons = []
    discounts = await db.get_discounts_by_codes(
        self.transactions_session, unique_codes
    )
    subtotal = await self._subtotal(handle)
    now = db.utcnow()

    rejected = []
    for code in unique_codes:
      discount = discounts.get(code.lower())
      reason = self._coupon_rejection(discount, subtotal, now)
      if reason:
        logger.info(
            "Coupon %s rejected for %s: %s", code, handle.cart_handle, reason
        )
        rejected.append(CouponRejectedError(code, reason))
        continue
      handle.coupons.append(discount.code)

    await self._persist(handle)
    return rejected

  @_backend_call
  async def set_shipping_address(
      self, handle: SessionHandle, address: Dict[str, str]
  ) -> None:
    """Merges the supplied address fields into the cart's address."""
    merged = dict(handle.shipping_address)
    for key, value in address.items():
      if value is None:
        continue
      merged[key] = value.upper() if key == "country" else value
    handle.shipping_address = merged
    await self._persist(handle)

  # --- Totals ---

  @_backend_call
  async def compute_totals(self, handle: SessionHandle) -> CartTotals:
    """Derives line, shipping, tax and discount totals for the cart.

    The computation only reads from the backend and can be repeated freely.
    """
    return await self._compute_totals(handle)

  async def _subtotal(self, handle: SessionHandle) -> int:
    products = await db.get_products(
        self.products_session, [i.product_id for i in handle.items]
    )
    return sum(
        products[i.product_id].price * i.quantity
        for i in handle.items
        if i.product_id in products
    )

  def _coupon_rejection(
      self,
      discount: Optional[db.Discount],
      subtotal: int,
      now: datetime.datetime,
  ) -> Optional[str]:
    if discount is None:
      return "unknown coupon code"
    if discount.expires_at:
      if datetime.datetime.fromisoformat(discount.expires_at) <= now:
        return "coupon has expired"
    if discount.min_subtotal and subtotal < discount.min_subtotal:
      return "minimum order subtotal not met"
    return None

  async def _compute_totals(self, handle: SessionHandle) -> CartTotals:
    products = await db.get_products(
        self.products_session, [i.product_id for i in handle.items]
    )

    lines = []
    subtotal = 0
    for item in handle.items:
      product = products.get(item.product_id)
      if product is None:
        raise ProductNotFoundError(item.product_id)
      line_total = product.price * item.quantity
      lines.append(
          LineTotal(
              product_id=product.id,
              name=product.title,
              quantity=item.quantity,
              unit_price=product.price,
              total=line_total,
          )
      )
      subtotal += line_total

    discounts = await db.get_discounts_by_codes(
        self.transactions_session, handle.coupons
    )
    now = db.utcnow()
    remaining = subtotal
    discount_total = 0
    free_shipping = False
    for code in handle.coupons:
      discount = discounts.get(code.lower())
      # Coupons that no longer qualify stay listed but stop discounting.
      if self._coupon_rejection(discount, subtotal, now):
        continue
      amount = 0
      if discount.type == DiscountType.PERCENTAGE.value:
        amount = int(
            (Decimal(remaining) * discount.value / 100).quantize(
                Decimal(1), rounding=ROUND_HALF_UP
            )
        )
      elif discount.type == DiscountType.FIXED_AMOUNT.value:
        amount = discount.value
      elif discount.type == DiscountType.FREE_SHIPPING.value:
        free_shipping = True
      amount = max(0, min(amount, remaining))
      remaining -= amount
      discount_total += amount

    country = handle.shipping_address.get("country")
    shipping_total = 0
    if lines:
      shipping_total = await self.fulfillment_service.shipping_total(
          self.transactions_session, country, free_shipping=free_shipping
      )

    rate_bps = await self.fulfillment_service.tax_rate_bps(
        self.transactions_session, country
    )
    tax_total = int(
        (Decimal(subtotal - discount_total) * rate_bps / 10000).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
    )

    return CartTotals(
        lines=tuple(lines),
        subtotal=subtotal,
        discount_total=discount_total,
        shipping_total=shipping_total,
        tax_total=tax_total,
        total=subtotal - discount_total + shipping_total + tax_total,
    )

  # --- Conversion ---

  def payment_url(self, order_id: int, order_key: str) -> str:
    return (
        f"{self.payment_base_url}/checkout/order-pay/{order_id}/"
        f"?pay_for_order=true&key={order_key}"
    )

  @_backend_call
  async def checkout(self, handle: SessionHandle) -> OrderRef:
    """Converts the cart into an order awaiting payment.

    Raises:
      AlreadyCompletedError: If the cart was already converted.
      EmptyCartError: If the cart has no items. No order is created.
      OutOfStockError: If stock cannot be reserved for an item.
      OrderCreationFailedError: If the order cannot be persisted.
    """
    if handle.is_converted:
      raise AlreadyCompletedError(
          f"Checkout was already completed as order {handle.order_id}"
      )
    if not handle.items:
      raise EmptyCartError(
          "Cart is empty. Session may have expired or not persisted."
      )

    totals = await self._compute_totals(handle)

    for line in totals.lines:
      if not await db.reserve_stock(
          self.transactions_session, line.product_id, line.quantity
      ):
        raise OutOfStockError(
            f"Item {line.product_id} is out of stock", status_code=409
        )

    order_key = f"wc_order_{uuid.uuid4().hex[:13]}"
    order_data = {
        "line_items": [
            {
                "id": line.product_id,
                "name": line.name,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "total": line.total,
            }
            for line in totals.lines
        ],
        "coupons": list(handle.coupons),
        "shipping_address": dict(handle.shipping_address),
        "totals": {
            "subtotal": totals.subtotal,
            "discount_total": totals.discount_total,
            "shipping_total": totals.shipping_total,
            "tax_total": totals.tax_total,
            "total": totals.total,
        },
    }
    try:
      order = await db.create_order(
          self.transactions_session,
          handle.cart_handle,
          order_key,
          OrderStatus.PENDING.value,
          handle.currency,
          totals.total,
          order_data,
      )
    except _CONNECTION_ERRORS:
      raise
    except sa_exc.SQLAlchemyError as e:
      logger.exception("Order creation failed for cart %s", handle.cart_handle)
      raise OrderCreationFailedError(
          "Order creation failed: could not persist order"
      ) from e

    handle.order_id = order.id
    handle.status = CheckoutStatus.REQUIRES_ESCALATION
    await self._persist(handle)
    logger.info("Cart %s converted to order %s", handle.cart_handle, order.id)

    return OrderRef(
        order_id=order.id,
        order_key=order_key,
        status=OrderStatus.PENDING,
        payment_url=self.payment_url(order.id, order_key),
        total=totals.total,
        totals=totals,
    )

  @_backend_call
  async def get_order_ref(self, handle: SessionHandle) -> Optional[OrderRef]:
    """Returns the order a converted cart resolved to, None for open carts.

    The totals are the ones stored with the order, so later catalog or coupon
    changes do not alter what the order charges.
    """
    if not handle.is_converted:
      return None
    order = await db.get_order(self.transactions_session, handle.order_id)
    if order is None:
      raise SessionNotFoundError("Order for checkout session not found")
    return OrderRef(
        order_id=order.id,
        order_key=order.order_key,
        status=OrderStatus(order.status),
        payment_url=self.payment_url(order.id, order.order_key),
        total=order.total,
        totals=_totals_from_order(order),
    )

  @_backend_call
  async def log_request(
      self,
      method: str,
      url: str,
      cart_handle: Optional[str] = None,
      payload: Optional[Dict[str, Any]] = None,
  ) -> None:
    await db.log_request(
        self.transactions_session,
        method=method,
        url=url,
        cart_handle=cart_handle,
        payload=payload,
    )
