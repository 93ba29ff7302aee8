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

"""Checkout service for managing the lifecycle of checkout sessions.

This module provides the `CheckoutService` class, the state machine that turns
the three protocol calls into adapter operations:

  create   -> Cart
  update   -> Cart (self loop)
  complete -> requires_escalation (terminal for this protocol)

Key responsibilities include:
- Decoding client tokens and resuming the backend cart they address.
- Serializing every operation on one cart through a per-cart lock.
- Applying only the fields present in an update patch.
- Recomputing totals after every mutation before formatting a response.
- Committing each operation atomically, rolling back on any failure.

No operation is retried: a failed call is reported to the caller as a typed
error and the backend is left as it was before the call.
"""

import contextlib
import logging
from typing import AsyncIterator, List, Optional, Sequence

from enums import CheckoutStatus
from exceptions import AlreadyCompletedError
from exceptions import BackendUnavailableError
from exceptions import CouponRejectedError
from models import CheckoutSessionResponse
from models import CheckoutUpdateRequest
from models import EscalationResponse
from models import LineItemRequest
from services import formatter
from services.cart_store import CartItem
from services.cart_store import CartStore
from services.cart_store import SessionHandle
from session_locks import SessionLocks
import token_codec

logger = logging.getLogger(__name__)


class CheckoutService:
  """Service for managing checkout sessions and orders."""

  def __init__(self, cart_store: CartStore, locks: SessionLocks):
    self.cart_store = cart_store
    self.locks = locks

  @contextlib.asynccontextmanager
  async def _transaction(self) -> AsyncIterator[None]:
    """Commits the backend changes of the block, or rolls them all back."""
    try:
      yield
      await self.cart_store.commit()
    except BaseException:
      try:
        await self.cart_store.rollback()
      except BackendUnavailableError:
        logger.error("Rollback did not complete", exc_info=True)
      raise

  async def create_checkout(
      self, items: Optional[Sequence[LineItemRequest]] = None
  ) -> CheckoutSessionResponse:
    """Creates a new checkout session with optional initial items."""
    logger.info("Creating checkout session")
    async with self._transaction():
      handle = await self.cart_store.start_or_resume(None)
      async with self.locks.hold(handle.cart_handle):
        await self.cart_store.log_request(
            "POST",
            "/checkout",
            cart_handle=handle.cart_handle,
            payload={"items": [i.model_dump() for i in items or []]},
        )
        if items:
          await self.cart_store.set_items(handle, _to_cart_items(items))
        totals = await self.cart_store.compute_totals(handle)

    return formatter.format_session(
        handle, totals, token_codec.encode(handle.identity)
    )

  async def get_checkout(self, token: str) -> CheckoutSessionResponse:
    """Retrieves a checkout session, or the order it was converted into.

    A converted session reports the totals stored with its order rather than
    repricing the cart.
    """
    identity = token_codec.decode(token)
    async with self.locks.hold(identity.cart_handle):
      async with self._transaction():
        handle = await self.cart_store.start_or_resume(identity)
        await self.cart_store.log_request(
            "GET", "/checkout/{id}", cart_handle=handle.cart_handle
        )
        order = await self.cart_store.get_order_ref(handle)
        if order is not None:
          totals = order.totals
        else:
          totals = await self.cart_store.compute_totals(handle)

    return formatter.format_session(
        handle,
        totals,
        token_codec.encode(handle.identity),
        continue_url=order.payment_url if order else None,
    )

  async def update_checkout(
      self, token: str, patch: CheckoutUpdateRequest
  ) -> CheckoutSessionResponse:
    """Applies the fields present in `patch` to a checkout session.

    `items` and coupon codes replace the current values, the shipping address
    is merged field by field, and absent fields are left untouched.

    Raises:
      AlreadyCompletedError: If the session was already converted.
      CouponRejectedError: If coupon codes were given and none applied.
    """
    identity = token_codec.decode(token)
    logger.info("Updating checkout session %s", identity.cart_handle)

    rejected: List[CouponRejectedError] = []
    async with self.locks.hold(identity.cart_handle):
      async with self._transaction():
        handle = await self.cart_store.start_or_resume(identity)
        await self.cart_store.log_request(
            "POST",
            "/checkout/{id}",
            cart_handle=handle.cart_handle,
            payload=patch.model_dump(mode="json", exclude_none=True),
        )
        self._ensure_modifiable(handle, "update")

        if patch.items is not None:
          await self.cart_store.set_items(handle, _to_cart_items(patch.items))

        codes = patch.coupon_codes()
        if codes is not None:
          rejected = await self.cart_store.set_coupons(handle, codes)
          if rejected and not handle.coupons:
            raise _all_rejected(rejected)

        if patch.shipping_address is not None:
          await self.cart_store.set_shipping_address(
              handle, patch.shipping_address.supplied_fields()
          )

        totals = await self.cart_store.compute_totals(handle)

    return formatter.format_session(
        handle,
        totals,
        token_codec.encode(handle.identity),
        messages=formatter.coupon_messages(rejected),
    )

  async def complete_checkout(self, token: str) -> EscalationResponse:
    """Converts a checkout session into an order that requires payment.

    Completion is single use: a second call for the same session fails with
    AlreadyCompletedError instead of creating another order.
    """
    identity = token_codec.decode(token)
    logger.info("Completing checkout session %s", identity.cart_handle)

    async with self.locks.hold(identity.cart_handle):
      async with self._transaction():
        handle = await self.cart_store.start_or_resume(identity)
        await self.cart_store.log_request(
            "POST", "/checkout/{id}/complete", cart_handle=handle.cart_handle
        )
        order = await self.cart_store.checkout(handle)

    return formatter.format_escalation(
        order, token_codec.encode(handle.identity)
    )

  def _ensure_modifiable(self, handle: SessionHandle, action: str) -> None:
    """Ensures that the checkout is in a state that allows modification."""
    if handle.status != CheckoutStatus.CART or handle.is_converted:
      raise AlreadyCompletedError(
          f"Cannot {action} checkout in state '{handle.status.value}'"
      )


def _to_cart_items(items: Sequence[LineItemRequest]) -> List[CartItem]:
  return [CartItem(product_id=i.id, quantity=i.quantity) for i in items]


def _all_rejected(
    rejected: Sequence[CouponRejectedError],
) -> CouponRejectedError:
  if len(rejected) == 1:
    return rejected[0]
  return CouponRejectedError(
      ", ".join(e.coupon_code for e in rejected),
      "; ".join(f"{e.coupon_code}: {e.reason}" for e in rejected),
  )
