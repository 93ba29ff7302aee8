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

"""Custom exceptions for the checkout session server."""


class UcpError(Exception):
  """Base class for all UCP exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class InvalidTokenFormatError(UcpError):
  """Raised when a checkout token is not a validly encoded session id."""

  def __init__(self, message: str = "Invalid checkout ID format"):
    super().__init__(message, code="INVALID_TOKEN_FORMAT", status_code=400)


class SessionNotFoundError(UcpError):
  """Raised when a token decodes but the backend holds no matching cart."""

  def __init__(self, message: str = "Checkout session not found"):
    super().__init__(message, code="SESSION_NOT_FOUND", status_code=404)


class ProductNotFoundError(UcpError):
  """Raised when a requested product does not exist in the catalog."""

  def __init__(self, product_id: str):
    self.product_id = product_id
    super().__init__(
        f"Product {product_id} not found",
        code="PRODUCT_NOT_FOUND",
        status_code=400,
    )


class CouponRejectedError(UcpError):
  """Raised when a coupon code cannot be applied to the cart."""

  def __init__(self, coupon_code: str, reason: str):
    self.coupon_code = coupon_code
    self.reason = reason
    super().__init__(
        f"Coupon '{coupon_code}' rejected: {reason}",
        code="COUPON_REJECTED",
        status_code=400,
    )


class EmptyCartError(UcpError):
  """Raised when completing a checkout that has no line items."""

  def __init__(self, message: str = "Cart is empty"):
    super().__init__(message, code="EMPTY_CART", status_code=400)


class AlreadyCompletedError(UcpError):
  """Raised when a checkout has already been converted into an order."""

  def __init__(self, message: str):
    super().__init__(message, code="ALREADY_COMPLETED", status_code=409)


class OutOfStockError(UcpError):
  """Raised when there is insufficient inventory for an item."""

  def __init__(self, message: str, status_code: int = 400):
    super().__init__(message, code="OUT_OF_STOCK", status_code=status_code)


class BackendUnavailableError(UcpError):
  """Raised when the commerce backend times out or cannot be reached."""

  def __init__(self, message: str = "Commerce backend unavailable"):
    super().__init__(message, code="BACKEND_UNAVAILABLE", status_code=503)


class OrderCreationFailedError(UcpError):
  """Raised when the backend fails to persist the order for a checkout."""

  def __init__(self, message: str = "Order creation failed"):
    super().__init__(message, code="ORDER_CREATION_FAILED", status_code=500)
