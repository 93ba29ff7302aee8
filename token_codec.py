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

"""Encoding and decoding of opaque checkout tokens.

A checkout token carries the identity of the backend cart it addresses:
`base64url("{order_id}:{cart_handle}")` without padding, where `order_id` is
0 until the cart has been converted into an order. Decoding is strict: any
input that is not the canonical encoding of a valid identity raises
`InvalidTokenFormatError` and nothing else.
"""

import base64
import binascii
import dataclasses
import re

from exceptions import InvalidTokenFormatError

MAX_TOKEN_LENGTH = 512

_DELIMITER = ":"
_TOKEN_ALPHABET = re.compile(r"[A-Za-z0-9_-]+")
_ORDER_ID_PATTERN = re.compile(r"0|[1-9][0-9]*")


@dataclasses.dataclass(frozen=True)
class SessionIdentity:
  """The backend identity a token resolves to."""

  order_id: int
  cart_handle: str

  @property
  def is_converted(self) -> bool:
    return self.order_id > 0


def _validate(identity: SessionIdentity) -> None:
  if isinstance(identity.order_id, bool) or not isinstance(
      identity.order_id, int
  ):
    raise ValueError("order_id must be an integer")
  if identity.order_id < 0:
    raise ValueError("order_id must not be negative")
  if not isinstance(identity.cart_handle, str) or not identity.cart_handle:
    raise ValueError("cart_handle must be a non-empty string")
  if not identity.cart_handle.isprintable():
    raise ValueError("cart_handle must be printable")


def encode(identity: SessionIdentity) -> str:
  """Encodes a session identity into an opaque, URL-safe token.

  Args:
    identity: The identity to encode.

  Returns:
    The token string.

  Raises:
    ValueError: If the identity itself is malformed.
  """
  _validate(identity)
  raw = f"{identity.order_id}{_DELIMITER}{identity.cart_handle}".encode(
      "utf-8"
  )
  return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode(token: object) -> SessionIdentity:
  """Decodes a token produced by `encode`.

  Args:
    token: The client supplied token. Any value is accepted.

  Returns:
    The decoded SessionIdentity.

  Raises:
    InvalidTokenFormatError: If the token is not a valid encoding.
  """
  if not isinstance(token, str) or not token:
    raise InvalidTokenFormatError()
  if len(token) > MAX_TOKEN_LENGTH or not _TOKEN_ALPHABET.fullmatch(token):
    raise InvalidTokenFormatError()

  try:
    raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
  except (binascii.Error, ValueError):
    raise InvalidTokenFormatError() from None

  # Reject encodings with non-zero trailing bits so every identity has
  # exactly one token spelling.
  if base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=") != token:
    raise InvalidTokenFormatError()

  try:
    text = raw.decode("utf-8")
  except UnicodeDecodeError:
    raise InvalidTokenFormatError() from None

  order_part, sep, cart_handle = text.partition(_DELIMITER)
  if not sep or not _ORDER_ID_PATTERN.fullmatch(order_part):
    raise InvalidTokenFormatError()
  if not cart_handle or not cart_handle.isprintable():
    raise InvalidTokenFormatError()

  return SessionIdentity(order_id=int(order_part), cart_handle=cart_handle)
