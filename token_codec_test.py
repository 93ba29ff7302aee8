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

"""Tests for checkout token encoding and decoding."""

import base64

from absl.testing import absltest
from absl.testing import parameterized
from exceptions import InvalidTokenFormatError
import token_codec
from token_codec import SessionIdentity


def _b64(raw: bytes) -> str:
  return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class TokenCodecTest(parameterized.TestCase):

  def test_round_trip(self):
    for identity in (
        SessionIdentity(0, "t_1700000000_0123456789abcdef"),
        SessionIdentity(1234, "t_1700000000_0123456789abcdef"),
        SessionIdentity(7, "handle:with:colons"),
        SessionIdentity(0, "ünïcode"),
    ):
      token = token_codec.encode(identity)
      self.assertEqual(token_codec.decode(token), identity)

  def test_known_encoding(self):
    token = token_codec.encode(SessionIdentity(0, "t_1_abc"))
    self.assertEqual(token, _b64(b"0:t_1_abc"))
    self.assertNotIn("=", token)

  def test_token_is_url_safe(self):
    identity = SessionIdentity(0, "ûÿþ?>")
    token = token_codec.encode(identity)
    self.assertRegex(token, r"^[A-Za-z0-9_-]+$")
    self.assertEqual(token_codec.decode(token), identity)

  def test_converted_identity(self):
    self.assertFalse(SessionIdentity(0, "h").is_converted)
    self.assertTrue(SessionIdentity(5, "h").is_converted)

  @parameterized.named_parameters(
      ("negative_order", SessionIdentity(-1, "h")),
      ("empty_handle", SessionIdentity(0, "")),
      ("control_chars", SessionIdentity(0, "a\nb")),
      ("bool_order", SessionIdentity(True, "h")),
  )
  def test_encode_rejects_malformed_identity(self, identity):
    with self.assertRaises(ValueError):
      token_codec.encode(identity)

  @parameterized.named_parameters(
      ("none", None),
      ("integer", 12345),
      ("bytes", b"MDp0XzFfYWJj"),
      ("empty", ""),
      ("whitespace", "   "),
      ("padding", _b64(b"0:t_1_abc") + "="),
      ("standard_alphabet", "MDp0+18x/WFiYw"),
      ("trailing_newline", _b64(b"0:t_1_abc") + "\n"),
      ("bad_length", "A"),
      ("no_delimiter", _b64(b"t_1_abc")),
      ("empty_handle", _b64(b"0:")),
      ("empty_order", _b64(b":t_1_abc")),
      ("signed_order", _b64(b"-1:t_1_abc")),
      ("leading_zero", _b64(b"01:t_1_abc")),
      ("alpha_order", _b64(b"x1:t_1_abc")),
      ("not_utf8", _b64(b"0:\xff\xfe")),
      ("control_char", _b64(b"0:t_1\x00abc")),
      ("too_long", _b64(b"0:" + b"a" * 600)),
  )
  def test_decode_rejects(self, token):
    with self.assertRaises(InvalidTokenFormatError):
      token_codec.decode(token)

  def test_decode_rejects_non_canonical_trailing_bits(self):
    token = _b64(b"0:abc")
    self.assertEqual(len(token) % 4, 3)
    # Flip the unused low bits of the final character.
    alphabet = (
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    )
    last = alphabet.index(token[-1])
    altered = token[:-1] + alphabet[last | 0b01]
    self.assertNotEqual(altered, token)
    with self.assertRaises(InvalidTokenFormatError):
      token_codec.decode(altered)

  def test_decode_random_garbage_only_raises_invalid_format(self):
    for token in ("!!!", "abc def", "%2F%2F", "ä", "a" * 10000, "Zm9v"):
      with self.assertRaises(InvalidTokenFormatError):
        token_codec.decode(token)


if __name__ == "__main__":
  absltest.main()
