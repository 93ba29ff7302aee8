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

"""Request and response models for the checkout session server.

These models describe the external JSON shapes of the checkout protocol. The
server is the authority for every computed field: requests only ever carry
product ids, quantities, coupon codes and address fields.
"""

from typing import Any, Dict, List, Optional, Union

from enums import CheckoutStatus
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator


class LineItemRequest(BaseModel):
  """A product and quantity requested for the cart."""

  id: str
  quantity: int = Field(1, ge=1)

  @field_validator("id", mode="before")
  @classmethod
  def _coerce_id(cls, value: Union[int, str]) -> str:
    # Agents send catalog ids as integers or strings.
    if isinstance(value, bool):
      raise ValueError("id must be a string or integer")
    if isinstance(value, int):
      return str(value)
    return value


class ShippingAddress(BaseModel):
  """A shipping address; every field is optional so updates can be partial."""

  first_name: Optional[str] = None
  last_name: Optional[str] = None
  address_line1: Optional[str] = None
  address_line2: Optional[str] = None
  city: Optional[str] = None
  region: Optional[str] = None
  postal_code: Optional[str] = None
  country: Optional[str] = None

  def supplied_fields(self) -> Dict[str, str]:
    return self.model_dump(exclude_none=True)


class DiscountsRequest(BaseModel):
  codes: List[str] = []


class CheckoutCreateRequest(BaseModel):
  items: List[LineItemRequest] = []


class CheckoutUpdateRequest(BaseModel):
  """Patch for an existing checkout. Absent fields are left untouched."""

  model_config = ConfigDict(extra="ignore")

  items: Optional[List[LineItemRequest]] = None
  discount_codes: Optional[List[str]] = None
  discounts: Optional[DiscountsRequest] = None
  shipping_address: Optional[ShippingAddress] = None

  def coupon_codes(self) -> Optional[List[str]]:
    """Returns the requested coupon codes, None when the patch has none."""
    if self.discount_codes is not None:
      return self.discount_codes
    if self.discounts is not None:
      return self.discounts.codes
    return None


class SearchRequest(BaseModel):
  query: str = ""


class Message(BaseModel):
  type: str
  code: str
  content: str
  severity: str


class LineItemResponse(BaseModel):
  id: str
  name: str
  quantity: int
  total: float


class CheckoutSessionResponse(BaseModel):
  """External projection of a checkout session."""

  id: str
  status: CheckoutStatus
  currency: str
  total: float
  subtotal: float
  tax_total: float
  shipping_total: float
  discount_total: float
  applied_coupons: List[str]
  line_items: List[LineItemResponse]
  shipping_address: Optional[ShippingAddress] = None
  continue_url: Optional[str] = None
  messages: List[Message] = []


class EscalationResponse(BaseModel):
  """Result of completing a checkout: payment must continue in a browser."""

  id: str
  status: CheckoutStatus
  continue_url: str
  order_id: int
  messages: List[Message]


class ProductPrice(BaseModel):
  value: float
  currency: str


class SearchItem(BaseModel):
  id: str
  name: str
  description: Optional[str] = None
  price: ProductPrice
  images: List[str] = []
  availability: str


class SearchResponse(BaseModel):
  items: List[SearchItem]


class JsonRpcRequest(BaseModel):
  """A JSON-RPC 2.0 request or notification."""

  jsonrpc: str
  method: str
  params: Optional[Dict[str, Any]] = None
  id: Optional[Union[int, str]] = None
