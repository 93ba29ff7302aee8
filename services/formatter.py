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

"""Projection of internal cart state into the external checkout schema.

The functions here are pure: they only read the SessionHandle, CartTotals and
OrderRef values produced by the cart store. Amounts are held in minor units
internally and rendered in major units of the cart's currency.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from enums import CheckoutStatus
from enums import MessageSeverity
from exceptions import CouponRejectedError
from models import CheckoutSessionResponse
from models import EscalationResponse
from models import LineItemResponse
from models import Message
from models import ShippingAddress
from services.cart_store import CartTotals
from services.cart_store import OrderRef
from services.cart_store import SessionHandle

# ISO 4217 currencies without a minor unit.
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG", "RWF",
    "UGX", "UYI", "VND", "VUV", "XAF", "XOF", "XPF",
})

ESCALATION_MESSAGE = (
    "Payment requires browser checkout. Please follow the link to complete"
    " payment."
)


def currency_exponent(currency: str) -> int:
  return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_major_units(amount: int, currency: str) -> float:
  """Converts an integer minor-unit amount into major units."""
  exponent = currency_exponent(currency)
  return float(Decimal(amount).scaleb(-exponent))


def coupon_messages(errors: Sequence[CouponRejectedError]) -> List[Message]:
  return [
      Message(
          type="warning",
          code=error.code,
          content=error.message,
          severity=MessageSeverity.RECOVERABLE.value,
      )
      for error in errors
  ]


def escalation_message() -> Message:
  return Message(
      type="info",
      code="ESCALATION_REQUIRED",
      content=ESCALATION_MESSAGE,
      severity=MessageSeverity.ESCALATION.value,
  )


def format_session(
    handle: SessionHandle,
    totals: CartTotals,
    token: str,
    messages: Optional[List[Message]] = None,
    continue_url: Optional[str] = None,
) -> CheckoutSessionResponse:
  """Projects a cart and its freshly computed totals."""
  currency = handle.currency
  address = None
  if handle.shipping_address:
    address = ShippingAddress(**handle.shipping_address)

  messages = list(messages or [])
  if handle.status == CheckoutStatus.REQUIRES_ESCALATION and continue_url:
    messages.append(escalation_message())

  return CheckoutSessionResponse(
      id=token,
      status=handle.status,
      currency=currency,
      total=to_major_units(totals.total, currency),
      subtotal=to_major_units(totals.subtotal, currency),
      tax_total=to_major_units(totals.tax_total, currency),
      shipping_total=to_major_units(totals.shipping_total, currency),
      discount_total=to_major_units(totals.discount_total, currency),
      applied_coupons=list(handle.coupons),
      line_items=[
          LineItemResponse(
              id=line.product_id,
              name=line.name,
              quantity=line.quantity,
              total=to_major_units(line.total, currency),
          )
          for line in totals.lines
      ],
      shipping_address=address,
      continue_url=continue_url,
      messages=messages,
  )


def format_escalation(order: OrderRef, token: str) -> EscalationResponse:
  """Projects the order created by completing a checkout."""
  return EscalationResponse(
      id=token,
      status=CheckoutStatus.REQUIRES_ESCALATION,
      continue_url=order.payment_url,
      order_id=order.order_id,
      messages=[escalation_message()],
  )
