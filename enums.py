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

"""Enumerations for the checkout session server.

This module defines standard enums used throughout the server application
to represent the state of checkout sessions, orders and coupons.
"""

import enum


class CheckoutStatus(str, enum.Enum):
  CART = "cart"
  REQUIRES_ESCALATION = "requires_escalation"


class OrderStatus(str, enum.Enum):
  PENDING = "pending"


class DiscountType(str, enum.Enum):
  PERCENTAGE = "percentage"
  FIXED_AMOUNT = "fixed_amount"
  FREE_SHIPPING = "free_shipping"


class MessageSeverity(str, enum.Enum):
  INFO = "info"
  RECOVERABLE = "recoverable"
  ESCALATION = "escalation"
