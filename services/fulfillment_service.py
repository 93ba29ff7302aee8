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

"""Fulfillment service for calculating shipping and tax.

This module encapsulates the logic for determining available shipping options
and the applicable tax rate based on the destination country of a cart.
"""

import dataclasses
from typing import List, Optional

import db
from sqlalchemy.ext.asyncio import AsyncSession


@dataclasses.dataclass(frozen=True)
class ShippingOption:
  id: str
  title: str
  service_level: str
  price: int  # In minor units


class FulfillmentService:
  """Service for handling fulfillment logic."""

  async def calculate_options(
      self,
      session: AsyncSession,
      country: Optional[str],
      free_shipping: bool = False,
  ) -> List[ShippingOption]:
    """Calculates available shipping options for a destination country.

    Args:
      session: The database session to fetch rates from.
      country: ISO country code of the shipping address.
      free_shipping: Whether an applied coupon grants free shipping.

    Returns:
      Shipping options sorted by price, cheapest first.
    """
    if not country:
      return []

    db_rates = await db.get_shipping_rates(session, country.upper())

    # Deduplicate by service level, preferring a specific country match over
    # the 'default' rate.
    rates_by_level = {}
    for rate in db_rates:
      if rate.service_level not in rates_by_level:
        rates_by_level[rate.service_level] = rate
      else:
        existing = rates_by_level[rate.service_level]
        if (
            existing.country_code == "default"
            and rate.country_code != "default"
        ):
          rates_by_level[rate.service_level] = rate

    options = []
    # Sort for deterministic output
    for rate in sorted(rates_by_level.values(), key=lambda r: (r.price, r.id)):
      price = rate.price
      title = rate.title
      if free_shipping and rate.service_level == "standard":
        price = 0
        title += " (Free)"
      options.append(
          ShippingOption(
              id=rate.id,
              title=title,
              service_level=rate.service_level,
              price=price,
          )
      )

    return sorted(options, key=lambda o: (o.price, o.id))

  async def shipping_total(
      self,
      session: AsyncSession,
      country: Optional[str],
      free_shipping: bool = False,
  ) -> int:
    """Returns the price of the cheapest shipping option, 0 if none."""
    options = await self.calculate_options(session, country, free_shipping)
    if not options:
      return 0
    return options[0].price

  async def tax_rate_bps(
      self, session: AsyncSession, country: Optional[str]
  ) -> int:
    """Returns the tax rate in basis points for a destination country."""
    if not country:
      return 0
    rates = await db.get_tax_rates(session, country.upper())
    specific = [r for r in rates if r.country_code != "default"]
    chosen = specific or rates
    if not chosen:
      return 0
    return chosen[0].rate_bps
