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

"""Read-only product search over the catalog."""

from typing import List

import db
from models import ProductPrice
from models import SearchItem
from models import SearchResponse
from services.formatter import to_major_units
from sqlalchemy.ext.asyncio import AsyncSession

MAX_RESULTS = 10


def search_terms(query: str) -> List[str]:
  """Returns the lower-cased terms to match, adding singular forms."""
  query = query.strip().lower()
  if not query:
    return []
  terms = [query]
  # "plants" also matches "Plant"
  if len(query) > 1 and query.endswith("s"):
    terms.append(query[:-1])
  return terms


class CatalogService:
  """Searches products and maps them to the external item shape."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      currency: str,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session
    self.currency = currency.upper()

  async def search(self, query: str) -> SearchResponse:
    products = await db.search_products(
        self.products_session, search_terms(query), limit=MAX_RESULTS
    )
    stock = await db.get_inventories(
        self.transactions_session, [p.id for p in products]
    )
    items = []
    for product in products:
      items.append(
          SearchItem(
              id=product.id,
              name=product.title,
              description=product.description,
              price=ProductPrice(
                  value=to_major_units(product.price, self.currency),
                  currency=self.currency,
              ),
              images=[product.image_url] if product.image_url else [],
              availability=(
                  "IN_STOCK" if stock.get(product.id, 0) > 0 else "OUT_OF_STOCK"
              ),
          )
      )
    return SearchResponse(items=items)
