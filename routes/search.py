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

"""Product search route for the UCP server."""

from typing import Any, Optional

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from models import SearchRequest
from services.catalog_service import CatalogService

router = APIRouter()


@router.post(
    "/search",
    response_model=dict[str, Any],
    operation_id="search_products",
)
async def search_products(
    body: Optional[SearchRequest] = Body(None),
    catalog_service: CatalogService = Depends(
        dependencies.get_catalog_service
    ),
) -> dict[str, Any]:
  """Search the catalog by product name or category."""
  result = await catalog_service.search(body.query if body else "")
  return result.model_dump(mode="json")
