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

"""Checkout session routes for the UCP server."""

from typing import Any, Optional

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import CheckoutCreateRequest
from models import CheckoutUpdateRequest
from services.checkout_service import CheckoutService

router = APIRouter()


@router.post(
    "/checkout",
    response_model=dict[str, Any],
    status_code=201,
    operation_id="create_checkout",
)
async def create_checkout(
    body: Optional[CheckoutCreateRequest] = Body(None),
    common_headers: dependencies.CommonHeaders = Depends(
        dependencies.common_headers
    ),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Create a checkout session, optionally seeded with line items."""
  del common_headers  # Unused
  result = await checkout_service.create_checkout(body.items if body else None)
  return result.model_dump(mode="json", exclude_none=True)


@router.get(
    "/checkout/{id}",
    response_model=dict[str, Any],
    operation_id="get_checkout",
)
async def get_checkout(
    token: str = Path(..., alias="id"),
    common_headers: dependencies.CommonHeaders = Depends(
        dependencies.common_headers
    ),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Get the current state of a checkout session."""
  del common_headers  # Unused
  result = await checkout_service.get_checkout(token)
  return result.model_dump(mode="json", exclude_none=True)


@router.post(
    "/checkout/{id}",
    response_model=dict[str, Any],
    operation_id="update_checkout",
)
async def update_checkout(
    token: str = Path(..., alias="id"),
    body: Optional[CheckoutUpdateRequest] = Body(None),
    common_headers: dependencies.CommonHeaders = Depends(
        dependencies.common_headers
    ),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Update items, coupons or the shipping address of a checkout session."""
  del common_headers  # Unused
  result = await checkout_service.update_checkout(
      token, body or CheckoutUpdateRequest()
  )
  return result.model_dump(mode="json", exclude_none=True)


@router.post(
    "/checkout/{id}/complete",
    response_model=dict[str, Any],
    operation_id="complete_checkout",
)
async def complete_checkout(
    token: str = Path(..., alias="id"),
    common_headers: dependencies.CommonHeaders = Depends(
        dependencies.common_headers
    ),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Convert a checkout session into an order awaiting browser payment."""
  del common_headers  # Unused
  result = await checkout_service.complete_checkout(token)
  return result.model_dump(mode="json", exclude_none=True)
