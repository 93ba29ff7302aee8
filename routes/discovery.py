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

"""Discovery routes for the UCP server."""

import json
import pathlib
from typing import Any
import uuid

import config
from fastapi import APIRouter
from fastapi import Request

router = APIRouter()

PROFILE_TEMPLATE_PATH = pathlib.Path(__file__).parent / "discovery_profile.json"

# Generate a unique shop ID for this server instance
SHOP_ID = str(uuid.uuid4())


def render_profile(endpoint: str) -> dict[str, Any]:
  """Fills the discovery profile template for the given base endpoint."""
  with open(PROFILE_TEMPLATE_PATH, "r", encoding="utf-8") as f:
    template = f.read()

  profile_json = (
      template.replace("{{ENDPOINT}}", endpoint.rstrip("/"))
      .replace("{{SHOP_ID}}", SHOP_ID)
      .replace("{{CURRENCY}}", config.FLAGS.store_currency.upper())
  )
  return json.loads(profile_json)


@router.get(
    "/.well-known/ucp",
    response_model=dict[str, Any],
    summary="Get Merchant Profile",
)
async def get_merchant_profile(request: Request) -> dict[str, Any]:
  """Returns the merchant profile and capabilities."""
  return render_profile(str(request.base_url))


@router.get(
    "/discovery",
    response_model=dict[str, Any],
    summary="Get Merchant Profile",
    include_in_schema=False,
)
async def get_discovery(request: Request) -> dict[str, Any]:
  """Alias of the well-known merchant profile."""
  return render_profile(str(request.base_url))
