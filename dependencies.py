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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Optional UCP-Agent header version negotiation.
- Service instantiation (CheckoutService, CatalogService, CartStore).
- Database session management (Products and Transactions DBs).
- The process-wide per-cart lock registry.
"""

import datetime
import re
from typing import AsyncGenerator, Optional

import config
import db
from fastapi import Depends
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from pydantic import BaseModel
from services.cart_store import CartStore
from services.catalog_service import CatalogService
from services.checkout_service import CheckoutService
from services.fulfillment_service import FulfillmentService
from session_locks import SessionLocks
from sqlalchemy.ext.asyncio import AsyncSession

# Shared by every request handled by this process.
session_locks = SessionLocks()


class CommonHeaders(BaseModel):
  """Common headers used in UCP requests."""

  ucp_agent: Optional[str] = None
  request_id: Optional[str] = None


async def common_headers(
    ucp_agent: Optional[str] = Header(None),
    request_id: Optional[str] = Header(None),
) -> CommonHeaders:
  """Extracts and validates common headers."""
  if ucp_agent:
    await validate_ucp_headers(ucp_agent)
  return CommonHeaders(ucp_agent=ucp_agent, request_id=request_id)


async def validate_ucp_headers(ucp_agent: str):
  """Validates UCP headers and version negotiation."""
  server_version = config.get_server_version()
  agent_version = server_version  # Default to server version if not specified

  # Matches: version="1.2.3" or version=1.2.3, at the start or after a ';'
  match = re.search(
      r"(?:^|;)\s*version=(?:\"([^\"]+)\"|([^;]+))", ucp_agent, re.IGNORECASE
  )
  if match:
    # Group 1 is quoted value, Group 2 is unquoted value
    agent_version = match.group(1) or match.group(2)
    agent_version = agent_version.strip()

  if agent_version > server_version:
    raise HTTPException(
        status_code=400,
        detail={
            "status": "error",
            "errors": [{
                "code": "VERSION_UNSUPPORTED",
                "message": (
                    f"Version {agent_version} is not supported. This merchant"
                    f" implements version {server_version}."
                ),
                "severity": "critical",
            }],
        },
    )


def get_fulfillment_service() -> FulfillmentService:
  """Dependency provider for FulfillmentService."""
  return FulfillmentService()


def get_session_locks() -> SessionLocks:
  """Dependency provider for the per-cart lock registry."""
  return session_locks


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_cart_store(
    request: Request,
    fulfillment_service: FulfillmentService = Depends(get_fulfillment_service),
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CartStore:
  """Dependency provider for CartStore."""
  return CartStore(
      fulfillment_service,
      products_session,
      transactions_session,
      currency=config.FLAGS.store_currency,
      session_ttl=datetime.timedelta(hours=config.FLAGS.session_ttl_hours),
      timeout_seconds=config.FLAGS.backend_timeout_seconds,
      payment_base_url=(
          config.FLAGS.payment_base_url or str(request.base_url)
      ),
  )


def get_checkout_service(
    cart_store: CartStore = Depends(get_cart_store),
    locks: SessionLocks = Depends(get_session_locks),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(cart_store, locks)


def get_catalog_service(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CatalogService:
  """Dependency provider for CatalogService."""
  return CatalogService(
      products_session, transactions_session, config.FLAGS.store_currency
  )
