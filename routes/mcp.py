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

"""JSON-RPC 2.0 tool endpoint for agent clients.

Exposes the checkout operations as tools over a single `POST /mcp` route. Each
tool runs the same service call as its REST counterpart, so both surfaces share
validation, locking and error semantics.
"""

import json
import logging
from typing import Any, Dict, Optional

import config
import dependencies
from exceptions import UcpError
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Request
from fastapi import Response
from fastapi.responses import JSONResponse
from models import CheckoutCreateRequest
from models import CheckoutUpdateRequest
from models import JsonRpcRequest
from models import SearchRequest
import pydantic
from services.catalog_service import CatalogService
from services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter()

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "ucp-checkout-server"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000

_ITEMS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": ["integer", "string"]},
            "quantity": {"type": "integer", "minimum": 1},
        },
        "required": ["id"],
    },
}

_TOKEN_SCHEMA = {
    "type": "string",
    "description": "Checkout id returned by create_checkout.",
}

TOOLS = [
    {
        "name": "search_products",
        "description": "Search for products in the catalog.",
        "inputSchema": {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        },
    },
    {
        "name": "create_checkout",
        "description": "Create a checkout session with the given line items.",
        "inputSchema": {
            "type": "object",
            "properties": {"items": _ITEMS_SCHEMA},
        },
    },
    {
        "name": "get_checkout",
        "description": "Get the current state of a checkout session.",
        "inputSchema": {
            "type": "object",
            "properties": {"id": _TOKEN_SCHEMA},
            "required": ["id"],
        },
    },
    {
        "name": "update_checkout",
        "description": (
            "Replace the items or coupon codes of a checkout, or merge fields"
            " into its shipping address."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": _TOKEN_SCHEMA,
                "items": _ITEMS_SCHEMA,
                "discount_codes": {
                    "type": "array",
                    "items": {"type": "string"},
                },
                "shipping_address": {"type": "object"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "complete_checkout",
        "description": (
            "Turn a checkout into an order. Returns a continue_url that YOU"
            " MUST present to the user to pay for the order."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {"id": _TOKEN_SCHEMA},
            "required": ["id"],
        },
    },
]


class JsonRpcError(Exception):
  """An error that is reported to the caller as a JSON-RPC error object."""

  def __init__(
      self, code: int, message: str, data: Optional[Dict[str, Any]] = None
  ):
    self.code = code
    self.message = message
    self.data = data
    super().__init__(message)

  def to_dict(self) -> Dict[str, Any]:
    error = {"code": self.code, "message": self.message}
    if self.data is not None:
      error["data"] = self.data
    return error


def error_response(request_id: Any, error: JsonRpcError) -> Dict[str, Any]:
  return {
      "jsonrpc": JSONRPC_VERSION,
      "error": error.to_dict(),
      "id": request_id,
  }


def tool_result(data: Dict[str, Any]) -> Dict[str, Any]:
  """Wraps structured tool output in the text-and-structured result shape."""
  return {
      "content": [{"type": "text", "text": json.dumps(data, indent=2)}],
      "structuredContent": data,
      "isError": False,
  }


def _checkout_token(arguments: Dict[str, Any]) -> str:
  token = arguments.get("id", arguments.get("checkout_id"))
  if not isinstance(token, str):
    raise JsonRpcError(INVALID_PARAMS, "Missing checkout id")
  return token


class McpHandler:
  """Dispatches JSON-RPC messages to the checkout and catalog services."""

  def __init__(
      self,
      checkout_service: CheckoutService,
      catalog_service: CatalogService,
  ):
    self.checkout_service = checkout_service
    self.catalog_service = catalog_service

  async def handle(self, payload: Any) -> Optional[Dict[str, Any]]:
    """Handles one JSON-RPC message.

    Args:
      payload: The decoded JSON body of the request.

    Returns:
      The response envelope, or None when the message is a notification.
    """
    request_id = payload.get("id") if isinstance(payload, dict) else None
    try:
      message = JsonRpcRequest.model_validate(payload)
    except pydantic.ValidationError:
      return error_response(
          request_id,
          JsonRpcError(INVALID_REQUEST, "Invalid JSON-RPC request"),
      )
    if message.jsonrpc != JSONRPC_VERSION or not message.method:
      return error_response(
          request_id,
          JsonRpcError(INVALID_REQUEST, "Invalid JSON-RPC request"),
      )

    try:
      result = await self._dispatch(message.method, message.params or {})
    except JsonRpcError as e:
      response = error_response(message.id, e)
    except UcpError as e:
      logger.info("Tool call failed with %s: %s", e.code, e.message)
      response = error_response(
          message.id,
          JsonRpcError(SERVER_ERROR, e.message, data={"code": e.code}),
      )
    except Exception:  # pylint: disable=broad-exception-caught
      logger.exception("Unexpected error handling %s", message.method)
      response = error_response(
          message.id, JsonRpcError(INTERNAL_ERROR, "Internal error")
      )
    else:
      response = {
          "jsonrpc": JSONRPC_VERSION,
          "result": result,
          "id": message.id,
      }

    if message.id is None:
      return None
    return response

  async def _dispatch(self, method: str, params: Dict[str, Any]) -> Any:
    if method == "initialize":
      return {
          "protocolVersion": PROTOCOL_VERSION,
          "capabilities": {
              "tools": {"listChanged": False},
              "resources": {"listChanged": False},
          },
          "serverInfo": {
              "name": SERVER_NAME,
              "version": config.get_server_version(),
          },
      }
    if method == "notifications/initialized":
      return True
    if method in ("tools/list", "list_tools"):
      return {"tools": TOOLS}
    if method == "resources/list":
      return {"resources": []}
    if method in ("tools/call", "call_tool"):
      name = params.get("name")
      arguments = params.get("arguments") or {}
      if not isinstance(arguments, dict):
        raise JsonRpcError(INVALID_PARAMS, "Tool arguments must be an object")
      return tool_result(await self.call_tool(name, arguments))
    raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

  async def call_tool(
      self, name: Any, arguments: Dict[str, Any]
  ) -> Dict[str, Any]:
    """Runs a tool and returns its structured output."""
    logger.info("Calling tool %s", name)
    try:
      if name == "search_products":
        request = SearchRequest.model_validate(arguments)
        result = await self.catalog_service.search(request.query)
      elif name == "create_checkout":
        request = CheckoutCreateRequest.model_validate(arguments)
        result = await self.checkout_service.create_checkout(request.items)
      elif name == "get_checkout":
        result = await self.checkout_service.get_checkout(
            _checkout_token(arguments)
        )
      elif name == "update_checkout":
        patch = CheckoutUpdateRequest.model_validate(arguments)
        result = await self.checkout_service.update_checkout(
            _checkout_token(arguments), patch
        )
      elif name == "complete_checkout":
        result = await self.checkout_service.complete_checkout(
            _checkout_token(arguments)
        )
      else:
        raise JsonRpcError(INVALID_PARAMS, f"Unknown tool: {name}")
    except pydantic.ValidationError as e:
      raise JsonRpcError(
          INVALID_PARAMS, f"Invalid arguments for {name}: {e.errors()}"
      ) from e
    return result.model_dump(mode="json", exclude_none=True)


def get_mcp_handler(
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
    catalog_service: CatalogService = Depends(
        dependencies.get_catalog_service
    ),
) -> McpHandler:
  """Dependency provider for McpHandler."""
  return McpHandler(checkout_service, catalog_service)


@router.post("/mcp", operation_id="mcp")
async def handle_mcp(
    request: Request,
    handler: McpHandler = Depends(get_mcp_handler),
) -> Response:
  """Handle a JSON-RPC 2.0 message."""
  try:
    payload = await request.json()
  except ValueError:
    return JSONResponse(
        error_response(None, JsonRpcError(PARSE_ERROR, "Parse error"))
    )

  response = await handler.handle(payload)
  if response is None:
    return Response(status_code=204)
  return JSONResponse(response)
