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

"""Tests for the JSON-RPC tool endpoint."""

import json
from typing import Any, Dict, Optional

from absl.testing import absltest
from integration_test import ServerTestBase
import token_codec


class McpTest(ServerTestBase):
  """Drives the checkout flow through `POST /mcp`."""

  def rpc(
      self,
      method: str,
      params: Optional[Dict[str, Any]] = None,
      request_id: Any = 1,
  ):
    message = {"jsonrpc": "2.0", "method": method}
    if params is not None:
      message["params"] = params
    if request_id is not None:
      message["id"] = request_id
    return self.client.post("/mcp", json=message)

  def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    response = self.rpc("tools/call", {"name": name, "arguments": arguments})
    self.assertEqual(response.status_code, 200, response.text)
    return response.json()

  def test_initialize(self) -> None:
    with self.client:
      body = self.rpc("initialize", {}).json()
      self.assertEqual(body["jsonrpc"], "2.0")
      self.assertEqual(body["id"], 1)
      self.assertEqual(body["result"]["protocolVersion"], "2024-11-05")
      self.assertIn("tools", body["result"]["capabilities"])

  def test_notifications_get_no_body(self) -> None:
    with self.client:
      response = self.rpc("notifications/initialized", request_id=None)
      self.assertEqual(response.status_code, 204)
      self.assertEqual(response.content, b"")

      response = self.rpc("no/such/method", request_id=None)
      self.assertEqual(response.status_code, 204)

  def test_list_tools(self) -> None:
    with self.client:
      for method in ("tools/list", "list_tools"):
        tools = self.rpc(method).json()["result"]["tools"]
        self.assertEqual(
            {t["name"] for t in tools},
            {
                "search_products",
                "create_checkout",
                "get_checkout",
                "update_checkout",
                "complete_checkout",
            },
        )
        for tool in tools:
          self.assertEqual(tool["inputSchema"]["type"], "object")

  def test_resources_list(self) -> None:
    with self.client:
      body = self.rpc("resources/list").json()
      self.assertEqual(body["result"], {"resources": []})

  def test_unknown_method(self) -> None:
    with self.client:
      body = self.rpc("bogus", request_id="abc").json()
      self.assertEqual(body["id"], "abc")
      self.assertEqual(body["error"]["code"], -32601)

  def test_invalid_envelope(self) -> None:
    with self.client:
      body = self.client.post(
          "/mcp", json={"jsonrpc": "1.0", "method": "initialize", "id": 3}
      ).json()
      self.assertEqual(body["error"]["code"], -32600)
      self.assertEqual(body["id"], 3)

      body = self.client.post("/mcp", json={"id": 4}).json()
      self.assertEqual(body["error"]["code"], -32600)

      body = self.client.post("/mcp", json=[1, 2]).json()
      self.assertEqual(body["error"]["code"], -32600)
      self.assertIsNone(body["id"])

  def test_parse_error(self) -> None:
    with self.client:
      response = self.client.post(
          "/mcp",
          content=b"{not json",
          headers={"Content-Type": "application/json"},
      )
      self.assertEqual(response.json()["error"]["code"], -32700)

  def test_checkout_flow_through_tools(self) -> None:
    with self.client:
      body = self.call_tool("search_products", {"query": "rose"})
      result = body["result"]
      self.assertFalse(result["isError"])
      items = result["structuredContent"]["items"]
      self.assertEqual(items[0]["id"], "42")
      self.assertEqual(
          json.loads(result["content"][0]["text"]), result["structuredContent"]
      )

      checkout = self.call_tool(
          "create_checkout", {"items": [{"id": 42, "quantity": 1}]}
      )["result"]["structuredContent"]
      token = checkout["id"]
      self.assertEqual(checkout["subtotal"], 25.0)

      checkout = self.call_tool(
          "update_checkout",
          {"checkout_id": token, "discount_codes": ["SAVE10"]},
      )["result"]["structuredContent"]
      self.assertEqual(checkout["discount_total"], 2.5)

      checkout = self.call_tool("get_checkout", {"id": token})["result"][
          "structuredContent"
      ]
      self.assertEqual(checkout["applied_coupons"], ["SAVE10"])

      result = self.call_tool("complete_checkout", {"id": token})["result"][
          "structuredContent"
      ]
      self.assertEqual(result["status"], "requires_escalation")
      self.assertIn("/checkout/order-pay/", result["continue_url"])
      self.assertEqual(
          token_codec.decode(result["id"]).order_id, result["order_id"]
      )

  def test_domain_errors_are_reported(self) -> None:
    with self.client:
      body = self.call_tool("get_checkout", {"id": "%%%"})
      self.assertEqual(body["error"]["code"], -32000)
      self.assertEqual(body["error"]["data"]["code"], "INVALID_TOKEN_FORMAT")

      token = self.call_tool("create_checkout", {"items": []})["result"][
          "structuredContent"
      ]["id"]
      body = self.call_tool("complete_checkout", {"id": token})
      self.assertEqual(body["error"]["data"]["code"], "EMPTY_CART")

      body = self.call_tool(
          "create_checkout", {"items": [{"id": 12345, "quantity": 1}]}
      )
      self.assertEqual(body["error"]["data"]["code"], "PRODUCT_NOT_FOUND")

  def test_invalid_tool_arguments(self) -> None:
    with self.client:
      body = self.call_tool("complete_checkout", {})
      self.assertEqual(body["error"]["code"], -32602)

      body = self.call_tool(
          "create_checkout", {"items": [{"id": 42, "quantity": -1}]}
      )
      self.assertEqual(body["error"]["code"], -32602)

      body = self.call_tool("no_such_tool", {})
      self.assertEqual(body["error"]["code"], -32602)


if __name__ == "__main__":
  absltest.main()
