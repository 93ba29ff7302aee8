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

"""Stdio to HTTP relay for desktop agent clients.

Reads newline-delimited JSON-RPC messages from stdin, forwards each one to the
checkout server's `/mcp` endpoint and writes the replies to stdout, one JSON
document per line. Messages are relayed strictly in the order they arrive.
Logs go to stderr so they never corrupt the protocol stream.

Usage:
  python relay.py --endpoint=http://localhost:8182/mcp [--debug]
"""

import codecs
import json
import logging
import sys
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, TextIO
from absl import app as absl_app
from absl import flags
import httpx

logger = logging.getLogger(__name__)

FLAGS = flags.FLAGS

try:
  flags.DEFINE_multi_string(
      "endpoint",
      None,
      "JSON-RPC endpoint to forward to; repeat to add fallbacks tried in order",
  )
  flags.DEFINE_bool("debug", False, "Log every relayed message to stderr")
  flags.DEFINE_float(
      "timeout_seconds", 10.0, "Timeout for each forwarded request"
  )
except flags.DuplicateFlagError:
  pass

RELAY_NAME = "ucp-checkout-relay"
RELAY_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_ERROR = -32000
READ_SIZE = 65536


class LineBuffer:
  """Splits a byte stream into lines, keeping partial lines between reads."""

  def __init__(self):
    self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    self._pending = ""

  def feed(self, chunk: bytes) -> List[str]:
    """Adds a chunk and returns the complete, non-blank lines it finished."""
    self._pending += self._decoder.decode(chunk)
    *lines, self._pending = self._pending.split("\n")
    return [line for line in lines if line.strip()]

  def flush(self) -> List[str]:
    """Returns whatever is left once the stream has ended."""
    rest = self._pending + self._decoder.decode(b"", final=True)
    self._pending = ""
    return [rest] if rest.strip() else []


def rpc_error(request_id: Any, message: str) -> Dict[str, Any]:
  return {
      "jsonrpc": "2.0",
      "error": {"code": SERVER_ERROR, "message": message},
      "id": request_id,
  }


def is_notification(message: Any) -> bool:
  return not isinstance(message, dict) or message.get("id") is None


class StdioRelay:
  """Forwards JSON-RPC messages to the first reachable endpoint."""

  def __init__(self, client: httpx.Client, endpoints: Sequence[str]):
    if not endpoints:
      raise ValueError("At least one endpoint is required")
    self.client = client
    self.endpoints = list(endpoints)

  def initialize_result(self, request_id: Any) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": {"name": RELAY_NAME, "version": RELAY_VERSION},
            "capabilities": {"tools": {"listChanged": False}},
        },
    }

  def forward(self, message: Any) -> Dict[str, Any]:
    """Posts a message and returns the server's JSON-RPC reply.

    Endpoints are tried in order; the next one is used only when the previous
    one could not be reached. Network failures and replies that are not JSON
    are turned into JSON-RPC errors.

    Args:
      message: The decoded JSON-RPC message.

    Returns:
      The JSON-RPC response envelope.
    """
    request_id = message.get("id") if isinstance(message, dict) else None
    last_error = None
    for endpoint in self.endpoints:
      try:
        response = self.client.post(
            endpoint,
            json=message,
            headers={"User-Agent": f"{RELAY_NAME}/{RELAY_VERSION}"},
        )
      except httpx.HTTPError as e:
        logger.debug("Failed connecting to %s: %s", endpoint, e)
        last_error = e
        continue

      try:
        reply = response.json()
      except ValueError:
        logger.debug("Non-JSON response: %s", response.text[:100])
        return rpc_error(request_id, "Invalid response from server")
      if not isinstance(reply, dict) or (
          "result" not in reply and "error" not in reply
      ):
        logger.debug(
            "Unexpected response (HTTP %s): %s", response.status_code, reply
        )
        return rpc_error(request_id, "Invalid response from server")
      return reply

    return rpc_error(request_id, f"Network error: {last_error}")

  def handle_line(self, line: str) -> Optional[str]:
    """Relays one input line and returns the output line, if any."""
    logger.debug("Received: %s", line)
    try:
      message = json.loads(line)
    except ValueError as e:
      logger.debug("JSON parse error: %s", e)
      return None

    if isinstance(message, dict) and message.get("method") == "initialize":
      reply = self.initialize_result(message.get("id"))
    else:
      reply = self.forward(message)

    if is_notification(message):
      logger.debug("Notification, suppressing response")
      return None
    output = json.dumps(reply)
    logger.debug("Sending: %s", output)
    return output

  def run(self, stdin: BinaryIO, stdout: TextIO) -> None:
    """Relays messages until stdin is exhausted."""
    buffer = LineBuffer()
    while True:
      chunk = stdin.read1(READ_SIZE)
      lines = buffer.feed(chunk) if chunk else buffer.flush()
      for line in lines:
        output = self.handle_line(line)
        if output is not None:
          stdout.write(output + "\n")
          stdout.flush()
      if not chunk:
        return


def main(argv: Sequence[str]) -> None:
  """Main entry point for the stdio relay."""
  del argv  # Unused.

  level = logging.DEBUG if FLAGS.debug else logging.WARNING
  logging.basicConfig(
      stream=sys.stderr, level=level, format="[%(name)s] %(message)s"
  )
  # absl may already have installed a root handler.
  logging.getLogger().setLevel(level)
  if not FLAGS.endpoint:
    logger.error("At least one --endpoint must be provided.")
    sys.exit(1)

  with httpx.Client(timeout=FLAGS.timeout_seconds) as client:
    StdioRelay(client, FLAGS.endpoint).run(sys.stdin.buffer, sys.stdout)


def run() -> None:
  """Console script entry point."""
  absl_app.run(main)


if __name__ == "__main__":
  run()
