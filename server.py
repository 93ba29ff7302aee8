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

"""UCP Checkout Session Server (Python/FastAPI)."""

import logging
import sys
from typing import Sequence
from absl import app as absl_app
import config
from exceptions import UcpError
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from routes.checkout import router as checkout_router
from routes.discovery import router as discovery_router
from routes.mcp import router as mcp_router
from routes.search import router as search_router
import uvicorn

# --- App Setup ---

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="UCP Checkout Session Service",
    version=config.get_server_version(),
    description=(
        "Checkout sessions for agent clients over REST and JSON-RPC, handing"
        " payment off to the merchant's browser checkout"
    ),
    lifespan=config.lifespan,
)


@app.exception_handler(UcpError)
async def ucp_exception_handler(request: Request, exc: UcpError):
  """Handles UCP-specific exceptions and converts them to JSON responses."""
  del request  # Unused.
  return JSONResponse(
      status_code=exc.status_code,
      content={"detail": exc.message, "code": exc.code},
  )


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
  """Reports unexpected failures without leaking backend details."""
  logger.error(
      "Unhandled error for %s %s",
      request.method,
      request.url.path,
      exc_info=exc,
  )
  return JSONResponse(
      status_code=500,
      content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
  )


app.include_router(checkout_router)
app.include_router(search_router)
app.include_router(mcp_router)
app.include_router(discovery_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the UCP Checkout Session Server."""
  del argv  # Unused.

  if (
      config.FLAGS.products_db_path is None
      or config.FLAGS.transactions_db_path is None
      or config.FLAGS.port is None
  ):
    logger.error(
        "Both --products_db_path, --transactions_db_path, and --port must be"
        " provided."
    )
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  uvicorn.run(app, host="0.0.0.0", port=config.FLAGS.port)


if __name__ == "__main__":
  absl_app.run(main)
