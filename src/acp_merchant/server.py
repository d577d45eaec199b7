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

"""Agentic Commerce Protocol merchant server (Python/FastAPI)."""

import logging
import sys
from typing import Sequence

from absl import app as absl_app
from acp_merchant import config
from acp_merchant.exceptions import AcpError
from acp_merchant.routes.checkout_sessions import router as checkout_router
from acp_merchant.routes.order import router as order_router
from fastapi import FastAPI
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Headers copied from the request onto every response.
ECHOED_HEADERS = ("Request-Id", "Idempotency-Key")

app = FastAPI(
    title="ACP Merchant Service",
    version=config.SUPPORTED_API_VERSION,
    description="Agentic Commerce Protocol checkout for a merchant cart",
    lifespan=config.lifespan,
)


@app.exception_handler(AcpError)
async def acp_exception_handler(request: Request, exc: AcpError):
  """Handles protocol exceptions and converts them to JSON responses."""
  del request  # Unused.
  return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
):
  del request  # Unused.
  return JSONResponse(
      status_code=400,
      content={
          "type": "invalid_request",
          "code": "invalid_request",
          "message": str(exc.errors()),
      },
  )


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
  logger.exception(
      "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
  )
  return JSONResponse(
      status_code=500,
      content={
          "type": "api_error",
          "code": "internal_error",
          "message": "An internal error occurred",
      },
  )


@app.middleware("http")
async def echo_request_headers(request: Request, call_next):
  response = await call_next(request)
  for header in ECHOED_HEADERS:
    value = request.headers.get(header)
    if value:
      response.headers[header] = value
  return response


app.include_router(checkout_router)
app.include_router(order_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the ACP Merchant Server."""
  del argv  # Unused.

  if (
      config.FLAGS.catalog_db_path is None
      or config.FLAGS.transactions_db_path is None
      or config.FLAGS.port is None
  ):
    logger.error(
        "--catalog_db_path, --transactions_db_path and --port must be"
        " provided."
    )
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  uvicorn.run(app, host="0.0.0.0", port=config.FLAGS.port)


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
