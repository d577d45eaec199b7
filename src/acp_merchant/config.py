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

"""Shared configuration and startup logic for the checkout server."""

import contextlib
from absl import flags
from acp_merchant import db
from fastapi import FastAPI

FLAGS = flags.FLAGS

# Only protocol version this server speaks.
SUPPORTED_API_VERSION = "2025-09-29"

DEFAULT_CHANNEL_CODE = "default"

try:
  flags.DEFINE_string("catalog_db_path", None, "Path to catalog DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_string(
      "channel_code",
      DEFAULT_CHANNEL_CODE,
      "Code of the sales channel exposed over the protocol",
  )
  flags.DEFINE_integer("port", None, "Port to run the server on")
except flags.DuplicateFlagError:
  pass


def _flag_value(name: str, default=None):
  """Returns a flag value, or the default when flags were never parsed."""
  if not FLAGS.is_parsed():
    return default
  return getattr(FLAGS, name)


def get_channel_code() -> str:
  return _flag_value("channel_code", DEFAULT_CHANNEL_CODE) or (
      DEFAULT_CHANNEL_CODE
  )


def get_db_paths():
  """Returns the (catalog, transactions) database paths, possibly None."""
  return (
      _flag_value("catalog_db_path"),
      _flag_value("transactions_db_path"),
  )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  # In tests the paths are unset and sessions come from dependency overrides.
  catalog_path, transactions_path = get_db_paths()
  if catalog_path and transactions_path:
    await db.manager.init_dbs(catalog_path, transactions_path)
  yield
  await db.manager.close()
