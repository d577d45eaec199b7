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

"""HMAC signing and verification of request bodies.

Inbound requests and PSP charges carry a base64url HMAC-SHA256 of the raw
body; webhooks carry a hex one. All comparisons are constant time.
"""

import base64
import binascii
import datetime
import hashlib
import hmac
from typing import Optional

# Accepted clock skew of a signed request, in either direction.
TIMESTAMP_TOLERANCE_SECONDS = 300


def _digest(secret: str, body: bytes) -> bytes:
  return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def sign_base64url(secret: str, body: bytes) -> str:
  """Returns the unpadded base64url HMAC-SHA256 of the body."""
  return base64.urlsafe_b64encode(_digest(secret, body)).decode("ascii").rstrip(
      "="
  )


def sign_hex(secret: str, body: bytes) -> str:
  return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _decode_base64url(value: str) -> Optional[bytes]:
  """Strict decode: characters outside the base64url alphabet are rejected."""
  padded = value + "=" * (-len(value) % 4)
  try:
    return base64.b64decode(
        padded.encode("ascii"), altchars=b"-_", validate=True
    )
  except (binascii.Error, ValueError):
    return None


def verify_base64url(secret: str, body: bytes, signature: str) -> bool:
  """Checks a base64url signature, with or without padding."""
  provided = _decode_base64url(signature.strip())
  if provided is None:
    return False
  return hmac.compare_digest(_digest(secret, body), provided)


def verify_hex(secret: str, body: bytes, signature: str) -> bool:
  return hmac.compare_digest(sign_hex(secret, body), signature.strip().lower())


def parse_timestamp(value: str) -> Optional[datetime.datetime]:
  """Parses an RFC 3339 timestamp; naive values are taken as UTC."""
  try:
    parsed = datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
  except ValueError:
    return None
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=datetime.timezone.utc)
  return parsed


def check_timestamp(
    value: str,
    now: Optional[datetime.datetime] = None,
    tolerance: int = TIMESTAMP_TOLERANCE_SECONDS,
) -> Optional[str]:
  """Returns an error message when the timestamp is invalid or stale."""
  parsed = parse_timestamp(value)
  if parsed is None:
    return "Invalid timestamp format (expected RFC 3339)"
  now = now or datetime.datetime.now(datetime.timezone.utc)
  if abs((now - parsed).total_seconds()) > tolerance:
    return "Request timestamp outside the allowed window"
  return None


def rfc3339_now() -> str:
  return (
      datetime.datetime.now(datetime.timezone.utc)
      .replace(microsecond=0)
      .isoformat()
      .replace("+00:00", "Z")
  )
