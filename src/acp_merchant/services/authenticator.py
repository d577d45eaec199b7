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

"""Per-request validation of protocol headers, credentials and signatures.

`RequestAuthenticator.authenticate` never raises: it returns the first
failure as an `AcpError` value and leaves raising it to the HTTP layer.
"""

import datetime
import hmac
import logging
from typing import Mapping, Optional

from acp_merchant import config
from acp_merchant.exceptions import AcpError
from acp_merchant.exceptions import AuthenticationError
from acp_merchant.exceptions import InvalidRequestError
from acp_merchant.models import GatewayConfig
from acp_merchant.services import signatures

logger = logging.getLogger(__name__)

_BODY_METHODS = ("POST", "PUT", "PATCH")


class RequestAuthenticator:
  """Validates API version, content type, bearer token and signature."""

  def __init__(self, api_version: str = config.SUPPORTED_API_VERSION):
    self.api_version = api_version

  def authenticate(
      self,
      method: str,
      headers: Mapping[str, str],
      body: bytes,
      gateway_config: Optional[GatewayConfig],
      now: Optional[datetime.datetime] = None,
  ) -> Optional[AcpError]:
    """Returns the first authentication failure, or None.

    Args:
      method: HTTP method of the request.
      headers: Request headers; names are matched case-insensitively.
      body: The raw request body.
      gateway_config: The channel's gateway configuration, if any.
      now: Clock override for the timestamp window.

    Returns:
      The error to render, or None when the request is accepted.
    """
    headers = {k.lower(): v for k, v in headers.items()}
    method = method.upper()
    return (
        self._check_api_version(headers)
        or self._check_content_type(method, headers, body)
        or self._check_bearer(headers, gateway_config)
        or self._check_signature(method, headers, body, gateway_config, now)
    )

  def _check_api_version(self, headers) -> Optional[AcpError]:
    version = headers.get("api-version")
    if not version:
      return InvalidRequestError(
          "API-Version header is required", code="missing_api_version"
      )
    if version != self.api_version:
      return InvalidRequestError(
          f"Unsupported API version {version}; supported: {self.api_version}",
          code="unsupported_api_version",
      )
    return None

  def _check_content_type(self, method, headers, body) -> Optional[AcpError]:
    if method not in _BODY_METHODS or not body:
      return None
    content_type = headers.get("content-type", "")
    if not content_type.lower().startswith("application/json"):
      return InvalidRequestError(
          "Content-Type must be application/json",
          code="invalid_content_type",
      )
    return None

  def _check_bearer(self, headers, gateway_config) -> Optional[AcpError]:
    authorization = headers.get("authorization")
    if not authorization:
      return AuthenticationError(
          "Authorization header is required", code="missing_authorization"
      )
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
      return AuthenticationError(
          "Authorization header must use the Bearer scheme",
          code="invalid_authorization_format",
      )
    if gateway_config is None or not gateway_config.bearer_token:
      logger.warning("Rejecting request: no ACP bearer token configured")
      return AuthenticationError(
          "ACP is not configured for this channel", code="not_configured"
      )
    if not hmac.compare_digest(
        gateway_config.bearer_token.encode("utf-8"), token.encode("utf-8")
    ):
      return AuthenticationError("Invalid bearer token", code="invalid_token")
    return None

  def _check_signature(
      self, method, headers, body, gateway_config, now
  ) -> Optional[AcpError]:
    signature = headers.get("signature")
    if method == "GET" or not signature:
      return None
    secret = gateway_config.signature_secret if gateway_config else None
    if not secret:
      return AuthenticationError(
          "Signature validation is not configured",
          code="signature_validation_failed",
      )
    timestamp = headers.get("timestamp")
    if timestamp:
      problem = signatures.check_timestamp(timestamp, now=now)
      if problem:
        return AuthenticationError(problem, code="signature_validation_failed")
    if not signatures.verify_base64url(secret, body, signature):
      logger.info("Rejecting request with an invalid signature")
      return AuthenticationError(
          "Invalid request signature", code="signature_validation_failed"
      )
    return None
