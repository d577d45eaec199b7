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

"""Custom exceptions for the checkout server.

Every error a protocol client can see is an `AcpError`; the server renders it
as `{type, code, message, param?}` with the carried HTTP status.
"""

from typing import Any, Dict, Optional


class AcpError(Exception):
  """Base class for all protocol-visible errors."""

  def __init__(
      self,
      message: str,
      error_type: str = "api_error",
      code: str = "internal_error",
      status_code: int = 500,
      param: Optional[str] = None,
  ):
    self.message = message
    self.error_type = error_type
    self.code = code
    self.status_code = status_code
    self.param = param
    super().__init__(self.message)

  def to_dict(self) -> Dict[str, Any]:
    body = {"type": self.error_type, "code": self.code, "message": self.message}
    if self.param:
      body["param"] = self.param
    return body


class InvalidRequestError(AcpError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(
      self,
      message: str,
      code: str = "invalid_request",
      param: Optional[str] = None,
      status_code: int = 400,
  ):
    super().__init__(
        message,
        error_type="invalid_request",
        code=code,
        status_code=status_code,
        param=param,
    )


class MissingParameterError(InvalidRequestError):

  def __init__(self, message: str, param: str):
    super().__init__(message, code="missing_parameter", param=param)


class InvalidParameterError(InvalidRequestError):

  def __init__(self, message: str, param: str):
    super().__init__(message, code="invalid_parameter", param=param)


class AuthenticationError(InvalidRequestError):
  """Raised when a request fails authentication or signature checks."""

  def __init__(self, message: str, code: str):
    super().__init__(message, code=code, status_code=401)


class ResourceNotFoundError(AcpError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(
        message,
        error_type="not_found",
        code="resource_not_found",
        status_code=404,
    )


class IdempotencyConflictError(InvalidRequestError):
  """Raised when an idempotency key is reused with a different body."""

  def __init__(self, message: str):
    super().__init__(message, code="idempotency_conflict", status_code=409)


class SessionNotModifiableError(InvalidRequestError):
  """Raised when attempting to modify a session in a terminal state."""

  def __init__(self, message: str):
    super().__init__(message, code="method_not_allowed", status_code=405)


class ConcurrentModificationError(AcpError):
  """Raised when a row changed between read and write."""

  def __init__(self, message: str):
    super().__init__(
        message,
        error_type="api_error",
        code="concurrent_modification",
        status_code=409,
    )


class PaymentFailedError(AcpError):
  """Raised when the payment service provider declines or fails a charge."""

  def __init__(self, message: str):
    super().__init__(
        message,
        error_type="api_error",
        code="payment_failed",
        status_code=400,
    )


class PaymentCaptureError(Exception):
  """Raised by the capture flow when a charge cannot be completed."""


class DuplicateKeyError(Exception):
  """Raised by stores when a unique column would be duplicated."""
