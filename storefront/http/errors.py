"""
Failure taxonomy for responses coming back through the request pipeline.

`classify_failure` turns a failed response into exactly one tagged variant;
the pipeline dispatches on the variant type instead of on raw status codes.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from storefront.auth.roles import Role


@dataclass(frozen=True)
class Unauthorized:
    """401 on a request; `scope` is the role namespace of the path, if any."""
    scope: Optional[Role]


@dataclass(frozen=True)
class Forbidden:
    pass


@dataclass(frozen=True)
class ServerFault:
    status_code: int


@dataclass(frozen=True)
class Other:
    """Any other failure, with the server-provided message when there is one."""
    status_code: Optional[int]
    message: Optional[str]


RequestFailure = Union[Unauthorized, Forbidden, ServerFault, Other]


def extract_message(payload: Any) -> Optional[str]:
    """Pull the human-readable error message out of an API error body"""
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return None


def classify_failure(
    status_code: Optional[int],
    payload: Any = None,
    scope: Optional[Role] = None,
    recoverable: bool = True,
) -> RequestFailure:
    """
    Classify a failed response.

    Args:
        status_code: HTTP status, or None when no response arrived
        payload: Decoded response body
        scope: Role namespace of the request path
        recoverable: False for endpoints whose 401 means bad credentials
            rather than an expired session
    """
    if status_code == 401 and recoverable:
        return Unauthorized(scope=scope)
    if status_code == 403:
        return Forbidden()
    if status_code is not None and status_code >= 500:
        return ServerFault(status_code=status_code)
    return Other(status_code=status_code, message=extract_message(payload))


class ApiError(Exception):
    """A request through the pipeline failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        failure: Optional[RequestFailure] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.failure = failure
        self.payload = payload


class SessionExpiredError(ApiError):
    """A 401 ended the session of `role`."""

    def __init__(self, role: Role, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.role = role


class AuthenticationError(Exception):
    """A login or registration response did not carry a usable token."""
    pass
