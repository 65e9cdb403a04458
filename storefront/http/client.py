"""
Request pipeline for the commerce API.

Every call goes through `ApiClient.send`: a before-hook attaches the bearer
credential chosen by the role resolver, an after-hook classifies failures
and applies the session consequences (logout, one refresh-and-retry, or a
user notice) before the error reaches the caller.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from storefront.auth.roles import Role, request_namespace, resolve_role
from storefront.auth.session import EXPIRY_MESSAGES, SessionContext
from storefront.core.config import settings
from storefront.core.logging_config import new_correlation_id
from storefront.http.errors import (
    ApiError,
    Forbidden,
    Other,
    RequestFailure,
    ServerFault,
    SessionExpiredError,
    Unauthorized,
    classify_failure,
)
from storefront.http.refresh import RefreshFailedError, RefreshProtocol
from storefront.http.request import ApiRequest

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Server error. Please try again later."
ACCESS_DENIED_MESSAGE = "Access denied."


def create_http_client(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the underlying HTTP client; cookies persist across calls."""
    return httpx.AsyncClient(
        base_url=base_url or settings.API_BASE_URL,
        timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
        headers={"Content-Type": "application/json"},
        transport=transport,
    )


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"message": response.text} if response.text else {}


class ApiClient:
    """Authenticated, self-recovering client for the commerce API."""

    def __init__(
        self,
        session: SessionContext,
        http_client: Optional[httpx.AsyncClient] = None,
        refresh: Optional[RefreshProtocol] = None,
    ):
        self.session = session
        self.http = http_client or create_http_client()
        self.refresh = refresh or RefreshProtocol(self.http, session)
        self._exempt_paths = frozenset(path.rstrip("/") for path in settings.AUTH_EXEMPT_PATHS)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _is_exempt(self, path: str) -> bool:
        return httpx.URL(path).path.rstrip("/") in self._exempt_paths

    def authorization_for(self, request: ApiRequest) -> Optional[str]:
        """Before-hook: pick the bearer credential for a request"""
        if request.bearer_override:
            return request.bearer_override

        role = resolve_role(request.path, self.session.credentials.live_roles())
        if role is None:
            logger.debug(f"No credential available for {request.path}")
            return None

        session_token = self.session.token(role)
        if session_token is None:
            logger.debug(f"No {role.value} credential for {request.path}")
            return None

        logger.debug(f"Using {role.value} credential for {request.path}")
        return session_token.value

    async def send(self, request: ApiRequest) -> httpx.Response:
        """
        Send a request through the pipeline.

        Returns:
            The successful response, unchanged

        Raises:
            SessionExpiredError: A 401 ended a role's session
            ApiError: Any other failure
        """
        correlation_id = new_correlation_id()
        headers = dict(request.headers)
        token = self.authorization_for(request)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug(
            f"API request {request.method} {request.path} attempt {request.attempt}",
            extra={"correlation_id": correlation_id},
        )
        try:
            response = await self.http.request(
                request.method,
                request.path,
                json=request.json,
                params=dict(request.params) or None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"API transport error {request.method} {request.path}: {e}")
            raise ApiError(f"Request to {request.path} failed: {e}") from e

        if response.is_success:
            logger.debug(f"API response {response.status_code} {request.path}")
            return response

        payload = _decode_body(response)
        failure = classify_failure(
            response.status_code,
            payload,
            scope=request_namespace(request.path),
            recoverable=not self._is_exempt(request.path),
        )
        logger.warning(f"API error {response.status_code} {request.method} {request.path}")
        return await self._handle_failure(request, response, failure, payload)

    async def _handle_failure(
        self,
        request: ApiRequest,
        response: httpx.Response,
        failure: RequestFailure,
        payload: Any,
    ) -> httpx.Response:
        """After-hook for failed responses"""
        error_kwargs = dict(status_code=response.status_code, failure=failure, payload=payload)

        if isinstance(failure, Unauthorized):
            if request.is_retry:
                raise ApiError(f"Request to {request.path} unauthorized after retry", **error_kwargs)
            return await self._recover_unauthorized(request, failure, error_kwargs)

        if isinstance(failure, Forbidden):
            if request.notify:
                self.session.notifier.error(ACCESS_DENIED_MESSAGE)
            raise ApiError(ACCESS_DENIED_MESSAGE, **error_kwargs)

        if isinstance(failure, ServerFault):
            if request.notify:
                self.session.notifier.error(SERVER_ERROR_MESSAGE)
            raise ApiError(SERVER_ERROR_MESSAGE, **error_kwargs)

        if isinstance(failure, Other):
            if failure.message and request.notify and not request.is_retry:
                self.session.notifier.error(failure.message)
            raise ApiError(failure.message or f"Request to {request.path} failed", **error_kwargs)

        raise TypeError(f"Unhandled request failure: {failure!r}")

    async def _recover_unauthorized(
        self,
        request: ApiRequest,
        failure: Unauthorized,
        error_kwargs: Dict[str, Any],
    ) -> httpx.Response:
        if failure.scope in (Role.ADMIN, Role.SELLER):
            role = failure.scope
            logger.info(f"{role.value.capitalize()} token expired, logging out")
            self.session.expire(role)
            raise SessionExpiredError(role, EXPIRY_MESSAGES[role], **error_kwargs)

        try:
            token = await self.refresh.refresh()
        except RefreshFailedError as e:
            raise SessionExpiredError(Role.CUSTOMER, EXPIRY_MESSAGES[Role.CUSTOMER], **error_kwargs) from e

        return await self.send(request.with_fresh_token(token))

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        notify: bool = True,
    ) -> Any:
        """Send a request and return its decoded JSON body"""
        response = await self.send(
            ApiRequest(method=method, path=path, json=json, params=params or {}, notify=notify)
        )
        return _decode_body(response)

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, notify: bool = True) -> Any:
        return await self.request("GET", path, params=params, notify=notify)

    async def post(self, path: str, json: Any = None, notify: bool = True) -> Any:
        return await self.request("POST", path, json=json, notify=notify)

    async def put(self, path: str, json: Any = None, notify: bool = True) -> Any:
        return await self.request("PUT", path, json=json, notify=notify)

    async def delete(self, path: str, notify: bool = True) -> Any:
        return await self.request("DELETE", path, notify=notify)
