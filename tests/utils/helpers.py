"""
Test helper functions for common testing operations

`FakeCommerceApi` stands in for the remote commerce API behind an
`httpx.MockTransport`: routes are registered per (method, path) and every
request that reaches the transport is recorded for later assertions.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

API_BASE_URL = "http://storefront.test/api"
API_PREFIX = "/api"

Handler = Callable[[httpx.Request], httpx.Response]
RouteResult = Union[httpx.Response, Handler, List[Union[httpx.Response, Handler]]]


def json_response(status_code: int = 200, body: Any = None) -> httpx.Response:
    return httpx.Response(status_code, json=body if body is not None else {})


class FakeCommerceApi:
    """Route table + request log backing an httpx.MockTransport"""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Union[httpx.Response, Handler]]] = {}
        self.transport = httpx.MockTransport(self._dispatch)

    def route(self, method: str, path: str, *results: Union[httpx.Response, Handler]) -> None:
        """
        Register responses for a route.

        Several results are served in order; the last one repeats.
        """
        self._routes[(method.upper(), API_PREFIX + path)] = list(results)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        results = self._routes.get((request.method, request.url.path))
        if not results:
            return json_response(404, {"message": f"No route for {request.method} {request.url.path}"})
        result = results.pop(0) if len(results) > 1 else results[0]
        if callable(result):
            return result(request)
        return result

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method.upper() and request.url.path == API_PREFIX + path
        ]

    @staticmethod
    def bearer(request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization")
        if header and header.startswith("Bearer "):
            return header[len("Bearer "):]
        return None

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


def get_log_messages(caplog, level: Optional[str] = None) -> list[str]:
    """Get log messages, optionally filtered by level"""
    if level:
        return [record.getMessage() for record in caplog.records if record.levelname == level.upper()]
    return [record.getMessage() for record in caplog.records]


def assert_no_sensitive_data_in_logs(caplog, sensitive_patterns: list[str]):
    """Assert that sensitive data patterns don't appear in logs"""
    all_logs = " ".join([record.getMessage() for record in caplog.records])

    for pattern in sensitive_patterns:
        assert pattern not in all_logs, f"Sensitive pattern '{pattern}' found in logs"
