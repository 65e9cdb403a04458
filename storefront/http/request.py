from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional

MAX_ATTEMPTS = 2


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ApiRequest:
    """
    An outgoing API call.

    Immutable: a retry is a new request with `attempt` incremented and the
    fresh credential pinned in `bearer_override`. Only the first attempt may
    ever be retried.
    """

    method: str
    path: str
    json: Any = None
    params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    attempt: int = 1
    bearer_override: Optional[str] = None
    # False for background work: failures are logged, never shown to the user
    notify: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "params", _frozen(self.params))
        object.__setattr__(self, "headers", _frozen(self.headers))

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    @property
    def can_retry(self) -> bool:
        return self.attempt < MAX_ATTEMPTS

    def with_fresh_token(self, token: str) -> "ApiRequest":
        """The single retry of this request, carrying a freshly issued token"""
        if not self.can_retry:
            raise RuntimeError(f"{self.method} {self.path} was already retried")
        return replace(self, attempt=self.attempt + 1, bearer_override=token)
