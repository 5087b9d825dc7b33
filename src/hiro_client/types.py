"""Request-side value types for the HIRO client."""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Optional, Union

Content = Union[bytes, str, Callable[[], Iterable[bytes]]]


@dataclass(frozen=True)
class RequestSpec:
    """One logical authenticated request.

    ``content`` may be a zero-argument callable returning an iterable of
    bytes; it is called once per physical attempt so the body can be
    replayed after a token refresh or a transport retry.
    """

    method: str = "GET"
    path: Optional[str] = None
    uri: Optional[str] = None
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    fragment: Optional[str] = None
    content: Optional[Content] = None
    content_type: Optional[str] = None
    timeout: Optional[float] = None

    def body(self) -> Union[bytes, str, Iterable[bytes], None]:
        """Body for one physical attempt."""
        if callable(self.content):
            return self.content()
        return self.content


@dataclass
class RetryContext:
    """Retry bookkeeping of a single ``execute`` call."""

    max_attempts: int
    attempt: int = 0
    auth_retried: bool = False
    last_error: Optional[Exception] = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts
