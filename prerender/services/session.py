from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

ResponseListener = Callable[["BrowserResponse"], None]


class SessionError(Exception):
    """Base class for failures raised across the browser session boundary."""


class SessionUnavailable(SessionError):
    pass


class SessionClosed(SessionError):
    pass


class NavigationError(SessionError):
    pass


class NavigationTimeout(NavigationError):
    pass


class EvaluationError(SessionError):
    pass


class CaptureError(SessionError):
    pass


class BrowserResponse:
    def status(self) -> int:  # pragma: no cover - interface stub
        raise NotImplementedError

    def headers(self) -> Mapping[str, str]:  # pragma: no cover - interface stub
        raise NotImplementedError

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers().items():
            if key.lower() == wanted:
                return value
        return None


class BrowserSession:
    """One isolated browsing context, used by exactly one render request."""

    @property
    def closed(self) -> bool:  # pragma: no cover - interface stub
        raise NotImplementedError

    def set_viewport(self, width: int, height: int, is_mobile: bool = False) -> None:  # pragma: no cover
        raise NotImplementedError

    def set_user_agent(self, user_agent: str) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError

    def evaluate_on_new_document(self, script: str) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError

    def add_response_listener(self, listener: ResponseListener) -> None:  # pragma: no cover
        raise NotImplementedError

    def navigate(
        self, url: str, timeout_ms: int, wait_until: str = "load"
    ) -> Optional[BrowserResponse]:  # pragma: no cover - interface stub
        raise NotImplementedError

    def evaluate(self, script: str, *args: Any) -> Any:  # pragma: no cover - interface stub
        raise NotImplementedError

    def capture_image(self, **options: Any) -> bytes:  # pragma: no cover - interface stub
        raise NotImplementedError

    def wait_for_condition(self, expression: str, timeout_ms: Optional[int] = None) -> None:  # pragma: no cover
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError


class SessionFactory:
    def new_session(self) -> BrowserSession:  # pragma: no cover - interface stub
        raise NotImplementedError


class FirstResponseRecorder:
    """Response listener that keeps only the first response it sees."""

    def __init__(self) -> None:
        self.response: Optional[BrowserResponse] = None

    def __call__(self, response: BrowserResponse) -> None:
        if self.response is None:
            self.response = response


@dataclass
class NavigationOutcome:
    """Result of a navigation: the best known response plus any error raised.

    ``response`` is the navigation's own response when it completed, otherwise
    the first response observed before it failed or timed out.
    """

    response: Optional[BrowserResponse] = None
    error: Optional[NavigationError] = None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, NavigationTimeout)
