from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, Response, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from prerender.services.session import (
    BrowserResponse,
    BrowserSession,
    CaptureError,
    EvaluationError,
    NavigationError,
    NavigationTimeout,
    ResponseListener,
    SessionClosed,
    SessionFactory,
    SessionUnavailable,
)

LOGGER = logging.getLogger("prerender.browser")

T = TypeVar("T")


class PlaywrightResponse(BrowserResponse):
    def __init__(self, response: Response) -> None:
        self._response = response

    def status(self) -> int:
        return self._response.status

    def headers(self) -> Mapping[str, str]:
        return self._response.headers


class PlaywrightSession(BrowserSession):
    """Browser session backed by a dedicated Playwright context and page.

    Viewport, mobile emulation and user agent are context options in
    Playwright, so they are collected first and the context is created on the
    first call that needs the page. Later viewport changes resize the page.
    """

    def __init__(self, browser: Browser) -> None:
        self._browser = browser
        self._context_kwargs: Dict[str, Any] = {}
        self._init_scripts: List[str] = []
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed("Session has already been closed")

    def _ensure_page(self) -> Page:
        self._ensure_open()
        if self._page is None:
            try:
                self._context = self._browser.new_context(**self._context_kwargs)
                for script in self._init_scripts:
                    self._context.add_init_script(script=script)
                self._page = self._context.new_page()
            except PlaywrightError as exc:
                raise SessionUnavailable(f"Unable to open browser context: {exc}") from exc
        return self._page

    def set_viewport(self, width: int, height: int, is_mobile: bool = False) -> None:
        self._ensure_open()
        if self._page is not None:
            if is_mobile != bool(self._context_kwargs.get("is_mobile")):
                LOGGER.warning("Mobile emulation cannot change after the page is open; ignoring")
            self._page.set_viewport_size({"width": width, "height": height})
            return
        self._context_kwargs["viewport"] = {"width": width, "height": height}
        self._context_kwargs["is_mobile"] = is_mobile
        self._context_kwargs["has_touch"] = is_mobile

    def set_user_agent(self, user_agent: str) -> None:
        self._ensure_open()
        if self._page is not None:
            self._page.set_extra_http_headers({"User-Agent": user_agent})
            return
        self._context_kwargs["user_agent"] = user_agent

    def evaluate_on_new_document(self, script: str) -> None:
        self._ensure_open()
        if self._context is not None:
            self._context.add_init_script(script=script)
            return
        self._init_scripts.append(script)

    def add_response_listener(self, listener: ResponseListener) -> None:
        page = self._ensure_page()
        page.on("response", lambda response: listener(PlaywrightResponse(response)))

    def navigate(self, url: str, timeout_ms: int, wait_until: str = "load") -> Optional[BrowserResponse]:
        page = self._ensure_page()
        try:
            response = page.goto(url, timeout=timeout_ms, wait_until=wait_until)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(str(exc)) from exc
        except PlaywrightError as exc:
            raise NavigationError(str(exc)) from exc
        return PlaywrightResponse(response) if response is not None else None

    def evaluate(self, script: str, *args: Any) -> Any:
        page = self._ensure_page()
        try:
            if not args:
                return page.evaluate(script)
            if len(args) == 1:
                return page.evaluate(script, args[0])
            return page.evaluate(script, list(args))
        except PlaywrightError as exc:
            raise EvaluationError(str(exc)) from exc

    def capture_image(self, **options: Any) -> bytes:
        page = self._ensure_page()
        try:
            return page.screenshot(**options)
        except PlaywrightError as exc:
            raise CaptureError(str(exc)) from exc

    def wait_for_condition(self, expression: str, timeout_ms: Optional[int] = None) -> None:
        page = self._ensure_page()
        kwargs: Dict[str, Any] = {}
        if timeout_ms is not None:
            kwargs["timeout"] = timeout_ms
        try:
            page.wait_for_function(expression, **kwargs)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Timed out waiting for {expression}") from exc
        except PlaywrightError as exc:
            raise EvaluationError(str(exc)) from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._context is None:
            return
        try:
            self._context.close()
        except PlaywrightError as exc:  # pragma: no cover - browser already gone
            LOGGER.warning("Failed to close browser context: %s", exc)
        finally:
            self._context = None
            self._page = None


class PlaywrightSessionFactory(SessionFactory):
    def __init__(self, browser: Browser) -> None:
        self._browser = browser

    def new_session(self) -> BrowserSession:
        if not self._browser.is_connected():
            raise SessionUnavailable("Browser is not connected")
        return PlaywrightSession(self._browser)


class BrowserWorker:
    """Own Playwright and one Chromium instance on a dedicated thread.

    The Playwright sync API is bound to the thread that started it, so every
    call touching the browser is submitted through :meth:`submit`.
    """

    def __init__(self, browser_args: Optional[List[str]] = None, headless: bool = True) -> None:
        self._browser_args = list(browser_args or [])
        self._headless = headless
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="prerender-browser")
        self._lock = threading.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    def _launch(self) -> Browser:
        if self._browser is not None and self._browser.is_connected():
            return self._browser
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=self._headless, args=self._browser_args)
        except PlaywrightError as exc:
            raise SessionUnavailable(f"Unable to launch Chromium: {exc}") from exc
        LOGGER.info("Launched Chromium browser")
        return self._browser

    def submit(self, fn: Callable[[SessionFactory], T]) -> "Future[T]":
        """Run ``fn`` on the browser thread with a session factory for the live browser."""

        def _call() -> T:
            return fn(PlaywrightSessionFactory(self._launch()))

        with self._lock:
            return self._executor.submit(_call)

    def _shutdown_browser(self) -> None:
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as exc:  # pragma: no cover - browser already gone
                LOGGER.debug("Browser close failed: %s", exc)
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        LOGGER.info("Browser session closed")

    def shutdown(self) -> None:
        with self._lock:
            self._executor.submit(self._shutdown_browser).result()
            self._executor.shutdown(wait=True)
