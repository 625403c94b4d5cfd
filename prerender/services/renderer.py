from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urlsplit

from prerender.schemas import (
    AnimationOptions,
    RenderKind,
    RenderRequest,
    ScreenshotErrorType,
    ScreenshotOptions,
    SerializedResponse,
    Viewport,
)
from prerender.services.captures import AnimationCapture, CaptureStore
from prerender.services.config import RendererSettings
from prerender.services.encoder import FrameAssemblyError, FrameEncoder
from prerender.services.session import (
    BrowserSession,
    EvaluationError,
    FirstResponseRecorder,
    NavigationError,
    NavigationOutcome,
    SessionFactory,
)
from prerender.services.status import (
    FORBIDDEN_STATUS,
    NO_RESPONSE_STATUS,
    STATUS_META_SELECTOR,
    is_metadata_response,
    parse_status_override,
    resolve_status,
)

LOGGER = logging.getLogger("prerender.renderer")

MOBILE_USERAGENT = (
    "Mozilla/5.0 (Linux; Android 8.0.0; Pixel 2 XL Build/OPD1.170816.004) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/68.0.3440.75 Mobile Safari/537.36"
)

# Force the web component polyfills so shadow DOM content lands in the light DOM
# and survives serialization.
POLYFILL_INIT_SCRIPTS = (
    "customElements.forcePolyfill = true",
    "ShadyDOM = {force: true}",
    "ShadyCSS = {shimcssproperties: true}",
)

STATUS_OVERRIDE_SCRIPT = (
    "(selector) => {"
    "  const el = document.querySelector(selector);"
    "  return el ? el.getAttribute('content') : null;"
    "}"
)

STRIP_PAGE_SCRIPT = (
    "() => {"
    "  const elements = document.querySelectorAll("
    "    'script:not([type]), script[type*=\"javascript\"], link[rel=import]'"
    "  );"
    "  for (const e of Array.from(elements)) {"
    "    e.remove();"
    "  }"
    "}"
)

INJECT_BASE_HREF_SCRIPT = (
    "(origin) => {"
    "  const bases = document.head.querySelectorAll('base');"
    "  if (bases.length) {"
    "    const existing = bases[0].getAttribute('href') || '';"
    "    if (existing.startsWith('/')) {"
    "      bases[0].setAttribute('href', origin + existing);"
    "    }"
    "    return;"
    "  }"
    "  const base = document.createElement('base');"
    "  base.setAttribute('href', origin);"
    "  document.head.insertAdjacentElement('afterbegin', base);"
    "}"
)

SERIALIZE_SCRIPT = "document.firstElementChild.outerHTML"

RenderResult = Union[SerializedResponse, bytes, Path]


class ScreenshotError(Exception):
    def __init__(self, error_type: ScreenshotErrorType) -> None:
        super().__init__(error_type.value)
        self.type = error_type


def request_origin(url: str) -> str:
    """Scheme and host (with port) of ``url``, without user info or path."""
    parts = urlsplit(url)
    host = parts.netloc.rpartition("@")[2]
    return f"{parts.scheme}://{host}"


class Renderer:
    """Drive one browser session per request and turn the live DOM into artifacts."""

    def __init__(
        self,
        sessions: SessionFactory,
        settings: Optional[RendererSettings] = None,
        captures: Optional[CaptureStore] = None,
        encoder: Optional[FrameEncoder] = None,
    ) -> None:
        self._sessions = sessions
        self._settings = settings or RendererSettings()
        self._captures = captures or CaptureStore(self._settings.captures_dir)
        self._encoder = encoder or FrameEncoder(
            binary=self._settings.ffmpeg_binary,
            input_frame_rate=self._settings.input_frame_rate,
            output_frame_rate=self._settings.output_frame_rate,
            pixel_format=self._settings.pixel_format,
        )

    @property
    def settings(self) -> RendererSettings:
        return self._settings

    @property
    def captures(self) -> CaptureStore:
        return self._captures

    def render(self, request: RenderRequest) -> RenderResult:
        url = str(request.url)
        if request.kind == RenderKind.serialize:
            return self.serialize(url, request.is_mobile)
        if request.kind == RenderKind.screenshot:
            viewport = request.viewport or Viewport(width=self._settings.width, height=self._settings.height)
            return self.screenshot(url, request.is_mobile, viewport, request.screenshot)
        return self.render_animation(url, request.animation)

    def _open_session(self, width: int, height: int, is_mobile: bool) -> BrowserSession:
        session = self._sessions.new_session()
        try:
            session.set_viewport(width, height, is_mobile)
            if is_mobile:
                session.set_user_agent(MOBILE_USERAGENT)
        except Exception:
            session.close()
            raise
        return session

    def _navigate(self, session: BrowserSession, url: str, wait_until: str) -> NavigationOutcome:
        # The listener must exist before navigation starts so a response that
        # arrives ahead of a timeout is still recorded.
        first_response = FirstResponseRecorder()
        session.add_response_listener(first_response)
        try:
            response = session.navigate(url, self._settings.timeout_ms, wait_until)
        except NavigationError as exc:
            outcome = NavigationOutcome(response=first_response.response, error=exc)
            if outcome.timed_out:
                LOGGER.warning(
                    "Navigation to %s timed out after %dms; using first response: %s",
                    url,
                    self._settings.timeout_ms,
                    exc,
                )
            else:
                LOGGER.warning("Navigation to %s failed: %s", url, exc)
            return outcome
        return NavigationOutcome(response=response or first_response.response)

    def _status_override(self, session: BrowserSession) -> Optional[int]:
        try:
            raw = session.evaluate(STATUS_OVERRIDE_SCRIPT, STATUS_META_SELECTOR)
        except EvaluationError as exc:
            LOGGER.debug("Status override lookup failed: %s", exc)
            return None
        return parse_status_override(raw)

    def serialize(self, url: str, is_mobile: bool = False) -> SerializedResponse:
        session = self._open_session(self._settings.width, self._settings.height, is_mobile)
        try:
            for script in POLYFILL_INIT_SCRIPTS:
                session.evaluate_on_new_document(script)

            outcome = self._navigate(session, url, "networkidle")
            response = outcome.response
            if response is None:
                LOGGER.error("No response captured for %s", url)
                return SerializedResponse(status=NO_RESPONSE_STATUS, content="")

            if is_metadata_response(response):
                LOGGER.warning("Refusing to serialize compute metadata response from %s", url)
                return SerializedResponse(status=FORBIDDEN_STATUS, content="")

            status = resolve_status(response.status(), self._status_override(session))

            session.evaluate(STRIP_PAGE_SCRIPT)
            session.evaluate(INJECT_BASE_HREF_SCRIPT, request_origin(url))
            content = session.evaluate(SERIALIZE_SCRIPT)
        finally:
            session.close()

        return SerializedResponse(status=status, content=content or "")

    def screenshot(
        self,
        url: str,
        is_mobile: bool,
        dimensions: Viewport,
        options: Optional[ScreenshotOptions] = None,
    ) -> bytes:
        session = self._open_session(dimensions.width, dimensions.height, is_mobile)
        try:
            outcome = self._navigate(session, url, "networkidle")
            response = outcome.response
            if response is None:
                raise ScreenshotError(ScreenshotErrorType.no_response)
            if is_metadata_response(response):
                raise ScreenshotError(ScreenshotErrorType.forbidden)
            return session.capture_image(**screenshot_capture_options(options))
        finally:
            session.close()

    def render_animation(self, url: str, options: Optional[AnimationOptions] = None) -> Path:
        opts = options or AnimationOptions()
        capture = self._captures.new_capture()
        try:
            self._capture_frames(url, opts, capture)
            LOGGER.info("Captured %s frames for %s as %s", len(capture.frames), url, capture.capture_id)
            try:
                return self._encoder.assemble(capture.frame_pattern, capture.video_path, capture.frames)
            except FrameAssemblyError:
                self._captures.purge_video(capture)
                raise
        finally:
            if not self._settings.keep_capture_frames:
                self._captures.purge_frames(capture)

    def _capture_frames(self, url: str, opts: AnimationOptions, capture: AnimationCapture) -> None:
        session = self._open_session(opts.width, opts.height, False)
        try:
            # Animated pages initialise asynchronously; readiness comes from
            # the page flag, not from network idle.
            session.navigate(url, self._settings.timeout_ms, "load")

            ready = f"window.{opts.ready_var_name} === true"
            LOGGER.debug("Waiting for %s", ready)
            session.wait_for_condition(ready, self._settings.timeout_ms)

            advance = f"window.{opts.next_func_name}()"
            for index in range(opts.frames):
                path = capture.record(index)
                LOGGER.debug("Capturing frame %s", path)
                session.capture_image(path=str(path))
                session.wait_for_condition(advance, self._settings.timeout_ms)
        finally:
            session.close()


def screenshot_capture_options(options: Optional[ScreenshotOptions]) -> Dict[str, Any]:
    """Merge caller options over the fixed defaults; the image type always wins."""
    merged: Dict[str, Any] = {"full_page": False}
    if options is not None:
        merged.update(options.model_dump(exclude_none=True, by_alias=False))
    merged["type"] = "jpeg"
    return merged
