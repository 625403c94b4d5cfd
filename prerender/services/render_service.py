from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, TypeVar

from prerender.schemas import AnimationOptions, ScreenshotOptions, SerializedResponse, Viewport
from prerender.services.browser import BrowserWorker
from prerender.services.captures import CaptureStore
from prerender.services.config import RendererSettings, get_settings
from prerender.services.encoder import FrameEncoder
from prerender.services.renderer import Renderer
from prerender.services.session import SessionFactory

LOGGER = logging.getLogger("prerender.service")

T = TypeVar("T")


class RenderService:
    """Run renderer operations on the browser thread and await them from async code."""

    def __init__(self, settings: RendererSettings, worker: Optional[BrowserWorker] = None) -> None:
        self._settings = settings
        self._worker = worker or BrowserWorker(browser_args=settings.browser_args)
        self._captures = CaptureStore(settings.captures_dir)
        self._encoder = FrameEncoder(
            binary=settings.ffmpeg_binary,
            input_frame_rate=settings.input_frame_rate,
            output_frame_rate=settings.output_frame_rate,
            pixel_format=settings.pixel_format,
        )

    @property
    def settings(self) -> RendererSettings:
        return self._settings

    def _renderer(self, sessions: SessionFactory) -> Renderer:
        return Renderer(sessions, settings=self._settings, captures=self._captures, encoder=self._encoder)

    async def _run(self, operation: Callable[[Renderer], T]) -> T:
        future = self._worker.submit(lambda sessions: operation(self._renderer(sessions)))
        return await asyncio.wrap_future(future)

    async def serialize(self, url: str, is_mobile: bool) -> SerializedResponse:
        return await self._run(lambda renderer: renderer.serialize(url, is_mobile))

    async def screenshot(
        self,
        url: str,
        is_mobile: bool,
        dimensions: Viewport,
        options: Optional[ScreenshotOptions] = None,
    ) -> bytes:
        return await self._run(lambda renderer: renderer.screenshot(url, is_mobile, dimensions, options))

    async def render_animation(self, url: str, options: Optional[AnimationOptions] = None) -> Path:
        return await self._run(lambda renderer: renderer.render_animation(url, options))

    def shutdown(self) -> None:
        self._worker.shutdown()


_render_service: Optional[RenderService] = None


def get_render_service() -> RenderService:
    global _render_service
    if _render_service is None:
        _render_service = RenderService(get_settings())
    return _render_service


def shutdown_render_service() -> None:
    global _render_service
    if _render_service is not None:
        LOGGER.info("Shutting down render service")
        _render_service.shutdown()
        _render_service = None
