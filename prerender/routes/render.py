from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode, urlsplit

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, Response
from starlette.background import BackgroundTask

from prerender.schemas import AnimationOptions, ScreenshotErrorType, ScreenshotOptions, Viewport
from prerender.services.encoder import FrameAssemblyError
from prerender.services.render_service import RenderService, get_render_service
from prerender.services.renderer import ScreenshotError
from prerender.services.session import NavigationTimeout, SessionError, SessionUnavailable
from prerender.services.status import allows_body

router = APIRouter(tags=["render"])

RenderServiceDep = Depends(get_render_service)

ALLOWED_SCHEMES = {"http", "https"}
OWN_QUERY_PARAMS = {"mobile", "width", "height"}
SCREENSHOT_ERROR_STATUS = {
    ScreenshotErrorType.forbidden: 403,
    ScreenshotErrorType.no_response: 400,
}


def _target_url(url: str, request: Request) -> str:
    """Rebuild the target URL, keeping query parameters that are not ours."""
    if urlsplit(url).scheme.lower() not in ALLOWED_SCHEMES:
        raise HTTPException(status_code=403, detail="Restricted URL")
    extra = [(key, value) for key, value in request.query_params.multi_items() if key not in OWN_QUERY_PARAMS]
    if extra:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{urlencode(extra)}"
    return url


def _session_failure(exc: SessionError) -> HTTPException:
    if isinstance(exc, SessionUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, NavigationTimeout):
        return HTTPException(status_code=504, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


@router.get("/_ah/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/render/{url:path}", response_class=HTMLResponse)
async def render(
    url: str,
    request: Request,
    mobile: bool = Query(default=False),
    service: RenderService = RenderServiceDep,
) -> Response:
    target = _target_url(url, request)
    try:
        result = await service.serialize(target, mobile)
    except SessionError as exc:
        raise _session_failure(exc) from exc
    if not allows_body(result.status):
        return Response(status_code=result.status)
    return HTMLResponse(content=result.content, status_code=result.status)


async def _screenshot(
    url: str,
    request: Request,
    mobile: bool,
    width: Optional[int],
    height: Optional[int],
    options: Optional[ScreenshotOptions],
    service: RenderService,
) -> Response:
    target = _target_url(url, request)
    dimensions = Viewport(
        width=width or service.settings.width,
        height=height or service.settings.height,
    )
    try:
        image = await service.screenshot(target, mobile, dimensions, options)
    except ScreenshotError as exc:
        raise HTTPException(status_code=SCREENSHOT_ERROR_STATUS[exc.type], detail=exc.type.value) from exc
    except SessionError as exc:
        raise _session_failure(exc) from exc
    return Response(content=image, media_type="image/jpeg")


@router.get("/screenshot/{url:path}")
async def screenshot(
    url: str,
    request: Request,
    mobile: bool = Query(default=False),
    width: Optional[int] = Query(default=None, ge=1),
    height: Optional[int] = Query(default=None, ge=1),
    service: RenderService = RenderServiceDep,
) -> Response:
    return await _screenshot(url, request, mobile, width, height, None, service)


@router.post("/screenshot/{url:path}")
async def screenshot_with_options(
    url: str,
    request: Request,
    options: Optional[ScreenshotOptions] = None,
    mobile: bool = Query(default=False),
    width: Optional[int] = Query(default=None, ge=1),
    height: Optional[int] = Query(default=None, ge=1),
    service: RenderService = RenderServiceDep,
) -> Response:
    return await _screenshot(url, request, mobile, width, height, options, service)


@router.post("/animation/{url:path}")
async def animation(
    url: str,
    request: Request,
    options: Optional[AnimationOptions] = None,
    service: RenderService = RenderServiceDep,
) -> FileResponse:
    target = _target_url(url, request)
    if options is not None and options.frames > service.settings.max_animation_frames:
        raise HTTPException(
            status_code=400,
            detail=f"frames must not exceed {service.settings.max_animation_frames}",
        )
    try:
        video = await service.render_animation(target, options)
    except FrameAssemblyError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except SessionError as exc:
        raise _session_failure(exc) from exc
    # The video is only needed for this response.
    return FileResponse(
        path=video,
        media_type="video/mp4",
        filename=video.name,
        background=BackgroundTask(video.unlink, missing_ok=True),
    )
