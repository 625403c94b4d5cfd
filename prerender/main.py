from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from prerender.routes import render
from prerender.services.render_service import shutdown_render_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    shutdown_render_service()


app = FastAPI(title="Prerender", lifespan=lifespan)
app.include_router(render.router)
