"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from jinja2 import TemplateNotFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from retroportal.api.media import router as media_router
from retroportal.api.routes import router as pages_router
from retroportal.archive import ArchiveClient
from retroportal.config import (
    FETCH_CONNECT_TIMEOUT,
    FETCH_READ_TIMEOUT,
    HTTP_USER_AGENT,
    STATIC_DIR,
    TEMPLATES_DIR,
    logger as config_logger,
)
from retroportal.conversion.converter import get_converter
from retroportal.errors import ItemNotFound, PortalError
from retroportal.modes import ClientModeMiddleware, JinjaRenderer, renderer_for

logger = logging.getLogger("retroportal.app")
logging.getLogger("uvicorn").setLevel(logging.INFO)


def create_http_client() -> httpx.AsyncClient:
    timeout = httpx.Timeout(FETCH_READ_TIMEOUT, connect=FETCH_CONNECT_TIMEOUT)
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": HTTP_USER_AGENT},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own collaborators before startup
    state = app.state
    if getattr(state, "http_client", None) is None:
        state.http_client = create_http_client()
    if getattr(state, "archive", None) is None:
        state.archive = ArchiveClient(state.http_client)
    if getattr(state, "converter", None) is None:
        state.converter = get_converter()
    if getattr(state, "renderer", None) is None:
        state.renderer = JinjaRenderer(TEMPLATES_DIR)
    config_logger.info("Portal started with converter %s", type(state.converter).__name__)
    yield
    await state.http_client.aclose()
    config_logger.info("Portal shutting down")


async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s: %s", request.url.path, exc.detail or exc.message)
    else:
        logger.warning("%s: %s", request.url.path, exc.detail or exc.message)
    renderer = renderer_for(request)
    if isinstance(exc, ItemNotFound):
        return renderer.render(request, "notfound", {"identifier": exc.identifier}, status_code=404)
    return renderer.render(request, "message", {"message": exc.message}, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        logger.info("404: %s", request.url.path)
        message = "Page not found"
    else:
        logger.warning("%s: HTTP %s %s", request.url.path, exc.status_code, exc.detail)
        message = exc.detail if exc.status_code < 500 else "Something went wrong"
    return renderer_for(request).render(request, "message", {"message": message}, status_code=exc.status_code)


async def template_not_found_handler(request: Request, exc: TemplateNotFound):
    # No mode template can be trusted here, so answer in plain text
    logger.error("%s: template not found: %s", request.url.path, exc.name)
    return PlainTextResponse("Internal Server Error", status_code=500)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Retro Archive Portal",
        description="Archive browsing for old and small browsers, with GIF/WBMP image transcoding.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(ClientModeMiddleware)
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(TemplateNotFound, template_not_found_handler)
    if STATIC_DIR.is_dir():
        app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    app.include_router(media_router)
    app.include_router(pages_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from retroportal.config import HOST, PORT
    uvicorn.run("retroportal.main:app", host=HOST, port=PORT)
