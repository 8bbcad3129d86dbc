"""Request-scoped access to the shared clients created in the app lifespan."""
import httpx
from fastapi import Request

from retroportal.archive import ArchiveClient


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_archive(request: Request) -> ArchiveClient:
    return request.app.state.archive


def get_image_converter(request: Request):
    return request.app.state.converter
