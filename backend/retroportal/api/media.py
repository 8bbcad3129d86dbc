"""Image endpoint: fetch an archive thumbnail and stream it as GIF or WBMP."""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request

from retroportal.api.deps import get_http_client, get_image_converter
from retroportal.conversion.models import parse_dimension, parse_format
from retroportal.conversion.pipeline import TranscodePipeline, TranscodeResponse

logger = logging.getLogger("retroportal.api.media")
router = APIRouter(tags=["media"])


@router.get("/services/img/{identifier}")
async def transcode_image(
    request: Request,
    identifier: str,
    w: Optional[str] = Query(None, description="Target width; resize needs both w and h"),
    h: Optional[str] = Query(None, description="Target height"),
    output_format: str = Query("gif", alias="format", description="gif | wbmp"),
    client: httpx.AsyncClient = Depends(get_http_client),
    converter=Depends(get_image_converter),
):
    """Errors before the first byte become a status page; later ones abort the connection."""
    pipeline = TranscodePipeline.for_identifier(
        identifier,
        parse_dimension(w),
        parse_dimension(h),
        parse_format(output_format),
        client,
        converter,
    )
    first_chunk = await pipeline.open()
    return TranscodeResponse(pipeline, first_chunk, path=request.url.path)
