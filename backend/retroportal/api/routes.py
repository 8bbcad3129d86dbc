"""Page routes. Every page goes through the request's ModeRenderer."""
import html
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from retroportal.api.deps import get_archive
from retroportal.archive import ArchiveClient
from retroportal.config import SNAPSHOT_LIMIT, TOP_COLLECTIONS
from retroportal.conversion.models import is_valid_identifier
from retroportal.errors import InvalidIdentifier
from retroportal.formatting import (
    DEC_PREFIXES,
    date_to_yyyymmdd,
    format_unit,
    make_array,
    parse_wayback_timestamp,
    try_parse_int,
)
from retroportal.modes import ModeRenderer, adapt_filters, get_renderer

logger = logging.getLogger("retroportal.api")
router = APIRouter(tags=["pages"])

STATIC_PAGES = ("contact", "projects", "people", "volunteer", "donate", "about")


def _check_identifier(identifier: str) -> str:
    if not is_valid_identifier(identifier):
        raise InvalidIdentifier(f"Invalid identifier {identifier!r}")
    return identifier


@router.get("/")
async def index(
    request: Request,
    renderer: ModeRenderer = Depends(get_renderer),
    archive: ArchiveClient = Depends(get_archive),
):
    announcements = await archive.announcements()
    counts = await archive.mediacounts()
    collections = await archive.top_collections(TOP_COLLECTIONS)
    mediacounts = {kind: format_unit(n, DEC_PREFIXES) for kind, n in counts.items()}
    top_collections = [
        {
            "identifier": c.get("identifier"),
            "title": c.get("title") or c.get("identifier"),
            "downloads": format_unit(c.get("downloads"), DEC_PREFIXES),
        }
        for c in collections
    ]
    return renderer.render(
        request,
        "index",
        {
            "announcements": announcements,
            "mediacounts": mediacounts,
            "mediacounts_raw": counts,
            "top_collections": top_collections,
        },
    )


def _static_page(name: str):
    async def page(request: Request, renderer: ModeRenderer = Depends(get_renderer)):
        return renderer.render(request, name)

    page.__name__ = f"{name}_page"
    return page


for _name in STATIC_PAGES:
    router.add_api_route(f"/{_name}", _static_page(_name), methods=["GET"], name=_name)


@router.get("/ua", response_class=PlainTextResponse)
def user_agent(request: Request):
    """Echo the User-Agent, handy when adding classifier rules."""
    ua = request.headers.get("user-agent", "")
    logger.info("User agent: %s", ua)
    return ua


@router.get("/search")
async def search(
    request: Request,
    query: str = Query(""),
    page: str = Query("1"),
    renderer: ModeRenderer = Depends(get_renderer),
    archive: ArchiveClient = Depends(get_archive),
):
    page_num = max(1, try_parse_int(page))
    query = query.strip()
    if not query:
        return renderer.render(
            request, "results", {"results": None, "num_found": 0, "page": page_num, "query": ""}
        )
    logger.info('Search "%s" page %s', query, page_num)
    result = await archive.search_items(query, page=page_num, fields=("identifier", "title"))
    return renderer.render(
        request,
        "results",
        {"results": result.docs, "num_found": result.num_found, "page": page_num, "query": query},
    )


@router.get("/details/{identifier}")
async def details(
    request: Request,
    identifier: str,
    renderer: ModeRenderer = Depends(get_renderer),
    archive: ArchiveClient = Depends(get_archive),
):
    item = await archive.get_item(_check_identifier(identifier))
    metadata = item.get("metadata") or {}
    description = " ".join(make_array(metadata.get("description"))) or "[No description]"
    return renderer.render(
        request,
        "details",
        {
            "identifier": identifier,
            "title": metadata.get("title") or identifier,
            "pub_date": metadata.get("date"),
            "creator": ", ".join(make_array(metadata.get("creator"))),
            "topics": make_array(metadata.get("subject")),
            "item_size": format_unit(item.get("item_size")) if item.get("item_size") else "-",
            "description": html.unescape(description),
            "collections": make_array(metadata.get("collection")),
            "uploader": metadata.get("uploader"),
            "upload_date": metadata.get("addeddate"),
        },
    )


def _file_row(f: dict, fallback_mtime) -> dict:
    mtime = try_parse_int(f.get("mtime") or fallback_mtime, default=0)
    size = try_parse_int(f.get("size"), default=-1)
    return {
        "name": f.get("name", ""),
        "date": date_to_yyyymmdd(datetime.fromtimestamp(mtime, tz=timezone.utc)),
        "size": format_unit(size) if size >= 0 else "-",
    }


@router.get("/download/{identifier}")
async def download(
    request: Request,
    identifier: str,
    renderer: ModeRenderer = Depends(get_renderer),
    archive: ArchiveClient = Depends(get_archive),
):
    item = await archive.get_item(_check_identifier(identifier))
    files = [_file_row(f, item.get("item_last_updated")) for f in item.get("files") or []]
    return renderer.render(request, "download", {"files": files, "identifier": identifier})


@router.get("/web")
async def web(
    request: Request,
    query: str = Query(""),
    renderer: ModeRenderer = Depends(get_renderer),
    archive: ArchiveClient = Depends(get_archive),
):
    """Wayback captures of a URL, one per month."""
    query = query.strip()
    if not query:
        return renderer.render(request, "web", {"results": None, "query": ""})
    matches = await archive.get_snapshot_matches(
        query,
        filters=adapt_filters(renderer.mode),
        limit=SNAPSHOT_LIMIT,
        collapse="timestamp:6",
    )
    results = [{**m, "date": _snapshot_date(m.get("timestamp", ""))} for m in matches]
    return renderer.render(request, "web", {"results": results, "query": query})


def _snapshot_date(timestamp: str) -> str:
    try:
        return date_to_yyyymmdd(parse_wayback_timestamp(timestamp))
    except ValueError:
        logger.debug("Unparseable snapshot timestamp %r", timestamp)
        return timestamp
