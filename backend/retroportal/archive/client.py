"""Thin async client for the archive's search, metadata and Wayback CDX APIs."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from retroportal.config import ARCHIVE_BASE_URL, SEARCH_ROWS, WAYBACK_CDX_URL
from retroportal.errors import ItemNotFound, UpstreamApiError

logger = logging.getLogger("retroportal.archive")

ANNOUNCEMENTS_PATH = "/services/offshoot/home-page/announcements.php"
MEDIACOUNTS_PATH = "/services/offshoot/home-page/mediacount.php"


def _unwrap(data: Any) -> Any:
    # Home page services answer {"success": true, "value": ...}
    if isinstance(data, dict) and "value" in data:
        return data["value"]
    return data


@dataclass
class SearchPage:
    docs: list[dict[str, Any]] = field(default_factory=list)
    num_found: int = 0


class ArchiveClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = ARCHIVE_BASE_URL,
        cdx_url: str = WAYBACK_CDX_URL,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.cdx_url = cdx_url

    async def _get_json(self, url: str, params: Optional[Any] = None) -> Any:
        try:
            resp = await self.client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamApiError(f"{url} returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamApiError(f"{url} failed: {e!r}") from e

    async def search_items(
        self,
        query: str,
        page: int = 1,
        rows: int = SEARCH_ROWS,
        fields: Sequence[str] = ("identifier", "title"),
        sort: Optional[str] = None,
    ) -> SearchPage:
        params: list[tuple[str, Any]] = [("q", query), ("rows", rows), ("page", max(1, page)), ("output", "json")]
        params += [("fl[]", f) for f in fields]
        if sort:
            params.append(("sort[]", sort))
        data = await self._get_json(f"{self.base_url}/advancedsearch.php", params)
        response = data.get("response") or {}
        return SearchPage(docs=response.get("docs") or [], num_found=int(response.get("numFound") or 0))

    async def top_collections(self, count: int) -> list[dict[str, Any]]:
        page = await self.search_items(
            "mediatype:collection",
            rows=count,
            fields=("identifier", "title", "downloads"),
            sort="downloads desc",
        )
        return page.docs

    async def announcements(self) -> list[dict[str, str]]:
        """Home page announcements as {"title", "link"} dicts."""
        data = _unwrap(await self._get_json(f"{self.base_url}{ANNOUNCEMENTS_PATH}"))
        docs = data.get("docs", []) if isinstance(data, dict) else data
        return [
            {"title": d.get("title", ""), "link": d.get("link") or d.get("url") or ""}
            for d in docs or []
            if isinstance(d, dict) and d.get("title")
        ]

    async def mediacounts(self) -> dict[str, int]:
        """Item count per media type, in the order the archive lists them."""
        data = _unwrap(await self._get_json(f"{self.base_url}{MEDIACOUNTS_PATH}"))
        counts = data.get("counts", data) if isinstance(data, dict) else {}
        result: dict[str, int] = {}
        for mediatype, value in counts.items():
            try:
                result[mediatype] = int(value)
            except (TypeError, ValueError):
                logger.debug("Skipping media count %s=%r", mediatype, value)
        return result

    async def get_item(self, identifier: str) -> dict[str, Any]:
        data = await self._get_json(f"{self.base_url}/metadata/{identifier}")
        # Unknown identifiers come back as 200 with an empty document
        if not data or "metadata" not in data:
            raise ItemNotFound(identifier)
        return data

    async def get_snapshot_matches(
        self,
        url: str,
        filters: Sequence[str] = (),
        limit: int = 500,
        collapse: Optional[str] = None,
        fields: Sequence[str] = ("original", "statuscode", "timestamp"),
    ) -> list[dict[str, str]]:
        params: list[tuple[str, Any]] = [
            ("url", url),
            ("output", "json"),
            ("limit", limit),
            ("fl", ",".join(fields)),
        ]
        if collapse:
            params.append(("collapse", collapse))
        params += [("filter", f) for f in filters]
        rows = await self._get_json(self.cdx_url, params)
        if not rows:
            return []
        header, *body = rows
        return [dict(zip(header, row)) for row in body]
