"""Community signals: Stack Overflow tag stats, subreddit activity, npm downloads.

The three panels are fetched concurrently and independently; each has its
own cache entry and TTL, and a failure in one never hides the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from config import Settings
from models.schemas import (
    CommunityData,
    Discussion,
    NpmData,
    NpmDownloads,
    Question,
    RedditData,
    StackOverflowData,
    SubredditStats,
    TagStats,
)
from services.cache import CacheService
from utils.tool_names import compact_name, normalize_tool_name, npm_package_name, stackoverflow_tag

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TOP_ITEMS = 5


def subreddit_candidates(tool_name: str) -> list[str]:
    """Guesses for a tool's subreddit handle, tried in order."""
    base = compact_name(tool_name)
    candidates = [base, f"{base}js", f"{base}dev"]
    return list(dict.fromkeys(c for c in candidates if c))


def download_trend(last_week: int, last_month: int) -> str:
    """Compare the weekly rate against the monthly average."""
    if last_month <= 0:
        return "stable"
    ratio = (last_week * 30 / 7) / last_month
    if ratio > 1.1:
        return "increasing"
    if ratio < 0.9:
        return "decreasing"
    return "stable"


class CommunityClient:
    """Fetches Q&A, forum and package-registry statistics for a tool."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheService,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": "toolscope/1.0"},
            timeout=self._settings.community_timeout,
            transport=self._transport,
        )

    async def fetch_data(self, tool_name: str) -> CommunityData | None:
        """Return whichever panels could be fetched, or ``None`` if none could."""
        tool = normalize_tool_name(tool_name)
        s = self._settings

        async with self._client() as client:
            so, reddit, npm = await asyncio.gather(
                self._panel("stackoverflow", tool, s.ttl_stackoverflow, StackOverflowData,
                            lambda: self.fetch_stackoverflow(client, tool)),
                self._panel("reddit", tool, s.ttl_reddit, RedditData,
                            lambda: self.fetch_reddit(client, tool)),
                self._panel("npm", tool, s.ttl_npm, NpmData,
                            lambda: self.fetch_npm(client, tool)),
                return_exceptions=True,
            )

        panels: dict[str, Any] = {}
        for name, result in (("stackoverflow", so), ("reddit", reddit), ("npm", npm)):
            if isinstance(result, BaseException):
                logger.warning("Community panel %s failed for %r: %s", name, tool, result)
                result = None
            panels[name] = result

        data = CommunityData(**panels)
        if data.is_empty():
            logger.info("No community data found for %r", tool)
            return None
        return data

    async def _panel(
        self,
        source: str,
        tool: str,
        ttl: int,
        model: type[M],
        loader: Callable[[], Awaitable[M | None]],
    ) -> M | None:
        key = CacheService.community_key(tool, source)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.info("%s cache hit for %s", source, tool)
            return model.model_validate(cached)

        try:
            data = await loader()
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Error fetching %s data for %r: %s", source, tool, exc)
            stale = await self._cache.get_stale(key)
            if stale is None:
                return None
            logger.info("Returning stale %s cache for %s", source, tool)
            return model.model_validate(stale)

        if data is None:
            logger.info("No %s data for %r", source, tool)
            return None
        await self._cache.set(key, data.model_dump(mode="json"), ttl)
        return data

    async def _get_json(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None
    ) -> Any | None:
        """GET *url* as JSON; ``None`` on 404, raises on any other non-2xx."""
        resp = await client.get(url, params=params)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    # -- Stack Overflow -------------------------------------------------------

    async def fetch_stackoverflow(
        self, client: httpx.AsyncClient, tool: str
    ) -> StackOverflowData | None:
        base = self._settings.stackexchange_api_base
        tag = stackoverflow_tag(tool)
        params: dict[str, Any] = {"site": "stackoverflow"}
        if self._settings.stackoverflow_key:
            params["key"] = self._settings.stackoverflow_key

        info, search = await asyncio.gather(
            self._get_json(client, f"{base}/tags/{quote(tag, safe='')}/info", params),
            self._get_json(
                client,
                f"{base}/search",
                {**params, "tagged": tag, "sort": "votes", "order": "desc", "pagesize": TOP_ITEMS},
            ),
            return_exceptions=True,
        )
        if isinstance(info, BaseException):
            raise info

        items = (info or {}).get("items") or []
        if not items:
            return None
        tag_data = items[0]

        questions: list[Question] = []
        if isinstance(search, BaseException):
            logger.warning("Omitting top questions for tag %s: %s", tag, search)
        else:
            for q in ((search or {}).get("items") or [])[:TOP_ITEMS]:
                questions.append(
                    Question(
                        title=q.get("title", ""),
                        score=q.get("score", 0),
                        view_count=q.get("view_count", 0),
                        link=q.get("link"),
                    )
                )

        return StackOverflowData(
            tag=tag,
            tag_stats=TagStats(
                question_count=tag_data.get("count", 0),
                watch_count=tag_data.get("watch_count", 0) or 0,
            ),
            top_questions=questions,
        )

    # -- Reddit ---------------------------------------------------------------

    async def fetch_reddit(self, client: httpx.AsyncClient, tool: str) -> RedditData | None:
        base = self._settings.reddit_api_base
        last_error: Exception | None = None

        for handle in subreddit_candidates(tool):
            about, hot = await asyncio.gather(
                self._get_json(client, f"{base}/r/{handle}/about.json"),
                self._get_json(client, f"{base}/r/{handle}/hot.json", {"limit": 10}),
                return_exceptions=True,
            )
            if isinstance(about, httpx.HTTPStatusError):
                # Redirects and 403s mean the handle is a search page or private.
                if about.response.status_code >= 500:
                    last_error = about
                continue
            if isinstance(about, httpx.HTTPError):
                last_error = about
                continue
            if isinstance(about, BaseException):
                raise about

            if not about or about.get("kind") != "t5":
                continue

            posts: list[Any] = []
            if isinstance(hot, BaseException):
                logger.warning("Omitting hot posts for r/%s: %s", handle, hot)
            else:
                posts = ((hot or {}).get("data") or {}).get("children") or []

            info = about.get("data") or {}
            return RedditData(
                subreddit=SubredditStats(
                    name=handle,
                    subscribers=info.get("subscribers") or 0,
                    active_users=info.get("active_user_count") or info.get("accounts_active") or 0,
                ),
                top_discussions=[
                    Discussion(
                        title=p["data"].get("title", ""),
                        score=p["data"].get("score", 0),
                        num_comments=p["data"].get("num_comments", 0),
                        url=f"https://reddit.com{p['data'].get('permalink', '')}",
                    )
                    for p in posts[:TOP_ITEMS]
                ],
            )

        if last_error is not None:
            raise last_error
        return None

    # -- npm ------------------------------------------------------------------

    async def fetch_npm(self, client: httpx.AsyncClient, tool: str) -> NpmData | None:
        package = npm_package_name(tool)
        registry = self._settings.npm_registry_base
        downloads = self._settings.npm_downloads_base

        doc, week, month = await asyncio.gather(
            self._get_json(client, f"{registry}/{quote(package, safe='@')}"),
            self._get_json(client, f"{downloads}/downloads/point/last-week/{package}"),
            self._get_json(client, f"{downloads}/downloads/point/last-month/{package}"),
            return_exceptions=True,
        )
        if isinstance(doc, BaseException):
            raise doc
        if doc is None:
            return None

        counts: list[int] = []
        for period, point in (("last-week", week), ("last-month", month)):
            if isinstance(point, BaseException):
                logger.warning("No %s downloads for %s: %s", period, package, point)
                point = None
            counts.append((point or {}).get("downloads", 0))
        last_week, last_month = counts
        latest = (doc.get("dist-tags") or {}).get("latest") or "0.0.0"
        versions = doc.get("versions") or {}
        dependencies = (versions.get(latest) or {}).get("dependencies") or {}

        return NpmData(
            package=package,
            downloads=NpmDownloads(
                last_week=last_week,
                last_month=last_month,
                trend=download_trend(last_week, last_month),
            ),
            latest_version=latest,
            total_versions=len(versions),
            dependency_count=len(dependencies),
        )
