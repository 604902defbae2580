"""Async GitHub REST API client for repository metrics, README and activity."""

from __future__ import annotations

import asyncio
import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from config import Settings
from models.schemas import Activity, GitHubData, Readme, Release, RepositoryInfo
from services.cache import CacheService
from utils.errors import NotFoundError, UpstreamRateLimitedError, UpstreamUnavailableError
from utils.tool_names import TOOL_REPO_MAP, lookup, normalize_tool_name

logger = logging.getLogger(__name__)

# GitHub returns at most 100 items per page; counts above this are not paginated.
PAGE_CAP = 100
RELEASES_FETCHED = 10
RELEASES_KEPT = 5
ACTIVITY_WINDOW = timedelta(days=30)


class GitHubClientError(UpstreamUnavailableError):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__("GitHub", message, status_code)


class GitHubNotFoundError(NotFoundError):
    """Raised when a GitHub resource (repository, README) does not exist."""


class GitHubRateLimitError(UpstreamRateLimitedError):
    """Raised when GitHub reports the request quota as exhausted."""

    def __init__(self, reset_at: datetime | None, retry_after: int | None):
        super().__init__("GitHub", reset_at, retry_after)

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "GitHubRateLimitError":
        now = datetime.now(timezone.utc)
        reset_at: datetime | None = None
        retry_after: int | None = None

        reset = headers.get("x-ratelimit-reset")
        if reset and reset.isdigit():
            reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
            retry_after = max(0, int((reset_at - now).total_seconds()))

        # Secondary limits answer with Retry-After instead of a reset epoch.
        after = headers.get("retry-after")
        if after and after.isdigit():
            retry_after = int(after)
            reset_at = reset_at or now + timedelta(seconds=retry_after)

        return cls(reset_at, retry_after)


def detect_repository(tool_name: str) -> str | None:
    """Return the ``owner/repo`` slug from the static map, or ``None``."""
    return lookup(TOOL_REPO_MAP, tool_name)


def _is_rate_limited(resp: httpx.Response) -> bool:
    if resp.status_code not in (403, 429):
        return False
    return resp.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in resp.headers


class GitHubClient:
    """Fetches repository metadata, README and activity via the GitHub REST API."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheService,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base = settings.github_api_base
        self._timeout = settings.github_timeout
        self._ttl = settings.ttl_github
        self._resolve_ttl = settings.ttl_resolve
        headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "toolscope",
        }
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token}"
        self._headers = headers
        self._cache = cache
        self._transport = transport
        self._rate_limit_remaining: int | None = None
        self._request_count = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    def rate_limit_status(self) -> dict[str, int | None]:
        return {
            "remaining": self._rate_limit_remaining,
            "request_count": self._request_count,
        }

    async def fetch_data(self, tool_name: str) -> GitHubData | None:
        """Return repository metrics for *tool_name*, or ``None``.

        Never raises for upstream failures: errors are logged and the last
        cached value (even one past its TTL) is returned when available.
        """
        slug: str | None = None
        try:
            async with self._client() as client:
                slug = await self.resolve_repository(client, tool_name)
                if slug is None:
                    logger.info("No repository found for %r", tool_name)
                    return None

                key = CacheService.github_key(slug)
                cached = await self._cache.get(key)
                if cached is not None:
                    logger.info("Cache hit for %s", slug)
                    return GitHubData.model_validate(cached)

                logger.info("Fetching GitHub data for %s", slug)
                data = await self._fetch_repo_data(client, slug)
        except GitHubRateLimitError as exc:
            logger.warning("%s (retry after %ss)", exc, exc.retry_after)
        except GitHubNotFoundError as exc:
            logger.info("GitHub data for %r not found: %s", tool_name, exc)
        except (UpstreamUnavailableError, httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Error fetching GitHub data for %r: %s", tool_name, exc)
        else:
            await self._cache.set(key, data.model_dump(mode="json"), self._ttl)
            return data

        return await self._serve_stale(tool_name, slug)

    async def resolve_repository(self, client: httpx.AsyncClient, tool_name: str) -> str | None:
        """Static map, then a previously searched slug, then a live search."""
        slug = detect_repository(tool_name)
        if slug:
            return slug

        key = CacheService.resolve_key("github", normalize_tool_name(tool_name))
        cached = await self._cache.get(key)
        if cached:
            return cached

        logger.info("Repository not in map for %r, searching", tool_name)
        slug = await self.search_repository(client, tool_name)
        if slug:
            await self._cache.set(key, slug, self._resolve_ttl)
        return slug

    async def search_repository(self, client: httpx.AsyncClient, tool_name: str) -> str | None:
        """Return the most-starred search hit for *tool_name*."""
        try:
            data = await self._get(
                client,
                "/search/repositories",
                {"q": tool_name, "sort": "stars", "order": "desc", "per_page": 5},
            )
        except GitHubRateLimitError:
            raise
        except (GitHubClientError, GitHubNotFoundError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Repository search failed for %r: %s", tool_name, exc)
            return None

        items = data.get("items") or []
        if not items:
            return None
        return items[0].get("full_name")

    async def _serve_stale(self, tool_name: str, slug: str | None) -> GitHubData | None:
        if slug is None:
            slug = detect_repository(tool_name) or await self._cache.get_stale(
                CacheService.resolve_key("github", normalize_tool_name(tool_name))
            )
        if not slug:
            return None
        stale = await self._cache.get_stale(CacheService.github_key(slug))
        if stale is None:
            return None
        logger.info("Returning stale cache for %s", slug)
        return GitHubData.model_validate(stale)

    async def _fetch_repo_data(self, client: httpx.AsyncClient, slug: str) -> GitHubData:
        since = (datetime.now(timezone.utc) - ACTIVITY_WINDOW).strftime("%Y-%m-%dT%H:%M:%SZ")
        repo, readme, contributors, releases, commits = await asyncio.gather(
            self._get(client, f"/repos/{slug}"),
            self._fetch_readme(client, slug),
            self._get(client, f"/repos/{slug}/contributors", {"per_page": PAGE_CAP}),
            self._get(client, f"/repos/{slug}/releases", {"per_page": RELEASES_FETCHED}),
            self._get(client, f"/repos/{slug}/commits", {"since": since, "per_page": PAGE_CAP}),
            return_exceptions=True,
        )

        # Repository metadata is the only part that must succeed.
        if isinstance(repo, BaseException):
            raise repo

        parts = {"readme": readme, "contributors": contributors, "releases": releases, "commits": commits}
        for name, result in parts.items():
            if isinstance(result, BaseException):
                logger.warning("Omitting %s for %s: %s", name, slug, result)

        commit_count = 0 if isinstance(commits, BaseException) else min(len(commits), PAGE_CAP)
        activity = Activity(
            recent_commits=commit_count,
            recent_commits_capped=commit_count >= PAGE_CAP,
            contributors=0 if isinstance(contributors, BaseException) else min(len(contributors), PAGE_CAP),
            releases=[] if isinstance(releases, BaseException) else _releases(releases),
        )
        readme_model = None
        if isinstance(readme, str):
            readme_model = Readme(content=readme, size=len(readme))

        return GitHubData(repository=_repository(repo), readme=readme_model, activity=activity)

    async def _fetch_readme(self, client: httpx.AsyncClient, slug: str) -> str | None:
        data = await self._get(client, f"/repos/{slug}/readme")
        content = data.get("content")
        if not content:
            return None
        if data.get("encoding", "base64") != "base64":
            return content
        return base64.b64decode(content).decode("utf-8", errors="replace")

    async def _get(
        self, client: httpx.AsyncClient, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        resp = await client.get(path, params=params)
        self._track(resp)

        if _is_rate_limited(resp):
            raise GitHubRateLimitError.from_headers(resp.headers)
        if resp.status_code == 404:
            raise GitHubNotFoundError(f"GitHub {path} not found")
        if resp.status_code != 200:
            raise GitHubClientError(
                f"{path} returned {resp.status_code}", status_code=resp.status_code
            )
        return resp.json()

    def _track(self, resp: httpx.Response) -> None:
        self._request_count += 1
        remaining = resp.headers.get("x-ratelimit-remaining")
        if remaining is not None and remaining.isdigit():
            self._rate_limit_remaining = int(remaining)


def _repository(raw: dict[str, Any]) -> RepositoryInfo:
    license_info = raw.get("license") or {}
    return RepositoryInfo(
        full_name=raw["full_name"],
        description=raw.get("description"),
        stars=raw.get("stargazers_count", 0),
        forks=raw.get("forks_count", 0),
        watchers=raw.get("watchers_count", 0),
        open_issues=raw.get("open_issues_count", 0),
        language=raw.get("language"),
        license=license_info.get("name"),
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
        pushed_at=raw.get("pushed_at"),
        url=raw.get("html_url") or f"https://github.com/{raw['full_name']}",
        homepage=raw.get("homepage") or None,
        topics=raw.get("topics") or [],
    )


def _releases(raw: list[dict[str, Any]]) -> list[Release]:
    return [
        Release(
            tag_name=r.get("tag_name", ""),
            published_at=r.get("published_at"),
            url=r.get("html_url"),
        )
        for r in raw[:RELEASES_KEPT]
    ]
