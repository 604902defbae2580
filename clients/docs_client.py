"""Official-documentation scraper with a README-based fallback.

Known tools have a configured docs page and a CSS selector for the
introduction region.  Anything else, or a scrape that yields too little
text, falls back to heuristics over the GitHub README.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping

import httpx
from bs4 import BeautifulSoup

from config import Settings
from models.schemas import DocumentationData
from services.cache import CacheService
from utils.tool_names import lookup, normalize_tool_name

logger = logging.getLogger(__name__)

MAX_INTRO_CHARS = 2000
MIN_INTRO_CHARS = 50
MAX_FEATURES = 10
MAX_HEADING_FEATURES = 5
README_SOURCE = "GitHub README"

_WS_RE = re.compile(r"\s+")
_HEADING_RE = re.compile(r"^#+\s*")
_BULLET_RE = re.compile(r"^[-*]\s*")


@dataclass(frozen=True)
class DocSource:
    url: str
    introduction: str  # CSS selector for the introduction region


DOC_SOURCES: Mapping[str, DocSource] = MappingProxyType({
    "react": DocSource("https://react.dev/learn", "article"),
    "vue": DocSource("https://vuejs.org/guide/introduction.html", ".content"),
    "vue.js": DocSource("https://vuejs.org/guide/introduction.html", ".content"),
    "angular": DocSource("https://angular.dev/overview", "article"),
    "next.js": DocSource("https://nextjs.org/docs", "article"),
    "nextjs": DocSource("https://nextjs.org/docs", "article"),
    "svelte": DocSource("https://svelte.dev/docs/introduction", "article"),
    "typescript": DocSource("https://www.typescriptlang.org/docs/", "article"),
    "tailwindcss": DocSource("https://tailwindcss.com/docs", "article"),
    "express": DocSource("https://expressjs.com/en/starter/installing.html", "#content"),
    "fastify": DocSource("https://fastify.dev/docs/latest/", "article"),
    "fastapi": DocSource("https://fastapi.tiangolo.com/", "article"),
})


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def find_doc_source(tool_name: str) -> DocSource | None:
    return lookup(DOC_SOURCES, tool_name)


def extract_from_html(html: str, source: DocSource) -> tuple[str, list[str]]:
    """Return ``(introduction, features)`` scraped from a docs page."""
    soup = BeautifulSoup(html, "html.parser")
    regions = soup.select(source.introduction)

    introduction = _clean(" ".join(r.get_text(" ") for r in regions))[:MAX_INTRO_CHARS]

    features: list[str] = []
    items = [li for region in regions for li in region.select("ul li, ol li")]
    for li in items[:MAX_FEATURES]:
        feature = _clean(li.get_text(" "))
        if 10 < len(feature) < 200:
            features.append(feature)

    if not features:
        for heading in soup.select("h2, h3")[:MAX_HEADING_FEATURES]:
            text = _clean(heading.get_text(" "))
            if text and "table of contents" not in text.lower():
                features.append(text)

    return introduction, features


def extract_from_readme(readme: str, tool_name: str) -> DocumentationData:
    """Heuristically pull an introduction and feature list out of a README.

    The introduction is the prose between the first and second heading;
    later headings and bullet items become features.
    """
    introduction = ""
    features: list[str] = []
    in_intro = False
    seen_heading = False

    for line in readme.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        if stripped.startswith("#"):
            if not seen_heading:
                seen_heading = True
                in_intro = True
                continue
            in_intro = False
            heading = _HEADING_RE.sub("", stripped).strip()
            if 5 < len(heading) < 100 and "table of contents" not in heading.lower():
                features.append(heading)
        elif in_intro:
            if stripped.startswith(("-", "*")):
                feature = _BULLET_RE.sub("", stripped).strip()
                if 10 < len(feature) < 200:
                    features.append(feature)
            else:
                introduction = f"{introduction} {stripped}" if introduction else stripped

        if len(introduction) > 1000 and len(features) > 5:
            break

    if len(introduction) > MAX_INTRO_CHARS:
        introduction = introduction[:MAX_INTRO_CHARS] + "..."

    return DocumentationData(
        introduction=introduction
        or f"{tool_name} is a developer tool. See GitHub README for details.",
        key_features=features[:MAX_FEATURES],
        url=README_SOURCE,
        scraped_at=datetime.now(timezone.utc),
    )


class DocsClient:
    """Scrapes official documentation pages for known tools."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheService,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = settings.docs_timeout
        self._headers = {"User-Agent": settings.docs_user_agent}
        self._ttl = settings.ttl_docs
        self._cache = cache
        self._transport = transport

    async def fetch_data(
        self, tool_name: str, github_readme: str | None = None
    ) -> DocumentationData | None:
        """Return documentation for *tool_name*, or ``None``.

        Order of preference: cache, live scrape, stale cache, README.
        """
        normalized = normalize_tool_name(tool_name)
        key = CacheService.docs_key(normalized)

        cached = await self._cache.get(key)
        if cached is not None:
            logger.info("Docs cache hit for %s", tool_name)
            return DocumentationData.model_validate(cached)

        source = find_doc_source(tool_name)
        if source is None:
            logger.info("No doc source configured for %r", tool_name)
            return self._from_readme(github_readme, tool_name)

        try:
            data = await self.scrape(source)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Error scraping %s: %s", source.url, exc)
            data = None

        if data is not None:
            await self._cache.set(key, data.model_dump(mode="json"), self._ttl)
            return data

        stale = await self._cache.get_stale(key)
        if stale is not None:
            logger.info("Returning stale docs cache for %s", tool_name)
            return DocumentationData.model_validate(stale)

        return self._from_readme(github_readme, tool_name)

    async def scrape(self, source: DocSource) -> DocumentationData | None:
        """Fetch and parse *source*; ``None`` when the page has too little content."""
        logger.info("Scraping documentation from %s", source.url)
        async with httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            resp = await client.get(source.url)
        resp.raise_for_status()

        introduction, features = extract_from_html(resp.text, source)
        if len(introduction) < MIN_INTRO_CHARS:
            logger.info("Insufficient content scraped from %s", source.url)
            return None

        return DocumentationData(
            introduction=introduction,
            key_features=features,
            url=source.url,
            scraped_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _from_readme(readme: str | None, tool_name: str) -> DocumentationData | None:
        if not readme:
            return None
        return extract_from_readme(readme, tool_name)
