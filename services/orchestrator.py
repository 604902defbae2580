"""Core orchestration service that ties data fetching, summarization and caching together."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Iterable

from clients.community_client import CommunityClient
from clients.docs_client import DocsClient
from clients.github_client import GitHubClient
from clients.llm_client import LLMClient
from config import Settings
from models.schemas import (
    AnalysisMetadata,
    AnalysisResponse,
    DataAge,
    DeepDiveAnalysis,
    GitHubData,
    Metrics,
    SourceFlags,
    ToolAnalysis,
    ToolDataBundle,
)
from services.cache import CacheService
from utils.context_builder import format_number
from utils.errors import ValidationError
from utils.tool_names import AnalysisType, detect_analysis_type, parse_tools

logger = logging.getLogger(__name__)

JUST_NOW = "just now"


def format_recent_activity(github: GitHubData) -> str | None:
    """``"N commits (30 days)"``, ``"100+ commits (30 days)"`` when capped, else ``None``."""
    activity = github.activity
    if not activity.recent_commits:
        return None
    count = f"{activity.recent_commits}+" if activity.recent_commits_capped else str(activity.recent_commits)
    return f"{count} commits (30 days)"


def format_age(then: datetime, now: datetime) -> str:
    minutes = max(0, int((now - then).total_seconds() // 60))
    if minutes < 60:
        return f"{minutes} minutes ago"
    return f"{minutes // 60} hours ago"


def build_metrics(bundle: ToolDataBundle) -> Metrics | None:
    if bundle.github is None:
        return None
    repo = bundle.github.repository
    npm = bundle.community.npm if bundle.community is not None else None
    return Metrics(
        stars=repo.stars,
        forks=repo.forks,
        downloads=f"{format_number(npm.downloads.last_month)}/month" if npm is not None else None,
        recent_activity=format_recent_activity(bundle.github),
    )


def enrich(
    target: ToolAnalysis | DeepDiveAnalysis,
    bundle: ToolDataBundle,
    now: datetime,
    include_metrics: bool = True,
) -> None:
    """Overwrite the live-data fields of *target* from *bundle*; nothing else is touched."""
    if bundle.github is not None:
        target.github_url = bundle.github.repository.url
        target.github_repo = bundle.github.repository.full_name
    else:
        target.github_url = None
        target.github_repo = None
    target.metrics = build_metrics(bundle) if include_metrics else None
    target.documentation_url = bundle.docs.url if bundle.docs is not None else None
    target.last_updated = now


def build_metadata(bundles: list[ToolDataBundle], tokens_used: int, now: datetime) -> AnalysisMetadata:
    sources = SourceFlags(
        github=any(b.github is not None for b in bundles),
        documentation=any(b.docs is not None for b in bundles),
        community=any(b.community is not None for b in bundles),
    )
    age = DataAge()
    if sources.github:
        age.github = JUST_NOW
    if sources.documentation:
        first = next(b.docs for b in bundles if b.docs is not None)
        age.docs = format_age(first.scraped_at, now)
    if sources.community:
        age.community = JUST_NOW
    return AnalysisMetadata(sources=sources, fetched_at=now, tokens_used=tokens_used, data_age=age)


class AnalysisOrchestrator:
    """Runs the full analysis pipeline for a free-text tool query."""

    def __init__(
        self,
        github: GitHubClient,
        docs: DocsClient,
        community: CommunityClient,
        llm: LLMClient,
        cache: CacheService,
        settings: Settings,
    ) -> None:
        self._github = github
        self._docs = docs
        self._community = community
        self._llm = llm
        self._cache = cache
        self._analysis_ttl = settings.ttl_analysis
        self._limit = asyncio.Semaphore(settings.max_concurrency)

    async def analyze(
        self,
        raw_input: str,
        analysis_type: AnalysisType | None = None,
        *,
        skip_cache: bool = False,
        include_metrics: bool = True,
    ) -> AnalysisResponse:
        """Analyse the tools named in *raw_input*.

        Raises :class:`~utils.errors.ValidationError` when the input names no
        tool, and :class:`~utils.errors.SummarizationError` when no analysis
        can be produced. Adapter failures are absorbed into missing sources.
        """
        tools = parse_tools(raw_input)
        if not tools:
            raise ValidationError("Input must name at least one tool")

        kind = analysis_type or detect_analysis_type(raw_input)
        key = CacheService.analysis_key(raw_input, kind)
        logger.info("Analyzing %r (%s)", raw_input, kind)

        if not skip_cache:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.info("Cache hit for analysis %s", key)
                return AnalysisResponse.model_validate(cached)

        logger.info("Detected tools: %s", tools)

        t0 = time.monotonic()
        bundles = await self.fetch_all(tools)
        logger.info("Data fetching for %d tools completed (%.1fs)", len(bundles), time.monotonic() - t0)

        t1 = time.monotonic()
        if kind == "comparison":
            analysis, tokens = await self._llm.summarize_comparison(bundles)
        else:
            analysis, tokens = await self._llm.summarize_deep_dive(bundles[0])
        logger.info("Summarization completed (%.1fs, %d tokens)", time.monotonic() - t1, tokens)

        now = datetime.now(timezone.utc)
        if kind == "comparison":
            for entry, bundle in zip(analysis.tools, bundles):
                enrich(entry, bundle, now, include_metrics)
        else:
            enrich(analysis, bundles[0], now, include_metrics)

        response = AnalysisResponse(analysis=analysis, metadata=build_metadata(bundles, tokens, now))
        await self._cache.set(key, response.model_dump(mode="json"), self._analysis_ttl)
        return response

    async def fetch_all(self, tools: list[str]) -> list[ToolDataBundle]:
        """Fetch bundles for *tools* under the shared concurrency limit, in input order."""
        return list(await asyncio.gather(*(self._limited_fetch(t) for t in tools)))

    async def _limited_fetch(self, tool: str) -> ToolDataBundle:
        async with self._limit:
            return await self.fetch_tool(tool)

    async def fetch_tool(self, tool: str) -> ToolDataBundle:
        """GitHub and community concurrently, then docs with the README as fallback."""
        logger.info("Fetching data for %s", tool)
        github, community = await asyncio.gather(
            self._github.fetch_data(tool),
            self._community.fetch_data(tool),
            return_exceptions=True,
        )
        if isinstance(github, BaseException):
            logger.warning("GitHub fetch failed for %r: %s", tool, github)
            github = None
        if isinstance(community, BaseException):
            logger.warning("Community fetch failed for %r: %s", tool, community)
            community = None

        readme = github.readme.content if github is not None and github.readme else None
        try:
            docs = await self._docs.fetch_data(tool, readme)
        except Exception as exc:
            logger.warning("Docs fetch failed for %r: %s", tool, exc)
            docs = None

        return ToolDataBundle(tool=tool, github=github, docs=docs, community=community)

    async def prefetch_common_tools(self, tools: Iterable[str]) -> None:
        """Warm the source caches for *tools*; failures are logged, never raised."""
        tools = list(tools)
        logger.info("Prefetching %d common tools", len(tools))

        async def prefetch(tool: str) -> None:
            try:
                await self._limited_fetch(tool)
            except Exception:
                logger.exception("Error prefetching %s", tool)
            else:
                logger.info("Prefetched %s", tool)

        await asyncio.gather(*(prefetch(t) for t in tools))
        logger.info("Prefetch complete")
