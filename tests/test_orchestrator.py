"""Tests for services/orchestrator.py — fan-out, enrichment, metadata and caching."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from models.schemas import (
    Activity,
    CommunityData,
    ComparisonAnalysis,
    DeepDiveAnalysis,
    DocumentationData,
    GitHubData,
    NpmData,
    NpmDownloads,
    Readme,
    RepositoryInfo,
    ToolAnalysis,
    ToolDataBundle,
)
from services.orchestrator import (
    AnalysisOrchestrator,
    build_metadata,
    format_age,
    format_recent_activity,
)
from utils.errors import SummarizationError, ValidationError


def github_data(slug: str, commits: int = 50, capped: bool = False, readme: str | None = None) -> GitHubData:
    return GitHubData(
        repository=RepositoryInfo(full_name=slug, stars=1000, forks=100, url=f"https://github.com/{slug}"),
        readme=Readme(content=readme, size=len(readme)) if readme else None,
        activity=Activity(recent_commits=commits, recent_commits_capped=capped),
    )


def docs_data(url: str, age: timedelta = timedelta(0)) -> DocumentationData:
    return DocumentationData(
        introduction="Intro text",
        url=url,
        scraped_at=datetime.now(timezone.utc) - age,
    )


def community_data(monthly: int = 2_500_000) -> CommunityData:
    return CommunityData(
        npm=NpmData(package="react", downloads=NpmDownloads(last_week=1, last_month=monthly))
    )


def deep_dive(name: str = "React") -> DeepDiveAnalysis:
    return DeepDiveAnalysis(
        name=name,
        technical_summary="Summary",
        github_url="https://made-up.example",
    )


def comparison(*names: str) -> ComparisonAnalysis:
    return ComparisonAnalysis(
        tools=[ToolAnalysis(name=n, technical_summary=f"{n} summary") for n in names],
        comparison_summary="Summary",
        recommendation="Depends",
    )


@pytest.fixture
def adapters():
    github = AsyncMock()
    github.fetch_data.side_effect = lambda tool: github_data(f"org/{tool.lower()}", readme="# Readme")
    docs = AsyncMock()
    docs.fetch_data.side_effect = lambda tool, readme=None: docs_data(f"https://docs/{tool.lower()}")
    community = AsyncMock()
    community.fetch_data.side_effect = lambda tool: community_data()
    llm = AsyncMock()
    llm.summarize_deep_dive.return_value = (deep_dive(), 1234)
    llm.summarize_comparison.return_value = (comparison("React", "Vue"), 2000)
    return github, docs, community, llm


@pytest.fixture
def orchestrator(adapters, cache, settings) -> AnalysisOrchestrator:
    github, docs, community, llm = adapters
    return AnalysisOrchestrator(github, docs, community, llm, cache, settings)


class TestFormatting:
    def test_recent_activity(self):
        assert format_recent_activity(github_data("a/b", commits=12)) == "12 commits (30 days)"

    def test_recent_activity_capped(self):
        assert format_recent_activity(github_data("a/b", commits=100, capped=True)) == "100+ commits (30 days)"

    def test_recent_activity_absent_when_zero(self):
        assert format_recent_activity(github_data("a/b", commits=0)) is None

    def test_age_minutes(self):
        now = datetime.now(timezone.utc)
        assert format_age(now - timedelta(minutes=5), now) == "5 minutes ago"

    def test_age_hours(self):
        now = datetime.now(timezone.utc)
        assert format_age(now - timedelta(hours=3, minutes=10), now) == "3 hours ago"


class TestMetadata:
    def test_sources_flags_and_ages(self):
        now = datetime.now(timezone.utc)
        bundles = [
            ToolDataBundle(tool="A"),
            ToolDataBundle(tool="B", docs=docs_data("u", age=timedelta(minutes=30))),
        ]
        meta = build_metadata(bundles, 10, now)
        assert meta.sources.github is False
        assert meta.sources.documentation is True
        assert meta.sources.community is False
        assert meta.data_age.docs == "30 minutes ago"
        assert meta.data_age.github is None
        assert meta.tokens_used == 10


class TestAnalyzeDeepDive:
    def test_enriches_from_live_data(self, orchestrator):
        response = asyncio.run(orchestrator.analyze("React"))
        analysis = response.analysis

        assert analysis.kind == "deepdive"
        assert analysis.github_url == "https://github.com/org/react"
        assert analysis.github_repo == "org/react"
        assert analysis.documentation_url == "https://docs/react"
        assert analysis.metrics.stars == 1000
        assert analysis.metrics.downloads == "2.5M/month"
        assert analysis.metrics.recent_activity == "50 commits (30 days)"
        assert analysis.last_updated is not None
        assert analysis.technical_summary == "Summary"

    def test_metadata(self, orchestrator):
        meta = asyncio.run(orchestrator.analyze("React")).metadata
        assert meta.sources.github and meta.sources.documentation and meta.sources.community
        assert meta.tokens_used == 1234
        assert meta.data_age.github == "just now"
        assert meta.data_age.community == "just now"
        assert meta.data_age.docs == "0 minutes ago"

    def test_readme_passed_to_docs(self, orchestrator, adapters):
        _, docs, _, _ = adapters
        asyncio.run(orchestrator.analyze("React"))
        docs.fetch_data.assert_awaited_once_with("React", "# Readme")

    def test_include_metrics_false(self, orchestrator):
        response = asyncio.run(orchestrator.analyze("React", include_metrics=False))
        assert response.analysis.metrics is None
        assert response.analysis.github_url == "https://github.com/org/react"

    def test_failed_adapter_becomes_missing_source(self, orchestrator, adapters):
        github, _, community, llm = adapters
        github.fetch_data.side_effect = RuntimeError("boom")
        community.fetch_data.side_effect = None
        community.fetch_data.return_value = None

        response = asyncio.run(orchestrator.analyze("React"))

        bundle = llm.summarize_deep_dive.await_args.args[0]
        assert bundle.github is None
        assert bundle.community is None
        assert response.analysis.github_url is None
        assert response.analysis.metrics is None
        assert response.metadata.sources.github is False

    def test_docs_failure_becomes_missing_source(self, orchestrator, adapters):
        _, docs, _, llm = adapters
        docs.fetch_data.side_effect = RuntimeError("docs down")

        response = asyncio.run(orchestrator.analyze("React"))

        bundle = llm.summarize_deep_dive.await_args.args[0]
        assert bundle.docs is None
        assert bundle.github is not None
        assert bundle.community is not None
        assert response.analysis.documentation_url is None
        assert response.analysis.github_url == "https://github.com/org/react"
        assert response.metadata.sources.documentation is False
        assert response.metadata.sources.github is True

    @pytest.mark.parametrize("raw", [",", " and ", " vs "])
    def test_input_without_tools_rejected(self, orchestrator, adapters, raw):
        github, _, _, llm = adapters
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.analyze(raw, "deepdive"))
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.analyze(raw))
        github.fetch_data.assert_not_awaited()
        llm.summarize_deep_dive.assert_not_awaited()
        llm.summarize_comparison.assert_not_awaited()


class TestAnalyzeComparison:
    def test_type_detected_and_bundles_in_order(self, orchestrator, adapters):
        _, _, _, llm = adapters
        response = asyncio.run(orchestrator.analyze("React vs Vue"))

        assert response.analysis.kind == "comparison"
        bundles = llm.summarize_comparison.await_args.args[0]
        assert [b.tool for b in bundles] == ["React", "Vue"]

    def test_positional_enrichment(self, orchestrator):
        response = asyncio.run(orchestrator.analyze("React vs Vue"))
        react, vue = response.analysis.tools
        assert react.github_repo == "org/react"
        assert vue.github_repo == "org/vue"
        assert vue.documentation_url == "https://docs/vue"

    def test_explicit_type_respected(self, orchestrator, adapters):
        _, _, _, llm = adapters
        asyncio.run(orchestrator.analyze("React vs Vue", "deepdive"))
        llm.summarize_deep_dive.assert_awaited_once()
        llm.summarize_comparison.assert_not_awaited()


class TestCaching:
    def test_second_call_served_from_cache(self, orchestrator, adapters):
        _, _, _, llm = adapters

        async def run():
            first = await orchestrator.analyze("React")
            second = await orchestrator.analyze("react")
            return first, second

        first, second = asyncio.run(run())
        assert llm.summarize_deep_dive.await_count == 1
        assert second.model_dump() == first.model_dump()

    def test_skip_cache_bypasses_read(self, orchestrator, adapters):
        _, _, _, llm = adapters

        async def run():
            await orchestrator.analyze("React")
            await orchestrator.analyze("React", skip_cache=True)

        asyncio.run(run())
        assert llm.summarize_deep_dive.await_count == 2

    def test_summarization_failure_propagates_and_is_not_cached(self, orchestrator, adapters, cache):
        _, _, _, llm = adapters
        llm.summarize_deep_dive.side_effect = SummarizationError("LLM down")

        with pytest.raises(SummarizationError):
            asyncio.run(orchestrator.analyze("React"))
        assert asyncio.run(cache.get("analysis:deepdive:react")) is None


class TestConcurrency:
    def test_limit_respected(self, adapters, cache, make_settings):
        github, docs, community, llm = adapters
        active = 0
        peak = 0

        async def slow_fetch(tool):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return None

        github.fetch_data.side_effect = slow_fetch
        community.fetch_data.side_effect = None
        community.fetch_data.return_value = None

        async def run():
            orch = AnalysisOrchestrator(github, docs, community, llm, cache, make_settings(max_concurrency=2))
            return await orch.fetch_all([f"tool{i}" for i in range(6)])

        bundles = asyncio.run(run())
        assert [b.tool for b in bundles] == [f"tool{i}" for i in range(6)]
        assert peak == 2

    def test_prefetch_logs_failures(self, orchestrator, adapters):
        _, docs, _, _ = adapters
        docs.fetch_data.side_effect = RuntimeError("docs down")
        asyncio.run(orchestrator.prefetch_common_tools(["React", "Vue"]))
        assert docs.fetch_data.await_count == 2
