"""Process-wide service wiring, built once at startup."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from clients.community_client import CommunityClient
from clients.docs_client import DocsClient
from clients.github_client import GitHubClient
from clients.llm_client import LLMClient
from config import Settings
from services.cache import CacheService
from services.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    cache: CacheService
    github: GitHubClient
    docs: DocsClient
    community: CommunityClient
    llm: LLMClient
    orchestrator: AnalysisOrchestrator

    @classmethod
    def build(cls, settings: Settings) -> "AppContext":
        cache = CacheService.from_settings(settings)
        github = GitHubClient(settings, cache)
        docs = DocsClient(settings, cache)
        community = CommunityClient(settings, cache)
        llm = LLMClient(settings)
        orchestrator = AnalysisOrchestrator(github, docs, community, llm, cache, settings)
        return cls(settings, cache, github, docs, community, llm, orchestrator)

    async def startup(self) -> None:
        await self.cache.connect()
        logger.info("Services ready (cache: %s)", self.cache.stats()["redis"])

    async def aclose(self) -> None:
        await self.cache.close()
