"""Tests for clients/github_client.py — resolution, fetching, caching and rate limits."""

from __future__ import annotations

import asyncio
import base64
import time

import httpx
import pytest

from clients.github_client import (
    GitHubClient,
    GitHubNotFoundError,
    GitHubRateLimitError,
    detect_repository,
)

README = "# React\n\nThe library for web and native user interfaces.\n"


def _repo_payload(full_name: str = "facebook/react") -> dict:
    return {
        "full_name": full_name,
        "description": "The library for web and native user interfaces.",
        "stargazers_count": 230000,
        "forks_count": 47000,
        "watchers_count": 230000,
        "open_issues_count": 900,
        "language": "JavaScript",
        "license": {"name": "MIT License"},
        "created_at": "2013-05-24T16:15:54Z",
        "updated_at": "2024-05-01T00:00:00Z",
        "pushed_at": "2024-05-01T00:00:00Z",
        "html_url": f"https://github.com/{full_name}",
        "homepage": "https://react.dev",
        "topics": ["javascript", "ui"],
    }


class FakeGitHub:
    """Routes GitHub REST paths to canned responses; ``failures`` forces status codes."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.failures: dict[str, httpx.Response] = {}
        self.search_items: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        headers = {"x-ratelimit-remaining": "4999"}

        for suffix, response in self.failures.items():
            if path.endswith(suffix):
                return response

        if path == "/search/repositories":
            return httpx.Response(200, json={"items": self.search_items}, headers=headers)
        if path.endswith("/readme"):
            content = base64.b64encode(README.encode()).decode()
            return httpx.Response(200, json={"content": content, "encoding": "base64"}, headers=headers)
        if path.endswith("/contributors"):
            return httpx.Response(200, json=[{"login": f"u{i}"} for i in range(3)], headers=headers)
        if path.endswith("/releases"):
            releases = [
                {"tag_name": f"v19.{i}", "published_at": "2024-04-01T00:00:00Z", "html_url": "u"}
                for i in range(10)
            ]
            return httpx.Response(200, json=releases, headers=headers)
        if path.endswith("/commits"):
            return httpx.Response(200, json=[{"sha": str(i)} for i in range(100)], headers=headers)
        if path.startswith("/repos/"):
            return httpx.Response(200, json=_repo_payload(path[len("/repos/"):]), headers=headers)
        return httpx.Response(404)


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def client(settings, cache, fake_github) -> GitHubClient:
    return GitHubClient(settings, cache, transport=httpx.MockTransport(fake_github))


class TestDetectRepository:
    def test_known_tool(self):
        assert detect_repository("React") == "facebook/react"

    def test_variant(self):
        assert detect_repository("NextJS") == "vercel/next.js"

    def test_unknown_tool(self):
        assert detect_repository("some-obscure-lib") is None


class TestFetchData:
    def test_full_fetch(self, client):
        data = asyncio.run(client.fetch_data("React"))

        assert data is not None
        assert data.repository.full_name == "facebook/react"
        assert data.repository.stars == 230000
        assert data.repository.license == "MIT License"
        assert data.readme is not None
        assert data.readme.content == README
        assert data.activity.contributors == 3
        assert len(data.activity.releases) == 5
        assert data.activity.releases[0].tag_name == "v19.0"

    def test_commit_count_capped_at_page_size(self, client):
        data = asyncio.run(client.fetch_data("React"))
        assert data.activity.recent_commits == 100
        assert data.activity.recent_commits_capped is True

    def test_second_fetch_served_from_cache(self, client, fake_github):
        async def run():
            await client.fetch_data("React")
            calls = len(fake_github.calls)
            await client.fetch_data("react")
            return calls

        calls = asyncio.run(run())
        assert len(fake_github.calls) == calls

    def test_optional_part_failure_is_omitted(self, client, fake_github):
        fake_github.failures["/contributors"] = httpx.Response(500)
        data = asyncio.run(client.fetch_data("React"))
        assert data is not None
        assert data.activity.contributors == 0

    def test_repository_failure_returns_none(self, client, fake_github):
        fake_github.failures["/repos/facebook/react"] = httpx.Response(500)
        assert asyncio.run(client.fetch_data("React")) is None

    def test_missing_repository_is_not_found(self, client, fake_github):
        fake_github.failures["/repos/facebook/react"] = httpx.Response(404)
        assert asyncio.run(client.fetch_data("React")) is None

    def test_missing_readme_is_omitted(self, client, fake_github):
        fake_github.failures["/readme"] = httpx.Response(404)
        data = asyncio.run(client.fetch_data("React"))
        assert data is not None
        assert data.readme is None
        assert data.repository.stars == 230000

    def test_not_found_maps_to_404(self, client, fake_github):
        async def run():
            async with client._client() as http:
                await client._get(http, "/users/nobody")

        with pytest.raises(GitHubNotFoundError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.status_code == 404
        assert excinfo.value.to_dict()["code"] == "NOT_FOUND"

    def test_stale_cache_served_on_failure(self, client, fake_github, clock):
        async def run():
            await client.fetch_data("React")
            clock.advance(16 * 60)
            fake_github.failures["/repos/facebook/react"] = httpx.Response(502)
            return await client.fetch_data("React")

        data = asyncio.run(run())
        assert data is not None
        assert data.repository.full_name == "facebook/react"

    def test_rate_limit_absorbed(self, client, fake_github):
        fake_github.failures["/repos/facebook/react"] = httpx.Response(
            403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(int(time.time()) + 60)}
        )
        assert asyncio.run(client.fetch_data("React")) is None

    def test_tracks_rate_limit_headers(self, client):
        asyncio.run(client.fetch_data("React"))
        status = client.rate_limit_status()
        assert status["remaining"] == 4999
        assert status["request_count"] >= 5


class TestSearch:
    def test_unknown_tool_resolved_by_search(self, client, fake_github):
        fake_github.search_items = [{"full_name": "acme/widget"}]
        data = asyncio.run(client.fetch_data("Widget"))
        assert data is not None
        assert data.repository.full_name == "acme/widget"

    def test_clearing_cache_forces_new_search(self, client, fake_github):
        fake_github.search_items = [{"full_name": "acme/widget"}]

        async def run():
            await client.fetch_data("Widget")
            fake_github.search_items = []
            await client._cache.clear()
            return await client.fetch_data("Widget")

        # Clearing the cache also drops the resolution, so the empty search wins.
        assert asyncio.run(run()) is None
        assert fake_github.calls.count("/search/repositories") == 2

    def test_resolution_reused_without_second_search(self, client, fake_github, clock):
        fake_github.search_items = [{"full_name": "acme/widget"}]

        async def run():
            await client.fetch_data("Widget")
            clock.advance(16 * 60)
            return await client.fetch_data("Widget")

        data = asyncio.run(run())
        assert data is not None
        assert fake_github.calls.count("/search/repositories") == 1

    def test_no_search_hits(self, client):
        assert asyncio.run(client.fetch_data("nothing-matches")) is None

    def test_search_raises_rate_limit(self, client, fake_github):
        fake_github.failures["/search/repositories"] = httpx.Response(
            429, headers={"retry-after": "30"}
        )

        async def run():
            async with client._client() as http:
                await client.search_repository(http, "Widget")

        with pytest.raises(GitHubRateLimitError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.retry_after == 30
        assert excinfo.value.status_code == 429


class TestRateLimitError:
    def test_from_reset_header(self):
        reset = int(time.time()) + 120
        exc = GitHubRateLimitError.from_headers(httpx.Headers({"x-ratelimit-reset": str(reset)}))
        assert exc.reset_at is not None
        assert int(exc.reset_at.timestamp()) == reset
        assert 0 < exc.retry_after <= 120
        assert "GitHub rate limit exceeded" in exc.message

    def test_without_headers(self):
        exc = GitHubRateLimitError.from_headers(httpx.Headers())
        assert exc.reset_at is None
        assert exc.retry_after is None
        assert exc.message.endswith("Resets at unknown")
