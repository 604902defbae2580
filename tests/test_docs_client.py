"""Tests for clients/docs_client.py — HTML extraction, README fallback and caching."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from clients.docs_client import (
    README_SOURCE,
    DocsClient,
    DocSource,
    extract_from_html,
    extract_from_readme,
    find_doc_source,
)

INTRO = (
    "React lets you build user interfaces out of individual pieces called components. "
    "Create your own React components like Thumbnail, LikeButton, and Video."
)

DOCS_HTML = f"""
<html><body>
  <nav><ul><li>Navigation item that should be ignored</li></ul></nav>
  <article>
    <h1>Quick Start</h1>
    <p>{INTRO}</p>
    <ul>
      <li>Declarative views make your code predictable</li>
      <li>short</li>
      <li>Component-based architecture for complex UIs</li>
    </ul>
  </article>
</body></html>
"""

README = """# Widget

Widget is a tiny library for building widgets quickly and safely.
- Zero dependencies and tree-shakeable output

## Installation

npm install widget

## Usage Guide
"""


class TestExtractFromHtml:
    def test_introduction_from_selector_region(self):
        intro, _ = extract_from_html(DOCS_HTML, DocSource("https://x", "article"))
        assert INTRO in intro
        assert "Navigation item" not in intro

    def test_features_filter_by_length(self):
        _, features = extract_from_html(DOCS_HTML, DocSource("https://x", "article"))
        assert features == [
            "Declarative views make your code predictable",
            "Component-based architecture for complex UIs",
        ]

    def test_headings_used_when_no_list_items(self):
        html = "<main><h2>Getting Started</h2><p>text</p><h3>Table of Contents</h3><h3>Routing</h3></main>"
        _, features = extract_from_html(html, DocSource("https://x", "main"))
        assert features == ["Getting Started", "Routing"]

    def test_introduction_capped(self):
        html = f"<article>{'word ' * 1000}</article>"
        intro, _ = extract_from_html(html, DocSource("https://x", "article"))
        assert len(intro) == 2000


class TestExtractFromReadme:
    def test_intro_and_features(self):
        docs = extract_from_readme(README, "Widget")
        assert docs.introduction == "Widget is a tiny library for building widgets quickly and safely."
        assert docs.key_features == [
            "Zero dependencies and tree-shakeable output",
            "Installation",
            "Usage Guide",
        ]
        assert docs.url == README_SOURCE

    def test_placeholder_intro_when_readme_has_no_prose(self):
        docs = extract_from_readme("# Widget\n", "Widget")
        assert docs.introduction.startswith("Widget is a developer tool")


class TestFindDocSource:
    def test_known(self):
        assert find_doc_source("React").url == "https://react.dev/learn"

    def test_variant(self):
        assert find_doc_source("Next JS").url == "https://nextjs.org/docs"

    def test_unknown(self):
        assert find_doc_source("widget") is None


class FakeDocsSite:
    def __init__(self) -> None:
        self.calls = 0
        self.status = 200
        self.body = DOCS_HTML

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status, text=self.body, request=request)


@pytest.fixture
def site() -> FakeDocsSite:
    return FakeDocsSite()


@pytest.fixture
def docs(settings, cache, site) -> DocsClient:
    return DocsClient(settings, cache, transport=httpx.MockTransport(site))


class TestDocsClient:
    def test_scrapes_known_tool(self, docs):
        data = asyncio.run(docs.fetch_data("React"))
        assert data is not None
        assert data.url == "https://react.dev/learn"
        assert INTRO in data.introduction

    def test_cached_after_first_scrape(self, docs, site):
        async def run():
            await docs.fetch_data("React")
            await docs.fetch_data("react")

        asyncio.run(run())
        assert site.calls == 1

    def test_unknown_tool_uses_readme(self, docs, site):
        data = asyncio.run(docs.fetch_data("Widget", README))
        assert data is not None
        assert data.url == README_SOURCE
        assert site.calls == 0

    def test_unknown_tool_without_readme(self, docs):
        assert asyncio.run(docs.fetch_data("Widget")) is None

    def test_thin_page_falls_back_to_readme(self, docs, site):
        site.body = "<article>Too short</article>"
        data = asyncio.run(docs.fetch_data("React", README))
        assert data.url == README_SOURCE

    def test_scrape_error_falls_back_to_readme(self, docs, site):
        site.status = 503
        data = asyncio.run(docs.fetch_data("React", README))
        assert data.url == README_SOURCE

    def test_stale_scrape_preferred_over_readme(self, docs, site, clock):
        async def run():
            await docs.fetch_data("React")
            clock.advance(2 * 24 * 3600)
            site.status = 503
            return await docs.fetch_data("React", README)

        data = asyncio.run(run())
        assert data.url == "https://react.dev/learn"
