"""Tool-name parsing, normalization and static alias tables.

Every source adapter resolves a free-text tool name the same way: look the
name up in a static table, then retry with a handful of mechanical
normalization variants, and only then fall back to a live search (when the
source has one).  The pure functions here cover the first two steps.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Literal, Mapping, TypeVar

AnalysisType = Literal["comparison", "deepdive"]

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Query parsing
# ---------------------------------------------------------------------------

# Checked in order; the first one found decides how the whole input is split.
SEPARATORS: tuple[str, ...] = (" vs ", " vs. ", ",", " and ", " or ", " versus ")


def _find_separator(text: str) -> str | None:
    lower = text.lower()
    for sep in SEPARATORS:
        if sep in lower:
            return sep
    return None


def parse_tools(raw: str) -> list[str]:
    """Split a free-text query into an ordered list of tool names.

    >>> parse_tools("React vs Vue")
    ['React', 'Vue']
    >>> parse_tools("  Next.js ")
    ['Next.js']
    """
    sep = _find_separator(raw)
    if sep is None:
        return [raw.strip()]
    parts = re.split(re.escape(sep), raw, flags=re.IGNORECASE)
    return [p.strip() for p in parts if p.strip()]


def detect_analysis_type(raw: str) -> AnalysisType:
    """A query naming more than one tool is a comparison, otherwise a deep-dive."""
    return "comparison" if _find_separator(raw) is not None else "deepdive"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s]")
_JS_SUFFIX_RE = re.compile(r"\.?js$", re.IGNORECASE)


def normalize_tool_name(name: str) -> str:
    return name.strip().lower()


def name_variants(name: str) -> list[str]:
    """Return lookup candidates for *name*, most literal first, without duplicates."""
    base = normalize_tool_name(name)
    candidates = [
        base,
        _WS_RE.sub("", base),
        base.replace(".", ""),
        _JS_SUFFIX_RE.sub("", base) if base.endswith(".js") else base,
        _PUNCT_RE.sub("", _WS_RE.sub("", base)),
    ]
    seen: set[str] = set()
    variants: list[str] = []
    for c in candidates:
        if c and c not in seen:
            seen.add(c)
            variants.append(c)
    return variants


def lookup(table: Mapping[str, T], name: str) -> T | None:
    """Resolve *name* through *table*, trying each normalization variant in order."""
    for variant in name_variants(name):
        hit = table.get(variant)
        if hit:
            return hit
    return None


def compact_name(name: str) -> str:
    """Lower-cased name with dots and whitespace removed (``"Next.js"`` -> ``"nextjs"``)."""
    return _WS_RE.sub("", normalize_tool_name(name).replace(".", ""))


# ---------------------------------------------------------------------------
# Static tables
# ---------------------------------------------------------------------------

TOOL_REPO_MAP: Mapping[str, str] = MappingProxyType({
    # UI frameworks
    "react": "facebook/react",
    "vue": "vuejs/core",
    "vue.js": "vuejs/core",
    "angular": "angular/angular",
    "svelte": "sveltejs/svelte",
    "solid": "solidjs/solid",
    "solid.js": "solidjs/solid",
    "preact": "preactjs/preact",
    # Meta frameworks
    "next.js": "vercel/next.js",
    "nextjs": "vercel/next.js",
    "next": "vercel/next.js",
    "nuxt": "nuxt/nuxt",
    "nuxt.js": "nuxt/nuxt",
    "remix": "remix-run/remix",
    "astro": "withastro/astro",
    "gatsby": "gatsbyjs/gatsby",
    # Build tools
    "vite": "vitejs/vite",
    "webpack": "webpack/webpack",
    "rollup": "rollup/rollup",
    "parcel": "parcel-bundler/parcel",
    "esbuild": "evanw/esbuild",
    "turbopack": "vercel/turbo",
    # State management
    "redux": "reduxjs/redux",
    "mobx": "mobxjs/mobx",
    "zustand": "pmndrs/zustand",
    "jotai": "pmndrs/jotai",
    "recoil": "facebookexperimental/Recoil",
    # Backend frameworks
    "express": "expressjs/express",
    "express.js": "expressjs/express",
    "fastify": "fastify/fastify",
    "nest": "nestjs/nest",
    "nest.js": "nestjs/nest",
    "nestjs": "nestjs/nest",
    "koa": "koajs/koa",
    "hapi": "hapijs/hapi",
    "fastapi": "fastapi/fastapi",
    "django": "django/django",
    "flask": "pallets/flask",
    # Databases & ORMs
    "prisma": "prisma/prisma",
    "drizzle": "drizzle-team/drizzle-orm",
    "drizzle-orm": "drizzle-team/drizzle-orm",
    "typeorm": "typeorm/typeorm",
    "mongoose": "Automattic/mongoose",
    "sequelize": "sequelize/sequelize",
    # Testing
    "jest": "jestjs/jest",
    "vitest": "vitest-dev/vitest",
    "playwright": "microsoft/playwright",
    "cypress": "cypress-io/cypress",
    "pytest": "pytest-dev/pytest",
    # DevOps & infrastructure
    "docker": "docker/docker-ce",
    "kubernetes": "kubernetes/kubernetes",
    "terraform": "hashicorp/terraform",
    "ansible": "ansible/ansible",
    # Languages & styling
    "typescript": "microsoft/TypeScript",
    "tailwind": "tailwindlabs/tailwindcss",
    "tailwind css": "tailwindlabs/tailwindcss",
    "tailwindcss": "tailwindlabs/tailwindcss",
})

NPM_PACKAGE_MAP: Mapping[str, str] = MappingProxyType({
    "react": "react",
    "vue": "vue",
    "vue.js": "vue",
    "angular": "@angular/core",
    "next.js": "next",
    "nextjs": "next",
    "next": "next",
    "nuxt": "nuxt",
    "svelte": "svelte",
    "solid": "solid-js",
    "solid.js": "solid-js",
    "express": "express",
    "express.js": "express",
    "fastify": "fastify",
    "typescript": "typescript",
    "tailwind": "tailwindcss",
    "tailwindcss": "tailwindcss",
    "tailwind css": "tailwindcss",
    "vite": "vite",
    "webpack": "webpack",
    "prisma": "prisma",
    "drizzle": "drizzle-orm",
    "nest": "@nestjs/core",
    "nest.js": "@nestjs/core",
    "nestjs": "@nestjs/core",
})

STACKOVERFLOW_TAG_MAP: Mapping[str, str] = MappingProxyType({
    "react": "reactjs",
    "vue": "vue.js",
    "vue.js": "vue.js",
    "angular": "angular",
    "next.js": "next.js",
    "nextjs": "next.js",
    "next": "next.js",
    "nuxt": "nuxt.js",
    "express": "express",
    "express.js": "express",
    "nest": "nestjs",
    "nest.js": "nestjs",
    "tailwind": "tailwind-css",
    "tailwind css": "tailwind-css",
    "tailwindcss": "tailwind-css",
    "node": "node.js",
    "node.js": "node.js",
})

DEFAULT_PREFETCH_TOOLS: tuple[str, ...] = (
    "React",
    "Vue",
    "Next.js",
    "Angular",
    "Svelte",
    "TypeScript",
    "Vite",
    "Express",
)


def stackoverflow_tag(name: str) -> str:
    """Map a tool name to a Stack Overflow tag, falling back to a mechanical guess."""
    hit = lookup(STACKOVERFLOW_TAG_MAP, name)
    if hit:
        return hit
    return _WS_RE.sub("-", normalize_tool_name(name)).replace(".", "")


def npm_package_name(name: str) -> str:
    return lookup(NPM_PACKAGE_MAP, name) or normalize_tool_name(name)
