from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

# Load .env file if present (no extra dependency needed)
_env_path = Path(__file__).resolve().parent / ".env"
if _env_path.exists():
    for line in _env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if value and key not in os.environ:  # don't override existing env vars
            os.environ[key] = value


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    """Application-wide settings resolved from environment variables."""

    # GitHub
    github_api_base: str = field(
        default_factory=lambda: os.getenv("GITHUB_API_BASE", "https://api.github.com")
    )
    github_token: str | None = field(
        default_factory=lambda: os.getenv("GITHUB_TOKEN")
    )
    github_timeout: float = field(default_factory=lambda: _float_env("GITHUB_TIMEOUT", 10))

    # Documentation scraping
    docs_timeout: float = field(default_factory=lambda: _float_env("DOCS_TIMEOUT", 15))
    docs_user_agent: str = field(
        default_factory=lambda: os.getenv(
            "DOCS_USER_AGENT", "Mozilla/5.0 (compatible; ToolScopeBot/1.0)"
        )
    )

    # Community sources
    stackexchange_api_base: str = field(
        default_factory=lambda: os.getenv(
            "STACKEXCHANGE_API_BASE", "https://api.stackexchange.com/2.3"
        )
    )
    stackoverflow_key: str | None = field(
        default_factory=lambda: os.getenv("STACKOVERFLOW_KEY")
    )
    reddit_api_base: str = field(
        default_factory=lambda: os.getenv("REDDIT_API_BASE", "https://www.reddit.com")
    )
    npm_registry_base: str = field(
        default_factory=lambda: os.getenv("NPM_REGISTRY_BASE", "https://registry.npmjs.org")
    )
    npm_downloads_base: str = field(
        default_factory=lambda: os.getenv("NPM_DOWNLOADS_BASE", "https://api.npmjs.org")
    )
    community_timeout: float = field(default_factory=lambda: _float_env("COMMUNITY_TIMEOUT", 10))

    # LLM
    llm_api_key: str = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY") or os.getenv("LLM_API_KEY", "")
    )
    llm_api_base: str = field(
        default_factory=lambda: os.getenv("LLM_API_BASE", "https://api.anthropic.com")
    )
    llm_model: str = field(
        default_factory=lambda: os.getenv("LLM_MODEL", "claude-sonnet-4-5")
    )
    llm_timeout: float = field(default_factory=lambda: _float_env("LLM_TIMEOUT", 60))
    llm_max_tokens: int = field(default_factory=lambda: _int_env("LLM_MAX_TOKENS", 4096))

    # Cache
    cache_enabled: bool = field(
        default_factory=lambda: os.getenv("CACHE_ENABLED", "true").lower() == "true"
    )
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379")
    )
    redis_password: str | None = field(
        default_factory=lambda: os.getenv("REDIS_PASSWORD")
    )
    cache_max_size: int = field(default_factory=lambda: _int_env("CACHE_MAX_SIZE", 2048))
    cache_stale_ttl: int = field(default_factory=lambda: _int_env("CACHE_STALE_TTL", 7 * 24 * 3600))

    # TTLs (seconds)
    ttl_github: int = field(default_factory=lambda: _int_env("TTL_GITHUB", 15 * 60))
    ttl_resolve: int = field(default_factory=lambda: _int_env("TTL_RESOLVE", 24 * 3600))
    ttl_docs: int = field(default_factory=lambda: _int_env("TTL_DOCS", 24 * 3600))
    ttl_stackoverflow: int = field(default_factory=lambda: _int_env("TTL_STACKOVERFLOW", 3600))
    ttl_reddit: int = field(default_factory=lambda: _int_env("TTL_REDDIT", 30 * 60))
    ttl_npm: int = field(default_factory=lambda: _int_env("TTL_NPM", 3600))
    ttl_analysis: int = field(default_factory=lambda: _int_env("TTL_ANALYSIS", 6 * 3600))

    # Orchestration
    max_concurrency: int = field(default_factory=lambda: _int_env("MAX_CONCURRENCY", 10))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @property
    def redis_enabled(self) -> bool:
        return self.cache_enabled and bool(self.redis_url)

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.llm_api_key.strip():
            raise ValueError(
                "ANTHROPIC_API_KEY (or LLM_API_KEY) environment variable is not set. "
                "The summarization client cannot start without it."
            )
        if self.max_concurrency < 1:
            raise ValueError("MAX_CONCURRENCY must be at least 1")


def get_settings() -> Settings:
    return Settings()
