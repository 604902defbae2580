"""Provider-agnostic LLM client supporting OpenAI and Anthropic APIs.

Detects the provider from LLM_API_BASE and formats requests accordingly.
Both operations send one prompt built from live tool data and validate the
JSON answer against the analysis models.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import Settings
from models.schemas import ComparisonAnalysis, DeepDiveAnalysis, ToolDataBundle
from utils.context_builder import build_context, format_tool_context
from utils.errors import SummarizationError

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are a technical analyst with access to REAL-TIME DATA from GitHub, "
    "official documentation, and community platforms. {task}\n\n"
    "CRITICAL: Respond with ONLY valid JSON. No markdown, no code fences, "
    "no additional text."
)

COMPARISON_TASK = (
    "Your task is to provide data-driven analysis using this fresh information "
    "to help developers choose between tools and technologies."
)

DEEP_DIVE_TASK = (
    "Your task is to provide a comprehensive, data-driven analysis of a single "
    "tool to help developers understand it deeply."
)

COMPARISON_PROMPT_TEMPLATE = """Compare the following tools: {names}

REAL-TIME DATA:
{context}

Provide a comprehensive comparison focusing on:
1. Technical architecture and implementation
2. Developer Experience (DX)
3. Performance and scalability
4. Community adoption and ecosystem
5. Use cases and ideal scenarios

List the tools in the same order as above. Respond with ONLY valid JSON matching this structure:
{{
  "tools": [
    {{
      "name": "Tool Name",
      "technical_summary": "Brief technical overview",
      "use_cases": ["Use case 1", "Use case 2"],
      "strengths": ["Strength 1", "Strength 2"],
      "community_rating": 4.5,
      "top_pros_cons": {{"pros": ["Pro 1"], "cons": ["Con 1"]}},
      "architectural_insights": "Architecture details",
      "gotchas": ["Gotcha 1", "Gotcha 2"]
    }}
  ],
  "comparison_summary": "Overall comparison summary",
  "recommendation": "When to use each tool"
}}"""

DEEP_DIVE_PROMPT_TEMPLATE = """Provide an in-depth analysis of: {name}

REAL-TIME DATA:
{context}

Provide a comprehensive deep-dive covering:
1. Architectural design and technical implementation
2. Core use cases and ideal scenarios
3. Strengths and unique features
4. Common gotchas and pitfalls
5. Best practices and recommendations
6. Learning resources

Respond with ONLY valid JSON matching this structure:
{{
  "name": "Tool Name",
  "technical_summary": "Comprehensive technical overview",
  "use_cases": ["Use case 1", "Use case 2"],
  "strengths": ["Strength 1", "Strength 2"],
  "community_rating": 4.5,
  "top_pros_cons": {{"pros": ["Pro 1"], "cons": ["Con 1"]}},
  "architectural_design": "Detailed architecture explanation",
  "best_practices": ["Practice 1", "Practice 2"],
  "common_pitfalls": ["Pitfall 1", "Pitfall 2"],
  "gotchas": ["Gotcha 1", "Gotcha 2"],
  "learning_resources": [
    {{"type": "Documentation", "title": "Title", "url": "URL"}}
  ]
}}"""


class LLMClientError(SummarizationError):
    """Raised when the LLM API call fails (timeout, transport, non-200)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code


class LLMResponseFormatError(SummarizationError):
    """Raised when the LLM answers, but not with the expected JSON shape."""


def _is_anthropic(api_base: str) -> bool:
    return "anthropic.com" in api_base


class LLMClient:
    """Calls either the Anthropic Messages API or an OpenAI-compatible endpoint."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = settings.llm_api_base.rstrip("/")
        self._api_key = settings.llm_api_key
        self._model = settings.llm_model
        self._timeout = settings.llm_timeout
        self._max_tokens = settings.llm_max_tokens
        self._is_anthropic = _is_anthropic(self._api_base)
        self._transport = transport

    async def summarize_comparison(
        self, bundles: list[ToolDataBundle]
    ) -> tuple[ComparisonAnalysis, int]:
        """Compare several tools; returns the analysis and the tokens spent."""
        user = COMPARISON_PROMPT_TEMPLATE.format(
            names=" vs ".join(b.tool for b in bundles),
            context=build_context(bundles),
        )
        raw, tokens = await self._complete(SYSTEM_PROMPT.format(task=COMPARISON_TASK), user)
        analysis = self._validate(ComparisonAnalysis, raw, "comparison")
        if len(analysis.tools) != len(bundles):
            logger.warning(
                "LLM returned %d tool entries for %d requested tools",
                len(analysis.tools),
                len(bundles),
            )
        return analysis, tokens

    async def summarize_deep_dive(self, bundle: ToolDataBundle) -> tuple[DeepDiveAnalysis, int]:
        """Analyse a single tool in depth; returns the analysis and the tokens spent."""
        user = DEEP_DIVE_PROMPT_TEMPLATE.format(
            name=bundle.tool,
            context=format_tool_context(bundle),
        )
        raw, tokens = await self._complete(SYSTEM_PROMPT.format(task=DEEP_DIVE_TASK), user)
        return self._validate(DeepDiveAnalysis, raw, "deepdive"), tokens

    async def _complete(self, system: str, user: str) -> tuple[str, int]:
        try:
            if self._is_anthropic:
                return await self._call_anthropic(system, user)
            return await self._call_openai(system, user)
        except httpx.TimeoutException as exc:
            logger.error("LLM request timed out after %ss", self._timeout)
            raise LLMClientError(f"LLM request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.error("LLM transport error: %s", exc)
            raise LLMClientError(f"LLM request failed: {exc}") from exc

    async def _call_openai(self, system: str, user: str) -> tuple[str, int]:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": self._max_tokens,
            "temperature": 0.2,
        }
        headers = {}
        if self._api_key and self._api_key.strip():
            headers["Authorization"] = f"Bearer {self._api_key.strip()}"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self._api_base}/chat/completions",
                json=payload,
                headers=headers,
            )

        if resp.status_code != 200:
            logger.error("LLM API returned %d: %s", resp.status_code, resp.text[:200])
            raise LLMClientError(
                f"LLM API returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            raw = data["choices"][0]["message"]["content"].strip()
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise LLMResponseFormatError(f"Unexpected LLM response envelope: {exc}") from exc
        tokens = (data.get("usage") or {}).get("total_tokens", 0)
        return raw, tokens

    async def _call_anthropic(self, system: str, user: str) -> tuple[str, int]:
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": 0.2,
            "system": system,
            "messages": [
                {"role": "user", "content": user},
            ],
        }
        headers = {
            "x-api-key": self._api_key.strip() if self._api_key else "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self._api_base}/v1/messages",
                json=payload,
                headers=headers,
            )

        if resp.status_code != 200:
            logger.error("Anthropic API returned %d: %s", resp.status_code, resp.text[:200])
            raise LLMClientError(
                f"Anthropic API returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            raw = data["content"][0]["text"].strip()
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise LLMResponseFormatError(f"Unexpected Anthropic response envelope: {exc}") from exc
        usage = data.get("usage") or {}
        tokens = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
        return raw, tokens

    @staticmethod
    def _parse_json(raw: str) -> dict[str, Any]:
        # Strip markdown code fences if present
        if raw.startswith("```"):
            raw = raw.split("\n", 1)[1] if "\n" in raw else raw[3:]
            if raw.endswith("```"):
                raw = raw[:-3].strip()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("LLM returned invalid JSON: %s", raw[:200])
            raise LLMResponseFormatError(f"LLM returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            logger.error("LLM returned JSON %s, expected an object", type(data).__name__)
            raise LLMResponseFormatError("LLM returned JSON that is not an object")
        return data

    def _validate(self, model: type[A], raw: str, kind: str) -> A:
        data = self._parse_json(raw)
        try:
            return model.model_validate({**data, "kind": kind})
        except ValidationError as exc:
            logger.error("LLM %s response failed validation: %s", kind, exc)
            raise LLMResponseFormatError(
                f"LLM {kind} response did not match the expected schema"
            ) from exc
