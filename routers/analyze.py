"""Analysis, prefetch and cache administration endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from models.schemas import AnalysisResponse, AnalyzeRequest, PrefetchRequest, PrefetchResponse
from services.context import AppContext
from utils.tool_names import DEFAULT_PREFETCH_TOOLS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    body: AnalyzeRequest,
    ctx: AppContext = Depends(get_context),
) -> AnalysisResponse:
    logger.info("Analysis request: input=%r type=%s", body.input, body.type)
    return await ctx.orchestrator.analyze(
        body.input,
        body.type,
        skip_cache=body.options.skip_cache,
        include_metrics=body.options.include_metrics,
    )


@router.post("/prefetch", response_model=PrefetchResponse)
async def prefetch(
    background: BackgroundTasks,
    body: PrefetchRequest | None = None,
    ctx: AppContext = Depends(get_context),
) -> PrefetchResponse:
    tools = (body.tools if body is not None else None) or list(DEFAULT_PREFETCH_TOOLS)
    background.add_task(ctx.orchestrator.prefetch_common_tools, tools)
    return PrefetchResponse(message="Prefetch started", tools=tools)


@router.delete("/cache")
async def clear_cache(ctx: AppContext = Depends(get_context)) -> dict:
    await ctx.cache.clear()
    return {"message": "Cache cleared"}
