"""
AI Visibility Router with Timing Instrumentation

Handles competitor discovery for a company and single-company
visibility analysis.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..agents.competitor_discovery import CompetitorDiscoveryPipeline
from ..schemas.visibility_schema import (
    AnalyzeCompetitorRequest,
    DiscoveryResult,
    VisibilityRecord,
)

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/ai-visibility",
    tags=["AI Visibility"],
    responses={
        500: {"description": "Internal server error during analysis"}
    }
)


def get_pipeline(request: Request) -> CompetitorDiscoveryPipeline:
    """The pipeline built at startup (see ``main.lifespan``)."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Discovery pipeline is not configured",
        )
    return pipeline


@router.post(
    "/analyze-competitor",
    response_model=VisibilityRecord,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="Analyze a Single Company",
    response_description="Citation count, customer rating and share of voice",
)
async def analyze_competitor(
    body: AnalyzeCompetitorRequest,
    pipeline: CompetitorDiscoveryPipeline = Depends(get_pipeline),
) -> VisibilityRecord:
    """Visibility metrics for one company, without competitor discovery."""
    start_time = time.perf_counter()
    logger.info("[TIMING] analyze_competitor_endpoint: START")
    try:
        record = await pipeline.analyze_single(body.company_name, body.industry)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    duration = (time.perf_counter() - start_time) * 1000
    logger.info("[TIMING] analyze_competitor_endpoint: END — duration=%.0fms", duration)
    return record


@router.get(
    "/{company}",
    response_model=DiscoveryResult,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="Discover Competitors and Score Visibility",
    response_description="Target first, then every accepted competitor",
)
async def discover_competitors(
    company: str,
    industry: Optional[str] = Query(default=None, max_length=200),
    pipeline: CompetitorDiscoveryPipeline = Depends(get_pipeline),
) -> DiscoveryResult:
    """
    Run competitor discovery for ``company`` and collect visibility
    records for it and every accepted competitor.
    """
    start_time = time.perf_counter()
    logger.info("[TIMING] discover_endpoint: START")
    try:
        result = await pipeline.discover(company, industry)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    duration = (time.perf_counter() - start_time) * 1000
    logger.info(
        "[TIMING] discover_endpoint: END — duration=%.0fms competitors=%d timed_out=%s",
        duration, len(result.competitors), result.timed_out,
    )
    return result
