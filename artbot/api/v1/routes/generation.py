from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from artbot.agents.orchestrator import ArtGenerationOrchestrator
from artbot.api.deps import OrchestratorDep
from artbot.schemas.generation import ChainResult, GenerateArtRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=ChainResult)
async def generate_art(
    payload: GenerateArtRequest,
    response: Response,
    orchestrator: ArtGenerationOrchestrator = OrchestratorDep,
):
    """运行完整的 Agent 链并返回结果；生成失败时返回 502 和同样结构的结果"""
    logger.info("Generate requested: concept=%r style=%s", payload.concept[:100], payload.style)
    result = await orchestrator.run_project(
        payload.concept,
        style=payload.style,
        series=payload.series,
        category=payload.category,
        force=payload.force,
        name=payload.name,
        write_files=payload.write_files,
    )
    if not result.success:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return result
