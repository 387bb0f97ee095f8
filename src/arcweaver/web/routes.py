# src/arcweaver/web/routes.py
"""HTTP routes exposing the narrative progression engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from arcweaver.agents.act_planner import ActPlanner
from arcweaver.canon import SqlNovelRepository
from arcweaver.core.llm import LiteLLMClient
from arcweaver.core.logging import get_logger
from arcweaver.core.logs import get_event_logger
from arcweaver.errors import BatchAlreadyRunningError, NovelNotFoundError
from arcweaver.models import PlanningSkipped, SkipReason
from arcweaver.orchestration import BatchGenerationController
from arcweaver.outline import check_novel_compliance
from arcweaver.ports import CompletionClient, NovelRepository

logger = get_logger(__name__)

router = APIRouter()


class GenerateChaptersRequest(BaseModel):
    count: int = Field(ge=1, le=100)
    user_prompt: str | None = None


@lru_cache(maxsize=1)
def get_repository() -> NovelRepository:
    return SqlNovelRepository()


@lru_cache(maxsize=1)
def get_completion_client() -> CompletionClient:
    return LiteLLMClient()


@lru_cache(maxsize=1)
def get_controller() -> BatchGenerationController:
    return BatchGenerationController(get_repository(), get_completion_client())


def get_planner(
    repository: NovelRepository = Depends(get_repository),
    client: CompletionClient = Depends(get_completion_client),
) -> ActPlanner:
    return ActPlanner(repository, client)


@router.post("/novels/{novel_id}/plan-next-act")
async def plan_next_act(novel_id: int, planner: ActPlanner = Depends(get_planner)) -> dict[str, Any]:
    """Extend the chapter plan with the next act if runway is short."""
    outcome = await planner.maybe_plan_next_act(novel_id)
    if isinstance(outcome, PlanningSkipped) and outcome.reason is SkipReason.NOVEL_NOT_FOUND:
        raise HTTPException(status_code=404, detail=outcome.message)
    return outcome.model_dump(mode="json")


@router.post("/novels/{novel_id}/generate-chapters")
async def generate_chapters(
    novel_id: int,
    request: GenerateChaptersRequest,
    controller: BatchGenerationController = Depends(get_controller),
) -> dict[str, Any]:
    """Generate ``count`` consecutive chapters."""
    try:
        result = await controller.generate_batch(novel_id, request.count, request.user_prompt)
    except BatchAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except NovelNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return result.model_dump(mode="json")


@router.get("/novels/{novel_id}/generation-status")
async def generation_status(
    novel_id: int, controller: BatchGenerationController = Depends(get_controller)
) -> dict[str, Any]:
    state = controller.status(novel_id)
    return {**state.model_dump(mode="json"), "progress": state.progress}


@router.post("/novels/{novel_id}/generation/cancel")
async def cancel_generation(
    novel_id: int, controller: BatchGenerationController = Depends(get_controller)
) -> dict[str, Any]:
    return {"novel_id": novel_id, "cancelled": controller.cancel(novel_id)}


@router.post("/novels/{novel_id}/record-expansion")
async def record_expansion(
    novel_id: int, repository: NovelRepository = Depends(get_repository)
) -> dict[str, Any]:
    try:
        await repository.record_expansion(novel_id)
    except NovelNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"novel_id": novel_id, "recorded": True}


@router.get("/novels/{novel_id}/compliance")
async def compliance_report(
    novel_id: int, repository: NovelRepository = Depends(get_repository)
) -> dict[str, Any]:
    """Lint every saved chapter for concepts that belong to a later act."""
    try:
        summary = await check_novel_compliance(novel_id, repository)
    except NovelNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        **summary.model_dump(mode="json"),
        "checked": summary.checked,
        "non_compliant_chapters": summary.non_compliant_chapters,
    }


@router.get("/novels/{novel_id}/events")
async def novel_events(novel_id: int, limit: int = 100) -> list[dict[str, Any]]:
    """Return the most recent engine events for ``novel_id``."""
    return [event.to_dict() for event in get_event_logger().get_events(novel_id=novel_id, limit=limit)]


__all__ = [
    "router",
    "GenerateChaptersRequest",
    "get_repository",
    "get_completion_client",
    "get_controller",
    "get_planner",
]
