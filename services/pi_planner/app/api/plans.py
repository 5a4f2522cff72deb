"""Plan management API."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.planner_service import PlanCreateParams, PlannerService
from ..persistence.models import PlanDependency, PlanItem, PlanIteration, PlanRun
from ..persistence.storage import ArtifactStorage
from .deps import get_db_session, get_planner_service
from .schemas import PlanCreateRequest, PlanSummaryResponse

router = APIRouter(prefix="/plans", tags=["plans"])


def _plan_not_found(plan_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Plan {plan_id} not found")


async def _load_plan(session: AsyncSession, plan_id: str) -> PlanRun:
    plan = await session.get(PlanRun, plan_id)
    if not plan:
        raise _plan_not_found(plan_id)
    return plan


async def _run_plan(service: PlannerService, request: PlanCreateRequest) -> PlanRun:
    plan, _ = await service.create_plan(
        PlanCreateParams(
            project_id=request.project_id,
            run_id=request.run_id,
            request=request.to_planning_request(),
            payload=request.model_dump(by_alias=True, mode="json"),
            principal="api",
            correlation_id=structlog.contextvars.get_contextvars().get("correlation_id", str(uuid.uuid4())),
        )
    )
    return plan


def _build_summary(plan: PlanRun) -> PlanSummaryResponse:
    validation = plan.validation or {}
    return PlanSummaryResponse(
        id=plan.id,
        projectId=plan.project_id,
        runId=plan.run_id,
        status=plan.status.value,
        isReady=validation.get("isReady", False),
        criticalPath=plan.critical_path or [],
        criticalPathSize=plan.critical_path_size,
        issues=validation.get("issues", []),
        warnings=validation.get("warnings", []),
        reportRef=plan.report_ref,
        createdAt=plan.created_at.isoformat() if plan.created_at else None,
        updatedAt=plan.updated_at.isoformat() if plan.updated_at else None,
    )


async def _ranked_items(session: AsyncSession, plan_id: str) -> List[PlanItem]:
    result = await session.execute(
        select(PlanItem)
        .where(PlanItem.plan_id == plan_id)
        .order_by(PlanItem.rank.is_(None), PlanItem.rank, PlanItem.item_id)
    )
    return list(result.scalars().all())


@router.post("", response_model=PlanSummaryResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: PlanCreateRequest,
    service: PlannerService = Depends(get_planner_service),
):
    plan = await _run_plan(service, request)
    return _build_summary(plan)


@router.get("/{plan_id}", response_model=PlanSummaryResponse)
async def get_plan(plan_id: str, session: AsyncSession = Depends(get_db_session)):
    plan = await _load_plan(session, plan_id)
    return _build_summary(plan)


@router.get("/{plan_id}/iterations")
async def get_iterations(plan_id: str, session: AsyncSession = Depends(get_db_session)):
    await _load_plan(session, plan_id)
    iterations_result = await session.execute(
        select(PlanIteration).where(PlanIteration.plan_id == plan_id).order_by(PlanIteration.iteration_index)
    )
    items = await _ranked_items(session, plan_id)
    allocated: Dict[int, List[str]] = {}
    unallocated: List[dict[str, Any]] = []
    for item in items:
        if item.iteration_index is not None:
            allocated.setdefault(item.iteration_index, []).append(item.item_id)
        elif item.deferred_reason:
            unallocated.append({"id": item.item_id, "reason": item.deferred_reason})
    iterations = [
        {
            "index": row.iteration_index,
            "capacity": row.capacity,
            "effectiveCapacity": row.effective_capacity,
            "used": row.used,
            "allocatedItems": allocated.get(row.iteration_index, []),
        }
        for row in iterations_result.scalars()
    ]
    return {"iterations": iterations, "unallocated": unallocated}


@router.get("/{plan_id}/graph")
async def get_graph(plan_id: str, session: AsyncSession = Depends(get_db_session)):
    plan = await _load_plan(session, plan_id)
    items = await _ranked_items(session, plan_id)
    edges_result = await session.execute(select(PlanDependency).where(PlanDependency.plan_id == plan_id))
    nodes = [
        {
            "id": item.item_id,
            "title": item.title,
            "kind": item.kind.value,
            "size": item.size,
            "parentId": item.parent_id,
            "wsjf": float(item.wsjf) if item.wsjf is not None else None,
            "priority": item.priority,
            "iteration": item.iteration_index,
        }
        for item in items
    ]
    edges = [
        {
            "from": edge.from_item,
            "to": edge.to_item,
            "kind": edge.kind.value,
            "strength": edge.strength.value,
            "source": edge.source,
            "rationale": edge.rationale,
        }
        for edge in edges_result.scalars()
    ]
    return {"nodes": nodes, "edges": edges, "criticalPath": plan.critical_path or []}


@router.get("/{plan_id}/report")
async def get_report(plan_id: str, session: AsyncSession = Depends(get_db_session)):
    plan = await _load_plan(session, plan_id)
    if not plan.report_ref:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not generated")
    report = await ArtifactStorage().get_json(plan.report_ref)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {plan.report_ref} missing")
    return report


@router.post("/{plan_id}/rerun", response_model=PlanSummaryResponse, status_code=status.HTTP_201_CREATED)
async def rerun_plan(
    plan_id: str,
    session: AsyncSession = Depends(get_db_session),
    service: PlannerService = Depends(get_planner_service),
):
    plan = await _load_plan(session, plan_id)
    payload = (plan.params or {}).get("request")
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Plan does not contain a rerunnable request")
    request = PlanCreateRequest.model_validate({**payload, "runId": str(uuid.uuid4())})
    new_plan = await _run_plan(service, request)
    return _build_summary(new_plan)


__all__ = ["router"]
