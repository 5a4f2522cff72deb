"""Planner run persistence around the planning engine."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..observability.otel import get_tracer
from ..persistence.models import AuditLog, PlanDependency, PlanItem, PlanIteration, PlanRun, PlanStatus
from ..persistence.storage import ArtifactStorage
from .orchestrator import PlanningOrchestrator, PlanningRequest
from .report import build_plan_report
from .types import PlanningResult

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass
class PlanCreateParams:
    project_id: str
    run_id: str
    request: PlanningRequest
    payload: dict[str, Any]
    principal: str = "system"
    correlation_id: str = "system"


def plan_status(result: PlanningResult) -> PlanStatus:
    if result.plan is None:
        return PlanStatus.failed
    return PlanStatus.ready if result.validation.is_ready else PlanStatus.not_ready


class PlannerService:
    def __init__(self, session: AsyncSession, orchestrator: PlanningOrchestrator | None = None) -> None:
        self._session = session
        self._storage = ArtifactStorage()
        self._settings = get_settings()
        self._orchestrator = orchestrator or PlanningOrchestrator()

    async def create_plan(self, params: PlanCreateParams) -> tuple[PlanRun, PlanningResult]:
        start = time.perf_counter()
        with tracer.start_as_current_span("planner.run") as span:
            span.set_attribute("planner.project_id", params.project_id)
            span.set_attribute("planner.items", len(params.request.items))
            result = self._orchestrator.run(params.request)
            span.set_attribute("planner.ready", result.validation.is_ready)

        plan_run = PlanRun(
            project_id=params.project_id,
            run_id=params.run_id,
            status=plan_status(result),
            max_item_size=(
                params.request.max_item_size
                if params.request.max_item_size is not None
                else self._settings.tuning.max_item_size
            ),
            critical_path=result.critical_path,
            critical_path_size=result.critical_path_size,
            validation=result.validation.to_dict(),
            wall_time_ms=int((time.perf_counter() - start) * 1000),
            params={
                "capacityBufferPct": self._settings.tuning.capacity_buffer_pct,
                "dependencyAware": (
                    params.request.dependency_aware
                    if params.request.dependency_aware is not None
                    else self._settings.tuning.dependency_aware_priority
                ),
                "request": params.payload,
            },
        )
        self._session.add(plan_run)
        await self._session.flush()

        self._persist_items(plan_run, result)
        self._persist_iterations(plan_run, result)
        self._persist_dependencies(plan_run, result)
        self._persist_audit(plan_run, params)

        report = build_plan_report(plan_run, result)
        plan_run.report_ref = await self._storage.put_json(report)
        await self._session.flush()

        logger.info(
            "planner.plan_created",
            plan_id=plan_run.id,
            project_id=params.project_id,
            status=plan_run.status.value,
            correlation_id=params.correlation_id,
        )
        return plan_run, result

    def _persist_items(self, plan_run: PlanRun, result: PlanningResult) -> None:
        ranking = {scored.item.id: (rank, scored) for rank, scored in enumerate(result.ranking, start=1)}
        assignments = result.plan.assignments() if result.plan is not None else {}
        deferred = {entry.item_id: entry.reason for entry in result.plan.unallocated} if result.plan else {}
        for item in result.items:
            rank, scored = ranking.get(item.id, (None, None))
            self._session.add(
                PlanItem(
                    plan_id=plan_run.id,
                    item_id=item.id,
                    parent_id=item.parent_id,
                    kind=item.kind,
                    title=item.title,
                    description=item.description,
                    size=item.size,
                    acceptance_criteria=list(item.acceptance_criteria),
                    wsjf=round(scored.wsjf, 4) if scored is not None else None,
                    priority=scored.priority.value if scored is not None else None,
                    rank=rank,
                    iteration_index=assignments.get(item.id),
                    deferred_reason=deferred.get(item.id),
                )
            )

    def _persist_iterations(self, plan_run: PlanRun, result: PlanningResult) -> None:
        if result.plan is None:
            return
        for iteration in result.plan.iterations:
            self._session.add(
                PlanIteration(
                    plan_id=plan_run.id,
                    iteration_index=iteration.index,
                    capacity=iteration.capacity,
                    effective_capacity=(
                        iteration.effective_capacity
                        if iteration.effective_capacity is not None
                        else iteration.capacity
                    ),
                    used=iteration.used,
                )
            )

    def _persist_dependencies(self, plan_run: PlanRun, result: PlanningResult) -> None:
        for edge in result.edges:
            self._session.add(
                PlanDependency(
                    plan_id=plan_run.id,
                    from_item=edge.from_id,
                    to_item=edge.to_id,
                    kind=edge.kind,
                    strength=edge.strength,
                    source=edge.source,
                    rationale=edge.rationale,
                )
            )

    def _persist_audit(self, plan_run: PlanRun, params: PlanCreateParams) -> None:
        audit = AuditLog(
            principal=params.principal,
            action="plan.created",
            new_val={"planId": plan_run.id, "projectId": params.project_id, "status": plan_run.status.value},
            correlation_id=params.correlation_id,
        )
        self._session.add(audit)


__all__ = ["PlanCreateParams", "PlannerService", "plan_status"]
