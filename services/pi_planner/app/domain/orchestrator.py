"""Planning run orchestration: decompose, graph, score, allocate, validate."""
from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import structlog

from ..config import get_settings
from .allocator import IterationAllocator
from .decomposer import decompose_backlog
from .errors import BacklogTooLargeError, CycleError, InvalidWorkItemError, PlanningError
from .graph import DependencyGraphBuilder
from .inference import EdgeInferencer, default_inferencers
from .prioritizer import Prioritizer, recommend
from .readiness import ReadinessValidator
from .types import (
    DependencyEdge,
    IterationSpec,
    PlanningResult,
    ReadinessReport,
    ValueFactors,
    WorkItem,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PlanningRequest:
    """Immutable input snapshot for one planning run."""

    items: Sequence[WorkItem]
    iterations: Sequence[IterationSpec]
    value_factors: Mapping[str, ValueFactors]
    edges: Sequence[DependencyEdge] = field(default_factory=list)
    max_item_size: int | None = None
    dependency_aware: bool | None = None


def _check_backlog(items: Sequence[WorkItem], max_items: int) -> None:
    if len(items) > max_items:
        raise BacklogTooLargeError(f"Backlog has {len(items)} items; the limit is {max_items}")
    duplicates = sorted(item_id for item_id, count in Counter(item.id for item in items).items() if count > 1)
    if duplicates:
        raise InvalidWorkItemError(f"Duplicate work item ids: {', '.join(duplicates)}", duplicates)
    invalid = sorted(item.id for item in items if item.size <= 0)
    if invalid:
        raise InvalidWorkItemError(f"Work items must have a positive size: {', '.join(invalid)}", invalid)


class PlanningOrchestrator:
    """Runs every stage in order and never lets a ``PlanningError`` escape."""

    def __init__(self, inferencers: Sequence[EdgeInferencer] | None = None) -> None:
        self._inferencers = list(inferencers) if inferencers is not None else default_inferencers()
        self._settings = get_settings()

    def run(self, request: PlanningRequest) -> PlanningResult:
        start = time.perf_counter()
        limit = request.max_item_size
        if limit is None:
            limit = self._settings.tuning.max_item_size
        report = ReadinessReport()
        result = PlanningResult(plan=None, validation=report)

        try:
            _check_backlog(request.items, self._settings.tuning.max_backlog_items)

            backlog = decompose_backlog(request.items, request.edges, limit)
            report.extend(backlog.failures)
            report.extend(backlog.warnings)
            result.decompositions = backlog.results
            result.items = backlog.items

            graph = DependencyGraphBuilder(self._inferencers).build(backlog.items, backlog.edges)
            result.edges = graph.edges + graph.dangling_edges
            result.critical_path = list(graph.critical_path.ids)
            result.critical_path_size = graph.critical_path.total_size

            ranking = Prioritizer(dependency_aware=request.dependency_aware).score(
                backlog.items, request.value_factors, graph
            )
            result.ranking = ranking
            result.recommendations = recommend(ranking)

            allocation = IterationAllocator().allocate(ranking, graph, request.iterations)
            report.extend(allocation.issues)
            if allocation.is_fatal:
                logger.warning("orchestrator.halted", stage="allocate", reason="CapacityExceededGlobally")
                return result

            validation = ReadinessValidator().validate(allocation.plan, graph, limit)
            report.extend(validation.issues)
            report.extend(validation.warnings)
            result.plan = allocation.plan
        except CycleError as exc:
            report.extend(exc.to_issues())
            logger.warning("orchestrator.halted", stage="graph", reason=exc.code, cycles=exc.cycles)
        except PlanningError as exc:
            report.add(exc.to_issue())
            logger.warning("orchestrator.halted", reason=exc.code, message=exc.message)
        finally:
            logger.info(
                "orchestrator.completed",
                is_ready=report.is_ready,
                planned=result.plan is not None,
                issues=report.codes(),
                warnings=len(report.warnings),
                wall_time_ms=int((time.perf_counter() - start) * 1000),
            )
        return result


def plan_iterations(request: PlanningRequest, inferencers: Sequence[EdgeInferencer] | None = None) -> PlanningResult:
    return PlanningOrchestrator(inferencers).run(request)


__all__ = ["PlanningOrchestrator", "PlanningRequest", "plan_iterations"]
