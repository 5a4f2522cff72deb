"""Post-allocation readiness checks."""
from __future__ import annotations

import structlog

from ..config import get_settings
from .allocator import shippable_items
from .errors import CycleError
from .graph import DependencyGraph
from .types import IterationPlan, ReadinessIssue, ReadinessReport, Severity

logger = structlog.get_logger(__name__)


class ReadinessValidator:
    """Runs every check without early exit and collects the findings."""

    def validate(
        self,
        plan: IterationPlan,
        graph: DependencyGraph,
        max_item_size: int | None = None,
    ) -> ReadinessReport:
        limit = max_item_size if max_item_size is not None else get_settings().tuning.max_item_size
        report = ReadinessReport()
        report.extend(self._check_item_sizes(plan, graph, limit))
        report.extend(self._check_dependencies(plan, graph))
        report.extend(self._check_capacity(plan, graph))
        report.extend(self._check_deliverable_value(plan, graph))
        report.extend(self._check_soft_dependencies(plan, graph))
        logger.info(
            "readiness.validated",
            is_ready=report.is_ready,
            issues=report.codes(),
            warnings=len(report.warnings),
        )
        return report

    def _check_item_sizes(self, plan: IterationPlan, graph: DependencyGraph, limit: int) -> list[ReadinessIssue]:
        issues: list[ReadinessIssue] = []
        for iteration in plan.iterations:
            for item_id in iteration.allocated_items:
                if item_id not in graph:
                    issues.append(
                        ReadinessIssue(
                            code="InvalidWorkItem",
                            message=f"Iteration {iteration.index} references unknown item {item_id}",
                            related_ids=(item_id,),
                        )
                    )
                elif graph.size(item_id) > limit:
                    issues.append(
                        ReadinessIssue(
                            code="ItemOversized",
                            message=f"{item_id} has size {graph.size(item_id)} above the limit of {limit}",
                            related_ids=(item_id,),
                        )
                    )
        return issues

    def _check_dependencies(self, plan: IterationPlan, graph: DependencyGraph) -> list[ReadinessIssue]:
        cycles = graph.find_cycles()
        issues = CycleError(cycles, graph.hard_edges).to_issues() if cycles else []
        assignments = plan.assignments()
        for edge in graph.hard_edges:
            before, after = assignments.get(edge.from_id), assignments.get(edge.to_id)
            if after is not None and (before is None or before > after):
                issues.append(
                    ReadinessIssue(
                        code="DependencyOrderViolated",
                        message=f"{edge.to_id} is scheduled before its prerequisite {edge.from_id}",
                        related_ids=(edge.from_id, edge.to_id),
                    )
                )
        return issues

    def _check_capacity(self, plan: IterationPlan, graph: DependencyGraph) -> list[ReadinessIssue]:
        issues: list[ReadinessIssue] = []
        for iteration in plan.iterations:
            total = sum(graph.size(item_id) for item_id in iteration.allocated_items if item_id in graph)
            if total > iteration.capacity:
                issues.append(
                    ReadinessIssue(
                        code="CapacityExceeded",
                        message=f"Iteration {iteration.index} holds {total} points over a capacity of {iteration.capacity}",
                        related_ids=iteration.allocated_items,
                    )
                )
        return issues

    def _check_deliverable_value(self, plan: IterationPlan, graph: DependencyGraph) -> list[ReadinessIssue]:
        assignments = plan.assignments()
        issues: list[ReadinessIssue] = []
        for iteration in plan.iterations:
            known = [item_id for item_id in iteration.allocated_items if item_id in graph]
            if known and not shippable_items(iteration.index, known, assignments, graph):
                issues.append(
                    ReadinessIssue(
                        code="NoDeliverableValue",
                        message=f"Iteration {iteration.index} only holds prerequisites for unfinished work",
                        related_ids=iteration.allocated_items,
                    )
                )
        return issues

    def _check_soft_dependencies(self, plan: IterationPlan, graph: DependencyGraph) -> list[ReadinessIssue]:
        assignments = plan.assignments()
        warnings: list[ReadinessIssue] = []
        for edge in graph.soft_edges:
            before, after = assignments.get(edge.from_id), assignments.get(edge.to_id)
            if before is not None and after is not None and before > after:
                warnings.append(
                    ReadinessIssue(
                        code="SoftDependencyViolated",
                        message=f"{edge.to_id} is scheduled before its soft prerequisite {edge.from_id}",
                        related_ids=(edge.from_id, edge.to_id),
                        severity=Severity.warning,
                    )
                )
        return warnings


__all__ = ["ReadinessValidator"]
