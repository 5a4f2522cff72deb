"""Dependency-respecting allocation of ranked items to iterations."""
from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from math import floor
from typing import Dict, List, Mapping, Sequence

import structlog

from ..config import get_settings
from .errors import InvalidWorkItemError
from .graph import DependencyGraph
from .types import (
    DeferredItem,
    Iteration,
    IterationPlan,
    IterationSpec,
    ReadinessIssue,
    ScoredItem,
    Severity,
)

logger = structlog.get_logger(__name__)


@dataclass
class AllocationResult:
    plan: IterationPlan
    issues: list[ReadinessIssue] = field(default_factory=list)
    no_value_iterations: list[int] = field(default_factory=list)
    capacity_exceeded: bool = False

    @property
    def is_fatal(self) -> bool:
        """Nothing could be placed although there was work to place."""
        return self.capacity_exceeded and self.plan.allocated_count == 0


def shippable_items(
    iteration_index: int,
    item_ids: Sequence[str],
    assignments: Mapping[str, int],
    graph: DependencyGraph,
) -> list[str]:
    """Items of one iteration that deliver value on their own.

    Every Hard predecessor finished in an earlier iteration and none is
    missing from the backlog.
    """
    shippable: list[str] = []
    for item_id in item_ids:
        preds_done = all(
            pred in assignments and assignments[pred] < iteration_index for pred in graph.predecessors(item_id)
        )
        if preds_done and not graph.missing_prerequisites(item_id):
            shippable.append(item_id)
    return shippable


def _effective_capacity(capacity: int, buffer_pct: float) -> int:
    return floor(capacity * (1 - buffer_pct))


def _check_specs(specs: Sequence[IterationSpec]) -> list[IterationSpec]:
    ordered = sorted(specs, key=lambda spec: spec.index)
    indices = [spec.index for spec in ordered]
    if len(set(indices)) != len(indices):
        raise InvalidWorkItemError(f"Iteration indices must be unique: {indices}")
    bad = [str(spec.index) for spec in ordered if spec.capacity <= 0]
    if bad:
        raise InvalidWorkItemError(f"Iteration capacity must be positive (iterations {', '.join(bad)})")
    return ordered


class IterationAllocator:
    """Greedy first-fit packing in priority order, Hard edges as ordering constraints."""

    def __init__(self, capacity_buffer_pct: float | None = None) -> None:
        self._buffer = (
            capacity_buffer_pct if capacity_buffer_pct is not None else get_settings().tuning.capacity_buffer_pct
        )

    def allocate(
        self,
        ordered_items: Sequence[ScoredItem],
        graph: DependencyGraph,
        iterations: Sequence[IterationSpec],
    ) -> AllocationResult:
        specs = _check_specs(iterations)
        capacities = [_effective_capacity(spec.capacity, self._buffer) for spec in specs]
        used = [0] * len(specs)
        slots: List[List[str]] = [[] for _ in specs]
        placed: Dict[str, int] = {}
        deferred: Dict[str, DeferredItem] = {}

        position = {entry.item.id: idx for idx, entry in enumerate(ordered_items)}
        by_id = {entry.item.id: entry for entry in ordered_items}
        indegree = {
            item_id: sum(1 for pred in graph.predecessors(item_id) if pred in position) for item_id in position
        }
        ready = [(position[item_id], item_id) for item_id, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)

        while ready:
            _, item_id = heapq.heappop(ready)
            size = by_id[item_id].item.size
            preds = graph.predecessors(item_id)
            missing = graph.missing_prerequisites(item_id) + [p for p in preds if p not in position]
            blocked = [pred for pred in preds if pred in deferred]

            if missing:
                deferred[item_id] = DeferredItem(item_id, "Missing prerequisite", tuple(missing))
            elif blocked:
                deferred[item_id] = DeferredItem(item_id, "Prerequisite deferred", tuple(blocked))
            else:
                earliest = max((placed[pred] for pred in preds), default=0)
                slot = next(
                    (i for i in range(earliest, len(specs)) if capacities[i] - used[i] >= size),
                    None,
                )
                if slot is None:
                    reason = (
                        "Larger than any iteration capacity"
                        if all(size > capacity for capacity in capacities)
                        else "No iteration with remaining capacity after its prerequisites"
                    )
                    deferred[item_id] = DeferredItem(item_id, reason)
                else:
                    placed[item_id] = slot
                    used[slot] += size
                    slots[slot].append(item_id)
                    logger.debug("allocator.placed", item_id=item_id, iteration=specs[slot].index, size=size)

            for succ in graph.successors(item_id):
                if succ in indegree:
                    indegree[succ] -= 1
                    if indegree[succ] == 0:
                        heapq.heappush(ready, (position[succ], succ))

        # Anything never released sits behind a cycle; the builder normally prevents this.
        for entry in ordered_items:
            if entry.item.id not in placed and entry.item.id not in deferred:
                deferred[entry.item.id] = DeferredItem(entry.item.id, "Unresolvable dependency ordering")

        plan = IterationPlan(
            iterations=tuple(
                Iteration(
                    index=spec.index,
                    capacity=spec.capacity,
                    allocated_items=tuple(slots[i]),
                    used=used[i],
                    effective_capacity=capacities[i],
                )
                for i, spec in enumerate(specs)
            ),
            unallocated=tuple(deferred[entry.item.id] for entry in ordered_items if entry.item.id in deferred),
        )

        issues: list[ReadinessIssue] = []
        total_size = sum(entry.item.size for entry in ordered_items)
        total_capacity = sum(capacities)
        capacity_exceeded = total_size > total_capacity
        if capacity_exceeded:
            issues.append(
                ReadinessIssue(
                    code="CapacityExceededGlobally",
                    message=f"Backlog size {total_size} exceeds total iteration capacity {total_capacity}",
                    related_ids=tuple(d.item_id for d in plan.unallocated),
                    severity=Severity.warning,
                )
            )
        for entry in plan.unallocated:
            issues.append(
                ReadinessIssue(
                    code="ItemDeferred",
                    message=f"{entry.item_id} deferred: {entry.reason}",
                    related_ids=(entry.item_id, *entry.blockers),
                    severity=Severity.warning,
                )
            )

        assignments = plan.assignments()
        no_value = [
            iteration.index
            for iteration in plan.iterations
            if iteration.allocated_items
            and not shippable_items(iteration.index, iteration.allocated_items, assignments, graph)
        ]

        result = AllocationResult(
            plan=plan,
            issues=issues,
            no_value_iterations=no_value,
            capacity_exceeded=capacity_exceeded,
        )
        if result.is_fatal and ordered_items:
            issues[0] = ReadinessIssue(
                code="CapacityExceededGlobally",
                message=issues[0].message + "; no item could be allocated",
                related_ids=issues[0].related_ids,
            )
        logger.info(
            "allocator.completed",
            allocated=plan.allocated_count,
            deferred=plan.deferred_count,
            utilization=[iteration.utilization for iteration in plan.iterations],
            no_value_iterations=no_value,
        )
        return result


__all__ = ["AllocationResult", "IterationAllocator", "shippable_items"]
