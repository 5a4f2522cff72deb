"""Planning error taxonomy.

Stages raise these; the orchestrator turns them into ``ReadinessIssue``
values so nothing escapes the library boundary.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .types import DependencyEdge, ReadinessIssue, Severity


class PlanningError(Exception):
    code = "PlanningError"

    def __init__(self, message: str, related_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.related_ids = tuple(related_ids)

    def to_issue(self, severity: Severity = Severity.error) -> ReadinessIssue:
        return ReadinessIssue(code=self.code, message=self.message, related_ids=self.related_ids, severity=severity)


class DecompositionError(PlanningError):
    code = "SizeTooLargeForSplit"


def _cycle_edges(cycle: Sequence[str], edges: Mapping[tuple[str, str], DependencyEdge]) -> list[DependencyEdge]:
    pairs = zip(cycle, [*cycle[1:], cycle[0]])
    return [edges[pair] for pair in pairs if pair in edges]


def resolution_suggestions(cycle: Sequence[str], cycle_edges: Sequence[DependencyEdge]) -> list[str]:
    """Concrete ways to break ``cycle``, most specific first."""
    suggestions: list[str] = []
    if cycle_edges:
        listed = ", ".join(f"{edge.from_id} -> {edge.to_id} ({edge.source})" for edge in cycle_edges)
        suggestions.append(f"Review the necessity of each dependency in the cycle: {listed}")
    inferred = [edge for edge in cycle_edges if edge.source != "explicit"]
    if inferred:
        listed = ", ".join(f"{edge.from_id} -> {edge.to_id}" for edge in inferred)
        suggestions.append(
            f"Inferred edges {listed} can be overridden by declaring the intended direction explicitly"
        )
    suggestions.append("Downgrade one edge in the cycle to Soft so its ordering becomes advisory")
    suggestions.append("Reorder the work items into a linear dependency chain")
    if len(cycle) > 3:
        suggestions.append("Split large work items to reduce dependency complexity")
    return suggestions


class CycleError(PlanningError):
    code = "CircularDependency"

    def __init__(self, cycles: Sequence[Sequence[str]], edges: Iterable[DependencyEdge] = ()) -> None:
        self.cycles = [list(cycle) for cycle in cycles]
        self.edges = {edge.key: edge for edge in edges}
        rendered = "; ".join(" -> ".join([*cycle, cycle[0]]) for cycle in self.cycles)
        related = sorted({node for cycle in self.cycles for node in cycle})
        super().__init__(f"Hard dependency cycle detected: {rendered}", related)

    def to_issues(self) -> list[ReadinessIssue]:
        return [
            ReadinessIssue(
                code=self.code,
                message="Hard dependency cycle: " + " -> ".join([*cycle, cycle[0]]),
                related_ids=tuple(cycle),
                suggestions=tuple(resolution_suggestions(cycle, _cycle_edges(cycle, self.edges))),
            )
            for cycle in self.cycles
        ]


class InvalidWorkItemError(PlanningError):
    code = "InvalidWorkItem"


class ValueFactorsMissingError(PlanningError):
    code = "MissingValueFactors"


class BacklogTooLargeError(PlanningError):
    code = "BacklogTooLarge"


__all__ = [
    "BacklogTooLargeError",
    "CycleError",
    "DecompositionError",
    "InvalidWorkItemError",
    "PlanningError",
    "ValueFactorsMissingError",
    "resolution_suggestions",
]
