"""Domain-level dataclasses shared by every planning stage."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class ItemKind(enum.Enum):
    epic = "Epic"
    feature = "Feature"
    story = "Story"
    enabler = "Enabler"


class DependencyKind(enum.Enum):
    technical = "Technical"
    business = "Business"


class DependencyStrength(enum.Enum):
    hard = "Hard"
    soft = "Soft"


class PriorityBand(enum.Enum):
    urgent = "Urgent"
    high = "High"
    medium = "Medium"
    low = "Low"


class Severity(enum.Enum):
    error = "error"
    warning = "warning"


@dataclass(frozen=True)
class WorkItem:
    id: str
    title: str
    size: int
    description: str = ""
    acceptance_criteria: tuple[str, ...] = ()
    kind: ItemKind = ItemKind.story
    parent_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "acceptance_criteria", tuple(self.acceptance_criteria))

    @property
    def text(self) -> str:
        """Title, description and criteria joined for text heuristics."""
        return " ".join([self.title, self.description, *self.acceptance_criteria])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "size": self.size,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "kind": self.kind.value,
            "parentId": self.parent_id,
        }


@dataclass(frozen=True)
class DependencyEdge:
    """``to_id`` depends on ``from_id``."""

    from_id: str
    to_id: str
    kind: DependencyKind = DependencyKind.technical
    strength: DependencyStrength = DependencyStrength.hard
    source: str = "explicit"
    rationale: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_id, self.to_id)

    @property
    def is_hard(self) -> bool:
        return self.strength is DependencyStrength.hard

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromId": self.from_id,
            "toId": self.to_id,
            "kind": self.kind.value,
            "strength": self.strength.value,
            "source": self.source,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class ValueFactors:
    business_value: float
    time_criticality: float
    risk_reduction_opportunity_enablement: float
    job_size: float | None = None


@dataclass(frozen=True)
class IterationSpec:
    index: int
    capacity: int


@dataclass(frozen=True)
class ScoredItem:
    item: WorkItem
    business_value: float
    time_criticality: float
    risk_reduction_opportunity_enablement: float
    job_size: float
    wsjf: float
    priority: PriorityBand = PriorityBand.low

    @property
    def item_id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item.id,
            "businessValue": self.business_value,
            "timeCriticality": self.time_criticality,
            "riskReductionOpportunityEnablement": self.risk_reduction_opportunity_enablement,
            "jobSize": self.job_size,
            "wsjf": round(self.wsjf, 4),
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class Iteration:
    index: int
    capacity: int
    allocated_items: tuple[str, ...] = ()
    used: int = 0
    effective_capacity: int | None = None

    @property
    def remaining(self) -> int:
        return self.capacity - self.used

    @property
    def utilization(self) -> float:
        return round(self.used / self.capacity, 4) if self.capacity else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "capacity": self.capacity,
            "effectiveCapacity": self.effective_capacity if self.effective_capacity is not None else self.capacity,
            "allocatedItems": list(self.allocated_items),
            "used": self.used,
            "utilization": self.utilization,
        }


@dataclass(frozen=True)
class DeferredItem:
    item_id: str
    reason: str
    blockers: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.item_id, "reason": self.reason, "blockers": list(self.blockers)}


@dataclass(frozen=True)
class IterationPlan:
    """Ordered iterations for one planning interval. Immutable once returned."""

    iterations: tuple[Iteration, ...]
    unallocated: tuple[DeferredItem, ...] = ()

    @property
    def allocated_count(self) -> int:
        return sum(len(iteration.allocated_items) for iteration in self.iterations)

    @property
    def deferred_count(self) -> int:
        return len(self.unallocated)

    @property
    def total_capacity(self) -> int:
        return sum(iteration.capacity for iteration in self.iterations)

    def assignments(self) -> dict[str, int]:
        return {item_id: iteration.index for iteration in self.iterations for item_id in iteration.allocated_items}

    def iteration_of(self, item_id: str) -> int | None:
        return self.assignments().get(item_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": [iteration.to_dict() for iteration in self.iterations],
            "unallocated": [deferred.to_dict() for deferred in self.unallocated],
            "allocatedCount": self.allocated_count,
            "deferredCount": self.deferred_count,
            "totalCapacity": self.total_capacity,
        }


@dataclass(frozen=True)
class ReadinessIssue:
    code: str
    message: str
    related_ids: tuple[str, ...] = ()
    severity: Severity = Severity.error
    suggestions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "relatedIds": list(self.related_ids),
            "severity": self.severity.value,
            "suggestions": list(self.suggestions),
        }


@dataclass
class ReadinessReport:
    issues: list[ReadinessIssue] = field(default_factory=list)
    warnings: list[ReadinessIssue] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return not self.issues

    def add(self, issue: ReadinessIssue) -> None:
        if issue.severity is Severity.warning:
            self.warnings.append(issue)
        else:
            self.issues.append(issue)

    def extend(self, issues: list[ReadinessIssue]) -> None:
        for issue in issues:
            self.add(issue)

    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isReady": self.is_ready,
            "issues": [issue.to_dict() for issue in self.issues],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass(frozen=True)
class CriticalPath:
    ids: tuple[str, ...] = ()
    total_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"ids": list(self.ids), "totalSize": self.total_size}


@dataclass(frozen=True)
class CriteriaMapping:
    child_id: str
    criteria_indices: tuple[int, ...]
    # set when the natural "<parent>.<n>" id was already taken in the backlog
    renamed_from: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "childId": self.child_id,
            "criteriaIndices": list(self.criteria_indices),
            "renamedFrom": self.renamed_from,
        }


@dataclass
class DecompositionResult:
    """Children produced for one item plus the criteria trace."""

    original: WorkItem
    children: list[WorkItem]
    mapping: list[CriteriaMapping] = field(default_factory=list)
    warnings: list[ReadinessIssue] = field(default_factory=list)
    decomposition_id: str | None = None

    @property
    def was_split(self) -> bool:
        return bool(self.mapping)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decompositionId": self.decomposition_id,
            "original": self.original.to_dict(),
            "children": [child.to_dict() for child in self.children],
            "mapping": [entry.to_dict() for entry in self.mapping],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass(frozen=True)
class ValueRecommendation:
    kind: str
    item_ids: tuple[str, ...]
    rationale: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "itemIds": list(self.item_ids), "rationale": self.rationale}


@dataclass
class PlanningResult:
    plan: IterationPlan | None
    validation: ReadinessReport
    critical_path: list[str] = field(default_factory=list)
    items: list[WorkItem] = field(default_factory=list)
    critical_path_size: int = 0
    decompositions: list[DecompositionResult] = field(default_factory=list)
    ranking: list[ScoredItem] = field(default_factory=list)
    recommendations: list[ValueRecommendation] = field(default_factory=list)
    edges: list[DependencyEdge] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.plan is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": self.plan.to_dict() if self.plan is not None else None,
            "validation": self.validation.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "criticalPath": list(self.critical_path),
            "criticalPathSize": self.critical_path_size,
            "decompositions": [result.to_dict() for result in self.decompositions],
            "ranking": [scored.to_dict() for scored in self.ranking],
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "edges": [edge.to_dict() for edge in self.edges],
        }


__all__ = [
    "CriteriaMapping",
    "CriticalPath",
    "DecompositionResult",
    "DeferredItem",
    "DependencyEdge",
    "DependencyKind",
    "DependencyStrength",
    "ItemKind",
    "Iteration",
    "IterationPlan",
    "IterationSpec",
    "PlanningResult",
    "PriorityBand",
    "ReadinessIssue",
    "ReadinessReport",
    "ScoredItem",
    "Severity",
    "ValueFactors",
    "ValueRecommendation",
    "WorkItem",
]
