"""Request and response models shared by the planner routers."""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ..domain.orchestrator import PlanningRequest
from ..domain.sizing import resolve_size
from ..domain.types import (
    DependencyEdge,
    DependencyKind,
    DependencyStrength,
    ItemKind,
    IterationSpec,
    ValueFactors,
    WorkItem,
)


class WorkItemPayload(BaseModel):
    id: str = Field(min_length=1)
    title: str
    size: int | None = Field(default=None, description="Story points; estimated from kind when omitted")
    description: str = ""
    acceptance_criteria: List[str] = Field(default_factory=list, alias="acceptanceCriteria")
    kind: ItemKind = ItemKind.story
    parent_id: str | None = Field(default=None, alias="parentId")

    model_config = ConfigDict(populate_by_name=True)

    def to_work_item(self) -> WorkItem:
        size = self.size
        if size is None:
            size = resolve_size(self.model_dump(by_alias=True), self.kind)
        if size is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Work item {self.id} has no size and none could be estimated",
            )
        return WorkItem(
            id=self.id,
            title=self.title,
            size=size,
            description=self.description,
            acceptance_criteria=tuple(self.acceptance_criteria),
            kind=self.kind,
            parent_id=self.parent_id,
        )


class EdgePayload(BaseModel):
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    kind: DependencyKind = DependencyKind.technical
    strength: DependencyStrength = DependencyStrength.hard
    rationale: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    def to_edge(self) -> DependencyEdge:
        return DependencyEdge(
            from_id=self.from_id,
            to_id=self.to_id,
            kind=self.kind,
            strength=self.strength,
            rationale=self.rationale,
        )


class IterationPayload(BaseModel):
    index: int = Field(ge=0)
    capacity: int


class ValueFactorsPayload(BaseModel):
    business_value: float = Field(alias="businessValue")
    time_criticality: float = Field(alias="timeCriticality")
    risk_reduction_opportunity_enablement: float = Field(alias="riskReductionOpportunityEnablement")
    job_size: float | None = Field(default=None, alias="jobSize")

    model_config = ConfigDict(populate_by_name=True)

    def to_factors(self) -> ValueFactors:
        return ValueFactors(
            business_value=self.business_value,
            time_criticality=self.time_criticality,
            risk_reduction_opportunity_enablement=self.risk_reduction_opportunity_enablement,
            job_size=self.job_size,
        )


class PlanOptions(BaseModel):
    max_item_size: int | None = Field(default=None, alias="maxItemSize", ge=1)
    dependency_aware: bool | None = Field(default=None, alias="dependencyAware")

    model_config = ConfigDict(populate_by_name=True)


class PlanCreateRequest(BaseModel):
    project_id: str = Field(alias="projectId")
    run_id: str = Field(alias="runId")
    items: List[WorkItemPayload]
    iterations: List[IterationPayload]
    value_factors: Dict[str, ValueFactorsPayload] = Field(default_factory=dict, alias="valueFactors")
    edges: List[EdgePayload] = Field(default_factory=list)
    options: PlanOptions | None = None

    model_config = ConfigDict(populate_by_name=True)

    def to_planning_request(self) -> PlanningRequest:
        options = self.options or PlanOptions()
        return PlanningRequest(
            items=[item.to_work_item() for item in self.items],
            iterations=[IterationSpec(index=it.index, capacity=it.capacity) for it in self.iterations],
            value_factors={item_id: factors.to_factors() for item_id, factors in self.value_factors.items()},
            edges=[edge.to_edge() for edge in self.edges],
            max_item_size=options.max_item_size,
            dependency_aware=options.dependency_aware,
        )


class PlanSummaryResponse(BaseModel):
    id: str
    project_id: str = Field(alias="projectId")
    run_id: str = Field(alias="runId")
    status: str
    is_ready: bool = Field(alias="isReady")
    critical_path: List[str] = Field(alias="criticalPath")
    critical_path_size: int = Field(alias="criticalPathSize")
    issues: List[dict[str, Any]] = Field(default_factory=list)
    warnings: List[dict[str, Any]] = Field(default_factory=list)
    report_ref: str | None = Field(alias="reportRef")
    created_at: str | None = Field(alias="createdAt")
    updated_at: str | None = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class DecompositionRequest(BaseModel):
    item: WorkItemPayload
    max_item_size: int | None = Field(default=None, alias="maxItemSize", ge=1)

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "DecompositionRequest",
    "EdgePayload",
    "IterationPayload",
    "PlanCreateRequest",
    "PlanOptions",
    "PlanSummaryResponse",
    "ValueFactorsPayload",
    "WorkItemPayload",
]
