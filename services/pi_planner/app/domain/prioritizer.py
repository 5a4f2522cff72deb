"""WSJF scoring and ordering."""
from __future__ import annotations

import heapq
from typing import Dict, List, Mapping, Sequence

import structlog

from ..config import ScoringSettings, get_settings
from .errors import InvalidWorkItemError, ValueFactorsMissingError
from .graph import DependencyGraph
from .types import PriorityBand, ScoredItem, ValueFactors, ValueRecommendation, WorkItem

logger = structlog.get_logger(__name__)


def compute_wsjf(factors: ValueFactors, job_size: float, scoring: ScoringSettings | None = None) -> float:
    scoring = scoring or get_settings().scoring
    if job_size <= 0:
        raise InvalidWorkItemError(f"Job size must be positive, got {job_size}")
    numerator = (
        factors.business_value * scoring.business_value_weight
        + factors.time_criticality * scoring.time_criticality_weight
        + factors.risk_reduction_opportunity_enablement * scoring.risk_reduction_weight
    )
    return numerator / job_size


def priority_band(wsjf: float, scoring: ScoringSettings | None = None) -> PriorityBand:
    scoring = scoring or get_settings().scoring
    if wsjf >= scoring.urgent_threshold:
        return PriorityBand.urgent
    if wsjf >= scoring.high_threshold:
        return PriorityBand.high
    if wsjf >= scoring.medium_threshold:
        return PriorityBand.medium
    return PriorityBand.low


def rank_key(scored: ScoredItem) -> tuple[float, float, str]:
    """Descending WSJF, then smaller job size, then id."""
    return (-round(scored.wsjf, 9), scored.job_size, scored.item.id)


def _resolve_factors(item: WorkItem, value_inputs: Mapping[str, ValueFactors]) -> tuple[ValueFactors | None, bool]:
    factors = value_inputs.get(item.id)
    if factors is not None:
        return factors, True
    if item.parent_id is not None and item.parent_id in value_inputs:
        return value_inputs[item.parent_id], False
    return None, False


def dependency_order(scored: Sequence[ScoredItem], graph: DependencyGraph) -> List[ScoredItem]:
    """Stable topological re-sort of an already ranked list.

    Among items whose Hard predecessors have all been emitted, the best-ranked
    goes next, so the input order survives wherever it has no violation.
    """
    position = {entry.item.id: idx for idx, entry in enumerate(scored)}
    by_id = {entry.item.id: entry for entry in scored}
    indegree: Dict[str, int] = {}
    for item_id in position:
        preds = [pred for pred in graph.predecessors(item_id) if pred in position] if item_id in graph else []
        indegree[item_id] = len(preds)

    ready = [(position[item_id], item_id) for item_id, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: List[ScoredItem] = []
    while ready:
        _, item_id = heapq.heappop(ready)
        ordered.append(by_id[item_id])
        for succ in graph.successors(item_id) if item_id in graph else []:
            if succ not in indegree:
                continue
            indegree[succ] -= 1
            if indegree[succ] == 0:
                heapq.heappush(ready, (position[succ], succ))

    if len(ordered) != len(scored):
        emitted = {entry.item.id for entry in ordered}
        leftover = [entry for entry in scored if entry.item.id not in emitted]
        logger.warning("prioritizer.cyclic_leftover", ids=[entry.item.id for entry in leftover])
        ordered.extend(leftover)
    return ordered


class Prioritizer:
    def __init__(self, dependency_aware: bool | None = None, scoring: ScoringSettings | None = None) -> None:
        settings = get_settings()
        self._dependency_aware = (
            dependency_aware if dependency_aware is not None else settings.tuning.dependency_aware_priority
        )
        self._scoring = scoring or settings.scoring

    def score(
        self,
        items: Sequence[WorkItem],
        value_inputs: Mapping[str, ValueFactors],
        graph: DependencyGraph | None = None,
    ) -> List[ScoredItem]:
        missing = sorted(item.id for item in items if _resolve_factors(item, value_inputs)[0] is None)
        if missing:
            raise ValueFactorsMissingError(f"No value factors for: {', '.join(missing)}", missing)

        scored: List[ScoredItem] = []
        for item in items:
            factors, own = _resolve_factors(item, value_inputs)
            assert factors is not None
            if min(
                factors.business_value,
                factors.time_criticality,
                factors.risk_reduction_opportunity_enablement,
            ) <= 0:
                raise InvalidWorkItemError(f"Value factors for {item.id} must be positive", [item.id])
            job_size = factors.job_size if own and factors.job_size is not None else item.size
            if job_size <= 0:
                raise InvalidWorkItemError(f"Job size for {item.id} must be positive", [item.id])
            wsjf = compute_wsjf(factors, job_size, self._scoring)
            scored.append(
                ScoredItem(
                    item=item,
                    business_value=factors.business_value,
                    time_criticality=factors.time_criticality,
                    risk_reduction_opportunity_enablement=factors.risk_reduction_opportunity_enablement,
                    job_size=job_size,
                    wsjf=wsjf,
                    priority=priority_band(wsjf, self._scoring),
                )
            )

        scored.sort(key=rank_key)
        if self._dependency_aware and graph is not None:
            scored = dependency_order(scored, graph)

        logger.info(
            "prioritizer.scored",
            count=len(scored),
            dependency_aware=self._dependency_aware and graph is not None,
            top=scored[0].item.id if scored else None,
        )
        return scored


def recommend(scored: Sequence[ScoredItem]) -> list[ValueRecommendation]:
    recommendations: list[ValueRecommendation] = []
    quick_wins = [s.item.id for s in scored if s.wsjf > 6 and s.job_size <= 3]
    if quick_wins:
        recommendations.append(
            ValueRecommendation(
                kind="prioritize",
                item_ids=tuple(quick_wins),
                rationale=f"{len(quick_wins)} quick wins with WSJF above 6 and job size of 3 or less",
            )
        )
    large = [s.item.id for s in scored if s.wsjf > 5 and s.job_size > 8]
    if large:
        recommendations.append(
            ValueRecommendation(
                kind="split",
                item_ids=tuple(large),
                rationale=f"{len(large)} high-value items larger than 8 would deliver earlier if split",
            )
        )
    low_value = [s.item.id for s in scored if s.wsjf < 2 and s.job_size > 5]
    if low_value:
        recommendations.append(
            ValueRecommendation(
                kind="delay",
                item_ids=tuple(low_value),
                rationale=f"{len(low_value)} items with WSJF below 2 and job size above 5",
            )
        )
    return recommendations


__all__ = ["Prioritizer", "compute_wsjf", "dependency_order", "priority_band", "rank_key", "recommend"]
