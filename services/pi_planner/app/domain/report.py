"""Plan reporting helpers."""
from __future__ import annotations

from collections import Counter

from ..config import get_settings
from ..persistence.models import PlanRun
from .types import PlanningResult


def build_plan_report(plan_run: PlanRun, result: PlanningResult) -> dict:
    plan = result.plan
    iterations = list(plan.iterations) if plan is not None else []
    utilization = [iteration.utilization for iteration in iterations]
    bands = Counter(scored.priority.value for scored in result.ranking)
    sources = Counter(edge.source for edge in result.edges)
    return {
        "planId": plan_run.id,
        "status": plan_run.status.value,
        "summary": {
            "items": len(result.items),
            "iterations": len(iterations),
            "allocated": plan.allocated_count if plan is not None else 0,
            "deferred": plan.deferred_count if plan is not None else 0,
            "runtimeMs": plan_run.wall_time_ms or 0,
            "criticalPath": {"ids": result.critical_path, "totalSize": result.critical_path_size},
        },
        "capacity": {
            "total": plan.total_capacity if plan is not None else 0,
            "used": sum(iteration.used for iteration in iterations),
            "utilization": utilization,
            "utilizationMean": round(sum(utilization) / len(utilization), 4) if utilization else 0,
            "bufferPct": get_settings().tuning.capacity_buffer_pct,
        },
        "priority": {
            "bands": dict(bands),
            "top": [scored.item.id for scored in result.ranking[:5]],
            "recommendations": [rec.to_dict() for rec in result.recommendations],
        },
        "dependencies": {
            "total": len(result.edges),
            "bySource": dict(sources),
            "hard": sum(1 for edge in result.edges if edge.is_hard),
        },
        "decompositions": [decomposition.to_dict() for decomposition in result.decompositions],
        "validation": result.validation.to_dict(),
    }


__all__ = ["build_plan_report"]
