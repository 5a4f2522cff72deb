import pytest

from services.pi_planner.app.config import ScoringSettings
from services.pi_planner.app.domain.errors import InvalidWorkItemError, ValueFactorsMissingError
from services.pi_planner.app.domain.graph import DependencyGraphBuilder
from services.pi_planner.app.domain.prioritizer import Prioritizer, compute_wsjf, priority_band, recommend
from services.pi_planner.app.domain.types import DependencyEdge, PriorityBand, ValueFactors, WorkItem


def _factors(value: float = 5, job_size: float | None = None) -> ValueFactors:
    return ValueFactors(
        business_value=value,
        time_criticality=value,
        risk_reduction_opportunity_enablement=value,
        job_size=job_size,
    )


def test_compute_wsjf_applies_weights():
    scoring = ScoringSettings(business_value_weight=2.0)

    assert compute_wsjf(_factors(3), 3, scoring) == pytest.approx(4.0)


def test_priority_bands_follow_thresholds():
    scoring = ScoringSettings()

    assert priority_band(9, scoring) is PriorityBand.urgent
    assert priority_band(5, scoring) is PriorityBand.high
    assert priority_band(2, scoring) is PriorityBand.medium
    assert priority_band(1.9, scoring) is PriorityBand.low


def test_smaller_job_size_ranks_higher_for_equal_value():
    items = [WorkItem(id="BIG", title="big", size=8), WorkItem(id="SMALL", title="small", size=2)]
    factors = {"BIG": _factors(), "SMALL": _factors()}

    ranking = Prioritizer(dependency_aware=False).score(items, factors)

    assert [entry.item_id for entry in ranking] == ["SMALL", "BIG"]
    assert ranking[0].wsjf > ranking[1].wsjf


def test_equal_wsjf_breaks_ties_by_job_size_then_id():
    items = [
        WorkItem(id="B", title="b", size=2),
        WorkItem(id="A", title="a", size=2),
        WorkItem(id="C", title="c", size=4),
    ]
    factors = {"A": _factors(2), "B": _factors(2), "C": _factors(4)}

    ranking = Prioritizer(dependency_aware=False).score(items, factors)

    assert [entry.item_id for entry in ranking] == ["A", "B", "C"]


def test_explicit_job_size_overrides_item_size():
    items = [WorkItem(id="A", title="a", size=8)]

    ranking = Prioritizer(dependency_aware=False).score(items, {"A": _factors(4, job_size=2)})

    assert ranking[0].job_size == 2
    assert ranking[0].wsjf == pytest.approx(6.0)


def test_dependency_aware_order_keeps_prerequisites_first():
    items = [WorkItem(id="BASE", title="base", size=8), WorkItem(id="TOP", title="top", size=1)]
    graph = DependencyGraphBuilder(inferencers=[]).build(items, [DependencyEdge(from_id="BASE", to_id="TOP")])
    factors = {"BASE": _factors(), "TOP": _factors()}

    pure = Prioritizer(dependency_aware=False).score(items, factors, graph)
    aware = Prioritizer(dependency_aware=True).score(items, factors, graph)

    assert [entry.item_id for entry in pure] == ["TOP", "BASE"]
    assert [entry.item_id for entry in aware] == ["BASE", "TOP"]


def test_dependency_aware_order_is_stable_elsewhere():
    items = [
        WorkItem(id="A", title="a", size=1),
        WorkItem(id="B", title="b", size=2),
        WorkItem(id="C", title="c", size=3),
    ]
    graph = DependencyGraphBuilder(inferencers=[]).build(items, [DependencyEdge(from_id="C", to_id="B")])
    factors = {item.id: _factors() for item in items}

    ranking = Prioritizer(dependency_aware=True).score(items, factors, graph)

    assert [entry.item_id for entry in ranking] == ["A", "C", "B"]


def test_missing_value_factors_are_reported_together():
    items = [WorkItem(id="A", title="a", size=1), WorkItem(id="B", title="b", size=1), WorkItem(id="C", title="c", size=1)]

    with pytest.raises(ValueFactorsMissingError) as excinfo:
        Prioritizer(dependency_aware=False).score(items, {"B": _factors()})

    assert excinfo.value.code == "MissingValueFactors"
    assert excinfo.value.related_ids == ("A", "C")


def test_children_inherit_parent_factors_with_their_own_size():
    items = [
        WorkItem(id="E.1", title="e1", size=5, parent_id="E"),
        WorkItem(id="E.2", title="e2", size=3, parent_id="E"),
    ]

    ranking = Prioritizer(dependency_aware=False).score(items, {"E": _factors(5, job_size=13)})

    assert [(entry.item_id, entry.job_size) for entry in ranking] == [("E.2", 3), ("E.1", 5)]


def test_non_positive_factors_are_rejected():
    items = [WorkItem(id="A", title="a", size=1)]

    with pytest.raises(InvalidWorkItemError):
        Prioritizer(dependency_aware=False).score(items, {"A": _factors(0)})


def test_recommendations_flag_quick_wins_and_low_value_work():
    items = [WorkItem(id="QUICK", title="quick", size=1), WorkItem(id="SLOW", title="slow", size=8)]
    factors = {"QUICK": _factors(3), "SLOW": _factors(1)}

    ranking = Prioritizer(dependency_aware=False).score(items, factors)
    kinds = {rec.kind: rec.item_ids for rec in recommend(ranking)}

    assert kinds == {"prioritize": ("QUICK",), "delay": ("SLOW",)}
