import pytest

from services.pi_planner.app.config import PlannerSettings, PlanningTuning
from services.pi_planner.app.domain.decomposer import decompose, decompose_backlog
from services.pi_planner.app.domain.errors import DecompositionError, InvalidWorkItemError
from services.pi_planner.app.domain.types import DependencyEdge, DependencyStrength, ItemKind, WorkItem


@pytest.fixture(autouse=True)
def default_tuning(monkeypatch):
    settings = PlannerSettings(tuning=PlanningTuning())
    monkeypatch.setattr("services.pi_planner.app.domain.decomposer.get_settings", lambda: settings)
    return settings


def _item(item_id: str, size: int, criteria: int = 0, **kwargs) -> WorkItem:
    return WorkItem(
        id=item_id,
        title=f"Item {item_id}",
        size=size,
        acceptance_criteria=tuple(f"criterion {i}" for i in range(criteria)),
        **kwargs,
    )


def test_item_within_limit_is_returned_unchanged():
    item = _item("S1", 5, criteria=2)

    result = decompose(item, max_item_size=5)

    assert result.children == [item]
    assert not result.was_split
    assert result.mapping == []
    assert result.decomposition_id is None


def test_split_front_loads_remainder_and_round_robins_criteria():
    item = _item("E1", 13, criteria=5, kind=ItemKind.feature, description="Checkout flow")

    result = decompose(item, max_item_size=5)

    assert [child.size for child in result.children] == [5, 4, 4]
    assert [child.id for child in result.children] == ["E1.1", "E1.2", "E1.3"]
    assert all(child.parent_id == "E1" for child in result.children)
    assert all(child.kind is ItemKind.feature for child in result.children)
    assert result.children[0].title == "Item E1 (part 1 of 3)"
    assert [entry.criteria_indices for entry in result.mapping] == [(0, 3), (1, 4), (2,)]
    assert result.children[2].acceptance_criteria == ("criterion 2",)
    assert result.warnings == []
    assert result.decomposition_id


def test_children_preserve_total_size_and_every_criterion():
    item = _item("E2", 22, criteria=7)

    result = decompose(item, max_item_size=5)

    assert sum(child.size for child in result.children) == 22
    assert all(child.size <= 5 for child in result.children)
    covered = sorted(index for entry in result.mapping for index in entry.criteria_indices)
    assert covered == list(range(7))


def test_decomposition_is_idempotent_on_children():
    result = decompose(_item("E3", 13, criteria=3), max_item_size=5)

    for child in result.children:
        again = decompose(child, max_item_size=5)
        assert again.children == [child]
        assert not again.was_split


def test_split_count_grows_past_preferred_maximum_up_to_ceiling():
    result = decompose(_item("E4", 25, criteria=5), max_item_size=5)

    assert [child.size for child in result.children] == [5, 5, 5, 5, 5]


def test_item_beyond_ceiling_raises():
    with pytest.raises(DecompositionError) as excinfo:
        decompose(_item("E5", 31), max_item_size=5)

    assert excinfo.value.code == "SizeTooLargeForSplit"
    assert excinfo.value.related_ids == ("E5",)


def test_too_few_criteria_produces_warning():
    result = decompose(_item("E6", 8, criteria=1), max_item_size=5)

    assert [child.size for child in result.children] == [4, 4]
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.code == "EmptyAcceptanceCriteria"
    assert warning.related_ids == ("E6.2",)


def test_limit_defaults_to_configured_max_item_size(monkeypatch):
    settings = PlannerSettings(tuning=PlanningTuning(max_item_size=8))
    monkeypatch.setattr("services.pi_planner.app.domain.decomposer.get_settings", lambda: settings)

    assert not decompose(_item("S2", 8)).was_split
    assert len(decompose(_item("S3", 9)).children) == 2


def test_backlog_rewires_edges_to_every_child():
    items = [_item("A", 3), _item("B", 10, criteria=2), _item("C", 2)]
    edges = [
        DependencyEdge(from_id="A", to_id="B"),
        DependencyEdge(from_id="B", to_id="C", strength=DependencyStrength.soft),
    ]

    backlog = decompose_backlog(items, edges, max_item_size=5)

    assert [item.id for item in backlog.items] == ["A", "B.1", "B.2", "C"]
    keys = [(edge.from_id, edge.to_id, edge.strength) for edge in backlog.edges]
    assert keys == [
        ("A", "B.1", DependencyStrength.hard),
        ("A", "B.2", DependencyStrength.hard),
        ("B.1", "C", DependencyStrength.soft),
        ("B.2", "C", DependencyStrength.soft),
    ]
    assert [result.original.id for result in backlog.results] == ["B"]


def test_backlog_collects_failures_and_keeps_going():
    items = [_item("BIG", 40), _item("OK", 3)]

    backlog = decompose_backlog(items, [], max_item_size=5)

    assert [item.id for item in backlog.items] == ["OK"]
    assert [failure.code for failure in backlog.failures] == ["SizeTooLargeForSplit"]
    assert backlog.excluded_ids == ["BIG"]


def test_child_ids_skip_ids_already_in_the_backlog():
    items = [_item("X", 8, criteria=2), _item("X.1", 2)]

    backlog = decompose_backlog(items, [DependencyEdge(from_id="X.1", to_id="X")], max_item_size=5)

    assert [item.id for item in backlog.items] == ["X.1~2", "X.2", "X.1"]
    assert [entry.renamed_from for entry in backlog.results[0].mapping] == ["X.1", None]
    assert [(edge.from_id, edge.to_id) for edge in backlog.edges] == [("X.1", "X.1~2"), ("X.1", "X.2")]
    assert backlog.results[0].mapping[0].to_dict()["renamedFrom"] == "X.1"


@pytest.mark.parametrize("limit", [0, -1])
def test_limit_below_one_is_rejected(limit):
    with pytest.raises(InvalidWorkItemError):
        decompose(_item("E7", 8), max_item_size=limit)

    with pytest.raises(InvalidWorkItemError):
        decompose_backlog([_item("E7", 8)], [], max_item_size=limit)
