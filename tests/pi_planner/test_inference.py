import pytest

from services.pi_planner.app.domain.inference import (
    ReferenceInferencer,
    SharedComponentInferencer,
    default_inferencers,
    merge_edges,
)
from services.pi_planner.app.domain.types import (
    DependencyEdge,
    DependencyKind,
    DependencyStrength,
    ItemKind,
    WorkItem,
)


def _keys(edges):
    return [(edge.from_id, edge.to_id, edge.strength) for edge in edges]


def test_reference_cues_point_at_the_mentioned_item():
    items = [
        WorkItem(id="LOGIN", title="Login form", size=3),
        WorkItem(id="PROFILE", title="Profile page", size=3, description="Depends on LOGIN before release."),
        WorkItem(id="AUDIT", title="Audit trail", size=2, description="Enables PROFILE history."),
    ]

    edges = ReferenceInferencer().infer(items)

    assert _keys(edges) == [
        ("LOGIN", "PROFILE", DependencyStrength.hard),
        ("AUDIT", "PROFILE", DependencyStrength.soft),
    ]
    assert all(edge.kind is DependencyKind.business for edge in edges)
    assert all(edge.source == "reference" for edge in edges)


def test_reference_to_a_split_parent_fans_out_to_children():
    items = [
        WorkItem(id="EPIC.1", title="Catalog (part 1 of 2)", size=4, parent_id="EPIC"),
        WorkItem(id="EPIC.2", title="Catalog (part 2 of 2)", size=4, parent_id="EPIC"),
        WorkItem(id="CART", title="Cart", size=3, description="Blocked by EPIC"),
    ]

    edges = ReferenceInferencer().infer(items)

    assert _keys(edges) == [
        ("EPIC.1", "CART", DependencyStrength.hard),
        ("EPIC.2", "CART", DependencyStrength.hard),
    ]


def test_reference_falls_back_to_title_prefix():
    items = [
        WorkItem(id="L1", title="Login form", size=3),
        WorkItem(id="Y", title="Password reset", size=2, description="Requires login form validation"),
    ]

    edges = ReferenceInferencer().infer(items)

    assert _keys(edges) == [("L1", "Y", DependencyStrength.hard)]


def test_short_or_prefix_titles_are_not_references():
    items = [
        WorkItem(id="X1", title="A", size=1),
        WorkItem(id="X2", title="Show banner", size=2, description="Only after admins log in"),
        WorkItem(id="X3", title="Auth", size=2),
        WorkItem(id="X4", title="Audit export", size=2, description="Requires authentication tokens"),
        WorkItem(id="X5", title="Login form", size=2),
        WorkItem(id="X6", title="Theme", size=2, description="Requires login formatting rules"),
    ]

    assert ReferenceInferencer().infer(items) == []


def test_title_references_do_not_close_a_cycle_on_word_prefixes():
    items = [
        WorkItem(id="AUTH", title="Auth", size=2, description="Needs billing"),
        WorkItem(id="BILL", title="Billing", size=2, description="Needs reporting"),
        WorkItem(id="REP", title="Reporting", size=2, description="Requires authentication"),
    ]

    edges = ReferenceInferencer().infer(items)

    assert _keys(edges) == [
        ("BILL", "AUTH", DependencyStrength.hard),
        ("REP", "BILL", DependencyStrength.hard),
    ]


def test_shared_components_link_foundation_first():
    items = [
        WorkItem(
            id="DB",
            title="Database schema",
            size=3,
            kind=ItemKind.enabler,
            description="Create the OrderService database schema and migration.",
        ),
        WorkItem(id="API", title="Orders endpoint", size=3, description="Expose OrderService via the database-backed endpoint"),
    ]

    edges = SharedComponentInferencer(min_shared=2).infer(items)

    assert _keys(edges) == [("DB", "API", DependencyStrength.soft)]
    assert edges[0].kind is DependencyKind.technical
    assert edges[0].rationale == "Shared components: database, orderservice"


def test_shared_components_skip_siblings():
    text = "Touches the OrderService database schema"
    items = [
        WorkItem(id="P.1", title="Part one", size=2, description=text, parent_id="P"),
        WorkItem(id="P.2", title="Part two", size=2, description=text, parent_id="P"),
    ]

    assert SharedComponentInferencer(min_shared=2).infer(items) == []


def test_merge_keeps_explicit_edges_and_drops_contradictions():
    explicit = [DependencyEdge(from_id="API", to_id="DB")]
    inferred = [
        DependencyEdge(from_id="DB", to_id="API", strength=DependencyStrength.soft, source="stub"),
        DependencyEdge(from_id="API", to_id="API", source="stub"),
        DependencyEdge(from_id="DB", to_id="UI", strength=DependencyStrength.soft, source="stub"),
    ]

    class StubInferencer:
        name = "stub"

        def infer(self, items):
            return inferred

    merged = merge_edges(explicit, [], [StubInferencer()])

    assert [edge.key for edge in merged] == [("API", "DB"), ("DB", "UI")]


def test_default_inferencers_follow_names():
    assert [inferencer.name for inferencer in default_inferencers(["reference"])] == ["reference"]

    with pytest.raises(ValueError):
        default_inferencers(["telepathy"])
