"""Work-item decomposition and dependency rewiring helpers."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from math import ceil
from typing import Collection, Dict, Iterable, List, Sequence

import structlog

from ..config import get_settings
from .errors import DecompositionError, InvalidWorkItemError
from .types import (
    CriteriaMapping,
    DecompositionResult,
    DependencyEdge,
    ReadinessIssue,
    Severity,
    WorkItem,
)

logger = structlog.get_logger(__name__)


@dataclass
class BacklogDecomposition:
    """Backlog after every oversized item has been split."""

    items: list[WorkItem]
    edges: list[DependencyEdge]
    results: list[DecompositionResult] = field(default_factory=list)
    failures: list[ReadinessIssue] = field(default_factory=list)
    warnings: list[ReadinessIssue] = field(default_factory=list)

    @property
    def excluded_ids(self) -> list[str]:
        return [item_id for failure in self.failures for item_id in failure.related_ids]


def _check_limit(max_item_size: int) -> None:
    if max_item_size < 1:
        raise InvalidWorkItemError(f"Maximum item size must be at least 1, got {max_item_size}")


def _child_id(parent_id: str, index: int, taken: set[str]) -> str:
    candidate = f"{parent_id}.{index}"
    suffix = 2
    while candidate in taken:
        candidate = f"{parent_id}.{index}~{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def _split_count(size: int, max_item_size: int) -> int:
    tuning = get_settings().tuning
    count = min(max(ceil(size / max_item_size), tuning.min_split_count), tuning.max_split_count)
    while count * max_item_size < size:
        count += 1
    if count > tuning.split_count_ceiling:
        raise DecompositionError(
            f"Item of size {size} needs {count} parts of at most {max_item_size}; "
            f"ceiling is {tuning.split_count_ceiling}",
        )
    return count


def _distribute_sizes(size: int, parts: int) -> list[int]:
    base = size // parts
    remainder = size % parts
    return [base + (1 if i < remainder else 0) for i in range(parts)]


def _round_robin(count: int, parts: int) -> list[list[int]]:
    buckets: list[list[int]] = [[] for _ in range(parts)]
    for index in range(count):
        buckets[index % parts].append(index)
    return buckets


def decompose(
    item: WorkItem,
    max_item_size: int | None = None,
    reserved_ids: Collection[str] = (),
) -> DecompositionResult:
    """Split ``item`` into children no larger than ``max_item_size``.

    Items already within the limit come back unchanged as the only child.
    Children are named ``<id>.<n>``; a name already in ``reserved_ids`` gets
    the next free ``~k`` suffix instead. Raises ``DecompositionError`` when
    even the hard ceiling of parts cannot bring each child under the limit,
    and ``InvalidWorkItemError`` for a limit below 1.
    """
    limit = max_item_size if max_item_size is not None else get_settings().tuning.max_item_size
    _check_limit(limit)
    if item.size <= limit:
        return DecompositionResult(original=item, children=[item])

    try:
        parts = _split_count(item.size, limit)
    except DecompositionError as exc:
        raise DecompositionError(f"{item.id}: {exc.message}", related_ids=[item.id]) from exc

    sizes = _distribute_sizes(item.size, parts)
    buckets = _round_robin(len(item.acceptance_criteria), parts)

    taken = set(reserved_ids)
    children: list[WorkItem] = []
    mapping: list[CriteriaMapping] = []
    for idx, (part_size, indices) in enumerate(zip(sizes, buckets), start=1):
        natural_id = f"{item.id}.{idx}"
        child_id = _child_id(item.id, idx, taken)
        child = WorkItem(
            id=child_id,
            title=f"{item.title} (part {idx} of {parts})",
            description=item.description,
            size=part_size,
            acceptance_criteria=tuple(item.acceptance_criteria[i] for i in indices),
            kind=item.kind,
            parent_id=item.id,
        )
        children.append(child)
        mapping.append(
            CriteriaMapping(
                child_id=child.id,
                criteria_indices=tuple(indices),
                renamed_from=natural_id if child_id != natural_id else None,
            )
        )
        if child_id != natural_id:
            logger.info("decomposer.child_renamed", item_id=item.id, requested=natural_id, assigned=child_id)

    warnings: list[ReadinessIssue] = []
    empty = [child.id for child in children if not child.acceptance_criteria]
    if empty:
        warnings.append(
            ReadinessIssue(
                code="EmptyAcceptanceCriteria",
                message=(
                    f"{item.id} has {len(item.acceptance_criteria)} acceptance criteria for {parts} parts; "
                    "children need criteria written during review"
                ),
                related_ids=tuple(empty),
                severity=Severity.warning,
            )
        )

    result = DecompositionResult(
        original=item,
        children=children,
        mapping=mapping,
        warnings=warnings,
        decomposition_id=uuid.uuid4().hex,
    )
    logger.info(
        "decomposer.split",
        item_id=item.id,
        size=item.size,
        children=[child.size for child in children],
        empty_criteria=len(empty),
    )
    return result


def _rewire_edges(edges: Iterable[DependencyEdge], mapping: Dict[str, list[str]]) -> list[DependencyEdge]:
    rewired: list[DependencyEdge] = []
    seen: set[tuple[str, str]] = set()
    for edge in edges:
        sources = mapping.get(edge.from_id, [edge.from_id])
        targets = mapping.get(edge.to_id, [edge.to_id])
        for source in sources:
            for target in targets:
                if (source, target) in seen:
                    continue
                seen.add((source, target))
                rewired.append(
                    DependencyEdge(
                        from_id=source,
                        to_id=target,
                        kind=edge.kind,
                        strength=edge.strength,
                        source=edge.source,
                        rationale=edge.rationale,
                    )
                )
    return rewired


def decompose_backlog(
    items: Sequence[WorkItem],
    edges: Sequence[DependencyEdge] | None = None,
    max_item_size: int | None = None,
) -> BacklogDecomposition:
    """Decompose every item, keeping going past per-item failures.

    Every backlog id is reserved up front so child ids never shadow an
    existing item.
    """
    limit = max_item_size if max_item_size is not None else get_settings().tuning.max_item_size
    _check_limit(limit)
    new_items: List[WorkItem] = []
    results: list[DecompositionResult] = []
    failures: list[ReadinessIssue] = []
    warnings: list[ReadinessIssue] = []
    id_mapping: Dict[str, list[str]] = {}
    reserved = {item.id for item in items}

    for item in items:
        try:
            result = decompose(item, limit, reserved)
        except DecompositionError as exc:
            logger.warning("decomposer.failed", item_id=item.id, size=item.size, reason=exc.message)
            failures.append(exc.to_issue())
            continue
        new_items.extend(result.children)
        if result.was_split:
            reserved.update(child.id for child in result.children)
            results.append(result)
            warnings.extend(result.warnings)
            id_mapping[item.id] = [child.id for child in result.children]

    new_edges = _rewire_edges(edges or [], id_mapping)
    return BacklogDecomposition(
        items=new_items,
        edges=new_edges,
        results=results,
        failures=failures,
        warnings=warnings,
    )


__all__ = ["BacklogDecomposition", "decompose", "decompose_backlog"]
