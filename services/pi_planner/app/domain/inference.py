"""Heuristic dependency inference over work-item text."""
from __future__ import annotations

import re
from collections import defaultdict
from typing import Dict, Iterable, List, Protocol, Sequence

import structlog

from ..config import get_settings
from .types import DependencyEdge, DependencyKind, DependencyStrength, ItemKind, WorkItem

logger = structlog.get_logger(__name__)


class EdgeInferencer(Protocol):
    """Produces candidate edges from work-item content."""

    name: str

    def infer(self, items: Sequence[WorkItem]) -> list[DependencyEdge]:
        ...


# (cue, strength, mentioning item is the dependent)
_REFERENCE_CUES = [
    ("depends on", DependencyStrength.hard, True),
    ("blocked by", DependencyStrength.hard, True),
    ("requires", DependencyStrength.hard, True),
    ("needs", DependencyStrength.hard, True),
    ("after", DependencyStrength.hard, True),
    ("related to", DependencyStrength.soft, True),
    ("enables", DependencyStrength.soft, False),
]
_CUE_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(cue) for cue, _, _ in _REFERENCE_CUES) + r")\s+(?:#|item\s+|story\s+)?([\w.\-]+)",
    re.IGNORECASE,
)
_CUES = {cue: (strength, dependent) for cue, strength, dependent in _REFERENCE_CUES}
_WORD = re.compile(r"\w+")
# title words shorter than this never identify an item
_SIGNIFICANT_WORD_LENGTH = 4

_TECH_TERM_PATTERNS = [
    re.compile(r"\b[A-Z][a-z]+(?:[A-Z][a-z]+)+\b"),
    re.compile(r"\b\w+API\b"),
    re.compile(r"\b\w+Service\b"),
    re.compile(r"(?<![\w/])/\w+(?:/\w+)*"),
]
_FOUNDATIONAL_TERMS = ("api", "service", "database", "authentication", "infrastructure", "framework")


def _related(a: WorkItem, b: WorkItem) -> bool:
    """Siblings and parent/child pairs share text by construction."""
    if a.parent_id is not None and a.parent_id == b.parent_id:
        return True
    return a.parent_id == b.id or b.parent_id == a.id


def _significant_words(title: str) -> list[str]:
    return [word for word in _WORD.findall(title.lower()) if len(word) >= _SIGNIFICANT_WORD_LENGTH]


def _mentions_title(remainder: str, title_words: list[str], significant: list[str]) -> bool:
    """True when the words right after a cue name the title.

    Only whole words count, and at least two significant title words (or
    all of them, for shorter titles) must appear.
    """
    if not significant:
        return False
    window = set(_WORD.findall(remainder.lower())[: len(title_words)])
    found = sum(1 for word in significant if word in window)
    return found >= min(2, len(significant))


class ReferenceInferencer:
    """Edges from phrases like "depends on X" or "blocked by X".

    ``X`` may be another item's id or the id of the item a child was split
    from, in which case every child is referenced. Failing an id, ``X`` may
    be the item's title, matched on its significant words.
    """

    name = "reference"

    def infer(self, items: Sequence[WorkItem]) -> list[DependencyEdge]:
        aliases: Dict[str, list[str]] = defaultdict(list)
        for item in items:
            aliases[item.id.lower()].append(item.id)
        known = set(aliases)
        for item in items:
            if item.parent_id and item.parent_id.lower() not in known:
                aliases[item.parent_id.lower()].append(item.id)
        titles = [
            (item.id, _WORD.findall(item.title.lower()), _significant_words(item.title))
            for item in items
            if item.title
        ]

        edges: list[DependencyEdge] = []
        for item in items:
            text = item.text
            for match in _CUE_PATTERN.finditer(text):
                cue = match.group(1).lower()
                strength, mentioning_is_dependent = _CUES[cue]
                token = match.group(2).rstrip(".,;:)").lower()
                targets = list(aliases.get(token, []))
                if not targets:
                    remainder = text[match.start(2):]
                    targets = [
                        item_id
                        for item_id, title_words, significant in titles
                        if _mentions_title(remainder, title_words, significant)
                    ]
                for target in targets:
                    if target == item.id or target == item.parent_id:
                        continue
                    from_id, to_id = (target, item.id) if mentioning_is_dependent else (item.id, target)
                    edges.append(
                        DependencyEdge(
                            from_id=from_id,
                            to_id=to_id,
                            kind=DependencyKind.business,
                            strength=strength,
                            source=self.name,
                            rationale=f'"{match.group(0).strip()}" in {item.id}',
                        )
                    )
        return edges


def _technical_terms(text: str, keywords: Iterable[str]) -> set[str]:
    lowered = text.lower()
    terms = {keyword for keyword in keywords if re.search(rf"\b{re.escape(keyword)}\b", lowered)}
    for pattern in _TECH_TERM_PATTERNS:
        terms.update(match.lower() for match in pattern.findall(text))
    return terms


def _foundation_score(item: WorkItem, terms: set[str]) -> int:
    score = 2 * sum(1 for term in _FOUNDATIONAL_TERMS if term in terms)
    if item.kind is ItemKind.enabler:
        score += 4
    return score


class SharedComponentInferencer:
    """Soft technical edges between items touching the same components."""

    name = "shared_component"

    def __init__(self, keywords: Sequence[str] | None = None, min_shared: int | None = None) -> None:
        settings = get_settings().inference
        self._keywords = list(keywords if keywords is not None else settings.technical_keywords)
        self._min_shared = min_shared if min_shared is not None else settings.min_shared_components

    def infer(self, items: Sequence[WorkItem]) -> list[DependencyEdge]:
        ordered = sorted(items, key=lambda item: item.id)
        terms = {item.id: _technical_terms(item.text, self._keywords) for item in ordered}
        edges: list[DependencyEdge] = []
        for i, first in enumerate(ordered):
            for second in ordered[i + 1 :]:
                if _related(first, second):
                    continue
                shared = terms[first.id] & terms[second.id]
                if len(shared) < self._min_shared:
                    continue
                # Higher foundation score goes first; ``ordered`` breaks ties by id.
                if _foundation_score(second, terms[second.id]) > _foundation_score(first, terms[first.id]):
                    base, dependent = second, first
                else:
                    base, dependent = first, second
                edges.append(
                    DependencyEdge(
                        from_id=base.id,
                        to_id=dependent.id,
                        kind=DependencyKind.technical,
                        strength=DependencyStrength.soft,
                        source=self.name,
                        rationale="Shared components: " + ", ".join(sorted(shared)),
                    )
                )
        return edges


INFERENCERS = {
    ReferenceInferencer.name: ReferenceInferencer,
    SharedComponentInferencer.name: SharedComponentInferencer,
}


def default_inferencers(names: Iterable[str] | None = None) -> list[EdgeInferencer]:
    selected = list(names if names is not None else get_settings().inference.enabled_inferencers)
    unknown = [name for name in selected if name not in INFERENCERS]
    if unknown:
        raise ValueError(f"Unknown edge inferencers: {unknown}")
    return [INFERENCERS[name]() for name in selected]


def merge_edges(
    explicit: Sequence[DependencyEdge],
    items: Sequence[WorkItem],
    inferencers: Sequence[EdgeInferencer],
) -> List[DependencyEdge]:
    """Explicit edges followed by inferred candidates that do not contradict them.

    An inferred edge is dropped when the same pair, or the reverse pair, is
    already present.
    """
    merged: List[DependencyEdge] = []
    seen: set[tuple[str, str]] = set()
    for edge in explicit:
        if edge.key in seen:
            continue
        seen.add(edge.key)
        merged.append(edge)

    for inferencer in inferencers:
        inferred = inferencer.infer(items)
        accepted = 0
        for edge in inferred:
            if edge.from_id == edge.to_id or edge.key in seen or (edge.to_id, edge.from_id) in seen:
                continue
            seen.add(edge.key)
            merged.append(edge)
            accepted += 1
        logger.debug("inference.edges", inferencer=inferencer.name, candidates=len(inferred), accepted=accepted)
    return merged


__all__ = [
    "EdgeInferencer",
    "INFERENCERS",
    "ReferenceInferencer",
    "SharedComponentInferencer",
    "default_inferencers",
    "merge_edges",
]
