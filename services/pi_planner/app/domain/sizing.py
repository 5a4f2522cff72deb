"""Job-size resolution as an ordered chain of estimators."""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from .types import ItemKind

KIND_DEFAULT_SIZES: dict[ItemKind, int] = {
    ItemKind.epic: 13,
    ItemKind.feature: 8,
    ItemKind.story: 3,
    ItemKind.enabler: 3,
}


class SizeEstimator(Protocol):
    def estimate(self, raw: Mapping[str, Any], kind: ItemKind) -> int | None:
        ...


class ExplicitSizeEstimator:
    """Use the size the caller supplied, when it is a positive integer."""

    def estimate(self, raw: Mapping[str, Any], kind: ItemKind) -> int | None:
        size = raw.get("size")
        if isinstance(size, bool) or not isinstance(size, int):
            return None
        return size if size > 0 else None


class KindDefaultEstimator:
    def __init__(self, defaults: Mapping[ItemKind, int] | None = None) -> None:
        self._defaults = dict(defaults or KIND_DEFAULT_SIZES)

    def estimate(self, raw: Mapping[str, Any], kind: ItemKind) -> int | None:
        return self._defaults.get(kind)


DEFAULT_ESTIMATORS: tuple[SizeEstimator, ...] = (ExplicitSizeEstimator(), KindDefaultEstimator())


def resolve_size(
    raw: Mapping[str, Any],
    kind: ItemKind,
    estimators: Iterable[SizeEstimator] = DEFAULT_ESTIMATORS,
) -> int | None:
    for estimator in estimators:
        size = estimator.estimate(raw, kind)
        if size is not None:
            return size
    return None


__all__ = [
    "DEFAULT_ESTIMATORS",
    "ExplicitSizeEstimator",
    "KIND_DEFAULT_SIZES",
    "KindDefaultEstimator",
    "SizeEstimator",
    "resolve_size",
]
