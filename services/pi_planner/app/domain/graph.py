"""Dependency graph construction, cycle detection and critical path."""
from __future__ import annotations

import heapq
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Mapping, Sequence

import structlog

from .errors import CycleError, InvalidWorkItemError
from .inference import EdgeInferencer, merge_edges
from .types import CriticalPath, DependencyEdge, WorkItem

logger = structlog.get_logger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycles(nodes: Iterable[str], successors: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """Every distinct cycle reached by an iterative three-colour DFS.

    Roots and successors are visited in id order so results are stable.
    Each cycle is rotated to start at its smallest id.
    """
    color: Dict[str, int] = {node: _WHITE for node in nodes}
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    for root in sorted(color):
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        path = [root]
        position = {root: 0}
        stack = [(root, iter(successors.get(root, ())))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                color[node] = _BLACK
                stack.pop()
                path.pop()
                del position[node]
                continue
            state = color.get(child, _BLACK)
            if state == _WHITE:
                color[child] = _GRAY
                position[child] = len(path)
                path.append(child)
                stack.append((child, iter(successors.get(child, ()))))
            elif state == _GRAY:
                cycle = path[position[child] :]
                pivot = cycle.index(min(cycle))
                normalized = tuple(cycle[pivot:] + cycle[:pivot])
                if normalized not in seen:
                    seen.add(normalized)
                    cycles.append(list(normalized))
    return cycles


class DependencyGraph:
    """Nodes, edges and adjacency for one planning run."""

    def __init__(self, items: Sequence[WorkItem], edges: Sequence[DependencyEdge]) -> None:
        self.items: Dict[str, WorkItem] = {item.id: item for item in sorted(items, key=lambda i: i.id)}
        self.edges: List[DependencyEdge] = []
        self.dangling_edges: List[DependencyEdge] = []
        self._hard_succ: Dict[str, list[str]] = defaultdict(list)
        self._hard_pred: Dict[str, list[str]] = defaultdict(list)
        self._soft_succ: Dict[str, list[str]] = defaultdict(list)
        self._soft_pred: Dict[str, list[str]] = defaultdict(list)
        self._missing: Dict[str, list[str]] = defaultdict(list)
        self._critical_path: CriticalPath | None = None

        for edge in edges:
            if edge.from_id not in self.items or edge.to_id not in self.items:
                self.dangling_edges.append(edge)
                if edge.is_hard and edge.to_id in self.items:
                    self._missing[edge.to_id].append(edge.from_id)
                continue
            self.edges.append(edge)
            if edge.is_hard:
                self._hard_succ[edge.from_id].append(edge.to_id)
                self._hard_pred[edge.to_id].append(edge.from_id)
            else:
                self._soft_succ[edge.from_id].append(edge.to_id)
                self._soft_pred[edge.to_id].append(edge.from_id)
        for adjacency in (self._hard_succ, self._hard_pred, self._soft_succ, self._soft_pred, self._missing):
            for node in adjacency:
                adjacency[node].sort()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items

    def __len__(self) -> int:
        return len(self.items)

    @property
    def hard_edges(self) -> list[DependencyEdge]:
        return [edge for edge in self.edges if edge.is_hard]

    @property
    def soft_edges(self) -> list[DependencyEdge]:
        return [edge for edge in self.edges if not edge.is_hard]

    def size(self, item_id: str) -> int:
        return self.items[item_id].size

    def predecessors(self, item_id: str, hard_only: bool = True) -> list[str]:
        preds = list(self._hard_pred.get(item_id, []))
        if not hard_only:
            preds = sorted(preds + self._soft_pred.get(item_id, []))
        return preds

    def successors(self, item_id: str, hard_only: bool = True) -> list[str]:
        succs = list(self._hard_succ.get(item_id, []))
        if not hard_only:
            succs = sorted(succs + self._soft_succ.get(item_id, []))
        return succs

    def missing_prerequisites(self, item_id: str) -> list[str]:
        """Hard predecessors referenced by edges but absent from the backlog."""
        return list(self._missing.get(item_id, []))

    def find_cycles(self) -> list[list[str]]:
        return find_cycles(self.items, self._hard_succ)

    def topological_order(self) -> list[str]:
        """Kahn's algorithm over Hard edges, smallest ready id first."""
        indegree = {node: len(self._hard_pred.get(node, [])) for node in self.items}
        ready = [node for node, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for succ in self._hard_succ.get(node, []):
                indegree[succ] -= 1
                if indegree[succ] == 0:
                    heapq.heappush(ready, succ)
        if len(order) != len(self.items):
            raise CycleError(self.find_cycles(), self.hard_edges)
        return order

    @property
    def critical_path(self) -> CriticalPath:
        if self._critical_path is None:
            self._critical_path = self._compute_critical_path()
        return self._critical_path

    def _compute_critical_path(self) -> CriticalPath:
        if not self.items:
            return CriticalPath()
        longest: Dict[str, int] = {}
        best_pred: Dict[str, str | None] = {}
        for node in self.topological_order():
            chosen: str | None = None
            for pred in self._hard_pred.get(node, []):
                if chosen is None or longest[pred] > longest[chosen]:
                    chosen = pred
            best_pred[node] = chosen
            longest[node] = self.size(node) + (longest[chosen] if chosen is not None else 0)

        end: str | None = None
        for node in self.items:
            if end is None or longest[node] > longest[end]:
                end = node
        path: list[str] = []
        cursor = end
        while cursor is not None:
            path.append(cursor)
            cursor = best_pred[cursor]
        path.reverse()
        return CriticalPath(ids=tuple(path), total_size=longest[end] if end is not None else 0)

    def to_dict(self) -> dict:
        return {
            "nodes": [item.to_dict() for item in self.items.values()],
            "edges": [edge.to_dict() for edge in self.edges],
            "danglingEdges": [edge.to_dict() for edge in self.dangling_edges],
        }


class DependencyGraphBuilder:
    """Combines explicit and inferred edges into a validated graph."""

    def __init__(self, inferencers: Sequence[EdgeInferencer] | None = None) -> None:
        self._inferencers = list(inferencers or [])

    def build(self, items: Sequence[WorkItem], explicit_edges: Sequence[DependencyEdge] = ()) -> DependencyGraph:
        """Return an acyclic graph or raise ``CycleError`` listing every cycle found."""
        counts = Counter(item.id for item in items)
        duplicates = sorted(item_id for item_id, count in counts.items() if count > 1)
        if duplicates:
            raise InvalidWorkItemError(f"Duplicate work item ids: {', '.join(duplicates)}", duplicates)
        invalid = sorted(item.id for item in items if item.size <= 0)
        if invalid:
            raise InvalidWorkItemError(f"Work items must have a positive size: {', '.join(invalid)}", invalid)

        edges = merge_edges(explicit_edges, items, self._inferencers)
        graph = DependencyGraph(items, edges)
        cycles = graph.find_cycles()
        if cycles:
            logger.warning("graph.cycles", count=len(cycles), cycles=cycles)
            raise CycleError(cycles, graph.hard_edges)

        critical = graph.critical_path
        logger.info(
            "graph.built",
            nodes=len(graph),
            hard_edges=len(graph.hard_edges),
            soft_edges=len(graph.soft_edges),
            dangling_edges=len(graph.dangling_edges),
            critical_path=list(critical.ids),
            critical_path_size=critical.total_size,
        )
        return graph


__all__ = ["DependencyGraph", "DependencyGraphBuilder", "find_cycles"]
