from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from dependency_engine.core.graph.queries import outgoing_index
from dependency_engine.core.model import Graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleReport:
    has_cycles: bool
    cycle_node_ids: frozenset[str]
    # One closed path per cyclic component, e.g. ["A", "B", "A"].
    cycles: list[list[str]] = field(default_factory=list)


def _successors(graph: Graph) -> dict[str, list[str]]:
    out = outgoing_index(graph)
    return {nid: [e.target_id for e in out.get(nid, [])] for nid in graph.nodes}


def strongly_connected_components(graph: Graph) -> list[list[str]]:
    """Tarjan components of the link graph; every node lands in exactly one.

    Depth-first with an explicit stack and per-node state (unvisited,
    in progress, done). Low-links make sure a task on a cycle discovered
    through an already finished branch still joins its component.
    """

    succ = _successors(graph)

    UNVISITED, IN_PROGRESS, DONE = 0, 1, 2
    state: dict[str, int] = {nid: UNVISITED for nid in graph.nodes}
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    on_stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for root in graph.nodes:
        if state[root] != UNVISITED:
            continue

        # Frames are (node, next successor position).
        frames: list[tuple[str, int]] = [(root, 0)]
        state[root] = IN_PROGRESS
        index[root] = low[root] = counter
        counter += 1
        on_stack.append(root)

        while frames:
            u, pos = frames[-1]
            targets = succ[u]
            if pos < len(targets):
                frames[-1] = (u, pos + 1)
                v = targets[pos]
                if state[v] == UNVISITED:
                    state[v] = IN_PROGRESS
                    index[v] = low[v] = counter
                    counter += 1
                    on_stack.append(v)
                    frames.append((v, 0))
                elif state[v] == IN_PROGRESS:
                    low[u] = min(low[u], index[v])
                continue

            frames.pop()
            if frames:
                parent = frames[-1][0]
                low[parent] = min(low[parent], low[u])
            if low[u] == index[u]:
                component: list[str] = []
                while True:
                    w = on_stack.pop()
                    state[w] = DONE
                    component.append(w)
                    if w == u:
                        break
                components.append(component)

    return components


def is_cyclic_component(component: list[str], succ: dict[str, list[str]]) -> bool:
    return len(component) > 1 or component[0] in succ[component[0]]


def detect_cycles(graph: Graph) -> CycleReport:
    """Find every task that can reach itself through the dependency links."""

    succ = _successors(graph)
    position = {nid: i for i, nid in enumerate(graph.nodes)}
    cycle_ids: set[str] = set()
    cycles: list[list[str]] = []
    for component in strongly_connected_components(graph):
        if not is_cyclic_component(component, succ):
            continue
        members = set(component)
        cycle_ids |= members
        start = min(component, key=lambda nid: position[nid])
        cycles.append(_closed_path(start, members, succ))

    cycles.sort(key=lambda c: position[c[0]])
    if cycles:
        logger.warning(
            "dependency graph has %d cycle(s) over %d task(s)", len(cycles), len(cycle_ids)
        )

    return CycleReport(
        has_cycles=bool(cycle_ids),
        cycle_node_ids=frozenset(cycle_ids),
        cycles=cycles,
    )


def _closed_path(start: str, members: set[str], succ: dict[str, list[str]]) -> list[str]:
    """Shortest path start -> ... -> start inside one component."""
    if start in succ[start]:
        return [start, start]

    parent: dict[str, str] = {}
    q: deque[str] = deque([start])
    seen = {start}
    while q:
        cur = q.popleft()
        for nxt in succ[cur]:
            if nxt == start:
                path = [cur]
                while path[-1] != start:
                    path.append(parent[path[-1]])
                path.reverse()
                return path + [start]
            if nxt in members and nxt not in seen:
                seen.add(nxt)
                parent[nxt] = cur
                q.append(nxt)
    return [start, start]  # pragma: no cover
