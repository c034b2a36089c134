from __future__ import annotations

import heapq
import logging
from typing import Optional

from dependency_engine.core.config.engine_config import DEFAULT_CONFIG, EngineConfig
from dependency_engine.core.cpm.critical_path import forward_constraint
from dependency_engine.core.cycles.detect_cycles import is_cyclic_component, strongly_connected_components
from dependency_engine.core.errors import InvalidSimulationInput
from dependency_engine.core.graph.build_graph import offset_date
from dependency_engine.core.graph.queries import incoming_index, outgoing_index
from dependency_engine.core.model import DependencyLink, Graph, ImpactedTask, WhatIfScenario

logger = logging.getLogger(__name__)


def simulate_delay(
    graph: Graph,
    task_id: str,
    delay_days: int,
    config: Optional[EngineConfig] = None,
) -> WhatIfScenario:
    """Project how a slip of ``delay_days`` on ``task_id`` ripples downstream.

    The source task's start and finish move by the delay; every task reachable
    through outgoing links is then re-evaluated once, in dependency order,
    with the forward-pass link semantics. Members of a cycle are swept
    together, at most ``1 + config.max_propagation_sweeps`` times, before
    anything downstream of the cycle is evaluated. A task only moves when a delayed
    predecessor's constraint exceeds its current times, so free slack absorbs
    small delays. The graph is never modified.

    Raises InvalidSimulationInput for a negative or non-integer delay or an
    unknown task id.
    """

    cfg = config or DEFAULT_CONFIG
    if isinstance(delay_days, bool) or not isinstance(delay_days, int):
        raise InvalidSimulationInput(
            code="E_INVALID_DELAY",
            message=f"delay must be an integer number of days, got {delay_days!r}",
            path="delay_days",
        )
    if delay_days < 0:
        raise InvalidSimulationInput(
            code="E_NEGATIVE_DELAY",
            message=f"delay must be >= 0, got {delay_days}",
            path="delay_days",
        )
    if task_id not in graph.nodes:
        raise InvalidSimulationInput(
            code="E_UNKNOWN_TASK",
            message=f"unknown task id: {task_id}",
            path="task_id",
        )

    outgoing = outgoing_index(graph)
    incoming = incoming_index(graph)

    reachable = _reachable(task_id, outgoing)
    groups = _propagation_groups(graph, task_id, reachable, outgoing)

    new_es = {nid: n.es for nid, n in graph.nodes.items()}
    new_ef = {nid: n.ef for nid, n in graph.nodes.items()}
    delayed: set[str] = set()
    if delay_days > 0:
        new_es[task_id] += delay_days
        new_ef[task_id] += delay_days
        delayed.add(task_id)

    def evaluate(nid: str) -> bool:
        links = [e for e in incoming.get(nid, []) if e.source_id in delayed]
        if not links:
            return False
        node = graph.nodes[nid]
        es = _pushed_start(node.es, node.duration_days, links, new_es, new_ef)
        if es <= new_es[nid]:
            return False
        new_es[nid] = es
        new_ef[nid] = es + node.duration_days
        delayed.add(nid)
        return True

    for members, cyclic in groups:
        if not cyclic:
            evaluate(members[0])
            continue
        logger.debug("propagating through a cycle of %d task(s)", len(members))
        for _ in range(1 + cfg.max_propagation_sweeps):
            changed = False
            for nid in members:
                changed = evaluate(nid) or changed
            if not changed:
                break

    impacted = [
        ImpactedTask(
            task_id=nid,
            original_es=graph.nodes[nid].es,
            new_es=new_es[nid],
            original_ef=graph.nodes[nid].ef,
            new_ef=new_ef[nid],
            delay_days=new_es[nid] - graph.nodes[nid].es,
        )
        for nid in delayed
        if nid != task_id
    ]
    impacted.sort(key=lambda i: (i.original_es, i.task_id))

    original_end = graph.project_duration_days
    new_end = max([original_end] + list(new_ef.values()))

    critical_path_affected = (
        (delay_days > 0 and graph.nodes[task_id].is_critical)
        or any(graph.nodes[i.task_id].is_critical for i in impacted)
        or new_end > original_end
    )

    logger.debug(
        "what-if %s +%d: %d impacted, project end %d -> %d",
        task_id,
        delay_days,
        len(impacted),
        original_end,
        new_end,
    )

    return WhatIfScenario(
        task_id=task_id,
        delay_days=delay_days,
        original_project_end_days=original_end,
        new_project_end_days=new_end,
        original_project_end=offset_date(graph.project_start, original_end),
        new_project_end=offset_date(graph.project_start, new_end),
        project_delay_days=new_end - original_end,
        critical_path_affected=critical_path_affected,
        impacted=impacted,
    )


def _pushed_start(
    es: int,
    duration: int,
    links: list[DependencyLink],
    new_es: dict[str, int],
    new_ef: dict[str, int],
) -> int:
    for link in links:
        start_floor, finish_floor = forward_constraint(link, new_es[link.source_id], new_ef[link.source_id])
        if start_floor is not None:
            es = max(es, start_floor)
        else:
            es = max(es, finish_floor - duration)
    return es


def _reachable(source: str, outgoing: dict[str, list[DependencyLink]]) -> set[str]:
    seen = {source}
    stack = [source]
    while stack:
        cur = stack.pop()
        for e in outgoing.get(cur, []):
            if e.target_id not in seen:
                seen.add(e.target_id)
                stack.append(e.target_id)
    return seen


def _propagation_groups(
    graph: Graph,
    source: str,
    reachable: set[str],
    outgoing: dict[str, list[DependencyLink]],
) -> list[tuple[list[str], bool]]:
    """Downstream tasks grouped by strongly connected component, in dependency order.

    Each entry is (members in task order, is_cyclic). Acyclic tasks are
    single-member groups evaluated once; only members of a cycle need
    repeated sweeps. The source itself is never re-evaluated: its shifted
    times are fixed.
    """
    position = {nid: i for i, nid in enumerate(graph.nodes)}
    succ = {nid: [e.target_id for e in outgoing.get(nid, [])] for nid in graph.nodes}

    group_of: dict[str, int] = {}
    members: list[list[str]] = []
    cyclic: list[bool] = []
    for component in strongly_connected_components(graph):
        kept = [nid for nid in component if nid in reachable]
        if not kept:
            continue
        gi = len(members)
        for nid in kept:
            group_of[nid] = gi
        members.append(sorted(kept, key=lambda x: position[x]))
        cyclic.append(is_cyclic_component(component, succ))

    in_degree = [0] * len(members)
    targets: list[set[int]] = [set() for _ in members]
    for nid in reachable:
        for e in outgoing.get(nid, []):
            a, b = group_of[nid], group_of[e.target_id]
            if a != b and e.target_id != source and b not in targets[a]:
                targets[a].add(b)
                in_degree[b] += 1

    start = group_of[source]
    ready = [(position[members[start][0]], start)]
    out: list[tuple[list[str], bool]] = []
    while ready:
        _, gi = heapq.heappop(ready)
        group = [nid for nid in members[gi] if nid != source]
        if group:
            out.append((group, cyclic[gi]))
        for nxt in targets[gi]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                heapq.heappush(ready, (position[members[nxt][0]], nxt))
    return out
