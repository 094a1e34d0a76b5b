"""Aggregation of entity-level call facts into owner-level edges."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .collaborators import CallProvider
from .entity_index import EntityIndex
from .graph_builder import GraphBuilder
from .graph_model import CALLABLE_KINDS, CallSite, Entity, FileEntities, GraphEdge

logger = logging.getLogger(__name__)


@dataclass
class CallStats:
    queried: int = 0
    calls: int = 0
    unresolved: int = 0
    internal: int = 0
    failed: int = 0


@dataclass
class CallAggregation:
    edges: List[GraphEdge] = field(default_factory=list)
    stats: CallStats = field(default_factory=CallStats)


class _EdgeAccumulator:
    def __init__(self) -> None:
        self.entries: Dict[str, GraphEdge] = {}

    def add(self, source_id: str, target_id: str, description: str) -> None:
        key = f"{source_id}|{target_id}"
        edge = self.entries.get(key)
        if edge is None:
            edge = GraphEdge(source_id=source_id, target_id=target_id, weight=0)
            self.entries[key] = edge
        edge.weight += 1
        if description not in edge.detail:
            edge.detail.append(description)


def callable_entities(files: Iterable[FileEntities]) -> List[Tuple[str, Entity]]:
    """Every function/method of the batch, each entity once."""
    seen: Set[Tuple[str, str, int]] = set()
    found: List[Tuple[str, Entity]] = []

    def walk(path: str, entities: Iterable[Entity]) -> None:
        for entity in entities:
            key = (path, entity.name, entity.start_line)
            if key in seen:
                continue
            seen.add(key)
            if entity.kind in CALLABLE_KINDS:
                found.append((path, entity))
            walk(path, entity.children)

    for file_entities in files:
        walk(file_entities.path, file_entities.entities)
    return found


async def aggregate_call_edges(
    files: List[FileEntities],
    index: EntityIndex,
    owner_map: Dict[str, str],
    call_provider: Optional[CallProvider],
    builder: Optional[GraphBuilder] = None,
) -> CallAggregation:
    """Query outgoing calls for every callable entity and fold them into edges.

    All queries run concurrently; edges are finalized after every query
    settled. When ``builder`` is given the edges are also added to it.
    """
    aggregation = CallAggregation()
    if call_provider is None:
        return aggregation

    accumulator = _EdgeAccumulator()
    stats = aggregation.stats
    targets = callable_entities(files)
    stats.queried = len(targets)

    async def query(path: str, entity: Entity) -> None:
        source_owner = owner_map.get(index.id_for(path, entity))
        if source_owner is None:
            return
        try:
            calls = await call_provider.get_outgoing_calls(path, entity)
        except Exception as error:
            stats.failed += 1
            logger.debug("Outgoing calls unavailable for %s in %s: %s", entity.name, path, error)
            return
        for call in calls or []:
            _fold_call(path, entity, call, source_owner, index, owner_map, accumulator, stats)

    await asyncio.gather(*(query(path, entity) for path, entity in targets))

    aggregation.edges = list(accumulator.entries.values())
    for edge in aggregation.edges:
        if builder is not None:
            builder.add_edge(edge)

    logger.debug(
        "Aggregated %d edges from %d calls (%d unresolved, %d internal, %d failed queries)",
        len(aggregation.edges),
        stats.calls,
        stats.unresolved,
        stats.internal,
        stats.failed,
    )
    return aggregation


def _fold_call(
    path: str,
    entity: Entity,
    call: CallSite,
    source_owner: str,
    index: EntityIndex,
    owner_map: Dict[str, str],
    accumulator: _EdgeAccumulator,
    stats: CallStats,
) -> None:
    stats.calls += 1
    target_id = index.id_at(call.target_file, call.target_start_line)
    target_owner = owner_map.get(target_id) if target_id else None
    if target_owner is None:
        # Target lies outside the analysed batch.
        stats.unresolved += 1
        return
    if target_owner == source_owner:
        stats.internal += 1
        return
    target_entity = index.entity(target_id)
    target_name = call.target_name or (target_entity.name if target_entity else "?")
    accumulator.add(source_owner, target_owner, f"{entity.name} -> {target_name}")
