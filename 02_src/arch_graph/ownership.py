"""Ownership resolution: which graph node represents each entity."""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .errors import StructuralError
from .graph_builder import entity_node_id, file_node_id
from .graph_model import (
    CLASS_KINDS,
    GRANULARITY_FLATTENED,
    GRANULARITY_FULL,
    LEAF_KINDS,
    Entity,
    FileEntities,
    GraphNode,
)

# Kinds whose children are treated as if they were declared at top level.
TRANSPARENT_KINDS = frozenset({"module", "namespace", "package"})


@dataclass
class OwnershipResult:
    nodes: List[GraphNode] = field(default_factory=list)
    owner_map: Dict[str, str] = field(default_factory=dict)

    def owner_of(self, entity_id: str) -> Optional[str]:
        return self.owner_map.get(entity_id)


def resolve_ownership(
    file_entities: FileEntities,
    granularity: str = GRANULARITY_FULL,
    container_id: Optional[str] = None,
) -> OwnershipResult:
    """Classify one file's entities into rendered nodes and an owner map.

    ``full`` renders a file node holding classes and top-level
    functions/constants. ``flattened`` drops the file node and parents the
    same nodes directly to ``container_id``, which is then mandatory.
    """
    if granularity not in (GRANULARITY_FULL, GRANULARITY_FLATTENED):
        raise ValueError(f"Unknown granularity: {granularity}")

    path = file_entities.path
    if granularity == GRANULARITY_FULL:
        anchor_id = file_node_id(path)
    elif container_id is None:
        raise StructuralError(f"No container available for {path}")
    else:
        anchor_id = container_id

    result = OwnershipResult()
    _classify(path, file_entities.entities, anchor_id, result)

    if granularity == GRANULARITY_FULL:
        result.nodes.insert(0, _file_node(path, container_id, has_children=bool(result.nodes)))
    return result


def _classify(path: str, entities: Iterable[Entity], anchor_id: str, result: OwnershipResult) -> None:
    for entity in entities:
        entity_id = entity_node_id(path, entity)
        if entity.kind in CLASS_KINDS or entity.kind in LEAF_KINDS:
            result.nodes.append(_component_node(path, entity, entity_id, anchor_id))
            result.owner_map[entity_id] = entity_id
            _assign_nested(path, entity.children, entity_id, result.owner_map)
        elif entity.kind in TRANSPARENT_KINDS:
            result.owner_map[entity_id] = anchor_id
            _classify(path, entity.children, anchor_id, result)
        else:
            result.owner_map[entity_id] = anchor_id
            _assign_nested(path, entity.children, anchor_id, result.owner_map)


def _assign_nested(path: str, entities: Iterable[Entity], owner_id: str, owner_map: Dict[str, str]) -> None:
    for entity in entities:
        owner_map[entity_node_id(path, entity)] = owner_id
        _assign_nested(path, entity.children, owner_id, owner_map)


def _component_node(path: str, entity: Entity, entity_id: str, parent_id: str) -> GraphNode:
    return GraphNode(
        id=entity_id,
        label=entity.name,
        kind="component",
        parent_id=parent_id,
        source_files=[path],
        attributes={
            "entity_kind": entity.kind,
            "detail": entity.detail or entity.kind.capitalize(),
            "location": {
                "file": path,
                "line": entity.start_line,
                "character": 0,
                "end_line": entity.end_line,
            },
        },
    )


def _file_node(path: str, parent_id: Optional[str], has_children: bool) -> GraphNode:
    attributes = {"leaf": not has_children, "location": {"file": path, "line": 0, "character": 0}}
    if not has_children:
        attributes["detail"] = "Source File"
    return GraphNode(
        id=file_node_id(path),
        label=os.path.basename(path) or path,
        kind="file",
        parent_id=parent_id,
        source_files=[path],
        attributes=attributes,
    )
