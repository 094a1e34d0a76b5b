"""Graph assembly at full, flattened and process-level granularity."""

import logging
from typing import Dict, List, Optional

from .call_edges import aggregate_call_edges
from .collaborators import CallProvider
from .entity_index import EntityIndex
from .errors import StructuralError
from .graph_builder import GraphBuilder, build_id, group_node_id
from .graph_model import (
    GRANULARITY_FULL,
    NODE_KINDS,
    ArchitectureGraph,
    FileEntities,
    GraphEdge,
    ProcessFlow,
)
from .grouping import DEFAULT_GROUP
from .ownership import resolve_ownership

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT_LABEL = "System"
FLOW_ONLY_KINDS = frozenset({"module", "file", "component"})


class _Containers:
    """Creates the virtual root, semantic group and synthetic root containers on demand."""

    def __init__(
        self,
        builder: GraphBuilder,
        semantic_groups: Optional[Dict[str, str]],
        virtual_root_label: Optional[str],
    ) -> None:
        self._builder = builder
        self._semantic_groups = semantic_groups
        self.root_id: Optional[str] = None
        if virtual_root_label:
            self.root_id = builder.add_or_update_node(
                node_id=build_id("root", virtual_root_label),
                label=virtual_root_label,
                kind="module",
                attributes={"role": "virtual_root"},
            )

    def container_for(self, path: str) -> Optional[str]:
        if self._semantic_groups is not None:
            group_name = self._semantic_groups.get(path) or DEFAULT_GROUP
            group_id = self._builder.add_or_update_node(
                node_id=group_node_id(group_name),
                label=group_name,
                kind="module",
                parent_id=self.root_id,
                source_files=[path],
                attributes={"role": "semantic_group"},
            )
            self._note_file(self.root_id, path)
            return group_id
        self._note_file(self.root_id, path)
        return self.root_id

    def synthetic_root(self, path: str) -> str:
        root_id = self._builder.add_or_update_node(
            node_id=build_id("root", SYNTHETIC_ROOT_LABEL),
            label=SYNTHETIC_ROOT_LABEL,
            kind="module",
            source_files=[path],
            attributes={"role": "synthetic_root"},
        )
        return root_id

    def _note_file(self, node_id: Optional[str], path: str) -> None:
        if node_id is not None:
            node = self._builder.get(node_id)
            if node is not None and path not in node.source_files:
                node.source_files.append(path)


async def assemble(
    files: List[FileEntities],
    call_provider: Optional[CallProvider] = None,
    semantic_groups: Optional[Dict[str, str]] = None,
    virtual_root_label: Optional[str] = None,
    granularity: str = GRANULARITY_FULL,
) -> ArchitectureGraph:
    """Resolve ownership per file, then aggregate calls across the batch."""
    builder = GraphBuilder()
    containers = _Containers(builder, semantic_groups, virtual_root_label)

    unique_files: List[FileEntities] = []
    seen_paths = set()
    for file_entities in files:
        if file_entities.path in seen_paths:
            continue
        seen_paths.add(file_entities.path)
        unique_files.append(file_entities)

    owner_map: Dict[str, str] = {}
    for file_entities in unique_files:
        container_id = containers.container_for(file_entities.path)
        try:
            ownership = resolve_ownership(file_entities, granularity, container_id)
        except StructuralError as error:
            logger.debug("Falling back to synthetic root: %s", error)
            ownership = resolve_ownership(
                file_entities, granularity, containers.synthetic_root(file_entities.path)
            )
        for node in ownership.nodes:
            builder.add_node(node)
        owner_map.update(ownership.owner_map)

    index = EntityIndex.build(unique_files)
    await aggregate_call_edges(unique_files, index, owner_map, call_provider, builder=builder)

    graph = builder.build()
    logger.info(
        "Assembled %s graph: %d nodes, %d edges from %d files",
        granularity,
        len(graph.nodes),
        len(graph.edges),
        len(unique_files),
    )
    return graph


def flow_to_graph(flow: ProcessFlow) -> ArchitectureGraph:
    """Process-level graph from a process flow description."""
    builder = GraphBuilder()
    for flow_node in flow.nodes:
        node_id = str(flow_node.id)
        flow_type = (flow_node.type or "process").lower()
        kind = flow_type if flow_type in NODE_KINDS and flow_type not in FLOW_ONLY_KINDS else "process"
        attributes = {"flow_type": flow_type, "description": flow_node.description}
        if flow_node.files:
            attributes["location"] = {"file": flow_node.files[0], "line": 0, "character": 0}
        builder.add_or_update_node(
            node_id=node_id,
            label=flow_node.label or node_id,
            kind=kind,
            source_files=flow_node.files,
            attributes=attributes,
        )

    for flow_edge in flow.edges:
        source_id, target_id = str(flow_edge.source), str(flow_edge.target)
        if source_id not in builder or target_id not in builder or source_id == target_id:
            continue
        builder.add_edge(GraphEdge(source_id=source_id, target_id=target_id, weight=1, label=flow_edge.label))
    return builder.build()
