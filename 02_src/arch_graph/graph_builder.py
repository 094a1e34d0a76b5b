"""Deterministic builder for architecture graph state."""

from hashlib import sha1
from typing import Any, Dict, Iterable, List, Optional

from .errors import StructuralError
from .graph_model import ArchitectureGraph, Entity, GraphEdge, GraphNode


def build_id(prefix: str, signature: str) -> str:
    digest = sha1(signature.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}_{digest}"


def entity_node_id(path: str, entity: Entity) -> str:
    return build_id("node", f"{path}::{entity.name}::{entity.start_line}")


def file_node_id(path: str) -> str:
    return build_id("file", path)


def group_node_id(group_name: str) -> str:
    return build_id("mod", group_name.strip().lower())


class GraphBuilder:
    """Owns node identity and safe upserts of nodes and aggregated edges."""

    def __init__(self) -> None:
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: Dict[str, GraphEdge] = {}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def add_or_update_node(
        self,
        node_id: str,
        label: str,
        kind: str,
        parent_id: Optional[str] = None,
        source_files: Iterable[str] = (),
        attributes: Optional[Dict[str, Any]] = None,
    ) -> str:
        existing = self._nodes.get(node_id)
        if existing:
            existing.attributes.update(attributes or {})
            for path in source_files:
                if path not in existing.source_files:
                    existing.source_files.append(path)
            return node_id

        self._nodes[node_id] = GraphNode(
            id=node_id,
            label=label,
            kind=kind,
            parent_id=parent_id,
            source_files=list(dict.fromkeys(source_files)),
            attributes=dict(attributes or {}),
        )
        return node_id

    def add_node(self, node: GraphNode) -> str:
        return self.add_or_update_node(
            node_id=node.id,
            label=node.label,
            kind=node.kind,
            parent_id=node.parent_id,
            source_files=node.source_files,
            attributes=node.attributes,
        )

    def add_edge(self, edge: GraphEdge) -> Optional[str]:
        if edge.source_id == edge.target_id:
            return None
        if edge.source_id not in self._nodes or edge.target_id not in self._nodes:
            raise StructuralError(f"Edge endpoint missing: {edge.source_id} -> {edge.target_id}")
        edge_key = f"{edge.source_id}|{edge.target_id}"
        existing = self._edges.get(edge_key)
        if existing is None:
            self._edges[edge_key] = GraphEdge(
                source_id=edge.source_id,
                target_id=edge.target_id,
                weight=edge.weight,
                detail=list(edge.detail),
                label=edge.label,
            )
            return edge_key
        existing.weight += edge.weight
        for item in edge.detail:
            if item not in existing.detail:
                existing.detail.append(item)
        if edge.label and not existing.label:
            existing.label = edge.label
        return edge_key

    def build(self) -> ArchitectureGraph:
        edges: List[GraphEdge] = []
        for edge in self._edges.values():
            if edge.label is None and edge.weight > 1:
                edge.label = f"{edge.weight} calls"
            edges.append(edge)
        return ArchitectureGraph(nodes=list(self._nodes.values()), edges=edges)
