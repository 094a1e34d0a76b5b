"""Graph and entity data model primitives for the architecture engine."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

# Entity kinds reported by the entity parser.
CLASS_KINDS = frozenset({"class", "interface", "struct"})
CALLABLE_KINDS = frozenset({"function", "method", "constructor"})
LEAF_KINDS = frozenset({"function", "method", "constructor", "constant", "variable"})

# GraphNode kinds.
NODE_KINDS = ("system", "module", "file", "component", "process", "decision", "start", "end")
CONTAINER_KINDS = frozenset({"system", "module"})
DRILLABLE_KINDS = frozenset({"system", "process"})

GRANULARITY_FULL = "full"
GRANULARITY_FLATTENED = "flattened"
GRANULARITIES = (GRANULARITY_FULL, GRANULARITY_FLATTENED)


@dataclass(frozen=True)
class Entity:
    name: str
    kind: str
    start_line: int
    end_line: int
    selection_line: Optional[int] = None
    detail: str = ""
    children: Tuple["Entity", ...] = ()

    @property
    def anchor_line(self) -> int:
        return self.start_line if self.selection_line is None else self.selection_line

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Entity":
        start_line = int(payload.get("start_line", payload.get("line", 0)))
        selection = payload.get("selection_line")
        return cls(
            name=str(payload.get("name", "")),
            kind=str(payload.get("kind", "function")).lower(),
            start_line=start_line,
            end_line=int(payload.get("end_line", start_line)),
            selection_line=int(selection) if selection is not None else None,
            detail=str(payload.get("detail", "")),
            children=tuple(cls.from_dict(child) for child in payload.get("children", []) or []),
        )


@dataclass(frozen=True)
class FileEntities:
    path: str
    entities: Tuple[Entity, ...] = ()


@dataclass(frozen=True)
class CallSite:
    target_file: str
    target_start_line: int
    target_name: str = ""


@dataclass
class GraphNode:
    id: str
    label: str
    kind: str
    parent_id: Optional[str] = None
    source_files: List[str] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    source_id: str
    target_id: str
    weight: int = 1
    detail: List[str] = field(default_factory=list)
    label: Optional[str] = None

    @property
    def id(self) -> str:
        return f"e-{self.source_id}-{self.target_id}"


@dataclass
class ArchitectureGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> Set[str]:
        return {node.id for node in self.nodes}

    def edge_weights(self) -> Dict[Tuple[str, str], int]:
        return {(edge.source_id, edge.target_id): edge.weight for edge in self.edges}

    def roots(self) -> List[GraphNode]:
        known = self.node_ids()
        return [node for node in self.nodes if not node.parent_id or node.parent_id not in known]

    def children_of(self, node_id: str) -> List[GraphNode]:
        return [node for node in self.nodes if node.parent_id == node_id]

    def to_json(self) -> Dict[str, Any]:
        edges = []
        for edge in self.edges:
            payload = asdict(edge)
            payload["id"] = edge.id
            edges.append(payload)
        return {"nodes": [asdict(node) for node in self.nodes], "edges": edges}

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "ArchitectureGraph":
        nodes = [
            GraphNode(
                id=str(node["id"]),
                label=str(node.get("label", node["id"])),
                kind=str(node.get("kind", "process")),
                parent_id=node.get("parent_id"),
                source_files=list(node.get("source_files", [])),
                attributes=dict(node.get("attributes", {})),
            )
            for node in payload.get("nodes", [])
        ]
        edges = [
            GraphEdge(
                source_id=str(edge["source_id"]),
                target_id=str(edge["target_id"]),
                weight=int(edge.get("weight", 1)),
                detail=list(edge.get("detail", [])),
                label=edge.get("label"),
            )
            for edge in payload.get("edges", [])
        ]
        return cls(nodes=nodes, edges=edges)


@dataclass(frozen=True)
class DrillRequest:
    id: str
    target_node_id: str
    source_files: Tuple[str, ...]
    level: int
    label: str
    node_kind: str


@dataclass(frozen=True)
class ViewFrame:
    nodes: Tuple[GraphNode, ...]
    edges: Tuple[GraphEdge, ...]
    label: str


@dataclass
class FlowNode:
    id: str
    label: str
    type: str = "process"
    files: List[str] = field(default_factory=list)
    description: str = ""


@dataclass
class FlowEdge:
    source: str
    target: str
    label: Optional[str] = None


@dataclass
class ProcessFlow:
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)


@dataclass(frozen=True)
class CodeLocation:
    file: str
    line: int = 0
    character: int = 0
    end_line: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)
