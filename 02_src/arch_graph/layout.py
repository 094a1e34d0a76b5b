"""Compound layered layout for partially expanded node hierarchies.

``layout`` is a pure function of ``(nodes, edges, expanded)``. Visibility is
decided by walking each node's parent chain: a node is shown only when every
ancestor is expanded. Containers are laid out bottom-up: an expanded
container is first filled with its own visible children, then sized to fit
them, and finally placed among its siblings like any other box.

Placement inside one container is a small Sugiyama pass: siblings are ranked
by longest path over the visible edges lifted to sibling level (strongly
connected components share a rank), ordered within a rank by the barycenter
of their predecessors, and packed into centered rows (``TB``) or columns
(``LR``). Coordinates are relative to the immediate parent's origin;
absolute coordinates are reported as well.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx

from .graph_model import CONTAINER_KINDS, GraphEdge, GraphNode

NODE_SEP = 50.0
RANK_SEP = 80.0
MARGIN = 40.0
PADDING = 20.0
HEADER = 30.0

COLLAPSED_SIZE = (300.0, 100.0)
EXPANDED_SEED = (10.0, 10.0)
LEAF_MIN_WIDTH = 180.0
LEAF_MAX_WIDTH = 480.0
LEAF_HEIGHT = 70.0
LEAF_HEIGHT_DESCRIBED = 100.0


@dataclass
class PositionedNode:
    id: str
    visible: bool
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    absolute_x: float = 0.0
    absolute_y: float = 0.0
    parent_id: Optional[str] = None
    is_container: bool = False
    expanded: bool = False


@dataclass
class LayoutResult:
    nodes: List[PositionedNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    width: float = 0.0
    height: float = 0.0

    def node(self, node_id: str) -> Optional[PositionedNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def visible_ids(self) -> Set[str]:
        return {node.id for node in self.nodes if node.visible}

    def to_json(self) -> Dict[str, object]:
        return {
            "width": self.width,
            "height": self.height,
            "nodes": [vars(node).copy() for node in self.nodes],
            "edges": [edge.id for edge in self.edges],
        }


def effective_parents(nodes: Iterable[GraphNode]) -> Dict[str, Optional[str]]:
    """Parent per node; dangling parents and parent cycles make a node a root."""
    by_id = {node.id: node for node in nodes}
    parents: Dict[str, Optional[str]] = {}
    for node_id, node in by_id.items():
        parent_id = node.parent_id if node.parent_id in by_id else None
        seen = {node_id}
        cursor = parent_id
        while cursor is not None:
            if cursor in seen:
                parent_id = None
                break
            seen.add(cursor)
            next_parent = by_id[cursor].parent_id
            cursor = next_parent if next_parent in by_id else None
        parents[node_id] = parent_id
    return parents


def is_visible(node_id: str, parents: Dict[str, Optional[str]], expanded: Set[str]) -> bool:
    cursor = parents.get(node_id)
    while cursor is not None:
        if cursor not in expanded:
            return False
        cursor = parents.get(cursor)
    return True


def leaf_size(node: GraphNode) -> Tuple[float, float]:
    description = str(node.attributes.get("description") or "")
    width = max(LEAF_MIN_WIDTH, len(node.label or "") * 9.0, len(description) * 6.0)
    height = LEAF_HEIGHT_DESCRIBED if description else LEAF_HEIGHT
    return min(width, LEAF_MAX_WIDTH), height


class _Layout:
    def __init__(self, nodes: List[GraphNode], edges: List[GraphEdge], expanded: Set[str], direction: str) -> None:
        self.by_id = {node.id: node for node in nodes}
        self.order = [node.id for node in nodes]
        self.parents = effective_parents(nodes)
        self.expanded = set(expanded)
        self.direction = direction
        self.children: Dict[Optional[str], List[str]] = {}
        for node_id in sorted(self.order):
            self.children.setdefault(self.parents[node_id], []).append(node_id)
        self.visible = {node_id for node_id in self.order if is_visible(node_id, self.parents, self.expanded)}
        self.edges = [
            edge
            for edge in edges
            if edge.source_id in self.visible and edge.target_id in self.visible and edge.source_id != edge.target_id
        ]
        self.boxes: Dict[str, PositionedNode] = {}

    def is_container(self, node_id: str) -> bool:
        node = self.by_id[node_id]
        return node.kind in CONTAINER_KINDS or bool(self.children.get(node_id))

    def run(self) -> LayoutResult:
        width, height = self._arrange(None, MARGIN, MARGIN)
        self._absolutize(None, 0.0, 0.0)
        result_nodes = []
        for node_id in self.order:
            box = self.boxes.get(node_id)
            if box is None:
                box = PositionedNode(
                    id=node_id,
                    visible=False,
                    parent_id=self.parents[node_id],
                    is_container=self.is_container(node_id),
                    expanded=node_id in self.expanded,
                )
            result_nodes.append(box)
        return LayoutResult(nodes=result_nodes, edges=self.edges, width=width + 2 * MARGIN, height=height + 2 * MARGIN)

    def _visible_children(self, frame: Optional[str]) -> List[str]:
        return [node_id for node_id in self.children.get(frame, []) if node_id in self.visible]

    def _size(self, node_id: str) -> Tuple[float, float]:
        if not self.is_container(node_id):
            return leaf_size(self.by_id[node_id])
        if node_id not in self.expanded:
            return COLLAPSED_SIZE
        seed_w, seed_h = EXPANDED_SEED
        if not self._visible_children(node_id):
            return seed_w, seed_h
        content_w, content_h = self._arrange(node_id, PADDING, HEADER)
        return max(seed_w, content_w + 2 * PADDING), max(seed_h, content_h + HEADER + PADDING)

    def _arrange(self, frame: Optional[str], offset_x: float, offset_y: float) -> Tuple[float, float]:
        members = self._visible_children(frame)
        if not members:
            return 0.0, 0.0

        sizes = {}
        for node_id in members:
            sizes[node_id] = self._size(node_id)

        ranks = self._rank(frame, members)
        horizontal = self.direction == "LR"

        spans: List[Tuple[float, float]] = []
        for rank in ranks:
            along = sum(sizes[n][1] if horizontal else sizes[n][0] for n in rank) + NODE_SEP * (len(rank) - 1)
            across = max(sizes[n][0] if horizontal else sizes[n][1] for n in rank)
            spans.append((along, across))

        content_along = max(span[0] for span in spans)
        cursor_across = 0.0
        for rank, (along, across) in zip(ranks, spans):
            cursor_along = (content_along - along) / 2
            for node_id in rank:
                width, height = sizes[node_id]
                if horizontal:
                    x = offset_x + cursor_across + (across - width) / 2
                    y = offset_y + cursor_along
                    cursor_along += height + NODE_SEP
                else:
                    x = offset_x + cursor_along
                    y = offset_y + cursor_across + (across - height) / 2
                    cursor_along += width + NODE_SEP
                self.boxes[node_id] = PositionedNode(
                    id=node_id,
                    visible=True,
                    x=x,
                    y=y,
                    width=width,
                    height=height,
                    parent_id=frame,
                    is_container=self.is_container(node_id),
                    expanded=node_id in self.expanded,
                )
            cursor_across += across + RANK_SEP
        content_across = cursor_across - RANK_SEP

        if horizontal:
            return content_across, content_along
        return content_along, content_across

    def _sibling_of(self, frame: Optional[str], node_id: str) -> Optional[str]:
        cursor: Optional[str] = node_id
        while cursor is not None:
            parent = self.parents.get(cursor)
            if parent == frame:
                return cursor
            cursor = parent
        return None

    def _rank(self, frame: Optional[str], members: List[str]) -> List[List[str]]:
        graph = nx.DiGraph()
        graph.add_nodes_from(members)
        for edge in self.edges:
            source = self._sibling_of(frame, edge.source_id)
            target = self._sibling_of(frame, edge.target_id)
            if source is None or target is None or source == target:
                continue
            graph.add_edge(source, target)

        condensed = nx.condensation(graph)
        rank_of: Dict[str, int] = {}
        for level, generation in enumerate(nx.topological_generations(condensed)):
            for component in generation:
                for node_id in condensed.nodes[component]["members"]:
                    rank_of[node_id] = level

        ranks: List[List[str]] = [[] for _ in range(max(rank_of.values()) + 1)]
        for node_id in members:
            ranks[rank_of[node_id]].append(node_id)

        position: Dict[str, int] = {}
        ordered: List[List[str]] = []
        for rank in ranks:
            def barycenter(node_id: str) -> Tuple[float, str]:
                placed = [position[p] for p in graph.predecessors(node_id) if p in position]
                if not placed:
                    return float(len(position) + 1), node_id
                return sum(placed) / len(placed), node_id

            rank = sorted(rank, key=barycenter)
            for index, node_id in enumerate(rank):
                position[node_id] = index
            ordered.append(rank)
        return ordered

    def _absolutize(self, frame: Optional[str], origin_x: float, origin_y: float) -> None:
        for node_id in self._visible_children(frame):
            box = self.boxes.get(node_id)
            if box is None:
                continue
            box.absolute_x = origin_x + box.x
            box.absolute_y = origin_y + box.y
            self._absolutize(node_id, box.absolute_x, box.absolute_y)


def layout(
    nodes: List[GraphNode],
    edges: List[GraphEdge],
    expanded: Iterable[str],
    direction: str = "TB",
) -> LayoutResult:
    if direction not in ("TB", "LR"):
        raise ValueError(f"Unsupported direction: {direction}")
    if not nodes:
        return LayoutResult()
    return _Layout(list(nodes), list(edges), set(expanded), direction).run()
