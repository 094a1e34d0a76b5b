"""Core package for the hierarchical architecture graph engine."""

from .assembler import assemble, flow_to_graph
from .drilldown import DrillDownOrchestrator, DrillOutcome, DrillState
from .graph_builder import GraphBuilder
from .graph_model import ArchitectureGraph, Entity, FileEntities, GraphEdge, GraphNode
from .layout import layout
from .ownership import resolve_ownership
from .pipeline import FallbackChain, ViewStrategy

__all__ = [
    "ArchitectureGraph",
    "DrillDownOrchestrator",
    "DrillOutcome",
    "DrillState",
    "Entity",
    "FallbackChain",
    "FileEntities",
    "GraphBuilder",
    "GraphEdge",
    "GraphNode",
    "ViewStrategy",
    "assemble",
    "flow_to_graph",
    "layout",
    "resolve_ownership",
]
