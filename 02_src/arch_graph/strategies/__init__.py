"""Ranked view strategies used by the drill-down and refresh fallback chains."""

from .component_graph import ArchitectureGraphStrategy, ComponentGraphStrategy
from .heuristic_flow import HeuristicFlowStrategy
from .process_flow import ProcessFlowStrategy, SystemFlowStrategy

__all__ = [
    "SystemFlowStrategy",
    "ArchitectureGraphStrategy",
    "ProcessFlowStrategy",
    "HeuristicFlowStrategy",
    "ComponentGraphStrategy",
]
