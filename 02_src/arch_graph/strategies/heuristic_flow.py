"""Deterministic process flow that needs no collaborator."""

from typing import Any, Dict

from ..assembler import flow_to_graph
from ..errors import TrivialResultError
from ..graph_model import ArchitectureGraph
from ..grouping import heuristic_flow
from ..pipeline import ViewStrategy


class HeuristicFlowStrategy(ViewStrategy):
    strategy_name = "heuristic_flow"

    def __init__(self, step_limit: int = 5) -> None:
        self._step_limit = step_limit

    async def run(self, context: Dict[str, Any]) -> ArchitectureGraph:
        flow = heuristic_flow(
            list(context.get("paths", [])),
            str(context.get("label") or "Process"),
            step_limit=self._step_limit,
        )
        if not flow.nodes:
            raise TrivialResultError("Heuristic flow produced no nodes")
        return flow_to_graph(flow)
