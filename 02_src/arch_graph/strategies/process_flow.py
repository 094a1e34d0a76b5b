"""Process-flow views backed by the inference collaborator."""

from abc import abstractmethod
from typing import Any, Dict, List

from ..assembler import flow_to_graph
from ..collaborators import ProcessFlowInference
from ..errors import CollaboratorError, TrivialResultError
from ..graph_model import ArchitectureGraph, ProcessFlow
from ..pipeline import ViewStrategy


class _FlowStrategy(ViewStrategy):
    min_nodes = 1

    async def run(self, context: Dict[str, Any]) -> ArchitectureGraph:
        inference: ProcessFlowInference | None = context.get("flow_inference")
        paths: List[str] = list(context.get("paths", []))
        if inference is None:
            raise CollaboratorError("No process-flow collaborator configured")
        if not paths:
            raise TrivialResultError("No source files to describe")

        try:
            flow = await self._infer(inference, paths)
        except CollaboratorError:
            raise
        except Exception as error:
            raise CollaboratorError(f"Process-flow inference failed: {error}") from error

        # Count after flow_to_graph: duplicate flow ids collapse into one node.
        graph = flow_to_graph(flow if flow is not None else ProcessFlow())
        if len(graph.nodes) < self.min_nodes:
            raise TrivialResultError(f"Process flow has {len(graph.nodes)} node(s), need {self.min_nodes}")
        return graph

    @abstractmethod
    async def _infer(self, inference: ProcessFlowInference, paths: List[str]) -> ProcessFlow:
        raise NotImplementedError


class SystemFlowStrategy(_FlowStrategy):
    strategy_name = "system_flow"
    min_nodes = 1

    async def _infer(self, inference: ProcessFlowInference, paths: List[str]) -> ProcessFlow:
        return await inference.infer_system_flow(paths)


class ProcessFlowStrategy(_FlowStrategy):
    strategy_name = "process_flow"
    min_nodes = 2

    async def _infer(self, inference: ProcessFlowInference, paths: List[str]) -> ProcessFlow:
        return await inference.infer_process_flow(paths)
