"""Structural views assembled from entity data."""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from ..assembler import assemble
from ..collaborators import EdgeLabeler, GroupInference
from ..errors import TrivialResultError
from ..graph_model import GRANULARITY_FLATTENED, ArchitectureGraph, FileEntities
from ..grouping import classify_by_path
from ..pipeline import ViewStrategy

logger = logging.getLogger(__name__)

FileLoader = Callable[[List[str]], Awaitable[List[FileEntities]]]


async def _load(context: Dict[str, Any]) -> List[FileEntities]:
    loader: FileLoader = context["load_files"]
    files = await loader(list(context.get("paths", [])))
    if not any(file_entities.entities for file_entities in files):
        raise TrivialResultError("No entities found for the requested files")
    return files


class ComponentGraphStrategy(ViewStrategy):
    """Flattened component graph under a virtual root named after the node."""

    strategy_name = "component_graph"

    async def run(self, context: Dict[str, Any]) -> ArchitectureGraph:
        files = await _load(context)
        graph = await assemble(
            files,
            call_provider=context.get("call_provider"),
            virtual_root_label=context.get("label") or None,
            granularity=GRANULARITY_FLATTENED,
        )
        labeler: EdgeLabeler | None = context.get("edge_labeler")
        if labeler is not None and graph.edges:
            try:
                graph = await labeler.label_edges(graph)
            except Exception as error:
                logger.warning("Edge labelling skipped: %s", error)
        return graph


class ArchitectureGraphStrategy(ViewStrategy):
    """Whole-workspace component graph grouped into semantic modules."""

    strategy_name = "architecture_graph"

    async def run(self, context: Dict[str, Any]) -> ArchitectureGraph:
        files = await _load(context)
        paths = [file_entities.path for file_entities in files]
        groups = await self._groups(context.get("group_inference"), paths)
        return await assemble(
            files,
            call_provider=context.get("call_provider"),
            semantic_groups=groups,
            granularity=context.get("granularity", GRANULARITY_FLATTENED),
        )

    @staticmethod
    async def _groups(inference: GroupInference | None, paths: List[str]) -> Dict[str, str]:
        if inference is None:
            logger.info("No grouping collaborator configured, using layer heuristic")
            return classify_by_path(paths)
        try:
            groups = await inference.infer_groups(paths)
        except Exception as error:
            logger.warning("Semantic grouping failed, using layer heuristic: %s", error)
            return classify_by_path(paths)
        if not groups:
            return classify_by_path(paths)
        return groups
