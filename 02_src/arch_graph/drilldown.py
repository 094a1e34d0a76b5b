"""Drill-down navigation: request tokens, view stack, background refresh."""

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from .collaborators import (
    CallProvider,
    EdgeLabeler,
    EntityProvider,
    FileFilter,
    GraphView,
    GroupInference,
    ProcessFlowInference,
)
from .config import Settings
from .errors import CollaboratorError
from .graph_model import (
    CONTAINER_KINDS,
    DRILLABLE_KINDS,
    GRANULARITY_FLATTENED,
    ArchitectureGraph,
    DrillRequest,
    FileEntities,
    ViewFrame,
)
from .layout import layout
from .pipeline import FallbackChain, FallbackResult
from .source_preview import fetch_code, location_for
from .strategies import (
    ArchitectureGraphStrategy,
    ComponentGraphStrategy,
    HeuristicFlowStrategy,
    ProcessFlowStrategy,
    SystemFlowStrategy,
)

logger = logging.getLogger(__name__)

ROOT_LABEL = "Workspace"


class DrillState(str, Enum):
    IDLE = "idle"
    REQUEST_ISSUED = "request_issued"
    RESOLVED = "resolved"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass
class DrillOutcome:
    state: DrillState
    request: Optional[DrillRequest] = None
    strategy_name: str = ""
    degraded: bool = False


class DrillDownOrchestrator:
    """Owns the current graph, the navigation stack and the active drill token.

    Only the response carrying the active token is applied; every newer
    request replaces the token, so late answers for older requests are
    dropped on arrival. Background refreshes never overwrite a drilled view.
    """

    def __init__(
        self,
        view: GraphView,
        entity_provider: EntityProvider,
        call_provider: Optional[CallProvider] = None,
        flow_inference: Optional[ProcessFlowInference] = None,
        group_inference: Optional[GroupInference] = None,
        file_filter: Optional[FileFilter] = None,
        edge_labeler: Optional[EdgeLabeler] = None,
        settings: Optional[Settings] = None,
        direction: str = "TB",
    ) -> None:
        self.view = view
        self.entity_provider = entity_provider
        self.call_provider = call_provider
        self.flow_inference = flow_inference
        self.group_inference = group_inference
        self.file_filter = file_filter
        self.edge_labeler = edge_labeler
        self.settings = settings or Settings()
        self.direction = direction

        self.current = ArchitectureGraph()
        self.current_label = ROOT_LABEL
        self.view_stack: List[ViewFrame] = []
        self.expanded: Set[str] = set()
        self.active_token: Optional[str] = None
        self.enabled = False
        self.workspace_paths: List[str] = []
        self._file_cache: Dict[str, FileEntities] = {}
        self._tokens = itertools.count(1)

    @property
    def state(self) -> DrillState:
        return DrillState.REQUEST_ISSUED if self.active_token else DrillState.IDLE

    @property
    def level(self) -> int:
        return len(self.view_stack)

    # Drill-down

    def begin_drill(self, node_id: str) -> Optional[DrillRequest]:
        node = self.current.node(node_id)
        if node is None or node.kind not in DRILLABLE_KINDS or not node.source_files:
            return None
        token = f"drill-{next(self._tokens)}"
        self.active_token = token
        logger.debug("Drill %s issued for '%s' (%d files)", token, node.label, len(node.source_files))
        return DrillRequest(
            id=token,
            target_node_id=node.id,
            source_files=tuple(node.source_files),
            level=self.level + 1,
            label=node.label,
            node_kind=node.kind,
        )

    async def resolve(self, request: DrillRequest) -> FallbackResult:
        if request.node_kind == "process":
            chain = FallbackChain([ComponentGraphStrategy()])
        else:
            chain = FallbackChain(
                [
                    ProcessFlowStrategy(),
                    HeuristicFlowStrategy(step_limit=self.settings.heuristic_step_limit),
                    ComponentGraphStrategy(),
                ]
            )
        return await chain.run(self._context(request.source_files, request.label))

    def apply_response(self, token: Optional[str], graph: ArchitectureGraph, label: str) -> bool:
        if self.active_token is None or token != self.active_token:
            logger.debug("Discarding superseded response %s (active: %s)", token, self.active_token)
            return False
        self.view_stack.append(
            ViewFrame(
                nodes=tuple(copy.deepcopy(self.current.nodes)),
                edges=tuple(copy.deepcopy(self.current.edges)),
                label=self.current_label,
            )
        )
        self.current = graph
        self.current_label = label
        self.expanded = set()
        self.active_token = None
        self._publish(request_id=token)
        return True

    async def drill_down(self, node_id: str) -> DrillOutcome:
        request = self.begin_drill(node_id)
        if request is None:
            return DrillOutcome(state=DrillState.IDLE)

        try:
            result = await self.resolve(request)
        except CollaboratorError as error:
            if self.active_token != request.id:
                return DrillOutcome(state=DrillState.SUPERSEDED, request=request)
            self.active_token = None
            logger.warning("Drill-down into '%s' failed, keeping current view: %s", request.label, error)
            return DrillOutcome(state=DrillState.FAILED, request=request)

        if not self.apply_response(request.id, result.graph, request.label):
            return DrillOutcome(state=DrillState.SUPERSEDED, request=request, strategy_name=result.strategy_name)

        if result.degraded:
            self.view.notify(
                f"Process flow unavailable for '{request.label}', showing "
                f"{result.strategy_name.replace('_', ' ')} instead."
            )
        return DrillOutcome(
            state=DrillState.RESOLVED,
            request=request,
            strategy_name=result.strategy_name,
            degraded=result.degraded,
        )

    def back(self) -> bool:
        self.active_token = None
        if not self.view_stack:
            return False
        frame = self.view_stack.pop()
        self.current = ArchitectureGraph(nodes=list(frame.nodes), edges=list(frame.edges))
        self.current_label = frame.label
        self.expanded = set()
        self._publish()
        return True

    # Background refresh

    def _suppressed(self) -> bool:
        return self.active_token is not None or bool(self.view_stack)

    async def refresh(self) -> bool:
        if self._suppressed():
            logger.debug("Refresh suppressed while a drill-down view is active")
            return False

        paths = self.workspace_paths or list(self._file_cache)
        chain = FallbackChain([SystemFlowStrategy(), ArchitectureGraphStrategy()])
        try:
            result = await chain.run(self._context(paths, ROOT_LABEL))
        except CollaboratorError as error:
            logger.warning("Refresh produced no graph: %s", error)
            return False

        if self._suppressed():
            logger.debug("Refresh result dropped, a drill-down started meanwhile")
            return False

        self.current = result.graph
        self.current_label = ROOT_LABEL
        if not self.expanded:
            roots = self.current.roots()
            if len(roots) == 1:
                self.expanded.add(roots[0].id)
        self._publish()
        return True

    # Node interaction

    def toggle(self, node_id: str) -> bool:
        if self.current.node(node_id) is None:
            return False
        if node_id in self.expanded:
            self.expanded.discard(node_id)
        else:
            self.expanded.add(node_id)
        self._publish()
        return True

    async def activate_node(self, node_id: str) -> str:
        """Double-click semantics: drill, toggle or jump to source."""
        node = self.current.node(node_id)
        if node is None:
            return "ignored"
        if node.kind in DRILLABLE_KINDS and node.source_files:
            await self.drill_down(node_id)
            return "drill"
        if node.kind in CONTAINER_KINDS or self.current.children_of(node_id):
            self.toggle(node_id)
            return "toggle"
        location = location_for(node)
        if location is None:
            return "ignored"
        self.view.jump_to(location)
        return "jump"

    async def select_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        node = self.current.node(node_id)
        if node is None:
            return None
        location = location_for(node)
        if location is None:
            return None
        return await asyncio.to_thread(fetch_code, location)

    # Block mode and workspace scan

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False
        self._file_cache.clear()

    async def scan_workspace(self, paths: Iterable[str]) -> int:
        if not self.enabled:
            logger.debug("Workspace scan skipped, block mode is off")
            return 0

        candidates = list(paths)
        if self.file_filter is not None:
            try:
                candidates = await self.file_filter.filter_files(candidates)
            except Exception as error:
                logger.warning("File filter failed, scanning all %d files: %s", len(candidates), error)
        self.workspace_paths = list(candidates)

        scanned = 0
        for path in candidates:
            if not self.enabled:
                logger.info("Workspace scan stopped after %d files", scanned)
                return scanned
            await self._read_file(path)
            scanned += 1

        logger.info("Workspace scan cached %d files", scanned)
        await self.refresh()
        return scanned

    async def on_file_changed(self, path: str) -> bool:
        if not self.enabled:
            return False
        self._file_cache.pop(path, None)
        await self._read_file(path)
        if path not in self.workspace_paths:
            self.workspace_paths.append(path)
        return await self.refresh()

    async def load_files(self, paths: List[str]) -> List[FileEntities]:
        return list(await asyncio.gather(*(self._read_file(path) for path in paths)))

    async def _read_file(self, path: str) -> FileEntities:
        cached = self._file_cache.get(path)
        if cached is not None:
            return cached
        try:
            entities = await self.entity_provider.get_entities(path)
        except Exception as error:
            logger.debug("Entities unavailable for %s: %s", path, error)
            return FileEntities(path=path)
        file_entities = FileEntities(path=path, entities=tuple(entities or ()))
        self._file_cache[path] = file_entities
        return file_entities

    # Publishing

    def _context(self, paths: Iterable[str], label: str) -> Dict[str, Any]:
        return {
            "paths": list(paths),
            "label": label,
            "flow_inference": self.flow_inference,
            "group_inference": self.group_inference,
            "call_provider": self.call_provider,
            "edge_labeler": self.edge_labeler,
            "load_files": self.load_files,
            "granularity": GRANULARITY_FLATTENED,
        }

    def snapshot(self) -> Dict[str, Any]:
        payload = self.current.to_json()
        payload["label"] = self.current_label
        payload["level"] = self.level
        payload["expanded"] = sorted(self.expanded)
        payload["layout"] = layout(self.current.nodes, self.current.edges, self.expanded, self.direction).to_json()
        return payload

    def _publish(self, request_id: Optional[str] = None) -> None:
        self.view.update_graph(self.snapshot(), request_id)
