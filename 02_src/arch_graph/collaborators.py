"""Interfaces of external collaborators and in-memory implementations."""

import copy
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import TrivialResultError
from .graph_model import (
    ArchitectureGraph,
    CallSite,
    CodeLocation,
    Entity,
    FileEntities,
    FlowEdge,
    FlowNode,
    ProcessFlow,
)


class EntityProvider(ABC):
    @abstractmethod
    async def get_entities(self, path: str) -> List[Entity]:
        raise NotImplementedError


class CallProvider(ABC):
    @abstractmethod
    async def get_outgoing_calls(self, path: str, entity: Entity) -> List[CallSite]:
        raise NotImplementedError


class GroupInference(ABC):
    @abstractmethod
    async def infer_groups(self, paths: List[str]) -> Dict[str, str]:
        raise NotImplementedError


class ProcessFlowInference(ABC):
    @abstractmethod
    async def infer_system_flow(self, paths: List[str]) -> ProcessFlow:
        raise NotImplementedError

    @abstractmethod
    async def infer_process_flow(self, paths: List[str]) -> ProcessFlow:
        raise NotImplementedError


class FileFilter(ABC):
    @abstractmethod
    async def filter_files(self, paths: List[str]) -> List[str]:
        raise NotImplementedError


class EdgeLabeler(ABC):
    @abstractmethod
    async def label_edges(self, graph: ArchitectureGraph) -> ArchitectureGraph:
        raise NotImplementedError


class GraphView(ABC):
    """Presentation surface fed by the orchestrator."""

    @abstractmethod
    def update_graph(self, payload: Dict[str, Any], request_id: Optional[str] = None) -> None:
        raise NotImplementedError

    def notify(self, message: str) -> None:
        return None

    def jump_to(self, location: CodeLocation) -> None:
        return None


class RecordingView(GraphView):
    """Keeps every published payload, message and jump request in memory."""

    def __init__(self) -> None:
        self.updates: List[Tuple[Dict[str, Any], Optional[str]]] = []
        self.messages: List[str] = []
        self.jumps: List[CodeLocation] = []

    def update_graph(self, payload: Dict[str, Any], request_id: Optional[str] = None) -> None:
        self.updates.append((payload, request_id))

    def notify(self, message: str) -> None:
        self.messages.append(message)

    def jump_to(self, location: CodeLocation) -> None:
        self.jumps.append(location)

    @property
    def last_payload(self) -> Optional[Dict[str, Any]]:
        return self.updates[-1][0] if self.updates else None


class SnapshotCollaborator(EntityProvider, CallProvider, ProcessFlowInference):
    """Serves entities, outgoing calls and a recorded system flow from a JSON snapshot.

    Snapshot shape::

        {"root": "/repo",
         "files": [{"path": "src/a.py",
                    "entities": [{"name": "A", "kind": "class", "start_line": 1, ...}],
                    "calls": {"run@4": [{"target_file": "src/b.py", "target_start_line": 2}]}}],
         "system_flow": {"nodes": [{"id": "1", "label": "Auth", "type": "system",
                                    "files": ["src/a.py"]}],
                         "edges": []}}

    Relative paths are resolved against ``root``. ``system_flow`` is optional;
    subsystem flows are never recorded.
    """

    def __init__(self, snapshot: Dict[str, Any]) -> None:
        self.root = str(snapshot.get("root", ""))
        self._entities: Dict[str, List[Entity]] = {}
        self._calls: Dict[Tuple[str, str], List[CallSite]] = {}
        self._system_flow = self._read_flow(snapshot.get("system_flow"))

        for file_payload in snapshot.get("files", []):
            path = self._absolute(str(file_payload["path"]))
            self._entities[path] = [Entity.from_dict(item) for item in file_payload.get("entities", [])]
            for call_key, targets in (file_payload.get("calls") or {}).items():
                self._calls[(path, str(call_key))] = [
                    CallSite(
                        target_file=self._absolute(str(target["target_file"])),
                        target_start_line=int(target["target_start_line"]),
                        target_name=str(target.get("target_name", "")),
                    )
                    for target in targets
                ]

    @classmethod
    def load(cls, snapshot_path: Path) -> "SnapshotCollaborator":
        payload = json.loads(Path(snapshot_path).read_text(encoding="utf-8"))
        if not payload.get("root"):
            payload["root"] = str(Path(snapshot_path).resolve().parent)
        return cls(payload)

    @property
    def paths(self) -> List[str]:
        return list(self._entities)

    def file_entities(self) -> List[FileEntities]:
        return [FileEntities(path=path, entities=tuple(items)) for path, items in self._entities.items()]

    async def get_entities(self, path: str) -> List[Entity]:
        return list(self._entities.get(self._absolute(path), []))

    async def get_outgoing_calls(self, path: str, entity: Entity) -> List[CallSite]:
        return list(self._calls.get((self._absolute(path), f"{entity.name}@{entity.start_line}"), []))

    @property
    def has_system_flow(self) -> bool:
        return self._system_flow is not None

    async def infer_system_flow(self, paths: List[str]) -> ProcessFlow:
        if self._system_flow is None:
            raise TrivialResultError("Snapshot has no recorded system flow")
        return copy.deepcopy(self._system_flow)

    async def infer_process_flow(self, paths: List[str]) -> ProcessFlow:
        raise TrivialResultError("Snapshot has no recorded subsystem flows")

    def _read_flow(self, payload: Any) -> Optional[ProcessFlow]:
        if not isinstance(payload, dict) or not payload.get("nodes"):
            return None
        nodes = [
            FlowNode(
                id=str(item["id"]),
                label=str(item.get("label", item["id"])),
                type=str(item.get("type", "system")).lower(),
                files=[self._absolute(str(path)) for path in item.get("files", [])],
                description=str(item.get("description", "")),
            )
            for item in payload["nodes"]
        ]
        edges = [
            FlowEdge(source=str(item["source"]), target=str(item["target"]), label=item.get("label"))
            for item in payload.get("edges", [])
        ]
        return ProcessFlow(nodes=nodes, edges=edges)

    def _absolute(self, path: str) -> str:
        if not self.root or os.path.isabs(path):
            return path
        return os.path.join(self.root, path)
