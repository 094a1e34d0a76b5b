"""Fake collaborators and small builders shared by the test modules."""

import asyncio
import copy
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from arch_graph.collaborators import (
    CallProvider,
    EdgeLabeler,
    EntityProvider,
    FileFilter,
    GroupInference,
    ProcessFlowInference,
)
from arch_graph.errors import CollaboratorError, TrivialResultError
from arch_graph.graph_model import ArchitectureGraph, CallSite, Entity, FileEntities, FlowEdge, FlowNode, ProcessFlow


def make_entity(
    name: str,
    kind: str,
    start: int,
    end: Optional[int] = None,
    children: Sequence[Entity] = (),
    selection: Optional[int] = None,
) -> Entity:
    return Entity(
        name=name,
        kind=kind,
        start_line=start,
        end_line=start + 5 if end is None else end,
        selection_line=selection,
        children=tuple(children),
    )


def make_file(path: str, *entities: Entity) -> FileEntities:
    return FileEntities(path=path, entities=tuple(entities))


def call(target_file: str, target_line: int, target_name: str = "") -> CallSite:
    return CallSite(target_file=target_file, target_start_line=target_line, target_name=target_name)


def linear_flow(labels: Iterable[str], kind: str = "process", files: Optional[Dict[str, List[str]]] = None) -> ProcessFlow:
    files = files or {}
    nodes = [
        FlowNode(id=f"n{index}", label=label, type=kind, files=list(files.get(label, [])))
        for index, label in enumerate(labels)
    ]
    edges = [FlowEdge(source=a.id, target=b.id) for a, b in zip(nodes, nodes[1:])]
    return ProcessFlow(nodes=nodes, edges=edges)


class FakeEntityProvider(EntityProvider):
    def __init__(self, entities: Optional[Dict[str, List[Entity]]] = None, failing: Iterable[str] = ()) -> None:
        self.entities = dict(entities or {})
        self.failing = set(failing)
        self.requests: List[str] = []
        self.on_request = None

    async def get_entities(self, path: str) -> List[Entity]:
        self.requests.append(path)
        if self.on_request is not None:
            self.on_request(path)
        if path in self.failing:
            raise RuntimeError(f"parser crashed on {path}")
        return list(self.entities.get(path, []))


class FakeCallProvider(CallProvider):
    def __init__(self, calls: Optional[Dict[Tuple[str, str], List[CallSite]]] = None, failing: Iterable[str] = ()) -> None:
        self.calls = dict(calls or {})
        self.failing = set(failing)

    async def get_outgoing_calls(self, path: str, entity: Entity) -> List[CallSite]:
        await asyncio.sleep(0)
        if entity.name in self.failing:
            raise RuntimeError(f"call hierarchy unavailable for {entity.name}")
        return list(self.calls.get((path, entity.name), []))


class FakeFlowInference(ProcessFlowInference):
    """Answers from fixed flows; ``gated`` path sets wait for ``release``."""

    def __init__(
        self,
        system_flow: Optional[ProcessFlow] = None,
        process_flows: Optional[Dict[Tuple[str, ...], ProcessFlow]] = None,
        error: Optional[Exception] = None,
        gated: Iterable[Tuple[str, ...]] = (),
    ) -> None:
        self.system_flow = system_flow
        self.process_flows = dict(process_flows or {})
        self.error = error
        self.gated = set(gated)
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.system_calls = 0
        self.process_calls: List[Tuple[str, ...]] = []
        self.system_gate: Optional[asyncio.Event] = None

    async def infer_system_flow(self, paths: List[str]) -> ProcessFlow:
        self.system_calls += 1
        if self.system_gate is not None:
            self.started.set()
            await self.system_gate.wait()
        if self.system_flow is None:
            raise TrivialResultError("no system flow")
        return copy.deepcopy(self.system_flow)

    async def infer_process_flow(self, paths: List[str]) -> ProcessFlow:
        key = tuple(sorted(paths))
        self.process_calls.append(key)
        if key in self.gated:
            self.started.set()
            await self.release.wait()
        if self.error is not None:
            raise self.error
        flow = self.process_flows.get(key)
        if flow is None:
            raise TrivialResultError("no process flow")
        return copy.deepcopy(flow)


class FakeGroupInference(GroupInference):
    def __init__(self, groups: Optional[Dict[str, str]] = None, error: Optional[Exception] = None) -> None:
        self.groups = dict(groups or {})
        self.error = error

    async def infer_groups(self, paths: List[str]) -> Dict[str, str]:
        if self.error is not None:
            raise self.error
        return {path: self.groups[path] for path in paths if path in self.groups}


class FakeFileFilter(FileFilter):
    def __init__(self, drop: Iterable[str] = ()) -> None:
        self.drop = set(drop)

    async def filter_files(self, paths: List[str]) -> List[str]:
        return [path for path in paths if path not in self.drop]


class FakeEdgeLabeler(EdgeLabeler):
    def __init__(self, label: str = "Uses", error: Optional[Exception] = None) -> None:
        self.label = label
        self.error = error

    async def label_edges(self, graph: ArchitectureGraph) -> ArchitectureGraph:
        if self.error is not None:
            raise self.error
        labelled = copy.deepcopy(graph)
        for edge in labelled.edges:
            edge.label = self.label
        return labelled


class FakeChatModel:
    """Stands in for ``ChatOpenAI``: returns queued answers, raises queued exceptions."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.prompts: List[List[Tuple[str, str]]] = []

    async def ainvoke(self, messages):
        self.prompts.append(messages)
        if not self.responses:
            raise CollaboratorError("no scripted answer left")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(content=item)
