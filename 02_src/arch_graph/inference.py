"""LLM-backed inference collaborators powered by LangGraph + ChatOpenAI."""

import asyncio
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from langchain_openai import ChatOpenAI
from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from .collaborators import EdgeLabeler, FileFilter, GroupInference, ProcessFlowInference
from .config import Settings
from .errors import CollaboratorError, TrivialResultError
from .graph_model import ArchitectureGraph, FlowEdge, FlowNode, ProcessFlow

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 100_000
MAX_FILE_CHARS = 8_000
MAX_CONTEXT_FILES = 50
FILTER_CHUNK_SIZE = 100
MAX_LABELLED_EDGES = 20
SYSTEM_FLOW_CACHE_KEY = "SYSTEM_FLOW_ROOT"


def build_chat_model(settings: Settings) -> ChatOpenAI:
    if not settings.api_key:
        raise CollaboratorError("OPENAI_API_KEY is not set in environment/.env")
    return ChatOpenAI(
        model=settings.model_name,
        temperature=settings.temperature,
        api_key=settings.api_key,
        base_url=settings.base_url,
    )


def to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "\n".join(parts)
    return str(content)


def parse_json_payload(response_text: str) -> Tuple[Any, str]:
    """Strict JSON first, then the first object/array found in the text."""
    text = response_text.replace("```json", "").replace("```", "").strip()
    if not text:
        return None, "empty_response"
    try:
        return json.loads(text), ""
    except json.JSONDecodeError:
        match = re.search(r"(\{.*\}|\[.*\])", text, flags=re.DOTALL)
        if not match:
            return None, "json_not_found"
        try:
            return json.loads(match.group(0)), ""
        except json.JSONDecodeError as error:
            return None, f"json_decode_error: {error.msg}"


class _ChatCollaborator:
    def __init__(self, settings: Optional[Settings] = None, model: Any = None) -> None:
        self._settings = settings or Settings.from_env()
        self._model = model

    @property
    def available(self) -> bool:
        return self._model is not None or self._settings.has_api_key

    def _get_model(self) -> Any:
        if self._model is None:
            self._model = build_chat_model(self._settings)
        return self._model

    async def _ask(self, messages: List[Tuple[str, str]]) -> str:
        model = self._get_model()
        try:
            response = await model.ainvoke(messages)
        except Exception as error:
            raise CollaboratorError(f"Model call failed: {error}") from error
        return to_text(getattr(response, "content", response))

    def _relative(self, path: str) -> str:
        root = self._settings.workspace_root
        if root and os.path.isabs(path):
            try:
                return Path(path).relative_to(root).as_posix()
            except ValueError:
                return path
        return path

    def _absolute(self, path: str) -> str:
        clean = path.replace("*", "").strip()
        root = self._settings.workspace_root
        if not root or os.path.isabs(clean):
            return os.path.normpath(clean)
        return os.path.normpath(os.path.join(root, clean))


class LLMGroupInference(_ChatCollaborator, GroupInference):
    """Groups files into three to eight conceptual modules."""

    def __init__(self, settings: Optional[Settings] = None, model: Any = None) -> None:
        super().__init__(settings, model)
        self._cache: Dict[str, str] = {}

    async def infer_groups(self, paths: List[str]) -> Dict[str, str]:
        if not paths:
            return {}
        if all(path in self._cache for path in paths):
            return {path: self._cache[path] for path in paths}

        limited = paths[: self._settings.max_prompt_files]
        listing = "\n".join(self._relative(path) for path in limited)
        system_prompt = (
            "You are a principal software architect.\n"
            "Group the given source files into 3 to 8 high-level conceptual modules "
            '(for example "Identity Service", "Data Access", "UI Components", "API Layer").\n'
            "Judge by purpose, not by folder names.\n"
            'Return STRICT JSON only: an object mapping each file path to its module name, '
            'e.g. {"src/auth/login.ts": "Identity Service"}.'
        )
        user_prompt = f"Files:\n{listing}"
        if len(paths) > len(limited):
            user_prompt += f"\n... ({len(paths) - len(limited)} more files omitted)"

        payload, parse_error = parse_json_payload(await self._ask([("system", system_prompt), ("user", user_prompt)]))
        if parse_error or not isinstance(payload, dict):
            raise TrivialResultError(f"Unusable grouping answer: {parse_error or type(payload).__name__}")

        by_relative = {str(key).strip(): str(value).strip() for key, value in payload.items() if str(value).strip()}
        mapping: Dict[str, str] = {}
        for path in paths:
            group = by_relative.get(self._relative(path)) or by_relative.get(path)
            if group:
                mapping[path] = group
        if not mapping:
            raise TrivialResultError("Grouping answer matched none of the files")

        self._cache.update(mapping)
        logger.info("Inferred %d module(s) for %d file(s)", len(set(mapping.values())), len(mapping))
        return mapping


class FlowState(TypedDict):
    level: str
    paths: List[str]
    context_block: str
    response_text: str
    flow: Dict[str, Any]
    parse_error: str


class LLMProcessFlowInference(_ChatCollaborator, ProcessFlowInference):
    """System-level and subsystem-level process flows."""

    def __init__(self, settings: Optional[Settings] = None, model: Any = None) -> None:
        super().__init__(settings, model)
        self._cache: Dict[str, Tuple[str, ProcessFlow]] = {}
        self._workflow = None

    async def infer_system_flow(self, paths: List[str]) -> ProcessFlow:
        sorted_paths = sorted(paths)
        return await self._cached_run("system", sorted_paths, SYSTEM_FLOW_CACHE_KEY, "|".join(sorted_paths))

    async def infer_process_flow(self, paths: List[str]) -> ProcessFlow:
        sorted_paths = sorted(paths)
        checksum = await asyncio.to_thread(self._checksum, sorted_paths)
        return await self._cached_run("subsystem", sorted_paths, "|".join(sorted_paths), checksum)

    async def _cached_run(self, level: str, paths: List[str], cache_key: str, checksum: str) -> ProcessFlow:
        if not paths:
            raise TrivialResultError("No files to describe")
        cached = self._cache.get(cache_key)
        if cached and cached[0] == checksum:
            logger.debug("Process flow cache hit for %s", cache_key[:50])
            return copy.deepcopy(cached[1])

        if self._workflow is None:
            self._workflow = self._build_workflow()
        try:
            result = await self._workflow.ainvoke(
                {
                    "level": level,
                    "paths": paths,
                    "context_block": "",
                    "response_text": "",
                    "flow": {},
                    "parse_error": "",
                }
            )
        except CollaboratorError:
            raise
        except Exception as error:
            raise CollaboratorError(f"Process flow workflow failed: {error}") from error
        if result.get("parse_error"):
            raise CollaboratorError(f"Unusable process flow answer: {result['parse_error']}")

        flow = self._to_flow(result.get("flow", {}))
        logger.info("Inferred %s flow: %d nodes, %d edges", level, len(flow.nodes), len(flow.edges))
        self._cache[cache_key] = (checksum, flow)
        return copy.deepcopy(flow)

    def _build_workflow(self):
        graph = StateGraph(FlowState)
        graph.add_node("prepare_context", self._prepare_context)
        graph.add_node("invoke_model", self._invoke_model)
        graph.add_node("parse_flow", self._parse_flow)
        graph.add_edge(START, "prepare_context")
        graph.add_edge("prepare_context", "invoke_model")
        graph.add_edge("invoke_model", "parse_flow")
        graph.add_edge("parse_flow", END)
        return graph.compile()

    async def _prepare_context(self, state: FlowState) -> Dict[str, Any]:
        paths = state.get("paths", [])
        if state.get("level") == "system":
            limit = self._settings.max_prompt_files
            lines = [self._relative(path) for path in paths[:limit]]
            if len(paths) > limit:
                lines.append(f"... ({len(paths) - limit} more files omitted)")
            return {"context_block": "\n".join(lines)}
        return {"context_block": await asyncio.to_thread(self._read_files, paths)}

    async def _invoke_model(self, state: FlowState) -> Dict[str, Any]:
        return {"response_text": await self._ask(self._build_prompt(state.get("level", ""), state.get("context_block", "")))}

    async def _parse_flow(self, state: FlowState) -> Dict[str, Any]:
        payload, parse_error = parse_json_payload(state.get("response_text", ""))
        if parse_error:
            return {"flow": {}, "parse_error": parse_error}
        if not isinstance(payload, dict) or not isinstance(payload.get("nodes"), list):
            return {"flow": {}, "parse_error": "nodes_missing"}
        if not isinstance(payload.get("edges", []), list):
            payload["edges"] = []
        return {"flow": payload, "parse_error": ""}

    @staticmethod
    def _build_prompt(level: str, context_block: str) -> List[Tuple[str, str]]:
        shape = (
            '{"nodes":[{"id":"1","label":"...","type":"...","files":["src/..."],"description":"..."}],'
            '"edges":[{"source":"1","target":"2","label":"..."}]}'
        )
        if level == "system":
            system_prompt = (
                "You are a principal software architect.\n"
                "Identify the 4 to 8 major functional subsystems of the codebase and the data flow between them.\n"
                "Node types: 'system' or 'database'. Every node lists the files it covers.\n"
                f"Return STRICT JSON only with shape:\n{shape}"
            )
            user_prompt = f"Files:\n{context_block or '(empty)'}"
        else:
            system_prompt = (
                "You are a lead software architect.\n"
                "Describe the execution flow of this subsystem as logical steps.\n"
                "Node types: 'start', 'end', 'process', 'decision', 'database'.\n"
                "Map each step to its files and give a two to three sentence technical description.\n"
                f"Return STRICT JSON only with shape:\n{shape}"
            )
            user_prompt = f"Code context:\n{context_block or '(empty)'}"
        return [("system", system_prompt), ("user", user_prompt)]

    def _read_files(self, paths: List[str]) -> str:
        chunks: List[str] = []
        used = 0
        for path in paths[:MAX_CONTEXT_FILES]:
            if used >= MAX_CONTEXT_CHARS:
                break
            try:
                content = Path(path).read_text(encoding="utf-8", errors="replace")
            except OSError as error:
                logger.debug("Skipping unreadable file %s: %s", path, error)
                continue
            if len(content) > MAX_FILE_CHARS:
                content = content[:MAX_FILE_CHARS] + "...[TRUNCATED]"
            header = f"\n--- FILE: {self._relative(path)} ---\n"
            if used + len(content) > MAX_CONTEXT_CHARS:
                chunks.append(header + content[: MAX_CONTEXT_CHARS - used] + "\n...[MAX CONTEXT REACHED]")
                break
            chunks.append(header + content + "\n")
            used += len(content)
        return "".join(chunks)

    @staticmethod
    def _checksum(paths: List[str]) -> str:
        parts = []
        for path in paths:
            try:
                parts.append(f"{path}:{os.stat(path).st_mtime}")
            except OSError:
                parts.append(f"{path}:missing")
        return "|".join(parts)

    def _to_flow(self, payload: Dict[str, Any]) -> ProcessFlow:
        nodes: List[FlowNode] = []
        for index, item in enumerate(payload.get("nodes", [])):
            if not isinstance(item, dict):
                continue
            node_id = str(item.get("id", f"n{index}"))
            files = item.get("files") if isinstance(item.get("files"), list) else []
            nodes.append(
                FlowNode(
                    id=node_id,
                    label=str(item.get("label", node_id)),
                    type=str(item.get("type", "process")).lower(),
                    files=[self._absolute(str(path)) for path in files if str(path).strip()],
                    description=str(item.get("description", "")),
                )
            )
        edges = [
            FlowEdge(source=str(item["source"]), target=str(item["target"]), label=item.get("label"))
            for item in payload.get("edges", [])
            if isinstance(item, dict) and "source" in item and "target" in item
        ]
        return ProcessFlow(nodes=nodes, edges=edges)


class LLMFileFilter(_ChatCollaborator, FileFilter):
    """Drops config, build, test and boilerplate files before a workspace scan."""

    async def filter_files(self, paths: List[str]) -> List[str]:
        if not paths or not self.available:
            return list(paths)

        kept: List[str] = []
        for start in range(0, len(paths), FILTER_CHUNK_SIZE):
            chunk = paths[start : start + FILTER_CHUNK_SIZE]
            try:
                kept.extend(await self._filter_chunk(chunk))
            except CollaboratorError as error:
                logger.warning("File filter failed for a chunk, keeping it whole: %s", error)
                kept.extend(chunk)
        return kept

    async def _filter_chunk(self, chunk: List[str]) -> List[str]:
        system_prompt = (
            "You are a software architect preparing a functional architecture graph.\n"
            "KEEP core business logic, controllers, services, models, views and components.\n"
            "DISCARD config files, build scripts, tests, mocks, fixtures, generic boilerplate and docs.\n"
            "Return STRICT JSON only: an array with the kept paths, unchanged."
        )
        payload, parse_error = parse_json_payload(
            await self._ask([("system", system_prompt), ("user", json.dumps(chunk))])
        )
        if parse_error or not isinstance(payload, list):
            raise CollaboratorError(f"Unusable filter answer: {parse_error or type(payload).__name__}")
        allowed = {str(item) for item in payload}
        return [path for path in chunk if path in allowed]


class LLMEdgeLabeler(_ChatCollaborator, EdgeLabeler):
    """Short verb labels for component interactions."""

    async def label_edges(self, graph: ArchitectureGraph) -> ArchitectureGraph:
        labels = {node.id: node.label for node in graph.nodes}
        contexts = [
            {
                "id": edge.id,
                "source": labels.get(edge.source_id, edge.source_id),
                "target": labels.get(edge.target_id, edge.target_id),
                "calls": edge.detail[:5],
            }
            for edge in graph.edges
            if edge.detail
        ][:MAX_LABELLED_EDGES]
        if not contexts:
            return graph

        system_prompt = (
            "You are a software architect.\n"
            "Give each component interaction a concise label of one to three words, verbs preferred "
            '(e.g. "Authenticates", "Fetches Data").\n'
            'Return STRICT JSON only: [{"id": "edge-id", "label": "..."}]'
        )
        try:
            response_text = await self._ask([("system", system_prompt), ("user", json.dumps(contexts))])
        except CollaboratorError as error:
            logger.warning("Edge labelling failed, keeping call counts: %s", error)
            return graph
        payload, parse_error = parse_json_payload(response_text)
        if parse_error or not isinstance(payload, list):
            logger.warning("Unusable edge labels: %s", parse_error or type(payload).__name__)
            return graph

        labelled = copy.deepcopy(graph)
        asked = {context["id"] for context in contexts}
        by_id = {edge.id: edge for edge in labelled.edges if edge.id in asked}
        for item in payload:
            if isinstance(item, dict) and item.get("id") in by_id and item.get("label"):
                by_id[item["id"]].label = str(item["label"])
        return labelled
