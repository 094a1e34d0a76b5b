import json
import os

import pytest

from arch_graph.config import Settings
from arch_graph.errors import CollaboratorError, TrivialResultError
from arch_graph.graph_model import ArchitectureGraph, GraphEdge, GraphNode
from arch_graph.inference import (
    LLMEdgeLabeler,
    LLMFileFilter,
    LLMGroupInference,
    LLMProcessFlowInference,
    build_chat_model,
    parse_json_payload,
    to_text,
)

from helpers import FakeChatModel


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "auth.py").write_text("def login():\n    return True\n", encoding="utf-8")
    (tmp_path / "src" / "db.py").write_text("def find_user():\n    return None\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(workspace):
    return Settings(workspace_root=str(workspace))


class TestResponseParsing:
    def test_fenced_json(self):
        payload, error = parse_json_payload('```json\n{"a": 1}\n```')
        assert payload == {"a": 1} and error == ""

    def test_json_embedded_in_prose(self):
        payload, error = parse_json_payload('Sure! Here it is: ["a.py", "b.py"] Hope that helps.')
        assert payload == ["a.py", "b.py"] and error == ""

    def test_no_json(self):
        assert parse_json_payload("I cannot help with that.") == (None, "json_not_found")
        assert parse_json_payload("   ") == (None, "empty_response")

    def test_to_text_joins_content_parts(self):
        assert to_text([{"type": "text", "text": "{"}, {"type": "text", "text": "}"}]) == "{\n}"
        assert to_text(42) == "42"

    def test_model_requires_api_key(self):
        with pytest.raises(CollaboratorError):
            build_chat_model(Settings())


class TestGroupInference:
    @pytest.mark.asyncio
    async def test_relative_answer_maps_to_absolute_paths(self, workspace, settings):
        auth, db = str(workspace / "src" / "auth.py"), str(workspace / "src" / "db.py")
        model = FakeChatModel('```json\n{"src/auth.py": "Identity", "src/db.py": "Persistence"}\n```')

        groups = await LLMGroupInference(settings, model=model).infer_groups([auth, db])

        assert groups == {auth: "Identity", db: "Persistence"}
        assert "src/auth.py" in model.prompts[0][1][1]

    @pytest.mark.asyncio
    async def test_cached_answer_reused(self, workspace, settings):
        auth = str(workspace / "src" / "auth.py")
        model = FakeChatModel('{"src/auth.py": "Identity"}')
        inference = LLMGroupInference(settings, model=model)

        await inference.infer_groups([auth])
        await inference.infer_groups([auth])

        assert len(model.prompts) == 1

    @pytest.mark.asyncio
    async def test_useless_answer_is_trivial(self, workspace, settings):
        model = FakeChatModel('{"somewhere/else.py": "X"}')

        with pytest.raises(TrivialResultError):
            await LLMGroupInference(settings, model=model).infer_groups([str(workspace / "src" / "auth.py")])

    @pytest.mark.asyncio
    async def test_prompt_is_capped(self, settings):
        model = FakeChatModel('{"f0.py": "A"}')
        limited = Settings(workspace_root=settings.workspace_root, max_prompt_files=3)
        paths = [f"f{i}.py" for i in range(10)]

        await LLMGroupInference(limited, model=model).infer_groups(paths)

        user_prompt = model.prompts[0][1][1]
        assert "f2.py" in user_prompt and "f3.py" not in user_prompt
        assert "7 more files omitted" in user_prompt


class TestProcessFlowInference:
    @staticmethod
    def _answer():
        return json.dumps(
            {
                "nodes": [
                    {"id": "1", "label": "Login", "type": "Start", "files": ["src/auth.py*"]},
                    {"id": "2", "label": "Lookup", "type": "database", "files": ["src/db.py"], "description": "Reads users"},
                ],
                "edges": [{"source": "1", "target": "2", "label": "queries"}, {"target": "2"}],
            }
        )

    @pytest.mark.asyncio
    async def test_subsystem_flow_reads_files(self, workspace, settings):
        auth, db = str(workspace / "src" / "auth.py"), str(workspace / "src" / "db.py")
        model = FakeChatModel(self._answer())

        flow = await LLMProcessFlowInference(settings, model=model).infer_process_flow([db, auth])

        assert [node.type for node in flow.nodes] == ["start", "database"]
        assert flow.nodes[0].files == [auth]
        assert flow.nodes[1].description == "Reads users"
        assert [(edge.source, edge.target, edge.label) for edge in flow.edges] == [("1", "2", "queries")]
        user_prompt = model.prompts[0][1][1]
        assert "--- FILE: src/auth.py ---" in user_prompt
        assert "def find_user" in user_prompt

    @pytest.mark.asyncio
    async def test_cache_invalidated_by_mtime(self, workspace, settings):
        auth = str(workspace / "src" / "auth.py")
        model = FakeChatModel(self._answer())
        inference = LLMProcessFlowInference(settings, model=model)

        await inference.infer_process_flow([auth])
        await inference.infer_process_flow([auth])
        assert len(model.prompts) == 1

        stat = os.stat(auth)
        os.utime(auth, (stat.st_atime + 10, stat.st_mtime + 10))
        await inference.infer_process_flow([auth])
        assert len(model.prompts) == 2

    @pytest.mark.asyncio
    async def test_system_flow_lists_paths_only(self, workspace, settings):
        auth = str(workspace / "src" / "auth.py")
        model = FakeChatModel(self._answer())

        flow = await LLMProcessFlowInference(settings, model=model).infer_system_flow([auth])

        assert len(flow.nodes) == 2
        user_prompt = model.prompts[0][1][1]
        assert "src/auth.py" in user_prompt
        assert "def login" not in user_prompt

    @pytest.mark.asyncio
    async def test_unparseable_answer_fails(self, workspace, settings):
        model = FakeChatModel("The flow starts at login and ends at the database.")

        with pytest.raises(CollaboratorError):
            await LLMProcessFlowInference(settings, model=model).infer_process_flow([str(workspace / "src" / "auth.py")])

    @pytest.mark.asyncio
    async def test_model_error_is_collaborator_error(self, workspace, settings):
        model = FakeChatModel(TimeoutError("read timed out"))

        with pytest.raises(CollaboratorError, match="read timed out"):
            await LLMProcessFlowInference(settings, model=model).infer_system_flow([str(workspace / "src" / "auth.py")])


class TestFileFilter:
    @pytest.mark.asyncio
    async def test_failing_chunk_is_kept_whole(self, settings):
        paths = [f"/repo/src/f{i}.py" for i in range(150)]
        model = FakeChatModel(json.dumps(paths[:10]), RuntimeError("rate limited"))

        kept = await LLMFileFilter(settings, model=model).filter_files(paths)

        assert kept == paths[:10] + paths[100:]
        assert len(model.prompts) == 2

    @pytest.mark.asyncio
    async def test_without_model_everything_is_kept(self):
        paths = ["/repo/a.py", "/repo/b.py"]
        assert await LLMFileFilter(Settings()).filter_files(paths) == paths


class TestEdgeLabeler:
    @staticmethod
    def _graph():
        return ArchitectureGraph(
            nodes=[
                GraphNode(id="a", label="Checkout", kind="component"),
                GraphNode(id="b", label="Ledger", kind="component"),
                GraphNode(id="c", label="Audit", kind="component"),
            ],
            edges=[
                GraphEdge("a", "b", weight=2, detail=["pay -> record"]),
                GraphEdge("b", "c"),
            ],
        )

    @pytest.mark.asyncio
    async def test_labels_edges_with_call_details(self, settings):
        graph = self._graph()
        model = FakeChatModel('[{"id": "e-a-b", "label": "Records payment"}, {"id": "e-b-c", "label": "Ignored"}]')

        labelled = await LLMEdgeLabeler(settings, model=model).label_edges(graph)

        assert labelled.edges[0].label == "Records payment"
        assert labelled.edges[1].label is None
        assert graph.edges[0].label is None
        sent = json.loads(model.prompts[0][1][1])
        assert sent == [{"id": "e-a-b", "source": "Checkout", "target": "Ledger", "calls": ["pay -> record"]}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["nope", RuntimeError("quota exceeded")])
    async def test_failure_returns_graph_unchanged(self, settings, answer):
        graph = self._graph()

        labelled = await LLMEdgeLabeler(settings, model=FakeChatModel(answer)).label_edges(graph)

        assert labelled is graph
        assert [edge.label for edge in graph.edges] == [None, None]
