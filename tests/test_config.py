import io
import json
import logging

import pytest

from arch_graph.collaborators import SnapshotCollaborator
from arch_graph.config import DEFAULT_MODEL, Settings
from arch_graph.errors import TrivialResultError
from arch_graph.logging_config import LOGGER_NAME, setup_logging


class TestSettings:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
        monkeypatch.setenv("ARCH_GRAPH_WORKSPACE_ROOT", str(tmp_path))
        monkeypatch.setenv("ARCH_GRAPH_HEURISTIC_STEPS", "3")
        monkeypatch.setenv("ARCH_GRAPH_TEMPERATURE", "warm")
        monkeypatch.setenv("ARCH_GRAPH_LOG_LEVEL", "WARNING")

        settings = Settings.from_env()

        assert settings.has_api_key
        assert settings.model_name == "gpt-test"
        assert settings.workspace_root == str(tmp_path)
        assert settings.heuristic_step_limit == 3
        assert settings.temperature == 0.0
        assert settings.log_level == "WARNING"

    def test_defaults(self, monkeypatch):
        for name in ("OPENAI_MODEL", "ARCH_GRAPH_MAX_PROMPT_FILES", "ARCH_GRAPH_HEURISTIC_STEPS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert not settings.has_api_key
        assert settings.model_name == DEFAULT_MODEL
        assert settings.max_prompt_files == 300
        assert settings.heuristic_step_limit == 5


class TestLogging:
    def test_setup_is_idempotent(self):
        stream = io.StringIO()
        setup_logging("debug", stream=stream)
        logger = setup_logging("debug", stream=stream)

        logging.getLogger(f"{LOGGER_NAME}.drilldown").debug("drill issued")

        assert logger.level == logging.DEBUG
        assert len([h for h in logger.handlers if getattr(h, "_arch_graph", False)]) == 1
        assert stream.getvalue().count("drill issued") == 1

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("ARCH_GRAPH_LOG_LEVEL", "ERROR")
        assert setup_logging(stream=io.StringIO()).level == logging.ERROR

    def test_unknown_level_defaults_to_info(self):
        assert setup_logging("chatty", stream=io.StringIO()).level == logging.INFO


class TestSnapshotCollaborator:
    @pytest.mark.asyncio
    async def test_load_resolves_relative_paths(self, tmp_path):
        snapshot = {
            "files": [
                {
                    "path": "a.py",
                    "entities": [{"name": "run", "kind": "Function", "start_line": 3}],
                    "calls": {"run@3": [{"target_file": "b.py", "target_start_line": 7}]},
                }
            ]
        }
        path = tmp_path / "snap.json"
        path.write_text(json.dumps(snapshot), encoding="utf-8")

        collaborator = SnapshotCollaborator.load(path)
        a_path = str(tmp_path.resolve() / "a.py")
        entities = await collaborator.get_entities(a_path)
        calls = await collaborator.get_outgoing_calls(a_path, entities[0])

        assert collaborator.paths == [a_path]
        assert entities[0].kind == "function"
        assert entities[0].end_line == 3
        assert calls[0].target_file == str(tmp_path.resolve() / "b.py")
        assert not collaborator.has_system_flow

    @pytest.mark.asyncio
    async def test_recorded_system_flow(self):
        collaborator = SnapshotCollaborator(
            {
                "root": "/repo",
                "files": [],
                "system_flow": {"nodes": [{"id": "1", "label": "Core", "files": ["src/core.py"]}]},
            }
        )

        flow = await collaborator.infer_system_flow([])

        assert flow.nodes[0].type == "system"
        assert flow.nodes[0].files == ["/repo/src/core.py"]
        with pytest.raises(TrivialResultError):
            await collaborator.infer_process_flow(["/repo/src/core.py"])
