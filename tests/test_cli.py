import json
import logging

import pytest

from arch_graph.cli import build_artifact, main, parse_args
from arch_graph.config import Settings
from arch_graph.logging_config import LOGGER_NAME


@pytest.fixture
def snapshot(tmp_path):
    payload = {
        "files": [
            {
                "path": "src/services/auth.py",
                "entities": [
                    {
                        "name": "AuthService",
                        "kind": "class",
                        "start_line": 0,
                        "end_line": 20,
                        "children": [{"name": "login", "kind": "method", "start_line": 2, "end_line": 8}],
                    }
                ],
                "calls": {
                    "login@2": [{"target_file": "src/db/users.py", "target_start_line": 1, "target_name": "find_user"}]
                },
            },
            {
                "path": "src/db/users.py",
                "entities": [{"name": "find_user", "kind": "function", "start_line": 1, "end_line": 5}],
            },
        ],
        "system_flow": {
            "nodes": [
                {
                    "id": "auth",
                    "label": "Authentication",
                    "type": "system",
                    "files": ["src/services/auth.py", "src/db/users.py"],
                },
                {"id": "store", "label": "User Store", "type": "database", "files": ["src/db/users.py"]},
            ],
            "edges": [{"source": "auth", "target": "store", "label": "reads"}],
        },
    }
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_parse_args_defaults():
    args = parse_args(["--snapshot", "snap.json"])
    assert args.granularity == "full"
    assert args.groups == "none"
    assert args.layout is False


def test_main_writes_full_graph(snapshot, tmp_path, capsys):
    output = tmp_path / "out" / "graph.json"

    assert main(["--snapshot", str(snapshot), "--output-path", str(output), "--log-level", "WARNING"]) == 0

    artifact = json.loads(output.read_text(encoding="utf-8"))
    kinds = sorted(node["kind"] for node in artifact["nodes"])
    assert kinds == ["component", "component", "file", "file"]
    assert len(artifact["edges"]) == 1
    assert artifact["edges"][0]["detail"] == ["login -> find_user"]
    assert "nodes=4" in capsys.readouterr().out


def test_main_flattened_with_groups_and_layout(snapshot, tmp_path):
    output = tmp_path / "graph.json"

    main(
        [
            "--snapshot",
            str(snapshot),
            "--granularity",
            "flattened",
            "--groups",
            "heuristic",
            "--layout",
            "--output-path",
            str(output),
        ]
    )

    artifact = json.loads(output.read_text(encoding="utf-8"))
    groups = sorted(node["label"] for node in artifact["nodes"] if node["kind"] == "module")
    assert groups == ["Business Logic", "Data Layer"]
    assert all(node["visible"] for node in artifact["layout"]["nodes"])


def test_main_drills_into_system_node(snapshot, tmp_path):
    output = tmp_path / "drill.json"

    main(["--snapshot", str(snapshot), "--drill", "Authentication", "--output-path", str(output)])

    artifact = json.loads(output.read_text(encoding="utf-8"))
    assert artifact["label"] == "Authentication"
    assert artifact["level"] == 1
    assert artifact["meta"]["drill"] == {"label": "Authentication", "state": "resolved", "strategy": "heuristic_flow"}
    assert len(artifact["nodes"]) == 4
    assert len(artifact["meta"]["messages"]) == 1
    assert "layout" not in artifact


def test_main_log_level_from_settings(snapshot, tmp_path, monkeypatch):
    monkeypatch.delenv("ARCH_GRAPH_LOG_LEVEL", raising=False)
    monkeypatch.setattr("arch_graph.cli.Settings.from_env", lambda: Settings(log_level="ERROR"))

    main(["--snapshot", str(snapshot), "--output-path", str(tmp_path / "graph.json")])
    assert logging.getLogger(LOGGER_NAME).level == logging.ERROR

    main(["--snapshot", str(snapshot), "--output-path", str(tmp_path / "graph.json"), "--log-level", "DEBUG"])
    assert logging.getLogger(LOGGER_NAME).level == logging.DEBUG


def test_main_unknown_drill_label(snapshot, tmp_path):
    output = tmp_path / "drill.json"

    assert main(["--snapshot", str(snapshot), "--drill", "Nowhere", "--output-path", str(output)]) == 0

    artifact = json.loads(output.read_text(encoding="utf-8"))
    assert artifact["meta"]["drill"]["state"] == "not_found"
    assert artifact["level"] == 0


@pytest.mark.asyncio
async def test_llm_groups_without_key_fall_back(snapshot):
    artifact = await build_artifact(str(snapshot), groups="llm", settings=Settings())

    labels = {node["label"] for node in artifact["nodes"]}
    assert {"Business Logic", "Data Layer"} <= labels
