"""Deterministic semantic grouping and heuristic process flows."""

import os
from typing import Dict, Iterable, List, Tuple

from .graph_model import FlowEdge, FlowNode, ProcessFlow

DEFAULT_GROUP = "Core / Utilities"

# (group, path substrings, filename substrings); first match wins.
LAYER_RULES: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    (
        "Presentation Layer",
        ("/ui/", "/components/", "/views/", "/pages/", "frontend"),
        (".tsx", ".jsx", ".vue", ".svelte"),
    ),
    (
        "Business Logic",
        ("/services/", "/controllers/", "/managers/", "/hooks/", "/logic/", "/domain/"),
        ("service", "controller", "manager"),
    ),
    (
        "Data Layer",
        ("/api/", "/db/", "/models/", "/store/", "/graphql/", "/queries/", "/repositories/"),
        ("repository", "store", "schema"),
    ),
    (
        "Infrastructure",
        ("/config/", "/utils/", "/lib/", "/helpers/", "/types/", "/interfaces/", "config"),
        (),
    ),
    (
        "Tests",
        ("/tests/", "/__tests__/", "/test/"),
        (".test.", ".spec."),
    ),
)


def classify_path(path: str) -> str:
    lower = path.replace("\\", "/").lower()
    file_name = os.path.basename(lower)
    for group, path_keys, name_keys in LAYER_RULES:
        if any(key in lower for key in path_keys) or any(key in file_name for key in name_keys):
            return group
    return DEFAULT_GROUP


def classify_by_path(paths: Iterable[str]) -> Dict[str, str]:
    return {path: classify_path(path) for path in paths}


def heuristic_flow(paths: List[str], label: str, step_limit: int = 5) -> ProcessFlow:
    """Start node, one step per file (first ``step_limit``), end node, chained."""
    if not paths:
        return ProcessFlow()

    nodes: List[FlowNode] = [
        FlowNode(id="start", label=f"Start {label}", type="start", description="Process initiation")
    ]
    edges: List[FlowEdge] = []
    previous_id = "start"
    for position, path in enumerate(paths[: max(step_limit, 0)]):
        step_id = f"step_{position}"
        nodes.append(
            FlowNode(
                id=step_id,
                label=f"Execute {os.path.basename(path) or path}",
                type="process",
                files=[path],
                description="Process logic step",
            )
        )
        edges.append(FlowEdge(source=previous_id, target=step_id, label="init" if position == 0 else "next"))
        previous_id = step_id

    nodes.append(FlowNode(id="end", label="End Process", type="end", description="Completion"))
    edges.append(FlowEdge(source=previous_id, target="end", label="finish"))
    return ProcessFlow(nodes=nodes, edges=edges)
