"""CLI entrypoint: build an architecture graph artifact from a snapshot."""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .assembler import assemble
from .collaborators import RecordingView, SnapshotCollaborator
from .config import Settings
from .drilldown import DrillDownOrchestrator
from .errors import CollaboratorError
from .graph_model import GRANULARITIES, GRANULARITY_FULL
from .grouping import classify_by_path
from .inference import LLMEdgeLabeler, LLMGroupInference, LLMProcessFlowInference
from .layout import layout
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


async def _semantic_groups(mode: str, paths: List[str], settings: Settings) -> Optional[Dict[str, str]]:
    if mode == "none":
        return None
    if mode == "llm":
        try:
            return await LLMGroupInference(settings).infer_groups(paths)
        except CollaboratorError as error:
            logger.warning("LLM grouping failed, using layer heuristic: %s", error)
    return classify_by_path(paths)


async def build_artifact(
    snapshot_path: str,
    granularity: str = GRANULARITY_FULL,
    groups: str = "none",
    virtual_root: str = "",
    with_layout: bool = False,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    settings = settings or Settings.from_env()
    collaborator = SnapshotCollaborator.load(Path(snapshot_path))
    files = collaborator.file_entities()
    graph = await assemble(
        files,
        call_provider=collaborator,
        semantic_groups=await _semantic_groups(groups, collaborator.paths, settings),
        virtual_root_label=virtual_root or None,
        granularity=granularity,
    )
    artifact = graph.to_json()
    if with_layout:
        artifact["layout"] = layout(graph.nodes, graph.edges, expanded=graph.node_ids()).to_json()
    artifact["meta"] = {
        "snapshot_path": snapshot_path,
        "granularity": granularity,
        "groups": groups,
        "files": len(files),
    }
    return artifact


async def drill_artifact(
    snapshot_path: str,
    drill_label: str,
    groups: str = "none",
    with_layout: bool = False,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Top-level view through the orchestrator, then one drill into ``drill_label``."""
    settings = settings or Settings.from_env()
    collaborator = SnapshotCollaborator.load(Path(snapshot_path))
    if collaborator.has_system_flow:
        flow_inference = collaborator
    elif settings.has_api_key:
        flow_inference = LLMProcessFlowInference(settings)
    else:
        flow_inference = None

    view = RecordingView()
    orchestrator = DrillDownOrchestrator(
        view=view,
        entity_provider=collaborator,
        call_provider=collaborator,
        flow_inference=flow_inference,
        group_inference=LLMGroupInference(settings) if groups == "llm" else None,
        edge_labeler=LLMEdgeLabeler(settings) if settings.has_api_key else None,
        settings=settings,
    )
    orchestrator.enable()
    await orchestrator.scan_workspace(collaborator.paths)

    target = next((node for node in orchestrator.current.nodes if node.label == drill_label), None)
    if target is None:
        logger.warning("No node labelled '%s' in the top-level view", drill_label)
        state = "not_found"
        strategy_name = ""
    else:
        outcome = await orchestrator.drill_down(target.id)
        state = outcome.state.value
        strategy_name = outcome.strategy_name

    artifact = orchestrator.snapshot()
    if not with_layout:
        artifact.pop("layout", None)
    artifact["meta"] = {
        "snapshot_path": snapshot_path,
        "drill": {"label": drill_label, "state": state, "strategy": strategy_name},
        "messages": list(view.messages),
        "files": len(collaborator.paths),
    }
    return artifact


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build an architecture graph from a code snapshot and save it as JSON.")
    parser.add_argument("--snapshot", required=True, help="Path to snapshot JSON (files, entities, calls).")
    parser.add_argument("--granularity", choices=GRANULARITIES, default=GRANULARITY_FULL)
    parser.add_argument(
        "--groups",
        choices=("none", "heuristic", "llm"),
        default="none",
        help="Semantic grouping of files into modules.",
    )
    parser.add_argument("--virtual-root", default="", help="Label of a virtual root above all nodes.")
    parser.add_argument(
        "--drill",
        default="",
        help="Label of a system/process node to drill into from the top-level view.",
    )
    parser.add_argument("--layout", action="store_true", help="Attach the compound layout to the artifact.")
    parser.add_argument(
        "--output-path",
        default="03_data/01_arch_graph/graph_artifact.json",
        help="Where to save resulting graph artifact JSON.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: ARCH_GRAPH_LOG_LEVEL or INFO).")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    setup_logging(args.log_level or settings.log_level)
    if args.drill:
        artifact = asyncio.run(
            drill_artifact(
                args.snapshot, args.drill, groups=args.groups, with_layout=args.layout, settings=settings
            )
        )
    else:
        artifact = asyncio.run(
            build_artifact(
                args.snapshot,
                granularity=args.granularity,
                groups=args.groups,
                virtual_root=args.virtual_root,
                with_layout=args.layout,
                settings=settings,
            )
        )
    output_path = Path(args.output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(artifact, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"Architecture graph artifact saved to: {output_path.resolve()}")
    print(
        "Counts:",
        f"nodes={len(artifact['nodes'])}",
        f"edges={len(artifact['edges'])}",
        f"files={artifact['meta']['files']}",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
