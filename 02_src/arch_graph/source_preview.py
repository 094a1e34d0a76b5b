"""Code locations and source excerpts for graph nodes."""

from pathlib import Path
from typing import Any, Dict, Optional

from .graph_model import CodeLocation, GraphNode

PREVIEW_LINES = 50


def location_for(node: GraphNode) -> Optional[CodeLocation]:
    """Explicit ``location`` attribute first, then the first source file at line 0."""
    location = node.attributes.get("location")
    if isinstance(location, dict) and location.get("file"):
        end_line = location.get("end_line")
        return CodeLocation(
            file=str(location["file"]),
            line=int(location.get("line", 0) or 0),
            character=int(location.get("character", 0) or 0),
            end_line=int(end_line) if end_line is not None else None,
        )
    if node.source_files:
        return CodeLocation(file=node.source_files[0])
    return None


def fetch_code(location: CodeLocation) -> Dict[str, Any]:
    """Lines ``[line, end_line]`` of the file; ``startLine`` is 1-based."""
    path = Path(location.file)
    if not location.file or not path.is_file():
        return {"error": f"File not found: {location.file}"}
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as error:
        return {"error": f"Could not read {location.file}: {error}"}

    start = max(location.line, 0)
    end = location.end_line if location.end_line is not None else start + PREVIEW_LINES
    end = max(end, start)
    return {"content": "\n".join(lines[start : end + 1]), "startLine": start + 1}
