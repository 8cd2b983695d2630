from __future__ import annotations

import csv
import html
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from intune_assignments.data.models import (
    EXPORT_COLUMNS,
    AssignmentEdge,
    ResourceKind,
)
from intune_assignments.services.base import EventHook
from intune_assignments.utils import get_logger, sanitize_csv_cell


logger = get_logger(__name__)

GROUP_NODE = "Group"
ALL_ASSIGNMENTS_FILE = "AllAssignments.csv"
GRAPH_JSON_FILE = "AssignmentGraph.json"
GRAPH_HTML_FILE = "AssignmentGraph.html"
VIS_NETWORK_URL = "https://unpkg.com/vis-network/standalone/umd/vis-network.min.js"


def kind_csv_name(kind: ResourceKind) -> str:
    return f"{kind.value}Assignments.csv"


def csv_name_for(kinds: Sequence[ResourceKind]) -> str:
    """A single kind gets its own file; anything broader is written as one table."""

    if len(set(kinds)) == 1:
        return kind_csv_name(kinds[0])
    return ALL_ASSIGNMENTS_FILE


@dataclass(slots=True, frozen=True)
class GraphNode:
    id: str
    group: str

    @property
    def label(self) -> str:
        return self.id


@dataclass(slots=True, frozen=True)
class GraphLink:
    source: str
    target: str
    label: str


@dataclass(slots=True)
class AssignmentGraph:
    """Node/edge view of an assignment inventory.

    Nodes are keyed by display string, so an object and a group (or two
    objects) sharing a name are drawn as one node. The first occurrence
    decides the node's ``group``.
    """

    nodes: list[GraphNode] = field(default_factory=list)
    links: list[GraphLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [
                {"id": node.id, "label": node.label, "group": node.group}
                for node in self.nodes
            ],
            "edges": [
                {
                    "from": link.source,
                    "to": link.target,
                    "label": link.label,
                    "arrows": "to",
                }
                for link in self.links
            ],
        }


def build_assignment_graph(edges: Iterable[AssignmentEdge]) -> AssignmentGraph:
    nodes: dict[str, GraphNode] = {}
    links: list[GraphLink] = []
    for edge in edges:
        nodes.setdefault(
            edge.object_name,
            GraphNode(id=edge.object_name, group=edge.object_kind.value),
        )
        nodes.setdefault(edge.group_name, GraphNode(id=edge.group_name, group=GROUP_NODE))
        links.append(
            GraphLink(
                source=edge.object_name,
                target=edge.group_name,
                label=edge.mode.value,
            )
        )
    return AssignmentGraph(nodes=list(nodes.values()), links=links)


_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<script src="{script_url}"></script>
<style>
  html, body {{ height: 100%; margin: 0; font-family: sans-serif; }}
  #assignments {{ width: 100%; height: 100%; }}
</style>
</head>
<body>
<div id="assignments"></div>
<script>
  const data = {payload};
  const network = new vis.Network(
    document.getElementById("assignments"),
    {{ nodes: new vis.DataSet(data.nodes), edges: new vis.DataSet(data.edges) }},
    {{ physics: {{ stabilization: true }}, edges: {{ font: {{ align: "middle" }} }} }}
  );
</script>
</body>
</html>
"""


class ExportService:
    """Write assignment inventories as CSV tables and graph documents."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir
        self.completed: EventHook[Path] = EventHook()

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def path_for(self, file_name: str) -> Path:
        return self._output_dir / file_name

    def write_csv(self, edges: Iterable[AssignmentEdge], path: Path) -> Path:
        count = 0
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=list(EXPORT_COLUMNS))
            writer.writeheader()
            for edge in edges:
                writer.writerow(
                    {key: sanitize_csv_cell(value) for key, value in edge.to_row().items()}
                )
                count += 1
        logger.info("Exported assignments CSV", path=str(path), count=count)
        self.completed.emit(path)
        return path

    def write_graph_json(self, graph: AssignmentGraph, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")
        logger.info(
            "Exported assignment graph JSON",
            path=str(path),
            nodes=len(graph.nodes),
            edges=len(graph.links),
        )
        self.completed.emit(path)
        return path

    def write_graph_html(
        self,
        graph: AssignmentGraph,
        path: Path,
        *,
        title: str = "Intune assignments",
    ) -> Path:
        # "</" inside the inline script would terminate the script element early.
        payload = json.dumps(graph.to_dict()).replace("</", "<\\/")
        document = _HTML_TEMPLATE.format(
            title=html.escape(title),
            script_url=VIS_NETWORK_URL,
            payload=payload,
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document, encoding="utf-8")
        logger.info("Exported assignment graph HTML", path=str(path))
        self.completed.emit(path)
        return path


__all__ = [
    "ALL_ASSIGNMENTS_FILE",
    "AssignmentGraph",
    "ExportService",
    "GRAPH_HTML_FILE",
    "GRAPH_JSON_FILE",
    "GraphLink",
    "GraphNode",
    "build_assignment_graph",
    "csv_name_for",
    "kind_csv_name",
]
