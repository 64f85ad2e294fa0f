"""
Export compiled dialogue graphs to JSON or CSV
"""

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, List

from ..parser.node import START_NODE, DialogueGraph

CSV_FIELDS = [
    "Node",
    "Option",
    "Text",
    "Hero Line",
    "NPC Response",
    "Requires",
    "Next",
    "Exit",
    "Set Flags",
    "Add Items",
    "Remove Items",
    "Once",
    "ID",
    "NPC State",
    "Is Entry",
]


class DialogueExporter:
    """Export a dialogue graph to various formats"""

    def to_data(self, graph: DialogueGraph, npc_id: str = None) -> Dict[str, Any]:
        nodes = list(graph.values())
        options = [option for node in nodes for option in node.options]
        return {
            "npc": npc_id,
            "nodes": graph.to_dict(),
            "metadata": {
                "version": "1.0",
                "node_count": len(nodes),
                "option_count": len(options),
                "exit_count": sum(1 for option in options if option.exit),
                "terminal_count": sum(1 for node in nodes if node.is_terminal()),
            },
            "errors": list(graph.errors),
            "warnings": list(graph.warnings),
        }

    def rows(self, graph: DialogueGraph) -> List[Dict[str, Any]]:
        """One row per option, in file order"""
        rows = []
        for node in graph.values():
            is_entry = node.key == START_NODE or node.is_default or bool(node.npc_state)
            for index, option in enumerate(node.options):
                actions = option.actions
                rows.append(
                    {
                        "Node": node.key,
                        "Option": index,
                        "Text": option.text,
                        "Hero Line": option.hero_line,
                        "NPC Response": "\n".join(option.npc_response or ()),
                        "Requires": str(option.condition) if option.condition else "",
                        "Next": "END" if option.exit else (option.next_node or ""),
                        "Exit": "True" if option.exit else "False",
                        "Set Flags": "; ".join(actions.set_flags) if actions else "",
                        "Add Items": "; ".join(actions.add_items) if actions else "",
                        "Remove Items": "; ".join(actions.remove_items) if actions else "",
                        "Once": "True" if actions and actions.once else "False",
                        "ID": option.label or "",
                        "NPC State": node.npc_state or "",
                        "Is Entry": "True" if is_entry else "False",
                    }
                )
        return rows

    def to_csv_string(self, graph: DialogueGraph) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS)
        writer.writeheader()
        writer.writerows(self.rows(graph))
        return buffer.getvalue()

    def export_to_csv(self, graph: DialogueGraph, output_path: Path):
        """Export to CSV, one row per option"""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
            writer.writeheader()
            writer.writerows(self.rows(graph))

    def export_to_json(self, graph: DialogueGraph, output_path: Path, npc_id: str = None):
        """Export to JSON format"""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_data(graph, npc_id), f, indent=2, ensure_ascii=False)
