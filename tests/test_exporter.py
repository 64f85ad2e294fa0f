"""Tests for JSON and CSV export."""

import csv
import io
import json
from pathlib import Path

from npc_dialogue.cli.export_cmd import export_script
from npc_dialogue.export import CSV_FIELDS, DialogueExporter
from npc_dialogue.parser import parse

SCRIPT = """
=== start ===
zyx: Greetings.
- Take the crowbar
# requires: !has:crowbar
# add: crowbar
# set: took_crowbar
# once
nate: Mine now.
> angry
- Leave
nate: Bye.
zyx: Farewell.
zyx: Come back.
> END

=== angry ===
# npc_state: angry
- Sorry
# id: apology
# remove: crowbar
> start
"""


class TestJsonExport:
    """Test the JSON document."""

    def test_to_data(self):
        data = DialogueExporter().to_data(parse(SCRIPT), npc_id="zyx")
        assert data["npc"] == "zyx"
        assert list(data["nodes"].keys()) == ["start", "angry"]
        assert data["metadata"]["node_count"] == 2
        assert data["metadata"]["option_count"] == 3
        assert data["metadata"]["exit_count"] == 1
        assert data["errors"] == []

        take = data["nodes"]["start"]["options"][0]
        assert take["condition"] == "!has:crowbar"
        assert take["next_node"] == "angry"
        assert take["actions"]["add_items"] == ["crowbar"]
        assert take["actions"]["once"] is True

    def test_export_to_json(self, tmp_path: Path):
        output = tmp_path / "out" / "zyx.json"
        DialogueExporter().export_to_json(parse(SCRIPT), output, npc_id="zyx")
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["nodes"]["angry"]["npc_state"] == "angry"


class TestCsvExport:
    """Test the one-row-per-option table."""

    def test_rows(self):
        rows = DialogueExporter().rows(parse(SCRIPT))
        assert [(row["Node"], row["Option"]) for row in rows] == [("start", 0), ("start", 1), ("angry", 0)]

        take, leave, sorry = rows
        assert take["Requires"] == "!has:crowbar"
        assert take["Set Flags"] == "took_crowbar"
        assert take["Once"] == "True"
        assert take["Is Entry"] == "True"

        assert leave["Next"] == "END"
        assert leave["Exit"] == "True"
        assert leave["NPC Response"] == "Farewell.\nCome back."

        assert sorry["ID"] == "apology"
        assert sorry["Remove Items"] == "crowbar"
        assert sorry["NPC State"] == "angry"
        assert sorry["Hero Line"] == ""

    def test_csv_string_round_trips_through_reader(self):
        text = DialogueExporter().to_csv_string(parse(SCRIPT))
        rows = list(csv.DictReader(io.StringIO(text)))
        assert list(rows[0].keys()) == CSV_FIELDS
        assert rows[1]["NPC Response"] == "Farewell.\nCome back."

    def test_export_to_csv(self, tmp_path: Path):
        output = tmp_path / "zyx.csv"
        DialogueExporter().export_to_csv(parse(SCRIPT), output)
        with open(output, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 3


class TestExportScript:
    """Test the export command helper."""

    def test_default_output_path(self, tmp_path: Path):
        script = tmp_path / "zyx.txt"
        script.write_text(SCRIPT, encoding="utf-8")
        written = export_script(script)
        assert written == tmp_path / "zyx.json"
        assert json.loads(written.read_text(encoding="utf-8"))["npc"] == "zyx"

    def test_csv_format(self, tmp_path: Path):
        script = tmp_path / "zyx.txt"
        script.write_text(SCRIPT, encoding="utf-8")
        written = export_script(script, fmt="csv")
        assert written.suffix == ".csv"
        assert written.read_text(encoding="utf-8").startswith("Node,Option,Text")
