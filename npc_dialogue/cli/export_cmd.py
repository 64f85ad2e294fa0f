"""
Export dialogue scripts to JSON or CSV for use outside the game
"""

from pathlib import Path
from typing import Optional

import click

from ..config import EngineConfig
from ..errors import DialogueParseError
from ..export.exporter import DialogueExporter
from ..parser.parser import DialogueParser


def export_script(
    script_path: Path,
    output_path: Optional[Path] = None,
    fmt: str = "json",
    config: Optional[EngineConfig] = None,
) -> Path:
    """Export a script file, returns the path written"""
    config = config or EngineConfig()

    parser = DialogueParser(hero_name=config.hero_name)
    try:
        dialogue = parser.parse_file(script_path)
    except DialogueParseError as e:
        click.echo(f"❌ Export failed: {e}", err=True)
        raise click.exceptions.Exit(1)

    if not parser.validate():
        click.echo("⚠️  Warning: Dialogue has validation issues:")
        for error in dialogue.errors:
            click.echo(f"  • {error}")

    if output_path is None:
        output_path = script_path.with_suffix(f".{fmt}")

    exporter = DialogueExporter()
    if fmt == "csv":
        exporter.export_to_csv(dialogue, output_path)
    else:
        exporter.export_to_json(dialogue, output_path, npc_id=script_path.stem)

    options = sum(len(node.options) for node in dialogue.values())
    click.echo(f"✅ Exported to: {output_path}")
    click.echo(f"   • {len(dialogue)} nodes")
    click.echo(f"   • {options} options")
    return output_path
