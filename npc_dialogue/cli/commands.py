"""
CLI commands for npc-dialogue
"""

import json
import logging
from pathlib import Path

import click

from npc_dialogue.config import EngineConfig
from npc_dialogue.errors import DialogueParseError
from npc_dialogue.parser.parser import DialogueParser
from npc_dialogue.state import GameState


def _parse(path: Path, config: EngineConfig):
    parser = DialogueParser(hero_name=config.hero_name)
    try:
        dialogue = parser.parse_file(path)
    except DialogueParseError as e:
        click.echo(f"\n❌ Error: {e}", err=True)
        raise click.exceptions.Exit(1)
    return parser, dialogue


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, verbose):
    """NPC Dialogue - author, check and play NPC conversation scripts"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = EngineConfig.from_env()
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("file_paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--quiet", "-q", is_flag=True, help="Only set the exit code")
@click.pass_context
def validate(ctx, file_paths, quiet):
    """Validate one or more dialogue scripts"""
    from npc_dialogue.cli.validate_cmd import DialogueValidator

    config = ctx.obj["config"]
    failed = 0
    for file_path in file_paths:
        validator = DialogueValidator(Path(file_path), hero_name=config.hero_name)
        if not validator.validate(report=not quiet):
            failed += 1

    if failed:
        raise click.exceptions.Exit(1)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def stats(ctx, file_path):
    """Show statistics for a dialogue script"""
    path = Path(file_path)
    parser, dialogue = _parse(path, ctx.obj["config"])
    parser.validate()
    stats = parser.get_stats()

    click.echo(f"\n📊 Statistics for {path.name}")
    click.echo("=" * 50)

    click.echo("\n📝 Content:")
    click.echo(f"  Nodes:               {stats['nodes']:>6}")
    click.echo(f"  Intro lines:         {stats['intro_lines']:>6}")
    click.echo(f"  Options:             {stats['options']:>6}")
    click.echo(f"  Conditional options: {stats['conditional_options']:>6}")
    click.echo(f"  Options w/ actions:  {stats['options_with_actions']:>6}")
    click.echo(f"  Exits:               {stats['exits']:>6}")

    avg_options = stats["options"] / stats["nodes"] if stats["nodes"] > 0 else 0
    click.echo("\n📈 Averages:")
    click.echo(f"  Options per node: {avg_options:>6.1f}")

    entry_nodes = [key for key, node in dialogue.items() if node.is_default or node.npc_state]
    dead_ends = [key for key, node in dialogue.items() if node.is_terminal()]
    click.echo("\n🌳 Structure:")
    click.echo(f"  Mood entry nodes: {len(entry_nodes):>6}")
    click.echo(f"  Dead ends:        {len(dead_ends):>6}")

    for title, key in (("Flags", "known_flags"), ("Items", "known_items"), ("Labels", "known_labels")):
        if stats[key]:
            click.echo(f"\n{title}: {', '.join(stats[key])}")

    if stats["errors"] > 0 or stats["warnings"] > 0:
        click.echo("\n⚠️  Issues:")
        click.echo(f"  Errors:   {stats['errors']:>6}")
        click.echo(f"  Warnings: {stats['warnings']:>6}")

    click.echo()


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("node_id")
@click.pass_context
def show_node(ctx, file_path, node_id):
    """Display a specific node from a dialogue script"""
    path = Path(file_path)
    _, dialogue = _parse(path, ctx.obj["config"])

    if node_id not in dialogue:
        click.echo(f"❌ Node '{node_id}' not found in {path.name}", err=True)
        click.echo("\nAvailable nodes:")
        for nid in sorted(dialogue.keys())[:20]:
            click.echo(f"  • {nid}")
        if len(dialogue) > 20:
            click.echo(f"  ... and {len(dialogue) - 20} more")
        raise click.exceptions.Exit(1)

    node = dialogue[node_id]

    click.echo(f"\n📍 Node: [{node_id}]")
    click.echo("=" * 50)

    tags = []
    if node.npc_state:
        tags.append(f"npc_state: {node.npc_state}")
    if node.is_default:
        tags.append("default")
    if node.condition:
        tags.append(f"requires: {node.condition}")
    if tags:
        click.echo(f"\n🏷  {' | '.join(tags)}")

    for block in node.intro_blocks:
        header = f" (requires: {block.condition})" if block.condition else ""
        click.echo(f"\n💬 Intro{header}:")
        for line in block.lines:
            click.echo(f"  {line.speaker_name}: \"{line.text}\"")

    if node.options:
        click.echo("\n🔀 Options:")
        for index, option in enumerate(node.options):
            cond_str = f" {{{option.condition}}}" if option.condition else ""
            target = "END" if option.exit else (option.next_node or "(stay)")
            click.echo(f"  [{index}] \"{option.text}\" -> {target}{cond_str}")
            if option.actions:
                actions = option.actions
                parts = [f"set {f}" for f in actions.set_flags]
                parts += [f"add {i}" for i in actions.add_items]
                parts += [f"remove {i}" for i in actions.remove_items]
                if actions.once:
                    parts.append("once")
                click.echo(f"      ⚡ {', '.join(parts)}")

    click.echo()


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file (default: next to the script)")
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", show_default=True)
@click.pass_context
def export(ctx, file_path, output, fmt):
    """Export a compiled dialogue script to JSON or CSV"""
    from npc_dialogue.cli.export_cmd import export_script

    export_script(Path(file_path), Path(output) if output else None, fmt, ctx.obj["config"])


@cli.command()
@click.argument("file_path", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--npc", "npc_id", help="NPC id (default: the script's file name)")
@click.option("--node", "start_node", help="Start at this node instead of picking one")
@click.option("--state", "state_file", type=click.Path(exists=True, dir_okay=False), help="Initial GameState JSON")
@click.option("--flag", "flags", multiple=True, help="Set a flag before starting (repeatable)")
@click.option("--item", "items", multiple=True, help="Give an item before starting (repeatable)")
@click.option("--npc-state", "npc_states", multiple=True, help="NPC state as npc=state (repeatable)")
@click.option("--saves-dir", type=click.Path(file_okay=False), help="Where save files go")
@click.pass_context
def play(ctx, file_path, npc_id, start_node, state_file, flags, items, npc_states, saves_dir):
    """Talk to an NPC interactively"""
    from npc_dialogue.cli.play_cmd import DialoguePlayer, select_dialogue_file

    config = ctx.obj["config"]
    if file_path is None:
        if config.dialogues_root is None:
            raise click.UsageError("Give a script path or set NPC_DIALOGUE_ROOT")
        path = select_dialogue_file(config.dialogues_root, config.script_suffix)
        if path is None:
            raise click.exceptions.Exit(1)
    else:
        path = Path(file_path)

    state = GameState()
    if state_file:
        with open(state_file, "r", encoding="utf-8") as f:
            state.load(json.load(f))
    for flag in flags:
        state.set_flag(flag, True)
    for item in items:
        state.add_item(item)
    for pair in npc_states:
        npc, sep, value = pair.partition("=")
        if not sep or not npc or not value:
            raise click.BadParameter(f"expected npc=state, got '{pair}'", param_hint="--npc-state")
        state.set_npc_state(npc, value)

    try:
        player = DialoguePlayer(
            path,
            npc_id=npc_id,
            state=state,
            config=config,
            saves_dir=Path(saves_dir) if saves_dir else None,
            verbose=ctx.obj["verbose"],
        )
    except DialogueParseError as e:
        click.echo(f"\n❌ Error: {e}", err=True)
        raise click.exceptions.Exit(1)
    player.play(start_node)


@cli.command()
@click.argument("root", required=False, type=click.Path(exists=True, file_okay=False))
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=5000, show_default=True, type=int)
@click.option("--debug", is_flag=True)
@click.pass_context
def serve(ctx, root, host, port, debug):
    """Serve dialogue scripts and the editor API"""
    from npc_dialogue.web.app import create_app

    config = ctx.obj["config"]
    dialogues_root = Path(root) if root else config.dialogues_root
    if dialogues_root is None:
        raise click.UsageError("Give a dialogue directory or set NPC_DIALOGUE_ROOT")

    app = create_app(dialogues_root, config=config)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    cli()
