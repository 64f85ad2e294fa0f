"""
Interactive Dialogue Player - talk to an NPC from the terminal.

Runs the real conversation runtime against a GameState. Line timers are
driven by a ManualScheduler, so every line shows up at once and the player
only waits for choices.
"""

import json
import shutil
import textwrap
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import click

from ..config import EngineConfig
from ..errors import ContractViolation
from ..parser.node import DialogueGraph, DialogueLine, Speaker
from ..parser.parser import DialogueParser
from ..runtime.conversation import Conversation, ConversationListener, VisibleOption, choose_entry_node
from ..runtime.scheduling import ManualScheduler
from ..state import GameState


# ANSI color codes for terminal output
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    YELLOW = "\033[33m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"
    BRIGHT_WHITE = "\033[97m"


def format_dialogue_box(text: str, speaker: str, color: str, max_width: int = 60) -> str:
    """Format dialogue text in a box"""
    term_width = shutil.get_terminal_size((80, 24)).columns
    actual_max = max(20, min(max_width, term_width - 8))

    lines = []
    for paragraph in text.split("\n"):
        if paragraph:
            lines.extend(textwrap.wrap(paragraph, width=actual_max))
        else:
            lines.append("")

    box_width = max(len(line) for line in lines) if lines else 20
    box_width = max(box_width, len(speaker) + 2)

    result = [f"\n  {color}╭─ {speaker} {'─' * (box_width - len(speaker) - 1)}╮{Colors.RESET}"]
    for line in lines:
        result.append(f"  {color}│{Colors.RESET} {line.ljust(box_width)} {color}│{Colors.RESET}")
    result.append(f"  {color}╰{'─' * (box_width + 2)}╯{Colors.RESET}")
    return "\n".join(result)


class TerminalListener(ConversationListener):
    """Prints conversation events"""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.options: List[VisibleOption] = []

    def on_line(self, line: DialogueLine):
        if line.speaker is Speaker.HERO:
            click.echo(format_dialogue_box(line.text, "You", Colors.BRIGHT_GREEN))
        else:
            click.echo(format_dialogue_box(line.text, line.speaker_name.capitalize(), Colors.BRIGHT_CYAN))

    def on_options(self, options: List[VisibleOption]):
        self.options = options
        click.echo(f"\n{Colors.DIM}{'─' * 50}{Colors.RESET}")
        for i, shown in enumerate(options, 1):
            prefix = f"  {Colors.BRIGHT_YELLOW}[{i}]{Colors.RESET}"
            color = Colors.DIM if shown.used else Colors.YELLOW
            marker = ""
            if self.verbose and shown.option.condition:
                marker = f" {Colors.DIM}[{shown.option.condition}]{Colors.RESET}"
            click.echo(f"{prefix} {color}{shown.text}{Colors.RESET}{marker}")

    def on_options_hidden(self):
        self.options = []


class DialoguePlayer:
    """Interactive dialogue player"""

    def __init__(
        self,
        dialogue_path: Path,
        npc_id: Optional[str] = None,
        state: Optional[GameState] = None,
        config: Optional[EngineConfig] = None,
        saves_dir: Optional[Path] = None,
        verbose: bool = False,
        input_fn: Callable[[str], str] = input,
    ):
        self.dialogue_path = Path(dialogue_path)
        self.config = config or EngineConfig()
        self.npc_id = npc_id or self.dialogue_path.stem
        self.state = state or GameState()
        self.saves_dir = Path(saves_dir) if saves_dir else Path.cwd() / "saves"
        self.verbose = verbose
        self.input_fn = input_fn

        self.parser = DialogueParser(hero_name=self.config.hero_name)
        self.dialogue: DialogueGraph = self.parser.parse_file(self.dialogue_path)

        self.scheduler = ManualScheduler()
        self.listener = TerminalListener(verbose=verbose)
        self.conversation = Conversation(self.state, self.scheduler, self.listener, self.config)

        if self.dialogue.warnings:
            click.echo(f"{Colors.YELLOW}⚠️  Parse warnings:{Colors.RESET}")
            for warning in self.dialogue.warnings:
                click.echo(f"  {Colors.YELLOW}• {warning}{Colors.RESET}")
            click.echo()

        if not self.parser.validate():
            click.echo(f"{Colors.YELLOW}⚠️  Warning: Dialogue has validation issues:{Colors.RESET}")
            for error in self.dialogue.errors:
                click.echo(f"  {Colors.YELLOW}• {error}{Colors.RESET}")
            click.echo()

    def _prompt(self, text: str = "") -> str:
        return self.input_fn(f"{text}{Colors.BRIGHT_MAGENTA}>{Colors.RESET} ").strip()

    def start(self, start_node: Optional[str] = None):
        node = start_node or choose_entry_node(self.dialogue, self.state, self.npc_id)
        if self.verbose:
            click.echo(f"{Colors.DIM}[Entering '{node}']{Colors.RESET}")
        self.conversation.enter_conversation(self.npc_id, self.dialogue, start_node=node)
        self.scheduler.run_pending()

    def play(self, start_node: Optional[str] = None):
        """Start playing the dialogue"""
        click.echo(f"\n{Colors.BRIGHT_CYAN}{'=' * 70}{Colors.RESET}")
        click.echo(f"{Colors.BRIGHT_YELLOW}{Colors.BOLD}🎭 TALKING TO {self.npc_id.upper()}{Colors.RESET}")
        click.echo(f"{Colors.BRIGHT_CYAN}{'=' * 70}{Colors.RESET}")
        click.echo(f"\n{Colors.BRIGHT_WHITE}Controls:{Colors.RESET}")
        click.echo(f"  • Enter the number to select a choice")
        click.echo(f"  • Type {Colors.YELLOW}'quit'{Colors.RESET} to stop")
        click.echo(f"  • Type {Colors.YELLOW}'state'{Colors.RESET} to see current game state")
        click.echo(f"  • Type {Colors.YELLOW}'save'{Colors.RESET} / {Colors.YELLOW}'load'{Colors.RESET} to keep your place")

        self.start(start_node)

        while self.conversation.is_active:
            try:
                user_input = self._prompt("\n").lower()
            except (EOFError, KeyboardInterrupt):
                click.echo(f"\n{Colors.BRIGHT_YELLOW}👋 Thanks for playing!{Colors.RESET}")
                self.conversation.exit_conversation()
                break

            if user_input in ("quit", "exit", "q"):
                click.echo(f"\n{Colors.BRIGHT_YELLOW}👋 Thanks for playing!{Colors.RESET}")
                self.conversation.exit_conversation()
                break
            elif user_input == "state":
                self.show_state()
                continue
            elif user_input == "save":
                self.save_game()
                continue
            elif user_input == "load":
                self.load_game()
                continue

            try:
                choice_num = int(user_input)
            except ValueError:
                click.echo(f"{Colors.RED}❌ Please enter a valid number or command.{Colors.RESET}")
                continue

            try:
                self.conversation.select_option(choice_num - 1)
            except ContractViolation:
                click.echo(f"{Colors.RED}❌ Invalid choice. Please enter a number from the list.{Colors.RESET}")
                continue
            self.scheduler.run_pending()

        click.echo(f"\n{Colors.BRIGHT_CYAN}{'=' * 70}{Colors.RESET}")
        click.echo(f"{Colors.BRIGHT_YELLOW}{Colors.BOLD}🎬 CONVERSATION OVER{Colors.RESET}")
        self.show_state()

    def show_state(self):
        """Display current game state"""
        click.echo(f"\n{Colors.BRIGHT_BLUE}{'=' * 50}{Colors.RESET}")
        click.echo(f"{Colors.BRIGHT_BLUE}📊 CURRENT GAME STATE{Colors.RESET}")

        click.echo("\n🚩 Flags:")
        flags = {k: v for k, v in self.state.all_flags().items() if v}
        for name, value in sorted(flags.items()):
            click.echo(f"  • {name}: {value}")
        if not flags:
            click.echo("  (none)")

        click.echo("\n🎒 Inventory:")
        for item in self.state.inventory:
            click.echo(f"  • {item}")
        if not self.state.inventory:
            click.echo("  (empty)")

        if self.state.asked_labels:
            click.echo(f"\n💬 Asked: {', '.join(sorted(self.state.asked_labels))}")
        if self.state.npc_states:
            states = ", ".join(f"{npc}={s}" for npc, s in sorted(self.state.npc_states.items()))
            click.echo(f"🧍 NPC states: {states}")

        click.echo(f"\n📍 Current Node: {self.conversation.current_node or 'None'}")
        click.echo("=" * 50)

    def save_game(self, save_name: Optional[str] = None) -> Path:
        """Save current game state and position"""
        self.saves_dir.mkdir(parents=True, exist_ok=True)

        if save_name is None:
            click.echo(f"\n{Colors.BRIGHT_CYAN}Enter save name (or press Enter for timestamp):{Colors.RESET}")
            save_name = self._prompt()
        if not save_name:
            save_name = datetime.now().strftime("%Y%m%d_%H%M%S")

        save_name = "".join(c for c in save_name if c.isalnum() or c in (" ", "-", "_")).rstrip()
        save_file = self.saves_dir / f"{save_name}.json"

        save_data = {
            "npc": self.npc_id,
            "node": self.conversation.current_node,
            "timestamp": datetime.now().isoformat(),
            "state": self.state.to_dict(),
        }
        with open(save_file, "w", encoding="utf-8") as f:
            json.dump(save_data, f, indent=2)

        click.echo(f"{Colors.BRIGHT_GREEN}💾 Game saved as '{save_name}'!{Colors.RESET}")
        return save_file

    def load_game(self, save_file: Optional[Path] = None) -> bool:
        """Restore a save and resume the conversation at its node"""
        if save_file is None:
            save_file = self._choose_save()
            if save_file is None:
                return False

        try:
            with open(save_file, "r", encoding="utf-8") as f:
                save_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            click.echo(f"{Colors.RED}❌ Error loading save: {e}{Colors.RESET}")
            return False

        self.conversation.exit_conversation()
        self.state.load(save_data.get("state"))
        click.echo(f"{Colors.BRIGHT_GREEN}💾 Game loaded from '{Path(save_file).stem}'!{Colors.RESET}")
        self.start(save_data.get("node"))
        return True

    def _choose_save(self) -> Optional[Path]:
        saves = sorted(self.saves_dir.glob("*.json")) if self.saves_dir.exists() else []
        if not saves:
            click.echo(f"{Colors.RED}❌ No save files found!{Colors.RESET}")
            return None

        click.echo(f"\n{Colors.BRIGHT_CYAN}💾 AVAILABLE SAVES{Colors.RESET}")
        for i, path in enumerate(saves, 1):
            click.echo(f"  {Colors.BRIGHT_YELLOW}[{i}]{Colors.RESET} {Colors.YELLOW}{path.stem}{Colors.RESET}")

        click.echo(f"\n{Colors.BRIGHT_CYAN}Select save to load (or 'cancel'):{Colors.RESET}")
        choice = self._prompt().lower()
        if choice == "cancel":
            return None
        try:
            choice_num = int(choice)
        except ValueError:
            click.echo(f"{Colors.RED}❌ Please enter a valid number!{Colors.RESET}")
            return None
        if not 1 <= choice_num <= len(saves):
            click.echo(f"{Colors.RED}❌ Invalid choice!{Colors.RESET}")
            return None
        return saves[choice_num - 1]


def select_dialogue_file(root: Path, suffix: str = ".txt", input_fn: Callable[[str], str] = input) -> Optional[Path]:
    """Interactive script selection from a dialogue directory"""
    files = sorted(root.glob(f"*{suffix}")) if root.exists() else []
    if not files:
        click.echo(f"{Colors.RED}❌ No dialogue files found in {root}!{Colors.RESET}")
        return None

    click.echo(f"\n{Colors.BRIGHT_CYAN}📚 AVAILABLE DIALOGUES{Colors.RESET}\n")
    for i, path in enumerate(files, 1):
        click.echo(f"  {Colors.BRIGHT_YELLOW}[{i}]{Colors.RESET} {path.stem}")

    try:
        choice = int(input_fn(f"\n{Colors.BRIGHT_MAGENTA}>{Colors.RESET} ").strip())
    except (ValueError, EOFError):
        return None
    if 1 <= choice <= len(files):
        return files[choice - 1]
    return None
