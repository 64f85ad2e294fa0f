"""
Conversation runtime - plays a dialogue graph against the game state.

A conversation walks intro lines, waits for a choice, applies the choice's
actions, plays the hero line and the NPC response, then exits, jumps to the
next node or shows the current menu again. Every line is a timed turn driven
by an injected scheduler, so nothing here blocks.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from ..config import EngineConfig
from ..errors import ContractViolation
from ..parser.node import START_NODE, DialogueGraph, DialogueLine, DialogueOption, Speaker
from .scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ConversationPhase(Enum):
    IDLE = "idle"
    PLAYING_INTRO = "playing_intro"
    AWAITING_CHOICE = "awaiting_choice"
    PLAYING_HERO_LINE = "playing_hero_line"
    PLAYING_NPC_RESPONSE = "playing_npc_response"


@dataclass(frozen=True)
class VisibleOption:
    """An option as shown in the menu. ``index`` is its position in the node."""

    index: int
    text: str
    used: bool
    option: DialogueOption


class ConversationListener:
    """Presentation hooks. Subclass and override what you need."""

    def on_line(self, line: DialogueLine):
        pass

    def on_line_cleared(self, line: DialogueLine):
        pass

    def on_options(self, options: List[VisibleOption]):
        pass

    def on_options_hidden(self):
        pass

    def on_freeze_player(self, frozen: bool):
        pass

    def on_conversation_end(self):
        pass


def npc_id_of(npc: Any) -> Optional[str]:
    """NPCs may be passed as an id string, a dict or an object with ``id``"""
    if npc is None or isinstance(npc, str):
        return npc
    if isinstance(npc, dict):
        return npc.get("id")
    return getattr(npc, "id", None)


def choose_entry_node(graph: DialogueGraph, state, npc_id: Optional[str]) -> str:
    """Pick the node a conversation with ``npc_id`` should open on.

    The first node tagged with the NPC's current state wins, then the
    ``# default`` node, then ``start``. Node-level conditions must hold.
    """
    npc_state = state.get_npc_state(npc_id) if npc_id else None

    def allowed(node) -> bool:
        return node.condition is None or node.condition.evaluate(state)

    if npc_state:
        for key, node in graph.items():
            if node.npc_state == npc_state and allowed(node):
                return key
    for key, node in graph.items():
        if node.is_default and allowed(node):
            return key
    return START_NODE


class Conversation:
    """Drives one NPC conversation at a time"""

    def __init__(
        self,
        state,
        scheduler: Scheduler,
        listener: Optional[ConversationListener] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.state = state
        self.scheduler = scheduler
        self.listener = listener or ConversationListener()
        self.config = config or EngineConfig()

        self._phase = ConversationPhase.IDLE
        self._graph: Optional[DialogueGraph] = None
        self._npc: Any = None
        self._npc_id: Optional[str] = None
        self._node_key: Optional[str] = None
        self._options: List[VisibleOption] = []
        self._used: Set[Tuple[str, int]] = set()

        # The line in flight
        self._line: Optional[DialogueLine] = None
        self._line_started: float = 0.0
        self._timer: Optional[TimerHandle] = None
        self._on_line_done: Optional[Callable[[], None]] = None

    # ── Properties ────────────────────────────────────────────────────

    @property
    def phase(self) -> ConversationPhase:
        return self._phase

    @property
    def is_active(self) -> bool:
        return self._phase is not ConversationPhase.IDLE

    @property
    def npc(self) -> Any:
        return self._npc

    @property
    def graph(self) -> Optional[DialogueGraph]:
        return self._graph

    @property
    def current_node(self) -> Optional[str]:
        return self._node_key

    @property
    def current_options(self) -> List[VisibleOption]:
        return list(self._options)

    @property
    def current_line(self) -> Optional[DialogueLine]:
        return self._line

    def is_used(self, node_key: str, index: int) -> bool:
        return (node_key, index) in self._used

    # ── Entering ──────────────────────────────────────────────────────

    def enter_conversation(self, npc: Any, graph: Optional[DialogueGraph], start_node: Optional[str] = None):
        if graph is None:
            raise ContractViolation("enter_conversation() needs a dialogue graph")
        if self.is_active:
            raise ContractViolation(f"Already talking to {self._npc_id!r}")

        self._npc = npc
        self._npc_id = npc_id_of(npc)
        self._graph = graph
        self._used = set()
        self._phase = ConversationPhase.PLAYING_INTRO
        logger.debug("Entering conversation with %s", self._npc_id)

        self.listener.on_freeze_player(True)
        self._enter_node(start_node or START_NODE)

    def _enter_node(self, node_key: str):
        node = self._graph.get(node_key)
        if node is None:
            logger.warning("Dialogue node '%s' not found for %s, ending conversation", node_key, self._npc_id)
            self.exit_conversation()
            return

        self._node_key = node_key
        intro = node.intro_for(self.state)
        if not intro:
            self._show_options(node_key)
            return

        self._phase = ConversationPhase.PLAYING_INTRO
        self._play_lines(list(intro), lambda: self._show_options(node_key))

    # ── Menu ──────────────────────────────────────────────────────────

    def _is_spent(self, node_key: str, index: int, option: DialogueOption) -> bool:
        # "# once" options disappear after they have been picked
        if not (option.actions and option.actions.once and self._npc_id):
            return False
        return self.state.has_chosen_once(self._npc_id, node_key, index)

    def show_dialogue_options(self, node_key: str):
        """Show the menu of ``node_key`` again, e.g. after the state changed"""
        if not self.is_active:
            return
        if self._line is not None or self._phase in (
            ConversationPhase.PLAYING_HERO_LINE,
            ConversationPhase.PLAYING_NPC_RESPONSE,
        ):
            raise ContractViolation(f"Cannot show options while a line is playing (phase {self._phase.value})")
        self._show_options(node_key)

    def _show_options(self, node_key: str):
        node = self._graph.get(node_key)
        if node is None:
            logger.warning("Dialogue node '%s' not found for %s, ending conversation", node_key, self._npc_id)
            self.exit_conversation()
            return

        visible = [
            VisibleOption(index, option.text, self.is_used(node_key, index), option)
            for index, option in node.visible_options(self.state)
            if not self._is_spent(node_key, index, option)
        ]
        if not visible:
            logger.warning("No visible options in node '%s' for %s, ending conversation", node_key, self._npc_id)
            self.exit_conversation()
            return

        self._node_key = node_key
        self._options = visible
        self._phase = ConversationPhase.AWAITING_CHOICE
        self.listener.on_options(list(visible))

    # ── Choosing ──────────────────────────────────────────────────────

    def select_option(self, index: int):
        """Pick the ``index``-th entry of the menu currently shown"""
        if self._phase is not ConversationPhase.AWAITING_CHOICE:
            raise ContractViolation(f"No choice expected in phase {self._phase.value}")
        if not 0 <= index < len(self._options):
            raise ContractViolation(f"Option {index} out of range (0..{len(self._options) - 1})")
        chosen = self._options[index]
        self._choose(chosen.option, self._node_key, chosen.index)

    def handle_dialogue_choice(self, option: DialogueOption, node_key: str):
        """Pick an option object taken from the menu of ``node_key``"""
        if self._phase is not ConversationPhase.AWAITING_CHOICE:
            raise ContractViolation(f"No choice expected in phase {self._phase.value}")
        if node_key != self._node_key:
            raise ContractViolation(f"Node '{node_key}' is not the node on screen ('{self._node_key}')")
        for shown in self._options:
            if shown.option is option:
                self._choose(option, node_key, shown.index)
                return
        raise ContractViolation(f"Option '{option.text}' is not in the current menu")

    def _choose(self, option: DialogueOption, node_key: str, index: int):
        # Hide the menu before anything else so a second pick cannot land
        self._phase = ConversationPhase.PLAYING_HERO_LINE
        self._options = []
        self.listener.on_options_hidden()

        self._used.add((node_key, index))
        if option.label:
            self.state.mark_asked_label(option.label)
        self._apply_actions(option, node_key, index)

        logger.debug("%s chose '%s' in node '%s'", self.config.hero_name, option.text, node_key)
        hero_line = DialogueLine(self.config.hero_name, Speaker.HERO, option.hero_line)
        self._play_line(hero_line, lambda: self._after_hero_line(option, node_key))

    def _apply_actions(self, option: DialogueOption, node_key: str, index: int):
        actions = option.actions
        if actions is None:
            return
        if actions.once and self._npc_id:
            self.state.mark_once_chosen(self._npc_id, node_key, index)
        for flag in actions.set_flags:
            self.state.set_flag(flag, True)
        for item in actions.add_items:
            self.state.add_item(item)
        for item in actions.remove_items:
            self.state.remove_item(item)

    def _after_hero_line(self, option: DialogueOption, node_key: str):
        if not option.npc_response:
            self._after_exchange(option, node_key)
            return
        self._phase = ConversationPhase.PLAYING_NPC_RESPONSE
        response = DialogueLine(self._npc_id or "npc", Speaker.NPC, "\n".join(option.npc_response))
        self._play_line(response, lambda: self._after_exchange(option, node_key))

    def _after_exchange(self, option: DialogueOption, node_key: str):
        if option.exit:
            self.exit_conversation()
        elif option.next_node:
            self._enter_node(option.next_node)
        else:
            self._show_options(node_key)

    # ── Lines ─────────────────────────────────────────────────────────

    def _play_lines(self, lines: Sequence[DialogueLine], then: Callable[[], None]):
        if not lines:
            then()
            return
        self._play_line(lines[0], lambda: self._play_lines(lines[1:], then))

    def _play_line(self, line: DialogueLine, then: Callable[[], None]):
        if self._timer is not None:
            self._timer.cancel()
        self._line = line
        self._on_line_done = then
        self._line_started = self.scheduler.now()
        if line.text:
            self.listener.on_line(line)
            delay = self.config.line_duration_ms(line.text) / 1000.0
        else:
            delay = 0.0
        self._timer = self.scheduler.call_later(delay, self._finish_line)

    def _finish_line(self):
        line, then = self._line, self._on_line_done
        self._timer = None
        self._line = None
        self._on_line_done = None
        if line is not None and line.text:
            self.listener.on_line_cleared(line)
        if then is not None and self.is_active:
            then()

    def request_skip(self) -> bool:
        """Cut the current line short. Ignored right after the line starts."""
        if self._on_line_done is None or self._timer is None:
            return False
        elapsed_ms = (self.scheduler.now() - self._line_started) * 1000.0
        if elapsed_ms < self.config.skip_guard_ms:
            return False
        self._timer.cancel()
        self._finish_line()
        return True

    # ── Leaving ───────────────────────────────────────────────────────

    def exit_conversation(self):
        if not self.is_active:
            return
        logger.debug("Leaving conversation with %s", self._npc_id)

        if self._timer is not None:
            self._timer.cancel()
        line = self._line
        had_menu = bool(self._options)

        self._timer = None
        self._line = None
        self._on_line_done = None
        self._options = []
        self._node_key = None
        self._npc = None
        self._npc_id = None
        self._graph = None
        self._phase = ConversationPhase.IDLE

        if line is not None and line.text:
            self.listener.on_line_cleared(line)
        if had_menu:
            self.listener.on_options_hidden()
        self.listener.on_freeze_player(False)
        self.listener.on_conversation_end()
