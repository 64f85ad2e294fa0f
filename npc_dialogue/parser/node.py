"""
Dialogue graph classes
"""

from dataclasses import dataclass, field
from enum import Enum
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .conditions import Predicate

END_TARGET = "END"
START_NODE = "start"


class Speaker(Enum):
    """Who delivers a line, decided once at parse time"""

    HERO = "hero"
    NPC = "npc"


@dataclass(frozen=True)
class DialogueLine:
    """A single spoken line"""

    speaker_name: str
    speaker: Speaker
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"speaker": self.speaker_name, "role": self.speaker.value, "text": self.text}


@dataclass(frozen=True)
class IntroBlock:
    """Lines played on entering a node when the block's condition holds"""

    condition: Optional[Predicate] = None
    lines: Tuple[DialogueLine, ...] = ()
    line_number: int = 0

    def matches(self, state) -> bool:
        return self.condition is None or self.condition.evaluate(state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": str(self.condition) if self.condition else None,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class OptionActions:
    """Side effects applied when an option is selected"""

    set_flags: Tuple[str, ...] = ()
    add_items: Tuple[str, ...] = ()
    remove_items: Tuple[str, ...] = ()
    once: bool = False

    def is_empty(self) -> bool:
        return not (self.set_flags or self.add_items or self.remove_items or self.once)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "set_flags": list(self.set_flags),
            "add_items": list(self.add_items),
            "remove_items": list(self.remove_items),
            "once": self.once,
        }


@dataclass(frozen=True)
class DialogueOption:
    """A player choice within a node"""

    text: str
    hero_line: str = ""
    npc_response: Optional[Tuple[str, ...]] = None
    condition: Optional[Predicate] = None
    next_node: Optional[str] = None
    exit: bool = False
    actions: Optional[OptionActions] = None
    label: Optional[str] = None
    line_number: int = 0

    def is_visible(self, state) -> bool:
        """Options without a condition are always visible"""
        return self.condition is None or self.condition.evaluate(state)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "text": self.text,
            "hero_line": self.hero_line,
            "npc_response": list(self.npc_response) if self.npc_response is not None else None,
            "condition": str(self.condition) if self.condition else None,
            "next_node": self.next_node,
            "exit": self.exit,
            "actions": self.actions.to_dict() if self.actions else None,
            "id": self.label,
        }


@dataclass(frozen=True)
class DialogueNode:
    """A named conversation state: intro lines plus a menu of options"""

    key: str
    intro_blocks: Tuple[IntroBlock, ...] = ()
    options: Tuple[DialogueOption, ...] = ()
    npc_state: Optional[str] = None
    is_default: bool = False
    label: Optional[str] = None
    condition: Optional[Predicate] = None
    line_number: int = 0

    def intro_for(self, state) -> Tuple[DialogueLine, ...]:
        """Lines of the first conditional intro block that holds.

        The unconditional block, if any, plays only when no conditional
        block matches.
        """
        fallback: Tuple[DialogueLine, ...] = ()
        for block in self.intro_blocks:
            if block.condition is None:
                fallback = block.lines
            elif block.condition.evaluate(state):
                return block.lines
        return fallback

    def visible_options(self, state) -> List[Tuple[int, DialogueOption]]:
        """(index, option) pairs that pass their condition, in file order"""
        return [(i, option) for i, option in enumerate(self.options) if option.is_visible(state)]

    def is_terminal(self) -> bool:
        """Check if this node has no options at all"""
        return len(self.options) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "key": self.key,
            "npc_state": self.npc_state,
            "default": self.is_default,
            "id": self.label,
            "requires": str(self.condition) if self.condition else None,
            "intro": [block.to_dict() for block in self.intro_blocks],
            "options": [option.to_dict() for option in self.options],
        }


@dataclass(eq=False)
class DialogueGraph(Mapping):
    """A compiled dialogue script: node key -> DialogueNode, plus parse diagnostics"""

    nodes: Dict[str, DialogueNode] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source: Optional[str] = None

    def __getitem__(self, key: str) -> DialogueNode:
        return self.nodes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def has_start(self) -> bool:
        return START_NODE in self.nodes

    def to_dict(self) -> Dict[str, Any]:
        return {key: node.to_dict() for key, node in self.nodes.items()}
