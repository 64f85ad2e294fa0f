"""
Core parser for NPC dialogue scripts

A script is a list of node sections::

    === start ===
    # npc_state: watching_tv
    zyx: Shh. The show is on.
    # requires: asked:tv_show
    zyx: You again.

    - Ask about the weather
    # id: weather
    # set: zyx_weather_talk
    nate: Nice night, huh?
    zyx: Indeed.
    > weather_followup

    - Leave
    nate: Goodbye.
    > END
"""

import logging
import re
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from ..config import DEFAULT_HERO_NAME
from ..errors import DialogueParseError
from .conditions import ClauseKind, Predicate, compile_condition
from .node import (
    END_TARGET,
    START_NODE,
    DialogueGraph,
    DialogueLine,
    DialogueNode,
    DialogueOption,
    IntroBlock,
    OptionActions,
    Speaker,
)

logger = logging.getLogger(__name__)

NODE_HEADER = re.compile(r"^===\s+(\w+)\s+===$")
SPEAKER_LINE = re.compile(r"^(\w+):\s*(.*)$")
ANNOTATION = re.compile(r"^#\s*(\w+)\s*(?::\s*(.*))?$")

NODE_TAGS = {"npc_state", "default", "id", "requires"}
OPTION_TAGS = {"requires", "set", "add", "remove", "once", "id"}

# (line number, stripped text)
NumberedLine = Tuple[int, str]


class DialogueParser:
    """Parser for NPC dialogue scripts"""

    def __init__(self, hero_name: str = DEFAULT_HERO_NAME):
        self.hero_name = hero_name.lower()
        self.dialogue: DialogueGraph = DialogueGraph()
        self._reset_tracking()

    def _reset_tracking(self):
        # Track what scripts read and write for the validator and stats
        self.flags_set: Set[str] = set()
        self.flags_checked: Set[str] = set()
        self.items_given: Set[str] = set()
        self.items_removed: Set[str] = set()
        self.items_checked: Set[str] = set()
        self.labels_defined: Set[str] = set()
        self.labels_checked: Set[str] = set()
        self.npcs_checked: Set[str] = set()

    # ── Diagnostics ───────────────────────────────────────────────────

    def _warn(self, line_number: int, message: str):
        text = f"Line {line_number}: {message}" if line_number else message
        self.dialogue.warnings.append(text)
        logger.warning(text)

    def _error(self, line_number: int, message: str):
        text = f"Line {line_number}: {message}" if line_number else message
        self.dialogue.errors.append(text)
        logger.warning(text)

    def _compile(self, text: str, line_number: int) -> Optional[Predicate]:
        """Compile a requires clause, attaching its warnings to this line"""
        warnings: List[str] = []
        predicate = compile_condition(text, warnings)
        for warning in warnings:
            self._warn(line_number, warning)
        if predicate.always_true:
            if not text.strip():
                self._warn(line_number, "Empty '# requires:' annotation")
            return None
        self._track_condition(predicate)
        return predicate

    def _track_condition(self, predicate: Predicate):
        for clause in predicate.clauses:
            if clause.kind is ClauseKind.FLAG:
                self.flags_checked.add(clause.target)
            elif clause.kind is ClauseKind.HAS:
                self.items_checked.add(clause.target)
            elif clause.kind is ClauseKind.ASKED:
                self.labels_checked.add(clause.target)
            elif clause.kind is ClauseKind.NPC_STATE:
                self.npcs_checked.add(clause.target)

    # ── Entry points ──────────────────────────────────────────────────

    def parse(self, text: Union[str, bytes]) -> DialogueGraph:
        """Compile script text into a dialogue graph.

        Malformed lines and sections are skipped and reported in
        ``graph.warnings`` / ``graph.errors``. Raises DialogueParseError only
        when the input is not a dialogue script at all.
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DialogueParseError(f"Dialogue script is not valid UTF-8: {e}") from e
        if not isinstance(text, str):
            raise DialogueParseError(f"Expected dialogue text, got {type(text).__name__}")

        graph = self.parse_lines(text.splitlines())
        graph.source = text
        return graph

    def parse_file(self, file_path: Path) -> DialogueGraph:
        """Parse a script file and return its dialogue graph"""
        if not file_path.exists():
            raise FileNotFoundError(f"Dialogue file not found: {file_path}")

        return self.parse(file_path.read_bytes())

    def parse_lines(self, lines: Iterable[str]) -> DialogueGraph:
        """Parse lines of script text"""
        self.dialogue = DialogueGraph()
        self._reset_tracking()

        sections: List[Tuple[str, int, List[NumberedLine]]] = []
        preamble: List[NumberedLine] = []
        for number, raw in enumerate(lines, 1):
            stripped = raw.strip()
            header = NODE_HEADER.match(stripped)
            if header:
                sections.append((header.group(1), number, []))
                continue
            if not stripped:
                continue
            if sections:
                sections[-1][2].append((number, stripped))
            else:
                preamble.append((number, stripped))

        if not sections:
            if preamble:
                raise DialogueParseError("No '=== node ===' sections found in dialogue script")
            return self.dialogue

        for number, text in preamble:
            if not text.startswith("#"):
                self._warn(number, f"Content before the first node is ignored: '{text}'")

        for key, header_line, body in sections:
            if not body:
                continue
            if key in self.dialogue.nodes:
                self._warn(header_line, f"Duplicate node '{key}' replaces the earlier definition")
            try:
                node = self._parse_node(key, header_line, body)
            except Exception as e:
                self._error(header_line, f"Dropping node '{key}': {e}")
                continue
            self.dialogue.nodes[key] = node

        return self.dialogue

    # ── Nodes ─────────────────────────────────────────────────────────

    def _parse_node(self, key: str, header_line: int, lines: List[NumberedLine]) -> DialogueNode:
        node_fields: Dict[str, Any] = {}
        i = 0

        # Node annotations: only the leading run of '#' lines
        while i < len(lines) and lines[i][1].startswith("#"):
            number, text = lines[i]
            self._parse_node_annotation(number, text, node_fields)
            i += 1

        intro_blocks, i = self._parse_intro(lines, i)

        options = []
        while i < len(lines):
            option, i = self._parse_option(lines, i)
            options.append(option)

        return DialogueNode(
            key=key,
            intro_blocks=tuple(intro_blocks),
            options=tuple(options),
            npc_state=node_fields.get("npc_state"),
            is_default=node_fields.get("default", False),
            label=node_fields.get("id"),
            condition=node_fields.get("requires"),
            line_number=header_line,
        )

    def _parse_node_annotation(self, number: int, text: str, node_fields: Dict[str, Any]):
        match = ANNOTATION.match(text)
        if not match:
            # Plain comment
            return
        tag, value = match.group(1).lower(), (match.group(2) or "").strip()

        if tag == "default" and match.group(2) is None:
            node_fields["default"] = True
        elif tag == "npc_state" and value:
            node_fields["npc_state"] = value
        elif tag == "id" and value:
            node_fields["id"] = value
            self.labels_defined.add(value)
        elif tag == "requires":
            node_fields["requires"] = self._compile(value, number)
        elif tag in NODE_TAGS:
            self._warn(number, f"Malformed node annotation '{text}'")
        elif tag in OPTION_TAGS:
            self._warn(number, f"Option annotation '{text}' appears before any option and is ignored")
        elif match.group(2) is not None:
            self._warn(number, f"Unknown annotation '# {tag}:'")

    def _make_line(self, speaker_name: str, text: str) -> DialogueLine:
        speaker = Speaker.HERO if speaker_name == self.hero_name else Speaker.NPC
        return DialogueLine(speaker_name=speaker_name, speaker=speaker, text=text)

    def _parse_intro(self, lines: List[NumberedLine], start: int) -> Tuple[List[IntroBlock], int]:
        """Parse intro blocks up to the first option line"""
        blocks: List[IntroBlock] = []
        condition: Optional[Predicate] = None
        block_line = lines[start][0] if start < len(lines) else 0
        block_lines: List[DialogueLine] = []
        conditional = False

        def close_block():
            # An unconditional block with no lines shows nothing, so it is dropped.
            # A conditional one is kept: it still wins over the blocks after it.
            if block_lines or conditional:
                blocks.append(IntroBlock(condition=condition, lines=tuple(block_lines), line_number=block_line))

        i = start
        while i < len(lines):
            number, text = lines[i]
            if text.startswith("-"):
                break

            if text.startswith("#"):
                match = ANNOTATION.match(text)
                if match and match.group(1).lower() == "requires":
                    close_block()
                    condition = self._compile((match.group(2) or "").strip(), number)
                    conditional = True
                    block_line = number
                    block_lines = []
                elif match and match.group(1).lower() in (NODE_TAGS | OPTION_TAGS):
                    self._warn(number, f"Annotation '{text}' is not allowed among intro lines")
                i += 1
                continue

            speaker_match = SPEAKER_LINE.match(text)
            if speaker_match:
                speaker_name = speaker_match.group(1).lower()
                line_text = speaker_match.group(2).strip()
                if line_text:
                    block_lines.append(self._make_line(speaker_name, line_text))
            else:
                self._warn(number, f"Unparseable intro line: '{text}'")
            i += 1

        close_block()
        return blocks, i

    # ── Options ───────────────────────────────────────────────────────

    def _parse_option(self, lines: List[NumberedLine], start: int) -> Tuple[DialogueOption, int]:
        """Parse an option block, returns the option and the next line index"""
        option_line, first = lines[start]
        text = first[1:].strip()
        if not text:
            self._warn(option_line, "Option has no display text")

        hero_line = ""
        npc_response: List[str] = []
        condition: Optional[Predicate] = None
        next_node: Optional[str] = None
        exit_conversation = False
        label: Optional[str] = None
        set_flags: List[str] = []
        add_items: List[str] = []
        remove_items: List[str] = []
        once = False

        i = start + 1
        while i < len(lines):
            number, line = lines[i]

            # Stop at next option
            if line.startswith("-"):
                break
            i += 1

            if line.startswith("#"):
                match = ANNOTATION.match(line)
                if not match:
                    continue
                tag, value = match.group(1).lower(), (match.group(2) or "").strip()
                if tag == "once" and match.group(2) is None:
                    once = True
                elif tag == "requires":
                    if condition is not None:
                        self._warn(number, "Option has more than one '# requires:'; the last one is used")
                    condition = self._compile(value, number)
                elif tag in ("set", "add", "remove", "id") and not value:
                    self._warn(number, f"'# {tag}:' annotation is missing its value")
                elif tag == "set" and not value.strip("."):
                    self._warn(number, f"Invalid flag name '{value}' in '# set:'; the annotation is ignored")
                elif tag == "set":
                    set_flags.append(value)
                    self.flags_set.add(value)
                elif tag == "add":
                    add_items.append(value)
                    self.items_given.add(value)
                elif tag == "remove":
                    remove_items.append(value)
                    self.items_removed.add(value)
                elif tag == "id":
                    label = value
                    self.labels_defined.add(value)
                elif tag in NODE_TAGS:
                    self._warn(number, f"Node annotation '{line}' inside an option is ignored")
                elif match.group(2) is not None:
                    self._warn(number, f"Unknown annotation '# {tag}:'")
                continue

            if line.startswith(">"):
                target = line[1:].strip()
                if not target:
                    self._warn(number, "Empty routing target '>'")
                elif target == END_TARGET:
                    exit_conversation = True
                else:
                    next_node = target
                continue

            speaker_match = SPEAKER_LINE.match(line)
            if speaker_match:
                speaker_name = speaker_match.group(1).lower()
                line_text = speaker_match.group(2).strip()
                if speaker_name == self.hero_name:
                    hero_line = line_text
                elif line_text:
                    npc_response.append(line_text)
                continue

            self._warn(number, f"Unparseable option line: '{line}'")

        actions = OptionActions(
            set_flags=tuple(set_flags),
            add_items=tuple(add_items),
            remove_items=tuple(remove_items),
            once=once,
        )
        option = DialogueOption(
            text=text,
            hero_line=hero_line,
            npc_response=tuple(npc_response) if npc_response else None,
            condition=condition,
            next_node=next_node,
            exit=exit_conversation,
            actions=None if actions.is_empty() else actions,
            label=label,
            line_number=option_line,
        )
        return option, i

    # ── Validation ────────────────────────────────────────────────────

    def validate(self) -> bool:
        """Validate the parsed dialogue graph"""
        valid = True
        nodes = self.dialogue.nodes

        if nodes and START_NODE not in nodes:
            self.dialogue.errors.append(f"No '{START_NODE}' node defined")
            valid = False

        # Check for undefined nodes in routes
        for node_id, node in nodes.items():
            for option in node.options:
                if option.next_node and not option.exit and option.next_node not in nodes:
                    self.dialogue.errors.append(
                        f"Line {option.line_number}: Undefined target node '{option.next_node}' in node '{node_id}'"
                    )
                    valid = False

        # Check for unreachable nodes
        reachable = self._find_reachable_nodes()
        for node_id in nodes:
            if node_id not in reachable:
                self.dialogue.warnings.append(f"Node '{node_id}' is unreachable from {START_NODE}")

        if nodes and not self._has_path_to_end():
            self.dialogue.warnings.append("No option leads to END - conversation can only end at a dead end")

        return valid and len(self.dialogue.errors) == 0

    def _entry_nodes(self) -> List[str]:
        entries = []
        if START_NODE in self.dialogue.nodes:
            entries.append(START_NODE)
        for node_id, node in self.dialogue.nodes.items():
            if (node.is_default or node.npc_state) and node_id not in entries:
                entries.append(node_id)
        return entries

    def _find_reachable_nodes(self) -> Set[str]:
        """Find all nodes reachable from start and from mood entry nodes"""
        visited: Set[str] = set()
        to_visit = deque(self._entry_nodes())

        while to_visit:
            current = to_visit.popleft()
            if current in visited or current not in self.dialogue.nodes:
                continue
            visited.add(current)

            for option in self.dialogue.nodes[current].options:
                if option.next_node and not option.exit and option.next_node not in visited:
                    to_visit.append(option.next_node)

        return visited

    def _has_path_to_end(self) -> bool:
        """Check if there's at least one option that ends the conversation"""
        return any(option.exit for node in self.dialogue.nodes.values() for option in node.options)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the parsed dialogue"""
        nodes = self.dialogue.nodes.values()
        options = [option for node in nodes for option in node.options]

        return {
            "nodes": len(self.dialogue.nodes),
            "intro_blocks": sum(len(node.intro_blocks) for node in nodes),
            "intro_lines": sum(len(block.lines) for node in nodes for block in node.intro_blocks),
            "options": len(options),
            "conditional_options": sum(1 for option in options if option.condition),
            "options_with_actions": sum(1 for option in options if option.actions),
            "exits": sum(1 for option in options if option.exit),
            "npc_lines": sum(len(option.npc_response or ()) for option in options),
            "errors": len(self.dialogue.errors),
            "warnings": len(self.dialogue.warnings),
            "known_flags": sorted(self.flags_set | self.flags_checked),
            "known_items": sorted(self.items_given | self.items_removed | self.items_checked),
            "known_labels": sorted(self.labels_defined | self.labels_checked),
        }


def parse(text: Union[str, bytes], hero_name: str = DEFAULT_HERO_NAME) -> DialogueGraph:
    """Compile script text with a fresh parser"""
    return DialogueParser(hero_name=hero_name).parse(text)
