"""
Condition compiler for ``# requires:`` clauses.

A clause list is comma separated and every clause must hold::

    # requires: has:crowbar, !alien_talked, npc_state:alien:watching_tv

Supported clauses, checked in this order:

    asked:<label>            option with that id was chosen before
    !asked:<label>           ... was not
    !has:<item>              item is not in the inventory
    has:<item>               item is in the inventory
    npc_state:<npc>:<state>  NPC is in exactly that state
    visited:<room>           room has been visited
    !<flag>                  flag is falsy
    <flag>                   flag is truthy
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class ClauseKind(Enum):
    ASKED = "asked"
    HAS = "has"
    NPC_STATE = "npc_state"
    VISITED = "visited"
    FLAG = "flag"


@dataclass(frozen=True)
class Clause:
    """One atomic check against the state store"""

    kind: ClauseKind
    target: str
    negated: bool = False
    expected: Optional[str] = None  # npc_state only

    def evaluate(self, state) -> bool:
        if self.kind is ClauseKind.ASKED:
            result = bool(state.has_asked_label(self.target))
        elif self.kind is ClauseKind.HAS:
            result = bool(state.has_item(self.target))
        elif self.kind is ClauseKind.NPC_STATE:
            result = state.get_npc_state(self.target) == self.expected
        elif self.kind is ClauseKind.VISITED:
            result = bool(state.has_visited_room(self.target))
        else:
            result = bool(state.get_flag(self.target))
        return not result if self.negated else result

    def __str__(self) -> str:
        prefix = "!" if self.negated else ""
        if self.kind is ClauseKind.FLAG:
            return f"{prefix}{self.target}"
        if self.kind is ClauseKind.NPC_STATE:
            return f"{prefix}npc_state:{self.target}:{self.expected}"
        return f"{prefix}{self.kind.value}:{self.target}"


@dataclass(frozen=True)
class Predicate:
    """A compiled ``# requires:`` clause list. Holds only when every clause holds."""

    clauses: Tuple[Clause, ...] = ()

    def evaluate(self, state) -> bool:
        return all(clause.evaluate(state) for clause in self.clauses)

    def __call__(self, state) -> bool:
        return self.evaluate(state)

    @property
    def always_true(self) -> bool:
        return not self.clauses

    @property
    def source(self) -> str:
        """Canonical clause list; compiling it again gives an equal predicate"""
        return str(self)

    def __str__(self) -> str:
        return ", ".join(str(clause) for clause in self.clauses)


ALWAYS = Predicate()


def _split_prefixed(text: str, prefix: str) -> str:
    return text[len(prefix):].strip()


def parse_clause(text: str) -> Clause:
    """Parse a single atomic clause.

    Raises ValueError when the clause is recognisably malformed.
    """
    if text.startswith("asked:"):
        kind, negated, arg = ClauseKind.ASKED, False, _split_prefixed(text, "asked:")
    elif text.startswith("!asked:"):
        kind, negated, arg = ClauseKind.ASKED, True, _split_prefixed(text, "!asked:")
    elif text.startswith("!has:"):
        kind, negated, arg = ClauseKind.HAS, True, _split_prefixed(text, "!has:")
    elif text.startswith("has:"):
        kind, negated, arg = ClauseKind.HAS, False, _split_prefixed(text, "has:")
    elif text.startswith("npc_state:"):
        parts = _split_prefixed(text, "npc_state:").split(":")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ValueError(f"expected npc_state:<npc>:<state>, got '{text}'")
        return Clause(ClauseKind.NPC_STATE, parts[0].strip(), expected=parts[1].strip())
    elif text.startswith("visited:"):
        kind, negated, arg = ClauseKind.VISITED, False, _split_prefixed(text, "visited:")
    elif text.startswith("!") and ":" not in text:
        kind, negated, arg = ClauseKind.FLAG, True, text[1:].strip()
    else:
        kind, negated, arg = ClauseKind.FLAG, False, text

    if not arg:
        raise ValueError(f"missing name in '{text}'")
    if kind is ClauseKind.FLAG and not arg.strip("."):
        raise ValueError(f"empty flag path in '{text}'")
    return Clause(kind, arg, negated=negated)


def compile_condition(text: Optional[str], warnings: Optional[List[str]] = None) -> Predicate:
    """Compile a comma separated clause list into a Predicate.

    The state store is not touched here; clauses are evaluated each time the
    predicate is. Malformed clauses are skipped with a warning, appended to
    ``warnings`` when given.
    """
    clauses = []
    for raw in (text or "").split(","):
        piece = raw.strip()
        if not piece:
            continue
        try:
            clause = parse_clause(piece)
        except ValueError as e:
            message = f"Skipping malformed condition clause: {e}"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            continue
        if clause.kind is ClauseKind.FLAG and (":" in clause.target or "!" in clause.target):
            message = f"Condition clause '{piece}' is not a known form; treating it as a flag name"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
        clauses.append(clause)
    return Predicate(tuple(clauses))
