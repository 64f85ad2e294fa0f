"""
Dialogue script parser and condition compiler
"""

from .conditions import ALWAYS, Clause, ClauseKind, Predicate, compile_condition
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
from .parser import DialogueParser, parse

__all__ = [
    "DialogueParser",
    "parse",
    "compile_condition",
    "Predicate",
    "Clause",
    "ClauseKind",
    "ALWAYS",
    # Graph dataclasses
    "DialogueGraph",
    "DialogueNode",
    "DialogueOption",
    "DialogueLine",
    "IntroBlock",
    "OptionActions",
    "Speaker",
    "START_NODE",
    "END_TARGET",
]
