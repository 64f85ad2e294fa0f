"""
NPC Dialogue - script parser, loader and conversation runtime for adventure game NPCs
"""

__version__ = "0.1.0"

from .config import EngineConfig
from .errors import ContractViolation, DialogueError, DialogueFetchError, DialogueParseError
from .export import DialogueExporter
from .loader import DialogueLoader
from .parser import DialogueGraph, DialogueParser
from .runtime import Conversation, ConversationListener
from .state import GameState

__all__ = [
    "DialogueParser",
    "DialogueGraph",
    "DialogueLoader",
    "DialogueExporter",
    "Conversation",
    "ConversationListener",
    "GameState",
    "EngineConfig",
    "DialogueError",
    "DialogueParseError",
    "DialogueFetchError",
    "ContractViolation",
]
