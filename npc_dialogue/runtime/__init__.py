"""
Conversation runtime and turn schedulers
"""

from .conversation import (
    Conversation,
    ConversationListener,
    ConversationPhase,
    VisibleOption,
    choose_entry_node,
)
from .scheduling import AsyncioScheduler, ManualScheduler, Scheduler

__all__ = [
    "Conversation",
    "ConversationListener",
    "ConversationPhase",
    "VisibleOption",
    "choose_entry_node",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
]
