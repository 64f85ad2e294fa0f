"""Exceptions raised by the dialogue engine."""


class DialogueError(Exception):
    """Base exception for the dialogue engine."""


class DialogueParseError(DialogueError):
    """Raised when script input cannot be compiled at all."""


class DialogueFetchError(DialogueError):
    """Raised when a dialogue script cannot be fetched."""


class ContractViolation(DialogueError):
    """Raised when the conversation runtime is driven incorrectly by its caller."""
