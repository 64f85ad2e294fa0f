"""
Engine configuration.

Every value has a sensible default and can be overridden through
``NPC_DIALOGUE_*`` environment variables.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

ENV_PREFIX = "NPC_DIALOGUE_"

DEFAULT_HERO_NAME = "nate"
DEFAULT_MIN_LINE_MS = 1500
DEFAULT_MS_PER_CHAR = 45
DEFAULT_SKIP_GUARD_MS = 150
DEFAULT_SCRIPT_SUFFIX = ".txt"


def _get_int_env(name: str, default: int, minval: Optional[int] = None) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minval is not None and value < minval:
        return default
    return value


def _get_str_env(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class EngineConfig:
    """Tunables shared by the parser, loader and conversation runtime"""

    hero_name: str = DEFAULT_HERO_NAME
    min_line_ms: int = DEFAULT_MIN_LINE_MS
    ms_per_char: int = DEFAULT_MS_PER_CHAR
    skip_guard_ms: int = DEFAULT_SKIP_GUARD_MS
    dialogues_root: Optional[Path] = None
    script_suffix: str = DEFAULT_SCRIPT_SUFFIX

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from the environment, falling back to defaults.

        Recognised variables: NPC_DIALOGUE_HERO_NAME, NPC_DIALOGUE_MIN_LINE_MS,
        NPC_DIALOGUE_MS_PER_CHAR, NPC_DIALOGUE_SKIP_GUARD_MS,
        NPC_DIALOGUE_ROOT and NPC_DIALOGUE_SUFFIX.
        """
        root = _get_str_env("ROOT", None)
        return cls(
            hero_name=(_get_str_env("HERO_NAME", DEFAULT_HERO_NAME) or DEFAULT_HERO_NAME).lower(),
            min_line_ms=_get_int_env("MIN_LINE_MS", DEFAULT_MIN_LINE_MS, minval=0),
            ms_per_char=_get_int_env("MS_PER_CHAR", DEFAULT_MS_PER_CHAR, minval=0),
            skip_guard_ms=_get_int_env("SKIP_GUARD_MS", DEFAULT_SKIP_GUARD_MS, minval=0),
            dialogues_root=Path(root) if root else None,
            script_suffix=_get_str_env("SUFFIX", DEFAULT_SCRIPT_SUFFIX) or DEFAULT_SCRIPT_SUFFIX,
        )

    def with_overrides(self, **changes) -> "EngineConfig":
        return replace(self, **changes)

    def line_duration_ms(self, text: str) -> int:
        """How long a line stays on screen before auto-advancing"""
        return max(self.min_line_ms, len(text) * self.ms_per_char)
