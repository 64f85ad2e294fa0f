"""Tests for EngineConfig."""

from pathlib import Path

from npc_dialogue.config import EngineConfig


class TestEngineConfig:
    def test_defaults(self, monkeypatch):
        for name in ("HERO_NAME", "MIN_LINE_MS", "MS_PER_CHAR", "SKIP_GUARD_MS", "ROOT", "SUFFIX"):
            monkeypatch.delenv(f"NPC_DIALOGUE_{name}", raising=False)
        config = EngineConfig.from_env()
        assert config == EngineConfig()
        assert config.hero_name == "nate"
        assert config.min_line_ms == 1500
        assert config.ms_per_char == 45
        assert config.skip_guard_ms == 150
        assert config.dialogues_root is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NPC_DIALOGUE_HERO_NAME", "Maya")
        monkeypatch.setenv("NPC_DIALOGUE_MIN_LINE_MS", "800")
        monkeypatch.setenv("NPC_DIALOGUE_ROOT", "/srv/dialogue")
        monkeypatch.setenv("NPC_DIALOGUE_SUFFIX", ".dlg")
        config = EngineConfig.from_env()
        assert config.hero_name == "maya"
        assert config.min_line_ms == 800
        assert config.dialogues_root == Path("/srv/dialogue")
        assert config.script_suffix == ".dlg"

    def test_bad_ints_fall_back(self, monkeypatch):
        monkeypatch.setenv("NPC_DIALOGUE_MIN_LINE_MS", "soon")
        monkeypatch.setenv("NPC_DIALOGUE_SKIP_GUARD_MS", "-5")
        config = EngineConfig.from_env()
        assert config.min_line_ms == 1500
        assert config.skip_guard_ms == 150

    def test_line_duration(self):
        config = EngineConfig()
        assert config.line_duration_ms("Hi") == 1500
        assert config.line_duration_ms("x" * 100) == 4500
        assert config.line_duration_ms("") == 1500

    def test_with_overrides(self):
        config = EngineConfig().with_overrides(ms_per_char=10)
        assert config.ms_per_char == 10
        assert config.hero_name == "nate"
