"""Tests for the dialogue script parser."""

import pytest

from npc_dialogue.errors import DialogueParseError
from npc_dialogue.parser import (
    DialogueLine,
    DialogueNode,
    DialogueParser,
    IntroBlock,
    Speaker,
    compile_condition,
    parse,
)
from npc_dialogue.state import GameState

WEATHER_SCRIPT = """
=== start ===
- Ask about the weather
nate: Nice night, huh?
zyx: Indeed.
> weather_followup

- Leave
nate: Goodbye.
> END
"""


class TestBasicParsing:
    """Test basic parsing functionality."""

    def test_weather_scenario(self):
        """Test the two-option start node."""
        graph = parse(WEATHER_SCRIPT)

        assert list(graph.keys()) == ["start"]
        options = graph["start"].options
        assert len(options) == 2

        assert options[0].text == "Ask about the weather"
        assert options[0].hero_line == "Nice night, huh?"
        assert options[0].npc_response == ("Indeed.",)
        assert options[0].next_node == "weather_followup"
        assert options[0].exit is False

        assert options[1].text == "Leave"
        assert options[1].hero_line == "Goodbye."
        assert options[1].npc_response is None
        assert options[1].exit is True
        assert options[1].next_node is None

    def test_one_entry_per_section(self):
        """Every non-empty section becomes exactly one node."""
        content = """
=== start ===
zyx: Hi.
- Bye
> END
=== second ===
zyx: Again.
- Back
> start
=== third ===
- Out
> END
"""
        graph = parse(content)
        assert set(graph.keys()) == {"start", "second", "third"}
        assert len(graph) == 3

    def test_empty_section_is_dropped(self):
        content = """
=== start ===
- Bye
> END
=== empty ===


=== after ===
- Bye
> END
"""
        graph = parse(content)
        assert "empty" not in graph
        assert "after" in graph

    def test_whitespace_is_trimmed(self):
        content = "   === start ===   \n\t- Hello  \n   nate:   Hi there   \n  > END  "
        graph = parse(content)
        option = graph["start"].options[0]
        assert option.text == "Hello"
        assert option.hero_line == "Hi there"
        assert option.exit is True

    def test_empty_input_gives_empty_graph(self):
        graph = parse("")
        assert len(graph) == 0
        assert not graph.has_start


class TestOptions:
    """Test option block parsing."""

    def test_hero_only_option_has_null_response(self):
        graph = parse("=== start ===\n- Hi\nnate: Hello.\n")
        assert graph["start"].options[0].npc_response is None

    def test_empty_hero_line(self):
        graph = parse("=== start ===\n- Look around\nnate:\nzyx: What?\n")
        option = graph["start"].options[0]
        assert option.hero_line == ""
        assert option.npc_response == ("What?",)

    def test_last_hero_line_wins(self):
        graph = parse("=== start ===\n- Hi\nnate: First\nnate: Second\n")
        assert graph["start"].options[0].hero_line == "Second"

    def test_multiple_npc_lines(self):
        graph = parse("=== start ===\n- Hi\nzyx: One.\nzyx:\nzyx: Two.\n")
        assert graph["start"].options[0].npc_response == ("One.", "Two.")

    def test_speaker_is_case_insensitive(self):
        graph = parse("=== start ===\n- Hi\nNATE: Hello.\nZyx: Hey.\n")
        option = graph["start"].options[0]
        assert option.hero_line == "Hello."
        assert option.npc_response == ("Hey.",)

    def test_actions(self):
        content = """
=== start ===
- Take the crowbar
# set: took_crowbar
# set: story.armed
# add: crowbar
# remove: note
# once
# id: crowbar_q
nate: Mine now.
> END
"""
        option = parse(content)["start"].options[0]
        assert option.actions.set_flags == ("took_crowbar", "story.armed")
        assert option.actions.add_items == ("crowbar",)
        assert option.actions.remove_items == ("note",)
        assert option.actions.once is True
        assert option.label == "crowbar_q"

    def test_no_actions_is_none(self):
        option = parse("=== start ===\n- Hi\nnate: Hello.\n")["start"].options[0]
        assert option.actions is None

    def test_option_condition(self):
        content = "=== start ===\n- Use key\n# requires: has:key, !door_open\n> END\n"
        option = parse(content)["start"].options[0]
        state = GameState()
        assert option.is_visible(state) is False
        state.add_item("key")
        assert option.is_visible(state) is True

    def test_unknown_line_is_skipped_with_warning(self):
        content = "=== start ===\n- Hi\nthis is not valid\nnate: Hello.\n> END\n"
        graph = parse(content)
        option = graph["start"].options[0]
        assert option.hero_line == "Hello."
        assert option.exit is True
        assert any("Line 3" in w for w in graph.warnings)

    def test_dot_only_set_is_ignored_with_warning(self):
        content = "=== start ===\n- Go\n# set: .\n# set: story.ok\nnate: Going.\n> END\n"
        graph = parse(content)
        option = graph["start"].options[0]
        assert option.actions.set_flags == ("story.ok",)
        assert any(w.startswith("Line 3:") and "'.'" in w for w in graph.warnings)


class TestNodeAnnotations:
    """Test node-level annotations and intro blocks."""

    def test_node_annotations(self):
        content = """
=== watching ===
# npc_state: watching_tv
# default
# id: tv_node
# requires: !tv_broken
zyx: Shh.
- Leave
> END
"""
        node = parse(content)["watching"]
        assert node.npc_state == "watching_tv"
        assert node.is_default is True
        assert node.label == "tv_node"
        assert str(node.condition) == "!tv_broken"

    def test_requires_after_intro_starts_a_block(self):
        """A '# requires:' after a dialogue line is an intro block condition, not a node one."""
        content = """
=== start ===
zyx: Hello stranger.
# requires: asked:name
zyx: Hello again, Nate.
- Bye
> END
"""
        node = parse(content)["start"]
        assert node.condition is None
        assert len(node.intro_blocks) == 2
        assert node.intro_blocks[0].condition is None
        assert str(node.intro_blocks[1].condition) == "asked:name"

    def test_first_matching_conditional_block_wins(self):
        content = """
=== start ===
# npc_state: idle
zyx: placeholder
# requires: asked:name
zyx: Hello again.
# requires: !asked:name
zyx: Who are you?
nate: Nate.
- Bye
> END
"""
        node = parse(content)["start"]
        state = GameState()
        assert [line.text for line in node.intro_for(state)] == ["Who are you?", "Nate."]
        state.mark_asked_label("name")
        assert [line.text for line in node.intro_for(state)] == ["Hello again."]

    def test_unconditional_block_is_fallback(self):
        content = """
=== start ===
zyx: Shh. The show is on.
# requires: asked:tv_show
zyx: You again.
- Leave
> END
"""
        node = parse(content)["start"]
        state = GameState()
        assert [line.text for line in node.intro_for(state)] == ["Shh. The show is on."]
        state.mark_asked_label("tv_show")
        assert [line.text for line in node.intro_for(state)] == ["You again."]

    def test_no_matching_block_and_no_fallback(self):
        line = DialogueLine("zyx", Speaker.NPC, "Hello again.")
        block = IntroBlock(condition=compile_condition("asked:name"), lines=(line,))
        node = DialogueNode("start", intro_blocks=(block,))
        assert node.intro_for(GameState()) == ()

    def test_leading_requires_is_node_condition(self):
        content = """
=== start ===
# requires: asked:name
zyx: Hello again.
# requires: !asked:name
zyx: Who are you?
nate: Nate.
- Bye
> END
"""
        node = parse(content)["start"]
        assert str(node.condition) == "asked:name"
        assert len(node.intro_blocks) == 2
        assert node.intro_blocks[0].condition is None

    def test_conditional_intro_blocks(self):
        content = """
=== start ===
zyx: ...
# requires: asked:name
zyx: Hello again.
# requires: !asked:name
zyx: Who are you?
nate: Nate.
- Bye
> END
"""
        node = parse(content)["start"]
        state = GameState()
        assert [line.text for line in node.intro_for(state)] == ["Who are you?", "Nate."]

        assert len(node.intro_blocks) == 3
        second, third = node.intro_blocks[1], node.intro_blocks[2]
        assert second.matches(state) is False
        assert third.matches(state) is True
        assert [line.speaker for line in third.lines] == [Speaker.NPC, Speaker.HERO]

    def test_empty_intro_line_is_dropped(self):
        content = "=== start ===\nzyx:\nzyx: Hi.\n- Bye\n> END\n"
        node = parse(content)["start"]
        assert [line.text for line in node.intro_blocks[0].lines] == ["Hi."]

    def test_speaker_decided_at_parse_time(self):
        node = parse("=== start ===\nnate: Hm.\nzyx: Yes?\n- Bye\n> END\n")["start"]
        speakers = [line.speaker for line in node.intro_blocks[0].lines]
        assert speakers == [Speaker.HERO, Speaker.NPC]

    def test_custom_hero_name(self):
        parser = DialogueParser(hero_name="Maya")
        graph = parser.parse("=== start ===\n- Hi\nmaya: Hello.\nnate: Yo.\n")
        option = graph["start"].options[0]
        assert option.hero_line == "Hello."
        assert option.npc_response == ("Yo.",)


class TestErrorIsolation:
    """Malformed content never aborts the whole parse."""

    def test_bad_condition_does_not_drop_node(self):
        content = "=== start ===\n- Hi\n# requires: npc_state:broken\n> END\n"
        graph = parse(content)
        assert graph["start"].options[0].condition is None
        assert graph.warnings

    def test_failing_section_is_dropped(self, monkeypatch):
        """An exception inside one section drops only that node."""
        parser = DialogueParser()
        original = parser._parse_node

        def explode_on_bad(key, header_line, lines):
            if key == "bad":
                raise RuntimeError("boom")
            return original(key, header_line, lines)

        monkeypatch.setattr(parser, "_parse_node", explode_on_bad)
        graph = parser.parse("=== start ===\n- Hi\n> END\n=== bad ===\n- X\n=== good ===\n- Y\n> start\n")

        assert set(graph.keys()) == {"start", "good"}
        assert any("bad" in error for error in graph.errors)

    def test_no_sections_raises(self):
        with pytest.raises(DialogueParseError):
            parse("just some text\nwithout nodes")

    def test_invalid_utf8_raises(self):
        with pytest.raises(DialogueParseError):
            parse(b"\xff\xfe=== start ===")

    def test_non_text_raises(self):
        with pytest.raises(DialogueParseError):
            DialogueParser().parse(42)

    def test_duplicate_node_last_wins(self):
        graph = parse("=== start ===\n- One\n> END\n=== start ===\n- Two\n> END\n")
        assert graph["start"].options[0].text == "Two"
        assert any("Duplicate" in w for w in graph.warnings)


class TestValidation:
    """Test post-parse graph validation."""

    def test_valid_graph(self):
        parser = DialogueParser()
        parser.parse("=== start ===\n- Go\n> next\n=== next ===\n- Bye\n> END\n")
        assert parser.validate() is True

    def test_undefined_target(self):
        parser = DialogueParser()
        graph = parser.parse(WEATHER_SCRIPT)
        assert parser.validate() is False
        assert any("weather_followup" in error for error in graph.errors)

    def test_missing_start(self):
        parser = DialogueParser()
        graph = parser.parse("=== other ===\n# default\n- Bye\n> END\n")
        assert parser.validate() is False
        assert any("start" in error for error in graph.errors)

    def test_unreachable_node_warning(self):
        parser = DialogueParser()
        graph = parser.parse("=== start ===\n- Bye\n> END\n=== orphan ===\n- Bye\n> END\n")
        parser.validate()
        assert any("orphan" in w for w in graph.warnings)

    def test_mood_nodes_are_entry_points(self):
        parser = DialogueParser()
        graph = parser.parse("=== start ===\n- Bye\n> END\n=== angry ===\n# npc_state: angry\n- Bye\n> END\n")
        parser.validate()
        assert not any("angry" in w for w in graph.warnings)

    def test_no_exit_warning(self):
        parser = DialogueParser()
        graph = parser.parse("=== start ===\n- Loop\nnate: Again.\n")
        parser.validate()
        assert any("END" in w for w in graph.warnings)


class TestStats:
    """Test statistics gathering."""

    def test_get_stats(self):
        content = """
=== start ===
zyx: Hello.
- Take key
# requires: !has:key
# add: key
# set: took_key
> END
- Ask
# requires: asked:intro
zyx: Sure.
"""
        parser = DialogueParser()
        parser.parse(content)
        stats = parser.get_stats()

        assert stats["nodes"] == 1
        assert stats["intro_lines"] == 1
        assert stats["options"] == 2
        assert stats["conditional_options"] == 2
        assert stats["options_with_actions"] == 1
        assert stats["exits"] == 1
        assert stats["known_items"] == ["key"]
        assert stats["known_flags"] == ["took_key"]
        assert stats["known_labels"] == ["intro"]
