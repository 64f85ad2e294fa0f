"""Tests for the dialogue script validator."""

from pathlib import Path
from tempfile import NamedTemporaryFile

from npc_dialogue.cli.validate_cmd import DialogueValidator


def create_temp_script(content: str) -> Path:
    """Create a temporary .txt script with the given content."""
    with NamedTemporaryFile(mode="w", suffix=".txt", delete=False, encoding="utf-8") as f:
        f.write(content)
        return Path(f.name)


def run_validator(content: str, **kwargs) -> DialogueValidator:
    path = create_temp_script(content)
    try:
        validator = DialogueValidator(path, **kwargs)
        validator.validate(report=False)
        return validator
    finally:
        path.unlink()


class TestValidatorBasic:
    """Test basic validator functionality."""

    def test_valid_simple_dialogue(self):
        """Test validation of a simple valid dialogue."""
        content = """
=== start ===
zyx: Greetings.
- Bye
nate: See you.
> END
"""
        validator = run_validator(content)
        assert validator.errors == []
        assert validator.warnings == []

    def test_missing_file(self):
        """Test validation of non-existent file."""
        validator = DialogueValidator(Path("/nonexistent/zyx.txt"))
        assert validator.validate(report=False) is False
        assert "File not found" in validator.errors[0].message

    def test_no_nodes_is_error(self):
        validator = run_validator("just prose\nwith no headers\n")
        assert len(validator.errors) == 1
        assert validator.errors[0].line_number == 0

    def test_undefined_node_reference(self):
        """Undefined routes are errors located on the option line."""
        content = """=== start ===
- Go somewhere
> nonexistent
"""
        validator = run_validator(content)
        assert len(validator.errors) == 1
        error = validator.errors[0]
        assert error.line_number == 2
        assert "nonexistent" in error.message
        assert error.context == "- Go somewhere"

    def test_missing_start(self):
        content = """=== hub ===
# default
- Bye
> END
"""
        validator = run_validator(content)
        assert any("start" in error.message for error in validator.errors)

    def test_result_matches_errors(self):
        path = create_temp_script("=== start ===\n- Go\n> nowhere\n")
        try:
            assert DialogueValidator(path).validate(report=False) is False
        finally:
            path.unlink()


class TestSemanticChecks:
    """Test cross-checks between what a script reads and writes."""

    def test_flag_checked_but_never_set(self):
        content = """=== start ===
- Ask
# requires: met_alien
nate: Hey again.
> END
"""
        validator = run_validator(content)
        assert len(validator.warnings) == 1
        warning = validator.warnings[0]
        assert "met_alien" in warning.message
        assert warning.line_number == 3
        assert warning.suggestion

    def test_flag_set_in_script(self):
        content = """=== start ===
- Meet
# set: misc.met_alien
> start
- Ask
# requires: met_alien
> END
"""
        validator = run_validator(content)
        assert not any("met_alien" in w.message for w in validator.warnings)

    def test_negated_flag_is_still_a_read(self):
        validator = run_validator("=== start ===\n- Hi\n# requires: !door_open\n> END\n")
        assert any("door_open" in w.message for w in validator.warnings)

    def test_item_checked_but_never_given(self):
        content = """=== start ===
- Use key
# requires: has:key
> END
"""
        validator = run_validator(content)
        assert any("Item 'key'" in w.message and w.line_number == 3 for w in validator.warnings)

    def test_item_removed_but_never_given(self):
        content = """=== start ===
- Drop it
# remove: fuse
> END
"""
        validator = run_validator(content)
        assert any("removed but never given" in w.message and w.line_number == 3 for w in validator.warnings)

    def test_item_given_in_script(self):
        content = """=== start ===
- Take
# add: key
> start
- Use key
# requires: has:key
# remove: key
> END
"""
        validator = run_validator(content)
        assert validator.warnings == []

    def test_asked_label_without_id(self):
        content = """=== start ===
- Follow up
# requires: asked:weather
> END
"""
        validator = run_validator(content)
        assert any("weather" in w.message for w in validator.warnings)

    def test_asked_label_with_id(self):
        content = """=== start ===
- Weather?
# id: weather
nate: Nice night.
- Follow up
# requires: asked:weather
> END
"""
        validator = run_validator(content)
        assert validator.warnings == []

    def test_warnings_do_not_fail_validation(self):
        path = create_temp_script("=== start ===\n- Hi\n# requires: met_alien\n> END\n")
        try:
            validator = DialogueValidator(path)
            assert validator.validate(report=False) is True
            assert validator.warnings
        finally:
            path.unlink()

    def test_custom_hero_name(self):
        content = "=== start ===\n- Hi\nmaya: Hello.\n> END\n"
        validator = run_validator(content, hero_name="maya")
        assert validator.errors == []
        assert validator.dialogue["start"].options[0].hero_line == "Hello."


class TestReport:
    """Test terminal reporting."""

    def test_report_lists_issues(self, capsys):
        path = create_temp_script("=== start ===\n- Go\n> nowhere\n")
        try:
            DialogueValidator(path).validate()
        finally:
            path.unlink()
        out = capsys.readouterr().out
        assert "VALIDATION REPORT" in out
        assert "VALIDATION FAILED" in out
        assert "nowhere" in out

    def test_report_passed(self, capsys):
        path = create_temp_script("=== start ===\n- Bye\n> END\n")
        try:
            assert DialogueValidator(path).validate() is True
        finally:
            path.unlink()
        out = capsys.readouterr().out
        assert "No issues found" in out
        assert "STATISTICS" in out
