"""
Semantic validation for dialogue scripts with line-level reporting.

Uses DialogueParser for parsing, then cross-checks what the script reads
against what it writes.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import click

from ..errors import DialogueParseError
from ..parser.node import DialogueGraph
from ..parser.parser import DialogueParser
from ..state import normalize_flag_path


# ANSI color codes for terminal output
class Colors:
    RED = "\033[91m"
    YELLOW = "\033[93m"
    GREEN = "\033[92m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


LINE_PREFIX = re.compile(r"^Line (\d+): ")


@dataclass
class ValidationError:
    """Represents a validation issue with location info"""

    line_number: int
    severity: str  # 'error' or 'warning'
    message: str
    context: Optional[str] = None
    suggestion: Optional[str] = None


def _flag_key(name: str) -> str:
    return ".".join(normalize_flag_path(name))


class DialogueValidator:
    """Validator for dialogue scripts.

    Parser diagnostics are carried over as-is. On top of those it warns about
    flags that are read but never set, items that are checked but never
    given, and ``asked:`` labels that no option defines. Flags and items can
    also be granted by game code, so these stay warnings.
    """

    def __init__(self, file_path: Path, hero_name: Optional[str] = None):
        self.file_path = Path(file_path)
        self.hero_name = hero_name
        self.lines: List[str] = []
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationError] = []
        self.parser: Optional[DialogueParser] = None
        self.dialogue: Optional[DialogueGraph] = None

    def validate(self, report: bool = True) -> bool:
        """Run all checks. Returns True when there are no errors."""
        if not self.file_path.exists():
            self._add_error(0, f"File not found: {self.file_path}")
            if report:
                self._report_results()
            return False

        self.parser = DialogueParser(self.hero_name) if self.hero_name else DialogueParser()
        try:
            self.dialogue = self.parser.parse_file(self.file_path)
        except DialogueParseError as e:
            self._add_error(0, str(e))
            if report:
                self._report_results()
            return False

        self.lines = (self.dialogue.source or "").splitlines()
        self.parser.validate()
        self._convert_parser_issues()
        self._validate_semantic()

        if report:
            self._report_results()
        return len(self.errors) == 0

    def _convert_parser_issues(self):
        for error in self.dialogue.errors:
            self._add_error(*self._split_line(error))
        for warning in self.dialogue.warnings:
            self._add_warning(*self._split_line(warning))

    @staticmethod
    def _split_line(message: str):
        match = LINE_PREFIX.match(message)
        if match:
            return int(match.group(1)), message[match.end():]
        return 0, message

    def _validate_semantic(self):
        parser = self.parser

        flags_set = {_flag_key(flag) for flag in parser.flags_set}
        for flag in sorted(parser.flags_checked):
            if _flag_key(flag) not in flags_set:
                self._add_warning(
                    self._find_line(flag),
                    f"Flag '{flag}' is checked but never set in this script",
                    "Make sure game code sets it, or add '# set: {}' to an option".format(flag),
                )

        items_given = parser.items_given
        for item in sorted(parser.items_checked - items_given):
            self._add_warning(
                self._find_line(f"has:{item}"),
                f"Item '{item}' is checked but never given in this script",
            )

        for item in sorted(parser.items_removed - items_given):
            self._add_warning(
                self._find_line(item, "# remove"),
                f"Item '{item}' is removed but never given in this script",
            )

        for label in sorted(parser.labels_checked - parser.labels_defined):
            self._add_warning(
                self._find_line(f"asked:{label}"),
                f"Label '{label}' is checked with asked: but no option has '# id: {label}'",
            )

    def _find_line(self, token: str, prefix: str = "# requires") -> int:
        """First line starting with ``prefix`` that mentions ``token``"""
        pattern = re.compile(r"(?<![\w:.])" + re.escape(token) + r"(?![\w.])")
        for number, line in enumerate(self.lines, 1):
            stripped = line.strip()
            if stripped.startswith(prefix) and pattern.search(stripped):
                return number
        return 0

    def _context(self, line: int) -> Optional[str]:
        return self.lines[line - 1].rstrip() if 0 < line <= len(self.lines) else None

    def _add_error(self, line: int, message: str, suggestion: str = None):
        self.errors.append(ValidationError(line, "error", message, self._context(line), suggestion))

    def _add_warning(self, line: int, message: str, suggestion: str = None):
        self.warnings.append(ValidationError(line, "warning", message, self._context(line), suggestion))

    # ── Reporting ─────────────────────────────────────────────────────

    def _report_results(self):
        click.echo(f"\n{Colors.BOLD}{'=' * 80}{Colors.RESET}")
        click.echo(f"{Colors.BOLD}VALIDATION REPORT: {Colors.CYAN}{self.file_path.name}{Colors.RESET}")
        click.echo(f"{Colors.BOLD}{'=' * 80}{Colors.RESET}")

        if not self.errors and not self.warnings:
            click.echo(f"\n{Colors.GREEN}{Colors.BOLD}✅ VALIDATION PASSED - No issues found!{Colors.RESET}")
            self._print_statistics()
            return

        if self.errors:
            click.echo(f"\n{Colors.RED}{Colors.BOLD}❌ ERRORS ({len(self.errors)}):{Colors.RESET}")
            for error in sorted(self.errors, key=lambda e: e.line_number):
                self._print_issue(error, Colors.RED)

        if self.warnings:
            click.echo(f"\n{Colors.YELLOW}{Colors.BOLD}⚠️  WARNINGS ({len(self.warnings)}):{Colors.RESET}")
            for warning in sorted(self.warnings, key=lambda w: w.line_number):
                self._print_issue(warning, Colors.YELLOW)

        click.echo(f"\n{Colors.BOLD}{'=' * 80}{Colors.RESET}")
        error_text = f"{Colors.RED}{len(self.errors)} error(s){Colors.RESET}"
        warning_text = f"{Colors.YELLOW}{len(self.warnings)} warning(s){Colors.RESET}"
        click.echo(f"{Colors.BOLD}Summary:{Colors.RESET} {error_text}, {warning_text}")

        if self.errors:
            click.echo(f"{Colors.RED}{Colors.BOLD}❌ VALIDATION FAILED{Colors.RESET}")
        else:
            click.echo(f"{Colors.GREEN}{Colors.BOLD}✅ VALIDATION PASSED WITH WARNINGS{Colors.RESET}")

        self._print_statistics()

    def _print_issue(self, issue: ValidationError, color: str):
        where = f"Line {issue.line_number}" if issue.line_number else "File"
        click.echo(f"\n  {color}{Colors.BOLD}{where}{Colors.RESET} - {Colors.BOLD}{issue.message}{Colors.RESET}")
        if issue.context:
            click.echo(f"    {color}{issue.line_number:4d}{Colors.RESET} │ {issue.context}")
        if issue.suggestion:
            click.echo(f"    {Colors.CYAN}💡 Suggestion:{Colors.RESET} {issue.suggestion}")

    def _print_statistics(self):
        if self.parser is None or self.dialogue is None:
            return
        stats = self.parser.get_stats()
        click.echo(f"\n{Colors.BOLD}{Colors.BLUE}📊 STATISTICS:{Colors.RESET}")
        click.echo(f"  • Nodes: {Colors.CYAN}{stats['nodes']}{Colors.RESET}")
        click.echo(f"  • Options: {Colors.CYAN}{stats['options']}{Colors.RESET}")
        click.echo(f"  • Flags set: {Colors.CYAN}{len(self.parser.flags_set)}{Colors.RESET}")
        click.echo(f"  • Flags checked: {Colors.CYAN}{len(self.parser.flags_checked)}{Colors.RESET}")
        click.echo(f"  • Items given: {Colors.CYAN}{len(self.parser.items_given)}{Colors.RESET}")
        click.echo(f"  • Items checked: {Colors.CYAN}{len(self.parser.items_checked)}{Colors.RESET}")
        click.echo(f"  • Total lines: {Colors.CYAN}{len(self.lines)}{Colors.RESET}")
