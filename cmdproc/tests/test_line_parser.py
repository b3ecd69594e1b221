from __future__ import annotations

import pytest

from cmdproc.command_shell import ParsedCommand, parse_line


def test_parse_line_splits_name_and_arguments() -> None:
    parsed = parse_line("help ls pwd")

    assert parsed.name == "help"
    assert parsed.args == ["ls", "pwd"]
    assert not parsed.is_empty


def test_parse_line_preserves_case_of_name() -> None:
    assert parse_line("HeLp").name == "HeLp"


def test_parse_line_without_arguments_has_empty_args() -> None:
    parsed = parse_line("PWD")

    assert parsed == ParsedCommand(name="PWD", args=[])


@pytest.mark.parametrize("line", ["", " ", "   \t  ", "\n", "\t\r\n"])
def test_blank_lines_parse_to_noop(line: str) -> None:
    parsed = parse_line(line)

    assert parsed.is_empty
    assert parsed.name is None
    assert parsed.args == []


def test_whitespace_runs_are_single_separators() -> None:
    parsed = parse_line("  ls\t /tmp    /var  ")

    assert parsed.name == "ls"
    assert parsed.args == ["/tmp", "/var"]


def test_quotes_are_not_interpreted() -> None:
    parsed = parse_line('ps "foo bar"')

    assert parsed.args == ['"foo', 'bar"']
