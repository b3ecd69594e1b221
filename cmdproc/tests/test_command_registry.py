from __future__ import annotations

import io
from pathlib import Path
from typing import List

import pytest

from cmdproc.command_shell import (
    Command,
    CommandRegistry,
    ControlSignal,
    DuplicateCommandError,
    SessionContext,
    build_registry,
    builtin_commands,
)


def _noop(context: SessionContext, args: List[str]) -> ControlSignal:
    return ControlSignal.CONTINUE


def _command(name: str) -> Command:
    return Command(name=name, description=f"{name} command", handler=_noop)


def test_builtin_registry_contains_all_commands() -> None:
    registry = build_registry()

    assert registry.names() == ["EXIT", "HELP", "LS", "PS", "PWD"]
    assert len(registry) == 5


@pytest.mark.parametrize("name", ["LS", "ls", "Ls", "lS"])
def test_lookup_is_case_insensitive(name: str) -> None:
    registry = build_registry()

    found = registry.lookup(name)

    assert found is not None
    assert found is registry.lookup("LS")
    assert name in registry


def test_every_registered_command_looks_up_to_itself() -> None:
    registry = build_registry()

    for cmd in registry.list_all():
        assert registry.lookup(cmd.name) is cmd


def test_lookup_of_unknown_name_returns_none() -> None:
    registry = build_registry()

    assert registry.lookup("FOO") is None
    assert "FOO" not in registry


def test_listing_order_ignores_registration_order() -> None:
    forward = CommandRegistry([_command("zeta"), _command("alpha"), _command("mid")])
    backward = CommandRegistry([_command("mid"), _command("alpha"), _command("zeta")])

    assert [c.name for c in forward.list_all()] == ["ALPHA", "MID", "ZETA"]
    assert [c.name for c in backward] == ["ALPHA", "MID", "ZETA"]


def test_command_names_are_normalized_to_uppercase() -> None:
    assert _command("cd").name == "CD"


def test_duplicate_names_fail_fast() -> None:
    with pytest.raises(DuplicateCommandError, match="LIST"):
        CommandRegistry([_command("list"), _command("List")])


def test_registry_has_no_public_registration_after_construction() -> None:
    registry = CommandRegistry([_command("list")])

    assert not hasattr(registry, "register")
    assert registry.names() == ["LIST"]


def test_build_registry_rejects_duplicate_builtins() -> None:
    commands = builtin_commands()

    with pytest.raises(DuplicateCommandError):
        build_registry(commands + [commands[0]])


def test_contains_rejects_non_strings() -> None:
    registry = build_registry()

    assert 42 not in registry


def test_print_help_defaults_to_description(tmp_path: Path) -> None:
    out = io.StringIO()
    registry = build_registry()
    context = SessionContext.create(registry, start_directory=tmp_path, stdout=out, stderr=io.StringIO())

    registry.lookup("LS").print_help(context)

    assert out.getvalue() == "Shows you the files in your current directory.\n"
