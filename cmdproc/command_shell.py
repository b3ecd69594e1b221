#!/usr/bin/env python3
"""Interactive command processor: line parser, command registry and dispatch loop."""

from __future__ import annotations

import argparse
import codecs
import io
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, TextIO

from cmdproc.host_access import (
    FileSystemAccessor,
    LocalFileSystem,
    OsFamily,
    ProcessLister,
    SubprocessProcessLister,
    detect_os_family,
)

PROMPT = "> "
MSG_COMMAND_NOT_FOUND = "Command not found"
MSG_DELIM = "=" * 42

DEFAULT_CONSOLE_ENCODING = "utf-8"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"

# tasklist session names; every tasklist row carries one of them.
RESERVED_PROCESS_FILTERS = ("Services", "Console")

logger = logging.getLogger("cmdproc.shell")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class ShellConfig:
    console_encoding: str = DEFAULT_CONSOLE_ENCODING
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ShellConfig":
        environ = os.environ if environ is None else environ
        encoding = environ.get("CMDPROC_CONSOLE_ENCODING") or DEFAULT_CONSOLE_ENCODING
        level = (environ.get("CMDPROC_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
        if level not in LOG_LEVELS:
            level = DEFAULT_LOG_LEVEL
        return cls(console_encoding=encoding, log_level=level)


def resolve_encoding(name: str) -> str:
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning("Unknown console encoding %r, using %s", name, DEFAULT_CONSOLE_ENCODING)
        return DEFAULT_CONSOLE_ENCODING


# ---------------------------------------------------------------------------
# Control signal and line parsing
# ---------------------------------------------------------------------------


class ControlSignal(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"


@dataclass
class ParsedCommand:
    name: Optional[str] = None
    args: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.name is None


def parse_line(line: str) -> ParsedCommand:
    """Split *line* on whitespace runs into a command name and its arguments.

    Blank input produces an empty :class:`ParsedCommand`. There is no quoting
    or escaping, so ``parse_line`` never fails.
    """

    tokens = line.split()
    if not tokens:
        return ParsedCommand()
    return ParsedCommand(name=tokens[0], args=tokens[1:])


def normalize_name(name: str) -> str:
    return name.upper()


# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------


@dataclass
class SessionContext:
    """State shared by every command invocation during one run."""

    current_directory: Path
    registry: "CommandRegistry"
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    filesystem: FileSystemAccessor = field(default_factory=LocalFileSystem)
    process_lister: ProcessLister = field(default_factory=SubprocessProcessLister)
    os_family: OsFamily = field(default_factory=detect_os_family)

    @classmethod
    def create(
        cls,
        registry: "CommandRegistry",
        *,
        start_directory: Optional[Path] = None,
        **kwargs: Any,
    ) -> "SessionContext":
        directory = Path.cwd() if start_directory is None else Path(start_directory).absolute()
        return cls(current_directory=directory, registry=registry, **kwargs)

    def write(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def error(self, text: str) -> None:
        print(text, file=self.stderr)

    def resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if path.is_absolute():
            return path
        return self.current_directory / path


# ---------------------------------------------------------------------------
# Commands and registry
# ---------------------------------------------------------------------------


Handler = Callable[[SessionContext, List[str]], ControlSignal]


@dataclass
class Command:
    name: str
    description: str
    handler: Handler
    long_help: Optional[str] = None

    def __post_init__(self) -> None:
        self.name = normalize_name(self.name)

    def help_text(self) -> str:
        return self.long_help or self.description

    def print_help(self, context: SessionContext) -> None:
        context.write(self.help_text())

    def execute(self, context: SessionContext, args: Sequence[str]) -> ControlSignal:
        return self.handler(context, list(args))


class CommandRegistryError(RuntimeError):
    """Raised when the command registry is misconfigured."""


class DuplicateCommandError(CommandRegistryError):
    pass


class CommandRegistry:
    def __init__(self, commands: Iterable[Command] = ()) -> None:
        self._commands: Dict[str, Command] = {}
        for command in commands:
            self._register(command)

    def _register(self, command: Command) -> None:
        key = normalize_name(command.name)
        if key in self._commands:
            raise DuplicateCommandError(f"Command already registered: {key}")
        self._commands[key] = command

    def lookup(self, name: str) -> Optional[Command]:
        return self._commands.get(normalize_name(name))

    def names(self) -> List[str]:
        return sorted(self._commands.keys())

    def list_all(self) -> List[Command]:
        return [self._commands[name] for name in self.names()]

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._commands

    def __iter__(self) -> Iterator[Command]:
        return iter(self.list_all())


def command(name: str, description: str, long_help: Optional[str] = None) -> Callable[[Handler], Handler]:
    def decorator(func: Handler) -> Handler:
        func.__command_definition__ = Command(
            name=name,
            description=description,
            handler=func,
            long_help=long_help,
        )
        return func

    return decorator


# ---------------------------------------------------------------------------
# Built-in command implementations
# ---------------------------------------------------------------------------


@command(
    name="HELP",
    description="Prints list of available commands",
    long_help=(
        "Prints list of available commands\n"
        "Usage: HELP [command ...]\n"
        "Without arguments lists every command; with arguments prints help for each one."
    ),
)
def help_command(context: SessionContext, args: List[str]) -> ControlSignal:
    if not args:
        context.write("Available commands:")
        context.write(MSG_DELIM)
        for cmd in context.registry.list_all():
            context.write(f"{cmd.name}: {cmd.description}")
        context.write(MSG_DELIM)
        return ControlSignal.CONTINUE

    for name in args:
        context.write(f"Help for command {name}:")
        context.write(MSG_DELIM)
        cmd = context.registry.lookup(name)
        if cmd is None:
            context.write(MSG_COMMAND_NOT_FOUND)
        else:
            cmd.print_help(context)
        context.write(MSG_DELIM)
    return ControlSignal.CONTINUE


def _print_listing(context: SessionContext, path: Path) -> None:
    listing = context.filesystem.list_entries(path)
    for entry in listing.entries:
        tag = "<DIR>" if entry.is_dir else "<FILE>"
        context.write(f"{tag}\t{entry.name}")
    if listing.error:
        context.error(listing.error)


@command(name="LS", description="Shows you the files in your current directory.")
def ls(context: SessionContext, args: List[str]) -> ControlSignal:
    if not args:
        _print_listing(context, context.current_directory)
        return ControlSignal.CONTINUE

    for raw in args:
        context.write(f"List of files for {raw}")
        context.write(MSG_DELIM)
        target = context.resolve_path(raw)
        if context.filesystem.exists(target):
            _print_listing(context, target)
            context.write(MSG_DELIM)
        else:
            context.error("Bad file path")
            context.error(MSG_DELIM)
    return ControlSignal.CONTINUE


@command(name="PWD", description="Allows you to know the directory in which you're located")
def pwd(context: SessionContext, _: List[str]) -> ControlSignal:
    context.write("Working directory:")
    context.write(MSG_DELIM)
    context.write(str(context.current_directory))
    context.write(MSG_DELIM)
    return ControlSignal.CONTINUE


_DIGITS = re.compile(r"[0-9]")


def process_line_matches(line: str, query: str) -> bool:
    """Return True when *line* without its digits contains *query*, ignoring case.

    A query naming a tasklist session column never matches.
    """

    if query in RESERVED_PROCESS_FILTERS:
        return False
    return query.lower() in _DIGITS.sub("", line).lower()


@command(
    name="PS",
    description="Allows you to view all the processes running on the machine",
    long_help=(
        "Allows you to view all the processes running on the machine\n"
        "Usage: PS [filter]\n"
        "With a filter only lines containing it are shown (case-insensitive, digits ignored)."
    ),
)
def ps(context: SessionContext, args: List[str]) -> ControlSignal:
    listing = context.process_lister.list_processes(context.os_family)
    query = args[0] if args else None
    for line in listing.lines:
        if query is None or process_line_matches(line, query):
            context.write(line)
    if listing.error:
        context.error(listing.error)
    return ControlSignal.CONTINUE


@command(name="EXIT", description="Exits from command processor")
def exit_command(context: SessionContext, _: List[str]) -> ControlSignal:
    context.write("Finishing command processor... done.")
    return ControlSignal.STOP


BUILTIN_HANDLERS: Sequence[Handler] = (help_command, ls, pwd, ps, exit_command)


def builtin_commands() -> List[Command]:
    return [handler.__command_definition__ for handler in BUILTIN_HANDLERS]


def build_registry(commands: Optional[Iterable[Command]] = None) -> CommandRegistry:
    return CommandRegistry(builtin_commands() if commands is None else commands)


# ---------------------------------------------------------------------------
# Dispatch loop
# ---------------------------------------------------------------------------


def open_console_input(encoding: str, stream: Optional[TextIO] = None) -> TextIO:
    stream = sys.stdin if stream is None else stream
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        return stream
    return io.TextIOWrapper(buffer, encoding=encoding, errors="replace")


class CommandProcessor:
    def __init__(
        self,
        context: SessionContext,
        stdin: Optional[TextIO] = None,
        prompt: str = PROMPT,
    ) -> None:
        self.context = context
        self.registry = context.registry
        self.stdin = sys.stdin if stdin is None else stdin
        self.prompt = prompt

    def dispatch(self, line: str) -> ControlSignal:
        parsed = parse_line(line)
        if parsed.is_empty:
            return ControlSignal.CONTINUE
        cmd = self.registry.lookup(parsed.name)
        if cmd is None:
            logger.debug("Unknown command: %s", parsed.name)
            self.context.write(MSG_COMMAND_NOT_FOUND)
            return ControlSignal.CONTINUE
        logger.debug("Dispatching %s args=%s", cmd.name, parsed.args)
        return cmd.execute(self.context, parsed.args)

    def read_line(self) -> Optional[str]:
        self.context.stdout.write(self.prompt)
        self.context.stdout.flush()
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def run(self) -> int:
        while True:
            try:
                line = self.read_line()
            except KeyboardInterrupt:
                self.context.write()
                continue
            if line is None:
                self.context.write()
                logger.info("End of input, leaving command processor")
                break
            if self.dispatch(line) is ControlSignal.STOP:
                break
        return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    args_list = list(sys.argv[1:] if argv is None else argv)
    config = ShellConfig.from_env()
    parser = argparse.ArgumentParser(prog="cmdproc", add_help=True)
    parser.add_argument(
        "--encoding",
        default=config.console_encoding,
        help="Character encoding of console input (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=config.log_level,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: %(default)s)",
    )
    parsed = parser.parse_args(args_list)

    logging.basicConfig(level=getattr(logging, parsed.log_level), format=LOG_FORMAT)
    encoding = resolve_encoding(parsed.encoding)

    registry = build_registry()
    context = SessionContext.create(registry)
    processor = CommandProcessor(context, stdin=open_console_input(encoding))
    logger.info("Command processor started in %s (%s input)", context.current_directory, encoding)
    return processor.run()


if __name__ == "__main__":
    sys.exit(main())
