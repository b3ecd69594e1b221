"""Host facilities used by the built-in commands: filesystem and process listing."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

logger = logging.getLogger("cmdproc.host")


class OsFamily(str, Enum):
    UNIX = "unix"
    WINDOWS = "windows"
    OTHER = "other"


def detect_os_family(platform: Optional[str] = None) -> OsFamily:
    """Classify *platform* (defaults to ``sys.platform``) into an :class:`OsFamily`."""

    platform = sys.platform if platform is None else platform
    if platform.startswith(("win", "cygwin", "msys")):
        return OsFamily.WINDOWS
    if platform.startswith(("linux", "darwin", "freebsd", "openbsd", "netbsd", "sunos", "aix")):
        return OsFamily.UNIX
    return OsFamily.OTHER


# ---------------------------------------------------------------------------
# Filesystem accessor
# ---------------------------------------------------------------------------


@dataclass
class DirectoryEntry:
    name: str
    is_dir: bool


@dataclass
class DirectoryListing:
    path: Path
    entries: List[DirectoryEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LocalFileSystem:
    def exists(self, path: Path) -> bool:
        try:
            path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except (OSError, ValueError) as exc:
            logger.warning("Unable to stat %s: %s", path, exc)
            return False
        return True

    def list_entries(self, path: Path) -> DirectoryListing:
        """Return the immediate children of *path* sorted by name.

        A path that is not a directory yields an empty listing. Errors raised
        while reading the directory are returned in ``error``.
        """

        listing = DirectoryListing(path=path)
        try:
            if not path.is_dir():
                return listing
            for item in sorted(path.iterdir(), key=lambda p: p.name):
                listing.entries.append(DirectoryEntry(name=item.name, is_dir=item.is_dir()))
        except OSError as exc:
            logger.warning("Unable to list %s: %s", path, exc)
            listing.entries = []
            listing.error = f"Unable to list {path}: {exc.strerror or exc}"
        return listing


class FileSystemAccessor(Protocol):
    def exists(self, path: Path) -> bool:
        ...

    def list_entries(self, path: Path) -> DirectoryListing:
        ...


# ---------------------------------------------------------------------------
# OS process lister
# ---------------------------------------------------------------------------


@dataclass
class ProcessListing:
    command: List[str] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProcessLister(Protocol):
    def list_processes(self, os_family: OsFamily) -> ProcessListing:
        ...


def process_listing_command(os_family: OsFamily) -> Optional[List[str]]:
    if os_family is OsFamily.UNIX:
        return ["ps", "-e"]
    if os_family is OsFamily.WINDOWS:
        windir = os.environ.get("windir") or os.environ.get("WINDIR") or r"C:\Windows"
        return [windir + "\\system32\\tasklist.exe"]
    return None


class SubprocessProcessLister:
    """Run the platform's process listing tool and collect its output lines.

    The call blocks until the tool exits; no timeout is applied.
    """

    def __init__(self, encoding: Optional[str] = None) -> None:
        self.encoding = encoding

    def list_processes(self, os_family: OsFamily) -> ProcessListing:
        args = process_listing_command(os_family)
        if args is None:
            return ProcessListing(error=f"Process listing is not supported on {os_family.value} systems")
        return self._run(args)

    def _run(self, args: Sequence[str]) -> ProcessListing:
        listing = ProcessListing(command=list(args))
        try:
            completed = subprocess.run(
                list(args),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding=self.encoding,
                errors="replace",
            )
        except FileNotFoundError:
            logger.error("Process listing executable not available: %s", args[0])
            listing.error = f"{args[0]} executable not available"
            return listing
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error("Failed to run %s: %s", " ".join(args), exc)
            listing.error = f"Failed to run {' '.join(args)}: {exc}"
            return listing

        listing.lines = completed.stdout.splitlines()
        if completed.returncode != 0:
            detail = completed.stderr.strip() or f"exit status {completed.returncode}"
            logger.warning("%s exited with %s", " ".join(args), completed.returncode)
            listing.error = f"{' '.join(args)} failed: {detail}"
        return listing
