"""Base class shared by the per-VCS processors."""

import re
from abc import ABC, abstractmethod

from ..classifier import FilterKind
from ..config import Limits
from ..models import Unparsed

ELLIPSIS = "…"


def truncate(text: str, max_chars: int) -> str:
    """Cut text to max_chars, ending with an ellipsis when something was dropped."""
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars - 1, 0)].rstrip() + ELLIPSIS


def more_marker(hidden: int, noun: str = "") -> str:
    suffix = f" {noun}" if noun else ""
    return f"{ELLIPSIS} {hidden} more{suffix}"


def render_entries(entries, limit: int, render, noun: str = "") -> list[str]:
    """Render up to `limit` parsed entries, keeping Unparsed lines in place.

    Unparsed lines after the cut are dropped along with the entries they sit
    between; a trailing marker says how many entries were hidden.
    """
    lines = []
    shown = 0
    total = 0
    for entry in entries:
        if isinstance(entry, Unparsed):
            if shown < limit:
                lines.append(entry.text)
            continue
        total += 1
        if shown < limit:
            lines.append(render(entry))
            shown += 1
    if total > limit:
        lines.append(more_marker(total - limit, noun))
    return lines


def format_file_changes(record, limit: int) -> list[str]:
    """`<op> <path>` lines and the conflict block of a StatusRecord."""
    lines = [f"{change.op.letter} {change.path}" for change in record.file_changes[:limit]]
    if len(record.file_changes) > limit:
        lines.append(more_marker(len(record.file_changes) - limit, "files"))
    if record.conflicts:
        lines.append(f"Conflicts: {len(record.conflicts)} files")
        for conflict in record.conflicts[:limit]:
            lines.append(f"{conflict.path} ({conflict.side_count}-sided)")
        if len(record.conflicts) > limit:
            lines.append(more_marker(len(record.conflicts) - limit, "conflicts"))
    return lines


def option_value(args, short: str | None, long: str | None) -> str | None:
    """Return the value of -n 5 / -n5 / --limit 5 / --limit=5 style options."""
    for i, arg in enumerate(args):
        if long and arg.startswith(long + "="):
            return arg.split("=", 1)[1]
        if arg in (short, long) and i + 1 < len(args):
            return args[i + 1]
        if short and arg.startswith(short) and len(arg) > len(short) and not arg.startswith("--"):
            return arg[len(short):]
    return None


def int_option(args, short: str | None, long: str | None) -> int | None:
    value = option_value(args, short, long)
    if value is None or not re.fullmatch(r"\d+", value):
        return None
    return int(value)


class Processor(ABC):
    """Parses and formats the read commands of one VCS binary.

    Subclasses set `binary` and `priority` and implement parse/format for
    each FilterKind they support.
    """

    priority: int = 50
    binary: str = ""

    @property
    @abstractmethod
    def name(self) -> str: ...

    def can_handle(self, binary: str) -> bool:
        return binary == self.binary

    def prepare_args(self, kind: FilterKind, args: list[str]) -> list[str]:
        """Arguments to actually run; lets a processor pin an output format."""
        return list(args)

    def entry_limit(self, kind: FilterKind, args, limits: Limits) -> int:
        if kind == FilterKind.OP_LOG:
            return limits.max_op_entries
        if kind == FilterKind.BOOKMARK_LIST:
            return limits.max_bookmarks
        if kind == FilterKind.STATUS:
            return limits.max_status_files
        return limits.max_log_entries

    @abstractmethod
    def parse(self, kind: FilterKind, output: str, limits: Limits):
        """Turn raw stdout into a record from vcs_saver.models."""

    @abstractmethod
    def format(self, kind: FilterKind, record, limits: Limits, limit: int) -> str:
        """Render a parsed record as compact text."""
