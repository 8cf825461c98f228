"""Records produced by the parsers and consumed by the formatters and guard.

Every record is built fresh from one RawOutput and thrown away once the
compact text has been written.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class RawOutput:
    stdout: str
    stderr: str
    exit_status: int


@dataclass(frozen=True)
class Unparsed:
    """A line the parser could not interpret; formatters echo it verbatim."""

    text: str


@dataclass
class LogEntry:
    graph_glyph: str
    short_id: str
    commit_id: str = ""
    full_id: str | None = None
    author: str | None = None
    timestamp: datetime | None = None
    bookmarks: list[str] = field(default_factory=list)
    description: str = ""
    is_empty: bool = False
    is_conflicted: bool = False
    is_divergent: bool = False
    is_root: bool = False

    def __post_init__(self):
        if self.full_id is not None and not self.full_id.startswith(self.short_id):
            raise ValueError(f"short id {self.short_id!r} is not a prefix of {self.full_id!r}")


@dataclass
class LogRecord:
    entries: list = field(default_factory=list)  # LogEntry | Unparsed

    def unparsed_count(self) -> int:
        return sum(1 for e in self.entries if isinstance(e, Unparsed))


class FileOp(Enum):
    MODIFIED = "M"
    ADDED = "A"
    DELETED = "D"
    RENAMED = "R"
    COPIED = "C"
    CONFLICTED = "U"
    UNTRACKED = "?"

    @property
    def letter(self) -> str:
        return self.value


@dataclass(frozen=True)
class FileChange:
    op: FileOp
    path: str


@dataclass(frozen=True)
class Conflict:
    path: str
    side_count: int = 2


@dataclass
class StatusRecord:
    working_copy: LogEntry | None = None
    parents: list[LogEntry] = field(default_factory=list)
    file_changes: list[FileChange] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    branch: str | None = None
    tracking: str | None = None
    unparsed: list[Unparsed] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.file_changes or self.conflicts)

    def unparsed_count(self) -> int:
        return len(self.unparsed)


@dataclass(frozen=True)
class DiffStat:
    added: int = 0
    removed: int = 0
    binary: bool = False


@dataclass
class DiffHunk:
    """All hunks of one file: the stat plus the raw hunk lines."""

    file_path: str
    stat: DiffStat = field(default_factory=DiffStat)
    lines: list[str] = field(default_factory=list)
    truncated: bool = False
    note: str = ""


@dataclass
class DiffRecord:
    hunks: list[DiffHunk] = field(default_factory=list)
    unparsed: list[Unparsed] = field(default_factory=list)

    def unparsed_count(self) -> int:
        return len(self.unparsed)


@dataclass
class ShowRecord:
    change_id: str = ""
    commit_id: str = ""
    bookmarks: list[str] = field(default_factory=list)
    author: str | None = None
    description: str = ""
    diff: DiffRecord = field(default_factory=DiffRecord)
    unparsed: list[Unparsed] = field(default_factory=list)

    def unparsed_count(self) -> int:
        return self.diff.unparsed_count() + len(self.unparsed)


@dataclass
class OpLogEntry:
    graph_glyph: str
    short_op_id: str
    full_op_id: str
    user: str = ""
    relative_time: str = ""
    summary: str = ""
    args: str | None = None

    def __post_init__(self):
        if not self.full_op_id.startswith(self.short_op_id):
            raise ValueError(f"op id {self.short_op_id!r} is not a prefix of {self.full_op_id!r}")


@dataclass
class OpLogRecord:
    entries: list = field(default_factory=list)  # OpLogEntry | Unparsed

    def unparsed_count(self) -> int:
        return sum(1 for e in self.entries if isinstance(e, Unparsed))


@dataclass(frozen=True)
class RemoteRef:
    remote: str
    change_id: str = ""
    commit_id: str = ""
    state: str = ""


@dataclass
class BookmarkEntry:
    name: str
    change_id: str = ""
    commit_id: str = ""
    remotes: list[RemoteRef] = field(default_factory=list)
    is_current: bool = False
    is_conflicted: bool = False
    is_deleted: bool = False


@dataclass
class BookmarkRecord:
    entries: list = field(default_factory=list)  # BookmarkEntry | Unparsed

    def unparsed_count(self) -> int:
        return sum(1 for e in self.entries if isinstance(e, Unparsed))


@dataclass(frozen=True)
class CompactResult:
    text: str
    degraded_to_raw: bool = False
    exit_code: int = 0
    stderr: str = ""
    verbatim: bool = False


def unparsed_ratio(record, raw_text: str) -> float:
    """Fraction of the non-blank raw lines the parser could not interpret."""
    total = sum(1 for line in raw_text.splitlines() if line.strip())
    if total == 0:
        return 0.0
    return record.unparsed_count() / total
