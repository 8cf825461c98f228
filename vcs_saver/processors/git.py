"""Git output processor: status, log, diff, show, reflog, branch listing."""

import re
from datetime import datetime

from ..classifier import FilterKind
from ..config import Limits
from ..models import (
    BookmarkEntry,
    BookmarkRecord,
    Conflict,
    FileChange,
    FileOp,
    LogEntry,
    LogRecord,
    OpLogEntry,
    OpLogRecord,
    RemoteRef,
    ShowRecord,
    StatusRecord,
    Unparsed,
)
from .base import Processor, format_file_changes, int_option, render_entries, truncate
from .diff import format_diff, format_show, parse_diff

# Long-format status labels, as printed under the "Changes ..." sections.
_LONG_STATUS = {
    "modified": FileOp.MODIFIED,
    "new file": FileOp.ADDED,
    "deleted": FileOp.DELETED,
    "renamed": FileOp.RENAMED,
    "copied": FileOp.COPIED,
    "typechange": FileOp.MODIFIED,
}
_UNMERGED_LABELS = {
    "both modified",
    "both added",
    "both deleted",
    "added by us",
    "added by them",
    "deleted by us",
    "deleted by them",
}
_UNMERGED_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}

_LONG_ENTRY_RE = re.compile(r"^(?P<label>[a-z ]+):\s+(?P<path>\S.*)$")
_SHORT_ENTRY_RE = re.compile(r"^(?P<code>[MADRCTU?! ]{2}) (?P<path>\S.*)$")
_SHORT_BRANCH_RE = re.compile(
    r"^## (?:No commits yet on |Initial commit on )?(?P<branch>[^.\s]+(?:\.(?!\.)[^.\s]*)*)"
    r"(?:\.\.\.(?P<upstream>\S+))?(?:\s+\[(?P<track>[^\]]+)\])?$"
)
_ON_BRANCH_RE = re.compile(r"^On branch (?P<branch>\S+)$")
_DETACHED_RE = re.compile(r"^HEAD detached (?:at|from) (?P<ref>\S+)$")
_UP_TO_DATE_RE = re.compile(r"^Your branch is up to date with '(?P<up>[^']+)'\.$")
_AHEAD_BEHIND_RE = re.compile(
    r"^Your branch is (?P<dir>ahead of|behind) '(?P<up>[^']+)' by (?P<n>\d+) commits?"
)
_DIVERGED_RE = re.compile(r"^Your branch and '(?P<up>[^']+)' have diverged")
_DIVERGED_COUNTS_RE = re.compile(r"^and have (?P<ahead>\d+) and (?P<behind>\d+) different commits")
_GONE_RE = re.compile(r"^Your branch is based on '(?P<up>[^']+)', but the upstream is gone\.$")
_STATUS_SKIP_RE = re.compile(
    r"^(Changes to be committed:|Changes not staged for commit:|Unmerged paths:|Untracked files:"
    r"|Ignored files:|nothing to commit|nothing added to commit|no changes added to commit"
    r"|You have unmerged paths\.|All conflicts fixed but you are still merging\."
    r"|No commits yet|Initial commit)"
)

_COMMIT_RE = re.compile(r"^commit (?P<hash>[0-9a-f]{7,64})(?:\s+\((?P<refs>[^)]*)\))?")
_ONELINE_RE = re.compile(r"^(?P<hash>[0-9a-f]{7,64})(?:\s+\((?P<refs>[^)]*)\))?(?:\s+(?P<msg>.*))?$")
_HEADER_FIELD_RE = re.compile(r"^(?P<field>Author|AuthorDate|Commit|CommitDate|Date|Merge):\s*(?P<value>.*)$")
_GIT_DATE_FORMATS = ("%a %b %d %H:%M:%S %Y %z", "%Y-%m-%d %H:%M:%S %z")

_REFLOG_RE = re.compile(r"^(?P<hash>[0-9a-f]{7,64})\s+(?:\((?P<refs>[^)]*)\)\s+)?(?P<sel>\S+@\{[^}]*\}):\s*(?P<msg>.*)$")

_BRANCH_RE = re.compile(
    r"^(?P<mark>[*+ ])\s(?P<name>\(.*?\)|\S+)"
    r"(?:\s+->\s+(?P<alias>\S+))?"
    r"(?:\s+(?P<hash>[0-9a-f]{7,64})(?:\s+\[(?P<track>[^\]]+)\])?(?:\s+(?P<msg>.*))?)?$"
)


def _compact_tracking(upstream: str, track: str | None) -> str:
    """'origin/main' + 'ahead 2, behind 1' -> 'origin/main +2 -1'."""
    if not track:
        return upstream
    parts = [upstream]
    for piece in track.split(","):
        piece = piece.strip()
        if piece.startswith("ahead "):
            parts.append(f"+{piece[len('ahead '):]}")
        elif piece.startswith("behind "):
            parts.append(f"-{piece[len('behind '):]}")
        elif piece:
            parts.append(piece)
    return " ".join(parts)


def _add_change(record: StatusRecord, op: FileOp, path: str) -> None:
    change = FileChange(op, path)
    if change not in record.file_changes:
        record.file_changes.append(change)


def parse_status(output: str) -> StatusRecord:
    """Parse long-format `git status` and short-format `git status -s[b]`."""
    record = StatusRecord()
    in_untracked = False
    diverged_from = None

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        m = _ON_BRANCH_RE.match(stripped)
        if m:
            record.branch = m.group("branch")
            continue
        m = _DETACHED_RE.match(stripped)
        if m:
            record.branch = f"(detached {m.group('ref')})"
            continue
        m = _UP_TO_DATE_RE.match(stripped)
        if m:
            record.tracking = m.group("up")
            continue
        m = _AHEAD_BEHIND_RE.match(stripped)
        if m:
            sign = "+" if m.group("dir") == "ahead of" else "-"
            record.tracking = f"{m.group('up')} {sign}{m.group('n')}"
            continue
        m = _DIVERGED_RE.match(stripped)
        if m:
            diverged_from = m.group("up")
            record.tracking = diverged_from
            continue
        m = _DIVERGED_COUNTS_RE.match(stripped)
        if m and diverged_from:
            record.tracking = f"{diverged_from} +{m.group('ahead')} -{m.group('behind')}"
            continue
        m = _GONE_RE.match(stripped)
        if m:
            record.tracking = f"{m.group('up')} gone"
            continue

        m = _SHORT_BRANCH_RE.match(stripped)
        if m:
            record.branch = m.group("branch")
            if m.group("upstream"):
                record.tracking = _compact_tracking(m.group("upstream"), m.group("track"))
            continue

        if _STATUS_SKIP_RE.match(stripped):
            in_untracked = stripped.startswith(("Untracked files:", "Ignored files:"))
            continue
        # Hints such as (use "git add <file>..." to update what will be committed)
        if stripped.startswith("(") and stripped.endswith(")"):
            continue

        m = _LONG_ENTRY_RE.match(stripped)
        if m and (m.group("label") in _LONG_STATUS or m.group("label") in _UNMERGED_LABELS):
            label, path = m.group("label"), m.group("path")
            if label in _UNMERGED_LABELS:
                _add_change(record, FileOp.CONFLICTED, path)
                record.conflicts.append(Conflict(path))
            else:
                _add_change(record, _LONG_STATUS[label], path)
            continue

        m = _SHORT_ENTRY_RE.match(line)
        if m:
            code, path = m.group("code"), m.group("path").strip('"')
            if code in _UNMERGED_CODES:
                _add_change(record, FileOp.CONFLICTED, path)
                record.conflicts.append(Conflict(path))
            elif code == "??":
                _add_change(record, FileOp.UNTRACKED, path)
            elif code != "!!":
                letter = code[0] if code[0] != " " else code[1]
                op = FileOp.MODIFIED if letter == "T" else FileOp(letter)
                _add_change(record, op, path)
            continue

        if in_untracked and line[:1] == "\t":
            _add_change(record, FileOp.UNTRACKED, stripped)
            continue

        record.unparsed.append(Unparsed(line))
    return record


def format_status(record: StatusRecord, limits: Limits, limit: int) -> str:
    lines = []
    if record.branch:
        head = f"* {record.branch}"
        if record.tracking:
            head += f" ({record.tracking})"
        if not record.has_changes:
            head += " clean"
        lines.append(head)
    lines.extend(format_file_changes(record, limit))
    lines.extend(u.text for u in record.unparsed)
    return "\n".join(lines)


def _split_refs(refs: str | None) -> list[str]:
    return [r.strip() for r in refs.split(",") if r.strip()] if refs else []


def _parse_git_date(value: str) -> datetime | None:
    for fmt in _GIT_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    return None


def _author_name(value: str) -> str:
    return re.sub(r"\s*<[^>]*>", "", value).strip()


def parse_log(output: str) -> LogRecord:
    """Parse medium-format (`commit <hash>` blocks) and `--oneline` git log."""
    record = LogRecord()
    current: LogEntry | None = None

    for line in output.splitlines():
        if not line.strip():
            continue

        m = _COMMIT_RE.match(line)
        if m:
            full = m.group("hash")
            current = LogEntry(graph_glyph="", short_id=full[:8], full_id=full)
            current.bookmarks = _split_refs(m.group("refs"))
            record.entries.append(current)
            continue

        if current is not None and current.full_id and line.startswith("    "):
            if not current.description:
                current.description = line.strip()
            continue

        fm = _HEADER_FIELD_RE.match(line)
        if fm and current is not None and current.full_id:
            field, value = fm.group("field"), fm.group("value")
            if field == "Author":
                current.author = _author_name(value)
            elif field in ("Date", "AuthorDate"):
                current.timestamp = _parse_git_date(value)
            continue

        om = _ONELINE_RE.match(line)
        if om:
            short = om.group("hash")
            current = LogEntry(graph_glyph="", short_id=short)
            current.bookmarks = _split_refs(om.group("refs"))
            current.description = om.group("msg") or ""
            record.entries.append(current)
            continue

        record.entries.append(Unparsed(line))
    return record


def _format_commit(entry: LogEntry, limits: Limits) -> str:
    parts = [entry.short_id]
    if entry.bookmarks:
        parts.append(f"({', '.join(entry.bookmarks)})")
    if limits.verbose:
        if entry.author:
            parts.append(entry.author)
        if entry.timestamp:
            parts.append(entry.timestamp.strftime("%Y-%m-%d %H:%M"))
    if entry.description:
        parts.append(truncate(entry.description, limits.max_message_chars))
    return " ".join(parts)


def format_log(record: LogRecord, limits: Limits, limit: int) -> str:
    return "\n".join(render_entries(record.entries, limit, lambda e: _format_commit(e, limits)))


def parse_show(output: str) -> ShowRecord:
    record = ShowRecord()
    lines = output.splitlines()
    diff_start = len(lines)
    for i, line in enumerate(lines):
        if line.startswith("diff --git"):
            diff_start = i
            break

    for line in lines[:diff_start]:
        if not line.strip():
            continue
        m = _COMMIT_RE.match(line)
        if m and not record.commit_id:
            record.commit_id = m.group("hash")
            record.bookmarks = _split_refs(m.group("refs"))
            continue
        fm = _HEADER_FIELD_RE.match(line)
        if fm and record.commit_id:
            if fm.group("field") == "Author":
                record.author = _author_name(fm.group("value"))
            continue
        if line.startswith("    ") and record.commit_id:
            if not record.description:
                record.description = line.strip()
            continue
        record.unparsed.append(Unparsed(line))

    record.diff = parse_diff("\n".join(lines[diff_start:]))
    return record


def parse_reflog(output: str, op_id_chars: int = 7) -> OpLogRecord:
    """`abc1234 HEAD@{0}: commit: message` lines, as op-log entries."""
    record = OpLogRecord()
    for line in output.splitlines():
        if not line.strip():
            continue
        m = _REFLOG_RE.match(line)
        if not m:
            record.entries.append(Unparsed(line))
            continue
        full = m.group("hash")
        record.entries.append(
            OpLogEntry(
                graph_glyph="",
                short_op_id=full[:op_id_chars],
                full_op_id=full,
                summary=m.group("msg"),
                args=m.group("sel"),
            )
        )
    return record


def _format_reflog_entry(entry: OpLogEntry, limits: Limits) -> str:
    op_id = entry.full_op_id if limits.verbose else entry.short_op_id
    summary = entry.summary if limits.verbose else truncate(entry.summary, limits.max_message_chars)
    return " ".join(p for p in (op_id, entry.args, summary) if p)


def format_reflog(record: OpLogRecord, limits: Limits, limit: int) -> str:
    return "\n".join(
        render_entries(record.entries, limit, lambda e: _format_reflog_entry(e, limits))
    )


def parse_branches(output: str) -> BookmarkRecord:
    """Plain, -v and -vv `git branch` listings (also with -a / -r)."""
    record = BookmarkRecord()
    for line in output.splitlines():
        if not line.strip():
            continue
        m = _BRANCH_RE.match(line)
        if not m:
            record.entries.append(Unparsed(line))
            continue
        entry = BookmarkEntry(name=m.group("name"), is_current=m.group("mark") == "*")
        if m.group("alias"):
            entry.remotes.append(RemoteRef(m.group("alias"), state="alias"))
        if m.group("hash"):
            entry.commit_id = m.group("hash")
        track = m.group("track")
        if track:
            upstream, _, state = track.partition(":")
            entry.remotes.append(RemoteRef(upstream.strip(), state=state.strip()))
        record.entries.append(entry)
    return record


def _format_branch(entry: BookmarkEntry) -> str:
    parts = ["*" if entry.is_current else " ", entry.name]
    for remote in entry.remotes:
        if remote.state == "alias":
            parts.append(f"-> {remote.remote}")
    if entry.commit_id:
        parts.append(entry.commit_id)
    for remote in entry.remotes:
        if remote.state != "alias":
            parts.append(f"[{_compact_tracking(remote.remote, remote.state)}]")
    return " ".join(parts)


def format_branches(record: BookmarkRecord, limits: Limits, limit: int) -> str:
    return "\n".join(render_entries(record.entries, limit, _format_branch, "branches"))


class GitProcessor(Processor):
    priority = 20
    binary = "git"

    @property
    def name(self) -> str:
        return "git"

    def entry_limit(self, kind: FilterKind, args, limits: Limits) -> int:
        if kind in (FilterKind.LOG, FilterKind.OP_LOG):
            requested = int_option(args, "-n", "--max-count")
            if requested is None:
                for arg in args:
                    if re.fullmatch(r"-\d+", arg):
                        requested = int(arg[1:])
            if requested is not None:
                return requested
        return super().entry_limit(kind, args, limits)

    def parse(self, kind: FilterKind, output: str, limits: Limits):
        if kind == FilterKind.STATUS:
            return parse_status(output)
        if kind == FilterKind.LOG:
            return parse_log(output)
        if kind == FilterKind.DIFF:
            return parse_diff(output)
        if kind == FilterKind.SHOW:
            return parse_show(output)
        if kind == FilterKind.OP_LOG:
            return parse_reflog(output, limits.op_id_chars)
        if kind == FilterKind.BOOKMARK_LIST:
            return parse_branches(output)
        raise ValueError(f"git has no parser for {kind}")

    def format(self, kind: FilterKind, record, limits: Limits, limit: int) -> str:
        if kind == FilterKind.STATUS:
            return format_status(record, limits, limit)
        if kind == FilterKind.LOG:
            return format_log(record, limits, limit)
        if kind == FilterKind.DIFF:
            return format_diff(record, limits)
        if kind == FilterKind.SHOW:
            return format_show(record, limits)
        if kind == FilterKind.OP_LOG:
            return format_reflog(record, limits, limit)
        if kind == FilterKind.BOOKMARK_LIST:
            return format_branches(record, limits, limit)
        raise ValueError(f"git has no formatter for {kind}")
