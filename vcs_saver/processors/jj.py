"""Jujutsu output processor: status, log, diff, show, op log, bookmark list."""

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

# Characters jj uses to draw graph columns around (not as) a node.
_GRAPH_CHARS = "│|├┤─╮╯╭╰┬┴┼╷╵\\/~ \t"
_UNICODE_NODES = "@○◆●◉×◌◇"
_ASCII_NODES = "ox*"

_NODE_RE = re.compile(
    rf"^[{re.escape(_GRAPH_CHARS)}]*"
    rf"(?P<glyph>[{_UNICODE_NODES}{_ASCII_NODES}])\s+(?P<rest>\S.*)$"
)
_CHANGE_ID_RE = re.compile(r"^(?P<id>[0-9a-z]{4,32})(?P<divergent>\?\?|/\d+)?(?=\s|$)")
_STRICT_CHANGE_ID_RE = re.compile(r"^[k-z]{4,32}$")
_HEX_RE = re.compile(r"^[0-9a-f]{6,40}$")
_EMAIL_RE = re.compile(r"^<?[^@\s]+@[^@\s]+\.[^@\s]+>?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:T.*)?$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}(?::\d{2})?(?:\.\d+)?$")
_TZ_RE = re.compile(r"^[+-]\d{2}:?\d{2}$")
_PAREN_RE = re.compile(r"\(([^()]*)\)")
_RELATIVE_AGO_RE = re.compile(r"\b\d+\s+\w+\s+ago\b")
_ROOT_RE = re.compile(r"(?<!\S)root\(\)(?!\S)")

_FLAG_MARKERS = {
    "empty": "is_empty",
    "conflict": "is_conflicted",
    "divergent": "is_divergent",
}

_STATUS_COMMIT_RE = re.compile(r"^(?P<label>Working copy|Parent commit)\s*(?:\((?P<sym>@-?)\))?\s*:\s*(?P<rest>.*)$")
_STATUS_CHANGE_RE = re.compile(r"^(?P<op>[MADRC?])\s+(?P<path>\S.*)$")
_CONFLICT_HEADER_RE = re.compile(r"^(?:Warning:\s*)?There are unresolved conflicts at these paths:")
_CONFLICT_LINE_RE = re.compile(r"^(?P<path>\S.*?)\s{2,}(?P<sides>\d+)-sided conflict.*$")
_STATUS_SKIP_RE = re.compile(
    r"^(The working copy (?:has no changes|is clean)|Working copy changes:|Untracked paths:"
    r"|Hint:|To resolve the conflicts|Then use `jj resolve`|Once the conflicts are resolved"
    r"|jj new \S+|jj squash)"
)

_OP_HEADER_RE = re.compile(
    rf"^[{re.escape(_GRAPH_CHARS)}]*"
    rf"(?P<glyph>[{_UNICODE_NODES}{_ASCII_NODES}])\s+"
    r"(?P<id>[0-9a-z]{3,128})\s+(?P<user>\S+@\S+)\s+(?P<when>.*)$"
)
_RELATIVE_TIME_RE = re.compile(
    r"\b(?P<num>\d+|an?)\s+(?P<unit>second|minute|hour|day|week|month|year)s?\s+ago\b"
)
_ABSOLUTE_TIME_RE = re.compile(r"(?P<date>\d{4}-\d{2}-\d{2})[ T](?P<time>\d{2}:\d{2})")
_UNIT_SHORT = {
    "second": "s",
    "minute": "m",
    "hour": "h",
    "day": "d",
    "week": "w",
    "month": "mo",
    "year": "y",
}

_BOOKMARK_RE = re.compile(r"^(?P<name>[^\s:(][^\s:]*)(?:\s+\((?P<state>[^)]*)\))?(?::\s*(?P<rest>.*))?$")
_REMOTE_RE = re.compile(r"^\s+@(?P<remote>[^\s:(]+)(?:\s+\((?P<state>[^)]*)\))?:\s*(?P<rest>.*)$")
_CONFLICT_TARGET_RE = re.compile(r"^\s+(?P<side>[+-])\s+(?P<rest>\S.*)$")

_SHOW_FIELD_RE = re.compile(
    r"^(?P<field>Commit ID|Change ID|Bookmarks|Branches|Tags|Author|Committer)\s*:\s*(?P<value>.*)$"
)


def _strip_graph(line: str) -> str:
    return line.lstrip(_GRAPH_CHARS)


def _split_flags(text: str, entry) -> str:
    """Consume leading parentheticals like (empty) (no description set).

    Sets the matching flags on entry and returns the remaining description.
    """
    text = text.strip()
    while text.startswith("("):
        m = _PAREN_RE.match(text)
        if not m:
            break
        attr = _FLAG_MARKERS.get(m.group(1))
        if attr:
            setattr(entry, attr, True)
        text = text[m.end():].strip()
    return text


def _parse_timestamp(date: str | None, time: str | None) -> datetime | None:
    if not date or not time:
        return None
    try:
        return datetime.strptime(f"{date} {time[:8]}", "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def _parse_node_header(glyph: str, rest: str) -> LogEntry | None:
    m = _CHANGE_ID_RE.match(rest)
    if not m:
        return None
    change_id = m.group("id")
    if glyph in _ASCII_NODES and not _STRICT_CHANGE_ID_RE.match(change_id):
        return None

    entry = LogEntry(graph_glyph=glyph, short_id=change_id)
    if m.group("divergent"):
        entry.is_divergent = True

    remainder = _RELATIVE_AGO_RE.sub(" ", rest[m.end():])
    remainder, roots = _ROOT_RE.subn(" ", remainder)
    entry.is_root = roots > 0
    for flag in _PAREN_RE.findall(remainder):
        attr = _FLAG_MARKERS.get(flag)
        if attr:
            setattr(entry, attr, True)
    tokens = _PAREN_RE.sub(" ", remainder).split()

    commit_index = None
    for i, token in enumerate(tokens):
        if _HEX_RE.match(token) and not _DATE_RE.match(token):
            commit_index = i

    date = time = None
    before = tokens if commit_index is None else tokens[:commit_index]
    for i, token in enumerate(before):
        # The author always comes first, so a bare user@host counts there.
        if _EMAIL_RE.match(token) or (i == 0 and "@" in token.lstrip("<@")):
            entry.author = token.strip("<>")
        elif _DATE_RE.match(token):
            date = token[:10]
            if "T" in token:
                time = token[11:19]
        elif _TIME_RE.match(token):
            time = token
        elif _TZ_RE.match(token):
            continue
        else:
            entry.bookmarks.append(token)
    entry.timestamp = _parse_timestamp(date, time)

    if commit_index is not None:
        entry.commit_id = tokens[commit_index]
        entry.description = " ".join(tokens[commit_index + 1:])
    if not (entry.commit_id or entry.author or entry.timestamp):
        # A glyph followed by a word is not enough; description lines can look like that.
        return None
    return entry


def parse_log(output: str) -> LogRecord:
    """Parse the default (graph) `jj log` output.

    Each node line opens an entry; the indented line below it carries the
    flags and the first line of the description.
    """
    record = LogRecord()
    current: LogEntry | None = None
    has_description_line = False

    for line in output.splitlines():
        if not line.strip():
            continue
        m = _NODE_RE.match(line)
        if m:
            entry = _parse_node_header(m.group("glyph"), m.group("rest"))
            if entry is not None:
                record.entries.append(entry)
                current = entry
                has_description_line = False
                continue

        text = _strip_graph(line)
        if not text or text == "(elided revisions)":
            continue
        if current is None:
            record.entries.append(Unparsed(line))
            continue
        if not has_description_line:
            description = _split_flags(text, current)
            if description and not current.description:
                current.description = description
            has_description_line = True

    return record


def _format_log_entry(entry: LogEntry, limits: Limits) -> str:
    parts = [entry.graph_glyph, entry.short_id]
    if entry.commit_id:
        parts.append(entry.commit_id)
    if entry.is_root:
        parts.append("root()")
    parts.extend(entry.bookmarks)
    if limits.verbose:
        if entry.author:
            parts.append(entry.author.split("@", 1)[0])
        if entry.timestamp:
            parts.append(entry.timestamp.strftime("%Y-%m-%d %H:%M"))
    if entry.is_conflicted:
        parts.append("(conflict)")
    if entry.is_divergent:
        parts.append("(divergent)")
    if entry.is_empty:
        parts.append("(empty)")
    if entry.description:
        parts.append(truncate(entry.description, limits.max_message_chars))
    return " ".join(p for p in parts if p)


def format_log(record: LogRecord, limits: Limits, limit: int) -> str:
    return "\n".join(
        render_entries(record.entries, limit, lambda e: _format_log_entry(e, limits))
    )


def _parse_commit_summary(glyph: str, text: str) -> LogEntry | None:
    """Parse `kntqzsqt d7439b06 master | (empty) Merge pull request #6`."""
    head, sep, tail = text.partition(" | ")
    if sep:
        tokens = head.split()
        description = tail
        bookmarks = tokens[2:]
    else:
        tokens = text.split(None, 2)
        description = tokens[2] if len(tokens) > 2 else ""
        bookmarks = []
    if len(tokens) < 2:
        return None
    m = _CHANGE_ID_RE.match(tokens[0])
    if not m or not re.fullmatch(r"[0-9a-z]{4,40}", tokens[1]):
        return None
    entry = LogEntry(graph_glyph=glyph, short_id=m.group("id"), commit_id=tokens[1])
    entry.is_divergent = bool(m.group("divergent"))
    entry.bookmarks = bookmarks
    entry.description = _split_flags(description, entry)
    if entry.description == "(no description set)":
        entry.description = ""
    return entry


def parse_status(output: str) -> StatusRecord:
    record = StatusRecord()
    in_conflicts = False
    conflicted_paths = set()

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        if _CONFLICT_HEADER_RE.match(stripped):
            in_conflicts = True
            continue

        m = _STATUS_COMMIT_RE.match(stripped)
        if m:
            in_conflicts = False
            # Older jj prints the label without the (@) / (@-) symbol.
            sym = m.group("sym") or ("@" if m.group("label") == "Working copy" else "@-")
            entry = _parse_commit_summary(sym, m.group("rest"))
            if entry is None:
                record.unparsed.append(Unparsed(line))
            elif sym == "@":
                record.working_copy = entry
            else:
                record.parents.append(entry)
            continue

        if in_conflicts:
            cm = _CONFLICT_LINE_RE.match(stripped)
            if cm:
                record.conflicts.append(Conflict(cm.group("path"), int(cm.group("sides"))))
                conflicted_paths.add(cm.group("path"))
                continue
            in_conflicts = False

        if _STATUS_SKIP_RE.match(stripped):
            continue

        fm = _STATUS_CHANGE_RE.match(stripped)
        if fm:
            record.file_changes.append(FileChange(FileOp(fm.group("op")), fm.group("path")))
            continue

        record.unparsed.append(Unparsed(line))

    # Flag conflicted paths in the change list too; their detail stays in conflicts.
    record.file_changes = [
        FileChange(FileOp.CONFLICTED, c.path) if c.path in conflicted_paths else c
        for c in record.file_changes
    ]
    return record


def _format_status_commit(entry: LogEntry, limits: Limits, is_parent: bool) -> str:
    parts = ["@-" if is_parent else "@", entry.short_id]
    if not is_parent or limits.verbose:
        parts.append(entry.commit_id)
    parts.extend(entry.bookmarks)
    if entry.is_conflicted:
        parts.append("(conflict)")
    if not is_parent:
        if entry.is_empty:
            parts.append("(empty)")
        if entry.description:
            parts.append(truncate(entry.description, limits.max_message_chars))
    return " ".join(parts)


def format_status(record: StatusRecord, limits: Limits, limit: int) -> str:
    lines = []
    if record.working_copy is not None:
        lines.append(_format_status_commit(record.working_copy, limits, is_parent=False))

    lines.extend(format_file_changes(record, limit))
    for parent in record.parents:
        lines.append(_format_status_commit(parent, limits, is_parent=True))
    lines.extend(u.text for u in record.unparsed)
    return "\n".join(lines)


def shorten_relative_time(text: str) -> str:
    """'3 minutes ago, lasted 3 milliseconds' -> '3m ago'."""
    m = _RELATIVE_TIME_RE.search(text)
    if m:
        num = m.group("num")
        if num in ("a", "an"):
            num = "1"
        return f"{num}{_UNIT_SHORT[m.group('unit')]} ago"
    m = _ABSOLUTE_TIME_RE.search(text)
    if m:
        return f"{m.group('date')} {m.group('time')}"
    return text.split(",", 1)[0].strip() or "?"


def parse_op_log(output: str, op_id_chars: int = 7) -> OpLogRecord:
    record = OpLogRecord()
    current: OpLogEntry | None = None

    for line in output.splitlines():
        if not line.strip():
            continue
        m = _OP_HEADER_RE.match(line)
        if m:
            full_id = m.group("id")
            current = OpLogEntry(
                graph_glyph=m.group("glyph"),
                short_op_id=full_id[:op_id_chars],
                full_op_id=full_id,
                user=m.group("user"),
                relative_time=shorten_relative_time(m.group("when")),
            )
            record.entries.append(current)
            continue

        text = _strip_graph(line)
        if not text:
            continue
        if current is None:
            record.entries.append(Unparsed(line))
            continue
        if text.startswith("args:"):
            current.args = text[len("args:"):].strip()
        elif not current.summary:
            current.summary = text
    return record


def _compact_summary(summary: str, limits: Limits) -> str:
    if limits.verbose:
        return summary
    words = summary.split()
    if len(words) > limits.op_summary_words:
        return " ".join(words[: limits.op_summary_words]) + " …"
    return truncate(summary, limits.max_message_chars)


def _format_op(entry: OpLogEntry, limits: Limits) -> str:
    op_id = entry.full_op_id if limits.verbose else entry.short_op_id
    parts = [entry.graph_glyph, op_id, entry.relative_time, _compact_summary(entry.summary, limits)]
    if limits.verbose and entry.args:
        parts.append(f"[{entry.args}]")
    return " ".join(p for p in parts if p)


def format_op_log(record: OpLogRecord, limits: Limits, limit: int) -> str:
    return "\n".join(render_entries(record.entries, limit, lambda e: _format_op(e, limits)))


def _target_ids(rest: str) -> tuple[str, str]:
    tokens = rest.split()
    if len(tokens) >= 2 and _CHANGE_ID_RE.match(tokens[0]) and _HEX_RE.match(tokens[1]):
        return tokens[0], tokens[1]
    return "", ""


def parse_bookmarks(output: str) -> BookmarkRecord:
    record = BookmarkRecord()
    current: BookmarkEntry | None = None

    for line in output.splitlines():
        if not line.strip():
            continue

        rm = _REMOTE_RE.match(line)
        if rm and current is not None:
            change_id, commit_id = _target_ids(rm.group("rest"))
            current.remotes.append(
                RemoteRef(rm.group("remote"), change_id, commit_id, rm.group("state") or "")
            )
            continue

        tm = _CONFLICT_TARGET_RE.match(line)
        if tm and current is not None and current.is_conflicted:
            change_id, commit_id = _target_ids(tm.group("rest"))
            if change_id:
                current.remotes.append(RemoteRef(tm.group("side"), change_id, commit_id, "conflict"))
                continue

        bm = None if line[:1].isspace() else _BOOKMARK_RE.match(line)
        if bm:
            state = bm.group("state") or ""
            current = BookmarkEntry(
                name=bm.group("name"),
                is_conflicted="conflict" in state,
                is_deleted="deleted" in state,
            )
            rest = bm.group("rest") or ""
            current.change_id, current.commit_id = _target_ids(rest)
            if not current.change_id and rest.strip() and not current.is_conflicted:
                record.entries.append(Unparsed(line))
                current = None
                continue
            # Older jj printed tracking inline: `main: abc def (tracked) @origin`
            inline = rest.split()[2:] if "(tracked)" in rest else []
            for token in inline:
                if token.startswith("@") and len(token) > 1:
                    current.remotes.append(
                        RemoteRef(token[1:], current.change_id, current.commit_id, "tracked")
                    )
            record.entries.append(current)
            continue

        record.entries.append(Unparsed(line))
    return record


def _format_bookmark(entry: BookmarkEntry) -> str:
    if entry.is_deleted:
        text = f"{entry.name} (deleted)"
    elif entry.is_conflicted:
        sides = " ".join(
            f"{r.remote}{r.change_id} {r.commit_id}" for r in entry.remotes if r.state == "conflict"
        )
        text = f"{entry.name} (conflicted): {sides}".rstrip()
    else:
        text = f"{entry.name}: {entry.change_id} {entry.commit_id}"

    same = []
    for remote in entry.remotes:
        if remote.state == "conflict":
            continue
        if remote.change_id == entry.change_id and remote.commit_id == entry.commit_id:
            same.append(f"@{remote.remote}")
        elif remote.change_id:
            state = f", {remote.state}" if remote.state else ""
            text += f" (tracked @{remote.remote}: {remote.change_id} {remote.commit_id}{state})"
        else:
            state = f": {remote.state}" if remote.state else ""
            text += f" (tracked @{remote.remote}{state})"
    if same:
        text += f" (tracked {' '.join(same)})"
    return text


def format_bookmarks(record: BookmarkRecord, limits: Limits, limit: int) -> str:
    return "\n".join(render_entries(record.entries, limit, _format_bookmark, "bookmarks"))


def parse_show(output: str) -> ShowRecord:
    record = ShowRecord()
    lines = output.splitlines()
    diff_start = len(lines)
    for i, line in enumerate(lines):
        if line.startswith("diff --git"):
            diff_start = i
            break

    description = []
    for line in lines[:diff_start]:
        m = _SHOW_FIELD_RE.match(line)
        if m:
            field, value = m.group("field"), m.group("value").strip()
            if field == "Commit ID":
                record.commit_id = value
            elif field == "Change ID":
                record.change_id = value
            elif field in ("Bookmarks", "Branches"):
                record.bookmarks.extend(value.split())
            elif field == "Author":
                record.author = re.sub(r"\s*<[^>]*>", "", value).strip()
            continue
        if line.startswith("    "):
            description.append(line.strip())
        elif line.strip():
            record.unparsed.append(Unparsed(line))
    record.description = next((d for d in description if d), "")
    record.diff = parse_diff("\n".join(lines[diff_start:]))
    return record


class JjProcessor(Processor):
    priority = 10
    binary = "jj"

    @property
    def name(self) -> str:
        return "jj"

    def prepare_args(self, kind: FilterKind, args: list[str]) -> list[str]:
        # Pin the git diff grammar; color-words output cannot be parsed uncolored.
        if kind in (FilterKind.DIFF, FilterKind.SHOW) and "--git" not in args:
            # Paths after `--` must stay paths.
            end = args.index("--") if "--" in args else len(args)
            return [*args[:end], "--git", *args[end:]]
        return list(args)

    def entry_limit(self, kind: FilterKind, args, limits: Limits) -> int:
        if kind == FilterKind.LOG:
            requested = int_option(args, "-n", "--limit")
            return requested if requested is not None else limits.max_log_entries
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
            return parse_op_log(output, limits.op_id_chars)
        if kind == FilterKind.BOOKMARK_LIST:
            return parse_bookmarks(output)
        raise ValueError(f"jj has no parser for {kind}")

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
            return format_op_log(record, limits, limit)
        if kind == FilterKind.BOOKMARK_LIST:
            return format_bookmarks(record, limits, limit)
        raise ValueError(f"jj has no formatter for {kind}")
