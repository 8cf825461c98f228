"""Git-format diff parsing and compaction, shared by the jj and git processors.

jj is always asked for --git output, so one grammar covers both binaries.
"""

import re

from ..config import Limits
from ..models import DiffHunk, DiffRecord, DiffStat, ShowRecord, Unparsed
from .base import ELLIPSIS, more_marker, truncate

_DIFF_GIT_RE = re.compile(r"^diff --git (?P<paths>.+)$")
_PATH_PAIR_RE = re.compile(r'^(?P<old>"a/.+?"|a/.+?) (?P<new>"b/.+"|b/.+)$')
_META_PREFIXES = (
    "index ",
    "old mode ",
    "new mode ",
    "similarity index ",
    "dissimilarity index ",
    "copy from ",
    "copy to ",
)
_BINARY_RE = re.compile(r"^Binary files .* differ$")


def _unquote(path: str) -> str:
    path = path.rstrip("\t")
    if len(path) > 1 and path[0] == path[-1] == '"':
        path = path[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return path


def _split_header_paths(paths: str) -> tuple[str, str]:
    """Old and new path from the text after `diff --git `.

    Unquoted paths may contain spaces, so when both sides name the same
    file the text is split at its midpoint, as git itself does. Renames
    fall back to the first ` b/`; the `---`/`+++` lines settle them later.
    """
    half = len(paths) // 2
    old, sep, new = paths[:half], paths[half:half + 1], paths[half + 1:]
    if sep == " " and old.startswith("a/") and new.startswith("b/") and old[2:] == new[2:]:
        return old[2:], new[2:]
    if sep == " " and old == new:
        return old, new
    m = _PATH_PAIR_RE.match(paths)
    if m:
        return _unquote(m.group("old"))[2:], _unquote(m.group("new"))[2:]
    return paths, paths


def _side_path(line: str, prefix: str) -> str | None:
    """Path on a `--- a/...` or `+++ b/...` line; None for /dev/null."""
    path = _unquote(line[4:])
    if path == "/dev/null":
        return None
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


def parse_diff(output: str) -> DiffRecord:
    """Split git-format diff text into one DiffHunk per file."""
    record = DiffRecord()
    current: DiffHunk | None = None
    in_hunk = False
    added = removed = 0
    binary = False
    old_path = ""

    def close():
        nonlocal current
        if current is not None:
            if not current.note and old_path and old_path != current.file_path:
                current.note = f"from {old_path}"
            current.stat = DiffStat(added=added, removed=removed, binary=binary)
            record.hunks.append(current)
        current = None

    for line in output.splitlines():
        m = _DIFF_GIT_RE.match(line)
        if m:
            close()
            old_path, new_path = _split_header_paths(m.group("paths"))
            current = DiffHunk(file_path=new_path)
            in_hunk = False
            added = removed = 0
            binary = False
            continue

        if current is None:
            if line.strip():
                record.unparsed.append(Unparsed(line))
            continue

        if line.startswith("@@"):
            in_hunk = True
            current.lines.append(line)
            continue

        if in_hunk:
            if line.startswith("+"):
                added += 1
                current.lines.append(line)
                continue
            if line.startswith("-"):
                removed += 1
                current.lines.append(line)
                continue
            if line.startswith((" ", "\\")) or line == "":
                current.lines.append(line)
                continue

        if line.startswith("--- "):
            old_path = _side_path(line, "a/") or old_path
            continue
        if line.startswith("+++ "):
            current.file_path = _side_path(line, "b/") or current.file_path
            continue
        if line.startswith("new file mode"):
            current.note = "new"
            continue
        if line.startswith("deleted file mode"):
            current.note = "deleted"
            continue
        if line.startswith("rename from "):
            old_path = _unquote(line[len("rename from "):])
            continue
        if line.startswith("rename to "):
            current.file_path = _unquote(line[len("rename to "):])
            continue
        if line.startswith(_META_PREFIXES):
            continue
        if _BINARY_RE.match(line) or line.startswith("GIT binary patch"):
            binary = True
            continue
        if line.strip():
            record.unparsed.append(Unparsed(line))

    close()
    return record


def format_stat(record: DiffRecord) -> list[str]:
    """`path | +added -removed` per file, plus a total line for multi-file diffs."""
    lines = []
    total_added = total_removed = 0
    for hunk in record.hunks:
        stat = hunk.stat
        total_added += stat.added
        total_removed += stat.removed
        note = f" ({hunk.note})" if hunk.note else ""
        if stat.binary:
            lines.append(f"{hunk.file_path} | binary{note}")
        else:
            lines.append(f"{hunk.file_path} | +{stat.added} -{stat.removed}{note}")
    if len(record.hunks) > 1:
        lines.append(f"{len(record.hunks)} files changed, +{total_added} -{total_removed}")
    return lines


def format_diff(record: DiffRecord, limits: Limits) -> str:
    """Stat summary first, then hunk content within the per-file and total caps."""
    if not record.hunks and not record.unparsed:
        return ""

    out = format_stat(record)
    out.extend(u.text for u in record.unparsed)

    budget = limits.max_diff_lines
    skipped_lines = 0
    skipped_files = 0
    for hunk in record.hunks:
        if not hunk.lines:
            continue
        if budget <= 0:
            hunk.truncated = True
            skipped_lines += len(hunk.lines)
            skipped_files += 1
            continue
        keep = min(len(hunk.lines), limits.max_hunk_lines, budget)
        out.append("")
        out.append(f"--- {hunk.file_path}")
        out.extend(hunk.lines[:keep])
        budget -= keep
        if keep < len(hunk.lines):
            hunk.truncated = True
            out.append(more_marker(len(hunk.lines) - keep, "lines"))

    if skipped_files:
        out.append("")
        out.append(f"{ELLIPSIS} {skipped_lines} more lines in {skipped_files} files")
    return "\n".join(out)


def format_show(record: ShowRecord, limits: Limits) -> str:
    """One summary line for the commit, then the compacted diff."""
    id_chars = None if limits.verbose else 8
    parts = [record.change_id[:id_chars], record.commit_id[:id_chars]]
    parts.extend(record.bookmarks)
    if limits.verbose and record.author:
        parts.append(record.author)
    if record.description:
        parts.append(truncate(record.description, limits.max_message_chars))
    out = [" ".join(p for p in parts if p)]
    out.extend(u.text for u in record.unparsed)
    diff = format_diff(record.diff, limits)
    if diff:
        out.append(diff)
    return "\n".join(out)
