"""Fidelity guard: make sure compaction never drops an identifier.

The guard does not trust the parsers. It re-scans the raw output with its
own, deliberately simple lexical rules, collects the identifiers of every
entry that the compact form claims to show, and reports the ones that
cannot be found in the compact text.
"""

import re

from .classifier import FilterKind

_GRAPH_CHARS = "│|├┤─╮╯╭╰┬┴┼╷╵\\/~ \t"
_NODE_GLYPHS = "@○◆●◉×◌◇ox*"
_STRIP = "()[]{}*?,:;|+-<>'\"`…"

_HEX_RE = re.compile(r"^[0-9a-f]{7,64}$")
_CHANGE_ID_RE = re.compile(r"^[k-z]{8,32}$")
_DIFF_GIT_RE = re.compile(r"^diff --git (?P<paths>.+)$")
_JJ_STATUS_RE = re.compile(r"^(?P<label>Working copy|Parent commit)\s*(?:\(@-?\))?\s*:\s*(?P<rest>.*)$")
_JJ_OP_RE = re.compile(r"^(?P<id>[0-9a-f]{7,128})\s+\S+@\S+")
_JJ_SHOW_RE = re.compile(r"^(?:Commit ID|Change ID):\s*(?P<id>\S+)")
_GIT_COMMIT_RE = re.compile(r"^commit (?P<hash>[0-9a-f]{7,64})\b")
_GIT_BRANCH_HEAD_RE = re.compile(r"^(?:On branch (?P<branch>\S+)|HEAD detached (?:at|from) (?P<ref>\S+)"
                                 r"|## (?:No commits yet on )?(?P<short>[^\s.]+(?:\.(?!\.)[^\s.]*)*))")


def _words(text: str) -> set[str]:
    return {w.strip(_STRIP) for w in text.split()} - {""}


def _id_tokens(text: str) -> list[str]:
    """Hex hashes and jj change ids among the words of one header line."""
    tokens = []
    for word in text.split():
        if "@" in word:
            continue
        word = word.strip(_STRIP)
        if _HEX_RE.match(word) or _CHANGE_ID_RE.match(word):
            tokens.append(word)
    return tokens


def _node_text(line: str) -> str | None:
    """Text after the node glyph of a jj graph line, or None."""
    text = line.lstrip(_GRAPH_CHARS)
    if len(text) > 2 and text[0] in _NODE_GLYPHS and text[1].isspace():
        return text[1:].strip()
    return None


def _unquote(path: str) -> str:
    path = path.rstrip("\t")
    if len(path) > 1 and path[0] == path[-1] == '"':
        path = path[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return path


def _new_side(path: str) -> str:
    path = _unquote(path)
    return path[2:] if path.startswith("b/") else path


def _header_path(paths: str) -> str:
    """New-side path of a `diff --git` header; `a/X b/X` splits at its midpoint."""
    half = len(paths) // 2
    if paths[half:half + 1] == " " and paths[:half][2:] == paths[half + 1:][2:]:
        return _new_side(paths[half + 1:])
    # A rename or copy; the `rename to` / `copy to` line names the new side.
    return _new_side(paths.rpartition(" ")[2])


def _diff_paths(raw: str) -> list[list[str]]:
    """One path per file: the `+++ b/` or `rename to` side, else the header's."""
    entries = []
    in_header = False
    for line in raw.splitlines():
        m = _DIFF_GIT_RE.match(line)
        if m:
            entries.append([_header_path(m.group("paths"))])
            in_header = True
        elif line.startswith("@@"):
            in_header = False
        elif in_header and line.startswith("+++ ") and line[4:] != "/dev/null":
            entries[-1] = [_new_side(line[4:])]
        elif in_header and line.startswith(("rename to ", "copy to ")):
            entries[-1] = [_unquote(line.split(" to ", 1)[1])]
    return entries


# Each scanner returns one token list per entry, in output order.


def _scan_jj_log(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        text = _node_text(line)
        if text is None:
            continue
        tokens = _id_tokens(text)
        if tokens:
            entries.append(tokens)
    return entries


def _scan_jj_status(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        m = _JJ_STATUS_RE.match(line.strip())
        if not m:
            continue
        head, sep, _ = m.group("rest").partition(" | ")
        words = head.split()
        if len(words) < 2:
            continue
        tokens = [words[0].strip(_STRIP)]
        if m.group("label") == "Working copy":
            tokens.append(words[1])
        if sep:
            tokens.extend(words[2:])
        entries.append(tokens)
    # All commit lines are always rendered, so report them as one entry.
    return [[t for e in entries for t in e]] if entries else []


def _scan_jj_op_log(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        text = _node_text(line)
        if text is None:
            continue
        m = _JJ_OP_RE.match(text)
        if m:
            entries.append([m.group("id")])
    return entries


def _scan_jj_bookmarks(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        if not line.strip() or line[:1].isspace():
            continue
        name, sep, rest = line.partition(":")
        name = name.split(" (", 1)[0].strip()
        tokens = [name]
        if sep:
            tokens.extend(rest.split()[:2])
        entries.append([t for t in tokens if t])
    return entries


def _scan_jj_show(raw: str) -> list[list[str]]:
    tokens = [m.group("id") for m in map(_JJ_SHOW_RE.match, raw.splitlines()) if m]
    return [tokens] if tokens else []


def _scan_git_log(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        m = _GIT_COMMIT_RE.match(line)
        if m:
            entries.append([m.group("hash")])
            continue
        first = line.split(maxsplit=1)[:1]
        if first and not line[:1].isspace() and _HEX_RE.match(first[0]):
            entries.append([first[0]])
    return entries


def _scan_git_status(raw: str) -> list[list[str]]:
    for line in raw.splitlines():
        m = _GIT_BRANCH_HEAD_RE.match(line.strip())
        if m:
            return [[m.group("branch") or m.group("ref") or m.group("short")]]
    return []


def _scan_git_show(raw: str) -> list[list[str]]:
    for line in raw.splitlines():
        m = _GIT_COMMIT_RE.match(line)
        if m:
            return [[m.group("hash")]]
    return []


def _scan_git_reflog(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        first = line.split(maxsplit=1)[:1]
        if first and _HEX_RE.match(first[0]):
            entries.append([first[0]])
    return entries


def _scan_git_branches(raw: str) -> list[list[str]]:
    entries = []
    for line in raw.splitlines():
        if len(line) < 3 or line[0] not in "*+ " or line[1] != " ":
            continue
        rest = line[2:].strip()
        if rest.startswith("("):
            entries.append([])
            continue
        words = rest.split()
        tokens = [words[0]]
        if len(words) > 1 and _HEX_RE.match(words[1]):
            tokens.append(words[1])
        entries.append(tokens)
    return entries


_SCANNERS = {
    ("jj", FilterKind.LOG): _scan_jj_log,
    ("jj", FilterKind.STATUS): _scan_jj_status,
    ("jj", FilterKind.OP_LOG): _scan_jj_op_log,
    ("jj", FilterKind.BOOKMARK_LIST): _scan_jj_bookmarks,
    ("jj", FilterKind.SHOW): _scan_jj_show,
    ("jj", FilterKind.DIFF): _diff_paths,
    ("git", FilterKind.LOG): _scan_git_log,
    ("git", FilterKind.STATUS): _scan_git_status,
    ("git", FilterKind.OP_LOG): _scan_git_reflog,
    ("git", FilterKind.BOOKMARK_LIST): _scan_git_branches,
    ("git", FilterKind.SHOW): _scan_git_show,
    ("git", FilterKind.DIFF): _diff_paths,
}


def _listed_path(path: str, compact_lines: list[str]) -> bool:
    """A diff path counts only as the whole path column of a stat line."""
    return any(line.startswith(f"{path} | ") for line in compact_lines)


def _preserved(token: str, words: set[str], pool: set[str], min_prefix: int) -> bool:
    token = token.strip(_STRIP)
    if token in words:
        return True
    # A shortened id counts when it is long enough and points at one token only.
    for word in words:
        if len(word) >= min_prefix and token.startswith(word):
            if not any(other != token and other.startswith(word) for other in pool):
                return True
    return False


def check(binary: str, kind: FilterKind, raw_text: str, compact_text: str, limit: int,
          min_prefix: int = 4) -> list[str]:
    """Return the identifiers of the rendered entries missing from compact_text.

    Only the first `limit` entries are checked; entries past the cut are
    announced by the formatter's truncation marker instead.
    """
    scanner = _SCANNERS.get((binary, kind))
    if scanner is None:
        return []
    scanned = scanner(raw_text)
    pool = {t.strip(_STRIP) for e in scanned for t in e}
    entries = scanned
    if kind in (FilterKind.LOG, FilterKind.OP_LOG, FilterKind.BOOKMARK_LIST):
        entries = scanned[:limit]
    words = _words(compact_text)
    compact_lines = compact_text.splitlines()

    missing = []
    for tokens in entries:
        for token in tokens:
            if not token or token in missing:
                continue
            if kind is FilterKind.DIFF:
                found = _listed_path(token, compact_lines)
            else:
                found = _preserved(token, words, pool, min_prefix)
            if not found:
                missing.append(token)
    return missing
