"""Confirmation renderer for write commands.

A successful mutation collapses to `ok ✓ <tokens>`, where the tokens are the
identifiers a follow-up command needs (new change id, pushed bookmarks, ...).
A failed one keeps everything: `FAILED: <subcommand>` on stdout and the
subprocess's stderr untouched.
"""

import re

from .config import Limits
from .models import CompactResult, RawOutput

OK = "ok ✓"

_WC_NOW_AT_RE = re.compile(r"Working copy\s*(?:\(@\))?\s*now at:\s*(?P<id>[0-9a-z]+)")
_BARE_CHANGE_ID_RE = re.compile(r"^[k-z]{8,32}$")
_ABSORBED_RE = re.compile(r"Absorbed changes into (?P<n>\d+) revisions?")
_REBASED_RE = re.compile(r"Rebased (?P<n>\d+) (?:descendant )?commits?")
_SPLIT_PART_RE = re.compile(
    r"^(?:First part|Second part|Selected changes|Remaining changes)\s*:\s*(?P<id>[0-9a-z]+)"
)
_UNDO_RE = re.compile(r"(?:Undid operation|Restored to operation|Reverted operation):?\s*(?P<id>[0-9a-f]+)")
_ABANDONED_COUNT_RE = re.compile(r"Abandoned (?P<n>\d+) commits")
_ABANDONED_ONE_RE = re.compile(r"^Abandoned commit\b")
_JJ_PUSH_RE = re.compile(
    r"^\s*(?:Move (?:forward |sideways |backward )?|Add |Delete )bookmark (?P<name>\S+)"
)
_JJ_FETCH_RE = re.compile(r"^bookmark:\s+\S+\s+\[(?P<state>new|updated|deleted)\]")
_NOTHING_CHANGED_RE = re.compile(r"^Nothing changed\.?$")

_GIT_COMMIT_RE = re.compile(r"^\[(?P<branch>[^\]\s]+)(?: \([^)]*\))? (?P<hash>[0-9a-f]{7,64})\]")
_GIT_REF_UPDATE_RE = re.compile(
    r"^\s*[ +*=!-]?\s*(?P<what>[0-9a-f]+\.\.\.?[0-9a-f]+|\[new (?:branch|tag|reference)\]|\[deleted\])"
    r"\s+(?P<src>\S+)\s+->\s+(?P<dst>\S+)"
)
_GIT_UP_TO_DATE_RE = re.compile(r"^(?:Already up to date|Already up-to-date|Everything up-to-date"
                                r"|Current branch \S+ is up to date)")
_GIT_FILES_CHANGED_RE = re.compile(r"^\s*(?P<n>\d+) files? changed")
_GIT_SWITCHED_RE = re.compile(r"^Switched to (?:a new )?branch '(?P<branch>[^']+)'")
_GIT_HEAD_AT_RE = re.compile(r"^HEAD is now at (?P<hash>[0-9a-f]{7,64})")
_GIT_REBASED_RE = re.compile(r"^Successfully rebased and updated (?:refs/heads/)?(?P<ref>\S+?)\.?$")
_GIT_DELETED_BRANCH_RE = re.compile(r"^Deleted branch (?P<name>\S+)")

_JJ_REBASE_DEST_OPTS = ("-d", "--destination", "-o", "--onto", "-A", "--insert-after",
                        "-B", "--insert-before")
_JJ_BOOKMARK_VALUE_OPTS = {"-r", "--revision", "--to", "--from", "--remote", "-B", "-R", "--repository",
                           "--at-op", "--at-operation", "--config", "--config-file"}
_JJ_BOOKMARK_VERBS = {
    "bookmark create": "created",
    "bookmark set": "set",
    "bookmark move": "moved",
    "bookmark delete": "deleted",
    "bookmark forget": "forgot",
    "bookmark rename": "renamed",
    "bookmark track": "tracked",
    "bookmark untrack": "untracked",
}


def _lines(raw: RawOutput) -> list[str]:
    # jj prints its status messages on stderr, git splits them between both.
    return (raw.stdout + "\n" + raw.stderr).splitlines()


def _search(pattern: re.Pattern, lines):
    for line in lines:
        m = pattern.search(line)
        if m:
            return m
    return None


def _ok(*tokens) -> str:
    words = " ".join(str(t) for t in tokens if t)
    return f"{OK} {words}" if words else OK


def _positionals(args, value_opts) -> list[str]:
    result = []
    skip = False
    for arg in args:
        if skip:
            skip = False
            continue
        if arg.startswith("-"):
            if arg in value_opts:
                skip = True
            continue
        result.append(arg)
    return result


def _option(args, names) -> str | None:
    for i, arg in enumerate(args):
        for name in names:
            if arg == name and i + 1 < len(args):
                return args[i + 1]
            if name.startswith("--") and arg.startswith(name + "="):
                return arg.split("=", 1)[1]
    return None


def working_copy_id(lines) -> str | None:
    """The change id jj reports in `Working copy now at:`.

    Falls back to the first bare change-id-looking word for older jj
    releases that phrase it differently.
    """
    m = _search(_WC_NOW_AT_RE, lines)
    if m:
        return m.group("id")
    for line in lines:
        for word in line.split():
            if _BARE_CHANGE_ID_RE.match(word):
                return word
    return None


# --- jj -------------------------------------------------------------------


def _jj_working_copy(args, lines, limits):
    return _ok(working_copy_id(lines))


def _jj_squash(args, lines, limits):
    return _ok("squashed", working_copy_id(lines))


def _jj_absorb(args, lines, limits):
    m = _search(_ABSORBED_RE, lines)
    if m:
        return _ok(f"absorbed into {m.group('n')} revisions")
    return _ok("absorbed")


def _jj_rebase(args, lines, limits):
    m = _search(_REBASED_RE, lines)
    dest = _option(args, _JJ_REBASE_DEST_OPTS)
    count = f"{m.group('n')} commits" if m else ""
    return _ok("rebased", count, f"onto {dest}" if dest else "")


def _jj_split(args, lines, limits):
    ids = [m.group("id") for m in (_SPLIT_PART_RE.search(line) for line in lines) if m]
    if ids:
        return _ok(f"split into {len(ids)}", *ids)
    return _ok("split")


def _jj_undo(args, lines, limits):
    m = _search(_UNDO_RE, lines)
    return _ok("undone", m.group("id")[: limits.op_id_chars] if m else "")


def _jj_abandon(args, lines, limits):
    m = _search(_ABANDONED_COUNT_RE, lines)
    count = int(m.group("n")) if m else sum(1 for line in lines if _ABANDONED_ONE_RE.match(line))
    return _ok(f"abandoned {count} commits" if count else "abandoned")


def _jj_git_push(args, lines, limits):
    names = []
    for line in lines:
        m = _JJ_PUSH_RE.match(line)
        if m and m.group("name") not in names:
            names.append(m.group("name"))
    if names:
        return _ok("pushed", ", ".join(names))
    if _search(_NOTHING_CHANGED_RE, lines):
        return _ok("nothing changed")
    return _ok("pushed")


def _jj_git_fetch(args, lines, limits):
    states = [m.group("state") for m in (_JJ_FETCH_RE.match(line) for line in lines) if m]
    updated = states.count("updated")
    extra = f", {updated} updated" if updated else ""
    return _ok(f"fetched ({states.count('new')} new{extra})")


def _jj_bookmark(subcommand):
    verb = _JJ_BOOKMARK_VERBS[subcommand]

    def render(args, lines, limits):
        return _ok(verb, " ".join(_positionals(args, _JJ_BOOKMARK_VALUE_OPTS)))

    return render


_JJ_RENDERERS = {
    "new": _jj_working_copy,
    "edit": _jj_working_copy,
    "describe": _jj_working_copy,
    "commit": _jj_working_copy,
    "squash": _jj_squash,
    "absorb": _jj_absorb,
    "rebase": _jj_rebase,
    "split": _jj_split,
    "undo": _jj_undo,
    "abandon": _jj_abandon,
    "git push": _jj_git_push,
    "git fetch": _jj_git_fetch,
    **{sub: _jj_bookmark(sub) for sub in _JJ_BOOKMARK_VERBS},
}


# --- git ------------------------------------------------------------------


def _git_commit(args, lines, limits):
    m = _search(_GIT_COMMIT_RE, lines)
    return _ok(m.group("hash") if m else "")


def _git_push(args, lines, limits):
    refs = []
    for line in lines:
        m = _GIT_REF_UPDATE_RE.match(line)
        if m:
            refs.append(f"{m.group('dst')} (deleted)" if m.group("what") == "[deleted]" else m.group("dst"))
    if refs:
        return _ok("pushed", ", ".join(refs))
    if _search(_GIT_UP_TO_DATE_RE, lines):
        return _ok("nothing changed")
    return _ok("pushed")


def _git_fetch(args, lines, limits):
    updates = [m.group("what") for m in (_GIT_REF_UPDATE_RE.match(line) for line in lines) if m]
    new = sum(1 for what in updates if what.startswith("[new"))
    updated = len(updates) - new
    extra = f", {updated} updated" if updated else ""
    return _ok(f"fetched ({new} new{extra})")


def _git_integrate(verb):
    def render(args, lines, limits):
        if _search(_GIT_UP_TO_DATE_RE, lines):
            return _ok("up to date")
        m = _search(_GIT_FILES_CHANGED_RE, lines)
        if m:
            return _ok(verb, f"({m.group('n')} files changed)")
        commit = _search(_GIT_COMMIT_RE, lines)
        return _ok(verb, commit.group("hash") if commit else "")

    return render


def _git_switch(args, lines, limits):
    m = _search(_GIT_SWITCHED_RE, lines)
    if m:
        return _ok("switched to", m.group("branch"))
    m = _search(_GIT_HEAD_AT_RE, lines)
    return _ok("HEAD at", m.group("hash") if m else "")


def _git_rebase(args, lines, limits):
    if _search(_GIT_UP_TO_DATE_RE, lines):
        return _ok("up to date")
    m = _search(_GIT_REBASED_RE, lines)
    return _ok("rebased", m.group("ref") if m else "")


def _git_reset(args, lines, limits):
    m = _search(_GIT_HEAD_AT_RE, lines)
    return _ok("HEAD at", m.group("hash")) if m else _ok()


def _git_tag(args, lines, limits):
    names = _positionals(args, {"-m", "--message", "-F", "--file", "-u", "--local-user"})
    if "-d" in args or "--delete" in args:
        return _ok("deleted", " ".join(names))
    return _ok("tagged", names[0] if names else "")


def _git_branch(args, lines, limits):
    deleted = [m.group("name") for m in (_GIT_DELETED_BRANCH_RE.match(line) for line in lines) if m]
    if deleted:
        return _ok("deleted", " ".join(deleted))
    names = _positionals(args, {"-u", "--set-upstream-to"})
    if any(a in ("-m", "-M", "--move") for a in args):
        return _ok("renamed", " -> ".join(names))
    if any(a in ("-c", "-C", "--copy") for a in args):
        return _ok("copied", " -> ".join(names))
    if any(a.startswith(("-u", "--set-upstream-to", "--unset-upstream")) for a in args):
        return _ok("upstream set", " ".join(names))
    return _ok("created", names[0] if names else "")


def _plain_ok(args, lines, limits):
    return _ok()


_GIT_RENDERERS = {
    "commit": _git_commit,
    "cherry-pick": _git_commit,
    "push": _git_push,
    "fetch": _git_fetch,
    "pull": _git_integrate("pulled"),
    "merge": _git_integrate("merged"),
    "checkout": _git_switch,
    "switch": _git_switch,
    "rebase": _git_rebase,
    "reset": _git_reset,
    "tag": _git_tag,
    "branch": _git_branch,
    "add": _plain_ok,
    "restore": _plain_ok,
    "rm": _plain_ok,
    "mv": _plain_ok,
}

_RENDERERS = {
    "jj": _JJ_RENDERERS,
    "git": _GIT_RENDERERS,
}


def failure_exit_code(exit_status: int) -> int:
    """Exit code to report for a failed subprocess; 1 when it gave none."""
    if exit_status > 0:
        return exit_status
    if exit_status < 0:
        return 128 - exit_status
    return 1


def render(binary: str, subcommand: str, args, raw: RawOutput, limits: Limits) -> CompactResult:
    """Collapse the output of a write command.

    On failure the stdout text is kept after the FAILED line and stderr is
    returned untouched, so nothing the caller needs to diagnose is lost.
    """
    if raw.exit_status != 0:
        text = f"FAILED: {subcommand}"
        if raw.stdout.strip():
            text += "\n" + raw.stdout.rstrip("\n")
        return CompactResult(
            text=text,
            exit_code=failure_exit_code(raw.exit_status),
            stderr=raw.stderr,
        )

    renderer = _RENDERERS.get(binary, {}).get(subcommand, _plain_ok)
    return CompactResult(text=renderer(list(args), _lines(raw), limits))
