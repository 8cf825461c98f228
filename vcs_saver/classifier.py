"""Command classifier: decide per invocation whether to filter, confirm or pass through.

classify() is pure: it looks only at the binary name and the argument list
and returns a Route. Shape-altering flags and interactive invocations win
over the read/write tables, whatever the subcommand.
"""

from dataclasses import dataclass
from enum import Enum


class Action(Enum):
    FILTER = "filter"
    CONFIRM = "confirm"
    PASSTHROUGH = "passthrough"


class FilterKind(Enum):
    STATUS = "status"
    LOG = "log"
    DIFF = "diff"
    SHOW = "show"
    OP_LOG = "op_log"
    BOOKMARK_LIST = "bookmark_list"


@dataclass(frozen=True)
class Route:
    action: Action
    kind: FilterKind | None = None
    subcommand: str = ""
    args: tuple[str, ...] = ()
    reason: str = ""


# --- jj -------------------------------------------------------------------

_JJ_GLOBAL_VALUE_OPTS = {
    "-R",
    "--repository",
    "--at-op",
    "--at-operation",
    "--color",
    "--config",
    "--config-toml",
    "--config-file",
}

_JJ_ALIASES = {
    "st": "status",
    "b": "bookmark",
    "op": "operation",
    "desc": "describe",
    "ci": "commit",
}

_JJ_GROUPS = {"operation", "bookmark", "git"}

_JJ_GROUP_ALIASES = {
    "bookmark": {
        "l": "list",
        "c": "create",
        "s": "set",
        "m": "move",
        "d": "delete",
        "f": "forget",
        "r": "rename",
        "t": "track",
    },
}

_JJ_READ = {
    "status": FilterKind.STATUS,
    "log": FilterKind.LOG,
    "diff": FilterKind.DIFF,
    "show": FilterKind.SHOW,
    "operation log": FilterKind.OP_LOG,
    "bookmark list": FilterKind.BOOKMARK_LIST,
}

_JJ_WRITE = {
    "describe",
    "new",
    "squash",
    "absorb",
    "rebase",
    "split",
    "edit",
    "undo",
    "commit",
    "abandon",
    "git push",
    "git fetch",
    "bookmark create",
    "bookmark set",
    "bookmark move",
    "bookmark delete",
    "bookmark forget",
    "bookmark rename",
    "bookmark track",
    "bookmark untrack",
}

# Flags that change the output grammar of any jj command.
_JJ_SHAPE_FLAGS = {"-T", "--template", "--color", "--config", "--config-toml", "--config-file"}

_JJ_SHAPE_FLAGS_BY_CMD = {
    "log": {"--no-graph", "-p", "--patch", "-s", "--summary", "--stat", "--git", "--color-words",
            "--tool", "--name-only", "--types"},
    "diff": {"--tool", "--color-words", "--name-only", "--types", "-s", "--summary", "--stat"},
    "show": {"--tool", "--color-words", "--name-only", "--types", "-s", "--summary", "--stat"},
    "operation log": {"--no-graph", "-d", "--op-diff", "-p", "--patch"},
}

_JJ_ALWAYS_INTERACTIVE = {"diffedit", "resolve"}

_JJ_MESSAGE_FLAGS = {"-m", "--message", "--stdin", "--no-edit"}

_JJ_SPLIT_VALUE_OPTS = {
    "-r",
    "--revision",
    "-m",
    "--message",
    "-d",
    "--destination",
    "-o",
    "--onto",
    "-A",
    "--insert-after",
    "-B",
    "--insert-before",
    "--tool",
}

# --- git ------------------------------------------------------------------

_GIT_GLOBAL_VALUE_OPTS = {"-C", "-c", "--git-dir", "--work-tree", "--namespace"}

_GIT_READ = {
    "status": FilterKind.STATUS,
    "log": FilterKind.LOG,
    "diff": FilterKind.DIFF,
    "show": FilterKind.SHOW,
    "reflog": FilterKind.OP_LOG,
    "branch": FilterKind.BOOKMARK_LIST,
}

_GIT_WRITE = {
    "add",
    "commit",
    "push",
    "pull",
    "fetch",
    "checkout",
    "switch",
    "merge",
    "rebase",
    "cherry-pick",
    "reset",
    "restore",
    "rm",
    "mv",
    "tag",
    "branch",
}

_GIT_SHAPE_FLAGS = {"--color", "--porcelain", "-z", "--word-diff", "--color-words"}

_GIT_SHAPE_FLAGS_BY_CMD = {
    "log": {"--graph", "-p", "--patch", "--stat", "--name-only", "--name-status", "--numstat",
            "--shortstat", "--format", "--pretty", "-L", "--summary"},
    "diff": {"--stat", "--name-only", "--name-status", "--numstat", "--shortstat", "--summary",
             "--raw", "--compact-summary"},
    "show": {"--stat", "--name-only", "--name-status", "--numstat", "--shortstat", "--format",
             "--pretty", "--summary", "--raw", "--compact-summary"},
    "status": {"--porcelain", "-z"},
}

_GIT_INTERACTIVE_FLAGS = {"-i", "--interactive", "-p", "--patch", "-e", "--edit"}

_GIT_MESSAGE_FLAGS = {"-m", "--message", "-F", "--file", "--no-edit", "-C", "--reuse-message",
                      "--fixup", "--squash"}

_GIT_BRANCH_MUTATION_FLAGS = {"-d", "-D", "--delete", "-m", "-M", "--move", "-c", "-C", "--copy",
                              "-u", "--set-upstream-to", "--unset-upstream", "-f", "--force"}

_GIT_BRANCH_VALUE_OPTS = {"--contains", "--no-contains", "--merged", "--no-merged",
                          "--points-at", "--sort", "--format"}


def _flag_name(arg: str) -> str:
    """'--limit=5' -> '--limit'; '-n5' stays as is."""
    if arg.startswith("--") and "=" in arg:
        return arg.split("=", 1)[0]
    return arg


def _has_flag(args, flags) -> bool:
    return any(_flag_name(a) in flags for a in args)


def _split_words(argv, value_opts, aliases, groups, group_aliases):
    """Return (subcommand words, remaining args) skipping global options.

    Global options may appear before or between subcommand words; they stay in
    the remaining args so shape checks still see them.
    """
    words = []
    rest = []
    skip_next = False
    for i, arg in enumerate(argv):
        if skip_next:
            skip_next = False
            rest.append(arg)
            continue
        if arg == "--":
            rest.extend(argv[i:])
            break
        if arg.startswith("-"):
            rest.append(arg)
            if arg in value_opts:
                skip_next = True
            continue
        if not words:
            words.append(aliases.get(arg, arg))
            continue
        if len(words) == 1 and words[0] in groups:
            words.append(group_aliases.get(words[0], {}).get(arg, arg))
            continue
        rest.append(arg)
    return words, rest


def _positionals(args, value_opts) -> list[str]:
    result = []
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if arg == "--":
            continue
        if arg.startswith("-"):
            if _flag_name(arg) in value_opts and "=" not in arg:
                skip_next = True
            continue
        result.append(arg)
    return result


def _passthrough(subcommand: str, args, reason: str) -> Route:
    return Route(Action.PASSTHROUGH, subcommand=subcommand, args=tuple(args), reason=reason)


def classify_jj(argv: list[str]) -> Route:
    words, args = _split_words(
        argv, _JJ_GLOBAL_VALUE_OPTS, _JJ_ALIASES, _JJ_GROUPS, _JJ_GROUP_ALIASES
    )
    subcommand = " ".join(words)
    if not words:
        return _passthrough(subcommand, args, "no subcommand")

    if _has_flag(args, {"-h", "--help"}):
        return _passthrough(subcommand, args, "help")
    if _has_flag(args, _JJ_SHAPE_FLAGS | _JJ_SHAPE_FLAGS_BY_CMD.get(subcommand, set())):
        return _passthrough(subcommand, args, "output shape flag")

    # Anything needing a full-screen UI or $EDITOR cannot have its output captured.
    if words[0] in _JJ_ALWAYS_INTERACTIVE:
        if words[0] == "resolve" and _has_flag(args, {"-l", "--list"}):
            return _passthrough(subcommand, args, "resolve listing")
        return _passthrough(subcommand, args, "interactive")
    if _has_flag(args, {"-i", "--interactive", "--tool", "--edit"}):
        return _passthrough(subcommand, args, "interactive")
    if words[0] in ("describe", "commit") and not _has_flag(args, _JJ_MESSAGE_FLAGS):
        return _passthrough(subcommand, args, "opens editor")
    if words[0] == "split" and (
        not _positionals(args, _JJ_SPLIT_VALUE_OPTS) or not _has_flag(args, {"-m", "--message"})
    ):
        return _passthrough(subcommand, args, "opens editor")

    kind = _JJ_READ.get(subcommand)
    if kind is not None:
        return Route(Action.FILTER, kind=kind, subcommand=subcommand, args=tuple(args))
    if subcommand in _JJ_WRITE:
        return Route(Action.CONFIRM, subcommand=subcommand, args=tuple(args))
    return _passthrough(subcommand, args, "unsupported subcommand")


def _git_is_branch_listing(args) -> bool:
    if _has_flag(args, _GIT_BRANCH_MUTATION_FLAGS):
        return False
    if _has_flag(args, {"-l", "--list"}):
        return True
    return not _positionals(args, _GIT_BRANCH_VALUE_OPTS)


def classify_git(argv: list[str]) -> Route:
    words, args = _split_words(argv, _GIT_GLOBAL_VALUE_OPTS, {}, set(), {})
    subcommand = " ".join(words)
    if not words:
        return _passthrough(subcommand, args, "no subcommand")
    cmd = words[0]

    if _has_flag(args, {"-h", "--help"}):
        return _passthrough(subcommand, args, "help")
    shape = _GIT_SHAPE_FLAGS | _GIT_SHAPE_FLAGS_BY_CMD.get(cmd, set())
    if cmd == "log" and _has_flag(args, {"--oneline"}):
        shape = shape - {"--format", "--pretty"}
    if _has_flag(args, shape):
        return _passthrough(subcommand, args, "output shape flag")

    if cmd in ("add", "checkout", "reset", "restore", "commit", "rebase") and _has_flag(
        args, _GIT_INTERACTIVE_FLAGS
    ):
        return _passthrough(subcommand, args, "interactive")
    if cmd == "commit" and not _has_flag(args, _GIT_MESSAGE_FLAGS):
        return _passthrough(subcommand, args, "opens editor")
    if cmd == "rebase" and _has_flag(args, {"--continue", "--edit-todo"}):
        return _passthrough(subcommand, args, "opens editor")
    if cmd == "tag" and (
        not _positionals(args, {"-m", "--message", "-F", "--file", "-u", "--local-user"})
        or _has_flag(args, {"-l", "--list"})
        or (_has_flag(args, {"-a", "--annotate", "-s", "--sign"})
            and not _has_flag(args, {"-m", "--message", "-F", "--file"}))
    ):
        return _passthrough(subcommand, args, "tag listing or editor")
    if cmd == "reflog" and _positionals(args, set())[:1] in (["expire"], ["delete"], ["exists"]):
        return _passthrough(subcommand, args, "reflog maintenance")

    if cmd == "branch":
        if _git_is_branch_listing(args):
            return Route(Action.FILTER, kind=FilterKind.BOOKMARK_LIST, subcommand=cmd,
                         args=tuple(args))
        return Route(Action.CONFIRM, subcommand=cmd, args=tuple(args))

    kind = _GIT_READ.get(cmd)
    if kind is not None:
        return Route(Action.FILTER, kind=kind, subcommand=cmd, args=tuple(args))
    if cmd in _GIT_WRITE:
        return Route(Action.CONFIRM, subcommand=cmd, args=tuple(args))
    return _passthrough(subcommand, args, "unsupported subcommand")


_CLASSIFIERS = {
    "jj": classify_jj,
    "git": classify_git,
}


def classify(binary: str, argv: list[str]) -> Route:
    """Map a VCS invocation to FILTER(kind), CONFIRM or PASSTHROUGH."""
    classifier = _CLASSIFIERS.get(binary)
    if classifier is None:
        return _passthrough("", argv, f"unknown binary {binary}")
    return classifier(list(argv))
