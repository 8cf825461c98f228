"""CLI entry point: run a jj or git command and print its compacted output.

Usage: vcs-saver [options] {jj,git} ARGS...
       vcs-saver version

Everything after the binary name is handed to the VCS untouched.
"""

import argparse
import logging
import os
import sys

from . import __version__, config, data_dir
from .classifier import Action, classify
from .engine import CompressionEngine
from .runner import CommandTimeout, SpawnError, capture, passthrough

BINARIES = ("jj", "git")
COMMANDS = (*BINARIES, "version")

_log = logging.getLogger("vcs-saver.cli")


def setup_logging(debug: bool | None = None) -> None:
    """Send vcs-saver.* records to ~/.vcs-saver/vcs-saver.log when debugging.

    Debugging is on when VCS_SAVER_DEBUG (or `debug` in config.json) is set;
    otherwise records are dropped.
    """
    logger = logging.getLogger("vcs-saver")
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return
    if debug is None:
        debug = config.get("debug")
    if debug:
        log_dir = data_dir()
        os.makedirs(log_dir, exist_ok=True)
        handler = logging.FileHandler(os.path.join(log_dir, "vcs-saver.log"))
        handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
        logger.addHandler(handler)
    else:
        logger.addHandler(logging.NullHandler())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vcs-saver",
        description="Run jj or git and print a compact, identifier-preserving version of the output.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Keep authors, timestamps and full ids")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the raw output and report compaction stats on stderr",
    )
    parser.add_argument("--log-limit", type=int, metavar="N", help="Entries shown by log and op log")
    parser.add_argument("--hunk-lines", type=int, metavar="N", help="Diff lines shown per file")
    parser.add_argument("--diff-lines", type=int, metavar="N", help="Diff lines shown in total")
    parser.add_argument("--message-chars", type=int, metavar="N", help="Description length before cutting")
    parser.add_argument("--op-id-chars", type=int, metavar="N", help="Length of shortened operation ids")
    parser.add_argument("command", choices=COMMANDS, help="VCS binary to run, or 'version'")
    return parser


def parse_args(argv: list[str]) -> tuple[argparse.Namespace, list[str]]:
    """Split argv at the binary name; only what precedes it is ours to parse."""
    split = next((i for i, arg in enumerate(argv) if arg in COMMANDS), None)
    parser = build_parser()
    if split is None:
        return parser.parse_args(argv), []
    return parser.parse_args(argv[: split + 1]), argv[split + 1:]


def _emit(result) -> None:
    if result.verbatim:
        sys.stdout.write(result.text)
    elif result.text:
        print(result.text)
    sys.stdout.flush()
    if result.stderr:
        sys.stderr.write(result.stderr)
        sys.stderr.flush()


def _run_passthrough(argv: list[str]) -> int:
    try:
        return passthrough(argv)
    except SpawnError as e:
        print(f"[vcs-saver] Failed to execute: {e}", file=sys.stderr)
        return 127
    except KeyboardInterrupt:
        return 130


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    opts, vcs_args = parse_args(argv)
    setup_logging()

    if opts.command == "version":
        print(f"vcs-saver v{__version__}")
        return 0

    binary = opts.command
    executable = config.get(f"{binary}_binary") or binary
    route = classify(binary, vcs_args)
    _log.debug("Route for %s %r: %s %s", binary, vcs_args, route.action.value, route.reason)

    if not config.get("enabled") or route.action == Action.PASSTHROUGH:
        return _run_passthrough([executable, *vcs_args])

    limits = config.limits(
        max_log_entries=opts.log_limit,
        max_op_entries=opts.log_limit,
        max_hunk_lines=opts.hunk_lines,
        max_diff_lines=opts.diff_lines,
        max_message_chars=opts.message_chars,
        op_id_chars=opts.op_id_chars,
        verbose=opts.verbose or None,
    )
    engine = CompressionEngine(limits)
    run_args = engine.prepare_args(binary, route, vcs_args)

    timeout = config.get("wrap_timeout")
    try:
        raw = capture([executable, *run_args], timeout=timeout)
    except SpawnError as e:
        print(f"[vcs-saver] Failed to execute: {e}", file=sys.stderr)
        return 127
    except CommandTimeout as e:
        print(f"[vcs-saver] {e}", file=sys.stderr)
        return 124
    except KeyboardInterrupt:
        return 130

    result = engine.compact(binary, route, raw)

    if opts.dry_run:
        original_len = len(raw.stdout)
        compacted_len = len(result.text)
        saved = original_len - compacted_len
        ratio = (saved / original_len * 100) if original_len > 0 else 0
        print(
            f"[vcs-saver dry-run] route={route.action.value} degraded={result.degraded_to_raw} "
            f"original={original_len} compacted={compacted_len} saved={saved} ({ratio:.1f}%)",
            file=sys.stderr,
        )
        sys.stdout.write(raw.stdout)
        sys.stdout.flush()
        sys.stderr.write(raw.stderr)
        return result.exit_code

    _emit(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
