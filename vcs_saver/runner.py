"""Subprocess execution: captured runs for compaction, inherited-stdio passthrough."""

import logging
import signal
import subprocess
from contextlib import contextmanager

from .models import RawOutput

_log = logging.getLogger("vcs-saver.runner")


class SpawnError(Exception):
    """The VCS binary could not be started at all."""


class CommandTimeout(Exception):
    def __init__(self, argv, timeout):
        super().__init__(f"Command timed out after {timeout}s: {' '.join(argv)}")
        self.argv = argv
        self.timeout = timeout


@contextmanager
def _forward_signals(get_child):
    """Forward SIGINT/SIGTERM to the running child while the block executes."""

    def handler(signum, _frame):
        child = get_child()
        if child and child.poll() is None:
            child.send_signal(signum)

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)
    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def _kill(child):
    if child and child.poll() is None:
        child.kill()
        child.wait()


def capture(argv: list[str], timeout: float | None = None) -> RawOutput:
    """Run argv with stdout/stderr captured as text.

    Raises SpawnError when the binary cannot be executed and CommandTimeout
    when it outlives `timeout`; the child is killed in both the timeout and
    the KeyboardInterrupt case.
    """
    _log.debug("Capturing: %r", argv)
    child = None
    with _forward_signals(lambda: child):
        try:
            child = subprocess.Popen(  # noqa: S603
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
            stdout, stderr = child.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            _kill(child)
            raise CommandTimeout(argv, timeout) from e
        except KeyboardInterrupt:
            _kill(child)
            raise
        except OSError as e:
            raise SpawnError(str(e)) from e
    _log.debug("Exit status %d for %r", child.returncode, argv)
    return RawOutput(stdout=stdout or "", stderr=stderr or "", exit_status=child.returncode)


def passthrough(argv: list[str]) -> int:
    """Run argv with inherited stdio and return its exit code unchanged."""
    _log.debug("Passthrough: %r", argv)
    child = None
    with _forward_signals(lambda: child):
        try:
            child = subprocess.Popen(argv)  # noqa: S603
            code = child.wait()
            # A child killed by signal N reports -N; shells report 128 + N.
            return 128 - code if code < 0 else code
        except KeyboardInterrupt:
            _kill(child)
            raise
        except OSError as e:
            raise SpawnError(str(e)) from e
