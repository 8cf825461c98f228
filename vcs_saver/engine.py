"""Compaction engine: routes captured output through a processor and the guard."""

import logging

from . import config, confirm, guard
from .classifier import Action, Route
from .config import Limits
from .models import CompactResult, RawOutput, unparsed_ratio
from .processors import discover_processors

_log = logging.getLogger("vcs-saver.engine")


class CompressionEngine:
    """Turns one captured invocation into a CompactResult.

    FILTER routes go through the processor for the binary, then through the
    fidelity guard; CONFIRM routes go to the confirmation renderer. Whenever
    compaction cannot be trusted the raw output comes back unchanged.
    """

    def __init__(self, limits: Limits | None = None):
        self.limits = limits if limits is not None else config.limits()
        self.processors = discover_processors()

    def processor_for(self, binary: str):
        for processor in self.processors:
            if processor.can_handle(binary):
                return processor
        return None

    def prepare_args(self, binary: str, route: Route, argv: list[str]) -> list[str]:
        """Arguments to run for this route; FILTER routes may pin a format."""
        if route.action != Action.FILTER:
            return list(argv)
        processor = self.processor_for(binary)
        if processor is None:
            return list(argv)
        return processor.prepare_args(route.kind, list(argv))

    def compact(self, binary: str, route: Route, raw: RawOutput) -> CompactResult:
        if route.action == Action.CONFIRM:
            return confirm.render(binary, route.subcommand, route.args, raw, self.limits)
        if route.action == Action.PASSTHROUGH:
            return self._raw(raw)

        if raw.exit_status != 0:
            # Errors are never compacted.
            return self._raw(raw)
        if not raw.stdout.strip():
            return self._raw(raw)

        processor = self.processor_for(binary)
        if processor is None:
            _log.info("No processor for %s, returning raw output", binary)
            return self._raw(raw)

        try:
            return self._filter(processor, binary, route, raw)
        except Exception:
            _log.exception("Compaction of %s %s failed", binary, route.subcommand)
            return self._raw(raw, degraded=True)

    def _filter(self, processor, binary: str, route: Route, raw: RawOutput) -> CompactResult:
        limits = self.limits
        output = raw.stdout
        limit = processor.entry_limit(route.kind, route.args, limits)

        record = processor.parse(route.kind, output, limits)
        ratio = unparsed_ratio(record, output)
        if ratio > limits.unparsed_threshold:
            _log.info(
                "Degraded %s %s to raw: %.0f%% of lines unparsed",
                binary,
                route.subcommand,
                ratio * 100,
            )
            return self._raw(raw, degraded=True)

        text = processor.format(route.kind, record, limits, limit)
        missing = guard.check(binary, route.kind, output, text, limit, limits.min_prefix)
        if missing:
            _log.info(
                "Degraded %s %s to raw: identifiers missing from compact output: %s",
                binary,
                route.subcommand,
                ", ".join(missing),
            )
            return self._raw(raw, degraded=True)

        _log.debug(
            "Compacted %s %s: processor=%s original=%d compacted=%d",
            binary,
            route.subcommand,
            processor.name,
            len(output),
            len(text),
        )
        return CompactResult(text=text, stderr=raw.stderr)

    @staticmethod
    def _raw(raw: RawOutput, degraded: bool = False) -> CompactResult:
        exit_code = confirm.failure_exit_code(raw.exit_status) if raw.exit_status != 0 else 0
        return CompactResult(
            text=raw.stdout,
            degraded_to_raw=degraded,
            exit_code=exit_code,
            stderr=raw.stderr,
            verbatim=True,
        )
