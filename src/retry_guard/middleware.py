"""retry_guard.middleware

Scheduler-facing wrapper around RetryGuard.

Reduces integration to: attempt() around each tool call and end_turn() after
each model turn. check_tool()/record_result() remain available for loops that
can't use a context manager.

Usage:
    from retry_guard import ErrorInfo, ToolGuard

    guard = ToolGuard(failure_timeout_ms=30_000)

    with guard.attempt("replace", {"file_path": "a.txt", "old": "x"}) as attempt:
        if not attempt.allowed:
            tell_model(attempt.result.directive())
        else:
            try:
                run_tool(...)
                attempt.succeeded()
            except EditNotFound as exc:
                attempt.failed(ErrorInfo(code="not_found", context={"filePath": "a.txt"},
                                         required_actions=["Read a.txt first"]))

    # After each model turn
    guard.end_turn()
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, List, Optional

from .config import DiagnosticRule, RetryGuardConfig
from .guard import Clock, RetryGuard
from .telemetry import Telemetry
from .types import ErrorInfo, ToolRetryBlocked, TraceEntry, ValidationResult

logger = logging.getLogger("retry_guard")


class ToolAttempt:
    """One validated tool call awaiting its outcome."""

    def __init__(self, owner: "ToolGuard", name: str, args: Dict[str, Any], result: ValidationResult):
        self._owner = owner
        self.name = name
        self.args = args
        self.result = result
        self.outcome: Optional[bool] = None

    @property
    def allowed(self) -> bool:
        return self.result.allowed

    def succeeded(self) -> None:
        self._report(True, None)

    def failed(self, error_info: ErrorInfo) -> None:
        self._report(False, error_info)

    def _report(self, ok: bool, error_info: Optional[ErrorInfo]) -> None:
        if self.outcome is not None:
            raise RuntimeError(f"Outcome for '{self.name}' was already recorded.")
        if not self.allowed:
            raise RuntimeError(f"Cannot record an outcome for blocked call '{self.name}'.")
        self.outcome = ok
        self._owner.record_result(self.name, self.args, ok=ok, error_info=error_info)


class ToolGuard:
    """Retry guard wrapper for custom agent loops.

    Safe to share across threads: identical calls are serialized inside
    attempt(), different calls don't contend.

    Args:
        failure_timeout_ms: Cooldown before an unaddressed failure stops blocking.
        max_failure_age_ms: Retention before a failure record is purged.
        diagnostic_rules: Override the diagnostic tool -> rule mapping.
        clock: Callable returning the current time in milliseconds.
        telemetry: Optional Telemetry instance for event emission.
        config: Optional full RetryGuardConfig (overrides other params).
        strict_mode: Raise ToolRetryBlocked instead of returning a blocked result.
        trace_window: Max calls remembered between end_turn() calls.
    """

    def __init__(
        self,
        *,
        failure_timeout_ms: Optional[int] = None,
        max_failure_age_ms: Optional[int] = None,
        diagnostic_rules: Optional[Dict[str, DiagnosticRule]] = None,
        clock: Optional[Clock] = None,
        telemetry: Optional[Telemetry] = None,
        config: Optional[RetryGuardConfig] = None,
        strict_mode: bool = False,
        trace_window: int = 50,
    ):
        if trace_window < 1:
            raise ValueError("trace_window must be >= 1")

        if config is not None:
            self._cfg = config
        else:
            kwargs: Dict[str, Any] = {}
            if failure_timeout_ms is not None:
                kwargs["failure_timeout_ms"] = failure_timeout_ms
            if max_failure_age_ms is not None:
                kwargs["max_failure_age_ms"] = max_failure_age_ms
            if diagnostic_rules is not None:
                kwargs["diagnostic_rules"] = dict(diagnostic_rules)
            self._cfg = RetryGuardConfig(**kwargs)

        self._strict_mode = strict_mode
        self._guard = RetryGuard(config=self._cfg, clock=clock, telemetry=telemetry)
        self._trace: Deque[TraceEntry] = deque(maxlen=trace_window)
        self._lock = threading.Lock()

        # Public counters
        self.blocks: int = 0
        self.tool_calls_executed: int = 0   # outcomes reported (success + failure)
        self.tool_calls_failed: int = 0
        self.failures_addressed: int = 0    # lifted by end_turn()
        self.missed_results: int = 0        # attempts that ended with no outcome

    # ─────────────────────────────────────────
    # Core API
    # ─────────────────────────────────────────

    def check_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> ValidationResult:
        """Check whether a tool call may run.

        Returns a ValidationResult. When `allowed` is False, surface
        result.directive() to the model instead of executing.
        """
        result = self._guard.validate_before_execution(name, {} if args is None else args)
        if not result.allowed:
            with self._lock:
                self.blocks += 1
            logger.info("blocked retry of '%s': %s", name, result.reason)
            if self._strict_mode:
                raise ToolRetryBlocked(name, result)
        return result

    def record_result(
        self,
        name: str,
        args: Optional[Dict[str, Any]] = None,
        ok: bool = True,
        error_info: Optional[ErrorInfo] = None,
    ) -> None:
        """Record the outcome of an executed tool call."""
        args = {} if args is None else args
        if ok:
            self._guard.record_success(name, args)
        else:
            if error_info is None:
                error_info = ErrorInfo(code="execution")
            self._guard.record_failure(name, args, error_info)

        with self._lock:
            self._trace.append(TraceEntry(name=name, parameters=args, success=ok))
            self.tool_calls_executed += 1
            if not ok:
                self.tool_calls_failed += 1

    @contextmanager
    def attempt(self, name: str, args: Optional[Dict[str, Any]] = None) -> Iterator[ToolAttempt]:
        """Validate, then hold the fingerprint's lock until the block exits.

        Report the outcome with attempt.succeeded() or attempt.failed(info).
        If the block exits without either, nothing is recorded.
        """
        args = {} if args is None else args
        with self._guard.call_lock(name, args):
            result = self.check_tool(name, args)
            attempt = ToolAttempt(self, name, args, result)
            try:
                yield attempt
            finally:
                if attempt.allowed and attempt.outcome is None:
                    self._note_missed(name)

    def _note_missed(self, name: str) -> None:
        with self._lock:
            self.missed_results += 1
        logger.warning(
            "attempt for tool '%s' ended without a reported outcome; nothing recorded.",
            name,
        )

    def end_turn(self) -> List[str]:
        """Feed this turn's calls to the reconciliation pass and start a new trace.

        Returns fingerprints whose failures were marked addressed.
        """
        with self._lock:
            trace = list(self._trace)
            self._trace.clear()
        addressed = self._guard.detect_diagnostic_actions(trace)
        if addressed:
            with self._lock:
                self.failures_addressed += len(addressed)
            logger.debug("diagnostic calls addressed %d failure(s)", len(addressed))
        return addressed

    # ─────────────────────────────────────────
    # Convenience
    # ─────────────────────────────────────────

    @property
    def guard(self) -> RetryGuard:
        """The underlying engine."""
        return self._guard

    @property
    def config(self) -> RetryGuardConfig:
        return self._cfg

    @property
    def trace(self) -> List[TraceEntry]:
        """Calls recorded since the last end_turn()."""
        with self._lock:
            return list(self._trace)

    @property
    def stats(self) -> Dict[str, Any]:
        """Summary statistics for this session."""
        failure_stats = self._guard.get_failure_stats()
        with self._lock:
            return {
                "tool_calls_executed": self.tool_calls_executed,
                "tool_calls_failed": self.tool_calls_failed,
                "blocks": self.blocks,
                "failures_addressed": self.failures_addressed,
                "missed_results": self.missed_results,
                "total_failures": failure_stats["total_failures"],
                "active_failures": failure_stats["active_failures"],
                "strict_mode": self._strict_mode,
            }

    def reset(self) -> None:
        """Reset state for a new session (same config)."""
        self._guard.clear_all()
        with self._lock:
            self._trace.clear()
            self.blocks = 0
            self.tool_calls_executed = 0
            self.tool_calls_failed = 0
            self.failures_addressed = 0
            self.missed_results = 0
