"""retry_guard.async_middleware

Async-compatible wrapper for the retry guard.

The engine is pure in-memory computation, so the async methods call it
directly on the event loop. What async adds is coordination: overlapping
tasks that issue the *same* call are serialized by a per-fingerprint
asyncio.Lock held for the whole attempt, so a second identical retry waits
for the first outcome and is then judged against it.

Usage with async agent loops:

    from retry_guard import AsyncToolGuard

    guard = AsyncToolGuard()

    async with guard.attempt("replace", {"file_path": "a.txt"}) as attempt:
        if attempt.allowed:
            await run_tool(...)
            attempt.succeeded()

    await guard.end_turn()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from .config import DiagnosticRule, RetryGuardConfig
from .fingerprint import fingerprint
from .guard import Clock, RetryGuard, _CallSlot
from .middleware import ToolAttempt, ToolGuard
from .telemetry import Telemetry
from .types import ErrorInfo, ValidationResult


class AsyncToolGuard:
    """Async wrapper around ToolGuard for use in async agent loops.

    Args:
        Same as ToolGuard, see :class:`retry_guard.middleware.ToolGuard`.
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
        self._sync = ToolGuard(
            failure_timeout_ms=failure_timeout_ms,
            max_failure_age_ms=max_failure_age_ms,
            diagnostic_rules=diagnostic_rules,
            clock=clock,
            telemetry=telemetry,
            config=config,
            strict_mode=strict_mode,
            trace_window=trace_window,
        )
        self._call_locks: Dict[str, _CallSlot] = {}

    @asynccontextmanager
    async def _hold_call(self, name: str, args: Any) -> AsyncIterator[None]:
        # Single event loop: the map is only touched between awaits.
        key = fingerprint(name, args)
        slot = self._call_locks.get(key)
        if slot is None:
            slot = self._call_locks[key] = _CallSlot(asyncio.Lock())
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._call_locks[key]

    # ─────────────────────────────────────────
    # Async API
    # ─────────────────────────────────────────

    async def check_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> ValidationResult:
        """See :meth:`ToolGuard.check_tool`."""
        return self._sync.check_tool(name, args)

    async def record_result(
        self,
        name: str,
        args: Optional[Dict[str, Any]] = None,
        ok: bool = True,
        error_info: Optional[ErrorInfo] = None,
    ) -> None:
        """See :meth:`ToolGuard.record_result`."""
        self._sync.record_result(name, args, ok=ok, error_info=error_info)

    @asynccontextmanager
    async def attempt(self, name: str, args: Optional[Dict[str, Any]] = None) -> AsyncIterator[ToolAttempt]:
        """Async counterpart of :meth:`ToolGuard.attempt`."""
        args = {} if args is None else args
        async with self._hold_call(name, args):
            result = self._sync.check_tool(name, args)
            attempt = ToolAttempt(self._sync, name, args, result)
            try:
                yield attempt
            finally:
                if attempt.allowed and attempt.outcome is None:
                    self._sync._note_missed(name)

    async def end_turn(self) -> List[str]:
        """See :meth:`ToolGuard.end_turn`."""
        return self._sync.end_turn()

    async def reset(self) -> None:
        """Reset state for a new session (same config)."""
        self._sync.reset()

    # ─────────────────────────────────────────
    # Convenience (delegated to sync guard)
    # ─────────────────────────────────────────

    @property
    def guard(self) -> RetryGuard:
        return self._sync.guard

    @property
    def blocks(self) -> int:
        return self._sync.blocks

    @property
    def failures_addressed(self) -> int:
        return self._sync.failures_addressed

    @property
    def missed_results(self) -> int:
        return self._sync.missed_results

    @property
    def stats(self) -> Dict[str, Any]:
        return self._sync.stats

    @property
    def call_locks_in_use(self) -> int:
        """Fingerprints currently held or waited on by attempt()."""
        return len(self._call_locks)
