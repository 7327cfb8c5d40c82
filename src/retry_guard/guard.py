"""retry_guard.guard

Retry guard: stops an agent from immediately reissuing a tool call that just
failed, unless it has gathered new information first.

Design goals:
- Framework-agnostic: integrates via validate_before_execution/record_failure/
  record_success/detect_diagnostic_actions.
- Advisory: never executes or prevents anything itself. Outcomes are returned
  as ValidationResult values, never raised.
- Deterministic: time comes from an injected millisecond clock.
- Safe-by-default telemetry: fingerprint digests only, no raw parameters.

Per fingerprint a failure moves Absent -> Failed(unaddressed) ->
Failed(addressed) | Absent. Once the cooldown has elapsed an unaddressed
record is left in place but no longer blocks.
"""

from __future__ import annotations

import posixpath
import threading
import time as _time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .config import RetryGuardConfig
from .fingerprint import fingerprint, fingerprint_digest
from .store import FailureStore
from .telemetry import Telemetry
from .types import ErrorCode, ErrorInfo, FailureRecord, TraceEntry, ValidationResult


Clock = Callable[[], float]


def _now_ms() -> float:
    """Monotonic time in milliseconds."""
    return _time.monotonic() * 1000.0


# ================================
# Error Classification
# ================================

_KNOWN_CODES = {c.value for c in ErrorCode}


def classify_error_code(code: Union[ErrorCode, str, None]) -> str:
    """Fold a tool-layer error code into one of the ErrorCode kinds.

    Unrecognized codes are returned lower-cased so callers can still write
    diagnostic rules against them.
    """
    if isinstance(code, ErrorCode):
        return code.value
    if not code:
        return "unknown"
    s = str(code).strip().lower()

    if s in _KNOWN_CODES:
        return s
    if "not_found" in s or "notfound" in s or s in {"enoent", "404", "missing"}:
        return ErrorCode.NOT_FOUND.value
    if "multiple_matches" in s or "ambiguous" in s or "conflict" in s or s == "409":
        return ErrorCode.CONFLICT.value
    if "permission" in s or "denied" in s or s in {"eacces", "eperm", "401", "403"}:
        return ErrorCode.PERMISSION.value
    if "invalid" in s or "validation" in s or s == "400":
        return ErrorCode.VALIDATION.value
    return s


# ================================
# Trace helpers
# ================================

def _coerce_trace_entry(entry: Any) -> Optional[TraceEntry]:
    if isinstance(entry, TraceEntry):
        return entry
    if isinstance(entry, Mapping):
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            return None
        params = entry.get("parameters")
        if params is None:
            params = entry.get("params", entry.get("args"))
        return TraceEntry(name=name, parameters=params, success=bool(entry.get("success")))
    return None


def _same_resource(inspected: str, target: str, descendants: bool) -> bool:
    a = posixpath.normpath(inspected)
    b = posixpath.normpath(target)
    if a == b:
        return True
    if descendants:
        if a == ".":
            # The working directory holds every relative path that stays inside it.
            return not posixpath.isabs(b) and b != ".." and not b.startswith("../")
        prefix = a if a.endswith("/") else a + "/"
        return b.startswith(prefix)
    return False


class _CallSlot:
    """Per-fingerprint lock plus the number of holders and waiters using it."""

    __slots__ = ("lock", "users")

    def __init__(self, lock: Any):
        self.lock = lock
        self.users = 0


# ================================
# Retry Guard Engine
# ================================

class RetryGuard:
    """Blocks immediate identical retries of failed tool calls.

    Call validate_before_execution() before each tool execution,
    record_success()/record_failure() after it,
    and detect_diagnostic_actions() once per turn with the calls made.

    One instance per session; there is no shared global guard. All methods
    are thread-safe. For the validate -> execute -> record sequence on a
    single fingerprint, hold call_lock() (ToolGuard.attempt() does this).
    """

    def __init__(
        self,
        config: Optional[RetryGuardConfig] = None,
        *,
        clock: Optional[Clock] = None,
        telemetry: Optional[Telemetry] = None,
    ):
        self.cfg = config or RetryGuardConfig()
        self.clock: Clock = clock or _now_ms
        self.telemetry = telemetry
        self._store = FailureStore(self.cfg.max_failure_age_ms)
        self._lock = threading.RLock()
        self._call_locks: Dict[str, _CallSlot] = {}

    # -------------------------
    # Internal helpers
    # -------------------------

    def _emit(self, event: str, **fields: Any) -> None:
        if not self.telemetry:
            return
        self.telemetry.emit(event, **fields)

    def _flush(self, pending: List[Tuple[str, Dict[str, Any]]]) -> None:
        # Called after self._lock is released so a slow sink stalls nobody.
        for event, fields in pending:
            self._emit(event, **fields)

    def _cleanup(self, now: float, pending: List[Tuple[str, Dict[str, Any]]]) -> None:
        purged = self._store.cleanup(now)
        if purged:
            pending.append(("failure_records_purged", {"purged": purged, "remaining": len(self._store)}))

    # -------------------------
    # Public API
    # -------------------------

    def validate_before_execution(self, tool_name: str, parameters: Any = None) -> ValidationResult:
        """Decide whether `tool_name(parameters)` may run now."""
        key = fingerprint(tool_name, parameters)
        pending: List[Tuple[str, Dict[str, Any]]] = []
        with self._lock:
            now = self.clock()
            self._cleanup(now, pending)

            record = self._store.get(key)
            if record is None or record.was_addressed:
                result = ValidationResult(allowed=True)
            else:
                elapsed = max(0.0, now - record.timestamp)
                if elapsed >= self.cfg.failure_timeout_ms:
                    # Cooldown over. The record stays until age-based cleanup.
                    result = ValidationResult(allowed=True)
                else:
                    seconds = int(elapsed / 1000.0 + 0.5)
                    pending.append(("tool_retry_blocked", {
                        "tool": tool_name,
                        "fingerprint": fingerprint_digest(key),
                        "error_code": classify_error_code(record.error_info.code),
                        "elapsed_ms": round(elapsed),
                    }))
                    result = ValidationResult(
                        allowed=False,
                        reason=(
                            f"Previous identical tool call failed {seconds}s ago "
                            "and required actions have not been addressed."
                        ),
                        required_actions=list(record.required_actions),
                        previous_failure=record,
                    )
        self._flush(pending)
        return result

    def record_failure(self, tool_name: str, parameters: Any, error_info: ErrorInfo) -> None:
        """Store a failure, replacing any earlier one for the same call."""
        key = fingerprint(tool_name, parameters)
        with self._lock:
            self._store.set(key, FailureRecord(
                timestamp=self.clock(),
                error_info=error_info,
                required_actions=list(error_info.required_actions),
                was_addressed=False,
                tool_name=tool_name,
                fingerprint=key,
            ))
        self._emit(
            "tool_failure_recorded",
            tool=tool_name,
            fingerprint=fingerprint_digest(key),
            error_code=classify_error_code(error_info.code),
            required_actions=len(error_info.required_actions),
        )

    def record_success(self, tool_name: str, parameters: Any = None) -> None:
        """Forget any failure of this exact call."""
        key = fingerprint(tool_name, parameters)
        with self._lock:
            cleared = self._store.delete(key)
        if cleared:
            self._emit("tool_failure_cleared", tool=tool_name, fingerprint=fingerprint_digest(key))

    def mark_failure_addressed(self, tool_name: str, parameters: Any = None) -> bool:
        """Waive the cooldown for a stored failure.

        No-op when nothing is stored. Returns True if a record changed.
        """
        key = fingerprint(tool_name, parameters)
        with self._lock:
            record = self._store.get(key)
            if record is None or record.was_addressed:
                return False
            record.was_addressed = True
        self._emit(
            "tool_failure_addressed",
            tool=tool_name,
            fingerprint=fingerprint_digest(key),
            source="manual",
        )
        return True

    def detect_diagnostic_actions(self, recent_calls: Iterable[Any]) -> List[str]:
        """Mark failures addressed when the trace shows relevant inspection.

        `recent_calls` holds TraceEntry objects or mappings with `name`,
        `parameters` and `success`. A successful call to a configured
        diagnostic tool addresses every unaddressed failure on the same
        resource whose error kind the tool's rule can resolve. Nothing is
        deleted and nothing new is blocked.

        Returns the fingerprints that were marked addressed.
        """
        addressed: List[str] = []
        pending: List[Tuple[str, Dict[str, Any]]] = []
        with self._lock:
            self._cleanup(self.clock(), pending)
            for raw in recent_calls:
                call = _coerce_trace_entry(raw)
                if call is None or not call.success:
                    continue
                rule = self.cfg.diagnostic_rule(call.name)
                if rule is None:
                    continue
                inspected = rule.resource_of(call.parameters)
                if inspected is None:
                    continue

                for key, record in self._store.items():
                    if record.was_addressed or not rule.applies_to(record.tool_name):
                        continue
                    if classify_error_code(record.error_info.code) not in rule.resolves:
                        continue
                    target = self.cfg.context_resource(record.error_info.context)
                    if target is None or not _same_resource(inspected, target, rule.match_descendants):
                        continue
                    record.was_addressed = True
                    addressed.append(key)
                    pending.append(("tool_failure_addressed", {
                        "tool": record.tool_name,
                        "fingerprint": fingerprint_digest(key),
                        "source": call.name,
                    }))
        self._flush(pending)
        return addressed

    def get_failure(self, tool_name: str, parameters: Any = None) -> Optional[FailureRecord]:
        """Stored record for this call, if any. Does not run cleanup."""
        with self._lock:
            return self._store.get(fingerprint(tool_name, parameters))

    def get_failure_stats(self) -> Dict[str, int]:
        """Counts for observability. Not used for decisions."""
        pending: List[Tuple[str, Dict[str, Any]]] = []
        with self._lock:
            now = self.clock()
            self._cleanup(now, pending)
            active = sum(
                1 for r in self._store.values()
                if not r.was_addressed and (now - r.timestamp) < self.cfg.failure_timeout_ms
            )
            stats = {"total_failures": len(self._store), "active_failures": active}
        self._flush(pending)
        return stats

    def clear_all(self) -> None:
        """Forget every failure."""
        with self._lock:
            self._store.clear()

    @contextmanager
    def call_lock(self, tool_name: str, parameters: Any = None) -> Iterator[None]:
        """Hold the check-then-act lock for one fingerprint.

        The lock exists only while someone holds or waits for it, so the
        map stays as small as the set of calls in flight.
        """
        key = fingerprint(tool_name, parameters)
        with self._lock:
            slot = self._call_locks.get(key)
            if slot is None:
                slot = self._call_locks[key] = _CallSlot(threading.Lock())
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._lock:
                slot.users -= 1
                if slot.users == 0:
                    del self._call_locks[key]

    @property
    def call_locks_in_use(self) -> int:
        """Fingerprints currently held or waited on through call_lock()."""
        with self._lock:
            return len(self._call_locks)
