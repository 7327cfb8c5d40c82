"""retry-guard: blocks immediate identical retries of failed agent tool calls.

Quick start:
    from retry_guard import ErrorInfo, ToolGuard

    guard = ToolGuard(failure_timeout_ms=30_000)
    with guard.attempt("replace", {"file_path": "a.txt", "old": "x"}) as attempt:
        if not attempt.allowed:
            print(attempt.result.directive())
"""

from .config import DiagnosticRule, RetryGuardConfig, default_diagnostic_rules
from .fingerprint import fingerprint
from .guard import RetryGuard, classify_error_code
from .middleware import ToolAttempt, ToolGuard
from .async_middleware import AsyncToolGuard
from .telemetry import (
    CompositeTelemetry,
    InMemoryTelemetry,
    LoggingTelemetry,
    Telemetry,
)
from .types import (
    ErrorCode,
    ErrorInfo,
    FailureRecord,
    ToolRetryBlocked,
    TraceEntry,
    ValidationResult,
)

__version__ = "0.1.0"

__all__ = [
    # High-level API
    "ToolGuard",
    "ToolAttempt",
    "AsyncToolGuard",
    # Core engine
    "RetryGuard",
    "RetryGuardConfig",
    "DiagnosticRule",
    "default_diagnostic_rules",
    "fingerprint",
    "classify_error_code",
    # Types
    "ErrorCode",
    "ErrorInfo",
    "FailureRecord",
    "TraceEntry",
    "ValidationResult",
    "ToolRetryBlocked",
    # Telemetry
    "Telemetry",
    "LoggingTelemetry",
    "InMemoryTelemetry",
    "CompositeTelemetry",
]
