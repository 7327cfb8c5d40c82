"""retry_guard.types

Boundary types shared by the guard, its wrappers, and the tool layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ErrorCode(str, Enum):
    """Failure kinds a tool implementation can report.

    Tools may also pass any other string; it is carried through as-is
    (lower-cased) so new kinds don't require a release.
    """
    VALIDATION = "validation"
    EXECUTION = "execution"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass
class ErrorInfo:
    """Classified failure description produced by the tool layer.

    `context` should carry whatever resource identifier the diagnostic
    rules need (e.g. {"filePath": "src/app.py"}).
    """

    code: Union[ErrorCode, str]
    context: Dict[str, Any] = field(default_factory=dict)
    required_actions: List[str] = field(default_factory=list)
    message: Optional[str] = None


@dataclass
class FailureRecord:
    """Most recent failure for one fingerprint."""

    timestamp: float                 # ms, from the guard's clock
    error_info: ErrorInfo
    required_actions: List[str] = field(default_factory=list)
    was_addressed: bool = False
    tool_name: str = ""
    fingerprint: str = ""


@dataclass
class ValidationResult:
    """Outcome of RetryGuard.validate_before_execution()."""

    allowed: bool
    reason: Optional[str] = None
    required_actions: Optional[List[str]] = None
    previous_failure: Optional[FailureRecord] = None

    def directive(self) -> Optional[str]:
        """Render a block as an instruction for the decision-maker.

        Returns None when the call is allowed.
        """
        if self.allowed:
            return None
        lines = [f"SYSTEM ALERT: {self.reason or 'This tool call is blocked.'}"]
        actions = self.required_actions or []
        if actions:
            lines.append("Before retrying this exact call, do one of the following:")
            lines.extend(f"- {a}" for a in actions)
        else:
            lines.append(
                "Gather new information or change the parameters before retrying this exact call."
            )
        return "\n".join(lines)


@dataclass
class TraceEntry:
    """One completed tool call, as fed to the diagnostic reconciliation pass."""

    name: str
    parameters: Any = None
    success: bool = False


class ToolRetryBlocked(Exception):
    """Raised by wrappers in strict mode when a retry is blocked.

    Attributes:
        tool: Name of the blocked tool
        result: The ValidationResult explaining the block
    """

    def __init__(self, tool: str, result: ValidationResult):
        self.tool = tool
        self.result = result
        super().__init__(f"Retry of '{tool}' blocked: {result.reason}")
