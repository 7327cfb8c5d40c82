"""retry_guard.config

Configuration for the retry guard.

Both time windows are explicit with conservative defaults. The mapping from
diagnostic tools to the failure kinds they can resolve is plain data so new
tools can be registered without touching the reconciliation pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple


# ================================
# Diagnostic Rules
# ================================

@dataclass(frozen=True)
class DiagnosticRule:
    """What a successful call to a read-only tool can resolve.

    Example:
        DiagnosticRule(
            resolves=frozenset({"not_found", "conflict"}),
            resource_keys=("file_path", "path"),
            target_tools=frozenset({"replace"}),
        )
    """

    resolves: FrozenSet[str]                       # normalized error codes
    resource_keys: Tuple[str, ...] = ("file_path", "path")
    target_tools: Optional[FrozenSet[str]] = None  # None = failures of any tool
    match_descendants: bool = False                # directory-style tools

    def resource_of(self, parameters: Any) -> Optional[str]:
        """First non-empty resource identifier in `parameters`, if any."""
        if not isinstance(parameters, Mapping):
            return None
        for key in self.resource_keys:
            value = parameters.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return None

    def applies_to(self, tool_name: str) -> bool:
        return self.target_tools is None or tool_name in self.target_tools


_EDIT_TOOLS = frozenset({"replace", "edit", "write_file"})


def default_diagnostic_rules() -> Dict[str, DiagnosticRule]:
    """Read/inspect/search tools that count as gathering new information."""
    return {
        "read_file": DiagnosticRule(
            resolves=frozenset({"not_found", "conflict"}),
            resource_keys=("file_path", "absolute_path", "path"),
            target_tools=_EDIT_TOOLS,
        ),
        "list_directory": DiagnosticRule(
            resolves=frozenset({"not_found"}),
            resource_keys=("path", "dir_path"),
            match_descendants=True,
        ),
        "grep": DiagnosticRule(
            resolves=frozenset({"not_found", "conflict"}),
            resource_keys=("path", "file_path"),
            target_tools=_EDIT_TOOLS,
            match_descendants=True,
        ),
        "search_file_content": DiagnosticRule(
            resolves=frozenset({"not_found", "conflict"}),
            resource_keys=("path", "file_path"),
            target_tools=_EDIT_TOOLS,
            match_descendants=True,
        ),
        "glob": DiagnosticRule(
            resolves=frozenset({"not_found"}),
            resource_keys=("path",),
            match_descendants=True,
        ),
    }


# ================================
# Guard Config
# ================================

@dataclass
class RetryGuardConfig:
    """Windows and reconciliation rules for the guard.

    All options have sensible defaults. Override what you need.
    """

    # COOLDOWN
    # --------
    # An unaddressed failure blocks the identical call for this long.
    failure_timeout_ms: int = 30_000

    # RETENTION
    # ---------
    # Records older than this are purged on the next cleanup, addressed or not.
    max_failure_age_ms: int = 300_000

    # RECONCILIATION
    # --------------
    # Diagnostic tool name -> rule. Replace or extend to teach the guard
    # about new read-only tools.
    diagnostic_rules: Dict[str, DiagnosticRule] = field(
        default_factory=default_diagnostic_rules
    )

    # ErrorInfo.context keys that may hold the failed operation's resource.
    context_resource_keys: Tuple[str, ...] = ("filePath", "file_path", "path", "dirPath")

    def __post_init__(self) -> None:
        if self.failure_timeout_ms <= 0:
            raise ValueError("failure_timeout_ms must be > 0")
        if self.max_failure_age_ms <= 0:
            raise ValueError("max_failure_age_ms must be > 0")
        if self.max_failure_age_ms < self.failure_timeout_ms:
            raise ValueError("max_failure_age_ms must be >= failure_timeout_ms")
        for name, rule in self.diagnostic_rules.items():
            if not isinstance(rule, DiagnosticRule):
                raise ValueError(f"diagnostic rule for '{name}' must be a DiagnosticRule")
            if not rule.resource_keys:
                raise ValueError(f"diagnostic rule for '{name}' needs at least one resource key")

    # --------------------------------
    # Helper methods
    # --------------------------------

    def is_diagnostic_tool(self, tool_name: str) -> bool:
        return tool_name in self.diagnostic_rules

    def diagnostic_rule(self, tool_name: str) -> Optional[DiagnosticRule]:
        return self.diagnostic_rules.get(tool_name)

    def context_resource(self, context: Any) -> Optional[str]:
        """Resource identifier referenced by an ErrorInfo context, if any."""
        if not isinstance(context, Mapping):
            return None
        for key in self.context_resource_keys:
            value = context.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return None
