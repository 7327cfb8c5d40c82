"""edit_loop_simulation.py

Shows the retry guard against a scripted agent stuck on a failing edit.

Run (no API key needed):
    python examples/edit_loop_simulation.py

The scripted 'bad agent':
- Reissues the same failing `replace` call several times in one turn
- Eventually reads the file, then retries the edit
- Never waits out anything on its own
"""

from __future__ import annotations

import os
import sys

# Allow running this example from a repo clone without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from retry_guard import ErrorCode, ErrorInfo, ToolGuard


# -----------------
# Scripted bad agent
# -----------------

FILE = "src/settings.py"
EDIT = {"file_path": FILE, "old_string": "TIMEOUT = 10", "new_string": "TIMEOUT = 30"}


def bad_agent_turns() -> List[List[Tuple[str, Dict[str, Any]]]]:
    """Tool calls per model turn."""
    return [
        [("replace", EDIT)] * 5,
        [("replace", EDIT)] * 3,
        [("read_file", {"file_path": FILE})],
        [("replace", EDIT)],
    ]


class FakeWorkspace:
    """The edit fails until the agent has looked at the file."""

    def __init__(self) -> None:
        self.file_was_read = False

    def execute(self, name: str, args: Dict[str, Any]) -> Tuple[bool, Any]:
        if name == "read_file":
            self.file_was_read = True
            return True, "TIMEOUT = 10  # seconds"
        if name == "replace" and not self.file_was_read:
            return False, ErrorInfo(
                code=ErrorCode.NOT_FOUND,
                context={"filePath": args["file_path"]},
                required_actions=[f"Read {args['file_path']} and copy old_string exactly"],
            )
        return True, "ok"


# -----------------
# Simulation variants
# -----------------

@dataclass
class RunReport:
    name: str
    tool_calls_executed: int
    failed_calls: int
    blocked: int


def run_no_guard() -> RunReport:
    ws = FakeWorkspace()
    executed = failed = 0
    for turn in bad_agent_turns():
        for name, args in turn:
            ok, _ = ws.execute(name, args)
            executed += 1
            failed += 0 if ok else 1
    return RunReport("no_guard", executed, failed, 0)


def run_retry_guard() -> RunReport:
    ws = FakeWorkspace()
    guard = ToolGuard()
    for turn in bad_agent_turns():
        for name, args in turn:
            with guard.attempt(name, args) as attempt:
                if not attempt.allowed:
                    # A real loop would hand this to the model as the tool result.
                    _ = attempt.result.directive()
                    continue
                ok, payload = ws.execute(name, args)
                if ok:
                    attempt.succeeded()
                else:
                    attempt.failed(payload)
        guard.end_turn()
    return RunReport("retry_guard", guard.tool_calls_executed, guard.tool_calls_failed, guard.blocks)


# -----------------
# Main
# -----------------

def main() -> None:
    print("=" * 56)
    print("  retry-guard: Edit Loop Simulation")
    print("=" * 56)
    fmt = "  {:<16} {:>10} {:>10} {:>10}"
    print(fmt.format("variant", "executed", "failed", "blocked"))
    for r in (run_no_guard(), run_retry_guard()):
        print(fmt.format(r.name, r.tool_calls_executed, r.failed_calls, r.blocked))


if __name__ == "__main__":
    main()
