"""retry_guard.demo

Scripted retry-loop demo. No model or API key needed.

A 'stubborn agent' keeps reissuing a failed edit, then finally reads the
file, and separately waits out a permission failure. The guard's decisions
are printed step by step against a simulated clock.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from .middleware import ToolGuard
from .telemetry import InMemoryTelemetry, Telemetry
from .types import ErrorInfo


class SimulatedClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


# Each step: (kind, payload)
#   ("tool", (name, args, ok, error_info))  execute if allowed, report ok/failure
#   ("turn", None)                          end of model turn
#   ("wait", ms)                            simulated time passes
Step = Tuple[str, Any]

_EDIT = {"file_path": "app/config.py", "old_string": "DEBUG = True", "new_string": "DEBUG = False"}
_EDIT_MISSING = ErrorInfo(
    code="EDIT_TEXT_NOT_FOUND",
    context={"filePath": "app/config.py"},
    required_actions=["Read app/config.py to see its current content", "Adjust old_string to match exactly"],
)
_WRITE = {"file_path": "/etc/app.conf", "content": "x"}
_WRITE_DENIED = ErrorInfo(
    code="permission",
    context={"filePath": "/etc/app.conf"},
    required_actions=["Write to a path inside the workspace"],
)


def stubborn_agent_steps() -> List[Step]:
    return [
        ("tool", ("replace", _EDIT, False, _EDIT_MISSING)),
        ("tool", ("replace", _EDIT, False, _EDIT_MISSING)),
        ("tool", ("replace", _EDIT, False, _EDIT_MISSING)),
        ("turn", None),
        ("tool", ("read_file", {"file_path": "app/config.py"}, True, None)),
        ("turn", None),
        ("tool", ("replace", _EDIT, True, None)),
        ("tool", ("write_file", _WRITE, False, _WRITE_DENIED)),
        ("wait", 5_000),
        ("tool", ("write_file", _WRITE, False, _WRITE_DENIED)),
        ("wait", 30_000),
        ("tool", ("write_file", _WRITE, True, None)),
        ("turn", None),
    ]


def run_demo(json_out: Optional[str] = None) -> Dict[str, Any]:
    clock = SimulatedClock()
    sink = InMemoryTelemetry()
    guard = ToolGuard(clock=clock, telemetry=Telemetry(sink=sink))

    print("\n=== retry-guard demo: stubborn agent ===\n")
    for i, (kind, payload) in enumerate(stubborn_agent_steps(), start=1):
        t = f"t+{clock() / 1000:>5.1f}s"
        if kind == "wait":
            clock.advance(payload)
            print(f"  [{i:02d}] {t}  ... {payload / 1000:.0f}s pass")
            continue
        if kind == "turn":
            addressed = guard.end_turn()
            print(f"  [{i:02d}] {t}  end of turn, {len(addressed)} failure(s) addressed")
            continue

        name, args, ok, error_info = payload
        with guard.attempt(name, args) as attempt:
            if not attempt.allowed:
                print(f"  [{i:02d}] {t}  BLOCK   {name}: {attempt.result.reason}")
                continue
            if ok:
                attempt.succeeded()
                print(f"  [{i:02d}] {t}  ALLOW   {name} -> ok")
            else:
                attempt.failed(error_info)
                print(f"  [{i:02d}] {t}  ALLOW   {name} -> failed ({error_info.code})")

    report = {"stats": guard.stats, "events": sink.events}
    print("\n  Summary:")
    for k, v in guard.stats.items():
        print(f"    {k}: {v}")

    if json_out:
        with open(json_out, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
        print(f"\n  Report saved to {json_out}")
    return report


