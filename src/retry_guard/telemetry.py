"""retry_guard.telemetry

Event emission for the retry guard.

The guard never puts raw tool parameters into events: only tool names,
fingerprint digests, error codes, and counts.

Usage:
    from retry_guard import RetryGuard, Telemetry, LoggingTelemetry

    guard = RetryGuard(telemetry=Telemetry(sink=LoggingTelemetry()))
"""

from __future__ import annotations

import logging
import time as _time
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger("retry_guard")


class TelemetrySink(Protocol):
    def emit(self, event: Dict[str, Any]) -> None: ...


class LoggingTelemetry:
    """Sink that writes each event to a stdlib logger."""

    def __init__(self, logger_name: str = "retry_guard.telemetry", level: int = logging.INFO):
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def emit(self, event: Dict[str, Any]) -> None:
        name = event.get("event", "unknown")
        fields = " ".join(f"{k}={v}" for k, v in sorted(event.items()) if k not in ("event", "ts"))
        self._logger.log(self._level, "%s %s", name, fields)


class InMemoryTelemetry:
    """Sink that keeps events in a list. Handy for tests and the demo."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def emit(self, event: Dict[str, Any]) -> None:
        self.events.append(dict(event))

    def find(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("event") == name]

    def clear(self) -> None:
        self.events.clear()


class CompositeTelemetry:
    """Fan one event out to several sinks."""

    def __init__(self, *sinks: TelemetrySink):
        self.sinks = list(sinks)

    def emit(self, event: Dict[str, Any]) -> None:
        for sink in self.sinks:
            sink.emit(event)


class Telemetry:
    """Front door used by the guard: stamps events and shields the caller.

    A failing sink is logged and otherwise ignored; telemetry must never
    change a guard decision.
    """

    def __init__(self, sink: Optional[TelemetrySink] = None):
        self.sink = sink if sink is not None else LoggingTelemetry()

    def emit(self, event: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"event": event, "ts": round(_time.time(), 3)}
        payload.update(fields)
        try:
            self.sink.emit(payload)
        except Exception:
            logger.exception("telemetry sink failed for event %s", event)
