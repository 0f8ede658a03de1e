"""Structured tracing hooks used by the retargeting core.

The core reports events through a :class:`Tracer` rather than printing, so the
host application decides where diagnostics go.
"""

import logging
from collections import Counter
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Tracer(Protocol):
    def event(self, name: str, **fields: Any) -> None: ...

    def count(self, name: str, n: int = 1) -> None: ...


class NullTracer:
    """Discards everything."""

    def event(self, name: str, **fields: Any) -> None:
        pass

    def count(self, name: str, n: int = 1) -> None:
        pass


class LoggingTracer:
    """Forwards events to a standard library logger at DEBUG level."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.DEBUG) -> None:
        self.log = log or logger
        self.level = level
        self.counters: Counter[str] = Counter()

    def event(self, name: str, **fields: Any) -> None:
        if self.log.isEnabledFor(self.level):
            details = " ".join(f"{key}={value!r}" for key, value in fields.items())
            self.log.log(self.level, "%s %s", name, details)

    def count(self, name: str, n: int = 1) -> None:
        self.counters[name] += n


class RecordingTracer:
    """Keeps events in memory; handy for tests and debug overlays."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.counters: Counter[str] = Counter()

    def event(self, name: str, **fields: Any) -> None:
        self.events.append((name, fields))

    def count(self, name: str, n: int = 1) -> None:
        self.counters[name] += n

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def default_tracer(tracer: Tracer | None, log: logging.Logger | None = None) -> Tracer:
    return tracer if tracer is not None else LoggingTracer(log)
