"""Events sent over a pipeline's event channel."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


class EventType(enum.IntEnum):
    """The kind of a pipeline event."""

    LOG = 0
    ERROR = 1
    METRIC = 2


class LogLevel(enum.IntEnum):
    """Log level of a log event; the notice level (5) is not used."""

    ERROR = 3
    WARN = 4
    INFO = 6
    DEBUG = 7


class MetricType(str, enum.Enum):
    """The kind of a metric."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"

    def __str__(self) -> str:
        return self.value


class Event(ABC):
    """An event sent over the event bus."""

    @abstractmethod
    def type(self) -> int:
        """Return the event's type."""

    @abstractmethod
    def __str__(self) -> str:
        """Return the event's text."""


class ErrorEvent(Event, Exception):
    """An error in the pipeline; it can also be raised."""

    def __init__(self, msg: str, err: Optional[BaseException], temporary: bool) -> None:
        super().__init__(msg, err)
        self.msg = msg
        self.err = err
        self._temporary = temporary

    def type(self) -> EventType:
        return EventType.ERROR

    def __str__(self) -> str:
        if self.err is None:
            return self.msg
        return f"{self.msg}: {self.err}"

    def is_temporary(self) -> bool:
        """Whether the error is expected to pass."""
        return self._temporary

    def unwrap(self) -> Optional[BaseException]:
        """Return the underlying error."""
        return self.err


@dataclass(frozen=True)
class LogEvent(Event):
    """A log entry in the pipeline."""

    source: str
    level: LogLevel
    msg: str

    def type(self) -> EventType:
        return EventType.LOG

    def __str__(self) -> str:
        return f"{self.source}: {self.msg}"

    def send(self, channel: Any) -> None:
        """Send this event on ``channel``, blocking until it is accepted."""
        channel.send(self)


@dataclass(frozen=True)
class MetricEvent(Event):
    """A metric measurement in the pipeline."""

    name: str
    value: float
    labels: dict
    metric_type: MetricType

    def type(self) -> EventType:
        return EventType.METRIC

    def __str__(self) -> str:
        return self.name


def send_event(channel: Any, event: Event) -> bool:
    """Send ``event`` without blocking.

    Returns True if it was accepted, False if ``channel`` is None or has no
    room for it.
    """
    if channel is None:
        return False
    return channel.try_send(event)