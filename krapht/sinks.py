"""Sinks that end a pipeline."""

from __future__ import annotations

import base64
import dataclasses
import json
import logging
import threading
from typing import Any, Generic, Optional, TypeVar

from krapht.events import ErrorEvent
from krapht.pipeline import Channel, DataRawReadable, Sink

I = TypeVar("I")

NATS_SINK_PREFIX = "nats stream sink"


class NatsSinkError(Exception):
    """Raised when a NATS stream sink is misconfigured."""


def _report(events: Optional[Channel[Any]], msg: str, err: Optional[BaseException]) -> None:
    if events is not None:
        events.send(ErrorEvent(msg, err, True))


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _format(data: Any) -> str:
    try:
        return json.dumps(
            data,
            indent="\t",
            ensure_ascii=False,
            sort_keys=True,
            allow_nan=False,
            default=_json_default,
        )
    except (TypeError, ValueError):
        return str(data)


class LoggerSink(Sink[I], Generic[I]):
    """Logs every item, formatted as indented JSON where possible."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def load(self, inp: Channel[I], events: Optional[Channel[Any]]) -> None:
        for data in inp:
            text = _format(data)
            if not text:
                _report(events, "formatted data is empty", None)
            else:
                self.logger.info(text)


class Noop(Sink[Any]):
    """Reads and discards every item."""

    def load(self, inp: Channel[Any], events: Optional[Channel[Any]]) -> None:
        for _ in inp:
            pass


class NatsStream(Sink[DataRawReadable]):
    """Publishes each message's data to a JetStream subject.

    ``js`` is any object with a ``publish(subject, payload)`` method.  After
    a successful publish the raw message is acknowledged if it has ``ack``.
    """

    def __init__(self, js: Any, subject: str) -> None:
        if js is None:
            raise NatsSinkError(f"{NATS_SINK_PREFIX}: sink error: nats connection is nil")
        if not subject:
            raise NatsSinkError(f"{NATS_SINK_PREFIX}: sink error: subject is empty")
        self.js = js
        self.subject = subject

    def load(
        self, inp: Channel[DataRawReadable], events: Optional[Channel[Any]]
    ) -> threading.Thread:
        """Publish in a background thread and return that thread."""
        thread = threading.Thread(target=self._publish_all, args=(inp, events), daemon=True)
        thread.start()
        return thread

    def _publish_all(
        self, inp: Channel[DataRawReadable], events: Optional[Channel[Any]]
    ) -> None:
        for message in inp:
            try:
                payload = message.data().read()
            except Exception as err:
                _report(events, "failed to read data", err)
                continue
            try:
                self.js.publish(self.subject, payload)
            except Exception as err:
                _report(events, "failed to publish message to nats", err)
                continue
            ack = getattr(message.raw(), "ack", None)
            if callable(ack):
                try:
                    ack()
                except Exception as err:
                    _report(events, "failed to ack message", err)