"""Collects pipeline events and hands them to callbacks on worker threads."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Optional

from krapht.events import Event
from krapht.pipeline import Channel

EventCallback = Callable[[Event], Any]

_DEFAULT_WORKERS = 1
_DEFAULT_BUFFER_SIZE = 100


class EventCollector:
    """Receives events on a channel and runs callbacks for each.

    General callbacks run for every event; typed callbacks run only for
    events whose ``type()`` matches.  Non-positive ``workers`` or
    ``buffer_size`` fall back to the defaults.
    """

    def __init__(
        self,
        workers: int = _DEFAULT_WORKERS,
        buffer_size: int = _DEFAULT_BUFFER_SIZE,
        callbacks: Optional[Iterable[EventCallback]] = None,
        typed_callbacks: Optional[Iterable[tuple[int, EventCallback]]] = None,
    ) -> None:
        self._workers = workers if workers > 0 else _DEFAULT_WORKERS
        self._buffer_size = buffer_size if buffer_size > 0 else _DEFAULT_BUFFER_SIZE
        self._callbacks: list[EventCallback] = []
        self._typed_callbacks: list[tuple[int, EventCallback]] = []
        for callback in callbacks or ():
            self.add_callback(callback)
        for event_type, callback in typed_callbacks or ():
            self.add_typed_callback(event_type, callback)
        self._lock = threading.Lock()
        self._channel: Optional[Channel[Event]] = None
        self._threads: list[threading.Thread] = []

    @property
    def workers(self) -> int:
        """Number of worker threads started by :meth:`collect`."""
        return self._workers

    @property
    def buffer_size(self) -> int:
        """Capacity of the event channel."""
        return self._buffer_size

    def add_callback(self, callback: Optional[EventCallback]) -> None:
        """Add a callback run for every event; None is ignored."""
        if callback is not None:
            self._callbacks.append(callback)

    def add_typed_callback(self, event_type: int, callback: Optional[EventCallback]) -> None:
        """Add a callback run for events of ``event_type``; None is ignored."""
        if callback is not None:
            self._typed_callbacks.append((event_type, callback))

    def collect(self) -> Channel[Event]:
        """Start the workers and return the channel to send events on.

        Calling it again while open returns the same channel.
        """
        with self._lock:
            if self._channel is not None:
                return self._channel
            channel: Channel[Event] = Channel(self._buffer_size)
            self._channel = channel
            self._threads = [
                threading.Thread(target=self._work, args=(channel,), daemon=True)
                for _ in range(self._workers)
            ]
            for thread in self._threads:
                thread.start()
            return channel

    def _work(self, channel: Channel[Event]) -> None:
        for event in channel:
            self._process(event)

    def _process(self, event: Event) -> None:
        for callback in self._callbacks:
            callback(event)
        event_type = event.type()
        for wanted, callback in self._typed_callbacks:
            if wanted == event_type:
                callback(event)

    def close(self) -> None:
        """Close the channel and wait for the workers to finish the backlog."""
        with self._lock:
            if self._channel is None:
                return
            channel, self._channel = self._channel, None
            threads, self._threads = self._threads, []
        channel.close()
        for thread in threads:
            thread.join()

    def __enter__(self) -> Channel[Event]:
        return self.collect()

    def __exit__(self, *args: Any) -> None:
        self.close()