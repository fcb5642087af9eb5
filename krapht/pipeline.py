"""Channels and the abstract stages a pipeline is built from.

A pipeline is a Source, one or more Flows, and a Sink.  Stages hand data to
each other through :class:`Channel` objects and report errors and other
happenings on an event channel.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Generic, Iterator, Optional, Sequence, TypeVar

T = TypeVar("T")
In = TypeVar("In")
Out = TypeVar("Out")


class ChannelClosedError(Exception):
    """Raised on sending to, closing or draining a closed channel."""


class Channel(Generic[T]):
    """A thread-safe FIFO channel with an optional buffer.

    With ``capacity == 0`` a send waits until a receiver is waiting for it.
    With a positive capacity up to that many items are held before senders
    block.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("channel capacity must not be negative")
        self._capacity = capacity
        self._items: Deque[T] = deque()
        self._closed = False
        self._waiting_receivers = 0
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        """The number of items the channel buffers."""
        return self._capacity

    def _has_room(self) -> bool:
        return len(self._items) < self._capacity + self._waiting_receivers

    def send(self, item: T) -> None:
        """Put an item on the channel, blocking until there is room."""
        with self._cond:
            while not self._closed and not self._has_room():
                self._cond.wait()
            if self._closed:
                raise ChannelClosedError("send on closed channel")
            self._items.append(item)
            self._cond.notify_all()

    def try_send(self, item: T) -> bool:
        """Put an item on the channel without blocking.

        Returns True if the item was accepted, False if there was no room.
        """
        with self._cond:
            if self._closed:
                raise ChannelClosedError("send on closed channel")
            if not self._has_room():
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def receive(self) -> T:
        """Take the next item, blocking until one arrives.

        Raises ChannelClosedError once the channel is closed and drained.
        """
        with self._cond:
            self._waiting_receivers += 1
            self._cond.notify_all()
            try:
                while not self._items:
                    if self._closed:
                        raise ChannelClosedError("receive from closed channel")
                    self._cond.wait()
                item = self._items.popleft()
            finally:
                self._waiting_receivers -= 1
            self._cond.notify_all()
            return item

    def close(self) -> None:
        """Close the channel; buffered items can still be received."""
        with self._cond:
            if self._closed:
                raise ChannelClosedError("close of closed channel")
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """Whether the channel has been closed."""
        with self._cond:
            return self._closed

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.receive()
            except ChannelClosedError:
                return

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class Readable(ABC):
    """A source of bytes."""

    @abstractmethod
    def read(self) -> bytes:
        """Return the data; raise on failure."""


class DataReadable(ABC):
    """A message carrying structured data."""

    @abstractmethod
    def data(self) -> Readable:
        """Return a Readable for the structured data."""


class RawReadable(ABC):
    """A message carrying the raw message."""

    @abstractmethod
    def raw(self) -> Readable:
        """Return a Readable for the raw message."""


class DataRawReadable(DataReadable, RawReadable):
    """A message carrying both structured data and the raw message."""


class Source(ABC, Generic[Out]):
    """The start of a pipeline."""

    @abstractmethod
    def extract(self, stop: threading.Event, events: Optional[Channel[Any]]) -> Channel[Out]:
        """Start producing items; setting ``stop`` drains the pipeline."""


class Flow(ABC, Generic[In, Out]):
    """A transformation between two channels."""

    @abstractmethod
    def transform(self, inp: Channel[In], events: Optional[Channel[Any]]) -> Channel[Out]:
        """Consume ``inp`` and return the channel of transformed items."""


class FanOut(ABC, Generic[T]):
    """Splits one channel into several."""

    @abstractmethod
    def split(self, inp: Channel[T], events: Optional[Channel[Any]], n: int) -> list[Channel[T]]:
        """Return ``n`` output channels fed from ``inp``."""


class FanIn(ABC, Generic[T]):
    """Merges several channels into one."""

    @abstractmethod
    def merge(self, ins: Sequence[Channel[T]], events: Optional[Channel[Any]]) -> Channel[T]:
        """Return one channel fed from all of ``ins``."""


class Sink(ABC, Generic[In]):
    """The end of a pipeline."""

    @abstractmethod
    def load(self, inp: Channel[In], events: Optional[Channel[Any]]) -> None:
        """Consume every item of ``inp``."""


class Runnable(ABC):
    """A whole pipeline that manages its own lifecycle."""

    @abstractmethod
    def run(self, stop: threading.Event) -> Channel[Any]:
        """Start the pipeline and return its event channel."""