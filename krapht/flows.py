"""Flows that transform one channel of items into another."""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from krapht.events import ErrorEvent
from krapht.pipeline import Channel, Flow

I = TypeVar("I")
O = TypeVar("O")

Predicate = Callable[[Any], bool]
Transform = Callable[[Any], Any]


def _start(work: Callable[[], None]) -> None:
    threading.Thread(target=work, daemon=True).start()


def _report(events: Optional[Channel[Any]], msg: str, err: BaseException) -> None:
    if events is not None:
        events.send(ErrorEvent(msg, err, True))


def _forward(inp: Channel[Any], out: Channel[Any]) -> Callable[[], None]:
    def work() -> None:
        try:
            for item in inp:
                out.send(item)
        finally:
            out.close()

    return work


class Buffer(Flow[I, I], Generic[I]):
    """Passes items through a buffered output channel.

    A plain FIFO: once ``size`` items are waiting, the flow blocks until a
    reader makes room.  A size of zero or less becomes 1.
    """

    def __init__(self, size: int = 1) -> None:
        self.size = size if size > 0 else 1

    def transform(self, inp: Channel[I], events: Optional[Channel[Any]]) -> Channel[I]:
        out: Channel[I] = Channel(self.size)
        _start(_forward(inp, out))
        return out


class Passthrough(Flow[I, I], Generic[I]):
    """Forwards every item unchanged."""

    def transform(self, inp: Channel[I], events: Optional[Channel[Any]]) -> Channel[I]:
        out: Channel[I] = Channel()
        _start(_forward(inp, out))
        return out


class Filter(Flow[I, I], Generic[I]):
    """Forwards only the items for which the predicate holds."""

    def __init__(self, predicate: Optional[Predicate]) -> None:
        if predicate is None:
            raise ValueError("predicate func is nil")
        self.predicate = predicate

    def transform(self, inp: Channel[I], events: Optional[Channel[Any]]) -> Channel[I]:
        out: Channel[I] = Channel()

        def work() -> None:
            try:
                for item in inp:
                    if self.predicate(item):
                        out.send(item)
            finally:
                out.close()

        _start(work)
        return out


class Map(Flow[I, O], Generic[I, O]):
    """Applies a function to every item.

    When the function raises, a temporary error event is sent and the item
    is dropped.
    """

    def __init__(self, transform: Optional[Transform]) -> None:
        if transform is None:
            raise ValueError("transform func is nil")
        self.func = transform

    def transform(self, inp: Channel[I], events: Optional[Channel[Any]]) -> Channel[O]:
        out: Channel[O] = Channel()

        def work() -> None:
            try:
                for item in inp:
                    try:
                        value = self.func(item)
                    except Exception as err:
                        _report(events, "map transform error", err)
                        continue
                    out.send(value)
            finally:
                out.close()

        _start(work)
        return out


class FilterMap(Flow[I, O], Generic[I, O]):
    """Applies a function to the items for which the predicate holds.

    When the function raises, a temporary error event is sent and the item
    is dropped.
    """

    def __init__(self, predicate: Optional[Predicate], transform: Optional[Transform]) -> None:
        if predicate is None:
            raise ValueError("predicate func is nil")
        if transform is None:
            raise ValueError("transform func is nil")
        self.predicate = predicate
        self.func = transform

    def transform(self, inp: Channel[I], events: Optional[Channel[Any]]) -> Channel[O]:
        out: Channel[O] = Channel()

        def work() -> None:
            try:
                for item in inp:
                    if not self.predicate(item):
                        continue
                    try:
                        value = self.func(item)
                    except Exception as err:
                        _report(events, "filtermap error transforming data", err)
                        continue
                    out.send(value)
            finally:
                out.close()

        _start(work)
        return out