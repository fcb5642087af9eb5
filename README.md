# krapht

A small library for building data pipelines from threads and channels.

A pipeline starts at a **source**, runs through one or more **flows** and
ends at a **sink**. Stages are joined by `Channel` objects. A `Channel` is a
thread-safe FIFO queue that can be closed. Each stage also gets an events
channel, and it reports what happens there as `ErrorEvent`, `LogEvent` and
`MetricEvent` objects.

## Installing

```
pip install krapht
```

Python 3.10 or later is needed. The package has no runtime dependencies.

## Building blocks

- `krapht.pipeline`
  - `Channel(capacity=0)` supports `send`, `try_send`, `receive`, `close`,
    `closed`, `len()` and iteration. With capacity 0, a send waits until a
    receiver is ready to take it.
  - `ChannelClosedError` is raised when you send on a closed channel or
    close it a second time. It is also raised by `receive` once a closed
    channel has no items left.
  - The stage interfaces `Source`, `Flow`, `FanOut`, `FanIn`, `Sink` and
    `Runnable`, and the readable interfaces `Readable`, `DataReadable`,
    `RawReadable` and `DataRawReadable`.
- `krapht.events`
  - The enums `EventType` (`LOG`, `ERROR`, `METRIC`), `LogLevel` (`ERROR`=3,
    `WARN`=4, `INFO`=6, `DEBUG`=7) and `MetricType`.
  - `ErrorEvent(msg, err, temporary)`. It is also an exception, so it can be
    raised. It has `is_temporary()` and `unwrap()`.
  - `LogEvent(source, level, msg)` and
    `MetricEvent(name, value, labels, metric_type)`.
  - `send_event(channel, event)` sends without blocking. It returns `False`
    if the channel is `None` or has no room for the event.
- `krapht.collector.EventCollector(workers=1, buffer_size=100, callbacks=None, typed_callbacks=None)`
  reads events on worker threads and calls your callbacks for each one.
  Callbacks added with `add_callback` run for every event. Callbacks added
  with `add_typed_callback` run only for events of the given type.
  `collect()` starts the workers and returns the channel to send events on.
  `close()` closes that channel and waits until the backlog is processed.
  The collector can also be used as a context manager; `with` gives you
  the channel.
- `krapht.flows`
  - `Buffer(size)` passes items through a buffered output channel.
  - `Passthrough()` passes items through unchanged.
  - `Filter(predicate)` keeps only the items the predicate accepts.
  - `Map(transform)` applies the function to every item.
  - `FilterMap(predicate, transform)` applies the function to the items the
    predicate accepts.
- `krapht.sinks`
  - `LoggerSink(logger)` writes each item at INFO level as indented JSON.
    Items that cannot be written as JSON are logged with `str()`.
  - `Noop()` reads and discards every item.
  - `NatsStream(js, subject)` publishes messages. Each message is a
    `DataRawReadable`: its data is published, then its raw part is
    acknowledged if the raw part has an `ack` method.
- `krapht.sources`
  - `HTTPServer(HTTPConfig(...))` collects log bodies sent by `POST` and
    emits them as `HTTPLog`.
  - `BrokerStream(js, stream, config)` consumes a stream and emits `JSMsg`
    objects.

## Example

```python
import logging

from krapht.collector import EventCollector
from krapht.events import EventType
from krapht.flows import Filter, Map
from krapht.pipeline import Channel
from krapht.sinks import LoggerSink

logging.basicConfig(level=logging.INFO)

collector = EventCollector(
    typed_callbacks=[(EventType.ERROR, lambda e: print("error:", e))],
)

with collector as events:
    numbers = Channel(10)
    evens = Filter(lambda n: n % 2 == 0).transform(numbers, events)
    labels = Map(lambda n: f"item-{n}").transform(evens, events)

    for n in range(10):
        numbers.send(n)
    numbers.close()

    LoggerSink(logging.getLogger("pipeline")).load(labels, events)
```

Each flow runs in its own thread. It reads its input channel until that
channel is closed, and then closes its output channel. Closing the first
channel therefore shuts down every later stage, one after another.

`Map` and `FilterMap` handle a raising function the same way: the item is
dropped and a temporary `ErrorEvent` goes on the events channel.
`ErrorEvent.unwrap()` returns the original exception. `Filter`, `Map` and
`FilterMap` raise `ValueError` if they are given `None` in place of a
function.

## HTTP source

```python
import threading

from krapht.sources import HTTPConfig, HTTPServer

stop = threading.Event()
server = HTTPServer(HTTPConfig(addr="127.0.0.1:8008", endpoint="/log"))
logs = server.extract(stop, None)

for entry in logs:
    print(entry.addr, entry.read())
```

An empty field in `HTTPConfig` takes its default:

| Field | Default |
|---|---|
| `addr` | `:8008` |
| `endpoint` | `/log` |
| `read_timeout` | 5 seconds |
| `write_timeout` | 5 seconds |

The server answers requests as follows:

- A `POST` to the endpoint with a non-empty body gets `200 OK`. The body is
  given a trailing newline if it lacks one, and it comes out of the channel
  as an `HTTPLog`. An `HTTPLog` has `read()`, `addr` and a UUID `id`.
- A `POST` with an empty body gets `400`.
- Any other method on the endpoint gets `405`.
- Any other path gets `404`.

`server.address` gives the address the server listens on. Call `stop.set()`
to shut the server down; `logs` is closed once the server has stopped.

## What this package does not include

There is no command-line program; everything is used as a library.

The package includes no NATS client. `NatsStream` and `BrokerStream` work
with any object you pass as `js`, provided it has the methods they call:

- `NatsStream` needs `publish(subject, payload)`.
- `BrokerStream` needs `create_or_update_consumer(stream, config)`. The
  consumer it returns must have a `messages(max_messages)` method that
  yields messages. Each message needs a `data` attribute and an `ack()`
  method.

No concrete `FanOut`, `FanIn` or `Runnable` stages are provided, only the
interfaces.

## Running the tests

```
pip install -e ".[test]"
pytest
```