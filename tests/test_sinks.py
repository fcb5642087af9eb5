import logging
import threading

import pytest

from krapht.pipeline import Channel, ChannelClosedError, DataRawReadable, Readable
from krapht.sinks import LoggerSink, NatsSinkError, NatsStream, Noop

LOGGER_NAME = "krapht.tests.sinks"


def feed(items):
    channel = Channel()

    def run():
        for item in items:
            channel.send(item)
        channel.close()

    threading.Thread(target=run, daemon=True).start()
    return channel


def run_logger(caplog, items, events=None):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    LoggerSink(logging.getLogger(LOGGER_NAME)).load(feed(items), events)
    return [r.getMessage() for r in caplog.records if r.name == LOGGER_NAME]


def test_logger_single_entry(caplog):
    assert run_logger(caplog, ["test log entry"]) == ['"test log entry"']


def test_logger_multiple_entries(caplog):
    messages = run_logger(caplog, ["first log entry", "second log entry"])
    assert messages == ['"first log entry"', '"second log entry"']


def test_logger_empty_entry(caplog):
    assert run_logger(caplog, [""]) == ['""']


def test_logger_indents_json(caplog):
    messages = run_logger(caplog, [{"b": 1, "a": [1, 2]}])
    assert messages == ['{\n\t"a": [\n\t\t1,\n\t\t2\n\t],\n\t"b": 1\n}']


def test_logger_falls_back_to_str(caplog):
    class Thing:
        def __str__(self):
            return "thing"

    assert run_logger(caplog, [Thing()]) == ["thing"]


def test_logger_reports_empty_formatting(caplog):
    class Blank:
        def __str__(self):
            return ""

    events = Channel(1)
    assert run_logger(caplog, [Blank()], events) == []
    assert str(events.receive()) == "formatted data is empty"


def test_noop_drains_input():
    inp = feed(range(5))
    Noop().load(inp, None)
    assert len(inp) == 0
    with pytest.raises(ChannelClosedError):
        inp.receive()


class Bytes(Readable):
    def __init__(self, payload, error=None):
        self.payload = payload
        self.error = error

    def read(self):
        if self.error is not None:
            raise self.error
        return self.payload


class AckableBytes(Bytes):
    def __init__(self, payload, ack_error=None):
        super().__init__(payload)
        self.acked = 0
        self.ack_error = ack_error

    def ack(self):
        self.acked += 1
        if self.ack_error is not None:
            raise self.ack_error


class Message(DataRawReadable):
    def __init__(self, raw, data):
        self._raw = raw
        self._data = data

    def raw(self):
        return self._raw

    def data(self):
        return self._data


class FakeJetStream:
    def __init__(self, error=None):
        self.published = []
        self.error = error

    def publish(self, subject, payload):
        if self.error is not None:
            raise self.error
        self.published.append((subject, payload))


def run_nats(js, messages, events):
    inp = Channel()
    thread = NatsStream(js, "test").load(inp, events)
    for message in messages:
        inp.send(message)
    inp.close()
    thread.join(2)
    assert not thread.is_alive()


def test_nats_stream_requires_connection():
    with pytest.raises(NatsSinkError, match="nats stream sink: sink error: nats connection is nil"):
        NatsStream(None, "test")


def test_nats_stream_requires_subject():
    with pytest.raises(NatsSinkError, match="subject is empty"):
        NatsStream(FakeJetStream(), "")


def test_nats_stream_publishes_data_and_acks():
    js = FakeJetStream()
    raw = AckableBytes(b"test raw data")
    events = Channel(5)
    run_nats(js, [Message(raw, Bytes(b"test data"))], events)
    assert js.published == [("test", b"test data")]
    assert raw.acked == 1
    assert len(events) == 0


def test_nats_stream_reports_read_error():
    js = FakeJetStream()
    events = Channel(5)
    run_nats(js, [Message(Bytes(b"raw"), Bytes(b"", OSError("gone")))], events)
    assert js.published == []
    assert str(events.receive()) == "failed to read data: gone"


def test_nats_stream_reports_publish_error_without_ack():
    raw = AckableBytes(b"raw")
    events = Channel(5)
    run_nats(FakeJetStream(RuntimeError("down")), [Message(raw, Bytes(b"x"))], events)
    assert raw.acked == 0
    assert str(events.receive()) == "failed to publish message to nats: down"


def test_nats_stream_reports_ack_error():
    js = FakeJetStream()
    raw = AckableBytes(b"raw", RuntimeError("nope"))
    events = Channel(5)
    run_nats(js, [Message(raw, Bytes(b"x")), Message(Bytes(b"r"), Bytes(b"y"))], events)
    assert js.published == [("test", b"x"), ("test", b"y")]
    event = events.receive()
    assert str(event) == "failed to ack message: nope"
    assert event.is_temporary() is True
    assert len(events) == 0