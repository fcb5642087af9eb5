import threading
import time

import pytest

from krapht.pipeline import (
    Channel,
    ChannelClosedError,
    DataRawReadable,
    Flow,
    Readable,
    Sink,
    Source,
)


def test_buffered_channel_is_fifo():
    ch = Channel(3)
    for item in ("a", "b", "c"):
        ch.send(item)
    assert len(ch) == 3
    assert [ch.receive(), ch.receive(), ch.receive()] == ["a", "b", "c"]
    assert len(ch) == 0


def test_try_send_reports_full_buffer():
    ch = Channel(1)
    assert ch.try_send("first") is True
    assert ch.try_send("second") is False
    assert ch.receive() == "first"


def test_unbuffered_try_send_without_receiver_fails():
    ch = Channel()
    assert ch.try_send("x") is False
    assert len(ch) == 0


def test_unbuffered_send_hands_over_to_receiver():
    ch = Channel()

    def produce():
        for item in range(5):
            ch.send(item)
        ch.close()

    producer = threading.Thread(target=produce)
    producer.start()
    received = [ch.receive() for _ in range(5)]
    producer.join(timeout=2)
    assert received == list(range(5))
    assert ch.closed is True
    assert len(ch) == 0


def test_iteration_drains_after_close():
    ch = Channel(2)
    ch.send("a")
    ch.send("b")
    ch.close()
    assert ch.closed is True
    assert list(ch) == ["a", "b"]


def test_closed_channel_errors():
    ch = Channel(1)
    ch.close()
    with pytest.raises(ChannelClosedError):
        ch.send("x")
    with pytest.raises(ChannelClosedError):
        ch.try_send("x")
    with pytest.raises(ChannelClosedError):
        ch.receive()
    with pytest.raises(ChannelClosedError):
        ch.close()


def test_close_wakes_blocked_receiver():
    ch = Channel()

    def close_later():
        time.sleep(0.05)
        ch.close()

    closer = threading.Thread(target=close_later)
    closer.start()
    with pytest.raises(ChannelClosedError):
        ch.receive()
    closer.join(timeout=2)
    assert ch.closed is True


def test_negative_capacity_rejected():
    with pytest.raises(ValueError):
        Channel(-1)


def test_abstract_stages_cannot_be_instantiated():
    for cls in (Readable, DataRawReadable, Source, Flow, Sink):
        with pytest.raises(TypeError):
            cls()


class _Bytes(Readable):
    def __init__(self, payload):
        self.payload = payload

    def read(self):
        return self.payload


class _Message(DataRawReadable):
    def __init__(self, raw, data):
        self._raw = raw
        self._data = data

    def raw(self):
        return self._raw

    def data(self):
        return self._data


def test_concrete_data_raw_readable():
    ch = Channel(1)
    ch.send(_Message(_Bytes(b"raw"), _Bytes(b"data")))
    msg = ch.receive()
    assert msg.raw().read() == b"raw"
    assert msg.data().read() == b"data"


class _Double(Flow):
    def transform(self, inp, events):
        out = Channel()

        def run():
            for v in inp:
                out.send(v * 2)
            out.close()

        threading.Thread(target=run, daemon=True).start()
        return out


def test_flow_subclass_transforms_channel():
    inp = Channel(3)
    for v in (1, 2, 3):
        inp.send(v)
    inp.close()
    assert list(_Double().transform(inp, None)) == [2, 4, 6]