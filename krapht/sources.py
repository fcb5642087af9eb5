"""Sources that start a pipeline: an HTTP log receiver and a JetStream consumer."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional

from krapht.events import ErrorEvent
from krapht.pipeline import Channel, ChannelClosedError, Readable, Source

_DEFAULT_ADDR = ":8008"
_DEFAULT_ENDPOINT = "/log"
_DEFAULT_TIMEOUT = 5.0
_PULL_MAX_MESSAGES = 10
_RETRY_DELAY = 0.05

BROKER_SOURCE_PREFIX = "broker stream source"


def _report(
    events: Optional[Channel[Any]],
    msg: str,
    err: Optional[BaseException],
    temporary: bool = True,
) -> None:
    if events is None:
        return
    try:
        events.send(ErrorEvent(msg, err, temporary))
    except ChannelClosedError:
        pass


class HTTPLog(Readable):
    """A log body received over HTTP, with the sender's address and an id."""

    def __init__(self, log: Optional[bytes], addr: str = "") -> None:
        if log is None:
            raise ValueError("http log error: log is nil")
        self.log = bytes(log)
        self.addr = addr or "unknown"
        self.id = uuid.uuid1()

    def read(self) -> bytes:
        """Return the log body."""
        return self.log

    def __repr__(self) -> str:
        return f"HTTPLog(addr={self.addr!r}, log={self.log!r})"


@dataclass
class HTTPConfig:
    """Settings for :class:`HTTPServer`; empty or zero values take defaults.

    Timeouts are in seconds.
    """

    addr: str = ""
    endpoint: str = ""
    read_timeout: float = 0.0
    write_timeout: float = 0.0


class _LogServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        out: Channel[HTTPLog],
        events: Optional[Channel[Any]],
        endpoint: str,
        read_timeout: float,
        write_timeout: float,
    ) -> None:
        self.out = out
        self.events = events
        self.endpoint = endpoint
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        super().__init__(address, _LogHandler)


class _LogHandler(BaseHTTPRequestHandler):
    server: _LogServer

    def setup(self) -> None:
        self.timeout = self.server.read_timeout
        super().setup()

    def log_message(self, format: str, *args: Any) -> None:
        pass

    def _path_matches(self) -> bool:
        return self.path.split("?", 1)[0] == self.server.endpoint

    def _reply(self, status: int, text: str) -> None:
        payload = text.encode("utf-8")
        try:
            self.connection.settimeout(self.server.write_timeout)
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)
        except OSError as err:
            _report(self.server.events, "failed to write response", err)

    def _reject(self) -> None:
        if self._path_matches():
            self._reply(405, "Method Not Allowed\n")
        else:
            self._reply(404, "404 page not found\n")

    do_GET = do_PUT = do_DELETE = do_PATCH = _reject

    def do_HEAD(self) -> None:
        self._reject()

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        if length < 0:
            raise ValueError("negative content length")
        return self.rfile.read(length)

    def do_POST(self) -> None:
        if not self._path_matches():
            self._reply(404, "404 page not found\n")
            return
        try:
            body = self._read_body()
        except (OSError, ValueError):
            self._reply(500, "Internal Server Error\n")
            return
        if not body:
            self._reply(400, "Bad Request\n")
            return
        if not body.endswith(b"\n"):
            body += b"\n"
        host, port = self.client_address[:2]
        try:
            self.server.out.send(HTTPLog(body, f"{host}:{port}"))
        except ChannelClosedError:
            self._reply(503, "Service Unavailable\n")
            return
        self._reply(200, "OK")


def _parse_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"address {addr!r}: missing port")
    return host.strip("[]"), int(port)


class HTTPServer(Source[HTTPLog]):
    """Receives logs POSTed to one endpoint and emits them as :class:`HTTPLog`."""

    def __init__(self, config: Optional[HTTPConfig] = None) -> None:
        config = config if config is not None else HTTPConfig()
        self.addr = config.addr or _DEFAULT_ADDR
        self.endpoint = config.endpoint or _DEFAULT_ENDPOINT
        self.read_timeout = config.read_timeout or _DEFAULT_TIMEOUT
        self.write_timeout = config.write_timeout or _DEFAULT_TIMEOUT
        self._server: Optional[_LogServer] = None

    @property
    def address(self) -> Optional[str]:
        """The ``host:port`` the last started server listens on."""
        if self._server is None:
            return None
        host, port = self._server.server_address[:2]
        return f"{host}:{port}"

    def extract(self, stop: threading.Event, events: Optional[Channel[Any]]) -> Channel[HTTPLog]:
        """Start serving; setting ``stop`` shuts the server down and closes the output."""
        out: Channel[HTTPLog] = Channel()
        try:
            server = _LogServer(
                _parse_addr(self.addr),
                out,
                events,
                self.endpoint,
                self.read_timeout,
                self.write_timeout,
            )
        except (OSError, ValueError, OverflowError) as err:
            failure = err

            def fail() -> None:
                _report(events, "HTTP source server error", failure)
                out.close()

            threading.Thread(target=fail, daemon=True).start()
            return out

        self._server = server
        threading.Thread(target=self._serve, args=(server, stop, events, out), daemon=True).start()
        return out

    @staticmethod
    def _serve(
        server: _LogServer,
        stop: threading.Event,
        events: Optional[Channel[Any]],
        out: Channel[HTTPLog],
    ) -> None:
        def watch() -> None:
            stop.wait()
            try:
                server.shutdown()
            except Exception as err:
                _report(events, "HTTP source server shutdown error", err)

        threading.Thread(target=watch, daemon=True).start()
        try:
            server.serve_forever()
        except Exception as err:
            _report(events, "HTTP source server error", err)
        finally:
            server.server_close()
            out.close()


class BrokerSourceError(Exception):
    """Raised when a broker stream source is misconfigured."""


class JSMsg(Readable):
    """Wraps a JetStream message as a Readable.

    The message needs a ``data`` attribute holding bytes and an ``ack()`` method.
    """

    def __init__(self, msg: Any) -> None:
        self.msg = msg

    def _require(self) -> Any:
        if self.msg is None:
            raise ValueError("message is nil")
        return self.msg

    def read(self) -> bytes:
        """Return the message payload."""
        return self._require().data

    def ack(self) -> Any:
        """Acknowledge the message."""
        return self._require().ack()


class BrokerStream(Source[JSMsg]):
    """Consumes a JetStream stream and emits each message as a :class:`JSMsg`.

    ``js`` needs ``create_or_update_consumer(stream, config)`` returning a
    consumer whose ``messages(max_messages)`` yields messages.
    """

    def __init__(self, js: Any, stream: str, config: Any = None) -> None:
        if js is None:
            raise BrokerSourceError(
                f"{BROKER_SOURCE_PREFIX}: nats connection is nil source error"
            )
        if not stream:
            raise BrokerSourceError(f"{BROKER_SOURCE_PREFIX}: stream name is empty source error")
        self.js = js
        self.stream = stream
        self.config = config

    def extract(self, stop: threading.Event, events: Optional[Channel[Any]]) -> Channel[JSMsg]:
        """Start consuming; setting ``stop`` ends it and closes the output."""
        out: Channel[JSMsg] = Channel()
        threading.Thread(target=self._consume, args=(stop, events, out), daemon=True).start()
        return out

    def _consume(
        self, stop: threading.Event, events: Optional[Channel[Any]], out: Channel[JSMsg]
    ) -> None:
        try:
            try:
                consumer = self.js.create_or_update_consumer(self.stream, self.config)
            except Exception as err:
                _report(events, "failed to create or update consumer", err, temporary=False)
                return
            while not stop.is_set():
                try:
                    messages = iter(consumer.messages(_PULL_MAX_MESSAGES))
                except Exception as err:
                    _report(events, "failed to get messages from nats", err)
                    stop.wait(_RETRY_DELAY)
                    continue
                while not stop.is_set():
                    try:
                        msg = next(messages)
                    except StopIteration:
                        break
                    except Exception as err:
                        _report(events, "failed to get next message from nats", err)
                        break
                    out.send(JSMsg(msg))
        finally:
            out.close()