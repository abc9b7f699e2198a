"""TCP client that talks to the vehicle."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from enum import IntEnum

from .decoder import new_from_bytes
from .message import (
    ACK,
    CMD_IN_BAD_ENCODING,
    CMD_IN_MY14_START_REQ,
    CMD_IN_MY18_START_REQ,
    CMD_IN_MY24_START_REQ,
    CMD_IN_RESP,
    CMD_IN_START_RESP,
    CMD_OUT_MY14_START_RESP,
    CMD_OUT_MY18_START_RESP,
    CMD_OUT_MY24_START_RESP,
    CMD_OUT_SEND,
    REQUEST,
    PhevMessage,
    new_ping_request_message,
)
from .raw import TRACE, SecurityKey
from .registers import SETTINGS_REGISTER
from .settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "192.168.8.46:8080"
START_TIMEOUT = 20.0
SET_REGISTER_TIMEOUT = 10.0
READ_TIMEOUT = 30.0
WRITE_TIMEOUT = 15.0
PING_INTERVAL = 0.2
PING_IDLE = 0.5
LISTENER_CAPACITY = 5

_CLOSED = object()


class ClientError(Exception):
    """Raised when the connection to the vehicle fails."""


class Listener:
    """A bounded mailbox of messages received from the peer."""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()
        self._stopped = False

    def send(self, message: PhevMessage) -> None:
        """Deliver a message; it is dropped if the mailbox is full or stopped."""
        if self._stopped:
            return
        if self._queue.qsize() >= LISTENER_CAPACITY:
            logger.debug("%PHEV_RECV_LISTENER% message not sent")
            return
        self._queue.put(message)

    def stop(self) -> None:
        """Close the mailbox; pending and later reads raise ClientError."""
        if not self._stopped:
            self._stopped = True
            self._queue.put(_CLOSED)

    def get(self, timeout: float | None = None) -> PhevMessage:
        """Wait for the next message.

        Raises TimeoutError on timeout and ClientError once stopped.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("timed out waiting for message") from None
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            raise ClientError("listener channel closed")
        return item


class ModelYear(IntEnum):
    """Model year family, which selects the register layout."""

    UNKNOWN = 0
    MY14 = 1
    MY18 = 2
    MY24 = 3


_START_REPLIES = {
    CMD_IN_MY24_START_REQ: (ModelYear.MY24, CMD_OUT_MY24_START_RESP, "%PHEV_START24_RECV%"),
    CMD_IN_MY18_START_REQ: (ModelYear.MY18, CMD_OUT_MY18_START_RESP, "%PHEV_START18_RECV%"),
    CMD_IN_MY14_START_REQ: (ModelYear.MY14, CMD_OUT_MY14_START_RESP, "%PHEV_START14_RECV%"),
}


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port``; an empty host means all interfaces."""
    host, _, port = address.rpartition(":")
    return host, int(port)


class Client:
    """A TCP client connection to the vehicle."""

    def __init__(self, address: str = DEFAULT_ADDRESS) -> None:
        self.address = address
        self.settings = Settings()
        self.model_year = ModelYear.UNKNOWN
        self.key = SecurityKey()
        self.closed = False
        self._recv: queue.Queue = queue.Queue()
        self._outgoing: queue.Queue = queue.Queue()
        self._started: queue.Queue = queue.Queue()
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._last_rx = 0.0

    def add_listener(self) -> Listener:
        """Create and register a new listener."""
        listener = Listener()
        with self._lock:
            self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: Listener) -> None:
        """Unregister a listener."""
        with self._lock:
            self._listeners = [item for item in self._listeners if item is not listener]

    def close(self) -> None:
        """Close the connection."""
        self.closed = True
        self._outgoing.put(None)
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

    def connect(self) -> None:
        """Connect to the vehicle and start the background workers."""
        host, port = split_address(self.address)
        self._sock = socket.create_connection((host, port))
        logger.info("%PHEV_TCP_CONNECTED%")
        self.closed = False
        for worker in (self._reader, self._writer, self._manage, self._pinger):
            threading.Thread(target=worker, daemon=True).start()

    def start(self) -> None:
        """Wait for the vehicle's start request.

        Raises ClientError if the connection ends or the wait times out.
        """
        logger.debug("%PHEV_START_AWAIT%")
        try:
            item = self._started.get(timeout=START_TIMEOUT)
        except queue.Empty:
            logger.debug("%PHEV_START_TIMEOUT%")
            raise ClientError("timed out waiting for start") from None
        if item is _CLOSED:
            logger.debug("%PHEV_START_CLOSED%")
            raise ClientError("receiver closed before getting start request")
        logger.debug("%PHEV_START_DONE%")

    def send(self, message: PhevMessage) -> None:
        """Queue a message to be sent to the vehicle."""
        self._outgoing.put(message)

    def recv(self, timeout: float | None = None) -> PhevMessage:
        """Return the next message from the vehicle.

        Raises TimeoutError on timeout and ClientError once the connection ends.
        """
        try:
            item = self._recv.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("timed out waiting for message") from None
        if item is _CLOSED:
            self._recv.put(_CLOSED)
            raise ClientError("receive channel closed")
        return item

    def set_register(self, register: int, value: bytes) -> None:
        """Set a register on the vehicle and wait for its acknowledgement."""
        deadline = time.monotonic() + SET_REGISTER_TIMEOUT
        listener = self.add_listener()
        try:
            xor = 0
            self.send(PhevMessage(type=CMD_OUT_SEND, ack=REQUEST, register=register,
                                  data=bytes(value), xor=xor))
            while True:
                remaining = deadline - time.monotonic()
                try:
                    if remaining <= 0:
                        raise TimeoutError
                    message = listener.get(remaining)
                except TimeoutError:
                    raise ClientError(
                        f"timed out attempting to set register {register:02x}"
                    ) from None
                if message.type == CMD_IN_BAD_ENCODING:
                    xor = message.data[0]
                    self.send(PhevMessage(type=CMD_OUT_SEND, ack=REQUEST, register=register,
                                          data=bytes(value), xor=xor))
                    continue
                if (
                    message.type == CMD_IN_RESP
                    and message.ack == ACK
                    and message.register == register
                ):
                    return
        finally:
            self.remove_listener(listener)

    def _dispatch(self, message: PhevMessage) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener.send(message)
        self._recv.put(message)

    def _shutdown_readers(self) -> None:
        self._recv.put(_CLOSED)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener.stop()

    def _pinger(self) -> None:
        seq = 0xA
        while True:
            time.sleep(PING_INTERVAL)
            if self.closed:
                return
            if time.monotonic() - self._last_rx < PING_IDLE:
                continue
            self.send(new_ping_request_message(seq))
            seq = 0 if seq + 1 > 0x63 else seq + 1

    def _manage(self) -> None:
        listener = self.add_listener()
        try:
            while True:
                try:
                    message = listener.get()
                except ClientError:
                    break
                self._handle_control(message)
        finally:
            self._started.put(_CLOSED)
            logger.debug("%PHEV_MANAGER_END%")

    def _handle_control(self, message: PhevMessage) -> None:
        if message.type == CMD_IN_RESP:
            if message.ack == REQUEST and message.register == SETTINGS_REGISTER:
                try:
                    self.settings.from_register(message.data)
                except ValueError as err:
                    logger.debug("Ignoring settings register: %s", err)
        elif message.type == CMD_IN_START_RESP:
            self.send(new_ping_request_message(0xA))
        elif message.type in _START_REPLIES:
            year, reply, note = _START_REPLIES[message.type]
            self.model_year = year
            self.send(PhevMessage(type=reply, register=0x1, ack=ACK,
                                  xor=message.xor, data=b"\x00"))
            logger.debug(note)
            self._started.put(True)

    def _reader(self) -> None:
        sock = self._sock
        while True:
            try:
                if sock is None:
                    raise OSError("not connected")
                sock.settimeout(READ_TIMEOUT)
                data = sock.recv(4096)
                if not data:
                    raise OSError("connection closed")
            except OSError as err:
                if not self.closed:
                    logger.debug("%%PHEV_TCP_READER_ERROR%%: %s", err)
                logger.debug("%PHEV_TCP_READER_CLOSE%")
                self.close()
                self._shutdown_readers()
                return
            self._last_rx = time.monotonic()
            logger.log(TRACE, "%%PHEV_TCP_RECV_DATA%%: %s", data.hex())
            for message in new_from_bytes(data, self.key):
                logger.debug("%%PHEV_TCP_RECV_MSG%%: [%02x] %s", message.xor, message.short_form())
                self._dispatch(message)

    def _writer(self) -> None:
        while True:
            message = self._outgoing.get()
            sock = self._sock
            if message is None or sock is None:
                logger.debug("%PHEV_TCP_WRITER_CLOSE%")
                self.close()
                return
            message.xor = 0
            data = message.encode_to_bytes(self.key)
            logger.debug("%%PHEV_TCP_SEND_MSG%%: [%02x] %s", message.xor, message.short_form())
            logger.log(TRACE, "%%PHEV_TCP_SEND_DATA%%: %s", data.hex())
            try:
                sock.settimeout(WRITE_TIMEOUT)
                sock.sendall(data)
            except OSError as err:
                if not self.closed:
                    logger.error("%%PHEV_TCP_WRITER_ERROR%%: %s", err)
                logger.debug("%PHEV_TCP_WRITER_CLOSE%")
                self.close()
                return