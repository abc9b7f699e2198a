"""A virtual car that speaks the vehicle protocol, for testing clients."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from enum import IntEnum

from .client import ClientError, Listener, split_address
from .decoder import new_from_bytes
from .message import (
    ACK,
    CMD_IN_BAD_ENCODING,
    CMD_IN_MY18_START_REQ,
    CMD_IN_PING_RESP,
    CMD_IN_RESP,
    CMD_OUT_MY18_START_RESP,
    CMD_OUT_PING_REQ,
    CMD_OUT_SEND,
    REQUEST,
    PhevMessage,
    new_message,
    new_ping_response_message,
)
from .raw import TRACE, SecurityKey, SecurityState
from .registers import (
    BATTERY_LEVEL_REGISTER,
    TIME_REGISTER,
    Register,
    RegisterBatteryWarning,
    RegisterGeneric,
    RegisterWIFISSID,
)
from .settings import Settings

logger = logging.getLogger(__name__)

LISTEN_ADDRESS = ":8080"
SET_REGISTER_TIMEOUT = 10.0
READ_TIMEOUT = 30.0
WRITE_TIMEOUT = 15.0

_DEFAULT_REGISTER_VALUES = (
    (0x06, "002D2D2D2D2D2D2D2D2D2D2D2D2D2D2D2D2D0100"),
    (0x07, "00"),
    (0x0B, "00"),
    (0x0C, "01"),
    (0x0D, "04"),
    (0x0F, "00"),
    (0x10, "000000"),
    (0x11, "00"),
    (0x12, "160a0712391805"),
    (0x13, "00"),
    (0x14, "00000000000000"),
    (0x15, "032E2E2E2E2E2E2E2E2E2E2E2E2E2E2E2E2E0100"),
    (0x17, "01"),
    (0x1A, "0300000000"),
    (0x1B, "11"),
    (0x1C, "03"),
    (0x1D, "06000000"),
    (0x1E, "0000"),
    (0x1F, "00ffff"),
    (0x21, "00"),
    (0x22, "000000000000"),
    (0x23, "0000000202"),
    (0x24, "02000000000000000000"),
    (0x25, "0e00ff"),
    (0x26, "00"),
    (0x27, "00"),
    (0x28, "00"),
    (0x29, "000200"),
    (0x2C, "00"),
    (0xC0, "30303532303232303030110000"),
    (0x01, "0100"),
    (0x02, "0100"),
    (0x03, "011563"),
    (0x04, "7d38b00183bd00017c70380100ffff0300ffff03"),
    (0x05, "0100fe0700fe0700fe0700fe0700fe07"),
    (0x06, "002D2D2D2D2D2D2D2D2D2D2D2D2D2D2D2D2D0100"),
    (0x15, "032E2E2E2E2E2E2E2E2E2E2E2E2E2E2E2E2E0100"),
    (0x2A, "00"),
    (0x2C, "00"),
    (0x03, "011563"),
)

DEFAULT_SETTINGS = (
    "023a003b003c0000",
    "02e201e301640e00",
    "02e501a61ea71e00",
    "026b0e2c002d0000",
    "022e006f00300000",
    "0231007206730600",
    "02b4003506360e00",
    "02370e3806390000",
    "023a003b003c0000",
    "024106420603fe00",
    "02c41e850e861e00",
    "02473ec81e093f00",
    "02ca018bfe4c4300",
    "024d1e0e064f0600",
    "0210121106d20100",
    "02d301d401551e00",
    "02161ed701d80100",
    "0219061a23db0100",
    "02dc015d065e0600",
    "021f00600ee10100",
    "02e801e9016a3e00",
)


def default_registers() -> list[Register]:
    """Return the register values the emulated car starts with."""
    registers: list[Register] = [
        RegisterGeneric(reg=number, value=bytes.fromhex(value))
        for number, value in _DEFAULT_REGISTER_VALUES
    ]
    registers.append(RegisterBatteryWarning(warning=0))
    registers.append(RegisterWIFISSID(ssid="REMOTEc0ffee"))
    return registers


class ConnState(IntEnum):
    """Progress of an emulated connection."""

    CLOSED = 0
    TCP_OPEN = 1
    SEC_INIT = 2
    REGISTER_START = 3
    ESTABLISHED = 4


class Car:
    """An emulated car that accepts client connections."""

    def __init__(self, address: str = LISTEN_ADDRESS) -> None:
        self.address = address
        self.registers = default_registers()
        self.settings = Settings()
        self.connections: list[Connection] = []
        self._server: socket.socket | None = None
        for value in DEFAULT_SETTINGS:
            self.settings.from_register(bytes.fromhex(value))

    @property
    def port(self) -> int:
        """The port the car listens on, once started."""
        if self._server is None:
            return split_address(self.address)[1]
        return self._server.getsockname()[1]

    def begin(self) -> None:
        """Start listening and accepting connections in the background."""
        host, port = split_address(self.address)
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((host or "0.0.0.0", port))
        server.listen()
        self._server = server
        threading.Thread(target=self._accept, args=(server,), daemon=True).start()
        logger.debug("%%PHEV_EMULATOR_START%% Started PHEV emulator, address=%s", self.address)

    def _accept(self, server: socket.socket) -> None:
        with server:
            while True:
                try:
                    sock, _ = server.accept()
                except OSError as err:
                    logger.error("Accept() error: %s", err)
                    return
                connection = Connection(sock, self)
                self.connections.append(connection)
                connection.start()

    def set_register(self, register: int, value: bytes) -> None:
        """Send a register to every connected client and wait for their acks."""
        connections = list(self.connections)
        if not connections:
            return
        with ThreadPoolExecutor(max_workers=len(connections)) as pool:
            futures = [
                pool.submit(conn.push_register, register, bytes(value)) for conn in connections
            ]
            for future in futures:
                future.result()

    def close(self) -> None:
        """Stop listening and close every connection."""
        if self._server is not None:
            self._server.close()
            self._server = None
        for connection in self.connections:
            connection.close()

    def get_register(self, number: int) -> Register | None:
        """Return the first stored register with the given number."""
        return next((reg for reg in self.registers if reg.register == number), None)


class Connection:
    """Serves one client connected to the emulated car."""

    def __init__(self, sock: socket.socket, car: Car) -> None:
        logger.info("Connection received!")
        self.car = car
        self.sock = sock
        self.key = SecurityKey()
        self.state = ConnState.CLOSED
        self._outgoing: queue.Queue = queue.Queue()
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._register_index = 0
        self._settings: Iterator[PhevMessage] | None = None
        self._ping_count = 0

    def start(self) -> None:
        """Start serving the connection in the background."""
        self.state = ConnState.TCP_OPEN
        manager = self.add_listener()
        for worker, args in ((self._reader, ()), (self._writer, ()), (self._manage, (manager,))):
            threading.Thread(target=worker, args=args, daemon=True).start()

    def close(self) -> None:
        """Close the connection."""
        self.state = ConnState.CLOSED
        self._outgoing.put(None)
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

    def add_listener(self) -> Listener:
        """Create and register a listener for messages from the client."""
        listener = Listener()
        with self._lock:
            self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: Listener) -> None:
        """Unregister a listener."""
        with self._lock:
            self._listeners = [item for item in self._listeners if item is not listener]

    def send(self, message: PhevMessage) -> None:
        """Queue a message for the client."""
        self._outgoing.put(message)

    def push_register(self, register: int, value: bytes) -> None:
        """Notify the client of a register value and wait for its ack."""
        deadline = time.monotonic() + SET_REGISTER_TIMEOUT
        listener = self.add_listener()
        try:
            self.send(new_message(CMD_IN_RESP, register, False, value))
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
                    self.send(new_message(CMD_IN_RESP, register, False, value))
                    continue
                if (
                    message.type == CMD_OUT_SEND
                    and message.ack == ACK
                    and message.register == register
                ):
                    return
        finally:
            self.remove_listener(listener)

    def _reader(self) -> None:
        while True:
            try:
                self.sock.settimeout(READ_TIMEOUT)
                data = self.sock.recv(4096)
                if not data:
                    raise OSError("connection closed")
            except OSError as err:
                logger.debug("%%PHEV_SVC_READER_ERROR%% %s", err)
                self.close()
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    listener.stop()
                return
            logger.log(TRACE, "%%PHEV_SVC_RECV_RAW%%: %s", data.hex())
            for message in new_from_bytes(data, self.key):
                if message.type != CMD_OUT_PING_REQ:
                    logger.debug("%%PHEV_SVC_RCV_MSG%%: %s", message.short_form())
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    listener.send(message)

    def _writer(self) -> None:
        while True:
            message = self._outgoing.get()
            if message is None:
                logger.debug("%PHEV_SVC_SEND_CLOSE%")
                return
            if message.type != CMD_IN_PING_RESP:
                logger.debug("%%PHEV_SVC_SND_MSG%%: %s", message.short_form())
            data = message.encode_to_bytes(self.key)
            try:
                self.sock.settimeout(WRITE_TIMEOUT)
                self.sock.sendall(data)
            except OSError as err:
                logger.debug("%%PHEV_SVC_WRITE_ERR%%: %s", err)
                self.close()
                return

    def _manage(self, listener: Listener) -> None:
        try:
            while True:
                try:
                    message = listener.get()
                except ClientError:
                    return
                self._handle(message)
        finally:
            self.remove_listener(listener)

    def _handle(self, message: PhevMessage) -> None:
        if message.type == CMD_OUT_PING_REQ:
            self._ping_count += 1
            self.send(new_ping_response_message(message.register))
            if self.key.state == SecurityState.EMPTY and self._ping_count == 10:
                # The initial key is proposed after the tenth ping.
                self.state = ConnState.SEC_INIT
                self._rekey()
        elif message.type == CMD_OUT_MY18_START_RESP:
            if message.original[2] == 0x0:
                self._rekey()
            elif self.key.state == SecurityState.KEY_PROPOSED:
                self.key.accept_proposal()
                self._send_next_register()
        elif message.type == CMD_OUT_SEND:
            if message.ack == ACK:
                self._send_next_register()
            if message.ack == REQUEST:
                self._handle_set_register(message)

    def _handle_set_register(self, message: PhevMessage) -> None:
        self.send(new_message(CMD_IN_RESP, message.register, True, b"\x00"))
        if message.register == 0x05:
            self.send(new_message(CMD_IN_RESP, TIME_REGISTER, False, message.data))
            time.sleep(0.02)
            self.send(new_message(CMD_IN_RESP, BATTERY_LEVEL_REGISTER, False,
                                  b"\x50\x00\x00\x00"))

    def _send_next_register(self) -> None:
        if self._settings is not None:
            setting = next(self._settings, None)
            if setting is None:
                self._settings = None
            else:
                self.send(setting)
            return
        if self._register_index < 0:
            return
        message = self.car.registers[self._register_index].encode()
        message.type = CMD_IN_RESP
        message.ack = REQUEST
        self.send(message)
        self._register_index += 1
        if self._register_index >= len(self.car.registers):
            self._register_index = -1
            logger.debug("Finished sending registers, sending settings")
            self._settings = self.car.settings.messages()

    def _rekey(self) -> None:
        if self.state == ConnState.REGISTER_START:
            self.send(new_message(CMD_IN_MY18_START_REQ, 0x1, True, b"\x00"))
        proposal = self.key.generate_proposal()
        self.send(new_message(CMD_IN_MY18_START_REQ, 0x1, False, proposal + b"\x01"))
        self.key.state = SecurityState.KEY_PROPOSED