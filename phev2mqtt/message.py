"""Protocol message type and its wire encoding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .raw import SecurityKey
from .raw import checksum as frame_checksum
from .raw import xor_message_with

CMD_OUT_PING_REQ = 0xF3
CMD_IN_PING_RESP = 0x3F

CMD_OUT_SEND = 0xF6
CMD_IN_RESP = 0x6F

CMD_IN_MY24_START_REQ = 0x6E
CMD_OUT_MY24_START_RESP = 0xE6

CMD_IN_MY18_START_REQ = 0x5E
CMD_OUT_MY18_START_RESP = 0xE5

CMD_IN_MY14_START_REQ = 0x4E
CMD_OUT_MY14_START_RESP = 0xE4

CMD_IN_BAD_ENCODING = 0xBB
CMD_IN_UNKN3 = 0xCC

CMD_IN_START_RESP = 0x2F
CMD_OUT_START_SEND_MY18 = 0xF2

CMD_IN_UNKN4 = 0x2E

REQUEST = 0x0
ACK = 0x1

ACK_NAMES = {REQUEST: "REQ", ACK: "ACK"}

MESSAGE_NAMES = {
    0xF3: "PingReq",
    0x3F: "PingResp",
    0xF6: "SendCmd",
    0x6F: "RespCmd",
    0xE5: "StartResp18",
    0x5E: "StartReq18",
    0xF2: "StartSend",
    0x2F: "StartResp",
    0xE4: "StartResp14",
    0x4E: "StartReq14",
    0xE6: "StartResp24",
    0x6E: "StartReq24",
}

START_TYPES = frozenset(
    {
        CMD_IN_MY24_START_REQ,
        CMD_OUT_MY24_START_RESP,
        CMD_IN_MY18_START_REQ,
        CMD_OUT_MY18_START_RESP,
        CMD_IN_MY14_START_REQ,
        CMD_OUT_MY14_START_RESP,
    }
)

_ORIGINAL_FORMATS = {
    CMD_OUT_START_SEND_MY18: "START SEND18  (orig  {})",
    CMD_IN_START_RESP: "START RESP    (orig: {})",
    CMD_IN_MY24_START_REQ: "START RECV24  (orig {})",
    CMD_OUT_MY24_START_RESP: "START SEND24  (orig {})",
    CMD_IN_MY18_START_REQ: "START RECV18  (orig {})",
    CMD_OUT_MY18_START_RESP: "START SEND18  (orig {})",
    CMD_IN_MY14_START_REQ: "START RECV14  (orig {})",
    CMD_OUT_MY14_START_RESP: "START SEND14  (orig {})",
}


@dataclass
class PhevMessage:
    """A single frame exchanged with the car."""

    type: int = 0
    length: int = 0
    ack: int = REQUEST
    register: int = 0
    data: bytes = b""
    checksum: int = 0
    xor: int = 0
    original: bytes = b""
    original_xored: bytes = b""
    reg: Any = None

    def short_form(self) -> str:
        """Return a one line human readable summary."""
        kind = self.type
        if kind == CMD_IN_PING_RESP:
            return f"PING RESP     (id {self.register:x})"
        if kind == CMD_OUT_PING_REQ:
            return f"PING REQ      (id {self.register:x})"
        if kind in _ORIGINAL_FORMATS:
            return _ORIGINAL_FORMATS[kind].format(self.original.hex())
        if kind == CMD_OUT_SEND:
            label = "REGISTER ACK " if self.ack == ACK else "REGISTER SET "
            return f"{label} (reg 0x{self.register:02x} data {self.data.hex()})"
        if kind == CMD_IN_RESP:
            if self.ack == REQUEST:
                text = f"REGISTER NTFY (reg 0x{self.register:02x} data {self.data.hex()})"
                if self.reg is not None:
                    text += f" [{self.reg}]"
                return text
            return f"REGISTER SETACK (reg 0x{self.register:02x} data {self.data.hex()})"
        if kind == CMD_IN_BAD_ENCODING:
            return f"BAD ENCODING  (exp: 0x{self.data[0]:02x})"
        return str(self)

    def raw_string(self) -> str:
        """Return the decoded frame as a hex string."""
        return self.original.hex()

    def encode_to_bytes(self, key: SecurityKey) -> bytes:
        """Build the obscured wire frame, updating ``xor`` and the key state."""
        data = bytes(self.data)
        frame = bytes([self.type, (len(data) + 3) & 0xFF, self.ack, self.register]) + data
        frame += bytes([frame_checksum(frame)])
        if self.type in START_TYPES:
            xor = 0
        elif self.type == CMD_OUT_SEND:
            xor = key.s_key(True)
        else:
            xor = key.s_key(False)
        self.xor = xor
        return xor_message_with(frame, xor)

    def __str__(self) -> str:
        return (
            f"Cmd: 0x{self.type:x} ({MESSAGE_NAMES.get(self.type, '')}) "
            f"(len {self.length}), Register 0x{self.register:x}, "
            f"Data: {bytes(self.data).hex()}"
        )


def new_message(typ: int, register: int, ack: bool, data: bytes) -> PhevMessage:
    """Create a message of the given type; ``ack`` selects ACK over REQUEST."""
    return PhevMessage(
        type=typ,
        register=register,
        data=bytes(data),
        ack=ACK if ack else REQUEST,
    )


def new_ping_request_message(ping_id: int) -> PhevMessage:
    """Create a ping request with the given sequence id."""
    return new_message(CMD_OUT_PING_REQ, ping_id, False, b"\x00")


def new_ping_response_message(ping_id: int) -> PhevMessage:
    """Create a ping response with the given sequence id."""
    return new_message(CMD_IN_PING_RESP, ping_id, True, b"\x00")