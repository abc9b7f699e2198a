"""Session keys, checksums and frame validation for the vehicle protocol."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger(__name__)

TRACE = 5


class SecurityState(IntEnum):
    """Progress of the session key negotiation."""

    EMPTY = 0
    KEY_PROPOSED = 1
    KEY_ACCEPTED = 2


@dataclass
class SecurityKey:
    """Session key state used to obscure frames in both directions.

    The key map is a permutation of 0..255 derived from the start packets.
    Separate counters select the key for frames sent to and received from
    the car.
    """

    state: SecurityState = SecurityState.EMPTY
    key_map: bytes = b""
    security_key: int = 0
    s_num: int = 0
    r_num: int = 0
    proposed_key: bytes = b""

    def generate_proposal(self) -> bytes:
        """Create a random 8 byte key proposal and mark it as proposed."""
        self.proposed_key = random.randbytes(8)
        self.state = SecurityState.KEY_PROPOSED
        return self.proposed_key

    def accept_proposal(self) -> None:
        """Derive the session keys from the current proposal."""
        self.update(bytes(4) + self.proposed_key)
        self.state = SecurityState.KEY_ACCEPTED

    def update(self, packet: bytes) -> None:
        """Derive the key map from a start packet.

        A packet shorter than 12 bytes clears the keys.
        """
        if len(packet) < 12:
            self.key_map = b""
            self.security_key = 0
            self.s_num = 0
            self.r_num = 0
            logger.debug("%PHEV_SEC_KEY_CLEAR% Cleared security key")
            return

        key = 0
        for bit, value in enumerate(packet[4:12]):
            if value & 0x08:
                key |= 1 << bit
        self.security_key = key

        key_map = list(range(256))
        index = 0
        for i in range(256):
            index = (index + key_map[i] + key) % 256
            key_map[i], key_map[index] = key_map[index], key_map[i]
        self.key_map = bytes(key_map)

        self.s_num = 0
        self.r_num = 0
        logger.debug("%PHEV_SEC_KEY_UPDATE% Updated security key")

    def r_key(self, increment: bool) -> int:
        """Return the key for frames from the car, optionally advancing it."""
        if not self.key_map:
            logger.log(TRACE, "r_key=empty")
            return 0
        value = self.key_map[self.r_num]
        if increment:
            self.r_num = (self.r_num + 1) & 0xFF
        logger.log(TRACE, "r_key=%d", value)
        return value

    def s_key(self, increment: bool) -> int:
        """Return the key for frames to the car, optionally advancing it."""
        if not self.key_map:
            logger.log(TRACE, "s_key=empty")
            return 0
        value = self.key_map[self.s_num]
        if increment:
            self.s_num = (self.s_num + 1) & 0xFF
        logger.log(TRACE, "s_key=%d", value)
        return value


def xor_message_with(message: bytes, xor: int) -> bytes:
    """Return a copy of ``message`` with every byte XORed with ``xor``."""
    return bytes(b ^ xor for b in message)


def checksum(message: bytes) -> int:
    """Compute the one byte additive checksum of a frame."""
    end = (message[1] + 1) & 0xFF
    if len(message) < end:
        raise ValueError("message shorter than its length field")
    return sum(message[:end]) & 0xFF


def validate_checksum(message: bytes) -> bool:
    """Return True if the frame is complete and its checksum matches."""
    if len(message) < 2:
        return False
    length = message[1] + 2
    if len(message) < length:
        return False
    return checksum(message) == message[length - 1]


def validate_and_decode_message(message: bytes) -> tuple[bytes, int, bytes]:
    """Decode the first frame in ``message``.

    Returns the decoded frame, the XOR value used and any trailing bytes.
    If no valid frame is found the frame is empty.
    """
    if len(message) < 4:
        logger.debug("Short msg")
        return b"", 0, b""
    xor = message[2]
    decoded = xor_message_with(message, xor)
    if not validate_checksum(decoded):
        xor ^= 1
        decoded = xor_message_with(message, xor)
        if not validate_checksum(decoded):
            logger.debug("Bad sum for (%s)", bytes(message).hex())
            return b"", 0, b""
    length = (decoded[1] + 2) & 0xFF
    return decoded[:length], xor, bytes(message[length:])