"""Decoding of raw byte streams into protocol messages."""

from __future__ import annotations

import logging

from .message import (
    CMD_IN_MY14_START_REQ,
    CMD_IN_MY18_START_REQ,
    CMD_IN_MY24_START_REQ,
    CMD_IN_RESP,
    CMD_OUT_SEND,
    REQUEST,
    PhevMessage,
)
from .raw import TRACE, SecurityKey, validate_and_decode_message, xor_message_with
from .registers import (
    AC_MODE_REGISTER,
    AC_OPER_STATUS_REGISTER,
    BATTERY_LEVEL_REGISTER,
    BATTERY_WARNING_REGISTER,
    CHARGE_PLUG_REGISTER,
    CHARGE_STATUS_REGISTER,
    DOOR_STATUS_REGISTER,
    ECU_VERSION_REGISTER,
    LIGHT_STATUS_REGISTER,
    PRE_AC_STATE_REGISTER,
    SETTINGS_REGISTER,
    TIME_REGISTER,
    VIN_REGISTER,
    WIFI_SSID_REGISTER,
    Register,
    RegisterACMode,
    RegisterACOperStatus,
    RegisterBatteryLevel,
    RegisterBatteryWarning,
    RegisterChargePlug,
    RegisterChargeStatus,
    RegisterDoorStatus,
    RegisterECUVersion,
    RegisterGeneric,
    RegisterLightStatus,
    RegisterPreACState,
    RegisterSettings,
    RegisterTime,
    RegisterVIN,
    RegisterWIFISSID,
)

logger = logging.getLogger(__name__)

_REGISTER_TYPES: dict[int, type[Register]] = {
    VIN_REGISTER: RegisterVIN,
    SETTINGS_REGISTER: RegisterSettings,
    TIME_REGISTER: RegisterTime,
    ECU_VERSION_REGISTER: RegisterECUVersion,
    BATTERY_LEVEL_REGISTER: RegisterBatteryLevel,
    BATTERY_WARNING_REGISTER: RegisterBatteryWarning,
    DOOR_STATUS_REGISTER: RegisterDoorStatus,
    CHARGE_PLUG_REGISTER: RegisterChargePlug,
    CHARGE_STATUS_REGISTER: RegisterChargeStatus,
    PRE_AC_STATE_REGISTER: RegisterPreACState,
    AC_OPER_STATUS_REGISTER: RegisterACOperStatus,
    AC_MODE_REGISTER: RegisterACMode,
    WIFI_SSID_REGISTER: RegisterWIFISSID,
    LIGHT_STATUS_REGISTER: RegisterLightStatus,
}

_START_REQUESTS = frozenset({CMD_IN_MY24_START_REQ, CMD_IN_MY18_START_REQ, CMD_IN_MY14_START_REQ})


class DecodeError(ValueError):
    """Raised when bytes cannot be decoded into a message."""


def register_for(message: PhevMessage) -> Register | None:
    """Return the decoded register carried by a register notification.

    Returns None for messages that are not register notifications.
    """
    if message.type != CMD_IN_RESP or message.ack != REQUEST:
        return None
    register = _REGISTER_TYPES.get(message.register, RegisterGeneric)()
    register.decode(message)
    return register


def decode_from_bytes(data: bytes, key: SecurityKey) -> PhevMessage:
    """Decode a single obscured frame, updating the session key state."""
    data = bytes(data)
    if len(data) < 4:
        raise DecodeError("invalid packet length")
    decoded, xor, _ = validate_and_decode_message(data)
    if len(decoded) < 4 or len(decoded) < (decoded[1] + 2) & 0xFF:
        raise DecodeError("invalid packet length")
    length = (decoded[1] + 2) & 0xFF
    message = PhevMessage(
        type=decoded[0],
        length=length,
        ack=decoded[2],
        register=decoded[3],
        data=decoded[4 : length - 1],
        checksum=decoded[length - 1],
        xor=xor,
        original=decoded,
        original_xored=data,
    )
    if message.type in _START_REQUESTS:
        key.update(message.original_xored)
    elif message.type == CMD_IN_RESP:
        key.r_key(True)
    elif message.type == CMD_OUT_SEND:
        key.s_key(True)
    message.reg = register_for(message)
    return message


def new_from_bytes(data: bytes, key: SecurityKey) -> list[PhevMessage]:
    """Decode every frame found in ``data``, skipping leading garbage."""
    data = bytes(data)
    messages: list[PhevMessage] = []
    logger.log(TRACE, "%%PHEV_DECODE_FROM_BYTES%%: Raw: %s", data.hex())
    offset = 0
    while True:
        frame, xor, remaining = validate_and_decode_message(data[offset:])
        if not frame:
            offset += 1
            if offset >= len(data) - 6:
                break
            continue
        logger.log(TRACE, "%%PHEV_DECODED_FROM_BYTES%%: Raw: %s", frame.hex())
        obscured = xor_message_with(frame, xor)
        try:
            message = decode_from_bytes(obscured, key)
        except DecodeError as err:
            logger.error("decode error: %s", err)
            break
        message.original_xored = data[offset : offset + len(obscured)]
        message.xor = xor
        messages.append(message)
        if not remaining:
            break
        data = remaining
        offset = 0
    return messages