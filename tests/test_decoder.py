import dataclasses

import pytest

from phev2mqtt.decoder import DecodeError, decode_from_bytes, new_from_bytes, register_for
from phev2mqtt.message import ACK, PhevMessage, new_message
from phev2mqtt.raw import SecurityKey
from phev2mqtt.registers import (
    RegisterBatteryWarning,
    RegisterECUVersion,
    RegisterGeneric,
    RegisterVIN,
)

CASES = [
    (
        "f60400060303",
        bytes([0x00, 0x00]),
        PhevMessage(
            type=0xF6,
            length=0x6,
            register=0x6,
            data=bytes([0x3]),
            checksum=0x3,
            original=bytes([0xF6, 0x4, 0x0, 0x6, 0x3, 0x3]),
            original_xored=bytes([0xF6, 0x4, 0x0, 0x6, 0x3, 0x3]),
        ),
    ),
    (
        "502f3fff0f0f0a0d0f0d0d0f0f0f2f3e3f04",
        bytes([0x3F, 0x3F, 0x3F]),
        PhevMessage(
            type=0x6F,
            length=0x12,
            register=0xC0,
            data=bytes([0x30, 0x30, 0x35, 0x32, 0x30, 0x32, 0x32, 0x30, 0x30, 0x30, 0x10, 0x1, 0x0]),
            checksum=0x3B,
            xor=0x3F,
            original=bytes.fromhex("6f1000c0303035323032323030301001003b"),
            original_xored=bytes.fromhex("502f3fff0f0f0a0d0f0d0d0f0f0f2f3e3f04"),
        ),
    ),
    (
        "caa2a5a7a5a5a5a5dd",
        bytes([0xA5, 0xA5]),
        PhevMessage(
            type=0x6F,
            length=0x9,
            register=0x2,
            data=bytes([0, 0, 0, 0]),
            checksum=0x78,
            xor=0xA5,
            original=bytes([0x6F, 0x7, 0x0, 0x2, 0x0, 0x0, 0x0, 0x0, 0x78]),
            original_xored=bytes([0xCA, 0xA2, 0xA5, 0xA7, 0xA5, 0xA5, 0xA5, 0xA5, 0xDD]),
        ),
    ),
    (
        "3cf4f13360d4",
        bytes([0xF0, 0xA5]),
        PhevMessage(
            type=0xCC,
            length=0x6,
            register=0xC3,
            data=bytes([0x90]),
            checksum=0x24,
            xor=0xF0,
            ack=ACK,
            original=bytes([0xCC, 0x4, 0x1, 0xC3, 0x90, 0x24]),
            original_xored=bytes([0x3C, 0xF4, 0xF1, 0x33, 0x60, 0xD4]),
        ),
    ),
    (
        "4bf4f1c190a1",
        bytes([0xF0, 0xA5]),
        PhevMessage(
            type=0xBB,
            length=0x6,
            register=0x31,
            data=bytes([0x60]),
            checksum=0x51,
            xor=0xF0,
            ack=ACK,
            original=bytes([0xBB, 0x4, 0x1, 0x31, 0x60, 0x51]),
            original_xored=bytes([0x4B, 0xF4, 0xF1, 0xC1, 0x90, 0xA1]),
        ),
    ),
    (
        "9ff6f0f3f1e59301",
        bytes([0xF0, 0xA5]),
        PhevMessage(
            type=0x6F,
            length=0x8,
            register=0x3,
            data=bytes([0x1, 0x15, 0x63]),
            checksum=0xF1,
            xor=0xF0,
            original=bytes([0x6F, 0x6, 0x0, 0x3, 0x1, 0x15, 0x63, 0xF1]),
            original_xored=bytes([0x9F, 0xF6, 0xF0, 0xF3, 0xF1, 0xE5, 0x93, 0x01]),
        ),
    ),
]


@pytest.mark.parametrize("hex_in,key_map,want", CASES, ids=[c[0] for c in CASES])
def test_decode_encode_bytes(hex_in, key_map, want):
    key = SecurityKey(key_map=key_map)
    got = decode_from_bytes(bytes.fromhex(hex_in), key)
    assert dataclasses.replace(got, reg=None) == want

    expected = dataclasses.replace(want)
    assert expected.encode_to_bytes(key).hex() == hex_in


def test_decoded_registers():
    ecu = decode_from_bytes(bytes.fromhex(CASES[1][0]), SecurityKey(key_map=CASES[1][1]))
    assert isinstance(ecu.reg, RegisterECUVersion)
    assert ecu.reg.version == "005202200"

    warning = decode_from_bytes(bytes.fromhex(CASES[2][0]), SecurityKey(key_map=CASES[2][1]))
    assert isinstance(warning.reg, RegisterBatteryWarning)
    assert warning.reg.warning == 0

    generic = decode_from_bytes(bytes.fromhex(CASES[5][0]), SecurityKey(key_map=CASES[5][1]))
    assert isinstance(generic.reg, RegisterGeneric)
    assert generic.reg.raw() == "011563"


def test_start_request_updates_key():
    key = SecurityKey()
    message = decode_from_bytes(bytes.fromhex("5e0c0001becfe9adada5158b0181"), key)
    assert message.type == 0x5E
    assert key.security_key == 159
    assert key.key_map[0] == 246
    assert key.key_map[255] == 164


def test_response_advances_receive_key():
    key = SecurityKey(key_map=bytes([0xA5, 0xA5]))
    decode_from_bytes(bytes.fromhex("caa2a5a7a5a5a5a5dd"), key)
    assert key.r_num == 1
    assert key.s_num == 0


def test_decode_short_raises():
    with pytest.raises(DecodeError):
        decode_from_bytes(b"\xf6\x04", SecurityKey())


def test_decode_bad_checksum_raises():
    with pytest.raises(DecodeError):
        decode_from_bytes(bytes.fromhex("f60400060304"), SecurityKey())


def test_new_from_bytes_two_frames():
    messages = new_from_bytes(bytes.fromhex("06f4f0f6f3f306f4f0f6f3f3"), SecurityKey())
    assert len(messages) == 2
    for message in messages:
        assert message.type == 0xF6
        assert message.register == 0x6
        assert message.xor == 0xF0
        assert message.original_xored == bytes.fromhex("06f4f0f6f3f3")


def test_new_from_bytes_skips_leading_garbage():
    data = bytes.fromhex("0000") + bytes.fromhex("f60400060303")
    messages = new_from_bytes(data, SecurityKey())
    assert [m.original.hex() for m in messages] == ["f60400060303"]


def test_new_from_bytes_garbage_only():
    assert new_from_bytes(bytes(10), SecurityKey()) == []
    assert new_from_bytes(b"", SecurityKey()) == []


def test_vin_round_trip_through_wire():
    data = b"\x03" + b"ABCDEFGH12345678" + b"\x00\x00\x01"
    outgoing = new_message(0x6F, 0x15, False, data)
    wire = outgoing.encode_to_bytes(SecurityKey())
    [message] = new_from_bytes(wire, SecurityKey())
    assert isinstance(message.reg, RegisterVIN)
    assert message.reg.vin == "ABCDEFGH12345678"
    assert message.reg.registrations == 1


def test_register_for_ignores_acks():
    message = new_message(0x6F, 0x15, True, b"\x00")
    assert register_for(message) is None
    request = new_message(0x6F, 0x77, False, b"\x01")
    reg = register_for(request)
    assert isinstance(reg, RegisterGeneric)
    assert reg.register == 0x77