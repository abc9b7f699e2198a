import pytest

from phev2mqtt.message import (
    ACK,
    CMD_IN_BAD_ENCODING,
    CMD_IN_PING_RESP,
    CMD_IN_RESP,
    CMD_OUT_MY18_START_RESP,
    CMD_OUT_PING_REQ,
    CMD_OUT_SEND,
    REQUEST,
    PhevMessage,
    new_message,
    new_ping_request_message,
    new_ping_response_message,
)
from phev2mqtt.raw import SecurityKey, validate_and_decode_message


@pytest.mark.parametrize(
    "typ, ack, register, data, key_map, want, xor",
    [
        (0xF6, REQUEST, 0x06, "03", [0x00, 0x00], "f60400060303", 0x00),
        (
            0x6F,
            REQUEST,
            0xC0,
            "30303532303232303030100100",
            [0x3F, 0x3F, 0x3F],
            "502f3fff0f0f0a0d0f0d0d0f0f0f2f3e3f04",
            0x3F,
        ),
        (0x6F, REQUEST, 0x02, "00000000", [0xA5, 0xA5], "caa2a5a7a5a5a5a5dd", 0xA5),
        (0xCC, ACK, 0xC3, "90", [0xF0, 0xA5], "3cf4f13360d4", 0xF0),
        (0xBB, ACK, 0x31, "60", [0xF0, 0xA5], "4bf4f1c190a1", 0xF0),
        (0x6F, REQUEST, 0x03, "011563", [0xF0, 0xA5], "9ff6f0f3f1e59301", 0xF0),
    ],
)
def test_encode_to_bytes(typ, ack, register, data, key_map, want, xor):
    msg = PhevMessage(type=typ, ack=ack, register=register, data=bytes.fromhex(data))
    key = SecurityKey(key_map=bytes(key_map))
    assert msg.encode_to_bytes(key).hex() == want
    assert msg.xor == xor


def test_send_advances_send_key():
    key = SecurityKey(key_map=bytes([0x11, 0x22]))
    first = new_message(CMD_OUT_SEND, 0x06, False, b"\x03")
    first.encode_to_bytes(key)
    second = new_message(CMD_OUT_SEND, 0x06, False, b"\x03")
    second.encode_to_bytes(key)
    assert key.s_num == 2
    assert (first.xor, second.xor) == (0x11, 0x22)


def test_other_types_do_not_advance_key():
    key = SecurityKey(key_map=bytes([0x11, 0x22]))
    new_message(CMD_IN_RESP, 0x06, False, b"\x03").encode_to_bytes(key)
    new_ping_request_message(1).encode_to_bytes(key)
    assert key.s_num == 0


def test_start_messages_are_not_obscured():
    key = SecurityKey(key_map=bytes([0x55] * 4))
    msg = new_message(CMD_OUT_MY18_START_RESP, 0x1, True, b"\x00")
    encoded = msg.encode_to_bytes(key)
    assert msg.xor == 0
    assert encoded[0] == CMD_OUT_MY18_START_RESP
    assert key.s_num == 0


def test_encode_round_trip():
    key = SecurityKey(key_map=bytes([0x3C, 0x77]))
    msg = new_message(CMD_OUT_SEND, 0x1B, False, b"\x02\x01\x00\x00")
    encoded = msg.encode_to_bytes(key)
    frame, xor, rest = validate_and_decode_message(encoded)
    assert xor == msg.xor
    assert rest == b""
    assert frame[0] == CMD_OUT_SEND
    assert frame[3] == 0x1B
    assert frame[4:-1] == b"\x02\x01\x00\x00"


def test_ping_request():
    msg = new_ping_request_message(0x0A)
    assert (msg.type, msg.register, msg.ack, msg.data) == (CMD_OUT_PING_REQ, 0x0A, REQUEST, b"\x00")
    assert msg.short_form() == "PING REQ      (id a)"


def test_ping_response():
    msg = new_ping_response_message(0x0A)
    assert (msg.type, msg.ack, msg.data) == (CMD_IN_PING_RESP, ACK, b"\x00")
    assert msg.short_form().startswith("PING RESP")


def test_new_message_ack_flag():
    assert new_message(CMD_OUT_SEND, 1, True, b"").ack == ACK
    assert new_message(CMD_OUT_SEND, 1, False, b"").ack == REQUEST


def test_short_form_register_set_and_ack():
    setting = new_message(CMD_OUT_SEND, 0x0B, False, b"\x02")
    acked = new_message(CMD_OUT_SEND, 0x0B, True, b"\x02")
    assert setting.short_form().startswith("REGISTER SET")
    assert acked.short_form().startswith("REGISTER ACK")
    assert "0x0b" in setting.short_form()


class _Reg:
    def __str__(self):
        return "stub"


def test_short_form_notify_includes_register_text():
    msg = new_message(CMD_IN_RESP, 0x15, False, b"\x01\x02")
    plain = msg.short_form()
    msg.reg = _Reg()
    assert msg.short_form() == plain + " [stub]"


def test_short_form_set_ack_from_car():
    msg = new_message(CMD_IN_RESP, 0x15, True, b"\x00")
    assert msg.short_form().startswith("REGISTER SETACK")


def test_short_form_bad_encoding():
    msg = new_message(CMD_IN_BAD_ENCODING, 0x31, True, b"\x60")
    assert msg.short_form() == "BAD ENCODING  (exp: 0x60)"


def test_short_form_bad_encoding_without_data():
    msg = new_message(CMD_IN_BAD_ENCODING, 0x31, True, b"")
    with pytest.raises(IndexError):
        msg.short_form()


def test_short_form_start_uses_original():
    msg = PhevMessage(type=CMD_OUT_MY18_START_RESP, original=bytes.fromhex("e50401"))
    assert msg.short_form().endswith("e50401)")


def test_raw_string():
    msg = PhevMessage(original=bytes.fromhex("f60400060303"))
    assert msg.raw_string() == "f60400060303"


def test_unknown_type_falls_back_to_str():
    msg = PhevMessage(type=0xCC, length=6, register=0xC3, data=b"\x90")
    assert msg.short_form() == str(msg)
    assert "0xcc" in str(msg)
    assert "90" in str(msg)