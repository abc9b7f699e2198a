import pytest

from phev2mqtt.decode_cli import decode_file, decode_hex_args
from phev2mqtt.registers import RegisterECUVersion


def test_decode_single_arg():
    messages = decode_hex_args(["f60400060303"])
    assert len(messages) == 1
    message = messages[0]
    assert message.type == 0xF6
    assert message.register == 0x06
    assert message.data == b"\x03"
    assert message.short_form() == "REGISTER SET  (reg 0x06 data 03)"


def test_decode_two_frames_in_one_arg():
    messages = decode_hex_args(["06f4f0f6f3f306f4f0f6f3f3"])
    assert len(messages) == 2
    assert all(m.original == bytes.fromhex("f60400060303") for m in messages)
    assert all(m.xor == 0xF0 for m in messages)


def test_invalid_hex_arg_is_skipped():
    messages = decode_hex_args(["zz", "f60400060303"])
    assert len(messages) == 1
    assert messages[0].register == 0x06


def test_arguments_share_order():
    messages = decode_hex_args(["f60400060303", "502f3fff0f0f0a0d0f0d0d0f0f0f2f3e3f04"])
    assert [m.register for m in messages] == [0x06, 0xC0]
    assert isinstance(messages[1].reg, RegisterECUVersion)
    assert messages[1].reg.version == "005202200"


def test_decode_file_ignores_newlines(tmp_path):
    path = tmp_path / "dump.txt"
    path.write_text("06f4f0f6\nf3f3\n06f4f0f6f3f3\n")
    messages = decode_file(path)
    assert len(messages) == 2
    assert messages[0].original == bytes.fromhex("f60400060303")


def test_decode_file_rejects_bad_hex(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_text("not hex\n")
    with pytest.raises(ValueError):
        decode_file(path)


def test_decode_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        decode_file(tmp_path / "missing.txt")