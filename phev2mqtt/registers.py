"""Typed views of the vehicle's registers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import ClassVar

from .message import PhevMessage

BATTERY_WARNING_REGISTER = 0x02
SET_AC_MODE_REGISTER_MY14 = 0x02
SET_AC_ENABLED_REGISTER_MY14 = 0x04
PRE_AC_STATE_REGISTER = 0x10
TIME_REGISTER = 0x12
SET_ACK_PRE_AC_TERM_REGISTER = 0x13
VIN_REGISTER = 0x15
SETTINGS_REGISTER = 0x16
AC_OPER_STATUS_REGISTER = 0x1A
SET_AC_MODE_REGISTER_MY18 = 0x1B
AC_MODE_REGISTER = 0x1C
BATTERY_LEVEL_REGISTER = 0x1D
CHARGE_PLUG_REGISTER = 0x1E
CHARGE_STATUS_REGISTER = 0x1F
LIGHT_STATUS_REGISTER = 0x23
DOOR_STATUS_REGISTER = 0x24
WIFI_SSID_REGISTER = 0x28
ECU_VERSION_REGISTER = 0xC0


def encode_time(when: datetime) -> bytes:
    """Encode a timestamp as the car's 7 byte time format."""
    return bytes(
        [
            (when.year - 2000) & 0xFF,
            when.month,
            when.day,
            when.hour,
            when.minute,
            when.second,
            when.isoweekday() % 7,
        ]
    )


def decode_time(data: bytes) -> datetime:
    """Decode the car's time format; out of range fields roll over."""
    months = data[1] - 1
    year = 2000 + data[0] + months // 12
    month = months % 12 + 1
    return datetime(year, month, 1) + timedelta(
        days=data[2] - 1, hours=data[3], minutes=data[4], seconds=data[5]
    )


def _text(data: bytes) -> str:
    return bytes(data).decode("utf-8", errors="replace")


@dataclass
class Register(ABC):
    """A decoded register value."""

    number: ClassVar[int] = 0
    _raw: bytes = field(default=b"", init=False, repr=False, compare=False)

    @property
    def register(self) -> int:
        """The register number."""
        return self.number

    @abstractmethod
    def decode(self, message: PhevMessage) -> None:
        """Fill the fields from a received message; ignores malformed data."""

    @abstractmethod
    def encode(self) -> PhevMessage:
        """Build a message carrying this register's value."""

    def raw(self) -> str:
        """Return the raw decoded data as hex."""
        return self._raw.hex()

    def _message(self, data: bytes) -> PhevMessage:
        return PhevMessage(register=self.register, data=bytes(data))


@dataclass
class RegisterGeneric(Register):
    """Any register without a specific decoding."""

    reg: int = 0
    value: bytes = b""

    @property
    def register(self) -> int:
        return self.reg

    def decode(self, message: PhevMessage) -> None:
        self.reg = message.register
        self.value = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(self.value)

    def raw(self) -> str:
        return self.value.hex()

    def __str__(self) -> str:
        return f"g(0x{self.reg:02x}): {self.raw()}"


@dataclass
class RegisterTime(Register):
    """The car's clock."""

    number: ClassVar[int] = TIME_REGISTER
    time: datetime = datetime(1, 1, 1)

    def decode(self, message: PhevMessage) -> None:
        if len(message.data) != 7:
            return
        self.time = decode_time(message.data)
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(encode_time(self.time))

    def __str__(self) -> str:
        return str(self.time)


@dataclass
class RegisterSettings(Register):
    """A packed vehicle setting."""

    reg: int = SETTINGS_REGISTER

    @property
    def register(self) -> int:
        return self.reg

    def decode(self, message: PhevMessage) -> None:
        self.reg = message.register
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(self._raw)

    def __str__(self) -> str:
        value = int.from_bytes(self._raw[:8].ljust(8, b"\x00"), "little")
        return f"Car Settings: {value:016x}"


@dataclass
class RegisterVIN(Register):
    """Vehicle identification number and registration count."""

    number: ClassVar[int] = VIN_REGISTER
    vin: str = ""
    registrations: int = 0

    def decode(self, message: PhevMessage) -> None:
        if message.register != VIN_REGISTER or len(message.data) != 20:
            return
        self.vin = _text(message.data[1:17])
        self.registrations = message.data[19]
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        data = b"\x03" + self.vin.encode() + bytes([0, self.registrations & 0xFF])
        return self._message(data)

    def __str__(self) -> str:
        return f"VIN: {self.vin} Registrations: {self.registrations}"


@dataclass
class RegisterECUVersion(Register):
    """Firmware version of the car's ECU."""

    number: ClassVar[int] = ECU_VERSION_REGISTER
    version: str = ""

    def decode(self, message: PhevMessage) -> None:
        if message.register != ECU_VERSION_REGISTER or len(message.data) != 13:
            return
        self.version = _text(message.data[:9])
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(self.version.encode() + b"\x11\x00\x00")

    def __str__(self) -> str:
        return f"ECU Version: {self.version}"


@dataclass
class RegisterBatteryLevel(Register):
    """Battery charge level; also carries the parking light state."""

    number: ClassVar[int] = BATTERY_LEVEL_REGISTER
    level: int = 0
    parking_lights: bool = False

    def decode(self, message: PhevMessage) -> None:
        if message.register != BATTERY_LEVEL_REGISTER or len(message.data) != 4:
            return
        self.level = message.data[0]
        self.parking_lights = message.data[2] == 0x1
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(bytes([self.level & 0xFF, 0, 1 if self.parking_lights else 0]))

    def __str__(self) -> str:
        return f"Battery level: {self.level}"


@dataclass
class RegisterBatteryWarning(Register):
    """Battery warning indicator."""

    number: ClassVar[int] = BATTERY_WARNING_REGISTER
    warning: int = 0

    def decode(self, message: PhevMessage) -> None:
        if message.register != BATTERY_WARNING_REGISTER or len(message.data) != 4:
            return
        self.warning = message.data[2]
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(bytes([0, 0, self.warning & 0xFF, 0]))

    def __str__(self) -> str:
        return f"Battery warning: {self.warning}"


_DOOR_FIELDS = (
    (3, "driver"),
    (4, "front_passenger"),
    (5, "rear_right"),
    (6, "rear_left"),
    (7, "boot"),
    (8, "bonnet"),
    (9, "headlights"),
)


@dataclass
class RegisterDoorStatus(Register):
    """Lock state, open doors and the headlight state."""

    number: ClassVar[int] = DOOR_STATUS_REGISTER
    locked: bool = False
    driver: bool = False
    front_passenger: bool = False
    rear_left: bool = False
    rear_right: bool = False
    bonnet: bool = False
    boot: bool = False
    headlights: bool = False

    def decode(self, message: PhevMessage) -> None:
        if message.register != DOOR_STATUS_REGISTER or len(message.data) != 10:
            return
        self.locked = message.data[0] == 0x1
        for index, name in _DOOR_FIELDS:
            setattr(self, name, message.data[index] == 0x1)
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        data = bytearray(10)
        data[0] = 1 if self.locked else 0
        for index, name in _DOOR_FIELDS:
            data[index] = 1 if getattr(self, name) else 0
        return self._message(bytes(data))

    def __str__(self) -> str:
        opened = [
            name
            for name in ("driver", "front_passenger", "rear_right", "rear_left", "bonnet", "boot")
            if getattr(self, name)
        ]
        open_str = " Open: " + " ".join(opened) if opened else ""
        prefix = "Doors locked." if self.locked else "Doors unlocked."
        return prefix + open_str


@dataclass
class RegisterChargeStatus(Register):
    """Whether the car is charging and the minutes remaining."""

    number: ClassVar[int] = CHARGE_STATUS_REGISTER
    charging: bool = False
    remaining: int = 0

    def decode(self, message: PhevMessage) -> None:
        if message.register != CHARGE_STATUS_REGISTER or len(message.data) != 3:
            return
        data = message.data
        self.charging = data[0] == 0x1
        self.remaining = 0
        if data[2] != 0xFF:
            self.remaining = data[2] << 8 | data[1]
        self._raw = bytes(data)

    def encode(self) -> PhevMessage:
        data = bytearray(3)
        if self.charging:
            data[0] = 0x1
            data[1] = self.remaining % 256
            data[2] = (self.remaining // 256) & 0xFF
        return self._message(bytes(data))

    def __str__(self) -> str:
        if self.charging:
            return f"Charging, {self.remaining} remaining."
        return "Not charging"


class PreACState(IntEnum):
    """Pre-conditioning (climate) state."""

    OFF = 0
    ON = 2
    TERMINATED = 3


def _pre_ac_state(byte: int) -> PreACState | int:
    value = byte - 256 if byte >= 128 else byte
    try:
        return PreACState(value)
    except ValueError:
        return value


@dataclass
class RegisterPreACState(Register):
    """State of the climate pre-conditioning."""

    number: ClassVar[int] = PRE_AC_STATE_REGISTER
    state: PreACState | int = PreACState.OFF

    def decode(self, message: PhevMessage) -> None:
        if len(message.data) < 1:
            return
        self.state = _pre_ac_state(message.data[0])
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(bytes([int(self.state) & 0xFF]))

    def __str__(self) -> str:
        if self.state == PreACState.OFF:
            return "Pre-AC off"
        if self.state == PreACState.ON:
            return "Pre-AC on"
        if self.state == PreACState.TERMINATED:
            return "Pre-AC terminated (door opened or battery low?)"
        return f"Pre-AC: unknown ({int(self.state)})"


@dataclass
class RegisterACOperStatus(Register):
    """Whether the air conditioning is operating."""

    number: ClassVar[int] = AC_OPER_STATUS_REGISTER
    operating: bool = False

    def decode(self, message: PhevMessage) -> None:
        if message.register != AC_OPER_STATUS_REGISTER or len(message.data) < 2:
            return
        self.operating = message.data[1] == 1
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        data = bytearray(5)
        if self.operating:
            data[1] = 0x1
        return self._message(bytes(data))

    def __str__(self) -> str:
        return "AC on" if self.operating else "AC off"


_AC_MODES = {0: "unknown", 1: "cool", 2: "heat", 3: "windscreen"}
_AC_DURATIONS = {0x00: 10, 0x10: 20, 0x20: 30}


@dataclass
class RegisterACMode(Register):
    """Climate mode and duration."""

    number: ClassVar[int] = AC_MODE_REGISTER
    mode: str = ""
    duration: int = 0

    def decode(self, message: PhevMessage) -> None:
        if len(message.data) != 1:
            return
        value = message.data[0]
        self.mode = _AC_MODES.get(value & 0x0F, self.mode)
        self.duration = _AC_DURATIONS.get(value & 0xF0, self.duration)
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        codes = {name: code for code, name in _AC_MODES.items()}
        return self._message(bytes([codes.get(self.mode, 0)]))

    def __str__(self) -> str:
        return self.mode


@dataclass
class RegisterChargePlug(Register):
    """Whether a charger is plugged in."""

    number: ClassVar[int] = CHARGE_PLUG_REGISTER
    connected: bool = False

    def decode(self, message: PhevMessage) -> None:
        if len(message.data) != 2:
            return
        self.connected = message.data[1] == 1 or message.data[0] > 0
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(bytes([0, 1 if self.connected else 0]))

    def __str__(self) -> str:
        return "Charger connected" if self.connected else "Charger disconnected"


@dataclass
class RegisterWIFISSID(Register):
    """The car's WiFi network name."""

    number: ClassVar[int] = WIFI_SSID_REGISTER
    ssid: str = ""

    def decode(self, message: PhevMessage) -> None:
        if message.register != WIFI_SSID_REGISTER or len(message.data) != 32:
            return
        self._raw = bytes(message.data)
        self.ssid = _text(self._raw.replace(b"\xff", b"\x00"))

    def encode(self) -> PhevMessage:
        data = self.ssid.encode()
        if len(data) > 32:
            raise ValueError(f"SSID longer than 32 bytes: {self.ssid!r}")
        return self._message(data.ljust(32, b"\x00"))

    def __str__(self) -> str:
        return f"SSID: {self.ssid}"


@dataclass
class RegisterLightStatus(Register):
    """Interior and hazard light state."""

    number: ClassVar[int] = LIGHT_STATUS_REGISTER
    interior: bool = False
    hazard: bool = False

    def decode(self, message: PhevMessage) -> None:
        if len(message.data) != 5:
            return
        # Each light alternates between 2 for off and 1 for on.
        self.interior = message.data[4] & 0b11 == 1
        self.hazard = message.data[3] & 0b11 == 1
        self._raw = bytes(message.data)

    def encode(self) -> PhevMessage:
        return self._message(bytes([0, 0, 0, 1 if self.hazard else 2, 1 if self.interior else 2]))

    def __str__(self) -> str:
        return (
            f"Hazard lights: {str(self.hazard).lower()}; "
            f"Interior lights: {str(self.interior).lower()}."
        )