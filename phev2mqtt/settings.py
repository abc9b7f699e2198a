"""Vehicle settings carried in the settings register."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from .message import CMD_IN_RESP, PhevMessage, new_message
from .registers import SETTINGS_REGISTER


@dataclass
class Settings:
    """The distinct settings values seen from the car, in arrival order."""

    values: list[int] = field(default_factory=list)

    def from_register(self, reg: bytes) -> None:
        """Record a setting from the 8 byte settings register.

        Raises ValueError for malformed register data.
        """
        if len(reg) != 8:
            raise ValueError(f"register wrong length got={len(reg)} want=8")
        if reg[0] != 0x2:
            raise ValueError(f"register must start with 0x2, is 0x{reg[0]:x}")
        if reg[7] != 0x0:
            raise ValueError(f"register must end with 0x0, is 0x{reg[7]:x}")
        value = int.from_bytes(bytes(reg), "little")
        if value not in self.values:
            self.values.append(value)

    def clear(self) -> None:
        """Forget all recorded settings."""
        self.values = []

    def messages(self) -> Iterator[PhevMessage]:
        """Yield a settings notification for each setting recorded now."""
        snapshot = tuple(self.values)
        return (
            new_message(CMD_IN_RESP, SETTINGS_REGISTER, False, value.to_bytes(8, "little"))
            for value in snapshot
        )

    def dump(self) -> str:
        """Return the settings as hex, one per line."""
        return "\n".join(f"{value:016x}" for value in self.values)