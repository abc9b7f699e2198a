"""Combined climate state for publishing over MQTT."""

from __future__ import annotations

from dataclasses import dataclass

from .registers import PreACState

_MODE_TOPICS = {
    "cool": "/climate/cool",
    "heat": "/climate/heat",
    "windscreen": "/climate/windscreen",
}


@dataclass
class Climate:
    """Tracks the climate mode and on/off state, which the car reports separately."""

    state: PreACState | int | None = None
    mode: str | None = None

    def set_mode(self, mode: str) -> None:
        """Record the climate mode reported by the car."""
        self.mode = mode

    def set_state(self, state: PreACState | int) -> None:
        """Record the pre-conditioning state reported by the car."""
        self.state = state

    def mqtt_states(self) -> dict[str, str]:
        """Return the MQTT topic suffixes and payloads for the current state."""
        states = {
            "/climate/state": "off",
            "/climate/cool": "off",
            "/climate/heat": "off",
            "/climate/windscreen": "off",
        }
        if self.mode is None or self.state is None:
            return states
        if self.state == PreACState.OFF:
            states["/climate/state"] = "off"
            return states
        if self.state == PreACState.TERMINATED:
            states["/climate/state"] = "terminated"
            return states
        if self.state != PreACState.ON:
            states["/climate/state"] = "unknown"
            return states
        states["/climate/state"] = self.mode
        topic = _MODE_TOPICS.get(self.mode)
        if topic is not None:
            states[topic] = "on"
        return states