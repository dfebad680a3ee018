"""Serial keypad support for participant responses.

The keypad sends one ASCII digit per key press and repeats it while the key
stays down.  :class:`KeypadResponseInput` turns those reports into the
``InputState`` the experiment polls every tick: ``8``/``2`` deflect the
joystick up/down and ``4``/``6`` act as the left/right triggers.  A key
counts as held for ``latch_s`` seconds after its most recent report.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import serial

from .ports import InputState
from .scheduler import Clock, MonotonicClock

logger = logging.getLogger(__name__)

KEY_UP = "8"
KEY_DOWN = "2"
KEY_LEFT_TRIGGER = "4"
KEY_RIGHT_TRIGGER = "6"
KEYPAD_KEYS = (KEY_UP, KEY_DOWN, KEY_LEFT_TRIGGER, KEY_RIGHT_TRIGGER)
DEFAULT_LATCH_S: float = 0.15


@dataclass
class SerialKeypad:
    """Non-blocking reader for a keypad that sends ASCII digits over serial."""

    port: str
    baudrate: int = 9600
    timeout_s: float = 0.0
    encoding: str = "ascii"

    def __post_init__(self) -> None:
        self._device = serial.Serial(
            port=self.port,
            baudrate=self.baudrate,
            timeout=self.timeout_s,
        )
        self._buffer = ""

    def close(self) -> None:
        """Close the underlying serial port."""

        try:
            self._device.close()
        except serial.SerialException as exc:
            logger.warning("Error closing serial keypad on %s: %s", self.port, exc)

    def read_keys(self, allowed_keys: Iterable[str]) -> List[str]:
        """Return every allowed key received since the last call, in order."""

        allowed = set(allowed_keys)
        self._buffer += self._read_all()
        keys = [char for char in self._buffer if char in allowed]
        self._buffer = ""
        return keys

    def _read_all(self) -> str:
        """Read and decode any bytes currently waiting on the serial buffer."""

        try:
            waiting = self._device.in_waiting
            if not waiting:
                return ""
            data = self._device.read(waiting)
        except serial.SerialException as exc:
            logger.warning("Serial keypad read failed on %s: %s", self.port, exc)
            return ""
        if not data:
            return ""
        return data.decode(self.encoding, errors="ignore")


@dataclass
class KeypadResponseInput:
    """Response input backed by a :class:`SerialKeypad`."""

    keypad: SerialKeypad
    clock: Clock = field(default_factory=MonotonicClock)
    latch_s: float = DEFAULT_LATCH_S
    _last_seen: Dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def _held(self, key: str, now: float) -> bool:
        seen: Optional[float] = self._last_seen.get(key)
        return seen is not None and now - seen <= self.latch_s

    def poll(self) -> InputState:
        now = self.clock.now()
        for key in self.keypad.read_keys(KEYPAD_KEYS):
            self._last_seen[key] = now

        vertical = 0.0
        if self._held(KEY_UP, now):
            vertical += 1.0
        if self._held(KEY_DOWN, now):
            vertical -= 1.0
        return InputState(
            left_trigger=1.0 if self._held(KEY_LEFT_TRIGGER, now) else 0.0,
            right_trigger=1.0 if self._held(KEY_RIGHT_TRIGGER, now) else 0.0,
            left_joystick=(0.0, vertical),
        )

    def close(self) -> None:
        self.keypad.close()


__all__ = [
    "KEY_UP",
    "KEY_DOWN",
    "KEY_LEFT_TRIGGER",
    "KEY_RIGHT_TRIGGER",
    "KEYPAD_KEYS",
    "DEFAULT_LATCH_S",
    "SerialKeypad",
    "KeypadResponseInput",
]
