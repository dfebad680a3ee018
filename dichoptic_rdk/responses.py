"""Participant responses: the four-option direction/confidence choice and
paged instruction screens."""
from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence

from .conditions import MotionDirection
from .ports import InputState

logger = logging.getLogger(__name__)


class ResponseOption(NamedTuple):
    direction: MotionDirection
    confidence: str
    label: str


# Display order, top to bottom.
RESPONSE_OPTIONS: Sequence[ResponseOption] = (
    ResponseOption(MotionDirection.UP, "very_confident", "Up\nVery Confident"),
    ResponseOption(MotionDirection.UP, "somewhat_confident", "Up\nSomewhat Confident"),
    ResponseOption(MotionDirection.DOWN, "somewhat_confident", "Down\nSomewhat Confident"),
    ResponseOption(MotionDirection.DOWN, "very_confident", "Down\nVery Confident"),
)

JOYSTICK_DEADZONE: float = 0.5


class ResponseSelector:
    """Joystick selection plus a timed trigger hold to confirm.

    Pushing the joystick up or down moves the selection one option per
    deflection (the stick must return to centre in between).  The first
    deflection selects the option nearest the middle on that side.  Holding
    either trigger for ``hold_duration`` seconds confirms the selected option;
    releasing early resets the hold.  A trigger already held when the choice
    appears is ignored until it is released.
    """

    def __init__(
        self,
        hold_duration: float,
        options: Sequence[ResponseOption] = RESPONSE_OPTIONS,
        trigger_threshold: float = 0.8,
    ) -> None:
        self.hold_duration = hold_duration
        self.options = tuple(options)
        self.trigger_threshold = trigger_threshold
        self.index: Optional[int] = None
        self.hold_elapsed = 0.0
        self._stick_centred = False
        self._armed = False

    @property
    def progress(self) -> float:
        if self.hold_duration <= 0:
            return 1.0 if self.hold_elapsed > 0 else 0.0
        return min(self.hold_elapsed / self.hold_duration, 1.0)

    def _move(self, vertical: float) -> None:
        middle = (len(self.options) - 1) / 2.0
        if self.index is None:
            # Up selects the upper middle option, down the lower middle one.
            self.index = int(middle) if vertical > 0 else int(middle) + 1
        elif vertical > 0:
            self.index = max(0, self.index - 1)
        else:
            self.index = min(len(self.options) - 1, self.index + 1)
        self.hold_elapsed = 0.0

    def update(self, inputs: InputState, delta: float) -> Optional[ResponseOption]:
        """Feed one tick of input; return the confirmed option, if any."""

        vertical = inputs.vertical()
        if abs(vertical) < JOYSTICK_DEADZONE:
            self._stick_centred = True
        elif self._stick_centred:
            self._stick_centred = False
            self._move(vertical)

        held = inputs.any_trigger(self.trigger_threshold)
        if not held:
            self._armed = True
            self.hold_elapsed = 0.0
            return None
        if not self._armed or self.index is None:
            return None

        self.hold_elapsed += delta
        if self.hold_elapsed >= self.hold_duration:
            return self.options[self.index]
        return None


class InstructionPager:
    """Forward-only paging through instruction text."""

    def __init__(self, pages: Sequence[str] = ()) -> None:
        self._pages: List[str] = list(pages)
        self._active = 0

    @property
    def pages(self) -> List[str]:
        return list(self._pages)

    @property
    def active_page(self) -> int:
        return self._active

    @property
    def text(self) -> str:
        return self._pages[self._active] if self._pages else ""

    def set_pages(self, pages: Sequence[str]) -> None:
        self._pages = list(pages)
        self._active = 0

    def set_page(self, index: int) -> bool:
        if not 0 <= index < len(self._pages):
            logger.warning("Invalid page index %d (have %d pages)", index, len(self._pages))
            return False
        self._active = index
        return True

    def has_next_page(self) -> bool:
        return self._active + 1 < len(self._pages)

    def next_page(self) -> bool:
        if self.has_next_page():
            return self.set_page(self._active + 1)
        return False

    def has_previous_page(self) -> bool:
        # Back navigation is not offered to participants.
        return False


__all__ = [
    "ResponseOption",
    "RESPONSE_OPTIONS",
    "JOYSTICK_DEADZONE",
    "ResponseSelector",
    "InstructionPager",
]
