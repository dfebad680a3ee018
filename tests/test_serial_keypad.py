import serial

from dichoptic_rdk.scheduler import ManualClock
from dichoptic_rdk.serial_keypad import KeypadResponseInput, SerialKeypad


class FakeSerial:
    def __init__(self, port, baudrate, timeout):
        self.port = port
        self.pending = b""
        self.closed = False

    @property
    def in_waiting(self):
        return len(self.pending)

    def read(self, size):
        data, self.pending = self.pending[:size], self.pending[size:]
        return data

    def close(self):
        self.closed = True


def _keypad(monkeypatch):
    monkeypatch.setattr(serial, "Serial", FakeSerial)
    return SerialKeypad(port="COM1")


def test_read_keys_filters_unknown_characters(monkeypatch):
    keypad = _keypad(monkeypatch)
    keypad._device.pending = b"8x4\r\n"

    assert keypad.read_keys("2468") == ["8", "4"]
    assert keypad.read_keys("2468") == []


def test_keys_are_latched_into_held_controls(monkeypatch):
    keypad = _keypad(monkeypatch)
    clock = ManualClock()
    response_input = KeypadResponseInput(keypad, clock=clock, latch_s=0.15)

    keypad._device.pending = b"26"
    state = response_input.poll()
    assert state.vertical() == -1.0
    assert state.right_held()
    assert not state.left_held()

    clock.advance(0.1)
    assert response_input.poll().right_held()

    clock.advance(0.1)
    state = response_input.poll()
    assert not state.any_trigger()
    assert state.vertical() == 0.0


def test_close_closes_the_port(monkeypatch):
    keypad = _keypad(monkeypatch)
    KeypadResponseInput(keypad).close()

    assert keypad._device.closed
