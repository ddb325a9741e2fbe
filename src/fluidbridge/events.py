"""Performance events and their translation into native synth calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

from .arena import scoped
from .diagnostics import log_event
from .errors import FluidSynthError
from .handles import NativeHandleSet
from .native_runtime import FLUID_OK

NOTE_OFF = 0x80
NOTE_ON = 0x90
CONTROL_CHANGE = 0xB0
PROGRAM_CHANGE = 0xC0
SYSEX_START = 0xF0
SYSEX_END = 0xF7
SYSTEM_RESET = 0xFF


@dataclass(frozen=True, slots=True)
class NoteOn:
    channel: int
    key: int
    velocity: int


@dataclass(frozen=True, slots=True)
class NoteOff:
    channel: int
    key: int
    velocity: int = 0


@dataclass(frozen=True, slots=True)
class ProgramChange:
    channel: int
    program: int


@dataclass(frozen=True, slots=True)
class ControlChange:
    channel: int
    controller: int
    value: int


@dataclass(frozen=True, slots=True)
class SystemReset:
    pass


@dataclass(frozen=True, slots=True)
class SysEx:
    """A system-exclusive message, with or without its 0xF0/0xF7 framing."""

    data: bytes


@dataclass(frozen=True, slots=True)
class OtherMessage:
    """Any message without a native counterpart; translated to nothing."""

    status: int
    data: bytes = b""


Event = Union[NoteOn, NoteOff, ProgramChange, ControlChange, SystemReset, SysEx, OtherMessage]


def _require(data: Sequence[int], length: int) -> None:
    if len(data) < length:
        raise ValueError(f"MIDI status 0x{data[0]:02X} needs {length} bytes, got {len(data)}")


def decode_message(data: bytes | Sequence[int]) -> Event:
    """Decode one raw MIDI message into an :data:`Event`."""

    raw = bytes(data)
    if not raw:
        raise ValueError("empty MIDI message")
    status = raw[0]
    if status < 0x80:
        raise ValueError(f"invalid MIDI status byte 0x{status:02X}")
    if status == SYSEX_START:
        return SysEx(raw)
    if status == SYSTEM_RESET:
        return SystemReset()
    if status > SYSEX_START:
        return OtherMessage(status, raw[1:])

    command = status & 0xF0
    channel = status & 0x0F
    if command == NOTE_ON:
        _require(raw, 3)
        return NoteOn(channel, raw[1], raw[2])
    if command == NOTE_OFF:
        _require(raw, 3)
        return NoteOff(channel, raw[1], raw[2])
    if command == CONTROL_CHANGE:
        _require(raw, 3)
        return ControlChange(channel, raw[1], raw[2])
    if command == PROGRAM_CHANGE:
        _require(raw, 2)
        return ProgramChange(channel, raw[1])
    return OtherMessage(status, raw[1:])


def sysex_payload(data: bytes) -> bytes:
    """Strip the 0xF0 start byte and 0xF7 end byte FluidSynth does not expect."""

    payload = bytes(data)
    if payload[:1] == bytes((SYSEX_START,)):
        payload = payload[1:]
    if payload[-1:] == bytes((SYSEX_END,)):
        payload = payload[:-1]
    return payload


class EventTranslator:
    """Stateless mapping of :data:`Event` values onto the synth handle."""

    def __init__(self, handles: NativeHandleSet) -> None:
        self._handles = handles
        self.ffi = handles.ffi
        self.lib = handles.lib
        self._dispatch = {
            NoteOn: self._note_on,
            NoteOff: self._note_off,
            ProgramChange: self._program_change,
            ControlChange: self._control_change,
            SystemReset: self._system_reset,
            SysEx: self._sysex,
            OtherMessage: self._ignore,
        }

    def _synth(self):
        if not self._handles.is_open:
            raise FluidSynthError("native synth is not available: session is closed")
        return self._handles.synth

    def translate(self, event: Event) -> bool:
        """Issue the native call(s) for ``event``.

        Returns whether a native call was issued; for system-exclusive
        messages, whether FluidSynth reported the message as handled.
        """

        try:
            handler = self._dispatch[type(event)]
        except KeyError:
            raise TypeError(f"unsupported event type: {type(event).__name__}") from None
        return handler(event)

    def _note_on(self, event: NoteOn) -> bool:
        synth = self._synth()
        if event.velocity > 0:
            self.lib.fluid_synth_noteon(synth, event.channel, event.key, event.velocity)
        else:
            self.lib.fluid_synth_noteoff(synth, event.channel, event.key)
        return True

    def _note_off(self, event: NoteOff) -> bool:
        self.lib.fluid_synth_noteoff(self._synth(), event.channel, event.key)
        return True

    def _program_change(self, event: ProgramChange) -> bool:
        self.lib.fluid_synth_program_change(self._synth(), event.channel, event.program)
        return True

    def _control_change(self, event: ControlChange) -> bool:
        self.lib.fluid_synth_cc(self._synth(), event.channel, event.controller, event.value)
        return True

    def _system_reset(self, event: SystemReset) -> bool:
        self.lib.fluid_synth_system_reset(self._synth())
        return True

    def _sysex(self, event: SysEx) -> bool:
        synth = self._synth()
        payload = sysex_payload(event.data)
        if not payload:
            return False
        with scoped(self.ffi) as arena:
            data = arena.byte_array(payload)
            handled = arena.int_out()
            rc = self.lib.fluid_synth_sysex(
                synth,
                data,
                len(payload),
                self.ffi.NULL,
                self.ffi.NULL,
                handled,
                0,
            )
            was_handled = bool(handled[0])
        if int(rc) != FLUID_OK:
            log_event("events", f"fluid_synth_sysex failed rc={int(rc)} len={len(payload)}")
        return was_handled

    def _ignore(self, event: OtherMessage) -> bool:
        return False


__all__ = [
    "ControlChange",
    "Event",
    "EventTranslator",
    "NoteOff",
    "NoteOn",
    "OtherMessage",
    "ProgramChange",
    "SysEx",
    "SystemReset",
    "decode_message",
    "sysex_payload",
]
