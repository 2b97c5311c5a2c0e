"""Shared helpers for the module decoders: errors, decode log, byte readers
and effect translation tables."""

import struct
import logging
from typing import List, Tuple

from constants import (
    EFFECT_NONE, EFFECT_ARPEGGIO, EFFECT_PORTA_UP, EFFECT_PORTA_DOWN,
    EFFECT_TONE_PORTA, EFFECT_VIBRATO, EFFECT_TONE_PORTA_VOL,
    EFFECT_VIBRATO_VOL, EFFECT_TREMOLO, EFFECT_PANNING, EFFECT_OFFSET,
    EFFECT_VOLUME_SLIDE, EFFECT_POSITION_JUMP, EFFECT_VOLUME,
    EFFECT_PATTERN_BREAK, EFFECT_RETRIG, EFFECT_SPEED, EFFECT_TEMPO,
    EFFECT_TREMOR, EFFECT_MOD_EXTENDED, EFFECT_S3M_EXTENDED,
    EFFECT_CHANNEL_VOLUME, EFFECT_CHANNEL_VOLSLIDE, EFFECT_GLOBAL_VOLUME,
    EFFECT_GLOBAL_VOLSLIDE, EFFECT_KEYOFF, EFFECT_FINE_VIBRATO,
    EFFECT_PANBRELLO, EFFECT_XFINE_PORTA, EFFECT_PANNING_SLIDE,
    EFFECT_SET_ENV_POSITION, EFFECT_MIDI, MAX_PATTERN_CELLS,
)

logger = logging.getLogger("modhash.formats")


class DecodeError(Exception):
    """Input is not a recognisable or parseable module."""


# ============================================================================
# DECODE LOG
# ============================================================================

class DecodeLog:
    """Collects structured log messages while decoding one module."""

    def __init__(self):
        self.lines: List[str] = []
        self.warnings: int = 0
        self.errors: int = 0

    def info(self, msg: str):
        self.lines.append(msg)
        logger.debug(msg)

    def warn(self, msg: str):
        self.lines.append(f"WARNING: {msg}")
        self.warnings += 1
        logger.warning(msg)

    def error(self, msg: str):
        self.lines.append(f"ERROR: {msg}")
        self.errors += 1
        logger.debug(f"decode error: {msg}")

    def summary_line(self) -> str:
        parts = []
        if self.warnings:
            parts.append(f"{self.warnings} warning(s)")
        if self.errors:
            parts.append(f"{self.errors} error(s)")
        if not parts:
            return "Decode completed successfully."
        return "Decode completed with " + ", ".join(parts) + "."


# ============================================================================
# LIMITS
# ============================================================================

def check_count(what: str, count: int, limit: int) -> int:
    """Header count field, rejected when it exceeds ``limit``."""
    if count > limit:
        raise DecodeError(f"{what} count {count} exceeds limit of {limit}")
    return count


class CellBudget:
    """Caps the pattern cells stored while decoding one module."""

    def __init__(self, limit: int = MAX_PATTERN_CELLS):
        self.remaining = limit

    def spend(self, count: int = 1):
        self.remaining -= count
        if self.remaining < 0:
            raise DecodeError("pattern data exceeds the cell limit")


# ============================================================================
# BYTE READERS
# ============================================================================

def read_string(data: bytes, offset: int, length: int) -> str:
    """Fixed-size, NUL-padded latin-1 string with trailing blanks removed."""
    raw = data[offset:offset + length]
    nul = raw.find(b'\x00')
    if nul >= 0:
        raw = raw[:nul]
    return raw.decode('latin-1').rstrip()


def u16le(data: bytes, offset: int) -> int:
    return struct.unpack_from('<H', data, offset)[0]


def u32le(data: bytes, offset: int) -> int:
    return struct.unpack_from('<I', data, offset)[0]


def u16be(data: bytes, offset: int) -> int:
    return struct.unpack_from('>H', data, offset)[0]


def s8(value: int) -> int:
    return value - 256 if value >= 128 else value


def printable_ratio(text: str) -> float:
    if not text:
        return 1.0
    ok = sum(1 for ch in text if 32 <= ord(ch) < 127)
    return ok / len(text)


# ============================================================================
# EFFECT TRANSLATION
# ============================================================================

# ProTracker / FastTracker effect digit → neutral effect code
_PT_EFFECTS = {
    0x1: EFFECT_PORTA_UP, 0x2: EFFECT_PORTA_DOWN, 0x3: EFFECT_TONE_PORTA,
    0x4: EFFECT_VIBRATO, 0x5: EFFECT_TONE_PORTA_VOL, 0x6: EFFECT_VIBRATO_VOL,
    0x7: EFFECT_TREMOLO, 0x8: EFFECT_PANNING, 0x9: EFFECT_OFFSET,
    0xA: EFFECT_VOLUME_SLIDE, 0xB: EFFECT_POSITION_JUMP, 0xC: EFFECT_VOLUME,
    0xD: EFFECT_PATTERN_BREAK, 0xE: EFFECT_MOD_EXTENDED,
}

# FastTracker 2 letters beyond F (G=0x10 ...)
_XM_EFFECTS = {
    0x10: EFFECT_GLOBAL_VOLUME, 0x11: EFFECT_GLOBAL_VOLSLIDE,
    0x14: EFFECT_KEYOFF, 0x15: EFFECT_SET_ENV_POSITION,
    0x19: EFFECT_PANNING_SLIDE, 0x1B: EFFECT_RETRIG, 0x1D: EFFECT_TREMOR,
    0x21: EFFECT_XFINE_PORTA,
}

# Scream Tracker / Impulse Tracker letters, A=1 ... Z=26
_ST_EFFECTS = [
    EFFECT_NONE,
    EFFECT_SPEED,             # A
    EFFECT_POSITION_JUMP,     # B
    EFFECT_PATTERN_BREAK,     # C
    EFFECT_VOLUME_SLIDE,      # D
    EFFECT_PORTA_DOWN,        # E
    EFFECT_PORTA_UP,          # F
    EFFECT_TONE_PORTA,        # G
    EFFECT_VIBRATO,           # H
    EFFECT_TREMOR,            # I
    EFFECT_ARPEGGIO,          # J
    EFFECT_VIBRATO_VOL,       # K
    EFFECT_TONE_PORTA_VOL,    # L
    EFFECT_CHANNEL_VOLUME,    # M
    EFFECT_CHANNEL_VOLSLIDE,  # N
    EFFECT_OFFSET,            # O
    EFFECT_PANNING_SLIDE,     # P
    EFFECT_RETRIG,            # Q
    EFFECT_TREMOLO,           # R
    EFFECT_S3M_EXTENDED,      # S
    EFFECT_TEMPO,             # T
    EFFECT_FINE_VIBRATO,      # U
    EFFECT_GLOBAL_VOLUME,     # V
    EFFECT_GLOBAL_VOLSLIDE,   # W
    EFFECT_PANNING,           # X
    EFFECT_PANBRELLO,         # Y
    EFFECT_MIDI,              # Z
]


def translate_pt_effect(effect: int, param: int) -> Tuple[int, int]:
    """MOD/XM effect digit + parameter → (neutral effect, parameter)."""
    if effect == 0x0:
        return (EFFECT_ARPEGGIO, param) if param else (EFFECT_NONE, 0)
    if effect == 0xF:
        if param == 0:
            return EFFECT_NONE, 0
        return (EFFECT_SPEED, param) if param < 0x20 else (EFFECT_TEMPO, param)
    if effect in _PT_EFFECTS:
        return _PT_EFFECTS[effect], param
    if effect in _XM_EFFECTS:
        return _XM_EFFECTS[effect], param
    return EFFECT_NONE, 0


def translate_st_effect(letter: int, param: int) -> Tuple[int, int]:
    """S3M/IT effect letter index (A=1) + parameter → (neutral effect, parameter)."""
    if 1 <= letter < len(_ST_EFFECTS):
        return _ST_EFFECTS[letter], param
    return EFFECT_NONE, 0
