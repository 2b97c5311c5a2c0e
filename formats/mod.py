"""ProTracker .MOD decoder.

Handles the tagged 31-sample variants (M.K., M!K!, FLT4/8, xCHN, xxCH,
OCTA, CD81, TDZx) and the untagged 15-sample Soundtracker layout.  The
15-sample layout has no signature, so it is only accepted when the header
looks sane.
"""

import logging
from typing import Tuple

import numpy as np

from data_model import DecodedModule, Pattern, Cell, Sample
from constants import NOTE_NONE, DEFAULT_ROWS, DEFAULT_C5_SPEED, DEFAULT_PANNING
from formats.common import (DecodeError, DecodeLog, read_string, u16be,
                            printable_ratio, translate_pt_effect)

logger = logging.getLogger("modhash.formats.mod")

# ============================================================================
# MOD PERIOD → NOTE NUMBER TABLE
# ============================================================================
# ProTracker period table for finetune 0, octaves 0-4.  ProTracker C-1
# (period 856) is note 49 (C-4) in the neutral numbering.

PERIOD_TABLE = [
    # Octave 0
    1712, 1616, 1525, 1440, 1357, 1281, 1209, 1141, 1077, 1017, 961, 907,
    # Octave 1
    856, 808, 762, 720, 678, 640, 604, 570, 538, 508, 480, 453,
    # Octave 2
    428, 404, 381, 360, 339, 320, 302, 285, 269, 254, 240, 226,
    # Octave 3
    214, 202, 190, 180, 170, 160, 151, 143, 135, 127, 120, 113,
    # Octave 4
    107, 101, 95, 90, 85, 80, 76, 71, 67, 64, 60, 57,
]
NOTE_BASE = 37  # note value of PERIOD_TABLE[0]

_SIGNATURES = {
    b'M.K.': 4, b'M!K!': 4, b'M&K!': 4, b'N.T.': 4, b'FLT4': 4, b'4CHN': 4,
    b'6CHN': 6, b'8CHN': 8, b'FLT8': 8, b'OCTA': 8, b'OKTA': 8, b'CD81': 8,
    b'CD61': 6,
}

_HEADER_15 = 20 + 15 * 30 + 2 + 128   # 600
_HEADER_31 = 20 + 31 * 30 + 2 + 128 + 4  # 1084


def period_to_note(period: int) -> int:
    """Convert a MOD period to a neutral note value, or 0 if no note.

    Uses closest match against the five-octave table.
    """
    if period == 0:
        return NOTE_NONE
    best_idx = 0
    best_dist = abs(PERIOD_TABLE[0] - period)
    for i, p in enumerate(PERIOD_TABLE):
        dist = abs(p - period)
        if dist < best_dist:
            best_dist = dist
            best_idx = i
    return best_idx + NOTE_BASE


# ============================================================================
# FORMAT SIGNATURE DETECTION
# ============================================================================

def detect_signature(data: bytes) -> Tuple[int, int, str]:
    """Detect MOD layout.  Returns (num_channels, num_samples, sig_str).

    num_channels is 0 when no known signature is present.
    """
    if len(data) >= _HEADER_31:
        sig = data[1080:1084]
        if sig in _SIGNATURES:
            return _SIGNATURES[sig], 31, sig.decode('ascii')
        try:
            sig_str = sig.decode('ascii')
        except UnicodeDecodeError:
            sig_str = ""
        if sig_str[1:] == 'CHN' and sig_str[0].isdigit():
            return int(sig_str[0]), 31, sig_str
        if sig_str[2:] == 'CH' and sig_str[:2].isdigit():
            return int(sig_str[:2]), 31, sig_str
        if sig_str[:3] == 'TDZ' and sig_str[3:].isdigit():
            return int(sig_str[3]), 31, sig_str
    return 0, 15, ""


def looks_like_mod15(data: bytes) -> bool:
    """Heuristic check for the signature-less 15-sample layout."""
    if len(data) < _HEADER_15:
        return False
    song_length = data[20 + 15 * 30]
    if not 1 <= song_length <= 128:
        return False
    orders = data[20 + 15 * 30 + 2:_HEADER_15]
    if any(o >= 64 for o in orders):
        return False
    for i in range(15):
        off = 20 + i * 30
        if data[off + 25] > 64:
            return False
        name = read_string(data, off, 22)
        if printable_ratio(name) < 0.5:
            return False
    return printable_ratio(read_string(data, 0, 20)) >= 0.5


def probe(data: bytes) -> bool:
    channels, _, _ = detect_signature(data)
    return channels > 0 or looks_like_mod15(data)


# ============================================================================
# CORE PARSER
# ============================================================================

def decode_mod(data: bytes, log: DecodeLog, skip_samples: bool = False) -> DecodedModule:
    """Parse raw MOD bytes into a DecodedModule."""
    num_channels, num_samples, sig_str = detect_signature(data)
    if num_channels == 0:
        if not looks_like_mod15(data):
            raise DecodeError("no MOD signature and not a valid 15-sample module")
        num_channels, sig_str = 4, "(none, 15-sample)"
    if not 1 <= num_channels <= 32:
        raise DecodeError(f"unsupported MOD channel count: {num_channels}")
    log.info(f"Format: {num_channels} channels, {num_samples} samples, "
             f"signature: {sig_str}")

    mod = DecodedModule(format_id="mod", channels=num_channels)
    mod.format_name = f"ProTracker MOD ({sig_str})" if num_samples == 31 \
        else "Soundtracker MOD"
    mod.tracker = "ProTracker" if num_samples == 31 else "Soundtracker"
    mod.title = read_string(data, 0, 20)

    # --- Sample headers ---
    for i in range(num_samples):
        off = 20 + i * 30
        smp = Sample(name=read_string(data, off, 22))
        smp.length = u16be(data, off + 22) * 2
        finetune = data[off + 24] & 0x0F
        smp.finetune = (finetune - 16 if finetune >= 8 else finetune) * 16
        smp.volume = min(64, data[off + 25]) * 4
        rep_start = u16be(data, off + 26) * 2
        rep_len = u16be(data, off + 28) * 2
        if rep_len > 2:
            smp.loop_start = rep_start
            smp.loop_end = rep_start + rep_len
        smp.c5_speed = DEFAULT_C5_SPEED
        smp.panning = DEFAULT_PANNING
        mod.samples.append(smp)

    # --- Song arrangement ---
    header_end = 20 + num_samples * 30
    song_length = data[header_end]
    pattern_order = list(data[header_end + 2:header_end + 2 + 128])
    if song_length == 0 or song_length > 128:
        raise DecodeError(f"invalid song length: {song_length}")

    # Only the played part of the order table counts; entries beyond
    # song_length may hold garbage that inflates the pattern count.
    valid_order = pattern_order[:song_length]
    num_patterns = max(valid_order) + 1
    mod.sequences = [valid_order]
    log.info(f"Song length: {song_length} positions, {num_patterns} patterns")

    # --- Pattern data ---
    pat_data_offset = _HEADER_31 if num_samples == 31 else _HEADER_15
    bytes_per_pattern = num_channels * 4 * DEFAULT_ROWS
    for pat_idx in range(num_patterns):
        pat_start = pat_data_offset + pat_idx * bytes_per_pattern
        raw = data[pat_start:pat_start + bytes_per_pattern]
        if len(raw) < bytes_per_pattern:
            log.warn(f"Pattern {pat_idx} truncated, padding with silence")
            raw = raw + b'\x00' * (bytes_per_pattern - len(raw))
        mod.patterns.append(_decode_pattern(raw, num_channels))

    # --- Sample data ---
    offset = pat_data_offset + num_patterns * bytes_per_pattern
    for smp in mod.samples:
        length = smp.length
        if length <= 0:
            continue
        raw = data[offset:offset + length]
        offset += length
        if len(raw) < length:
            log.warn(f"Sample \"{smp.name}\" data truncated: "
                     f"expected {length}, got {len(raw)} bytes")
            smp.length = len(raw)
        if not skip_samples and raw:
            smp.data = np.frombuffer(raw, dtype=np.int8).copy()

    return mod


def _decode_pattern(raw: bytes, num_channels: int) -> Pattern:
    rows = []
    for row_idx in range(DEFAULT_ROWS):
        cells = []
        for ch in range(num_channels):
            off = (row_idx * num_channels + ch) * 4
            b = raw[off:off + 4]
            period = ((b[0] & 0x0F) << 8) | b[1]
            effect, param = translate_pt_effect(b[2] & 0x0F, b[3])
            cells.append(Cell(
                note=period_to_note(period),
                instrument=(b[0] & 0xF0) | (b[2] >> 4),
                effect=effect, param=param,
            ))
        rows.append(cells)
    return Pattern(rows)

