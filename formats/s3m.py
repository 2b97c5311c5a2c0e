"""Scream Tracker 3 .S3M decoder."""

import logging
from typing import Dict

import numpy as np

from data_model import DecodedModule, Pattern, Cell, Sample
from constants import (NOTE_NONE, NOTE_CUT, DEFAULT_ROWS, DEFAULT_C5_SPEED,
                       DEFAULT_PANNING, MAX_ORDERS, MAX_PATTERNS, MAX_SAMPLES)
from formats.common import (DecodeError, DecodeLog, CellBudget, check_count,
                            read_string, u16le, u32le, translate_st_effect)

logger = logging.getLogger("modhash.formats.s3m")

_HEADER_SIZE = 0x60
_MAX_CHANNELS = 32

_TRACKERS = {
    1: "Scream Tracker", 2: "Imago Orpheus", 3: "Impulse Tracker",
    4: "Schism Tracker", 5: "OpenMPT", 6: "BeRoTracker", 7: "CreamTracker",
}


def probe(data: bytes) -> bool:
    return len(data) >= _HEADER_SIZE and data[0x2C:0x30] == b'SCRM'


def _tracker_name(cwtv: int) -> str:
    name = _TRACKERS.get(cwtv >> 12, "Unknown")
    return f"{name} {(cwtv >> 8) & 0x0F}.{cwtv & 0xFF:02X}"


def decode_note(raw: int) -> int:
    """S3M note byte (high nibble octave, low nibble semitone) → neutral note."""
    if raw == 0xFF:
        return NOTE_NONE
    if raw == 0xFE:
        return NOTE_CUT
    octave, semi = raw >> 4, raw & 0x0F
    if semi > 11 or octave > 9:
        return NOTE_NONE
    return octave * 12 + semi + 13


def decode_s3m(data: bytes, log: DecodeLog, skip_samples: bool = False) -> DecodedModule:
    if not probe(data):
        raise DecodeError("missing SCRM signature")
    if data[0x1D] != 16:
        raise DecodeError(f"unexpected S3M file type {data[0x1D]}")

    ordnum = check_count("order", u16le(data, 0x20), MAX_ORDERS)
    insnum = check_count("sample", u16le(data, 0x22), MAX_SAMPLES)
    patnum = check_count("pattern", u16le(data, 0x24), MAX_PATTERNS)
    cwtv = u16le(data, 0x28)
    ffi = u16le(data, 0x2A)  # 1 = signed samples, 2 = unsigned

    mod = DecodedModule(format_id="s3m", format_name="Scream Tracker 3")
    mod.title = read_string(data, 0, 28)
    mod.tracker = _tracker_name(cwtv)

    # Channel settings: < 0x80 enabled; the count runs to the last enabled one
    enabled = [ch for ch in range(_MAX_CHANNELS) if data[0x40 + ch] < 0x80]
    channels = max(enabled) + 1 if enabled else 0
    if channels == 0:
        raise DecodeError("S3M has no enabled channels")
    mod.channels = channels
    log.info(f"S3M: {ordnum} orders, {insnum} samples, {patnum} patterns, "
             f"{channels} channels")

    orders = list(data[_HEADER_SIZE:_HEADER_SIZE + ordnum])
    if len(orders) < ordnum:
        raise DecodeError("S3M order list truncated")
    mod.sequences = [orders]

    base = _HEADER_SIZE + ordnum
    sample_ptrs = [u16le(data, base + i * 2) * 16 for i in range(insnum)]
    base += insnum * 2
    pattern_ptrs = [u16le(data, base + i * 2) * 16 for i in range(patnum)]

    for idx, ptr in enumerate(sample_ptrs):
        mod.samples.append(_decode_sample(data, ptr, idx, ffi, log, skip_samples))

    blank = Pattern.blank(DEFAULT_ROWS)
    by_ptr: Dict[int, Pattern] = {}
    budget = CellBudget()
    for idx, ptr in enumerate(pattern_ptrs):
        if ptr == 0:
            mod.patterns.append(blank)
            continue
        if ptr not in by_ptr:
            by_ptr[ptr] = _decode_pattern(data, ptr, channels, idx, budget, log)
        mod.patterns.append(by_ptr[ptr])

    return mod


def _decode_sample(data: bytes, ptr: int, idx: int, ffi: int,
                   log: DecodeLog, skip_samples: bool) -> Sample:
    smp = Sample(panning=DEFAULT_PANNING)
    if ptr == 0 or ptr + 0x50 > len(data):
        if ptr:
            log.warn(f"Sample {idx + 1} header out of range")
        return smp
    smp.filename = read_string(data, ptr + 1, 12)
    smp.name = read_string(data, ptr + 0x30, 28)
    if data[ptr] != 1:
        # Empty slot or AdLib instrument: name only
        return smp

    mem_seg = (data[ptr + 0x0D] << 16) | u16le(data, ptr + 0x0E)
    length = u32le(data, ptr + 0x10)
    loop_start = u32le(data, ptr + 0x14)
    loop_end = u32le(data, ptr + 0x18)
    flags = data[ptr + 0x1F]
    smp.volume = min(64, data[ptr + 0x1C]) * 4
    smp.stereo = bool(flags & 2)
    smp.bits = 16 if flags & 4 else 8
    smp.length = length
    if flags & 1 and loop_end > loop_start:
        smp.loop_start, smp.loop_end = loop_start, loop_end
    smp.c5_speed = u32le(data, ptr + 0x20) & 0xFFFF or DEFAULT_C5_SPEED

    if skip_samples or length == 0:
        return smp
    offset = mem_seg * 16
    width = smp.bits // 8
    channels = 2 if smp.stereo else 1
    raw = data[offset:offset + length * width * channels]
    if len(raw) < length * width * channels:
        log.warn(f"Sample {idx + 1} \"{smp.name}\" data truncated")
        return smp
    if smp.bits == 16:
        arr = np.frombuffer(raw, dtype='<u2' if ffi == 2 else '<i2')
        if ffi == 2:
            arr = (arr.astype(np.int32) - 32768).astype(np.int16)
        else:
            arr = arr.astype(np.int16)
    else:
        arr = np.frombuffer(raw, dtype=np.uint8 if ffi == 2 else np.int8)
        if ffi == 2:
            arr = (arr.astype(np.int16) - 128).astype(np.int8)
        else:
            arr = arr.copy()
    if smp.stereo:
        # S3M stores the left channel block followed by the right one
        arr = np.stack([arr[:length], arr[length:]], axis=1)
    smp.data = arr
    return smp


def _decode_pattern(data: bytes, ptr: int, channels: int, idx: int,
                    budget: CellBudget, log: DecodeLog) -> Pattern:
    pattern = Pattern.blank(DEFAULT_ROWS)
    if ptr + 2 > len(data):
        log.warn(f"Pattern {idx} out of range")
        return pattern
    packed_len = u16le(data, ptr)
    off = ptr + 2
    end = min(len(data), ptr + 2 + packed_len) if packed_len else len(data)
    row = 0
    while row < DEFAULT_ROWS and off < end:
        what = data[off]
        off += 1
        if what == 0:
            row += 1
            continue
        ch = what & 0x1F
        note = NOTE_NONE
        instrument = volume = effect = param = 0
        if what & 0x20:
            note = decode_note(data[off])
            instrument = data[off + 1]
            off += 2
        if what & 0x40:
            volume = data[off]
            off += 1
        if what & 0x80:
            effect, param = translate_st_effect(data[off], data[off + 1])
            off += 2
        if ch < channels:
            budget.spend()
            pattern.set_cell(row, ch, Cell(note, instrument, volume, effect, param))
    return pattern
