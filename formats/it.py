"""Impulse Tracker .IT decoder.

Sample payloads compressed with the IT 2.14 scheme are not unpacked; their
headers are still read so metadata stays complete.
"""

import logging
from typing import Dict, List

import numpy as np

from data_model import DecodedModule, Pattern, Cell, Sample, Instrument
from constants import (NOTE_NONE, NOTE_MIN, NOTE_CUT, NOTE_KEYOFF, NOTE_FADE,
                       DEFAULT_ROWS, DEFAULT_C5_SPEED, DEFAULT_PANNING, MAX_ROWS,
                       MAX_CHANNELS, MAX_ORDERS, MAX_PATTERNS, MAX_SAMPLES,
                       MAX_INSTRUMENTS)
from formats.common import (DecodeError, DecodeLog, CellBudget, check_count,
                            read_string, u16le, u32le, translate_st_effect)

logger = logging.getLogger("modhash.formats.it")

_HEADER_SIZE = 0xC0

# IMPS flag bits
_SMP_HAS_DATA = 0x01
_SMP_16BIT = 0x02
_SMP_STEREO = 0x04
_SMP_COMPRESSED = 0x08
_SMP_LOOP = 0x10

_TRACKERS = {0: "Impulse Tracker", 1: "Schism Tracker", 5: "OpenMPT",
             6: "BeRoTracker", 8: "Tralala"}


def probe(data: bytes) -> bool:
    return len(data) >= _HEADER_SIZE and data[:4] == b'IMPM'


def decode_note(raw: int) -> int:
    if raw < 120:
        return raw + NOTE_MIN
    if raw == 255:
        return NOTE_KEYOFF
    if raw == 254:
        return NOTE_CUT
    return NOTE_FADE


def _tracker_name(cwtv: int) -> str:
    name = _TRACKERS.get(cwtv >> 12, "Unknown")
    return f"{name} {(cwtv >> 8) & 0x0F}.{cwtv & 0xFF:02X}"


def decode_it(data: bytes, log: DecodeLog, skip_samples: bool = False) -> DecodedModule:
    if not probe(data):
        raise DecodeError("missing IMPM signature")

    ordnum = check_count("order", u16le(data, 0x20), MAX_ORDERS)
    insnum = check_count("instrument", u16le(data, 0x22), MAX_INSTRUMENTS)
    smpnum = check_count("sample", u16le(data, 0x24), MAX_SAMPLES)
    patnum = check_count("pattern", u16le(data, 0x26), MAX_PATTERNS)
    cwtv = u16le(data, 0x28)
    special = u16le(data, 0x2E)

    mod = DecodedModule(format_id="it", format_name="Impulse Tracker")
    mod.title = read_string(data, 4, 26)
    mod.tracker = _tracker_name(cwtv)
    log.info(f"IT: {ordnum} orders, {insnum} instruments, {smpnum} samples, "
             f"{patnum} patterns")

    orders = list(data[_HEADER_SIZE:_HEADER_SIZE + ordnum])
    if len(orders) < ordnum:
        raise DecodeError("IT order list truncated")
    mod.sequences = [orders]

    if special & 1:
        msg_len = u16le(data, 0x36)
        msg_off = u32le(data, 0x38)
        raw = data[msg_off:msg_off + msg_len]
        text = raw.split(b'\x00', 1)[0].decode('latin-1')
        mod.message = text.replace('\r\n', '\n').replace('\r', '\n')

    base = _HEADER_SIZE + ordnum
    ins_ptrs = [u32le(data, base + i * 4) for i in range(insnum)]
    base += insnum * 4
    smp_ptrs = [u32le(data, base + i * 4) for i in range(smpnum)]
    base += smpnum * 4
    pat_ptrs = [u32le(data, base + i * 4) for i in range(patnum)]

    for ptr in ins_ptrs:
        ins = Instrument()
        if ptr and ptr + 0x3A <= len(data) and data[ptr:ptr + 4] == b'IMPI':
            ins.filename = read_string(data, ptr + 4, 12)
            ins.name = read_string(data, ptr + 0x20, 26)
        mod.instruments.append(ins)

    for idx, ptr in enumerate(smp_ptrs):
        mod.samples.append(_decode_sample(data, ptr, idx, log, skip_samples))

    # Null pointers share one blank pattern; repeated pointers share one decode
    blank = Pattern.blank(DEFAULT_ROWS)
    by_ptr: Dict[int, Pattern] = {}
    budget = CellBudget()
    used_channels = set()
    for idx, ptr in enumerate(pat_ptrs):
        if ptr == 0:
            mod.patterns.append(blank)
            continue
        if ptr not in by_ptr:
            by_ptr[ptr] = _decode_pattern(data, ptr, idx, used_channels, budget, log)
        mod.patterns.append(by_ptr[ptr])

    if used_channels:
        mod.channels = max(used_channels) + 1
    else:
        enabled = [ch for ch in range(MAX_CHANNELS) if data[0x40 + ch] < 0x80]
        mod.channels = max(enabled) + 1 if enabled else 1
    return mod


def _decode_sample(data: bytes, ptr: int, idx: int, log: DecodeLog,
                   skip_samples: bool) -> Sample:
    smp = Sample()
    if not ptr or ptr + 0x50 > len(data) or data[ptr:ptr + 4] != b'IMPS':
        if ptr:
            log.warn(f"Sample {idx + 1} header missing or invalid")
        return smp
    smp.filename = read_string(data, ptr + 4, 12)
    smp.global_volume = min(64, data[ptr + 0x11])
    flags = data[ptr + 0x12]
    smp.volume = min(64, data[ptr + 0x13]) * 4
    smp.name = read_string(data, ptr + 0x14, 26)
    cvt = data[ptr + 0x2E]
    dfp = data[ptr + 0x2F]
    smp.panning = min(64, dfp & 0x7F) * 4
    smp.has_panning = bool(dfp & 0x80)
    if not smp.has_panning:
        smp.panning = DEFAULT_PANNING
    smp.length = u32le(data, ptr + 0x30)
    loop_start = u32le(data, ptr + 0x34)
    loop_end = u32le(data, ptr + 0x38)
    smp.c5_speed = u32le(data, ptr + 0x3C) or DEFAULT_C5_SPEED
    data_ptr = u32le(data, ptr + 0x48)
    smp.vib_rate = data[ptr + 0x4C]
    smp.vib_depth = data[ptr + 0x4D] & 0x7F
    smp.vib_sweep = data[ptr + 0x4E]
    smp.vib_type = data[ptr + 0x4F]
    smp.bits = 16 if flags & _SMP_16BIT else 8
    smp.stereo = bool(flags & _SMP_STEREO)
    if flags & _SMP_LOOP and loop_end > loop_start:
        smp.loop_start, smp.loop_end = loop_start, loop_end

    if not flags & _SMP_HAS_DATA:
        smp.length = 0
        return smp
    if skip_samples or smp.length == 0:
        return smp
    if flags & _SMP_COMPRESSED:
        log.warn(f"Sample {idx + 1} \"{smp.name}\" is compressed, payload not decoded")
        return smp

    nbytes = smp.length_bytes
    raw = data[data_ptr:data_ptr + nbytes]
    if len(raw) < nbytes:
        log.warn(f"Sample {idx + 1} \"{smp.name}\" data truncated")
        return smp
    smp.data = _convert_pcm(raw, smp.bits, smp.stereo, smp.length,
                            signed=bool(cvt & 1), delta=bool(cvt & 4))
    return smp


def _convert_pcm(raw: bytes, bits: int, stereo: bool, frames: int,
                 signed: bool, delta: bool) -> np.ndarray:
    if bits == 16:
        arr = np.frombuffer(raw, dtype='<i2' if signed else '<u2').astype(np.int64)
        offset, span, out_type = 32768, 65536, np.int16
    else:
        arr = np.frombuffer(raw, dtype=np.int8 if signed else np.uint8).astype(np.int64)
        offset, span, out_type = 128, 256, np.int8
    if not signed:
        arr = arr - offset
    blocks = [arr[:frames], arr[frames:2 * frames]] if stereo else [arr]
    out = []
    for block in blocks:
        if delta:
            block = (np.cumsum(block) + offset) % span - offset
        out.append(block.astype(out_type))
    return np.stack(out, axis=1) if stereo else out[0]


def _decode_pattern(data: bytes, ptr: int, idx: int, used_channels: set,
                    budget: CellBudget, log: DecodeLog) -> Pattern:
    if ptr + 8 > len(data):
        log.warn(f"Pattern {idx} out of range")
        return Pattern.blank(DEFAULT_ROWS)
    packed_len = u16le(data, ptr)
    num_rows = u16le(data, ptr + 2)
    if not 1 <= num_rows <= MAX_ROWS:
        log.warn(f"Pattern {idx} has {num_rows} rows, using {DEFAULT_ROWS}")
        num_rows = DEFAULT_ROWS
    pattern = Pattern.blank(num_rows)
    raw = data[ptr + 8:ptr + 8 + packed_len]

    last_mask: List[int] = [0] * MAX_CHANNELS
    last_note = [NOTE_NONE] * MAX_CHANNELS
    last_ins = [0] * MAX_CHANNELS
    last_vol = [0] * MAX_CHANNELS
    last_eff = [(0, 0)] * MAX_CHANNELS

    pos = 0
    row = 0
    while row < num_rows and pos < len(raw):
        var = raw[pos]
        pos += 1
        if var == 0:
            row += 1
            continue
        ch = (var - 1) & 0x3F
        if var & 0x80:
            last_mask[ch] = raw[pos]
            pos += 1
        mask = last_mask[ch]
        cell = Cell()
        if mask & 0x01:
            last_note[ch] = decode_note(raw[pos])
            pos += 1
        if mask & 0x02:
            last_ins[ch] = raw[pos]
            pos += 1
        if mask & 0x04:
            last_vol[ch] = raw[pos]
            pos += 1
        if mask & 0x08:
            last_eff[ch] = translate_st_effect(raw[pos], raw[pos + 1])
            pos += 2
        if mask & 0x11:
            cell.note = last_note[ch]
        if mask & 0x22:
            cell.instrument = last_ins[ch]
        if mask & 0x44:
            cell.volume = last_vol[ch]
        if mask & 0x88:
            cell.effect, cell.param = last_eff[ch]
        budget.spend()
        pattern.set_cell(row, ch, cell)
        used_channels.add(ch)
    return pattern
