"""FastTracker 2 .XM decoder."""

import logging
from typing import List, Tuple

import numpy as np

from data_model import DecodedModule, Pattern, Cell, Sample, Instrument
from constants import (NOTE_NONE, NOTE_KEYOFF, DEFAULT_ROWS, DEFAULT_C5_SPEED,
                       MAX_CHANNELS, MAX_ORDERS, MAX_PATTERNS, MAX_INSTRUMENTS)
from formats.common import (DecodeError, DecodeLog, CellBudget, check_count,
                            read_string, u16le, u32le, s8, translate_pt_effect)

logger = logging.getLogger("modhash.formats.xm")

_MAGIC = b'Extended Module: '
_SAMPLE_HEADER_SIZE = 40


def probe(data: bytes) -> bool:
    return len(data) >= 80 and data[:17] == _MAGIC


def decode_note(raw: int) -> int:
    if 1 <= raw <= 96:
        return raw + 12
    if raw == 97:
        return NOTE_KEYOFF
    return NOTE_NONE


def decode_xm(data: bytes, log: DecodeLog, skip_samples: bool = False) -> DecodedModule:
    if not probe(data):
        raise DecodeError("missing 'Extended Module: ' signature")

    header_size = u32le(data, 60)
    song_length = check_count("order", u16le(data, 64), MAX_ORDERS)
    channels = u16le(data, 68)
    num_patterns = check_count("pattern", u16le(data, 70), MAX_PATTERNS)
    num_instruments = check_count("instrument", u16le(data, 72), MAX_INSTRUMENTS)
    if not 1 <= channels <= MAX_CHANNELS:
        raise DecodeError(f"unsupported XM channel count: {channels}")

    mod = DecodedModule(format_id="xm", format_name="FastTracker 2",
                        channels=channels)
    mod.title = read_string(data, 17, 20)
    mod.tracker = read_string(data, 38, 20)
    mod.sequences = [list(data[80:80 + song_length])]
    log.info(f"XM: {song_length} orders, {num_patterns} patterns, "
             f"{num_instruments} instruments, {channels} channels")

    off = 60 + header_size
    budget = CellBudget()
    for pat_idx in range(num_patterns):
        pattern, off = _decode_pattern(data, off, channels, pat_idx, budget, log)
        mod.patterns.append(pattern)

    for ins_idx in range(num_instruments):
        if off + 29 > len(data):
            log.warn(f"Instrument {ins_idx + 1} header truncated, stopping")
            break
        off = _decode_instrument(data, off, mod, ins_idx, log, skip_samples)

    return mod


def _decode_pattern(data: bytes, off: int, channels: int, idx: int,
                    budget: CellBudget, log: DecodeLog):
    header_len = u32le(data, off)
    num_rows = u16le(data, off + 5)
    packed_size = u16le(data, off + 7)
    start = off + max(header_len, 9)
    end = start + packed_size
    if num_rows == 0 or num_rows > 256:
        log.warn(f"Pattern {idx} has {num_rows} rows, using {DEFAULT_ROWS}")
        num_rows = DEFAULT_ROWS
    pattern = Pattern.blank(num_rows)
    if packed_size == 0:
        return pattern, end
    raw = data[start:end]
    if len(raw) < packed_size:
        log.warn(f"Pattern {idx} truncated")
    pos = 0
    for row in range(num_rows):
        for ch in range(channels):
            if pos >= len(raw):
                return pattern, end
            b = raw[pos]
            pos += 1
            note = instrument = volume = effect = param = 0
            if b & 0x80:
                if b & 0x01:
                    note = raw[pos]
                    pos += 1
                if b & 0x02:
                    instrument = raw[pos]
                    pos += 1
                if b & 0x04:
                    volume = raw[pos]
                    pos += 1
                if b & 0x08:
                    effect = raw[pos]
                    pos += 1
                if b & 0x10:
                    param = raw[pos]
                    pos += 1
            else:
                note = b
                instrument, volume, effect, param = raw[pos:pos + 4]
                pos += 4
            if not (note or instrument or volume or effect or param):
                continue
            neutral_effect, neutral_param = translate_pt_effect(effect, param)
            budget.spend()
            pattern.set_cell(row, ch, Cell(decode_note(note), instrument, volume,
                                           neutral_effect, neutral_param))
    return pattern, end


def _decode_instrument(data: bytes, off: int, mod: DecodedModule, idx: int,
                       log: DecodeLog, skip_samples: bool) -> int:
    size = u32le(data, off)
    instrument = Instrument(name=read_string(data, off + 4, 22))
    mod.instruments.append(instrument)
    num_samples = u16le(data, off + 27)
    if num_samples == 0:
        return off + max(size, 29)

    # Auto-vibrato lives on the instrument; every sample inherits it
    vib = (0, 0, 0, 0)
    if off + 239 <= len(data):
        vib = tuple(data[off + 235:off + 239])

    headers: List[Tuple[Sample, int]] = []
    pos = off + max(size, 29)
    for _ in range(num_samples):
        if pos + _SAMPLE_HEADER_SIZE > len(data):
            log.warn(f"Instrument {idx + 1} sample headers truncated")
            break
        length = u32le(data, pos)
        loop_start = u32le(data, pos + 4)
        loop_len = u32le(data, pos + 8)
        flags = data[pos + 14]
        smp = Sample(name=read_string(data, pos + 18, 22))
        smp.bits = 16 if flags & 0x10 else 8
        smp.stereo = bool(flags & 0x20)
        width = (smp.bits // 8) * (2 if smp.stereo else 1)
        smp.length = length // width
        if flags & 0x03 and loop_len > 0:
            smp.loop_start = loop_start // width
            smp.loop_end = (loop_start + loop_len) // width
        smp.volume = min(64, data[pos + 12]) * 4
        smp.finetune = s8(data[pos + 13])
        smp.panning = data[pos + 15]
        smp.has_panning = True
        smp.relative_tone = s8(data[pos + 16])
        smp.c5_speed = DEFAULT_C5_SPEED
        smp.vib_type, smp.vib_sweep, smp.vib_depth, smp.vib_rate = vib
        headers.append((smp, length))
        pos += _SAMPLE_HEADER_SIZE

    for smp, nbytes in headers:
        raw = data[pos:pos + nbytes]
        pos += nbytes
        if len(raw) < nbytes:
            log.warn(f"Sample \"{smp.name}\" data truncated")
        elif not skip_samples and nbytes:
            smp.data = _undelta(raw, smp.bits, smp.stereo, smp.length)
        mod.samples.append(smp)
    return pos


def _undelta(raw: bytes, bits: int, stereo: bool, frames: int) -> np.ndarray:
    """Decode delta-coded XM sample data."""
    dtype = np.dtype('<i2') if bits == 16 else np.dtype(np.int8)
    raw = raw[:len(raw) - len(raw) % dtype.itemsize]
    deltas = np.frombuffer(raw, dtype=dtype).astype(np.int64)

    def _run(block):
        out = np.cumsum(block)
        if bits == 16:
            return ((out + 32768) % 65536 - 32768).astype(np.int16)
        return ((out + 128) % 256 - 128).astype(np.int8)

    if stereo:
        # Left channel block, then right, each delta-coded on its own
        return np.stack([_run(deltas[:frames]), _run(deltas[frames:2 * frames])], axis=1)
    return _run(deltas)
