"""modhash - Fixed-Layout Result Records

ctypes mirrors of the result records handed to callers written in other
languages.  Field order and types are part of the interface; append new
fields at the end only.

    CHashData     basic mode
    CHashDataEx   extended mode (points at CSampleInfo[] and char*[])

Memory behind every pointer comes from an Allocator chosen by the caller.
A CRecord owns those blocks until free_c_record() gives them back.
"""

import ctypes
import logging
from typing import List, Optional

logger = logging.getLogger("modhash.abi")


# =============================================================================
# RECORD LAYOUTS
# =============================================================================

class CHashData(ctypes.Structure):
    _fields_ = [
        ("hash", ctypes.c_uint64),
        ("sample_names", ctypes.c_char_p),
        ("artist", ctypes.c_char_p),
        ("comments", ctypes.c_char_p),
        ("channel_count", ctypes.c_int32),
    ]


class CSampleInfo(ctypes.Structure):
    _fields_ = [
        ("data", ctypes.c_void_p),
        ("name", ctypes.c_char_p),
        ("length", ctypes.c_uint64),
        ("length_bytes", ctypes.c_uint64),
        ("sample_id", ctypes.c_int32),
        ("global_volume", ctypes.c_int32),
        ("bits", ctypes.c_int32),
        ("stereo", ctypes.c_int32),
        ("panning", ctypes.c_int32),
        ("volume", ctypes.c_int32),
        ("c5_speed", ctypes.c_int32),
        ("relative_tone", ctypes.c_int32),
        ("finetune", ctypes.c_int32),
        ("vib_type", ctypes.c_int32),
        ("vib_sweep", ctypes.c_int32),
        ("vib_depth", ctypes.c_int32),
        ("vib_rate", ctypes.c_int32),
    ]


class CHashDataEx(ctypes.Structure):
    _fields_ = [
        ("hash", ctypes.c_uint64),
        ("status", ctypes.c_int32),
        ("channel_count", ctypes.c_int32),
        ("sample_count", ctypes.c_int32),
        ("instrument_count", ctypes.c_int32),
        ("samples", ctypes.POINTER(CSampleInfo)),
        ("instrument_names", ctypes.POINTER(ctypes.c_char_p)),
        ("artist", ctypes.c_char_p),
        ("comments", ctypes.c_char_p),
    ]


def record_layout(struct_type) -> List[tuple]:
    """[(field, offset, size), ...] of a record type, in declaration order."""
    return [(name, getattr(struct_type, name).offset, getattr(struct_type, name).size)
            for name, _ in struct_type._fields_]


# =============================================================================
# ALLOCATORS
# =============================================================================

class Allocator:
    """Allocation strategy for record memory.

    alloc() returns a writable ctypes buffer of ``size`` bytes or raises
    MemoryError; free() takes back a block returned by alloc().
    """

    def alloc(self, size: int):
        raise NotImplementedError

    def free(self, block):
        raise NotImplementedError


class CtypesAllocator(Allocator):
    """Platform heap via ctypes buffers; tracks live blocks."""

    def __init__(self):
        self.live = {}
        self.total_allocs = 0

    def alloc(self, size: int):
        block = ctypes.create_string_buffer(max(1, size))
        self.live[ctypes.addressof(block)] = block
        self.total_allocs += 1
        return block

    def free(self, block):
        self.live.pop(ctypes.addressof(block), None)

    def live_count(self) -> int:
        return len(self.live)


def default_allocator() -> Allocator:
    return CtypesAllocator()


# =============================================================================
# OWNED RECORD
# =============================================================================

class CRecord:
    """A marshalled record plus the blocks it points into."""

    def __init__(self, record, allocator: Allocator):
        self.record = record
        self.allocator = allocator
        self.blocks = []
        # numpy payloads referenced by CSampleInfo.data stay alive through this
        self.borrowed = []

    @property
    def released(self) -> bool:
        return self.record is None

    def _alloc(self, size: int):
        block = self.allocator.alloc(size)
        self.blocks.append(block)
        return block

    def alloc_string(self, text: str) -> ctypes.c_char_p:
        raw = (text or "").encode('utf-8', errors='replace')
        block = self._alloc(len(raw) + 1)
        ctypes.memmove(block, raw, len(raw))
        return ctypes.cast(block, ctypes.c_char_p)

    def alloc_array(self, ctype, count: int):
        block = self._alloc(ctypes.sizeof(ctype) * max(1, count))
        return (ctype * max(1, count)).from_buffer(block)

    def release(self):
        for block in reversed(self.blocks):
            self.allocator.free(block)
        self.blocks = []
        self.borrowed = []
        self.record = None


def free_c_record(rec: Optional[CRecord]):
    """Give back every block of ``rec``.  None and repeated calls are no-ops."""
    if rec is None or rec.released:
        return
    rec.release()


# =============================================================================
# MARSHALLING
# =============================================================================

def marshal_basic(result, allocator: Optional[Allocator] = None) -> Optional[CRecord]:
    """Build a CHashData for ``result``; None when allocation fails."""
    allocator = allocator or default_allocator()
    rec = CRecord(CHashData(), allocator)
    try:
        rec.record.hash = result.fingerprint
        rec.record.channel_count = result.channel_count
        rec.record.sample_names = rec.alloc_string(result.sample_names)
        rec.record.artist = rec.alloc_string(result.artist)
        rec.record.comments = rec.alloc_string(result.comments)
    except MemoryError:
        logger.warning("allocation failed while marshalling basic record")
        rec.release()
        return None
    return rec


def marshal_extended(result, allocator: Optional[Allocator] = None) -> Optional[CRecord]:
    """Build a CHashDataEx for ``result``; None when allocation fails."""
    allocator = allocator or default_allocator()
    rec = CRecord(CHashDataEx(), allocator)
    try:
        r = rec.record
        r.hash = result.fingerprint
        r.status = int(result.status)
        r.channel_count = result.channel_count
        r.sample_count = len(result.samples)
        r.instrument_count = len(result.instrument_names)
        r.artist = rec.alloc_string(result.artist)
        r.comments = rec.alloc_string(result.comments)

        if result.samples:
            infos = rec.alloc_array(CSampleInfo, len(result.samples))
            for info, smp in zip(infos, result.samples):
                _fill_sample_info(rec, info, smp)
            r.samples = ctypes.cast(infos, ctypes.POINTER(CSampleInfo))

        if result.instrument_names:
            names = rec.alloc_array(ctypes.c_char_p, len(result.instrument_names))
            for i, name in enumerate(result.instrument_names):
                names[i] = rec.alloc_string(name)
            r.instrument_names = ctypes.cast(names, ctypes.POINTER(ctypes.c_char_p))
    except MemoryError:
        logger.warning("allocation failed while marshalling extended record")
        rec.release()
        return None
    return rec


def _fill_sample_info(rec: CRecord, info: CSampleInfo, smp):
    if smp.data is not None:
        rec.borrowed.append(smp.data)
        info.data = smp.data.ctypes.data
    info.name = rec.alloc_string(smp.name)
    info.length = smp.length_frames
    info.length_bytes = smp.length_bytes
    info.sample_id = smp.sample_id
    info.global_volume = smp.global_volume
    info.bits = smp.bits
    info.stereo = 1 if smp.stereo else 0
    info.panning = smp.panning
    info.volume = smp.volume
    info.c5_speed = smp.c5_speed
    info.relative_tone = smp.relative_tone
    info.finetune = smp.finetune
    info.vib_type = smp.vib_type
    info.vib_sweep = smp.vib_sweep
    info.vib_depth = smp.vib_depth
    info.vib_rate = smp.vib_rate
