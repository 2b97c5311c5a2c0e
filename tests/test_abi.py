"""Tests for abi.py - fixed-layout records, allocators and marshalling."""
import sys
import os
import ctypes
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

import abi
from abi import (CHashData, CHashDataEx, CSampleInfo, CtypesAllocator,
                 record_layout, marshal_basic, marshal_extended, free_c_record)
from metadata import SampleRecord


class _Result:
    """Minimal stand-in carrying the attributes marshalling reads."""

    def __init__(self, **kwargs):
        self.fingerprint = 0x1234567890ABCDEF
        self.status = 0
        self.channel_count = 8
        self.sample_names = "one\ntwo\n"
        self.artist = "someone"
        self.comments = "größer"
        self.samples = []
        self.instrument_names = []
        self.__dict__.update(kwargs)


class _Exhausted(CtypesAllocator):

    def __init__(self, limit):
        super().__init__()
        self.limit = limit

    def alloc(self, size):
        if self.total_allocs >= self.limit:
            raise MemoryError
        return super().alloc(size)


class TestLayout(unittest.TestCase):

    def test_field_order(self):
        names = [name for name, _, _ in record_layout(CHashData)]
        self.assertEqual(names, ["hash", "sample_names", "artist", "comments",
                                 "channel_count"])
        names = [name for name, _, _ in record_layout(CHashDataEx)]
        self.assertEqual(names, ["hash", "status", "channel_count", "sample_count",
                                 "instrument_count", "samples", "instrument_names",
                                 "artist", "comments"])

    def test_offsets_increase(self):
        for struct_type in (CHashData, CHashDataEx, CSampleInfo):
            offsets = [off for _, off, _ in record_layout(struct_type)]
            self.assertEqual(offsets, sorted(offsets))
            self.assertEqual(offsets[0], 0)

    def test_field_sizes(self):
        layout = {name: size for name, _, size in record_layout(CSampleInfo)}
        self.assertEqual(layout["length"], 8)
        self.assertEqual(layout["length_bytes"], 8)
        self.assertEqual(layout["vib_rate"], 4)
        self.assertEqual(layout["data"], ctypes.sizeof(ctypes.c_void_p))


class TestAllocator(unittest.TestCase):

    def test_tracks_live_blocks(self):
        allocator = CtypesAllocator()
        a = allocator.alloc(10)
        b = allocator.alloc(0)
        self.assertEqual(allocator.live_count(), 2)
        self.assertEqual(len(b), 1)
        allocator.free(a)
        allocator.free(b)
        self.assertEqual(allocator.live_count(), 0)
        self.assertEqual(allocator.total_allocs, 2)

    def test_default_allocator(self):
        self.assertIsInstance(abi.default_allocator(), CtypesAllocator)


class TestMarshalBasic(unittest.TestCase):

    def test_fields(self):
        rec = marshal_basic(_Result(), CtypesAllocator())
        self.assertEqual(rec.record.hash, 0x1234567890ABCDEF)
        self.assertEqual(rec.record.channel_count, 8)
        self.assertEqual(rec.record.sample_names, b"one\ntwo\n")
        self.assertEqual(rec.record.artist, b"someone")
        self.assertEqual(rec.record.comments.decode('utf-8'), "größer")
        free_c_record(rec)

    def test_free(self):
        allocator = CtypesAllocator()
        rec = marshal_basic(_Result(), allocator)
        free_c_record(rec)
        self.assertTrue(rec.released)
        self.assertEqual(allocator.live_count(), 0)
        free_c_record(rec)
        free_c_record(None)

    def test_failure_releases_partial(self):
        allocator = _Exhausted(2)
        self.assertIsNone(marshal_basic(_Result(), allocator))
        self.assertEqual(allocator.live_count(), 0)


class TestMarshalExtended(unittest.TestCase):

    def _result(self):
        data = np.array([1, -1, 2, -2], dtype=np.int16)
        samples = [
            SampleRecord(data=data, name="wave", length_frames=4, length_bytes=8,
                         sample_id=1, global_volume=64, bits=16, panning=128,
                         volume=256, c5_speed=8363, vib_type=1, vib_rate=9),
            SampleRecord(name="blank", sample_id=2),
        ]
        return _Result(status=1, samples=samples, instrument_names=["lead", "bass"])

    def test_fields(self):
        rec = marshal_extended(self._result(), CtypesAllocator())
        r = rec.record
        self.assertEqual(r.status, 1)
        self.assertEqual(r.sample_count, 2)
        self.assertEqual(r.instrument_count, 2)
        self.assertEqual(r.samples[0].name, b"wave")
        self.assertEqual(r.samples[0].bits, 16)
        self.assertEqual(r.samples[0].length_bytes, 8)
        self.assertEqual(r.samples[0].vib_rate, 9)
        self.assertEqual(r.samples[1].sample_id, 2)
        self.assertIsNone(r.samples[1].data)
        self.assertEqual(r.instrument_names[1], b"bass")
        self.assertEqual(r.artist, b"someone")
        free_c_record(rec)

    def test_sample_payload_pointer(self):
        result = self._result()
        rec = marshal_extended(result, CtypesAllocator())
        ptr = ctypes.cast(rec.record.samples[0].data, ctypes.POINTER(ctypes.c_int16))
        self.assertEqual([ptr[i] for i in range(4)], [1, -1, 2, -2])
        free_c_record(rec)

    def test_empty_lists_leave_null_pointers(self):
        rec = marshal_extended(_Result(), CtypesAllocator())
        self.assertFalse(rec.record.samples)
        self.assertFalse(rec.record.instrument_names)
        free_c_record(rec)

    def test_failure_at_every_step(self):
        # artist, comments, sample array, 2 names, name array, 2 names
        for limit in range(8):
            allocator = _Exhausted(limit)
            self.assertIsNone(marshal_extended(self._result(), allocator))
            self.assertEqual(allocator.live_count(), 0)
        allocator = _Exhausted(8)
        rec = marshal_extended(self._result(), allocator)
        self.assertIsNotNone(rec)
        self.assertEqual(allocator.live_count(), 8)
        free_c_record(rec)
        self.assertEqual(allocator.live_count(), 0)


if __name__ == '__main__':
    unittest.main()
