"""Tests for extractor.py - hashing entry points and result teardown.

Covers:
- Fingerprint of a known single-note module
- Decode failures give no result
- Sentinel handling in extended mode
- Fingerprint independence from metadata
- Idempotent teardown, scoped results, allocator failure
- Out-of-memory while decoding, oversized headers
"""
import sys
import os
import tempfile
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from constants import FNV_OFFSET_BASIS, FNV_PRIME, U64_MASK
from abi import CtypesAllocator
import extractor
from extractor import (hash_buffer, hash_buffer_status, hash_file, free_hash_data,
                       extract, ExtractMode, ExtractStatus, HashResult)
from formats import decode
from module_builders import make_mod, mod_note, make_xm, make_it

NOTE_60_HASH = ((FNV_OFFSET_BASIS ^ 60) * FNV_PRIME) & U64_MASK


class FailingAllocator(CtypesAllocator):
    """Raises MemoryError once ``limit`` blocks have been handed out."""

    def __init__(self, limit):
        super().__init__()
        self.limit = limit

    def alloc(self, size):
        if self.total_allocs >= self.limit:
            raise MemoryError("allocation limit reached")
        return super().alloc(size)


def _single_note_mod(**kwargs):
    return make_mod(pattern_data={0: {(0, 0): mod_note(60)}}, **kwargs)


class TestBasicMode(unittest.TestCase):

    def test_single_note_fingerprint(self):
        result = hash_buffer(_single_note_mod())
        self.assertIsNotNone(result)
        self.assertEqual(result.fingerprint, NOTE_60_HASH)
        self.assertEqual(result.status, ExtractStatus.OK)
        self.assertEqual(result.channel_count, 4)
        free_hash_data(result)

    def test_sample_name_blob(self):
        result = hash_buffer(_single_note_mod(n_samples=2))
        self.assertEqual(result.sample_names, "sample1\nsample2\n" + "\n" * 29)
        self.assertEqual(result.artist, "")
        self.assertEqual(result.comments, "")
        free_hash_data(result)

    def test_empty_patterns_give_offset_basis(self):
        result = hash_buffer(make_mod())
        self.assertEqual(result.fingerprint, FNV_OFFSET_BASIS)
        free_hash_data(result)

    def test_metadata_does_not_affect_fingerprint(self):
        a = hash_buffer(_single_note_mod(title="one", sample_names=["kick"]))
        b = hash_buffer(_single_note_mod(title="two", sample_names=["snare"]))
        self.assertEqual(a.fingerprint, b.fingerprint)
        self.assertNotEqual(a.sample_names, b.sample_names)
        free_hash_data(a)
        free_hash_data(b)

    def test_sentinel_ignored(self):
        data = make_mod(pattern_data={0: {(0, 0): mod_note(60),
                                          (1, 1): (0, 0, 0x0, 0xFF)}})
        result = hash_buffer(data)
        self.assertEqual(result.fingerprint, NOTE_60_HASH)
        self.assertEqual(result.status, ExtractStatus.OK)

    def test_same_notes_across_formats(self):
        mod = hash_buffer(_single_note_mod())
        it = hash_buffer(make_it(patterns=[{(0, 0): (59, 0, 0, 0)}]))
        self.assertEqual(mod.fingerprint, it.fingerprint)

    def test_comments_from_message(self):
        result = hash_buffer(make_it(message="greetings"))
        self.assertEqual(result.comments, "greetings")

    def test_diagnostics_in_basic_mode(self):
        lines = []
        result = hash_buffer(_single_note_mod(), diagnostics=lines.append)
        self.assertEqual(len(lines), 64 * 4)
        self.assertEqual(result.fingerprint, NOTE_60_HASH)

    def test_verbose_in_basic_mode(self):
        with self.assertLogs("modhash.diag", level="DEBUG") as cm:
            hash_buffer(_single_note_mod(), verbose=True)
        self.assertEqual(len(cm.output), 64 * 4)


class TestDecodeFailures(unittest.TestCase):

    def test_zero_bytes(self):
        self.assertIsNone(hash_buffer(b'\x00' * 64))
        status, result = hash_buffer_status(b'\x00' * 64)
        self.assertEqual(status, ExtractStatus.DECODE_FAILED)
        self.assertIsNone(result)

    def test_short_input(self):
        self.assertIsNone(hash_buffer(b'IMPM'))
        self.assertIsNone(hash_buffer(b''))

    def test_truncated_module(self):
        self.assertIsNone(hash_buffer(make_it()[:0xC1]))

    def test_out_of_memory_while_decoding(self):
        with mock.patch.object(extractor, "decode", side_effect=MemoryError):
            status, result = hash_buffer_status(_single_note_mod())
            self.assertIsNone(hash_buffer(_single_note_mod()))
        self.assertEqual(status, ExtractStatus.ALLOC_FAILED)
        self.assertIsNone(result)

    def test_oversized_pattern_count(self):
        data = bytearray(make_it())
        data[0x26:0x28] = (0xFFFF).to_bytes(2, 'little')
        status, result = hash_buffer_status(bytes(data))
        self.assertEqual(status, ExtractStatus.DECODE_FAILED)
        self.assertIsNone(result)

    def test_missing_file(self):
        path = os.path.join(tempfile.gettempdir(), "modhash-missing", "x.mod")
        self.assertIsNone(hash_file(path))

    def test_hash_file(self):
        fd, path = tempfile.mkstemp(suffix='.mod')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(_single_note_mod())
            result = hash_file(path)
            self.assertEqual(result.fingerprint, NOTE_60_HASH)
            free_hash_data(result)
        finally:
            os.unlink(path)


class TestExtendedMode(unittest.TestCase):

    def _xm(self):
        return make_xm(patterns=[{(0, 0): (48, 1, 0, 0, 0)}], title="Ext",
                       instruments=[{'name': "piano", 'samples': [
                           {'name': "C4", 'data': bytes([0, 1, 2, 3])}]}])

    def test_fields(self):
        result = hash_buffer(self._xm(), ExtractMode.EXTENDED)
        self.assertEqual(result.fingerprint, NOTE_60_HASH)
        self.assertEqual(result.mode, ExtractMode.EXTENDED)
        self.assertEqual(result.title, "Ext")
        self.assertEqual(result.format_type, "xm")
        self.assertEqual(result.instrument_count, 1)
        self.assertEqual(result.instrument_names, ["piano"])
        self.assertEqual(result.sample_count, 1)
        smp = result.samples[0]
        self.assertEqual(smp.sample_id, 1)
        self.assertEqual(smp.name, "C4")
        self.assertEqual(smp.length_frames, 4)
        self.assertEqual(smp.data.tolist(), [0, 1, 2, 3])
        free_hash_data(result)

    def test_modes_agree_without_sentinel(self):
        basic = hash_buffer(self._xm())
        extended = hash_buffer(self._xm(), ExtractMode.EXTENDED)
        self.assertEqual(basic.fingerprint, extended.fingerprint)
        self.assertEqual(basic.sample_names, extended.sample_names)

    def test_sentinel(self):
        data = make_mod(n_samples=3, pattern_data={0: {
            (0, 0): mod_note(60), (4, 2): (0, 0, 0x0, 0xFF)}})
        status, result = hash_buffer_status(data, ExtractMode.EXTENDED)
        self.assertEqual(status, ExtractStatus.SENTINEL)
        self.assertTrue(result.is_sentinel)
        self.assertEqual(result.fingerprint, 1)
        self.assertEqual(result.channel_count, 4)
        self.assertEqual(result.sample_count, 0)
        self.assertEqual(result.instrument_count, 0)
        self.assertEqual(result.sample_names, "")
        free_hash_data(result)

    def test_verbose_goes_to_diag_logger(self):
        data = make_mod(pattern_data={0: {(0, 0): mod_note(60)}})
        with self.assertLogs("modhash.diag", level="DEBUG") as cm:
            result = hash_buffer(data, ExtractMode.EXTENDED, verbose=True)
        self.assertEqual(len(cm.output), 64 * 4)
        free_hash_data(result)

    def test_diagnostics_callable(self):
        lines = []
        hash_buffer(make_mod(), ExtractMode.EXTENDED, diagnostics=lines.append)
        self.assertEqual(len(lines), 64 * 4)

    def test_extract_borrows_module(self):
        module = decode(_single_note_mod())
        result = extract(module, ExtractMode.BASIC)
        self.assertIsNone(result.module)
        self.assertEqual(result.fingerprint, NOTE_60_HASH)


class TestTeardown(unittest.TestCase):

    def test_free_none(self):
        free_hash_data(None)

    def test_free_twice(self):
        result = hash_buffer(_single_note_mod())
        free_hash_data(result)
        free_hash_data(result)
        self.assertTrue(result.released)
        self.assertEqual(result.sample_names, "")

    def test_context_manager(self):
        with hash_buffer(_single_note_mod(), ExtractMode.EXTENDED) as result:
            self.assertFalse(result.released)
            self.assertEqual(result.sample_count, 31)
        self.assertTrue(result.released)
        self.assertEqual(result.samples, [])
        self.assertEqual(result.format_type, "")
        self.assertEqual(result.title, "")

    def test_keep_module(self):
        result = hash_buffer(_single_note_mod(), keep_module=True)
        self.assertIsNotNone(result.module)
        self.assertEqual(result.module.num_channels(), 4)
        free_hash_data(result)
        self.assertIsNone(result.module)

    def test_default_result_is_zeroed(self):
        result = HashResult()
        self.assertEqual(result.fingerprint, 0)
        self.assertEqual(result.channel_count, 0)
        self.assertEqual(result.samples, [])
        self.assertEqual(result.status, ExtractStatus.OK)


class TestFixedLayoutRecords(unittest.TestCase):

    def test_basic_record(self):
        allocator = CtypesAllocator()
        result = hash_buffer(_single_note_mod(), allocator=allocator)
        rec = result.c_record
        self.assertEqual(rec.record.hash, NOTE_60_HASH)
        self.assertEqual(rec.record.channel_count, 4)
        self.assertTrue(rec.record.sample_names.startswith(b"sample1\n"))
        self.assertEqual(allocator.live_count(), 3)
        free_hash_data(result)
        self.assertEqual(allocator.live_count(), 0)
        self.assertIsNone(result.c_record)

    def test_extended_record(self):
        allocator = CtypesAllocator()
        data = make_xm(instruments=[{'name': "pad", 'samples': [
            {'name': "s1", 'data': bytes([1, 2])}]}])
        with hash_buffer(data, ExtractMode.EXTENDED, allocator=allocator) as result:
            rec = result.c_record.record
            self.assertEqual(rec.status, int(ExtractStatus.OK))
            self.assertEqual(rec.sample_count, 1)
            self.assertEqual(rec.samples[0].name, b"s1")
            self.assertEqual(rec.samples[0].length, 2)
            self.assertEqual(rec.instrument_names[0], b"pad")
        self.assertEqual(allocator.live_count(), 0)

    def test_allocation_failure(self):
        for limit in range(3):
            allocator = FailingAllocator(limit)
            status, result = hash_buffer_status(_single_note_mod(), allocator=allocator)
            self.assertEqual(status, ExtractStatus.ALLOC_FAILED)
            self.assertIsNone(result)
            self.assertEqual(allocator.live_count(), 0)

    def test_allocation_failure_extended(self):
        data = make_xm(instruments=[{'name': "a", 'samples': [{'name': "b"}]}])
        allocator = FailingAllocator(3)
        self.assertIsNone(hash_buffer(data, ExtractMode.EXTENDED, allocator=allocator))
        self.assertEqual(allocator.live_count(), 0)


if __name__ == '__main__':
    unittest.main()
