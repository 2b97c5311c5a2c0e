"""modhash - Extractor

Public entry points: decode a module, fingerprint it, collect metadata and
hand back one HashResult that the caller owns.

    result = hash_file("song.xm")
    if result is not None:
        print(result.fingerprint)
        free_hash_data(result)

or, scoped:

    with hash_file("song.xm") as result:
        ...

A decode failure gives None (there is no partial fingerprint).  The
effect-aware extended mode may end early on the sentinel cell; that result
has fingerprint 1, status SENTINEL and only the channel count filled in.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from constants import SENTINEL_FINGERPRINT
from formats import decode, DecodeError
from fingerprint import hash_patterns, DiagnosticSink
import metadata
from metadata import SampleRecord
import abi

logger = logging.getLogger("modhash.extractor")
diag_logger = logging.getLogger("modhash.diag")


class ExtractMode(enum.Enum):
    BASIC = "basic"
    EXTENDED = "extended"


class ExtractStatus(enum.IntEnum):
    OK = 0
    SENTINEL = 1
    DECODE_FAILED = 2
    ALLOC_FAILED = 3


@dataclass
class HashResult:
    """Fingerprint plus metadata.  Owned by the caller until released."""
    fingerprint: int = 0
    status: ExtractStatus = ExtractStatus.OK
    mode: ExtractMode = ExtractMode.BASIC
    channel_count: int = 0
    sample_names: str = ""
    artist: str = ""
    comments: str = ""
    title: str = ""
    format_type: str = ""
    samples: List[SampleRecord] = field(default_factory=list)
    instrument_names: List[str] = field(default_factory=list)
    module: object = field(default=None, repr=False)
    c_record: Optional[abi.CRecord] = field(default=None, repr=False)
    released: bool = False

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def instrument_count(self) -> int:
        return len(self.instrument_names)

    @property
    def is_sentinel(self) -> bool:
        return self.status == ExtractStatus.SENTINEL

    def __enter__(self) -> 'HashResult':
        return self

    def __exit__(self, exc_type, exc, tb):
        free_hash_data(self)
        return False

    def to_dict(self) -> dict:
        return {
            'fingerprint': self.fingerprint,
            'status': self.status.name,
            'mode': self.mode.value,
            'channel_count': self.channel_count,
            'sample_names': self.sample_names,
            'artist': self.artist,
            'comments': self.comments,
            'title': self.title,
            'format_type': self.format_type,
            'sample_count': self.sample_count,
            'instrument_count': self.instrument_count,
            'samples': [s.to_dict() for s in self.samples],
            'instrument_names': list(self.instrument_names),
        }


# =============================================================================
# EXTRACTION
# =============================================================================

def _diagnostic_sink(verbose: bool,
                     diagnostics: Optional[DiagnosticSink]) -> Optional[DiagnosticSink]:
    if diagnostics is not None:
        return diagnostics
    if verbose:
        return diag_logger.debug
    return None


def extract(module, mode: ExtractMode = ExtractMode.BASIC, verbose: bool = False,
            diagnostics: Optional[DiagnosticSink] = None) -> HashResult:
    """Fingerprint and describe an already decoded module.

    The module is borrowed; the result does not take ownership.
    """
    result = HashResult(mode=mode)
    sink = _diagnostic_sink(verbose, diagnostics)
    if mode == ExtractMode.BASIC:
        outcome = hash_patterns(module, diagnostics=sink)
        meta = metadata.extract_basic(module)
        result.fingerprint = outcome.fingerprint
        result.channel_count = meta.channel_count
        result.sample_names = meta.sample_names
        result.artist = meta.artist
        result.comments = meta.comments
        return result

    outcome = hash_patterns(module, effect_aware=True, diagnostics=sink)
    result.channel_count = metadata.channel_count(module)
    if outcome.sentinel:
        result.fingerprint = SENTINEL_FINGERPRINT
        result.status = ExtractStatus.SENTINEL
        logger.info("sentinel cell found, metadata not collected")
        return result

    meta = metadata.extract_extended(module)
    result.fingerprint = outcome.fingerprint
    result.title = meta.title
    result.artist = meta.artist
    result.comments = meta.comments
    result.format_type = meta.format_type
    result.samples = meta.samples
    result.instrument_names = meta.instrument_names
    result.sample_names = metadata.sample_name_blob(module)
    return result


def hash_buffer_status(data: bytes, mode: ExtractMode = ExtractMode.BASIC,
                       verbose: bool = False, keep_module: bool = False,
                       allocator: Optional[abi.Allocator] = None,
                       diagnostics: Optional[DiagnosticSink] = None
                       ) -> Tuple[ExtractStatus, Optional[HashResult]]:
    """Like hash_buffer() but also says why a result is missing.

    Args:
        data: Module file contents
        mode: BASIC (hash + name blob) or EXTENDED (records, sentinel)
        verbose: Emit per-cell diagnostics to the ``modhash.diag`` logger
        keep_module: The result takes ownership of the decoded module
        allocator: When given, also build the fixed-layout record
            (``result.c_record``) with this allocator
        diagnostics: Callable receiving per-cell text; overrides ``verbose``
    """
    try:
        module = decode(data, skip_samples=(mode == ExtractMode.BASIC))
    except DecodeError as e:
        logger.debug(f"decode failed: {e}")
        return ExtractStatus.DECODE_FAILED, None
    except MemoryError:
        logger.error("out of memory while decoding")
        return ExtractStatus.ALLOC_FAILED, None

    try:
        result = extract(module, mode, verbose, diagnostics)
    except MemoryError:
        logger.error("out of memory while extracting")
        return ExtractStatus.ALLOC_FAILED, None

    if allocator is not None:
        if mode == ExtractMode.BASIC:
            result.c_record = abi.marshal_basic(result, allocator)
        else:
            result.c_record = abi.marshal_extended(result, allocator)
        if result.c_record is None:
            free_hash_data(result)
            return ExtractStatus.ALLOC_FAILED, None

    if keep_module:
        result.module = module
    return result.status, result


def hash_buffer(data: bytes, mode: ExtractMode = ExtractMode.BASIC,
                verbose: bool = False, keep_module: bool = False,
                allocator: Optional[abi.Allocator] = None,
                diagnostics: Optional[DiagnosticSink] = None) -> Optional[HashResult]:
    """Fingerprint an in-memory module.  None when it cannot be decoded."""
    _, result = hash_buffer_status(data, mode, verbose, keep_module,
                                   allocator, diagnostics)
    return result


def hash_file(path: str, mode: ExtractMode = ExtractMode.BASIC,
              verbose: bool = False, keep_module: bool = False,
              allocator: Optional[abi.Allocator] = None,
              diagnostics: Optional[DiagnosticSink] = None) -> Optional[HashResult]:
    """Fingerprint a module file.  None when it cannot be read or decoded."""
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        logger.debug(f"cannot open {path} for reading: {e}")
        return None
    return hash_buffer(data, mode, verbose, keep_module, allocator, diagnostics)


# =============================================================================
# TEARDOWN
# =============================================================================

def free_hash_data(result: Optional[HashResult]):
    """Release everything a result owns.

    Safe to call with None and safe to call twice.
    """
    if result is None or result.released:
        return
    abi.free_c_record(result.c_record)
    result.c_record = None
    result.sample_names = ""
    result.artist = ""
    result.comments = ""
    result.title = ""
    result.format_type = ""
    for smp in result.samples:
        smp.data = None
    result.samples = []
    result.instrument_names = []
    result.module = None
    result.released = True
