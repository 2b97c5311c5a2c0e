"""modhash - Metadata Extraction

Descriptive, non-hashed information about a decoded module.  Everything
here only reads the module.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from constants import META_ARTIST, META_MESSAGE_RAW, META_TITLE, META_TYPE

logger = logging.getLogger("modhash.metadata")


@dataclass
class SampleRecord:
    """Per-sample attributes as handed to callers.

    Attributes:
        data: Raw PCM payload (int8/int16 numpy array) or None
        sample_id: 1-based sample number
        global_volume: 0-64
        bits: 8 or 16
        panning / volume: 0-256
        c5_speed: Base frequency (S3M/IT/MOD)
        relative_tone / finetune: XM-style tuning
    """
    data: Optional[np.ndarray] = field(default=None, repr=False)
    name: str = ""
    length_frames: int = 0
    length_bytes: int = 0
    sample_id: int = 0
    global_volume: int = 0
    bits: int = 8
    stereo: bool = False
    panning: int = 0
    volume: int = 0
    c5_speed: int = 0
    relative_tone: int = 0
    finetune: int = 0
    vib_type: int = 0
    vib_sweep: int = 0
    vib_depth: int = 0
    vib_rate: int = 0

    def to_dict(self) -> dict:
        d = {k: v for k, v in self.__dict__.items() if k != 'data'}
        d['has_data'] = self.data is not None
        return d


@dataclass
class BasicMetadata:
    channel_count: int = 0
    sample_names: str = ""
    artist: str = ""
    comments: str = ""


@dataclass
class ExtendedMetadata:
    channel_count: int = 0
    title: str = ""
    artist: str = ""
    comments: str = ""
    format_type: str = ""
    samples: List[SampleRecord] = field(default_factory=list)
    instrument_names: List[str] = field(default_factory=list)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def instrument_count(self) -> int:
        return len(self.instrument_names)


def channel_count(module) -> int:
    return module.num_channels()


def text_field(module, key: str) -> str:
    """Metadata text by key; unknown and absent keys give ""."""
    if key not in module.metadata_keys():
        return ""
    return module.metadata_field(key) or ""


def sample_name_blob(module) -> str:
    """Every instrument name, then every sample name, one per line.

    Blank names are kept so line positions stay meaningful.
    """
    text = ""
    for i in range(module.num_instruments()):
        text += module.instrument_name(i) + "\n"
    for i in range(1, module.num_samples() + 1):
        text += module.sample_record(i).name + "\n"
    return text


def sample_record(module, index: int, include_data: bool = True) -> SampleRecord:
    """Build the SampleRecord for 1-based sample ``index``."""
    smp = module.sample_record(index)
    return SampleRecord(
        data=smp.data if include_data else None,
        name=smp.name,
        length_frames=smp.length,
        length_bytes=smp.length_bytes,
        sample_id=index,
        global_volume=smp.global_volume,
        bits=16 if smp.bits == 16 else 8,
        stereo=bool(smp.stereo),
        panning=smp.panning,
        volume=smp.volume,
        c5_speed=smp.c5_speed,
        relative_tone=smp.relative_tone,
        finetune=smp.finetune,
        vib_type=smp.vib_type,
        vib_sweep=smp.vib_sweep,
        vib_depth=smp.vib_depth,
        vib_rate=smp.vib_rate,
    )


def sample_records(module, include_data: bool = True) -> List[SampleRecord]:
    return [sample_record(module, i, include_data)
            for i in range(1, module.num_samples() + 1)]


def instrument_names(module) -> List[str]:
    return [module.instrument_name(i) for i in range(module.num_instruments())]


def extract_basic(module) -> BasicMetadata:
    return BasicMetadata(
        channel_count=channel_count(module),
        sample_names=sample_name_blob(module),
        artist=text_field(module, META_ARTIST),
        comments=text_field(module, META_MESSAGE_RAW),
    )


def extract_extended(module, include_data: bool = True) -> ExtendedMetadata:
    meta = ExtendedMetadata(
        channel_count=channel_count(module),
        title=text_field(module, META_TITLE),
        artist=text_field(module, META_ARTIST),
        comments=text_field(module, META_MESSAGE_RAW),
        format_type=text_field(module, META_TYPE),
        samples=sample_records(module, include_data),
        instrument_names=instrument_names(module),
    )
    logger.debug(f"extracted {meta.sample_count} sample(s), "
                 f"{meta.instrument_count} instrument(s)")
    return meta
