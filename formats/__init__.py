"""modhash - Module Source

Turns raw module bytes into a DecodedModule:
- formats.common : DecodeError, DecodeLog, byte readers, effect tables
- formats.mod    : ProTracker / Soundtracker MOD
- formats.s3m    : Scream Tracker 3
- formats.xm     : FastTracker 2
- formats.it     : Impulse Tracker

Callers do:
    from formats import decode, DecodeError
    module = decode(data)
"""

import struct
import logging
from typing import Optional

from constants import MIN_MODULE_SIZE
from data_model import DecodedModule
from formats.common import DecodeError, DecodeLog
from formats import mod, s3m, xm, it

logger = logging.getLogger("modhash.formats")

# Probe order matters: the signature-less 15-sample MOD layout goes last.
_DECODERS = (
    ("it", it.probe, it.decode_it),
    ("xm", xm.probe, xm.decode_xm),
    ("s3m", s3m.probe, s3m.decode_s3m),
    ("mod", mod.probe, mod.decode_mod),
)


def detect_format(data: bytes) -> Optional[str]:
    """Return the format id ("it", "xm", "s3m", "mod") or None."""
    if len(data) < MIN_MODULE_SIZE:
        return None
    for name, probe, _ in _DECODERS:
        if probe(data):
            return name
    return None


def decode(data: bytes, skip_samples: bool = False) -> DecodedModule:
    """Decode module bytes.

    Args:
        data: Complete module file contents
        skip_samples: Read sample headers only, leave payloads unset

    Raises:
        DecodeError: input is not a recognisable or parseable module
    """
    if data is None or len(data) < MIN_MODULE_SIZE:
        raise DecodeError(f"input too small: {0 if data is None else len(data)} bytes")
    data = bytes(data)
    log = DecodeLog()
    for name, probe, decoder in _DECODERS:
        if not probe(data):
            continue
        try:
            module = decoder(data, log, skip_samples=skip_samples)
        except DecodeError as e:
            log.error(str(e))
            raise
        except (struct.error, IndexError, ValueError) as e:
            log.error(f"{name}: malformed data ({e})")
            raise DecodeError(f"malformed {name.upper()} data: {e}") from e
        module.decode_log = log
        module.finalize()
        if module.num_subsongs() == 0:
            raise DecodeError("module has no playable sequence")
        log.info(log.summary_line())
        return module
    raise DecodeError("unrecognised module format")


def load_file(path: str, skip_samples: bool = False) -> DecodedModule:
    """Read and decode a module file.  OSError is reported as DecodeError."""
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        raise DecodeError(f"cannot read {path}: {e}") from e
    return decode(data, skip_samples=skip_samples)


__all__ = ['decode', 'detect_format', 'load_file', 'DecodeError', 'DecodeLog']
