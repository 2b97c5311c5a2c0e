"""modhash - Pattern Fingerprint

64-bit FNV-1a over the note values of a decoded module.

Traversal order (fixed; earlier fingerprints depend on it):
    subsong -> order -> row -> channel

- Subsongs are visited in index order.  A subsong whose start order is not
  0 is skipped: its orders belong to a sequence that is walked completely
  from order 0 anyway.
- Inside a pattern, rows are the outer loop and channels the inner one.
- Note value 0 (empty cell) never touches the hash, so padding a pattern
  with empty rows or channels does not change the fingerprint.

Effect and parameter are read when a diagnostics callback is given or in
the effect-aware variant.  They are never hashed.  Only the effect-aware
variant honours the sentinel: effect 1 with parameter 0xFF stops the walk
with SENTINEL_FINGERPRINT.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from constants import (FNV_OFFSET_BASIS, FNV_PRIME, U64_MASK, SENTINEL_EFFECT,
                       SENTINEL_PARAM, SENTINEL_FINGERPRINT, NOTE_NONE,
                       note_to_str)

logger = logging.getLogger("modhash.fingerprint")

DiagnosticSink = Callable[[str], None]


class Fnv1a64:
    """Incremental 64-bit FNV-1a accumulator over byte values."""

    __slots__ = ('value',)

    def __init__(self, value: int = FNV_OFFSET_BASIS):
        self.value = value

    def update_byte(self, v: int):
        self.value = ((self.value ^ (v & 0xFF)) * FNV_PRIME) & U64_MASK

    def update(self, values: Iterable[int]):
        h = self.value
        for v in values:
            h = ((h ^ (v & 0xFF)) * FNV_PRIME) & U64_MASK
        self.value = h

    def copy(self) -> 'Fnv1a64':
        return Fnv1a64(self.value)

    def hexdigest(self) -> str:
        return f"{self.value:016x}"


def fnv1a_64(data: Iterable[int]) -> int:
    """FNV-1a 64 of a byte string (or any iterable of byte values)."""
    acc = Fnv1a64()
    acc.update(data)
    return acc.value


@dataclass
class HashOutcome:
    fingerprint: int = FNV_OFFSET_BASIS
    sentinel: bool = False
    cells_visited: int = 0
    notes_hashed: int = 0
    subsongs_hashed: int = 0
    subsongs_skipped: int = 0


def format_cell(pattern: int, row: int, channel: int, note: int,
                effect: int, param: int) -> str:
    """One line of per-cell diagnostic text."""
    return (f"p{pattern:03d} r{row:03d} c{channel:02d}: "
            f"note={note_to_str(note)} ({note:3d}) eff={effect:02X} param={param:02X}")


def hash_patterns(module, effect_aware: bool = False,
                  diagnostics: Optional[DiagnosticSink] = None) -> HashOutcome:
    """Fingerprint the note content of ``module``.

    Args:
        module: DecodedModule (anything with the same query methods works)
        effect_aware: Read effect/parameter per cell and honour the sentinel
        diagnostics: Optional callable receiving one text line per cell

    Returns:
        HashOutcome; ``sentinel`` is True and ``fingerprint`` is
        SENTINEL_FINGERPRINT when the sentinel cell was hit.
    """
    acc = Fnv1a64()
    outcome = HashOutcome()
    num_channels = module.num_channels()
    num_songs = module.num_subsongs()

    try:
        for s in range(num_songs):
            module.select_subsong(s)
            if module.current_order() != 0:
                outcome.subsongs_skipped += 1
                logger.debug(f"subsong {s} starts at order "
                             f"{module.current_order()}, skipped")
                continue
            outcome.subsongs_hashed += 1

            for o in range(module.num_orders()):
                p = module.order_to_pattern(o)
                num_rows = module.pattern_num_rows(p)
                for r in range(num_rows):
                    for c in range(num_channels):
                        note = module.cell_note(p, r, c)
                        outcome.cells_visited += 1
                        if effect_aware or diagnostics is not None:
                            effect = module.cell_effect(p, r, c)
                            param = module.cell_effect_param(p, r, c)
                            if diagnostics is not None:
                                diagnostics(format_cell(p, r, c, note, effect, param))
                            if (effect_aware and effect == SENTINEL_EFFECT
                                    and param == SENTINEL_PARAM):
                                logger.debug(f"sentinel cell at pattern {p} row {r} "
                                             f"channel {c}")
                                outcome.fingerprint = SENTINEL_FINGERPRINT
                                outcome.sentinel = True
                                return outcome
                        if note != NOTE_NONE:
                            acc.update_byte(note)
                            outcome.notes_hashed += 1
    finally:
        if num_songs:
            module.select_subsong(0)

    outcome.fingerprint = acc.value
    return outcome


def pattern_hash(module) -> int:
    """Plain fingerprint, no effect reads."""
    return hash_patterns(module).fingerprint
