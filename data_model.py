"""modhash - Data Model

In-memory representation of a decoded tracker module, plus the small query
interface the fingerprint and metadata code read it through.  Decoders in
``formats/`` build these objects; nothing outside ``formats/`` should reach
into the lists directly.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import numpy as np
from constants import (NOTE_NONE, EFFECT_NONE, ORDER_SKIP, ORDER_END,
                       DEFAULT_C5_SPEED, DEFAULT_PANNING, MAX_GLOBAL_VOLUME,
                       MAX_SAMPLE_VOLUME, META_TYPE, META_TYPE_LONG, META_TITLE,
                       META_ARTIST, META_TRACKER, META_MESSAGE, META_MESSAGE_RAW,
                       METADATA_KEYS, DEFAULT_ROWS)


@dataclass
class Cell:
    """Single pattern cell (one row of one channel)."""
    note: int = NOTE_NONE
    instrument: int = 0
    volume: int = 0
    effect: int = EFFECT_NONE
    param: int = 0


# Row with nothing stored yet; shared, set_cell() swaps in a list first
_NO_CELLS: Tuple[Optional[Cell], ...] = ()


@dataclass
class Pattern:
    """Grid of rows x channels.

    Rows hold cells up to the highest channel written and may be shorter
    than the channel count; missing and None entries read as empty.
    """
    rows: List[Sequence[Optional[Cell]]] = field(default_factory=list)

    @classmethod
    def blank(cls, num_rows: int = DEFAULT_ROWS) -> 'Pattern':
        return cls([_NO_CELLS] * num_rows)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    def set_cell(self, row: int, channel: int, cell: Cell):
        cells = self.rows[row]
        if cells is _NO_CELLS:
            cells = self.rows[row] = []
        if channel >= len(cells):
            cells.extend([None] * (channel + 1 - len(cells)))
        cells[channel] = cell

    def cell(self, row: int, channel: int) -> Optional[Cell]:
        if 0 <= row < len(self.rows):
            cells = self.rows[row]
            if 0 <= channel < len(cells):
                return cells[channel]
        return None


@dataclass
class Sample:
    """Sample header and (optionally) its PCM payload.

    Attributes:
        length: Length in frames (a stereo frame is two values)
        volume: Default volume, 0-256
        panning: Default panning, 0-256
        global_volume: Sample global volume, 0-64
        c5_speed: Playback rate of middle C (S3M/IT/MOD)
        relative_tone / finetune: XM-style tuning (MOD finetune too)
        data: numpy int8/int16 array, shape (frames,) or (frames, 2);
              None when payloads were skipped or could not be decoded
    """
    name: str = ""
    filename: str = ""
    length: int = 0
    bits: int = 8
    stereo: bool = False
    loop_start: int = 0
    loop_end: int = 0
    global_volume: int = MAX_GLOBAL_VOLUME
    volume: int = MAX_SAMPLE_VOLUME
    panning: int = DEFAULT_PANNING
    has_panning: bool = False
    c5_speed: int = DEFAULT_C5_SPEED
    relative_tone: int = 0
    finetune: int = 0
    vib_type: int = 0
    vib_sweep: int = 0
    vib_depth: int = 0
    vib_rate: int = 0
    data: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def length_bytes(self) -> int:
        return self.length * (self.bits // 8) * (2 if self.stereo else 1)


@dataclass
class Instrument:
    name: str = ""
    filename: str = ""


@dataclass
class DecodedModule:
    """A parsed module and its query interface.

    ``sequences`` holds one order list per sequence (only IT-derived formats
    can have more than one in principle; every decoder here produces one).
    Subsongs are derived from the sequences when the decoder calls
    ``finalize()``.
    """
    format_id: str = ""
    format_name: str = ""
    title: str = ""
    artist: str = ""
    tracker: str = ""
    message: str = ""
    channels: int = 4
    sequences: List[List[int]] = field(default_factory=lambda: [[]])
    patterns: List[Pattern] = field(default_factory=list)
    samples: List[Sample] = field(default_factory=list)
    instruments: List[Instrument] = field(default_factory=list)
    subsongs: List[Tuple[int, int]] = field(default_factory=list)
    decode_log: object = field(default=None, repr=False)
    _sequence: int = field(default=0, repr=False)
    _order: int = field(default=0, repr=False)

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    def finalize(self):
        """Compute the subsong table and reset the cursor to subsong 0."""
        self.subsongs = find_subsongs(self.sequences)
        self._sequence, self._order = self.subsongs[0] if self.subsongs else (0, 0)

    # ------------------------------------------------------------------
    # song structure
    # ------------------------------------------------------------------

    def num_subsongs(self) -> int:
        return len(self.subsongs)

    def num_channels(self) -> int:
        return self.channels

    def select_subsong(self, index: int):
        if not 0 <= index < len(self.subsongs):
            raise IndexError(f"subsong {index} out of range (0-{len(self.subsongs) - 1})")
        self._sequence, self._order = self.subsongs[index]

    def current_order(self) -> int:
        return self._order

    def num_orders(self) -> int:
        if 0 <= self._sequence < len(self.sequences):
            return len(self.sequences[self._sequence])
        return 0

    def order_to_pattern(self, order: int) -> int:
        orders = self.sequences[self._sequence] if self._sequence < len(self.sequences) else []
        if 0 <= order < len(orders):
            return orders[order]
        return ORDER_END

    def num_patterns(self) -> int:
        return len(self.patterns)

    def pattern_num_rows(self, pattern: int) -> int:
        if 0 <= pattern < len(self.patterns):
            return self.patterns[pattern].num_rows
        return 0

    def _cell(self, pattern: int, row: int, channel: int) -> Optional[Cell]:
        if 0 <= pattern < len(self.patterns):
            return self.patterns[pattern].cell(row, channel)
        return None

    def cell_note(self, pattern: int, row: int, channel: int) -> int:
        cell = self._cell(pattern, row, channel)
        return cell.note if cell is not None else NOTE_NONE

    def cell_effect(self, pattern: int, row: int, channel: int) -> int:
        cell = self._cell(pattern, row, channel)
        return cell.effect if cell is not None else EFFECT_NONE

    def cell_effect_param(self, pattern: int, row: int, channel: int) -> int:
        cell = self._cell(pattern, row, channel)
        return cell.param if cell is not None else 0

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    def metadata_keys(self) -> Tuple[str, ...]:
        return METADATA_KEYS

    def metadata_field(self, key: str) -> str:
        if key == META_TYPE:
            return self.format_id
        if key == META_TYPE_LONG:
            return self.format_name
        if key == META_TITLE:
            return self.title
        if key == META_ARTIST:
            return self.artist
        if key == META_TRACKER:
            return self.tracker
        if key == META_MESSAGE_RAW:
            return self.message
        if key == META_MESSAGE:
            if self.message:
                return self.message
            # No song message: fall back to instrument and sample texts
            return "\n".join(self.instrument_names() + self.sample_names())
        return ""

    def num_samples(self) -> int:
        return len(self.samples)

    def sample_record(self, index: int) -> Sample:
        """Sample by 1-based index."""
        if not 1 <= index <= len(self.samples):
            raise IndexError(f"sample {index} out of range (1-{len(self.samples)})")
        return self.samples[index - 1]

    def sample_names(self) -> List[str]:
        return [s.name for s in self.samples]

    def num_instruments(self) -> int:
        return len(self.instruments)

    def instrument_name(self, index: int) -> str:
        """Instrument name by 0-based index."""
        if not 0 <= index < len(self.instruments):
            raise IndexError(f"instrument {index} out of range")
        return self.instruments[index].name

    def instrument_names(self) -> List[str]:
        return [i.name for i in self.instruments]


def find_subsongs(sequences: List[List[int]]) -> List[Tuple[int, int]]:
    """Return (sequence, start_order) for every subsong.

    Each sequence starts a subsong at order 0.  An end marker followed by at
    least one playable pattern entry starts another one at that entry.
    """
    subsongs = []
    for seq_idx, orders in enumerate(sequences):
        subsongs.append((seq_idx, 0))
        pending = False
        for pos, pat in enumerate(orders):
            if pat == ORDER_END:
                pending = True
            elif pat == ORDER_SKIP:
                continue
            elif pending:
                if pos != 0:
                    subsongs.append((seq_idx, pos))
                pending = False
    return subsongs
