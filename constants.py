"""modhash - Constants"""

# === FINGERPRINT (64-bit FNV-1a) ===
FNV_OFFSET_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211
U64_MASK = 0xFFFFFFFFFFFFFFFF

# Effect-aware traversal stops on this effect/parameter pair and reports
# SENTINEL_FINGERPRINT instead of a hash.
SENTINEL_EFFECT = 1
SENTINEL_PARAM = 0xFF
SENTINEL_FINGERPRINT = 1

# === NOTES ===
# Format-neutral note values: 1 = C-0 ... 120 = B-9
NOTE_NONE = 0
NOTE_MIN = 1
NOTE_MAX = 120
NOTE_FADE = 253
NOTE_CUT = 254
NOTE_KEYOFF = 255
NOTE_NAMES = ['C-', 'C#', 'D-', 'D#', 'E-', 'F-', 'F#', 'G-', 'G#', 'A-', 'A#', 'B-']

# === ORDER LIST MARKERS ===
ORDER_SKIP = 254   # "+++"
ORDER_END = 255    # "---"

# === EFFECT CODES (format-neutral) ===
EFFECT_NONE = 0
EFFECT_ARPEGGIO = 1
EFFECT_PORTA_UP = 2
EFFECT_PORTA_DOWN = 3
EFFECT_TONE_PORTA = 4
EFFECT_VIBRATO = 5
EFFECT_TONE_PORTA_VOL = 6
EFFECT_VIBRATO_VOL = 7
EFFECT_TREMOLO = 8
EFFECT_PANNING = 9
EFFECT_OFFSET = 10
EFFECT_VOLUME_SLIDE = 11
EFFECT_POSITION_JUMP = 12
EFFECT_VOLUME = 13
EFFECT_PATTERN_BREAK = 14
EFFECT_RETRIG = 15
EFFECT_SPEED = 16
EFFECT_TEMPO = 17
EFFECT_TREMOR = 18
EFFECT_MOD_EXTENDED = 19
EFFECT_S3M_EXTENDED = 20
EFFECT_CHANNEL_VOLUME = 21
EFFECT_CHANNEL_VOLSLIDE = 22
EFFECT_GLOBAL_VOLUME = 23
EFFECT_GLOBAL_VOLSLIDE = 24
EFFECT_KEYOFF = 25
EFFECT_FINE_VIBRATO = 26
EFFECT_PANBRELLO = 27
EFFECT_XFINE_PORTA = 28
EFFECT_PANNING_SLIDE = 29
EFFECT_SET_ENV_POSITION = 30
EFFECT_MIDI = 31

# === METADATA KEYS ===
META_TYPE = "type"
META_TYPE_LONG = "type_long"
META_TITLE = "title"
META_ARTIST = "artist"
META_TRACKER = "tracker"
META_MESSAGE = "message"
META_MESSAGE_RAW = "message_raw"
METADATA_KEYS = (META_TYPE, META_TYPE_LONG, META_TITLE, META_ARTIST,
                 META_TRACKER, META_MESSAGE, META_MESSAGE_RAW)

# === LIMITS ===
MAX_CHANNELS = 64
MAX_ORDERS = 256
MAX_PATTERNS = 4000
MAX_ROWS = 1024
MAX_SAMPLES = 4000
MAX_INSTRUMENTS = 256
# Cells stored across all patterns of one module
MAX_PATTERN_CELLS = 1 << 22
DEFAULT_ROWS = 64
MIN_MODULE_SIZE = 64  # nothing smaller can hold a module header

# === SAMPLE DEFAULTS ===
DEFAULT_C5_SPEED = 8363
DEFAULT_PANNING = 128      # centre, 0..256 scale
MAX_SAMPLE_VOLUME = 256    # volume scale used by SampleRecord
MAX_GLOBAL_VOLUME = 64

# === CATALOGUE ===
DEFAULT_DATABASE = "database.db"
DEFAULT_URL_PREFIX = "https://ftp.modland.com"
DEFAULT_EXCLUDE_SUFFIXES = (".listing",)


def note_to_str(note: int) -> str:
    """Format a note value for display ("C-5", "^^^", "==="...)."""
    if note == NOTE_NONE:
        return "..."
    if note == NOTE_KEYOFF:
        return "==="
    if note == NOTE_CUT:
        return "^^^"
    if note == NOTE_FADE:
        return "~~~"
    if NOTE_MIN <= note <= NOTE_MAX:
        idx = note - NOTE_MIN
        return f"{NOTE_NAMES[idx % 12]}{idx // 12}"
    return "???"
