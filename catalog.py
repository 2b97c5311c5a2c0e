"""modhash - Catalogue

SQLite catalogue of a module collection and matching of local files
against it.

Each catalogued file gets one row:
    path          path relative to the scanned root ("/pub/mods/x.mod")
    filehash      sha256 of the file bytes (hex)
    pattern_hash  note fingerprint as decimal text, NULL when undecodable
    samples       instrument/sample name blob, NULL when undecodable

A local file matches a row by identical bytes (sha256), by identical note
content (pattern hash), or both.
"""

import enum
import hashlib
import logging
import os
import sqlite3
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from tqdm import tqdm

import runtime
from constants import DEFAULT_EXCLUDE_SUFFIXES, DEFAULT_URL_PREFIX
from extractor import hash_file, ExtractMode
from version import DATABASE_VERSION

logger = logging.getLogger("modhash.catalog")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS data (
    path TEXT NOT NULL,
    filehash TEXT NOT NULL,
    pattern_hash TEXT,
    samples TEXT,
    PRIMARY KEY (path, filehash, pattern_hash)
)
"""


class MatchKind(enum.Flag):
    NONE = 0
    HASH = 1
    PATTERN_HASH = 2

    def label(self) -> str:
        parts = []
        if self & MatchKind.HASH:
            parts.append("(hash)")
        if self & MatchKind.PATTERN_HASH:
            parts.append("(pattern_hash)")
        return " ".join(parts)


@dataclass
class TrackInfo:
    filename: str
    sha256: str
    pattern_hash: Optional[int] = None
    sample_names: Optional[str] = None

    @property
    def has_fingerprint(self) -> bool:
        return self.pattern_hash is not None


# =============================================================================
# FILES
# =============================================================================

def iter_files(root: str,
               exclude_suffixes: Sequence[str] = DEFAULT_EXCLUDE_SUFFIXES) -> Iterator[str]:
    """Yield every regular file below ``root`` in a stable order."""
    suffixes = tuple(exclude_suffixes)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            if suffixes and name.endswith(suffixes):
                continue
            path = os.path.join(dirpath, name)
            if os.path.isfile(path):
                yield path


def file_sha256(path: str) -> str:
    hasher = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            hasher.update(chunk)
    return hasher.hexdigest()


def get_track_info(path: str) -> TrackInfo:
    """sha256 plus (when decodable) fingerprint and name blob of one file.

    Raises OSError when the file cannot be read at all.
    """
    info = TrackInfo(filename=path, sha256=file_sha256(path))
    result = hash_file(path, ExtractMode.BASIC)
    if result is not None:
        with result:
            info.pattern_hash = result.fingerprint
            info.sample_names = result.sample_names
    else:
        logger.debug(f"{path}: not a decodable module, sha256 only")
    return info


def relative_path(path: str, root: str) -> str:
    """``path`` with the ``root`` prefix removed, using "/" separators."""
    root = root.rstrip("/\\")
    if root and path.startswith(root):
        path = path[len(root):]
    return path.replace(os.sep, "/")


# =============================================================================
# DATABASE
# =============================================================================

def open_database(path: str, create: bool = False) -> sqlite3.Connection:
    """Open the catalogue; ``create`` starts over with an empty file."""
    if create and os.path.exists(path):
        os.remove(path)
        logger.info(f"Removed old database {path}")
    conn = sqlite3.connect(path)
    conn.execute(_SCHEMA)
    if create:
        conn.execute(f"PRAGMA user_version = {DATABASE_VERSION}")
    conn.commit()
    return conn


def collect_track_infos(files: List[str], workers: int = 0,
                        progress: bool = True) -> List[TrackInfo]:
    """Run get_track_info() over ``files``, in worker processes when workers != 1."""
    workers = runtime.get_worker_count(workers)
    infos = []
    if workers == 1:
        for path in tqdm(files, desc="Hashing files", unit="file", disable=not progress):
            try:
                infos.append(get_track_info(path))
            except OSError as e:
                logger.warning(f"Skipping {path}: {e}")
        return infos

    with ProcessPoolExecutor(max_workers=workers) as executor:
        future_to_file = {executor.submit(get_track_info, path): path for path in files}
        for future in tqdm(as_completed(future_to_file), total=len(files),
                           desc="Hashing files", unit="file", disable=not progress):
            path = future_to_file[future]
            try:
                infos.append(future.result())
            except OSError as e:
                logger.warning(f"Skipping {path}: {e}")
    # completion order is arbitrary
    infos.sort(key=lambda info: info.filename)
    return infos


def build_database(root: str, conn: sqlite3.Connection, workers: int = 0,
                   exclude_suffixes: Sequence[str] = DEFAULT_EXCLUDE_SUFFIXES,
                   progress: bool = True) -> int:
    """Catalogue every file below ``root``.  Returns the number of rows written."""
    files = list(iter_files(root, exclude_suffixes))
    logger.info(f"Hashing {len(files)} file(s) below {root}")
    infos = collect_track_infos(files, workers, progress)

    count = 0
    with conn:
        for info in infos:
            path = relative_path(info.filename, root)
            if info.has_fingerprint:
                conn.execute(
                    "INSERT OR IGNORE INTO data (filehash, pattern_hash, samples, path) "
                    "VALUES (?, ?, ?, ?)",
                    (info.sha256, str(info.pattern_hash), info.sample_names, path))
            else:
                conn.execute(
                    "INSERT OR IGNORE INTO data (filehash, path) VALUES (?, ?)",
                    (info.sha256, path))
            count += 1
    logger.info(f"Wrote {count} row(s), "
                f"{sum(1 for i in infos if i.has_fingerprint)} with a fingerprint")
    return count


# =============================================================================
# MATCHING
# =============================================================================

def parse_filters(filters) -> List[str]:
    """Accept "a,b" or a list; drop empty entries."""
    if not filters:
        return []
    if isinstance(filters, str):
        filters = filters.split(",")
    return [f.strip() for f in filters if f and f.strip()]


def filter_names(names: Sequence[str], filters) -> List[str]:
    """Drop every name that starts with one of the filter prefixes."""
    prefixes = tuple(parse_filters(filters))
    if not prefixes:
        return list(names)
    return [name for name in names if not name.startswith(prefixes)]


def paths_by_sha256(conn: sqlite3.Connection, sha256: str) -> List[str]:
    rows = conn.execute("SELECT path FROM data WHERE filehash = ?", (sha256,))
    return [row[0] for row in rows]


def paths_by_pattern_hash(conn: sqlite3.Connection, pattern_hash: int) -> List[str]:
    rows = conn.execute("SELECT path FROM data WHERE pattern_hash = ?",
                        (str(pattern_hash),))
    return [row[0] for row in rows]


def match_file(conn: sqlite3.Connection, info: TrackInfo, filters=None) -> Dict[str, MatchKind]:
    """Catalogue paths equal to ``info`` by bytes and/or note content."""
    found: Dict[str, MatchKind] = {}
    for path in filter_names(paths_by_sha256(conn, info.sha256), filters):
        found[path] = found.get(path, MatchKind.NONE) | MatchKind.HASH
    if info.has_fingerprint:
        for path in filter_names(paths_by_pattern_hash(conn, info.pattern_hash), filters):
            found[path] = found.get(path, MatchKind.NONE) | MatchKind.PATTERN_HASH
    return found


def match_url(path: str, url_prefix: str = DEFAULT_URL_PREFIX) -> str:
    return url_prefix + path.replace(" ", "%20")


def match_dir_against_db(directory: str, filters, conn: sqlite3.Connection,
                         url_prefix: str = DEFAULT_URL_PREFIX,
                         exclude_suffixes: Sequence[str] = DEFAULT_EXCLUDE_SUFFIXES
                         ) -> Dict[str, Dict[str, MatchKind]]:
    """Print catalogue matches for every file below ``directory``.

    Returns {local file: {catalogue path: MatchKind}}.
    """
    results = {}
    for filename in iter_files(directory, exclude_suffixes):
        try:
            info = get_track_info(filename)
        except OSError as e:
            logger.warning(f"Skipping {filename}: {e}")
            continue
        print(f"Matching {info.filename}")
        found = match_file(conn, info, filters)
        for path in sorted(found):
            print(f"Found match {match_url(path, url_prefix)} {found[path].label()}")
        if not found:
            print("No matches found!")
        print()
        results[filename] = found
    return results
