"""modhash - Command Line

    python main.py -b /mnt/modland          # build database.db from a mirror
    python main.py -m ~/mods                # match local files against it
    python main.py --info song.xm           # fingerprint + metadata of one file
"""

import argparse
import logging
import sys
from typing import List, Optional

import config as config_mod
from catalog import open_database, build_database, match_dir_against_db
from extractor import hash_buffer_status, ExtractMode, ExtractStatus
from version import APP_DESCRIPTION, get_version_string

logger = logging.getLogger("modhash.main")

EXIT_OK = 0
EXIT_DECODE_FAILED = 1
EXIT_SENTINEL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=APP_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py -b /mnt/modland            # Build a new database
  python main.py -m incoming                # Match a directory
  python main.py -m . -f /incoming,/pub/favourites
  python main.py --info song.it --extended  # Show one module
        """
    )
    parser.add_argument("-b", "--build-database", metavar="DIR",
                        help="Build a new database from a local directory")
    parser.add_argument("-m", "--match-dir", metavar="DIR", default=".",
                        help="Directory to match against the database (default: .)")
    parser.add_argument("-f", "--filter-paths", default="",
                        help="Comma separated catalogue path prefixes to leave "
                             "out of the results, e.g. \"/incoming,/pub/favourites\"")
    parser.add_argument("--database", metavar="FILE",
                        help="Database file (default from config: database.db)")
    parser.add_argument("--config", metavar="FILE",
                        help="Configuration file (default: modhash.json next to main.py)")
    parser.add_argument("--info", metavar="FILE",
                        help="Print fingerprint and metadata of one module and exit")
    parser.add_argument("--extended", action="store_true",
                        help="Extended extraction (sample records, sentinel check)")
    parser.add_argument("--verbose", action="store_true",
                        help="Per-cell diagnostics and debug logging")
    parser.add_argument("--workers", type=int,
                        help="Hashing processes for -b (default: one per CPU)")
    parser.add_argument("--version", action="version", version=get_version_string())
    return parser


def print_info(path: str, mode: ExtractMode, verbose: bool, keep_module: bool) -> int:
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        print(f"Cannot read {path}: {e}")
        return EXIT_DECODE_FAILED

    status, result = hash_buffer_status(data, mode, verbose=verbose,
                                        keep_module=keep_module)
    if result is None:
        print(f"{path}: not a supported module ({status.name})")
        return EXIT_DECODE_FAILED

    with result:
        print(f"File:         {path}")
        print(f"Fingerprint:  {result.fingerprint} ({result.fingerprint:016x})")
        print(f"Status:       {result.status.name}")
        print(f"Channels:     {result.channel_count}")
        if result.status == ExtractStatus.SENTINEL:
            return EXIT_SENTINEL
        if mode == ExtractMode.EXTENDED:
            print(f"Type:         {result.format_type}")
            print(f"Title:        {result.title}")
        print(f"Artist:       {result.artist}")
        if result.comments:
            print("Comments:")
            for line in result.comments.splitlines():
                print(f"  {line}")
        if mode == ExtractMode.EXTENDED:
            print(f"Instruments:  {result.instrument_count}")
            for i, name in enumerate(result.instrument_names):
                print(f"  {i + 1:3d} {name}")
            print(f"Samples:      {result.sample_count}")
            for smp in result.samples:
                print(f"  {smp.sample_id:3d} {smp.name:<28} {smp.length_frames:8d} frames "
                      f"{smp.bits:2d}-bit{' stereo' if smp.stereo else ''} "
                      f"vol {smp.volume:3d} c5 {smp.c5_speed}")
        else:
            print("Names:")
            for line in result.sample_names.splitlines():
                print(f"  {line}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cfg = config_mod.load_config(args.config)
    if args.extended:
        cfg.mode = "extended"
    if args.verbose:
        cfg.verbose = True
    if args.database:
        cfg.database = args.database
    if args.workers is not None:
        cfg.workers = args.workers
    mode = ExtractMode.EXTENDED if cfg.extended else ExtractMode.BASIC
    logger.debug(f"mode={mode.value} database={cfg.database} config={cfg.source}")

    if args.info:
        return print_info(args.info, mode, cfg.verbose, cfg.keep_module)

    if args.build_database:
        conn = open_database(cfg.database, create=True)
        print("Hashing files")
        build_database(args.build_database, conn, cfg.workers, cfg.exclude_suffixes)
    else:
        conn = open_database(cfg.database)

    try:
        match_dir_against_db(args.match_dir, args.filter_paths, conn,
                             cfg.url_prefix, cfg.exclude_suffixes)
    finally:
        conn.close()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
