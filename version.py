# -*- coding: utf-8 -*-
"""
modhash - Version Information

Release version plus the two format versions that decide whether stored
data is still comparable.
"""

VERSION = "0.3.0"
BUILD_DATE = "2026-10"

APP_NAME = "modhash"
APP_DESCRIPTION = ("Fingerprint tracker modules by note content and match "
                   "them against a catalogue")

# Bump when the traversal or hashed values change; stored hashes from an
# older version are then not comparable.
HASH_VERSION = 1

# Catalogue table layout, stored in PRAGMA user_version
DATABASE_VERSION = 1


def get_version_string() -> str:
    return f"{APP_NAME} {VERSION} (hash v{HASH_VERSION})"


__version__ = VERSION


if __name__ == "__main__":
    print(get_version_string())
    print(f"Build date: {BUILD_DATE}")
