# -*- coding: utf-8 -*-
"""
Runtime utilities for detecting bundled vs development mode.

When running as a PyInstaller bundle the configuration file lives next to
the executable; from source it lives next to main.py.
"""

import os
import sys


def is_bundled() -> bool:
    """Check if running as a PyInstaller bundle."""
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_app_dir() -> str:
    """Get the application directory (where the executable/main.py lives)."""
    if is_bundled():
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))


def get_app_path(filename: str) -> str:
    """Absolute path of ``filename`` inside the application directory."""
    return os.path.join(get_app_dir(), filename)


def get_worker_count(requested: int = 0) -> int:
    """Number of hashing processes; 0 or less means one per CPU."""
    if requested and requested > 0:
        return requested
    return os.cpu_count() or 1


if __name__ == "__main__":
    print(f"Is bundled: {is_bundled()}")
    print(f"App dir: {get_app_dir()}")
    print(f"Workers: {get_worker_count()}")
