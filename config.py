"""modhash - Configuration

Loads settings from modhash.json, validates them, and provides the values
used by the extractor, the catalogue and the command line.

Design:
- Every key is optional; missing keys keep their default
- Keys starting with "_" are comments and ignored
- Unknown keys and wrong value types produce warnings, never exceptions

On load errors: falls back to defaults and logs warnings.
"""

import json
import os
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

import runtime
from constants import DEFAULT_DATABASE, DEFAULT_URL_PREFIX, DEFAULT_EXCLUDE_SUFFIXES

logger = logging.getLogger("modhash.config")


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULTS: Dict[str, Any] = {
    "mode":             "basic",
    "verbose":          False,
    "database":         DEFAULT_DATABASE,
    "url_prefix":       DEFAULT_URL_PREFIX,
    "exclude_suffixes": list(DEFAULT_EXCLUDE_SUFFIXES),
    "workers":          0,
    "keep_module":      False,
}

KEY_DESCRIPTIONS: Dict[str, str] = {
    "mode":             "Extraction mode: \"basic\" or \"extended\"",
    "verbose":          "Per-cell diagnostics while hashing",
    "database":         "Catalogue database file",
    "url_prefix":       "Prepended to catalogue paths when printing matches",
    "exclude_suffixes": "File name endings skipped while scanning directories",
    "workers":          "Hashing processes (0 = one per CPU)",
    "keep_module":      "Results keep the decoded module alive",
}

VALID_MODES = ("basic", "extended")


@dataclass
class ExtractConfig:
    """Loaded and validated configuration."""
    mode: str = DEFAULTS["mode"]
    verbose: bool = DEFAULTS["verbose"]
    database: str = DEFAULTS["database"]
    url_prefix: str = DEFAULTS["url_prefix"]
    exclude_suffixes: List[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_SUFFIXES))
    workers: int = DEFAULTS["workers"]
    keep_module: bool = DEFAULTS["keep_module"]
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source: str = "defaults"    # "defaults" or path of the file read

    @property
    def extended(self) -> bool:
        return self.mode == "extended"

    def to_dict(self) -> dict:
        return {key: getattr(self, key) for key in DEFAULTS}


# =============================================================================
# CONFIG FILE PATH
# =============================================================================
CONFIG_FILENAME = "modhash.json"


def get_config_path() -> str:
    """Get path to modhash.json (next to the executable/main.py)."""
    return runtime.get_app_path(CONFIG_FILENAME)


# =============================================================================
# VALIDATION
# =============================================================================

def _check_value(key: str, value) -> Optional[str]:
    """Return an error message when ``value`` is not acceptable for ``key``."""
    if key in ("verbose", "keep_module"):
        if not isinstance(value, bool):
            return f"must be true or false, got {type(value).__name__}"
    elif key == "workers":
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            return f"must be an integer, got {type(value).__name__}"
        if value < 0:
            return f"must not be negative, got {value}"
    elif key == "mode":
        if not isinstance(value, str) or value.lower() not in VALID_MODES:
            return f"must be one of {', '.join(VALID_MODES)}, got {value!r}"
    elif key == "exclude_suffixes":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return "must be a list of strings"
    elif not isinstance(value, str):
        return f"must be a string, got {type(value).__name__}"
    return None


# =============================================================================
# LOADING
# =============================================================================

def load_config(path: Optional[str] = None) -> ExtractConfig:
    """Load configuration from ``path`` (default: modhash.json next to the app).

    A missing file gives the defaults silently.  Broken entries keep their
    default and are reported in ``errors``/``warnings``.
    """
    config = ExtractConfig()
    config_path = path or get_config_path()

    if not os.path.exists(config_path):
        if path:
            config.warnings.append(f"{config_path}: not found, using defaults")
            logger.warning(f"[CONFIG] {config_path} not found, using defaults")
        return config

    config.source = config_path
    name = os.path.basename(config_path)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        config.errors.append(f"{name}: JSON parse error: {e}")
        config.source = f"defaults ({name} has errors)"
        data = {}
    except OSError as e:
        config.errors.append(f"{name}: read error: {e}")
        config.source = f"defaults ({name} unreadable)"
        data = {}

    if not isinstance(data, dict):
        config.errors.append(f"{name}: root must be a JSON object {{}}")
        data = {}

    for key, value in data.items():
        if key.startswith("_"):
            continue
        if key not in DEFAULTS:
            config.warnings.append(
                f"Unknown setting '{key}' - ignored. "
                f"Valid settings: {', '.join(sorted(DEFAULTS))}")
            continue
        error = _check_value(key, value)
        if error:
            config.warnings.append(f"Setting '{key}': {error} - using default")
            continue
        if key == "mode":
            value = value.lower()
        elif key == "exclude_suffixes":
            value = list(value)
        setattr(config, key, value)

    for e in config.errors:
        logger.error(f"[CONFIG] {e}")
    for w in config.warnings:
        logger.warning(f"[CONFIG] {w}")
    logger.info(f"Config loaded from {config.source}")
    return config


# =============================================================================
# DEFAULT CONFIG FILE GENERATION
# =============================================================================

def generate_default_config() -> str:
    """Generate default modhash.json content."""
    data = {"_comment": "modhash configuration. Delete this file to reset to defaults."}
    for key, value in DEFAULTS.items():
        data[f"_{key}"] = KEY_DESCRIPTIONS[key]
        data[key] = value
    return json.dumps(data, indent=4)


def write_default_config(path: Optional[str] = None) -> bool:
    """Create the config file with defaults if it doesn't exist."""
    path = path or get_config_path()
    if os.path.exists(path):
        return False
    try:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(generate_default_config())
    except OSError as e:
        logger.warning(f"Could not create {path}: {e}")
        return False
    logger.info(f"Created default {os.path.basename(path)}")
    return True
