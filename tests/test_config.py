"""Tests for config.py - modhash.json loading and validation.

Covers:
- Defaults when no file exists
- Valid overrides
- JSON error handling
- Unknown keys and wrong types
- Default file generation round-trip
"""
import sys
import os
import json
import tempfile
import shutil
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from config import load_config, generate_default_config, write_default_config, DEFAULTS
from constants import DEFAULT_DATABASE, DEFAULT_URL_PREFIX


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, config.CONFIG_FILENAME)

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _write(self, content):
        with open(self.path, 'w', encoding='utf-8') as f:
            if isinstance(content, str):
                f.write(content)
            else:
                json.dump(content, f)

    def test_missing_file_gives_defaults(self):
        cfg = load_config(self.path)
        self.assertEqual(cfg.mode, "basic")
        self.assertEqual(cfg.database, DEFAULT_DATABASE)
        self.assertEqual(cfg.url_prefix, DEFAULT_URL_PREFIX)
        self.assertEqual(cfg.exclude_suffixes, [".listing"])
        self.assertEqual(cfg.source, "defaults")
        self.assertEqual(cfg.errors, [])

    def test_overrides(self):
        self._write({"mode": "EXTENDED", "verbose": True, "workers": 3,
                     "database": "mods.db", "exclude_suffixes": [".txt", ".nfo"],
                     "_comment": "ignored"})
        cfg = load_config(self.path)
        self.assertEqual(cfg.mode, "extended")
        self.assertTrue(cfg.extended)
        self.assertTrue(cfg.verbose)
        self.assertEqual(cfg.workers, 3)
        self.assertEqual(cfg.database, "mods.db")
        self.assertEqual(cfg.exclude_suffixes, [".txt", ".nfo"])
        self.assertEqual(cfg.source, self.path)
        self.assertEqual(cfg.warnings, [])

    def test_parse_error(self):
        self._write("{not json")
        cfg = load_config(self.path)
        self.assertEqual(len(cfg.errors), 1)
        self.assertIn("parse error", cfg.errors[0])
        self.assertEqual(cfg.mode, "basic")
        self.assertTrue(cfg.source.startswith("defaults"))

    def test_root_must_be_object(self):
        self._write([1, 2])
        cfg = load_config(self.path)
        self.assertEqual(len(cfg.errors), 1)

    def test_unknown_key(self):
        self._write({"colour": "blue"})
        cfg = load_config(self.path)
        self.assertEqual(len(cfg.warnings), 1)
        self.assertIn("colour", cfg.warnings[0])

    def test_wrong_types_keep_defaults(self):
        self._write({"verbose": "yes", "workers": True, "mode": "fast",
                     "url_prefix": 5, "exclude_suffixes": ".listing"})
        cfg = load_config(self.path)
        self.assertEqual(len(cfg.warnings), 5)
        self.assertFalse(cfg.verbose)
        self.assertEqual(cfg.workers, 0)
        self.assertEqual(cfg.mode, "basic")
        self.assertEqual(cfg.url_prefix, DEFAULT_URL_PREFIX)

    def test_negative_workers(self):
        self._write({"workers": -2})
        cfg = load_config(self.path)
        self.assertEqual(cfg.workers, 0)
        self.assertEqual(len(cfg.warnings), 1)

    def test_generated_default_loads_cleanly(self):
        self.assertTrue(write_default_config(self.path))
        self.assertFalse(write_default_config(self.path))
        cfg = load_config(self.path)
        self.assertEqual(cfg.errors, [])
        self.assertEqual(cfg.warnings, [])
        self.assertEqual(cfg.to_dict(), DEFAULTS)

    def test_generated_default_is_json(self):
        data = json.loads(generate_default_config())
        for key in DEFAULTS:
            self.assertIn(key, data)


if __name__ == '__main__':
    unittest.main()
