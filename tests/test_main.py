"""Tests for main.py - command line entry point."""
import sys
import os
import io
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from main import main, EXIT_OK, EXIT_DECODE_FAILED, EXIT_SENTINEL
from module_builders import make_mod, mod_note, make_it
from version import VERSION


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.cfg = os.path.join(self.tmpdir, "modhash.json")

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _file(self, name, data):
        path = os.path.join(self.tmpdir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def _run(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["--config", self.cfg] + list(argv))
        return code, out.getvalue()

    def test_info(self):
        path = self._file("song.mod", make_mod(pattern_data={0: {(0, 0): mod_note(60)}}))
        code, text = self._run("--info", path)
        self.assertEqual(code, EXIT_OK)
        self.assertIn("Channels:     4", text)
        self.assertIn("sample1", text)

    def test_info_extended(self):
        path = self._file("song.it", make_it(title="Tune", instruments=["lead"],
                                             samples=[{'name': "saw"}]))
        code, text = self._run("--info", path, "--extended")
        self.assertEqual(code, EXIT_OK)
        self.assertIn("Title:        Tune", text)
        self.assertIn("lead", text)
        self.assertIn("saw", text)

    def test_info_sentinel(self):
        path = self._file("s.mod", make_mod(pattern_data={0: {(0, 0): (0, 0, 0x0, 0xFF)}}))
        code, text = self._run("--info", path, "--extended")
        self.assertEqual(code, EXIT_SENTINEL)
        self.assertIn("SENTINEL", text)

    def test_info_not_a_module(self):
        path = self._file("x.bin", b"\x00" * 128)
        code, _ = self._run("--info", path)
        self.assertEqual(code, EXIT_DECODE_FAILED)

    def test_version(self):
        out = io.StringIO()
        with redirect_stdout(out), self.assertRaises(SystemExit) as cm:
            main(["--version"])
        self.assertEqual(cm.exception.code, 0)
        self.assertIn(VERSION, out.getvalue())

    def test_build_and_match(self):
        mirror = os.path.join(self.tmpdir, "mirror")
        os.makedirs(os.path.join(mirror, "pub"))
        song = make_mod(pattern_data={0: {(0, 0): mod_note(60)}})
        with open(os.path.join(mirror, "pub", "song.mod"), 'wb') as f:
            f.write(song)
        local = os.path.join(self.tmpdir, "local")
        os.makedirs(local)
        with open(os.path.join(local, "mine.mod"), 'wb') as f:
            f.write(song)
        db = os.path.join(self.tmpdir, "db.sqlite")
        code, text = self._run("-b", mirror, "-m", local, "--database", db,
                               "--workers", "1")
        self.assertEqual(code, EXIT_OK)
        self.assertIn("Found match https://ftp.modland.com/pub/song.mod "
                      "(hash) (pattern_hash)", text)


if __name__ == '__main__':
    unittest.main()
