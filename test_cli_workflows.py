from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from ue4pak.cli import format_size, parse_order, sort_records
from ue4pak.constants import COMPR_ZLIB
from ue4pak.reader import open_pak
from ue4pak.records import Record


REPO_ROOT = Path(__file__).resolve().parent


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "docs").mkdir()
    (root / "docs" / "notes").mkdir()
    content = b"hello world\n" * 20
    (root / "docs" / "readme.txt").write_bytes(content)
    files["docs/readme.txt"] = content

    bin_data = os.urandom(2048)
    (root / "docs" / "notes" / "binary.bin").write_bytes(bin_data)
    files["docs/notes/binary.bin"] = bin_data

    (root / "docs" / "notes" / "empty.txt").write_text("")
    files["docs/notes/empty.txt"] = b""
    return files


def _compare_extracted(files: Dict[str, bytes], outdir: Path):
    for name, data in files.items():
        path = outdir / name
        assert path.is_file(), f"Missing file: {path}"
        assert path.read_bytes() == data, f"File contents differ: {path}"


class CLIIntegrationTests(unittest.TestCase):
    def _run(self, cmd, expect, cwd):
        env = os.environ.copy()
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(REPO_ROOT) if not existing else f"{REPO_ROOT}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"Exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        return self._run([sys.executable, "-m", "ue4pak.cli"] + list(args), expect, cwd)

    def run_corrupt(self, args, *, expect: int | None = 0):
        return self._run([sys.executable, str(REPO_ROOT / "scripts" / "corrupt.py")] + list(args), expect, None)

    def make_temp_tree(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        root = Path(tmp.name)
        src = root / "src"
        src.mkdir()
        files = _build_fixture_tree(src)
        return root, src, files

    def test_pack_check_unpack_roundtrip(self):
        root, src, files = self.make_temp_tree()
        archive = root / "game.pak"
        self.run_cli(["pack", str(archive), str(src / "docs"), "--mount-point", "../../../", "-c", "zlib", "-b", "1K"])

        check_proc = self.run_cli(["check", str(archive)])
        self.assertEqual(check_proc.stdout, "All ok\n")

        outdir = root / "out"
        self.run_cli(["unpack", str(archive), "--outdir", str(outdir), "--check-integrity"])
        _compare_extracted(files, outdir)

        pak = open_pak(str(archive))
        self.assertEqual(pak.mount_point, "../../../")
        binary = next(r for r in pak.records if r.filename == "docs/notes/binary.bin")
        self.assertEqual(binary.compression_block_size, 1024)
        self.assertEqual(len(binary.compression_blocks), 2)

    def test_all_versions_from_list_file(self):
        root, src, files = self.make_temp_tree()
        listing = root / "paths.txt"
        listing.write_text(f"{src / 'docs'}\n", encoding="utf-8")
        for version in ("1", "2", "3"):
            archive = root / f"v{version}.pak"
            self.run_cli(["pack", str(archive), f"@{listing}", "--version", version])
            self.assertEqual(open_pak(str(archive)).version, int(version))
            self.run_cli(["check", str(archive)])
            outdir = root / f"out{version}"
            self.run_cli(["unpack", str(archive), "-o", str(outdir)])
            _compare_extracted(files, outdir)

    def test_zlib_rejected_for_old_versions(self):
        root, src, _ = self.make_temp_tree()
        archive = root / "old.pak"
        proc = self.run_cli(["pack", str(archive), str(src / "docs"), "--version", "2", "-c", "zlib"], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.assertFalse(archive.exists())

    def test_per_file_options_and_listing(self):
        root, src, _ = self.make_temp_tree()
        archive = root / "mixed.pak"
        self.run_cli([
            "pack",
            str(archive),
            f":zlib,level=best,rename=data/readme.txt:{src / 'docs' / 'readme.txt'}",
            f":rename=data/bin:{src / 'docs' / 'notes'}",
        ])
        names = self.run_cli(["list", str(archive), "--only-names", "--sort=-size,name"]).stdout.splitlines()
        self.assertEqual(names, ["data/bin/binary.bin", "data/readme.txt", "data/bin/empty.txt"])

        nul = self.run_cli(["list", str(archive), "data/bin", "-n", "-0"]).stdout
        self.assertEqual(nul, "data/bin/binary.bin\0data/bin/empty.txt\0")

        table = self.run_cli(["list", str(archive), "--human-readable"]).stdout
        self.assertIn("zlib", table)
        self.assertIn("2.0K", table)
        self.assertIn("Filename", table.splitlines()[0])

        info = self.run_cli(["info", str(archive)]).stdout
        self.assertIn("Version: 3", info)
        self.assertIn("Files: 3", info)
        self.assertIn("Mount point: (none)", info)

        outdir = root / "routed"
        self.run_cli(["unpack", str(archive), "-o", str(outdir), "--dirname-from-compression"])
        self.assertTrue((outdir / "zlib" / "data" / "readme.txt").is_file())
        self.assertTrue((outdir / "data" / "bin" / "binary.bin").is_file())

    def test_corruption_detected(self):
        root, src, _ = self.make_temp_tree()
        archive = root / "game.pak"
        self.run_cli(["pack", str(archive), str(src / "docs")])
        self.run_corrupt(["record", str(archive), "--name", "docs/readme.txt", "--within", "3"])

        check_proc = self.run_cli(["check", str(archive)], expect=1)
        self.assertIn("Found 1 error(s)", check_proc.stdout)
        self.assertIn("docs/readme.txt: checksum mismatch", check_proc.stderr)

        # Other files still pass when filtered out
        self.run_cli(["check", str(archive), "docs/notes"])

        outdir = root / "out"
        self.run_cli(["unpack", str(archive), "-o", str(outdir), "--check-integrity"], expect=1)
        self.assertFalse(outdir.exists())

    def test_bad_magic_is_hard_error(self):
        root, src, _ = self.make_temp_tree()
        archive = root / "game.pak"
        self.run_cli(["pack", str(archive), str(src / "docs")])
        size = archive.stat().st_size
        self.run_corrupt(["by-offset", str(archive), "--offset", str(size - 44)])
        proc = self.run_cli(["info", str(archive)], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.run_cli(["check", str(archive), "--ignore-magic"])

        missing = self.run_cli(["list", str(root / "missing.pak")], expect=2)
        self.assertIn("Error:", missing.stderr)

    def test_verbose_output(self):
        root, src, _ = self.make_temp_tree()
        archive = root / "game.pak"
        added = self.run_cli(["pack", str(archive), str(src / "docs"), "--verbose"]).stdout.splitlines()
        self.assertEqual(added, ["docs/notes/binary.bin", "docs/notes/empty.txt", "docs/readme.txt"])
        checked = self.run_cli(["check", str(archive), "-v"]).stdout.splitlines()
        self.assertIn("docs/readme.txt: OK", checked)
        self.assertEqual(checked[-1], "All ok")


class CLIHelperTests(unittest.TestCase):
    def test_sort_order(self):
        recs = [
            Record("b", 0, 10, 10),
            Record("a", 10, 5, 30, COMPR_ZLIB),
            Record("c", 15, 10, 10),
        ]
        order = parse_order("-size,name")
        self.assertEqual(order, [("size", True), ("name", False)])
        self.assertEqual([r.filename for r in sort_records(recs, order)], ["a", "b", "c"])
        by_offset = sort_records(recs, parse_order("-offset"))
        self.assertEqual([r.filename for r in by_offset], ["c", "a", "b"])
        with self.assertRaises(ValueError):
            parse_order("colour")

    def test_format_size(self):
        self.assertEqual(format_size(1023, True), "1023")
        self.assertEqual(format_size(1024, True), "1.0K")
        self.assertEqual(format_size(int(2.2 * 1024 * 1024), True), "2.2M")
        self.assertEqual(format_size(4096), "4096")


if __name__ == "__main__":
    unittest.main()
