from __future__ import annotations

import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from typing import Dict, List, Tuple
from unittest import mock

from tartarus.cli import main
from tartarus.constants import NONCE_SIZE, PASSPHRASE_ENV, TAG_SIZE


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files = {
        "docs/readme.txt": b"hello world\n" * 20,
        "docs/notes/binary.bin": os.urandom(2048),
        "docs/notes/empty.txt": b"",
        "build/out.o": b"\x7fELF",
    }
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(content)
    return files


class CLIIntegrationTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def run_cli(self, args: List[str], *, expect: int = 0) -> Tuple[str, str]:
        out, err = io.StringIO(), io.StringIO()
        code = 0
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            try:
                main(args)
            except SystemExit as exc:
                code = exc.code if isinstance(exc.code, int) else 1
        self.assertEqual(code, expect, f"stdout={out.getvalue()!r} stderr={err.getvalue()!r}")
        return out.getvalue(), err.getvalue()

    def test_seal_unseal_with_filters(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            files = _build_fixture_tree(src)
            sealed = tmp_path / "backup.tar.deflate.enc"
            stdout, _ = self.run_cli([
                "seal", str(sealed), str(src), "--passphrase", "pw", "--level", "9",
                "--filter", "*.txt", "--filter", "*.bin",
            ])
            self.assertIn("Done: sealed", stdout)
            out = tmp_path / "out"
            self.run_cli(["unseal", str(sealed), "--outdir", str(out), "--passphrase", "pw"])
            for rel, content in files.items():
                if rel.endswith(".o"):
                    self.assertFalse((out / rel).exists())
                    self.assertTrue((out / rel).parent.is_dir())
                else:
                    self.assertEqual((out / rel).read_bytes(), content)

        self.run_with_tmpdir(scenario)

    def test_passphrase_from_environment(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src)
            sealed = tmp_path / "s.bin"
            with mock.patch.dict(os.environ, {PASSPHRASE_ENV: "from-env"}):
                self.run_cli(["seal", str(sealed), str(src)])
            self.run_cli(["unseal", str(sealed), "--outdir", str(tmp_path / "o"), "--passphrase", "from-env"])
            self.assertTrue((tmp_path / "o" / "docs" / "readme.txt").is_file())

        self.run_with_tmpdir(scenario)

    def test_wrong_passphrase_exit_code(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src)
            sealed = tmp_path / "s.bin"
            self.run_cli(["seal", str(sealed), str(src), "--passphrase", "correct"])
            _, stderr = self.run_cli(
                ["unseal", str(sealed), "--outdir", str(tmp_path / "o"), "--passphrase", "wrong"], expect=3
            )
            self.assertIn("Error:", stderr)
            self.assertFalse((tmp_path / "o").exists())

        self.run_with_tmpdir(scenario)

    def test_invalid_level_exit_code(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            sealed = tmp_path / "s.bin"
            _, stderr = self.run_cli(["seal", str(sealed), str(src), "--passphrase", "pw", "--level", "42"], expect=2)
            self.assertIn("invalid compression level", stderr)
            self.assertFalse(sealed.exists())

        self.run_with_tmpdir(scenario)

    def test_single_stage_commands(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            files = _build_fixture_tree(src)
            tar_path = tmp_path / "plain.tar"
            self.run_cli(["archive", str(tar_path), str(src)])
            self.run_cli(["extract", str(tar_path), "--outdir", str(tmp_path / "x")])
            for rel, content in files.items():
                self.assertEqual((tmp_path / "x" / rel).read_bytes(), content)

            comp = tmp_path / "plain.tar.deflate"
            self.run_cli(["compress", str(tar_path), str(comp), "--level", "5"])
            restored = tmp_path / "restored.tar"
            self.run_cli(["decompress", str(comp), str(restored)])
            self.assertEqual(restored.read_bytes(), tar_path.read_bytes())

            enc = tmp_path / "plain.tar.enc"
            self.run_cli(["encrypt", str(tar_path), str(enc), "--passphrase", "pw"])
            self.assertEqual(enc.stat().st_size, NONCE_SIZE + tar_path.stat().st_size + TAG_SIZE)
            dec = tmp_path / "dec.tar"
            self.run_cli(["decrypt", str(enc), str(dec), "--passphrase", "pw"])
            self.assertEqual(dec.read_bytes(), tar_path.read_bytes())

        self.run_with_tmpdir(scenario)

    def test_decrypt_tampered_creates_no_output(self):
        def scenario(tmp_path: Path):
            plain = tmp_path / "p.txt"
            plain.write_bytes(b"secret " * 100)
            enc = tmp_path / "p.enc"
            self.run_cli(["encrypt", str(plain), str(enc), "--passphrase", "pw"])
            data = bytearray(enc.read_bytes())
            data[NONCE_SIZE + 3] ^= 0x80
            enc.write_bytes(bytes(data))
            dec = tmp_path / "p.dec"
            self.run_cli(["decrypt", str(enc), str(dec), "--passphrase", "pw"], expect=3)
            self.assertFalse(dec.exists())

        self.run_with_tmpdir(scenario)

    def test_pack_unpack_modes(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            files = _build_fixture_tree(src)
            combined = tmp_path / "all.deflate"
            self.run_cli(["pack", str(src), str(combined)])
            self.run_cli(["unpack", str(combined), str(tmp_path / "c")])
            separate = tmp_path / "sep"
            self.run_cli(["pack", str(src), str(separate), "--separate", "--level", "1"])
            self.run_cli(["unpack", str(separate), str(tmp_path / "s"), "--separate"])
            for rel, content in files.items():
                self.assertEqual((tmp_path / "c" / rel).read_bytes(), content)
                self.assertEqual((tmp_path / "s" / rel).read_bytes(), content)

        self.run_with_tmpdir(scenario)

    def test_explorer_commands(self):
        def scenario(tmp_path: Path):
            (tmp_path / "a.txt").write_bytes(b"abc")
            self.run_cli(["cp", str(tmp_path / "a.txt"), str(tmp_path / "b.txt")])
            self.run_cli(["mv", str(tmp_path / "b.txt"), str(tmp_path / "c.txt")])
            stdout, _ = self.run_cli(["ls", str(tmp_path), "--json"])
            names = [e["name"] for e in json.loads(stdout)]
            self.assertEqual(names, ["a.txt", "c.txt"])
            self.run_cli(["rm", str(tmp_path / "c.txt")])
            stdout, _ = self.run_cli(["ls", str(tmp_path)])
            self.assertIn("a.txt", stdout)
            self.assertNotIn("c.txt", stdout)
            _, stderr = self.run_cli(["rm", str(tmp_path / "nope")], expect=2)
            self.assertIn("Error:", stderr)

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
