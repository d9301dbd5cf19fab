from __future__ import annotations

import os
import sys
import time
import argparse
import json as _json
import logging
import getpass as _getpass

from typing import Any, BinaryIO, Callable, List, Optional

from tartarus import bundle, explorer
from tartarus.archiver import deserialize, serialize
from tartarus.codec import DeflateWriter, InflateReader, check_level
from tartarus.constants import DEFAULT_COMPRESSION_LEVEL, PASSPHRASE_ENV
from tartarus.encryption import EncryptingWriter, derive_keys, open_decrypting_reader
from tartarus.errors import AuthenticationFailure, TartarusError
from tartarus.filters import PathFilter
from tartarus.pipeline import seal, unseal
from tartarus.streams import copy_stream


def _resolve_passphrase(passphrase: Optional[str]) -> str:
    """Flag value, then the environment, then an interactive prompt."""
    if passphrase:
        return passphrase
    env = os.environ.get(PASSPHRASE_ENV)
    if env:
        return env
    return _getpass.getpass("Passphrase: ")


def _write_output(output: str, produce: Callable[[BinaryIO], Any]) -> Any:
    """Run ``produce`` against a fresh output file; delete the file if it fails."""
    with open(output, "wb") as out:
        try:
            return produce(out)
        except BaseException:
            out.close()
            try:
                os.remove(output)
            except OSError as exc:
                print(f"Warning: failed to remove partial output {output}: {exc}", file=sys.stderr)
            raise


def _mib(n: int) -> float:
    return n / (1024.0 * 1024.0)


# -------- pipeline --------

def cmd_seal(output: str, root: str, *, passphrase: Optional[str] = None, level: int = DEFAULT_COMPRESSION_LEVEL, filters: Optional[List[str]] = None) -> bool:
    """Archive, compress and encrypt a directory tree into one file.

    Args:
        output: Destination file for the encrypted frame.
        root: Directory to archive; its own name is not stored.
        passphrase: Encryption passphrase (resolved from env/prompt when omitted).
        level: Deflate level, -2..9.
        filters: Glob patterns; files matching none of them are skipped.
    """
    check_level(level)
    pw = _resolve_passphrase(passphrase)
    t0 = time.time()
    count = seal(root, output, passphrase=pw, compression_level=level, filters=filters)
    dt = max(0.000001, time.time() - t0)
    print(f"Done: sealed {count} entries into {output} ({_mib(os.path.getsize(output)):.2f} MiB) in {dt:.1f}s")
    return True


def cmd_unseal(archive: str, *, outdir: str = ".", passphrase: Optional[str] = None) -> bool:
    """Verify, decrypt, decompress and extract a sealed file into ``outdir``."""
    pw = _resolve_passphrase(passphrase)
    t0 = time.time()
    count = unseal(archive, outdir, passphrase=pw)
    dt = max(0.000001, time.time() - t0)
    print(f"Done: unsealed {count} entries into {outdir} in {dt:.1f}s")
    return True


# -------- single stages --------

def cmd_archive(output: str, root: str, *, filters: Optional[List[str]] = None) -> bool:
    path_filter = PathFilter(filters)
    count = _write_output(output, lambda out: serialize(root, out, path_filter))
    print(f"Done: archived {count} entries into {output}")
    return True


def cmd_extract(archive: str, *, outdir: str = ".") -> bool:
    with open(archive, "rb") as src:
        count = deserialize(src, outdir)
    print(f"Done: extracted {count} entries into {outdir}")
    return True


def cmd_compress(input_path: str, output: str, *, level: int = DEFAULT_COMPRESSION_LEVEL) -> bool:
    check_level(level)

    def produce(out: BinaryIO) -> None:
        with open(input_path, "rb") as fin, DeflateWriter(out, level) as w:
            copy_stream(fin, w)

    _write_output(output, produce)
    print(f"{input_path} -> {output} [{os.path.getsize(input_path)}B/{os.path.getsize(output)}B]")
    return True


def cmd_decompress(input_path: str, output: str) -> bool:
    def produce(out: BinaryIO) -> None:
        with open(input_path, "rb") as fin, InflateReader(fin) as r:
            copy_stream(r, out)

    _write_output(output, produce)
    print(f"{input_path} -> {output} [{os.path.getsize(output)}B]")
    return True


def cmd_encrypt(input_path: str, output: str, *, passphrase: Optional[str] = None) -> bool:
    pw = _resolve_passphrase(passphrase)
    derive_keys(pw)

    def produce(out: BinaryIO) -> None:
        with open(input_path, "rb") as fin, EncryptingWriter(out, pw) as w:
            copy_stream(fin, w)

    _write_output(output, produce)
    print(f"{input_path} -> {output} [{os.path.getsize(output)}B]")
    return True


def cmd_decrypt(input_path: str, output: str, *, passphrase: Optional[str] = None) -> bool:
    pw = _resolve_passphrase(passphrase)
    # The output file is only created once the tag has verified
    with open(input_path, "rb") as fin, open_decrypting_reader(fin, pw) as plain:
        _write_output(output, lambda out: copy_stream(plain, out))
    print(f"{input_path} -> {output} [{os.path.getsize(output)}B]")
    return True


# -------- flat-file compressor --------

def cmd_pack(src: str, dst: str, *, separate: bool = False, level: int = DEFAULT_COMPRESSION_LEVEL) -> bool:
    bundle.compress(src, dst, separate=separate, level=level)
    print("Compression completed successfully.")
    return True


def cmd_unpack(src: str, dst: str, *, separate: bool = False) -> bool:
    written = bundle.decompress(src, dst, separate=separate)
    print(f"Decompression completed successfully. ({len(written)} files)")
    return True


# -------- explorer --------

def cmd_ls(path: str, *, as_json: bool = False) -> bool:
    entries = explorer.list_directory(path)
    if as_json:
        print(_json.dumps([e.to_dict() for e in entries]))
        return True
    for e in entries:
        kind = "dir" if e.is_dir else "file"
        print(f"{kind}\t{e.size}\t{e.mod_time:%Y-%m-%d %H:%M:%S}\t{e.name}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="tartarus",
        description="Tartarus archive, compression and encryption tool",
        epilog=(
            f"Passphrases are taken from --passphrase, then ${PASSPHRASE_ENV}, then an interactive prompt."
        ),
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Log skipped entries and per-file progress")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_seal = sub.add_parser("seal", help="Archive, compress and encrypt a directory")
    ap_seal.add_argument("output", help="Output file")
    ap_seal.add_argument("root", help="Directory to seal")
    ap_seal.add_argument("--passphrase", help="Encryption passphrase")
    ap_seal.add_argument("--level", type=int, default=DEFAULT_COMPRESSION_LEVEL, help="Deflate level -2..9 (default -1)")
    ap_seal.add_argument("--filter", dest="filters", action="append", default=[], help="Glob pattern to include (repeatable)")

    ap_unseal = sub.add_parser("unseal", help="Decrypt, decompress and extract a sealed file")
    ap_unseal.add_argument("archive", help="Sealed file")
    ap_unseal.add_argument("--outdir", default=".", help="Output directory")
    ap_unseal.add_argument("--passphrase", help="Encryption passphrase")

    ap_archive = sub.add_parser("archive", help="Write a plain tar stream of a directory")
    ap_archive.add_argument("output", help="Output tar path")
    ap_archive.add_argument("root", help="Directory to archive")
    ap_archive.add_argument("--filter", dest="filters", action="append", default=[], help="Glob pattern to include (repeatable)")

    ap_extract = sub.add_parser("extract", help="Extract a plain tar stream")
    ap_extract.add_argument("archive", help="Tar path")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")

    ap_comp = sub.add_parser("compress", help="Deflate a single file")
    ap_comp.add_argument("input", help="Input file")
    ap_comp.add_argument("output", help="Output file")
    ap_comp.add_argument("--level", type=int, default=DEFAULT_COMPRESSION_LEVEL, help="Deflate level -2..9 (default -1)")

    ap_decomp = sub.add_parser("decompress", help="Inflate a single file")
    ap_decomp.add_argument("input", help="Input file")
    ap_decomp.add_argument("output", help="Output file")

    ap_enc = sub.add_parser("encrypt", help="Encrypt a single file")
    ap_enc.add_argument("input", help="Input file")
    ap_enc.add_argument("output", help="Output file")
    ap_enc.add_argument("--passphrase", help="Encryption passphrase")

    ap_dec = sub.add_parser("decrypt", help="Verify and decrypt a single file")
    ap_dec.add_argument("input", help="Input file")
    ap_dec.add_argument("output", help="Output file")
    ap_dec.add_argument("--passphrase", help="Encryption passphrase")

    ap_pack = sub.add_parser("pack", help="Deflate every file under a directory")
    ap_pack.add_argument("src", help="Source directory")
    ap_pack.add_argument("dst", help="Output file (combined) or directory (--separate)")
    ap_pack.add_argument("--separate", action="store_true", help="One .deflate file per input file")
    ap_pack.add_argument("--level", type=int, default=DEFAULT_COMPRESSION_LEVEL, help="Deflate level -2..9 (default -1)")

    ap_unpack = sub.add_parser("unpack", help="Inverse of pack")
    ap_unpack.add_argument("src", help="Combined file or directory of .deflate files (--separate)")
    ap_unpack.add_argument("dst", help="Output directory")
    ap_unpack.add_argument("--separate", action="store_true", help="Input is a directory of .deflate files")

    ap_ls = sub.add_parser("ls", help="List a directory")
    ap_ls.add_argument("path", nargs="?", default=".", help="Directory to list")
    ap_ls.add_argument("--json", action="store_true", help="Emit JSON")

    ap_mv = sub.add_parser("mv", help="Move or rename a file or directory")
    ap_mv.add_argument("src")
    ap_mv.add_argument("dst")

    ap_cp = sub.add_parser("cp", help="Copy a file or directory tree")
    ap_cp.add_argument("src")
    ap_cp.add_argument("dst")

    ap_rm = sub.add_parser("rm", help="Delete a file or directory tree")
    ap_rm.add_argument("path")

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        if args.cmd == "seal":
            cmd_seal(args.output, args.root, passphrase=args.passphrase, level=args.level, filters=args.filters)
        elif args.cmd == "unseal":
            cmd_unseal(args.archive, outdir=args.outdir, passphrase=args.passphrase)
        elif args.cmd == "archive":
            cmd_archive(args.output, args.root, filters=args.filters)
        elif args.cmd == "extract":
            cmd_extract(args.archive, outdir=args.outdir)
        elif args.cmd == "compress":
            cmd_compress(args.input, args.output, level=args.level)
        elif args.cmd == "decompress":
            cmd_decompress(args.input, args.output)
        elif args.cmd == "encrypt":
            cmd_encrypt(args.input, args.output, passphrase=args.passphrase)
        elif args.cmd == "decrypt":
            cmd_decrypt(args.input, args.output, passphrase=args.passphrase)
        elif args.cmd == "pack":
            cmd_pack(args.src, args.dst, separate=args.separate, level=args.level)
        elif args.cmd == "unpack":
            cmd_unpack(args.src, args.dst, separate=args.separate)
        elif args.cmd == "ls":
            cmd_ls(args.path, as_json=args.json)
        elif args.cmd == "mv":
            explorer.move(args.src, args.dst)
        elif args.cmd == "cp":
            explorer.copy(args.src, args.dst)
        elif args.cmd == "rm":
            explorer.delete(args.path)
        else:
            raise RuntimeError("Unknown command")
    except AuthenticationFailure as e:
        print(f"Error: {e}. Wrong passphrase or tampered data; no output was trusted.", file=sys.stderr)
        sys.exit(3)
    except (TartarusError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
