"""Flat-file deflate compressor.

*Separate* mode mirrors a tree file by file as ``<rel>.deflate``. *Combined*
mode writes every regular file into a single deflate stream, each one framed
as::

    <relative path>\\n<decimal byte count>\\n<raw bytes>

so the decoder can stream entries back out without seeking or an index.
"""

from __future__ import annotations

import errno
import io
import logging
import os
from typing import BinaryIO, Iterator, List, Tuple

from .codec import DeflateWriter, InflateReader, check_level
from .constants import BUFFER_SIZE, DEFAULT_COMPRESSION_LEVEL, DEFLATE_SUFFIX
from .errors import MalformedStreamError, wrap_os_error
from .pathutil import safe_join, to_slash
from .streams import copy_stream


logger = logging.getLogger(__name__)

# Upper bound on an envelope header line; paths longer than this are malformed
MAX_HEADER_LINE = 64 * 1024


def _iter_files(src: str) -> Iterator[Tuple[str, str]]:
    """Yield (fs_path, rel_path) for every regular file under ``src`` in lexical order."""
    if not os.path.isdir(src):
        raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), src)
    for dirpath, dirnames, filenames in os.walk(src, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            if not os.path.isfile(full) or os.path.islink(full):
                continue
            yield full, to_slash(os.path.relpath(full, src))


def _raise(exc: OSError) -> None:
    raise exc


def _size(path: str) -> int:
    return os.stat(path).st_size


# -------- envelope codec --------

def write_envelope(sink: BinaryIO, rel_path: str, size: int, content: BinaryIO) -> int:
    """Write one envelope record; ``content`` must yield exactly ``size`` bytes."""
    if "\n" in rel_path or "\r" in rel_path:
        raise MalformedStreamError(f"path cannot be framed: {rel_path!r}")
    sink.write(f"{rel_path}\n{size}\n".encode("utf-8"))
    return copy_stream(content, sink, size)


def _read_line(reader: io.BufferedReader) -> bytes:
    line = reader.readline(MAX_HEADER_LINE)
    if line and not line.endswith(b"\n") and len(line) >= MAX_HEADER_LINE:
        raise MalformedStreamError("envelope header line too long")
    return line


def iter_envelopes(reader: io.BufferedReader) -> Iterator[Tuple[str, int]]:
    """Parse envelope headers; the caller must consume ``size`` bytes after each."""
    while True:
        name_line = _read_line(reader)
        if not name_line:
            return
        if not name_line.endswith(b"\n"):
            raise MalformedStreamError("unexpected end of stream in envelope path line")
        rel_path = name_line.decode("utf-8").strip()
        if not rel_path:
            raise MalformedStreamError("empty file name in envelope")
        size_line = _read_line(reader)
        if not size_line.endswith(b"\n"):
            raise MalformedStreamError(f"expected size after file name {rel_path}")
        size_str = size_line.decode("utf-8", errors="replace").strip()
        if not (size_str.isascii() and size_str.isdigit()):
            raise MalformedStreamError(f"invalid size {size_str!r} for file {rel_path}")
        yield rel_path, int(size_str)


# -------- combined --------

def _compress_combined(src: str, dst: str, level: int) -> None:
    tmp = dst + ".tmp"
    total = 0
    try:
        with open(tmp, "wb") as out:
            with DeflateWriter(out, level) as w:
                for full, rel in _iter_files(src):
                    size = _size(full)
                    with open(full, "rb") as fh:
                        write_envelope(w, rel, size, fh)
                    total += size
        os.replace(tmp, dst)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    logger.info("%s -> %s [%dB/%dB]", src, dst, total, _size(dst))


def _decompress_combined(src: str, dst: str) -> List[str]:
    written: List[str] = []
    with open(src, "rb") as fin, io.BufferedReader(InflateReader(fin), BUFFER_SIZE) as reader:
        for rel_path, size in iter_envelopes(reader):
            full = safe_join(dst, rel_path)
            os.makedirs(os.path.dirname(full) or ".", exist_ok=True)
            with open(full, "wb") as out:
                n = copy_stream(reader, out, size)
            logger.info("%s -> %s [%dB]", src, full, n)
            written.append(rel_path)
    return written


# -------- separate --------

def _compress_separate(src: str, dst: str, level: int) -> None:
    for full, rel in _iter_files(src):
        target = safe_join(dst, rel + DEFLATE_SUFFIX)
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(full, "rb") as fin, open(target, "wb") as fout:
            with DeflateWriter(fout, level) as w:
                copy_stream(fin, w)
        logger.info("%s -> %s [%dB/%dB]", full, target, _size(full), _size(target))


def _decompress_separate(src: str, dst: str) -> List[str]:
    written: List[str] = []
    for full, rel in _iter_files(src):
        if not rel.endswith(DEFLATE_SUFFIX):
            continue
        rel_out = rel[: -len(DEFLATE_SUFFIX)]
        target = safe_join(dst, rel_out)
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(full, "rb") as fin, open(target, "wb") as fout:
            with InflateReader(fin) as r:
                n = copy_stream(r, fout)
        logger.info("%s -> %s [%dB]", full, target, n)
        written.append(rel_out)
    return written


def compress(src: str, dst: str, separate: bool = False, level: int = DEFAULT_COMPRESSION_LEVEL) -> None:
    """Deflate every regular file under ``src``.

    Separate mode mirrors the tree under the ``dst`` directory; combined mode
    writes one envelope stream to the ``dst`` file (via ``dst + '.tmp'``).
    """
    check_level(level)
    try:
        if separate:
            _compress_separate(src, dst, level)
        else:
            _compress_combined(src, dst, level)
    except OSError as exc:
        raise wrap_os_error(exc) from exc


def decompress(src: str, dst: str, separate: bool = False) -> List[str]:
    """Inverse of :func:`compress`; returns the relative paths written."""
    try:
        if separate:
            return _decompress_separate(src, dst)
        return _decompress_combined(src, dst)
    except OSError as exc:
        raise wrap_os_error(exc) from exc
