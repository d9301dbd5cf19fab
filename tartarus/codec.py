from __future__ import annotations

import io
import zlib
from typing import BinaryIO

from .constants import (
    BUFFER_SIZE,
    DEFAULT_COMPRESSION_LEVEL,
    DEFLATE_WBITS,
    HUFFMAN_ONLY,
    MAX_COMPRESSION_LEVEL,
    MIN_COMPRESSION_LEVEL,
)
from .errors import InvalidParameter, MalformedStreamError
from .streams import StreamWriter


def check_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise InvalidParameter(f"compression level must be an integer, got {level!r}")
    if not (MIN_COMPRESSION_LEVEL <= level <= MAX_COMPRESSION_LEVEL):
        raise InvalidParameter(
            f"invalid compression level {level}: want value in range [{MIN_COMPRESSION_LEVEL}, {MAX_COMPRESSION_LEVEL}]"
        )
    return level


class DeflateWriter(StreamWriter):
    """Raw deflate compressor over a byte sink.

    The final block is only written by ``close()``; an unclosed writer leaves a
    truncated stream that the reader rejects.
    """

    def __init__(self, sink: BinaryIO, level: int = DEFAULT_COMPRESSION_LEVEL):
        check_level(level)
        super().__init__(sink)
        self.level = level
        if level == HUFFMAN_ONLY:
            self._z = zlib.compressobj(
                zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, DEFLATE_WBITS, 8, zlib.Z_HUFFMAN_ONLY
            )
        else:
            self._z = zlib.compressobj(level, zlib.DEFLATED, DEFLATE_WBITS)
        self.bytes_in = 0
        self.bytes_out = 0

    def _emit(self, out: bytes) -> None:
        if out:
            self._sink.write(out)
            self.bytes_out += len(out)

    def write(self, data) -> int:
        self._check_open()
        n = len(data)
        if n:
            self._emit(self._z.compress(data))
            self.bytes_in += n
        return n

    def flush(self) -> None:
        # Sync flush: everything written so far becomes decodable
        self._check_open()
        self._emit(self._z.flush(zlib.Z_SYNC_FLUSH))
        super().flush()

    def _finalize(self) -> None:
        self._emit(self._z.flush(zlib.Z_FINISH))

    def _release(self) -> None:
        self._z = None
        super()._release()


class InflateReader(io.RawIOBase):
    """Pull-based raw deflate decompressor over a byte source.

    Reads past the logical end return ``b""``; a source that ends before the
    final block raises ``MalformedStreamError``. Bytes trailing the final block
    are ignored.
    """

    def __init__(self, source: BinaryIO, bufsize: int = BUFFER_SIZE):
        super().__init__()
        self._src = source
        self._bufsize = bufsize
        self._z = zlib.decompressobj(DEFLATE_WBITS)

    def readable(self) -> bool:
        return True

    @property
    def eof(self) -> bool:
        return self._z.eof

    def readinto(self, b) -> int:
        want = len(b)
        if want == 0:
            return 0
        while not self._z.eof:
            data = self._z.unconsumed_tail
            if not data:
                data = self._src.read(self._bufsize)
            # Called with no input, decompress still drains output zlib holds back
            try:
                out = self._z.decompress(data, want)
            except zlib.error as exc:
                raise MalformedStreamError(f"corrupt deflate stream: {exc}") from exc
            if out:
                n = len(out)
                b[:n] = out
                return n
            if not data and not self._z.eof:
                raise MalformedStreamError("unexpected end of deflate stream")
        return 0


def open_compressing_writer(sink: BinaryIO, level: int = DEFAULT_COMPRESSION_LEVEL) -> DeflateWriter:
    return DeflateWriter(sink, level)


def open_decompressing_reader(source: BinaryIO) -> InflateReader:
    return InflateReader(source)


def compress_bytes(data: bytes, level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    out = io.BytesIO()
    with DeflateWriter(out, level) as w:
        w.write(data)
    return out.getvalue()


def decompress_bytes(data: bytes) -> bytes:
    return InflateReader(io.BytesIO(data)).readall()
