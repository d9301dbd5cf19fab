from __future__ import annotations

from typing import BinaryIO, Optional

from .constants import BUFFER_SIZE
from .errors import MalformedStreamError


class StreamWriter:
    """Write-side transform stacked on a byte sink.

    ``close()`` finalizes the transform (trailing blocks, tags) but never closes
    the sink underneath; the owner of the sink does that. ``abort()`` releases
    the transform without finalizing, leaving the sink's bytes unterminated.
    Used as a context manager, a writer closes on a clean exit and aborts when
    the block raises.
    """

    def __init__(self, sink: BinaryIO):
        self._sink = sink
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def writable(self) -> bool:
        return True

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed writer")

    def write(self, data) -> int:
        raise NotImplementedError

    def flush(self) -> None:
        self._check_open()
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        if self._closed:
            return
        try:
            self._finalize()
        finally:
            self._release()

    def abort(self) -> None:
        if not self._closed:
            self._release()

    def _finalize(self) -> None:
        pass

    def _release(self) -> None:
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()


def read_exact(source: BinaryIO, size: int, what: str = "data") -> bytes:
    """Read exactly ``size`` bytes or raise ``MalformedStreamError``."""
    buf = bytearray()
    while len(buf) < size:
        chunk = source.read(size - len(buf))
        if not chunk:
            raise MalformedStreamError(f"unexpected end of stream reading {what}: got {len(buf)} of {size} bytes")
        buf += chunk
    return bytes(buf)


def read_all(source: BinaryIO, bufsize: int = BUFFER_SIZE) -> bytearray:
    buf = bytearray()
    while True:
        chunk = source.read(bufsize)
        if not chunk:
            return buf
        buf += chunk


def copy_stream(src: BinaryIO, dst: BinaryIO, length: Optional[int] = None, bufsize: int = BUFFER_SIZE) -> int:
    """Copy ``src`` into ``dst`` in bounded chunks.

    With ``length`` set, exactly that many bytes are copied and a short source is
    a ``MalformedStreamError``; otherwise the copy runs until end of stream.
    Returns the number of bytes copied.
    """
    copied = 0
    while length is None or copied < length:
        want = bufsize if length is None else min(bufsize, length - copied)
        chunk = src.read(want)
        if not chunk:
            if length is not None:
                raise MalformedStreamError(f"unexpected end of stream: copied {copied} of {length} bytes")
            break
        dst.write(chunk)
        copied += len(chunk)
    return copied
