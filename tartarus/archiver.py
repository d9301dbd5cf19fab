from __future__ import annotations

import logging
import os
import stat
import tarfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Optional, Tuple

from .constants import BUFFER_SIZE
from .errors import FilesystemError, MalformedStreamError, wrap_os_error
from .pathutil import safe_join
from .streams import copy_stream


logger = logging.getLogger(__name__)

KIND_FILE = "file"
KIND_DIR = "directory"

PathPredicate = Callable[[str], bool]


@dataclass
class ArchiveEntry:
    path: str  # relative to the archive root, '/'-separated, no trailing slash
    kind: str
    size: int
    mode: int
    mtime: float
    fs_path: str

    @property
    def arcname(self) -> str:
        """Serialized name; directories carry a trailing '/'."""
        return self.path + "/" if self.kind == KIND_DIR else self.path


def _walk(top: str, prefix: str) -> Iterator[Tuple[os.DirEntry, str]]:
    """Lexical depth-first walk that never follows symlinks."""
    with os.scandir(top) as it:
        children = sorted(it, key=lambda de: de.name)
    for de in children:
        rel = de.name if not prefix else f"{prefix}/{de.name}"
        yield de, rel
        if de.is_dir(follow_symlinks=False):
            yield from _walk(de.path, rel)


def iter_entries(root: str, path_filter: Optional[PathPredicate] = None) -> Iterator[ArchiveEntry]:
    """Yield archive entries under ``root`` in a stable order.

    The root itself is never yielded. Directories are always yielded; only
    regular files rejected by ``path_filter`` are withheld, and their parent
    directories are still walked. Symlinks and special files are skipped.
    """
    try:
        for de, rel in _walk(root, ""):
            st = de.stat(follow_symlinks=False)
            if stat.S_ISDIR(st.st_mode):
                yield ArchiveEntry(rel, KIND_DIR, 0, stat.S_IMODE(st.st_mode), st.st_mtime, de.path)
            elif stat.S_ISREG(st.st_mode):
                if path_filter is not None and not path_filter(rel):
                    logger.info("Skipping file: %s", rel)
                    continue
                yield ArchiveEntry(rel, KIND_FILE, st.st_size, stat.S_IMODE(st.st_mode), st.st_mtime, de.path)
            else:
                logger.info("Skipping unsupported entry: %s", rel)
    except OSError as exc:
        raise wrap_os_error(exc) from exc


def _tarinfo(entry: ArchiveEntry) -> tarfile.TarInfo:
    info = tarfile.TarInfo(entry.arcname)
    info.type = tarfile.DIRTYPE if entry.kind == KIND_DIR else tarfile.REGTYPE
    info.size = entry.size if entry.kind == KIND_FILE else 0
    info.mode = entry.mode
    info.mtime = int(entry.mtime)
    return info


def serialize(root: str, sink: BinaryIO, path_filter: Optional[PathPredicate] = None) -> int:
    """Write the tree under ``root`` to ``sink`` as a tar entry stream.

    File contents are copied in ``BUFFER_SIZE`` chunks. Returns the number of
    entries written. Any filesystem error aborts the run as ``FilesystemError``;
    the end-of-archive marker is only written on success.
    """
    if not os.path.isdir(root):
        raise FilesystemError(f"archive root is not a directory: {root}")
    count = 0
    with tarfile.open(fileobj=sink, mode="w|", format=tarfile.PAX_FORMAT, bufsize=BUFFER_SIZE) as tar:
        for entry in iter_entries(root, path_filter):
            info = _tarinfo(entry)
            try:
                if entry.kind == KIND_FILE:
                    with open(entry.fs_path, "rb") as fh:
                        tar.addfile(info, fh)
                else:
                    tar.addfile(info)
            except OSError as exc:
                raise wrap_os_error(exc) from exc
            count += 1
    logger.debug("Serialized %d entries from %s", count, root)
    return count


class _TrackingReader:
    """Counts bytes pulled from a source so an empty stream can be told apart."""

    def __init__(self, source: BinaryIO):
        self._src = source
        self.consumed = 0

    def read(self, size: int = -1) -> bytes:
        data = self._src.read(size)
        self.consumed += len(data)
        return data


def _apply_mode(path: str, mode: Optional[int]) -> None:
    if not mode:
        return
    try:
        os.chmod(path, mode & 0o777)
    except OSError as exc:
        logger.warning("Failed to set mode on %s: %s", path, exc)


def deserialize(source: BinaryIO, dest_root: str) -> int:
    """Recreate entries read from a tar stream under ``dest_root``.

    Directories are created with their ancestors; files get parents created and
    exactly their declared number of bytes. Other entry types are skipped.
    Stops at end of stream. Returns the number of entries materialized.
    """
    tracked = _TrackingReader(source)
    try:
        tar = tarfile.open(fileobj=tracked, mode="r|", bufsize=BUFFER_SIZE)
    except tarfile.ReadError as exc:
        if tracked.consumed == 0:
            return 0
        raise MalformedStreamError(f"invalid archive stream: {exc}") from exc

    count = 0
    try:
        os.makedirs(dest_root, exist_ok=True)
        for member in tar:
            target = safe_join(dest_root, member.name)
            if member.isdir():
                os.makedirs(target, exist_ok=True)
            elif member.isreg():
                os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
                src = tar.extractfile(member)
                with open(target, "wb") as out:
                    copy_stream(src, out, member.size)
                _apply_mode(target, member.mode)
            else:
                logger.info("Skipping unsupported entry type %r: %s", member.type, member.name)
                continue
            count += 1
    except tarfile.TarError as exc:
        raise MalformedStreamError(f"invalid archive stream: {exc}") from exc
    except OSError as exc:
        raise wrap_os_error(exc) from exc
    finally:
        tar.close()
    logger.debug("Extracted %d entries into %s", count, dest_root)
    return count
