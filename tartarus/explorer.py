from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List

from .constants import BUFFER_SIZE
from .errors import wrap_os_error
from .streams import copy_stream


logger = logging.getLogger(__name__)


@dataclass
class FileEntry:
    name: str
    path: str
    is_dir: bool
    size: int
    mod_time: datetime
    mode: int

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["mod_time"] = self.mod_time.isoformat()
        d["mode"] = stat.filemode(self.mode)
        return d


def list_directory(path: str) -> List[FileEntry]:
    """List the immediate children of ``path``; entries that cannot be stat'ed are skipped."""
    try:
        with os.scandir(path) as it:
            children = sorted(it, key=lambda de: de.name)
    except OSError as exc:
        raise wrap_os_error(exc) from exc
    results: List[FileEntry] = []
    for de in children:
        try:
            st = de.stat(follow_symlinks=False)
        except OSError as exc:
            logger.debug("Skipping %s: %s", de.path, exc)
            continue
        results.append(
            FileEntry(
                name=de.name,
                path=os.path.join(path, de.name),
                is_dir=stat.S_ISDIR(st.st_mode),
                size=st.st_size,
                mod_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                mode=st.st_mode,
            )
        )
    return results


def rename(old_path: str, new_path: str) -> None:
    try:
        os.rename(old_path, new_path)
    except OSError as exc:
        raise wrap_os_error(exc) from exc


def move(src: str, dst: str) -> None:
    """Move a file or directory; same semantics as :func:`rename`."""
    rename(src, dst)


def delete(path: str) -> None:
    """Remove a file, or a directory and everything beneath it."""
    try:
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except OSError as exc:
        raise wrap_os_error(exc) from exc


def _copy_file(src: str, dst: str) -> None:
    parent = os.path.dirname(dst)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        copy_stream(fin, fout, bufsize=BUFFER_SIZE)


def _copy_dir(src: str, dst: str) -> None:
    os.makedirs(dst, exist_ok=True)
    with os.scandir(src) as it:
        children = sorted(it, key=lambda de: de.name)
    for de in children:
        target = os.path.join(dst, de.name)
        if de.is_dir():
            _copy_dir(de.path, target)
        else:
            _copy_file(de.path, target)


def copy(src: str, dst: str) -> None:
    """Copy a file or a directory tree to ``dst``, creating parents as needed."""
    try:
        if os.path.isdir(src):
            _copy_dir(src, dst)
        else:
            _copy_file(src, dst)
    except OSError as exc:
        raise wrap_os_error(exc) from exc
