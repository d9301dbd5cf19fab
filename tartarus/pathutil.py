from __future__ import annotations

import os

from .errors import MalformedStreamError


def to_slash(p: str) -> str:
    """Convert OS separators to forward slashes."""
    if os.sep != "/":
        p = p.replace(os.sep, "/")
    if os.altsep and os.altsep != "/":
        p = p.replace(os.altsep, "/")
    return p


def safe_join(root: str, rel: str) -> str:
    """Resolve a stream entry name to a filesystem path inside ``root``.

    Entry names are '/'-separated (a '\\' counts as a separator too). Empty and
    '.' components collapse, a trailing '/' is allowed for directories, and a
    name that is absolute or steps upward with '..' is refused so extraction
    never lands outside ``root``.
    """
    if rel.startswith(("/", "\\")):
        raise MalformedStreamError(f"Absolute path in stream: {rel!r}")
    parts = [q for q in rel.replace("\\", "/").split("/") if q not in ("", ".")]
    if ".." in parts:
        raise MalformedStreamError(f"Parent reference in stream path: {rel!r}")
    return os.path.join(root, *parts) if parts else root
