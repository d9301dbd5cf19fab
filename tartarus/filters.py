from __future__ import annotations

import logging
import posixpath
import re
from typing import Callable, Iterable, List, Optional, Tuple


logger = logging.getLogger(__name__)


class _BadPattern(Exception):
    pass


def _class_member(pattern: str, i: int) -> Tuple[str, int]:
    """One literal character of a bracket class, honouring '\\' escapes."""
    if i >= len(pattern):
        raise _BadPattern("unterminated character class")
    c = pattern[i]
    if c == "\\":
        if i + 1 >= len(pattern):
            raise _BadPattern("dangling escape")
        return pattern[i + 1], i + 2
    if c in "-]":
        raise _BadPattern(f"unescaped {c!r} in character class")
    return c, i + 1


def _translate_class(pattern: str, i: int) -> Tuple[str, int]:
    negate = i < len(pattern) and pattern[i] in "^!"
    if negate:
        i += 1
    items: List[str] = []
    while True:
        if items and i < len(pattern) and pattern[i] == "]":
            i += 1
            break
        lo, i = _class_member(pattern, i)
        hi = lo
        if i < len(pattern) and pattern[i] == "-":
            hi, i = _class_member(pattern, i + 1)
            if hi < lo:
                raise _BadPattern(f"reversed range {lo}-{hi}")
        items.append(re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}")
    if negate:
        # A negated class still never matches the separator
        return "[^/" + "".join(items) + "]", i
    return "[" + "".join(items) + "]", i


def _translate(pattern: str) -> str:
    """Translate a shell glob into a regular expression.

    '*' and '?' never match '/'. A backslash makes the next character literal,
    both inside and outside bracket classes. Raises ``_BadPattern`` for a
    dangling escape or a malformed class.
    """
    out: List[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "\\":
            if i >= n:
                raise _BadPattern("dangling escape")
            out.append(re.escape(pattern[i]))
            i += 1
        elif c == "[":
            cls, i = _translate_class(pattern, i)
            out.append(cls)
        else:
            out.append(re.escape(c))
    return "".join(out)


def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(_translate(pattern))
    except (_BadPattern, re.error) as exc:
        logger.warning("Ignoring malformed filter pattern %s: %s", pattern, exc)
        return None


class PathFilter:
    """Admit relative paths whose base name or full path matches any glob.

    An empty pattern list admits everything. Malformed patterns never match
    and never raise, so filtering cannot abort an archive run.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self._patterns: Tuple[str, ...] = tuple(patterns or ())
        compiled = (_compile(p) for p in self._patterns)
        self._usable: Tuple[re.Pattern, ...] = tuple(rx for rx in compiled if rx is not None)

    @property
    def patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def admits_all(self) -> bool:
        return not self._patterns

    def matches(self, rel_path: str) -> bool:
        if not self._patterns:
            return True
        base = posixpath.basename(rel_path.rstrip("/")) or rel_path
        return any(rx.fullmatch(base) or rx.fullmatch(rel_path) for rx in self._usable)

    __call__ = matches

    def __repr__(self) -> str:
        return f"PathFilter({list(self._patterns)!r})"


def filter_func(patterns: Optional[Iterable[str]] = None) -> Callable[[str], bool]:
    """Return a predicate suitable for :func:`tartarus.archiver.serialize`."""
    return PathFilter(patterns).matches
