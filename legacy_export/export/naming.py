"""Destination naming for exported archives.

Picks a filename in the export directory that does not collide with any
existing file or directory and stays under the filename length limit.

    "My Beatmap.osz"          -- nothing in the way
    "My Beatmap (1).osz"      -- first free disambiguated candidate
    "<213 chars of stem>.osz" -- truncated, extension preserved
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Max filename length (including extension).  255 is the common per-component
# limit; the safe-creation commit may append "_" + a 36-char UUID, so that
# much (plus slack) is reserved.
MAX_FILENAME_LENGTH: int = 255 - (32 + 4 + 2)

# Characters rejected by at least one major filesystem, plus control chars.
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# Windows device names; reserved with or without an extension ("nul.txt").
_RESERVED_NAMES: frozenset[str] = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

_FALLBACK_FILENAME = "export"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def split_extension(name: str) -> tuple[str, str]:
    """Split *name* at its last dot.

    The extension keeps its leading dot.  A name without a dot has an empty
    extension; a name that is only an extension (".osz") has an empty stem.
    """
    idx = name.rfind(".")
    if idx == -1:
        return name, ""
    return name[:idx], name[idx:]


def get_valid_filename(name: str) -> str:
    """Make *name* safe to use as a single path component.

    Illegal characters become ``_``, leading dots and surrounding whitespace
    are stripped so the result can never be hidden or traverse upwards.
    Trailing dots are stripped as well (Windows drops them silently), and a
    reserved device name such as ``CON`` gets a ``_`` appended.  An empty
    result falls back to ``"export"``.
    """
    safe = _INVALID_FILENAME_CHARS.sub("_", name).strip()
    safe = safe.lstrip(".").rstrip(". ").strip()
    head, dot, tail = safe.partition(".")
    if head.rstrip().upper() in _RESERVED_NAMES:
        safe = f"{head.rstrip()}_{dot}{tail}"
    return safe or _FALLBACK_FILENAME


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def next_best_filename(existing: Iterable[str], desired: str) -> str:
    """Return *desired*, or the first ``"{stem} ({n}){ext}"`` not in *existing*.

    Probing starts at n=1 and has no upper bound; it always terminates because
    *existing* is finite.
    """
    taken = set(existing)
    if desired not in taken:
        return desired

    stem, extension = split_extension(desired)
    n = 1
    while True:
        candidate = f"{stem} ({n}){extension}"
        if candidate not in taken:
            return candidate
        n += 1


def truncate_filename(
    name: str,
    extension: str,
    max_length: int = MAX_FILENAME_LENGTH,
) -> str:
    """Cut the stem of *name* so the whole name fits in *max_length*.

    The leading ``max_length - len(extension)`` characters of the stem are
    kept and *extension* is reattached verbatim.  Names already within the
    limit are returned unchanged.

    Raises
    ------
    ValueError
        If *extension* alone is longer than *max_length*.
    """
    if len(name) <= max_length:
        return name

    keep = max_length - len(extension)
    if keep < 0:
        raise ValueError(
            f"Extension {extension!r} is longer than the {max_length}-character filename limit"
        )

    stem = name[: len(name) - len(extension)] if name.endswith(extension) else name
    return f"{stem[:keep]}{extension}"


def resolve(existing: Iterable[str], base_name: str) -> str:
    """Compute the destination filename for *base_name*.

    *existing* must contain every file **and** directory name already present
    at the destination.  Disambiguation runs first; truncation then applies
    to the disambiguated stem.

    If truncation cuts the ``" (n)"`` suffix off and lands on a taken name,
    disambiguation restarts with the stem shortened enough to keep the suffix.
    """
    taken = set(existing)
    stem, extension = split_extension(base_name)
    chosen = truncate_filename(next_best_filename(taken, base_name), extension)
    if chosen not in taken:
        return chosen

    n = 1
    while True:
        suffix = f" ({n}){extension}"
        candidate = f"{stem[:max(MAX_FILENAME_LENGTH - len(suffix), 0)]}{suffix}"
        if candidate not in taken:
            return candidate
        n += 1


__all__ = [
    "MAX_FILENAME_LENGTH",
    "get_valid_filename",
    "next_best_filename",
    "resolve",
    "split_extension",
    "truncate_filename",
]
