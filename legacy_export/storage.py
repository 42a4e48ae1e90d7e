"""Storage backends: content store and export store, each Protocol + Local + Memory.

The content store maps a content hash to bytes.  LocalContentStore keeps the
blobs in a hashed directory layout under ``<data dir>/files``; MemoryContentStore
keeps them in a dict (for cloud / stateless mode and tests).

The export store is the directory finished archives are written to.  Its
``create_safely`` never replaces an existing file: bytes are written to a
hidden temp file and only committed under the final name once the writer
finished without error.

Use ``create_content_store()`` / ``create_export_store()`` to obtain the
implementation for the current ``LEGACY_EXPORT_MODE`` environment variable.
"""

from __future__ import annotations

import errno
import fnmatch
import hashlib
import io
import logging
import os
import re
import tempfile
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Literal, Protocol
from uuid import uuid4

from legacy_export.export.naming import split_extension
from legacy_export.reveal import reveal_in_file_browser

logger = logging.getLogger("legacy_export.storage")

# ---------------------------------------------------------------------------
# LEGACY_EXPORT_MODE helpers
# ---------------------------------------------------------------------------

ExportMode = Literal["local", "cloud"]
_VALID_MODES: frozenset[str] = frozenset({"local", "cloud"})

DEFAULT_DATA_DIR = "/data"
FILES_DIR_NAME = "files"
EXPORTS_DIR_NAME = "exports"

# Prefix/suffix of in-flight export files; cleanup.py only ever touches these.
TEMP_PREFIX = ".tmp_"
TEMP_SUFFIX = ".partial"

_HASH_RE = re.compile(r"^[0-9a-f]{2,}$")

# os.link failures meaning "this filesystem has no hard links" (FAT, exFAT,
# many SMB mounts), as opposed to a real write error.
_NO_HARDLINK_ERRNOS: frozenset[int] = frozenset(
    {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.ENOSYS, errno.EMLINK}
)


def get_export_mode() -> ExportMode:
    """Return the current LEGACY_EXPORT_MODE value, defaulting to ``'local'``.

    Unrecognised values fall back to ``'local'`` with a warning.
    """
    raw = os.environ.get("LEGACY_EXPORT_MODE", "local").strip().lower()
    if raw not in _VALID_MODES:
        logger.warning(
            "Unknown LEGACY_EXPORT_MODE=%r, falling back to 'local'. "
            "Valid values are: %s",
            raw,
            ", ".join(sorted(_VALID_MODES)),
        )
        return "local"
    return raw  # type: ignore[return-value]


def get_data_dir() -> Path:
    """Root data directory (``LEGACY_EXPORT_DATA_DIR``, default ``/data``)."""
    return Path(os.environ.get("LEGACY_EXPORT_DATA_DIR", DEFAULT_DATA_DIR))


def reveal_enabled() -> bool:
    """Whether finished exports should be shown in the native file browser."""
    val = os.environ.get("LEGACY_EXPORT_REVEAL", "")
    return val.strip().lower() in ("1", "true", "yes", "on")


def create_content_store() -> "LocalContentStore | MemoryContentStore":
    """Factory: return the ContentStore for the current LEGACY_EXPORT_MODE."""
    if get_export_mode() == "cloud":
        return MemoryContentStore()
    return LocalContentStore(base_path=str(get_data_dir() / FILES_DIR_NAME))


def create_export_store() -> "LocalExportStore | MemoryExportStore":
    """Factory: return the ExportStore for the current LEGACY_EXPORT_MODE."""
    if get_export_mode() == "cloud":
        return MemoryExportStore()
    return LocalExportStore(
        base_path=str(get_data_dir() / EXPORTS_DIR_NAME),
        reveal=reveal_enabled(),
    )


def compute_content_ref(data: bytes) -> str:
    """sha256 hex digest used as the content reference for *data*."""
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class ContentStore(Protocol):
    """Protocol defining the content-addressed file store."""

    def open(self, content_ref: str) -> BinaryIO: ...
    def put(self, data: bytes) -> str: ...
    def exists(self, content_ref: str) -> bool: ...


@dataclass
class SafeWrite:
    """Handle yielded by ``ExportStore.create_safely``.

    ``stored_name`` is set once the file has been committed; it differs from
    ``requested_name`` only if another file claimed that name in the meantime.
    """

    requested_name: str
    stream: BinaryIO
    stored_name: str | None = None


class ExportStore(Protocol):
    """Protocol defining the export destination directory."""

    def list_files(self, pattern: str) -> list[str]: ...
    def list_directories(self) -> list[str]: ...
    def create_safely(self, name: str) -> AbstractContextManager[SafeWrite]: ...
    def reveal_externally(self, name: str) -> None: ...
    def list_exports(self) -> list[dict]: ...


def _check_name(name: str) -> str:
    """Reject anything that is not a single, plain path component."""
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"Invalid export name: {name!r}")
    return name


def _collision_name(name: str) -> str:
    """Name used when *name* was claimed between naming and commit."""
    stem, extension = split_extension(name)
    return f"{stem}_{uuid4()}{extension}"


# ---------------------------------------------------------------------------
# LocalContentStore: hashed directory layout on disk
# ---------------------------------------------------------------------------


class LocalContentStore:
    """Reads/writes content-addressed blobs under ``base_path``.

    A blob with hash ``abcdef...`` lives at ``a/ab/abcdef...``.
    """

    def __init__(self, base_path: str = f"{DEFAULT_DATA_DIR}/{FILES_DIR_NAME}") -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, content_ref: str) -> Path:
        """Return the storage path for a content hash, with traversal prevention."""
        if not _HASH_RE.match(content_ref):
            raise ValueError(f"Invalid content reference: {content_ref!r}")
        return self.base_path / content_ref[:1] / content_ref[:2] / content_ref

    def exists(self, content_ref: str) -> bool:
        return self._path(content_ref).is_file()

    def open(self, content_ref: str) -> BinaryIO:
        """Open a blob for reading.  Raises FileNotFoundError if missing."""
        path = self._path(content_ref)
        if not path.is_file():
            raise FileNotFoundError(f"File not found in content store: {content_ref}")
        return path.open("rb")

    def put(self, data: bytes) -> str:
        """Store *data* and return its content hash.

        Written to a sibling temp file first, then moved into place with
        os.replace() so readers never observe a half-written blob.
        """
        content_ref = compute_content_ref(data)
        target = self._path(content_ref)
        if target.is_file():
            return content_ref

        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path_str = tempfile.mkstemp(dir=target.parent, prefix=TEMP_PREFIX)
        try:
            with os.fdopen(tmp_fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path_str, target)
        except Exception:
            try:
                os.unlink(tmp_path_str)
            except OSError:
                pass
            raise
        return content_ref


# ---------------------------------------------------------------------------
# MemoryContentStore: in-memory, for cloud mode and tests
# ---------------------------------------------------------------------------


class MemoryContentStore:
    """Stores blobs in an in-memory dict keyed by content hash."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def exists(self, content_ref: str) -> bool:
        return content_ref in self._blobs

    def open(self, content_ref: str) -> BinaryIO:
        """Return a fresh BytesIO over the blob.

        Raises
        ------
        FileNotFoundError
            If *content_ref* has not been stored.
        """
        if content_ref not in self._blobs:
            raise FileNotFoundError(f"File not found in content store: {content_ref}")
        return io.BytesIO(self._blobs[content_ref])

    def put(self, data: bytes) -> str:
        content_ref = compute_content_ref(data)
        self._blobs[content_ref] = bytes(data)
        return content_ref


# ---------------------------------------------------------------------------
# LocalExportStore: export directory on disk
# ---------------------------------------------------------------------------


def _place(tmp_path: Path, target: Path) -> None:
    """Give the bytes of *tmp_path* the name *target* without replacing a file.

    Raises FileExistsError if *target* already exists.  Where the filesystem
    cannot hard-link, *target* is first claimed with an exclusive create and
    the temp file is then moved onto that placeholder.
    """
    try:
        os.link(tmp_path, target)
        return
    except OSError as exc:
        if exc.errno not in _NO_HARDLINK_ERRNOS:
            raise
        logger.debug("Hard links unavailable in %s (%s), using exclusive create", target.parent, exc)

    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    os.close(fd)
    try:
        os.replace(tmp_path, target)
    except OSError:
        try:
            os.unlink(target)
        except OSError:
            pass
        raise


class LocalExportStore:
    """Writes finished archives into ``base_path``.

    Commits use a hard link from the temp file to the final name: unlike a
    rename, linking fails instead of replacing a file that already exists.
    On filesystems without hard links the final name is claimed with
    ``O_CREAT | O_EXCL`` before the temp file is moved onto it.
    """

    def __init__(
        self,
        base_path: str = f"{DEFAULT_DATA_DIR}/{EXPORTS_DIR_NAME}",
        reveal: bool = False,
    ) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.reveal = reveal

    def path_for(self, name: str) -> Path:
        """Return the filesystem path of an export, with traversal prevention."""
        return self.base_path / _check_name(name)

    def list_files(self, pattern: str) -> list[str]:
        """Names of regular files in the export root matching glob *pattern*.

        In-flight temp files are never reported.
        """
        return sorted(
            p.name
            for p in self.base_path.glob(pattern)
            if p.is_file() and not p.name.startswith(TEMP_PREFIX)
        )

    def list_directories(self) -> list[str]:
        return sorted(p.name for p in self.base_path.iterdir() if p.is_dir())

    @contextmanager
    def create_safely(self, name: str) -> Iterator[SafeWrite]:
        """Open a temp file for *name* and commit it only on clean exit.

        If the block raises, the temp file is removed and nothing appears
        under *name*.  If *name* exists at commit time the export is stored
        as ``"{stem}_{uuid}{ext}"`` instead of overwriting it.
        """
        target = self.path_for(name)
        tmp_fd, tmp_path_str = tempfile.mkstemp(
            dir=self.base_path, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX
        )
        tmp_path = Path(tmp_path_str)
        try:
            with os.fdopen(tmp_fd, "wb") as f:
                handle = SafeWrite(requested_name=name, stream=f)
                yield handle
            handle.stored_name = self._commit(tmp_path, target)
        finally:
            try:
                tmp_path.unlink()
            except OSError:
                pass

    def _commit(self, tmp_path: Path, target: Path) -> str:
        try:
            _place(tmp_path, target)
        except FileExistsError:
            fallback = self.path_for(_collision_name(target.name))
            logger.warning(
                "Export target %s appeared during export, storing as %s",
                target.name,
                fallback.name,
            )
            _place(tmp_path, fallback)
            target = fallback
        return target.name

    def reveal_externally(self, name: str) -> None:
        """Show *name* in the native file browser if revealing is enabled."""
        if not self.reveal:
            logger.debug("Reveal disabled, not presenting %s", name)
            return
        reveal_in_file_browser(self.path_for(name))

    def list_exports(self) -> list[dict]:
        """Return summaries of finished exports, newest first."""
        exports: list[dict] = []
        for p in sorted(
            (p for p in self.base_path.iterdir() if p.is_file() and not p.name.startswith(TEMP_PREFIX)),
            key=lambda f: f.stat().st_mtime,
            reverse=True,
        ):
            try:
                stat = p.stat()
            except OSError:
                continue  # removed while listing
            exports.append(
                {
                    "filename": p.name,
                    "size_bytes": stat.st_size,
                    "modified_at": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                }
            )
        return exports


# ---------------------------------------------------------------------------
# MemoryExportStore: in-memory, for cloud mode and tests
# ---------------------------------------------------------------------------


@dataclass
class MemoryExportStore:
    """Keeps finished archives in a dict.

    ``directories`` holds directory names that exist alongside the exports;
    ``revealed`` records every name handed to ``reveal_externally``.
    """

    files: dict[str, bytes] = field(default_factory=dict)
    directories: set[str] = field(default_factory=set)
    revealed: list[str] = field(default_factory=list)
    _timestamps: dict[str, datetime] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def list_files(self, pattern: str) -> list[str]:
        return sorted(n for n in self.files if fnmatch.fnmatchcase(n, pattern))

    def list_directories(self) -> list[str]:
        return sorted(self.directories)

    @contextmanager
    def create_safely(self, name: str) -> Iterator[SafeWrite]:
        _check_name(name)
        buffer = io.BytesIO()
        handle = SafeWrite(requested_name=name, stream=buffer)
        yield handle

        # Check and claim under one lock; exports run in worker threads.
        with self._lock:
            stored = name
            if stored in self.files or stored in self.directories:
                stored = _collision_name(name)
                logger.warning(
                    "Export target %s appeared during export, storing as %s", name, stored
                )
            self.files[stored] = buffer.getvalue()
            self._timestamps[stored] = datetime.now(tz=timezone.utc)
        handle.stored_name = stored

    def reveal_externally(self, name: str) -> None:
        self.revealed.append(name)

    def list_exports(self) -> list[dict]:
        exports = [
            {
                "filename": name,
                "size_bytes": len(data),
                "modified_at": self._timestamps.get(name, datetime.now(tz=timezone.utc)).isoformat(),
            }
            for name, data in self.files.items()
        ]
        exports.sort(key=lambda e: e["modified_at"], reverse=True)
        return exports
