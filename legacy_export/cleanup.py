"""Removal of leftovers from interrupted writes.

Two kinds of half-written files can survive a crash:

* ``.tmp_*.partial`` in the export directory -- an archive whose export
  died before ``create_safely`` committed it;
* ``.tmp_*`` inside the hashed subdirectories of the content store -- a
  blob whose ``put`` died before the rename into place.

Anything older than an hour is treated as abandoned.  The lifespan sweeps
once at startup and then every 30 minutes.  Committed exports and stored
blobs never carry the temp prefix, so they are never candidates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from pathlib import Path

from legacy_export.storage import TEMP_PREFIX, TEMP_SUFFIX

logger = logging.getLogger("legacy_export.cleanup")

# Age (seconds) after which an in-flight file counts as abandoned.
MAX_AGE_SECONDS = 3600

# Pause (seconds) between background sweeps.
CLEANUP_INTERVAL_SECONDS = 1800


def _remove_older_than(candidates: Iterable[Path], max_age_seconds: float) -> int:
    cutoff = time.time() - max_age_seconds
    removed = 0
    for p in candidates:
        try:
            if not p.is_file():
                continue
            mtime = p.stat().st_mtime
            if mtime < cutoff:
                p.unlink()
                removed += 1
                logger.debug("Removed abandoned write %s (age=%.0fs)", p, time.time() - mtime)
        except OSError as exc:
            logger.debug("Could not remove %s: %s", p, exc)
    return removed


def cleanup_tmp_files(export_dir: Path, max_age_seconds: float = MAX_AGE_SECONDS) -> int:
    """Remove stale ``.tmp_*.partial`` archives from *export_dir*.

    Returns how many were removed.  A missing directory counts as clean.
    """
    if not export_dir.is_dir():
        return 0
    removed = _remove_older_than(
        (p for p in export_dir.iterdir() if p.name.startswith(TEMP_PREFIX) and p.name.endswith(TEMP_SUFFIX)),
        max_age_seconds,
    )
    if removed:
        logger.info("Removed %d abandoned export(s) from %s", removed, export_dir)
    return removed


def cleanup_content_tmp_files(files_dir: Path, max_age_seconds: float = MAX_AGE_SECONDS) -> int:
    """Remove stale ``.tmp_*`` blobs anywhere below *files_dir*."""
    if not files_dir.is_dir():
        return 0
    removed = _remove_older_than(files_dir.rglob(f"{TEMP_PREFIX}*"), max_age_seconds)
    if removed:
        logger.info("Removed %d abandoned blob write(s) from %s", removed, files_dir)
    return removed


def sweep(export_dir: Path, files_dir: Path | None = None, max_age_seconds: float = MAX_AGE_SECONDS) -> int:
    """Clean the export directory and, if given, the content store directory."""
    removed = cleanup_tmp_files(export_dir, max_age_seconds)
    if files_dir is not None:
        removed += cleanup_content_tmp_files(files_dir, max_age_seconds)
    return removed


async def periodic_cleanup(
    export_dir: Path,
    files_dir: Path | None = None,
    interval: float = CLEANUP_INTERVAL_SECONDS,
    max_age_seconds: float = MAX_AGE_SECONDS,
) -> None:
    """Call ``sweep`` every *interval* seconds until cancelled."""
    import anyio

    while True:
        await anyio.sleep(interval)
        try:
            await anyio.to_thread.run_sync(sweep, export_dir, files_dir, max_age_seconds)
        except Exception:
            logger.exception("Periodic temp cleanup failed")
