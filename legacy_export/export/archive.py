"""ZIP assembly for exports.

Streams each file from the content store into its own archive entry, in the
order given.  Entries are staged in a spooled temp file and the finished
archive is copied to the sink only after every entry was written, so a failed
read never leaves a finalized (but incomplete) archive behind.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from collections.abc import Callable, Sequence
from typing import BinaryIO

from legacy_export.models import NamedFile

logger = logging.getLogger("legacy_export.export")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Archives smaller than this are staged in memory, larger ones on disk.
SPOOL_MAX_BYTES: int = 16 * 1024 * 1024

COPY_CHUNK_BYTES: int = 1024 * 1024

ContentReader = Callable[[str], BinaryIO]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_archive(
    files: Sequence[NamedFile],
    reader: ContentReader,
    sink: BinaryIO,
) -> int:
    """Write a ZIP archive with one entry per file into *sink*.

    Args:
        files:  Entries in archive order.  Each ``filename`` becomes the entry
                name verbatim (``/`` subpaths become archive directories).
                Duplicate names are written as duplicate entries.
        reader: Opens a content reference as a readable binary stream.
        sink:   Writable binary stream receiving the finished archive.

    Returns:
        Number of bytes written to *sink*.

    Any exception raised by *reader* (or while reading) propagates before a
    single byte reaches *sink*.
    """
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as staging:
        with zipfile.ZipFile(staging, "w", zipfile.ZIP_DEFLATED) as zf:
            for named in files:
                with reader(named.content_ref) as src, zf.open(named.filename, "w") as dst:
                    shutil.copyfileobj(src, dst, COPY_CHUNK_BYTES)
                logger.debug("Added archive entry %s (%s)", named.filename, named.content_ref)

        size = staging.tell()
        staging.seek(0)
        shutil.copyfileobj(staging, sink, COPY_CHUNK_BYTES)

    sink.flush()
    logger.info("Built archive with %d entries (%d bytes)", len(files), size)
    return size
