"""Export pipeline -- naming, safe destination creation, archive, presentation.

One call to ``LegacyExporter.export`` walks these stages in order:

    NamingResolved -> DestinationOpened -> ArchiveWritten -> Closed -> Presented

Any failure after naming aborts the export; the export store's safe creation
guarantees nothing is left under the destination name.

Directory enumeration and destination creation are not one atomic step.  Two
concurrent exports of the same item can resolve the same name; the loser of
the commit race is stored under a UUID-suffixed name by the export store.
Callers that need identical naming must serialize exports of the same item.
"""

from __future__ import annotations

import glob
import logging
from typing import TYPE_CHECKING, Any, BinaryIO

from legacy_export.export.archive import build_archive
from legacy_export.export.formats import ExportFormat
from legacy_export.export.naming import get_valid_filename, resolve

if TYPE_CHECKING:
    from legacy_export.storage import ContentStore, ExportStore

logger = logging.getLogger("legacy_export.export")


class LegacyExporter:
    """Exports items of one format into zip-based packages.

    Args:
        export_format: Capability bundle for the kind of item exported.
        content_store: Resolves each file's content reference to bytes.
        export_store:  Directory the finished archives are written to.
    """

    def __init__(
        self,
        export_format: ExportFormat,
        content_store: ContentStore,
        export_store: ExportStore,
    ) -> None:
        self.export_format = export_format
        self.content_store = content_store
        self.export_store = export_store

    @property
    def file_extension(self) -> str:
        return self.export_format.file_extension

    def get_filename(self, item: Any) -> str:
        """Filesystem-safe base name for *item*, without extension."""
        return get_valid_filename(self.export_format.get_display_name(item))

    def _existing_names(self, item_filename: str) -> list[str]:
        # Only files that can collide with a candidate of this item's name;
        # directories are always included.
        pattern = f"{glob.escape(item_filename)}*{self.file_extension}"
        return self.export_store.list_files(pattern) + self.export_store.list_directories()

    def export(self, item: Any) -> str:
        """Export *item* to a new archive in the export store.

        Returns the name the archive was stored under.
        """
        item_filename = self.get_filename(item)
        existing = self._existing_names(item_filename)
        filename = resolve(existing, f"{item_filename}{self.file_extension}")
        logger.debug("NamingResolved: %s (%d existing names)", filename, len(existing))

        with self.export_store.create_safely(filename) as target:
            logger.debug("DestinationOpened: %s", filename)
            self.export_to(item, target.stream)
            logger.debug("ArchiveWritten: %s", filename)

        stored_name = target.stored_name or filename
        logger.debug("Closed: %s", stored_name)
        logger.info("Exported %r as %s", item_filename, stored_name)

        try:
            self.export_store.reveal_externally(stored_name)
        except Exception:
            logger.warning("Could not present export %s", stored_name, exc_info=True)
        else:
            logger.debug("Presented: %s", stored_name)

        return stored_name

    def export_to(self, item: Any, stream: BinaryIO) -> int:
        """Write the archive for *item* into *stream*.  Returns bytes written."""
        return build_archive(
            self.export_format.get_files(item),
            self.content_store.open,
            stream,
        )
