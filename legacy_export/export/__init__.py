"""Export pipeline -- destination naming, ZIP assembly, and orchestration.

Usage::

    from legacy_export.export.naming import resolve, MAX_FILENAME_LENGTH
    from legacy_export.export.archive import build_archive
    from legacy_export.export.formats import BEATMAP_SET, get_format
    from legacy_export.export.pipeline import LegacyExporter
"""

from __future__ import annotations
