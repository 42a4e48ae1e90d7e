"""Shared fixtures for legacy_export tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from legacy_export.export.formats import BEATMAP_SET
from legacy_export.export.pipeline import LegacyExporter
from legacy_export.models import ExportableItem, NamedFile
from legacy_export.storage import (
    LocalContentStore,
    LocalExportStore,
    MemoryContentStore,
    MemoryExportStore,
)


# ---------------------------------------------------------------------------
# Store Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def content_store(tmp_path: Path) -> LocalContentStore:
    """LocalContentStore backed by a temporary files/ directory."""
    return LocalContentStore(base_path=str(tmp_path / "files"))


@pytest.fixture
def export_store(tmp_path: Path) -> LocalExportStore:
    """LocalExportStore backed by a temporary exports/ directory."""
    return LocalExportStore(base_path=str(tmp_path / "exports"))


@pytest.fixture
def mem_content() -> MemoryContentStore:
    return MemoryContentStore()


@pytest.fixture
def mem_exports() -> MemoryExportStore:
    return MemoryExportStore()


# ---------------------------------------------------------------------------
# Item Fixtures
# ---------------------------------------------------------------------------


SAMPLE_FILES: dict[str, bytes] = {
    "audio.mp3": b"ID3\x03\x00fake-audio-bytes" * 50,
    "My Beatmap [Hard].osu": b"osu file format v14\n[General]\nAudioFilename: audio.mp3\n",
    "sb/bg.png": b"\x89PNG\r\n\x1a\nnot-really-a-png",
}


def _make_item(store, display_name: str = "My Beatmap", files: dict[str, bytes] | None = None) -> ExportableItem:
    """Store *files* in *store* and return an item referencing them."""
    files = SAMPLE_FILES if files is None else files
    return ExportableItem(
        display_name=display_name,
        files=[NamedFile(filename=name, content_ref=store.put(data)) for name, data in files.items()],
    )


@pytest.fixture
def sample_item(content_store: LocalContentStore) -> ExportableItem:
    """Three-file item stored in the on-disk content store."""
    return _make_item(content_store)


@pytest.fixture
def exporter(content_store: LocalContentStore, export_store: LocalExportStore) -> LegacyExporter:
    """Beatmap exporter wired to the on-disk stores."""
    return LegacyExporter(BEATMAP_SET, content_store, export_store)


@pytest.fixture
def make_item():
    """Factory: ``make_item(store, display_name=..., files=...)``."""
    return _make_item


@pytest.fixture
def sample_files() -> dict[str, bytes]:
    """Filename -> bytes of the files in ``sample_item``."""
    return dict(SAMPLE_FILES)
