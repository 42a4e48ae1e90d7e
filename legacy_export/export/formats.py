"""Export formats -- what to call an item and which files go into its archive.

An ExportFormat bundles the three things the pipeline needs to know about a
kind of item.  Items are never required to inherit from anything: the default
accessors only rely on the structural HasDisplayName / HasNamedFiles
protocols, and a format can supply its own accessors for other shapes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from legacy_export.models import NamedFile


@runtime_checkable
class HasNamedFiles(Protocol):
    """Anything carrying an ordered sequence of NamedFile."""

    @property
    def files(self) -> Sequence[NamedFile]: ...


@runtime_checkable
class HasDisplayName(Protocol):
    @property
    def display_name(self) -> str: ...


def _display_name(item: HasDisplayName) -> str:
    return item.display_name


def _named_files(item: HasNamedFiles) -> Sequence[NamedFile]:
    return item.files


@dataclass(frozen=True)
class ExportFormat:
    """Capability bundle for one kind of exportable item.

    Attributes:
        name:             Registry key, also reported by the HTTP API.
        file_extension:   Archive extension including the leading dot.
        get_display_name: Item -> human-readable name (sanitized later).
        get_files:        Item -> files to archive, in order.
    """

    name: str
    file_extension: str
    get_display_name: Callable[[Any], str] = _display_name
    get_files: Callable[[Any], Sequence[NamedFile]] = _named_files

    def __post_init__(self) -> None:
        if not self.file_extension.startswith("."):
            raise ValueError(f"file_extension must start with '.': {self.file_extension!r}")


# ---------------------------------------------------------------------------
# Built-in formats
# ---------------------------------------------------------------------------

BEATMAP_SET = ExportFormat(name="beatmap", file_extension=".osz")
SKIN = ExportFormat(name="skin", file_extension=".osk")

FORMATS: dict[str, ExportFormat] = {f.name: f for f in (BEATMAP_SET, SKIN)}


def get_format(name: str) -> ExportFormat:
    """Look up a registered format by name.  Raises KeyError if unknown."""
    try:
        return FORMATS[name]
    except KeyError:
        raise KeyError(
            f"Unknown export format {name!r}. Valid formats are: {', '.join(sorted(FORMATS))}"
        ) from None
