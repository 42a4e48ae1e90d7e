"""Pydantic models: shared contract between all legacy_export modules.

API Naming Contract:
  - Python code uses snake_case field names.
  - Models returned over HTTP inherit CamelModel, so
    model.model_dump(by_alias=True) produces camelCase keys.  Requests are
    accepted in either form via populate_by_name=True.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Base model for camelCase serialization
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    """Base for models serialized over HTTP with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# ---------------------------------------------------------------------------
# Exportable content
# ---------------------------------------------------------------------------

class NamedFile(CamelModel):
    """A file as it will be stored inside an exported archive.

    ``filename`` is the entry name inside the archive and may contain
    ``/``-separated subpaths.  ``content_ref`` is the lowercase hex content
    hash the content store resolves to bytes.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)

    filename: str = Field(min_length=1)
    content_ref: str = Field(pattern=r"^[0-9a-f]{2,}$")

    @field_validator("filename")
    @classmethod
    def reject_blank_filename(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("filename must not be blank")
        return v


class ExportableItem(CamelModel):
    """Generic exportable item: a display name plus its ordered files."""

    display_name: str = "Untitled"
    files: list[NamedFile] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API Request / Response Models
# ---------------------------------------------------------------------------

class ExportRequest(CamelModel):
    """POST /api/export request body."""

    format: str = "beatmap"
    item: ExportableItem


class ExportResult(CamelModel):
    """POST /api/export response body."""

    filename: str
    format: str
    size_bytes: int


class ExportSummary(CamelModel):
    """GET /api/exports list item."""

    filename: str
    size_bytes: int
    modified_at: str


class FileUploadResult(CamelModel):
    """POST /api/files response body."""

    content_ref: str
    size_bytes: int
