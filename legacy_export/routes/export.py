"""Export routes: POST /api/files, POST /api/export, GET /api/exports.

POST /api/export runs the blocking export pipeline in a worker thread and
reports the name the archive was stored under.  The archive itself stays in
the export store; this service never transfers it.

POST /api/files adds an uploaded file to the content store and returns its
content reference, so clients can populate an empty store (cloud mode).

Uses dependency injection for the content and export stores so that tests
can swap in temporary directories or in-memory stores.
"""

from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, Depends, HTTPException, UploadFile

from legacy_export.export.formats import get_format
from legacy_export.export.pipeline import LegacyExporter
from legacy_export.models import ExportRequest, ExportResult, ExportSummary, FileUploadResult
from legacy_export.storage import (
    ContentStore,
    ExportStore,
    create_content_store,
    create_export_store,
)

logger = logging.getLogger("legacy_export.export")

router = APIRouter(prefix="/api", tags=["export"])

MAX_UPLOAD_BYTES = 64 * 1024 * 1024  # 64 MB

# ---------------------------------------------------------------------------
# Dependencies: default stores
# ---------------------------------------------------------------------------

_content_store: ContentStore | None = None
_export_store: ExportStore | None = None


def _get_content_store() -> ContentStore:
    """FastAPI dependency returning the active ContentStore.

    Created on first use from ``LEGACY_EXPORT_MODE`` / ``LEGACY_EXPORT_DATA_DIR``.
    """
    global _content_store  # noqa: PLW0603
    if _content_store is None:
        _content_store = create_content_store()
    return _content_store


def _get_export_store() -> ExportStore:
    """FastAPI dependency returning the active ExportStore."""
    global _export_store  # noqa: PLW0603
    if _export_store is None:
        _export_store = create_export_store()
    return _export_store


def set_stores(content_store: ContentStore | None, export_store: ExportStore | None) -> None:
    """Override the default stores (used by tests and main.py)."""
    global _content_store, _export_store  # noqa: PLW0603
    _content_store = content_store
    _export_store = export_store


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/export", status_code=201, response_model=ExportResult, response_model_by_alias=True)
async def export_item(
    request: ExportRequest,
    content_store: ContentStore = Depends(_get_content_store),
    export_store: ExportStore = Depends(_get_export_store),
) -> ExportResult:
    """Export an item into a new archive in the export store.

    Error mapping:
    - unknown format            -> 400
    - invalid name or reference -> 400
    - missing content reference -> 404
    - other I/O failure         -> 500
    """
    try:
        export_format = get_format(request.format)
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=str(exc.args[0])) from exc

    exporter = LegacyExporter(export_format, content_store, export_store)

    try:
        stored_name = await anyio.to_thread.run_sync(exporter.export, request.item)
    except FileNotFoundError as exc:
        logger.warning("Export of %r failed: %s", request.item.display_name, exc)
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        logger.warning("Export of %r rejected: %s", request.item.display_name, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        logger.exception("Export failed")
        raise HTTPException(status_code=500, detail=f"Export failed: {exc}") from exc

    size = next(
        (e["size_bytes"] for e in export_store.list_exports() if e["filename"] == stored_name),
        0,
    )
    return ExportResult(filename=stored_name, format=export_format.name, size_bytes=size)


@router.get("/exports", response_model=list[ExportSummary], response_model_by_alias=True)
async def list_exports(export_store: ExportStore = Depends(_get_export_store)) -> list[ExportSummary]:
    """Return summaries of all finished exports, newest first."""
    return [ExportSummary(**e) for e in export_store.list_exports()]


@router.post("/files", status_code=201, response_model=FileUploadResult, response_model_by_alias=True)
async def upload_file(
    file: UploadFile,
    content_store: ContentStore = Depends(_get_content_store),
) -> FileUploadResult:
    """Add an uploaded file to the content store.

    Returns the content reference to use as ``contentRef`` in an export
    request.  Uploading the same bytes twice yields the same reference.
    Accepts files up to 64 MB; larger uploads get 400.
    """
    raw_bytes = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(raw_bytes) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Uploaded file is too large (max {MAX_UPLOAD_BYTES // (1024 * 1024)} MB).",
        )

    try:
        content_ref = await anyio.to_thread.run_sync(content_store.put, raw_bytes)
    except OSError as exc:
        logger.exception("Storing upload %r failed", file.filename)
        raise HTTPException(status_code=500, detail=f"Upload failed: {exc}") from exc

    logger.debug("Stored upload %r as %s (%d bytes)", file.filename, content_ref, len(raw_bytes))
    return FileUploadResult(content_ref=content_ref, size_bytes=len(raw_bytes))
