"""Info route: exposes runtime configuration.

GET /api/info returns the current LEGACY_EXPORT_MODE, the app version and a
description of the active storage so clients can tell whether exports
persist across restarts.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from legacy_export.export.formats import FORMATS
from legacy_export.export.naming import MAX_FILENAME_LENGTH
from legacy_export.storage import EXPORTS_DIR_NAME, get_data_dir, get_export_mode

router = APIRouter(prefix="/api", tags=["info"])


@router.get("/info")
async def get_info(request: Request) -> dict:
    """Return runtime information about the current deployment.

    Response fields
    ---------------
    mode : str
        ``"local"``: exports written to the data directory (default).
        ``"cloud"``: in-memory stores; exports are lost on restart.
    version : str
        Application version string sourced from the FastAPI app metadata.
    storage : str
        Human-readable description of the active export store.
    formats : dict
        Registered export format names mapped to their file extensions.
    """
    mode = get_export_mode()
    storage_desc = (
        f"LocalExportStore (file-based, {get_data_dir() / EXPORTS_DIR_NAME})"
        if mode == "local"
        else "MemoryExportStore (in-memory, ephemeral)"
    )
    return {
        "mode": mode,
        "version": request.app.version,
        "storage": storage_desc,
        "formats": {name: f.file_extension for name, f in FORMATS.items()},
        "max_filename_length": MAX_FILENAME_LENGTH,
    }
