"""FastAPI application: entry point for the legacy-export service.

Lifespan configures the content and export stores, removes orphaned temp
files from the export directory, and runs periodic cleanup.

LEGACY_EXPORT_MODE environment variable controls storage behaviour:
  local (default): files/ and exports/ under LEGACY_EXPORT_DATA_DIR
  cloud          : in-memory stores (stateless backend)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI

from legacy_export import __version__
from legacy_export.cleanup import periodic_cleanup, sweep
from legacy_export.routes.export import router as export_router, set_stores
from legacy_export.routes.info import router as info_router
from legacy_export.storage import (
    LocalContentStore,
    LocalExportStore,
    create_content_store,
    create_export_store,
    get_export_mode,
)

logger = logging.getLogger("legacy_export")

VERSION = __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup tasks:
    1. Configure stores based on LEGACY_EXPORT_MODE
    2. Remove temp files left by interrupted exports and blob writes
    3. Start periodic cleanup (local mode only)
    """
    mode = get_export_mode()
    content_store = create_content_store()
    export_store = create_export_store()
    set_stores(content_store, export_store)
    logger.info("LEGACY_EXPORT_MODE=%s, using %s", mode, type(export_store).__name__)

    if not isinstance(export_store, LocalExportStore):
        yield
        return

    files_dir = content_store.base_path if isinstance(content_store, LocalContentStore) else None

    try:
        deleted = sweep(export_store.base_path, files_dir)
        if deleted:
            logger.info("Startup cleanup: removed %d orphaned temp file(s)", deleted)
    except Exception:
        logger.warning("Startup temp cleanup failed", exc_info=True)

    async with anyio.create_task_group() as tg:
        tg.start_soon(periodic_cleanup, export_store.base_path, files_dir)
        yield
        tg.cancel_scope.cancel()


app = FastAPI(title="legacy-export", version=VERSION, lifespan=lifespan)

# ---------------------------------------------------------------------------
# API route registration
# ---------------------------------------------------------------------------
app.include_router(export_router)
app.include_router(info_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "version": VERSION, "mode": get_export_mode()}
