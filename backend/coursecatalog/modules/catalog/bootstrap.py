from __future__ import annotations

import logging

from coursecatalog.core.config import Settings, settings
from coursecatalog.core.errors import CourseCatalogError

from .service import CatalogService, CatalogState


logger = logging.getLogger(__name__)


def ensure_catalog_loaded(service: CatalogService, config: Settings = settings) -> bool:
    """Build the first snapshot at startup.

    A failed initial load is logged rather than raised so the process keeps
    running; queries report ``NOT_INITIALIZED`` until a reload succeeds.
    """
    if not config.CATALOG_LOAD_ON_STARTUP:
        logger.info("CATALOG_LOAD_ON_STARTUP disabled; skipping initial catalog build")
        return False
    if service.state is CatalogState.READY:
        return True
    try:
        snapshot = service.reload()
    except CourseCatalogError as exc:
        logger.error("Initial catalog load failed: %s", exc)
        return False
    logger.info("Initial catalog loaded (generation %d)", snapshot.generation)
    return True
