from __future__ import annotations

from coursecatalog.core.config import Settings, settings
from coursecatalog.modules.catalog.bootstrap import ensure_catalog_loaded
from coursecatalog.modules.catalog.service import CatalogService


def create_service(config: Settings = settings) -> CatalogService:
    service = CatalogService.from_settings(config)
    ensure_catalog_loaded(service, config)
    return service
