from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Manifest and content locations
    CATALOG_MANIFEST_PATH: str = "module.json"
    CATALOG_CONTENT_ROOT: str = "."

    # Ordered allow-list of categories, e.g. "javascript,react"
    CATALOG_CATEGORIES: str | None = None
    CATALOG_ALLOWED_EXTENSIONS: str = ".md,.markdown,.html,.json,.js,.jsx,.txt"

    # Build behaviour
    CATALOG_STRICT_ORPHANS: bool = False
    CATALOG_BUILD_TIMEOUT_SECONDS: float | None = None
    CATALOG_LOAD_ON_STARTUP: bool = True

    # Display defaults
    CATALOG_DEFAULT_MODULE_HOURS: float = 5.0

    @property
    def category_order(self) -> List[str]:
        return _split_csv(self.CATALOG_CATEGORIES)

    @property
    def allowed_extensions(self) -> set[str]:
        return {ext.lower() for ext in _split_csv(self.CATALOG_ALLOWED_EXTENSIONS)}


settings = Settings()
