from typing import Callable, Dict

from projectbrowser.catalog.sources.base import ProjectBrowserSourceBase
from projectbrowser.catalog.sources.jsonapi import JsonApiSource
from projectbrowser.catalog.sources.static import StaticCatalogSource
from projectbrowser.config.settings import config


def _jsonapi() -> ProjectBrowserSourceBase:
    return JsonApiSource(
        endpoint=config.jsonapi_endpoint,
        core_version=config.core_version,
        timeout_seconds=config.http_timeout_seconds,
    )


def _static() -> ProjectBrowserSourceBase:
    return StaticCatalogSource(config.static_catalog_path)


SOURCE_REGISTRY: Dict[str, Callable[[], ProjectBrowserSourceBase]] = {
    JsonApiSource.plugin_id: _jsonapi,
    StaticCatalogSource.plugin_id: _static,
}
