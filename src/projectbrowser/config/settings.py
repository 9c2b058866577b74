import os
from typing import Any, Dict, List


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    database_url = os.getenv(
        "PROJECT_BROWSER_DATABASE_URL", "sqlite:////var/lib/projectbrowser/state.db"
    )
    allow_ui_install = (
        os.getenv("PROJECT_BROWSER_ALLOW_UI_INSTALL", "false").lower() == "true"
    )
    enabled_sources = _split(
        os.getenv("PROJECT_BROWSER_ENABLED_SOURCES", "drupalorg_jsonapi")
    )

    # Remote catalog
    jsonapi_endpoint = os.getenv(
        "PROJECT_BROWSER_JSONAPI_ENDPOINT", "https://www.drupal.org"
    )
    http_timeout_seconds = int(os.getenv("PROJECT_BROWSER_HTTP_TIMEOUT", "15"))
    static_catalog_path = os.getenv(
        "PROJECT_BROWSER_STATIC_CATALOG", "/etc/projectbrowser/catalog.yaml"
    )
    core_version = os.getenv("PROJECT_BROWSER_CORE_VERSION", "11.1.0")

    # Site codebase and staging
    site_root = os.getenv("PROJECT_BROWSER_SITE_ROOT", "/var/www/html")
    stage_root = os.getenv("PROJECT_BROWSER_STAGE_ROOT", "/var/tmp/projectbrowser")
    composer_binary = os.getenv("PROJECT_BROWSER_COMPOSER", "composer")
    drush_binary = os.getenv("PROJECT_BROWSER_DRUSH", "vendor/bin/drush")
    post_apply_command = os.getenv("PROJECT_BROWSER_POST_APPLY", "cache:rebuild")
    apply_timeout_seconds = int(os.getenv("PROJECT_BROWSER_APPLY_TIMEOUT", "3600"))
    min_free_disk_mb = int(os.getenv("PROJECT_BROWSER_MIN_FREE_DISK_MB", "1024"))

    # Install progress / lock reporting
    lock_grace_minutes = int(os.getenv("PROJECT_BROWSER_LOCK_GRACE_MINUTES", "7"))
    install_state_ttl_seconds = int(
        os.getenv("PROJECT_BROWSER_INSTALL_STATE_TTL", "86400")
    )

    # HTTP
    cors_origins = _split(
        os.getenv("PROJECT_BROWSER_CORS_ORIGINS", "http://localhost:3000")
    )
    default_destination = os.getenv(
        "PROJECT_BROWSER_DEFAULT_DESTINATION", "/admin/modules/browse"
    )

    def update(self, values: Dict[str, Any]) -> List[str]:
        """Override settings from a mapping, e.g. a parsed YAML file.

        Returns the names that were applied. Unknown keys are ignored.
        """
        applied = []
        for key, value in values.items():
            if key.startswith("_") or not hasattr(type(self), key):
                continue
            if callable(getattr(type(self), key)):
                continue
            if key in ("enabled_sources", "cors_origins") and isinstance(value, str):
                value = _split(value)
            setattr(self, key, value)
            applied.append(key)
        return applied


config = Config()
