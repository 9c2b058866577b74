import os
import shutil
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from projectbrowser.installer.stage import Installer


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationResult(BaseModel):
    severity: Severity
    summary: Optional[str] = None
    messages: List[str] = Field(default_factory=list)


def _error(*messages: str, summary: Optional[str] = None) -> ValidationResult:
    return ValidationResult(severity=Severity.ERROR, summary=summary, messages=list(messages))


def _warning(*messages: str, summary: Optional[str] = None) -> ValidationResult:
    return ValidationResult(severity=Severity.WARNING, summary=summary, messages=list(messages))


def _on_path(binary: Optional[str], root: str) -> bool:
    if not binary:
        return False
    if os.sep in binary:
        path = binary if os.path.isabs(binary) else os.path.join(root, binary)
        return os.access(path, os.X_OK)
    return shutil.which(binary) is not None


def run_status_checks(installer: Installer, min_free_disk_mb: int = 1024) -> List[ValidationResult]:
    """Check that the environment can host a staged Composer operation."""
    results: List[ValidationResult] = []
    site_root = installer.site_root
    stage_root = installer.stage_root

    marker = installer.failure_marker()
    if marker:
        results.append(_error(
            f"A previous apply did not finish: {marker.get('message')}.",
            summary="The site may be in an inconsistent state.",
        ))

    if not _on_path(installer.composer_binary, site_root):
        results.append(_error(f"Composer could not be found ({installer.composer_binary})."))

    if not os.path.isdir(site_root):
        results.append(_error(f"The site root {site_root} does not exist."))
    elif not os.path.isfile(os.path.join(site_root, "composer.json")):
        results.append(_error(f"No composer.json was found in {site_root}."))
    elif not os.access(site_root, os.W_OK):
        results.append(_error(f"The site root {site_root} is not writable."))

    existing = stage_root
    while existing and not os.path.exists(existing):
        parent = os.path.dirname(existing)
        if parent == existing:
            break
        existing = parent
    if not existing or not os.access(existing, os.W_OK):
        results.append(_error(f"The stage directory {stage_root} is not writable."))

    real_site = os.path.realpath(site_root)
    real_stage = os.path.realpath(stage_root)
    if real_stage == real_site or real_stage.startswith(real_site + os.sep):
        results.append(_error(
            "The stage directory cannot be inside the site root.",
            summary="Staging is misconfigured.",
        ))

    if existing and os.path.exists(existing):
        free_mb = shutil.disk_usage(existing).free // (1024 * 1024)
        if free_mb < min_free_disk_mb:
            results.append(_warning(
                f"Only {free_mb} MB of disk space is free; at least {min_free_disk_mb} MB is recommended."
            ))

    if installer.drush_binary and not _on_path(installer.drush_binary, site_root):
        results.append(_warning(
            f"Drush could not be found ({installer.drush_binary}); projects cannot be activated."
        ))

    return results
