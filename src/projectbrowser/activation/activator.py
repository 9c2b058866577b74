import json
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from projectbrowser.catalog.models import ActivationStatus, Project

logger = logging.getLogger(__name__)


class ActivationError(RuntimeError):
    pass


class ActivatorInterface(ABC):
    @abstractmethod
    def get_status(self, project: Project) -> ActivationStatus:
        pass

    @abstractmethod
    def get_instructions(self, project: Project) -> Optional[str]:
        pass

    @abstractmethod
    def activate(self, project: Project) -> Optional[Dict[str, Any]]:
        pass


class DrushActivator(ActivatorInterface):
    """Enables downloaded modules on the site with Drush."""

    def __init__(self, site_root: str, drush_binary: str = "vendor/bin/drush"):
        self.site_root = site_root
        self.drush_binary = drush_binary
        self._enabled: Optional[Set[str]] = None

    def _drush(self) -> List[str]:
        binary = self.drush_binary
        if not os.path.isabs(binary) and os.sep in binary:
            binary = os.path.join(self.site_root, binary)
        return [binary, f"--root={self.site_root}"]

    def enabled_modules(self) -> Set[str]:
        if self._enabled is None:
            try:
                result = subprocess.run(
                    self._drush() + ["pm:list", "--status=enabled", "--format=json"],
                    capture_output=True,
                    text=True,
                )
            except FileNotFoundError:
                logger.warning(f"Drush not found at {self.drush_binary}")
                return set()
            if result.returncode != 0:
                logger.warning(f"Unable to list enabled modules: {result.stderr.strip()}")
                return set()
            self._enabled = set((json.loads(result.stdout or "{}") or {}).keys())
        return self._enabled

    def locked_packages(self) -> Set[str]:
        lock_path = os.path.join(self.site_root, "composer.lock")
        if not os.path.exists(lock_path):
            return set()
        with open(lock_path, "r") as f:
            lock = json.load(f)
        packages = lock.get("packages", []) + lock.get("packages-dev", [])
        return {package["name"] for package in packages if "name" in package}

    def get_status(self, project: Project) -> ActivationStatus:
        if project.machine_name in self.enabled_modules():
            return ActivationStatus.ACTIVE
        if project.package_name in self.locked_packages():
            return ActivationStatus.PRESENT
        return ActivationStatus.ABSENT

    def get_instructions(self, project: Project) -> Optional[str]:
        status = self.get_status(project)
        if status == ActivationStatus.ABSENT:
            return f"composer require {project.package_name}"
        if status == ActivationStatus.PRESENT:
            return f"drush pm:install {project.machine_name}"
        return None

    def activate(self, project: Project) -> Optional[Dict[str, Any]]:
        logger.info(f"Enabling {project.machine_name}")
        result = subprocess.run(
            self._drush() + ["pm:install", "-y", project.machine_name],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise ActivationError(
                f"Unable to enable {project.machine_name}: {result.stderr.strip()}"
            )
        if self._enabled is not None:
            self._enabled.add(project.machine_name)
        return None
