import logging
import os
import secrets
import shutil
import subprocess
import time
from typing import Callable, List, Optional

from pydantic import BaseModel, computed_field

from projectbrowser.db.repositories.key_value import KeyValueStore
from projectbrowser.installer.exceptions import (
    StageException,
    StageFailureMarkerException,
    StageOwnershipException,
)

logger = logging.getLogger(__name__)

INSTALLER_OWNER = "projectbrowser.installer"
STAGE_COLLECTION = "package_manager_stage"
LOCK_KEY = "lock"
FAILURE_MARKER_KEY = "failure_marker"

# Relative paths that are never copied between the site and a stage.
IGNORED_NAMES = {".git", "node_modules"}


def _ignored(root: str, directory: str, names: List[str]) -> List[str]:
    skipped = [name for name in names if name in IGNORED_NAMES]
    relative = os.path.relpath(directory, root).split(os.sep)
    # sites/<site>/files holds user uploads.
    if len(relative) == 2 and relative[0] == "sites" and "files" in names:
        skipped.append("files")
    return skipped


class StageLock(BaseModel):
    stage_id: str
    owner: str
    created: int
    applying_since: Optional[int] = None

    @computed_field
    @property
    def owned_by_installer(self) -> bool:
        return self.owner == INSTALLER_OWNER

    def to_storage(self) -> dict:
        return self.model_dump(exclude={"owned_by_installer"})


class Installer:
    """Single site-wide staging area for Composer operations.

    The lock record in ``store`` is the mutual-exclusion resource: while it
    exists no other stage can be created.
    """

    def __init__(
        self,
        store: KeyValueStore,
        site_root: str,
        stage_root: str,
        composer_binary: str = "composer",
        drush_binary: Optional[str] = None,
        post_apply_command: Optional[str] = None,
        apply_timeout_seconds: int = 3600,
        time_source: Callable[[], float] = time.time,
        owner: str = INSTALLER_OWNER,
    ):
        self.store = store
        self.site_root = site_root
        self.stage_root = stage_root
        self.composer_binary = composer_binary
        self.drush_binary = drush_binary
        self.post_apply_command = post_apply_command
        self.apply_timeout_seconds = apply_timeout_seconds
        self.time_source = time_source
        self.owner = owner

    def _now(self) -> int:
        return int(self.time_source())

    def stage_directory(self, stage_id: str) -> str:
        return os.path.join(self.stage_root, stage_id)

    def get_lock(self) -> Optional[StageLock]:
        data = self.store.get(LOCK_KEY)
        return StageLock.model_validate(data) if data else None

    def is_available(self) -> bool:
        return self.get_lock() is None

    def is_applying(self) -> bool:
        lock = self.get_lock()
        if lock is None or lock.applying_since is None:
            return False
        return self._now() - lock.applying_since < self.apply_timeout_seconds

    def failure_marker(self) -> Optional[dict]:
        return self.store.get(FAILURE_MARKER_KEY)

    def create(self) -> StageLock:
        marker = self.failure_marker()
        if marker:
            raise StageFailureMarkerException(
                f"Staged changes failed to apply to the site: {marker.get('message')}. "
                "The site may be in an inconsistent state and must be restored from backup."
            )

        lock = StageLock(
            stage_id=secrets.token_urlsafe(16),
            owner=self.owner,
            created=self._now(),
        )
        if not self.store.set_if_not_exists(LOCK_KEY, lock.to_storage()):
            raise StageException("Cannot create a new stage because one already exists.")

        stage_dir = self.stage_directory(lock.stage_id)
        try:
            os.makedirs(self.stage_root, exist_ok=True)
            shutil.copytree(
                self.site_root,
                stage_dir,
                symlinks=True,
                ignore=lambda d, names: _ignored(self.site_root, d, names),
            )
        except OSError as exc:
            self.store.delete(LOCK_KEY)
            shutil.rmtree(stage_dir, ignore_errors=True)
            raise StageException(f"Unable to create the stage: {exc}", lock.stage_id) from exc

        logger.info(f"Created stage {lock.stage_id} in {stage_dir}")
        return lock

    def claim(self, stage_id: str) -> "ClaimedStage":
        lock = self.get_lock()
        if lock is None:
            raise StageOwnershipException(
                "Cannot claim the stage because no stage has been created.", stage_id
            )
        if lock.stage_id != stage_id or lock.owner != self.owner:
            raise StageOwnershipException(
                "Cannot claim the stage because it is not owned by the current process.",
                stage_id,
            )
        return ClaimedStage(self, lock)

    def destroy(self, force: bool = False):
        """Remove the current stage and release the lock.

        Without ``force`` the stage must not be applying.
        """
        if not force and self.is_applying():
            raise StageException("Cannot destroy the stage during apply.")
        lock = self.get_lock()
        if lock is not None:
            shutil.rmtree(self.stage_directory(lock.stage_id), ignore_errors=True)
            logger.info(f"Destroyed stage {lock.stage_id} (owner {lock.owner})")
        self.store.delete(LOCK_KEY)

    def run(self, command: List[str], cwd: str) -> str:
        try:
            result = subprocess.run(command, cwd=cwd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise StageException(f"{command[0]} was not found") from exc
        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise StageException(f"{' '.join(command[:2])} failed: {output}")
        return result.stdout

    def sync(self, source: str, destination: str):
        """Make ``destination`` mirror ``source``, leaving ignored paths alone."""
        shutil.copytree(
            source,
            destination,
            symlinks=True,
            dirs_exist_ok=True,
            ignore=lambda d, names: _ignored(source, d, names),
        )
        for directory, dirnames, filenames in os.walk(destination, topdown=True):
            skipped = set(_ignored(destination, directory, dirnames + filenames))
            dirnames[:] = [name for name in dirnames if name not in skipped]
            relative = os.path.relpath(directory, destination)
            counterpart = os.path.normpath(os.path.join(source, relative))
            for name in list(dirnames):
                if not os.path.lexists(os.path.join(counterpart, name)):
                    shutil.rmtree(os.path.join(directory, name))
                    dirnames.remove(name)
            for name in filenames:
                if name in skipped:
                    continue
                if not os.path.lexists(os.path.join(counterpart, name)):
                    os.remove(os.path.join(directory, name))


class ClaimedStage:
    """Handle returned by :meth:`Installer.claim`; every operation re-checks
    that the lock still belongs to the claimed stage."""

    def __init__(self, installer: Installer, lock: StageLock):
        self.installer = installer
        self.lock = lock

    @property
    def stage_id(self) -> str:
        return self.lock.stage_id

    @property
    def directory(self) -> str:
        return self.installer.stage_directory(self.stage_id)

    def _refresh(self) -> StageLock:
        current = self.installer.get_lock()
        if current is None or current.stage_id != self.stage_id:
            raise StageOwnershipException(
                "The stage was destroyed before the operation could run.", self.stage_id
            )
        self.lock = current
        return current

    def require(self, package_names: List[str]):
        self._refresh()
        if not package_names:
            raise StageException("No packages were given to require.", self.stage_id)
        logger.info(f"Requiring {', '.join(package_names)} in stage {self.stage_id}")
        self.installer.run(
            [
                self.installer.composer_binary,
                "require",
                "--no-interaction",
                "--no-progress",
                "--update-with-all-dependencies",
                *package_names,
            ],
            cwd=self.directory,
        )

    def apply(self):
        lock = self._refresh()
        if self.installer.is_applying():
            raise StageException("Changes are already being applied.", self.stage_id)

        lock.applying_since = self.installer._now()
        self.installer.store.set(LOCK_KEY, lock.to_storage())
        self.installer.store.set(
            FAILURE_MARKER_KEY,
            {"stage_id": self.stage_id, "message": "Apply was interrupted"},
        )
        try:
            self.installer.sync(self.directory, self.installer.site_root)
        except OSError as exc:
            self.installer.store.set(
                FAILURE_MARKER_KEY, {"stage_id": self.stage_id, "message": str(exc)}
            )
            # The apply is over; the failure marker keeps new stages out.
            lock.applying_since = None
            self.installer.store.set(LOCK_KEY, lock.to_storage())
            raise StageException(f"Unable to apply staged changes: {exc}", self.stage_id) from exc
        self.installer.store.delete(FAILURE_MARKER_KEY)
        logger.info(f"Applied stage {self.stage_id} to {self.installer.site_root}")

    def post_apply(self):
        lock = self._refresh()
        lock.applying_since = None
        self.installer.store.set(LOCK_KEY, lock.to_storage())
        if self.installer.post_apply_command and self.installer.drush_binary:
            self.installer.run(
                [
                    self.installer.drush_binary,
                    f"--root={self.installer.site_root}",
                    *self.installer.post_apply_command.split(),
                ],
                cwd=self.installer.site_root,
            )

    def destroy(self):
        self._refresh()
        self.installer.destroy(force=False)
