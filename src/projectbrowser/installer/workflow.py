import logging
import time
import traceback
from typing import Callable, Iterable, List, Optional, Union
from urllib.parse import urlencode

from projectbrowser.activation.activator import ActivatorInterface
from projectbrowser.catalog.handler import EnabledSourceHandler
from projectbrowser.installer.exceptions import StageException, StageValidationException
from projectbrowser.installer.install_state import InstallState
from projectbrowser.installer.models import (
    ActivationResult,
    PhaseFailure,
    PhaseSuccess,
    StageLocked,
    UnlockResult,
)
from projectbrowser.installer.stage import Installer, StageLock
from projectbrowser.installer.status import Severity, ValidationResult

logger = logging.getLogger(__name__)

UNLOCK_PATH = "/project-browser/install/unlock"

BeginOutcome = Union[PhaseSuccess, PhaseFailure, StageLocked]
PhaseOutcome = Union[PhaseSuccess, PhaseFailure]


class InstallerWorkflow:
    """Drives the staged install of projects into the site.

    A full install is a sequence of requests: begin, require, apply,
    post_apply, destroy and finally activate. Every step returns an outcome
    object instead of raising; require and apply roll back their own stage
    and all progress on failure.
    """

    def __init__(
        self,
        installer: Installer,
        install_state: InstallState,
        source_handler: EnabledSourceHandler,
        activator: ActivatorInterface,
        status_checks: Optional[Callable[[], List[ValidationResult]]] = None,
        time_source: Callable[[], float] = time.time,
        lock_grace_minutes: int = 7,
        default_destination: str = "/",
    ):
        self.installer = installer
        self.install_state = install_state
        self.source_handler = source_handler
        self.activator = activator
        self.status_checks = status_checks or (lambda: [])
        self.time_source = time_source
        self.lock_grace_minutes = lock_grace_minutes
        self.default_destination = default_destination

    def error_response(self, exc: BaseException, phase: str = "") -> PhaseFailure:
        logger.warning(
            "%s.%s: %s. %s",
            type(exc).__module__,
            type(exc).__qualname__,
            exc,
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
        return PhaseFailure(message=f"{type(exc).__name__}: {exc}", phase=phase or None)

    def unlock_url(self, destination: Optional[str]) -> str:
        return f"{UNLOCK_PATH}?{urlencode({'destination': destination or ''})}"

    def safe_destination(self, destination: Optional[str]) -> str:
        """Only local paths are followed after unlock."""
        if (
            destination
            and destination.startswith("/")
            and not destination.startswith("//")
            and "\\" not in destination
        ):
            return destination
        return self.default_destination

    def cancel_require(self, stage_id: Optional[str] = None):
        """Reset progress and destroy the stage ``stage_id`` if this installer
        created it.

        A stage that is being applied, or that is not ``stage_id``, belongs to
        another request and is left alone together with its progress.
        """
        lock = self.installer.get_lock()
        if lock is not None and (lock.stage_id != stage_id or self.installer.is_applying()):
            logger.warning(f"Not rolling back stage {lock.stage_id}; it is not held by this request")
            return

        self.install_state.delete_all()
        if lock is not None and lock.owned_by_installer:
            try:
                self.installer.destroy(force=True)
            except Exception:
                logger.exception(f"Unable to destroy stage {lock.stage_id} during rollback")

    def validate_environment(self) -> tuple:
        errors: List[str] = []
        warnings: List[str] = []
        for result in self.status_checks():
            group = errors if result.severity == Severity.ERROR else warnings
            if result.summary:
                group.append(result.summary)
            group.extend(result.messages)
        return errors, warnings

    def locked_response(self, lock: StageLock, destination: Optional[str]) -> StageLocked:
        if not lock.owned_by_installer:
            return StageLocked(
                message=(
                    "The process for adding projects was locked by something else "
                    "outside of Project Browser. Projects can be added again once the "
                    "process is unlocked. Try again in a few minutes."
                )
            )

        unlock_url = self.unlock_url(destination)
        updated_time = self.install_state.get_first_updated_time()
        applying = self.installer.is_applying()

        if not updated_time and not applying:
            return StageLocked(
                message=(
                    "The process for adding projects is locked, but that lock has "
                    "expired. Use [+ unlock link] to unlock the process and try to add "
                    "the project again."
                ),
                unlock_url=unlock_url,
            )

        elapsed = max(int(self.time_source()) - int(updated_time or self.time_source()), 0)
        hours = elapsed // 3600
        minutes = (elapsed % 3600) // 60
        minutes_label = str(minutes) if elapsed > 60 else "less than 1"
        ago = (
            f"{hours} hours, {minutes_label} minutes ago"
            if hours
            else f"{minutes_label} minutes ago"
        )

        if applying:
            return StageLocked(
                message=(
                    f"The process for adding the project was locked {ago}. It should "
                    "not be unlocked while changes are being applied to the site."
                )
            )
        if hours == 0 and (elapsed <= 60 or minutes < self.lock_grace_minutes):
            message = (
                f"The process for adding the project that was locked {ago} might "
                "still be in progress. Consider waiting a few more minutes before "
                "using [+unlock link]."
            )
        else:
            message = (
                f"The process for adding the project was locked {ago}. Use "
                "[+ unlock link] to unlock the process."
            )
        return StageLocked(message=message, unlock_url=unlock_url)

    def begin(self, destination: Optional[str] = None) -> BeginOutcome:
        lock = self.installer.get_lock()
        if lock is not None:
            return self.locked_response(lock, destination)

        errors, warnings = self.validate_environment()
        if warnings:
            logger.warning("\n".join(warnings))
        if errors:
            return self.error_response(
                StageValidationException("\n".join(f"- {error}" for error in errors), errors)
            )

        try:
            lock = self.installer.create()
        except Exception as exc:
            self.cancel_require()
            return self.error_response(exc, "create")
        return PhaseSuccess(phase="create", stage_id=lock.stage_id)

    def require(self, stage_id: str, project_ids: Iterable[str]) -> PhaseOutcome:
        try:
            stage = self.installer.claim(stage_id)
            package_names = []
            for project_id in project_ids:
                project = self.source_handler.get_stored_project(project_id)
                self.install_state.set_state(project_id, "requiring")
                package_names.append(project.package_name)
            stage.require(package_names)
        except Exception as exc:
            self.cancel_require(stage_id)
            return self.error_response(exc, "require")
        return PhaseSuccess(phase="require", stage_id=stage_id)

    def apply(self, stage_id: str) -> PhaseOutcome:
        lock = self.installer.get_lock()
        if lock is not None and lock.stage_id == stage_id and self.installer.is_applying():
            # Polled again while the first apply is still running.
            return self.error_response(
                StageException(
                    "Changes are still being applied to the site. Try again in a few minutes.",
                    stage_id,
                ),
                "apply",
            )

        try:
            stage = self.installer.claim(stage_id)
            for project_id in self.install_state.to_dict():
                self.install_state.set_state(project_id, "applying")
            stage.apply()
        except Exception as exc:
            self.cancel_require(stage_id)
            return self.error_response(exc, "apply")
        return PhaseSuccess(phase="apply", stage_id=stage_id)

    def post_apply(self, stage_id: str) -> PhaseOutcome:
        try:
            self.installer.claim(stage_id).post_apply()
        except Exception as exc:
            return self.error_response(exc, "post apply")
        return PhaseSuccess(phase="post apply", stage_id=stage_id)

    def destroy(self, stage_id: str) -> PhaseOutcome:
        try:
            self.installer.claim(stage_id).destroy()
        except Exception as exc:
            return self.error_response(exc, "destroy")
        return PhaseSuccess(phase="destroy", stage_id=stage_id)

    def activate(self, project_ids: Iterable[str]) -> Union[ActivationResult, PhaseFailure]:
        response = None
        for project_id in project_ids:
            self.install_state.set_state(project_id, "activating")
            try:
                project = self.source_handler.get_stored_project(project_id)
                response = self.activator.activate(project)
                self.install_state.set_state(project_id, "installed")
            except Exception as exc:
                return self.error_response(exc, "project install")
            finally:
                self.install_state.delete_all()
        return ActivationResult(response=response if response is not None else {"status": 0})

    def unlock(self, destination: Optional[str] = None) -> Union[UnlockResult, PhaseFailure]:
        try:
            # The unlock link may have been handed out before apply started.
            if self.installer.is_applying():
                raise StageException(
                    "Another project is being added. Try again in a few minutes."
                )
            self.installer.destroy(force=True)
        except Exception as exc:
            return self.error_response(exc)
        self.install_state.delete_all()
        return UnlockResult(destination=self.safe_destination(destination))
