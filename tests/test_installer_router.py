from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from projectbrowser.api.routers.installer import router
from projectbrowser.config.settings import config
from projectbrowser.installer.models import (
    ActivationResult,
    PhaseFailure,
    PhaseSuccess,
    StageLocked,
    UnlockResult,
)
from projectbrowser.installer.stage import StageLock
from projectbrowser.installer.workflow import InstallerWorkflow


def _client():
    app = FastAPI()
    app.include_router(router)
    return TestClient(app)


class FakeWorkflow:
    def __init__(self, begin=None, unlock=None, lock=None):
        self._begin = begin or PhaseSuccess(phase="create", stage_id="abc")
        self._unlock = unlock or UnlockResult(destination="/admin/modules")
        self.calls = []
        self.installer = SimpleNamespace(get_lock=lambda: lock, is_applying=lambda: False)
        self.install_state = SimpleNamespace(
            get_first_updated_time=lambda: 1700000000 if lock else None,
            to_dict=lambda: {"drupalorg_jsonapi/token": "requiring"} if lock else {},
        )

    def begin(self, destination=None):
        self.calls.append(("begin", destination))
        return self._begin

    def require(self, stage_id, project_ids):
        self.calls.append(("require", stage_id, project_ids))
        return PhaseFailure(
            message="ProjectNotFoundError: Project 'drupalorg_jsonapi/missing' was not found in non-volatile storage.",
            phase="require",
        )

    def apply(self, stage_id):
        return PhaseSuccess(phase="apply", stage_id=stage_id)

    def post_apply(self, stage_id):
        return PhaseSuccess(phase="post apply", stage_id=stage_id)

    def destroy(self, stage_id):
        return PhaseSuccess(phase="destroy", stage_id=stage_id)

    def activate(self, project_ids):
        self.calls.append(("activate", project_ids))
        return ActivationResult(response={"status": 0})

    def unlock(self, destination=None):
        self.calls.append(("unlock", destination))
        return self._unlock


def test_install_disabled_returns_403():
    with patch.object(config, "allow_ui_install", False):
        response = _client().get("/project-browser/install/begin")

    assert response.status_code == 403


def test_begin_success():
    workflow = FakeWorkflow()
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=workflow):
        response = _client().get("/project-browser/install/begin?redirect=/admin/modules")

    assert response.status_code == 200
    assert response.json() == {"phase": "create", "status": 0, "stage_id": "abc"}
    assert workflow.calls == [("begin", "/admin/modules")]


def test_begin_locked_returns_418():
    locked = StageLocked(
        message="The process for adding projects is locked, but that lock has expired.",
        unlock_url="/project-browser/install/unlock?destination=%2F",
    )
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=FakeWorkflow(begin=locked)):
        response = _client().get("/project-browser/install/begin")

    assert response.status_code == 418
    assert response.json()["unlock_url"] == "/project-browser/install/unlock?destination=%2F"


def test_require_failure_returns_500():
    workflow = FakeWorkflow()
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=workflow):
        response = _client().post(
            "/project-browser/install/require_from/abc",
            json=["drupalorg_jsonapi/token", "drupalorg_jsonapi/missing"],
        )

    assert response.status_code == 500
    assert response.json()["phase"] == "require"
    assert workflow.calls == [
        ("require", "abc", ["drupalorg_jsonapi/token", "drupalorg_jsonapi/missing"])
    ]


def test_stage_phases_and_activate():
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=FakeWorkflow()):
        client = _client()
        apply = client.post("/project-browser/install/apply/abc")
        post_apply = client.post("/project-browser/install/post_apply/abc")
        destroy = client.post("/project-browser/install/destroy/abc")
        activate = client.post("/project-browser/install/activate", json=["drupalorg_jsonapi/token"])

    assert apply.json() == {"phase": "apply", "status": 0, "stage_id": "abc"}
    assert post_apply.json()["phase"] == "post apply"
    assert destroy.json()["phase"] == "destroy"
    assert activate.status_code == 200
    assert activate.json() == {"status": 0}


def test_unlock_redirects_to_destination():
    workflow = FakeWorkflow()
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=workflow):
        response = _client().get(
            "/project-browser/install/unlock?destination=/admin/modules", follow_redirects=False
        )

    assert response.status_code == 302
    assert response.headers["location"] == "/admin/modules"
    assert workflow.calls == [("unlock", "/admin/modules")]


def test_unlock_does_not_redirect_off_site():
    workflow = InstallerWorkflow(
        installer=MagicMock(**{"is_applying.return_value": False}),
        install_state=MagicMock(),
        source_handler=None,
        activator=None,
        default_destination="/admin/modules",
    )
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=workflow):
        response = _client().get(
            "/project-browser/install/unlock?destination=https://evil.example/phish",
            follow_redirects=False,
        )

    assert response.status_code == 302
    assert response.headers["location"] == "/admin/modules"
    workflow.installer.destroy.assert_called_once_with(force=True)


def test_unlock_failure_returns_500():
    failure = PhaseFailure(message="StageException: Another project is being added. Try again in a few minutes.")
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=FakeWorkflow(unlock=failure)):
        response = _client().get("/project-browser/install/unlock", follow_redirects=False)

    assert response.status_code == 500
    assert response.json() == {"message": failure.message}


def test_status_reports_lock_and_progress():
    lock = StageLock(stage_id="abc", owner="projectbrowser.installer", created=1700000000)
    with patch.object(config, "allow_ui_install", True), \
            patch("projectbrowser.api.routers.installer.get_workflow", return_value=FakeWorkflow(lock=lock)):
        response = _client().get("/project-browser/install/status")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["locked"] is True
    assert data["stage_id"] == "abc"
    assert data["owned_by_installer"] is True
    assert data["projects"] == {"drupalorg_jsonapi/token": "requiring"}
