from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from projectbrowser.api.routers.projects import build_query, router
from projectbrowser.catalog.handler import EnabledSourceHandler
from projectbrowser.catalog.models import ActivationStatus, Project
from projectbrowser.catalog.sources.base import ProjectBrowserSourceBase


def _client():
    app = FastAPI()
    app.include_router(router)
    return TestClient(app)


class FakeSource(ProjectBrowserSourceBase):
    plugin_id = "fake"
    label = "Fake source"
    description = "Projects for tests"

    def get_projects(self, query=None):
        return self.create_results_page([
            Project(id="token", machine_name="token", title="Token", package_name="drupal/token"),
        ])


class BrokenSource(FakeSource):
    def get_projects(self, query=None):
        raise RuntimeError("catalog exploded")


class FakeActivator:
    def get_status(self, project):
        return ActivationStatus.ABSENT

    def get_instructions(self, project):
        return f"composer require {project.package_name}"

    def activate(self, project):
        return None


def _handler(key_value, sources=None):
    sources = {"fake": FakeSource()} if sources is None else sources
    registry = {source_id: (lambda s=source: s) for source_id, source in sources.items()}
    return EnabledSourceHandler(key_value, list(sources), registry, activator=FakeActivator())


def test_build_query_drops_empty_values():
    query = build_query(page=0, limit=12, search="", sort=None, source="fake")

    assert query == {"page": 0, "limit": 12, "source": "fake"}


def test_projects_without_source_is_accepted_but_empty(key_value):
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=_handler(key_value)):
        response = _client().get("/project-browser/data/project")

    assert response.status_code == 202
    assert response.json() == []


def test_projects_without_enabled_sources(key_value):
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=_handler(key_value, {})):
        response = _client().get("/project-browser/data/project?source=fake")

    assert response.status_code == 202
    assert response.json() == []


def test_projects_lists_with_activation_data(key_value):
    handler = _handler(key_value)
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=handler):
        response = _client().get("/project-browser/data/project?source=fake&search=tok")

    assert response.status_code == 200
    data = response.json()
    assert data["total_results"] == 1
    assert data["plugin_id"] == "fake"
    project = data["list"][0]
    assert project["id"] == "fake/token"
    assert project["status"] == "absent"
    assert project["commands"] == "composer require drupal/token"
    assert handler.storage("fake").get("project:token") is not None


def test_projects_unknown_source_is_404(key_value):
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=_handler(key_value)):
        response = _client().get("/project-browser/data/project?source=missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Source 'missing' is not enabled"


def test_projects_source_error_is_500(key_value):
    handler = _handler(key_value, {"fake": BrokenSource()})
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=handler):
        response = _client().get("/project-browser/data/project?source=fake")

    assert response.status_code == 500
    assert response.json()["detail"] == "catalog exploded"


def test_clear_cache(key_value):
    handler = _handler(key_value)
    handler.get_projects("fake", {})
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=handler):
        response = _client().delete("/project-browser/data/cache?source=fake")

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert handler.storage("fake").get_all() == {}


def test_sources_and_browse(key_value):
    with patch("projectbrowser.api.routers.projects.get_source_handler", return_value=_handler(key_value)):
        client = _client()
        sources = client.get("/project-browser/sources")
        detail = client.get("/project-browser/browse/fake")
        missing = client.get("/project-browser/browse/missing")

    assert sources.json()["data"] == [
        {"id": "fake", "label": "Fake source", "description": "Projects for tests"}
    ]
    assert detail.json()["data"]["sort_options"]["a_z"] == "A-Z"
    assert missing.status_code == 404
