import logging
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from projectbrowser.catalog.models import Project, ProjectsResultsPage
from projectbrowser.catalog.sources.base import ProjectBrowserSourceBase

logger = logging.getLogger(__name__)


class StaticCatalogSource(ProjectBrowserSourceBase):
    """Serves projects from a YAML catalog file.

    The file holds a ``projects`` list; each item uses the same keys as
    :class:`Project`. ``package_name`` defaults to ``drupal/<machine_name>``.
    """

    plugin_id = "static_catalog"
    label = "Local catalog"
    description = "Projects listed in a local YAML catalog file"

    def __init__(self, catalog_path: str):
        self.catalog_path = catalog_path
        self._created: Dict[str, str] = {}

    def load_catalog(self) -> List[Project]:
        with open(self.catalog_path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Catalog file must contain a mapping")
        if data.get("label"):
            self.label = data["label"]

        projects = []
        for index, item in enumerate(data.get("projects") or []):
            if not isinstance(item, dict) or not item.get("machine_name"):
                raise ValueError(f"Catalog project at index {index} must include 'machine_name'")
            entry = dict(item)
            entry.setdefault("id", entry["machine_name"])
            entry.setdefault("title", entry["machine_name"])
            entry.setdefault("package_name", f"drupal/{entry['machine_name']}")
            entry.pop("status", None)
            entry.pop("commands", None)
            entry.pop("created", None)
            projects.append((str(item.get("created") or ""), Project.model_validate(entry)))
        self._created = {project.id: created for created, project in projects}
        return [project for _, project in projects]

    def get_projects(self, query: Optional[Dict[str, Any]] = None) -> ProjectsResultsPage:
        query = query or {}
        try:
            projects = self.load_catalog()
        except (OSError, yaml.YAMLError, ValueError, ValidationError) as exc:
            logger.error(f"Unable to read catalog {self.catalog_path}: {exc}")
            return self.create_results_page([], 0, f"Unable to read the local catalog: {exc}")

        projects = self._filter(projects, query)
        projects = self._sort(projects, query.get("sort"))

        total = len(projects)
        limit = int(query.get("limit") or 12)
        page = int(query.get("page") or 0)
        return self.create_results_page(projects[page * limit:(page + 1) * limit], total)

    def _filter(self, projects: List[Project], query: Dict[str, Any]) -> List[Project]:
        search = (query.get("search") or "").lower()
        if search:
            projects = [
                p for p in projects
                if search in p.title.lower() or search in p.machine_name.lower()
            ]
        if query.get("machine_name"):
            projects = [p for p in projects if p.machine_name == query["machine_name"]]
        if query.get("categories"):
            wanted = {value.strip() for value in str(query["categories"]).split(",")}
            projects = [
                p for p in projects
                if wanted.intersection(c.id for c in p.categories)
            ]
        if query.get("maintenance_status"):
            projects = [p for p in projects if p.is_maintained]
        if query.get("security_advisory_coverage"):
            projects = [p for p in projects if p.is_covered]
        return projects

    def _sort(self, projects: List[Project], sort: Optional[str]) -> List[Project]:
        if sort == "a_z":
            return sorted(projects, key=lambda p: p.title.lower())
        if sort == "z_a":
            return sorted(projects, key=lambda p: p.title.lower(), reverse=True)
        if sort == "usage_total":
            return sorted(projects, key=lambda p: p.project_usage_total, reverse=True)
        if sort == "created":
            return sorted(projects, key=lambda p: self._created.get(p.id, ""), reverse=True)
        return projects
