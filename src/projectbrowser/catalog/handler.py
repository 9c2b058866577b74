import hashlib
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from projectbrowser.catalog.exceptions import ProjectNotFoundError, UnknownSourceError
from projectbrowser.catalog.models import Project, ProjectsResultsPage
from projectbrowser.catalog.sources.base import ProjectBrowserSourceBase
from projectbrowser.db.repositories.key_value import KeyValueFactory, KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "project_browser"


def query_cache_key(query: Optional[Dict[str, Any]]) -> str:
    """Key under which the results of ``query`` are stored.

    An empty query serializes to ``[]`` so that it shares a key with
    callers that send an empty list.
    """
    serialized = json.dumps(query, sort_keys=True, separators=(",", ":")) if query else "[]"
    return "query:" + hashlib.md5(serialized.encode("utf-8")).hexdigest()


class EnabledSourceHandler:
    def __init__(
        self,
        key_value: KeyValueFactory,
        enabled_sources: List[str],
        registry: Dict[str, Callable[[], ProjectBrowserSourceBase]],
        activator=None,
    ):
        self.key_value = key_value
        self.enabled_sources = enabled_sources
        self.registry = registry
        self.activator = activator
        self._instances: Dict[str, ProjectBrowserSourceBase] = {}

    def get_current_sources(self) -> Dict[str, ProjectBrowserSourceBase]:
        sources = {}
        for source_id in self.enabled_sources:
            factory = self.registry.get(source_id)
            if factory is None:
                logger.warning(f"Enabled source {source_id} is not a known source plugin")
                continue
            if source_id not in self._instances:
                self._instances[source_id] = factory()
            sources[source_id] = self._instances[source_id]
        return sources

    def get_source(self, source_id: str) -> ProjectBrowserSourceBase:
        sources = self.get_current_sources()
        if source_id not in sources:
            raise UnknownSourceError(source_id)
        return sources[source_id]

    def storage(self, source_id: str) -> KeyValueStore:
        return self.key_value.get(f"{STORAGE_PREFIX}:{source_id}")

    def get_projects(
        self, source_id: str, query: Optional[Dict[str, Any]] = None
    ) -> ProjectsResultsPage:
        source = self.get_source(source_id)
        storage = self.storage(source_id)
        cache_key = query_cache_key(query)

        cached = storage.get(cache_key)
        if cached is not None:
            return ProjectsResultsPage.model_validate(cached)

        results = source.get_projects(dict(query or {}))
        # A failed fetch must never be remembered as an empty catalog.
        if results.error is None:
            storage.set_multiple(
                {f"project:{project.id}": project.to_storage() for project in results.list}
            )
            storage.set(cache_key, results.model_dump(mode="json"))
        else:
            logger.info(f"Not storing results from {source_id}: {results.error}")
        return results

    def get_stored_project(self, project_id: str) -> Project:
        """Load a previously listed project by its ``<source>/<id>`` id."""
        source_id, _, local_id = project_id.partition("/")
        if not local_id:
            raise ProjectNotFoundError(project_id)

        data = self.storage(source_id).get(f"project:{local_id}")
        if data is None:
            raise ProjectNotFoundError(project_id)

        project = Project.model_validate(data)
        if self.activator is not None:
            self.apply_activation_data(project)
        return project

    def apply_activation_data(self, project: Project) -> Project:
        project.status = self.activator.get_status(project)
        project.commands = self.activator.get_instructions(project)
        return project

    def clear_storage(self, source_id: Optional[str] = None):
        source_ids = [source_id] if source_id else list(self.get_current_sources())
        for current in source_ids:
            self.storage(current).delete_all()
            logger.info(f"Cleared stored projects for {current}")
