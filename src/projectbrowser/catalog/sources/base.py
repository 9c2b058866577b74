from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from projectbrowser.catalog.models import Project, ProjectsResultsPage


class ProjectBrowserSourceBase(ABC):
    plugin_id: str = ""
    label: str = ""
    description: str = ""

    @abstractmethod
    def get_projects(self, query: Optional[Dict[str, Any]] = None) -> ProjectsResultsPage:
        pass

    def get_sort_options(self) -> Dict[str, str]:
        return {
            "usage_total": "Most popular",
            "a_z": "A-Z",
            "z_a": "Z-A",
            "created": "Newest first",
        }

    def get_filter_definitions(self) -> Dict[str, Dict[str, Any]]:
        return {}

    def create_results_page(
        self,
        results: List[Project],
        total_results: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ProjectsResultsPage:
        return ProjectsResultsPage(
            total_results=len(results) if total_results is None else total_results,
            list=results,
            plugin_label=self.label,
            plugin_id=self.plugin_id,
            error=error,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.plugin_id,
            "label": self.label,
            "description": self.description,
            "sort_options": self.get_sort_options(),
            "filters": self.get_filter_definitions(),
        }
