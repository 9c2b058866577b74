from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivationStatus(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"
    ACTIVE = "active"


class ProjectCategory(BaseModel):
    id: str
    name: str


class ProjectImage(BaseModel):
    file: str
    alt: str = ""


class Project(BaseModel):
    id: str
    machine_name: str
    title: str
    package_name: str
    is_compatible: bool = True
    is_maintained: bool = False
    is_covered: bool = False
    project_usage_total: int = 0
    categories: List[ProjectCategory] = Field(default_factory=list)
    images: List[ProjectImage] = Field(default_factory=list)
    logo: Optional[str] = None
    body: Dict[str, str] = Field(default_factory=dict)
    url: Optional[str] = None
    # Filled in by the activator; None until then.
    status: Optional[ActivationStatus] = None
    commands: Optional[str] = None

    def has_activation_data(self) -> bool:
        return self.status is not None and "commands" in self.model_fields_set

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"status", "commands"})


class ProjectsResultsPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_results: int
    list: Tuple[Project, ...]
    plugin_label: str
    plugin_id: str
    error: Optional[str] = None

    @field_validator("list", mode="before")
    @classmethod
    def _only_projects(cls, value):
        if not isinstance(value, (list, tuple)):
            raise ValueError("list must be a sequence of projects")
        for index, item in enumerate(value):
            if not isinstance(item, (Project, dict)):
                raise ValueError(
                    f"list item {index} is a {type(item).__name__}, not a Project"
                )
        return tuple(value)

    def to_json(self) -> Dict[str, Any]:
        """Serialize with project ids qualified by their source."""
        payload = self.model_dump(mode="json", exclude={"list"})
        payload["list"] = []
        for project in self.list:
            item = project.model_dump(mode="json")
            item["id"] = f"{self.plugin_id}/{project.id}"
            payload["list"].append(item)
        return payload
