from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class BaseResponse(BaseModel):
    status: str = "success"
    message: Optional[str] = None


class SuccessResponse(BaseResponse):
    pass


class SourceSummary(BaseModel):
    id: str
    label: str
    description: Optional[str] = None


class SourceDetail(SourceSummary):
    sort_options: Dict[str, str] = Field(default_factory=dict)
    filters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class InstallProgress(BaseModel):
    locked: bool
    stage_id: Optional[str] = None
    owner: Optional[str] = None
    owned_by_installer: Optional[bool] = None
    applying: bool = False
    first_updated: Optional[int] = None
    projects: Dict[str, str] = Field(default_factory=dict)


class DataResponse(BaseResponse):
    data: Optional[Union[
        SourceDetail,
        InstallProgress,
        List[SourceSummary],
        Dict[str, Any],
    ]] = None
