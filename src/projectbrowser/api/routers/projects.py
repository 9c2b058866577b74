import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.logger import logger
from fastapi.responses import JSONResponse

from projectbrowser.api.dtos import DataResponse, SourceDetail, SourceSummary, SuccessResponse
from projectbrowser.catalog.exceptions import UnknownSourceError
from projectbrowser.services import get_source_handler

router = APIRouter(prefix="/project-browser", tags=["Project Browser"])


def build_query(**params) -> Dict[str, Any]:
    """Keep paging always and every other parameter only when it is set."""
    query: Dict[str, Any] = {"page": params.pop("page"), "limit": params.pop("limit")}
    for key, value in params.items():
        if value:
            query[key] = value
    return query


@router.get("/data/project")
def get_all_projects(
    page: int = Query(0, ge=0),
    limit: int = Query(12, ge=1, le=100),
    machine_name: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    categories: Optional[str] = Query(None, description="Comma-separated category ids"),
    maintenance_status: Optional[str] = Query(None),
    development_status: Optional[str] = Query(None),
    security_advisory_coverage: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
):
    handler = get_source_handler()
    query = build_query(
        page=page,
        limit=limit,
        machine_name=machine_name,
        sort=sort,
        search=search,
        categories=categories,
        maintenance_status=maintenance_status,
        development_status=development_status,
        security_advisory_coverage=security_advisory_coverage,
        source=source,
    )
    if not handler.get_current_sources() or not query.get("source"):
        return JSONResponse([], status_code=202)

    try:
        result = handler.get_projects(query["source"], query)
        # The activator decides status and instructions for the current site.
        for project in result.list:
            handler.apply_activation_data(project)
        return result.to_json()
    except UnknownSourceError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        logger.error(f"Error querying projects from {source}: {exc}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/data/cache", response_model=SuccessResponse)
def clear_cache(source: Optional[str] = Query(None)):
    handler = get_source_handler()
    try:
        handler.clear_storage(source)
    except Exception as exc:
        logger.error(f"Error clearing stored projects: {exc}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(exc))
    return SuccessResponse(message="Stored project data cleared")


@router.get("/sources", response_model=DataResponse)
def list_sources():
    sources = get_source_handler().get_current_sources()
    return DataResponse(
        data=[
            SourceSummary(id=source_id, label=source.label, description=source.description)
            for source_id, source in sources.items()
        ]
    )


@router.get("/browse/{source_id}", response_model=DataResponse)
def browse_source(source_id: str):
    handler = get_source_handler()
    try:
        source = handler.get_source(source_id)
    except UnknownSourceError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return DataResponse(data=SourceDetail.model_validate(source.describe()))
