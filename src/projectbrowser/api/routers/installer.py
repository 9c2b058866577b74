from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.logger import logger
from fastapi.responses import JSONResponse, RedirectResponse

from projectbrowser.api.dtos import DataResponse, InstallProgress
from projectbrowser.config.settings import config
from projectbrowser.installer.models import (
    FAILURE_STATUS_CODE,
    LOCKED_STATUS_CODE,
    PhaseFailure,
    StageLocked,
    UnlockResult,
)
from projectbrowser.services import get_workflow


def require_ui_install():
    if not config.allow_ui_install:
        raise HTTPException(
            status_code=403,
            detail="Installing projects from the browser is disabled",
        )


router = APIRouter(
    prefix="/project-browser/install",
    tags=["Installer"],
    dependencies=[Depends(require_ui_install)],
)


def _to_response(outcome) -> JSONResponse:
    if isinstance(outcome, StageLocked):
        return JSONResponse(outcome.body(), status_code=LOCKED_STATUS_CODE)
    if isinstance(outcome, PhaseFailure):
        return JSONResponse(outcome.body(), status_code=FAILURE_STATUS_CODE)
    return JSONResponse(outcome.body())


@router.get("/begin")
def begin(redirect: Optional[str] = Query(None, description="Where unlock should return to")):
    return _to_response(get_workflow().begin(redirect))


@router.post("/require_from/{stage_id}")
def require(stage_id: str, project_ids: List[str] = Body(...)):
    return _to_response(get_workflow().require(stage_id, project_ids))


@router.post("/apply/{stage_id}")
def apply(stage_id: str):
    return _to_response(get_workflow().apply(stage_id))


@router.post("/post_apply/{stage_id}")
def post_apply(stage_id: str):
    return _to_response(get_workflow().post_apply(stage_id))


@router.post("/destroy/{stage_id}")
def destroy(stage_id: str):
    return _to_response(get_workflow().destroy(stage_id))


@router.post("/activate")
def activate(project_ids: List[str] = Body(...)):
    return _to_response(get_workflow().activate(project_ids))


@router.get("/unlock")
def unlock(destination: Optional[str] = Query(None)):
    outcome = get_workflow().unlock(destination)
    if isinstance(outcome, UnlockResult):
        logger.info(outcome.message)
        return RedirectResponse(outcome.destination, status_code=302)
    return _to_response(outcome)


@router.get("/status", response_model=DataResponse)
def install_status():
    workflow = get_workflow()
    lock = workflow.installer.get_lock()
    progress = InstallProgress(
        locked=lock is not None,
        stage_id=lock.stage_id if lock else None,
        owner=lock.owner if lock else None,
        owned_by_installer=lock.owned_by_installer if lock else None,
        applying=workflow.installer.is_applying(),
        first_updated=workflow.install_state.get_first_updated_time(),
        projects=workflow.install_state.to_dict(),
    )
    return DataResponse(data=progress)
