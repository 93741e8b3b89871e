"""
Wizard Routes - JSON API Driving In-Process Wizard Sessions

Development UI layer for the horse-registration and movement wizards.
Each open wizard lives in an in-process session registry keyed by a
session id; the tenant comes from the X-Tenant-ID header and must match
the tenant the session was opened for.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional, Union

from fastapi import APIRouter, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.movement import MovementWizard, movement_result_to_dict
from core.wizard import (
    HorseWizard,
    MediaUpload,
    ResourceStager,
    WizardMode,
    commit_result_to_dict,
    generate_id,
)
from core.wizard.errors import (
    EntityNotFoundError,
    HousingUnavailableError,
    ServiceError,
    StepBlockedError,
    UploadRejectedError,
    WizardBusyError,
    WizardClosedError,
    WizardError,
)

logger = logging.getLogger(__name__)

Wizard = Union[HorseWizard, MovementWizard]


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/wizards", tags=["wizards"])


# =============================================================================
# Request Models
# =============================================================================


class OpenHorseWizardRequest(BaseModel):
    mode: str = "create"
    entity_id: Optional[str] = None


class OpenMovementWizardRequest(BaseModel):
    horse_id: str = ""


class PatchDraftRequest(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)


class AddOwnerRequest(BaseModel):
    holder_id: str = ""


class UpdateOwnerRequest(BaseModel):
    holder_id: Optional[str] = None
    percentage: Optional[int] = None


class JumpRequest(BaseModel):
    step: str


class SelectHousingRequest(BaseModel):
    unit_id: str


class SelectAreaRequest(BaseModel):
    area_id: str


class ReapRequest(BaseModel):
    ttl_hours: Optional[int] = None
    dry_run: bool = False


# =============================================================================
# Session Registry
# =============================================================================


class WizardSessionRegistry:
    """Open wizard sessions, keyed by session id."""

    def __init__(self):
        self._sessions: dict[str, tuple[str, Wizard]] = {}

    def add(self, tenant_id: str, wizard: Wizard) -> str:
        session_id = generate_id()
        self._sessions[session_id] = (tenant_id, wizard)
        return session_id

    def get(self, session_id: str, tenant_id: str, kind: type) -> Wizard:
        entry = self._sessions.get(session_id)
        if entry is None or entry[0] != tenant_id or not isinstance(entry[1], kind):
            raise HTTPException(status_code=404, detail="Wizard session not found")
        return entry[1]

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def live_keys(self, tenant_id: str) -> set[str]:
        """Provisional ids of open horse create sessions for a tenant."""
        return {
            wizard.provisional_id
            for tenant, wizard in self._sessions.values()
            if tenant == tenant_id
            and isinstance(wizard, HorseWizard)
            and wizard.mode == WizardMode.CREATE
        }

    def __len__(self) -> int:
        return len(self._sessions)


# =============================================================================
# Error Mapping
# =============================================================================

ERROR_STATUS: dict[type, int] = {
    EntityNotFoundError: 404,
    StepBlockedError: 409,
    WizardBusyError: 409,
    WizardClosedError: 409,
    HousingUnavailableError: 409,
    UploadRejectedError: 400,
    ServiceError: 502,
}


def error_status(exc: WizardError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


async def wizard_error_handler(request: Request, exc: WizardError) -> JSONResponse:
    """Map engine errors onto JSON 4xx/5xx responses."""
    status = error_status(exc)
    if status >= 500:
        logger.warning("Collaborator failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# =============================================================================
# Helpers
# =============================================================================


def _registry(request: Request) -> WizardSessionRegistry:
    return request.app.state.wizard_sessions


def _horse(request: Request, session_id: str, tenant_id: str) -> HorseWizard:
    return _registry(request).get(session_id, tenant_id, HorseWizard)


def _movement(request: Request, session_id: str, tenant_id: str) -> MovementWizard:
    return _registry(request).get(session_id, tenant_id, MovementWizard)


def _state(session_id: str, wizard: Wizard) -> dict:
    data = wizard.to_dict()
    data["session_id"] = session_id
    return data


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


# =============================================================================
# Horse Wizard
# =============================================================================


@router.post("/horse")
async def open_horse_wizard(
    request: Request,
    body: OpenHorseWizardRequest,
    x_tenant_id: str = Header(...),
):
    """Open a horse wizard in create or edit mode."""
    state = request.app.state
    wizard = HorseWizard(state.records, state.storage, x_tenant_id, config=state.config)
    try:
        mode = WizardMode(body.mode)
    except ValueError as e:
        raise _bad_request(e)

    if mode == WizardMode.EDIT:
        if not body.entity_id:
            raise HTTPException(status_code=422, detail="entity_id is required in edit mode")
        wizard.open_edit(body.entity_id)
    else:
        wizard.open_create()

    session_id = _registry(request).add(x_tenant_id, wizard)
    return JSONResponse(_state(session_id, wizard), status_code=201)


@router.get("/horse/{session_id}")
async def get_horse_wizard(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    return _state(session_id, _horse(request, session_id, x_tenant_id))


@router.patch("/horse/{session_id}/draft")
async def patch_horse_draft(
    request: Request,
    session_id: str,
    body: PatchDraftRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _horse(request, session_id, x_tenant_id)
    try:
        wizard.patch(**body.fields)
    except ValueError as e:
        raise _bad_request(e)
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/owners")
async def add_owner(
    request: Request,
    session_id: str,
    body: AddOwnerRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _horse(request, session_id, x_tenant_id)
    try:
        wizard.add_owner(body.holder_id)
    except ValueError as e:
        raise _bad_request(e)
    return _state(session_id, wizard)


@router.patch("/horse/{session_id}/owners/{index}")
async def update_owner(
    request: Request,
    session_id: str,
    index: int,
    body: UpdateOwnerRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _horse(request, session_id, x_tenant_id)
    try:
        wizard.update_owner(index, holder_id=body.holder_id, percentage=body.percentage)
    except IndexError:
        raise HTTPException(status_code=404, detail=f"No owner at position {index}")
    return _state(session_id, wizard)


@router.delete("/horse/{session_id}/owners/{index}")
async def remove_owner(request: Request, session_id: str, index: int, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    try:
        wizard.remove_owner(index)
    except IndexError:
        raise HTTPException(status_code=404, detail=f"No owner at position {index}")
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/owners/{index}/primary")
async def set_primary_owner(request: Request, session_id: str, index: int, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    try:
        wizard.set_primary_owner(index)
    except IndexError:
        raise HTTPException(status_code=404, detail=f"No owner at position {index}")
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/media")
async def upload_media(
    request: Request,
    session_id: str,
    files: list[UploadFile] = File(...),
    x_tenant_id: str = Header(...),
):
    """Upload a batch of files. Per-file failures are reported, not raised."""
    wizard = _horse(request, session_id, x_tenant_id)
    uploads = []
    for f in files:
        uploads.append(MediaUpload(filename=f.filename or "upload", content=await f.read(), mime_type=f.content_type))
    result = wizard.upload_media(uploads)
    data = _state(session_id, wizard)
    data["upload"] = result.to_dict()
    return data


@router.delete("/horse/{session_id}/media/{asset_id}")
async def remove_media(request: Request, session_id: str, asset_id: str, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    wizard.remove_media(asset_id)
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/next")
async def horse_next(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    wizard.next()
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/back")
async def horse_back(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    wizard.back()
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/jump")
async def horse_jump(request: Request, session_id: str, body: JumpRequest, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    wizard.jump_to(body.step)
    return _state(session_id, wizard)


@router.post("/horse/{session_id}/commit")
async def commit_horse(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    """Commit from the last step. A failed commit keeps the session open."""
    wizard = _horse(request, session_id, x_tenant_id)
    result = commit_result_to_dict(wizard.submit())
    if result["status"] == "failed":
        return JSONResponse(result, status_code=502)
    _registry(request).discard(session_id)
    return result


@router.delete("/horse/{session_id}")
async def close_horse_wizard(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _horse(request, session_id, x_tenant_id)
    wizard.close()
    _registry(request).discard(session_id)
    return {"closed": True}


# =============================================================================
# Movement Wizard
# =============================================================================


@router.post("/movement")
async def open_movement_wizard(
    request: Request,
    body: OpenMovementWizardRequest,
    x_tenant_id: str = Header(...),
):
    wizard = MovementWizard(request.app.state.records, x_tenant_id)
    wizard.open(horse_id=body.horse_id)
    session_id = _registry(request).add(x_tenant_id, wizard)
    return JSONResponse(_state(session_id, wizard), status_code=201)


@router.get("/movement/{session_id}")
async def get_movement_wizard(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    return _state(session_id, _movement(request, session_id, x_tenant_id))


@router.patch("/movement/{session_id}/draft")
async def patch_movement_draft(
    request: Request,
    session_id: str,
    body: PatchDraftRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _movement(request, session_id, x_tenant_id)
    try:
        wizard.patch(**body.fields)
    except ValueError as e:
        raise _bad_request(e)
    return _state(session_id, wizard)


@router.get("/movement/{session_id}/housing")
async def housing_options(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    return {"options": [option.to_dict() for option in wizard.housing_options()]}


@router.post("/movement/{session_id}/housing")
async def select_housing(
    request: Request,
    session_id: str,
    body: SelectHousingRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.select_housing(body.unit_id)
    return _state(session_id, wizard)


@router.post("/movement/{session_id}/housing/area")
async def select_area(
    request: Request,
    session_id: str,
    body: SelectAreaRequest,
    x_tenant_id: str = Header(...),
):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.select_area(body.area_id)
    return _state(session_id, wizard)


@router.post("/movement/{session_id}/housing/skip")
async def skip_housing(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.skip_housing()
    return _state(session_id, wizard)


@router.post("/movement/{session_id}/next")
async def movement_next(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.next()
    return _state(session_id, wizard)


@router.post("/movement/{session_id}/back")
async def movement_back(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.back()
    return _state(session_id, wizard)


@router.post("/movement/{session_id}/commit")
async def commit_movement(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    result = movement_result_to_dict(wizard.submit())
    if result["status"] == "failed":
        status = 409 if result["stage"] in ("validation", "capacity") else 502
        return JSONResponse(result, status_code=status)
    _registry(request).discard(session_id)
    return result


@router.delete("/movement/{session_id}")
async def close_movement_wizard(request: Request, session_id: str, x_tenant_id: str = Header(...)):
    wizard = _movement(request, session_id, x_tenant_id)
    wizard.close()
    _registry(request).discard(session_id)
    return {"closed": True}


# =============================================================================
# Maintenance
# =============================================================================


@router.post("/media/reap")
async def reap_orphans(request: Request, body: ReapRequest, x_tenant_id: str = Header(...)):
    """Delete staged media whose provisional id never became a horse."""
    state = request.app.state
    ttl = timedelta(hours=body.ttl_hours) if body.ttl_hours is not None else state.config.orphan_ttl
    stager = ResourceStager(state.records, state.storage, x_tenant_id, bucket=state.config.media_bucket)
    result = stager.reap_orphans(
        ttl=ttl,
        live_keys=_registry(request).live_keys(x_tenant_id),
        dry_run=body.dry_run,
    )
    return result.to_dict()
