from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile

from airtune.api.v1.schemas import (
    OrkInspectRequest,
    OrkInspectResponse,
    OrkUploadResponse,
    ParachutePresetsResponse,
)
from airtune.engine.openrocket.presets import OpenRocketParachuteCatalog
from airtune.engine.openrocket.runner import OpenRocketRunnerError, openrocket_healthcheck
from airtune.engine.optimizer.errors import AirframeSetupError
from airtune.ork.storage import save_uploaded_ork
from airtune.services.airframe_optimization import inspect_airframe

router = APIRouter(tags=["ork"])


@router.post("/ork/upload", response_model=OrkUploadResponse)
def upload_ork(file: UploadFile = File(...)):
    if not file.filename or not file.filename.lower().endswith(".ork"):
        raise HTTPException(status_code=400, detail="only .ork files are supported")
    content = file.file.read()
    if not content:
        raise HTTPException(status_code=400, detail="uploaded file is empty")
    info = save_uploaded_ork(file.filename, content)
    return OrkUploadResponse(ork_id=info.ork_id, filename=info.filename, path=info.path)


@router.post("/ork/inspect", response_model=OrkInspectResponse)
def inspect_ork(request: OrkInspectRequest):
    path = Path(request.path)
    if path.suffix.lower() != ".ork":
        raise HTTPException(status_code=400, detail="only .ork files are supported")
    if not path.exists():
        raise HTTPException(status_code=404, detail="ORK path not found")
    try:
        return OrkInspectResponse(**inspect_airframe(str(path)))
    except AirframeSetupError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except OpenRocketRunnerError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get("/ork/parachute-presets", response_model=ParachutePresetsResponse)
def list_parachute_presets():
    catalog = OpenRocketParachuteCatalog()
    try:
        presets = catalog.list_presets()
    except OpenRocketRunnerError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return ParachutePresetsResponse(presets=[catalog.display_name(preset) for preset in presets])


@router.get("/ork/health")
def ork_health():
    return openrocket_healthcheck()
