import logging

from fastapi import APIRouter, HTTPException

from airtune.api.v1.schemas import UserSettingsModel
from airtune.core.config import get_settings
from airtune.core.user_settings import load_user_settings, save_user_settings

router = APIRouter(tags=["settings"])
logger = logging.getLogger("airtune.backend")


@router.get("/settings", response_model=UserSettingsModel)
def read_settings():
    return UserSettingsModel.from_settings(load_user_settings(get_settings().user_settings_path))


@router.put("/settings", response_model=UserSettingsModel)
def write_settings(request: UserSettingsModel):
    path = get_settings().user_settings_path
    try:
        save_user_settings(request.to_settings(), path)
    except OSError as exc:
        logger.exception("failed to save settings to %s", path)
        raise HTTPException(status_code=500, detail=f"failed to save settings: {exc}") from exc
    return UserSettingsModel.from_settings(load_user_settings(path))
