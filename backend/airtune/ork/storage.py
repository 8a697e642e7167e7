import os
import re
import uuid
from dataclasses import dataclass

from airtune.core.config import get_settings

_UNSAFE_CHARS = re.compile(r"[^\w\-. ]")


@dataclass(frozen=True)
class OrkInfo:
    ork_id: str
    filename: str
    path: str


def safe_ork_filename(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("", os.path.basename(filename)).strip()
    if not name:
        return "rocket.ork"
    return name if name.lower().endswith(".ork") else f"{name}.ork"


def save_uploaded_ork(filename: str, content: bytes) -> OrkInfo:
    upload_dir = get_settings().ork_upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = safe_ork_filename(filename)
    ork_id = f"{uuid.uuid4()}__{safe_name}"
    target_path = os.path.join(upload_dir, ork_id)
    with open(target_path, "wb") as handle:
        handle.write(content)
    return OrkInfo(ork_id=ork_id, filename=safe_name, path=target_path)
