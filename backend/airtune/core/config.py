import os
import re
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    env: str
    postgres_dsn: str
    redis_url: str
    jar_dir: str
    openrocket_jar: str
    ork_upload_dir: str
    user_settings_path: str
    cors_origins: list[str]
    celery_task_soft_time_limit: int
    celery_task_time_limit: int
    simulation_timeout_ms: int
    simulation_attempts: int
    simulation_backoff_ms: int
    progress_flush_interval_s: float


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return ["*"]
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> str:
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def _resolve_dir(value: str, base_dir: str) -> str:
    if os.path.isabs(value):
        return value
    return os.path.join(base_dir, value)


def _openrocket_version_key(name: str) -> tuple[int, ...] | None:
    match = re.search(r"OpenRocket-(\d+)\.(\d+)", name)
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


def _latest_openrocket_jar(jar_dir: str) -> str | None:
    try:
        entries = os.listdir(jar_dir)
    except FileNotFoundError:
        return None
    candidates: list[tuple[tuple[int, ...], str]] = []
    for entry in entries:
        if not entry.lower().endswith(".jar"):
            continue
        version_key = _openrocket_version_key(entry)
        if version_key:
            candidates.append((version_key, os.path.join(jar_dir, entry)))
    if not candidates:
        return None
    return max(candidates, key=lambda item: item[0])[1]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    base_dir = _project_root()
    jar_dir = _resolve_dir(os.getenv("JAR_DIR", "resources/jars"), base_dir)
    openrocket_jar = os.getenv("OPENROCKET_JAR")
    if openrocket_jar:
        openrocket_jar = _resolve_dir(openrocket_jar, base_dir)
    else:
        openrocket_jar = _latest_openrocket_jar(jar_dir) or ""
    user_settings_path = os.getenv("USER_SETTINGS_PATH") or os.path.join(
        os.path.expanduser("~"), ".airtune.yaml"
    )

    return Settings(
        env=os.getenv("ENV", "development"),
        postgres_dsn=os.getenv("POSTGRES_DSN", ""),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        jar_dir=jar_dir,
        openrocket_jar=openrocket_jar,
        ork_upload_dir=_resolve_dir(os.getenv("ORK_UPLOAD_DIR", "resources/ork/uploads"), base_dir),
        user_settings_path=user_settings_path,
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        celery_task_soft_time_limit=int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", "3600")),
        celery_task_time_limit=int(os.getenv("CELERY_TASK_TIME_LIMIT", "7200")),
        simulation_timeout_ms=int(os.getenv("SIMULATION_TIMEOUT_MS", "2000")),
        simulation_attempts=int(os.getenv("SIMULATION_ATTEMPTS", "2")),
        simulation_backoff_ms=int(os.getenv("SIMULATION_BACKOFF_MS", "100")),
        progress_flush_interval_s=float(os.getenv("PROGRESS_FLUSH_INTERVAL_S", "0.5")),
    )
