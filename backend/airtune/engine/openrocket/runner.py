"""JVM bootstrap and .ork document I/O for the OpenRocket adapters."""

from __future__ import annotations

import logging
import os
import platform
import re
import subprocess
from pathlib import Path
from threading import Lock
from typing import Optional

import jpype
import jpype.imports  # noqa: F401

from airtune.core.config import get_settings

logger = logging.getLogger("airtune.openrocket")

_JVM_LOCK = Lock()
_PRESET_LOADER = None


class OpenRocketRunnerError(RuntimeError):
    pass


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def resolve_openrocket_jar() -> str:
    jar_path = get_settings().openrocket_jar
    if jar_path and os.path.exists(jar_path):
        return jar_path
    raise OpenRocketRunnerError(f"OpenRocket jar not found: {jar_path or get_settings().jar_dir}")


def _openrocket_user_dir() -> Path:
    override = os.getenv("OPENROCKET_USER_DIR")
    if override:
        return Path(override)
    return _project_root() / "resources" / "openrocket_user"


def _required_java_major(jar_path: str) -> int:
    match = re.search(r"OpenRocket-(\d+)", os.path.basename(jar_path))
    if match and int(match.group(1)) >= 23:
        return 17
    return 8


def _parse_java_major(version: str) -> Optional[int]:
    # "1.8.0_392" -> 8, "17.0.9" -> 17
    match = re.match(r"\s*(?:1\.)?(\d+)", version or "")
    return int(match.group(1)) if match else None


def _java_home_version(java_home: Path) -> Optional[int]:
    try:
        content = (java_home / "release").read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return None
    for line in content.splitlines():
        if line.startswith("JAVA_VERSION="):
            return _parse_java_major(line.split("=", 1)[1].strip().strip('"'))
    return None


def _candidate_java_homes(required_major: int) -> list[Path]:
    candidates = [Path(value) for key in ("OPENROCKET_JAVA_HOME", "JAVA_HOME") if (value := os.getenv(key))]
    system = platform.system().lower()
    if system == "darwin":
        try:
            result = subprocess.run(
                ["/usr/libexec/java_home", "-v", str(required_major)],
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError:
            result = None
        if result is not None and result.returncode == 0 and result.stdout.strip():
            candidates.append(Path(result.stdout.strip()))
        candidates.extend(Path("/Library/Java/JavaVirtualMachines").glob("*/Contents/Home"))
    elif system == "linux":
        candidates.extend(Path("/usr/lib/jvm").glob("*"))

    versioned = [(_java_home_version(candidate), candidate) for candidate in candidates]
    usable = [(version, home) for version, home in versioned if version and version >= required_major]
    usable.sort(key=lambda item: item[0], reverse=True)
    return [home for _, home in usable]


def _jvm_library_path(java_home: Path) -> Optional[str]:
    system = platform.system().lower()
    if system == "darwin":
        candidate = java_home / "lib" / "server" / "libjvm.dylib"
    elif system == "windows":
        candidate = java_home / "bin" / "server" / "jvm.dll"
    else:
        candidate = java_home / "lib" / "server" / "libjvm.so"
    return str(candidate) if candidate.exists() else None


def _ensure_jvm() -> None:
    if jpype.isJVMStarted():
        return
    with _JVM_LOCK:
        if jpype.isJVMStarted():
            return
        jar_path = resolve_openrocket_jar()
        user_dir = _openrocket_user_dir()
        prefs_dir = user_dir / "prefs"
        try:
            (user_dir / "tmp").mkdir(parents=True, exist_ok=True)
            prefs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OpenRocketRunnerError(f"OpenRocket user dir not writable: {user_dir}") from exc
        jvm_opts = [
            "-Djava.awt.headless=true",
            f"-Duser.home={user_dir}",
            f"-Dopenrocket.userdir={user_dir}",
            f"-Djava.io.tmpdir={user_dir / 'tmp'}",
            f"-Djava.util.prefs.userRoot={prefs_dir}",
            f"-Djava.util.prefs.systemRoot={prefs_dir / 'system'}",
        ]
        jvm_path = next(
            (
                path
                for path in map(_jvm_library_path, _candidate_java_homes(_required_java_major(jar_path)))
                if path
            ),
            None,
        )
        args = [jvm_path, *jvm_opts] if jvm_path else jvm_opts
        logger.info("starting JVM for %s", jar_path)
        try:
            jpype.startJVM(*args, classpath=[jar_path], convertStrings=True)
        except Exception as exc:
            raise OpenRocketRunnerError(
                "Failed to start JVM for OpenRocket. "
                "Install Java 17+ and/or set OPENROCKET_JAVA_HOME."
            ) from exc


def ensure_openrocket_initialized() -> None:
    _ensure_jvm()
    try:
        Application = jpype.JClass("net.sf.openrocket.startup.Application")
    except Exception as exc:
        if "UnsupportedClassVersionError" in str(exc):
            raise OpenRocketRunnerError(
                "OpenRocket 23.09 requires Java 17+. "
                "Install a Java 17 runtime and set OPENROCKET_JAVA_HOME."
            ) from exc
        raise
    if Application.getInjector() is not None:
        return
    CoreServicesModule = jpype.JClass("net.sf.openrocket.utils.CoreServicesModule")
    PluginModule = jpype.JClass("net.sf.openrocket.plugin.PluginModule")
    Guice = jpype.JClass("com.google.inject.Guice")
    Modules = jpype.JClass("com.google.inject.util.Modules")
    base = Modules.override(CoreServicesModule()).with_(_preset_module())
    Application.setInjector(Guice.createInjector(base, PluginModule()))
    try:
        _PRESET_LOADER.startLoading()
    except Exception:
        logger.exception("component preset loader failed to start")


def _preset_module():
    """Guice module binding the component preset database to a blocking provider."""
    global _PRESET_LOADER
    ComponentPresetDatabaseLoader = jpype.JClass(
        "net.sf.openrocket.database.ComponentPresetDatabaseLoader"
    )
    BlockingComponentPresetDatabaseProvider = jpype.JClass(
        "net.sf.openrocket.startup.providers.BlockingComponentPresetDatabaseProvider"
    )
    ComponentPresetDao = jpype.JClass("net.sf.openrocket.database.ComponentPresetDao")
    Scopes = jpype.JClass("com.google.inject.Scopes")

    _PRESET_LOADER = ComponentPresetDatabaseLoader()
    provider = BlockingComponentPresetDatabaseProvider(_PRESET_LOADER)

    def configure(binder):
        binder.bind(ComponentPresetDao).toProvider(provider).in_(Scopes.SINGLETON)

    return jpype.JProxy("com.google.inject.Module", dict(configure=configure))


def openrocket_healthcheck() -> dict[str, object]:
    try:
        jar_path = resolve_openrocket_jar()
    except OpenRocketRunnerError as exc:
        return {"status": "error", "detail": str(exc), "jar_path": None}
    required_major = _required_java_major(jar_path)
    try:
        ensure_openrocket_initialized()
    except Exception as exc:
        return {
            "status": "error",
            "detail": str(exc),
            "required_java_major": required_major,
            "jar_path": jar_path,
        }
    return {"status": "ok", "required_java_major": required_major, "jar_path": jar_path}


def load_document(ork_path: str):
    ensure_openrocket_initialized()
    if not os.path.exists(ork_path):
        raise OpenRocketRunnerError(f"ORK file not found: {ork_path}")
    OpenRocketLoader = jpype.JClass("net.sf.openrocket.file.openrocket.importt.OpenRocketLoader")
    DocumentLoadingContext = jpype.JClass("net.sf.openrocket.file.DocumentLoadingContext")
    DatabaseMotorFinder = jpype.JClass("net.sf.openrocket.file.DatabaseMotorFinder")
    OpenRocketDocumentFactory = jpype.JClass("net.sf.openrocket.document.OpenRocketDocumentFactory")
    FileInputStream = jpype.JClass("java.io.FileInputStream")

    context = DocumentLoadingContext()
    try:
        context.setMotorFinder(DatabaseMotorFinder())
    except Exception as exc:
        raise OpenRocketRunnerError("Failed to initialize OpenRocket motor finder.") from exc
    context.setOpenRocketDocument(OpenRocketDocumentFactory.createNewRocket())
    stream = FileInputStream(ork_path)
    try:
        OpenRocketLoader().loadFromStream(context, stream, ork_path)
    except Exception as exc:
        raise OpenRocketRunnerError(f"Failed to load {ork_path}: {exc}") from exc
    finally:
        stream.close()
    document = context.getOpenRocketDocument()
    if document.getSimulations().size() == 0:
        raise OpenRocketRunnerError(f"{ork_path} contains no simulations to copy conditions from")
    logger.info("loaded %s", ork_path)
    return document


def save_document(document, ork_path: str) -> list[str]:
    """Write ``document`` with its default storage options; returns save warnings."""
    OpenRocketSaver = jpype.JClass("net.sf.openrocket.file.openrocket.OpenRocketSaver")
    WarningSet = jpype.JClass("net.sf.openrocket.aerodynamics.WarningSet")
    ErrorSet = jpype.JClass("net.sf.openrocket.logging.ErrorSet")
    FileOutputStream = jpype.JClass("java.io.FileOutputStream")

    warnings = WarningSet()
    errors = ErrorSet()
    Path(ork_path).parent.mkdir(parents=True, exist_ok=True)
    stream = FileOutputStream(ork_path)
    try:
        OpenRocketSaver().save(stream, document, document.getDefaultStorageOptions(), warnings, errors)
    finally:
        stream.close()
    if not errors.isEmpty():
        raise OpenRocketRunnerError(f"Errors encountered during save: {errors}")
    return [str(warning) for warning in warnings]
