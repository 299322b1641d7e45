"""Minecraft launcher integration: profile registration and loader launch."""

import json
import logging
import os
import shutil
import subprocess
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .manifest import Profile

logger = logging.getLogger(__name__)

PROFILES_FILENAME = "launcher_profiles.json"

# Store version of the Minecraft Launcher keeps its runtimes here (Windows).
MS_STORE_PACKAGE = "Microsoft.4297127D64EC6_8wekyb3d8bbwe"


class LauncherError(Exception):
    """Raised when launcher integration fails."""

    pass


def minecraft_dir() -> Path:
    """Default .minecraft directory for this platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if not appdata:
            raise LauncherError("APPDATA environment variable not found")
        return Path(appdata) / ".minecraft"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "minecraft"
    return Path.home() / ".minecraft"


def launcher_profiles_path() -> Path:
    return minecraft_dir() / PROFILES_FILENAME


def _now_millis() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _next_backup_path(profiles_path: Path) -> Path:
    backup = profiles_path.with_suffix(".json.bak")
    index = 1
    while backup.exists():
        backup = profiles_path.with_suffix(f".json.bak{index}")
        index += 1
    return backup


def add_launcher_profile(
    profile: Profile, game_dir: Path, profiles_path: Path | None = None
) -> bool:
    """
    Add a custom profile pointing at ``game_dir`` to launcher_profiles.json.

    The original file is kept as the first free ``.json.bak[N]``.
    Returns False when a profile with the same name already exists.
    """
    profiles_path = profiles_path or launcher_profiles_path()
    if not profiles_path.exists():
        raise LauncherError(f"Launcher profiles file not found: {profiles_path}")

    try:
        with open(profiles_path, encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise LauncherError(f"Failed to read {profiles_path.name}: {e}") from e

    profiles = data.setdefault("profiles", {})
    for existing in profiles.values():
        if existing.get("name") == profile.name:
            logger.info("Launcher profile '%s' already exists, skipping addition.", profile.name)
            return False

    profile_id = uuid.uuid4().hex
    if profile_id in profiles:
        raise LauncherError(f"Profile ID '{profile_id}' already exists in launcher profiles")

    now = _now_millis()
    new_profile: dict[str, Any] = {
        "created": now,
        "gameDir": str(game_dir),
        "icon": profile.icon,
        "lastUsed": now,
        "lastVersionId": profile.version,
        "name": profile.name,
        "type": "custom",
    }
    if profile.jvm_args:
        new_profile["javaArgs"] = profile.jvm_args
    profiles[profile_id] = new_profile

    backup_path = _next_backup_path(profiles_path)
    try:
        profiles_path.rename(backup_path)
        logger.info("Backed up %s to %s", profiles_path.name, backup_path)
        with open(profiles_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        raise LauncherError(f"Failed to write {profiles_path}: {e}") from e

    logger.info("Added profile '%s' to launcher.", profile.name)
    return True


def search_runtime_dir(runtime_dir: Path) -> Path | None:
    """Find a java executable among the launcher's bundled runtimes, newest first."""
    if not runtime_dir.is_dir():
        return None

    dirs = [p for p in runtime_dir.iterdir() if p.is_dir()]
    # java-runtime-* before jre-*; within each group newest (reverse name) first
    java_runtimes = sorted((d for d in dirs if d.name.startswith("java-runtime-")), reverse=True)
    others = sorted((d for d in dirs if not d.name.startswith("java-runtime-")), reverse=True)

    exe = "javaw.exe" if sys.platform == "win32" else "java"
    for runtime in java_runtimes + others:
        java = runtime / "bin" / exe
        if java.exists():
            return java
    return None


def _runtime_dirs() -> list[Path]:
    if sys.platform == "win32":
        local_appdata = os.environ.get("LOCALAPPDATA")
        if not local_appdata:
            logger.warning("LOCALAPPDATA environment variable not found")
            return []
        return [
            Path(local_appdata) / "Packages" / MS_STORE_PACKAGE / "LocalCache" / "Local" / "runtime"
        ]
    if sys.platform == "darwin":
        return [Path.home() / "Library" / "Application Support" / "minecraft" / "runtime"]
    return [Path.home() / ".minecraft" / "runtime"]


def find_java() -> Path | None:
    """Find a Java executable: PATH first, then the launcher's runtimes."""
    logger.info("Searching for system java...")
    system_java = shutil.which("java")
    if system_java:
        return Path(system_java)

    logger.info("Searching for java from minecraft...")
    for runtime_dir in _runtime_dirs():
        java = search_runtime_dir(runtime_dir)
        if java:
            return java
    return None


def find_loader_jar(install_dir: Path, loader_file: str | None = None) -> Path:
    if loader_file:
        candidate = install_dir / loader_file
        if candidate.is_file():
            return candidate
        logger.warning("Recorded mod loader %s not found, searching for a JAR", candidate)

    jars = sorted(p for p in install_dir.iterdir() if p.is_file() and p.suffix.lower() == ".jar")
    if not jars:
        raise LauncherError("Mod loader installer JAR file not found.")
    return jars[0]


def launch_mod_loader(install_dir: Path, loader_file: str | None = None) -> None:
    """Start the mod loader's own installer, detached from this process."""
    jar_path = find_loader_jar(install_dir, loader_file)
    logger.info("Found mod loader: %s", jar_path)

    java = find_java()
    if java is None:
        raise LauncherError("Java executable not found")
    logger.info("Using Java: %s", java)

    kwargs: dict[str, Any] = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

    try:
        subprocess.Popen(
            [str(java), "-jar", str(jar_path)],
            cwd=install_dir,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **kwargs,
        )
    except OSError as e:
        raise LauncherError(f"Failed to launch mod loader installer: {e}") from e
    logger.info("Launched mod loader installer.")


class LauncherIntegration:
    """The launcher-facing operations the installer needs, bundled for injection."""

    def __init__(self, profiles_path: Path | None = None):
        self.profiles_path = profiles_path

    def add_profile(self, profile: Profile, game_dir: Path) -> bool:
        return add_launcher_profile(profile, game_dir, self.profiles_path)

    def launch_loader(self, install_dir: Path, loader_file: str | None = None) -> None:
        launch_mod_loader(install_dir, loader_file)
