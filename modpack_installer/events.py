"""Lifecycle events emitted by the installer to whatever shell is driving it."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    DOWNLOAD_LOADER = "downloadLoader"
    REMOVE_MODS = "removeMods"
    DOWNLOAD_MODS = "downloadMods"
    DOWNLOAD_RESOURCES = "downloadResources"
    RUN_MIGRATIONS = "runMigrations"
    ADD_PROFILE = "addProfile"
    LAUNCH_LOADER = "launchLoader"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"


ALERT_FAILED_ADD_PROFILE = "alertOnFailedAddProfile"
ALERT_FAILED_LAUNCH_LOADER = "alertOnFailedLaunchModLoader"
ALERT_LAUNCHED_LOADER = "alertOnLaunchModLoader"


@dataclass
class ChangePhase:
    phase: Phase

    def to_dict(self) -> dict[str, Any]:
        return {"type": "changePhase", "phase": self.phase.value}


@dataclass
class ChangeDetail:
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "changeDetail", "detail": self.detail}


@dataclass
class UpdateProgress:
    progress: float

    def to_dict(self) -> dict[str, Any]:
        return {"type": "updateProgress", "progress": self.progress}


@dataclass
class AddAlert:
    level: AlertLevel
    translation_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "addAlert",
            "level": self.level.value,
            "translationKey": self.translation_key,
        }


InstallerEvent = ChangePhase | ChangeDetail | UpdateProgress | AddAlert
EventCallback = Callable[[InstallerEvent], None]


class EventEmitter:
    """Fire-and-forget delivery of installer events.

    A failing callback is logged and otherwise ignored. Progress never moves
    backwards within one emitter.
    """

    def __init__(self, callback: EventCallback | None = None):
        self._callback = callback
        self._last_progress = 0.0

    def emit(self, event: InstallerEvent) -> None:
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception as e:
            logger.warning("Failed to emit installer event. payload: %r, error: %s", event, e)

    def phase(self, phase: Phase) -> None:
        self.emit(ChangePhase(phase))

    def detail(self, detail: str) -> None:
        self.emit(ChangeDetail(detail))

    def progress(self, progress: float) -> None:
        progress = min(max(progress, self._last_progress), 1.0)
        self._last_progress = progress
        self.emit(UpdateProgress(progress))

    def alert(self, level: AlertLevel, translation_key: str) -> None:
        self.emit(AddAlert(level, translation_key))
