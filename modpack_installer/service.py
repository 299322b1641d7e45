"""Service layer - the commands a shell (CLI or web UI) calls into."""

import logging
import threading
from dataclasses import dataclass

import click

from . import __version__
from .downloader import ContentFetcher
from .events import EventCallback
from .installer import Installer, InstallerError
from .launcher import LauncherIntegration
from .manifest import ManifestError
from .paths import AppPaths
from .state import InstallerMode, StateError

logger = logging.getLogger(__name__)

# Errors that mean "this mode is not available right now", as opposed to bugs.
PRECONDITION_ERRORS = (ManifestError, StateError, InstallerError)


class AlreadyRunningError(Exception):
    """Raised when a run is requested while another one is active."""

    pass


@dataclass
class TitleStatus:
    can_install: bool
    can_update: bool


@dataclass
class ModeResult:
    is_accept: bool
    error: str | None = None


class InstallerService:
    """Long-lived process context: paths plus the single "a run is active" flag."""

    def __init__(
        self,
        paths: AppPaths,
        installer_version: str = __version__,
        fetcher: ContentFetcher | None = None,
        launcher: LauncherIntegration | None = None,
    ):
        self.paths = paths
        self.installer_version = installer_version
        self._fetcher = fetcher
        self._launcher = launcher
        self._lock = threading.Lock()
        self._is_running = False

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._is_running

    def _check(self, mode: InstallerMode) -> None:
        if mode is InstallerMode.INSTALL:
            Installer.can_install(self.paths.manifest_file, self.paths.state_file)
        else:
            Installer.can_update(self.paths.manifest_file, self.paths.state_file)

    def initialize_title(self) -> TitleStatus:
        """Which modes are currently available."""
        logger.info("Checking available modes.")
        available = {}
        for mode in InstallerMode:
            try:
                self._check(mode)
                available[mode] = True
            except PRECONDITION_ERRORS as e:
                logger.warning("Disabled %s mode: %s", mode.value, e)
                available[mode] = False
        return TitleStatus(
            can_install=available[InstallerMode.INSTALL],
            can_update=available[InstallerMode.UPDATE],
        )

    def select_mode(self, mode: InstallerMode | str) -> ModeResult:
        """Validate that ``mode`` may start now."""
        mode = InstallerMode(mode)
        logger.info("Selected mode: %s", mode)
        try:
            self._check(mode)
        except PRECONDITION_ERRORS as e:
            logger.error("Failed to start %s: %s", mode, e)
            return ModeResult(is_accept=False, error=str(e))
        return ModeResult(is_accept=True)

    def claim(self) -> None:
        """Mark a run as active; raises AlreadyRunningError if one already is."""
        with self._lock:
            if self._is_running:
                logger.warning("Installer is already running, ignoring duplicate call.")
                raise AlreadyRunningError("Installer is already running")
            self._is_running = True

    def release(self) -> None:
        with self._lock:
            self._is_running = False

    def run_installer(
        self, mode: InstallerMode | str, on_event: EventCallback | None = None
    ) -> None:
        """Run ``mode`` to completion; raises AlreadyRunningError on re-entry."""
        mode = InstallerMode(mode)
        self.claim()
        self.run_claimed(mode, on_event)

    def run_claimed(
        self, mode: InstallerMode | str, on_event: EventCallback | None = None
    ) -> None:
        """Run ``mode`` under a claim taken with ``claim()``; always releases it."""
        try:
            mode = InstallerMode(mode)
            installer = Installer(
                mode,
                self.paths,
                self.installer_version,
                on_event=on_event,
                fetcher=self._fetcher,
                launcher=self._launcher,
            )
            installer.run()
        except Exception:
            logger.exception("Failed to run %s", mode)
            raise
        finally:
            self.release()

    def open_log_folder(self) -> None:
        log_dir = self.paths.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        code = click.launch(str(log_dir))
        if code != 0:
            logger.error("Failed to open log folder %s (exit code %s)", log_dir, code)
