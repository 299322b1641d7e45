"""Installer orchestrator.

Turns the manifest plus a possibly partial state file into an ordered
sequence of download / verify / place / remove steps. The state file is
saved after every step that changes it, so an interrupted run loses at most
the item in flight and can always be resumed.
"""

import logging
import shutil
from pathlib import Path, PurePosixPath

from .downloader import (
    ContentFetcher,
    DownloadProgress,
    FetchError,
    IntegrityError,
    verify_hash,
)
from .events import (
    ALERT_FAILED_ADD_PROFILE,
    ALERT_FAILED_LAUNCH_LOADER,
    ALERT_LAUNCHED_LOADER,
    AlertLevel,
    EventCallback,
    EventEmitter,
    Phase,
)
from .extractor import extract_archive, move_file
from .launcher import LauncherIntegration
from .manifest import ManifestError, ModEntry, ModpackManifest, Side, load_manifest
from .migrations import (
    CONFIG_DIR,
    DEFAULTS_DIR,
    MIGRATIONS,
    ExtractArchive,
    Migration,
    OverwriteConfig,
    select_migrations,
)
from .paths import AppPaths
from .state import (
    InstalledItemRecord,
    InstalledLoaderRecord,
    InstalledResourceRecord,
    InstallerMode,
    InstallerState,
)

__all__ = [
    "FetchError",
    "Installer",
    "InstallerError",
    "InstallerMode",
    "IntegrityError",
    "StateConflictError",
]

logger = logging.getLogger(__name__)


class InstallerError(Exception):
    """Raised when an install or update step fails."""

    pass


class StateConflictError(InstallerError):
    """Raised when the requested mode is not permitted by the persisted state."""

    pass


class Installer:
    """Runs one install or update of the modpack."""

    def __init__(
        self,
        mode: InstallerMode,
        paths: AppPaths,
        installer_version: str,
        on_event: EventCallback | None = None,
        fetcher: ContentFetcher | None = None,
        launcher: LauncherIntegration | None = None,
        migrations: list[Migration] | None = None,
        side: Side = Side.CLIENT,
    ):
        if side is Side.BOTH:
            raise ValueError("Installer side must be client or server")
        self.mode = InstallerMode(mode)
        self.paths = paths
        self.installer_version = installer_version
        self.manifest: ModpackManifest = load_manifest(paths.manifest_file)
        self.fetcher = fetcher or ContentFetcher()
        self.launcher = launcher or LauncherIntegration()
        self.migrations = MIGRATIONS if migrations is None else migrations
        self.side = side
        self.events = EventEmitter(on_event)
        self._completed_steps = 0
        self._total_steps = 0

    # -- pre-flight checks --

    @staticmethod
    def can_install(manifest_file: Path, state_file: Path) -> None:
        """Raise unless an install may start (or resume)."""
        if not Path(manifest_file).exists():
            raise ManifestError("Config file is not found.")
        state = InstallerState(state_file)
        if not state.exists():
            return
        state.load()
        Installer._check_install_state(state)

    @staticmethod
    def _check_install_state(state: InstallerState) -> None:
        mode = state.process_mode
        if mode is not None and mode is not InstallerMode.INSTALL:
            raise StateConflictError(f"Another mode ({mode}) is already in progress.")

    @staticmethod
    def can_update(manifest_file: Path, state_file: Path) -> None:
        """Raise unless an update may start (or resume)."""
        manifest = load_manifest(manifest_file)
        Installer._load_updatable_state(manifest, state_file)

    @staticmethod
    def _load_updatable_state(manifest: ModpackManifest, state_file: Path) -> InstallerState:
        state = InstallerState(state_file)
        if not state.exists():
            raise StateConflictError("Installer state file is not found.")
        state.load()
        mode = state.process_mode
        if mode is None:
            if manifest.pack_version > state.pack_version:
                return state
            raise StateConflictError("No update is needed.")
        if mode is not InstallerMode.UPDATE:
            raise StateConflictError(f"Another mode ({mode}) is already in progress.")
        return state

    # -- pipelines --

    def run(self) -> None:
        self.events.progress(0.0)
        if self.mode is InstallerMode.INSTALL:
            self._run_install()
        else:
            self._run_update()

    def _run_install(self) -> None:
        logger.info("Starting installation...")
        self._prepare_temp_dir()

        state = InstallerState(self.paths.state_file)
        if state.exists():
            state.load()
            self._check_install_state(state)
            if state.process_mode is None:
                logger.info("Previous installation completed, verifying files and retrying launcher setup...")
            else:
                logger.info("Resuming previous installation process...")
        else:
            state.installer_version = self.installer_version
            state.pack_version = self.manifest.pack_version
        state.process_mode = InstallerMode.INSTALL
        state.save()

        self._start_steps(self._count_steps(state, []))
        self.events.phase(Phase.DOWNLOAD_LOADER)
        self._download_loader(state)
        self.events.phase(Phase.DOWNLOAD_MODS)
        self._download_mods(state)
        self.events.phase(Phase.DOWNLOAD_RESOURCES)
        self._download_resources(state)
        self.events.progress(1.0)

        self._register_with_launcher(state)

        state.installer_version = self.installer_version
        state.finalize()
        logger.info("Installation completed.")

    def _run_update(self) -> None:
        logger.info("Starting update...")
        self._prepare_temp_dir()

        state = self._load_updatable_state(self.manifest, self.paths.state_file)
        state.process_mode = InstallerMode.UPDATE
        state.save()

        migrations = select_migrations(
            state.pack_version, self.manifest.pack_version, self.migrations
        )
        self._start_steps(self._count_steps(state, migrations))
        self.events.phase(Phase.REMOVE_MODS)
        self._remove_obsolete_mods(state)
        self.events.phase(Phase.DOWNLOAD_MODS)
        self._download_mods(state)
        self.events.phase(Phase.DOWNLOAD_RESOURCES)
        self._download_resources(state)
        self.events.phase(Phase.RUN_MIGRATIONS)
        self._run_migrations(migrations)
        self.events.progress(1.0)

        state.installer_version = self.installer_version
        state.pack_version = self.manifest.pack_version
        state.finalize()
        logger.info("Update completed.")

    def _prepare_temp_dir(self) -> None:
        temp_dir = self.paths.temp_dir
        try:
            if temp_dir.exists():
                shutil.rmtree(temp_dir)
            temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallerError(f"Failed to wipe temp directory {temp_dir}: {e}") from e

    # -- progress --

    def _count_steps(self, state: InstallerState, migrations: list[Migration]) -> int:
        steps = 0
        if self.mode is InstallerMode.INSTALL:
            steps += 1  # mod loader
        else:
            steps += len(state.mods)  # removal pass
        steps += len(self.manifest.mods_for(self.side))
        steps += len(self.manifest.resources_for(self.side))
        steps += len(migrations)
        return steps

    def _start_steps(self, total_steps: int) -> None:
        self._completed_steps = 0
        self._total_steps = total_steps
        logger.info("%s plan: %d steps", self.mode, total_steps)

    def _emit_step_progress(self, fraction: float = 0.0) -> None:
        if self._total_steps == 0:
            self.events.progress(1.0)
            return
        self.events.progress((self._completed_steps + fraction) / self._total_steps)

    def _step_done(self) -> None:
        self._completed_steps += 1
        self._emit_step_progress()

    # -- steps --

    def _ensure_download(
        self,
        url: str,
        name: str,
        expected_hash: str,
        final_dir: Path,
        decompress: bool = False,
    ) -> tuple[str, str]:
        """
        Fetch ``url``, verify it and place it under ``final_dir``.

        Returns (file name, verified hash).
        """
        logger.info("Downloading %s from %s ...", name, url)
        self.events.detail(name)

        def on_progress(progress: DownloadProgress) -> None:
            if not progress.total_bytes:
                return
            fraction = min(progress.received_bytes / progress.total_bytes, 1.0)
            self._emit_step_progress(fraction)

        outcome = self.fetcher.download_to_dir(url, self.paths.temp_dir, on_progress)
        verify_hash(expected_hash, outcome.hash, outcome.path)

        file_name = outcome.path.name
        if decompress:
            logger.info("Extracting %s to %s ...", name, final_dir)
            extract_archive(outcome.path, final_dir)
            try:
                outcome.path.unlink()
            except OSError as e:
                logger.warning("Failed to remove temporary file %s: %s", outcome.path, e)
            logger.info("Extracted %s.", name)
        else:
            move_file(outcome.path, final_dir / file_name)
            logger.info("Downloaded %s.", name)

        return file_name, outcome.hash

    def _needs_download(
        self, record: InstalledItemRecord | None, entry: ModEntry, kind: str
    ) -> bool:
        if record is None:
            return True
        if record.matches(entry):
            logger.info("%s %s is already downloaded, skipping download.", kind, entry.name)
            return False
        if self.mode is InstallerMode.UPDATE:
            logger.warning(
                "%s %s is downloaded, but uploaded file was changed. Downloading again.",
                kind,
                entry.name,
            )
            return True
        logger.error(
            "%s %s is downloaded, but uploaded file was changed. Leaving the existing file as-is.",
            kind,
            entry.name,
        )
        return False

    def _remove_file(self, path: Path) -> None:
        if not path.exists():
            logger.warning("File to remove does not exist: %s", path)
            return
        logger.info("Removing %s", path)
        try:
            path.unlink()
        except OSError as e:
            raise InstallerError(f"Failed to remove file {path}: {e}") from e

    def _download_loader(self, state: InstallerState) -> None:
        loader = self.manifest.loader
        record = state.mod_loader
        if record is not None:
            if record.matches(loader):
                logger.info("Mod loader %s is already downloaded, skipping download.", loader.name)
            else:
                logger.error(
                    "Mod loader %s is downloaded, but uploaded file was changed. Skipping.",
                    loader.name,
                )
        else:
            file_name, file_hash = self._ensure_download(
                loader.url, loader.name, loader.hash, self.paths.install_dir
            )
            state.mod_loader = InstalledLoaderRecord(file_name, loader.url, file_hash)
            state.save()
        self._step_done()

    def _download_mods(self, state: InstallerState) -> None:
        mods_dir = self.paths.mods_dir
        for entry in self.manifest.mods_for(self.side):
            record = state.get_mod(entry.source)
            if self._needs_download(record, entry, "Mod"):
                file_name, file_hash = self._ensure_download(
                    entry.source.download_url(), entry.name, entry.hash, mods_dir
                )
                if record is not None and record.file_name != file_name:
                    self._remove_file(mods_dir / record.file_name)
                state.add_mod(InstalledItemRecord(file_name, entry.source, file_hash))
                state.save()
            self._step_done()

    def _download_resources(self, state: InstallerState) -> None:
        for entry in self.manifest.resources_for(self.side):
            record = state.get_resource(entry.source, entry.target_dir)
            if self._needs_download(record, entry, "Resource"):
                target_dir = self.paths.install_dir / entry.target_dir
                file_name, file_hash = self._ensure_download(
                    entry.source.download_url(),
                    entry.name,
                    entry.hash,
                    target_dir,
                    decompress=entry.decompress,
                )
                if (
                    record is not None
                    and not record.decompress
                    and record.file_name != file_name
                ):
                    self._remove_file(target_dir / record.file_name)
                state.add_resource(
                    InstalledResourceRecord(
                        file_name,
                        entry.source,
                        file_hash,
                        target_dir=entry.target_dir,
                        decompress=entry.decompress,
                    )
                )
                state.save()
            self._step_done()

    def _remove_obsolete_mods(self, state: InstallerState) -> None:
        mods_dir = self.paths.mods_dir
        for record in list(state.mods):
            if not self.manifest.has_mod(record.source):
                logger.info("Removing mod: %s", record.file_name)
                self._remove_file(mods_dir / record.file_name)
                state.remove_mod(record)
                state.save()
            self._step_done()

    def _run_migrations(self, migrations: list[Migration]) -> None:
        for migration in migrations:
            action = migration.action
            logger.info(
                "Updating config files for v%s: %s", migration.threshold, action.describe()
            )
            if isinstance(action, ExtractArchive):
                self._ensure_download(
                    action.url,
                    action.name,
                    action.hash,
                    self.paths.install_dir / action.target_dir,
                    decompress=True,
                )
            elif isinstance(action, OverwriteConfig):
                self._overwrite_config(action.path)
            else:
                raise InstallerError(f"Unknown migration action: {action!r}")
            self._step_done()

    def _overwrite_config(self, path: str) -> None:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise InstallerError(f"Config path must be relative: {path}")

        install_dir = self.paths.install_dir
        original = install_dir / DEFAULTS_DIR / relative
        target = install_dir / CONFIG_DIR / relative
        if not original.exists():
            logger.error("Original config file does not exist: %s", original)
            raise InstallerError(f"Original config file does not exist: {original}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(original, target)
        except OSError as e:
            raise InstallerError(f"Failed to overwrite {target}: {e}") from e
        logger.info("Overwrote: %s", target)

    # -- best-effort tail --

    def _register_with_launcher(self, state: InstallerState) -> None:
        self.events.phase(Phase.ADD_PROFILE)
        try:
            self.launcher.add_profile(self.manifest.profile, self.paths.install_dir)
        except Exception as e:
            logger.warning("Failed to add launcher profile: %s", e, exc_info=True)
            self.events.alert(AlertLevel.WARNING, ALERT_FAILED_ADD_PROFILE)

        if not self.manifest.loader.auto_open:
            return

        self.events.phase(Phase.LAUNCH_LOADER)
        loader_file = state.mod_loader.file_name if state.mod_loader else None
        try:
            self.launcher.launch_loader(self.paths.install_dir, loader_file)
        except Exception as e:
            logger.warning("Failed to launch mod loader: %s", e, exc_info=True)
            self.events.alert(AlertLevel.WARNING, ALERT_FAILED_LAUNCH_LOADER)
        else:
            self.events.alert(AlertLevel.INFO, ALERT_LAUNCHED_LOADER)
