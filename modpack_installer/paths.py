"""Filesystem layout of an installation."""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

INSTALL_DIR_ENVVAR = "MODPACK_INSTALL_DIR"
MANIFEST_FILENAME = "config.yaml"
APP_DIR_NAME = "mm-installer"
STATE_FILENAME = "installer-state.json"


@dataclass(frozen=True)
class AppPaths:
    """Every path the installer reads or writes, derived from the install root."""

    install_dir: Path

    @property
    def manifest_file(self) -> Path:
        return self.install_dir / MANIFEST_FILENAME

    @property
    def app_dir(self) -> Path:
        return self.install_dir / APP_DIR_NAME

    @property
    def state_file(self) -> Path:
        return self.app_dir / STATE_FILENAME

    @property
    def log_dir(self) -> Path:
        return self.app_dir / "logs"

    @property
    def temp_dir(self) -> Path:
        return self.app_dir / ".temp"

    @property
    def mods_dir(self) -> Path:
        return self.install_dir / "mods"

    @classmethod
    def resolve(cls, install_dir: Path | None = None) -> "AppPaths":
        """
        Pick the install root.

        Priority: explicit argument, $MODPACK_INSTALL_DIR, the directory of a
        frozen executable, the current working directory.
        """
        if install_dir is None:
            env_dir = os.environ.get(INSTALL_DIR_ENVVAR)
            if env_dir:
                install_dir = Path(env_dir)
            elif getattr(sys, "frozen", False):
                install_dir = Path(sys.executable).parent
            else:
                install_dir = Path.cwd()
        return cls(Path(install_dir).resolve())
