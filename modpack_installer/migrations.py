"""Version-gated migrations applied by the update pipeline.

Adding a migration is a one-line addition to ``MIGRATIONS``; the table must
stay ordered by threshold.
"""

from dataclasses import dataclass

from packaging.version import Version

RESOURCES_RELEASES = "https://github.com/kyazuki/Makibania-Modpack-Resources/releases/download"

# Defaults live under <install>/DEFAULTS_DIR and are copied over <install>/CONFIG_DIR.
DEFAULTS_DIR = "configureddefaults/config"
CONFIG_DIR = "config"


@dataclass(frozen=True)
class ExtractArchive:
    """Download an archive and extract it over existing files."""

    name: str
    url: str
    hash: str
    target_dir: str = CONFIG_DIR

    def describe(self) -> str:
        return f"{self.name} -> {self.target_dir}"


@dataclass(frozen=True)
class OverwriteConfig:
    """Copy a shipped default file over the live config file."""

    path: str

    def describe(self) -> str:
        return self.path


MigrationAction = ExtractArchive | OverwriteConfig


@dataclass(frozen=True)
class Migration:
    threshold: Version
    action: MigrationAction


def _overwrite(threshold: str, *paths: str) -> list[Migration]:
    return [Migration(Version(threshold), OverwriteConfig(path)) for path in paths]


MIGRATIONS: list[Migration] = [
    Migration(
        Version("1.2.0"),
        ExtractArchive(
            "configs",
            f"{RESOURCES_RELEASES}/v1.2.0/configs.zip",
            "4cb14e94845a0f03775c0d1b8f3f0cbddb675ddb",
        ),
    ),
    Migration(
        Version("1.2.1"),
        ExtractArchive(
            "configs",
            f"{RESOURCES_RELEASES}/v1.2.1/configs.zip",
            "9e5f63a8b1a6da42792ffc1563dcd6c6f6eac495",
        ),
    ),
    *_overwrite(
        "1.3.0",
        "fancymenu/customization/loading_makibania_default.txt",
        "fancymenu/customization/options_makibania.txt",
        "fancymenu/customization/title_makibania_default.txt",
        "fancymenu/customization/universal_makibania_bg.txt",
        "fancymenu/custom_gui_screens.txt",
        "fancymenu/customizablemenus.txt",
        "fancymenu/options.txt",
        "fancymenu/user_variables.db",
        "ftbquests/quests/chapters/welcome.snbt",
        "ftbquests/quests/lang/en_us.snbt",
        "ftbquests/quests/lang/ja_jp.snbt",
        "ftbquests/quests/chapter_groups.snbt",
        "ftbquests/quests/data.snbt",
    ),
]


def select_migrations(
    current: Version, new: Version, table: list[Migration] | None = None
) -> list[Migration]:
    """Migrations whose threshold is crossed going from ``current`` to ``new``, in table order."""
    if table is None:
        table = MIGRATIONS
    return [m for m in table if current < m.threshold <= new]
