"""Load and validate the modpack manifest (config.yaml)."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any

import yaml
from packaging.version import InvalidVersion, Version

LATEST_SCHEMA_VERSION = 2

CURSEFORGE_DOWNLOAD_URL = (
    "https://www.curseforge.com/api/v1/mods/{project_id}/files/{file_id}/download"
)


class ManifestError(Exception):
    """Raised when the manifest cannot be read."""

    pass


class ValidationError(ManifestError):
    """Raised when the manifest content is invalid."""

    pass


class Side(str, Enum):
    BOTH = "both"
    CLIENT = "client"
    SERVER = "server"

    def should_install(self, side: "Side") -> bool:
        return self is Side.BOTH or self is side


@dataclass(frozen=True)
class RegistrySource:
    """A file hosted on the CurseForge registry."""

    project_id: int
    file_id: int

    TYPE = "curseforge"

    def key(self) -> str:
        return f"cf:{self.project_id}:{self.file_id}"

    def download_url(self) -> str:
        return CURSEFORGE_DOWNLOAD_URL.format(
            project_id=self.project_id, file_id=self.file_id
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "projectId": self.project_id, "fileId": self.file_id}


@dataclass(frozen=True)
class DirectUrl:
    """A file downloaded straight from a URL."""

    url: str

    TYPE = "direct"

    def key(self) -> str:
        return f"direct:{self.url}"

    def download_url(self) -> str:
        return self.url

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "url": self.url}


PackageReference = RegistrySource | DirectUrl


def parse_source(data: dict[str, Any], field_name: str = "source") -> PackageReference:
    """Build a PackageReference from its flattened, tagged mapping."""
    source_type = data.get("type")
    try:
        if source_type == RegistrySource.TYPE:
            return RegistrySource(
                project_id=int(data["projectId"]), file_id=int(data["fileId"])
            )
        if source_type == DirectUrl.TYPE:
            url = str(data["url"]).strip()
            if not url:
                raise ValidationError(f"{field_name}.url must not be empty")
            return DirectUrl(url=url)
    except KeyError as e:
        raise ValidationError(f"{field_name} is missing field {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} has an invalid id: {e}") from e
    raise ValidationError(f"{field_name} has unknown source type {source_type!r}")


@dataclass
class Profile:
    name: str
    icon: str
    version: str
    jvm_args: str | None = None

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("profile.name must not be empty")
        if not self.version.strip():
            raise ValidationError("profile.version must not be empty")


@dataclass
class LoaderSpec:
    name: str
    url: str
    hash: str
    auto_open: bool = False


@dataclass
class ModEntry:
    name: str
    source: PackageReference
    hash: str
    side: Side

    def should_install(self, side: Side) -> bool:
        return self.side.should_install(side)


@dataclass
class ResourceEntry(ModEntry):
    target_dir: str = ""
    decompress: bool = False

    def validate(self) -> None:
        validate_relative_dir(self.target_dir, "resources.targetDir")


@dataclass
class ModpackManifest:
    """Parsed manifest. Immutable after loading."""

    schema_version: int
    pack_version: Version
    profile: Profile
    loader: LoaderSpec
    mods: list[ModEntry] = field(default_factory=list)
    resources: list[ResourceEntry] = field(default_factory=list)
    _mod_keys: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self._mod_keys = {entry.source.key() for entry in self.mods}

    def has_mod(self, source: PackageReference) -> bool:
        return source.key() in self._mod_keys

    def mods_for(self, side: Side) -> list[ModEntry]:
        return [m for m in self.mods if m.should_install(side)]

    def resources_for(self, side: Side) -> list[ResourceEntry]:
        return [r for r in self.resources if r.should_install(side)]

    def validate(self) -> None:
        if self.schema_version > LATEST_SCHEMA_VERSION:
            raise ValidationError(
                f"Unsupported config schema version '{self.schema_version}' "
                f"(expected version {LATEST_SCHEMA_VERSION} or lower)"
            )
        self.profile.validate()
        for entry in self.resources:
            entry.validate()


def validate_relative_dir(value: str, field_name: str) -> None:
    """Reject directories that are absolute or could escape the install root."""
    if (
        PurePosixPath(value).is_absolute()
        or PureWindowsPath(value).is_absolute()
        or PureWindowsPath(value).drive
    ):
        raise ValidationError(f"{field_name} must be a relative path")
    for segment in value.split("/"):
        if segment == "..":
            raise ValidationError(f"{field_name} must not contain '..' segments")
        if "\\" in segment or ":" in segment:
            raise ValidationError(f"{field_name} contains invalid characters")


def load_manifest(path: Path) -> ModpackManifest:
    """Read config.yaml and return a validated manifest."""
    path = Path(path)
    if not path.exists():
        raise ManifestError(f"Config file is not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ManifestError(f"Failed to parse {path.name}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read config file at {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"{path.name} must contain a mapping")

    manifest = _parse_manifest(data)
    manifest.validate()
    return manifest


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict):
        raise ValidationError(f"{where.rstrip('.') or 'manifest'} must be a mapping")
    if key not in data or data[key] is None:
        raise ValidationError(f"{where}{key} is required")
    return data[key]


def _optional_bool(data: dict[str, Any], key: str, where: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{where}{key} must be true or false, got {value!r}")
    return value


def _parse_side(value: Any, where: str) -> Side:
    try:
        return Side(str(value).lower())
    except ValueError as e:
        raise ValidationError(f"{where}side has unknown value {value!r}") from e


def _parse_manifest(data: dict[str, Any]) -> ModpackManifest:
    try:
        schema_version = int(_require(data, "schemaVersion", ""))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"schemaVersion must be an integer: {e}") from e

    try:
        pack_version = Version(str(_require(data, "packVersion", "")))
    except InvalidVersion as e:
        raise ValidationError(f"packVersion is not a valid version: {e}") from e

    profile_data = _require(data, "profile", "")
    profile = Profile(
        name=str(_require(profile_data, "name", "profile.")),
        icon=str(_require(profile_data, "icon", "profile.")),
        version=str(_require(profile_data, "version", "profile.")),
        jvm_args=profile_data.get("jvmArgs"),
    )

    loader_data = _require(data, "modLoader", "")
    loader = LoaderSpec(
        name=str(_require(loader_data, "name", "modLoader.")),
        url=str(_require(loader_data, "url", "modLoader.")),
        hash=str(_require(loader_data, "hash", "modLoader.")),
        auto_open=_optional_bool(loader_data, "autoOpen", "modLoader."),
    )

    mods = []
    for i, entry in enumerate(data.get("mods") or []):
        where = f"mods[{i}]."
        mods.append(
            ModEntry(
                name=str(_require(entry, "name", where)),
                source=parse_source(entry, f"mods[{i}]"),
                hash=str(_require(entry, "hash", where)),
                side=_parse_side(_require(entry, "side", where), where),
            )
        )

    resources = []
    for i, entry in enumerate(data.get("resources") or []):
        where = f"resources[{i}]."
        resources.append(
            ResourceEntry(
                name=str(_require(entry, "name", where)),
                source=parse_source(entry, f"resources[{i}]"),
                hash=str(_require(entry, "hash", where)),
                side=_parse_side(_require(entry, "side", where), where),
                target_dir=str(_require(entry, "targetDir", where)),
                decompress=_optional_bool(entry, "decompress", where),
            )
        )

    return ModpackManifest(
        schema_version=schema_version,
        pack_version=pack_version,
        profile=profile,
        loader=loader,
        mods=mods,
        resources=resources,
    )
