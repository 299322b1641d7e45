"""Persisted installer state: what has actually been fetched and placed."""

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from packaging.version import InvalidVersion, Version

from .manifest import (
    LoaderSpec,
    ManifestError,
    ModEntry,
    PackageReference,
    ResourceEntry,
    parse_source,
)

logger = logging.getLogger(__name__)

LEGACY_PACK_VERSION = Version("0.0.0")


class StateError(Exception):
    """Raised when state file operations fail."""

    pass


class InstallerMode(str, Enum):
    INSTALL = "install"
    UPDATE = "update"

    def __str__(self) -> str:
        return self.value.capitalize()


def _hash_equals(a: str, b: str) -> bool:
    return a.lower() == b.lower()


@dataclass
class InstalledLoaderRecord:
    """The mod loader binary that was downloaded and verified."""

    file_name: str
    url: str
    hash: str

    def matches(self, loader: LoaderSpec, ignore_hash: bool = False) -> bool:
        return self.url == loader.url and (ignore_hash or _hash_equals(self.hash, loader.hash))

    def to_dict(self) -> dict[str, Any]:
        return {"fileName": self.file_name, "url": self.url, "hash": self.hash}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstalledLoaderRecord":
        return cls(
            file_name=data.get("fileName", ""),
            url=data.get("url", ""),
            hash=data.get("hash", ""),
        )


@dataclass
class InstalledItemRecord:
    """A mod file that was downloaded and verified."""

    file_name: str
    source: PackageReference
    hash: str

    def matches(self, entry: ModEntry, ignore_hash: bool = False) -> bool:
        """Same logical item; with ``ignore_hash`` the uploaded content may differ."""
        return self.source == entry.source and (
            ignore_hash or _hash_equals(self.hash, entry.hash)
        )

    def to_dict(self) -> dict[str, Any]:
        return {"fileName": self.file_name, **self.source.to_dict(), "hash": self.hash}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstalledItemRecord":
        return cls(
            file_name=data.get("fileName", ""),
            source=_load_source(data),
            hash=data.get("hash", ""),
        )


@dataclass
class InstalledResourceRecord(InstalledItemRecord):
    """A resource placed (or extracted) into a target directory."""

    target_dir: str = ""
    decompress: bool = False

    def matches(self, entry: ResourceEntry, ignore_hash: bool = False) -> bool:
        return self.target_dir == entry.target_dir and super().matches(entry, ignore_hash)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["targetDir"] = self.target_dir
        data["decompress"] = self.decompress
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstalledResourceRecord":
        return cls(
            file_name=data.get("fileName", ""),
            source=_load_source(data),
            hash=data.get("hash", ""),
            target_dir=data.get("targetDir", ""),
            decompress=data.get("decompress", False),
        )


def _load_source(data: dict[str, Any]) -> PackageReference:
    try:
        return parse_source(data, data.get("fileName") or "record")
    except ManifestError as e:
        raise StateError(f"Invalid record in state file: {e}") from e


def _resource_key(source: PackageReference, target_dir: str) -> tuple[str, str]:
    return source.key(), target_dir


class InstallerState:
    """Manages the installer state file.

    The record lists are the source of truth; the lookup indices are caches
    rebuilt on every load and kept in step with every add/remove.
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self.installer_version: str = ""
        self.pack_version: Version = LEGACY_PACK_VERSION
        self.mod_loader: InstalledLoaderRecord | None = None
        self.mods: list[InstalledItemRecord] = []
        self.resources: list[InstalledResourceRecord] = []
        self.process_mode: InstallerMode | None = None
        self._mod_index: dict[str, int] = {}
        self._resource_index: dict[tuple[str, str], int] = {}

    def exists(self) -> bool:
        """Check if state file exists."""
        return self.state_file.exists()

    def load(self) -> None:
        """Load state from file and rebuild the lookup indices."""
        if not self.state_file.exists():
            raise StateError(f"No state file found at {self.state_file}")

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid state file {self.state_file}: {e}") from e
        except OSError as e:
            raise StateError(f"Failed to read installer state at {self.state_file}: {e}") from e

        if not isinstance(data, dict):
            raise StateError(f"Invalid state file {self.state_file}: expected an object")

        self.installer_version = data.get("installerVersion", "")

        raw_pack_version = data.get("packVersion")
        if raw_pack_version is None:
            logger.warning(
                "packVersion is missing in installer state, defaulting to '%s'",
                LEGACY_PACK_VERSION,
            )
            self.pack_version = LEGACY_PACK_VERSION
        else:
            try:
                self.pack_version = Version(str(raw_pack_version))
            except InvalidVersion as e:
                raise StateError(f"Invalid packVersion in state file: {e}") from e

        loader_data = data.get("modLoader")
        if loader_data is not None and not isinstance(loader_data, dict):
            raise StateError(f"Invalid state file {self.state_file}: modLoader must be an object")
        self.mod_loader = InstalledLoaderRecord.from_dict(loader_data) if loader_data else None

        raw_mode = data.get("processMode")
        try:
            self.process_mode = InstallerMode(raw_mode) if raw_mode else None
        except ValueError as e:
            raise StateError(f"Invalid processMode in state file: {raw_mode!r}") from e

        # Records go through add_* so a hand-edited file with repeated keys
        # collapses to one record per key, the later one winning.
        self.mods = []
        self._mod_index = {}
        for entry in self._record_entries(data, "mods"):
            record = InstalledItemRecord.from_dict(entry)
            if self.get_mod(record.source) is not None:
                logger.warning(
                    "Duplicate mod record in state file, keeping the later one: %s",
                    record.file_name,
                )
            self.add_mod(record)

        self.resources = []
        self._resource_index = {}
        for entry in self._record_entries(data, "resources"):
            record = InstalledResourceRecord.from_dict(entry)
            if self.get_resource(record.source, record.target_dir) is not None:
                logger.warning(
                    "Duplicate resource record in state file, keeping the later one: %s",
                    record.file_name,
                )
            self.add_resource(record)

    def _record_entries(self, data: dict[str, Any], key: str) -> list[dict[str, Any]]:
        entries = data.get(key) or []
        if not isinstance(entries, list):
            raise StateError(f"Invalid state file {self.state_file}: {key} must be a list")
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise StateError(
                    f"Invalid state file {self.state_file}: {key}[{i}] must be an object"
                )
        return entries

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "installerVersion": self.installer_version,
            "packVersion": str(self.pack_version),
            "modLoader": self.mod_loader.to_dict() if self.mod_loader else None,
            "mods": [m.to_dict() for m in self.mods],
            "resources": [r.to_dict() for r in self.resources],
        }
        if self.process_mode is not None:
            data["processMode"] = self.process_mode.value
        return data

    def save(self) -> None:
        """Save state to file.

        The JSON is written next to the target and swapped in with
        ``os.replace`` so a crash never leaves a half-written state file.
        """
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.state_file.with_name(self.state_file.name + ".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_file, self.state_file)
        except OSError as e:
            raise StateError(
                f"Failed to write installer state to {self.state_file}: {e}"
            ) from e

    def finalize(self) -> None:
        """Clear the in-progress marker and save."""
        self.process_mode = None
        self.save()

    def get_mod(self, source: PackageReference) -> InstalledItemRecord | None:
        index = self._mod_index.get(source.key())
        return self.mods[index] if index is not None else None

    def add_mod(self, record: InstalledItemRecord) -> None:
        """Add a mod record, replacing any record with the same source."""
        key = record.source.key()
        index = self._mod_index.get(key)
        if index is not None:
            self.mods[index] = record
            return
        self._mod_index[key] = len(self.mods)
        self.mods.append(record)

    def remove_mod(self, record: InstalledItemRecord) -> None:
        key = record.source.key()
        index = self._mod_index.pop(key, None)
        if index is None:
            logger.warning(
                "Attempted to remove mod that doesn't exist in state: %s", record.file_name
            )
            return
        del self.mods[index]
        for i in range(index, len(self.mods)):
            self._mod_index[self.mods[i].source.key()] = i

    def get_resource(
        self, source: PackageReference, target_dir: str
    ) -> InstalledResourceRecord | None:
        index = self._resource_index.get(_resource_key(source, target_dir))
        return self.resources[index] if index is not None else None

    def add_resource(self, record: InstalledResourceRecord) -> None:
        """Add a resource record, replacing any record with the same source and target."""
        key = _resource_key(record.source, record.target_dir)
        index = self._resource_index.get(key)
        if index is not None:
            self.resources[index] = record
            return
        self._resource_index[key] = len(self.resources)
        self.resources.append(record)
