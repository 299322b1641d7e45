"""
Shared fixtures and helpers for the modpack installer test suite.
"""

import hashlib
import io
import threading
import zipfile
from pathlib import Path

import pytest
import yaml

from modpack_installer.downloader import DownloadOutcome, DownloadProgress, FetchError
from modpack_installer.launcher import LauncherError
from modpack_installer.manifest import DirectUrl, RegistrySource
from modpack_installer.paths import AppPaths

LOADER_URL = "https://example.com/files/forge-1.20.1-installer.jar"
LOADER_FILE = "forge-1.20.1-installer.jar"


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def make_zip(members: dict[str, bytes | str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeFetcher:
    """Serves in-memory payloads by URL, in place of the HTTP fetcher."""

    def __init__(self):
        self.files: dict[str, tuple[str, bytes]] = {}
        self.calls: list[str] = []
        self.fail_after: int | None = None

    def serve(self, url: str, file_name: str, data: bytes) -> str:
        self.files[url] = (file_name, data)
        return sha1(data)

    def download_to_dir(self, url, temp_dir, on_progress=None):
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            raise FetchError(f"Failed to download from {url}: simulated network failure")
        self.calls.append(url)
        if url not in self.files:
            raise FetchError(f"Request to {url} failed with status 404. Body snippet: <empty body>")

        file_name, data = self.files[url]
        temp_dir = Path(temp_dir)
        temp_dir.mkdir(parents=True, exist_ok=True)
        path = temp_dir / file_name
        path.write_bytes(data)
        if on_progress:
            on_progress(DownloadProgress(len(data) // 2, len(data)))
            on_progress(DownloadProgress(len(data), len(data)))
        return DownloadOutcome(path=path, hash=sha1(data))


class BlockingFetcher(FakeFetcher):
    """Holds the first download until released."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def download_to_dir(self, url, temp_dir, on_progress=None):
        self.started.set()
        assert self.release.wait(timeout=10)
        return super().download_to_dir(url, temp_dir, on_progress)


class FakeLauncher:
    """Records launcher calls; optionally fails them."""

    def __init__(self, fail_profile: bool = False, fail_launch: bool = False):
        self.fail_profile = fail_profile
        self.fail_launch = fail_launch
        self.profiles: list[tuple[str, Path]] = []
        self.launches: list[tuple[Path, str | None]] = []

    def add_profile(self, profile, game_dir):
        if self.fail_profile:
            raise LauncherError("Launcher profiles file not found")
        self.profiles.append((profile.name, game_dir))
        return True

    def launch_loader(self, install_dir, loader_file=None):
        if self.fail_launch:
            raise LauncherError("Java executable not found")
        self.launches.append((install_dir, loader_file))


class PackBuilder:
    """Builds a manifest and serves every file it references through a FakeFetcher."""

    def __init__(self, paths: AppPaths, fetcher: FakeFetcher, pack_version: str = "1.0.0"):
        self.paths = paths
        self.fetcher = fetcher
        self.pack_version = pack_version
        self.schema_version = 2
        self.auto_open = False
        self.profile = {"name": "Test Pack", "icon": "Furnace", "version": "1.20.1-forge-47.2.0"}
        self.loader_hash = fetcher.serve(LOADER_URL, LOADER_FILE, b"forge installer")
        self.mods: list[dict] = []
        self.resources: list[dict] = []

    def add_mod(
        self,
        name: str,
        project_id: int,
        file_id: int,
        data: bytes | None = None,
        file_name: str | None = None,
        side: str = "client",
        hash: str | None = None,
    ) -> str:
        data = data if data is not None else f"{name} {file_id}".encode()
        file_name = file_name or f"{name.lower().replace(' ', '-')}-{file_id}.jar"
        served = self.fetcher.serve(RegistrySource(project_id, file_id).download_url(), file_name, data)
        entry = {
            "name": name,
            "type": "curseforge",
            "projectId": project_id,
            "fileId": file_id,
            "hash": hash or served,
            "side": side,
        }
        self.mods = [m for m in self.mods if (m["projectId"], m["fileId"]) != (project_id, file_id)]
        self.mods.append(entry)
        return entry["hash"]

    def remove_mod(self, project_id: int, file_id: int) -> None:
        self.mods = [m for m in self.mods if (m["projectId"], m["fileId"]) != (project_id, file_id)]

    def add_resource(
        self,
        name: str,
        url: str,
        file_name: str,
        data: bytes,
        target_dir: str,
        decompress: bool = False,
        side: str = "both",
    ) -> str:
        served = self.fetcher.serve(DirectUrl(url).download_url(), file_name, data)
        self.resources.append(
            {
                "name": name,
                "type": "direct",
                "url": url,
                "hash": served,
                "side": side,
                "targetDir": target_dir,
                "decompress": decompress,
            }
        )
        return served

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "packVersion": self.pack_version,
            "profile": dict(self.profile),
            "modLoader": {
                "name": "Forge",
                "url": LOADER_URL,
                "hash": self.loader_hash,
                "autoOpen": self.auto_open,
            },
            "mods": list(self.mods),
            "resources": list(self.resources),
        }

    def write(self) -> Path:
        self.paths.install_dir.mkdir(parents=True, exist_ok=True)
        with open(self.paths.manifest_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        return self.paths.manifest_file


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of_type(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def paths(tmp_path):
    install_dir = tmp_path / "pack"
    install_dir.mkdir()
    return AppPaths(install_dir)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def pack(paths, fetcher):
    """A small modpack: loader, two client mods, a server-only mod and two resources."""
    builder = PackBuilder(paths, fetcher)
    builder.add_mod("Alpha", 1001, 5001)
    builder.add_mod("Beta", 1002, 5002)
    builder.add_mod("Server Tools", 1003, 5003, side="server")
    builder.add_resource(
        "Default configs",
        "https://example.com/files/configs.zip",
        "configs.zip",
        make_zip({"alpha.toml": "enabled = true\n", "beta/beta.json": "{}"}),
        target_dir="config",
        decompress=True,
    )
    builder.add_resource(
        "Faithful",
        "https://example.com/files/Faithful%2032x.zip",
        "Faithful 32x.zip",
        b"resource pack bytes",
        target_dir="resourcepacks",
    )
    builder.write()
    return builder
