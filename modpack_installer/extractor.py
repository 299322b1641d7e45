"""Unpacking of downloaded bundles and placement of downloaded files."""

import logging
import shutil
import subprocess
import zipfile
from pathlib import Path
from typing import Callable

import py7zr
import rarfile

logger = logging.getLogger(__name__)

# Leading bytes of each supported archive format.
ARCHIVE_SIGNATURES: list[tuple[bytes, str]] = [
    (b"PK\x03\x04", "zip"),
    (b"PK\x05\x06", "zip"),  # empty zip
    (b"7z\xbc\xaf'\x1c", "7z"),
    (b"Rar!\x1a\x07", "rar"),
]

ARCHIVE_SUFFIXES = {".zip": "zip", ".7z": "7z", ".rar": "rar"}


class ExtractionError(Exception):
    """Raised when a bundle cannot be unpacked."""

    pass


def detect_archive_type(path: Path) -> str | None:
    """Archive format of ``path`` ('zip', '7z' or 'rar'), sniffed first, else by suffix."""
    try:
        with open(path, "rb") as f:
            head = f.read(8)
    except OSError:
        head = b""

    for signature, kind in ARCHIVE_SIGNATURES:
        if head.startswith(signature):
            return kind
    return ARCHIVE_SUFFIXES.get(path.suffix.lower())


def extract_archive(archive_path: Path, target_dir: Path) -> list[Path]:
    """
    Unpack ``archive_path`` over ``target_dir``.

    Files already present are overwritten, anything else in the directory is
    left alone. Returns the files written.
    """
    kind = detect_archive_type(archive_path)
    extractor = _EXTRACTORS.get(kind) if kind else None
    if extractor is None:
        raise ExtractionError(f"Unknown archive type: {archive_path}")

    target_dir.mkdir(parents=True, exist_ok=True)
    try:
        written = extractor(archive_path, target_dir)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e

    logger.debug("Extracted %d files from %s into %s", len(written), archive_path.name, target_dir)
    return written


def _existing_files(target_dir: Path, names: list[str]) -> list[Path]:
    return [target_dir / name for name in names if (target_dir / name).is_file()]


def _unzip(archive_path: Path, target_dir: Path) -> list[Path]:
    with zipfile.ZipFile(archive_path) as zf:
        members = [info for info in zf.infolist() if not info.is_dir()]
        return [Path(zf.extract(info, target_dir)) for info in members]


def _un7z(archive_path: Path, target_dir: Path) -> list[Path]:
    try:
        with py7zr.SevenZipFile(archive_path, "r") as archive:
            names = archive.getnames()
            archive.extractall(path=target_dir)
    except (py7zr.UnsupportedCompressionMethodError, py7zr.Bad7zFile) as e:
        # BCJ2 and friends: hand over to a system 7z if there is one.
        logger.info("py7zr cannot unpack %s (%s), trying system 7z", archive_path.name, e)
        return _un7z_with_binary(archive_path, target_dir)
    return _existing_files(target_dir, names)


def _un7z_with_binary(archive_path: Path, target_dir: Path) -> list[Path]:
    binary = shutil.which("7z") or shutil.which("7zz")
    if binary is None:
        raise ExtractionError(
            f"Cannot unpack {archive_path.name}: unsupported 7z compression and no 7z binary on PATH"
        )

    completed = subprocess.run(
        [binary, "x", "-y", f"-o{target_dir}", str(archive_path)],
        capture_output=True,
        text=True,
    )
    if completed.returncode != 0:
        raise ExtractionError(
            f"7z exited with {completed.returncode} for {archive_path.name}: {completed.stderr.strip()}"
        )
    # 7z prints no member list we rely on; report everything under the target.
    return sorted(p for p in target_dir.rglob("*") if p.is_file())


def _unrar(archive_path: Path, target_dir: Path) -> list[Path]:
    with rarfile.RarFile(archive_path) as archive:
        names = [info.filename for info in archive.infolist() if not info.is_dir()]
        archive.extractall(path=target_dir)
    return _existing_files(target_dir, names)


_EXTRACTORS: dict[str, Callable[[Path, Path], list[Path]]] = {
    "zip": _unzip,
    "7z": _un7z,
    "rar": _unrar,
}


def move_file(src: Path, dest: Path) -> Path:
    """Move ``src`` to ``dest``, replacing whatever already occupies it."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists():
        logger.warning("Destination file (%s) already exists and will be overwritten.", dest)
    try:
        src.replace(dest)
    except OSError:
        # Scratch and destination on different filesystems.
        shutil.move(str(src), str(dest))
    return dest
