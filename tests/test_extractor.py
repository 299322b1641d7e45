"""
Tests for archive extraction and file placement.
"""

import pytest

from modpack_installer.extractor import (
    ExtractionError,
    detect_archive_type,
    extract_archive,
    move_file,
)

from conftest import make_zip


def test_detects_zip_by_magic(tmp_path):
    archive = tmp_path / "configs.bin"
    archive.write_bytes(make_zip({"a.txt": "a"}))

    assert detect_archive_type(archive) == "zip"


def test_detects_by_extension_fallback(tmp_path):
    archive = tmp_path / "pack.7z"
    archive.write_bytes(b"not really")

    assert detect_archive_type(archive) == "7z"


def test_plain_file_is_not_an_archive(tmp_path):
    jar = tmp_path / "mod.txt"
    jar.write_bytes(b"plain text")

    assert detect_archive_type(jar) is None
    with pytest.raises(ExtractionError, match="Unknown archive type"):
        extract_archive(jar, tmp_path / "out")


def test_extract_overwrites_existing(tmp_path):
    archive = tmp_path / "configs.zip"
    archive.write_bytes(make_zip({"mod/settings.toml": "new", "top.json": "{}"}))
    target = tmp_path / "config"
    (target / "mod").mkdir(parents=True)
    (target / "mod" / "settings.toml").write_text("old")
    (target / "keep.txt").write_text("untouched")

    extracted = extract_archive(archive, target)

    assert (target / "mod" / "settings.toml").read_text() == "new"
    assert (target / "top.json").exists()
    assert (target / "keep.txt").read_text() == "untouched"
    assert len(extracted) == 2


def test_corrupt_zip_raises(tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"PK\x03\x04garbage")

    with pytest.raises(ExtractionError, match="Failed to extract"):
        extract_archive(archive, tmp_path / "out")


def test_move_file_creates_parents_and_replaces(tmp_path):
    src = tmp_path / "temp" / "mod.jar"
    src.parent.mkdir()
    src.write_bytes(b"new")
    dest = tmp_path / "mods" / "mod.jar"
    dest.parent.mkdir()
    dest.write_bytes(b"old")

    move_file(src, dest)

    assert dest.read_bytes() == b"new"
    assert not src.exists()
