"""
Tests for manifest loading and validation.
"""

import pytest
import yaml
from packaging.version import Version

from modpack_installer.manifest import (
    DirectUrl,
    ManifestError,
    RegistrySource,
    Side,
    ValidationError,
    load_manifest,
    parse_source,
    validate_relative_dir,
)


def base_manifest(**overrides):
    data = {
        "schemaVersion": 2,
        "packVersion": "1.3.0",
        "profile": {
            "name": "Makibania",
            "icon": "Grass",
            "version": "1.20.1-forge-47.2.0",
            "jvmArgs": "-Xmx6G",
        },
        "modLoader": {
            "name": "Forge",
            "url": "https://example.com/forge.jar",
            "hash": "aa",
            "autoOpen": True,
        },
        "mods": [
            {"name": "JEI", "type": "curseforge", "projectId": 238222, "fileId": 4712866,
             "hash": "bb", "side": "both"},
            {"name": "Sodium", "type": "direct", "url": "https://example.com/sodium.jar",
             "hash": "cc", "side": "client"},
            {"name": "Chunky", "type": "curseforge", "projectId": 1, "fileId": 2,
             "hash": "dd", "side": "server"},
        ],
        "resources": [
            {"name": "Configs", "type": "direct", "url": "https://example.com/configs.zip",
             "hash": "ee", "side": "both", "targetDir": "config", "decompress": True},
        ],
    }
    data.update(overrides)
    return data


def write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_load_valid_manifest(tmp_path):
    manifest = load_manifest(write(tmp_path, base_manifest()))

    assert manifest.schema_version == 2
    assert manifest.pack_version == Version("1.3.0")
    assert manifest.profile.name == "Makibania"
    assert manifest.profile.jvm_args == "-Xmx6G"
    assert manifest.loader.auto_open is True
    assert manifest.mods[0].source == RegistrySource(238222, 4712866)
    assert manifest.mods[1].source == DirectUrl("https://example.com/sodium.jar")
    assert manifest.resources[0].target_dir == "config"
    assert manifest.resources[0].decompress is True


def test_side_filtering(tmp_path):
    manifest = load_manifest(write(tmp_path, base_manifest()))

    assert [m.name for m in manifest.mods_for(Side.CLIENT)] == ["JEI", "Sodium"]
    assert [m.name for m in manifest.mods_for(Side.SERVER)] == ["JEI", "Chunky"]
    assert [r.name for r in manifest.resources_for(Side.SERVER)] == ["Configs"]


def test_has_mod_covers_every_side(tmp_path):
    manifest = load_manifest(write(tmp_path, base_manifest()))

    assert manifest.has_mod(RegistrySource(1, 2))
    assert manifest.has_mod(DirectUrl("https://example.com/sodium.jar"))
    assert not manifest.has_mod(RegistrySource(1, 3))


def test_optional_fields_default(tmp_path):
    data = base_manifest(resources=None)
    del data["profile"]["jvmArgs"]
    del data["modLoader"]["autoOpen"]

    manifest = load_manifest(write(tmp_path, data))

    assert manifest.profile.jvm_args is None
    assert manifest.loader.auto_open is False
    assert manifest.resources == []


def test_missing_file(tmp_path):
    with pytest.raises(ManifestError, match="not found"):
        load_manifest(tmp_path / "config.yaml")


def test_malformed_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("mods: [unterminated", encoding="utf-8")

    with pytest.raises(ManifestError, match="Failed to parse"):
        load_manifest(path)


def test_newer_schema_rejected(tmp_path):
    with pytest.raises(ValidationError, match="Unsupported config schema version"):
        load_manifest(write(tmp_path, base_manifest(schemaVersion=3)))


def test_blank_profile_name_rejected(tmp_path):
    data = base_manifest()
    data["profile"]["name"] = "   "

    with pytest.raises(ValidationError, match="profile.name"):
        load_manifest(write(tmp_path, data))


def test_missing_required_field(tmp_path):
    data = base_manifest()
    del data["modLoader"]["hash"]

    with pytest.raises(ValidationError, match="modLoader.hash is required"):
        load_manifest(write(tmp_path, data))


def test_unknown_side_rejected(tmp_path):
    data = base_manifest()
    data["mods"][0]["side"] = "everywhere"

    with pytest.raises(ValidationError, match="side"):
        load_manifest(write(tmp_path, data))


def test_missing_profile_icon(tmp_path):
    data = base_manifest()
    del data["profile"]["icon"]

    with pytest.raises(ValidationError, match="profile.icon is required"):
        load_manifest(write(tmp_path, data))


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("modLoader", "autoOpen", "false"),
        ("modLoader", "autoOpen", 0),
        ("resources", "decompress", "yes"),
    ],
)
def test_flags_must_be_booleans(tmp_path, section, key, value):
    data = base_manifest()
    target = data[section][0] if section == "resources" else data[section]
    target[key] = value

    with pytest.raises(ValidationError, match=f"{key} must be true or false"):
        load_manifest(write(tmp_path, data))


def test_invalid_pack_version(tmp_path):
    with pytest.raises(ValidationError, match="packVersion"):
        load_manifest(write(tmp_path, base_manifest(packVersion="latest")))


@pytest.mark.parametrize(
    "target_dir",
    ["/etc", "../outside", "config/../../outside", "C:/Windows", "c:relative", "sub\\dir"],
)
def test_unsafe_target_dir_rejected(tmp_path, target_dir):
    data = base_manifest()
    data["resources"][0]["targetDir"] = target_dir

    with pytest.raises(ValidationError):
        load_manifest(write(tmp_path, data))


@pytest.mark.parametrize("target_dir", ["config", "resourcepacks/extra", "./shaderpacks", ""])
def test_safe_target_dir_accepted(target_dir):
    validate_relative_dir(target_dir, "resources.targetDir")


def test_parse_source_variants():
    assert parse_source({"type": "curseforge", "projectId": "12", "fileId": 34}) == RegistrySource(12, 34)
    assert parse_source({"type": "direct", "url": " https://x/y.jar "}) == DirectUrl("https://x/y.jar")


@pytest.mark.parametrize(
    "data, message",
    [
        ({"type": "modrinth", "id": "abc"}, "unknown source type"),
        ({"type": "curseforge", "projectId": 1}, "missing field 'fileId'"),
        ({"type": "curseforge", "projectId": "x", "fileId": 1}, "invalid id"),
        ({"type": "direct", "url": ""}, "must not be empty"),
    ],
)
def test_parse_source_errors(data, message):
    with pytest.raises(ValidationError, match=message):
        parse_source(data, "mods[0]")


def test_source_keys_and_urls():
    cf = RegistrySource(238222, 4712866)
    assert cf.key() == "cf:238222:4712866"
    assert cf.download_url() == (
        "https://www.curseforge.com/api/v1/mods/238222/files/4712866/download"
    )
    direct = DirectUrl("https://example.com/a.jar")
    assert direct.key() == "direct:https://example.com/a.jar"
    assert direct.download_url() == "https://example.com/a.jar"
