import json

import pytest
import trimesh
from click.testing import CliRunner

from cityscene import cli as cli_mod
from cityscene.builder import SceneBuilder
from cityscene.cache import ResponseCache
from cityscene.glb import export_glb, scene_to_trimesh


@pytest.fixture
def cache_path(tmp_path, monkeypatch):
    path = tmp_path / "cache" / "last.json"
    monkeypatch.setattr(cli_mod, "ResponseCache", lambda: ResponseCache(path))
    return path


def test_file_command_writes_glb_and_caches(tmp_path, cache_path, square_building_doc):
    source = tmp_path / "square.json"
    source.write_text(json.dumps(square_building_doc), encoding="utf-8")
    output = tmp_path / "out" / "square.glb"

    result = CliRunner().invoke(cli_mod.cli, ["file", str(source), "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert "triangulated 1, skipped 0" in result.output
    assert output.read_bytes()[:4] == b"glTF"
    assert cache_path.read_text(encoding="utf-8") == source.read_text(encoding="utf-8")


def test_replay_without_cache_fails_cleanly(tmp_path, cache_path):
    result = CliRunner().invoke(cli_mod.cli, ["replay", "-o", str(tmp_path / "x.glb")])
    assert result.exit_code != 0
    assert "No cached response" in result.output


def test_bad_file_extension(tmp_path, cache_path):
    result = CliRunner().invoke(cli_mod.cli, ["file", "map.osm", "-o", str(tmp_path / "x.glb")])
    assert result.exit_code != 0
    assert "unsupported file extension" in result.output


def test_glb_layers_are_y_up(square_building_doc, tmp_path):
    scene = SceneBuilder().build(square_building_doc)
    glb_scene = scene_to_trimesh(scene)
    assert set(glb_scene.geometry) == {"building", "terrain"}

    building = glb_scene.geometry["building"]
    # Heights end up on the y axis
    assert building.vertices[:, 1].max() == pytest.approx(10.0)

    path = export_glb(scene, tmp_path / "scene.glb")
    loaded = trimesh.load(path, force="scene")
    assert len(loaded.geometry) == 2
