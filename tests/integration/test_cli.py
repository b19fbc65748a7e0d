from __future__ import annotations

from pathlib import Path

import numpy as np
import yaml
from typer.testing import CliRunner

from meshchain.cli.main import app
from meshchain.core.exporter import write_npz
from meshchain.core.hierarchy import build_scene, translation
from meshchain.core.importer import NpzImporter
from meshchain.core.mesh import MeshAttribute, MeshBuffer, MeshPrimitive


def _write_scene(path: Path) -> None:
    positions = np.array(
        [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float32
    )
    colors = np.full((6, 4), 200, dtype=np.uint8)
    mesh = MeshBuffer.from_arrays(
        MeshPrimitive.TRIANGLES, [(MeshAttribute.POSITION, positions), (MeshAttribute.COLOR, colors)]
    )
    scene = build_scene([(0, None, 0, None), (1, None, 0, translation([3.0, 0.0, 0.0]))])
    write_npz([mesh], path, scene=scene, names=["quad"])


def _read(path: Path) -> MeshBuffer:
    importer = NpzImporter()
    assert importer.open(path)
    return importer.mesh(0)


def test_cli_convert_with_dedup(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    out = tmp_path / "out.npz"

    runner = CliRunner()
    result = runner.invoke(app, ["convert", str(src), str(out), "--remove-duplicates", "-v"])

    assert result.exit_code == 0, result.stdout
    mesh = _read(out)
    assert mesh.vertex_count == 4
    assert mesh.index_count == 6


def test_cli_concatenate_and_filter_attributes(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    out = tmp_path / "out.npz"

    runner = CliRunner()
    result = runner.invoke(app, [
        "convert", str(src), str(out), "--concatenate-meshes", "--only-attributes", "0",
    ])

    assert result.exit_code == 0, result.stdout
    mesh = _read(out)
    assert mesh.vertex_count == 12
    assert mesh.attribute_count == 1
    np.testing.assert_allclose(mesh.attribute(0)[:, 0].max(), 4.0)


def test_cli_converter_chain_writes_ply(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    out = tmp_path / "out.ply"

    runner = CliRunner()
    result = runner.invoke(app, [
        "convert", str(src), str(out),
        "-C", "CastSceneConverter", "-c", "dtype=float64",
        "-C", "StanfordSceneConverter",
    ])

    assert result.exit_code == 0, result.stdout
    header = out.read_text(encoding="utf-8")
    assert "property double x" in header
    assert "element face 2" in header


def test_cli_exit_codes(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    runner = CliRunner()

    missing = runner.invoke(app, ["convert", str(tmp_path / "nope.npz"), str(tmp_path / "o.ply")])
    assert missing.exit_code == 3

    unknown = runner.invoke(app, ["convert", str(src), str(tmp_path / "o.ply"), "-C", "NopeConverter"])
    assert unknown.exit_code == 2

    bad_mesh = runner.invoke(app, ["convert", str(src), str(tmp_path / "o.ply"), "--mesh", "4"])
    assert bad_mesh.exit_code == 4

    bad_attr = runner.invoke(app, ["convert", str(src), str(tmp_path / "o.ply"), "--only-attributes", "7"])
    assert bad_attr.exit_code == 2

    file_only = runner.invoke(app, [
        "convert", str(src), str(tmp_path / "o.ply"), "-C", "StanfordSceneConverter", "-C", "CastSceneConverter",
    ])
    assert file_only.exit_code == 6

    bad_format = runner.invoke(app, ["convert", str(src), str(tmp_path / "o.unknown")])
    assert bad_format.exit_code == 5


def test_cli_info(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)

    runner = CliRunner()
    result = runner.invoke(app, ["convert", str(src), "--info", "--bounds"])

    assert result.exit_code == 0, result.stdout
    assert "Mesh 0 (quad) [2 object references]:" in result.stdout
    assert "Attribute 1: color @ uint8x4" in result.stdout
    assert "Object 1: parent root, mesh 0" in result.stdout


def test_cli_run_config(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    config = {
        "input": {"path": src.name},
        "concatenate_meshes": True,
        "remove_duplicates": True,
        "converters": [{"name": "CastSceneConverter", "options": {"dtype": "float64"}}],
        "output": {"path": "out/result.npz"},
    }
    cfg_path = tmp_path / "config.yaml"
    with open(cfg_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)

    runner = CliRunner()
    result = runner.invoke(app, ["run", str(cfg_path)])

    assert result.exit_code == 0, result.stdout
    mesh = _read(tmp_path / "out" / "result.npz")
    assert mesh.vertex_count == 8
    assert mesh.attributes[0].format.dtype == "float64"


def test_cli_plugins() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["plugins"])
    assert result.exit_code == 0
    assert "AnySceneConverter" in result.stdout
    assert "NpzImporter" in result.stdout


def test_cli_exit_codes_for_bad_input_data(tmp_path: Path) -> None:
    src = tmp_path / "scene.npz"
    _write_scene(src)
    runner = CliRunner()

    bad_selection = runner.invoke(app, ["convert", str(src), str(tmp_path / "o.ply"), "--only-attributes", "a-b"])
    assert bad_selection.exit_code == 2

    array_file = tmp_path / "array.npz"
    with open(array_file, "wb") as f:
        np.save(f, np.zeros((3, 3)))
    not_archive = runner.invoke(app, ["convert", str(array_file), str(tmp_path / "o.ply")])
    assert not_archive.exit_code == 3

    integer_src = tmp_path / "integer.npz"
    mesh = MeshBuffer.from_arrays(
        MeshPrimitive.POINTS, [(MeshAttribute.POSITION, np.zeros((2, 3), dtype=np.int16))]
    )
    write_npz([mesh], integer_src, scene=build_scene([(0, None, 0, translation([1.0, 0.0, 0.0]))]))
    untransformable = runner.invoke(app, [
        "convert", str(integer_src), str(tmp_path / "o.ply"), "--concatenate-meshes",
    ])
    assert untransformable.exit_code == 1
