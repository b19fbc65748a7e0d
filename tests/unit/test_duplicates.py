import time

import numpy as np
import pytest

from meshchain.core.duplicates import remove_duplicates, remove_duplicates_fuzzy
from meshchain.core.mesh import MeshAttribute, MeshBuffer, MeshPrimitive


def _split_quad() -> MeshBuffer:
    """Two triangles with their own copies of the shared edge."""
    positions = np.array(
        [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float32
    )
    return MeshBuffer.from_arrays(MeshPrimitive.TRIANGLES, [(MeshAttribute.POSITION, positions)])


def test_exact_duplicates_collapse_to_first_occurrence() -> None:
    result = remove_duplicates(_split_quad())
    assert (result.vertex_count_before, result.vertex_count_after) == (6, 4)
    mesh = result.mesh
    assert mesh.is_indexed
    np.testing.assert_array_equal(mesh.indices, [0, 1, 2, 0, 2, 3])
    np.testing.assert_array_equal(mesh.attribute(0)[3], [0, 1, 0])
    assert result.ratio == pytest.approx(4 / 6)


def test_dedup_is_idempotent_and_preserves_triangles() -> None:
    once = remove_duplicates(_split_quad()).mesh
    twice = remove_duplicates(once)
    assert twice.vertex_count_after == once.vertex_count
    assert twice.mesh == once
    original = _split_quad().attribute(0)
    np.testing.assert_array_equal(once.attribute(0)[once.indices], original)


def test_attributes_other_than_position_distinguish_vertices() -> None:
    positions = np.zeros((3, 3), dtype=np.float32)
    colors = np.array([[255, 0, 0, 255], [255, 0, 0, 255], [0, 255, 0, 255]], dtype=np.uint8)
    mesh = MeshBuffer.from_arrays(
        MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions), (MeshAttribute.COLOR, colors)]
    )
    assert remove_duplicates(mesh).vertex_count_after == 2


def test_unreferenced_vertices_are_kept() -> None:
    positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [5, 5, 5]], dtype=np.float32)
    mesh = MeshBuffer.from_arrays(MeshPrimitive.TRIANGLES, [(MeshAttribute.POSITION, positions)], indices=[0, 1, 2])
    result = remove_duplicates(mesh)
    assert result.vertex_count_after == 4
    np.testing.assert_array_equal(result.mesh.indices, [0, 1, 2])


def test_fuzzy_merges_within_tolerance() -> None:
    positions = np.array([[0, 0, 0], [1e-4, 0, 0], [1, 0, 0], [1, 2e-4, 0]], dtype=np.float32)
    mesh = MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions)])
    assert remove_duplicates_fuzzy(mesh, 1e-3).vertex_count_after == 2
    assert remove_duplicates_fuzzy(mesh, 1e-5).vertex_count_after == 4


def test_fuzzy_with_zero_tolerance_matches_exact() -> None:
    mesh = _split_quad()
    assert remove_duplicates_fuzzy(mesh, 0.0).mesh == remove_duplicates(mesh).mesh


def test_fuzzy_never_increases_vertex_count() -> None:
    rng = np.random.default_rng(3)
    positions = rng.uniform(0.0, 1.0, size=(50, 3)).astype(np.float32)
    mesh = MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions)])
    for eps in (0.0, 0.05, 0.2, 1.0):
        assert remove_duplicates_fuzzy(mesh, eps).vertex_count_after <= 50
    assert remove_duplicates_fuzzy(mesh, 1.0).vertex_count_after == 1


def test_fuzzy_rejects_negative_tolerance() -> None:
    with pytest.raises(ValueError):
        remove_duplicates_fuzzy(_split_quad(), -1.0)


def test_fuzzy_with_zero_tolerance_keeps_signed_zeros_apart() -> None:
    positions = np.array([[0.0, 0.0, 0.0], [-0.0, 0.0, 0.0]], dtype=np.float32)
    mesh = MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions)])
    assert remove_duplicates(mesh).vertex_count_after == 2
    assert remove_duplicates_fuzzy(mesh, 0.0).vertex_count_after == 2
    assert remove_duplicates_fuzzy(mesh, 0.0).mesh == remove_duplicates(mesh).mesh


def test_fuzzy_merges_across_cell_boundaries_into_earliest_vertex() -> None:
    positions = np.array(
        [[0.0019, 0, 0], [0.0021, 0, 0], [0.0015, 0, 0], [0.0040, 0, 0]], dtype=np.float64
    )
    mesh = MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions)])
    result = remove_duplicates_fuzzy(mesh, 1e-3)
    assert result.vertex_count_after == 2
    np.testing.assert_array_equal(result.mesh.indices, [0, 0, 0, 1])
    np.testing.assert_allclose(result.mesh.attribute(0)[:, 0], [0.0019, 0.0040])


def test_fuzzy_respects_non_float_attributes() -> None:
    positions = np.zeros((3, 3), dtype=np.float32)
    ids = np.array([1, 2, 1], dtype=np.uint16)
    mesh = MeshBuffer.from_arrays(
        MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions), (MeshAttribute.OBJECT_ID, ids)]
    )
    result = remove_duplicates_fuzzy(mesh, 0.5)
    assert result.vertex_count_after == 2
    np.testing.assert_array_equal(result.mesh.indices, [0, 1, 0])


def test_fuzzy_on_a_flat_plane_scales() -> None:
    rng = np.random.default_rng(7)
    n = 20_000
    positions = np.zeros((n, 3), dtype=np.float32)
    positions[:, 1:] = rng.uniform(0.0, 100.0, size=(n, 2))
    positions[n // 2:] = positions[: n // 2]
    mesh = MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, positions)])

    start = time.perf_counter()
    result = remove_duplicates_fuzzy(mesh, 1e-6)
    elapsed = time.perf_counter() - start

    assert result.vertex_count_after == n // 2
    assert elapsed < 5.0
