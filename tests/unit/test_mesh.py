import numpy as np
import pytest

from meshchain.core.errors import MeshReleasedError
from meshchain.core.mesh import MeshAttribute, MeshBuffer, MeshPrimitive, VertexFormat


def _quad() -> MeshBuffer:
    positions = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float32)
    uvs = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float32)
    return MeshBuffer.from_arrays(
        MeshPrimitive.TRIANGLES,
        [(MeshAttribute.POSITION, positions), (MeshAttribute.TEXTURE_COORDINATES, uvs)],
        indices=[0, 1, 2, 0, 2, 3],
    )


def test_from_arrays_interleaves_attributes() -> None:
    mesh = _quad()
    assert mesh.vertex_count == 4
    assert mesh.index_count == 6
    assert mesh.attribute_count == 2
    pos, uv = mesh.attributes
    assert pos.offset == 0 and uv.offset == 12
    assert pos.stride == uv.stride == 20
    assert str(pos.format) == "float32x3"
    np.testing.assert_array_equal(mesh.attribute(MeshAttribute.TEXTURE_COORDINATES)[2], [1.0, 1.0])
    assert not mesh.attribute(0).flags.writeable


def test_vertex_format_normalizes_dtype() -> None:
    fmt = VertexFormat(np.float32, 3)
    assert fmt.dtype == "float32"
    assert fmt.size == 12
    assert fmt.is_floating_point
    assert not VertexFormat("uint8", 4).is_floating_point
    with pytest.raises(ValueError):
        VertexFormat("float32", 0)


def test_index_out_of_range_is_rejected() -> None:
    positions = np.zeros((3, 3), dtype=np.float32)
    with pytest.raises(ValueError):
        MeshBuffer.from_arrays(MeshPrimitive.TRIANGLES, [(MeshAttribute.POSITION, positions)], indices=[0, 1, 3])


def test_attribute_outside_vertex_buffer_is_rejected() -> None:
    mesh = _quad()
    with pytest.raises(ValueError):
        MeshBuffer(mesh.primitive, mesh.vertex_data[:40], mesh.attributes, mesh.vertex_count)


def test_attribute_id_counts_occurrences() -> None:
    uv = np.zeros((2, 2), dtype=np.float32)
    mesh = MeshBuffer.from_arrays(
        MeshPrimitive.POINTS,
        [
            (MeshAttribute.POSITION, np.zeros((2, 3), dtype=np.float32)),
            (MeshAttribute.TEXTURE_COORDINATES, uv),
            (MeshAttribute.TEXTURE_COORDINATES, uv + 1),
        ],
    )
    assert mesh.attribute_id(MeshAttribute.TEXTURE_COORDINATES) == 1
    assert mesh.attribute_id(MeshAttribute.TEXTURE_COORDINATES, occurrence=1) == 2
    assert mesh.attribute_id(MeshAttribute.NORMAL) is None
    assert not mesh.has_attribute(MeshAttribute.COLOR)


def test_released_mesh_cannot_be_read() -> None:
    mesh = _quad()
    indices = mesh.release_index_data()
    vertices = mesh.release_vertex_data()
    assert indices is not None and len(indices) == 6
    assert len(vertices) == 80
    with pytest.raises(MeshReleasedError):
        mesh.attribute(0)
    with pytest.raises(MeshReleasedError):
        _ = mesh.indices


def test_equality_compares_values_not_layout() -> None:
    a = _quad()
    positions = np.array(a.attribute(0))
    uvs = np.array(a.attribute(1))
    b = MeshBuffer.from_arrays(
        MeshPrimitive.TRIANGLES,
        [(MeshAttribute.POSITION, positions), (MeshAttribute.TEXTURE_COORDINATES, uvs)],
        indices=[0, 1, 2, 0, 2, 3],
    )
    assert a == b
    c = MeshBuffer.from_arrays(
        MeshPrimitive.TRIANGLES,
        [(MeshAttribute.POSITION, positions), (MeshAttribute.TEXTURE_COORDINATES, uvs)],
        indices=[0, 2, 1, 0, 2, 3],
    )
    assert a != c
