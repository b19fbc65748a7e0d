from __future__ import annotations

import numpy as np

from .mesh import MeshAttribute, MeshBuffer
from .utils import ensure_unit_vectors

_DIRECTION_ATTRIBUTES = (MeshAttribute.NORMAL, MeshAttribute.TANGENT, MeshAttribute.BITANGENT)


def normal_matrix(transform: np.ndarray) -> np.ndarray:
    """Inverse-transpose of the upper 3x3 block."""
    return np.linalg.inv(np.asarray(transform, dtype=np.float64)[:3, :3]).T


def transform_points(transform: np.ndarray, xyz: np.ndarray) -> np.ndarray:
    m = np.asarray(transform, dtype=np.float64)
    return xyz.astype(np.float64) @ m[:3, :3].T + m[:3, 3]


def transform_mesh(mesh: MeshBuffer, transform: np.ndarray) -> MeshBuffer:
    """Bake an affine 4x4 transform into positions, normals, tangents and bitangents.

    Positions get the full transform, direction attributes the normal matrix
    and are re-normalized. The fourth tangent component (handedness) is kept.
    Everything else is copied byte for byte; topology and attribute layout
    match the input.
    """
    m = np.asarray(transform, dtype=np.float64)
    if m.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got {m.shape}")

    vertex_data = mesh.vertex_data.copy()
    indices = None if mesh.indices is None else mesh.indices.copy()
    out = MeshBuffer(mesh.primitive, vertex_data, list(mesh.attributes), mesh.vertex_count, indices)
    if np.array_equal(m, np.eye(4)) or mesh.vertex_count == 0:
        return out

    normals_m = normal_matrix(m)
    for i, attr in enumerate(mesh.attributes):
        if attr.semantic != MeshAttribute.POSITION and attr.semantic not in _DIRECTION_ATTRIBUTES:
            continue
        if not attr.format.is_floating_point:
            raise ValueError(f"Can't transform {attr.label} attribute of format {attr.format}")
        if attr.format.components < 3:
            raise ValueError(f"Only 3D {attr.label} attributes can be transformed, got {attr.format}")

        xyz = mesh.attribute(i)[:, :3]
        if attr.semantic == MeshAttribute.POSITION:
            result = transform_points(m, xyz)
        else:
            result = ensure_unit_vectors(xyz.astype(np.float64) @ normals_m.T)

        # Writable view over the copied bytes, same offset/stride as the source
        target = np.ndarray(
            shape=(mesh.vertex_count, 3),
            dtype=attr.format.scalar,
            buffer=vertex_data,
            offset=attr.offset,
            strides=(attr.stride, attr.format.scalar.itemsize),
        )
        target[:] = result.astype(attr.format.scalar)
    return out
