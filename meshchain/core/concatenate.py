from __future__ import annotations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import IncompatiblePrimitiveError
from .mesh import MeshAttribute, MeshAttributeData, MeshBuffer, VertexFormat, interleave
from .utils import get_logger

_log = get_logger()


def _matching_attribute(mesh: MeshBuffer, wanted: MeshAttributeData, occurrence: int) -> Optional[int]:
    seen = 0
    for i, attr in enumerate(mesh.attributes):
        if attr.same_kind(wanted):
            if seen == occurrence:
                return i
            seen += 1
    return None


def concatenate_meshes(meshes: Sequence[MeshBuffer]) -> MeshBuffer:
    """Merge meshes of one primitive type into a single mesh.

    The attribute layout comes from the first mesh. Later meshes contribute
    only the attributes also present in the first one (matched by semantic,
    name and occurrence); attributes they lack are zero-filled. If any input
    is indexed the result is indexed, with non-indexed inputs treated as
    ``0..vertex_count-1`` and every segment offset by the vertices before it.
    """
    if not meshes:
        raise ValueError("Need at least one mesh to concatenate")

    first = meshes[0]
    for i, mesh in enumerate(meshes):
        if mesh.primitive.is_strip_like:
            raise IncompatiblePrimitiveError(
                f"Mesh {i} is {mesh.primitive.value}; strips, loops and fans can't be concatenated"
            )
        if mesh.primitive != first.primitive:
            raise IncompatiblePrimitiveError(
                f"Mesh {i} is {mesh.primitive.value}, expected {first.primitive.value} like mesh 0"
            )

    total = sum(m.vertex_count for m in meshes)

    # Occurrence of each first-mesh attribute among attributes of the same kind
    occurrences: List[int] = []
    for i, attr in enumerate(first.attributes):
        occurrences.append(sum(1 for a in first.attributes[:i] if a.same_kind(attr)))

    columns: List[Tuple[MeshAttribute, str, VertexFormat, np.ndarray]] = []
    for attr, occurrence in zip(first.attributes, occurrences):
        merged = np.zeros((total, attr.format.components), dtype=attr.format.scalar)
        start = 0
        for j, mesh in enumerate(meshes):
            src = _matching_attribute(mesh, attr, occurrence)
            if src is None:
                if j:
                    _log.debug("Mesh %d has no %s attribute, filling with zeros", j, attr.label)
            else:
                values = mesh.attribute(src)
                if values.shape[1] != attr.format.components:
                    raise ValueError(
                        f"Mesh {j} has {attr.label} with {values.shape[1]} components, mesh 0 has {attr.format.components}"
                    )
                merged[start:start + mesh.vertex_count] = values.astype(attr.format.scalar, copy=False)
            start += mesh.vertex_count
        columns.append((attr.semantic, attr.name, attr.format, merged))

    vertex_data, descriptors = interleave(total, columns)

    index_data = None
    if any(m.is_indexed for m in meshes):
        chunks: List[np.ndarray] = []
        offset = 0
        for mesh in meshes:
            local = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
            chunks.append(local.astype(np.int64) + offset)
            offset += mesh.vertex_count
        joined = np.concatenate(chunks) if chunks else np.zeros((0,), dtype=np.int64)
        index_data = joined.astype(np.uint32)

    return MeshBuffer(first.primitive, vertex_data, descriptors, total, index_data)
