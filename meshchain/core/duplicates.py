from __future__ import annotations
import itertools
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .mesh import MeshAttribute, MeshBuffer, VertexFormat, interleave

# Grid cells beyond this are clamped so they still fit in int64
_CELL_LIMIT = float(2 ** 62)


@dataclass(frozen=True)
class DuplicateRemoval:
    """Deduplicated mesh plus the counts needed to report the reduction."""
    mesh: MeshBuffer
    vertex_count_before: int
    vertex_count_after: int

    @property
    def ratio(self) -> float:
        if self.vertex_count_before == 0:
            return 1.0
        return self.vertex_count_after / self.vertex_count_before


def _vertex_bytes(mesh: MeshBuffer) -> np.ndarray:
    """(vertex_count, bytes) matrix of every attribute, packed tightly."""
    if not mesh.attributes:
        return np.zeros((mesh.vertex_count, 0), dtype=np.uint8)
    parts = [
        np.ascontiguousarray(mesh.attribute(i)).view(np.uint8).reshape(mesh.vertex_count, -1)
        for i in range(mesh.attribute_count)
    ]
    return np.concatenate(parts, axis=1)


def _compact(mesh: MeshBuffer, remap: np.ndarray) -> DuplicateRemoval:
    """Build the output from ``remap``: old vertex id -> surviving old vertex id."""
    n = mesh.vertex_count
    survivors = np.flatnonzero(remap == np.arange(n))
    new_id = np.full(n, -1, dtype=np.int64)
    new_id[survivors] = np.arange(len(survivors))
    old_to_new = new_id[remap]

    columns: List[Tuple[MeshAttribute, str, VertexFormat, np.ndarray]] = [
        (semantic, name, fmt, values[survivors]) for semantic, name, fmt, values in mesh.attribute_columns()
    ]
    vertex_data, descriptors = interleave(len(survivors), columns)

    source = mesh.indices if mesh.is_indexed else np.arange(n)
    index_dtype = mesh.indices.dtype if mesh.is_indexed else np.uint32
    indices = old_to_new[source.astype(np.int64)].astype(index_dtype)

    out = MeshBuffer(mesh.primitive, vertex_data, descriptors, len(survivors), indices)
    return DuplicateRemoval(out, n, len(survivors))


def remove_duplicates(mesh: MeshBuffer) -> DuplicateRemoval:
    """Collapse bit-identical vertices onto their first occurrence.

    Unreferenced vertices are kept unless they duplicate another vertex. A
    non-indexed mesh comes out indexed.
    """
    n = mesh.vertex_count
    if n == 0:
        return _compact(mesh, np.zeros((0,), dtype=np.int64))
    keys = _vertex_bytes(mesh)
    if keys.shape[1] == 0:
        # No attributes, every vertex is the same
        return _compact(mesh, np.zeros(n, dtype=np.int64))
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    remap = first[inverse.reshape(-1)].astype(np.int64)
    return _compact(mesh, remap)


def _neighbour_offsets(dims: int) -> np.ndarray:
    return np.array(list(itertools.product((-1, 0, 1), repeat=dims)), dtype=np.int64).reshape(-1, dims)


def remove_duplicates_fuzzy(mesh: MeshBuffer, epsilon: float) -> DuplicateRemoval:
    """Collapse vertices whose floating-point components differ by at most ``epsilon``.

    Non-float attributes must match exactly. Vertices are visited in
    ascending index order and each one merges into the earliest surviving
    vertex within tolerance, so the result only depends on the input. With
    zero tolerance this is :func:`remove_duplicates`.

    Candidates come from a grid of ``2 * epsilon`` cells over the first three
    float components: any vertex within tolerance lies in the same or an
    adjacent cell.
    """
    if epsilon < 0:
        raise ValueError(f"Fuzzy tolerance must be non-negative, got {epsilon}")
    n = mesh.vertex_count
    float_parts: List[np.ndarray] = []
    exact_parts: List[np.ndarray] = []
    for i, attr in enumerate(mesh.attributes):
        values = mesh.attribute(i)
        if attr.format.is_floating_point:
            float_parts.append(values.astype(np.float64))
        else:
            exact_parts.append(np.ascontiguousarray(values).view(np.uint8).reshape(n, -1))
    if epsilon == 0 or not float_parts or n == 0:
        return remove_duplicates(mesh)

    floats = np.concatenate(float_parts, axis=1)
    dims = min(3, floats.shape[1])
    scaled = np.floor(floats[:, :dims] / (2.0 * epsilon))
    scaled = np.clip(np.nan_to_num(scaled, nan=0.0, posinf=_CELL_LIMIT, neginf=-_CELL_LIMIT),
                     -_CELL_LIMIT, _CELL_LIMIT)
    cells = scaled.astype(np.int64)
    if exact_parts:
        exact = np.concatenate(exact_parts, axis=1)
        _, exact_group = np.unique(exact, axis=0, return_inverse=True)
        keys = np.column_stack([cells, exact_group.reshape(-1).astype(np.int64)])
    else:
        exact = None
        keys = np.column_stack([cells, np.zeros(n, dtype=np.int64)])

    unique_keys, cell_of = np.unique(keys, axis=0, return_inverse=True)
    cell_of = cell_of.reshape(-1)
    lookup = {tuple(k): c for c, k in enumerate(unique_keys.tolist())}

    # Neighbouring cell ids per occupied cell, exact group fixed
    offsets = np.column_stack([_neighbour_offsets(dims), np.zeros(3 ** dims, dtype=np.int64)])
    neighbours: List[List[int]] = []
    for key in unique_keys:
        found = (lookup.get(tuple(k)) for k in (key + offsets).tolist())
        neighbours.append([c for c in found if c is not None])

    survivors: Dict[int, List[int]] = {}
    remap = np.arange(n, dtype=np.int64)
    for j in range(n):
        candidates = [v for c in neighbours[cell_of[j]] for v in survivors.get(c, ())]
        if candidates:
            cand = np.asarray(candidates, dtype=np.int64)
            close = np.all(np.abs(floats[cand] - floats[j]) <= epsilon, axis=1)
            if exact is not None:
                close &= np.all(exact[cand] == exact[j], axis=1)
            if np.any(close):
                remap[j] = int(cand[close].min())
                continue
        survivors.setdefault(int(cell_of[j]), []).append(j)
    return _compact(mesh, remap)
