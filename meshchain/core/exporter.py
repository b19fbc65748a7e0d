from __future__ import annotations
import pathlib
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .hierarchy import SceneGraph, SceneNode
from .mesh import MeshAttribute, MeshBuffer, MeshPrimitive, VertexFormat, interleave

NPZ_FORMAT_VERSION = 1

_PLY_TYPES: Dict[str, str] = {
    "int8": "char",
    "uint8": "uchar",
    "int16": "short",
    "uint16": "ushort",
    "int32": "int",
    "uint32": "uint",
    "float32": "float",
    "float64": "double",
}

_PLY_COMPONENT_NAMES: Dict[MeshAttribute, Tuple[str, ...]] = {
    MeshAttribute.POSITION: ("x", "y", "z"),
    MeshAttribute.NORMAL: ("nx", "ny", "nz"),
    MeshAttribute.TEXTURE_COORDINATES: ("s", "t"),
    MeshAttribute.COLOR: ("red", "green", "blue", "alpha"),
    MeshAttribute.OBJECT_ID: ("object_id",),
}


def triangle_indices(mesh: MeshBuffer) -> np.ndarray:
    """(F, 3) faces of a triangle mesh, implicit indices for non-indexed ones."""
    if mesh.primitive != MeshPrimitive.TRIANGLES:
        raise ValueError(f"Expected a triangle mesh, got {mesh.primitive.value}")
    idx = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
    if len(idx) % 3:
        raise ValueError(f"Triangle index count {len(idx)} isn't divisible by 3")
    return idx.astype(np.int64).reshape(-1, 3)


def _ply_property_names(mesh: MeshBuffer) -> List[List[str]]:
    names: List[List[str]] = []
    for attr in mesh.attributes:
        comps = attr.format.components
        known = _PLY_COMPONENT_NAMES.get(attr.semantic)
        if known is not None and comps <= len(known) and not attr.name:
            names.append(list(known[:comps]))
        else:
            names.append([f"{attr.label}_{k}" for k in range(comps)])
    return names


def write_ply(mesh: MeshBuffer, path: str | pathlib.Path) -> None:
    """Simple ASCII PLY for points, lines and triangles with all attributes."""
    if mesh.primitive.is_strip_like:
        raise ValueError(f"PLY can't store {mesh.primitive.value} meshes")

    columns = []
    for i, attr in enumerate(mesh.attributes):
        values = mesh.attribute(i)
        if attr.format.dtype not in _PLY_TYPES:
            values = values.astype(np.float32)
        columns.append(values)
    prop_names = _ply_property_names(mesh)

    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\nformat ascii 1.0\n")
        f.write(f"element vertex {mesh.vertex_count}\n")
        for values, names in zip(columns, prop_names):
            ply_type = _PLY_TYPES[values.dtype.name]
            for name in names:
                f.write(f"property {ply_type} {name}\n")

        faces: Optional[np.ndarray] = None
        edges: Optional[np.ndarray] = None
        if mesh.primitive == MeshPrimitive.TRIANGLES:
            faces = triangle_indices(mesh)
            f.write(f"element face {len(faces)}\n")
            f.write("property list uchar int vertex_indices\n")
        elif mesh.primitive == MeshPrimitive.LINES:
            idx = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
            edges = idx.astype(np.int64).reshape(-1, 2)
            f.write(f"element edge {len(edges)}\n")
            f.write("property int vertex1\nproperty int vertex2\n")
        f.write("end_header\n")

        for v in range(mesh.vertex_count):
            row: List[str] = []
            for values in columns:
                if np.issubdtype(values.dtype, np.floating):
                    row.extend(repr(float(x)) for x in values[v])
                else:
                    row.extend(str(int(x)) for x in values[v])
            f.write(" ".join(row) + "\n")
        if faces is not None:
            for a, b, c in faces:
                f.write(f"3 {a} {b} {c}\n")
        if edges is not None:
            for a, b in edges:
                f.write(f"{a} {b}\n")


def write_npz(
    meshes: Sequence[MeshBuffer],
    path: str | pathlib.Path,
    scene: Optional[SceneGraph] = None,
    names: Optional[Sequence[str]] = None,
) -> None:
    """Native container: every mesh with its full attribute layout, plus an optional scene."""
    out: Dict[str, np.ndarray] = {
        "format_version": np.asarray(NPZ_FORMAT_VERSION),
        "mesh_count": np.asarray(len(meshes)),
    }
    for m, mesh in enumerate(meshes):
        prefix = f"mesh{m}_"
        out[prefix + "primitive"] = np.asarray(mesh.primitive.value)
        out[prefix + "vertex_count"] = np.asarray(mesh.vertex_count)
        out[prefix + "name"] = np.asarray(names[m] if names else "")
        if mesh.is_indexed:
            out[prefix + "indices"] = np.asarray(mesh.indices)
        out[prefix + "attribute_semantics"] = np.asarray([a.semantic.value for a in mesh.attributes], dtype=str)
        out[prefix + "attribute_names"] = np.asarray([a.name for a in mesh.attributes], dtype=str)
        for k in range(mesh.attribute_count):
            out[f"{prefix}attribute_{k}"] = np.ascontiguousarray(mesh.attribute(k))

    if scene is not None:
        nodes = scene.nodes
        out["scene_object_ids"] = np.asarray([n.object_id for n in nodes], dtype=np.int64)
        out["scene_parents"] = np.asarray([-1 if n.parent is None else n.parent for n in nodes], dtype=np.int64)
        out["scene_meshes"] = np.asarray([-1 if n.mesh is None else n.mesh for n in nodes], dtype=np.int64)
        out["scene_transforms"] = np.asarray([n.transform for n in nodes], dtype=np.float64).reshape(-1, 4, 4)
        out["scene_names"] = np.asarray([n.name for n in nodes], dtype=str)

    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **out)


def read_npz_mesh(data, index: int) -> MeshBuffer:
    prefix = f"mesh{index}_"
    vertex_count = int(data[prefix + "vertex_count"])
    semantics = [str(s) for s in data[prefix + "attribute_semantics"]]
    names = [str(s) for s in data[prefix + "attribute_names"]]
    columns = []
    for k, (semantic, name) in enumerate(zip(semantics, names)):
        values = data[f"{prefix}attribute_{k}"]
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        columns.append((MeshAttribute(semantic), name, VertexFormat(values.dtype.name, values.shape[1]), values))
    vertex_data, descriptors = interleave(vertex_count, columns)
    indices = data[prefix + "indices"] if prefix + "indices" in data else None
    primitive = MeshPrimitive(str(data[prefix + "primitive"]))
    return MeshBuffer(primitive, vertex_data, descriptors, vertex_count, indices)


def read_npz_scene(data) -> Optional[SceneGraph]:
    if "scene_object_ids" not in data:
        return None
    names = data["scene_names"] if "scene_names" in data else [""] * len(data["scene_object_ids"])
    nodes = []
    for oid, parent, mesh, transform, name in zip(
        data["scene_object_ids"], data["scene_parents"], data["scene_meshes"], data["scene_transforms"], names
    ):
        nodes.append(SceneNode(
            object_id=int(oid),
            parent=None if parent < 0 else int(parent),
            mesh=None if mesh < 0 else int(mesh),
            transform=np.asarray(transform),
            name=str(name),
        ))
    return SceneGraph(nodes)
