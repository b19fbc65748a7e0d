from __future__ import annotations
from typing import List, Optional, Tuple

import numpy as np

from .importer import Importer
from .mesh import MeshAttribute, MeshBuffer
from .utils import get_logger

_log = get_logger()


def _bounds(mesh: MeshBuffer) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    position = mesh.attribute_id(MeshAttribute.POSITION)
    if position is None or not mesh.vertex_count:
        return None
    xyz = mesh.attribute(position).astype(np.float64)
    return xyz.min(axis=0), xyz.max(axis=0)


def _fmt_vec(v: np.ndarray) -> str:
    return "{" + ", ".join(f"{x:g}" for x in v) + "}"


def describe_mesh(index: int, mesh: MeshBuffer, name: str = "", references: Optional[int] = None,
                  bounds: bool = False) -> List[str]:
    title = f"Mesh {index}"
    if name:
        title += f" ({name})"
    if references is not None:
        title += f" [{references} object references]"
    lines = [f"{title}:"]
    lines.append(f"  {mesh.primitive.value}, {mesh.vertex_count} vertices")
    if mesh.is_indexed:
        lines.append(f"  {mesh.index_count} indices ({mesh.indices.dtype.name})")
    for i, attr in enumerate(mesh.attributes):
        text = f"  Attribute {i}: {attr.label} @ {attr.format}, offset {attr.offset}, stride {attr.stride}"
        lines.append(text)
    if bounds:
        found = _bounds(mesh)
        if found is not None:
            lo, hi = found
            lines.append(f"  Bounds: {_fmt_vec(lo)} -> {_fmt_vec(hi)}")
    return lines


def describe_importer(
    importer: Importer,
    meshes: bool = True,
    scenes: bool = False,
    objects: bool = False,
    bounds: bool = False,
) -> Tuple[List[str], bool]:
    """Human-readable listing of what an opened importer exposes.

    Returns the lines and whether every requested item could be imported.
    When both meshes and scenes/objects are listed, each mesh also shows how
    many objects reference it.
    """
    lines: List[str] = []
    ok = True
    mesh_count = importer.mesh_count()
    references: Optional[List[int]] = None

    if scenes or objects:
        for s in range(importer.scene_count()):
            scene = importer.scene(s)
            if scene is None:
                _log.error("Cannot import scene %d", s)
                ok = False
                continue
            if references is None:
                references = [0] * mesh_count
            for m, count in enumerate(scene.mesh_reference_counts(mesh_count)):
                references[m] += count
            if scenes:
                label = f"Scene {s}" + (f" ({scene.name})" if scene.name else "")
                if s == importer.default_scene():
                    label += " [default]"
                instances = sum(1 for n in scene.nodes if n.mesh is not None)
                lines.append(f"{label}:")
                lines.append(f"  {len(scene.nodes)} objects, {instances} mesh instances")
            if objects:
                for node in scene.nodes:
                    title = f"Object {node.object_id}" + (f" ({node.name})" if node.name else "")
                    parent = "root" if node.parent is None else str(node.parent)
                    mesh = "none" if node.mesh is None else str(node.mesh)
                    lines.append(f"{title}: parent {parent}, mesh {mesh}")

    if meshes:
        for m in range(mesh_count):
            mesh = importer.mesh(m)
            if mesh is None:
                _log.error("Cannot import mesh %d", m)
                ok = False
                continue
            lines.extend(describe_mesh(
                m, mesh,
                name=importer.mesh_name(m),
                references=references[m] if references is not None else None,
                bounds=bounds,
            ))
    return lines, ok
