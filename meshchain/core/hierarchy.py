from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .errors import NoDefaultSceneError


@dataclass
class SceneNode:
    object_id: int
    parent: Optional[int] = None              # None / -1 for root nodes
    mesh: Optional[int] = None                # index into the importer's meshes
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))  # local, (4, 4)
    name: str = ""

    def __post_init__(self) -> None:
        self.transform = np.asarray(self.transform, dtype=np.float64)
        if self.transform.shape != (4, 4):
            raise ValueError(f"Node {self.object_id} transform must be 4x4, got {self.transform.shape}")
        if self.parent is not None and self.parent < 0:
            self.parent = None


@dataclass
class SceneGraph:
    """A single-rooted (or multi-rooted forest) 3D scene, nodes in declaration order."""
    nodes: List[SceneNode] = field(default_factory=list)
    name: str = ""

    def node(self, object_id: int) -> SceneNode:
        for n in self.nodes:
            if n.object_id == object_id:
                return n
        raise KeyError(object_id)

    def children(self) -> Dict[Optional[int], List[SceneNode]]:
        out: Dict[Optional[int], List[SceneNode]] = {}
        for n in self.nodes:
            out.setdefault(n.parent, []).append(n)
        return out

    def mesh_reference_counts(self, mesh_count: int) -> List[int]:
        counts = [0] * mesh_count
        for n in self.nodes:
            if n.mesh is not None and 0 <= n.mesh < mesh_count:
                counts[n.mesh] += 1
        return counts


@dataclass(frozen=True)
class FlattenedInstance:
    mesh: int
    object_id: int
    transform: np.ndarray   # world, (4, 4)


def flatten_mesh_hierarchy(
    scene: Optional[SceneGraph],
    global_transform: Optional[np.ndarray] = None,
) -> List[FlattenedInstance]:
    """Flatten a scene graph into per-instance world transforms.

    Nodes are visited depth-first, children in declaration order. A node
    without a mesh emits nothing but still passes its transform down.
    ``global_transform`` is prepended to every root.

    Raises :class:`NoDefaultSceneError` if ``scene`` is None; what to do
    without a scene is up to the caller.
    """
    if scene is None:
        raise NoDefaultSceneError("No scene to flatten the mesh hierarchy from")

    root = np.eye(4) if global_transform is None else np.asarray(global_transform, dtype=np.float64)

    known = {n.object_id for n in scene.nodes}
    if len(known) != len(scene.nodes):
        raise ValueError("Scene contains duplicate object IDs")
    for n in scene.nodes:
        if n.parent is not None and n.parent not in known:
            raise ValueError(f"Node {n.object_id} references unknown parent {n.parent}")

    children = scene.children()
    out: List[FlattenedInstance] = []
    visited = 0

    # Explicit stack, children pushed reversed so they pop in declaration order
    stack = [(n, root) for n in reversed(children.get(None, []))]
    while stack:
        node, parent_world = stack.pop()
        visited += 1
        world = parent_world @ node.transform
        if node.mesh is not None:
            out.append(FlattenedInstance(node.mesh, node.object_id, world))
        for child in reversed(children.get(node.object_id, [])):
            stack.append((child, world))

    if visited != len(scene.nodes):
        raise ValueError("Scene hierarchy contains a cycle or nodes unreachable from a root")
    return out


def translation(xyz: Sequence[float]) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = np.asarray(xyz, dtype=np.float64)
    return m


def scaling(s: Sequence[float] | float) -> np.ndarray:
    m = np.eye(4)
    m[:3, :3] = np.diag(np.broadcast_to(np.asarray(s, dtype=np.float64), (3,)))
    return m


def rotation_z(deg: float) -> np.ndarray:
    r = np.deg2rad(deg)
    c, s = np.cos(r), np.sin(r)
    m = np.eye(4)
    m[:2, :2] = [[c, -s], [s, c]]
    return m


def build_scene(entries: Iterable[tuple]) -> SceneGraph:
    """Shorthand: ``(object_id, parent, mesh, transform)`` tuples to a SceneGraph."""
    return SceneGraph([SceneNode(oid, parent, mesh, np.eye(4) if t is None else t) for oid, parent, mesh, t in entries])
