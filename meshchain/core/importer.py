from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from .chain import PluginRegistry
from .exporter import read_npz_mesh, read_npz_scene
from .hierarchy import SceneGraph, SceneNode
from .mesh import MeshAttribute, MeshBuffer, MeshPrimitive
from .utils import get_logger

_log = get_logger()

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False

DEFAULT_IMPORTER = "AnySceneImporter"

# Formats whose files carry a node hierarchy worth flattening
_HIERARCHY_EXTENSIONS = {".gltf", ".glb", ".dae", ".3mf"}


class Importer:
    """Importer plug-in API.

    Accessors return None when the data isn't available; the caller decides
    how to report that.
    """
    name: str = "base"

    def __init__(self) -> None:
        self.configuration: Dict[str, Any] = {}
        self.verbose = False
        self.source: Optional[Path] = None

    def configure(self, options: Dict[str, Any]) -> None:
        self.configuration.update(options)

    def open(self, source: Union[str, Path]) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError

    def close(self) -> None:
        self.source = None

    @property
    def is_opened(self) -> bool:
        return self.source is not None

    def mesh_count(self) -> int:  # pragma: no cover - abstract
        raise NotImplementedError

    def mesh_name(self, index: int) -> str:
        return ""

    def mesh(self, index: int, level: int = 0) -> Optional[MeshBuffer]:  # pragma: no cover - abstract
        raise NotImplementedError

    def scene_count(self) -> int:
        return 0

    def default_scene(self) -> Optional[int]:
        return None

    def scene(self, index: int) -> Optional[SceneGraph]:
        return None


class NpzImporter(Importer):
    """Reads the native ``.npz`` container written by ``NpzSceneConverter``."""
    name = "NpzImporter"

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, np.ndarray] = {}

    def open(self, source: Union[str, Path]) -> bool:
        path = Path(source)
        try:
            loaded = np.load(path, allow_pickle=False)
        except (OSError, ValueError) as exc:
            _log.error("%s: cannot open %s: %s", self.name, path, exc)
            return False
        if not isinstance(loaded, np.lib.npyio.NpzFile):
            _log.error("%s: %s holds a single array, not an archive", self.name, path)
            return False
        with loaded as data:
            self._data = {k: data[k] for k in data.files}
        if "mesh_count" not in self._data:
            _log.error("%s: %s is not a mesh container", self.name, path)
            self._data = {}
            return False
        self.source = path
        return True

    def close(self) -> None:
        self._data = {}
        super().close()

    def mesh_count(self) -> int:
        return int(self._data.get("mesh_count", 0))

    def mesh_name(self, index: int) -> str:
        key = f"mesh{index}_name"
        return str(self._data[key]) if key in self._data else ""

    def mesh(self, index: int, level: int = 0) -> Optional[MeshBuffer]:
        if not 0 <= index < self.mesh_count():
            _log.error("%s: mesh index %d out of range for %d meshes", self.name, index, self.mesh_count())
            return None
        if level != 0:
            _log.error("%s: mesh %d has no level %d", self.name, index, level)
            return None
        try:
            return read_npz_mesh(self._data, index)
        except (KeyError, ValueError) as exc:
            _log.error("%s: cannot import mesh %d: %s", self.name, index, exc)
            return None

    def scene_count(self) -> int:
        return 1 if "scene_object_ids" in self._data else 0

    def default_scene(self) -> Optional[int]:
        return 0 if self.scene_count() else None

    def scene(self, index: int) -> Optional[SceneGraph]:
        if index != 0 or not self.scene_count():
            return None
        return read_npz_scene(self._data)


def trimesh_to_buffer(geometry: Any) -> Optional[MeshBuffer]:
    """Trimesh / PointCloud to MeshBuffer; other geometry kinds give None."""
    if isinstance(geometry, trimesh.PointCloud):
        attrs: List[tuple] = [(MeshAttribute.POSITION, np.asarray(geometry.vertices, dtype=np.float32))]
        colors = getattr(geometry, "colors", None)
        if colors is not None and len(colors) == len(geometry.vertices):
            attrs.append((MeshAttribute.COLOR, np.asarray(colors, dtype=np.uint8)))
        return MeshBuffer.from_arrays(MeshPrimitive.POINTS, attrs)

    if not isinstance(geometry, trimesh.Trimesh):
        return None

    vertices = np.asarray(geometry.vertices, dtype=np.float32)
    attrs = [
        (MeshAttribute.POSITION, vertices),
        (MeshAttribute.NORMAL, np.asarray(geometry.vertex_normals, dtype=np.float32)),
    ]
    visual = geometry.visual
    if visual.kind == "texture" and getattr(visual, "uv", None) is not None and len(visual.uv) == len(vertices):
        attrs.append((MeshAttribute.TEXTURE_COORDINATES, np.asarray(visual.uv, dtype=np.float32)))
    elif visual.kind == "vertex":
        attrs.append((MeshAttribute.COLOR, np.asarray(visual.vertex_colors, dtype=np.uint8)))
    faces = np.asarray(geometry.faces, dtype=np.uint32).reshape(-1)
    return MeshBuffer.from_arrays(MeshPrimitive.TRIANGLES, attrs, indices=faces)


class TrimeshImporter(Importer):
    """Anything trimesh can load; glTF / COLLADA / 3MF also expose their node hierarchy."""
    name = "TrimeshImporter"

    def __init__(self) -> None:
        if not _HAVE_TRIMESH:
            raise RuntimeError("trimesh is required for TrimeshImporter")
        super().__init__()
        self._scene = None
        self._geometry_names: List[str] = []

    def open(self, source: Union[str, Path]) -> bool:
        path = Path(source)
        try:
            if hasattr(trimesh, "load_scene"):
                scene = trimesh.load_scene(str(path), process=False)
            else:
                scene = trimesh.load(str(path), force="scene", process=False)
        except Exception as exc:
            # trimesh raises a wide range of loader-specific exceptions
            _log.error("%s: cannot open %s: %s", self.name, path, exc)
            return False
        self._scene = scene
        self._geometry_names = [
            name for name, geom in scene.geometry.items()
            if isinstance(geom, (trimesh.Trimesh, trimesh.PointCloud))
        ]
        self.source = path
        return True

    def close(self) -> None:
        self._scene = None
        self._geometry_names = []
        super().close()

    def mesh_count(self) -> int:
        return len(self._geometry_names)

    def mesh_name(self, index: int) -> str:
        return self._geometry_names[index] if 0 <= index < len(self._geometry_names) else ""

    def mesh(self, index: int, level: int = 0) -> Optional[MeshBuffer]:
        if self._scene is None or not 0 <= index < self.mesh_count():
            _log.error("%s: mesh index %d out of range for %d meshes", self.name, index, self.mesh_count())
            return None
        if level != 0:
            _log.error("%s: mesh %d has no level %d", self.name, index, level)
            return None
        return trimesh_to_buffer(self._scene.geometry[self._geometry_names[index]])

    def scene_count(self) -> int:
        if self.source is None or self.source.suffix.lower() not in _HIERARCHY_EXTENSIONS:
            return 0
        return 1

    def default_scene(self) -> Optional[int]:
        return 0 if self.scene_count() else None

    def scene(self, index: int) -> Optional[SceneGraph]:
        if index != 0 or not self.scene_count() or self._scene is None:
            return None
        graph = self._scene.graph
        ids: Dict[str, int] = {graph.base_frame: 0}
        nodes = [SceneNode(object_id=0, name=str(graph.base_frame))]
        for parent, child, data in graph.to_edgelist():
            for frame in (parent, child):
                if frame not in ids:
                    ids[frame] = len(ids)
                    nodes.append(SceneNode(object_id=ids[frame], name=str(frame)))
            node = nodes[ids[child]]
            node.parent = ids[parent]
            node.transform = np.asarray(data.get("matrix", np.eye(4)), dtype=np.float64).reshape(4, 4)
            geometry = data.get("geometry")
            if geometry in self._geometry_names:
                node.mesh = self._geometry_names.index(geometry)
        return SceneGraph(nodes, name=str(self.source.name if self.source else ""))


class AnySceneImporter(Importer):
    """Picks ``NpzImporter`` or ``TrimeshImporter`` from the file extension."""
    name = "AnySceneImporter"

    def __init__(self) -> None:
        super().__init__()
        self._delegate: Optional[Importer] = None

    def open(self, source: Union[str, Path]) -> bool:
        path = Path(source)
        try:
            delegate: Importer = NpzImporter() if path.suffix.lower() == ".npz" else TrimeshImporter()
        except RuntimeError as exc:
            _log.error("%s: cannot import %s: %s", self.name, path, exc)
            return False
        delegate.verbose = self.verbose
        delegate.configure(self.configuration)
        if self.verbose:
            _log.info("%s: using %s", self.name, delegate.name)
        if not delegate.open(path):
            return False
        self._delegate = delegate
        self.source = path
        return True

    def close(self) -> None:
        if self._delegate is not None:
            self._delegate.close()
        self._delegate = None
        super().close()

    def mesh_count(self) -> int:
        return self._delegate.mesh_count() if self._delegate else 0

    def mesh_name(self, index: int) -> str:
        return self._delegate.mesh_name(index) if self._delegate else ""

    def mesh(self, index: int, level: int = 0) -> Optional[MeshBuffer]:
        return self._delegate.mesh(index, level) if self._delegate else None

    def scene_count(self) -> int:
        return self._delegate.scene_count() if self._delegate else 0

    def default_scene(self) -> Optional[int]:
        return self._delegate.default_scene() if self._delegate else None

    def scene(self, index: int) -> Optional[SceneGraph]:
        return self._delegate.scene(index) if self._delegate else None


def default_importer_registry() -> PluginRegistry[Importer]:
    registry: PluginRegistry[Importer] = PluginRegistry("importer")
    registry.register(AnySceneImporter.name, AnySceneImporter)
    registry.register(NpzImporter.name, NpzImporter)
    registry.register(TrimeshImporter.name, TrimeshImporter,
                      aliases=("GltfImporter", "ObjImporter", "StanfordImporter", "StlImporter"))
    return registry
