from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional, Type, Union

import numpy as np

from .chain import PluginRegistry, SceneConverter, SceneConverterFeature
from .duplicates import remove_duplicates, remove_duplicates_fuzzy
from .exporter import triangle_indices, write_npz, write_ply
from .mesh import MeshAttribute, MeshBuffer, MeshPrimitive, VertexFormat, interleave
from .utils import get_logger

_log = get_logger()

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False


# -- file converters --
class StanfordSceneConverter(SceneConverter):
    name = "StanfordSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH_TO_FILE

    def convert_to_file(self, mesh: MeshBuffer, destination: Union[str, Path]) -> bool:
        try:
            write_ply(mesh, destination)
        except (OSError, ValueError) as exc:
            _log.error("%s: %s", self.name, exc)
            return False
        if self.verbose:
            _log.info("%s: wrote %d vertices to %s", self.name, mesh.vertex_count, destination)
        return True


class NpzSceneConverter(SceneConverter):
    name = "NpzSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH_TO_FILE

    def convert_to_file(self, mesh: MeshBuffer, destination: Union[str, Path]) -> bool:
        try:
            write_npz([mesh], destination, names=[str(self.configuration.get("name", ""))])
        except OSError as exc:
            _log.error("%s: %s", self.name, exc)
            return False
        return True


class TrimeshSceneConverter(SceneConverter):
    """OBJ / STL / OFF / GLB export through trimesh (points and triangles only)."""
    name = "TrimeshSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH_TO_FILE

    def __init__(self) -> None:
        if not _HAVE_TRIMESH:
            raise RuntimeError("trimesh is required for TrimeshSceneConverter")
        super().__init__()

    def convert_to_file(self, mesh: MeshBuffer, destination: Union[str, Path]) -> bool:
        path = Path(destination)
        file_type = str(self.configuration.get("file_type", path.suffix.lstrip(".").lower()))
        position = mesh.attribute_id(MeshAttribute.POSITION)
        if position is None:
            _log.error("%s: mesh has no positions", self.name)
            return False
        vertices = mesh.attribute(position)[:, :3].astype(np.float64)

        if mesh.primitive == MeshPrimitive.POINTS:
            geometry = trimesh.PointCloud(vertices)
        elif mesh.primitive == MeshPrimitive.TRIANGLES:
            kwargs: Dict[str, np.ndarray] = {}
            normal = mesh.attribute_id(MeshAttribute.NORMAL)
            if normal is not None:
                kwargs["vertex_normals"] = mesh.attribute(normal)[:, :3].astype(np.float64)
            color = mesh.attribute_id(MeshAttribute.COLOR)
            if color is not None:
                kwargs["vertex_colors"] = mesh.attribute(color)
            geometry = trimesh.Trimesh(vertices=vertices, faces=triangle_indices(mesh), process=False, **kwargs)
        else:
            _log.error("%s: can't export %s meshes", self.name, mesh.primitive.value)
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            geometry.export(str(path), file_type=file_type)
        except (OSError, ValueError, NotImplementedError) as exc:
            _log.error("%s: cannot export %s: %s", self.name, path, exc)
            return False
        return True


_BY_EXTENSION: Dict[str, Type[SceneConverter]] = {
    ".ply": StanfordSceneConverter,
    ".npz": NpzSceneConverter,
    ".obj": TrimeshSceneConverter,
    ".stl": TrimeshSceneConverter,
    ".off": TrimeshSceneConverter,
    ".glb": TrimeshSceneConverter,
}


class AnySceneConverter(SceneConverter):
    """Picks a file converter from the output extension."""
    name = "AnySceneConverter"
    features = SceneConverterFeature.CONVERT_MESH_TO_FILE

    def convert_to_file(self, mesh: MeshBuffer, destination: Union[str, Path]) -> bool:
        ext = Path(destination).suffix.lower()
        delegate_cls = _BY_EXTENSION.get(ext)
        if delegate_cls is None:
            _log.error("%s: cannot determine the format of %s, supported: %s",
                       self.name, destination, ", ".join(sorted(_BY_EXTENSION)))
            return False
        try:
            delegate = delegate_cls()
        except RuntimeError as exc:
            _log.error("%s: cannot load %s: %s", self.name, delegate_cls.name, exc)
            return False
        delegate.verbose = self.verbose
        delegate.configure(self.configuration)
        if self.verbose:
            _log.info("%s: using %s", self.name, delegate_cls.name)
        return delegate.convert_to_file(mesh, destination)


# -- in-memory converters --
class CastSceneConverter(SceneConverter):
    """Casts every floating-point attribute to ``dtype`` (default float32)."""
    name = "CastSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH

    def convert(self, mesh: MeshBuffer) -> Optional[MeshBuffer]:
        try:
            target = np.dtype(str(self.configuration.get("dtype", "float32")))
        except TypeError as exc:
            _log.error("%s: %s", self.name, exc)
            return None
        if not np.issubdtype(target, np.floating):
            _log.error("%s: target type %s isn't floating-point", self.name, target)
            return None
        columns = []
        for semantic, name, fmt, values in mesh.attribute_columns():
            if fmt.is_floating_point:
                fmt = VertexFormat(target.name, fmt.components)
            columns.append((semantic, name, fmt, values))
        vertex_data, descriptors = interleave(mesh.vertex_count, columns)
        indices = None if mesh.indices is None else mesh.indices.copy()
        return MeshBuffer(mesh.primitive, vertex_data, descriptors, mesh.vertex_count, indices)


class RemoveDuplicatesSceneConverter(SceneConverter):
    """Duplicate removal as a chain hop; ``fuzzy=EPS`` switches to fuzzy comparison."""
    name = "RemoveDuplicatesSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH

    def convert(self, mesh: MeshBuffer) -> Optional[MeshBuffer]:
        fuzzy = self.configuration.get("fuzzy")
        if fuzzy is None or fuzzy is False:
            result = remove_duplicates(mesh)
        else:
            try:
                result = remove_duplicates_fuzzy(mesh, float(fuzzy))
            except ValueError as exc:
                _log.error("%s: %s", self.name, exc)
                return None
        if self.verbose:
            _log.info("%s: %d -> %d vertices", self.name, result.vertex_count_before, result.vertex_count_after)
        return result.mesh


def triangulate_indices(primitive: MeshPrimitive, idx: np.ndarray) -> np.ndarray:
    idx = idx.astype(np.int64)
    n = len(idx)
    if primitive == MeshPrimitive.TRIANGLE_STRIP:
        if n < 3:
            return np.zeros((0,), dtype=np.int64)
        i = np.arange(n - 2)
        odd = (i % 2).astype(bool)
        a = np.where(odd, idx[i + 1], idx[i])
        b = np.where(odd, idx[i], idx[i + 1])
        return np.column_stack([a, b, idx[i + 2]]).reshape(-1)
    if primitive == MeshPrimitive.TRIANGLE_FAN:
        if n < 3:
            return np.zeros((0,), dtype=np.int64)
        i = np.arange(1, n - 1)
        return np.column_stack([np.full(len(i), idx[0]), idx[i], idx[i + 1]]).reshape(-1)
    if primitive == MeshPrimitive.LINE_STRIP:
        if n < 2:
            return np.zeros((0,), dtype=np.int64)
        return np.column_stack([idx[:-1], idx[1:]]).reshape(-1)
    if primitive == MeshPrimitive.LINE_LOOP:
        if n < 2:
            return np.zeros((0,), dtype=np.int64)
        return np.column_stack([idx, np.roll(idx, -1)]).reshape(-1)
    return idx


_TRIANGULATED = {
    MeshPrimitive.TRIANGLE_STRIP: MeshPrimitive.TRIANGLES,
    MeshPrimitive.TRIANGLE_FAN: MeshPrimitive.TRIANGLES,
    MeshPrimitive.LINE_STRIP: MeshPrimitive.LINES,
    MeshPrimitive.LINE_LOOP: MeshPrimitive.LINES,
}


class TriangulateSceneConverter(SceneConverter):
    """Turns strips, fans and loops into indexed triangles / lines."""
    name = "TriangulateSceneConverter"
    features = SceneConverterFeature.CONVERT_MESH

    def convert(self, mesh: MeshBuffer) -> Optional[MeshBuffer]:
        return triangulate(mesh)


def triangulate(mesh: MeshBuffer) -> MeshBuffer:
    primitive = _TRIANGULATED.get(mesh.primitive)
    if primitive is None:
        return MeshBuffer(mesh.primitive, mesh.vertex_data.copy(), list(mesh.attributes),
                          mesh.vertex_count, None if mesh.indices is None else mesh.indices.copy())
    source = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
    indices = triangulate_indices(mesh.primitive, source).astype(np.uint32)
    return MeshBuffer(primitive, mesh.vertex_data.copy(), list(mesh.attributes), mesh.vertex_count, indices)


def default_converter_registry() -> PluginRegistry[SceneConverter]:
    registry: PluginRegistry[SceneConverter] = PluginRegistry("converter")
    registry.register(AnySceneConverter.name, AnySceneConverter)
    registry.register(StanfordSceneConverter.name, StanfordSceneConverter, aliases=("PlySceneConverter",))
    registry.register(NpzSceneConverter.name, NpzSceneConverter)
    registry.register(TrimeshSceneConverter.name, TrimeshSceneConverter,
                      aliases=("ObjSceneConverter", "StlSceneConverter", "GltfSceneConverter"))
    registry.register(CastSceneConverter.name, CastSceneConverter)
    registry.register(RemoveDuplicatesSceneConverter.name, RemoveDuplicatesSceneConverter)
    registry.register(TriangulateSceneConverter.name, TriangulateSceneConverter)
    return registry
