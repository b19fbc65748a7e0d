from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .chain import DEFAULT_CONVERTER, ChainResult, ConverterChain, PluginRegistry, SceneConverter
from .concatenate import concatenate_meshes
from .duplicates import remove_duplicates, remove_duplicates_fuzzy
from .errors import InvalidAttributeSelectionError, MeshImportError, NoDefaultSceneError, SourceUnavailableError
from .filter import filter_attributes, parse_number_sequence
from .hierarchy import flatten_mesh_hierarchy
from .importer import Importer
from .mesh import MeshBuffer
from .transform import transform_mesh
from .utils import Timings, get_logger

_log = get_logger()


@dataclass
class PipelineConfig:
    mesh: int = 0
    level: int = 0
    concatenate_meshes: bool = False
    # "N1,N2-N3" or explicit ids; ids refer to the first mesh when concatenating
    only_attributes: Optional[Union[str, Sequence[int]]] = None
    remove_duplicates: bool = False
    remove_duplicates_fuzzy: Optional[float] = None
    converters: List[str] = field(default_factory=list)
    converter_options: List[Dict[str, Any]] = field(default_factory=list)
    default_converter: str = DEFAULT_CONVERTER
    verbose: bool = False
    profile: bool = False


def import_concatenated(importer: Importer) -> MeshBuffer:
    """Import every mesh, bake the default scene's hierarchy in and concatenate.

    Without a default scene all meshes are taken as-is, as if they were in
    the root with an identity transform.
    """
    meshes: List[MeshBuffer] = []
    for i in range(importer.mesh_count()):
        mesh = importer.mesh(i)
        if mesh is None:
            raise MeshImportError(f"Cannot import mesh {i}")
        meshes.append(mesh)

    scene = None
    scene_id = importer.default_scene()
    if scene_id is not None:
        scene = importer.scene(scene_id)
        if scene is None:
            raise MeshImportError(f"Cannot import scene {scene_id} for mesh concatenation")

    try:
        instances = flatten_mesh_hierarchy(scene)
    except NoDefaultSceneError:
        _log.debug("No default scene, assuming all %d meshes are in the root", len(meshes))
    else:
        flattened: List[MeshBuffer] = []
        for instance in instances:
            if not 0 <= instance.mesh < len(meshes):
                raise MeshImportError(f"Object {instance.object_id} references unknown mesh {instance.mesh}")
            flattened.append(transform_mesh(meshes[instance.mesh], instance.transform))
        meshes = flattened

    if not meshes:
        raise MeshImportError("Scene contains no mesh instances to concatenate")
    return concatenate_meshes(meshes)


class Pipeline:
    """Import → (flatten + concatenate) → attribute filter → dedup → converter chain."""

    def __init__(
        self,
        importer: Importer,
        converters: PluginRegistry[SceneConverter],
        cfg: Optional[PipelineConfig] = None,
        timings: Optional[Timings] = None,
    ) -> None:
        self.importer = importer
        self.converters = converters
        self.cfg = cfg or PipelineConfig()
        self.timings = timings or Timings()
        self.stats: Dict[str, Any] = {}

    def load(self) -> MeshBuffer:
        if not self.importer.is_opened:
            raise SourceUnavailableError("Importer has no file opened")
        if not self.importer.mesh_count():
            raise MeshImportError(f"No meshes found in {self.importer.source}")

        with self.timings.measure("import"):
            if self.cfg.concatenate_meshes:
                mesh = import_concatenated(self.importer)
            else:
                found = self.importer.mesh(self.cfg.mesh, self.cfg.level)
                if found is None:
                    raise MeshImportError(f"Cannot import mesh {self.cfg.mesh} level {self.cfg.level}")
                mesh = found
        self.stats["vertices_imported"] = mesh.vertex_count
        return mesh

    def process(self, mesh: MeshBuffer) -> MeshBuffer:
        only = self.cfg.only_attributes
        if only is not None and not (isinstance(only, str) and not only.strip()):
            if isinstance(only, str):
                try:
                    ids = parse_number_sequence(only, mesh.attribute_count)
                except ValueError as exc:
                    raise InvalidAttributeSelectionError(str(exc)) from exc
            else:
                ids = list(only)
            mesh = filter_attributes(mesh, ids)

        if self.cfg.remove_duplicates:
            with self.timings.measure("conversion"):
                result = remove_duplicates(mesh)
            if self.cfg.verbose:
                _log.info("Duplicate removal: %d -> %d vertices",
                          result.vertex_count_before, result.vertex_count_after)
            mesh = result.mesh

        if self.cfg.remove_duplicates_fuzzy is not None:
            with self.timings.measure("conversion"):
                result = remove_duplicates_fuzzy(mesh, self.cfg.remove_duplicates_fuzzy)
            if self.cfg.verbose:
                _log.info("Fuzzy duplicate removal: %d -> %d vertices",
                          result.vertex_count_before, result.vertex_count_after)
            mesh = result.mesh
        return mesh

    def convert(self, mesh: MeshBuffer, output: Union[str, Path]) -> ChainResult:
        chain = ConverterChain(
            self.converters,
            default=self.cfg.default_converter,
            verbose=self.cfg.verbose,
            timings=self.timings,
        )
        return chain.run(mesh, output, self.cfg.converters, self.cfg.converter_options)

    def run(self, output: Union[str, Path]) -> Dict[str, Any]:
        mesh = self.process(self.load())
        self.stats["vertices"] = mesh.vertex_count
        self.stats["indices"] = mesh.index_count
        result = self.convert(mesh, output)
        self.stats["hops"] = result.hops
        self.stats["output"] = str(result.output)
        self.stats["import_s"] = self.timings.get("import")
        self.stats["conversion_s"] = self.timings.get("conversion")
        if self.cfg.profile:
            _log.info("Import took %.3f seconds, conversion %.3f seconds",
                      self.stats["import_s"], self.stats["conversion_s"])
        return self.stats
