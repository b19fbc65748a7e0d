"""meshchain – mesh conversion pipeline.

This package contains the stages of a scene-to-file mesh conversion:
- MeshBuffer, the interleaved vertex/index container (core.mesh)
- Scene hierarchy flattening (core.hierarchy)
- Mesh transformation and concatenation (core.transform, core.concatenate)
- Attribute filtering and duplicate removal (core.filter, core.duplicates)
- Importer and converter plug-ins (core.importer, core.converters)
- The converter chain that writes the output exactly once (core.chain)
- The Pipeline orchestrator (core.pipeline)

trimesh is optional; without it only the native .npz container and ASCII PLY
output are available.
"""

from .core.mesh import MeshAttribute, MeshAttributeData, MeshBuffer, MeshPrimitive, VertexFormat
from .core.hierarchy import FlattenedInstance, SceneGraph, SceneNode, flatten_mesh_hierarchy
from .core.transform import transform_mesh
from .core.concatenate import concatenate_meshes
from .core.filter import filter_attributes, parse_number_sequence
from .core.duplicates import DuplicateRemoval, remove_duplicates, remove_duplicates_fuzzy
from .core.chain import (
    ConverterChain, PluginRegistry, SceneConverter, SceneConverterFeature
)
from .core.importer import AnySceneImporter, Importer, NpzImporter, TrimeshImporter
from .core.converters import (
    AnySceneConverter, CastSceneConverter, NpzSceneConverter, RemoveDuplicatesSceneConverter,
    StanfordSceneConverter, TriangulateSceneConverter, TrimeshSceneConverter
)
from .core.pipeline import Pipeline, PipelineConfig
