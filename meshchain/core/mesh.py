from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import MeshReleasedError


class MeshPrimitive(str, Enum):
    POINTS = "points"
    LINES = "lines"
    LINE_STRIP = "line_strip"
    LINE_LOOP = "line_loop"
    TRIANGLES = "triangles"
    TRIANGLE_STRIP = "triangle_strip"
    TRIANGLE_FAN = "triangle_fan"

    @property
    def is_strip_like(self) -> bool:
        """Strips, loops and fans encode adjacency through vertex order."""
        return self in (
            MeshPrimitive.LINE_STRIP,
            MeshPrimitive.LINE_LOOP,
            MeshPrimitive.TRIANGLE_STRIP,
            MeshPrimitive.TRIANGLE_FAN,
        )


class MeshAttribute(str, Enum):
    POSITION = "position"
    NORMAL = "normal"
    TANGENT = "tangent"
    BITANGENT = "bitangent"
    TEXTURE_COORDINATES = "texture_coordinates"
    COLOR = "color"
    OBJECT_ID = "object_id"
    CUSTOM = "custom"


@dataclass(frozen=True)
class VertexFormat:
    """Scalar type + component count, e.g. ``float32 x3``."""
    dtype: str
    components: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "dtype", np.dtype(self.dtype).name)
        if self.components < 1:
            raise ValueError(f"Vertex format needs at least one component, got {self.components}")

    @property
    def scalar(self) -> np.dtype:
        return np.dtype(self.dtype)

    @property
    def size(self) -> int:
        return self.scalar.itemsize * self.components

    @property
    def is_floating_point(self) -> bool:
        return np.issubdtype(self.scalar, np.floating)

    def __str__(self) -> str:
        return f"{self.dtype}x{self.components}" if self.components > 1 else self.dtype


@dataclass(frozen=True)
class MeshAttributeData:
    """Describes where one attribute lives inside the vertex buffer."""
    semantic: MeshAttribute
    format: VertexFormat
    offset: int
    stride: int
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.semantic.value

    def same_kind(self, other: "MeshAttributeData") -> bool:
        return self.semantic == other.semantic and self.name == other.name


# (semantic, array) or (semantic, name, array)
AttributeSource = Union[
    Tuple[Union[MeshAttribute, str], np.ndarray],
    Tuple[Union[MeshAttribute, str], str, np.ndarray],
]


def _as_columns(values: np.ndarray, vertex_count: int) -> np.ndarray:
    arr = np.asarray(values)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2 or arr.shape[0] != vertex_count:
        raise ValueError(f"Attribute array of shape {np.asarray(values).shape} doesn't match {vertex_count} vertices")
    return arr


def interleave(
    vertex_count: int,
    columns: Sequence[Tuple[MeshAttribute, str, VertexFormat, np.ndarray]],
) -> Tuple[np.ndarray, List[MeshAttributeData]]:
    """Pack per-attribute arrays into one interleaved byte buffer.

    Returns the buffer and descriptors in the same order as ``columns``.
    """
    stride = sum(fmt.size for _, _, fmt, _ in columns)
    packed = np.zeros((vertex_count, stride), dtype=np.uint8)
    descriptors: List[MeshAttributeData] = []
    offset = 0
    for semantic, name, fmt, values in columns:
        typed = np.ascontiguousarray(_as_columns(values, vertex_count), dtype=fmt.scalar)
        if typed.shape[1] != fmt.components:
            raise ValueError(
                f"Attribute {name or semantic.value} has {typed.shape[1]} components, format says {fmt.components}"
            )
        packed[:, offset:offset + fmt.size] = typed.view(np.uint8).reshape(vertex_count, fmt.size)
        descriptors.append(MeshAttributeData(semantic, fmt, offset, stride, name))
        offset += fmt.size
    return packed.reshape(-1), descriptors


@dataclass(eq=False)
class MeshBuffer:
    """In-memory mesh: topology, optional index buffer, vertex bytes and attribute layout.

    Attribute order is significant; ordinal indices into ``attributes`` are
    what attribute selection refers to. Stages never mutate a MeshBuffer, they
    consume one and produce a new one. Once storage has been handed to another
    owner via ``release_index_data()`` / ``release_vertex_data()`` the buffer
    can't be read anymore.
    """
    primitive: MeshPrimitive
    vertex_data: np.ndarray
    attributes: List[MeshAttributeData]
    vertex_count: int
    index_data: Optional[np.ndarray] = None
    _released: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.primitive = MeshPrimitive(self.primitive)
        self.vertex_data = np.ascontiguousarray(self.vertex_data).reshape(-1).view(np.uint8)
        self.attributes = list(self.attributes)
        self.vertex_count = int(self.vertex_count)
        if self.vertex_count < 0:
            raise ValueError(f"Vertex count can't be negative, got {self.vertex_count}")

        for i, attr in enumerate(self.attributes):
            if attr.offset < 0 or attr.stride <= 0:
                raise ValueError(f"Attribute {i} has invalid offset {attr.offset} / stride {attr.stride}")
            if self.vertex_count == 0:
                continue
            end = attr.offset + (self.vertex_count - 1) * attr.stride + attr.format.size
            if end > len(self.vertex_data):
                raise ValueError(
                    f"Attribute {i} ({attr.label}) spans {end} bytes but the vertex buffer has only {len(self.vertex_data)}"
                )

        if self.index_data is not None:
            idx = np.asarray(self.index_data).reshape(-1)
            if not np.issubdtype(idx.dtype, np.integer):
                raise ValueError(f"Index buffer must be integral, got {idx.dtype}")
            if idx.size and int(idx.min()) < 0:
                raise ValueError("Index buffer contains negative values")
            if idx.size and int(idx.max()) >= self.vertex_count:
                raise ValueError(
                    f"Index {int(idx.max())} out of range for {self.vertex_count} vertices"
                )
            if not np.issubdtype(idx.dtype, np.unsignedinteger):
                idx = idx.astype(np.uint32)
            self.index_data = idx

    # -- construction --
    @classmethod
    def from_arrays(
        cls,
        primitive: Union[MeshPrimitive, str],
        attributes: Iterable[AttributeSource],
        indices: Optional[Sequence[int]] = None,
        vertex_count: Optional[int] = None,
    ) -> "MeshBuffer":
        columns: List[Tuple[MeshAttribute, str, VertexFormat, np.ndarray]] = []
        for entry in attributes:
            if len(entry) == 3:
                semantic, name, values = entry  # type: ignore[misc]
            else:
                semantic, values = entry  # type: ignore[misc]
                name = ""
            arr = np.asarray(values)
            if arr.ndim == 1:
                arr = arr.reshape(-1, 1)
            columns.append((MeshAttribute(semantic), name, VertexFormat(arr.dtype.name, arr.shape[1]), arr))
        if vertex_count is None:
            vertex_count = columns[0][3].shape[0] if columns else 0
        vertex_data, descriptors = interleave(vertex_count, columns)
        index_data = None if indices is None else np.asarray(indices, dtype=np.uint32)
        return cls(MeshPrimitive(primitive), vertex_data, descriptors, vertex_count, index_data)

    # -- accessors --
    def _check_alive(self) -> None:
        if self._released:
            raise MeshReleasedError("Mesh storage was released and can't be accessed anymore")

    @property
    def is_indexed(self) -> bool:
        return self.index_data is not None

    @property
    def index_count(self) -> int:
        return 0 if self.index_data is None else int(self.index_data.size)

    @property
    def indices(self) -> Optional[np.ndarray]:
        self._check_alive()
        return self.index_data

    @property
    def attribute_count(self) -> int:
        return len(self.attributes)

    def attribute_id(self, semantic: Union[MeshAttribute, str], occurrence: int = 0, name: str = "") -> Optional[int]:
        semantic = MeshAttribute(semantic)
        seen = 0
        for i, attr in enumerate(self.attributes):
            if attr.semantic == semantic and (not name or attr.name == name):
                if seen == occurrence:
                    return i
                seen += 1
        return None

    def has_attribute(self, semantic: Union[MeshAttribute, str]) -> bool:
        return self.attribute_id(semantic) is not None

    def attribute(self, index: Union[int, MeshAttribute, str]) -> np.ndarray:
        """Read-only ``(vertex_count, components)`` view of one attribute."""
        self._check_alive()
        if not isinstance(index, (int, np.integer)):
            found = self.attribute_id(index)
            if found is None:
                raise KeyError(f"Mesh has no {MeshAttribute(index).value} attribute")
            index = found
        desc = self.attributes[index]
        scalar = desc.format.scalar
        if self.vertex_count == 0:
            return np.zeros((0, desc.format.components), dtype=scalar)
        view = np.ndarray(
            shape=(self.vertex_count, desc.format.components),
            dtype=scalar,
            buffer=self.vertex_data,
            offset=desc.offset,
            strides=(desc.stride, scalar.itemsize),
        )
        view.flags.writeable = False
        return view

    def attribute_columns(self) -> List[Tuple[MeshAttribute, str, VertexFormat, np.ndarray]]:
        """Attributes as ``interleave()`` input, in layout order."""
        return [(a.semantic, a.name, a.format, self.attribute(i)) for i, a in enumerate(self.attributes)]

    # -- ownership --
    def release_index_data(self) -> Optional[np.ndarray]:
        data = self.index_data
        self.index_data = None
        self._released = True
        return data

    def release_vertex_data(self) -> np.ndarray:
        data = self.vertex_data
        self.vertex_data = np.zeros((0,), dtype=np.uint8)
        self._released = True
        return data

    # -- comparison --
    def __eq__(self, other: object) -> bool:
        # Compares values, not byte layout: two meshes with the same attributes
        # packed differently are equal.
        if not isinstance(other, MeshBuffer):
            return NotImplemented
        if (self.primitive != other.primitive or self.vertex_count != other.vertex_count
                or self.attribute_count != other.attribute_count):
            return False
        if self.is_indexed != other.is_indexed:
            return False
        if self.is_indexed and not np.array_equal(self.indices, other.indices):
            return False
        for i, (a, b) in enumerate(zip(self.attributes, other.attributes)):
            if not a.same_kind(b) or a.format != b.format:
                return False
            if self.attribute(i).tobytes() != other.attribute(i).tobytes():
                return False
        return True

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        attrs = ", ".join(f"{a.label}:{a.format}" for a in self.attributes)
        return (f"MeshBuffer({self.primitive.value}, {self.vertex_count} vertices, "
                f"{self.index_count if self.is_indexed else 'no'} indices, [{attrs}])")
