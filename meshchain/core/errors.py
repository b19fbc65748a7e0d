"""Exception taxonomy for the conversion pipeline.

Every error is terminal for the run that raised it; nothing in the pipeline
retries. The CLI maps each class to an exit code.
"""
from __future__ import annotations
from typing import Sequence


class MeshChainError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailableError(MeshChainError, RuntimeError):
    """The input could not be opened."""


class MeshImportError(SourceUnavailableError):
    """The input was opened but a mesh or scene could not be imported from it."""


class NoDefaultSceneError(MeshChainError, LookupError):
    """Hierarchy flattening was requested but the source declares no scene."""


class IncompatiblePrimitiveError(MeshChainError, ValueError):
    """Meshes can't be combined because of their primitive topology."""


class AttributeIndexOutOfRangeError(MeshChainError, IndexError):
    def __init__(self, index: int, attribute_count: int) -> None:
        super().__init__(
            f"Attribute index {index} out of range for a mesh with {attribute_count} attributes"
        )
        self.index = index
        self.attribute_count = attribute_count


class InvalidAttributeSelectionError(MeshChainError, ValueError):
    """An attribute selection string such as ``0,2-3`` could not be parsed."""


class MeshReleasedError(MeshChainError, RuntimeError):
    """Storage of a MeshBuffer was accessed after being released to another owner."""


class BackendUnavailableError(MeshChainError, RuntimeError):
    def __init__(self, name: str, known_names: Sequence[str], kind: str = "converter") -> None:
        known = ", ".join(known_names) if known_names else "(none)"
        super().__init__(f"Cannot load {kind} plugin '{name}'. Available {kind} plugins: {known}")
        self.name = name
        self.known_names = list(known_names)
        self.kind = kind


class CapabilityMismatchError(MeshChainError, RuntimeError):
    def __init__(self, name: str, features: object, required: object) -> None:
        super().__init__(f"{name} doesn't support {required}, only {features}")
        self.name = name
        self.features = features
        self.required = required


class ConversionFailedError(MeshChainError, RuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name} cannot convert the mesh")
        self.name = name


class ConversionToFileFailedError(MeshChainError, RuntimeError):
    def __init__(self, name: str, destination: object) -> None:
        super().__init__(f"{name} cannot save file {destination}")
        self.name = name
        self.destination = destination
