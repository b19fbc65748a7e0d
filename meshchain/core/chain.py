from __future__ import annotations
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar, Union

from .errors import (
    BackendUnavailableError,
    CapabilityMismatchError,
    ConversionFailedError,
    ConversionToFileFailedError,
)
from .mesh import MeshBuffer
from .utils import Timings, get_logger

_log = get_logger()

DEFAULT_CONVERTER = "AnySceneConverter"


class SceneConverterFeature(enum.Flag):
    NONE = 0
    CONVERT_MESH = enum.auto()
    CONVERT_MESH_TO_FILE = enum.auto()

    def __str__(self) -> str:
        if not self:
            return "nothing"
        return "|".join(f.name for f in SceneConverterFeature if f and f in self)


class SceneConverter:
    """Converter backend plug-in API.

    Subclasses declare ``features`` and implement the matching operations.
    ``convert`` returns None and ``convert_to_file`` returns False on failure;
    the chain turns those into errors.
    """
    name: str = "base"
    features: SceneConverterFeature = SceneConverterFeature.NONE

    def __init__(self) -> None:
        self.configuration: Dict[str, Any] = {}
        self.verbose = False

    def configure(self, options: Dict[str, Any]) -> None:
        self.configuration.update(options)

    def convert(self, mesh: MeshBuffer) -> Optional[MeshBuffer]:  # pragma: no cover - abstract
        raise NotImplementedError

    def convert_to_file(self, mesh: MeshBuffer, destination: Union[str, Path]) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError


T = TypeVar("T")


class PluginRegistry(Generic[T]):
    """Name -> factory map with aliases.

    ``instantiate`` returns None for unknown names or factories that fail,
    leaving the reporting to the caller.
    """

    def __init__(self, kind: str = "converter") -> None:
        self.kind = kind
        self._factories: Dict[str, Callable[[], T]] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, name: str, factory: Callable[[], T], aliases: Sequence[str] = ()) -> None:
        self._factories[name] = factory
        for alias in aliases:
            self._aliases[alias] = name

    def resolve(self, name: str) -> Optional[str]:
        if name in self._factories:
            return name
        return self._aliases.get(name)

    def instantiate(self, name: str) -> Optional[T]:
        resolved = self.resolve(name)
        if resolved is None:
            return None
        try:
            return self._factories[resolved]()
        except Exception as exc:
            _log.error("Cannot instantiate %s plugin %s: %s", self.kind, name, exc)
            return None

    def known_names(self) -> List[str]:
        return sorted(set(self._factories) | set(self._aliases))


@dataclass(frozen=True)
class Hop:
    index: int
    name: str
    options: Dict[str, Any] = field(default_factory=dict)
    is_default: bool = False


@dataclass
class ChainResult:
    output: Path
    hops: List[str]
    terminal: str


def build_hops(
    requested: Sequence[str],
    options: Sequence[Dict[str, Any]] = (),
    default: str = DEFAULT_CONVERTER,
) -> List[Hop]:
    """``requested + [default]``.

    Options apply positionally, so with no requested converters the first
    options group configures the default one.
    """
    names = list(requested) + [default]
    hops = [Hop(i, name, dict(options[i]) if i < len(options) else {}) for i, name in enumerate(names)]
    hops[-1] = Hop(hops[-1].index, default, hops[-1].options, is_default=True)
    return hops


def is_terminal(hop: Hop, requested_count: int, features: SceneConverterFeature) -> bool:
    """Only the last requested hop or the implicit default may write the file."""
    return hop.index + 1 >= requested_count and SceneConverterFeature.CONVERT_MESH_TO_FILE in features


class ConverterChain:
    """Feeds a mesh through converter backends and writes the result exactly once.

    Each hop but the terminal one has to support in-memory conversion; its
    output becomes the next hop's input. The last requested converter writes
    the file itself if it can, otherwise the default converter is appended to
    do it.
    """

    def __init__(
        self,
        registry: PluginRegistry[SceneConverter],
        default: str = DEFAULT_CONVERTER,
        verbose: bool = False,
        timings: Optional[Timings] = None,
    ) -> None:
        self.registry = registry
        self.default = default
        self.verbose = verbose
        self.timings = timings or Timings()

    def run(
        self,
        mesh: MeshBuffer,
        destination: Union[str, Path],
        requested: Sequence[str] = (),
        options: Sequence[Dict[str, Any]] = (),
    ) -> ChainResult:
        hops = build_hops(requested, options, self.default)
        count = len(requested)
        used: List[str] = []

        for hop in hops:
            converter = self.registry.instantiate(hop.name)
            if converter is None:
                raise BackendUnavailableError(hop.name, self.registry.known_names())
            converter.verbose = self.verbose
            if hop.options:
                converter.configure(hop.options)
            used.append(hop.name)
            features = converter.features

            if is_terminal(hop, count, features):
                if count > 1:
                    self._progress("Saving output (%d/%d) with %s...", hop, count)
                with self.timings.measure("conversion"):
                    ok = converter.convert_to_file(mesh, destination)
                if not ok:
                    raise ConversionToFileFailedError(hop.name, destination)
                return ChainResult(Path(destination), used, hop.name)

            if hop.is_default:
                # Default backend without file output: misconfigured backend set
                raise CapabilityMismatchError(hop.name, features, SceneConverterFeature.CONVERT_MESH_TO_FILE)

            if count > 1:
                self._progress("Processing (%d/%d) with %s...", hop, count)
            if SceneConverterFeature.CONVERT_MESH not in features:
                raise CapabilityMismatchError(hop.name, features, SceneConverterFeature.CONVERT_MESH)

            with self.timings.measure("conversion"):
                converted = converter.convert(mesh)
            if converted is None:
                raise ConversionFailedError(hop.name)
            mesh = converted

        raise AssertionError("Converter chain ended without a terminal hop")  # pragma: no cover

    def _progress(self, message: str, hop: Hop, count: int) -> None:
        if self.verbose:
            _log.info(message, hop.index + 1, count, hop.name)
