from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from meshchain.core.chain import (
    ConverterChain,
    PluginRegistry,
    SceneConverter,
    SceneConverterFeature,
    build_hops,
)
from meshchain.core.errors import (
    BackendUnavailableError,
    CapabilityMismatchError,
    ConversionFailedError,
    ConversionToFileFailedError,
)
from meshchain.core.mesh import MeshAttribute, MeshBuffer, MeshPrimitive

F = SceneConverterFeature


def _mesh() -> MeshBuffer:
    return MeshBuffer.from_arrays(MeshPrimitive.POINTS, [(MeshAttribute.POSITION, np.zeros((2, 3), dtype=np.float32))])


class _Recorder:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.options: dict = {}


def _converter(log: _Recorder, name: str, features: SceneConverterFeature,
               convert_ok: bool = True, file_ok: bool = True) -> type:
    class Fake(SceneConverter):
        def convert(self, mesh: MeshBuffer) -> Optional[MeshBuffer]:
            log.calls.append(f"{name}.convert")
            log.options[name] = dict(self.configuration)
            return mesh if convert_ok else None

        def convert_to_file(self, mesh: MeshBuffer, destination) -> bool:
            log.calls.append(f"{name}.file")
            log.options[name] = dict(self.configuration)
            return file_ok

    Fake.name = name
    Fake.features = features
    return Fake


def _registry(log: _Recorder, **overrides) -> PluginRegistry[SceneConverter]:
    registry: PluginRegistry[SceneConverter] = PluginRegistry("converter")
    specs = {
        "Default": dict(features=F.CONVERT_MESH_TO_FILE),
        "X": dict(features=F.CONVERT_MESH),
        "Y": dict(features=F.CONVERT_MESH | F.CONVERT_MESH_TO_FILE),
        "A": dict(features=F.CONVERT_MESH_TO_FILE),
        "B": dict(features=F.CONVERT_MESH),
    }
    for name, kwargs in specs.items():
        kwargs.update(overrides.get(name, {}))
        registry.register(name, _converter(log, name, **kwargs))
    return registry


def test_last_requested_converter_writes_the_file() -> None:
    log = _Recorder()
    result = ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["X", "Y"])
    assert log.calls == ["X.convert", "Y.file"]
    assert result.terminal == "Y"
    assert result.hops == ["X", "Y"]
    assert result.output == Path("out.x")


def test_default_converter_writes_when_last_requested_cannot() -> None:
    log = _Recorder()
    result = ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["X"])
    assert log.calls == ["X.convert", "Default.file"]
    assert result.terminal == "Default"


def test_no_requested_converters_uses_default_with_options() -> None:
    log = _Recorder()
    ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", [], [{"level": 9}])
    assert log.calls == ["Default.file"]
    assert log.options["Default"] == {"level": 9}


def test_intermediate_file_only_converter_is_a_capability_mismatch() -> None:
    log = _Recorder()
    with pytest.raises(CapabilityMismatchError) as info:
        ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["A", "B"])
    assert info.value.name == "A"
    assert log.calls == []


def test_file_capable_intermediate_converter_converts_in_memory() -> None:
    log = _Recorder()
    ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["Y", "X"])
    assert log.calls == ["Y.convert", "X.convert", "Default.file"]


def test_options_apply_positionally() -> None:
    log = _Recorder()
    ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["X", "Y"], [{"a": 1}, {"b": True}])
    assert log.options == {"X": {"a": 1}, "Y": {"b": True}}


def test_unknown_converter_lists_known_names() -> None:
    log = _Recorder()
    with pytest.raises(BackendUnavailableError) as info:
        ConverterChain(_registry(log), default="Default").run(_mesh(), "out.x", ["Nope"])
    assert info.value.known_names == ["A", "B", "Default", "X", "Y"]
    assert "Nope" in str(info.value)


def test_conversion_failures_are_reported() -> None:
    log = _Recorder()
    with pytest.raises(ConversionFailedError):
        ConverterChain(_registry(log, X={"convert_ok": False}), default="Default").run(_mesh(), "o", ["X"])
    with pytest.raises(ConversionToFileFailedError):
        ConverterChain(_registry(log, Default={"file_ok": False}), default="Default").run(_mesh(), "o")


def test_default_without_file_capability_fails() -> None:
    log = _Recorder()
    with pytest.raises(CapabilityMismatchError) as info:
        ConverterChain(_registry(log), default="X").run(_mesh(), "o")
    assert info.value.required == F.CONVERT_MESH_TO_FILE


def test_build_hops_marks_default() -> None:
    hops = build_hops(["X"], [{}, {"k": 1}], default="D")
    assert [(h.name, h.is_default) for h in hops] == [("X", False), ("D", True)]
    assert hops[1].options == {"k": 1}


def test_registry_aliases_and_failing_factories() -> None:
    registry: PluginRegistry[SceneConverter] = PluginRegistry("converter")

    def broken() -> SceneConverter:
        raise RuntimeError("missing dependency")

    registry.register("Broken", broken, aliases=("Alias",))
    assert registry.resolve("Alias") == "Broken"
    assert registry.instantiate("Alias") is None
    assert registry.known_names() == ["Alias", "Broken"]
