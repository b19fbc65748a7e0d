from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from ..config import ConversionConfig
from ..core.chain import PluginRegistry, SceneConverter
from ..core.converters import default_converter_registry
from ..core.errors import BackendUnavailableError, SourceUnavailableError
from ..core.importer import Importer, default_importer_registry
from ..core.pipeline import Pipeline, PipelineConfig


def open_importer(
    name: str,
    path: Path,
    options: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
    registry: Optional[PluginRegistry[Importer]] = None,
) -> Importer:
    registry = registry or default_importer_registry()
    importer = registry.instantiate(name)
    if importer is None:
        raise BackendUnavailableError(name, registry.known_names(), kind="importer")
    importer.verbose = verbose
    if options:
        importer.configure(options)
    if not importer.open(path):
        raise SourceUnavailableError(f"Cannot open file {path}")
    return importer


def build_importer(cfg: ConversionConfig) -> Importer:
    return open_importer(cfg.input.importer, cfg.input.path, cfg.input.options, cfg.verbose)


def build_pipeline_config(cfg: ConversionConfig) -> PipelineConfig:
    # Output options configure the trailing default converter, which sits
    # right after the requested ones
    converter_options = [dict(c.options) for c in cfg.converters]
    if cfg.output.options:
        converter_options.append(dict(cfg.output.options))
    return PipelineConfig(
        mesh=cfg.mesh,
        level=cfg.level,
        concatenate_meshes=cfg.concatenate_meshes,
        only_attributes=cfg.only_attributes,
        remove_duplicates=cfg.remove_duplicates,
        remove_duplicates_fuzzy=cfg.remove_duplicates_fuzzy,
        converters=[c.name for c in cfg.converters],
        converter_options=converter_options,
        default_converter=cfg.output.converter,
        verbose=cfg.verbose,
        profile=cfg.profile,
    )


def build_pipeline(
    cfg: ConversionConfig,
    importer: Optional[Importer] = None,
    converters: Optional[PluginRegistry[SceneConverter]] = None,
) -> Pipeline:
    return Pipeline(
        importer if importer is not None else build_importer(cfg),
        converters if converters is not None else default_converter_registry(),
        build_pipeline_config(cfg),
    )
