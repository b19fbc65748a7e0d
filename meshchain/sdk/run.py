from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from ..config import ConversionConfig, load_config
from ..config.schema import ConverterConfig
from ..runtime.builders import build_importer, build_pipeline


@dataclass(frozen=True)
class ConversionResult:
    """Summary of a conversion driven by a configuration file."""

    output_path: Path
    stats: Dict[str, Any]
    config: ConversionConfig


def convert_from_config(
    config: Union[str, Path, ConversionConfig],
    *,
    output: Optional[Path] = None,
    converters: Optional[Sequence[str]] = None,
) -> ConversionResult:
    """Run a conversion described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~meshchain.config.schema.ConversionConfig`.
    output:
        Optional override for the output file. With the default converter the
        extension picks the format (``.ply``, ``.npz``, ``.obj``, ...).
    converters:
        Optional converter names replacing the configured chain. Options of
        the configured converters are dropped when this is given.

    Returns
    -------
    ConversionResult
        The resolved output path, statistics of the run (vertex counts, hops,
        timings) and the resolved configuration object.
    """

    cfg = load_config(config) if not isinstance(config, ConversionConfig) else config.model_copy(deep=True)

    if converters is not None:
        cfg.converters = [ConverterConfig(name=name) for name in converters]
    if output is not None:
        cfg.output.path = Path(output).resolve()
    else:
        cfg.output.path = Path(cfg.output.path).resolve()

    importer = build_importer(cfg)
    try:
        stats = build_pipeline(cfg, importer=importer).run(cfg.output.path)
    finally:
        importer.close()

    return ConversionResult(output_path=Path(cfg.output.path), stats=stats, config=cfg)
