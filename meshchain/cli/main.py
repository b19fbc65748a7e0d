from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from ..config import load_config
from ..config.schema import ConverterConfig
from ..core.chain import DEFAULT_CONVERTER
from ..core.converters import default_converter_registry
from ..core.errors import (
    AttributeIndexOutOfRangeError,
    BackendUnavailableError,
    CapabilityMismatchError,
    ConversionFailedError,
    ConversionToFileFailedError,
    InvalidAttributeSelectionError,
    MeshChainError,
    MeshImportError,
    SourceUnavailableError,
)
from ..core.importer import DEFAULT_IMPORTER, default_importer_registry
from ..core.info import describe_importer
from ..core.pipeline import Pipeline, PipelineConfig
from ..core.utils import get_logger, parse_options
from ..runtime.builders import build_importer, build_pipeline, open_importer

app = typer.Typer(help="meshchain mesh conversion utilities")

_log = get_logger()


def _configure_logging(level: str, verbose: bool = False) -> None:
    numeric = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("meshchain").setLevel(numeric)


def _exit_code(exc: MeshChainError, whole_file: bool) -> int:
    if isinstance(exc, BackendUnavailableError):
        return 1 if exc.kind == "importer" else 2
    if isinstance(exc, MeshImportError):
        return 1 if whole_file else 4
    if isinstance(exc, SourceUnavailableError):
        return 3
    if isinstance(exc, (AttributeIndexOutOfRangeError, InvalidAttributeSelectionError)):
        return 2
    if isinstance(exc, ConversionToFileFailedError):
        return 5
    if isinstance(exc, CapabilityMismatchError):
        return 6
    if isinstance(exc, ConversionFailedError):
        return 7
    return 1


def _fail(exc: MeshChainError, whole_file: bool = False) -> typer.Exit:
    _log.error("%s", exc)
    return typer.Exit(code=_exit_code(exc, whole_file))


def _parse_option_list(values: Optional[List[str]], param_hint: str) -> List[dict]:
    parsed = []
    for value in values or []:
        try:
            parsed.append(parse_options(value))
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint=param_hint)
    return parsed


def _report(stats: dict) -> None:
    typer.echo(
        f"Converted {stats['vertices']} vertices with {' -> '.join(stats['hops'])} → {stats['output']}"
    )


@app.command("convert")
def convert(
    input_file: Path = typer.Argument(..., metavar="INPUT", help="Input file."),
    output_file: Optional[Path] = typer.Argument(None, metavar="[OUTPUT]", help="Output file (not needed with --info)."),
    importer: str = typer.Option(DEFAULT_IMPORTER, "--importer", "-I", help="Importer plugin."),
    converter: Optional[List[str]] = typer.Option(None, "--converter", "-C", help="Converter plugin, repeat to chain."),
    importer_options: Optional[str] = typer.Option(None, "--importer-options", "-i", help="Importer options, key=val,key2."),
    converter_options: Optional[List[str]] = typer.Option(None, "--converter-options", "-c", help="Options for the converter at the same position."),
    only_attributes: Optional[str] = typer.Option(None, "--only-attributes", help="Keep only these attribute ids, e.g. 0,2-3."),
    remove_duplicates: bool = typer.Option(False, "--remove-duplicates", help="Remove exactly duplicated vertices."),
    remove_duplicates_fuzzy: Optional[float] = typer.Option(None, "--remove-duplicates-fuzzy", help="Remove vertices within this tolerance."),
    mesh: int = typer.Option(0, "--mesh", help="Mesh to import."),
    level: int = typer.Option(0, "--level", help="Mesh level to import."),
    concatenate_meshes: bool = typer.Option(False, "--concatenate-meshes", help="Flatten the scene and concatenate all meshes."),
    info: bool = typer.Option(False, "--info", help="Print meshes, scenes and objects and exit."),
    info_meshes: bool = typer.Option(False, "--info-meshes", help="Print mesh info and exit."),
    info_scenes: bool = typer.Option(False, "--info-scenes", help="Print scene info and exit."),
    info_objects: bool = typer.Option(False, "--info-objects", help="Print object info and exit."),
    bounds: bool = typer.Option(False, "--bounds", help="Include position bounds in mesh info."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
    profile: bool = typer.Option(False, "--profile", help="Report import and conversion times."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Convert a mesh, optionally through a chain of converters."""

    _configure_logging(log_level, verbose)
    if remove_duplicates_fuzzy is not None and remove_duplicates_fuzzy < 0:
        raise typer.BadParameter("tolerance must be non-negative", param_hint="--remove-duplicates-fuzzy")
    listing = info or info_meshes or info_scenes or info_objects
    if listing and output_file is not None:
        _log.warning("Ignoring output file for --info")
    if not listing and output_file is None:
        raise typer.BadParameter("an output file is required", param_hint="OUTPUT")

    importer_opts = _parse_option_list([importer_options] if importer_options else None, "--importer-options")
    converter_opts = _parse_option_list(converter_options, "--converter-options")

    try:
        opened = open_importer(importer, input_file, importer_opts[0] if importer_opts else None, verbose)
    except MeshChainError as exc:
        raise _fail(exc)

    try:
        if listing:
            lines, ok = describe_importer(
                opened,
                meshes=info or info_meshes,
                scenes=info or info_scenes,
                objects=info or info_objects,
                bounds=bounds,
            )
            for line in lines:
                typer.echo(line)
            if not ok:
                raise typer.Exit(code=1)
            return

        cfg = PipelineConfig(
            mesh=mesh,
            level=level,
            concatenate_meshes=concatenate_meshes,
            only_attributes=only_attributes,
            remove_duplicates=remove_duplicates,
            remove_duplicates_fuzzy=remove_duplicates_fuzzy,
            converters=list(converter or []),
            converter_options=converter_opts,
            default_converter=DEFAULT_CONVERTER,
            verbose=verbose,
            profile=profile,
        )
        pipeline = Pipeline(opened, default_converter_registry(), cfg)
        try:
            stats = pipeline.run(output_file)
        except MeshChainError as exc:
            raise _fail(exc, whole_file=concatenate_meshes or not opened.mesh_count())
        except ValueError as exc:
            # malformed scene hierarchy or vertex data
            _log.error("%s", exc)
            raise typer.Exit(code=1)
        _report(stats)
    finally:
        opened.close()


@app.command("run")
def run(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path."),
    converter: Optional[List[str]] = typer.Option(None, "--converter", "-C", help="Override the converter chain."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a conversion specified by a YAML config."""

    _configure_logging(log_level)
    cfg = load_config(config)
    _configure_logging(log_level, cfg.verbose)
    if output is not None:
        cfg.output.path = output.resolve()
    if converter:
        cfg.converters = [ConverterConfig(name=name) for name in converter]

    try:
        importer = build_importer(cfg)
    except MeshChainError as exc:
        raise _fail(exc)
    try:
        stats = build_pipeline(cfg, importer=importer).run(cfg.output.path)
    except MeshChainError as exc:
        raise _fail(exc, whole_file=cfg.concatenate_meshes or not importer.mesh_count())
    except ValueError as exc:
        _log.error("%s", exc)
        raise typer.Exit(code=1)
    finally:
        importer.close()
    _report(stats)


@app.command("plugins")
def plugins() -> None:
    """List known importer and converter plugins."""

    typer.echo("Importers:")
    for name in default_importer_registry().known_names():
        typer.echo(f"  {name}")
    typer.echo("Converters:")
    for name in default_converter_registry().known_names():
        typer.echo(f"  {name}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
