from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.chain import DEFAULT_CONVERTER
from ..core.importer import DEFAULT_IMPORTER


class InputConfig(BaseModel):
    path: Path
    importer: str = DEFAULT_IMPORTER
    options: Dict[str, Any] = Field(default_factory=dict)


class ConverterConfig(BaseModel):
    name: str
    options: Dict[str, Any] = Field(default_factory=dict)


class OutputConfig(BaseModel):
    path: Path
    converter: str = DEFAULT_CONVERTER
    options: Dict[str, Any] = Field(default_factory=dict)


class ConversionConfig(BaseModel):
    input: InputConfig
    mesh: int = 0
    level: int = 0
    concatenate_meshes: bool = False
    only_attributes: Optional[Union[str, List[int]]] = None
    remove_duplicates: bool = False
    remove_duplicates_fuzzy: Optional[float] = None
    converters: List[ConverterConfig] = Field(default_factory=list)
    output: OutputConfig
    verbose: bool = False
    profile: bool = False

    @field_validator("converters", mode="before")
    @classmethod
    def _names_as_converters(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": v} if isinstance(v, str) else v for v in value]
        return value

    @model_validator(mode="after")
    def _validate(self) -> "ConversionConfig":
        if self.remove_duplicates_fuzzy is not None and self.remove_duplicates_fuzzy < 0:
            raise ValueError("remove_duplicates_fuzzy must be non-negative")
        if self.mesh < 0 or self.level < 0:
            raise ValueError("mesh and level must be non-negative")
        if isinstance(self.only_attributes, list) and any(i < 0 for i in self.only_attributes):
            raise ValueError("only_attributes ids must be non-negative")
        return self


def load_config(path: str | Path) -> ConversionConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = ConversionConfig.model_validate(data)
    if not cfg.output.path.is_absolute():
        cfg.output.path = (path.parent / cfg.output.path).resolve()
    if not cfg.input.path.is_absolute():
        cfg.input.path = (path.parent / cfg.input.path).resolve()
    return cfg
