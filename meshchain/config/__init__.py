"""Configuration loading utilities for meshchain."""

from .schema import (
    ConversionConfig,
    load_config,
)

__all__ = ["ConversionConfig", "load_config"]
