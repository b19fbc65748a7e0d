"""Programmatic entry points for meshchain."""

from .run import ConversionResult, convert_from_config

__all__ = ["ConversionResult", "convert_from_config"]
