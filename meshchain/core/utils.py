from __future__ import annotations
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import numpy as np


def get_logger(name: str = "meshchain") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def ensure_unit_vectors(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norms = np.linalg.norm(v, axis=1, keepdims=True)
    norms = np.clip(norms, eps, None)
    return v / norms


class Timings:
    """Accumulates wall-clock seconds per named stage (``import``, ``conversion``)."""

    def __init__(self) -> None:
        self.seconds: Dict[str, float] = {}

    @contextmanager
    def measure(self, key: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.seconds[key] = self.seconds.get(key, 0.0) + (time.perf_counter() - start)

    def get(self, key: str) -> float:
        return self.seconds.get(key, 0.0)


def _option_value(text: str) -> Any:
    lowered = text.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            pass
    return text


def parse_options(text: Optional[str]) -> Dict[str, Any]:
    """``"a=1,b,group/c=x"`` -> ``{"a": 1, "b": True, "group": {"c": "x"}}``."""
    out: Dict[str, Any] = {}
    if not text:
        return out
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        key, sep, value = token.partition("=")
        path = [p for p in key.strip().split("/") if p]
        if not path:
            raise ValueError(f"Invalid option '{token}'")
        target = out
        for group in path[:-1]:
            sub = target.setdefault(group, {})
            if not isinstance(sub, dict):
                raise ValueError(f"Option '{group}' is both a value and a group")
            target = sub
        target[path[-1]] = _option_value(value.strip()) if sep else True
    return out
