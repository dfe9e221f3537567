"""Logging, device and parameter helpers shared by the solvers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import torch


def get_logger(name: str = "polymeshopt") -> logging.Logger:
    """Return a package logger configured with a stream handler."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
        logger.setLevel(logging.INFO)
    return logger


def resolve_device(device: Optional[str] = None) -> torch.device:
    """Return a valid :class:`torch.device`, preferring CUDA when none is given."""
    if device is None:
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    return torch.device(device)


@dataclass
class TunableParameter:
    """Numeric solver or problem setting, clamped to ``[min_value, max_value]``."""

    value: Union[int, float]
    dtype: str = "float"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.dtype not in ("float", "int"):
            raise ValueError(f"Unsupported parameter dtype {self.dtype!r}; expected 'float' or 'int'")

    def update(self, new_value: Union[int, float, str]) -> None:
        coerced = int(new_value) if self.dtype == "int" else float(new_value)
        if self.min_value is not None:
            coerced = max(self.min_value, coerced)
        if self.max_value is not None:
            coerced = min(self.max_value, coerced)
        self.value = coerced


def ensure_numpy(array: Union[torch.Tensor, np.ndarray]) -> np.ndarray:
    """Return a NumPy array for a tensor or array."""
    if isinstance(array, torch.Tensor):
        array = array.detach().cpu().numpy()
    return np.asarray(array)


def ensure_tensor(array, *, device: Optional[torch.device] = None, dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    """Return a tensor on the desired device and dtype."""
    tensor = torch.as_tensor(array)
    if dtype is not None:
        tensor = tensor.to(dtype=dtype)
    if device is not None:
        tensor = tensor.to(device=device)
    return tensor
