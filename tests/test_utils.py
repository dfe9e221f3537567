import logging

import numpy as np
import pytest
import torch

from polymeshopt.utils import TunableParameter, ensure_numpy, ensure_tensor, get_logger, resolve_device


def test_tunable_parameter_coercion_and_clamping():
    param = TunableParameter(1.0, dtype="float", min_value=0.0, max_value=2.0)
    param.update("3.5")
    assert param.value == 2.0
    count = TunableParameter(5, dtype="int", min_value=1)
    count.update(-4)
    assert count.value == 1
    count.update(7.9)
    assert count.value == 7 and isinstance(count.value, int)


def test_tunable_parameter_rejects_non_numeric_dtype():
    with pytest.raises(ValueError):
        TunableParameter("vertex", dtype="choice")


def test_logger_is_configured_once():
    logger = get_logger("polymeshopt.test")
    again = get_logger("polymeshopt.test")
    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO


def test_tensor_roundtrip_helpers():
    device = resolve_device("cpu")
    tensor = ensure_tensor([1.0, 2.0], device=device, dtype=torch.double)
    assert tensor.dtype == torch.double
    assert np.allclose(ensure_numpy(tensor), [1.0, 2.0])
