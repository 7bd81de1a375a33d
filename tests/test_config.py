"""Tests for InferenceConfig."""

import pytest

from nmphmm.config import InferenceConfig
from nmphmm.errors import ConfigurationError


def test_defaults():
    config = InferenceConfig()
    assert config.tau == 4.0
    assert config.num_iterations == 16
    assert config.record_trace is True
    assert config.expected_log_transitions is False


@pytest.mark.parametrize("tau", [0.0, -1.0, float("nan")])
def test_invalid_tau(tau):
    with pytest.raises(ConfigurationError):
        InferenceConfig(tau=tau)


@pytest.mark.parametrize("num_iterations", [0, -2, 1.5])
def test_invalid_iterations(num_iterations):
    with pytest.raises(ConfigurationError):
        InferenceConfig(num_iterations=num_iterations)


def test_frozen():
    config = InferenceConfig()
    with pytest.raises(AttributeError):
        config.tau = 2.0
