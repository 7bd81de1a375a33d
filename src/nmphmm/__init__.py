"""
nmphmm: neuronal message passing on factorial hidden Markov models.

This package samples synthetic trajectories from a discrete hidden Markov
model with several state factors and observation modalities, and recovers
beliefs about the hidden states with gradient-damped variational message
passing (VMP) and belief propagation (BP).
"""

from nmphmm.bp import BPResult, run_bp
from nmphmm.config import InferenceConfig
from nmphmm.errors import ConfigurationError, NMPError, SamplingError, ShapeError
from nmphmm.generative import (
    Trajectory,
    generate,
    load_trajectory,
    sample_categorical,
    save_trajectory,
)
from nmphmm.model import (
    HMMModel,
    Modality,
    StateFactor,
    build_model,
    example_model,
    load_model,
    save_model,
)
from nmphmm.numerics import contract, contract_except, stable_log
from nmphmm.vmp import VMPResult, run_vmp

__version__ = "0.1.0"
__all__ = [
    "BPResult",
    "ConfigurationError",
    "HMMModel",
    "InferenceConfig",
    "Modality",
    "NMPError",
    "SamplingError",
    "ShapeError",
    "StateFactor",
    "Trajectory",
    "VMPResult",
    "build_model",
    "contract",
    "contract_except",
    "example_model",
    "generate",
    "load_model",
    "load_trajectory",
    "run_bp",
    "run_vmp",
    "sample_categorical",
    "save_model",
    "save_trajectory",
    "stable_log",
]
