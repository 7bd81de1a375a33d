"""
Generative process: sample hidden-state and observation trajectories.

This module draws a ground-truth trajectory from a model by inverse-CDF
sampling and stores sampled trajectories on disk for later inversion.
"""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Any, NamedTuple

import numpy as np
import torch

from nmphmm.errors import SamplingError
from nmphmm.model import HMMModel

logger = logging.getLogger(__name__)


class Trajectory(NamedTuple):
    """Sampled ground truth.

    states: (num_factors, T) state indices.
    observations: (num_modalities, T) outcome indices.
    """

    states: torch.Tensor
    observations: torch.Tensor


def sample_categorical(probs: torch.Tensor, u: float) -> int:
    """
    Inverse-CDF draw from a categorical distribution.

    Args:
        probs: Probability vector.
        u: Uniform draw in (0, 1].

    Returns:
        Smallest index k with cumsum(probs)[k] >= u.

    Raises:
        SamplingError: If the cumulative mass never reaches u.
    """
    hits = torch.nonzero(torch.cumsum(probs, dim=0) >= u)
    if hits.numel() == 0:
        raise SamplingError(
            f"cumulative mass {probs.sum().item():.6g} never reaches draw {u:.6g}"
        )
    return int(hits[0, 0])


def _uniform(rng: np.random.Generator) -> float:
    """Uniform draw in (0, 1]."""
    return 1.0 - rng.random()


def _as_generator(rng: np.random.Generator | int | None) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def generate(
    model: HMMModel,
    rng: np.random.Generator | int | None = None,
) -> Trajectory:
    """
    Sample a state trajectory and the observations it emits.

    Args:
        model: Generative model.
        rng: numpy Generator, integer seed, or None for fresh entropy.

    Returns:
        Trajectory with states of shape (F, T) and observations of shape (G, T).

    Raises:
        SamplingError: If a table was not a valid distribution.
    """
    rng = _as_generator(rng)
    T = model.num_steps

    states = torch.zeros(model.num_factors, T, dtype=torch.long)
    for f, factor in enumerate(model.factors):
        states[f, 0] = sample_categorical(factor.prior, _uniform(rng))
        for t in range(1, T):
            column = factor.transitions[:, states[f, t - 1]]
            states[f, t] = sample_categorical(column, _uniform(rng))

    observations = torch.zeros(model.num_modalities, T, dtype=torch.long)
    for t in range(T):
        index = (slice(None),) + tuple(states[:, t].tolist())
        for g, modality in enumerate(model.modalities):
            observations[g, t] = sample_categorical(modality.likelihood[index], _uniform(rng))

    logger.debug("Sampled %d steps for %d factors and %d modalities",
                 T, model.num_factors, model.num_modalities)
    return Trajectory(states=states, observations=observations)


def save_trajectory(
    trajectory: Trajectory,
    output_path: pathlib.Path,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Save a trajectory to disk in npz format.

    Args:
        trajectory: Sampled states and observations.
        output_path: Path to save the trajectory (.npz file).
        metadata: Optional metadata dictionary to save alongside the data.
    """
    save_dict = {
        "states": trajectory.states.numpy(),
        "observations": trajectory.observations.numpy(),
    }
    if metadata is not None:
        save_dict["metadata"] = np.array([json.dumps(metadata)])

    np.savez_compressed(output_path, **save_dict)


def load_trajectory(
    input_path: pathlib.Path,
) -> tuple[Trajectory, dict[str, Any] | None]:
    """
    Load a trajectory saved with save_trajectory.

    Returns:
        Tuple of (trajectory, metadata), metadata being None when absent.
    """
    with np.load(input_path) as data:
        trajectory = Trajectory(
            states=torch.from_numpy(data["states"]).long(),
            observations=torch.from_numpy(data["observations"]).long(),
        )

        metadata = None
        if "metadata" in data:
            metadata = json.loads(str(data["metadata"][0]))

    return trajectory, metadata
