"""
Scoring of inferred beliefs against a sampled ground truth.
"""

from __future__ import annotations

from typing import Any, Sequence

import torch

from nmphmm.generative import Trajectory
from nmphmm.model import DTYPE, HMMModel


def true_state_probability(
    beliefs: Sequence[torch.Tensor],
    states: torch.Tensor,
) -> torch.Tensor:
    """
    Mean posterior probability of the true state, per factor.

    Args:
        beliefs: One (Ns[f], T) belief sequence per factor.
        states: (F, T) true state indices.

    Returns:
        Tensor of shape (F,).
    """
    scores = []
    for f, q in enumerate(beliefs):
        picked = q.gather(0, states[f].long().unsqueeze(0))
        scores.append(picked.mean())
    return torch.stack(scores)


def uniform_baseline(model: HMMModel) -> torch.Tensor:
    """Probability a uniform belief assigns to any state, per factor."""
    return torch.tensor([1.0 / ns for ns in model.num_states], dtype=DTYPE)


def map_agreement(
    beliefs: Sequence[torch.Tensor],
    states: torch.Tensor,
) -> torch.Tensor:
    """Fraction of time steps where the most probable state is the true one."""
    return torch.stack([
        (q.argmax(dim=0) == states[f]).to(DTYPE).mean()
        for f, q in enumerate(beliefs)
    ])


def summarize(
    model: HMMModel,
    trajectory: Trajectory,
    beliefs: Sequence[torch.Tensor],
) -> dict[str, Any]:
    """
    Per-factor scores as plain Python lists.

    Keys: true_state_probability, uniform_baseline, map_agreement.
    """
    return {
        "true_state_probability": true_state_probability(beliefs, trajectory.states).tolist(),
        "uniform_baseline": uniform_baseline(model).tolist(),
        "map_agreement": map_agreement(beliefs, trajectory.states).tolist(),
    }
