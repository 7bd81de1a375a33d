"""
Factorial hidden Markov model specification.

A model is a list of hidden-state factors, each with its own transition
matrix and initial-state prior, plus a list of observation modalities, each
with a likelihood tensor over all factors jointly:

    A[g][o, s_0, ..., s_{F-1}] = p(o_g = o | s_0, ..., s_{F-1})
    B[f][s', s]                = p(s_f(t+1) = s' | s_f(t) = s)
    D[f][s]                    = p(s_f(0) = s)
"""

from __future__ import annotations

import pathlib
import zipfile
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import torch

from nmphmm.errors import ConfigurationError, ShapeError

DTYPE = torch.float64


@dataclass(frozen=True)
class StateFactor:
    """One categorical hidden-state factor."""

    transitions: torch.Tensor
    prior: torch.Tensor
    name: Optional[str] = None

    @property
    def num_states(self) -> int:
        return self.prior.shape[0]


@dataclass(frozen=True)
class Modality:
    """One categorical observation channel."""

    likelihood: torch.Tensor
    name: Optional[str] = None

    @property
    def num_outcomes(self) -> int:
        return self.likelihood.shape[0]


@dataclass(frozen=True)
class HMMModel:
    """Immutable generative model shared by the sampler and the engines."""

    factors: tuple[StateFactor, ...]
    modalities: tuple[Modality, ...]
    num_steps: int

    @property
    def num_factors(self) -> int:
        return len(self.factors)

    @property
    def num_modalities(self) -> int:
        return len(self.modalities)

    @property
    def num_states(self) -> tuple[int, ...]:
        return tuple(f.num_states for f in self.factors)

    @property
    def num_outcomes(self) -> tuple[int, ...]:
        return tuple(m.num_outcomes for m in self.modalities)

    def check_observations(self, observations) -> torch.Tensor:
        """
        Convert an observation trajectory to a (G, T) long tensor.

        Raises:
            ShapeError: If the shape is not (num_modalities, num_steps), the
                entries are not integers, or an outcome index is out of
                range for its modality.
        """
        try:
            array = np.asarray(observations)
        except ValueError as e:
            raise ShapeError(f"observations are not a rectangular array: {e}") from e
        if array.dtype.kind not in "iu":
            raise ShapeError(f"observations must be integer outcome indices, got dtype {array.dtype}")
        o = torch.as_tensor(array, dtype=torch.long)
        expected = (self.num_modalities, self.num_steps)
        if tuple(o.shape) != expected:
            raise ShapeError(f"observations must have shape {expected}, got {tuple(o.shape)}")
        for g, modality in enumerate(self.modalities):
            if ((o[g] < 0) | (o[g] >= modality.num_outcomes)).any():
                raise ShapeError(
                    f"observations[{g}] has outcomes outside [0, {modality.num_outcomes})"
                )
        return o

    def __repr__(self):
        return (
            f"HMMModel(num_states={self.num_states}, "
            f"num_outcomes={self.num_outcomes}, num_steps={self.num_steps})"
        )


def _as_tensor(value, what: str) -> torch.Tensor:
    try:
        tensor = torch.as_tensor(np.asarray(value, dtype=np.float64), dtype=DTYPE)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{what} is not a numeric array: {e}") from e
    if torch.isnan(tensor).any():
        raise ConfigurationError(f"{what} contains NaN")
    if (tensor < 0).any():
        raise ConfigurationError(f"{what} has negative entries")
    return tensor


def _check_sums_to_one(sums: torch.Tensor, what: str, atol: float) -> None:
    worst = (sums - 1.0).abs().max().item() if sums.numel() else 0.0
    if worst > atol:
        raise ConfigurationError(
            f"{what} must sum to 1 (largest deviation {worst:.3g})"
        )


def build_model(
    A: Sequence,
    B: Sequence,
    D: Sequence,
    T: int,
    atol: float = 1e-9,
) -> HMMModel:
    """
    Validate and assemble a model.

    Args:
        A: One likelihood array per modality, shape (No[g], Ns[0], ..., Ns[F-1]).
        B: One column-stochastic transition matrix per factor, shape (Ns[f], Ns[f]).
        D: One prior vector per factor, shape (Ns[f],).
        T: Number of time steps.
        atol: Tolerance for the sum-to-one checks.

    Returns:
        HMMModel with float64 tensors.

    Raises:
        ConfigurationError: If any table is not a valid distribution along
            its required axis, shapes disagree, or T is not a positive integer.
    """
    if isinstance(T, bool) or not isinstance(T, (int, np.integer)) or T < 1:
        raise ConfigurationError(f"T must be a positive integer, got {T!r}")
    if len(D) == 0:
        raise ConfigurationError("at least one state factor is required")
    if len(B) != len(D):
        raise ConfigurationError(
            f"got {len(B)} transition matrices for {len(D)} priors"
        )
    if len(A) == 0:
        raise ConfigurationError("at least one observation modality is required")

    factors = []
    for f, (b, d) in enumerate(zip(B, D)):
        prior = _as_tensor(d, f"D[{f}]")
        if prior.dim() != 1 or prior.shape[0] == 0:
            raise ConfigurationError(
                f"D[{f}] must be a non-empty vector, got shape {tuple(prior.shape)}"
            )
        _check_sums_to_one(prior.sum().reshape(1), f"D[{f}]", atol)

        ns = prior.shape[0]
        transitions = _as_tensor(b, f"B[{f}]")
        if tuple(transitions.shape) != (ns, ns):
            raise ConfigurationError(
                f"B[{f}] must have shape {(ns, ns)}, got {tuple(transitions.shape)}"
            )
        _check_sums_to_one(transitions.sum(dim=0), f"columns of B[{f}]", atol)
        factors.append(StateFactor(transitions=transitions, prior=prior))

    num_states = tuple(f.num_states for f in factors)
    modalities = []
    for g, a in enumerate(A):
        likelihood = _as_tensor(a, f"A[{g}]")
        if likelihood.dim() != 1 + len(num_states) or tuple(likelihood.shape[1:]) != num_states:
            raise ConfigurationError(
                f"A[{g}] must have shape (No, {', '.join(map(str, num_states))}), "
                f"got {tuple(likelihood.shape)}"
            )
        if likelihood.shape[0] == 0:
            raise ConfigurationError(f"A[{g}] has no outcomes")
        _check_sums_to_one(likelihood.sum(dim=0), f"outcome slices of A[{g}]", atol)
        modalities.append(Modality(likelihood=likelihood))

    return HMMModel(factors=tuple(factors), modalities=tuple(modalities), num_steps=int(T))


def example_model(num_steps: int = 15) -> HMMModel:
    """
    Two factors with three states each, observed through two modalities.

    The first modality reports the first factor's state exactly; the second
    only tells whether the first factor is in state 0. The second factor is
    never observed directly.
    """
    identity = np.eye(3)
    coarse = np.array([[1.0, 0.0, 0.0],
                       [0.0, 1.0, 1.0]])
    # Outcome axis first, then factor 0, then factor 1
    A = [
        np.repeat(identity[:, :, None], 3, axis=2),
        np.repeat(coarse[:, :, None], 3, axis=2),
    ]
    transitions = np.array([[0.3, 1.0, 0.5],
                            [0.0, 0.0, 0.5],
                            [0.7, 0.0, 0.0]])
    B = [transitions, transitions.copy()]
    D = [np.array([0.0, 0.0, 1.0]), np.array([1.0, 0.0, 0.0])]
    return build_model(A, B, D, num_steps)


def save_model(model: HMMModel, output_path: pathlib.Path) -> None:
    """
    Save a model to disk in npz format.

    Arrays are stored as A0.., B0.., D0.. alongside num_steps.
    """
    save_dict = {"num_steps": np.array(model.num_steps)}
    for f, factor in enumerate(model.factors):
        save_dict[f"B{f}"] = factor.transitions.numpy()
        save_dict[f"D{f}"] = factor.prior.numpy()
    for g, modality in enumerate(model.modalities):
        save_dict[f"A{g}"] = modality.likelihood.numpy()
    np.savez_compressed(output_path, **save_dict)


def load_model(input_path: pathlib.Path, atol: float = 1e-9) -> HMMModel:
    """
    Load and re-validate a model saved with save_model.

    Raises:
        ConfigurationError: If the file is not an npz archive, lacks required
            arrays, or the stored tables are invalid.
    """
    try:
        data = np.load(input_path)
    except (ValueError, EOFError, zipfile.BadZipFile) as e:
        raise ConfigurationError(f"{input_path} is not a model archive: {e}") from e
    if not isinstance(data, np.lib.npyio.NpzFile):
        raise ConfigurationError(f"{input_path} holds a single array, not a model archive")
    with data:
        arrays = {key: data[key] for key in data.files}
    if "num_steps" not in arrays:
        raise ConfigurationError(f"{input_path} has no num_steps entry")

    def collect(prefix: str) -> list[np.ndarray]:
        tables = []
        while f"{prefix}{len(tables)}" in arrays:
            tables.append(arrays[f"{prefix}{len(tables)}"])
        return tables

    return build_model(
        collect("A"), collect("B"), collect("D"), int(arrays["num_steps"]), atol=atol
    )
