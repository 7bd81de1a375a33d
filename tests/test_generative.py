"""Tests for the generative process."""

from __future__ import annotations

import pathlib
import tempfile

import numpy as np
import pytest
import torch

from nmphmm import generative
from nmphmm.errors import SamplingError
from nmphmm.generative import (
    Trajectory,
    generate,
    load_trajectory,
    sample_categorical,
    save_trajectory,
)
from nmphmm.model import HMMModel, Modality, StateFactor, build_model, example_model

from testcase import identity_model, mixed_cardinality_model


class TestSampleCategorical:
    """Tests for sample_categorical."""

    def test_inverse_cdf(self):
        probs = torch.tensor([0.2, 0.5, 0.3], dtype=torch.float64)
        assert sample_categorical(probs, 0.0) == 0
        assert sample_categorical(probs, 0.2) == 0
        assert sample_categorical(probs, 0.21) == 1
        assert sample_categorical(probs, 0.69) == 1
        assert sample_categorical(probs, 0.71) == 2
        assert sample_categorical(probs, 0.999) == 2

    def test_skips_zero_mass_states(self):
        probs = torch.tensor([0.0, 0.0, 1.0], dtype=torch.float64)
        assert sample_categorical(probs, 0.5) == 2
        assert sample_categorical(probs, 1.0) == 2

    def test_deficient_distribution_raises(self):
        probs = torch.tensor([0.2, 0.2, 0.2], dtype=torch.float64)
        with pytest.raises(SamplingError):
            sample_categorical(probs, 0.9)


class TestGenerate:
    """Tests for generate."""

    def test_shapes_and_ranges(self):
        model = example_model()
        trajectory = generate(model, rng=0)

        assert isinstance(trajectory, Trajectory)
        assert trajectory.states.shape == (2, 15)
        assert trajectory.observations.shape == (2, 15)
        assert trajectory.states.dtype == torch.long
        for f, ns in enumerate(model.num_states):
            assert ((trajectory.states[f] >= 0) & (trajectory.states[f] < ns)).all()
        for g, no in enumerate(model.num_outcomes):
            assert ((trajectory.observations[g] >= 0) & (trajectory.observations[g] < no)).all()

    def test_ranges_with_mixed_cardinality(self):
        model = mixed_cardinality_model(num_steps=20)
        for seed in range(5):
            states, observations = generate(model, rng=seed)
            assert states[0].max() < 2 and states[1].max() < 3
            assert observations.max() < 4 and observations.min() >= 0

    def test_same_seed_same_trajectory(self):
        model = example_model()
        first = generate(model, rng=123)
        second = generate(model, rng=123)

        assert torch.equal(first.states, second.states)
        assert torch.equal(first.observations, second.observations)

    def test_accepts_generator(self):
        model = example_model()
        first = generate(model, rng=np.random.default_rng(5))
        second = generate(model, rng=5)
        assert torch.equal(first.states, second.states)

    def test_deterministic_prior_is_respected(self):
        model = example_model()
        for seed in range(10):
            states, _ = generate(model, rng=seed)
            assert states[0, 0] == 2
            assert states[1, 0] == 0

    def test_transitions_are_possible(self):
        model = example_model(num_steps=30)
        for seed in range(5):
            states, _ = generate(model, rng=seed)
            for f, factor in enumerate(model.factors):
                for t in range(1, 30):
                    assert factor.transitions[states[f, t], states[f, t - 1]] > 0

    def test_noiseless_observations_match_states(self):
        model = example_model()
        states, observations = generate(model, rng=9)
        # First modality reports the first factor exactly
        assert torch.equal(observations[0], states[0])
        # Second modality tells whether the first factor is in state 0
        assert torch.equal(observations[1], (states[0] != 0).long())

    def test_identity_model_stays_put(self):
        states, observations = generate(identity_model(), rng=1)
        assert states.tolist() == [[0, 0, 0, 0, 0]]
        assert observations.tolist() == [[0, 0, 0, 0, 0]]

    def test_zero_draw_never_selects_zero_mass_state(self, monkeypatch):
        class ZeroDraws:
            def random(self):
                return 0.0

        monkeypatch.setattr(generative, "_as_generator", lambda rng: rng)
        model = build_model([np.eye(3)], [np.eye(3)], [np.array([0.0, 0.0, 1.0])], T=3)

        states, observations = generate(model, rng=ZeroDraws())

        assert states.tolist() == [[2, 2, 2]]
        assert observations.tolist() == [[2, 2, 2]]

    def test_unvalidated_tables_raise_sampling_error(self):
        # Bypass build_model to reach the sampler with a deficient prior
        factor = StateFactor(
            transitions=torch.eye(2, dtype=torch.float64),
            prior=torch.tensor([0.0, 0.0], dtype=torch.float64),
        )
        modality = Modality(likelihood=torch.eye(2, dtype=torch.float64))
        model = HMMModel(factors=(factor,), modalities=(modality,), num_steps=3)
        with pytest.raises(SamplingError):
            generate(model, rng=0)


class TestTrajectoryPersistence:
    """Tests for save_trajectory and load_trajectory."""

    def test_round_trip_with_metadata(self):
        trajectory = generate(example_model(), rng=4)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "trajectory.npz"
            save_trajectory(trajectory, path, metadata={"seed": 4})
            loaded, metadata = load_trajectory(path)

        assert torch.equal(loaded.states, trajectory.states)
        assert torch.equal(loaded.observations, trajectory.observations)
        assert metadata == {"seed": 4}

    def test_without_metadata(self):
        trajectory = generate(example_model(), rng=4)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "trajectory.npz"
            save_trajectory(trajectory, path)
            _, metadata = load_trajectory(path)

        assert metadata is None
