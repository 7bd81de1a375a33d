"""
Iteration schedule and step size shared by the VMP and BP engines.
"""

from __future__ import annotations

from dataclasses import dataclass

from nmphmm.errors import ConfigurationError


@dataclass(frozen=True)
class InferenceConfig:
    """
    Fixed-budget inference settings.

    Attributes:
        tau: Damping factor; each update moves the log-belief 1/tau of the
            way toward the combined evidence.
        num_iterations: Inner sweeps per revealed observation.
        record_trace: Keep every belief snapshot, shape
            (Ns, T, T, num_iterations) per factor.
        expected_log_transitions: VMP only. Use E_q[log B] for the empirical
            prior and future terms instead of log(B q).
    """

    tau: float = 4.0
    num_iterations: int = 16
    record_trace: bool = True
    expected_log_transitions: bool = False

    def __post_init__(self):
        if not self.tau > 0:
            raise ConfigurationError(f"tau must be positive, got {self.tau}")
        if int(self.num_iterations) != self.num_iterations or self.num_iterations < 1:
            raise ConfigurationError(
                f"num_iterations must be a positive integer, got {self.num_iterations}"
            )
