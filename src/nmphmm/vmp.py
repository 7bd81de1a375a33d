"""
Variational message passing with gradient-damped belief updates.

Observations are revealed one time step at a time. After each new
observation the marginal beliefs of every factor at every time step are
refined by a fixed number of coordinate-ascent sweeps. Each update moves the
log-belief a fraction 1/tau toward the sum of

    - the empirical prior from the previous time step,
    - the empirical future from the next time step,
    - the expected log-likelihood of the revealed observations under the
      current beliefs about the other factors,

followed by a softmax. Factors are updated in order within a sweep, so later
factors already see the refreshed beliefs of earlier ones.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

import torch

from nmphmm.config import InferenceConfig
from nmphmm.model import DTYPE, HMMModel
from nmphmm.numerics import contract_except, stable_log

logger = logging.getLogger(__name__)


class VMPResult(NamedTuple):
    """Beliefs (Ns[f], T) per factor and optional trace (Ns[f], T, T, Ni)."""

    beliefs: List[torch.Tensor]
    trace: Optional[List[torch.Tensor]]


def initial_beliefs(model: HMMModel) -> List[torch.Tensor]:
    """Uniform beliefs over every factor's states at every time step."""
    T = model.num_steps
    return [torch.full((ns, T), 1.0 / ns, dtype=DTYPE) for ns in model.num_states]


def allocate_trace(model: HMMModel, config: InferenceConfig) -> Optional[List[torch.Tensor]]:
    if not config.record_trace:
        return None
    T = model.num_steps
    return [
        torch.zeros(ns, T, T, config.num_iterations, dtype=DTYPE)
        for ns in model.num_states
    ]


def run_vmp(
    model: HMMModel,
    observations,
    config: Optional[InferenceConfig] = None,
) -> VMPResult:
    """
    Infer marginal beliefs with damped variational message passing.

    Args:
        model: Generative model.
        observations: (num_modalities, T) outcome indices.
        config: Iteration schedule; defaults to tau=4 and 16 sweeps.

    Returns:
        VMPResult with final beliefs and, if recorded, the trace of every
        update indexed (state, tt, t, i).

    Raises:
        ShapeError: If observations do not match the model.
    """
    config = config or InferenceConfig()
    o = model.check_observations(observations)
    T = model.num_steps
    tau = config.tau

    # Log-likelihood of the outcome actually observed, shape (T, Ns[0], ..., Ns[F-1])
    ln_a = [stable_log(m.likelihood[o[g]]) for g, m in enumerate(model.modalities)]

    qs = initial_beliefs(model)
    trace = allocate_trace(model, config)

    for t in range(T):
        logger.debug("VMP: %d of %d observations revealed", t + 1, T)
        for i in range(config.num_iterations):
            for f, factor in enumerate(model.factors):
                q = qs[f]
                ns = factor.num_states
                ln_b = stable_log(factor.transitions)
                for tt in range(T):
                    v = stable_log(q[:, tt])

                    ln_ao = torch.zeros(ns, dtype=DTYPE)
                    if tt <= t:
                        beliefs = [other[:, tt] for other in qs]
                        for ln_a_g in ln_a:
                            ln_ao = ln_ao + contract_except(ln_a_g[tt], beliefs, f)

                    if tt == 0:
                        ln_d = stable_log(factor.prior)
                    elif config.expected_log_transitions:
                        ln_d = ln_b @ q[:, tt - 1]
                    else:
                        ln_d = stable_log(factor.transitions @ q[:, tt - 1])

                    if tt == T - 1:
                        ln_bs = torch.zeros(ns, dtype=DTYPE)
                    elif config.expected_log_transitions:
                        ln_bs = ln_b.T @ q[:, tt + 1]
                    else:
                        ln_bs = stable_log(factor.transitions.T @ q[:, tt + 1])

                    v = v + (ln_d + ln_bs + ln_ao - v) / tau
                    q[:, tt] = torch.softmax(v, dim=0)
                    if trace is not None:
                        trace[f][:, tt, t, i] = q[:, tt]

    logger.info("VMP finished: %d steps x %d sweeps x %d factors",
                T, config.num_iterations, model.num_factors)
    return VMPResult(beliefs=qs, trace=trace)
