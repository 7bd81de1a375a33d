"""
Belief propagation with gradient-damped marginal updates.

Unlike sum-product (Baum-Welch) recursions, messages here are recovered from
the current marginals: the forward message at a time step is the marginal
with the backward message and the local likelihood divided out, and the
backward message is the marginal with the forward message and the
likelihood divided out. Marginals are then moved toward

    log(B Mf[t-1]) + log(B' Mb[t+1]) + log E[A(o)]

with the same damping and schedule as variational message passing.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

import torch

from nmphmm.config import InferenceConfig
from nmphmm.model import DTYPE, HMMModel
from nmphmm.numerics import contract_except, normalize_columns, stable_log
from nmphmm.vmp import allocate_trace, initial_beliefs

logger = logging.getLogger(__name__)


class BPResult(NamedTuple):
    """Beliefs, forward and backward messages (Ns[f], T) per factor, optional trace."""

    beliefs: List[torch.Tensor]
    forward_messages: List[torch.Tensor]
    backward_messages: List[torch.Tensor]
    trace: Optional[List[torch.Tensor]]


def initial_messages(model: HMMModel) -> tuple[List[torch.Tensor], List[torch.Tensor]]:
    """
    Uniform forward and backward messages; the first forward message is the prior.
    """
    forward = initial_beliefs(model)
    backward = initial_beliefs(model)
    for f, factor in enumerate(model.factors):
        forward[f][:, 0] = factor.prior
    return forward, backward


def refresh_messages(
    q: torch.Tensor,
    mf: torch.Tensor,
    mb: torch.Tensor,
    ln_ao: torch.Tensor,
    n: int,
) -> None:
    """
    Recover messages for time steps 0..n-1 from the marginals (in place).

    Each step is independent of the others; at a given step the backward
    message uses the forward message just refreshed. The forward message at
    step 0 stays pinned to the prior.
    """
    if n < 1:
        return
    ln_q = stable_log(q[:, :n])
    if n > 1:
        mf[:, 1:n] = normalize_columns(
            torch.exp(ln_q[:, 1:] - stable_log(mb[:, 1:n]) - ln_ao[:, 1:n])
        )
    mb[:, :n] = normalize_columns(
        torch.exp(ln_q - stable_log(mf[:, :n]) - ln_ao[:, :n])
    )


def run_bp(
    model: HMMModel,
    observations,
    config: Optional[InferenceConfig] = None,
) -> BPResult:
    """
    Infer marginal beliefs and messages with damped belief propagation.

    Args:
        model: Generative model.
        observations: (num_modalities, T) outcome indices.
        config: Iteration schedule; defaults to tau=4 and 16 sweeps.
            expected_log_transitions has no effect here.

    Returns:
        BPResult with final beliefs, forward and backward messages and,
        if recorded, the trace indexed (state, tt, t, i).

    Raises:
        ShapeError: If observations do not match the model.
    """
    config = config or InferenceConfig()
    o = model.check_observations(observations)
    T = model.num_steps
    tau = config.tau

    # Likelihood of the outcome actually observed, shape (T, Ns[0], ..., Ns[F-1])
    a_obs = [m.likelihood[o[g]] for g, m in enumerate(model.modalities)]

    qs = initial_beliefs(model)
    mfs, mbs = initial_messages(model)
    trace = allocate_trace(model, config)

    for t in range(T):
        logger.debug("BP: %d of %d observations revealed", t + 1, T)
        # Messages are only refreshed where evidence has arrived, never at the horizon
        n_messages = min(t + 1, T - 1)
        for i in range(config.num_iterations):
            for f, factor in enumerate(model.factors):
                q, mf, mb = qs[f], mfs[f], mbs[f]
                ns = factor.num_states
                # Filled in as tt advances; later columns stay zero during this pass
                ln_ao = torch.zeros(ns, T, dtype=DTYPE)
                for tt in range(T):
                    v = stable_log(q[:, tt])

                    if tt <= t:
                        beliefs = [other[:, tt] for other in qs]
                        for a_g in a_obs:
                            ln_ao[:, tt] += stable_log(contract_except(a_g[tt], beliefs, f))

                    refresh_messages(q, mf, mb, ln_ao, n_messages)

                    if tt == 0:
                        ln_d = stable_log(factor.prior)
                    else:
                        ln_d = stable_log(factor.transitions @ mf[:, tt - 1])

                    if tt < T - 1:
                        ln_bs = stable_log(factor.transitions.T @ mb[:, tt + 1])
                    else:
                        ln_bs = torch.zeros(ns, dtype=DTYPE)

                    v = v + (ln_d + ln_bs + ln_ao[:, tt] - v) / tau
                    q[:, tt] = torch.softmax(v, dim=0)
                    if trace is not None:
                        trace[f][:, tt, t, i] = q[:, tt]

    logger.info("BP finished: %d steps x %d sweeps x %d factors",
                T, config.num_iterations, model.num_factors)
    return BPResult(beliefs=qs, forward_messages=mfs, backward_messages=mbs, trace=trace)
