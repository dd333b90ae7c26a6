"""
Oxi-Chaos: population evolution under evolving P-matrices.

The total mass is split into one conceptual sub-pool per P-matrix. Each state
feeds its sub-pool in proportion to its own share of that pool, so a step is
quadratic in the population and not a plain Markov update:

    S'[j] = sum_m sum_i S[i] * P_m[i, j] * (S[i] / sub_pool_size)

after which S' is rescaled to the reference mass. With the uniform jump
operator the step is the plain Markov update S' = S P under one fixed matrix.
A perturbed twin can be carried alongside under the same P-matrices for
Lyapunov estimation.
"""

import logging

import numpy as np

from oxi_config import NumericalDivergenceError
from oxi_metrics import LOG_EPSILON, MASS_EPSILON, twin_distance
from oxi_pmatrix import OperatorEnsemble, create_uniform_P_matrix
from oxi_states import StateSpace
from oxi_transitions import TransitionTopology

LOGGER = logging.getLogger(__name__)


###############################################################################
# 1. Initial populations
###############################################################################
def initialize_state(space, initial_proteoform, total_mass):
    """All of `total_mass` on one proteoform."""
    if total_mass < 0:
        raise ValueError(f"Initial mass must be non-negative, got {total_mass}.")
    state = np.zeros(space.num_states, dtype=float)
    state[space.index(initial_proteoform)] = total_mass
    return state


def perturb_state(state, source, target, amount):
    """Copy of `state` with `amount` moved from source to target, clamped to what source holds."""
    moved = min(max(float(amount), 0.0), float(state[source]))
    perturbed = state.copy()
    perturbed[source] -= moved
    perturbed[target] += moved
    return perturbed


def default_perturb_target(space, initial_proteoform):
    """The initial proteoform with its last site toggled (000 -> 001)."""
    return space.proteoforms[space.index(initial_proteoform) ^ 1]


###############################################################################
# 2. One step
###############################################################################
def evolve_multiple_P_matrices(state, P_matrices, reference_mass=None):
    """
    Advance `state` one step under an ensemble of P-matrices.

    The result sums to `reference_mass` (default: the input mass). A population
    that has decayed to nothing stays at zero instead of dividing by zero.
    """
    total = float(state.sum())
    if reference_mass is None:
        reference_mass = total
    num_pools = len(P_matrices)
    sub_pool_size = max(total / num_pools, MASS_EPSILON)

    weighted = state * (state / sub_pool_size)
    new_state = np.zeros_like(state)
    for P in P_matrices:
        new_state += weighted @ P

    return new_state * (reference_mass / max(float(new_state.sum()), MASS_EPSILON))


def evolve_state(state, P, reference_mass=None):
    """Plain Markov step S' = S P, rescaled to `reference_mass` (default: the input mass)."""
    if reference_mass is None:
        reference_mass = float(state.sum())
    new_state = state @ P
    return new_state * (reference_mass / max(float(new_state.sum()), MASS_EPSILON))


def _state_dump(space, **states):
    dump = {}
    for name, vector in states.items():
        if vector is None:
            continue
        for pf, value in space.as_dict(vector).items():
            dump[f"{name}[{pf}]"] = value
    return dump


def _diverged(step, reason, space, state, twin):
    """Build the failure for `step`, dumping the last finite state pair."""
    exc = NumericalDivergenceError(step, reason, _state_dump(space, state=state, twin=twin))
    LOGGER.error("Simulation diverged: %s", exc)
    return exc


###############################################################################
# 3. Full run
###############################################################################
def simulate_with_evolving_P_matrices(config, rng=None, track_lyapunov=True):
    """
    Run `config.steps` steps and return the trajectory.

    The returned dict holds `history` (state before each step), `final_state`,
    and, with `track_lyapunov`, `log_distances`: the log twin separation
    recorded at every step. Both twins share every P-matrix draw.
    """
    config.validate()
    if rng is None:
        rng = np.random.default_rng(config.seed)

    space = StateSpace(config.r)
    topology = TransitionTopology(space, include_self=config.include_self)
    reference_mass = config.reference_mass
    num_states = space.num_states

    state = initialize_state(space, config.initial_proteoform, reference_mass)
    twin = None
    perturb_target = None
    if track_lyapunov:
        perturb_target = config.perturb_target or default_perturb_target(space, config.initial_proteoform)
        twin = perturb_state(
            state,
            space.index(config.initial_proteoform),
            space.index(perturb_target),
            config.epsilon * reference_mass,
        )

    ensemble = None
    if config.operator == "uniform":
        P_fixed = create_uniform_P_matrix(topology, p_jump=config.p_jump)

        def step(vector):
            return evolve_state(vector, P_fixed, reference_mass)
    else:
        ensemble = OperatorEnsemble(topology, config.ensemble_size, rng, p_jump=config.p_jump)

        def step(vector):
            return evolve_multiple_P_matrices(vector, ensemble.P_matrices, reference_mass)

    history = np.empty((config.steps, num_states))
    log_distances = np.empty(config.steps) if track_lyapunov else None

    LOGGER.info(
        "simulate R=%d start=%s steps=%d operator=%s pools=%d resample_period=%d p_jump=%s lyapunov=%s",
        config.r, config.initial_proteoform, config.steps, config.operator, config.ensemble_size,
        config.resample_period, config.p_jump, track_lyapunov,
    )

    for t in range(1, config.steps + 1):
        # Update P-matrices every resample_period steps
        if ensemble is not None and t % config.resample_period == 0:
            ensemble.resample()

        history[t - 1] = state

        if twin is not None:
            distance = twin_distance(state, twin, reference_mass)
            if not np.isfinite(distance):
                raise _diverged(t, f"twin distance is {distance}", space, state, twin)
            log_distances[t - 1] = np.log(max(distance, LOG_EPSILON))

        new_state = step(state)
        new_twin = None
        if twin is not None:
            new_twin = step(twin)
        for name, vector in (("state", new_state), ("twin", new_twin)):
            if vector is not None and not np.all(np.isfinite(vector)):
                raise _diverged(t, f"non-finite {name} population", space, state, twin)
        state, twin = new_state, new_twin

    resamples = ensemble.generation - 1 if ensemble is not None else 0
    LOGGER.info("simulate finished steps=%d resamples=%d", config.steps, resamples)

    return {
        "history": history,
        "final_state": state,
        "log_distances": log_distances,
        "perturb_target": perturb_target,
        "resamples": resamples,
        "proteoforms": space.proteoforms,
        "k_values": space.k_values,
        "space": space,
        "topology": topology,
        "config": config,
    }
