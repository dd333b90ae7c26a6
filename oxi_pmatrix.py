"""
Oxi-Chaos: P-matrices.

Each P-matrix is row-stochastic and non-zero only on allowed transitions;
barred transitions are explicitly held at zero. An ensemble of random
P-matrices models distinct sub-populations and is redrawn wholesale every
resampling period to give non-stationary kinetics. The uniform jump operator
is fixed for the whole run.
"""

import logging

import numpy as np

LOGGER = logging.getLogger(__name__)

ROW_TOLERANCE = 1e-9


def create_random_P_matrix(topology, rng, p_jump=None):
    """
    Draw one P-matrix over `topology` with fresh uniform weights.

    With `p_jump` set, the weights over the non-self allowed targets are scaled
    to sum to p_jump and the self transition keeps 1 - p_jump.
    """
    num_states = topology.num_states
    P = np.zeros((num_states, num_states), dtype=float)

    for i in range(num_states):
        allowed = topology.allowed[i]
        # Assign random probabilities to allowed transitions only
        P[i, allowed] = rng.random(len(allowed))

        if p_jump is not None:
            P[i, i] = 0.0
            jump_sum = P[i].sum()
            if jump_sum > 0:
                P[i] *= p_jump / jump_sum
                P[i, i] = 1.0 - p_jump

        row_sum = P[i].sum()
        if row_sum > 0:
            P[i] /= row_sum
        else:
            LOGGER.warning(
                "P-matrix row %s (%s) has no weight; using a uniform row over %d states",
                i, topology.space.proteoforms[i], num_states,
            )
            P[i] = 1.0 / num_states

    return P


def create_uniform_P_matrix(topology, p_jump=None):
    """
    Fixed jump operator with no random weights.

    With `p_jump` each state keeps 1 - p_jump and sends p_jump / n to each of
    its n neighbours; without it every allowed target gets an equal share.
    """
    num_states = topology.num_states
    P = np.zeros((num_states, num_states), dtype=float)

    for i in range(num_states):
        if p_jump is None:
            allowed = topology.allowed[i]
            if len(allowed) == 0:
                LOGGER.warning(
                    "P-matrix row %s (%s) has no allowed targets; using a uniform row over %d states",
                    i, topology.space.proteoforms[i], num_states,
                )
                P[i] = 1.0 / num_states
            else:
                P[i, allowed] = 1.0 / len(allowed)
            continue

        neighbours = topology.neighbours(i)
        if neighbours:
            P[i, neighbours] = p_jump / len(neighbours)
            P[i, i] = 1.0 - p_jump
        else:
            P[i, i] = 1.0

    return P


def check_P_matrix(P, topology, tol=ROW_TOLERANCE):
    """Return a list of problems with P (empty when P is a valid operator)."""
    problems = []
    row_sums = P.sum(axis=1)
    bad_rows = np.flatnonzero(np.abs(row_sums - 1.0) > tol)
    for i in bad_rows:
        problems.append(f"row {topology.space.proteoforms[i]} sums to {row_sums[i]:.12f}")
    if np.any(P < 0):
        problems.append("negative entries")
    # Uniform fallback rows are the only place a barred entry may be non-zero
    uniform = np.all(np.isclose(P, 1.0 / topology.num_states), axis=1)
    leaked = (P != 0) & ~topology.mask & ~uniform[:, None]
    for i, j in zip(*np.nonzero(leaked)):
        problems.append(
            f"barred transition {topology.space.proteoforms[i]} -> "
            f"{topology.space.proteoforms[j]} has probability {P[i, j]:.3g}"
        )
    return problems


class OperatorEnsemble:
    """
    A fixed-size set of independently drawn P-matrices, one per sub-population.

    `resample` replaces every member at once; the matrices themselves are
    read-only between resamples.
    """

    def __init__(self, topology, size, rng, p_jump=None):
        self.topology = topology
        self.size = size
        self.p_jump = p_jump
        self._rng = rng
        self.generation = 0
        self.P_matrices = ()
        self.resample()

    def resample(self):
        matrices = []
        for _ in range(self.size):
            P = create_random_P_matrix(self.topology, self._rng, p_jump=self.p_jump)
            P.setflags(write=False)
            matrices.append(P)
        self.P_matrices = tuple(matrices)
        self.generation += 1
        LOGGER.debug("OperatorEnsemble generation=%d size=%d", self.generation, self.size)

    def __len__(self):
        return len(self.P_matrices)

    def __iter__(self):
        return iter(self.P_matrices)
