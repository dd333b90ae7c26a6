"""Per-step observables of a population vector."""

import numpy as np

LOG_EPSILON = 1e-10
MASS_EPSILON = 1e-12


def shannon_entropy(state):
    """-sum p log(p + 1e-10) over every i-state, in nats."""
    total = max(float(np.sum(state)), MASS_EPSILON)
    probabilities = np.asarray(state, dtype=float) / total
    entropy = -np.sum(probabilities * np.log(probabilities + LOG_EPSILON))
    # A pure state gives -1e-10 through the log offset
    return max(float(entropy), 0.0)


def mean_oxidation(state, k_values):
    """Mass-weighted mean k."""
    total = max(float(np.sum(state)), MASS_EPSILON)
    return float(np.dot(k_values, state) / total)


def calc_metrics(state, k_values):
    return shannon_entropy(state), mean_oxidation(state, k_values)


def k_space_occupancy(history, k_values, R):
    """Collapse a (steps x 2^R) history onto the R + 1 k-manifolds."""
    history = np.atleast_2d(history)
    occupancy = np.zeros((history.shape[0], R + 1))
    for k in range(R + 1):
        occupancy[:, k] = history[:, k_values == k].sum(axis=1)
    return occupancy


def twin_distance(state, twin, reference_mass=1.0):
    """Euclidean distance between two population vectors, in probability units."""
    return float(np.linalg.norm((state - twin) / reference_mass))
