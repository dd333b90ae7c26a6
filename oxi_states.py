"""
Oxi-Chaos: proteoform state space.

Every proteoform of a protein with R cysteines is a binary string of length R
(0 = reduced, 1 = oxidised). The 2^R i-states are enumerated once per run in
increasing integer order, so the integer value of a bit pattern doubles as its
index into every population vector and P-matrix.
"""

import numpy as np
from scipy.special import comb

from oxi_config import ConfigurationError


###############################################################################
# 1. Encoding: bit pattern <-> ordinal
###############################################################################
def encode_proteoform(proteoform):
    """Return the ordinal (integer value) of a binary proteoform string."""
    if not proteoform or set(proteoform) - {"0", "1"}:
        raise ConfigurationError(f"Proteoform '{proteoform}' is not a binary string.")
    return int(proteoform, 2)


def decode_proteoform(index, R):
    """Return the zero-padded bit pattern of ordinal `index` for R sites."""
    if not 0 <= index < 2**R:
        raise ConfigurationError(f"Ordinal {index} is outside the i-space of R={R}.")
    return format(index, f"0{R}b")


def pf_label(index):
    """Stable table identifier: PF001 for ordinal 0, PF002 for ordinal 1, ..."""
    return f"PF{index + 1:03d}"


def count_ones(s):
    return s.count('1')


###############################################################################
# 2. State-space generator
###############################################################################
def generate_proteoforms(R):
    """Generate binary proteoforms for a given number of cysteines (R)."""
    if not isinstance(R, (int, np.integer)) or isinstance(R, bool) or R <= 0:
        raise ConfigurationError(f"Number of cysteines must be a positive integer, got {R!r}.")
    num_states = 2**R  # Total number of proteoforms
    return [format(i, f'0{R}b') for i in range(num_states)]


def oxidation_levels(R):
    """k-value (Hamming weight) of every ordinal 0 .. 2^R - 1."""
    idx = np.arange(2**R)
    k = np.zeros(2**R, dtype=int)
    for site in range(R):
        k += (idx >> site) & 1
    return k


def pascal_row(R):
    """Binomial coefficients C(R, k): number of i-states in each k-manifold."""
    return [int(comb(R, k, exact=True)) for k in range(R + 1)]


class StateSpace:
    """
    The ordered i-space for R sites.

    `proteoforms[i]` is the bit pattern of ordinal i and `k_values[i]` its
    oxidation level. Built once per run and never mutated.
    """

    def __init__(self, R):
        self.R = R
        self.proteoforms = tuple(generate_proteoforms(R))
        self.k_values = oxidation_levels(R)
        self.k_values.setflags(write=False)

    def __len__(self):
        return len(self.proteoforms)

    @property
    def num_states(self):
        return len(self.proteoforms)

    def index(self, proteoform):
        if len(proteoform) != self.R:
            raise ConfigurationError(
                f"Proteoform '{proteoform}' has {len(proteoform)} sites, expected R={self.R}."
            )
        return encode_proteoform(proteoform)

    def label(self, index):
        return pf_label(index)

    def percent_oxidation(self, index):
        return 100.0 * self.k_values[index] / self.R

    def k_manifold(self, k):
        """Ordinals of every i-state with exactly k oxidised sites."""
        return np.flatnonzero(self.k_values == k)

    def as_dict(self, vector):
        """Map a population vector back onto proteoform strings."""
        return {pf: float(vector[i]) for i, pf in enumerate(self.proteoforms)}
