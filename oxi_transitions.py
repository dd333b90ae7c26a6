"""
Oxi-Chaos: allowed / barred transition topology.

A proteoform may only move by toggling one cysteine so that k changes by +-1.
The topology is derived once from R and shared (read-only) by the P-matrix
factory and the evolution engine.
"""

import logging

import networkx as nx
import numpy as np
import pandas as pd

from oxi_states import StateSpace, pascal_row

LOGGER = logging.getLogger(__name__)


###############################################################################
# 1. Per-state resolver
###############################################################################
def find_allowed_transitions(index, k_values, R, include_self=True):
    """Find allowed transitions by flipping one site at a time."""
    allowed = [index] if include_self else []
    current_k = k_values[index]

    # Toggle sites left to right as they read in the bit string
    for position in range(R):
        new_index = index ^ (1 << (R - 1 - position))
        new_k = k_values[new_index]

        # Only allow transitions where k changes by +-1
        if abs(new_k - current_k) == 1:
            allowed.append(new_index)

    return allowed


def find_barred_transitions(index, allowed_transitions, num_states):
    """Every state that is neither allowed nor the state itself."""
    excluded = set(allowed_transitions)
    excluded.add(index)
    return [j for j in range(num_states) if j not in excluded]


def conservation_of_degrees(index, allowed_transitions, k_values):
    """Return (K_minus_0, K_plus, degrees) for one proteoform."""
    k_value = k_values[index]
    neighbour_k = [k_values[j] for j in allowed_transitions if j != index]
    K_minus_0 = sum(1 for k in neighbour_k if k < k_value)
    K_plus = sum(1 for k in neighbour_k if k > k_value)
    degrees = K_minus_0 + K_plus + (1 if index in allowed_transitions else 0)
    return K_minus_0, K_plus, degrees


###############################################################################
# 2. Precomputed topology
###############################################################################
class TransitionTopology:
    """
    Allowed/barred sets for every i-state of a StateSpace.

    `mask[i, j]` is True exactly when j is an allowed target of i, so a
    P-matrix row can be filled with one fancy-indexing assignment.
    """

    def __init__(self, space, include_self=True):
        if not isinstance(space, StateSpace):
            space = StateSpace(space)
        self.space = space
        self.include_self = include_self
        N = space.num_states
        k_values = space.k_values

        self.allowed = []
        self.barred = []
        self.mask = np.zeros((N, N), dtype=bool)
        self.K_minus = np.zeros(N, dtype=int)
        self.K_plus = np.zeros(N, dtype=int)
        for i in range(N):
            allowed = find_allowed_transitions(i, k_values, space.R, include_self)
            barred = find_barred_transitions(i, allowed, N)
            K_minus_0, K_plus, degrees = conservation_of_degrees(i, allowed, k_values)
            if degrees != len(allowed):
                raise ArithmeticError(
                    f"Conservation of degrees broken at {space.proteoforms[i]}: {degrees} != {len(allowed)}"
                )
            self.allowed.append(np.array(allowed, dtype=int))
            self.barred.append(np.array(barred, dtype=int))
            self.mask[i, allowed] = True
            self.K_minus[i] = K_minus_0
            self.K_plus[i] = K_plus
        self.mask.setflags(write=False)
        LOGGER.debug("TransitionTopology R=%d include_self=%s edges=%d", space.R, include_self,
                     int(self.mask.sum()))

    @property
    def R(self):
        return self.space.R

    @property
    def num_states(self):
        return self.space.num_states

    def neighbours(self, index):
        """Allowed targets excluding the self transition."""
        return [int(j) for j in self.allowed[index] if j != index]

    def degrees(self, index):
        return len(self.allowed[index])


###############################################################################
# 3. State graph (the R-hypercube drawn as a Pascal diamond)
###############################################################################
def build_state_graph(topology):
    G = nx.Graph()
    for i, pf in enumerate(topology.space.proteoforms):
        G.add_node(pf, k=int(topology.space.k_values[i]), index=i)
    for i, pf in enumerate(topology.space.proteoforms):
        for j in topology.neighbours(i):
            G.add_edge(pf, topology.space.proteoforms[j])
    return G


def diamond_positions(topology):
    """Flat-diamond layout: row k holds its C(R, k) i-states centred on x = 0."""
    positions = {}
    x_spacing = 2
    for k in range(topology.R + 1):
        members = topology.space.k_manifold(k)
        x_start = -(len(members) - 1) * x_spacing / 2
        for n, i in enumerate(members):
            positions[topology.space.proteoforms[i]] = (x_start + n * x_spacing, -k)
    return positions


###############################################################################
# 4. Transition table
###############################################################################
def generate_transition_data(topology):
    """Generate proteoform transitions and return them as DataFrames."""
    space = topology.space
    R = space.R
    data = []

    for i, proteoform in enumerate(space.proteoforms):
        allowed_transitions = [space.proteoforms[j] for j in topology.allowed[i]]
        barred_transitions = [space.proteoforms[j] for j in topology.barred[i]]
        data.append({
            "PF": space.label(i),
            "k_value": int(space.k_values[i]),
            "Percent_OX": space.percent_oxidation(i),
            "Structure": proteoform,
            "Allowed": ", ".join(allowed_transitions),
            "Barred": ", ".join(barred_transitions),
            "K_minus_0": int(topology.K_minus[i]),
            "K_plus": int(topology.K_plus[i]),
            "Conservation_of_degrees": topology.degrees(i),
        })

    df = pd.DataFrame(data)

    # i-space and k-space cardinalities
    summary_df = pd.DataFrame({
        "i-Space Cardinality": [2**R],
        "k-Space Cardinality": [R + 1],
        "Pascal Row": [", ".join(map(str, pascal_row(R)))],
        "Self Transition": [topology.include_self],
    })

    return df, summary_df
