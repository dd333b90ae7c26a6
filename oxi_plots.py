"""Oxi-Chaos figures (matplotlib / seaborn). Each function saves one PNG and returns its path."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import seaborn as sns

from oxi_transitions import build_state_graph, diamond_positions

LOGGER = logging.getLogger(__name__)


def _save(fig, output_dir, file_name):
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / file_name
    fig.savefig(path, dpi=300, bbox_inches='tight')
    plt.close(fig)
    LOGGER.info("Figure saved to %s", path)
    return path


def plot_poincare(points, R, period, output_dir, file_name="poincare_diagram.png"):
    points = np.asarray(points).reshape(-1, 2)
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.scatter(points[:, 0], points[:, 1], s=8, alpha=0.7)
    ax.set_xlim(0, R)
    ax.set_ylim(0, R)
    ax.set_title("Poincaré Diagram")
    ax.set_xlabel("k(t)")
    ax.set_ylabel(f"k(t + {period})")
    ax.grid(True, linestyle="--", alpha=0.5)
    return _save(fig, output_dir, file_name)


def plot_bifurcation(bifurcation_x, bifurcation_y, R, control, output_dir, file_name="bifurcation_diagram.png"):
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.scatter(bifurcation_x, bifurcation_y, s=2, alpha=0.6, color="black")
    if len(bifurcation_x):
        ax.set_xlim(np.min(bifurcation_x), np.max(bifurcation_x) + 1e-12)
    ax.set_ylim(0, R)
    ax.set_title("Bifurcation Diagram")
    ax.set_xlabel(control)
    ax.set_ylabel("Mean Oxidation State")
    return _save(fig, output_dir, file_name)


def plot_metrics(entropies, mean_oxidation_states, output_dir, file_name="metrics.png"):
    steps = np.arange(1, len(entropies) + 1)
    fig, (ax_s, ax_k) = plt.subplots(2, 1, figsize=(10, 6), sharex=True)
    ax_s.plot(steps, entropies, color="#E97B1E", linewidth=1)
    ax_s.set_ylabel("Shannon Entropy (nats)")
    ax_s.grid(True, linestyle="--", alpha=0.5)
    ax_k.plot(steps, mean_oxidation_states, color="#7EA9E1", linewidth=1)
    ax_k.set_ylabel("Mean Oxidation State")
    ax_k.set_xlabel("Time Steps")
    ax_k.grid(True, linestyle="--", alpha=0.5)
    fig.suptitle("Redox Evolution")
    return _save(fig, output_dir, file_name)


def plot_k_heatmap(k_occupancy, output_dir, file_name="k_space_heatmap.png"):
    totals = np.maximum(k_occupancy.sum(axis=1, keepdims=True), 1e-12)
    fig, ax = plt.subplots(figsize=(12, 6))
    tick_step = max(len(k_occupancy) // 10, 1)
    sns.heatmap((k_occupancy / totals).T, cmap="viridis", xticklabels=tick_step, yticklabels=1, ax=ax)
    ax.set_title("Population Trajectory Across k-space")
    ax.set_xlabel("Time Steps")
    ax.set_ylabel("k-State")
    return _save(fig, output_dir, file_name)


def plot_state_diamond(topology, output_dir, occupancy=None, file_name="state_diamond.png"):
    """Draw the i-space as a flat diamond, optionally shaded by occupancy."""
    G = build_state_graph(topology)
    positions = diamond_positions(topology)
    fig, ax = plt.subplots(figsize=(8, 6))
    node_color = 'lightblue'
    if occupancy is not None:
        occupancy = np.asarray(occupancy, dtype=float)
        node_color = [occupancy[G.nodes[pf]["index"]] for pf in G.nodes]
    nx.draw(G, pos=positions, ax=ax, with_labels=topology.R <= 5, node_color=node_color,
            cmap=plt.cm.viridis, edge_color='gray', node_size=500, font_size=8)
    ax.set_title(f"Proteoform State Space (R = {topology.R})")
    return _save(fig, output_dir, file_name)
