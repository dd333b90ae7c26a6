"""Run configuration for Oxi-Chaos simulations (YAML -> validated dataclasses)."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

LOGGER = logging.getLogger(__name__)

NORMALIZATIONS = ("mass", "probability")
OPERATORS = ("random", "uniform")
SECTIONS = ("simulation", "sweep", "monte_carlo")
_FLOAT_FIELDS = {"num_molecules", "epsilon", "p_jump", "p_min", "p_max", "p_ox", "p_red"}


class ConfigurationError(ValueError):
    """Raised when run parameters are rejected before a simulation starts."""


class NumericalDivergenceError(ArithmeticError):
    """Raised when a trajectory or diagnostic stops being finite."""

    def __init__(self, step: int, reason: str, state: Optional[Dict[str, Any]] = None):
        self.step = step
        self.reason = reason
        self.state = state or {}
        dump = ", ".join(f"{key}={value!r}" for key, value in self.state.items())
        super().__init__(f"step {step}: {reason} [{dump}]")


@dataclass(frozen=True)
class SimulationConfig:
    r: int = 3
    initial_proteoform: str = "000"
    steps: int = 1000
    num_molecules: float = 10_000.0
    ensemble_size: int = 10
    resample_period: int = 100
    epsilon: float = 1e-5
    include_self: bool = True
    p_jump: Optional[float] = None
    operator: str = "random"
    normalization: str = "mass"
    perturb_target: Optional[str] = None
    poincare_period: int = 10
    seed: Optional[int] = None

    @property
    def reference_mass(self) -> float:
        """Total mass every step is renormalised to."""
        return float(self.num_molecules) if self.normalization == "mass" else 1.0

    def validate(self) -> "SimulationConfig":
        if not isinstance(self.r, int) or isinstance(self.r, bool) or self.r <= 0:
            raise ConfigurationError(f"r must be a positive integer, got {self.r!r}.")
        _check_bitstring("initial_proteoform", self.initial_proteoform, self.r)
        if self.perturb_target is not None:
            _check_bitstring("perturb_target", self.perturb_target, self.r)
            if self.perturb_target == self.initial_proteoform:
                raise ConfigurationError("perturb_target must differ from initial_proteoform.")
        if not isinstance(self.steps, int) or self.steps <= 0:
            raise ConfigurationError(f"steps must be a positive integer, got {self.steps!r}.")
        if not math.isfinite(self.num_molecules) or self.num_molecules <= 0:
            raise ConfigurationError(f"num_molecules must be positive, got {self.num_molecules!r}.")
        if not isinstance(self.ensemble_size, int) or self.ensemble_size < 1:
            raise ConfigurationError(f"ensemble_size must be >= 1, got {self.ensemble_size!r}.")
        if not isinstance(self.resample_period, int) or self.resample_period < 1:
            raise ConfigurationError(f"resample_period must be >= 1, got {self.resample_period!r}.")
        if not math.isfinite(self.epsilon) or self.epsilon < 0:
            raise ConfigurationError(f"epsilon must be a non-negative number, got {self.epsilon!r}.")
        if self.p_jump is not None:
            if not 0.0 < self.p_jump <= 1.0:
                raise ConfigurationError(f"p_jump must lie in (0, 1], got {self.p_jump!r}.")
            if not self.include_self:
                raise ConfigurationError("p_jump needs the self transition (include_self=True).")
        if self.operator not in OPERATORS:
            raise ConfigurationError(f"operator must be one of {OPERATORS}, got {self.operator!r}.")
        if self.normalization not in NORMALIZATIONS:
            raise ConfigurationError(
                f"normalization must be one of {NORMALIZATIONS}, got {self.normalization!r}."
            )
        if not isinstance(self.poincare_period, int) or self.poincare_period < 1:
            raise ConfigurationError(f"poincare_period must be >= 1, got {self.poincare_period!r}.")
        return self


@dataclass(frozen=True)
class SweepConfig:
    control: str = "p_jump"
    p_min: float = 0.1
    p_max: float = 0.9
    p_steps: int = 50
    tail: int = 100

    def validate(self) -> "SweepConfig":
        names = {f.name for f in fields(SimulationConfig)}
        if self.control not in names or self.control in {"initial_proteoform", "perturb_target", "operator",
                                                         "normalization", "include_self", "seed", "r"}:
            raise ConfigurationError(f"'{self.control}' is not a numeric simulation parameter.")
        if not isinstance(self.p_steps, int) or self.p_steps < 1:
            raise ConfigurationError(f"p_steps must be >= 1, got {self.p_steps!r}.")
        if self.p_min > self.p_max:
            raise ConfigurationError(f"p_min ({self.p_min}) exceeds p_max ({self.p_max}).")
        if not isinstance(self.tail, int) or self.tail < 1:
            raise ConfigurationError(f"tail must be >= 1, got {self.tail!r}.")
        return self


@dataclass(frozen=True)
class MonteCarloConfig:
    """Whole-molecule runs over a transition workbook."""

    p_ox: float = 0.7
    p_red: float = 0.1
    molecules: int = 100
    steps: int = 20
    initial_pf: str = "PF001"
    seed: Optional[int] = None

    def validate(self) -> "MonteCarloConfig":
        for name in ("p_ox", "p_red"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {value!r}.")
        if self.p_ox + self.p_red > 1.0:
            raise ConfigurationError(f"p_ox + p_red must not exceed 1, got {self.p_ox + self.p_red}.")
        if not isinstance(self.molecules, int) or self.molecules < 0:
            raise ConfigurationError(f"molecules must be a non-negative integer, got {self.molecules!r}.")
        if not isinstance(self.steps, int) or self.steps <= 0:
            raise ConfigurationError(f"steps must be a positive integer, got {self.steps!r}.")
        if not isinstance(self.initial_pf, str) or not self.initial_pf:
            raise ConfigurationError(f"initial_pf must be a PF label, got {self.initial_pf!r}.")
        return self


def _check_bitstring(name: str, value: Any, r: int) -> None:
    if not isinstance(value, str) or len(value) != r or set(value) - {"0", "1"}:
        raise ConfigurationError(f"{name} must be a bit string of length {r}, got {value!r}.")


def with_overrides(config: SimulationConfig, **changes: Any) -> SimulationConfig:
    """Validated copy of `config` with `changes` applied."""
    unknown = set(changes) - {f.name for f in fields(SimulationConfig)}
    if unknown:
        raise ConfigurationError(f"Unknown simulation parameter(s): {sorted(unknown)}.")
    return replace(config, **changes).validate()


def _build(cls, section: Any, label: str):
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{label}' section must be a mapping.")
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigurationError(f"Unknown key(s) in '{label}': {sorted(unknown)}.")
    values = dict(section)
    for name in _FLOAT_FIELDS & set(values):
        # PyYAML reads 1e-5 (no dot) as a string
        if isinstance(values[name], str):
            try:
                values[name] = float(values[name])
            except ValueError as exc:
                raise ConfigurationError(f"'{name}' must be a number, got {values[name]!r}.") from exc
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


def _read_sections(path: Path) -> Dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigurationError(f"Config '{cfg_path}' not found.")
    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a YAML mapping.")
    unknown = set(data) - set(SECTIONS)
    if unknown:
        raise ConfigurationError(f"Unknown config section(s): {sorted(unknown)}.")
    return data


def load_config(path: Path) -> Tuple[SimulationConfig, SweepConfig]:
    cfg_path = Path(path)
    data = _read_sections(cfg_path)
    simulation = data.get("simulation")
    if isinstance(simulation, dict) and isinstance(simulation.get("initial_proteoform"), int):
        # YAML reads 000 as the integer 0
        raise ConfigurationError("Quote initial_proteoform in YAML, e.g. '000'.")
    sim = _build(SimulationConfig, simulation, "simulation").validate()
    sweep = _build(SweepConfig, data.get("sweep"), "sweep").validate()
    LOGGER.debug("load_config path=%s simulation=%s sweep=%s", cfg_path, asdict(sim), asdict(sweep))
    return sim, sweep


def load_monte_carlo_config(path: Path) -> MonteCarloConfig:
    """The `monte_carlo:` section of a config file (defaults when absent)."""
    config = _build(MonteCarloConfig, _read_sections(path).get("monte_carlo"), "monte_carlo").validate()
    LOGGER.debug("load_monte_carlo_config path=%s monte_carlo=%s", path, asdict(config))
    return config
