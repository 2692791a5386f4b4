"""
Configuration objects for LN-LNP neuron simulations.

Two layers of configuration:

    SimulationConfig   - run-wide settings (sample rate, replicate count,
                         bin size, normalization, trim count, seed, ...)
    NeuronTypeConfig   - a named archetype: one FilterSpec per catalog slot
                         plus baseline and modulated firing rates

Neuron types are templates. Every simulated neuron instance draws its own
filter time constants from the type's (center, spread) distributions and
jitters its rates, so the same type yields a family of similar neurons.

Author: Synthetic Neurons Project
Date: October 2026
"""

import json
import math
from dataclasses import dataclass, asdict, field, replace
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .errors import ConfigError, DistributionError


# =============================================================================
# FILTER AND NEURON TYPE SPECS
# =============================================================================

@dataclass(frozen=True)
class FilterSpec:
    """One slot of the subunit filter catalog."""
    enabled: bool
    center: float          # seconds
    spread: float          # seconds (std of the draw)
    pooling_weight: float  # signed; negative weights give push-pull tuning

    def validate(self, slot: int = 0) -> None:
        if not self.enabled:
            return
        for name in ('center', 'spread', 'pooling_weight'):
            if not math.isfinite(getattr(self, name)):
                raise ConfigError(f"Filter slot {slot}: {name} must be finite")
        if self.center < 0:
            raise ConfigError(
                f"Filter slot {slot}: center must be >= 0 s, got {self.center}"
            )
        if self.spread < 0:
            raise DistributionError(
                f"Filter slot {slot}: spread must be >= 0 s, got {self.spread}"
            )


@dataclass(frozen=True)
class NeuronTypeConfig:
    """Named neuron archetype shared by all instances of that type."""
    name: str
    filters: Tuple[FilterSpec, ...]
    baseline_rate: float   # spikes/s
    modulated_rate: float  # spikes/s

    def validate(self) -> None:
        if not self.filters:
            raise ConfigError(f"Neuron type '{self.name}' has no filter slots")
        for slot, spec in enumerate(self.filters):
            spec.validate(slot)
        if not (self.baseline_rate > 0):
            raise ConfigError(
                f"Neuron type '{self.name}': baseline_rate must be > 0, "
                f"got {self.baseline_rate}"
            )
        if not (self.modulated_rate > 0):
            raise ConfigError(
                f"Neuron type '{self.name}': modulated_rate must be > 0, "
                f"got {self.modulated_rate}"
            )

    @property
    def n_slots(self) -> int:
        return len(self.filters)

    @property
    def n_enabled(self) -> int:
        return sum(1 for spec in self.filters if spec.enabled)

    def to_dict(self) -> Dict:
        return asdict(self)


def make_neuron_type(
    name: str,
    use: Sequence[int],
    mu_ms: Sequence[float],
    sigma_ms: Sequence[float],
    weights: Sequence[float],
    baseline_rate: float,
    modulated_rate: float
) -> NeuronTypeConfig:
    """
    Build a NeuronTypeConfig from per-slot tables given in milliseconds.

    Disabled slots keep their place in the catalog with weight 0.
    """
    n = len(use)
    if not (len(mu_ms) == len(sigma_ms) == len(weights) == n):
        raise ConfigError(
            f"Neuron type '{name}': use/mu/sigma/weights must all have "
            f"{n} entries"
        )
    filters = tuple(
        FilterSpec(
            enabled=bool(u),
            center=float(mu) / 1000.0,
            spread=float(sigma) / 1000.0,
            pooling_weight=float(w) if u else 0.0,
        )
        for u, mu, sigma, w in zip(use, mu_ms, sigma_ms, weights)
    )
    config = NeuronTypeConfig(
        name=name,
        filters=filters,
        baseline_rate=float(baseline_rate),
        modulated_rate=float(modulated_rate),
    )
    config.validate()
    return config


def neuron_type_from_dict(data: Dict) -> NeuronTypeConfig:
    """Inverse of ``NeuronTypeConfig.to_dict``."""
    config = NeuronTypeConfig(
        name=data['name'],
        filters=tuple(FilterSpec(**spec) for spec in data['filters']),
        baseline_rate=float(data['baseline_rate']),
        modulated_rate=float(data['modulated_rate']),
    )
    config.validate()
    return config


# Slot order: slow_integrator, onset_transient, fast_alpha,
#             offset_transient, delayed_bump, adapting
DEFAULT_NEURON_TYPES: Dict[str, NeuronTypeConfig] = {
    'A': make_neuron_type(
        'A',
        use=     [1,    0,    1,    0,    0,    1],
        mu_ms=   [20,   0,    2,    0,    0,    15],
        sigma_ms=[5,    0,    1,    0,    0,    5],
        weights= [1.0,  0,    0.5,  0,    0,    -0.6],
        baseline_rate=10, modulated_rate=14,
    ),
    'B': make_neuron_type(
        'B',
        use=     [0,    1,    1,    0,    1,    0],
        mu_ms=   [0,    20,   2,    0,    40,   0],
        sigma_ms=[0,    10,   1,    0,    80,   0],
        weights= [0,    1.0,  -0.4, 0,    0.8,  0],
        baseline_rate=12, modulated_rate=15,
    ),
    'C': make_neuron_type(
        'C',
        use=     [0,    0,    1,    1,    0,    0],
        mu_ms=   [0,    0,    6,    8,    0,    0],
        sigma_ms=[0,    0,    8,    10,   0,    0],
        weights= [0,    0,    0.6,  1.0,  0,    0],
        baseline_rate=12, modulated_rate=22,
    ),
}


# =============================================================================
# SIMULATION CONFIG
# =============================================================================

NORMALIZATION_METHODS = ('ensemble_max', 'trial_max', 'fixed')
SMOOTHING_SHAPES = ('gaussian', 'boxcar')


@dataclass(frozen=True)
class SimulationConfig:
    """Run-wide settings for an ensemble simulation."""
    sample_rate: float = 5000.0          # Hz
    n_neurons: int = 20                  # instances per type
    n_reps: int = 100                    # spike-train replicates per trial
    bin_ms: float = 1.0                  # re-binning resolution
    smoothing_ms: Optional[float] = None  # None -> 4 * bin_ms
    smoothing_shape: str = 'gaussian'
    rate_jitter: float = 0.1             # +/- fraction on baseline/modulated
    normalization: str = 'ensemble_max'
    normalization_reference: float = 1.0  # only used by 'fixed'
    n_drop: int = 2                      # blinded-ensemble trim count
    n_trials: int = 5                    # stimulus trials (reference provider)
    trial_duration: float = 1.0          # seconds per trial
    reduction_length: Optional[int] = None  # None -> n_trials * bins per trial
    seed: int = 42
    types: Tuple[str, ...] = field(default=('A', 'B', 'C'))

    @property
    def smoothing_width_ms(self) -> float:
        if self.smoothing_ms is None:
            return 4.0 * self.bin_ms
        return self.smoothing_ms

    @property
    def dt(self) -> float:
        return 1.0 / self.sample_rate

    def validate(self) -> None:
        if not (self.sample_rate > 0):
            raise ConfigError(f"sample_rate must be > 0, got {self.sample_rate}")
        if self.n_neurons < 1:
            raise ConfigError(f"n_neurons must be >= 1, got {self.n_neurons}")
        if self.n_reps < 1:
            raise ConfigError(f"n_reps must be >= 1, got {self.n_reps}")
        if not (self.bin_ms > 0):
            raise ConfigError(f"bin_ms must be > 0, got {self.bin_ms}")
        if not (self.smoothing_width_ms > 0):
            raise ConfigError(
                f"smoothing width must be > 0 ms, got {self.smoothing_width_ms}"
            )
        if self.smoothing_shape not in SMOOTHING_SHAPES:
            raise ConfigError(
                f"smoothing_shape must be one of {SMOOTHING_SHAPES}, "
                f"got '{self.smoothing_shape}'"
            )
        if not (0 <= self.rate_jitter < 1):
            raise ConfigError(
                f"rate_jitter must be in [0, 1), got {self.rate_jitter}"
            )
        if self.normalization not in NORMALIZATION_METHODS:
            raise ConfigError(
                f"normalization must be one of {NORMALIZATION_METHODS}, "
                f"got '{self.normalization}'"
            )
        if not (self.normalization_reference > 0):
            raise ConfigError("normalization_reference must be > 0")
        if self.n_drop < 0 or self.n_drop >= len(self.types) * self.n_neurons:
            raise ConfigError(
                f"n_drop must be in [0, {len(self.types) * self.n_neurons - 1}], "
                f"got {self.n_drop}"
            )
        if self.n_trials < 1 or not (self.trial_duration > 0):
            raise ConfigError("n_trials must be >= 1 and trial_duration > 0")
        if not self.types:
            raise ConfigError("at least one neuron type is required")

    def with_overrides(self, **overrides) -> 'SimulationConfig':
        """Return a copy with the non-None overrides applied."""
        clean = {k: v for k, v in overrides.items() if v is not None}
        if 'types' in clean:
            clean['types'] = tuple(clean['types'])
        unknown = set(clean) - set(self.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        return replace(self, **clean)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['types'] = list(self.types)
        return data


def load_config(path: Optional[str] = None, **overrides) -> SimulationConfig:
    """
    Load a SimulationConfig.

    Defaults are overlaid with the JSON file at ``path`` (if given) and
    then with keyword overrides (e.g. parsed CLI arguments).
    """
    config = SimulationConfig()
    if path is not None:
        with open(Path(path), 'r') as f:
            file_values = json.load(f)
        config = config.with_overrides(**file_values)
    config = config.with_overrides(**overrides)
    config.validate()
    return config
