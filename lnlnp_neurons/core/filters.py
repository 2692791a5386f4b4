"""
Subunit filter bank (first linear stage of the LN-LNP cascade).

=============================================================================
FILTER CATALOG
=============================================================================

Each catalog slot is a fixed temporal shape primitive with a single time
constant τ (in samples). Shapes are loosely modeled on the temporal tuning
types of Nagel & Wilson (2011):

    0. slow_integrator    exp(-t/τ)                      (unit area)
    1. onset_transient    (1 - t/τ) exp(-t/τ)            (zero mean, ON)
    2. fast_alpha         (t/τ) exp(1 - t/τ)             (unit area)
    3. offset_transient   -(1 - t/τ) exp(-t/τ)           (zero mean, OFF)
    4. delayed_bump       Gaussian at latency τ, σ = τ/4 (unit area)
    5. adapting           exp(-t/τ)/τ - exp(-t/3τ)/3τ    (zero mean)

All kernels are causal: index 0 is lag 0.

For every neuron instance, τ is drawn per enabled slot from
Normal(center, spread), folded to be positive and floored at one sample.

References:
    Vintch et al. (2012) NIPS - "Efficient and direct estimation of a
        neural subunit model for sensory coding"
    Nagel & Wilson (2011) Nat Neurosci
=============================================================================
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

from .config import NeuronTypeConfig
from .errors import ConfigError, DistributionError


# =============================================================================
# SHAPE PRIMITIVES
# =============================================================================

def _unit_area(kernel: np.ndarray) -> np.ndarray:
    total = np.sum(kernel)
    return kernel / total if total > 0 else kernel


def _unit_positive_lobe(kernel: np.ndarray) -> np.ndarray:
    # zero-mean kernels: scale so the excitatory lobe has unit area
    positive = np.sum(kernel[kernel > 0])
    return kernel / positive if positive > 0 else kernel


def _slow_integrator(t: np.ndarray, tau: float) -> np.ndarray:
    return _unit_area(np.exp(-t / tau))


def _onset_transient(t: np.ndarray, tau: float) -> np.ndarray:
    return _unit_positive_lobe((1.0 - t / tau) * np.exp(-t / tau))


def _fast_alpha(t: np.ndarray, tau: float) -> np.ndarray:
    return _unit_area((t / tau) * np.exp(1.0 - t / tau))


def _offset_transient(t: np.ndarray, tau: float) -> np.ndarray:
    return -_onset_transient(t, tau)


def _delayed_bump(t: np.ndarray, tau: float) -> np.ndarray:
    width = max(tau / 4.0, 0.5)
    return _unit_area(np.exp(-0.5 * ((t - tau) / width) ** 2))


def _adapting(t: np.ndarray, tau: float) -> np.ndarray:
    fast = np.exp(-t / tau) / tau
    slow = np.exp(-t / (3.0 * tau)) / (3.0 * tau)
    return _unit_positive_lobe(fast - slow)


@dataclass(frozen=True)
class FilterPrimitive:
    """A named temporal kernel shape and its support in units of τ."""
    name: str
    shape: Callable[[np.ndarray, float], np.ndarray]
    support: float


FILTER_CATALOG: Tuple[FilterPrimitive, ...] = (
    FilterPrimitive('slow_integrator', _slow_integrator, 5.0),
    FilterPrimitive('onset_transient', _onset_transient, 6.0),
    FilterPrimitive('fast_alpha', _fast_alpha, 6.0),
    FilterPrimitive('offset_transient', _offset_transient, 6.0),
    FilterPrimitive('delayed_bump', _delayed_bump, 2.0),
    FilterPrimitive('adapting', _adapting, 12.0),
)

CATALOG_SIZE = len(FILTER_CATALOG)


def make_kernel(primitive: FilterPrimitive, tau_samples: float) -> np.ndarray:
    """
    Sample one primitive on an integer lag grid.

    Parameters
    ----------
    primitive : FilterPrimitive
        Shape to build
    tau_samples : float
        Time constant in samples (>= 1)

    Returns
    -------
    kernel : np.ndarray
        Causal kernel, shape (L,) with L = ceil(support * τ) + 1
    """
    if not np.isfinite(tau_samples) or tau_samples < 1.0:
        raise ConfigError(
            f"{primitive.name}: tau must be >= 1 sample, got {tau_samples}"
        )
    length = int(np.ceil(primitive.support * tau_samples)) + 1
    t = np.arange(length, dtype=np.float64)
    return primitive.shape(t, tau_samples)


# =============================================================================
# PARAMETER DRAWS
# =============================================================================

def draw_filter_parameter(
    center: float,
    spread: float,
    rng: np.random.Generator,
    minimum: float = 0.0
) -> float:
    """
    Draw one filter time constant from Normal(center, spread).

    The draw is folded to be positive and floored at ``minimum``.
    ``spread == 0`` returns ``center`` exactly without consuming randomness.
    """
    if not np.isfinite(spread) or spread < 0:
        raise DistributionError(f"spread must be a finite value >= 0, got {spread}")
    if not np.isfinite(center):
        raise DistributionError(f"center must be finite, got {center}")
    if spread == 0:
        return max(float(center), minimum)
    value = abs(rng.normal(center, spread))
    return max(float(value), minimum)


# =============================================================================
# FILTER BANK
# =============================================================================

@dataclass
class FilterBank:
    """
    Realized subunit filters for one neuron instance.

    Only enabled slots carry a kernel; ``slots`` records which catalog slot
    each kernel came from.
    """
    kernels: List[np.ndarray]
    weights: np.ndarray
    slots: List[int]
    taus: np.ndarray          # seconds, realized per enabled slot
    catalog_size: int = CATALOG_SIZE
    names: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.kernels)

    def __iter__(self):
        return iter(zip(self.kernels, self.weights))

    @property
    def max_kernel_length(self) -> int:
        return max((len(k) for k in self.kernels), default=0)

    def slot_weights(self) -> np.ndarray:
        """Catalog-length weight vector; disabled slots are 0."""
        full = np.zeros(self.catalog_size)
        full[self.slots] = self.weights
        return full

    def slot_taus(self) -> np.ndarray:
        """Catalog-length τ vector in seconds; disabled slots are NaN."""
        full = np.full(self.catalog_size, np.nan)
        full[self.slots] = self.taus
        return full

    def to_dict(self) -> Dict:
        return {
            'slots': list(self.slots),
            'names': list(self.names),
            'taus': self.taus.tolist(),
            'weights': self.weights.tolist(),
        }


def build_filter_bank(
    type_config: NeuronTypeConfig,
    sample_rate: float,
    rng: np.random.Generator,
    catalog: Tuple[FilterPrimitive, ...] = FILTER_CATALOG
) -> FilterBank:
    """
    Draw one neuron instance's subunit filters from its type template.

    Parameters
    ----------
    type_config : NeuronTypeConfig
        Type template with one FilterSpec per catalog slot
    sample_rate : float
        Stimulus sample rate in Hz (seconds -> samples)
    rng : np.random.Generator
        Random source for the τ draws
    catalog : tuple of FilterPrimitive
        Shape catalog; must have one entry per slot of ``type_config``

    Returns
    -------
    bank : FilterBank
        One (kernel, weight) pair per enabled slot, in slot order
    """
    type_config.validate()
    if type_config.n_slots != len(catalog):
        raise ConfigError(
            f"Neuron type '{type_config.name}' has {type_config.n_slots} "
            f"filter slots but the catalog has {len(catalog)}"
        )
    if not (sample_rate > 0):
        raise ConfigError(f"sample_rate must be > 0, got {sample_rate}")

    dt = 1.0 / sample_rate
    kernels, weights, slots, taus, names = [], [], [], [], []

    for slot, (spec, primitive) in enumerate(zip(type_config.filters, catalog)):
        if not spec.enabled:
            continue
        tau = draw_filter_parameter(spec.center, spec.spread, rng, minimum=dt)
        kernels.append(make_kernel(primitive, max(tau * sample_rate, 1.0)))
        weights.append(spec.pooling_weight)
        slots.append(slot)
        taus.append(tau)
        names.append(primitive.name)

    return FilterBank(
        kernels=kernels,
        weights=np.asarray(weights, dtype=np.float64),
        slots=slots,
        taus=np.asarray(taus, dtype=np.float64),
        catalog_size=len(catalog),
        names=names,
    )
