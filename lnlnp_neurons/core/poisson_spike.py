"""
Poisson Spike Generator - Core Module

=============================================================================
THEORETICAL FOUNDATION
=============================================================================

INHOMOGENEOUS POISSON PROCESS, DISCRETIZED
------------------------------------------
For a firing-rate trace r(t) (Hz) sampled every dt seconds:
    - Each fine bin independently holds a spike with p(t) = r(t) × dt
    - Valid while p(t) ≤ 1 (dt = 1/sample_rate = 0.2 ms at 5 kHz)
    - As dt → 0 this converges to a Poisson process with intensity r(t)

KEY PROPERTIES (per replicate, window [0, T]):
    - E[n] = Σ_t r(t) dt = ∫ r(t) dt   (expected count)
    - Var[n] = Σ_t p(t)(1 - p(t)) ≈ E[n] for small p
    - Fano Factor ≈ 1
    - Replicates are independent: Cov[n_i, n_j] = 0 for i ≠ j

=============================================================================
"""

import numpy as np
from typing import List, Optional
from dataclasses import dataclass

from .errors import DimensionError, DistributionError
from .stimulus import as_trials


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class SpikeCountStats:
    """Statistics of spike counts across replicates."""
    mean: float
    variance: float
    fano_factor: float
    cv: float  # coefficient of variation


# =============================================================================
# CORE SPIKE GENERATION
# =============================================================================

def spike_probabilities(rate: np.ndarray, sample_rate: float) -> np.ndarray:
    """
    Per-bin spike probability p(t) = rate(t) × dt.

    Raises DistributionError for negative or non-finite rates, or when a
    bin would need more than one spike (p > 1).
    """
    if not (sample_rate > 0):
        raise DistributionError(f"sample_rate must be > 0, got {sample_rate}")
    rate = np.asarray(rate, dtype=np.float64)
    if not np.all(np.isfinite(rate)):
        raise DistributionError("Rate trace contains non-finite values")
    if np.any(rate < 0):
        raise DistributionError(f"Rate trace must be >= 0, min is {rate.min():.3g}")
    p = rate / sample_rate
    if np.any(p > 1.0):
        raise DistributionError(
            f"Rate {rate.max():.1f} Hz exceeds one spike per bin at "
            f"{sample_rate:.0f} Hz sampling"
        )
    return p


def generate_raster(
    rate: np.ndarray,
    sample_rate: float,
    n_reps: int,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Generate repeated spike-train realizations for one rate trace.

    Parameters
    ----------
    rate : np.ndarray
        Firing rate in Hz, shape (T,)
    sample_rate : float
        Sample rate of ``rate`` in Hz (fine bin = 1/sample_rate)
    n_reps : int
        Number of independent replicates
    rng : np.random.Generator, optional
        Random number generator for reproducibility

    Returns
    -------
    raster : np.ndarray
        Binary spike indicators, shape (n_reps, T), dtype uint8
    """
    if rng is None:
        rng = np.random.default_rng()
    rate = np.asarray(rate, dtype=np.float64)
    if rate.ndim != 1:
        raise DimensionError(f"Rate trace must be 1-D, got shape {rate.shape}")
    if n_reps < 1:
        raise DistributionError(f"n_reps must be >= 1, got {n_reps}")

    p = spike_probabilities(rate, sample_rate)
    draws = rng.random((n_reps, len(rate)))
    return (draws < p[np.newaxis, :]).astype(np.uint8)


def generate_raster_set(
    rates: np.ndarray,
    sample_rate: float,
    n_reps: int,
    rng: Optional[np.random.Generator] = None
) -> List[np.ndarray]:
    """
    Generate a raster for every stimulus trial.

    Parameters
    ----------
    rates : np.ndarray or list of np.ndarray
        Firing rates, shape (n_trials, T) or one 1-D trace per trial

    Returns
    -------
    rasters : list of np.ndarray
        One (n_reps, T_i) raster per trial
    """
    if rng is None:
        rng = np.random.default_rng()
    rates = as_trials(rates)
    return [generate_raster(r, sample_rate, n_reps, rng) for r in rates]


# =============================================================================
# THEORETICAL COMPUTATIONS
# =============================================================================

def expected_spike_count(rate: np.ndarray, sample_rate: float) -> float:
    """
    Expected spikes per replicate: Σ_t r(t) dt.
    """
    return float(np.sum(spike_probabilities(rate, sample_rate)))


# =============================================================================
# EMPIRICAL STATISTICS
# =============================================================================

def spike_counts(raster: np.ndarray) -> np.ndarray:
    """Total spike count per replicate, shape (n_reps,)."""
    return np.asarray(raster).sum(axis=1)


def compute_empirical_stats(counts: np.ndarray) -> SpikeCountStats:
    """
    Compute empirical statistics from spike counts.

    Parameters
    ----------
    counts : np.ndarray
        Spike counts per replicate, shape (n_reps,)

    Returns
    -------
    stats : SpikeCountStats
    """
    counts = np.asarray(counts, dtype=np.float64).ravel()
    if counts.size < 2:
        raise DimensionError("Need at least two replicates for count statistics")

    mean = float(np.mean(counts))
    variance = float(np.var(counts, ddof=1))

    # Avoid division by zero
    mean_safe = max(mean, 1e-10)

    return SpikeCountStats(
        mean=mean,
        variance=variance,
        fano_factor=variance / mean_safe,
        cv=np.sqrt(variance) / mean_safe
    )


def replicate_correlation(raster: np.ndarray, bin_size: int = 1) -> float:
    """
    Mean off-diagonal correlation between replicate spike trains.

    Replicates are binned in ``bin_size`` samples first. Independent
    replicates give values near 0.
    """
    raster = np.asarray(raster, dtype=np.float64)
    n_reps, T = raster.shape
    if n_reps < 2:
        raise DimensionError("Need at least two replicates")
    n_bins = T // bin_size
    binned = raster[:, :n_bins * bin_size].reshape(n_reps, n_bins, bin_size).sum(axis=2)
    binned = binned - binned.mean(axis=1, keepdims=True)
    norms = np.linalg.norm(binned, axis=1)
    norms = np.where(norms > 0, norms, 1.0)
    unit = binned / norms[:, np.newaxis]
    corr = unit @ unit.T
    off_diagonal = corr[~np.eye(n_reps, dtype=bool)]
    return float(np.mean(off_diagonal))
