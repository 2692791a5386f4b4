"""
Spike density estimation from rasters.

Rasters arrive at the fine stimulus resolution (1/sample_rate). They are
re-binned to ``bin_ms`` milliseconds, averaged across replicates (PSTH) and
smoothed with a symmetric, unit-area kernel into a spike density function
(SDF) in spikes/s.

Every step is linear in the raster: the SDF of a summed raster is the sum
of the SDFs.
"""

import numpy as np
from scipy.signal import convolve
from typing import Optional, Tuple

from .errors import ConfigError, DimensionError


def samples_per_bin(bin_ms: float, sample_rate: float) -> int:
    """Number of fine samples in one ``bin_ms`` bin."""
    if not (bin_ms > 0) or not (sample_rate > 0):
        raise ConfigError(
            f"bin_ms and sample_rate must be > 0, got {bin_ms}, {sample_rate}"
        )
    exact = bin_ms * sample_rate / 1000.0
    n = int(round(exact))
    if n < 1 or not np.isclose(exact, n):
        raise ConfigError(
            f"bin_ms={bin_ms} is not a whole number of samples at "
            f"{sample_rate:.0f} Hz ({exact:.3f} samples)"
        )
    return n


def rebin_raster(raster: np.ndarray, bin_ms: float, sample_rate: float) -> np.ndarray:
    """
    Sum fine-resolution spikes into ``bin_ms`` bins.

    Trailing samples that do not fill a whole bin are dropped.

    Parameters
    ----------
    raster : np.ndarray
        Shape (n_reps, T)

    Returns
    -------
    counts : np.ndarray
        Shape (n_reps, T // samples_per_bin)
    """
    raster = np.atleast_2d(np.asarray(raster, dtype=np.float64))
    if raster.ndim != 2:
        raise DimensionError(f"Raster must be (n_reps, T), got {raster.shape}")
    step = samples_per_bin(bin_ms, sample_rate)
    n_reps, T = raster.shape
    n_bins = T // step
    return raster[:, :n_bins * step].reshape(n_reps, n_bins, step).sum(axis=2)


def compute_psth(raster: np.ndarray, bin_ms: float, sample_rate: float) -> np.ndarray:
    """Mean spike count per bin across replicates, shape (n_bins,)."""
    return rebin_raster(raster, bin_ms, sample_rate).mean(axis=0)


def smoothing_kernel(
    width_ms: float,
    bin_ms: float,
    shape: str = 'gaussian'
) -> np.ndarray:
    """
    Symmetric unit-area smoothing kernel on the re-binned grid.

    'gaussian': σ = width_ms, truncated at ±3σ
    'boxcar'  : flat window of width_ms (rounded to an odd bin count)
    """
    if not (width_ms > 0) or not (bin_ms > 0):
        raise ConfigError(f"width_ms and bin_ms must be > 0, got {width_ms}, {bin_ms}")
    width_bins = width_ms / bin_ms

    if shape == 'gaussian':
        half = int(np.ceil(3.0 * width_bins))
        t = np.arange(-half, half + 1, dtype=np.float64)
        kernel = np.exp(-0.5 * (t / width_bins) ** 2)
    elif shape == 'boxcar':
        n = max(1, int(round(width_bins)))
        if n % 2 == 0:
            n += 1
        kernel = np.ones(n)
    else:
        raise ConfigError(f"Unknown smoothing kernel shape: {shape}")

    return kernel / np.sum(kernel)


def spike_density_function(
    raster: np.ndarray,
    bin_ms: float,
    sample_rate: float,
    width_ms: Optional[float] = None,
    shape: str = 'gaussian'
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Smoothed firing-rate estimate from one trial's raster.

    Parameters
    ----------
    raster : np.ndarray
        Replicate spike trains for one trial, shape (n_reps, T)
    bin_ms : float
        Re-binning resolution in milliseconds
    sample_rate : float
        Raster sample rate in Hz
    width_ms : float, optional
        Smoothing kernel width; defaults to 4 × bin_ms
    shape : str
        Kernel shape ('gaussian' or 'boxcar')

    Returns
    -------
    sdf : np.ndarray
        Spike density in spikes/s, shape (n_bins,)
    psth : np.ndarray
        Mean spike count per bin, shape (n_bins,)
    """
    if width_ms is None:
        width_ms = 4.0 * bin_ms
    psth = compute_psth(raster, bin_ms, sample_rate)
    rate = psth / (bin_ms / 1000.0)
    kernel = smoothing_kernel(width_ms, bin_ms, shape)
    sdf = convolve(rate, kernel, mode='same')
    return sdf, psth
