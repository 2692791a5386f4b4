"""
Subunit convolution engine (first L-N stage).

Each subunit is a causal temporal filter followed by half-wave
rectification:

    s_k(t) = max( Σ_τ h_k(τ) x(t - τ), 0 )
"""

import numpy as np
from scipy.signal import fftconvolve
from typing import Sequence

from .errors import ConfigError, DimensionError


def rectify(x: np.ndarray) -> np.ndarray:
    """Half-wave rectification max(x, 0)."""
    return np.maximum(x, 0.0)


def causal_convolve(signal: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """
    Causal convolution truncated to the signal length.

    Parameters
    ----------
    signal : np.ndarray
        Trial time series, shape (T,)
    kernel : np.ndarray
        Causal kernel, shape (L,) with L <= T

    Returns
    -------
    response : np.ndarray
        Shape (T,); response[t] only depends on signal[:t + 1]
    """
    signal = np.asarray(signal, dtype=np.float64)
    kernel = np.asarray(kernel, dtype=np.float64)
    if signal.ndim != 1 or kernel.ndim != 1:
        raise DimensionError(
            f"Expected 1-D signal and kernel, got {signal.shape} and {kernel.shape}"
        )
    if len(kernel) > len(signal):
        raise ConfigError(
            f"Kernel support ({len(kernel)} samples) exceeds trial length "
            f"({len(signal)} samples)"
        )
    return fftconvolve(signal, kernel, mode='full')[:len(signal)]


def convolve_subunits(
    trial: np.ndarray,
    kernels: Sequence[np.ndarray]
) -> np.ndarray:
    """
    Filter one stimulus trial through every subunit and rectify.

    Kernels are never skipped, even ones whose pooling weight is 0.

    Returns
    -------
    subunit_traces : np.ndarray
        Shape (n_kernels, T)
    """
    trial = np.asarray(trial, dtype=np.float64)
    if trial.ndim != 1:
        raise DimensionError(f"Trial must be 1-D, got shape {trial.shape}")
    traces = np.zeros((len(kernels), len(trial)))
    for k, kernel in enumerate(kernels):
        traces[k] = rectify(causal_convolve(trial, kernel))
    return traces
