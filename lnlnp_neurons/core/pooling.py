"""
Pooling & rate mapping (second L-N stage).

    drive(t)  = Σ_k w_k s_k(t)                 (signed pooling)
    pool(t)   = max(drive(t), 0)               (rectification)
    rate(t)   = r_base + r_mod · pool(t) / Z   (firing rate, spikes/s)

The normalization constant Z is a run-wide choice:

    'ensemble_max'  Z = max pool over every trial of the instance (default)
    'trial_max'     Z = max pool within each trial
    'fixed'         Z = fixed reference, normalized pool clipped to [0, 1]

With 'ensemble_max' the rate spans [r_base, r_base + r_mod] over the whole
stimulus set while relative trial strengths are preserved.
"""

import numpy as np
from typing import Tuple

from .errors import ConfigError, DimensionError
from .filters import FilterBank
from .stimulus import Trials, as_trials, stack_trials, trial_lengths
from .subunits import convolve_subunits, rectify


def pool_subunits(subunit_traces: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """
    Weighted sum of rectified subunit traces, rectified again.

    Parameters
    ----------
    subunit_traces : np.ndarray
        Shape (n_subunits, T)
    weights : np.ndarray
        Signed pooling weights, shape (n_subunits,)

    Returns
    -------
    pool : np.ndarray
        Non-negative pooled drive, shape (T,)
    """
    subunit_traces = np.atleast_2d(np.asarray(subunit_traces, dtype=np.float64))
    weights = np.asarray(weights, dtype=np.float64).ravel()
    if subunit_traces.shape[0] != len(weights):
        raise DimensionError(
            f"{subunit_traces.shape[0]} subunit traces but {len(weights)} weights"
        )
    return rectify(weights @ subunit_traces)


def normalize_pool(
    pools,
    method: str = 'ensemble_max',
    reference: float = 1.0
) -> Trials:
    """
    Scale pooled drive into [0, 1].

    Parameters
    ----------
    pools : np.ndarray or list of np.ndarray
        Pooled drive, shape (n_trials, T) or one 1-D trace per trial
    method : str
        'ensemble_max', 'trial_max' or 'fixed'
    reference : float
        Normalization constant for 'fixed'

    Returns
    -------
    normalized : np.ndarray or list of np.ndarray
        (n_trials, T) array, or a list when trial lengths differ; all-zero
        pools stay zero
    """
    trials = as_trials(pools)

    if method == 'ensemble_max':
        peak = max(float(np.max(trial)) for trial in trials)
        normalized = [trial / peak if peak > 0 else np.zeros_like(trial)
                      for trial in trials]
    elif method == 'trial_max':
        normalized = []
        for trial in trials:
            peak = float(np.max(trial))
            normalized.append(trial / peak if peak > 0 else np.zeros_like(trial))
    elif method == 'fixed':
        if not (reference > 0):
            raise ConfigError(f"reference must be > 0, got {reference}")
        normalized = [np.clip(trial / reference, 0.0, 1.0) for trial in trials]
    else:
        raise ConfigError(f"Unknown normalization method: {method}")

    return stack_trials(normalized)


def map_to_rate(
    normalized,
    baseline_rate: float,
    modulated_rate: float
) -> Trials:
    """rate(t) = baseline + modulated · normalized(t), in spikes/s."""
    if not (baseline_rate > 0) or not (modulated_rate > 0):
        raise ConfigError(
            f"Rates must be > 0, got baseline={baseline_rate}, "
            f"modulated={modulated_rate}"
        )
    if isinstance(normalized, list):
        return [map_to_rate(trial, baseline_rate, modulated_rate) for trial in normalized]
    normalized = np.asarray(normalized, dtype=np.float64)
    if np.any(normalized < 0):
        raise DimensionError("Normalized pool must be non-negative")
    return baseline_rate + modulated_rate * normalized


def compute_pooled_rates(
    stimulus,
    filter_bank: FilterBank,
    baseline_rate: float,
    modulated_rate: float,
    normalization: str = 'ensemble_max',
    reference: float = 1.0
) -> Tuple[Trials, Trials]:
    """
    Run both L-N stages over a whole stimulus ensemble.

    Parameters
    ----------
    stimulus : np.ndarray or list of np.ndarray
        Stimulus ensemble, shape (n_trials, T) or 1-D trials of any lengths
    filter_bank : FilterBank
        Realized subunit filters for one neuron instance
    baseline_rate, modulated_rate : float
        Instance firing-rate parameters (spikes/s)
    normalization, reference
        See ``normalize_pool``

    Returns
    -------
    pools : np.ndarray or list of np.ndarray
        Rectified pooled drive, one trace per trial
    rates : np.ndarray or list of np.ndarray
        Instantaneous firing rate, one trace per trial

    Both are (n_trials, T) arrays when all trials share a length.
    """
    trials = as_trials(stimulus)
    shortest = min(trial_lengths(trials))
    if filter_bank.max_kernel_length > shortest:
        raise ConfigError(
            f"Longest kernel ({filter_bank.max_kernel_length} samples) exceeds "
            f"the shortest trial ({shortest} samples)"
        )

    pools = [
        pool_subunits(convolve_subunits(trial, filter_bank.kernels), filter_bank.weights)
        for trial in trials
    ]
    normalized = normalize_pool(pools, normalization, reference)
    rates = map_to_rate(normalized, baseline_rate, modulated_rate)
    return stack_trials(pools), rates
