"""
Reference stimulus ensemble.

A small fixed battery of pulse-like temporal stimuli, all scaled to [0, 1].
Any other provider works as long as it returns ``(stimulus, time)`` with
``stimulus`` either shaped (n_trials, T) or a sequence of 1-D trials of
different lengths, at the configured sample rate.
"""

import numpy as np
from scipy.ndimage import gaussian_filter1d
from typing import List, Optional, Sequence, Tuple, Union

from .errors import ConfigError, DimensionError


Trials = Union[np.ndarray, List[np.ndarray]]


# =============================================================================
# TRIAL CONTAINERS
# =============================================================================

def as_trials(stimulus) -> List[np.ndarray]:
    """
    Split a stimulus ensemble (or any per-trial trace set) into 1-D trials.

    Accepts a (n_trials, T) array, a single (T,) trial, or a sequence of
    1-D trials that may differ in length.

    Raises
    ------
    DimensionError
        No trials, an empty trial, or a trial that is not 1-D
    """
    if isinstance(stimulus, np.ndarray) and stimulus.dtype != object:
        if stimulus.ndim == 1:
            trials = [stimulus.astype(np.float64)]
        elif stimulus.ndim == 2:
            trials = list(stimulus.astype(np.float64))
        else:
            raise DimensionError(
                f"Stimulus must be (n_trials, T) or a list of 1-D trials, "
                f"got shape {stimulus.shape}"
            )
    else:
        trials = []
        for i, trial in enumerate(stimulus):
            try:
                trial = np.asarray(trial, dtype=np.float64)
            except (TypeError, ValueError) as err:
                raise DimensionError(f"Trial {i} is not a numeric trace: {err}") from err
            if trial.ndim != 1:
                raise DimensionError(
                    f"Trial {i} must be 1-D, got shape {trial.shape}"
                )
            trials.append(trial)

    if not trials:
        raise DimensionError("Stimulus ensemble has no trials")
    empty = [i for i, trial in enumerate(trials) if len(trial) == 0]
    if empty:
        raise DimensionError(f"Trials {empty} have no samples")
    return trials


def stack_trials(trials: Sequence[np.ndarray]) -> Trials:
    """One stacked array when every trial has the same shape, else a list."""
    if len({np.shape(t) for t in trials}) == 1:
        return np.stack(trials)
    return list(trials)


def trial_lengths(trials) -> List[int]:
    """Number of samples (last axis) of every trial."""
    return [np.shape(t)[-1] for t in trials]


# =============================================================================
# STIMULUS BATTERY
# =============================================================================

def _step(t: np.ndarray, duration: float, rng: np.random.Generator) -> np.ndarray:
    return ((t >= 0.2 * duration) & (t < 0.7 * duration)).astype(np.float64)


def _pulse_train(t: np.ndarray, duration: float, rng: np.random.Generator) -> np.ndarray:
    period = duration / 5.0
    phase = np.mod(t, period)
    return ((phase >= 0.3 * period) & (phase < 0.5 * period)).astype(np.float64)


def _ramp(t: np.ndarray, duration: float, rng: np.random.Generator) -> np.ndarray:
    x = np.clip((t - 0.1 * duration) / (0.6 * duration), 0.0, 1.0)
    x[t >= 0.8 * duration] = 0.0
    return x


def _ramped_sinusoid(t: np.ndarray, duration: float, rng: np.random.Generator) -> np.ndarray:
    freq = 4.0 / duration
    envelope = np.clip(t / (0.5 * duration), 0.0, 1.0)
    return envelope * 0.5 * (1.0 - np.cos(2.0 * np.pi * freq * t))


def _smoothed_noise(t: np.ndarray, duration: float, rng: np.random.Generator) -> np.ndarray:
    sample_rate = len(t) / duration
    noise = gaussian_filter1d(rng.standard_normal(len(t)), sigma=0.01 * sample_rate)
    noise -= noise.min()
    peak = noise.max()
    return noise / peak if peak > 0 else noise


STIMULUS_BATTERY = (
    ('step', _step),
    ('pulse_train', _pulse_train),
    ('ramp', _ramp),
    ('ramped_sinusoid', _ramped_sinusoid),
    ('smoothed_noise', _smoothed_noise),
)


def generate_stimuli(
    sample_rate: float = 5000.0,
    n_trials: int = 5,
    duration: float = 1.0,
    rng: Optional[np.random.Generator] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the stimulus ensemble.

    Trials cycle through the battery; trials past the first five repeat it
    (noise trials get fresh noise).

    Returns
    -------
    stimulus : np.ndarray
        Shape (n_trials, T) with T = round(duration × sample_rate)
    time : np.ndarray
        Time axis in seconds, shape (T,)
    """
    if not (sample_rate > 0) or not (duration > 0) or n_trials < 1:
        raise ConfigError(
            "sample_rate and duration must be > 0 and n_trials >= 1"
        )
    if rng is None:
        rng = np.random.default_rng()

    n_samples = int(round(duration * sample_rate))
    time = np.arange(n_samples) / sample_rate
    stimulus = np.zeros((n_trials, n_samples))
    for i in range(n_trials):
        _, make = STIMULUS_BATTERY[i % len(STIMULUS_BATTERY)]
        stimulus[i] = make(time, duration, rng)
    return stimulus, time
