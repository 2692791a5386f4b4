"""
Blinded ensemble construction and reduction-matrix reshaping.

=============================================================================
BLINDING PROCEDURE
=============================================================================

Given n_types types with n_neurons instances each (total = n_types × n_neurons):

    1. labels = permutation(total) mod n_types
       → every type appears exactly n_neurons times, in random order
    2. Walk the labels; each label pops the next instance from that type's
       FIFO queue (every instance is used exactly once)
    3. Apply a second full permutation to the collected entries
    4. Drop the last n_drop entries (default 2, at most total - 1)

The BlindedEnsemble carries only SDF traces. The type/instance key comes back
as a separate AnswerKey for scoring downstream analyses.

=============================================================================
REDUCTION MATRIX
=============================================================================

Each member's per-trial SDFs are appended trial after trial into one row,
giving a (n_members, Σ_trials n_bins) matrix for PCA-style tools. Trials may
differ in length. ``unflatten_reduction`` inverts this exactly.
=============================================================================
"""

import numpy as np
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.errors import ConfigError, DimensionError
from ..core.spike_density import samples_per_bin
from ..core.stimulus import Trials, as_trials, trial_lengths
from .ensemble import NeuronInstance


@dataclass
class BlindedEnsemble:
    """Shuffled, label-free collection of per-neuron SDF matrices."""
    members: List[Trials]

    def __len__(self) -> int:
        return len(self.members)

    def __getitem__(self, i: int) -> Trials:
        return self.members[i]

    def __iter__(self):
        return iter(self.members)

    @property
    def trial_bins(self) -> List[int]:
        """Bins per trial, shared by every member."""
        if not self.members:
            raise DimensionError("Blinded ensemble has no members")
        return trial_lengths(self.members[0])

    @property
    def is_ragged(self) -> bool:
        return len(set(self.trial_bins)) > 1

    def stack(self) -> np.ndarray:
        """All members as one (n_members, n_trials, n_bins) array."""
        if not self.members:
            raise DimensionError("Blinded ensemble has no members")
        if self.is_ragged:
            raise DimensionError(
                f"Trials have different lengths {self.trial_bins}; "
                f"use flatten_for_reduction instead"
            )
        shapes = {np.shape(m) for m in self.members}
        if len(shapes) > 1:
            raise DimensionError(f"Members have different shapes: {sorted(shapes)}")
        return np.stack([np.asarray(m) for m in self.members])


@dataclass(frozen=True)
class AnswerKey:
    """(type name, instance index) of every kept and trimmed entry."""
    labels: Tuple[Tuple[str, int], ...]
    dropped: Tuple[Tuple[str, int], ...]

    def types(self) -> List[str]:
        return [name for name, _ in self.labels]


def build_blinded_ensemble(
    instances_by_type: Dict[str, Sequence[NeuronInstance]],
    rng: np.random.Generator,
    n_drop: int = 2
) -> Tuple[BlindedEnsemble, AnswerKey]:
    """
    Shuffle all neuron instances into a type-blind ensemble.

    Parameters
    ----------
    instances_by_type : dict
        type name -> instances (every type must have the same count)
    rng : np.random.Generator
        Random source for both permutations
    n_drop : int
        Number of entries removed from the end after the second shuffle;
        at least one member must remain

    Returns
    -------
    ensemble : BlindedEnsemble
        ``n_types × n_neurons - n_drop`` members
    key : AnswerKey
        Member labels in ensemble order, plus the trimmed entries
    """
    type_names = list(instances_by_type)
    if not type_names:
        raise ConfigError("No neuron types to blind")
    counts = {name: len(instances_by_type[name]) for name in type_names}
    if len(set(counts.values())) != 1:
        raise DimensionError(f"Unequal instance counts per type: {counts}")

    n_types = len(type_names)
    n_neurons = counts[type_names[0]]
    total = n_types * n_neurons
    if not (0 <= n_drop < total):
        raise ConfigError(
            f"n_drop must be in [0, {total - 1}] for {total} instances, got {n_drop}"
        )

    queues = {name: deque(instances_by_type[name]) for name in type_names}

    # First shuffle: random type order, consumed from per-type queues
    type_order = rng.permutation(total) % n_types
    entries = []
    for label in type_order:
        instance = queues[type_names[label]].popleft()
        instance.require('sdf', stage='blinding')
        entries.append(instance)

    # Second shuffle, then trim from the end
    order = rng.permutation(total)
    shuffled = [entries[i] for i in order]
    kept = shuffled[:total - n_drop]
    dropped = shuffled[total - n_drop:]

    ensemble = BlindedEnsemble(members=[_copy_trials(inst.sdf) for inst in kept])
    key = AnswerKey(
        labels=tuple((inst.type_name, inst.index) for inst in kept),
        dropped=tuple((inst.type_name, inst.index) for inst in dropped),
    )
    return ensemble, key


def _copy_trials(traces: Trials) -> Trials:
    if isinstance(traces, np.ndarray):
        return traces.copy()
    return [np.array(t) for t in traces]


# =============================================================================
# REDUCTION MATRIX
# =============================================================================

def flatten_for_reduction(
    ensemble,
    total_length: Optional[int] = None
) -> np.ndarray:
    """
    Append each member's trials end to end.

    Parameters
    ----------
    ensemble : BlindedEnsemble, np.ndarray or list
        Members, an array of shape (n_members, n_trials, n_bins), or a list
        of members each holding 1-D per-trial traces of any lengths
    total_length : int, optional
        Expected row length (total bins over all trials); checked when given

    Returns
    -------
    data : np.ndarray
        Shape (n_members, total bins)
    """
    if isinstance(ensemble, BlindedEnsemble):
        members = ensemble.members
    elif isinstance(ensemble, np.ndarray):
        if ensemble.ndim != 3:
            raise DimensionError(
                f"Expected (n_members, n_trials, n_bins), got shape {ensemble.shape}"
            )
        members = list(ensemble)
    else:
        members = list(ensemble)
    if not members:
        raise DimensionError("Nothing to flatten: the ensemble has no members")

    rows = [np.concatenate(as_trials(member)) for member in members]
    row_lengths = {len(row) for row in rows}
    if len(row_lengths) > 1:
        raise DimensionError(f"Members have different total lengths: {sorted(row_lengths)}")
    row_length = row_lengths.pop()
    if total_length is not None and total_length != row_length:
        bins = trial_lengths(as_trials(members[0]))
        raise DimensionError(
            f"Configured length {total_length} != {len(bins)} trials with "
            f"{bins} bins = {row_length}"
        )
    return np.vstack(rows)


def unflatten_reduction(
    data: np.ndarray,
    n_trials: Optional[int] = None,
    trial_bins: Optional[Sequence[int]] = None
):
    """
    Inverse of ``flatten_for_reduction``.

    With ``n_trials`` (equal-length trials) returns a
    (n_members, n_trials, n_bins) array. With ``trial_bins`` returns, per
    member, a list of 1-D traces split at those lengths.
    """
    data = np.asarray(data)
    if data.ndim != 2:
        raise DimensionError(f"Expected 2-D data, got shape {data.shape}")

    if trial_bins is not None:
        trial_bins = [int(b) for b in trial_bins]
        if any(b < 1 for b in trial_bins) or sum(trial_bins) != data.shape[1]:
            raise DimensionError(
                f"Row length {data.shape[1]} does not split into trials of "
                f"{trial_bins} bins"
            )
        edges = np.cumsum(trial_bins)[:-1]
        return [np.split(row, edges) for row in data]

    if n_trials is None:
        raise ConfigError("Either n_trials or trial_bins is required")
    if n_trials < 1 or data.shape[1] % n_trials != 0:
        raise DimensionError(
            f"Row length {data.shape[1]} is not divisible into {n_trials} trials"
        )
    return data.reshape(data.shape[0], n_trials, data.shape[1] // n_trials)


def downsample_stimulus(
    stimulus: Trials,
    sample_rate: float,
    bin_ms: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Downsample and concatenate the stimulus to match the reduction rows.

    Keeps the first sample of every ``bin_ms`` bin; samples past the last
    whole bin of each trial are dropped, as in spike re-binning.

    Returns
    -------
    stim : np.ndarray
        Shape (Σ_trials n_bins,)
    time : np.ndarray
        Time axis in seconds, (1..L) × bin_ms / 1000
    """
    step = samples_per_bin(bin_ms, sample_rate)
    pieces = []
    for trial in as_trials(stimulus):
        n_bins = len(trial) // step
        pieces.append(trial[:n_bins * step:step])
    stim = np.concatenate(pieces)
    time = np.arange(1, len(stim) + 1) * bin_ms / 1000.0
    return stim, time


def build_reduction_dataset(
    ensemble: BlindedEnsemble,
    stimulus: Trials,
    sample_rate: float,
    bin_ms: float,
    total_length: Optional[int] = None
) -> Dict[str, np.ndarray]:
    """
    Package the blinded ensemble for an external dimensionality-reduction tool.

    Returns
    -------
    dict with 'data' (n_members, L), 'stim' (L,), 'time' (L,) and
    'trial_bins' (n_trials,)
    """
    data = flatten_for_reduction(ensemble, total_length)
    stim, time = downsample_stimulus(stimulus, sample_rate, bin_ms)
    if len(stim) != data.shape[1]:
        raise DimensionError(
            f"Downsampled stimulus has {len(stim)} samples, rows have {data.shape[1]}"
        )
    return {
        'data': data,
        'stim': stim,
        'time': time,
        'trial_bins': np.asarray(trial_lengths(as_trials(ensemble[0]))),
    }
