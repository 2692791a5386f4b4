"""
Saving and loading simulation outputs.

Three files, mirroring how results are handed off:

    model_neurons.npz   every instance of every type, keyed
                        "{type}/{instance}/{field}", plus stimulus and a JSON
                        metadata blob (type configs, realized filters, rates)
    blind_neurons.npz   the blinded ensemble (SDFs only, no type labels)
    pca_data.npz        reduction matrix, downsampled stimulus, time axis

Arrays are stored with ``np.savez_compressed``; metadata is JSON so files
load with ``allow_pickle=False``. Per-trial traces of different lengths are
stored one array per trial under "{key}/{trial}".
"""

import json
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..core.config import NeuronTypeConfig
from .blinding import BlindedEnsemble, flatten_for_reduction
from .ensemble import NeuronInstance


INSTANCE_ARRAYS = ('pools', 'rates', 'rasters', 'sdf', 'psth')


def _prepare(path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _put(arrays: Dict[str, np.ndarray], key: str, value) -> None:
    if isinstance(value, (list, tuple)):
        for i, trial in enumerate(value):
            arrays[f"{key}/{i}"] = np.asarray(trial)
    else:
        arrays[key] = np.asarray(value)


def _get(npz, key: str):
    """Array stored under ``key``, or the per-trial list written by ``_put``."""
    if key in npz.files:
        return npz[key]
    trials = []
    while f"{key}/{len(trials)}" in npz.files:
        trials.append(npz[f"{key}/{len(trials)}"])
    if not trials:
        raise KeyError(f"'{key}' is not in the archive")
    return trials


def save_model_neurons(
    path,
    instances_by_type: Dict[str, Sequence[NeuronInstance]],
    stimulus,
    time: np.ndarray,
    sample_rate: float,
    bin_ms: float,
    neuron_types: Optional[Dict[str, NeuronTypeConfig]] = None
) -> Path:
    """Save every neuron instance with its realized parameters and responses."""
    path = _prepare(path)
    arrays = {'time': np.asarray(time)}
    _put(arrays, 'stim', stimulus)
    metadata = {
        'sample_rate': float(sample_rate),
        'bin_ms': float(bin_ms),
        'types': {},
        'neurons': {},
    }

    for name, instances in instances_by_type.items():
        if neuron_types is not None and name in neuron_types:
            metadata['types'][name] = neuron_types[name].to_dict()
        records: List[Dict] = []
        for instance in instances:
            record = instance.to_record()
            prefix = f"{name}/{instance.index}/"
            for key in INSTANCE_ARRAYS:
                _put(arrays, prefix + key, record[key])
            for k, kernel in enumerate(record['kernels']):
                arrays[f"{prefix}kernel_{k}"] = kernel
            records.append({
                'index': instance.index,
                'baseline_rate': record['baseline_rate'],
                'modulated_rate': record['modulated_rate'],
                'filters': record['filters'],
            })
        metadata['neurons'][name] = records

    arrays['metadata'] = np.array(json.dumps(metadata))
    np.savez_compressed(path, **arrays)
    return path


def load_model_neurons(path) -> Dict:
    """
    Load a ``save_model_neurons`` file.

    Returns
    -------
    dict with 'stim', 'time', 'sample_rate', 'bin_ms', 'types' and
    'neurons'; ``neurons[type][instance][field]`` holds per-trial arrays,
    e.g. ``neurons['A'][0]['sdf'][trial]``.
    """
    with np.load(Path(path), allow_pickle=False) as npz:
        metadata = json.loads(str(npz['metadata']))
        neurons: Dict[str, Dict[int, Dict]] = {}
        for name, records in metadata['neurons'].items():
            neurons[name] = {}
            for rec in records:
                prefix = f"{name}/{rec['index']}/"
                entry = dict(rec)
                for key in INSTANCE_ARRAYS:
                    entry[key] = _get(npz, prefix + key)
                entry['kernels'] = [
                    npz[f"{prefix}kernel_{k}"] for k in range(len(rec['filters']['slots']))
                ]
                neurons[name][rec['index']] = entry
        return {
            'stim': _get(npz, 'stim'),
            'time': npz['time'],
            'sample_rate': metadata['sample_rate'],
            'bin_ms': metadata['bin_ms'],
            'types': metadata['types'],
            'neurons': neurons,
        }


def save_blinded_ensemble(
    path,
    ensemble: BlindedEnsemble,
    stimulus,
    time: np.ndarray,
    sample_rate: float,
    bin_ms: float
) -> Path:
    """
    Save the blinded ensemble; type labels are never written.

    Equal-length trials are stored as ``sdf`` (n_members, n_trials, n_bins).
    Otherwise ``sdf_rows`` holds the flattened rows and ``trial_bins`` the
    per-trial split points.
    """
    path = _prepare(path)
    arrays = {
        'time': np.asarray(time),
        'sample_rate': np.array(float(sample_rate)),
        'bin_ms': np.array(float(bin_ms)),
        'trial_bins': np.asarray(ensemble.trial_bins),
    }
    if ensemble.is_ragged:
        arrays['sdf_rows'] = flatten_for_reduction(ensemble)
    else:
        arrays['sdf'] = ensemble.stack()
    _put(arrays, 'stim', stimulus)
    np.savez_compressed(path, **arrays)
    return path


def load_blinded_ensemble(path) -> Dict:
    with np.load(Path(path), allow_pickle=False) as npz:
        loaded = {
            key: npz[key] for key in npz.files
            if not key.startswith('stim/')
        }
        loaded['stim'] = _get(npz, 'stim')
        return loaded


def save_reduction_dataset(path, dataset: Dict[str, np.ndarray]) -> Path:
    """Save the output of ``build_reduction_dataset``."""
    path = _prepare(path)
    arrays = {key: dataset[key] for key in ('data', 'stim', 'time')}
    if 'trial_bins' in dataset:
        arrays['trial_bins'] = dataset['trial_bins']
    np.savez_compressed(path, **arrays)
    return path
