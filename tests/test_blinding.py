from collections import Counter

import numpy as np
import pytest

from lnlnp_neurons.core.errors import ConfigError, DimensionError, PipelineError
from lnlnp_neurons.experiments.blinding import (
    AnswerKey,
    BlindedEnsemble,
    build_blinded_ensemble,
    build_reduction_dataset,
    downsample_stimulus,
    flatten_for_reduction,
    unflatten_reduction,
)
from lnlnp_neurons.experiments.ensemble import NeuronInstance

TYPES = ('A', 'B', 'C')


def _fake_instances(n_neurons, n_trials=3, n_bins=4):
    instances = {}
    for t, name in enumerate(TYPES):
        instances[name] = []
        for i in range(n_neurons):
            inst = NeuronInstance(type_name=name, index=i)
            # unique, recognizable values per (type, instance, trial, bin)
            inst.sdf = (1000 * t + 10 * i
                        + np.arange(n_trials * n_bins).reshape(n_trials, n_bins) / 100.0)
            instances[name].append(inst)
    return instances


def _ragged_instances(n_neurons, trial_bins=(3, 5, 2)):
    instances = {}
    for t, name in enumerate(TYPES):
        instances[name] = []
        for i in range(n_neurons):
            inst = NeuronInstance(type_name=name, index=i)
            inst.sdf = [1000 * t + 10 * i + k + np.arange(n) / 100.0
                        for k, n in enumerate(trial_bins)]
            instances[name].append(inst)
    return instances


def _lookup(instances, label):
    name, index = label
    return instances[name][index].sdf


def test_pre_trim_uses_every_instance_once():
    instances = _fake_instances(20)
    ensemble, key = build_blinded_ensemble(instances, np.random.default_rng(0), n_drop=0)

    assert len(ensemble) == 60
    assert len(set(key.labels)) == 60
    assert Counter(key.types()) == {'A': 20, 'B': 20, 'C': 20}


def test_trim_leaves_three_n_minus_two():
    instances = _fake_instances(20)
    ensemble, key = build_blinded_ensemble(instances, np.random.default_rng(0))

    assert len(ensemble) == 58
    assert len(key.dropped) == 2
    everything = set(key.labels) | set(key.dropped)
    assert len(everything) == 60


def test_dropped_entries_are_last_after_second_shuffle():
    instances = _fake_instances(20)
    _, full = build_blinded_ensemble(instances, np.random.default_rng(5), n_drop=0)
    _, trimmed = build_blinded_ensemble(instances, np.random.default_rng(5), n_drop=2)

    assert trimmed.labels == full.labels[:58]
    assert trimmed.dropped == full.labels[58:]


def test_members_match_their_answer_key():
    instances = _fake_instances(5)
    ensemble, key = build_blinded_ensemble(instances, np.random.default_rng(1))
    for member, label in zip(ensemble, key.labels):
        np.testing.assert_array_equal(member, _lookup(instances, label))


def test_order_is_shuffled():
    instances = _fake_instances(20)
    _, key = build_blinded_ensemble(instances, np.random.default_rng(2), n_drop=0)
    in_order = tuple((name, i) for name in TYPES for i in range(20))
    assert key.labels != in_order


def test_ensemble_carries_no_labels():
    instances = _fake_instances(2)
    ensemble, key = build_blinded_ensemble(instances, np.random.default_rng(3))

    assert isinstance(key, AnswerKey)
    assert "'A'" not in repr(ensemble)
    assert not any('label' in name or 'drop' in name for name in vars(ensemble))


def test_unequal_type_counts_rejected():
    instances = _fake_instances(3)
    instances['C'] = instances['C'][:2]
    with pytest.raises(DimensionError):
        build_blinded_ensemble(instances, np.random.default_rng(0))


def test_incomplete_instance_rejected():
    instances = _fake_instances(2)
    instances['B'][1].sdf = None
    with pytest.raises(PipelineError):
        build_blinded_ensemble(instances, np.random.default_rng(0))


def test_trim_must_leave_at_least_one_member():
    instances = _fake_instances(1)
    ensemble, key = build_blinded_ensemble(instances, np.random.default_rng(0), n_drop=2)
    assert len(ensemble) == 1 and len(key.dropped) == 2

    with pytest.raises(ConfigError):
        build_blinded_ensemble(instances, np.random.default_rng(0), n_drop=3)


def test_empty_ensemble_cannot_be_stacked_or_flattened():
    empty = BlindedEnsemble(members=[])
    with pytest.raises(DimensionError):
        empty.stack()
    with pytest.raises(DimensionError):
        flatten_for_reduction(empty)


def test_flatten_appends_trials_end_to_end():
    instances = _fake_instances(4, n_trials=3, n_bins=5)
    ensemble, _ = build_blinded_ensemble(instances, np.random.default_rng(4))
    data = flatten_for_reduction(ensemble, total_length=15)

    assert data.shape == (10, 15)
    np.testing.assert_array_equal(data[0], np.concatenate(list(ensemble[0])))


def test_flatten_then_unflatten_is_lossless():
    instances = _fake_instances(4, n_trials=5, n_bins=7)
    ensemble, _ = build_blinded_ensemble(instances, np.random.default_rng(6))
    restored = unflatten_reduction(flatten_for_reduction(ensemble), n_trials=5)

    assert restored.shape == (10, 5, 7)
    for member, back in zip(ensemble, restored):
        np.testing.assert_array_equal(member, back)


def test_variable_length_trials_flatten_and_split_back():
    instances = _ragged_instances(2, trial_bins=(3, 5, 2))
    ensemble, _ = build_blinded_ensemble(instances, np.random.default_rng(7))

    assert ensemble.is_ragged
    assert ensemble.trial_bins == [3, 5, 2]
    data = flatten_for_reduction(ensemble, total_length=10)
    assert data.shape == (4, 10)

    restored = unflatten_reduction(data, trial_bins=ensemble.trial_bins)
    for member, back in zip(ensemble, restored):
        assert [len(t) for t in back] == [3, 5, 2]
        for trial, trial_back in zip(member, back):
            np.testing.assert_array_equal(trial, trial_back)

    with pytest.raises(DimensionError):
        ensemble.stack()
    with pytest.raises(DimensionError):
        flatten_for_reduction(ensemble, total_length=9)
    with pytest.raises(DimensionError):
        unflatten_reduction(data, trial_bins=[3, 5, 3])


def test_flatten_length_mismatch():
    with pytest.raises(DimensionError):
        flatten_for_reduction(np.zeros((2, 3, 4)), total_length=5000)
    with pytest.raises(DimensionError):
        unflatten_reduction(np.zeros((2, 10)), n_trials=3)


def test_stack_rejects_ragged_members():
    ensemble = BlindedEnsemble(members=[np.zeros((2, 3)), np.zeros((2, 4))])
    with pytest.raises(DimensionError):
        ensemble.stack()


def test_downsample_stimulus_keeps_first_sample_per_bin():
    stimulus = np.arange(2 * 12, dtype=float).reshape(2, 12)
    stim, time = downsample_stimulus(stimulus, 5000.0, 1.0)

    np.testing.assert_array_equal(stim, [0, 5, 12, 17])
    np.testing.assert_allclose(time, [0.001, 0.002, 0.003, 0.004])


def test_downsample_variable_length_stimulus():
    stimulus = [np.arange(12, dtype=float), np.arange(100, 117, dtype=float)]
    stim, time = downsample_stimulus(stimulus, 5000.0, 1.0)

    np.testing.assert_array_equal(stim, [0, 5, 100, 105, 110])
    assert time.shape == (5,)


def test_reduction_dataset_aligns_stimulus_and_data():
    instances = _fake_instances(2, n_trials=2, n_bins=4)
    ensemble, _ = build_blinded_ensemble(instances, np.random.default_rng(0))
    stimulus = np.random.default_rng(0).random((2, 20))
    dataset = build_reduction_dataset(ensemble, stimulus, 5000.0, 1.0)

    assert dataset['data'].shape == (4, 8)
    assert dataset['stim'].shape == dataset['time'].shape == (8,)
    np.testing.assert_array_equal(dataset['trial_bins'], [4, 4])
