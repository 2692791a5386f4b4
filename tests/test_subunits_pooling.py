import numpy as np
import pytest

from lnlnp_neurons.core.config import DEFAULT_NEURON_TYPES, make_neuron_type
from lnlnp_neurons.core.errors import ConfigError, DimensionError
from lnlnp_neurons.core.filters import build_filter_bank
from lnlnp_neurons.core.pooling import (
    compute_pooled_rates,
    map_to_rate,
    normalize_pool,
    pool_subunits,
)
from lnlnp_neurons.core.subunits import causal_convolve, convolve_subunits


@pytest.mark.parametrize("kernel_length", [1, 7, 250, 1000])
def test_output_length_matches_trial(kernel_length, rng):
    trial = rng.standard_normal(1000)
    kernels = [rng.standard_normal(kernel_length), np.zeros(kernel_length)]
    traces = convolve_subunits(trial, kernels)

    assert traces.shape == (2, 1000)
    assert np.all(traces >= 0)
    assert np.all(traces[1] == 0)


def test_kernel_longer_than_trial_fails():
    with pytest.raises(ConfigError):
        convolve_subunits(np.ones(10), [np.ones(11)])


def test_convolution_is_causal():
    trial = np.zeros(200)
    trial[100] = 1.0
    kernel = np.exp(-np.arange(20) / 5.0)
    response = causal_convolve(trial, kernel)

    np.testing.assert_allclose(response[:100], 0.0, atol=1e-12)
    np.testing.assert_allclose(response[100:120], kernel, atol=1e-12)


def test_pool_is_rectified_weighted_sum():
    traces = np.array([[1.0, 2.0, 0.0], [0.5, 3.0, 1.0]])
    pool = pool_subunits(traces, np.array([1.0, -1.0]))
    np.testing.assert_allclose(pool, [0.5, 0.0, 0.0])


def test_pool_weight_mismatch():
    with pytest.raises(DimensionError):
        pool_subunits(np.ones((2, 5)), np.ones(3))


@pytest.mark.parametrize("seed", range(5))
def test_rate_is_non_negative_for_any_weights(seed):
    rng = np.random.default_rng(seed)
    traces = np.maximum(rng.standard_normal((4, 500)), 0)
    weights = rng.uniform(-3, 3, size=4)
    pools = pool_subunits(traces, weights)[np.newaxis, :]
    rates = map_to_rate(normalize_pool(pools), 5.0, 20.0)

    assert np.all(pools >= 0)
    assert np.all(rates >= 5.0)
    assert np.all(rates <= 25.0 + 1e-9)


def test_normalization_methods():
    pools = np.array([[0.0, 1.0, 2.0], [0.0, 4.0, 0.0], [0.0, 0.0, 0.0]])

    ensemble = normalize_pool(pools, 'ensemble_max')
    np.testing.assert_allclose(ensemble[0], [0.0, 0.25, 0.5])
    assert ensemble.max() == 1.0

    per_trial = normalize_pool(pools, 'trial_max')
    np.testing.assert_allclose(per_trial[0], [0.0, 0.5, 1.0])
    np.testing.assert_allclose(per_trial[2], 0.0)

    fixed = normalize_pool(pools, 'fixed', reference=2.0)
    np.testing.assert_allclose(fixed[1], [0.0, 1.0, 0.0])

    with pytest.raises(ConfigError):
        normalize_pool(pools, 'median')


def test_all_zero_pool_gives_baseline():
    rates = map_to_rate(normalize_pool(np.zeros((2, 10))), 8.0, 12.0)
    np.testing.assert_allclose(rates, 8.0)


def test_map_to_rate_rejects_non_positive_rates():
    with pytest.raises(ConfigError):
        map_to_rate(np.zeros(5), 0.0, 1.0)
    with pytest.raises(ConfigError):
        map_to_rate(np.zeros(5), 1.0, -1.0)


def test_compute_pooled_rates_shapes(rng):
    stimulus = np.clip(rng.standard_normal((3, 5000)), 0, None)
    bank = build_filter_bank(DEFAULT_NEURON_TYPES['B'], 5000.0, rng)
    pools, rates = compute_pooled_rates(stimulus, bank, 12.0, 15.0)

    assert pools.shape == rates.shape == (3, 5000)
    assert rates.min() >= 12.0
    assert rates.max() == pytest.approx(27.0)


def _integrator_bank(rng):
    type_config = make_neuron_type(
        'integrator', [1, 0, 0, 0, 0, 0], [20, 0, 0, 0, 0, 0], [0] * 6,
        [1, 0, 0, 0, 0, 0], 10, 10,
    )
    return build_filter_bank(type_config, 5000.0, rng)


def test_compute_pooled_rates_variable_length_trials(rng):
    short = np.zeros(1000)
    short[200:600] = 1.0
    long = np.zeros(1500)
    long[300:1200] = 0.5
    bank = _integrator_bank(rng)
    pools, rates = compute_pooled_rates([short, long], bank, 10.0, 10.0)

    assert isinstance(pools, list) and isinstance(rates, list)
    assert [len(p) for p in pools] == [len(r) for r in rates] == [1000, 1500]
    # ensemble-wide peak sits in the stronger, shorter trial
    assert rates[0].max() == pytest.approx(20.0)
    assert rates[1].max() < 20.0
    assert min(r.min() for r in rates) >= 10.0


def test_compute_pooled_rates_checks_longest_kernel_against_shortest_trial(rng):
    bank = _integrator_bank(rng)
    assert bank.max_kernel_length == max(len(k) for k in bank.kernels) > 200

    with pytest.raises(ConfigError):
        compute_pooled_rates([np.ones(1000), np.ones(200)], bank, 10.0, 10.0)


def test_malformed_trials_raise_dimension_error(rng):
    bank = _integrator_bank(rng)
    with pytest.raises(DimensionError):
        compute_pooled_rates([np.ones(1000), np.ones((2, 1000))], bank, 10.0, 10.0)
    with pytest.raises(DimensionError):
        compute_pooled_rates([], bank, 10.0, 10.0)
