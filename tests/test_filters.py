import numpy as np
import pytest

from lnlnp_neurons.core.config import DEFAULT_NEURON_TYPES, make_neuron_type
from lnlnp_neurons.core.errors import ConfigError, DistributionError
from lnlnp_neurons.core.filters import (
    CATALOG_SIZE,
    FILTER_CATALOG,
    build_filter_bank,
    draw_filter_parameter,
    make_kernel,
)

FS = 5000.0


def _primitive(name):
    return next(p for p in FILTER_CATALOG if p.name == name)


@pytest.mark.parametrize("name", sorted(DEFAULT_NEURON_TYPES))
def test_one_kernel_per_enabled_slot(name, rng):
    type_config = DEFAULT_NEURON_TYPES[name]
    bank = build_filter_bank(type_config, FS, rng)

    enabled = [i for i, spec in enumerate(type_config.filters) if spec.enabled]
    assert len(bank) == type_config.n_enabled
    assert bank.slots == enabled
    assert bank.names == [FILTER_CATALOG[i].name for i in enabled]


def test_slot_weights_keep_catalog_size(rng):
    type_config = DEFAULT_NEURON_TYPES['C']
    bank = build_filter_bank(type_config, FS, rng)
    full = bank.slot_weights()

    assert full.shape == (CATALOG_SIZE,)
    assert np.all(full[[0, 1, 4, 5]] == 0)
    assert full[2] == pytest.approx(0.6)
    assert full[3] == pytest.approx(1.0)
    assert np.isnan(bank.slot_taus()[0])


def test_zero_spread_uses_center_exactly(rng):
    type_config = make_neuron_type(
        'fixed', [1, 0, 1, 0, 0, 0], [20, 0, 3, 0, 0, 0], [0] * 6,
        [1, 0, -1, 0, 0, 0], 10, 10,
    )
    bank = build_filter_bank(type_config, FS, rng)
    np.testing.assert_array_equal(bank.taus, [0.020, 0.003])
    assert len(bank.kernels[0]) == len(make_kernel(FILTER_CATALOG[0], 0.020 * FS))


def test_instances_draw_independent_parameters(rng):
    type_config = DEFAULT_NEURON_TYPES['A']
    first = build_filter_bank(type_config, FS, rng)
    second = build_filter_bank(type_config, FS, rng)
    assert not np.allclose(first.taus, second.taus)


def test_draws_are_positive_and_floored():
    rng = np.random.default_rng(0)
    values = [draw_filter_parameter(0.0, 0.01, rng, minimum=0.0002) for _ in range(500)]
    assert min(values) >= 0.0002


def test_draw_rejects_negative_spread(rng):
    with pytest.raises(DistributionError):
        draw_filter_parameter(0.01, -0.001, rng)


def test_catalog_size_mismatch(rng):
    short = make_neuron_type('short', [1, 1], [5, 5], [1, 1], [1, 1], 5, 5)
    with pytest.raises(ConfigError):
        build_filter_bank(short, FS, rng)


def test_unit_area_kernels():
    for name in ('slow_integrator', 'fast_alpha', 'delayed_bump'):
        kernel = make_kernel(_primitive(name), 50.0)
        assert kernel.sum() == pytest.approx(1.0)
        assert np.all(kernel >= 0)


def test_transient_kernels_are_balanced():
    onset = make_kernel(_primitive('onset_transient'), 50.0)
    offset = make_kernel(_primitive('offset_transient'), 50.0)
    adapting = make_kernel(_primitive('adapting'), 50.0)

    assert onset[0] > 0 and onset.min() < 0
    np.testing.assert_allclose(offset, -onset)
    assert abs(onset.sum()) < 0.1
    assert abs(adapting.sum()) < 0.1


def test_delayed_bump_peaks_at_latency():
    kernel = make_kernel(_primitive('delayed_bump'), 40.0)
    assert np.argmax(kernel) == 40


def test_kernel_requires_at_least_one_sample():
    with pytest.raises(ConfigError):
        make_kernel(FILTER_CATALOG[0], 0.5)
