import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from lnlnp_neurons.core.config import SimulationConfig, make_neuron_type
from lnlnp_neurons.experiments.ensemble import create_context, run_ensemble


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture(scope="session")
def small_config():
    return SimulationConfig(
        n_neurons=2,
        n_reps=10,
        n_trials=2,
        trial_duration=1.0,
        seed=1,
    )


@pytest.fixture(scope="session")
def small_run(small_config):
    context = create_context(small_config)
    instances_by_type = run_ensemble(context, verbose=False)
    return context, instances_by_type


@pytest.fixture(scope="session")
def ragged_run():
    """Two fixed-τ types driven by three trials of different lengths."""
    config = SimulationConfig(n_neurons=2, n_reps=5, seed=3)
    neuron_types = {
        'slow': make_neuron_type(
            'slow', [1, 0, 0, 0, 0, 0], [20, 0, 0, 0, 0, 0], [0] * 6,
            [1, 0, 0, 0, 0, 0], 10, 10,
        ),
        'fast': make_neuron_type(
            'fast', [0, 0, 1, 0, 0, 0], [0, 0, 5, 0, 0, 0], [0] * 6,
            [0, 0, 1, 0, 0, 0], 12, 20,
        ),
    }
    stim_rng = np.random.default_rng(3)
    stimulus = [stim_rng.random(3000), stim_rng.random(4000), stim_rng.random(2500)]
    context = create_context(config, stimulus=stimulus, neuron_types=neuron_types)
    instances_by_type = run_ensemble(context, verbose=False)
    return context, instances_by_type
