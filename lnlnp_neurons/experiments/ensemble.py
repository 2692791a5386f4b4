"""
Ensemble orchestration: run the LN-LNP pipeline for many neuron instances.

Pipeline per instance (stages named as they appear in error messages):

    filter_bank     draw subunit time constants, build kernels
    rate_jitter     perturb baseline/modulated rates by ±rate_jitter
    pooling         convolve + rectify subunits, pool, map to firing rate
    spiking         n_reps Bernoulli-discretized Poisson spike trains
    spike_density   re-bin, PSTH, smoothed SDF

Randomness comes from an explicit SimulationContext. Each instance gets its
own child generator spawned from the run's SeedSequence, so instances are
statistically independent and can be computed in any order.

Author: Synthetic Neurons Project
Date: October 2026
"""

import numpy as np
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tqdm import tqdm

from ..core.config import DEFAULT_NEURON_TYPES, NeuronTypeConfig, SimulationConfig
from ..core.errors import ConfigError, DimensionError, PipelineError
from ..core.filters import FilterBank, build_filter_bank
from ..core.poisson_spike import generate_raster_set
from ..core.pooling import compute_pooled_rates
from ..core.spike_density import spike_density_function
from ..core.stimulus import Trials, as_trials, generate_stimuli, stack_trials, trial_lengths


# =============================================================================
# SIMULATION CONTEXT
# =============================================================================

@dataclass
class SimulationContext:
    """
    Everything a pipeline stage may read: config, stimulus, randomness.

    ``stimulus`` is a read-only (n_trials, T) array when every trial has the
    same length, otherwise a list of read-only 1-D trials. ``time`` covers
    the longest trial.
    """
    config: SimulationConfig
    stimulus: Trials
    time: np.ndarray
    neuron_types: Dict[str, NeuronTypeConfig]
    seed_sequence: np.random.SeedSequence
    rng: np.random.Generator = field(init=False)

    def __post_init__(self):
        trials = [np.array(trial) for trial in as_trials(self.stimulus)]
        for trial in trials:
            trial.setflags(write=False)
        self.stimulus = stack_trials(trials)
        if isinstance(self.stimulus, np.ndarray):
            self.stimulus.setflags(write=False)

        longest = max(self.trial_lengths)
        if len(self.time) != longest:
            raise DimensionError(
                f"Time axis has {len(self.time)} samples, the longest stimulus "
                f"trial has {longest}"
            )
        # Shuffles draw from their own stream, separate from the instances
        self.rng = np.random.default_rng(self.seed_sequence.spawn(1)[0])

    @property
    def n_trials(self) -> int:
        return len(self.stimulus)

    @property
    def trial_lengths(self) -> List[int]:
        return trial_lengths(self.stimulus)

    def spawn_rng(self) -> np.random.Generator:
        """Independent child generator for one neuron instance."""
        return np.random.default_rng(self.seed_sequence.spawn(1)[0])


def create_context(
    config: Optional[SimulationConfig] = None,
    stimulus: Optional[Trials] = None,
    time: Optional[np.ndarray] = None,
    neuron_types: Optional[Dict[str, NeuronTypeConfig]] = None
) -> SimulationContext:
    """
    Build a SimulationContext.

    Without an explicit stimulus, the reference battery from
    ``generate_stimuli`` is used (n_trials × trial_duration at sample_rate).
    An explicit stimulus may be a (n_trials, T) array or a list of 1-D
    trials of different lengths; without ``time`` the axis spans the
    longest trial.
    Without explicit neuron types, ``config.types`` are looked up in
    DEFAULT_NEURON_TYPES.
    """
    config = config or SimulationConfig()
    config.validate()
    seed_sequence = np.random.SeedSequence(config.seed)

    if neuron_types is None:
        missing = [name for name in config.types if name not in DEFAULT_NEURON_TYPES]
        if missing:
            raise ConfigError(f"Unknown neuron types: {missing}")
        neuron_types = {name: DEFAULT_NEURON_TYPES[name] for name in config.types}
    if not neuron_types:
        raise ConfigError("At least one neuron type is required")

    slot_counts = {t.n_slots for t in neuron_types.values()}
    if len(slot_counts) != 1:
        raise ConfigError(
            f"All neuron types must share one catalog size, got {sorted(slot_counts)}"
        )
    for type_config in neuron_types.values():
        type_config.validate()

    if stimulus is None:
        stim_rng = np.random.default_rng(seed_sequence.spawn(1)[0])
        stimulus, time = generate_stimuli(
            config.sample_rate, config.n_trials, config.trial_duration, stim_rng
        )
    elif time is None:
        longest = max(trial_lengths(as_trials(stimulus)))
        time = np.arange(longest) / config.sample_rate

    return SimulationContext(
        config=config,
        stimulus=stimulus,
        time=np.asarray(time, dtype=np.float64),
        neuron_types=dict(neuron_types),
        seed_sequence=seed_sequence,
    )


# =============================================================================
# NEURON INSTANCE RECORD
# =============================================================================

@dataclass
class NeuronInstance:
    """
    One concrete neuron drawn from a NeuronTypeConfig.

    Derived fields start empty and are filled stage by stage; ``require``
    checks that earlier stages completed before a later one reads them.
    """
    type_name: str
    index: int
    baseline_rate: Optional[float] = None
    modulated_rate: Optional[float] = None
    filter_bank: Optional[FilterBank] = None
    # (n_trials, ...) arrays, or per-trial lists when trial lengths differ
    pools: Optional[Trials] = None
    rates: Optional[Trials] = None
    rasters: Optional[List[np.ndarray]] = None  # n_trials × (n_reps, T_i)
    sdf: Optional[Trials] = None
    psth: Optional[Trials] = None

    def require(self, *names: str, stage: str = 'unknown') -> None:
        missing = [name for name in names if getattr(self, name) is None]
        if missing:
            raise PipelineError(
                stage, self.type_name, self.index,
                DimensionError(f"missing required fields {missing}")
            )

    @property
    def is_complete(self) -> bool:
        return all(
            getattr(self, name) is not None
            for name in ('baseline_rate', 'modulated_rate', 'filter_bank',
                         'pools', 'rates', 'rasters', 'sdf', 'psth')
        )

    def to_record(self) -> Dict:
        """Plain-array view for persistence and plotting."""
        self.require('filter_bank', 'pools', 'rates', 'rasters', 'sdf', 'psth',
                     stage='export')
        return {
            'type_name': self.type_name,
            'index': self.index,
            'baseline_rate': self.baseline_rate,
            'modulated_rate': self.modulated_rate,
            'filters': self.filter_bank.to_dict(),
            'kernels': [k.copy() for k in self.filter_bank.kernels],
            'pools': self.pools,
            'rates': self.rates,
            'rasters': stack_trials(self.rasters),
            'sdf': self.sdf,
            'psth': self.psth,
        }


@contextmanager
def _stage(name: str, instance: NeuronInstance):
    try:
        yield
    except PipelineError:
        raise
    except Exception as err:
        raise PipelineError(name, instance.type_name, instance.index, err) from err


# =============================================================================
# SINGLE-NEURON PIPELINE
# =============================================================================

def jitter_rates(
    type_config: NeuronTypeConfig,
    jitter: float,
    rng: np.random.Generator
):
    """Independently scale both rates by factors in [1 - jitter, 1 + jitter]."""
    factors = rng.uniform(1.0 - jitter, 1.0 + jitter, size=2)
    return (
        float(type_config.baseline_rate * factors[0]),
        float(type_config.modulated_rate * factors[1]),
    )


def simulate_neuron(
    type_config: NeuronTypeConfig,
    index: int,
    context: SimulationContext,
    rng: Optional[np.random.Generator] = None
) -> NeuronInstance:
    """
    Run the full LN-LNP pipeline for one neuron instance.

    Raises
    ------
    PipelineError
        Naming the failing stage, neuron type and instance index
    """
    config = context.config
    if rng is None:
        rng = context.spawn_rng()
    instance = NeuronInstance(type_name=type_config.name, index=index)

    with _stage('filter_bank', instance):
        instance.filter_bank = build_filter_bank(type_config, config.sample_rate, rng)

    with _stage('rate_jitter', instance):
        instance.baseline_rate, instance.modulated_rate = jitter_rates(
            type_config, config.rate_jitter, rng
        )

    instance.require('filter_bank', 'baseline_rate', 'modulated_rate', stage='pooling')
    with _stage('pooling', instance):
        instance.pools, instance.rates = compute_pooled_rates(
            context.stimulus,
            instance.filter_bank,
            instance.baseline_rate,
            instance.modulated_rate,
            normalization=config.normalization,
            reference=config.normalization_reference,
        )

    instance.require('rates', stage='spiking')
    with _stage('spiking', instance):
        instance.rasters = generate_raster_set(
            instance.rates, config.sample_rate, config.n_reps, rng
        )

    instance.require('rasters', stage='spike_density')
    with _stage('spike_density', instance):
        sdfs, psths = [], []
        for raster in instance.rasters:
            sdf, psth = spike_density_function(
                raster, config.bin_ms, config.sample_rate,
                width_ms=config.smoothing_width_ms,
                shape=config.smoothing_shape,
            )
            sdfs.append(sdf)
            psths.append(psth)
        instance.sdf = stack_trials(sdfs)
        instance.psth = stack_trials(psths)

    return instance


# =============================================================================
# ENSEMBLE
# =============================================================================

def run_ensemble(
    context: SimulationContext,
    verbose: bool = True
) -> Dict[str, List[NeuronInstance]]:
    """
    Simulate ``n_neurons`` instances of every neuron type.

    Instances are created per replicate index, one of each type, in the same
    interleaved order as the type catalog. A failing instance aborts the run
    with a PipelineError instead of being dropped.

    Returns
    -------
    instances_by_type : dict
        type name -> list of NeuronInstance, ordered by instance index
    """
    config = context.config
    instances_by_type: Dict[str, List[NeuronInstance]] = {
        name: [] for name in context.neuron_types
    }

    if verbose:
        print("=" * 70)
        print("LN-LNP ENSEMBLE SIMULATION")
        print("=" * 70)
        print(f"  Neuron types:    {list(context.neuron_types)}")
        print(f"  Neurons/type:    {config.n_neurons}")
        lengths = sorted(set(context.trial_lengths))
        print(f"  Stimulus trials: {context.n_trials} × {lengths} samples")
        print(f"  Sample rate:     {config.sample_rate:.0f} Hz")
        print(f"  Replicates:      {config.n_reps}")
        print(f"  Normalization:   {config.normalization}")
        print(f"  Seed:            {config.seed}")

    for index in tqdm(range(config.n_neurons), desc="Simulating neurons",
                      disable=not verbose):
        for name, type_config in context.neuron_types.items():
            instance = simulate_neuron(type_config, index, context)
            instances_by_type[name].append(instance)

    if verbose:
        n_total = sum(len(v) for v in instances_by_type.values())
        print(f"\n✓ Simulated {n_total} neuron instances")

    return instances_by_type
