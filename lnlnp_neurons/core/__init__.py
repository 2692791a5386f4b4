"""Core LN-LNP cascade: filters, subunits, pooling, spiking, spike density."""

from .errors import (
    LNLNPError,
    ConfigError,
    DistributionError,
    DimensionError,
    PipelineError,
)
from .config import (
    FilterSpec,
    NeuronTypeConfig,
    SimulationConfig,
    DEFAULT_NEURON_TYPES,
    make_neuron_type,
    load_config,
)
from .filters import FILTER_CATALOG, FilterBank, build_filter_bank
from .subunits import convolve_subunits
from .pooling import pool_subunits, normalize_pool, map_to_rate, compute_pooled_rates
from .poisson_spike import generate_raster, generate_raster_set
from .spike_density import spike_density_function, compute_psth
from .stimulus import generate_stimuli
