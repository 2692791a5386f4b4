"""Ensemble runs, blinding, reduction packaging and persistence."""

from .ensemble import (
    SimulationContext,
    NeuronInstance,
    create_context,
    simulate_neuron,
    run_ensemble,
)
from .blinding import (
    AnswerKey,
    BlindedEnsemble,
    build_blinded_ensemble,
    flatten_for_reduction,
    unflatten_reduction,
    downsample_stimulus,
    build_reduction_dataset,
)
