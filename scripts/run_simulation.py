#!/usr/bin/env python
"""
Run the LN-LNP synthetic neuron simulation.

Simulates n_neurons instances of each neuron type, saves every instance,
builds the blinded ensemble and the PCA-ready reduction matrix.

Usage:
    python scripts/run_simulation.py
    python scripts/run_simulation.py --n_neurons 5 --n_reps 50 --seed 7
    python scripts/run_simulation.py --config my_config.json --no_plot
"""

import sys
import os
import argparse
from pathlib import Path

# Add parent directory to path to import lnlnp_neurons package
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

from lnlnp_neurons.core.config import load_config, NORMALIZATION_METHODS
from lnlnp_neurons.experiments.ensemble import create_context, run_ensemble
from lnlnp_neurons.experiments.blinding import (
    build_blinded_ensemble,
    build_reduction_dataset,
)
from lnlnp_neurons.experiments.persistence import (
    save_model_neurons,
    save_blinded_ensemble,
    save_reduction_dataset,
)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Simulate LN-LNP model neurons and build a blinded ensemble'
    )
    parser.add_argument('--config', type=str, default=None,
                        help='JSON file overriding default settings')
    parser.add_argument('--n_neurons', type=int, default=None,
                        help='Instances per neuron type (default: 20)')
    parser.add_argument('--n_reps', type=int, default=None,
                        help='Spike-train replicates per trial (default: 100)')
    parser.add_argument('--bin_ms', type=float, default=None,
                        help='Spike density bin size in ms (default: 1)')
    parser.add_argument('--sample_rate', type=float, default=None,
                        help='Stimulus sample rate in Hz (default: 5000)')
    parser.add_argument('--n_drop', type=int, default=None,
                        help='Entries trimmed from the blinded ensemble (default: 2)')
    parser.add_argument('--normalization', type=str, default=None,
                        choices=NORMALIZATION_METHODS,
                        help='Pooled-drive normalization (default: ensemble_max)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed (default: 42)')
    parser.add_argument('--output_dir', type=str, default='results',
                        help='Output directory (default: results)')
    parser.add_argument('--no_plot', action='store_true',
                        help='Disable plotting')
    return parser.parse_args(argv)


def main(args) -> int:
    config = load_config(
        args.config,
        n_neurons=args.n_neurons,
        n_reps=args.n_reps,
        bin_ms=args.bin_ms,
        sample_rate=args.sample_rate,
        n_drop=args.n_drop,
        normalization=args.normalization,
        seed=args.seed,
    )
    output_dir = Path(args.output_dir)

    print("\n" + "=" * 60)
    print(" LN-LNP MODEL NEURONS")
    print("=" * 60)
    print("\nConfiguration:")
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")
    print()

    context = create_context(config)
    instances_by_type = run_ensemble(context)

    ensemble, _ = build_blinded_ensemble(instances_by_type, context.rng, config.n_drop)
    dataset = build_reduction_dataset(
        ensemble, context.stimulus, config.sample_rate, config.bin_ms,
        total_length=config.reduction_length,
    )
    print(f"\n✓ Blinded ensemble: {len(ensemble)} members, "
          f"reduction matrix {dataset['data'].shape}")

    save_model_neurons(
        output_dir / 'model_neurons_output.npz', instances_by_type,
        context.stimulus, context.time, config.sample_rate, config.bin_ms,
        context.neuron_types,
    )
    save_blinded_ensemble(
        output_dir / 'blind_neurons.npz', ensemble,
        context.stimulus, context.time, config.sample_rate, config.bin_ms,
    )
    save_reduction_dataset(output_dir / 'pca' / 'pca_data.npz', dataset)
    print(f"✓ Saved results to {output_dir}/")

    if not args.no_plot:
        from lnlnp_neurons.analysis.plotting import (
            plot_neuron_responses,
            plot_blinded_ensemble,
        )
        for name, instances in instances_by_type.items():
            plot_neuron_responses(
                instances[min(1, len(instances) - 1)], context.stimulus,
                config.bin_ms, config.sample_rate,
                save_path=str(output_dir / 'figures' / f'neuron_{name}.png'),
            )
        plot_blinded_ensemble(
            dataset['data'], dataset['time'],
            save_path=str(output_dir / 'figures' / 'blinded_ensemble.png'),
        )

    print("\n" + "=" * 60)
    print(" SIMULATION COMPLETE")
    print("=" * 60)
    return 0


if __name__ == '__main__':
    args = parse_args()
    try:
        sys.exit(main(args))
    except KeyboardInterrupt:
        print("\n\nSimulation interrupted by user.")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Simulation failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
