"""
Figures for simulated neurons and the blinded ensemble.

Functions take plain arrays or NeuronInstance records, return the
matplotlib Figure, and optionally save it.
"""

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
from typing import Optional, Sequence

from ..core.spike_density import samples_per_bin
from ..core.stimulus import as_trials
from ..experiments.ensemble import NeuronInstance


def _finish(fig, save_path: Optional[str], show_plot: bool):
    if save_path is not None:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"✓ Saved: {save_path}")
    if show_plot:
        plt.show()
    return fig


def plot_neuron_responses(
    instance: NeuronInstance,
    stimulus,
    bin_ms: float,
    sample_rate: float,
    trials: Sequence[int] = (0, 2, 4),
    save_path: Optional[str] = None,
    show_plot: bool = False
):
    """
    Raster, spike density and stimulus/pooled output for selected trials.

    One column per trial:
        row 1  spike raster (one line per replicate), bins in ms
        row 2  spike density function
        row 3  stimulus with the max-normalized pooled filter output
    """
    instance.require('rasters', 'sdf', 'pools', stage='plotting')
    stimulus = as_trials(stimulus)
    trials = [t for t in trials if t < len(instance.rasters)]
    step = samples_per_bin(bin_ms, sample_rate)

    sns.set_theme(style="white")
    fig, axes = plt.subplots(3, len(trials), figsize=(5 * len(trials), 9),
                             squeeze=False)

    for col, trial in enumerate(trials):
        raster = instance.rasters[trial]
        spike_times = [np.flatnonzero(rep) / step * bin_ms for rep in raster]

        ax = axes[0, col]
        ax.eventplot(spike_times, colors='black', linelengths=0.8, linewidths=0.8)
        ax.set_title('Model Neuron Spiking', fontweight='bold')
        ax.set_ylabel('Trial Number')
        ax.set_xlabel('Bins (ms)')

        ax = axes[1, col]
        sdf = instance.sdf[trial]
        ax.plot(np.arange(len(sdf)) * bin_ms, sdf, color=sns.color_palette()[0])
        ax.set_ylabel('Spike Density (spikes/s)')
        ax.set_xlabel('Time (ms)')
        axes[1, col].sharex(axes[0, col])

        ax = axes[2, col]
        t_ms = np.arange(len(stimulus[trial])) / sample_rate * 1000.0
        pool = instance.pools[trial]
        peak = pool.max()
        ax.plot(t_ms, stimulus[trial], color='gray', label='Stimulus')
        ax.plot(t_ms, pool / peak if peak > 0 else pool,
                color=sns.color_palette()[1], label='Pooled Filter Output')
        ax.set_xlabel('Time (ms)')
        ax.set_ylabel('a.u.')
        if col == 0:
            ax.legend(fontsize=9)

    sns.despine(fig)
    fig.suptitle(f"Neuron type {instance.type_name}, instance {instance.index}",
                 fontsize=13)
    fig.tight_layout()
    return _finish(fig, save_path, show_plot)


def plot_blinded_ensemble(
    data: np.ndarray,
    time: Optional[np.ndarray] = None,
    save_path: Optional[str] = None,
    show_plot: bool = False
):
    """Heatmap of the reduction matrix (members × concatenated time)."""
    data = np.asarray(data)
    fig, ax = plt.subplots(figsize=(12, 6))
    sns.heatmap(data, ax=ax, cmap='viridis', cbar_kws={'label': 'Spike Density (spikes/s)'},
                xticklabels=False, yticklabels=False)
    ax.set_ylabel(f'Blinded Neuron ({data.shape[0]})')
    if time is not None and len(time):
        ax.set_xlabel(f'Concatenated Time (0 - {time[-1]:.2f} s)')
    else:
        ax.set_xlabel('Concatenated Time (bins)')
    ax.set_title('Blinded Ensemble Spike Densities', fontweight='bold')
    fig.tight_layout()
    return _finish(fig, save_path, show_plot)
