"""
Visualization tools for understanding what CompAE neurons learn.

This module provides:
- Weight grids: each neuron's weights drawn as an image
- Reconstruction panels: input, pooled reconstruction and signed error
- Activation bars: how strongly each neuron responds to an input
"""

import torch
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns


class WeightVisualizer:
    """
    Visualization suite for a CompAENetwork.

    Example:
        >>> visualizer = WeightVisualizer(network, neuron_labels=trainer.neuron_labels)
        >>> visualizer.plot_weights()
        >>> visualizer.plot_reconstruction(test_images[0], label=7)

    Args:
        network: CompAENetwork instance
        neuron_labels: Optional label per neuron (from CompAETrainer.assign_labels)
    """

    def __init__(self, network, neuron_labels=None):
        self.network = network
        self.neuron_labels = neuron_labels

    def _neuron_title(self, idx: int) -> str:
        if self.neuron_labels is None:
            return f"Neuron {idx}"
        return f"Neuron {idx} (label {int(self.neuron_labels[idx])})"

    def plot_weights(self, weights=None, cols: int = 5, figsize=None, title=None):
        """
        Draw every neuron's weights as a ``side x side`` heatmap.

        Args:
            weights: Optional ``[num_neurons, side, side]`` array (e.g. from
                serialization.load_weights); defaults to the live network
            cols: Heatmaps per row
            figsize: Figure size (defaults to automatic)
            title: Overall figure title

        Returns:
            The matplotlib Figure
        """
        if weights is None:
            weights = np.asarray(self.network.export_weights())
        weights = np.asarray(weights)

        num_neurons = weights.shape[0]
        cols = min(cols, num_neurons)
        rows = int(np.ceil(num_neurons / cols))
        if figsize is None:
            figsize = (3 * cols, 3 * rows)

        fig, axes = plt.subplots(rows, cols, figsize=figsize, squeeze=False)
        if title:
            fig.suptitle(title, fontsize=16, fontweight='bold')

        for idx, ax in enumerate(axes.flat):
            if idx >= num_neurons:
                ax.axis('off')
                continue
            sns.heatmap(
                weights[idx], ax=ax, cmap='viridis', cbar=False,
                xticklabels=False, yticklabels=False, square=True
            )
            ax.set_title(self._neuron_title(idx), fontsize=10)

        plt.tight_layout()
        return fig

    def plot_reconstruction(self, image, label=None, figsize=(16, 4)):
        """
        Show how the population reconstructs one image.

        Panels: input, pooled reconstruction, signed error, and per-neuron
        activations. Only the prediction phase runs; weights are untouched.

        Returns:
            The matplotlib Figure
        """
        network = self.network
        recon = network.reconstruct(image).cpu().numpy()

        side = network.side
        measures = network.inputs.measures.view(side, side).cpu().numpy()
        error = network.inputs.error().view(side, side).cpu().numpy()
        activations = torch.stack(
            [neuron.current_activation for neuron in network.neurons()]
        ).cpu().numpy()

        fig, axes = plt.subplots(1, 4, figsize=figsize)

        ax = axes[0]
        ax.imshow(measures, cmap='gray', vmin=0, vmax=1)
        ax.set_title("Input" if label is None else f"Input (label {label})", fontweight='bold')
        ax.axis('off')

        ax = axes[1]
        ax.imshow(recon, cmap='gray')
        ax.set_title("Reconstruction", fontweight='bold')
        ax.axis('off')

        ax = axes[2]
        limit = max(float(np.abs(error).max()), 1e-6)
        sns.heatmap(
            error, ax=ax, cmap='RdBu_r', center=0, vmin=-limit, vmax=limit,
            xticklabels=False, yticklabels=False, square=True
        )
        ax.set_title("Signed Error", fontweight='bold')

        ax = axes[3]
        winner = int(np.argmax(activations))
        colors = ['green' if i == winner else 'gray' for i in range(len(activations))]
        ax.bar(range(len(activations)), activations, color=colors)
        ax.set_title(f"Activations (winner: {self._neuron_title(winner)})", fontweight='bold')
        ax.set_xlabel("Neuron")
        ax.set_ylabel("em")
        ax.grid(alpha=0.3, axis='y')

        plt.tight_layout()
        return fig
