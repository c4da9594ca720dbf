"""
Training utilities for CompAE networks.

This module provides the harness around the network:
- NetworkConfig: Hyperparameters and construction of a CompAENetwork
- TrainingConfig: Epochs, progress reporting and output location
- CompAETrainer: Epoch loop, neuron labelling and the accuracy metric
"""

import torch
import numpy as np
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from .errors import ConfigurationError
from .models import CompAENetwork, NormalizationPolicy
from .weight_init import uniform_weight_sampler


@dataclass
class NetworkConfig:
    """
    Hyperparameters of a CompAE network.

    Args:
        num_neurons: Number of competing neurons
        side: Image side length (MNIST = 28)
        learning_rate: Learning rate shared by all neurons
        policy: Normalization policy
        seed: Seed for weight initialization (None = nondeterministic)
        device: torch device

    Example:
        >>> config = NetworkConfig(num_neurons=10, learning_rate=0.001, seed=0)
        >>> network = config.build()
    """
    num_neurons: int = 10
    side: int = 28
    learning_rate: float = 0.001
    policy: NormalizationPolicy = field(default_factory=NormalizationPolicy)
    seed: Optional[int] = None
    device: str = 'cpu'

    def __post_init__(self):
        if self.num_neurons < 1:
            raise ConfigurationError(f"num_neurons must be >= 1, got {self.num_neurons}")
        if self.side < 1:
            raise ConfigurationError(f"side must be >= 1, got {self.side}")
        if not self.learning_rate > 0:
            raise ConfigurationError(f"learning_rate must be positive, got {self.learning_rate}")

    def build(self) -> CompAENetwork:
        generator = None
        if self.seed is not None:
            generator = torch.Generator().manual_seed(self.seed)

        return CompAENetwork(
            learning_rate=self.learning_rate,
            num_neurons=self.num_neurons,
            side=self.side,
            weight_init=uniform_weight_sampler(self.num_neurons, generator=generator),
            policy=self.policy,
            device=self.device
        )


@dataclass
class TrainingConfig:
    """
    Configuration of a training run.

    Args:
        epochs: Passes over the training images
        log_interval: Steps between progress lines
        verbose: Whether to print progress
        output_path: Where the learned weights are pickled
    """
    epochs: int = 10
    log_interval: int = 1000
    verbose: bool = True
    output_path: str = "./output_data/data.pickle"

    def __post_init__(self):
        if self.epochs < 0:
            raise ConfigurationError(f"epochs must be >= 0, got {self.epochs}")
        if self.log_interval < 1:
            raise ConfigurationError(f"log_interval must be >= 1, got {self.log_interval}")


@dataclass
class TrainingHistory:
    """Container for training metrics history."""
    step: List[int] = field(default_factory=list)
    epoch: List[int] = field(default_factory=list)
    total: List[float] = field(default_factory=list)
    mean_abs_error: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List]:
        return {
            'step': self.step,
            'epoch': self.epoch,
            'total': self.total,
            'mean_abs_error': self.mean_abs_error
        }


def _as_images(images, side: int) -> torch.Tensor:
    """Stack images into a float tensor ``[N, side, side]``."""
    images = torch.as_tensor(images, dtype=torch.float32)
    if images.dim() == 2 and images.shape[1] == side * side:
        images = images.view(-1, side, side)
    if images.dim() != 3 or tuple(images.shape[1:]) != (side, side):
        raise ConfigurationError(
            f"Expected images shaped [N, {side}, {side}], got {tuple(images.shape)}"
        )
    return images


def _as_labels(labels, num_images: int) -> torch.Tensor:
    labels = torch.as_tensor(labels, dtype=torch.long).flatten()
    if labels.numel() != num_images:
        raise ConfigurationError(
            f"Got {labels.numel()} labels for {num_images} images"
        )
    if (labels < 0).any():
        raise ConfigurationError(
            f"Labels must be non-negative class indices, got {labels.min().item()}"
        )
    return labels


class CompAETrainer:
    """
    Training and evaluation harness for a CompAENetwork.

    Training is label-free: every image is loaded and adjusted once per
    epoch. Labels are only used afterwards, to name each neuron after the
    digit it wins most often and score how often the winning neuron's
    name matches the true label.

    Example:
        >>> network = NetworkConfig(num_neurons=10, seed=0).build()
        >>> trainer = CompAETrainer(network, TrainingConfig(epochs=10))
        >>> accuracy = trainer.take_metric(train_img, train_lbl, test_img, test_lbl)

    Args:
        network: CompAENetwork instance
        config: TrainingConfig (None = defaults)
    """

    def __init__(self, network: CompAENetwork, config: Optional[TrainingConfig] = None):
        self.network = network
        self.config = config or TrainingConfig()
        self.history = TrainingHistory()
        self.neuron_labels: Optional[torch.Tensor] = None

    def train(self, images) -> Dict[str, List]:
        """
        Run the configured number of epochs over ``images``.

        Args:
            images: Normalized images ``[N, side, side]`` in [0, 1]

        Returns:
            history: Dictionary of tracked metrics
        """
        images = _as_images(images, self.network.side)
        verbose = self.config.verbose
        global_step = len(self.history.step)

        if verbose:
            print("=" * 60)
            print("COMPAE: COMPETITIVE AUTO-ENCODING")
            print("=" * 60)
            print(f"  Neurons: {self.network.num_neurons}")
            print(f"  Inputs: {self.network.num_inputs}")
            print(f"  Learning rate: {self.network.learning_rate}")
            print(f"  Images: {len(images)} | Epochs: {self.config.epochs}")
            print("=" * 60)

        for epoch in range(self.config.epochs):
            epoch_errors = []

            for image in images:
                self.network.load_image(image)
                stats = self.network.perform_adjustment()
                epoch_errors.append(stats.mean_abs_error)

                self.history.step.append(global_step)
                self.history.epoch.append(epoch)
                self.history.total.append(stats.total)
                self.history.mean_abs_error.append(stats.mean_abs_error)

                if global_step % self.config.log_interval == 0 and verbose:
                    print(f"  Step {global_step:>6} | Ep {epoch+1} | "
                          f"Error: {stats.mean_abs_error:.4f} | "
                          f"Total: {stats.total:.4f}")

                global_step += 1

            if verbose:
                mean_error = np.mean(epoch_errors) if epoch_errors else 0.0
                print(f"  → Epoch {epoch+1}/{self.config.epochs} complete | "
                      f"Mean Error: {mean_error:.4f}")

        if verbose:
            print(f"\n{'='*60}")
            print("TRAINING COMPLETE")
            print(f"{'='*60}\n")

        return self.history.to_dict()

    def winners(self, images) -> torch.Tensor:
        """Index of the most active neuron for every image (no learning)."""
        images = _as_images(images, self.network.side)
        winners = torch.empty(len(images), dtype=torch.long)
        for i, image in enumerate(images):
            self.network.load_image(image)
            winners[i] = self.network.winner()
        return winners

    def assign_labels(self, images, labels) -> torch.Tensor:
        """
        Name each neuron after the label it wins most often.

        Neurons that win no image are labelled -1 and never count as a
        correct prediction.

        Returns:
            Label per neuron ``[num_neurons]``
        """
        images = _as_images(images, self.network.side)
        labels = _as_labels(labels, len(images))

        num_classes = int(labels.max().item()) + 1 if labels.numel() else 1
        votes = torch.zeros(self.network.num_neurons, num_classes, dtype=torch.long)
        for winner, label in zip(self.winners(images).tolist(), labels.tolist()):
            votes[winner, label] += 1

        neuron_labels = votes.argmax(dim=1)
        neuron_labels[votes.sum(dim=1) == 0] = -1
        self.neuron_labels = neuron_labels
        return neuron_labels

    def predict(self, images, neuron_labels: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Label of the winning neuron for every image."""
        neuron_labels = self._resolve_labels(neuron_labels)
        return neuron_labels[self.winners(images)]

    def evaluate(self, images, labels, neuron_labels: Optional[torch.Tensor] = None) -> float:
        """
        Fraction of images whose winning neuron carries the true label.

        Returns:
            Accuracy in [0, 1]
        """
        images = _as_images(images, self.network.side)
        labels = _as_labels(labels, len(images))
        if len(images) == 0:
            return 0.0

        preds = self.predict(images, neuron_labels)
        return preds.eq(labels).float().mean().item()

    def take_metric(self, train_images, train_labels, test_images, test_labels) -> float:
        """
        Train on the training images, label neurons with the training
        labels and return test accuracy.
        """
        self.train(train_images)
        neuron_labels = self.assign_labels(train_images, train_labels)
        accuracy = self.evaluate(test_images, test_labels, neuron_labels)

        if self.config.verbose:
            label_str = " | ".join(
                f"N{i}:{lbl}" for i, lbl in enumerate(neuron_labels.tolist())
            )
            print(f"  > Neuron labels: {label_str}")
            print(f"  > Test accuracy: {accuracy:.2%}")

        return accuracy

    def _resolve_labels(self, neuron_labels: Optional[torch.Tensor]) -> torch.Tensor:
        if neuron_labels is not None:
            return torch.as_tensor(neuron_labels, dtype=torch.long)
        if self.neuron_labels is None:
            raise ConfigurationError("Neurons have no labels; call assign_labels() first")
        return self.neuron_labels

    def get_summary(self) -> Dict[str, Any]:
        """Get training summary statistics per epoch."""
        summary = {}

        for epoch in sorted(set(self.history.epoch)):
            epoch_mask = [e == epoch for e in self.history.epoch]
            errors = [err for err, mask in zip(self.history.mean_abs_error, epoch_mask) if mask]
            totals = [tot for tot, mask in zip(self.history.total, epoch_mask) if mask]

            summary[f'epoch_{epoch}'] = {
                'mean_abs_error': float(np.mean(errors)),
                'final_abs_error': errors[-1],
                'final_total': totals[-1]
            }

        return summary

    def plot_results(self, figsize=(14, 5)):
        """Plot reconstruction error and pooled total over training."""
        import matplotlib.pyplot as plt

        fig, axs = plt.subplots(1, 2, figsize=figsize)

        def moving_avg(data, window=100):
            if len(data) < window:
                return data
            ret = np.cumsum(data, dtype=float)
            ret[window:] = ret[window:] - ret[:-window]
            return ret[window - 1:] / window

        steps = self.history.step
        epoch_starts = [s for s, e, prev in zip(steps[1:], self.history.epoch[1:], self.history.epoch) if e != prev]

        # Plot 1: Reconstruction error
        ax = axs[0]
        ax.plot(steps, self.history.mean_abs_error, color='gray', alpha=0.3, label='Raw')
        if len(steps) >= 100:
            ax.plot(steps[99:], moving_avg(self.history.mean_abs_error),
                    color='green', linewidth=2, label='Smoothed')

        for boundary in epoch_starts:
            ax.axvline(x=boundary, color='red', linestyle='--', alpha=0.6)

        ax.set_title("Reconstruction Error", fontweight='bold')
        ax.set_ylabel("Mean |Error|")
        ax.set_xlabel("Training Steps")
        ax.legend()
        ax.grid(alpha=0.3)

        # Plot 2: Pooled activation total
        ax = axs[1]
        ax.plot(steps, self.history.total, color='purple', linewidth=1)

        for boundary in epoch_starts:
            ax.axvline(x=boundary, color='red', linestyle='--', alpha=0.6)

        ax.set_title("Pooled Activation Total", fontweight='bold')
        ax.set_ylabel("Total")
        ax.set_xlabel("Training Steps")
        ax.grid(alpha=0.3)

        plt.tight_layout()
        plt.show()
