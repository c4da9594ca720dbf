"""
CompAE: Competitive Auto-Encoding Neurons

A single layer of competing neurons, each holding one weight per input
pixel, jointly learns a weighted reconstruction of its input images. There
is no backpropagation and labels never touch the weights: every training
step is a synchronous, network-wide sweep of three phases.

- Prediction: every neuron computes its activation (weighted pixel sum over
  its own weight mass), pools it into a shared total and adds its weighted
  proposal to every pixel's reconstruction
- Error caching: every pixel stores reconstruction minus true intensity
- Learning: every neuron moves its weights against the pixel errors, scaled
  by its share of the pooled total, and floors them at 0

Quick Start:
    >>> from compae import NetworkConfig, TrainingConfig, CompAETrainer
    >>>
    >>> network = NetworkConfig(num_neurons=10, learning_rate=0.001, seed=0).build()
    >>> trainer = CompAETrainer(network, TrainingConfig(epochs=10))
    >>> accuracy = trainer.take_metric(train_img, train_lbl, test_img, test_lbl)

See examples/ directory for a complete MNIST run.
"""

# === MODELS ===
from .models import (
    NormalizationPolicy,
    AdjustmentStats,
    WeightHolder,
    NeuronicInputs,
    NeuronicInput,
    CompAENeuron,
    CompAENetwork,
    ImageNetwork,
)

# === INITIALIZATION ===
from .weight_init import (
    uniform_weight_sampler,
    constant_weights,
)

# === TRAINING ===
from .training import (
    NetworkConfig,
    TrainingConfig,
    TrainingHistory,
    CompAETrainer,
)

# === PERSISTENCE ===
from .serialization import (
    save_weights,
    load_weights,
)

# === VISUALIZATION ===
from .visualization import WeightVisualizer

# === ERRORS ===
from .errors import (
    CompAEError,
    ConfigurationError,
    PixelOutOfRangeError,
    ImageShapeError,
    IncompleteImageError,
    DegenerateNormalization,
    SerializationError,
)

__version__ = "0.1.0"

__all__ = [
    # Core Models
    "NormalizationPolicy",
    "AdjustmentStats",
    "WeightHolder",
    "NeuronicInputs",
    "NeuronicInput",
    "CompAENeuron",
    "CompAENetwork",
    "ImageNetwork",

    # Initialization
    "uniform_weight_sampler",
    "constant_weights",

    # Training
    "NetworkConfig",
    "TrainingConfig",
    "TrainingHistory",
    "CompAETrainer",

    # Persistence
    "save_weights",
    "load_weights",

    # Visualization
    "WeightVisualizer",

    # Errors
    "CompAEError",
    "ConfigurationError",
    "PixelOutOfRangeError",
    "ImageShapeError",
    "IncompleteImageError",
    "DegenerateNormalization",
    "SerializationError",
]
