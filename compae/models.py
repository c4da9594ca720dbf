"""
Core models for competitive auto-encoding (CompAE) neurons.

A population of competing neurons, each holding one weight per input pixel,
jointly learns a weighted reconstruction of the loaded image:

    em_n        = sum_i(w_ni * measure_i) / norm(sum_i w_ni)
    total       = sum_n em_n
    recon_i     = sum_n(em_n * w_ni) / total
    error_i     = recon_i - measure_i
    w_ni       <- max(0, w_ni - error_i * (em_n / total) * lr)

Key Components:
- NormalizationPolicy: Named choice of the normalization variants
- WeightHolder: Pooled activation total shared by every neuron
- NeuronicInputs: Per-pixel measures, accumulated predictions and errors
- CompAENeuron: One competing unit with its weight vector
- CompAENetwork: Owns everything and runs the three-barrier update
"""

from dataclasses import dataclass
from typing import List, Literal, Optional, Protocol, Tuple, get_args, runtime_checkable

import torch
import torch.nn as nn

from .errors import (
    ConfigurationError,
    DegenerateNormalization,
    ImageShapeError,
    IncompleteImageError,
    PixelOutOfRangeError,
)
from .weight_init import WeightSampler, uniform_weight_sampler


ActivationNorm = Literal["weight_sum", "sqrt_weight_sum"]
AccumulationMode = Literal["per_image", "persistent"]
PoolingMode = Literal["pooled", "unit"]
DegenerateMode = Literal["zero", "raise"]


@dataclass(frozen=True)
class NormalizationPolicy:
    """
    Fixed configuration of how activations and reconstructions are normalized.

    Args:
        activation: Divide a neuron's weighted sum by its raw weight sum
            ("weight_sum") or by the square root of it ("sqrt_weight_sum")
        accumulation: Zero each pixel's accumulated prediction when a new
            image starts ("per_image") or keep summing across images
            ("persistent")
        pooling: Reconstruct with the pooled activation total ("pooled") or
            with a constant total of 1.0 ("unit")
        on_degenerate: When a normalizer is exactly zero, define the result
            as 0 ("zero") or raise DegenerateNormalization ("raise")
    """
    activation: ActivationNorm = "weight_sum"
    accumulation: AccumulationMode = "per_image"
    pooling: PoolingMode = "pooled"
    on_degenerate: DegenerateMode = "zero"

    def __post_init__(self):
        for name, mode in (
            ("activation", ActivationNorm),
            ("accumulation", AccumulationMode),
            ("pooling", PoolingMode),
            ("on_degenerate", DegenerateMode),
        ):
            value = getattr(self, name)
            if value not in get_args(mode):
                raise ConfigurationError(
                    f"Invalid {name} policy {value!r}; expected one of {get_args(mode)}"
                )

    def weight_mass(self, weight_sum: torch.Tensor) -> torch.Tensor:
        """Denominator of a neuron's activation for a given weight sum."""
        if self.activation == "sqrt_weight_sum":
            return weight_sum.sqrt()
        return weight_sum

    def divide(self, numerator: torch.Tensor, denominator: torch.Tensor, what: str) -> torch.Tensor:
        """Divide, applying the degenerate policy when ``denominator`` is 0."""
        if denominator.item() != 0.0:
            return numerator / denominator
        if self.on_degenerate == "raise":
            raise DegenerateNormalization(f"{what} is zero")
        return torch.zeros_like(numerator)


@dataclass
class AdjustmentStats:
    """Summary of one training step; ``total`` is the summed activations."""
    total: float
    mean_abs_error: float


# === SHARED STATE ===

class WeightHolder(nn.Module):
    """
    Pooled activation mass of all neurons for the current image.

    Every neuron adds its activation during the prediction phase; the total
    is the normalizer for reconstructions and learning shares. The network
    clears it once at the start of each image.
    """

    def __init__(self, pooling: PoolingMode = "pooled", device='cpu', dtype=torch.float32):
        super().__init__()
        self.pooling = pooling
        self.register_buffer("total_weight", torch.zeros((), device=device, dtype=dtype))

    def clear(self):
        self.total_weight.zero_()

    def increase(self, amount):
        self.total_weight += amount

    def total(self) -> torch.Tensor:
        """Normalizer for the current image (a 0-d tensor)."""
        if self.pooling == "unit":
            return torch.ones_like(self.total_weight)
        return self.total_weight


class NeuronicInputs(nn.Module):
    """
    The input layer: one measure, accumulated prediction and cached error
    per pixel, stored as flat ``[num_inputs]`` buffers.

    ``inputs[i]`` gives a NeuronicInput view of pixel ``i``.
    """

    def __init__(
        self,
        num_inputs: int,
        policy: Optional[NormalizationPolicy] = None,
        device='cpu',
        dtype=torch.float32
    ):
        super().__init__()
        self.num_inputs = num_inputs
        self.policy = policy or NormalizationPolicy()

        self.register_buffer("measures", torch.zeros(num_inputs, device=device, dtype=dtype))
        self.register_buffer("accumulated_predictions", torch.zeros(num_inputs, device=device, dtype=dtype))
        self.register_buffer("cached_errors", torch.zeros(num_inputs, device=device, dtype=dtype))

    def __len__(self) -> int:
        return self.num_inputs

    def __getitem__(self, index: int) -> "NeuronicInput":
        if not -self.num_inputs <= index < self.num_inputs:
            raise IndexError(f"Input index {index} out of range for {self.num_inputs} inputs")
        return NeuronicInput(self, index % self.num_inputs)

    def __iter__(self):
        return (NeuronicInput(self, i) for i in range(self.num_inputs))

    def load_measure(self, index: int, value: float):
        self.measures[index] = value

    def load_measures(self, values: torch.Tensor):
        """Load a whole flat image at once."""
        self.measures.copy_(values)

    def accumulate_prediction(self, weighted_activation: torch.Tensor):
        """Add one neuron's ``activation * weights`` to every pixel's sum."""
        self.accumulated_predictions += weighted_activation

    def clear_prediction(self, index: Optional[int] = None):
        """Zero one pixel's accumulated prediction, or all of them."""
        if index is None:
            self.accumulated_predictions.zero_()
        else:
            self.accumulated_predictions[index] = 0.0

    def reconstruction(self, weight_holder: WeightHolder) -> torch.Tensor:
        return self.policy.divide(
            self.accumulated_predictions, weight_holder.total(), "pooled activation total"
        )

    def cache_error(self, weight_holder: WeightHolder):
        """Store ``reconstruction - measure`` for the learning phase."""
        self.cached_errors.copy_(self.reconstruction(weight_holder) - self.measures)

    def error(self) -> torch.Tensor:
        return self.cached_errors


class NeuronicInput:
    """
    View of a single pixel inside a NeuronicInputs layer.

    Reads and writes go straight to the layer's buffers, so every neuron
    and the network observe the same state.
    """

    def __init__(self, layer: NeuronicInputs, index: int):
        self.layer = layer
        self.index = index

    def __repr__(self):
        return f"NeuronicInput(index={self.index}, measure={self.measure():.4f})"

    def measure(self) -> float:
        return self.layer.measures[self.index].item()

    def accumulated_prediction(self) -> float:
        return self.layer.accumulated_predictions[self.index].item()

    def load_measure(self, value: float):
        self.layer.load_measure(self.index, value)

    def accumulate_prediction(self, weighted_activation):
        self.layer.accumulated_predictions[self.index] += weighted_activation

    def clear_prediction(self):
        self.layer.clear_prediction(self.index)

    def reconstruction(self, weight_holder: WeightHolder) -> float:
        value = self.layer.policy.divide(
            self.layer.accumulated_predictions[self.index],
            weight_holder.total(),
            "pooled activation total"
        )
        return value.item()

    def cache_error(self, weight_holder: WeightHolder):
        self.layer.cached_errors[self.index] = (
            self.reconstruction(weight_holder) - self.measure()
        )

    def error(self) -> float:
        """
        Signed reconstruction error cached for this pixel.

        The magnitude sets how fast weights move; the sign decides whether
        they grow (under-estimate) or shrink (over-estimate).
        """
        return self.layer.cached_errors[self.index].item()


# === NEURON ===

class CompAENeuron(nn.Module):
    """
    One competing unit with a weight per input pixel.

    The neuron does not keep references to the inputs or the weight
    holder; the network hands them to each phase call, which keeps the
    phase ordering in the network's hands.

    Args:
        name: Neuron identifier
        learning_rate: Scale of each weight update
        num_inputs: Number of input pixels
        weight_init: Sampler producing the initial ``[num_inputs]`` weights
        policy: Normalization policy shared with the network
        device: torch device
    """

    def __init__(
        self,
        name: str,
        learning_rate: float,
        num_inputs: int,
        weight_init: WeightSampler,
        policy: Optional[NormalizationPolicy] = None,
        device='cpu',
        dtype=torch.float32
    ):
        super().__init__()
        self.name = name
        self.learning_rate = learning_rate
        self.num_inputs = num_inputs
        self.policy = policy or NormalizationPolicy()

        weights = torch.as_tensor(weight_init(num_inputs), dtype=dtype).flatten()
        if weights.numel() != num_inputs:
            raise ConfigurationError(
                f"Weight sampler returned {weights.numel()} weights for {num_inputs} inputs"
            )
        if (weights < 0).any():
            raise ConfigurationError(f"Neuron {name} initialized with negative weights")

        self.register_buffer("weights", weights.clone().to(device))
        self.register_buffer("current_activation", torch.zeros((), device=device, dtype=dtype))

    def __repr__(self):
        return f"CompAENeuron(name={self.name!r}, num_inputs={self.num_inputs})"

    def compute_em(self, inputs: NeuronicInputs) -> torch.Tensor:
        """Activation for the loaded image, normalized by this neuron's weight mass."""
        weighted = torch.dot(self.weights, inputs.measures)
        mass = self.policy.weight_mass(self.weights.sum())
        return self.policy.divide(weighted, mass, f"Weight mass of neuron {self.name}")

    def predict(self, inputs: NeuronicInputs, weight_holder: WeightHolder) -> torch.Tensor:
        """
        Prediction phase: propose a reconstruction weighted by this neuron's
        activation.

        Stores the activation, adds it to the pooled total and adds
        ``activation * weight_i`` to every pixel's accumulated prediction.
        """
        em = self.compute_em(inputs)
        self.current_activation.copy_(em)
        weight_holder.increase(em)
        inputs.accumulate_prediction(em * self.weights)
        return em

    def learn(self, inputs: NeuronicInputs, weight_holder: WeightHolder):
        """
        Learning phase: move weights against the cached pixel errors.

        The step is scaled by this neuron's share of the pooled total, so
        dominant neurons move the most. Weights are floored at 0.
        """
        share = self.policy.divide(
            self.current_activation, weight_holder.total(), "pooled activation total"
        )
        adjustment = share * self.learning_rate
        self.weights.add_(-1.0 * inputs.error() * adjustment)
        self.weights.clamp_(min=0.0)

    def export_weights(self) -> List[List[float]]:
        """Weights as a row-major ``side x side`` grid of floats."""
        side = int(round(self.num_inputs ** 0.5))
        if side * side != self.num_inputs:
            raise ConfigurationError(f"{self.num_inputs} inputs do not form a square grid")
        return self.weights.view(side, side).tolist()

    def get_stats(self) -> dict:
        return {
            'activation': self.current_activation.item(),
            'weight_sum': self.weights.sum().item(),
            'weight_max': self.weights.max().item(),
            'n_zero': int((self.weights == 0).sum().item()),
        }


# === NETWORK ===

@runtime_checkable
class ImageNetwork(Protocol):
    """Surface a training harness needs from a network."""

    def load_pixel(self, x: int, y: int, value: float) -> None: ...

    def perform_adjustment(self) -> AdjustmentStats: ...

    def neurons(self) -> Tuple[CompAENeuron, ...]: ...


class CompAENetwork(nn.Module):
    """
    A single layer of competing neurons over a square pixel grid.

    The network owns the neurons, the input layer and the weight holder.
    One training step for one image is:

        network.begin_image()
        for y in range(side):
            for x in range(side):
                network.load_pixel(x, y, image[y][x])
        network.perform_adjustment()

    ``load_image`` does the first two parts in one call. Loading a pixel
    when no image is open starts a new one, so the reset never depends on
    which pixel comes first.

    Example:
        >>> network = CompAENetwork(learning_rate=0.001, num_neurons=10, side=28)
        >>> network.load_image(image)
        >>> stats = network.perform_adjustment()

    Args:
        learning_rate: Learning rate shared by all neurons
        num_neurons: Population size
        side: Image side length; the network has ``side * side`` inputs
        weight_init: Initial weight sampler (None = uniform near 1/num_neurons)
        policy: Normalization policy (None = NormalizationPolicy())
        device: torch device
    """

    def __init__(
        self,
        learning_rate: float,
        num_neurons: int,
        side: int,
        weight_init: Optional[WeightSampler] = None,
        policy: Optional[NormalizationPolicy] = None,
        device='cpu',
        dtype=torch.float32
    ):
        super().__init__()
        if num_neurons < 1:
            raise ConfigurationError(f"num_neurons must be >= 1, got {num_neurons}")
        if side < 1:
            raise ConfigurationError(f"side must be >= 1, got {side}")
        if not learning_rate > 0:
            raise ConfigurationError(f"learning_rate must be positive, got {learning_rate}")

        self.learning_rate = learning_rate
        self.num_neurons = num_neurons
        self.side = side
        self.num_inputs = side * side
        self.policy = policy or NormalizationPolicy()
        self.device = device

        if weight_init is None:
            weight_init = uniform_weight_sampler(num_neurons, dtype=dtype)

        self.weight_holder = WeightHolder(self.policy.pooling, device=device, dtype=dtype)
        self.inputs = NeuronicInputs(self.num_inputs, self.policy, device=device, dtype=dtype)
        self.population = nn.ModuleList([
            CompAENeuron(
                name=str(i),
                learning_rate=learning_rate,
                num_inputs=self.num_inputs,
                weight_init=weight_init,
                policy=self.policy,
                device=device,
                dtype=dtype
            )
            for i in range(num_neurons)
        ])

        # Pixels loaded since begin_image()
        self.register_buffer("loaded", torch.zeros(self.num_inputs, dtype=torch.bool, device=device))
        self.image_open = False

    def neurons(self) -> Tuple[CompAENeuron, ...]:
        return tuple(self.population)

    # === LOADING ===

    def begin_image(self):
        """Reset the per-image state before loading a new image."""
        self.weight_holder.clear()
        if self.policy.accumulation == "per_image":
            self.inputs.clear_prediction()
        self.loaded.zero_()
        self.image_open = True

    def load_pixel(self, x: int, y: int, value: float):
        """
        Set the measure of pixel ``(x, y)`` (column, row) of the current image.

        Loading a pixel that the current image already holds starts a new
        image, so an image read only through ``activations()`` or
        ``winner()`` never leaks into the next one.

        Raises:
            PixelOutOfRangeError: If either coordinate is outside ``[0, side)``
        """
        if not (0 <= x < self.side and 0 <= y < self.side):
            raise PixelOutOfRangeError(x, y, self.side)

        index = (self.side * y) + x
        if not self.image_open or self.loaded[index]:
            self.begin_image()

        self.inputs.load_measure(index, value)
        if self.policy.accumulation == "per_image":
            self.inputs.clear_prediction(index)
        self.loaded[index] = True

    def load_image(self, image):
        """
        Load a whole ``[side, side]`` (or flat) image with values in [0, 1].

        Raises:
            ImageShapeError: If the image does not have ``side * side`` pixels
        """
        pixels = torch.as_tensor(image, dtype=self.inputs.measures.dtype, device=self.inputs.measures.device)
        if pixels.dim() == 2 and tuple(pixels.shape) != (self.side, self.side):
            raise ImageShapeError(
                f"Expected a {self.side}x{self.side} image, got {tuple(pixels.shape)}"
            )
        if pixels.numel() != self.num_inputs:
            raise ImageShapeError(
                f"Expected {self.num_inputs} pixels, got {pixels.numel()}"
            )

        self.begin_image()
        self.inputs.load_measures(pixels.reshape(-1))
        self.loaded.fill_(True)

    def end_image(self):
        """
        Check that every pixel of the current image was loaded.

        Raises:
            IncompleteImageError: If any pixel is missing
        """
        missing = int((~self.loaded).sum().item())
        if missing or not self.image_open:
            raise IncompleteImageError(missing if self.image_open else self.num_inputs, self.num_inputs)

    # === PHASES ===

    def run_prediction_phase(self):
        for neuron in self.population:
            neuron.predict(self.inputs, self.weight_holder)

    def cache_errors(self):
        self.inputs.cache_error(self.weight_holder)

    def run_learning_phase(self):
        for neuron in self.population:
            neuron.learn(self.inputs, self.weight_holder)

    def perform_adjustment(self) -> AdjustmentStats:
        """
        Run one training step on the loaded image.

        Three barriers, each over the whole collection before the next
        starts: every neuron predicts, every input caches its error, every
        neuron learns. The image is closed afterwards.

        Returns:
            AdjustmentStats with the summed activations and mean absolute error
        """
        self.end_image()

        with torch.no_grad():
            self.run_prediction_phase()
            self.cache_errors()
            self.run_learning_phase()

        self.image_open = False
        return AdjustmentStats(
            total=self.weight_holder.total_weight.item(),
            mean_abs_error=self.inputs.error().abs().mean().item()
        )

    # === READ ACCESS ===

    def activations(self) -> torch.Tensor:
        """Activation of every neuron for the loaded image; mutates nothing."""
        with torch.no_grad():
            return torch.stack([neuron.compute_em(self.inputs) for neuron in self.population])

    def winner(self) -> int:
        """Index of the most active neuron for the loaded image."""
        return int(self.activations().argmax().item())

    def reconstruction(self) -> torch.Tensor:
        """Pooled reconstruction of the last predicted image as ``[side, side]``."""
        return self.inputs.reconstruction(self.weight_holder).view(self.side, self.side)

    def reconstruct(self, image) -> torch.Tensor:
        """
        Run the prediction phase and error caching on ``image`` without
        learning, leaving activations and errors available for inspection.

        Returns:
            Pooled reconstruction ``[side, side]``
        """
        self.load_image(image)
        with torch.no_grad():
            self.run_prediction_phase()
            self.cache_errors()
        self.image_open = False
        return self.reconstruction()

    def weight_matrix(self) -> torch.Tensor:
        """Copy of all weights as ``[num_neurons, num_inputs]``."""
        return torch.stack([neuron.weights for neuron in self.population]).clone()

    def export_weights(self) -> List[List[List[float]]]:
        """One row-major ``side x side`` grid per neuron."""
        return [neuron.export_weights() for neuron in self.population]

    def get_stats(self) -> dict:
        """Diagnostic statistics about the network state."""
        weights = self.weight_matrix()
        return {
            'num_neurons': self.num_neurons,
            'total': self.weight_holder.total().item(),
            'weight_mean': weights.mean().item(),
            'weight_max': weights.max().item(),
            'n_zero_weights': int((weights == 0).sum().item()),
            'neurons': {neuron.name: neuron.get_stats() for neuron in self.population}
        }
