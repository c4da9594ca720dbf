"""
Weight initialization samplers for CompAE neurons.

A sampler is any callable ``sample(num_inputs) -> torch.Tensor`` returning one
non-negative weight per input. The network calls it once per neuron, in
neuron order, so a seeded generator makes the whole initialization
reproducible.
"""

from __future__ import annotations

from typing import Callable, Optional

import torch

from .errors import ConfigurationError

WeightSampler = Callable[[int], torch.Tensor]


def uniform_weight_sampler(
    num_neurons: int,
    low: Optional[float] = None,
    high: Optional[float] = None,
    generator: Optional[torch.Generator] = None,
    dtype: torch.dtype = torch.float32,
) -> WeightSampler:
    """
    Build a sampler drawing weights uniformly from ``[low, high)``.

    The default range is ``[0.01 / num_neurons, 1 / num_neurons)``: small
    enough that no single neuron dominates the pooled total from the first
    image, and strictly positive so no neuron starts with zero weight mass.

    Args:
        num_neurons: Population size the weights are scaled for
        low: Lower bound (None = 1% of ``high``)
        high: Upper bound (None = ``1 / num_neurons``)
        generator: Optional seeded ``torch.Generator`` for reproducible runs
        dtype: Weight dtype

    Returns:
        Callable mapping ``num_inputs`` to a ``[num_inputs]`` weight tensor

    Raises:
        ConfigurationError: If the range is empty or negative
    """
    if num_neurons < 1:
        raise ConfigurationError(f"num_neurons must be >= 1, got {num_neurons}")

    high = 1.0 / num_neurons if high is None else float(high)
    low = 0.01 * high if low is None else float(low)

    if low < 0.0:
        raise ConfigurationError(f"Initial weights must be non-negative, got low={low}")
    if high <= low:
        raise ConfigurationError(f"Empty weight range [{low}, {high})")

    def sample(num_inputs: int) -> torch.Tensor:
        weights = torch.rand(num_inputs, generator=generator, dtype=dtype)
        return low + (high - low) * weights

    return sample


def constant_weights(value: float, dtype: torch.dtype = torch.float32) -> WeightSampler:
    """Sampler giving every input the same weight (useful for analysis)."""
    if value < 0.0:
        raise ConfigurationError(f"Initial weights must be non-negative, got {value}")

    def sample(num_inputs: int) -> torch.Tensor:
        return torch.full((num_inputs,), float(value), dtype=dtype)

    return sample
