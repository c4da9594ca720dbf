"""
Pytest configuration and shared fixtures.

Networks here are tiny (2x2 or 4x4 grids) so every number in a test can be
worked out by hand.
"""

import matplotlib

matplotlib.use("Agg")

import pytest
import torch

from compae import CompAENetwork, NormalizationPolicy, constant_weights


def sequence_sampler(*rows):
    """Sampler handing out the given weight rows, one per neuron."""
    remaining = iter(rows)

    def sample(num_inputs):
        return torch.tensor(next(remaining), dtype=torch.float32)

    return sample


def load_grid(network, values):
    """Load a flat row-major list of pixels with load_pixel."""
    for index, value in enumerate(values):
        network.load_pixel(index % network.side, index // network.side, value)


@pytest.fixture
def single_neuron_network():
    """1 neuron, 2x2 inputs, uniform weights 0.25, learning rate 0.1."""
    return CompAENetwork(
        learning_rate=0.1,
        num_neurons=1,
        side=2,
        weight_init=constant_weights(0.25),
    )


@pytest.fixture
def random_images():
    """Eight reproducible 4x4 images in [0, 1]."""
    generator = torch.Generator().manual_seed(1234)
    return torch.rand(8, 4, 4, generator=generator)


@pytest.fixture
def raise_policy():
    return NormalizationPolicy(on_degenerate="raise")
