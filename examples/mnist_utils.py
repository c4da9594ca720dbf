"""
MNIST Dataset Utilities for CompAE Examples

This module turns the MNIST corpus into the normalized pixel arrays the
network consumes: float tensors ``[N, 28, 28]`` with values in [0, 1].
"""

import torch
import torchvision
from typing import Dict, Any, Tuple


MNIST_SIDE = 28
MNIST_AREA = MNIST_SIDE * MNIST_SIDE

CLASS_NAMES = [str(digit) for digit in range(10)]


def _to_arrays(dataset, limit: int) -> Tuple[torch.Tensor, torch.Tensor]:
    """Take the first ``limit`` samples as (images in [0, 1], labels)."""
    limit = min(limit, len(dataset))
    images = dataset.data[:limit].float() / 255.0
    labels = dataset.targets[:limit].long()
    return images, labels


def load_mnist(
    data_root: str = './data',
    train_size: int = 10000,
    test_size: int = 10000,
    download: bool = True
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Load MNIST as normalized image tensors.

    Args:
        data_root: Directory to download/load MNIST
        train_size: Number of training images to keep
        test_size: Number of test images to keep
        download: Whether to download if missing

    Returns:
        (train_images, train_labels, test_images, test_labels); images are
        float32 ``[N, 28, 28]`` in [0, 1], labels int64 ``[N]``
    """
    train_dataset = torchvision.datasets.MNIST(
        root=data_root, train=True, download=download
    )
    test_dataset = torchvision.datasets.MNIST(
        root=data_root, train=False, download=download
    )

    train_images, train_labels = _to_arrays(train_dataset, train_size)
    test_images, test_labels = _to_arrays(test_dataset, test_size)
    return train_images, train_labels, test_images, test_labels


def print_dataset_info(data: Dict[str, Any]):
    """Print information about the loaded arrays."""
    print("=" * 50)
    print("MNIST Arrays")
    print("=" * 50)

    for key, value in data.items():
        if isinstance(value, torch.Tensor):
            print(f"  {key}: {tuple(value.shape)} {value.dtype}")

    print(f"  Classes: {CLASS_NAMES}")
    print("=" * 50)
