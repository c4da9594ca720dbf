"""
CompAE Examples

This package contains example scripts and utilities for training
CompAE networks on image datasets.

Available Examples:
- train_mnist.py: Ten competing neurons on MNIST digits

Utilities:
- mnist_utils: MNIST loading and normalization
"""

from .mnist_utils import (
    load_mnist,
    print_dataset_info,
    MNIST_SIDE,
    MNIST_AREA,
    CLASS_NAMES,
)

__all__ = [
    "load_mnist",
    "print_dataset_info",
    "MNIST_SIDE",
    "MNIST_AREA",
    "CLASS_NAMES",
]
