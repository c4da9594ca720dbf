"""
Exception hierarchy for compae.

CompAEError (base)
├── ConfigurationError       - Invalid sizes, rates, policies or datasets
├── PixelOutOfRangeError     - Pixel coordinate outside the input grid
├── ImageShapeError          - Whole image does not match the input grid
├── IncompleteImageError     - Adjustment requested on a partially loaded image
├── DegenerateNormalization  - Zero weight mass or zero pooled total
└── SerializationError       - Malformed persisted weights

Each class also derives from the closest builtin so callers can catch
``IndexError`` / ``ValueError`` without importing this module.
"""

from __future__ import annotations


class CompAEError(Exception):
    """Base exception for all compae-specific errors."""


class ConfigurationError(CompAEError, ValueError):
    """Invalid configuration parameters.

    Raised when sizes, learning rates, normalization policies or sampler
    ranges are out of their valid domain, or when a dataset's images and
    labels do not line up.
    """


class PixelOutOfRangeError(CompAEError, IndexError):
    """A pixel coordinate lies outside ``[0, side)``.

    This is a precondition violation of the loading protocol and is not
    recoverable inside the network.
    """

    def __init__(self, x: int, y: int, side: int):
        super().__init__(f"Pixel ({x}, {y}) is outside the {side}x{side} input grid")
        self.x = x
        self.y = y
        self.side = side


class ImageShapeError(CompAEError, ValueError):
    """A whole image does not have ``side * side`` pixels."""


class IncompleteImageError(CompAEError, RuntimeError):
    """Not every pixel of the current image was loaded before adjusting."""

    def __init__(self, missing: int, total: int):
        super().__init__(
            f"{missing} of {total} pixels were not loaded since begin_image()"
        )
        self.missing = missing
        self.total = total


class DegenerateNormalization(CompAEError, ArithmeticError):
    """A normalizer was exactly zero when a division was required.

    Only raised under ``NormalizationPolicy(on_degenerate="raise")``; the
    default policy defines the affected quantity as 0 instead.
    """


class SerializationError(CompAEError):
    """Persisted weights could not be decoded into neuron grids."""
