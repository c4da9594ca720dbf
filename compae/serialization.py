"""
Persistence of learned weights.

The saved payload is a plain pickled list with one ``side x side`` nested
list of floats per neuron, so it can be inspected without importing compae.
"""

import pickle
from pathlib import Path
from typing import Union

import numpy as np

from .errors import SerializationError
from .models import CompAENetwork


def save_weights(network: CompAENetwork, path: Union[str, Path]) -> Path:
    """
    Pickle every neuron's weight grid.

    Args:
        network: Trained network
        path: Output file; parent directories are created

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'wb') as f:
        pickle.dump(network.export_weights(), f)
    return path


def load_weights(path: Union[str, Path]) -> np.ndarray:
    """
    Load pickled weight grids.

    Returns:
        Array ``[num_neurons, side, side]``

    Raises:
        SerializationError: If the payload is not a list of square grids
    """
    with open(path, 'rb') as f:
        payload = pickle.load(f)

    try:
        grids = np.asarray(payload, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Could not decode weights from {path}: {e}") from e

    if grids.ndim != 3 or grids.shape[1] != grids.shape[2]:
        raise SerializationError(
            f"Expected [num_neurons, side, side] weights in {path}, got shape {grids.shape}"
        )
    return grids
