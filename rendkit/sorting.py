"""Distance-based ordering of objects relative to the camera."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class Sorting(Enum):
    """An object sorting order."""

    FRONT_TO_BACK = "front_to_back"
    """Nearest objects first."""
    BACK_TO_FRONT = "back_to_front"
    """Furthest objects first."""


def sort_objects(
    objects: Sequence[T],
    camera_location: Sequence[float],
    sorting: Optional[Sorting],
    location: Callable[[T], Sequence[float]],
) -> Sequence[T]:
    """Order objects by squared distance from the camera.

    ``location`` gives each object's position. With no sorting the input
    sequence is returned untouched; otherwise a new sorted list is returned.
    """
    if sorting is None:
        return objects

    camera = np.asarray(camera_location, dtype=np.float64)

    def distance_squared(obj: T) -> float:
        delta = np.asarray(location(obj), dtype=np.float64) - camera
        return float(np.dot(delta, delta))

    if sorting is Sorting.FRONT_TO_BACK:
        return sorted(objects, key=distance_squared)
    return sorted(objects, key=lambda obj: -distance_squared(obj))