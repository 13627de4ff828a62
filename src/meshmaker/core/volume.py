"""
Regular 3-D scalar grid.

The grid is the read-only input of the pipeline: a dense block of samples
laid out x-fastest, together with the spacing and origin that place those
samples in world coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np


@dataclass(frozen=True, eq=False)
class VolumeGrid:
    """
    Immutable regular scalar grid.

    Attributes:
        dims: (nx, ny, nz) number of samples along each axis
        scalars: Flat array of nx*ny*nz samples, x varying fastest
        spacing: (sx, sy, sz) distance between neighbouring samples
        origin: (ox, oy, oz) world position of sample (0, 0, 0)
        name: Optional identifier (usually the source file stem)
    """
    dims: tuple[int, int, int]
    scalars: np.ndarray
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    name: str = "volume"
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        spacing = tuple(float(s) for s in self.spacing)
        origin = tuple(float(o) for o in self.origin)

        if len(dims) != 3 or any(d < 1 for d in dims):
            raise ValueError(f"Grid dimensions must be three positive integers, got {self.dims}")
        if len(spacing) != 3 or any(not s > 0 for s in spacing):
            raise ValueError(f"Grid spacing must be three positive numbers, got {self.spacing}")
        if len(origin) != 3:
            raise ValueError(f"Grid origin must have three components, got {self.origin}")

        scalars = np.array(self.scalars, copy=True).reshape(-1)
        expected = dims[0] * dims[1] * dims[2]
        if scalars.size != expected:
            raise ValueError(
                f"Grid of dimensions {dims} needs {expected} samples, got {scalars.size}"
            )
        scalars.setflags(write=False)

        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "spacing", spacing)
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "scalars", scalars)

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        spacing: Union[tuple, float] = 1.0,
        origin: tuple = (0.0, 0.0, 0.0),
        name: str = "volume",
    ) -> VolumeGrid:
        """Build a grid from a (nz, ny, nx) array."""
        values = np.asarray(values)
        if values.ndim != 3:
            raise ValueError(f"Expected a 3-D array, got shape {values.shape}")
        if np.isscalar(spacing):
            spacing = (spacing, spacing, spacing)
        nz, ny, nx = values.shape
        return cls(
            dims=(nx, ny, nz),
            scalars=np.ascontiguousarray(values).reshape(-1),
            spacing=spacing,
            origin=origin,
            name=name,
        )

    @property
    def num_points(self) -> int:
        return self.scalars.size

    @property
    def values(self) -> np.ndarray:
        """Samples as a read-only (nz, ny, nx) view."""
        nx, ny, nz = self.dims
        return self.scalars.reshape(nz, ny, nx)

    @property
    def value_range(self) -> tuple[float, float]:
        return float(self.scalars.min()), float(self.scalars.max())

    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """World-space (min, max) corners of the sampled region."""
        origin = np.asarray(self.origin)
        extent = (np.asarray(self.dims) - 1) * np.asarray(self.spacing)
        return origin, origin + extent

    @property
    def center(self) -> np.ndarray:
        min_b, max_b = self.bounds
        return (min_b + max_b) / 2

    def point(self, i: int, j: int, k: int) -> np.ndarray:
        """World position of sample (i, j, k)."""
        return np.asarray(self.origin) + np.array([i, j, k], dtype=np.float64) * np.asarray(self.spacing)

    def __repr__(self) -> str:
        nx, ny, nz = self.dims
        return f"VolumeGrid('{self.name}', {nx}x{ny}x{nz}, spacing={self.spacing})"
