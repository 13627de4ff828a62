"""Mesh simplification."""

from meshmaker.remesh.decimate import (
    DecimateConfig,
    DecimationResult,
    ProgressiveDecimator,
    decimate,
)

__all__ = [
    "DecimateConfig",
    "DecimationResult",
    "ProgressiveDecimator",
    "decimate",
]
