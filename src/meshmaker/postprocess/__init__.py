"""Post-processing of extracted surfaces: smoothing and strip building."""

from meshmaker.postprocess.smoothing import LaplacianSmoother, SmoothingConfig, smooth
from meshmaker.postprocess.strips import StripBuilder, StripConfig, build_strips

__all__ = [
    "LaplacianSmoother",
    "SmoothingConfig",
    "smooth",
    "StripBuilder",
    "StripConfig",
    "build_strips",
]
