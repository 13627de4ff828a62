"""Isosurface extraction and triangulation."""

from meshmaker.contour.marching_cubes import IsosurfaceExtractor, extract
from meshmaker.contour.triangulate import triangulate

__all__ = ["IsosurfaceExtractor", "extract", "triangulate"]
