"""
meshmaker: density maps to surface meshes

Isosurface extraction, smoothing, decimation and triangle strips for
volumetric data such as electron-microscopy maps.
"""

__version__ = "0.1.0"

# Suppress trimesh's verbose logs by default
import logging
logging.getLogger("trimesh").setLevel(logging.WARNING)

from meshmaker.config import ConfigurationError, RunConfig
from meshmaker.core.io import InputDecodeError, load_mesh, load_volume
from meshmaker.core.mesh import Mesh
from meshmaker.core.volume import VolumeGrid
from meshmaker.export import OutputFormat, WriteError, WriteOptions, write_mesh
from meshmaker.pipeline import MeshPipeline, PipelineResult, run_pipeline

__all__ = [
    "ConfigurationError",
    "InputDecodeError",
    "Mesh",
    "MeshPipeline",
    "OutputFormat",
    "PipelineResult",
    "RunConfig",
    "VolumeGrid",
    "WriteError",
    "WriteOptions",
    "load_mesh",
    "load_volume",
    "run_pipeline",
    "write_mesh",
    "__version__",
]
