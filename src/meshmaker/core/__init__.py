"""Core data structures: scalar grids, meshes and their file I/O."""

from meshmaker.core.io import InputDecodeError, load_mesh, load_volume, read_mrc
from meshmaker.core.mesh import Mesh, decode_strip
from meshmaker.core.volume import VolumeGrid

__all__ = [
    "InputDecodeError",
    "Mesh",
    "VolumeGrid",
    "decode_strip",
    "load_mesh",
    "load_volume",
    "read_mrc",
]
