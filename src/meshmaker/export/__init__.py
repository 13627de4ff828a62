"""Mesh writers: STL, legacy VTK and XML VTK PolyData."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from meshmaker.core.mesh import Mesh
from meshmaker.export.base import (
    MeshWriter,
    OutputFormat,
    WriteError,
    WriteOptions,
    WriteResult,
)
from meshmaker.export.legacy import LegacyVTKWriter
from meshmaker.export.stl import STLWriter
from meshmaker.export.xml import XMLPolyDataWriter

__all__ = [
    "MeshWriter",
    "OutputFormat",
    "WriteError",
    "WriteOptions",
    "WriteResult",
    "STLWriter",
    "LegacyVTKWriter",
    "XMLPolyDataWriter",
    "get_writer",
    "write_mesh",
]


def get_writer(name: Union[str, OutputFormat], options: Optional[WriteOptions] = None) -> MeshWriter:
    """Factory function to get a writer by format or file extension."""
    writers = {
        OutputFormat.STL: STLWriter,
        OutputFormat.LEGACY: LegacyVTKWriter,
        OutputFormat.XML: XMLPolyDataWriter,
    }

    try:
        fmt = OutputFormat(str(getattr(name, "value", name)).lower().lstrip("."))
    except ValueError:
        available = ", ".join(f.value for f in OutputFormat)
        raise ValueError(f"Unknown output format: {name}. Available: {available}") from None

    return writers[fmt](options)


def write_mesh(
    mesh: Mesh,
    path: Union[str, Path],
    format: Union[str, OutputFormat, None] = None,
    options: Optional[WriteOptions] = None,
) -> WriteResult:
    """
    Write a mesh to file.

    Args:
        mesh: Mesh to write
        path: Output path
        format: Output format; taken from the path's extension when omitted
        options: Binary/ASCII and XML width options

    Returns:
        WriteResult describing the written file
    """
    path = Path(path)
    writer = get_writer(format or path.suffix, options)
    return writer.write(mesh, path)
