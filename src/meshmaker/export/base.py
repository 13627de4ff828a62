"""
Abstract base class for mesh writers.

Every writer encodes a mesh to bytes in memory and then hands them to
``MeshWriter.write``, which replaces the destination atomically: the data
goes to a temporary file next to the target and is renamed over it only
once complete.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import numpy as np

from meshmaker.core.mesh import Mesh

logger = logging.getLogger("meshmaker.export.base")


class OutputFormat(str, Enum):
    """Output file formats, valued by their file extension."""
    STL = "stl"
    LEGACY = "vtk"
    XML = "vtp"

    @property
    def extension(self) -> str:
        return self.value


class WriteError(Exception):
    """Raised when the output file cannot be created or written."""
    pass


@dataclass
class WriteOptions:
    """Encoding options shared by all writers."""
    binary: bool = True
    header_uint64: bool = False  # XML only: UInt64 byte-count headers
    index_int32: bool = False  # XML only: Int32 connectivity/offsets


@dataclass
class WriteResult:
    """Result from writing a mesh."""
    path: Path
    format: OutputFormat
    bytes_written: int
    num_points: int
    num_cells: int
    binary: bool
    time_seconds: float = 0.0


@dataclass
class CellArrays:
    """Cells in VTK form: flat connectivity plus the end offset of each cell."""
    connectivity: np.ndarray
    offsets: np.ndarray

    @property
    def num_cells(self) -> int:
        return len(self.offsets)

    @property
    def counts(self) -> np.ndarray:
        return np.diff(np.concatenate([[0], self.offsets]))

    def legacy(self) -> np.ndarray:
        """Legacy VTK layout: each cell prefixed by its vertex count."""
        counts = self.counts
        return np.insert(self.connectivity, self.offsets - counts, counts)

    @classmethod
    def from_rows(cls, rows) -> CellArrays:
        if isinstance(rows, np.ndarray) and rows.ndim == 2:
            m, k = rows.shape
            return cls(rows.reshape(-1).astype(np.int64), k * np.arange(1, m + 1, dtype=np.int64))
        rows = list(rows)
        if not rows:
            return cls(np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64))
        lengths = np.array([len(r) for r in rows], dtype=np.int64)
        return cls(np.concatenate(rows).astype(np.int64), np.cumsum(lengths))


def _target_mode(path: Path) -> int:
    """Permissions for the written file: those of the file being replaced, else 0o666 less the umask."""
    try:
        return path.stat().st_mode & 0o7777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def mesh_cells(mesh: Mesh) -> tuple[CellArrays, CellArrays]:
    """(polys, strips) of a mesh as cell arrays; at most one is non-empty."""
    if mesh.has_strips:
        return CellArrays.from_rows([]), CellArrays.from_rows(mesh.strips)
    return CellArrays.from_rows(mesh.faces), CellArrays.from_rows([])


class MeshWriter(ABC):
    """Abstract base class for mesh file writers."""

    # Whether header_uint64/index_int32 mean anything to this writer
    supports_xml_options = False

    def __init__(self, options: Optional[WriteOptions] = None):
        self.options = options or WriteOptions()
        if not self.supports_xml_options:
            if self.options.header_uint64:
                logger.warning(f"64-bit headers only apply to XML output; ignored for {self.format.name}")
            if self.options.index_int32:
                logger.debug(f"32-bit index arrays only apply to XML output; ignored for {self.format.name}")

    @property
    @abstractmethod
    def format(self) -> OutputFormat:
        """Format produced by this writer."""
        pass

    @abstractmethod
    def encode(self, mesh: Mesh) -> bytes:
        """
        Encode a mesh into the complete file contents.

        Args:
            mesh: Mesh with triangle faces or strips

        Returns:
            File contents
        """
        pass

    def num_cells(self, mesh: Mesh) -> int:
        return mesh.num_strips if mesh.has_strips else mesh.num_faces

    def write(self, mesh: Mesh, path: Union[str, Path]) -> WriteResult:
        """
        Write ``mesh`` to ``path``, creating or replacing it.

        Raises:
            WriteError: If the destination cannot be written
        """
        path = Path(path)
        start = time.time()
        data = self.encode(mesh)

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as e:
            raise WriteError(f"Cannot write {path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp_name, _target_mode(path))
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise WriteError(f"Cannot write {path}: {e}") from e

        result = WriteResult(
            path=path,
            format=self.format,
            bytes_written=len(data),
            num_points=mesh.num_vertices,
            num_cells=self.num_cells(mesh),
            binary=self.options.binary,
            time_seconds=time.time() - start,
        )
        logger.info(
            f"Wrote {path} ({self.format.name}, {'binary' if self.options.binary else 'ASCII'}, "
            f"{result.bytes_written} bytes)"
        )
        return result
