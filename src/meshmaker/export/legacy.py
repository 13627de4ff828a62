"""Legacy VTK (``.vtk``) POLYDATA writer."""

from __future__ import annotations

import io

import numpy as np

from meshmaker.core.mesh import Mesh
from meshmaker.export.base import CellArrays, MeshWriter, OutputFormat, mesh_cells

LEGACY_VERSION = "# vtk DataFile Version 4.2"


class LegacyVTKWriter(MeshWriter):
    """
    Legacy VTK PolyData.

    Binary sections are big-endian float32 points and int32 cell arrays;
    cell sections with no cells are left out.
    """

    @property
    def format(self) -> OutputFormat:
        return OutputFormat.LEGACY

    def encode(self, mesh: Mesh) -> bytes:
        binary = self.options.binary
        title = (mesh.name or "meshmaker").replace("\n", " ")[:255]
        out = io.BytesIO()
        out.write(f"{LEGACY_VERSION}\n{title}\n{'BINARY' if binary else 'ASCII'}\nDATASET POLYDATA\n".encode("ascii"))

        out.write(f"POINTS {mesh.num_vertices} float\n".encode("ascii"))
        if binary:
            out.write(mesh.vertices.astype(">f4").tobytes() + b"\n")
        elif mesh.num_vertices:
            np.savetxt(out, mesh.vertices.astype(np.float32), fmt="%.9g")

        polys, strips = mesh_cells(mesh)
        for keyword, cells in (("POLYGONS", polys), ("TRIANGLE_STRIPS", strips)):
            if cells.num_cells:
                self._write_cells(out, keyword, cells, binary)

        return out.getvalue()

    @staticmethod
    def _write_cells(out: io.BytesIO, keyword: str, cells: CellArrays, binary: bool) -> None:
        flat = cells.legacy()
        out.write(f"{keyword} {cells.num_cells} {len(flat)}\n".encode("ascii"))
        if binary:
            out.write(flat.astype(">i4").tobytes() + b"\n")
            return

        counts = cells.counts
        if np.all(counts == counts[0]):
            np.savetxt(out, flat.reshape(cells.num_cells, -1), fmt="%d")
        else:
            starts = cells.offsets - counts
            for s, c in zip(starts.tolist(), counts.tolist()):
                row = [c] + cells.connectivity[s:s + c].tolist()
                out.write((" ".join(map(str, row)) + "\n").encode("ascii"))
