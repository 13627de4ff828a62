"""STL writer; strips are expanded to triangles."""

from __future__ import annotations

from trimesh.exchange.stl import export_stl, export_stl_ascii

from meshmaker.core.mesh import Mesh
from meshmaker.export.base import MeshWriter, OutputFormat


class STLWriter(MeshWriter):
    """Binary or ASCII STL, encoded by trimesh."""

    @property
    def format(self) -> OutputFormat:
        return OutputFormat.STL

    def num_cells(self, mesh: Mesh) -> int:
        return mesh.num_triangles

    def encode(self, mesh: Mesh) -> bytes:
        tm = mesh.to_trimesh()
        # ASCII files carry the name on the solid line
        tm.metadata["name"] = mesh.name.split()[0] if mesh.name.split() else ""

        if self.options.binary:
            return export_stl(tm)
        return export_stl_ascii(tm).encode("ascii")
