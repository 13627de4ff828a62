"""XML VTK PolyData (``.vtp``) writer."""

from __future__ import annotations

import base64
import io
import xml.etree.ElementTree as ET

import numpy as np

from meshmaker.core.mesh import Mesh
from meshmaker.export.base import CellArrays, MeshWriter, OutputFormat, mesh_cells

VTK_TYPE_NAMES = {
    np.dtype("<f4"): "Float32",
    np.dtype("<i4"): "Int32",
    np.dtype("<i8"): "Int64",
}


class XMLPolyDataWriter(MeshWriter):
    """
    Single-piece XML PolyData, inline ASCII or base64 binary.

    In binary mode each DataArray holds a base64 byte-count header followed
    by the separately base64-encoded little-endian payload.
    """

    supports_xml_options = True

    @property
    def format(self) -> OutputFormat:
        return OutputFormat.XML

    @property
    def header_type(self) -> str:
        return "UInt64" if self.options.header_uint64 else "UInt32"

    @property
    def index_dtype(self) -> np.dtype:
        return np.dtype("<i4") if self.options.index_int32 else np.dtype("<i8")

    def encode(self, mesh: Mesh) -> bytes:
        root = ET.Element(
            "VTKFile",
            type="PolyData",
            version="1.0",
            byte_order="LittleEndian",
            header_type=self.header_type,
        )
        polydata = ET.SubElement(root, "PolyData")

        polys, strips = mesh_cells(mesh)
        empty = CellArrays.from_rows([])
        sections = (("Verts", empty), ("Lines", empty), ("Strips", strips), ("Polys", polys))

        piece = ET.SubElement(
            polydata,
            "Piece",
            NumberOfPoints=str(mesh.num_vertices),
            NumberOfVerts="0",
            NumberOfLines="0",
            NumberOfStrips=str(strips.num_cells),
            NumberOfPolys=str(polys.num_cells),
        )

        points = ET.SubElement(piece, "Points")
        self._data_array(points, "Points", mesh.vertices.reshape(-1).astype("<f4"), components=3)

        for tag, cells in sections:
            section = ET.SubElement(piece, tag)
            self._data_array(section, "connectivity", cells.connectivity.astype(self.index_dtype))
            self._data_array(section, "offsets", cells.offsets.astype(self.index_dtype))

        ET.indent(root)
        out = io.BytesIO()
        ET.ElementTree(root).write(out, encoding="utf-8", xml_declaration=True)
        out.write(b"\n")
        return out.getvalue()

    def _data_array(self, parent: ET.Element, name: str, values: np.ndarray, components: int = 1) -> ET.Element:
        attrib = {"type": VTK_TYPE_NAMES[values.dtype], "Name": name}
        if components > 1:
            attrib["NumberOfComponents"] = str(components)
        attrib["format"] = "binary" if self.options.binary else "ascii"

        element = ET.SubElement(parent, "DataArray", attrib)
        element.text = self._encode_values(values)
        return element

    def _encode_values(self, values: np.ndarray) -> str:
        if not self.options.binary:
            if values.dtype.kind == "f":
                return " ".join(f"{v:.9g}" for v in values.tolist())
            return " ".join(map(str, values.tolist()))

        payload = values.tobytes()
        header_dtype = "<u8" if self.options.header_uint64 else "<u4"
        header = np.array([len(payload)], dtype=header_dtype).tobytes()
        return (base64.b64encode(header) + base64.b64encode(payload)).decode("ascii")
