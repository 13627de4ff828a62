"""
Volume and mesh I/O.

Volumes are read from MRC/MAP files (MRC2014) or numpy ``.npy`` arrays.
Meshes can be read back from the three output formats: STL through
trimesh, legacy VTK and XML VTK PolyData with the parsers below.
"""

from __future__ import annotations

import base64
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Union

import numpy as np

from meshmaker.core.mesh import Mesh, decode_strip
from meshmaker.core.volume import VolumeGrid

logger = logging.getLogger("meshmaker.core.io")

MRC_SUFFIXES = (".mrc", ".map", ".ccp4", ".rec")

MRC_HEADER_SIZE = 1024

# MRC2014 main header, 1024 bytes
MRC_HEADER_FIELDS = [
    ("nx", "i4"), ("ny", "i4"), ("nz", "i4"),
    ("mode", "i4"),
    ("nxstart", "i4"), ("nystart", "i4"), ("nzstart", "i4"),
    ("mx", "i4"), ("my", "i4"), ("mz", "i4"),
    ("cella", "f4", 3),
    ("cellb", "f4", 3),
    ("mapc", "i4"), ("mapr", "i4"), ("maps", "i4"),
    ("dmin", "f4"), ("dmax", "f4"), ("dmean", "f4"),
    ("ispg", "i4"),
    ("nsymbt", "i4"),
    ("extra1", "V8"),
    ("exttyp", "S4"),
    ("nversion", "i4"),
    ("extra2", "V84"),
    ("origin", "f4", 3),
    ("map", "S4"),
    ("machst", "u1", 4),
    ("rms", "f4"),
    ("nlabl", "i4"),
    ("label", "S80", 10),
]

MRC_MODES = {
    0: "i1",
    1: "i2",
    2: "f4",
    6: "u2",
    12: "f2",
}


class InputDecodeError(Exception):
    """Raised when an input file is missing, truncated or not understood."""
    pass


def _mrc_header_dtype(byte_order: str) -> np.dtype:
    return np.dtype(MRC_HEADER_FIELDS).newbyteorder(byte_order)


def _mrc_byte_order(raw: bytes) -> str:
    """Byte order from the machine stamp, else whichever order gives a known mode."""
    stamp = raw[212]
    if stamp == 0x44:
        return "<"
    if stamp == 0x11:
        return ">"

    for order in ("<", ">"):
        mode = int(np.frombuffer(raw, dtype=f"{order}i4", count=4)[3])
        if mode in MRC_MODES:
            logger.debug(f"No machine stamp, guessed byte order '{order}' from mode {mode}")
            return order
    raise InputDecodeError("Cannot determine MRC byte order")


def read_mrc(path: Union[str, Path]) -> VolumeGrid:
    """
    Read an MRC/MAP density map.

    The stored column/row/section axes are remapped through MAPC/MAPR/MAPS
    so the returned grid is x-fastest.

    Args:
        path: Path to the map

    Returns:
        VolumeGrid in world units
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise InputDecodeError(f"Cannot read {path}: {e}") from e

    if len(raw) < MRC_HEADER_SIZE:
        raise InputDecodeError(f"{path} is too short for an MRC header ({len(raw)} bytes)")

    order = _mrc_byte_order(raw)
    header = np.frombuffer(raw, dtype=_mrc_header_dtype(order), count=1)[0]

    mode = int(header["mode"])
    if mode not in MRC_MODES:
        raise InputDecodeError(f"Unsupported MRC mode {mode} in {path}")

    nc, nr, ns = int(header["nx"]), int(header["ny"]), int(header["nz"])
    if nc < 1 or nr < 1 or ns < 1:
        raise InputDecodeError(f"Invalid MRC dimensions {nc}x{nr}x{ns} in {path}")

    nsymbt = int(header["nsymbt"])
    if nsymbt < 0:
        raise InputDecodeError(f"Invalid extended header size {nsymbt} in {path}")

    dtype = np.dtype(MRC_MODES[mode]).newbyteorder(order)
    offset = MRC_HEADER_SIZE + nsymbt
    count = nc * nr * ns
    if len(raw) < offset + count * dtype.itemsize:
        raise InputDecodeError(
            f"{path} is truncated: expected {count * dtype.itemsize} data bytes after offset {offset}"
        )

    data = np.frombuffer(raw, dtype=dtype, count=count, offset=offset).reshape(ns, nr, nc)

    axes = (int(header["mapc"]), int(header["mapr"]), int(header["maps"]))
    if sorted(axes) != [1, 2, 3]:
        logger.warning(f"Invalid axis mapping {axes} in {path}, assuming columns=x rows=y sections=z")
        axes = (1, 2, 3)

    # Data axis 2 holds columns, 1 rows, 0 sections
    data_axis = {axes[0]: 2, axes[1]: 1, axes[2]: 0}
    values = np.transpose(data, (data_axis[3], data_axis[2], data_axis[1])).astype(np.float32)

    sampling = (int(header["mx"]), int(header["my"]), int(header["mz"]))
    cell = [float(c) for c in header["cella"]]
    spacing = tuple(
        cell[i] / sampling[i] if sampling[i] > 0 and cell[i] > 0 else 1.0
        for i in range(3)
    )

    origin = tuple(float(o) for o in header["origin"])
    if not any(origin):
        starts = (int(header["nxstart"]), int(header["nystart"]), int(header["nzstart"]))
        start_xyz = [0, 0, 0]
        for stored, axis in enumerate(axes):
            start_xyz[axis - 1] = starts[stored]
        origin = tuple(start_xyz[i] * spacing[i] for i in range(3))

    grid = VolumeGrid.from_array(values, spacing=spacing, origin=origin, name=path.stem)
    grid.metadata.update({"format": "mrc", "mode": mode, "axis_order": axes})

    logger.info(
        f"Read {path.name}: {grid.dims[0]}x{grid.dims[1]}x{grid.dims[2]} "
        f"mode {mode}, spacing {spacing}"
    )
    return grid


def read_npy(path: Union[str, Path]) -> VolumeGrid:
    """Read a (nz, ny, nx) numpy array as a unit-spaced grid."""
    path = Path(path)
    try:
        values = np.load(path, allow_pickle=False)
    except (OSError, ValueError) as e:
        raise InputDecodeError(f"Cannot read {path}: {e}") from e

    if values.ndim != 3 or min(values.shape) < 1:
        raise InputDecodeError(f"Expected a non-empty 3-D array in {path}, got shape {values.shape}")

    return VolumeGrid.from_array(values, name=path.stem)


def load_volume(path: Union[str, Path]) -> VolumeGrid:
    """
    Load a scalar volume, choosing the reader by file suffix.

    Supports: MRC, MAP, CCP4, REC, NPY

    Raises:
        InputDecodeError: If the file is missing or cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise InputDecodeError(f"Volume file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in MRC_SUFFIXES:
        return read_mrc(path)
    if suffix == ".npy":
        return read_npy(path)
    raise InputDecodeError(f"Unrecognised volume format '{suffix}' for {path}")


def _split_cells(connectivity: np.ndarray, offsets: np.ndarray) -> list:
    """Cell index arrays from VTK connectivity and end offsets."""
    if len(offsets) == 0:
        return []
    return np.split(connectivity.astype(np.int64), offsets[:-1].astype(np.int64))


def _mesh_from_cells(vertices: np.ndarray, polys: list, strips: list, name: str) -> Mesh:
    if polys and strips:
        # Mixed files: strips are expanded next to the polygons
        polys = polys + [t for s in strips for t in decode_strip(s)]
        strips = []
    return Mesh(vertices=vertices, faces=polys, strips=strips, name=name)


class _LegacyCursor:
    """Line and token reader over a legacy VTK file mixing text and raw bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def at_end(self) -> bool:
        return not self.data[self.pos:].strip()

    def line(self) -> str:
        while self.pos < len(self.data):
            end = self.data.find(b"\n", self.pos)
            if end < 0:
                end = len(self.data)
            text = self.data[self.pos:end].decode("ascii").strip()
            self.pos = end + 1
            if text:
                return text
        raise InputDecodeError("Unexpected end of VTK file")

    def tokens(self, count: int) -> list[str]:
        out = []
        while len(out) < count:
            out.extend(self.line().split())
        return out[:count]

    def raw(self, nbytes: int) -> bytes:
        if self.pos + nbytes > len(self.data):
            raise InputDecodeError("Truncated binary section in VTK file")
        chunk = self.data[self.pos:self.pos + nbytes]
        self.pos += nbytes
        if self.data[self.pos:self.pos + 1] == b"\n":
            self.pos += 1
        return chunk


LEGACY_TYPES = {
    "float": "f4",
    "double": "f8",
    "int": "i4",
    "vtktypeint32": "i4",
    "vtktypeint64": "i8",
}


def read_legacy_vtk(path: Union[str, Path]) -> Mesh:
    """Read POLYDATA points, polygons and strips from a legacy VTK file."""
    path = Path(path)
    cursor = _LegacyCursor(path.read_bytes())

    if not cursor.line().startswith("# vtk DataFile"):
        raise InputDecodeError(f"{path} is not a legacy VTK file")
    cursor.line()  # title
    binary = cursor.line().upper() == "BINARY"
    dataset = cursor.line().split()
    if dataset[-1].upper() != "POLYDATA":
        raise InputDecodeError(f"Unsupported dataset '{' '.join(dataset)}' in {path}")

    def section(count: int, dtype: str) -> np.ndarray:
        if binary:
            dt = np.dtype(dtype).newbyteorder(">")
            return np.frombuffer(cursor.raw(count * dt.itemsize), dtype=dt).astype(dtype)
        return np.array(cursor.tokens(count), dtype=dtype)

    vertices = np.empty((0, 3))
    cells = {}
    while not cursor.at_end():
        words = cursor.line().split()
        keyword = words[0].upper()
        if keyword == "POINTS":
            n = int(words[1])
            vertices = section(3 * n, LEGACY_TYPES.get(words[2].lower(), "f4")).reshape(n, 3)
        elif keyword in ("VERTICES", "LINES", "POLYGONS", "TRIANGLE_STRIPS"):
            n_cells, size = int(words[1]), int(words[2])
            flat = section(size, "i4").astype(np.int64)
            rows, i = [], 0
            for _ in range(n_cells):
                k = int(flat[i])
                rows.append(flat[i + 1:i + 1 + k])
                i += k + 1
            cells[keyword] = rows
        else:
            break  # point or cell data are not read

    return _mesh_from_cells(
        vertices.astype(np.float64),
        cells.get("POLYGONS", []),
        cells.get("TRIANGLE_STRIPS", []),
        path.stem,
    )


XML_TYPES = {
    "Int8": "i1",
    "UInt8": "u1",
    "Int32": "i4",
    "UInt32": "u4",
    "Int64": "i8",
    "UInt64": "u8",
    "Float32": "f4",
    "Float64": "f8",
}


def _decode_data_array(element: ET.Element, header_type: str, byte_order: str) -> np.ndarray:
    dtype = np.dtype(XML_TYPES[element.get("type")]).newbyteorder(byte_order)
    text = (element.text or "").strip()

    if element.get("format", "ascii") == "ascii":
        return np.array(text.split(), dtype=dtype.newbyteorder("="))

    header_dt = np.dtype(XML_TYPES[header_type]).newbyteorder(byte_order)
    header_chars = 4 * ((header_dt.itemsize + 2) // 3)
    nbytes = int(np.frombuffer(base64.b64decode(text[:header_chars]), dtype=header_dt)[0])
    payload = base64.b64decode(text[header_chars:]) if nbytes else b""
    if len(payload) < nbytes:
        raise InputDecodeError(f"DataArray '{element.get('Name')}' is truncated")
    return np.frombuffer(payload[:nbytes], dtype=dtype).astype(dtype.newbyteorder("="))


def read_vtp(path: Union[str, Path]) -> Mesh:
    """Read points, polys and strips from an XML VTK PolyData file."""
    path = Path(path)
    root = ET.parse(path).getroot()
    if root.get("type") != "PolyData":
        raise InputDecodeError(f"{path} is not a PolyData file")

    header_type = root.get("header_type", "UInt32")
    byte_order = "<" if root.get("byte_order", "LittleEndian") == "LittleEndian" else ">"
    piece = root.find("PolyData/Piece")
    if piece is None:
        raise InputDecodeError(f"No Piece in {path}")

    def arrays(tag: str) -> dict:
        node = piece.find(tag)
        if node is None:
            return {}
        return {
            da.get("Name", ""): _decode_data_array(da, header_type, byte_order)
            for da in node.findall("DataArray")
        }

    n_points = int(piece.get("NumberOfPoints", "0"))
    points = arrays("Points")
    vertices = next(iter(points.values())) if points else np.empty(0)
    vertices = vertices.astype(np.float64).reshape(n_points, 3)

    polys = arrays("Polys")
    strips = arrays("Strips")
    return _mesh_from_cells(
        vertices,
        _split_cells(polys["connectivity"], polys["offsets"]) if polys else [],
        _split_cells(strips["connectivity"], strips["offsets"]) if strips else [],
        path.stem,
    )


def load_mesh(path: Union[str, Path]) -> Mesh:
    """
    Load a mesh from file.

    Supports: STL (ASCII or binary), VTK (legacy), VTP

    Raises:
        InputDecodeError: If the file is missing or cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise InputDecodeError(f"Mesh file not found: {path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".stl":
            return _load_stl(path)
        if suffix == ".vtk":
            return read_legacy_vtk(path)
        if suffix == ".vtp":
            return read_vtp(path)
    except (OSError, ValueError, KeyError, IndexError, ET.ParseError) as e:
        raise InputDecodeError(f"Cannot decode {path}: {e}") from e
    raise InputDecodeError(f"Unrecognised mesh format '{suffix}' for {path}")


def _load_stl(path: Path) -> Mesh:
    import trimesh

    tm = trimesh.load(str(path), file_type="stl", process=False)
    if isinstance(tm, trimesh.Scene):
        meshes = list(tm.geometry.values())
        if not meshes:
            return Mesh(vertices=np.empty((0, 3)), name=path.stem)
        tm = trimesh.util.concatenate(meshes)

    return Mesh(
        vertices=np.array(tm.vertices, dtype=np.float64),
        faces=np.array(tm.faces, dtype=np.int64).reshape(-1, 3),
        name=path.stem,
    )
