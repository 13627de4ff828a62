"""Tests for the STL, legacy VTK and XML PolyData writers."""

import base64
import logging
import stat
import xml.etree.ElementTree as ET

import numpy as np
import pytest

from meshmaker.core.io import load_mesh
from meshmaker.core.mesh import Mesh
from meshmaker.export import (
    LegacyVTKWriter,
    OutputFormat,
    STLWriter,
    WriteError,
    WriteOptions,
    XMLPolyDataWriter,
    get_writer,
    write_mesh,
)
from meshmaker.export.base import CellArrays
from meshmaker.postprocess import build_strips
from meshmaker.test_volumes import create_sphere


def _as_f32(values: np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float32).astype(np.float64)


@pytest.fixture
def stripped():
    return build_strips(create_sphere(subdivisions=2))


class TestCellArrays:
    """Connectivity/offset bookkeeping."""

    def test_from_uniform_rows(self):
        cells = CellArrays.from_rows(np.array([[0, 1, 2], [2, 1, 3]]))
        np.testing.assert_array_equal(cells.connectivity, [0, 1, 2, 2, 1, 3])
        np.testing.assert_array_equal(cells.offsets, [3, 6])

    def test_legacy_layout(self):
        cells = CellArrays.from_rows([np.array([0, 1, 2, 3]), np.array([4, 5, 6])])
        np.testing.assert_array_equal(cells.legacy(), [4, 0, 1, 2, 3, 3, 4, 5, 6])
        np.testing.assert_array_equal(cells.counts, [4, 3])

    def test_empty(self):
        cells = CellArrays.from_rows([])
        assert cells.num_cells == 0
        assert len(cells.legacy()) == 0


class TestSTLWriter:
    """Binary and ASCII STL."""

    def test_binary_layout(self, tmp_path, sphere):
        path = tmp_path / "mesh.stl"
        result = STLWriter().write(sphere, path)
        raw = path.read_bytes()
        assert len(raw) == 84 + 50 * sphere.num_faces
        assert int(np.frombuffer(raw[80:84], dtype="<u4")[0]) == sphere.num_faces
        assert result.bytes_written == len(raw)
        assert result.num_cells == sphere.num_faces

    def test_binary_round_trip(self, tmp_path, sphere):
        path = tmp_path / "mesh.stl"
        STLWriter().write(sphere, path)
        loaded = load_mesh(path)
        np.testing.assert_allclose(
            loaded.vertices[loaded.faces], _as_f32(sphere.vertices[sphere.faces]), atol=1e-6
        )

    def test_normals_stored(self, tmp_path, sphere):
        path = tmp_path / "mesh.stl"
        STLWriter().write(sphere, path)
        records = np.frombuffer(path.read_bytes()[84:], dtype=[("n", "<f4", 3), ("v", "<f4", (3, 3)), ("a", "<u2")])
        np.testing.assert_allclose(records["n"], sphere.face_normals(), atol=1e-6)

    def test_ascii(self, tmp_path, sphere):
        path = tmp_path / "mesh.stl"
        STLWriter(WriteOptions(binary=False)).write(sphere, path)
        text = path.read_text()
        assert text.startswith("solid sphere")
        assert text.rstrip().endswith("endsolid")
        assert text.count("facet normal") == sphere.num_faces
        assert text.count("vertex") == 3 * sphere.num_faces

        loaded = load_mesh(path)
        assert len(loaded.faces) == sphere.num_faces

    def test_strips_are_expanded(self, tmp_path, stripped):
        path = tmp_path / "mesh.stl"
        result = STLWriter().write(stripped, path)
        assert result.num_cells == stripped.num_triangles
        assert len(path.read_bytes()) == 84 + 50 * stripped.num_triangles

    def test_empty_mesh(self, tmp_path):
        path = tmp_path / "empty.stl"
        STLWriter().write(Mesh(np.empty((0, 3))), path)
        assert len(path.read_bytes()) == 84


class TestLegacyVTKWriter:
    """Legacy POLYDATA files."""

    @pytest.mark.parametrize("binary", [True, False])
    def test_triangles_round_trip(self, tmp_path, sphere, binary):
        path = tmp_path / "mesh.vtk"
        LegacyVTKWriter(WriteOptions(binary=binary)).write(sphere, path)
        loaded = load_mesh(path)
        np.testing.assert_allclose(loaded.vertices, _as_f32(sphere.vertices))
        np.testing.assert_array_equal(loaded.faces, sphere.faces)

    @pytest.mark.parametrize("binary", [True, False])
    def test_strips_round_trip(self, tmp_path, stripped, binary):
        path = tmp_path / "mesh.vtk"
        LegacyVTKWriter(WriteOptions(binary=binary)).write(stripped, path)
        loaded = load_mesh(path)
        assert loaded.num_strips == stripped.num_strips
        for a, b in zip(loaded.strips, stripped.strips):
            np.testing.assert_array_equal(a, b)

    def test_header(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtk"
        LegacyVTKWriter(WriteOptions(binary=False)).write(sphere, path)
        lines = path.read_text().splitlines()
        assert lines[0] == "# vtk DataFile Version 4.2"
        assert lines[2] == "ASCII"
        assert lines[3] == "DATASET POLYDATA"
        assert lines[4] == f"POINTS {sphere.num_vertices} float"
        assert f"POLYGONS {sphere.num_faces} {4 * sphere.num_faces}" in lines
        assert not any(line.startswith("TRIANGLE_STRIPS") for line in lines)

    def test_binary_points_are_big_endian(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtk"
        LegacyVTKWriter().write(sphere, path)
        raw = path.read_bytes()
        marker = f"POINTS {sphere.num_vertices} float\n".encode()
        start = raw.index(marker) + len(marker)
        points = np.frombuffer(raw[start:start + 12], dtype=">f4")
        np.testing.assert_allclose(points, sphere.vertices[0], atol=1e-6)

    def test_mixed_polygon_sizes(self, tmp_path):
        mesh = Mesh(np.zeros((7, 3)), faces=[[0, 1, 2, 3], [4, 5, 6]])
        path = tmp_path / "mixed.vtk"
        LegacyVTKWriter(WriteOptions(binary=False)).write(mesh, path)
        assert "POLYGONS 2 9" in path.read_text()


class TestXMLPolyDataWriter:
    """XML PolyData layout and encodings."""

    def _parse(self, path):
        root = ET.parse(path).getroot()
        return root, root.find("PolyData/Piece")

    def test_attributes(self, tmp_path, stripped):
        path = tmp_path / "mesh.vtp"
        XMLPolyDataWriter().write(stripped, path)
        root, piece = self._parse(path)
        assert root.get("type") == "PolyData"
        assert root.get("byte_order") == "LittleEndian"
        assert root.get("header_type") == "UInt32"
        assert piece.get("NumberOfPoints") == str(stripped.num_vertices)
        assert piece.get("NumberOfStrips") == str(stripped.num_strips)
        assert piece.get("NumberOfPolys") == "0"
        assert piece.get("NumberOfVerts") == "0"
        assert piece.get("NumberOfLines") == "0"

        points = piece.find("Points/DataArray")
        assert points.get("type") == "Float32"
        assert points.get("NumberOfComponents") == "3"
        for tag in ("Verts", "Lines", "Strips", "Polys"):
            names = [da.get("Name") for da in piece.findall(f"{tag}/DataArray")]
            assert names == ["connectivity", "offsets"]
            assert all(da.get("type") == "Int64" for da in piece.findall(f"{tag}/DataArray"))

    def test_binary_header(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtp"
        XMLPolyDataWriter().write(sphere, path)
        _, piece = self._parse(path)
        text = piece.find("Polys/DataArray[@Name='connectivity']").text.strip()
        nbytes = int(np.frombuffer(base64.b64decode(text[:8]), dtype="<u4")[0])
        assert nbytes == 8 * 3 * sphere.num_faces
        payload = np.frombuffer(base64.b64decode(text[8:]), dtype="<i8")
        np.testing.assert_array_equal(payload, sphere.faces.reshape(-1))

    def test_uint64_header(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtp"
        XMLPolyDataWriter(WriteOptions(header_uint64=True)).write(sphere, path)
        root, piece = self._parse(path)
        assert root.get("header_type") == "UInt64"
        text = piece.find("Polys/DataArray[@Name='offsets']").text.strip()
        nbytes = int(np.frombuffer(base64.b64decode(text[:12]), dtype="<u8")[0])
        assert nbytes == 8 * sphere.num_faces

    def test_int32_indices(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtp"
        XMLPolyDataWriter(WriteOptions(index_int32=True)).write(sphere, path)
        _, piece = self._parse(path)
        assert all(da.get("type") == "Int32" for da in piece.findall("Polys/DataArray"))

    def test_ascii(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtp"
        XMLPolyDataWriter(WriteOptions(binary=False)).write(sphere, path)
        _, piece = self._parse(path)
        offsets = piece.find("Polys/DataArray[@Name='offsets']")
        assert offsets.get("format") == "ascii"
        np.testing.assert_array_equal(
            np.array(offsets.text.split(), dtype=np.int64), 3 * np.arange(1, sphere.num_faces + 1)
        )

    @pytest.mark.parametrize("options", [
        WriteOptions(),
        WriteOptions(binary=False),
        WriteOptions(header_uint64=True),
        WriteOptions(index_int32=True),
    ])
    def test_round_trip(self, tmp_path, sphere, stripped, options):
        for mesh in (sphere, stripped):
            path = tmp_path / "mesh.vtp"
            XMLPolyDataWriter(options).write(mesh, path)
            loaded = load_mesh(path)
            np.testing.assert_allclose(loaded.vertices, _as_f32(mesh.vertices))
            np.testing.assert_array_equal(loaded.triangles(), mesh.triangles())

    def test_empty_mesh(self, tmp_path):
        path = tmp_path / "empty.vtp"
        XMLPolyDataWriter().write(Mesh(np.empty((0, 3))), path)
        loaded = load_mesh(path)
        assert loaded.num_vertices == 0
        assert loaded.is_empty


class TestWrite:
    """Writer selection and atomic replacement."""

    def test_get_writer(self):
        assert isinstance(get_writer("stl"), STLWriter)
        assert isinstance(get_writer(".VTP"), XMLPolyDataWriter)
        assert isinstance(get_writer(OutputFormat.LEGACY), LegacyVTKWriter)

    def test_get_writer_unknown(self):
        with pytest.raises(ValueError, match="Unknown output format"):
            get_writer("obj")

    def test_write_mesh_uses_suffix(self, tmp_path, sphere):
        result = write_mesh(sphere, tmp_path / "mesh.vtk")
        assert result.format == OutputFormat.LEGACY
        assert result.path.read_bytes().startswith(b"# vtk DataFile")

    def test_replaces_existing_file(self, tmp_path, sphere):
        path = tmp_path / "mesh.vtp"
        path.write_text("old contents")
        write_mesh(sphere, path)
        assert path.read_bytes().startswith(b"<?xml")
        assert [p.name for p in tmp_path.iterdir()] == ["mesh.vtp"]

    def test_missing_directory(self, tmp_path, sphere):
        with pytest.raises(WriteError):
            write_mesh(sphere, tmp_path / "missing" / "mesh.vtp")

    def test_failed_replace_leaves_no_temp_file(self, tmp_path, sphere):
        target = tmp_path / "mesh.vtp"
        target.mkdir()
        with pytest.raises(WriteError):
            write_mesh(sphere, target)
        assert [p.name for p in tmp_path.iterdir()] == ["mesh.vtp"]
        assert target.is_dir()

    def test_xml_options_ignored_elsewhere(self, caplog):
        with caplog.at_level(logging.WARNING, logger="meshmaker.export.base"):
            STLWriter(WriteOptions(header_uint64=True))
        assert "64-bit headers only apply to XML" in caplog.text

        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="meshmaker.export.base"):
            XMLPolyDataWriter(WriteOptions(header_uint64=True))
        assert caplog.text == ""

    def test_new_file_gets_default_permissions(self, tmp_path, sphere):
        plain = tmp_path / "plain.bin"
        plain.write_bytes(b"")
        path = tmp_path / "mesh.vtp"
        write_mesh(sphere, path)
        assert stat.S_IMODE(path.stat().st_mode) == stat.S_IMODE(plain.stat().st_mode)

    @pytest.mark.parametrize("suffix", [".stl", ".vtk", ".vtp"])
    def test_replaced_file_keeps_permissions(self, tmp_path, sphere, suffix):
        path = tmp_path / f"mesh{suffix}"
        path.write_text("old contents")
        path.chmod(0o640)
        write_mesh(sphere, path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o640
