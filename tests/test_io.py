"""Tests for volume and mesh readers."""

import logging

import numpy as np
import pytest

from meshmaker.core.io import InputDecodeError, load_mesh, load_volume, read_mrc


@pytest.fixture
def data():
    """(sections, rows, columns) = (2, 3, 4) with distinct values."""
    return np.arange(24, dtype=np.float32).reshape(2, 3, 4)


class TestReadMRC:
    """MRC/MAP decoding."""

    @pytest.mark.parametrize("byte_order", ["<", ">"])
    def test_float_map(self, tmp_path, write_mrc, data, byte_order):
        path = write_mrc(tmp_path / "map.mrc", data, byte_order=byte_order)
        grid = read_mrc(path)
        assert grid.dims == (4, 3, 2)
        np.testing.assert_array_equal(grid.values, data)
        assert grid.metadata["mode"] == 2
        assert grid.name == "map"

    @pytest.mark.parametrize("byte_order", ["<", ">"])
    def test_byte_order_guessed_without_stamp(self, tmp_path, write_mrc, data, byte_order):
        path = write_mrc(tmp_path / "map.map", data, byte_order=byte_order, stamp=False)
        np.testing.assert_array_equal(read_mrc(path).values, data)

    @pytest.mark.parametrize("mode", [0, 1, 6, 12])
    def test_integer_and_half_modes(self, tmp_path, write_mrc, data, mode):
        path = write_mrc(tmp_path / "map.mrc", data, mode=mode)
        grid = read_mrc(path)
        assert grid.values.dtype == np.float32
        np.testing.assert_array_equal(grid.values, data)

    def test_permuted_axes(self, tmp_path, write_mrc, data):
        # Columns hold z, rows y, sections x
        path = write_mrc(tmp_path / "map.mrc", data, axes=(3, 2, 1))
        grid = read_mrc(path)
        assert grid.dims == (2, 3, 4)
        np.testing.assert_array_equal(grid.values, data.transpose(2, 1, 0))
        assert grid.metadata["axis_order"] == (3, 2, 1)

    def test_swapped_row_and_column_axes(self, tmp_path, write_mrc, data):
        # Columns hold y, rows x, sections z
        path = write_mrc(tmp_path / "map.mrc", data, axes=(2, 1, 3))
        grid = read_mrc(path)
        assert grid.dims == (3, 4, 2)
        np.testing.assert_array_equal(grid.values, data.transpose(0, 2, 1))

    def test_invalid_axes_fall_back(self, tmp_path, write_mrc, data, caplog):
        path = write_mrc(tmp_path / "map.mrc", data, axes=(1, 1, 3))
        with caplog.at_level(logging.WARNING, logger="meshmaker.core.io"):
            grid = read_mrc(path)
        np.testing.assert_array_equal(grid.values, data)
        assert "Invalid axis mapping" in caplog.text

    def test_spacing_from_cell(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data, cell=(8.0, 3.0, 1.0))
        assert read_mrc(path).spacing == (2.0, 1.0, 0.5)

    def test_origin_from_header(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data, origin=(10.0, 20.0, 30.0), start=(1, 1, 1))
        assert read_mrc(path).origin == (10.0, 20.0, 30.0)

    def test_origin_from_start(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data, cell=(8.0, 3.0, 1.0), start=(1, 2, 3))
        assert read_mrc(path).origin == (2.0, 2.0, 1.5)

    def test_extended_header_skipped(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data, ext_header=b"\xff" * 96)
        np.testing.assert_array_equal(read_mrc(path).values, data)

    def test_truncated_data(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data)
        path.write_bytes(path.read_bytes()[:-4])
        with pytest.raises(InputDecodeError, match="truncated"):
            read_mrc(path)

    def test_short_header(self, tmp_path):
        path = tmp_path / "map.mrc"
        path.write_bytes(b"\0" * 100)
        with pytest.raises(InputDecodeError):
            read_mrc(path)

    def test_unknown_mode(self, tmp_path, write_mrc, data):
        path = write_mrc(tmp_path / "map.mrc", data)
        raw = bytearray(path.read_bytes())
        raw[12:16] = np.array([3], dtype="<i4").tobytes()
        path.write_bytes(bytes(raw))
        with pytest.raises(InputDecodeError, match="mode 3"):
            read_mrc(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputDecodeError):
            read_mrc(tmp_path / "absent.mrc")


class TestLoadVolume:
    """Reader dispatch."""

    def test_dispatch_by_suffix(self, tmp_path, write_mrc, data):
        for suffix in (".mrc", ".map", ".ccp4", ".MRC"):
            path = write_mrc(tmp_path / f"vol{suffix}", data)
            np.testing.assert_array_equal(load_volume(path).values, data)

    def test_npy(self, tmp_path, data):
        path = tmp_path / "vol.npy"
        np.save(path, data)
        grid = load_volume(path)
        assert grid.dims == (4, 3, 2)
        assert grid.spacing == (1.0, 1.0, 1.0)

    def test_npy_wrong_rank(self, tmp_path):
        path = tmp_path / "vol.npy"
        np.save(path, np.zeros((3, 3)))
        with pytest.raises(InputDecodeError):
            load_volume(path)

    def test_missing(self, tmp_path):
        with pytest.raises(InputDecodeError, match="not found"):
            load_volume(tmp_path / "absent.map")

    def test_unknown_suffix(self, tmp_path):
        path = tmp_path / "vol.txt"
        path.write_text("1 2 3")
        with pytest.raises(InputDecodeError, match="Unrecognised"):
            load_volume(path)


class TestLoadMesh:
    """Mesh reader failures; round trips live with the writers."""

    def test_missing(self, tmp_path):
        with pytest.raises(InputDecodeError):
            load_mesh(tmp_path / "absent.vtp")

    def test_malformed_xml(self, tmp_path):
        path = tmp_path / "bad.vtp"
        path.write_text("<VTKFile type='PolyData'><PolyData>")
        with pytest.raises(InputDecodeError):
            load_mesh(path)

    def test_not_legacy_vtk(self, tmp_path):
        path = tmp_path / "bad.vtk"
        path.write_text("hello\nworld\n")
        with pytest.raises(InputDecodeError):
            load_mesh(path)

    def test_unknown_suffix(self, tmp_path):
        path = tmp_path / "mesh.obj"
        path.write_text("v 0 0 0\n")
        with pytest.raises(InputDecodeError):
            load_mesh(path)

    def test_legacy_ascii_polygons(self, tmp_path):
        path = tmp_path / "quad.vtk"
        path.write_text(
            "# vtk DataFile Version 3.0\n"
            "quad\n"
            "ASCII\n"
            "DATASET POLYDATA\n"
            "POINTS 4 float\n"
            "0 0 0 1 0 0\n"
            "1 1 0 0 1 0\n"
            "POLYGONS 2 8\n"
            "3 0 1 2\n"
            "3 0 2 3\n"
        )
        mesh = load_mesh(path)
        assert mesh.num_vertices == 4
        np.testing.assert_array_equal(mesh.faces, [[0, 1, 2], [0, 2, 3]])
