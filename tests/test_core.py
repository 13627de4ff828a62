"""Tests for the grid and mesh data structures."""

import numpy as np
import pytest

from meshmaker.core.mesh import Mesh, decode_strip
from meshmaker.core.volume import VolumeGrid


class TestVolumeGrid:
    """Construction and accessors of the scalar grid."""

    def test_from_array_dims_are_xyz(self):
        values = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
        grid = VolumeGrid.from_array(values)
        assert grid.dims == (4, 3, 2)
        assert grid.num_points == 24
        np.testing.assert_array_equal(grid.values, values)

    def test_flat_layout_is_x_fastest(self):
        values = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
        grid = VolumeGrid.from_array(values)
        nx, ny, _ = grid.dims
        i, j, k = 3, 1, 1
        assert grid.scalars[i + nx * (j + ny * k)] == values[k, j, i]

    def test_wrong_sample_count_rejected(self):
        with pytest.raises(ValueError):
            VolumeGrid(dims=(2, 2, 2), scalars=np.zeros(7))

    def test_non_positive_spacing_rejected(self):
        with pytest.raises(ValueError):
            VolumeGrid(dims=(2, 2, 2), scalars=np.zeros(8), spacing=(1.0, 0.0, 1.0))

    def test_non_positive_dims_rejected(self):
        with pytest.raises(ValueError):
            VolumeGrid(dims=(0, 2, 2), scalars=np.zeros(0))

    def test_scalars_are_read_only(self):
        grid = VolumeGrid.from_array(np.zeros((2, 2, 2)))
        with pytest.raises(ValueError):
            grid.scalars[0] = 1.0

    def test_source_array_is_copied(self):
        values = np.zeros((2, 2, 2))
        grid = VolumeGrid.from_array(values)
        values[0, 0, 0] = 5.0
        assert grid.values[0, 0, 0] == 0.0

    def test_point_and_bounds(self):
        grid = VolumeGrid.from_array(np.zeros((3, 3, 5)), spacing=(0.5, 1.0, 2.0), origin=(1.0, 2.0, 3.0))
        np.testing.assert_allclose(grid.point(1, 1, 1), [1.5, 3.0, 5.0])
        lo, hi = grid.bounds
        np.testing.assert_allclose(lo, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(hi, [3.0, 4.0, 7.0])

    def test_value_range(self):
        grid = VolumeGrid.from_array(np.linspace(-1, 2, 8).reshape(2, 2, 2))
        assert grid.value_range == (-1.0, 2.0)


class TestDecodeStrip:
    """Alternating-parity strip expansion."""

    def test_parity(self):
        tris = decode_strip(np.array([0, 1, 2, 3, 4]))
        np.testing.assert_array_equal(tris, [[0, 1, 2], [2, 1, 3], [2, 3, 4]])

    def test_short_strip_is_empty(self):
        assert decode_strip(np.array([0, 1])).shape == (0, 3)

    def test_degenerate_triangles_skipped(self):
        tris = decode_strip(np.array([0, 1, 2, 2, 3, 4]))
        np.testing.assert_array_equal(tris, [[0, 1, 2], [3, 2, 4]])


class TestMesh:
    """Mesh invariants and helpers."""

    def test_faces_and_strips_exclusive(self):
        with pytest.raises(ValueError):
            Mesh(np.zeros((4, 3)), faces=[[0, 1, 2]], strips=[[0, 1, 2, 3]])

    def test_ragged_faces_kept_as_list(self):
        mesh = Mesh(np.zeros((5, 3)), faces=[[0, 1, 2], [0, 2, 3, 4]])
        assert not mesh.is_triangular
        assert mesh.num_faces == 2
        assert mesh.num_triangles == 3

    def test_triangles_from_strips(self):
        mesh = Mesh(np.zeros((5, 3)), strips=[[0, 1, 2, 3, 4]])
        assert mesh.has_strips
        assert mesh.num_triangles == 3
        assert mesh.triangles().shape == (3, 3)

    def test_triangles_requires_triangulation(self):
        mesh = Mesh(np.zeros((4, 3)), faces=[[0, 1, 2, 3]])
        with pytest.raises(ValueError):
            mesh.triangles()

    def test_edges_unique(self, sphere):
        edges = sphere.edges()
        # Closed triangle mesh: E = 3F/2
        assert len(edges) == 3 * sphere.num_faces // 2
        assert np.all(edges[:, 0] < edges[:, 1])

    def test_validate_index_range(self):
        mesh = Mesh(np.zeros((3, 3)), faces=[[0, 1, 3]])
        with pytest.raises(ValueError):
            mesh.validate()

    def test_validate_repeated_index(self):
        mesh = Mesh(np.zeros((3, 3)), faces=[[0, 1, 1]])
        with pytest.raises(ValueError):
            mesh.validate()

    def test_remove_unreferenced_vertices(self):
        vertices = np.arange(15, dtype=np.float64).reshape(5, 3)
        mesh = Mesh(vertices, faces=[[1, 3, 4]])
        remap = mesh.remove_unreferenced_vertices()
        assert mesh.num_vertices == 3
        np.testing.assert_array_equal(mesh.faces, [[0, 1, 2]])
        np.testing.assert_array_equal(mesh.vertices, vertices[[1, 3, 4]])
        assert remap[0] == -1 and remap[2] == -1

    def test_face_normals_unit(self, sphere):
        normals = sphere.face_normals()
        np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0)

    def test_copy_is_independent(self, sphere):
        dup = sphere.copy()
        dup.vertices[0] += 1.0
        assert not np.allclose(dup.vertices[0], sphere.vertices[0])

    def test_empty_mesh(self):
        mesh = Mesh(np.empty((0, 3)))
        assert mesh.is_empty
        assert mesh.num_triangles == 0
        lo, hi = mesh.bounds
        np.testing.assert_array_equal(lo, np.zeros(3))

    def test_to_trimesh(self, sphere):
        tm = sphere.to_trimesh()
        assert len(tm.faces) == sphere.num_faces
        assert tm.is_watertight
