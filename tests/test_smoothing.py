"""Tests for Laplacian smoothing."""

import numpy as np
import pytest

from meshmaker.core.mesh import Mesh
from meshmaker.postprocess import LaplacianSmoother, SmoothingConfig, smooth
from meshmaker.test_volumes import create_plane, create_sphere


def _noisy_sphere(seed: int = 0) -> Mesh:
    sphere = create_sphere(subdivisions=2)
    rng = np.random.default_rng(seed)
    sphere.vertices += rng.normal(scale=0.03, size=sphere.vertices.shape)
    return sphere


class TestLaplacianSmoother:
    """Behaviour of the smoother."""

    def test_zero_iterations_is_noop(self, sphere):
        before = sphere.vertices.copy()
        smooth(sphere, iterations=0)
        np.testing.assert_array_equal(sphere.vertices, before)

    def test_negative_iterations_rejected(self, sphere):
        with pytest.raises(ValueError):
            smooth(sphere, iterations=-1)

    def test_connectivity_unchanged(self, sphere):
        faces = sphere.faces.copy()
        n = sphere.num_vertices
        smooth(sphere, iterations=5)
        np.testing.assert_array_equal(sphere.faces, faces)
        assert sphere.num_vertices == n

    def test_reduces_noise(self):
        mesh = _noisy_sphere()
        radii = np.linalg.norm(mesh.vertices, axis=1)
        smooth(mesh, iterations=3, relaxation_factor=0.5)
        smoothed = np.linalg.norm(mesh.vertices - mesh.vertices.mean(axis=0), axis=1)
        assert smoothed.std() / smoothed.mean() < radii.std() / radii.mean()

    def test_single_pass_moves_to_neighbour_mean(self):
        # Fan around vertex 0: it moves to the mean of its four neighbours
        vertices = np.array([
            [0.2, 0.1, 0.5], [1, 0, 0], [0, 1, 0], [-1, 0, 0], [0, -1, 0],
        ], dtype=np.float64)
        faces = [[0, 1, 2], [0, 2, 3], [0, 3, 4], [0, 4, 1]]
        mesh = Mesh(vertices, faces)
        smooth(mesh, iterations=1)
        np.testing.assert_allclose(mesh.vertices[0], vertices[1:].mean(axis=0), atol=1e-12)

    def test_isolated_vertex_fixed(self, sphere):
        isolated = np.array([[5.0, 5.0, 5.0]])
        mesh = Mesh(np.vstack([sphere.vertices, isolated]), sphere.faces)
        smooth(mesh, iterations=4)
        np.testing.assert_array_equal(mesh.vertices[-1], isolated[0])

    def test_fixed_boundary(self):
        plane = create_plane(resolution=4)
        plane.vertices[:, 2] = np.random.default_rng(2).normal(scale=0.1, size=plane.num_vertices)
        boundary = LaplacianSmoother._boundary_mask(plane)
        before = plane.vertices.copy()

        LaplacianSmoother(SmoothingConfig(iterations=5, smooth_boundary=False)).smooth(plane)

        np.testing.assert_array_equal(plane.vertices[boundary], before[boundary])
        assert not np.allclose(plane.vertices[~boundary], before[~boundary])

    def test_flat_patch_stays_flat(self, plane):
        smooth(plane, iterations=10)
        np.testing.assert_allclose(plane.vertices[:, 2], 0.0)

    def test_independent_of_vertex_order(self):
        mesh = _noisy_sphere(seed=3)
        perm = np.random.default_rng(4).permutation(mesh.num_vertices)
        inverse = np.argsort(perm)
        permuted = Mesh(mesh.vertices[perm], inverse[mesh.faces])

        smooth(mesh, iterations=4)
        smooth(permuted, iterations=4)

        np.testing.assert_allclose(permuted.vertices[inverse], mesh.vertices, atol=1e-12)

    def test_strip_mesh(self):
        strip_mesh = Mesh(np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 1.0]]), strips=[[0, 1, 2, 3]])
        smooth(strip_mesh, iterations=1)
        assert strip_mesh.has_strips

    def test_empty_mesh(self):
        mesh = Mesh(np.empty((0, 3)))
        smooth(mesh, iterations=3)
        assert mesh.num_vertices == 0
