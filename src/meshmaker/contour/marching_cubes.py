"""
Isosurface extraction with Marching Cubes.

Every cell of the grid is classified by which of its eight corners lie
below the threshold; the resulting 8-bit case selects the cell's triangles
from ``tables.TRI_TABLE``. Vertices sit on cell edges, linearly
interpolated to the threshold crossing, and are shared between all cells
that touch the same grid edge so the output is one connected surface.

Tie-break: a sample equal to the threshold counts as inside. A crossing
that lands exactly on such a sample is keyed by the grid point rather than
the edge, so every cell meeting at that point reuses one vertex; triangles
that collapse as a result are dropped.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from meshmaker.core.mesh import Mesh
from meshmaker.core.volume import VolumeGrid
from meshmaker.contour.tables import CORNER_OFFSETS, EDGE_AXIS, EDGE_CORNERS, TRI_TABLE

logger = logging.getLogger("meshmaker.contour.marching_cubes")


class IsosurfaceExtractor:
    """
    Marching Cubes over a VolumeGrid.

    The extractor holds no state between calls; one instance can be reused
    for any number of grids and thresholds.
    """

    def extract(self, grid: VolumeGrid, threshold: float, name: Optional[str] = None) -> Mesh:
        """
        Extract the isosurface of ``grid`` at ``threshold``.

        Args:
            grid: Input scalar grid
            threshold: Contour level
            name: Name for the output mesh (defaults to the grid name)

        Returns:
            Triangle mesh with outward-facing winding. Empty when the
            threshold lies outside the grid's value range.
        """
        threshold = float(threshold)
        name = name or grid.name
        nx, ny, nz = grid.dims

        if min(nx, ny, nz) < 2:
            logger.info(f"Grid {grid.dims} has no cells, returning empty surface")
            return self._empty(name, threshold)

        values = grid.values.astype(np.float64)
        cases = self._classify(values, threshold)

        active = np.nonzero((cases != 0) & (cases != 255))
        if len(active[0]) == 0:
            lo, hi = grid.value_range
            logger.info(f"No surface at level {threshold} (values span {lo:g}..{hi:g})")
            return self._empty(name, threshold)

        origin = np.asarray(grid.origin)
        spacing = np.asarray(grid.spacing)
        num_points = grid.num_points

        vertex_ids: dict[int, int] = {}
        positions: list[np.ndarray] = []
        faces: list[tuple[int, int, int]] = []
        dropped = 0

        def vertex_on_edge(i: int, j: int, k: int, edge: int) -> int:
            a, b = EDGE_CORNERS[edge]
            ai, aj, ak = i + CORNER_OFFSETS[a][0], j + CORNER_OFFSETS[a][1], k + CORNER_OFFSETS[a][2]
            bi, bj, bk = i + CORNER_OFFSETS[b][0], j + CORNER_OFFSETS[b][1], k + CORNER_OFFSETS[b][2]
            va = values[ak, aj, ai]
            vb = values[bk, bj, bi]
            lower = ai + nx * (aj + ny * ak)

            if va == threshold:
                key, t = 3 * num_points + lower, 0.0
            elif vb == threshold:
                key, t = 3 * num_points + bi + nx * (bj + ny * bk), 1.0
            else:
                key, t = 3 * lower + EDGE_AXIS[edge], (threshold - va) / (vb - va)

            vid = vertex_ids.get(key)
            if vid is None:
                p = np.array([ai + t * (bi - ai), aj + t * (bj - aj), ak + t * (bk - ak)])
                vid = len(positions)
                vertex_ids[key] = vid
                positions.append(origin + p * spacing)
            return vid

        for k, j, i in zip(*active):
            k, j, i = int(k), int(j), int(i)
            for e0, e1, e2 in TRI_TABLE[cases[k, j, i]]:
                tri = (vertex_on_edge(i, j, k, e0), vertex_on_edge(i, j, k, e1), vertex_on_edge(i, j, k, e2))
                if tri[0] == tri[1] or tri[1] == tri[2] or tri[0] == tri[2]:
                    dropped += 1
                    continue
                faces.append(tri)

        mesh = Mesh(
            vertices=np.array(positions, dtype=np.float64).reshape(-1, 3),
            faces=np.array(faces, dtype=np.int64).reshape(-1, 3),
            name=name,
            metadata={"contour_level": threshold},
        )
        if dropped:
            mesh.remove_unreferenced_vertices()
            logger.debug(f"Dropped {dropped} triangles collapsed onto threshold samples")

        logger.info(
            f"Contour at {threshold:g}: {len(active[0])} active cells, "
            f"{mesh.num_vertices} vertices, {mesh.num_faces} triangles"
        )
        return mesh

    @staticmethod
    def _classify(values: np.ndarray, threshold: float) -> np.ndarray:
        """Case index of every cell as an (nz-1, ny-1, nx-1) array."""
        nz, ny, nx = values.shape
        outside = values < threshold
        cases = np.zeros((nz - 1, ny - 1, nx - 1), dtype=np.int32)
        for bit, (dx, dy, dz) in enumerate(CORNER_OFFSETS):
            corner = outside[dz:dz + nz - 1, dy:dy + ny - 1, dx:dx + nx - 1]
            cases |= corner.astype(np.int32) << bit
        return cases

    @staticmethod
    def _empty(name: str, threshold: float) -> Mesh:
        return Mesh(vertices=np.empty((0, 3)), name=name, metadata={"contour_level": threshold})


def extract(grid: VolumeGrid, threshold: float) -> Mesh:
    """Convenience wrapper around ``IsosurfaceExtractor().extract``."""
    return IsosurfaceExtractor().extract(grid, threshold)
