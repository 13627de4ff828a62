"""
Progressive decimation by edge collapse.

Edges are ranked by quadric error (Garland & Heckbert): every vertex
carries the sum of the plane quadrics of its incident triangles, and
merging an edge costs the summed quadric evaluated at the merged position.
The cheapest edge is collapsed first, provided the collapse keeps the
surface manifold, does not flip triangles and, when requested, leaves the
mesh's boundary and topology alone.

During a pass vertices and faces are tombstoned rather than removed, so
indices stay valid; one compaction at the end renumbers them. The heap
uses lazy invalidation: each entry remembers the version stamps of its
endpoints and is discarded on pop if either endpoint has changed since.
"""

from __future__ import annotations

import heapq
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from meshmaker.core.mesh import Mesh
from meshmaker.utils.timing import ProgressTimer

logger = logging.getLogger("meshmaker.remesh.decimate")


@dataclass
class DecimateConfig:
    """Configuration for progressive decimation."""
    target_reduction: float = 0.9  # Fraction of triangles to remove, in (0, 1)
    preserve_topology: bool = True
    preserve_boundary: bool = True  # Never move or remove boundary vertices
    max_normal_deviation: float = 90.0  # Degrees a surviving triangle's normal may turn


@dataclass
class DecimationResult:
    """Result from a decimation pass."""
    mesh: Mesh
    initial_faces: int
    final_faces: int
    target_faces: int
    collapses: int = 0
    skipped: int = 0
    time_seconds: float = 0.0

    @property
    def reached_target(self) -> bool:
        return self.final_faces <= self.target_faces

    @property
    def reduction(self) -> float:
        """Fraction of triangles actually removed."""
        if self.initial_faces == 0:
            return 0.0
        return 1.0 - self.final_faces / self.initial_faces

    def to_dict(self) -> dict:
        return {
            "initial_faces": self.initial_faces,
            "final_faces": self.final_faces,
            "target_faces": self.target_faces,
            "collapses": self.collapses,
            "skipped": self.skipped,
            "reduction": self.reduction,
            "reached_target": self.reached_target,
            "time_seconds": self.time_seconds,
        }


class _CollapseArena:
    """Tombstoned vertex and face storage for one decimation pass."""

    def __init__(self, vertices: np.ndarray, faces: np.ndarray):
        self.positions = vertices.copy()
        self.faces = faces.tolist()
        self.face_alive = [True] * len(self.faces)
        self.vertex_alive = [True] * len(vertices)
        self.stamp = [0] * len(vertices)
        self.live_faces = len(self.faces)

        self.vertex_faces = [set() for _ in range(len(vertices))]
        for fi, face in enumerate(self.faces):
            for vi in face:
                self.vertex_faces[vi].add(fi)

    def neighbors(self, v: int) -> set:
        ring = set()
        for fi in self.vertex_faces[v]:
            ring.update(self.faces[fi])
        ring.discard(v)
        return ring

    def edge_faces(self, u: int, v: int) -> list:
        return sorted(self.vertex_faces[u] & self.vertex_faces[v])

    def is_boundary_vertex(self, v: int) -> bool:
        return any(len(self.vertex_faces[v] & self.vertex_faces[w]) == 1 for w in self.neighbors(v))

    def apex(self, fi: int, u: int, v: int) -> int:
        return next(w for w in self.faces[fi] if w != u and w != v)

    def collapse(self, u: int, v: int, shared: list, position: np.ndarray) -> None:
        """Merge ``v`` into ``u`` at ``position``; faces on the edge are removed."""
        for fi in shared:
            self.face_alive[fi] = False
            self.live_faces -= 1
            for w in self.faces[fi]:
                self.vertex_faces[w].discard(fi)

        for fi in self.vertex_faces[v]:
            face = self.faces[fi]
            face[face.index(v)] = u
            self.vertex_faces[u].add(fi)

        self.vertex_faces[v] = set()
        self.vertex_alive[v] = False
        self.positions[u] = position
        self.stamp[u] += 1
        self.stamp[v] += 1

    def compact(self) -> tuple[np.ndarray, np.ndarray]:
        faces = [f for f, alive in zip(self.faces, self.face_alive) if alive]
        return self.positions, np.array(faces, dtype=np.int64).reshape(-1, 3)


class ProgressiveDecimator:
    """
    Quadric-error edge-collapse decimator.

    Collapses are taken cheapest first and skipped, never forced, when
    they would break the constraints; if simplification stalls the mesh is
    returned as far as it could be reduced.
    """

    def __init__(self, config: Optional[DecimateConfig] = None):
        self.config = config or DecimateConfig()

    def decimate(self, mesh: Mesh) -> DecimationResult:
        """
        Decimate ``mesh`` in place.

        Args:
            mesh: Triangle mesh (strips are expanded first)

        Returns:
            DecimationResult describing the pass; ``result.mesh`` is ``mesh``
        """
        reduction = self.config.target_reduction
        if not 0.0 < reduction < 1.0:
            raise ValueError(f"Target reduction must be in (0, 1), got {reduction}")

        start_time = time.time()
        tris = mesh.triangles()
        initial = len(tris)
        target = int(math.floor(initial * (1.0 - reduction)))

        if initial == 0:
            return DecimationResult(mesh=mesh, initial_faces=0, final_faces=0, target_faces=0)

        logger.debug(f"Decimation: {initial} -> {target} triangles")

        arena = _CollapseArena(mesh.vertices, tris)
        quadrics = self._vertex_quadrics(mesh.vertices, tris)
        self._cos_limit = math.cos(math.radians(self.config.max_normal_deviation))
        self._area_eps = self._degenerate_area(mesh.vertices, tris)

        heap = []
        counter = 0

        def push(u: int, v: int) -> None:
            nonlocal counter
            if u > v:
                u, v = v, u
            q = quadrics[u] + quadrics[v]
            position, cost = self._placement(q, arena.positions[u], arena.positions[v])
            heapq.heappush(heap, (cost, counter, u, v, arena.stamp[u], arena.stamp[v], position))
            counter += 1

        for u, v in np.unique(np.sort(np.concatenate([tris[:, [0, 1]], tris[:, [1, 2]], tris[:, [2, 0]]]), axis=1), axis=0):
            push(int(u), int(v))

        collapses = 0
        skipped = 0
        progress = ProgressTimer(total=max(initial - target, 1), operation_name="Decimation")

        while arena.live_faces > target and heap:
            _, _, u, v, stamp_u, stamp_v, position = heapq.heappop(heap)

            if not (arena.vertex_alive[u] and arena.vertex_alive[v]):
                continue
            if arena.stamp[u] != stamp_u or arena.stamp[v] != stamp_v:
                continue

            shared = arena.edge_faces(u, v)
            if not shared:
                continue
            if arena.live_faces - len(shared) <= 0 or not self._can_collapse(arena, u, v, shared, position):
                skipped += 1
                continue

            arena.collapse(u, v, shared, position)
            quadrics[u] += quadrics[v]
            collapses += 1
            progress.update(len(shared))

            for w in arena.neighbors(u):
                push(u, w)

        vertices, faces = arena.compact()
        mesh.vertices = vertices
        mesh.strips = []
        mesh.faces = faces
        mesh.remove_unreferenced_vertices()

        result = DecimationResult(
            mesh=mesh,
            initial_faces=initial,
            final_faces=mesh.num_faces,
            target_faces=target,
            collapses=collapses,
            skipped=skipped,
            time_seconds=time.time() - start_time,
        )
        mesh.metadata["decimation"] = result.to_dict()

        if result.reached_target:
            progress.finish()
        else:
            logger.warning(
                f"Decimation stalled at {result.final_faces} triangles "
                f"(target {target}, {skipped} collapses rejected)"
            )
        logger.info(
            f"Decimated {initial} -> {result.final_faces} triangles "
            f"({100 * result.reduction:.1f}% reduction, {collapses} collapses)"
        )
        return result

    @staticmethod
    def _vertex_quadrics(vertices: np.ndarray, tris: np.ndarray) -> np.ndarray:
        """Sum of incident plane quadrics per vertex, as an (N, 4, 4) array."""
        v0 = vertices[tris[:, 0]]
        normals = np.cross(vertices[tris[:, 1]] - v0, vertices[tris[:, 2]] - v0)
        norms = np.linalg.norm(normals, axis=1)
        valid = norms > 0

        planes = np.zeros((len(tris), 4))
        planes[valid, :3] = normals[valid] / norms[valid, None]
        planes[valid, 3] = -np.einsum("ij,ij->i", planes[valid, :3], v0[valid])

        face_q = planes[:, :, None] * planes[:, None, :]
        quadrics = np.zeros((len(vertices), 4, 4))
        for corner in range(3):
            np.add.at(quadrics, tris[:, corner], face_q)
        return quadrics

    @staticmethod
    def _degenerate_area(vertices: np.ndarray, tris: np.ndarray) -> float:
        """Doubled-area threshold below which a triangle counts as degenerate."""
        lengths = np.linalg.norm(vertices[tris[:, 1]] - vertices[tris[:, 0]], axis=1)
        mean_length = float(lengths.mean()) if len(lengths) else 1.0
        return 1e-10 * max(mean_length, 1e-12) ** 2

    @staticmethod
    def _quadric_cost(q: np.ndarray, position: np.ndarray) -> float:
        h = np.append(position, 1.0)
        return max(float(h @ q @ h), 0.0)

    def _placement(self, q: np.ndarray, pu: np.ndarray, pv: np.ndarray) -> tuple[np.ndarray, float]:
        """
        Merged position and cost for an edge with summed quadric ``q``.

        Uses the quadric minimiser when the system is well conditioned and
        the minimiser stays near the edge; otherwise the cheapest of the two
        endpoints and the midpoint.
        """
        candidates = [pu, pv, (pu + pv) / 2]

        a = q[:3, :3]
        if np.linalg.cond(a) < 1e8:
            optimum = np.linalg.solve(a, -q[:3, 3])
            edge_length = np.linalg.norm(pv - pu)
            if np.linalg.norm(optimum - candidates[2]) <= 2.0 * edge_length:
                candidates.insert(0, optimum)

        costs = [self._quadric_cost(q, p) for p in candidates]
        best = int(np.argmin(costs))
        return np.array(candidates[best], dtype=np.float64), costs[best]

    def _can_collapse(self, arena: _CollapseArena, u: int, v: int, shared: list, position: np.ndarray) -> bool:
        """Check manifold, boundary, topology and orientation constraints."""
        if len(shared) > 2:
            return False

        ring_u = arena.neighbors(u)
        ring_v = arena.neighbors(v)

        # Link condition: the only common neighbours are the apexes of the edge's triangles
        apexes = {arena.apex(fi, u, v) for fi in shared}
        if (ring_u & ring_v) != apexes:
            return False

        # Never shrink a component below a tetrahedron
        if len((ring_u | ring_v) - {u, v}) < 3:
            return False

        boundary_u = arena.is_boundary_vertex(u)
        boundary_v = arena.is_boundary_vertex(v)
        if self.config.preserve_boundary and (boundary_u or boundary_v):
            return False
        if self.config.preserve_topology and boundary_u and boundary_v and len(shared) == 2:
            return False

        return not self._flips_triangles(arena, u, v, shared, position)

    def _flips_triangles(self, arena: _CollapseArena, u: int, v: int, shared: list, position: np.ndarray) -> bool:
        """True if moving u and v to ``position`` degenerates or over-rotates a surviving triangle."""
        removed = set(shared)
        for fi in (arena.vertex_faces[u] | arena.vertex_faces[v]) - removed:
            old = [arena.positions[w] for w in arena.faces[fi]]
            new = [position if w == u or w == v else arena.positions[w] for w in arena.faces[fi]]

            n_old = np.cross(old[1] - old[0], old[2] - old[0])
            n_new = np.cross(new[1] - new[0], new[2] - new[0])
            len_old = np.linalg.norm(n_old)
            len_new = np.linalg.norm(n_new)

            if len_new <= self._area_eps:
                return True
            if len_old > self._area_eps and np.dot(n_old, n_new) < self._cos_limit * len_old * len_new:
                return True
        return False


def decimate(mesh: Mesh, target_reduction: float, preserve_topology: bool = True) -> Mesh:
    """
    Convenience function for progressive decimation.

    Args:
        mesh: Triangle mesh, decimated in place
        target_reduction: Fraction of triangles to remove, in (0, 1)
        preserve_topology: Keep components, boundary loops and genus

    Returns:
        The decimated mesh
    """
    config = DecimateConfig(target_reduction=target_reduction, preserve_topology=preserve_topology)
    return ProgressiveDecimator(config).decimate(mesh).mesh
