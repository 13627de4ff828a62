"""
Topological measures of triangle meshes.

Used to report what each pipeline stage did to the surface and to check
that simplification kept the mesh's components, boundary loops and genus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from meshmaker.core.mesh import Mesh

logger = logging.getLogger("meshmaker.evaluation.topology")


def _count_components(num_vertices: int, edges: np.ndarray, members: np.ndarray) -> int:
    """Number of connected components of the edge graph restricted to ``members``."""
    if len(members) == 0:
        return 0
    graph = coo_matrix(
        (np.ones(len(edges), dtype=np.int8), (edges[:, 0], edges[:, 1])),
        shape=(num_vertices, num_vertices),
    )
    _, labels = connected_components(graph, directed=False)
    return len(np.unique(labels[members]))


@dataclass
class MeshTopology:
    """Topology summary of a triangle mesh (strips are expanded first)."""
    num_vertices: int
    num_edges: int
    num_faces: int
    num_boundary_edges: int
    num_non_manifold_edges: int
    num_boundary_loops: int
    num_components: int
    euler_characteristic: int
    genus: int
    is_oriented: bool

    @property
    def is_manifold(self) -> bool:
        return self.num_non_manifold_edges == 0

    @property
    def is_closed(self) -> bool:
        return self.num_boundary_edges == 0 and self.num_faces > 0

    @classmethod
    def from_mesh(cls, mesh: Mesh) -> MeshTopology:
        """Compute all measures in one pass over the triangles."""
        tris = mesh.triangles()
        n_faces = len(tris)
        if n_faces == 0:
            return cls(0, 0, 0, 0, 0, 0, 0, 0, 0, True)

        directed = np.concatenate([tris[:, [0, 1]], tris[:, [1, 2]], tris[:, [2, 0]]])
        undirected = np.sort(directed, axis=1)
        edges, counts = np.unique(undirected, axis=0, return_counts=True)

        # A consistently wound manifold never repeats a directed edge
        is_oriented = len(np.unique(directed, axis=0)) == len(directed)

        used = np.unique(tris)
        boundary = edges[counts == 1]
        n_vertices = len(used)
        n_edges = len(edges)

        num_components = _count_components(mesh.num_vertices, edges, used)
        num_loops = _count_components(mesh.num_vertices, boundary, np.unique(boundary))

        euler = n_vertices - n_edges + n_faces
        genus = max(0, (2 * num_components - euler - num_loops) // 2)

        return cls(
            num_vertices=n_vertices,
            num_edges=n_edges,
            num_faces=n_faces,
            num_boundary_edges=len(boundary),
            num_non_manifold_edges=int(np.sum(counts > 2)),
            num_boundary_loops=num_loops,
            num_components=num_components,
            euler_characteristic=euler,
            genus=genus,
            is_oriented=bool(is_oriented),
        )

    def to_dict(self) -> dict:
        return {
            "num_vertices": self.num_vertices,
            "num_edges": self.num_edges,
            "num_faces": self.num_faces,
            "num_boundary_edges": self.num_boundary_edges,
            "num_non_manifold_edges": self.num_non_manifold_edges,
            "num_boundary_loops": self.num_boundary_loops,
            "num_components": self.num_components,
            "euler_characteristic": self.euler_characteristic,
            "genus": self.genus,
            "is_manifold": self.is_manifold,
            "is_closed": self.is_closed,
            "is_oriented": self.is_oriented,
        }

    def summary(self) -> str:
        status = "manifold" if self.is_manifold else "NON-MANIFOLD"
        return (
            f"{self.num_faces} triangles, {self.num_vertices} vertices, {status}, "
            f"{self.num_components} component(s), {self.num_boundary_loops} boundary loop(s), "
            f"genus {self.genus}"
        )


def analyze_topology(mesh: Mesh) -> MeshTopology:
    """Convenience wrapper around ``MeshTopology.from_mesh``."""
    topo = MeshTopology.from_mesh(mesh)
    logger.debug(f"{mesh.name}: {topo.summary()}")
    return topo
