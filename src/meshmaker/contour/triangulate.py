"""Polygon and strip triangulation."""

from __future__ import annotations

import logging

import numpy as np

from meshmaker.core.mesh import Mesh

logger = logging.getLogger("meshmaker.contour.triangulate")


def triangulate(mesh: Mesh) -> Mesh:
    """
    Make every face of ``mesh`` a triangle, in place.

    Polygons are split into a fan around their first vertex, strips are
    expanded, and faces with fewer than three distinct vertices are
    dropped. No vertices are added. A mesh that is already triangular
    passes through unchanged.
    """
    if mesh.has_strips:
        tris = mesh.triangles()
        mesh.strips = []
        mesh.faces = tris
        logger.debug(f"Expanded strips into {len(tris)} triangles")
        return mesh

    if mesh.is_triangular:
        return mesh

    tri_faces = []
    dropped = 0
    for face in mesh.faces:
        face = list(dict.fromkeys(int(v) for v in face))
        if len(face) < 3:
            dropped += 1
            continue
        for i in range(1, len(face) - 1):
            tri_faces.append((face[0], face[i], face[i + 1]))

    mesh.faces = np.array(tri_faces, dtype=np.int64).reshape(-1, 3)
    logger.debug(f"Triangulated polygons into {mesh.num_faces} triangles ({dropped} degenerate dropped)")
    return mesh
