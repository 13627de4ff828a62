"""
Triangle strip construction.

Greedy stripification: starting from the first unused triangle, a strip
is extended across its trailing edge for as long as an unused neighbour
with matching winding exists. Each start triangle is tried in its three
rotations and the longest strip wins. Every triangle ends up in exactly
one strip; isolated triangles become single-triangle strips.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

import numpy as np

from meshmaker.core.mesh import Mesh

logger = logging.getLogger("meshmaker.postprocess.strips")


@dataclass
class StripConfig:
    """Configuration for strip building."""
    max_length: int = 1000  # Maximum triangles per strip


def _same_cycle(a: tuple, b: tuple) -> bool:
    """True if triangles ``a`` and ``b`` have the same vertices in the same cyclic order."""
    return a == b or a == (b[1], b[2], b[0]) or a == (b[2], b[0], b[1])


class StripBuilder:
    """Greedy triangle-strip builder."""

    def __init__(self, config: Optional[StripConfig] = None):
        self.config = config or StripConfig()

    def build(self, mesh: Mesh) -> Mesh:
        """
        Replace the triangles of ``mesh`` with strips, in place.

        Args:
            mesh: Triangle mesh

        Returns:
            The same mesh holding strips instead of faces
        """
        if self.config.max_length < 1:
            raise ValueError(f"Maximum strip length must be >= 1, got {self.config.max_length}")

        tris = [tuple(int(v) for v in t) for t in mesh.triangles()]
        if not tris:
            mesh.faces = np.empty((0, 3), dtype=np.int64)
            mesh.strips = []
            return mesh

        edge_tris = defaultdict(list)
        for ti, (a, b, c) in enumerate(tris):
            for u, v in ((a, b), (b, c), (c, a)):
                edge_tris[(min(u, v), max(u, v))].append(ti)

        used = [False] * len(tris)
        strips = []

        for start in range(len(tris)):
            if used[start]:
                continue

            a, b, c = tris[start]
            best_seq, best_members = None, None
            for rotation in ((a, b, c), (b, c, a), (c, a, b)):
                seq, members = self._grow(rotation, start, tris, edge_tris, used)
                if best_members is None or len(members) > len(best_members):
                    best_seq, best_members = seq, members

            for ti in best_members:
                used[ti] = True
            strips.append(np.array(best_seq, dtype=np.int64))

        mesh.faces = np.empty((0, 3), dtype=np.int64)
        mesh.strips = strips

        mean_len = len(tris) / len(strips)
        mesh.metadata["strips"] = {"num_strips": len(strips), "mean_length": mean_len}
        logger.info(f"Built {len(strips)} strips from {len(tris)} triangles (mean length {mean_len:.1f})")
        return mesh

    def _grow(
        self,
        first: tuple,
        start: int,
        tris: list,
        edge_tris: dict,
        used: list,
    ) -> tuple[list, list]:
        """Extend a strip beginning with triangle ``first`` without marking anything used."""
        seq = list(first)
        members = [start]
        taken = {start}

        while len(members) < self.config.max_length:
            u, v = seq[-2], seq[-1]
            parity = (len(seq) - 2) % 2

            next_tri = None
            for ti in edge_tris[(min(u, v), max(u, v))]:
                if used[ti] or ti in taken:
                    continue
                x = next(w for w in tris[ti] if w != u and w != v)
                expected = (u, v, x) if parity == 0 else (v, u, x)
                if _same_cycle(expected, tris[ti]):
                    next_tri = (ti, x)
                    break

            if next_tri is None:
                break

            ti, x = next_tri
            seq.append(x)
            members.append(ti)
            taken.add(ti)

        return seq, members


def build_strips(mesh: Mesh, max_length: int = 1000) -> Mesh:
    """
    Convenience function for strip building.

    Args:
        mesh: Triangle mesh, converted in place
        max_length: Maximum number of triangles per strip

    Returns:
        The mesh in strip form
    """
    return StripBuilder(StripConfig(max_length=max_length)).build(mesh)
