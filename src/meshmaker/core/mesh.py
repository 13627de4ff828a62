"""
Core mesh data structure shared by every pipeline stage.

A mesh is either a list of polygon faces (usually triangles) or a list of
triangle strips over the same vertex table, never both at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union
import numpy as np


def _as_faces(faces) -> Union[np.ndarray, list]:
    """Normalise faces to an (M, k) array, or a list of arrays when ragged."""
    if isinstance(faces, np.ndarray) and faces.ndim == 2:
        return faces.astype(np.int64, copy=False)

    faces = [np.asarray(f, dtype=np.int64).reshape(-1) for f in faces]
    if not faces:
        return np.empty((0, 3), dtype=np.int64)

    sizes = {len(f) for f in faces}
    if len(sizes) == 1:
        return np.vstack(faces)
    return faces


def decode_strip(strip: np.ndarray) -> np.ndarray:
    """
    Expand one triangle strip into a (k, 3) array of triangles.

    Triangle i is (s[i], s[i+1], s[i+2]) for even i and (s[i+1], s[i], s[i+2])
    for odd i, so every triangle keeps the winding of the first one.
    Triangles with a repeated index are skipped.
    """
    strip = np.asarray(strip, dtype=np.int64)
    n = len(strip) - 2
    if n <= 0:
        return np.empty((0, 3), dtype=np.int64)

    tris = np.stack([strip[:-2], strip[1:-1], strip[2:]], axis=1)
    odd = np.arange(n) % 2 == 1
    tris[odd, 0], tris[odd, 1] = strip[1:-1][odd], strip[:-2][odd]

    keep = (tris[:, 0] != tris[:, 1]) & (tris[:, 1] != tris[:, 2]) & (tris[:, 0] != tris[:, 2])
    return tris[keep]


@dataclass
class Mesh:
    """
    Polygon mesh produced by the extractor and refined by later stages.

    Attributes:
        vertices: Nx3 array of vertex positions
        faces: Mxk array of face indices (Mx3 for triangles), or a list of
            index arrays when faces have different sizes
        strips: Triangle strips (index arrays); empty unless strips were built
        name: Optional mesh identifier
        metadata: Additional mesh properties (stage statistics, source file)
    """
    vertices: np.ndarray
    faces: Union[np.ndarray, list] = field(default_factory=lambda: np.empty((0, 3), dtype=np.int64))
    strips: list = field(default_factory=list)
    name: str = "surface"
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        """Validate and normalize mesh data."""
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = _as_faces(self.faces)
        self.strips = [np.asarray(s, dtype=np.int64).reshape(-1) for s in self.strips]

        if self.num_faces and self.strips:
            raise ValueError("A mesh holds either faces or strips, not both")

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    @property
    def num_strips(self) -> int:
        return len(self.strips)

    @property
    def has_strips(self) -> bool:
        return bool(self.strips)

    @property
    def is_triangular(self) -> bool:
        """True when the faces are an Mx3 array (strips count as triangles)."""
        return isinstance(self.faces, np.ndarray) and self.faces.shape[1] == 3

    @property
    def num_triangles(self) -> int:
        """Number of triangles represented, whatever the current form."""
        if self.has_strips:
            return int(sum(len(decode_strip(s)) for s in self.strips))
        if self.is_triangular:
            return self.num_faces
        return int(sum(max(len(f) - 2, 0) for f in self.faces))

    @property
    def is_empty(self) -> bool:
        return self.num_faces == 0 and not self.has_strips

    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Get axis-aligned bounding box (min, max)."""
        if self.num_vertices == 0:
            return np.zeros(3), np.zeros(3)
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    @property
    def center(self) -> np.ndarray:
        """Get bounding box center."""
        min_b, max_b = self.bounds
        return (min_b + max_b) / 2

    @property
    def diagonal(self) -> float:
        """Get bounding box diagonal length."""
        min_b, max_b = self.bounds
        return float(np.linalg.norm(max_b - min_b))

    def triangles(self) -> np.ndarray:
        """
        Triangles of the mesh as an Mx3 array.

        Strips are expanded with the alternating-parity rule; polygon faces
        must already be triangles (see ``contour.triangulate``).
        """
        if self.has_strips:
            parts = [decode_strip(s) for s in self.strips]
            return np.vstack(parts) if parts else np.empty((0, 3), dtype=np.int64)
        if not self.is_triangular:
            raise ValueError("Mesh has non-triangular faces; triangulate it first")
        return self.faces

    def face_normals(self) -> np.ndarray:
        """Unit normals of ``triangles()`` (zero for degenerate triangles)."""
        tris = self.triangles()
        if len(tris) == 0:
            return np.empty((0, 3), dtype=np.float64)

        v0 = self.vertices[tris[:, 0]]
        v1 = self.vertices[tris[:, 1]]
        v2 = self.vertices[tris[:, 2]]

        normals = np.cross(v1 - v0, v2 - v0)
        norms = np.linalg.norm(normals, axis=1, keepdims=True)
        norms = np.where(norms > 1e-12, norms, 1.0)
        return normals / norms

    def edges(self) -> np.ndarray:
        """Unique undirected edges of the triangles as a sorted Ex2 array."""
        tris = self.triangles()
        if len(tris) == 0:
            return np.empty((0, 2), dtype=np.int64)
        e = np.concatenate([tris[:, [0, 1]], tris[:, [1, 2]], tris[:, [2, 0]]])
        e = np.sort(e, axis=1)
        return np.unique(e, axis=0)

    def validate(self) -> None:
        """Raise ValueError if any index is out of range or a triangle is degenerate."""
        n = self.num_vertices
        if self.has_strips:
            arrays = self.strips
        elif isinstance(self.faces, np.ndarray):
            arrays = [self.faces.reshape(-1)]
        else:
            arrays = list(self.faces)

        for arr in arrays:
            if len(arr) and (arr.min() < 0 or arr.max() >= n):
                raise ValueError(f"Index out of range for {n} vertices")

        if self.is_triangular and not self.has_strips:
            tris = self.faces
            bad = (tris[:, 0] == tris[:, 1]) | (tris[:, 1] == tris[:, 2]) | (tris[:, 0] == tris[:, 2])
            if bad.any():
                raise ValueError(f"{int(bad.sum())} triangles repeat a vertex index")

    def remove_unreferenced_vertices(self) -> np.ndarray:
        """
        Drop vertices no face or strip uses and renumber indices.

        Returns:
            Array mapping old vertex index to new index (-1 for removed).
        """
        used = np.zeros(self.num_vertices, dtype=bool)
        if self.has_strips:
            for s in self.strips:
                used[s] = True
        elif isinstance(self.faces, np.ndarray):
            used[self.faces.reshape(-1)] = True
        else:
            for f in self.faces:
                used[f] = True

        remap = np.full(self.num_vertices, -1, dtype=np.int64)
        remap[used] = np.arange(int(used.sum()))

        self.vertices = self.vertices[used]
        if self.has_strips:
            self.strips = [remap[s] for s in self.strips]
        elif isinstance(self.faces, np.ndarray):
            self.faces = remap[self.faces]
        else:
            self.faces = [remap[f] for f in self.faces]
        return remap

    def copy(self) -> Mesh:
        """Create a deep copy."""
        faces = self.faces.copy() if isinstance(self.faces, np.ndarray) else [f.copy() for f in self.faces]
        return Mesh(
            vertices=self.vertices.copy(),
            faces=faces,
            strips=[s.copy() for s in self.strips],
            name=self.name,
            metadata=dict(self.metadata),
        )

    def to_trimesh(self):
        """Convert to trimesh object (strips are expanded)."""
        import trimesh
        return trimesh.Trimesh(vertices=self.vertices, faces=self.triangles(), process=False)

    def __repr__(self) -> str:
        if self.has_strips:
            return f"Mesh('{self.name}', {self.num_vertices} verts, {self.num_strips} strips)"
        face_type = "triangles" if self.is_triangular else "polygons"
        return f"Mesh('{self.name}', {self.num_vertices} verts, {self.num_faces} {face_type})"
