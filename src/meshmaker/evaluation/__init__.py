"""Mesh evaluation: topology measures used for reporting and checks."""

from meshmaker.evaluation.topology import MeshTopology, analyze_topology

__all__ = ["MeshTopology", "analyze_topology"]
