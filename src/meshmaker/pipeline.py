"""
Main pipeline orchestration.

Provides the high-level API for turning a density volume into a written
surface mesh: extract, triangulate, optionally smooth and decimate, build
strips, write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from meshmaker.config import RunConfig
from meshmaker.contour import IsosurfaceExtractor, triangulate
from meshmaker.core.io import load_volume
from meshmaker.core.mesh import Mesh
from meshmaker.core.volume import VolumeGrid
from meshmaker.evaluation import MeshTopology, analyze_topology
from meshmaker.export import OutputFormat, WriteOptions, WriteResult, get_writer
from meshmaker.postprocess import LaplacianSmoother, SmoothingConfig, StripBuilder, StripConfig
from meshmaker.remesh import DecimateConfig, ProgressiveDecimator
from meshmaker.utils.timing import TimingLog, get_timing_log, reset_timing_log, timed_operation

logger = logging.getLogger("meshmaker.pipeline")


@dataclass
class StageReport:
    """Mesh size after one pipeline stage."""
    name: str
    num_vertices: int
    num_triangles: int
    elapsed_seconds: float = 0.0


@dataclass
class PipelineResult:
    """Result from a full pipeline run."""
    mesh: Mesh
    stages: list[StageReport] = field(default_factory=list)
    topology: Optional[MeshTopology] = None
    write: Optional[WriteResult] = None
    timing: Optional[TimingLog] = None

    @property
    def output_path(self) -> Optional[Path]:
        return self.write.path if self.write else None


class MeshPipeline:
    """
    High-level volume-to-mesh pipeline.

    Smoothing and decimation are optional; when both are enabled smoothing
    runs first. Strips are built last, just before writing.
    """

    def __init__(
        self,
        contour_level: float = 0.0,
        smooth_iterations: Optional[int] = None,
        target_reduction: Optional[float] = None,
        max_strip_length: Optional[int] = 1000,
        output_format: Union[str, OutputFormat] = OutputFormat.XML,
        write_options: Optional[WriteOptions] = None,
        preserve_topology: bool = True,
    ):
        """
        Initialize pipeline.

        Args:
            contour_level: Isosurface threshold
            smooth_iterations: Laplacian passes (None = no smoothing)
            target_reduction: Fraction of triangles to remove (None = no decimation)
            max_strip_length: Triangles per strip (None = write triangles)
            output_format: stl, vtk or vtp
            write_options: Binary/ASCII and XML width options
            preserve_topology: Keep genus and boundary loops while decimating
        """
        self.contour_level = contour_level
        self.output_format = OutputFormat(getattr(output_format, "value", output_format))
        self.write_options = write_options or WriteOptions()

        self.extractor = IsosurfaceExtractor()
        self.smoother = (
            LaplacianSmoother(SmoothingConfig(iterations=smooth_iterations))
            if smooth_iterations is not None else None
        )
        self.decimator = (
            ProgressiveDecimator(DecimateConfig(
                target_reduction=target_reduction,
                preserve_topology=preserve_topology,
            ))
            if target_reduction is not None else None
        )
        self.strip_builder = (
            StripBuilder(StripConfig(max_length=max_strip_length))
            if max_strip_length is not None else None
        )

    @classmethod
    def from_config(cls, config: RunConfig) -> MeshPipeline:
        """Create a pipeline for a validated run configuration."""
        return cls(
            contour_level=config.contour_level,
            smooth_iterations=config.smooth_iterations if config.smooth else None,
            target_reduction=config.target_reduction if config.decimate else None,
            max_strip_length=config.max_strip_length if config.strips else None,
            output_format=config.output_format,
            write_options=config.write_options(),
        )

    def run(
        self,
        volume: Union[str, Path, VolumeGrid],
        output_path: Optional[Union[str, Path]] = None,
        enable_timing: bool = True,
    ) -> PipelineResult:
        """
        Run the full pipeline.

        Args:
            volume: Input volume (path or VolumeGrid)
            output_path: Where to write the mesh (None = do not write)
            enable_timing: Record stage timings in the timing log

        Returns:
            PipelineResult with the final mesh and per-stage reports

        Raises:
            InputDecodeError: If the volume file cannot be read
            WriteError: If the output cannot be written
        """
        if enable_timing:
            reset_timing_log()

        if isinstance(volume, (str, Path)):
            with timed_operation("read", log=enable_timing):
                grid = load_volume(volume)
        else:
            grid = volume

        logger.info(f"Processing {grid}, value range {grid.value_range}")
        mesh, stages = self._run_stages(grid, enable_timing)
        result = PipelineResult(mesh=mesh, stages=stages)
        result.topology = analyze_topology(result.mesh)

        if output_path is not None:
            with timed_operation("write", log=enable_timing):
                writer = get_writer(self.output_format, self.write_options)
                result.write = writer.write(result.mesh, output_path)

        if enable_timing:
            result.timing = get_timing_log()
            logger.info(result.timing.summary())

        return result

    def process(self, grid: VolumeGrid) -> Mesh:
        """Run the mesh stages on ``grid`` and return the final mesh, without writing."""
        mesh, _ = self._run_stages(grid, enable_timing=False)
        return mesh

    def _run_stages(self, grid: VolumeGrid, enable_timing: bool) -> tuple[Mesh, list[StageReport]]:
        stages = []

        def report(name: str, mesh: Mesh, timing) -> None:
            stages.append(StageReport(name, mesh.num_vertices, mesh.num_triangles, timing.elapsed_seconds))
            logger.debug(f"{name}: {mesh.num_vertices} vertices, {mesh.num_triangles} triangles")

        with timed_operation("extract", log=enable_timing) as timing:
            mesh = self.extractor.extract(grid, self.contour_level)
        report("extract", mesh, timing)

        if mesh.is_empty:
            logger.warning(
                f"Contour level {self.contour_level} produced no surface "
                f"(value range {grid.value_range})"
            )

        with timed_operation("triangulate", log=enable_timing) as timing:
            triangulate(mesh)
        report("triangulate", mesh, timing)

        if self.smoother is not None:
            with timed_operation("smooth", log=enable_timing) as timing:
                self.smoother.smooth(mesh)
            report("smooth", mesh, timing)

        if self.decimator is not None:
            with timed_operation("decimate", log=enable_timing) as timing:
                self.decimator.decimate(mesh)
            report("decimate", mesh, timing)

        if self.strip_builder is not None:
            with timed_operation("strips", log=enable_timing) as timing:
                self.strip_builder.build(mesh)
            report("strips", mesh, timing)

        return mesh, stages


def run_pipeline(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    contour_level: float = 0.0,
    smooth: bool = False,
    decimate: bool = False,
    **kwargs,
) -> PipelineResult:
    """
    Convenience function for a one-off run with default stage settings.

    Args:
        input_path: Volume file (MRC/MAP or .npy)
        output_path: Output mesh; the format follows its extension
        contour_level: Isosurface threshold
        smooth: Enable Laplacian smoothing (20 iterations)
        decimate: Enable decimation (90% reduction)
        **kwargs: Further ``MeshPipeline`` arguments

    Returns:
        PipelineResult
    """
    kwargs.setdefault("output_format", Path(output_path).suffix.lstrip(".").lower())
    if smooth:
        kwargs.setdefault("smooth_iterations", 20)
    if decimate:
        kwargs.setdefault("target_reduction", 0.9)
    pipeline = MeshPipeline(contour_level=contour_level, **kwargs)
    return pipeline.run(input_path, output_path)
