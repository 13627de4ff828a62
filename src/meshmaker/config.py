"""
Run configuration.

``RunConfig`` holds every option of a pipeline run. ``RunConfig.from_options``
turns raw command-line values into a validated config, collecting every
problem it finds so they can be reported together. Configs round-trip
through YAML for reproducible runs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from meshmaker.export.base import OutputFormat, WriteOptions


class ConfigurationError(Exception):
    """Raised with every problem found while building a run configuration."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class RunConfig:
    """Full configuration of one volume-to-mesh run."""
    input_path: Optional[Path] = None
    contour_level: float = 0.0
    output_prefix: str = "out"
    output_format: OutputFormat = OutputFormat.XML

    # Stages
    smooth: bool = False
    smooth_iterations: int = 20
    decimate: bool = False
    target_reduction: float = 0.9
    strips: bool = True
    max_strip_length: int = 1000

    # Encoding
    binary: bool = True
    header_uint64: bool = False
    index_int32: bool = False

    verbose: bool = False

    @property
    def output_path(self) -> Path:
        """Output file: prefix plus the format's extension."""
        return Path(f"{self.output_prefix}.{self.output_format.extension}")

    def write_options(self) -> WriteOptions:
        return WriteOptions(
            binary=self.binary,
            header_uint64=self.header_uint64,
            index_int32=self.index_int32,
        )

    def validate(self, require_input: bool = True) -> list[str]:
        """Problems with the current values (empty when valid)."""
        errors = []
        if require_input and self.input_path is None:
            errors.append("Input MAP/MRC file not specified")
        if not 0.0 < self.target_reduction < 1.0:
            errors.append(f"Target reduction must be between 0 and 1 (exclusive), got {self.target_reduction}")
        if self.smooth_iterations < 0:
            errors.append(f"Smoothing iterations must be >= 0, got {self.smooth_iterations}")
        if self.max_strip_length < 1:
            errors.append(f"Maximum strip length must be >= 1, got {self.max_strip_length}")
        if not self.output_prefix:
            errors.append("Output prefix must not be empty")
        return errors

    def warnings(self) -> list[str]:
        """Options that are accepted but have no effect for this run."""
        warnings = []
        if self.output_format != OutputFormat.XML:
            if self.header_uint64:
                warnings.append("UInt64 headers only apply to XML (.vtp) output; ignoring -U/--uint64")
            if self.index_int32:
                warnings.append("Int32 index arrays only apply to XML (.vtp) output; ignoring -I/--int32")
        return warnings

    @classmethod
    def from_options(
        cls,
        input_path: Optional[Union[str, Path]] = None,
        contour_level: Optional[str] = None,
        output_prefix: Optional[str] = None,
        stl: bool = False,
        vtk: bool = False,
        vtp: bool = False,
        decimate: bool = False,
        smooth: bool = False,
        smooth_iterations: Optional[str] = None,
        target_reduction: Optional[str] = None,
        max_strip_length: Optional[str] = None,
        strips: bool = True,
        ascii: bool = False,
        uint64: bool = False,
        int32: bool = False,
        verbose: bool = False,
    ) -> RunConfig:
        """
        Build a config from raw option values.

        Numeric options arrive as strings and are parsed here so malformed
        values are reported alongside every other problem.

        Raises:
            ConfigurationError: Listing all problems found
        """
        errors = []
        defaults = cls()

        formats = [fmt for flag, fmt in ((stl, OutputFormat.STL), (vtk, OutputFormat.LEGACY), (vtp, OutputFormat.XML)) if flag]
        if len(formats) > 1:
            errors.append("Only one of -S/--stl, -V/--vtk, -X/--vtp may be given")

        config = cls(
            input_path=Path(input_path) if input_path is not None else None,
            contour_level=_parse_number(contour_level, float, "-c/--clevel", defaults.contour_level, errors),
            output_prefix=output_prefix if output_prefix is not None else defaults.output_prefix,
            output_format=formats[0] if formats else defaults.output_format,
            smooth=smooth,
            smooth_iterations=_parse_number(smooth_iterations, int, "-i/--smooth-iter", defaults.smooth_iterations, errors),
            decimate=decimate,
            target_reduction=_parse_number(target_reduction, float, "-t/--target-reduction", defaults.target_reduction, errors),
            strips=strips,
            max_strip_length=_parse_number(max_strip_length, int, "-m/--max-strip-length", defaults.max_strip_length, errors),
            binary=not ascii,
            header_uint64=uint64,
            index_int32=int32,
            verbose=verbose,
        )

        errors.extend(config.validate())
        if errors:
            raise ConfigurationError(errors)
        return config

    def to_dict(self) -> dict:
        return {
            "input_path": str(self.input_path) if self.input_path is not None else None,
            "contour_level": self.contour_level,
            "output_prefix": self.output_prefix,
            "output_format": self.output_format.value,
            "smooth": self.smooth,
            "smooth_iterations": self.smooth_iterations,
            "decimate": self.decimate,
            "target_reduction": self.target_reduction,
            "strips": self.strips,
            "max_strip_length": self.max_strip_length,
            "binary": self.binary,
            "header_uint64": self.header_uint64,
            "index_int32": self.index_int32,
            "verbose": self.verbose,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunConfig:
        """Create config from dictionary; unknown keys are an error."""
        data = dict(data)
        unknown = set(data) - set(cls().to_dict())
        if unknown:
            raise ConfigurationError([f"Unknown configuration key: {key}" for key in sorted(unknown)])

        if data.get("input_path") is not None:
            data["input_path"] = Path(data["input_path"])
        if "output_format" in data:
            try:
                data["output_format"] = OutputFormat(data["output_format"])
            except ValueError:
                raise ConfigurationError([f"Unknown output format: {data['output_format']}"]) from None

        config = cls(**data)
        errors = config.validate(require_input=False)
        if errors:
            raise ConfigurationError(errors)
        return config

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: Union[str, Path]) -> RunConfig:
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)


def _parse_number(raw: Optional[str], kind: type, option: str, default, errors: list[str]):
    """Parse ``raw`` as ``kind``; record an error and return ``default`` if malformed."""
    if raw is None:
        return default
    try:
        value = kind(str(raw).strip())
    except ValueError:
        errors.append(f"Invalid value for {option}: '{raw}' is not a valid {kind.__name__}")
        return default
    if kind is float and not math.isfinite(value):
        errors.append(f"Invalid value for {option}: '{raw}' is not a finite number")
        return default
    return value
