"""Shared fixtures: synthetic MRC files and reference meshes."""

from pathlib import Path

import numpy as np
import pytest

from meshmaker.core.io import MRC_HEADER_FIELDS, MRC_MODES
from meshmaker.test_volumes import create_blob_volume, create_plane, create_sphere


def _write_mrc(
    path: Path,
    data: np.ndarray,
    mode: int = 2,
    byte_order: str = "<",
    axes: tuple = (1, 2, 3),
    cell: tuple = None,
    origin: tuple = (0.0, 0.0, 0.0),
    start: tuple = (0, 0, 0),
    ext_header: bytes = b"",
    stamp: bool = True,
) -> Path:
    """Write ``data`` (sections, rows, columns) as an MRC2014 file."""
    ns, nr, nc = data.shape
    header = np.zeros(1, dtype=np.dtype(MRC_HEADER_FIELDS).newbyteorder(byte_order))

    sizes = [0, 0, 0]
    for stored, axis in zip((nc, nr, ns), axes):
        sizes[axis - 1] = stored

    header["nx"], header["ny"], header["nz"] = nc, nr, ns
    header["mode"] = mode
    header["nxstart"], header["nystart"], header["nzstart"] = start
    header["mx"], header["my"], header["mz"] = sizes
    header["cella"] = cell if cell is not None else sizes
    header["mapc"], header["mapr"], header["maps"] = axes
    header["nsymbt"] = len(ext_header)
    header["origin"] = origin
    header["map"] = b"MAP "
    if stamp:
        header["machst"] = [0x44, 0x44, 0, 0] if byte_order == "<" else [0x11, 0x11, 0, 0]

    payload = data.astype(np.dtype(MRC_MODES[mode]).newbyteorder(byte_order)).tobytes()
    path.write_bytes(header.tobytes() + ext_header + payload)
    return path


@pytest.fixture
def write_mrc():
    """Function writing a synthetic MRC file."""
    return _write_mrc


@pytest.fixture
def blob_grid():
    """10^3 Gaussian blob centred at (4.5, 4.5, 4.5), sigma 2."""
    return create_blob_volume(size=10, sigma=2.0)


@pytest.fixture
def sphere():
    return create_sphere(subdivisions=2)


@pytest.fixture
def plane():
    return create_plane(resolution=6)
