r"""Transform points by a free-form deformation read from a JSON or YAML record file.

The input points are read from a text file with one point per row and three columns with the
world coordinates ``x``, ``y``, and ``z``. The transformed points are written to a text file of the
same format. Optionally, the Jacobian determinant of the deformation at each input point and the
mean bending energy at these points are computed as well.

"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from timeit import default_timer as timer
from typing import Optional

import numpy as np
import torch

from ..core.config import DataclassConfig
from ..core.errors import DimensionMismatch
from ..core.logging import LOG_LEVELS, configure_logging
from ..losses.functional import bending_energy
from ..spatial.record import read_transform

from .cli import Args, ArgumentParser, entry_point, main_func


log = logging.getLogger(__name__)


@dataclass
class WarpPointsConfig(DataclassConfig):
    r"""Default arguments of points transformation tool read from configuration file."""

    transform: Optional[Path] = None
    points: Optional[Path] = None
    output: Optional[Path] = None
    jacobian_det: Optional[Path] = None
    bending_energy: bool = False
    delimiter: Optional[str] = None
    fmt: str = "%.12g"
    device: str = "cpu"


def parser(**kwargs) -> ArgumentParser:
    r"""Construct argument parser."""
    if "description" not in kwargs:
        kwargs["description"] = globals()["__doc__"]
    parser = ArgumentParser(**kwargs)
    parser.add_argument("-c", "--config", help="Configuration file with default arguments")
    parser.add_argument("-t", "--transform", help="Free-form deformation record file")
    parser.add_argument("-p", "--points", help="Input text file with point coordinates")
    parser.add_argument("-o", "--output", help="Output text file of transformed points")
    parser.add_argument(
        "--jacobian-det",
        "--jacobian-determinants",
        dest="jacobian_det",
        help="Output text file of Jacobian determinants at input points",
    )
    parser.add_argument(
        "--bending-energy",
        action="store_true",
        default=None,
        help="Log mean bending energy at input points",
    )
    parser.add_argument("--delimiter", help="Column delimiter of point text files")
    parser.add_argument("--fmt", help="Number format of output text files")
    parser.add_argument(
        "--device",
        help="Device on which to transform points",
        choices=("cpu", "cuda"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=LOG_LEVELS,
        default="INFO",
    )
    return parser


def init(args: Args) -> int:
    r"""Initialize logging and check device."""
    configure_logging(log, args)
    if args.device == "cuda" and not torch.cuda.is_available():
        log.error("Cannot use --device 'cuda' when torch.cuda.is_available() is False")
        return 1
    return 0


def load_args(args: Args) -> WarpPointsConfig:
    r"""Get configuration from optional file, overridden by given command line arguments."""
    if args.config:
        config = WarpPointsConfig.read(args.config)
        log.info(f"Loaded configuration from {Path(args.config).absolute()}")
    else:
        config = WarpPointsConfig()
    for name in ("transform", "points", "output", "jacobian_det"):
        value = getattr(args, name)
        if value:
            setattr(config, name, Path(value).absolute())
    for name in ("bending_energy", "delimiter", "fmt", "device"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    return config


def read_points(path: Path, delimiter: Optional[str] = None) -> np.ndarray:
    r"""Read point coordinates from text file."""
    points = np.loadtxt(path, dtype=np.float64, delimiter=delimiter, ndmin=2)
    if points.shape[1] != 3:
        raise DimensionMismatch(
            f"read_points() file {path} must have 3 columns, got {points.shape[1]}"
        )
    return points


def func(args: Args) -> int:
    r"""Transform points given parsed arguments."""
    config = load_args(args)
    for name in ("transform", "points", "output"):
        if getattr(config, name) is None:
            log.error(f"Missing required argument --{name}")
            return 1
    start = timer()
    device = torch.device(config.device)
    transform = read_transform(config.transform).to(device=device)
    log.info(f"Read {transform!r}")
    points = read_points(config.points, delimiter=config.delimiter)
    points = torch.from_numpy(points).to(dtype=transform.dtype, device=device)
    log.info(f"Transform {points.shape[0]} points from {config.points}")
    with torch.no_grad():
        output = transform.transform_points(points)
        np.savetxt(
            config.output, output.cpu().numpy(), fmt=config.fmt, delimiter=config.delimiter or " "
        )
        log.info(f"Wrote transformed points to {config.output}")
        if config.jacobian_det:
            jac_det = transform.jacobian_det(points)
            num_folded = int(jac_det.le(0).sum())
            if num_folded:
                log.warning(f"Jacobian determinant is non-positive at {num_folded} points")
            np.savetxt(config.jacobian_det, jac_det.cpu().numpy(), fmt=config.fmt)
            log.info(f"Wrote Jacobian determinants to {config.jacobian_det}")
        if config.bending_energy:
            energy = bending_energy(transform, points, reduction="mean")
            log.info(f"Bending energy: {energy.item():.6g}")
    log.info(f"Elapsed time: {timer() - start:.3f}s")
    return 0


main = main_func(parser, func, init=init)

console_script = entry_point(main)


if __name__ == "__main__":
    console_script()
