from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional, Tuple

import numpy as np
import orjson

from fmt_alignment.constants import DetectorConstants
from fmt_alignment.cuts import CutsConfig
from fmt_alignment.geometry import DEFAULT_VARIATION, ShiftMatrix
from fmt_alignment.swim import DEFAULT_SWIM_SETUP

logger = logging.getLogger(__name__)

DEFAULT_MIN_FILLED = 3
DEFAULT_CUTS_INFO = 1

# Keys accepted at the top level of a run configuration file.
CONFIG_KEYS = ("calibration_store", "global_shift", "min_filled", "cuts")


@dataclass(frozen=True)
class RunConfig:
    r"""
    Everything a run needs, resolved once and passed down explicitly.

    Attributes
    ----------
    input_file : pathlib.Path
        Input ``.hipo`` file.
    constants : DetectorConstants
        FMT layout.
    variation : str
        Calibration variation used to load the geometry.
    calibration_store : pathlib.Path or None
        JSON calibration-store export holding the FMT layer table.
    n_events : int or None
        Event limit; ``None`` runs the whole file.
    cuts_info : int
        Verbosity of the cut summary (0, 1 or 2).
    swim_setup : (float, float, float)
        Solenoid scale, torus scale, torus shift.
    shifts : ShiftMatrix
        Nominal alignment offsets.
    rx, ry : tuple of float
        Per-layer x and y rotations (deg); used by the scan only.
    var : str or None
        Alignment variable to scan (``dXY``, ``dZ``, ``rXY`` or ``rZ``).
    inter : (float, float) or None
        Scan half-range and step.
    min_filled : int
        Minimum filled layers per trio group.
    cuts : CutsConfig
        Fiducial-cut thresholds.
    """
    input_file: Path
    constants: DetectorConstants = DetectorConstants()
    variation: str = DEFAULT_VARIATION
    calibration_store: Optional[Path] = None
    n_events: Optional[int] = None
    cuts_info: int = DEFAULT_CUTS_INFO
    swim_setup: Tuple[float, float, float] = DEFAULT_SWIM_SETUP
    shifts: ShiftMatrix = field(default_factory=ShiftMatrix.zeros)
    rx: Tuple[float, ...] = (0.0, 0.0, 0.0)
    ry: Tuple[float, ...] = (0.0, 0.0, 0.0)
    var: Optional[str] = None
    inter: Optional[Tuple[float, float]] = None
    min_filled: int = DEFAULT_MIN_FILLED
    cuts: CutsConfig = CutsConfig()


def load_config(config_path: Path) -> MutableMapping[str, Any]:
    r"""
    Load a JSON run configuration with :mod:`orjson`.

    Parameters
    ----------
    config_path : pathlib.Path
        Path to the JSON file.

    Returns
    -------
    dict
        Parsed configuration.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be parsed, is not a JSON object, or holds unknown keys.
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    try:
        cfg = orjson.loads(config_path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Failed to parse {config_path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ValueError(f"{config_path} must hold a JSON object.")
    unknown = set(cfg) - set(CONFIG_KEYS)
    if unknown:
        raise ValueError(f"Unknown keys in {config_path}: {', '.join(sorted(unknown))}")
    return cfg


def build_run_config(
    args: argparse.Namespace,
    file_config: Optional[Mapping[str, Any]] = None,
    *,
    config_dir: Optional[Path] = None,
) -> RunConfig:
    r"""
    Merge command-line values over file values over defaults.

    Parameters
    ----------
    args : argparse.Namespace
        Output of :func:`fmt_alignment.cli.parse_args`.
    file_config : mapping, optional
        Output of :func:`load_config`.
    config_dir : pathlib.Path, optional
        Directory a relative ``calibration_store`` is resolved against.

    Returns
    -------
    RunConfig
    """
    file_config = file_config or {}
    constants = DetectorConstants()

    store = file_config.get("calibration_store")
    store_path: Optional[Path] = None
    if store is not None:
        store_path = Path(store)
        if not store_path.is_absolute() and config_dir is not None:
            store_path = config_dir / store_path

    shifts = ShiftMatrix.from_layer_shifts(
        dz=args.dz, dx=args.dx, dy=args.dy, rz=args.rz,
        global_shift=file_config.get("global_shift"),
        n_layers=constants.n_layers,
    )

    return RunConfig(
        input_file=Path(args.file),
        constants=constants,
        variation=args.variation or DEFAULT_VARIATION,
        calibration_store=store_path,
        n_events=args.nevents,
        cuts_info=DEFAULT_CUTS_INFO if args.cutsinfo is None else args.cutsinfo,
        swim_setup=tuple(args.swim) if args.swim is not None else DEFAULT_SWIM_SETUP,
        shifts=shifts,
        rx=tuple(args.rx) if args.rx is not None else (0.0,) * constants.n_layers,
        ry=tuple(args.ry) if args.ry is not None else (0.0,) * constants.n_layers,
        var=args.var,
        inter=tuple(args.inter) if args.inter is not None else None,
        min_filled=int(file_config.get("min_filled", DEFAULT_MIN_FILLED)),
        cuts=CutsConfig.from_mapping(file_config.get("cuts", {})),
    )


def scan_values(nominal: float, half_range: float, step: float) -> np.ndarray:
    r"""
    Values tested around ``nominal``:
    :math:`v_k = v_0 + k\,\delta` for :math:`k = -n..n`, :math:`n = \lfloor r/\delta \rceil`.

    Examples
    --------
    >>> scan_values(0.5, 0.2, 0.1).tolist()
    [0.3, 0.4, 0.5, 0.6, 0.7]

    Raises
    ------
    ValueError
        If ``step`` is not positive or ``half_range`` is negative.
    """
    if not step > 0.0:
        raise ValueError(f"Scan step must be positive, got {step}.")
    if half_range < 0.0:
        raise ValueError(f"Scan range must not be negative, got {half_range}.")
    n = int(round(half_range / step))
    k = np.arange(-n, n + 1, dtype=np.float64)
    # Round off the float noise of nominal + k * step.
    return np.round(nominal + k * step, 10)
