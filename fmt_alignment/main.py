#!/usr/bin/env python3
r"""
FMT trajectory-point runner.

Streams a ``.hipo`` file, swims every FMT trajectory candidate of each event
to the (shifted) FMT reference planes, applies the fiducial cuts, and groups
the surviving local-frame points per track into layer trios. This is the
input stage of the FMT alignment: the trios are what the residual
comparison of an alignment scan runs on.

Pipeline
--------
1. Parse the command line (:func:`fmt_alignment.cli.parse_args`).
2. Load the run configuration and the FMT geometry of the requested
   calibration variation (z converted from mm to cm).
3. Build the shift matrices to evaluate: the nominal one and, for a
   ``dZ`` scan, one per layer and tested value
   :math:`v_k = v_0 + k\,\delta,\ k=-n..n`.
4. Stream events and extract trios for every shift matrix in one pass.
5. Report trio counts and the cut summary; without a scan variable, plot
   the extracted points.

CLI overview
------------
.. code-block:: bash

   fmt-alignment run.hipo -C alignment.json -n 100000
   fmt-alignment run.hipo -C alignment.json -v dZ -i 0.2 0.1 -z 0.5 0.5 0.5
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Collection, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import fmt_alignment.cli as fmt_cli
from fmt_alignment.banks import Event, HipoEventSource
from fmt_alignment.config import RunConfig, build_run_config, load_config, scan_values
from fmt_alignment.cuts import FiducialCuts
from fmt_alignment.geometry import ReferencePlaneSet, ShiftMatrix, load_calibration_store, load_reference_planes
from fmt_alignment.swim import TrackPropagator, TrkSwim
from fmt_alignment.traj_points import ExtractionResult, extract_traj_points, groups_to_frame

logger = logging.getLogger(__name__)

NOMINAL = "nominal"
PROGRESS_EVERY = 50000

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# Shift-matrix column moved by each alignment variable. Only dz moves the
# reference planes; the others act on the residuals, after extraction.
VAR_COLUMNS = {"dZ": ("dz",), "dXY": ("dx", "dy"), "rZ": ("rz",), "rXY": ()}


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging once for a run; ``verbose`` (cut report level 2) enables DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


def apply_plotting_guard(enable_plots: bool) -> None:
    """Switch Matplotlib to Agg and silence ``plt.show`` for scan runs, which draw nothing.

    Call it before :mod:`fmt_alignment.plotting` is imported.
    """
    if enable_plots:
        return
    os.environ.setdefault("MPLBACKEND", "Agg")
    import matplotlib
    import matplotlib.pyplot as plt  # noqa: WPS433

    matplotlib.use("Agg", force=True)
    plt.ioff()
    plt.show = lambda *args, **kwargs: None  # type: ignore[assignment]


def load_geometry(config: RunConfig) -> ReferencePlaneSet:
    """Load the FMT reference planes of ``config.variation``."""
    if config.calibration_store is None:
        raise ValueError("No calibration store configured; set 'calibration_store' in the --config file.")
    store = load_calibration_store(config.calibration_store)
    planes = load_reference_planes(store, config.variation, n_layers=config.constants.n_layers)
    logger.info("FMT geometry (%s): z = %s cm, angle = %s deg",
                config.variation, planes.z.round(4).tolist(), planes.angle.round(4).tolist())
    return planes


def build_shift_sets(config: RunConfig) -> Dict[str, ShiftMatrix]:
    r"""
    Shift matrices to extract with, keyed by label.

    Always holds ``"nominal"``. For ``var="dZ"`` it adds one matrix per
    layer and tested value, labelled ``"dz[<layer>]=<value>"``. Other
    variables do not move the reference planes, so they add nothing.
    """
    sets: Dict[str, ShiftMatrix] = {NOMINAL: config.shifts}
    if config.var is None or config.inter is None:
        return sets

    columns = VAR_COLUMNS[config.var]
    if "dz" not in columns:
        logger.info("%s does not move the FMT planes; extracting at nominal shifts only.", config.var)
        return sets

    half_range, step = config.inter
    for li in range(config.constants.n_layers):
        nominal = float(config.shifts[li + 1][0])
        for v in scan_values(nominal, half_range, step):
            sets[f"dz[{li}]={v:+.4f}"] = config.shifts.with_offset("dz", li, v)
    return sets


def run_extraction(
    events: Iterable[Event],
    config: RunConfig,
    planes: ReferencePlaneSet,
    swim: TrackPropagator,
    shift_sets: Mapping[str, ShiftMatrix],
    *,
    progress_every: int = PROGRESS_EVERY,
    keep_groups: Optional[Collection[str]] = None,
) -> Tuple[Dict[str, ExtractionResult], Dict[str, FiducialCuts], int]:
    r"""
    Extract trios from every event for every shift matrix, in one pass.

    Results are accumulated in place. Labels outside ``keep_groups`` keep
    only their counters and :attr:`ExtractionResult.n_groups`, so a long scan
    does not hold every group of every shift set; ``None`` keeps all.

    Returns
    -------
    results : dict[str, ExtractionResult]
        Merged result per shift label.
    cuts : dict[str, FiducialCuts]
        Cut counters per shift label.
    n_events : int
        Number of events read.
    """
    results = {label: ExtractionResult() for label in shift_sets}
    cuts = {label: FiducialCuts(config.cuts) for label in shift_sets}

    n_events = 0
    for event in events:
        if n_events % progress_every == 0:
            logger.info("Ran %8d events...", n_events)
        n_events += 1
        for label, shifts in shift_sets.items():
            res = extract_traj_points(
                event, config.constants, swim, cuts[label], planes, shifts, config.min_filled,
            )
            if res is None:
                continue
            if keep_groups is not None and label not in keep_groups:
                res.discard_groups()
            results[label] += res
    logger.info("Ran %8d events... Done!", n_events)
    return results, cuts, n_events


def main(argv: Optional[Sequence[str]] = None) -> int:
    r"""
    End-to-end run: **parse → configure → geometry → stream → extract → report**.

    Returns
    -------
    int
        Process exit status: ``0`` on success, ``1`` on invalid arguments.
    """
    args = fmt_cli.parse_args(argv)
    if args is None:
        return 1
    setup_logging(verbose=(args.cutsinfo or 0) >= 2)

    file_config: dict = {}
    config_dir: Optional[Path] = None
    if args.config is not None:
        cfg_path = Path(args.config)
        logger.info("Reading config from %s", cfg_path)
        file_config = load_config(cfg_path)
        config_dir = cfg_path.parent
    config = build_run_config(args, file_config, config_dir=config_dir)

    n_layers = config.constants.n_layers
    if not 1 <= config.min_filled <= n_layers:
        raise ValueError(f"min_filled must be in [1, {n_layers}], got {config.min_filled}.")

    planes = load_geometry(config)
    swim = TrkSwim.from_setup(config.swim_setup)
    logger.info("Swim setup: %s", swim)
    shift_sets = build_shift_sets(config)
    if len(shift_sets) > 1:
        logger.info("Scanning %s over %d shift sets.", config.var, len(shift_sets) - 1)

    apply_plotting_guard(config.var is None)

    logger.info("Reading trajectory points from %s", config.input_file)
    t0 = time.time()
    events = HipoEventSource(config.input_file, max_events=config.n_events)
    results, cuts, n_events = run_extraction(
        events, config, planes, swim, shift_sets, keep_groups=(NOMINAL,),
    )
    t1 = time.time()

    nominal = results[NOMINAL]
    logger.info("%d trajectory point arrays found in %d events (%.1f s).", len(nominal), n_events, t1 - t0)
    if nominal.n_orphans:
        logger.warning("%d FMT rows were not preceded by a first-layer row of their particle.",
                       nominal.n_orphans)
    cuts[NOMINAL].log_summary(config.cuts_info)

    for label, res in results.items():
        if label == NOMINAL:
            continue
        logger.info("  %-18s %8d trajectory point arrays", label, res.n_groups)

    if config.var is None:
        import fmt_alignment.plotting as fmt_plot  # noqa: WPS433
        fmt_plot.plot_traj_points(groups_to_frame(nominal.groups), n_layers=n_layers)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
