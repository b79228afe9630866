from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Sequence

import pandas as pd

from fmt_alignment.banks import PARTICLE_BANK, TRACK_BANK, TRAJ_BANK, Event, RowTable, get_bank
from fmt_alignment.constants import DetectorConstants
from fmt_alignment.cuts import CutEngine
from fmt_alignment.geometry import ReferencePlaneSet, ShiftMatrix, rotate_to_local
from fmt_alignment.swim import TrackPropagator

logger = logging.getLogger(__name__)


class Layer(IntEnum):
    """FMT layers, indexed from 0 in upstream-to-downstream order."""
    FMT1 = 0
    FMT2 = 1
    FMT3 = 2


@dataclass(frozen=True, slots=True)
class TrajectoryPoint:
    r"""
    One accepted trajectory sample on an FMT layer.

    Attributes
    ----------
    layer : int
        FMT layer index ``0..L-1``.
    sector : int or None
        DC sector ``0..5`` of the track, ``None`` when no track row matched.
    z : float
        Swum z position (cm), on the shifted reference plane.
    x, y : float
        Position in the layer's local strip frame (cm).
    costh : float
        :math:`\cos\theta` of the track momentum at the plane.
    """
    layer: int
    sector: Optional[int]
    z: float
    x: float
    y: float
    costh: float


class TrioGroup:
    r"""
    Per-layer samples of one track candidate within one event.

    A group has exactly one slot per layer. Empty slots hold ``None``, never
    a placeholder point, so :attr:`n_filled` counts real samples only.

    Parameters
    ----------
    n_layers : int, optional
        Number of slots. Default ``3``.
    pindex : int, optional
        Particle index the group was opened for.
    """

    __slots__ = ("pindex", "_slots")

    def __init__(self, n_layers: int = len(Layer), pindex: Optional[int] = None) -> None:
        self.pindex = pindex
        self._slots: List[Optional[TrajectoryPoint]] = [None] * n_layers

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[Optional[TrajectoryPoint]]:
        return iter(self._slots)

    def __getitem__(self, layer: int) -> Optional[TrajectoryPoint]:
        return self._slots[layer]

    def __setitem__(self, layer: int, point: TrajectoryPoint) -> None:
        if not 0 <= layer < len(self._slots):
            raise IndexError(f"Layer {layer} outside 0..{len(self._slots) - 1}")
        if point.layer != layer:
            raise ValueError(f"Point on layer {point.layer} stored in slot {layer}")
        self._slots[layer] = point

    @property
    def n_filled(self) -> int:
        return sum(p is not None for p in self._slots)

    @property
    def is_complete(self) -> bool:
        return self.n_filled == len(self._slots)

    def points(self) -> List[TrajectoryPoint]:
        """Filled slots in layer order."""
        return [p for p in self._slots if p is not None]

    def __repr__(self) -> str:
        mask = "".join("x" if p is not None else "." for p in self._slots)
        return f"TrioGroup(pindex={self.pindex}, slots={mask})"


@dataclass
class ExtractionResult:
    r"""
    Outcome of :func:`extract_traj_points` for one event.

    Attributes
    ----------
    groups : list of TrioGroup
        Groups meeting the fill threshold, in creation order.
    n_evaluated : int
        Candidates that reached cut evaluation (the quantity the cut engine
        counts through ``increase_traj_count``).
    n_orphans : int
        FMT rows skipped because no layer-0 row had opened a group for
        their particle index.
    n_dropped : int
        Groups counted but no longer held (see :meth:`discard_groups`).

    Results add up, so per-event or per-worker results can be merged with
    ``sum(results, ExtractionResult())``. When accumulating over a run, use
    ``+=``, which extends in place.
    """
    groups: List[TrioGroup] = field(default_factory=list)
    n_evaluated: int = 0
    n_orphans: int = 0
    n_dropped: int = 0

    def __len__(self) -> int:
        return len(self.groups)

    def __iter__(self) -> Iterator[TrioGroup]:
        return iter(self.groups)

    @property
    def n_groups(self) -> int:
        """Groups found, whether still held or discarded."""
        return len(self.groups) + self.n_dropped

    def discard_groups(self) -> None:
        """Release the held groups, keeping only their count."""
        self.n_dropped += len(self.groups)
        self.groups.clear()

    def __add__(self, other: "ExtractionResult") -> "ExtractionResult":
        if not isinstance(other, ExtractionResult):
            return NotImplemented
        return ExtractionResult(
            groups=self.groups + other.groups,
            n_evaluated=self.n_evaluated + other.n_evaluated,
            n_orphans=self.n_orphans + other.n_orphans,
            n_dropped=self.n_dropped + other.n_dropped,
        )

    def __iadd__(self, other: "ExtractionResult") -> "ExtractionResult":
        if not isinstance(other, ExtractionResult):
            return NotImplemented
        self.groups.extend(other.groups)
        self.n_evaluated += other.n_evaluated
        self.n_orphans += other.n_orphans
        self.n_dropped += other.n_dropped
        return self

    def __radd__(self, other):
        # Allows sum() with the default int start value.
        if other == 0:
            return self
        return NotImplemented


def _resolve_sector(trk: RowTable, pindex: int) -> Optional[int]:
    # Linear scan; the last matching track row wins.
    sector = None
    for trki in range(trk.rows()):
        if trk.get_short("pindex", trki) == pindex:
            sector = trk.get_byte("sector", trki) - 1
    if sector is None or sector < 0:
        return None
    return sector


def extract_traj_points(
    event: Event,
    constants: DetectorConstants,
    swim: TrackPropagator,
    cuts: CutEngine,
    planes: ReferencePlaneSet,
    shifts: ShiftMatrix,
    min_filled: int,
) -> Optional[ExtractionResult]:
    r"""
    Extract FMT trajectory points of one event, grouped per track into trios.

    For each FMT row of ``REC::Traj`` the particle's vertex state is swum to
    the layer's shifted reference plane

    .. math::

        z_\text{ref} = z_\ell + \Delta z_\text{global} + \Delta z_\ell,

    checked against the cuts, and rotated into the layer's strip frame. The
    resulting :class:`TrajectoryPoint` fills the layer slot of the group of
    its particle.

    Grouping
    --------
    A layer-0 row opens a new group for its particle index; later rows of
    that particle fill it. Rows of a particle without an open group are
    skipped (counted in ``n_orphans``), so a group is never created by a
    layer other than 0. Interleaved tracks are grouped correctly.

    Parameters
    ----------
    event : mapping
        Bank name to :class:`pandas.DataFrame`; needs ``REC::Traj``,
        ``REC::Particle`` and ``REC::Track``.
    constants : DetectorConstants
        Layer count and FMT detector id.
    swim : TrackPropagator
        Propagator used to move vertex states onto the planes.
    cuts : CutEngine
        Candidate counter and acceptance checks.
    planes : ReferencePlaneSet
        Nominal z (cm) and strip angle (deg) per layer.
    shifts : ShiftMatrix
        Alignment offsets; column 0 shifts the planes in z.
    min_filled : int
        Minimum number of filled layers for a group to be kept, in
        ``[1, n_layers]``.

    Returns
    -------
    ExtractionResult or None
        ``None`` if ``min_filled`` is out of range (logged as an error) or
        any of the three banks is absent. Otherwise the kept groups, which
        may be an empty list.

    Raises
    ------
    ValueError
        If ``planes`` or ``shifts`` do not describe ``constants.n_layers`` layers.

    Notes
    -----
    Rejections (unknown particle row, downstream vertex, failed swim,
    zero momentum, trajectory cuts) never raise and only leave the slot
    empty. The ones the cut engine does not decide itself are reported
    through ``cuts.record_failure``, so its counters add up to the
    evaluated total.
    The downstream check runs on the vertex z **before** swimming.
    """
    n_layers = constants.n_layers
    if not 1 <= min_filled <= n_layers:
        logger.error("min_filled should be at least 1 and at most %d, got %d.", n_layers, min_filled)
        return None
    if planes.n_layers != n_layers or shifts.n_layers != n_layers:
        raise ValueError(
            f"Geometry for {planes.n_layers} layers and shifts for {shifts.n_layers} layers "
            f"do not match {n_layers} FMT layers."
        )

    trj = get_bank(event, TRAJ_BANK)
    ptc = get_bank(event, PARTICLE_BANK)
    trk = get_bank(event, TRACK_BANK)
    if trj is None or ptc is None or trk is None:
        logger.debug("Event lacks one of %s, %s, %s; skipping.", TRAJ_BANK, PARTICLE_BANK, TRACK_BANK)
        return None

    groups: List[TrioGroup] = []
    open_groups: Dict[int, TrioGroup] = {}
    n_evaluated = 0
    n_orphans = 0

    for trji in range(trj.rows()):
        detector = trj.get_byte("detector", trji)
        li = trj.get_byte("layer", trji) - 1
        pi = trj.get_short("pindex", trji)

        if detector != constants.fmt_detector_id or li < 0 or li > n_layers - 1:
            continue

        if li == 0:
            group = TrioGroup(n_layers, pindex=pi)
            groups.append(group)
            open_groups[pi] = group
        else:
            group = open_groups.get(pi)
            if group is None:
                n_orphans += 1
                continue

        cuts.increase_traj_count()
        n_evaluated += 1

        si = _resolve_sector(trk, pi)
        z_ref = planes.z_ref(li, shifts)

        if not 0 <= pi < ptc.rows():
            cuts.record_failure("no_particle")
            continue
        x = ptc.get_float("vx", pi)
        y = ptc.get_float("vy", pi)
        z = ptc.get_float("vz", pi)
        px = ptc.get_float("px", pi)
        py = ptc.get_float("py", pi)
        pz = ptc.get_float("pz", pi)
        q = ptc.get_byte("charge", pi)

        if cuts.downstream_track_check(z, z_ref):
            continue
        swum = swim.swim_to_plane(x, y, z, px, py, pz, q, z_ref)
        if swum is None:
            cuts.record_failure("no_swim")
            continue
        x, y, z, px, py, pz = swum

        p = math.sqrt(px * px + py * py + pz * pz)
        if not p > 0.0:
            cuts.record_failure("no_momentum")
            continue
        costh = pz / p

        if cuts.check_traj_cuts(z, x, y, z_ref, costh):
            continue

        x_loc, y_loc = rotate_to_local(x, y, planes.angle[li])
        group[li] = TrajectoryPoint(li, si, float(z), x_loc, y_loc, float(costh))

    if n_orphans:
        logger.debug("%d FMT rows had no open group for their particle.", n_orphans)

    kept = [g for g in groups if g.n_filled >= min_filled]
    return ExtractionResult(kept, n_evaluated, n_orphans)


def groups_to_frame(groups: Sequence[TrioGroup]) -> pd.DataFrame:
    r"""
    Flatten trio groups into a table with one row per point.

    Returns
    -------
    pandas.DataFrame
        Columns ``group, pindex, layer, sector, z, x, y, costh``. ``sector`` is
        a nullable integer column where unknown sectors are ``<NA>``.
    """
    rows = []
    for gi, group in enumerate(groups):
        for p in group.points():
            rows.append({
                "group": gi, "pindex": group.pindex, "layer": p.layer, "sector": p.sector,
                "z": p.z, "x": p.x, "y": p.y, "costh": p.costh,
            })
    columns = ["group", "pindex", "layer", "sector", "z", "x", "y", "costh"]
    df = pd.DataFrame(rows, columns=columns)
    return df.astype({"group": "int64", "layer": "int64", "sector": "Int64"})
