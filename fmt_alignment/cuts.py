from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Protocol

logger = logging.getLogger(__name__)


class CutEngine(Protocol):
    r"""
    Acceptance tests called by the extraction.

    Both checks return ``True`` when the candidate must be **rejected**.
    """

    def increase_traj_count(self) -> None:
        ...

    def downstream_track_check(self, z: float, z_ref: float) -> bool:
        ...

    def check_traj_cuts(self, z: float, x: float, y: float, z_ref: float, costh: float) -> bool:
        ...

    def record_failure(self, name: str) -> None:
        ...


@dataclass(frozen=True)
class CutsConfig:
    r"""
    Fiducial-cut thresholds (lengths in cm).

    Attributes
    ----------
    z_tolerance : float
        Largest accepted :math:`|z - z_\text{ref}|` after swimming.
    r_min, r_max : float
        Accepted transverse radius :math:`r_\text{min} \le \sqrt{x^2+y^2} \le r_\text{max}`
        at the plane (FMT active area).
    min_costh : float
        Smallest accepted :math:`\cos\theta` of the track at the plane.
    """
    z_tolerance: float = 1e-3
    r_min: float = 4.2
    r_max: float = 18.0
    min_costh: float = 0.8

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CutsConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown cut parameters: {', '.join(sorted(unknown))}")
        return cls(**{k: float(v) for k, v in data.items()})


# Rejection reasons in evaluation order.
CUT_NAMES = ("downstream", "z_plane", "r_min", "r_max", "costh")

# Candidates lost before or during the swim, reported by the extraction.
FAILURE_NAMES = ("no_particle", "no_swim", "no_momentum")

REJECT_NAMES = CUT_NAMES + FAILURE_NAMES


class FiducialCuts:
    r"""
    FMT fiducial cuts with per-cut rejection counters.

    Parameters
    ----------
    config : CutsConfig, optional
        Thresholds; defaults to :class:`CutsConfig()`.

    Attributes
    ----------
    traj_count : int
        Number of trajectory candidates evaluated so far.
    rejected : dict[str, int]
        Rejections per cut name (see :data:`CUT_NAMES`) and per extraction
        failure (see :data:`FAILURE_NAMES`).

    Notes
    -----
    The counters accumulate over the whole run. Use :meth:`merge` to combine
    instances that ran on disjoint sets of events.
    """

    def __init__(self, config: CutsConfig | None = None) -> None:
        self.config = config or CutsConfig()
        self.traj_count = 0
        self.rejected: Dict[str, int] = {name: 0 for name in REJECT_NAMES}

    def increase_traj_count(self) -> None:
        self.traj_count += 1

    def record_failure(self, name: str) -> None:
        """Count a candidate the extraction dropped outside the cuts."""
        if name not in FAILURE_NAMES:
            raise ValueError(f"Unknown failure {name!r}; expected one of {FAILURE_NAMES}")
        self.rejected[name] += 1

    def _reject(self, name: str) -> bool:
        self.rejected[name] += 1
        return True

    def downstream_track_check(self, z: float, z_ref: float) -> bool:
        """Reject a vertex already downstream of the reference plane."""
        if z > z_ref:
            return self._reject("downstream")
        return False

    def check_traj_cuts(self, z: float, x: float, y: float, z_ref: float, costh: float) -> bool:
        r"""
        Apply the trajectory cuts at the plane; the first failing cut is counted.
        """
        cfg = self.config
        if abs(z - z_ref) > cfg.z_tolerance:
            return self._reject("z_plane")
        r = math.hypot(x, y)
        if r < cfg.r_min:
            return self._reject("r_min")
        if r > cfg.r_max:
            return self._reject("r_max")
        if costh < cfg.min_costh:
            return self._reject("costh")
        return False

    @property
    def accepted(self) -> int:
        return self.traj_count - sum(self.rejected.values())

    def merge(self, other: "FiducialCuts") -> "FiducialCuts":
        """Add the counters of ``other`` into this instance and return it."""
        self.traj_count += other.traj_count
        for name, n in other.rejected.items():
            self.rejected[name] = self.rejected.get(name, 0) + n
        return self

    def summary(self) -> Dict[str, int]:
        out = {"evaluated": self.traj_count, "accepted": self.accepted}
        out.update(self.rejected)
        return out

    def log_summary(self, verbosity: int = 1) -> None:
        r"""
        Report the counters.

        Parameters
        ----------
        verbosity : int
            ``0`` logs nothing, ``1`` the totals, ``2`` also every cut and
            extraction failure.
        """
        if verbosity <= 0:
            return
        total = self.traj_count
        frac = 100.0 * self.accepted / total if total else 0.0
        logger.info("Trajectory cuts: %d evaluated, %d accepted (%.2f%%)", total, self.accepted, frac)
        if verbosity >= 2:
            for name in REJECT_NAMES:
                n = self.rejected[name]
                logger.info("  %-10s rejected %8d (%.2f%%)", name, n, 100.0 * n / total if total else 0.0)
