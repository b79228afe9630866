from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Tuple

# Detector id of the FMT in the ``detector`` column of REC::Traj.
FMT_DETECTOR_ID = 8


@dataclass(frozen=True, slots=True)
class DetectorConstants:
    r"""
    Immutable description of the FMT layout used by the extraction.

    Attributes
    ----------
    n_layers : int
        Number of FMT layers (``3``). Also the size of a trio group.
    n_regions : int
        Number of strip regions per layer (``4``).
    n_sectors : int
        Number of DC sectors (``6``).
    strip_separators : tuple of int
        Region boundaries in strip number. Region :math:`k` holds the strips
        :math:`s` with ``strip_separators[k] < s <= strip_separators[k+1]``.
    fmt_detector_id : int
        Value of the ``detector`` column identifying FMT rows in REC::Traj.

    Notes
    -----
    An instance is passed explicitly to every call that needs it; there is
    no process-wide constants holder.
    """
    n_layers: int = 3
    n_regions: int = 4
    n_sectors: int = 6
    strip_separators: Tuple[int, ...] = (-1, 319, 511, 831, 1023)
    fmt_detector_id: int = FMT_DETECTOR_ID

    def __post_init__(self) -> None:
        if self.n_layers < 1:
            raise ValueError(f"n_layers must be positive, got {self.n_layers}.")
        if len(self.strip_separators) != self.n_regions + 1:
            raise ValueError(
                f"Expected {self.n_regions + 1} strip separators, got {len(self.strip_separators)}."
            )

    def region_of_strip(self, strip: int) -> int:
        r"""
        Return the region index of a strip number, or ``-1`` if out of range.

        Examples
        --------
        >>> DetectorConstants().region_of_strip(0)
        0
        >>> DetectorConstants().region_of_strip(320)
        1
        >>> DetectorConstants().region_of_strip(1024)
        -1
        """
        seps = self.strip_separators
        if strip <= seps[0] or strip > seps[-1]:
            return -1
        return bisect.bisect_left(seps, strip) - 1
