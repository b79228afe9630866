from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

TRAJ_BANK = "REC::Traj"
PARTICLE_BANK = "REC::Particle"
TRACK_BANK = "REC::Track"

# Columns read by the extraction, per bank.
BANK_COLUMNS: Mapping[str, Sequence[str]] = {
    TRAJ_BANK: ("pindex", "detector", "layer"),
    PARTICLE_BANK: ("vx", "vy", "vz", "px", "py", "pz", "charge"),
    TRACK_BANK: ("pindex", "sector"),
}

# An event maps bank names to their rows.
Event = Mapping[str, pd.DataFrame]


class RowTable:
    r"""
    Read-only view over one event bank with typed column accessors.

    The bank is kept as a :class:`pandas.DataFrame`; columns are materialized
    once as contiguous NumPy arrays so repeated scalar reads in the
    extraction loop stay cheap.

    Parameters
    ----------
    frame : pandas.DataFrame
        One row per bank entry.
    name : str, optional
        Bank name, used in error messages.
    """

    __slots__ = ("name", "_frame", "_cols")

    def __init__(self, frame: pd.DataFrame, name: str = "") -> None:
        self.name = name
        self._frame = frame
        self._cols: Dict[str, np.ndarray] = {}

    def rows(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return len(self._frame)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    def _column(self, column: str) -> np.ndarray:
        arr = self._cols.get(column)
        if arr is None:
            try:
                arr = self._frame[column].to_numpy(copy=False)
            except KeyError as e:
                raise KeyError(f"Bank {self.name!r} has no column {column!r}") from e
            self._cols[column] = arr
        return arr

    def _get(self, column: str, row: int):
        arr = self._column(column)
        if row < 0 or row >= arr.size:
            raise IndexError(f"Row {row} out of range for bank {self.name!r} ({arr.size} rows)")
        return arr[row]

    def get_byte(self, column: str, row: int) -> int:
        return int(self._get(column, row))

    def get_short(self, column: str, row: int) -> int:
        return int(self._get(column, row))

    def get_int(self, column: str, row: int) -> int:
        return int(self._get(column, row))

    def get_float(self, column: str, row: int) -> float:
        return float(self._get(column, row))

    def __repr__(self) -> str:
        return f"RowTable({self.name!r}, rows={self.rows()})"


def get_bank(event: Event, name: str) -> Optional[RowTable]:
    r"""
    Fetch bank ``name`` from ``event``.

    Returns
    -------
    RowTable or None
        ``None`` when the bank is missing or has no rows; an empty bank is
        treated as absent, like the upstream reader does.
    """
    frame = event.get(name)
    if frame is None or len(frame) == 0:
        return None
    return RowTable(frame, name)


class MemoryEventSource:
    """Iterate over events already held in memory (tests, notebooks)."""

    def __init__(self, events: Iterable[Event], max_events: Optional[int] = None) -> None:
        self._events = events
        self.max_events = max_events

    def __iter__(self) -> Iterator[Event]:
        for i, event in enumerate(self._events):
            if self.max_events is not None and i >= self.max_events:
                return
            yield event


class HipoEventSource:
    r"""
    Stream the FMT-relevant banks of a ``.hipo`` file event by event.

    Reading is delegated to :mod:`hipopy`, imported lazily so the rest of the
    package works without it. Events are read in batches of ``step`` and
    unpacked into one :class:`pandas.DataFrame` per bank, holding only the
    columns listed in :data:`BANK_COLUMNS`.

    Parameters
    ----------
    path : str or pathlib.Path
        Input ``.hipo`` file.
    max_events : int, optional
        Stop after this many events. ``None`` reads the whole file.
    step : int, optional
        Batch size handed to :func:`hipopy.hipopy.iterate`.

    Raises
    ------
    FileNotFoundError
        On iteration, if ``path`` does not exist.
    """

    def __init__(self, path: Union[str, Path], max_events: Optional[int] = None, step: int = 1000) -> None:
        self.path = Path(path)
        self.max_events = max_events
        self.step = int(step)

    def __iter__(self) -> Iterator[Event]:
        if not self.path.is_file():
            raise FileNotFoundError(f"Input file not found: {self.path}")
        import hipopy.hipopy as hippy  # noqa: WPS433

        banks = list(BANK_COLUMNS)
        n_read = 0
        for batch in hippy.iterate([str(self.path)], banks=banks, step=self.step):
            n_batch = len(next(iter(batch.values()))) if batch else 0
            for i in range(n_batch):
                if self.max_events is not None and n_read >= self.max_events:
                    return
                yield _unpack_event(batch, i)
                n_read += 1


def _unpack_event(batch: Mapping[str, Sequence], i: int) -> Dict[str, pd.DataFrame]:
    # hipopy keys flattened columns as "<bank>_<column>", one list per event.
    event: Dict[str, pd.DataFrame] = {}
    for bank, columns in BANK_COLUMNS.items():
        data = {}
        for col in columns:
            key = f"{bank}_{col}"
            if key not in batch:
                break
            data[col] = np.asarray(batch[key][i])
        else:
            event[bank] = pd.DataFrame(data)
    return event
