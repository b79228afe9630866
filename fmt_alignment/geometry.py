from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import orjson

logger = logging.getLogger(__name__)

# The calibration store keeps lengths in millimeters; everything here is in cm.
MM_TO_CM = 0.1

DEFAULT_VARIATION = "rgf_spring2020"
FMT_LAYER_TABLE = "/geometry/fmt/fmt_layer_noshim"

# Column layout of a ShiftMatrix.
SHIFT_COLUMNS: Tuple[str, ...] = ("dz", "dx", "dy", "rz")


def rotate_to_local(
    x: Union[float, np.ndarray],
    y: Union[float, np.ndarray],
    angle_deg: float,
) -> Tuple[Union[float, np.ndarray], Union[float, np.ndarray]]:
    r"""
    Rotate global transverse coordinates into a layer's strip frame.

    With :math:`\theta_s` the strip angle in radians,

    .. math::

        x_\text{loc} = x\cos\theta_s + y\sin\theta_s,\qquad
        y_\text{loc} = y\cos\theta_s - x\sin\theta_s.

    The map is a proper rotation, so :math:`x_\text{loc}^2+y_\text{loc}^2 = x^2+y^2`.

    Parameters
    ----------
    x, y : float or ndarray
        Global transverse position(s) in cm.
    angle_deg : float
        Strip angle :math:`\theta_s` in degrees.

    Returns
    -------
    (x_loc, y_loc) : tuple
        Same type and shape as the inputs.
    """
    th = np.radians(angle_deg)
    c, s = np.cos(th), np.sin(th)
    x_loc = x * c + y * s
    y_loc = y * c - x * s
    if np.ndim(x_loc) == 0:
        return float(x_loc), float(y_loc)
    return x_loc, y_loc


@dataclass(frozen=True, eq=False)
class ReferencePlaneSet:
    r"""
    Nominal FMT reference planes: per-layer z position (cm) and strip angle (deg).

    Parameters
    ----------
    z : sequence of float
        Nominal z of each layer in **centimeters**.
    angle : sequence of float
        Strip rotation angle of each layer in **degrees**.

    Notes
    -----
    Both sequences are frozen into read-only ``float64`` arrays; an instance
    is shared across all events of a run.
    """
    z: np.ndarray
    angle: np.ndarray

    def __init__(self, z: Sequence[float], angle: Sequence[float]) -> None:
        z_arr = np.array(z, dtype=np.float64)
        a_arr = np.array(angle, dtype=np.float64)
        if z_arr.ndim != 1 or z_arr.shape != a_arr.shape:
            raise ValueError(
                f"z and angle must be 1D with the same length, got {z_arr.shape} and {a_arr.shape}."
            )
        z_arr.setflags(write=False)
        a_arr.setflags(write=False)
        object.__setattr__(self, "z", z_arr)
        object.__setattr__(self, "angle", a_arr)

    @property
    def n_layers(self) -> int:
        return int(self.z.size)

    def z_ref(self, layer: int, shifts: "ShiftMatrix") -> float:
        r"""
        Shifted reference plane of ``layer``:
        :math:`z_\text{ref} = z_\ell + \Delta z_\text{global} + \Delta z_\ell`.
        """
        return float(self.z[layer] + shifts.dz(layer))


class ShiftMatrix:
    r"""
    Alignment offsets as an :math:`(L+1)\times 4` grid.

    Row ``0`` is a global shift applied to every layer, rows ``1..L`` are
    per-layer shifts. Columns follow :data:`SHIFT_COLUMNS`:
    ``(dz, dx, dy, rz)``. Only ``dz`` enters the trajectory extraction; the
    other columns are carried for the alignment scan.

    Parameters
    ----------
    values : array_like, shape (L+1, 4)
        Offsets in cm (``rz`` in degrees).
    n_layers : int, optional
        Expected number of layers :math:`L`. Default ``3``.

    Raises
    ------
    ValueError
        If ``values`` does not have exactly ``n_layers + 1`` rows and 4 columns.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Sequence[Sequence[float]] | np.ndarray, n_layers: int = 3) -> None:
        arr = np.array(values, dtype=np.float64)
        expected = (n_layers + 1, len(SHIFT_COLUMNS))
        if arr.shape != expected:
            raise ValueError(f"Shift matrix must have shape {expected}, got {arr.shape}.")
        arr.setflags(write=False)
        self._values = arr

    @classmethod
    def zeros(cls, n_layers: int = 3) -> "ShiftMatrix":
        return cls(np.zeros((n_layers + 1, len(SHIFT_COLUMNS))), n_layers=n_layers)

    @classmethod
    def from_layer_shifts(
        cls,
        *,
        dz: Optional[Sequence[float]] = None,
        dx: Optional[Sequence[float]] = None,
        dy: Optional[Sequence[float]] = None,
        rz: Optional[Sequence[float]] = None,
        global_shift: Optional[Sequence[float]] = None,
        n_layers: int = 3,
    ) -> "ShiftMatrix":
        """Assemble a matrix from per-layer columns; missing columns are zero."""
        arr = np.zeros((n_layers + 1, len(SHIFT_COLUMNS)), dtype=np.float64)
        if global_shift is not None:
            arr[0, :] = np.asarray(global_shift, dtype=np.float64)
        for col, vals in enumerate((dz, dx, dy, rz)):
            if vals is None:
                continue
            vals = np.asarray(vals, dtype=np.float64)
            if vals.shape != (n_layers,):
                raise ValueError(
                    f"Expected {n_layers} values for {SHIFT_COLUMNS[col]}, got {vals.shape}."
                )
            arr[1:, col] = vals
        return cls(arr, n_layers=n_layers)

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def n_layers(self) -> int:
        return self._values.shape[0] - 1

    def __getitem__(self, idx):
        return self._values[idx]

    def dz(self, layer: int) -> float:
        """Total z offset of ``layer``: global plus per-layer."""
        return float(self._values[0, 0] + self._values[layer + 1, 0])

    def with_offset(self, column: str, layer: int, value: float) -> "ShiftMatrix":
        r"""
        Return a copy with ``column`` of ``layer`` set to ``value``.

        Parameters
        ----------
        column : {"dz","dx","dy","rz"}
        layer : int
            Layer index ``0..L-1``; ``-1`` addresses the global row.
        value : float
        """
        col = SHIFT_COLUMNS.index(column)
        arr = self._values.copy()
        arr[layer + 1, col] = float(value)
        return ShiftMatrix(arr, n_layers=self.n_layers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShiftMatrix):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __repr__(self) -> str:
        return f"ShiftMatrix({self._values.tolist()!r})"


def load_calibration_store(path: Union[str, Path]) -> Mapping[str, Mapping[str, Mapping[str, list]]]:
    r"""
    Read a JSON calibration-store export.

    The layout is ``{variation: {table_path: {column: [values per row]}}}``,
    e.g. ``{"rgf_spring2020": {"/geometry/fmt/fmt_layer_noshim": {"Z": [...], "Angle": [...]}}}``.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the file cannot be parsed.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Calibration store not found: {path}")
    try:
        return orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Failed to parse calibration store {path}: {e}") from e


def load_reference_planes(
    store: Mapping[str, Mapping[str, Mapping[str, list]]],
    variation: str = DEFAULT_VARIATION,
    *,
    table: str = FMT_LAYER_TABLE,
    n_layers: int = 3,
) -> ReferencePlaneSet:
    r"""
    Build the :class:`ReferencePlaneSet` for a calibration variation.

    Parameters
    ----------
    store : mapping
        Parsed calibration store (see :func:`load_calibration_store`).
    variation : str, optional
        Variation name. Default ``"rgf_spring2020"``.
    table : str, optional
        Table holding the ``Z`` (mm) and ``Angle`` (deg) columns.
    n_layers : int, optional
        Number of rows expected in the table.

    Returns
    -------
    ReferencePlaneSet
        With ``z`` converted from millimeters to centimeters.

    Raises
    ------
    KeyError
        Unknown variation, table, or column.
    ValueError
        If the table does not have exactly ``n_layers`` rows.
    """
    try:
        cols = store[variation][table]
    except KeyError as e:
        raise KeyError(f"No table {table!r} for variation {variation!r} in calibration store.") from e
    try:
        z_mm = np.asarray(cols["Z"], dtype=np.float64)
        angle = np.asarray(cols["Angle"], dtype=np.float64)
    except KeyError as e:
        raise KeyError(f"Missing column {e.args[0]!r} in {table!r}.") from e

    if z_mm.shape != (n_layers,) or angle.shape != (n_layers,):
        raise ValueError(
            f"Table {table!r} must have {n_layers} rows, got Z={z_mm.shape}, Angle={angle.shape}."
        )

    planes = ReferencePlaneSet(z_mm * MM_TO_CM, angle)
    logger.debug("Loaded FMT planes for %s: z=%s cm, angle=%s deg",
                 variation, planes.z.tolist(), planes.angle.tolist())
    return planes
