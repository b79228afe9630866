from __future__ import annotations

import math
from typing import Optional, Protocol, Tuple

import numpy as np

# Curvature constant c = 0.299792458 GeV/(T m), expressed per cm.
C_LIGHT_CM = 0.299792458e-2

# Nominal central field of the CLAS12 solenoid at full scale, in Tesla.
SOLENOID_NOMINAL_T = 5.0

# Field setup used for RG-F data when none is given.
DEFAULT_SWIM_SETUP: Tuple[float, float, float] = (-0.75, -1.0, -3.0)

SwimState = Tuple[float, float, float, float, float, float]


class TrackPropagator(Protocol):
    """Anything that can move a track state onto a plane of constant z."""

    def swim_to_plane(
        self,
        x: float, y: float, z: float,
        px: float, py: float, pz: float,
        charge: int,
        z_target: float,
    ) -> Optional[SwimState]:
        ...


class TrkSwim:
    r"""
    Propagate a charged track to a plane :math:`z=z_t` in a uniform solenoid field.

    The FMT sits deep inside the solenoid, upstream of the torus, so the field
    seen between the target and the FMT planes is modelled as a uniform
    :math:`B_z = s_\text{sol}\,B_0` with :math:`B_0 = 5\,\mathrm{T}`. The torus
    settings are kept for bookkeeping only.

    Equations of motion
    -------------------
    With z as the independent variable and
    :math:`a = -c\,q\,B_z/p_z` (cm\ :sup:`-1`), the transverse momentum
    rotates by :math:`\theta = a\,\Delta z`:

    .. math::

        p_x' &= p_x\cos\theta - p_y\sin\theta, \\
        p_y' &= p_x\sin\theta + p_y\cos\theta, \\
        x' &= x + \frac{p_x\sin\theta + p_y(\cos\theta-1)}{a\,p_z}, \\
        y' &= y + \frac{p_x(1-\cos\theta) + p_y\sin\theta}{a\,p_z},

    and :math:`p_z` is unchanged, so :math:`|\mathbf{p}|` is conserved. For
    :math:`|\theta|\ll 1` (neutral track, field off, tiny step) the straight
    line :math:`\mathbf{x}' = \mathbf{x} + \mathbf{p}\,\Delta z/p_z` is used.

    Parameters
    ----------
    solenoid_scale : float, optional
        Solenoid scale factor (sign gives polarity).
    torus_scale : float, optional
        Torus scale factor.
    torus_shift : float, optional
        Torus position shift in cm.

    Units: positions in cm, momenta in GeV/c, charge in units of e.
    """

    __slots__ = ("solenoid_scale", "torus_scale", "torus_shift", "b_z")

    def __init__(
        self,
        solenoid_scale: float = DEFAULT_SWIM_SETUP[0],
        torus_scale: float = DEFAULT_SWIM_SETUP[1],
        torus_shift: float = DEFAULT_SWIM_SETUP[2],
    ) -> None:
        self.solenoid_scale = float(solenoid_scale)
        self.torus_scale = float(torus_scale)
        self.torus_shift = float(torus_shift)
        self.b_z = self.solenoid_scale * SOLENOID_NOMINAL_T

    @classmethod
    def from_setup(cls, setup: Optional[Tuple[float, float, float]]) -> "TrkSwim":
        if setup is None:
            return cls()
        return cls(*setup)

    def swim_to_plane(
        self,
        x: float, y: float, z: float,
        px: float, py: float, pz: float,
        charge: int,
        z_target: float,
    ) -> Optional[SwimState]:
        r"""
        Swim the state to :math:`z = z_\text{target}`.

        Returns
        -------
        (x, y, z, px, py, pz) or None
            ``None`` if the plane cannot be reached (:math:`p_z=0`) or the
            input is not finite.
        """
        state = np.array([x, y, z, px, py, pz, z_target], dtype=np.float64)
        if not np.all(np.isfinite(state)) or pz == 0.0:
            return None

        dz = z_target - z
        a = -C_LIGHT_CM * charge * self.b_z / pz
        theta = a * dz
        if abs(theta) < 1e-9:
            return (x + px * dz / pz, y + py * dz / pz, float(z_target), px, py, pz)

        c, s = math.cos(theta), math.sin(theta)
        apz = a * pz
        x2 = x + (px * s + py * (c - 1.0)) / apz
        y2 = y + (px * (1.0 - c) + py * s) / apz
        px2 = px * c - py * s
        py2 = px * s + py * c
        return (x2, y2, float(z_target), px2, py2, pz)

    def __repr__(self) -> str:
        return (f"TrkSwim(solenoid_scale={self.solenoid_scale}, "
                f"torus_scale={self.torus_scale}, torus_shift={self.torus_shift})")
