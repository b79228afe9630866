import sys
from pathlib import Path

import pandas as pd
import pytest

# Ensure project root on path when tests are run from a checkout.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fmt_alignment.banks import PARTICLE_BANK, TRACK_BANK, TRAJ_BANK
from fmt_alignment.constants import FMT_DETECTOR_ID
from fmt_alignment.geometry import ReferencePlaneSet


class IdentitySwim:
    """Leaves the transverse state untouched and lands exactly on the plane."""

    def __init__(self):
        self.calls = []

    def swim_to_plane(self, x, y, z, px, py, pz, charge, z_target):
        self.calls.append(z_target)
        return (x, y, z_target, px, py, pz)


class StubCuts:
    """Accepts everything except the planes listed in the reject sets."""

    def __init__(self, downstream_reject=(), traj_reject=()):
        self.count = 0
        self.failures = []
        self.downstream_reject = set(downstream_reject)
        self.traj_reject = set(traj_reject)

    def increase_traj_count(self):
        self.count += 1

    def record_failure(self, name):
        self.failures.append(name)

    def downstream_track_check(self, z, z_ref):
        return z_ref in self.downstream_reject

    def check_traj_cuts(self, z, x, y, z_ref, costh):
        return z_ref in self.traj_reject


def traj_row(pindex, layer, detector=FMT_DETECTOR_ID):
    # ``layer`` is the 1-based bank layer.
    return {"pindex": pindex, "detector": detector, "layer": layer}


def particle_row(vx=1.0, vy=2.0, vz=0.0, px=0.1, py=0.2, pz=2.0, charge=-1):
    return {"vx": vx, "vy": vy, "vz": vz, "px": px, "py": py, "pz": pz, "charge": charge}


def make_event(traj, particles, tracks):
    return {
        TRAJ_BANK: pd.DataFrame(traj, columns=["pindex", "detector", "layer"]),
        PARTICLE_BANK: pd.DataFrame(particles, columns=["vx", "vy", "vz", "px", "py", "pz", "charge"]),
        TRACK_BANK: pd.DataFrame(tracks, columns=["pindex", "sector"]),
    }


@pytest.fixture
def planes():
    return ReferencePlaneSet([30.0, 32.0, 34.0], [0.0, 0.0, 0.0])


@pytest.fixture
def swim():
    return IdentitySwim()


@pytest.fixture
def cuts():
    return StubCuts()


@pytest.fixture
def single_track_event():
    return make_event(
        [traj_row(0, 1), traj_row(0, 2), traj_row(0, 3)],
        [particle_row()],
        [{"pindex": 0, "sector": 3}],
    )
