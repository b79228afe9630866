__all__ = [
    "DetectorConstants",
    "ReferencePlaneSet", "ShiftMatrix", "rotate_to_local",
    "load_calibration_store", "load_reference_planes",
    "RowTable", "get_bank", "MemoryEventSource", "HipoEventSource",
    "TrackPropagator", "TrkSwim",
    "CutEngine", "CutsConfig", "FiducialCuts",
    "Layer", "TrajectoryPoint", "TrioGroup", "ExtractionResult",
    "extract_traj_points", "groups_to_frame",
    "RunConfig", "load_config", "build_run_config", "scan_values",
    "parse_args",
]

# Detector layout
from .constants import DetectorConstants

# Geometry & alignment offsets
from .geometry import (
    ReferencePlaneSet,
    ShiftMatrix,
    rotate_to_local,
    load_calibration_store,
    load_reference_planes,
)

# Event banks
from .banks import RowTable, get_bank, MemoryEventSource, HipoEventSource

# Propagation & cuts
from .swim import TrackPropagator, TrkSwim
from .cuts import CutEngine, CutsConfig, FiducialCuts

# Trajectory-point extraction
from .traj_points import (
    Layer,
    TrajectoryPoint,
    TrioGroup,
    ExtractionResult,
    extract_traj_points,
    groups_to_frame,
)

# Configuration & CLI
from .config import RunConfig, load_config, build_run_config, scan_values
from .cli import parse_args
