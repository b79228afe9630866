"""Command-line parsing for the FMT alignment runner.

Every input error (bad arity, non-numeric value, unknown flag, missing or
duplicated input file, wrong extension, ``--var`` without ``--inter`` or the
reverse) ends the same way: the full usage text is printed and
:func:`parse_args` returns ``None``.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence, TextIO

INPUT_EXTENSION = ".hipo"
VAR_CHOICES = ("dXY", "dZ", "rXY", "rZ")

USAGE = """
Usage: fmt-alignment <file> [-n --nevents] [-v --var] [-i --inter]
                            [-s --swim] [-c --cutsinfo] [-V --variation]
                            [-x --dx] [-y --dy] [-z --dz]
                            [-X --rx] [-Y --ry] [-Z --rz] [-C --config]
  * file      : hipo input file.
  * nevents   : number of events to run. If unspecified, runs all
                events in input file.
  * var       : variable to be aligned. Can be dXY, dZ, rXY, or rZ.
  * inter (2) : [0] range between nominal position and position to
                    be tested.
                [1] step size for each tested value between
                    <nominal - range> and <nominal + range>.
  * swim  (3) : Setup for the Swim class. If unspecified, uses
                default from RG-F data (-0.75, -1.0, -3.0).
                [0] Solenoid magnet scale.
                [1] Torus magnet scale.
                [2] Torus magnet shift.
  * cutsinfo  : int describing how much info on the cuts should be
                printed. 0 is no info, 1 is minimal, 2 is detailed.
                Default is 1.
  * variation : CCDB variation to be used. Default is
                ``rgf_spring2020''.
  * dx    (3) : x shift for each FMT layer.
  * dy    (3) : y shift for each FMT layer.
  * dz    (3) : z shift for each FMT layer.
  * rx    (3) : x rotation for each FMT layer.
  * ry    (3) : y rotation for each FMT layer.
  * rz    (3) : z rotation for each FMT layer.
  * config    : JSON run configuration (calibration store, global
                shift, cut thresholds).

For example, if <var> == 'dZ', <inter> == '0.2 0.1', and
<dz> == 0.5, then the values tested for z are:
            (0.3, 0.4, 0.5, 0.6, 0.7).
If a position or rotation is not specified, it is assumed to be 0
for all FMT layers. If no alignment variable is specified, plots of
the extracted trajectory points are shown.

NOTE. All measurements are in cm, while the ccdb works in mm.
"""

# (short, long, help) of the flags taking one value per FMT layer.
_LAYER_FLAGS = (
    ("-x", "--dx", "x shift for each FMT layer"),
    ("-y", "--dy", "y shift for each FMT layer"),
    ("-z", "--dz", "z shift for each FMT layer"),
    ("-X", "--rx", "x rotation for each FMT layer"),
    ("-Y", "--ry", "y rotation for each FMT layer"),
    ("-Z", "--rz", "z rotation for each FMT layer"),
)


class UsageError(Exception):
    """Raised by the parser instead of exiting."""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    r"""
    Construct the argument parser.

    Returns
    -------
    argparse.ArgumentParser
        A parser whose :meth:`~argparse.ArgumentParser.error` raises
        :class:`UsageError`. Abbreviated long flags and ``-h`` are not
        accepted.
    """
    p = _Parser(prog="fmt-alignment", usage=USAGE, add_help=False, allow_abbrev=False)
    p.add_argument("file", help="hipo input file")
    p.add_argument("-n", "--nevents", type=int, default=None,
                   help="number of events to run")
    p.add_argument("-c", "--cutsinfo", type=int, default=None,
                   help="cuts info verbosity: 0, 1 or 2")
    p.add_argument("-v", "--var", choices=VAR_CHOICES, default=None,
                   help="variable to be aligned")
    p.add_argument("-V", "--variation", type=str, default=None,
                   help="calibration variation")
    p.add_argument("-C", "--config", type=str, default=None,
                   help="JSON run configuration")
    p.add_argument("-i", "--inter", type=float, nargs=2, default=None, metavar=("RANGE", "STEP"),
                   help="scan range and step")
    p.add_argument("-s", "--swim", type=float, nargs=3, default=None,
                   metavar=("SOLENOID", "TORUS", "SHIFT"),
                   help="solenoid scale, torus scale, torus shift")
    for short, long, help_ in _LAYER_FLAGS:
        p.add_argument(short, long, type=float, nargs=3, default=None, metavar="V", help=help_)
    return p


def usage(stream: Optional[TextIO] = None) -> None:
    """Print the usage text."""
    (stream or sys.stdout).write(USAGE + "\n")


def parse_args(argv: Optional[Sequence[str]] = None, *, stream: Optional[TextIO] = None) -> Optional[argparse.Namespace]:
    r"""
    Parse and validate the command line.

    Parameters
    ----------
    argv : sequence of str, optional
        Arguments without the program name; defaults to ``sys.argv[1:]``.
    stream : file-like, optional
        Where the usage text goes on failure (default stdout).

    Returns
    -------
    argparse.Namespace or None
        ``None`` after printing the usage text if the arguments are invalid.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        usage(stream)
        return None
    try:
        args = build_parser().parse_args(argv)
    except UsageError:
        usage(stream)
        return None

    if not args.file.endswith(INPUT_EXTENSION):
        usage(stream)
        return None
    if (args.var is None) != (args.inter is None):
        usage(stream)
        return None
    return args
