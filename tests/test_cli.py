import io

import pytest

from fmt_alignment.cli import USAGE, parse_args


def _parse(argv):
    out = io.StringIO()
    return parse_args(argv, stream=out), out.getvalue()


def test_minimal():
    args, out = _parse(["run.hipo"])
    assert out == ""
    assert args.file == "run.hipo"
    assert args.nevents is None and args.var is None and args.inter is None


def test_all_flags():
    args, _ = _parse([
        "-n", "1000", "--cutsinfo", "2", "-v", "dZ", "--inter", "0.2", "0.1",
        "-s", "-0.75", "-1.0", "-3.0", "-V", "rgf_spring2020", "run.hipo",
        "-x", "0", "0", "0", "-y", "0", "0", "0", "--dz", "0.5", "-0.5", "0",
        "-X", "0", "0", "0", "-Y", "0", "0", "0", "-Z", "1", "2", "3",
        "-C", "alignment.json",
    ])
    assert args.nevents == 1000
    assert args.cutsinfo == 2
    assert args.var == "dZ"
    assert args.inter == [0.2, 0.1]
    assert args.swim == [-0.75, -1.0, -3.0]
    assert args.variation == "rgf_spring2020"
    assert args.dz == [0.5, -0.5, 0.0]
    assert args.rz == [1.0, 2.0, 3.0]
    assert args.config == "alignment.json"


@pytest.mark.parametrize("argv", [
    [],
    ["run.root"],
    ["a.hipo", "b.hipo"],
    ["-n", "10"],
    ["run.hipo", "-n", "ten"],
    ["run.hipo", "-c", "1.5"],
    ["run.hipo", "-v", "dX", "-i", "0.2", "0.1"],
    ["run.hipo", "-v", "dZ"],
    ["run.hipo", "-i", "0.2", "0.1"],
    ["run.hipo", "-i", "0.2"],
    ["run.hipo", "-s", "1", "2"],
    ["run.hipo", "--dz", "0.1", "zero", "0.1"],
    ["run.hipo", "-q", "1"],
    ["run.hipo", "--nevent", "10"],
    ["run.hipo", "-h"],
    ["run.hipo", "-n"],
])
def test_rejected_arguments_print_usage(argv):
    args, out = _parse(argv)
    assert args is None
    assert out.strip() == USAGE.strip()


def test_usage_defaults_to_stdout(capsys):
    assert parse_args(["bad.txt"]) is None
    assert "Usage: fmt-alignment" in capsys.readouterr().out
