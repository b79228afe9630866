import logging

import orjson
import pytest

from conftest import make_event, particle_row, traj_row
import fmt_alignment.main as fmt_main
from fmt_alignment.banks import MemoryEventSource
from fmt_alignment.cli import parse_args
from fmt_alignment.config import build_run_config
from fmt_alignment.geometry import FMT_LAYER_TABLE, ReferencePlaneSet
from fmt_alignment.swim import TrkSwim


def _events(n=3):
    # Forward negative track from the target; field off makes it a straight line.
    one = make_event(
        [traj_row(0, 1), traj_row(0, 2), traj_row(0, 3)],
        [particle_row(vx=0.0, vy=0.0, vz=0.0, px=0.15, py=0.2, pz=1.0)],
        [{"pindex": 0, "sector": 3}],
    )
    return [one] * n


@pytest.fixture
def run_dir(tmp_path, monkeypatch):
    store = {"rgf_spring2020": {FMT_LAYER_TABLE: {"Z": [300.0, 320.0, 340.0], "Angle": [0.0, 60.0, -60.0]}}}
    (tmp_path / "ccdb.json").write_bytes(orjson.dumps(store))
    (tmp_path / "alignment.json").write_bytes(orjson.dumps({"calibration_store": "ccdb.json"}))

    def fake_source(path, max_events=None):
        return MemoryEventSource(_events(), max_events=max_events)

    monkeypatch.setattr(fmt_main, "HipoEventSource", fake_source)
    return tmp_path


def test_build_shift_sets_dz_scan():
    cfg = build_run_config(parse_args(["run.hipo", "-v", "dZ", "-i", "0.2", "0.1", "-z", "0.5", "0", "0"]))
    sets = fmt_main.build_shift_sets(cfg)
    assert len(sets) == 1 + 3 * 5
    assert sets["nominal"] == cfg.shifts
    assert sets["dz[0]=+0.3000"][1][0] == pytest.approx(0.3)
    assert sets["dz[2]=-0.2000"][3][0] == pytest.approx(-0.2)


def test_build_shift_sets_other_vars_extract_once():
    cfg = build_run_config(parse_args(["run.hipo", "-v", "dXY", "-i", "0.2", "0.1"]))
    assert list(fmt_main.build_shift_sets(cfg)) == ["nominal"]


def test_run_extraction_counts_per_shift():
    cfg = build_run_config(parse_args(["run.hipo", "-v", "dZ", "-i", "1", "1"]))
    planes = ReferencePlaneSet([30.0, 32.0, 34.0], [0.0, 0.0, 0.0])
    sets = fmt_main.build_shift_sets(cfg)
    results, cuts, n_events = fmt_main.run_extraction(
        MemoryEventSource(_events(4)), cfg, planes, TrkSwim(0.0, 0.0, 0.0), sets, progress_every=2,
    )
    assert n_events == 4
    assert set(results) == set(sets)
    assert len(results["nominal"]) == 4
    assert cuts["nominal"].traj_count == 12
    assert all(len(res) == 4 for res in results.values())


def test_main_scan(run_dir, caplog):
    argv = [
        str(run_dir / "run.hipo"), "-C", str(run_dir / "alignment.json"),
        "-s", "0", "0", "0", "-v", "dZ", "-i", "0.1", "0.1", "-c", "2", "-n", "2",
    ]
    with caplog.at_level(logging.INFO):
        assert fmt_main.main(argv) == 0
    assert "2 trajectory point arrays found in 2 events" in caplog.text
    assert "dz[1]=+0.1000" in caplog.text


def test_main_plots_without_scan(run_dir, monkeypatch):
    import fmt_alignment.plotting as fmt_plot

    seen = []
    monkeypatch.setattr(fmt_plot, "plot_traj_points", lambda frame, **kw: seen.append(frame))
    argv = [str(run_dir / "run.hipo"), "-C", str(run_dir / "alignment.json"), "-s", "0", "0", "0"]
    assert fmt_main.main(argv) == 0
    assert len(seen) == 1
    assert len(seen[0]) == 9
    assert sorted(seen[0]["layer"].unique().tolist()) == [0, 1, 2]


def test_main_bad_arguments(capsys):
    assert fmt_main.main(["run.txt"]) == 1
    assert "Usage" in capsys.readouterr().out


def test_main_requires_calibration_store(tmp_path):
    with pytest.raises(ValueError):
        fmt_main.main([str(tmp_path / "run.hipo")])


def test_run_extraction_keeps_groups_of_selected_labels():
    cfg = build_run_config(parse_args(["run.hipo", "-v", "dZ", "-i", "1", "1"]))
    planes = ReferencePlaneSet([30.0, 32.0, 34.0], [0.0, 0.0, 0.0])
    sets = fmt_main.build_shift_sets(cfg)
    results, _, _ = fmt_main.run_extraction(
        MemoryEventSource(_events(5)), cfg, planes, TrkSwim(0.0, 0.0, 0.0), sets, keep_groups=("nominal",),
    )
    assert len(results["nominal"]) == 5
    scanned = [res for label, res in results.items() if label != "nominal"]
    assert all(len(res) == 0 and res.n_groups == 5 for res in scanned)
    assert all(res.n_evaluated == 15 for res in scanned)


def test_main_warns_on_rows_without_first_layer(run_dir, monkeypatch, caplog):
    orphan = make_event(
        [traj_row(0, 2), traj_row(0, 3)],
        [particle_row(vx=0.0, vy=0.0, vz=0.0, px=0.15, py=0.2, pz=1.0)],
        [{"pindex": 0, "sector": 3}],
    )
    monkeypatch.setattr(fmt_main, "HipoEventSource", lambda path, max_events=None: MemoryEventSource([orphan]))
    argv = [
        str(run_dir / "run.hipo"), "-C", str(run_dir / "alignment.json"),
        "-s", "0", "0", "0", "-v", "dZ", "-i", "0.1", "0.1",
    ]
    assert fmt_main.main(argv) == 0
    assert "2 FMT rows were not preceded by a first-layer row" in caplog.text
