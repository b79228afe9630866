import numpy as np
import pandas as pd
import pytest

from fmt_alignment.banks import (
    PARTICLE_BANK,
    TRACK_BANK,
    TRAJ_BANK,
    HipoEventSource,
    MemoryEventSource,
    RowTable,
    _unpack_event,
    get_bank,
)


def test_row_table_typed_access():
    frame = pd.DataFrame({
        "pindex": np.array([0, 3], dtype=np.int16),
        "layer": np.array([1, 2], dtype=np.int8),
        "px": np.array([0.25, -1.5], dtype=np.float32),
    })
    bank = RowTable(frame, TRAJ_BANK)
    assert bank.rows() == len(bank) == 2
    assert bank.get_short("pindex", 1) == 3
    assert bank.get_byte("layer", 0) == 1
    value = bank.get_float("px", 1)
    assert isinstance(value, float) and value == -1.5
    assert isinstance(bank.get_int("pindex", 0), int)


def test_row_table_errors():
    bank = RowTable(pd.DataFrame({"a": [1]}), "X")
    with pytest.raises(KeyError):
        bank.get_byte("b", 0)
    with pytest.raises(IndexError):
        bank.get_byte("a", 1)
    with pytest.raises(IndexError):
        bank.get_byte("a", -1)


def test_get_bank():
    event = {TRAJ_BANK: pd.DataFrame({"layer": [1]}), TRACK_BANK: pd.DataFrame({"sector": []})}
    assert isinstance(get_bank(event, TRAJ_BANK), RowTable)
    assert get_bank(event, TRACK_BANK) is None
    assert get_bank(event, PARTICLE_BANK) is None


def test_memory_event_source_limit():
    events = [{} for _ in range(5)]
    assert len(list(MemoryEventSource(events))) == 5
    assert len(list(MemoryEventSource(events, max_events=2))) == 2
    assert len(list(MemoryEventSource(events, max_events=0))) == 0


def test_unpack_event():
    batch = {
        "REC::Traj_pindex": [[0, 0], [1]],
        "REC::Traj_detector": [[8, 8], [6]],
        "REC::Traj_layer": [[1, 2], [3]],
        "REC::Track_pindex": [[0], []],
        "REC::Track_sector": [[2], []],
    }
    event = _unpack_event(batch, 0)
    assert set(event) == {TRAJ_BANK, TRACK_BANK}
    assert event[TRAJ_BANK]["layer"].tolist() == [1, 2]
    second = _unpack_event(batch, 1)
    assert get_bank(second, TRACK_BANK) is None


def test_hipo_source_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(HipoEventSource(tmp_path / "missing.hipo"))
