"""Tests for scripts/generate_report.py"""
import importlib.util
from contextlib import contextmanager
from pathlib import Path

import pytest

from tests.conftest import BASE_TS, make_event

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "generate_report.py"


@pytest.fixture
def script(db_session, monkeypatch):
    spec = importlib.util.spec_from_file_location("generate_report", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    @contextmanager
    def _session():
        yield db_session

    monkeypatch.setattr(module, "get_db_session", _session)
    return module


class TestGenerateReportScript:

    def test_writes_csv(self, script, db_session, tmp_path, capsys):
        make_event(db_session, id=1, timestamp=BASE_TS)

        assert script.main(["2025-03-05", "device-001", "--output", str(tmp_path)]) == 0

        path = tmp_path / "report_2025-03-05_device-001.csv"
        lines = path.read_text().splitlines()
        assert lines[0].startswith("Date,Device ID,Program Content Count")
        assert lines[1].endswith(",1,1")
        assert str(path) in capsys.readouterr().out

    def test_invalid_date_exit_code(self, script, tmp_path, capsys):
        assert script.main(["05/03/2025", "device-001", "--output", str(tmp_path)]) == 1
        assert "Invalid arguments" in capsys.readouterr().err
        assert list(tmp_path.iterdir()) == []
