import json

import pandas as pd
import pytest

import main

from tests.conftest import FakeBackend


@pytest.fixture
def cli(make_orchestrator, monkeypatch):
    def _cli(backend):
        orchestrator = make_orchestrator(backend)
        monkeypatch.setattr(main, "build_orchestrator", lambda: orchestrator)
        monkeypatch.setattr(main, "setup_logging", lambda: None)
        return orchestrator

    return _cli


def test_crawl_command_exports_csv(cli, backend, tmp_path, capsys):
    cli(backend)
    csv_path = tmp_path / "out" / "d1.csv"

    assert main.main(["crawl", "d1", "--csv", str(csv_path)]) == 0
    assert "3 vehicles" in capsys.readouterr().out

    rows = pd.read_csv(csv_path, keep_default_na=False).to_dict(orient="records")
    assert [row["make"] for row in rows] == ["Toyota", "Honda", "Ford"]
    assert "imageUrl" in rows[0]


def test_crawl_command_reports_failures(cli, capsys):
    cli(FakeBackend(api_key=None))
    assert main.main(["crawl", "d1"]) == 1
    assert "ConfigurationError" in capsys.readouterr().out

    assert main.main(["crawl", "d2"]) == 1
    assert "DealerMisconfigured" in capsys.readouterr().out


def test_results_command(cli, backend, capsys):
    cli(backend)
    main.main(["crawl", "d1"])
    main.main(["crawl", "d1"])
    capsys.readouterr()

    assert main.main(["results", "d1"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 2

    assert main.main(["results", "d1", "--latest"]) == 0
    latest = json.loads(capsys.readouterr().out)
    assert len(latest) == 1
    assert latest[0]["metadata"]["totalFound"] == 3
