"""
Tests for scripts/approval_cli.py -- operator commands end to end against
a throwaway SQLite file.
"""

import importlib.util
import json
from pathlib import Path

import pytest

from approval_kernel.db.engine import reset_engine

CLI_PATH = Path(__file__).resolve().parents[2] / "scripts" / "approval_cli.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("approval_cli", CLI_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def run(cli, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'cli.db'}"

    def _run(*argv):
        try:
            code = cli.main(["--database-url", url, *argv])
        finally:
            reset_engine()
        return code, json.loads(capsys.readouterr().out)

    return _run


def test_init_seed_sweep(run):
    code, out = run("init-db")
    assert code == 0
    assert out["status"] == "ok"

    code, out = run("seed-workflows")
    assert code == 0
    assert sorted(w["entity_type"] for w in out["registered"]) == [
        "goods_receipt", "purchase_order", "purchase_requisition", "supplier_registration",
    ]

    code, out = run("seed-workflows")
    assert out["registered"] == []

    code, out = run("sweep")
    assert code == 0
    assert out["processed_count"] == 0
    assert out["failed_request_ids"] == []


def test_unusable_database_url(cli, capsys):
    assert cli.main(["--database-url", "nosuchdialect://x", "init-db"]) == 1
    assert "ERROR" in capsys.readouterr().err


def test_command_required(cli):
    with pytest.raises(SystemExit):
        cli.main([])
