import pytest

from jsondoc.storage.errors import ContractViolation
from scripts.bootstrap_collections import bootstrap_collections, main


def test_bootstrap_memory_store(capsys):
    results = bootstrap_collections(["users", "orders"])

    assert [r["name"] for r in results] == ["users", "orders"]
    assert all(r["status"] == "ready" for r in results)
    assert "Collection users ready" in capsys.readouterr().out


def test_dry_run_validates_names():
    assert bootstrap_collections(["users"], dry_run=True)[0]["status"] == "dry_run"

    with pytest.raises(ContractViolation):
        bootstrap_collections(["bad name"], dry_run=True)


def test_main_without_collections_exits(monkeypatch):
    monkeypatch.setattr("sys.argv", ["bootstrap_collections.py"])
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        main()

    assert excinfo.value.code == 1


def test_main_reports_invalid_name(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["bootstrap_collections.py", "users", "1bad"])
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit):
        main()

    assert "Error:" in capsys.readouterr().out
