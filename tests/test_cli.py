"""
Tests for the command-line interface (no root, no sink).
"""
import pytest
from apprip import cli
from apprip.catalog import begin
from apprip.types import EngineKind


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)


def test_restore_requires_snapshot_or_dir(capsys):
    with pytest.raises(SystemExit):
        cli.main(["restore"])
    assert "snapshot path or --from-dir" in capsys.readouterr().out


def test_restore_rejects_relative_bind(tmp_path, capsys):
    with pytest.raises(SystemExit):
        cli.main(["restore", "--from-dir", str(tmp_path), "--bind", "srv/web"])
    assert "absolute host path" in capsys.readouterr().out


def test_missing_config(tmp_path, capsys):
    rc = cli.main(["--config", str(tmp_path / "nope.toml"), "restore", "--from-dir", str(tmp_path)])
    assert rc == 1
    assert "does not exist" in capsys.readouterr().out


def test_restore_from_dir(temp_config_file, tmp_path, capsys):
    b = begin(hostname="h")
    b.add_workload("db", "postgres:16", [], [], {}, EngineKind.POSTGRES)
    b.finalize(tmp_path / "metadata.json")
    rc = cli.main(["--config", str(temp_config_file), "restore", "--from-dir", str(tmp_path)])
    assert rc == 0
    out = capsys.readouterr().out
    assert "MISSING postgres dump (db)" in out


def test_backup_requires_subcommand():
    with pytest.raises(SystemExit):
        cli.main([])
