"""
Tests for archiver module.
"""
import pytest
from pathlib import Path
from conftest import Reply
from apprip.archiver import (
    ResourceArchiver, archive_bind, archive_name, archive_volume, build_bind_cmd, build_volume_cmd, is_control_plane,
)
from apprip.errors import ArchiveError
from apprip.types import Resource, ResourceKind

SKIP = ["/var/run", "/run", "/proc", "/sys"]


def test_build_volume_cmd():
    cmd = build_volume_cmd("app-data", Path("/tmp/w/volumes"))
    assert cmd[:3] == ["docker", "run", "--rm"]
    assert "app-data:/volume:ro" in cmd
    assert "/tmp/w/volumes:/backup" in cmd
    assert cmd[-7:] == ["busybox", "tar", "czf", f"/backup/{archive_name('app-data')}", "-C", "/volume", "."]


def test_build_bind_cmd_directory(tmp_path):
    cmd = build_bind_cmd(tmp_path, Path("/out/x.tar.gz"))
    assert cmd == ["tar", "czf", "/out/x.tar.gz", "-C", str(tmp_path), "."]


def test_build_bind_cmd_file(tmp_path):
    f = tmp_path / "app.conf"
    f.write_text("k=v")
    cmd = build_bind_cmd(f, Path("/out/x.tar.gz"))
    assert cmd == ["tar", "czf", "/out/x.tar.gz", "-C", str(tmp_path), "app.conf"]


@pytest.mark.parametrize("path,skipped", [
    ("/var/run/docker.sock", True),
    ("/run/secrets", True),
    ("/proc", True),
    ("/sys/fs/cgroup", True),
    ("/var/runner/data", False),
    ("/srv/app", False),
])
def test_is_control_plane(path, skipped):
    assert is_control_plane(path, SKIP) is skipped


def test_archive_volume(tmp_path, runner):
    out = archive_volume("pgdata", tmp_path, runner)
    assert out == tmp_path / archive_name("pgdata")
    assert out.is_file()


def test_archive_volume_failure(tmp_path, runner):
    runner.on("docker run", Reply(rc=125, stderr=b"Unable to find image 'busybox'"))
    with pytest.raises(ArchiveError, match="busybox"):
        archive_volume("pgdata", tmp_path, runner)


def test_archive_bind_missing_source(tmp_path, runner):
    with pytest.raises(ArchiveError, match="does not exist"):
        archive_bind(str(tmp_path / "gone"), tmp_path, runner)
    assert runner.calls == []


def _archiver(tmp_path, runner):
    vols, binds = tmp_path / "volumes", tmp_path / "binds"
    vols.mkdir()
    binds.mkdir()
    return ResourceArchiver(vols, binds, runner=runner, skip_prefixes=SKIP)


def test_dedup_shared_volume(tmp_path, runner):
    arch = _archiver(tmp_path, runner)
    first = arch.archive(Resource(ResourceKind.VOLUME, "shared-data"), "db")
    second_res = Resource(ResourceKind.VOLUME, "shared-data")
    second = arch.archive(second_res, "web")
    assert first == second
    assert second_res.artifact == first
    assert len(runner.lines("docker run")) == 1
    assert list(arch.volumes) == ["shared-data"]
    assert len(list((tmp_path / "volumes").iterdir())) == 1


def test_control_plane_bind_skipped(tmp_path, runner, caplog):
    caplog.set_level("INFO")
    arch = _archiver(tmp_path, runner)
    assert arch.archive(Resource(ResourceKind.BIND, "/var/run/docker.sock"), "web") is None
    assert arch.binds == {}
    assert runner.calls == []
    assert "Skipping system bind: /var/run/docker.sock" in caplog.text
    assert arch.skipped["/var/run/docker.sock"] == "control-plane path"


def test_failure_is_non_fatal(tmp_path, runner, caplog):
    runner.on("docker run", Reply(rc=1, stderr=b"no space left on device"))
    arch = _archiver(tmp_path, runner)
    assert arch.archive(Resource(ResourceKind.VOLUME, "big"), "db") is None
    assert arch.volumes == {}
    assert "Failed to backup volume big" in caplog.text
    assert arch.skipped["big"].startswith("archive failed")


def test_bind_directory_archived(tmp_path, runner):
    src = tmp_path / "srv" / "app"
    src.mkdir(parents=True)
    arch = _archiver(tmp_path, runner)
    out = arch.archive(Resource(ResourceKind.BIND, str(src)), "web")
    assert out == tmp_path / "binds" / archive_name(str(src))
    assert arch.binds == {str(src): out}


def test_archive_names_distinct_for_lookalike_paths():
    assert archive_name("/srv/app_data") != archive_name("/srv/app/data")
    assert archive_name("/srv/app_data").startswith("_srv_app_data-")
    assert archive_name("pgdata") == archive_name("pgdata")


def test_lookalike_binds_get_separate_archives(tmp_path, runner):
    a = tmp_path / "srv" / "app_data"
    b = tmp_path / "srv" / "app" / "data"
    a.mkdir(parents=True)
    b.mkdir(parents=True)
    arch = _archiver(tmp_path, runner)
    out_a = arch.archive(Resource(ResourceKind.BIND, str(a)), "one")
    out_b = arch.archive(Resource(ResourceKind.BIND, str(b)), "two")
    assert out_a != out_b
    assert out_a.is_file() and out_b.is_file()
    assert len(list((tmp_path / "binds").iterdir())) == 2
