"""
Tests for configuration loading and validation.
"""
import pytest
from pathlib import Path

from apprip.config import DEFAULT_SKIP_BIND_PREFIXES, build_repository, find_config, load_config
from apprip.errors import ConfigError


def test_load_config_basic(temp_config_file, tmp_path):
    config = load_config(temp_config_file)

    assert config.pbs_repository == "backup@pbs!apprip@pbs.example.net:8007:apps"
    assert config.pbs_password == "s3cret-token"
    assert config.pbs_keyfile == tmp_path / "pbs.key"
    assert config.work_dir == tmp_path / "work"
    assert config.include_root is True
    assert config.dump_attempts == 2
    assert config.dump_retry_delay == 1.0
    assert config.log_level == "DEBUG"
    assert config.log_dir is None
    assert config.lock_file == tmp_path / "apprip.lock"


def test_config_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PBS_PASSWORD", raising=False)
    p = tmp_path / "apprip.toml"
    p.write_text('[pbs]\nrepository = "root@pam@pbs:store"\n')

    config = load_config(p)

    assert config.pbs_repository == "root@pam@pbs:store"
    assert config.pbs_password is None
    assert config.pbs_client == "proxmox-backup-client"
    assert config.archive_name == "apps.pxar"
    assert config.include_root is False
    assert config.docker == "docker"
    assert config.helper_image == "busybox"
    assert config.skip_bind_prefixes == DEFAULT_SKIP_BIND_PREFIXES
    assert config.dump_attempts == 3
    assert config.dump_retry_delay == 5
    assert config.redis_timeout == 60
    assert config.log_dir == Path("/var/log/apprip")


def test_password_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("PBS_PASSWORD", "from-env")
    p = tmp_path / "apprip.toml"
    p.write_text('[pbs]\nrepository = "r"\n')
    assert load_config(p).pbs_password == "from-env"


def test_build_repository():
    assert build_repository({"server": "pbs", "datastore": "ds"}) == "pbs:8007:ds"
    assert build_repository({"server": "pbs", "datastore": "ds", "token_user": "u@pbs",
                             "token_name": "t", "port": 8008}) == "u@pbs!t@pbs:8008:ds"
    assert build_repository({}) == ""


def test_invalid_numbers(tmp_path):
    p = tmp_path / "apprip.toml"
    p.write_text('[databases]\nmax_attempts = "many"\n')
    with pytest.raises(ConfigError):
        load_config(p)
    p.write_text('[databases]\nmax_attempts = 0\n')
    with pytest.raises(ConfigError):
        load_config(p)


def test_find_config_explicit_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_config(str(tmp_path / "nope.toml"))


def test_find_config_explicit(temp_config_file):
    assert find_config(str(temp_config_file)) == temp_config_file
