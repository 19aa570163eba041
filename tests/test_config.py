"""Tests for loading and saving the stash config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from skstash.config import config_path, load_config, save_config
from skstash.errors import ConfigError
from skstash.models import StashConfig


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / ".skstash"
    h.mkdir()
    return h


class TestStashConfig:
    def test_defaults(self):
        cfg = StashConfig(remote_root="/srv/stash", recipient="me@example.org")
        assert cfg.host is None
        assert cfg.identity_algorithm == "sha256"
        assert cfg.remote_python == "python3"
        assert cfg.compress_level == 6

    def test_root_must_be_absolute(self):
        with pytest.raises(ValidationError):
            StashConfig(remote_root="stash", recipient="me")

    def test_trailing_slash_stripped(self):
        assert StashConfig(remote_root="/srv/stash/", recipient="me").remote_root == "/srv/stash"

    def test_unknown_algorithm(self):
        with pytest.raises(ValidationError):
            StashConfig(remote_root="/srv", recipient="me", identity_algorithm="rot13")

    def test_compress_level_bounds(self):
        with pytest.raises(ValidationError):
            StashConfig(remote_root="/srv", recipient="me", compress_level=10)


class TestLoadSave:
    def test_roundtrip(self, home: Path):
        cfg = StashConfig(
            host="backup.lan",
            remote_root="/srv/stash",
            recipient="me@example.org",
            ssh_options=["-p", "2222"],
        )
        path = save_config(cfg, home)

        assert path == config_path(home)
        data = yaml.safe_load(path.read_text())
        assert data["host"] == "backup.lan"
        assert "origin" not in data
        assert load_config(home) == cfg

    def test_missing_file(self, home: Path):
        with pytest.raises(ConfigError, match="config init"):
            load_config(home)

    def test_bad_yaml(self, home: Path):
        (home / "config.yaml").write_text("host: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(home)

    def test_not_a_mapping(self, home: Path):
        (home / "config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(home)

    def test_missing_required_field(self, home: Path):
        (home / "config.yaml").write_text("host: backup.lan\n")
        with pytest.raises(ConfigError):
            load_config(home)
