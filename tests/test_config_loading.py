import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from bunnysync.core import config as config_module


def test_load_config_creates_from_template(monkeypatch, tmp_path: Path):
    template = tmp_path / "config.yaml.example"
    target = tmp_path / "config.yaml"
    template.write_text(
        "\n".join(
            [
                "storage:",
                "  zone_name: tpl-zone",
                "  endpoint: https://ny.storage.bunnycdn.com",
                "sync:",
                "  local_root: /tmp/local_root",
                "  concurrency: 12",
                "logging:",
                "  level: DEBUG",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_TEMPLATE_PATH", template)
    monkeypatch.delenv(config_module.API_KEY_ENV, raising=False)

    cfg = config_module.load_config(target)

    assert target.exists()
    assert cfg.storage.zone_name == "tpl-zone"
    assert cfg.storage.endpoint == "https://ny.storage.bunnycdn.com"
    assert cfg.sync.local_root == "/tmp/local_root"
    assert cfg.sync.concurrency == 12
    assert cfg.storage.api_key == ""


def test_load_config_creates_defaults_when_template_missing(monkeypatch, tmp_path: Path):
    target = tmp_path / "config.yaml"
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_TEMPLATE_PATH", tmp_path / "missing-template.yaml")

    cfg = config_module.load_config(target)

    assert target.exists()
    assert cfg.sync.concurrency == 5
    assert cfg.sync.delete_remote is True
    assert cfg.sync.fetch_timeout_sec == 600
    assert cfg.storage.endpoint == "https://storage.bunnycdn.com"


def test_load_config_falls_back_when_template_invalid(monkeypatch, tmp_path: Path, caplog):
    template = tmp_path / "config.yaml.example"
    target = tmp_path / "config.yaml"
    template.write_text("storage: [invalid\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_TEMPLATE_PATH", template)

    with caplog.at_level(logging.WARNING, logger=config_module.__name__):
        cfg = config_module.load_config(target)

    assert target.exists()
    assert cfg.sync.size_only is False
    assert "config_template_invalid" in caplog.text


def test_api_key_comes_from_environment(monkeypatch, tmp_path: Path):
    target = tmp_path / "config.yaml"
    target.write_text("storage:\n  api_key: from-file\n", encoding="utf-8")
    monkeypatch.setenv(config_module.API_KEY_ENV, "from-env")

    assert config_module.load_config(target).storage.api_key == "from-env"
    assert config_module.load_config(target, apply_env=False).storage.api_key == "from-file"


def test_save_config_round_trips(tmp_path: Path):
    target = tmp_path / "nested" / "config.yaml"
    cfg = config_module.AppConfig()
    cfg.storage.zone_name = "saved-zone"
    cfg.sync.only_missing = True

    config_module.save_config(cfg, target)
    loaded = config_module.load_config(target, apply_env=False)

    assert loaded.storage.zone_name == "saved-zone"
    assert loaded.sync.only_missing is True


def test_concurrency_below_one_is_rejected(tmp_path: Path):
    target = tmp_path / "config.yaml"
    target.write_text("sync:\n  concurrency: 0\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        config_module.load_config(target)
