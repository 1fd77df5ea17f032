from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

API_KEY_ENV = "BCDN_APIKEY"
HOME_ENV = "BUNNYSYNC_HOME"

logger = logging.getLogger(__name__)


class StorageConfig(BaseModel):
    zone_name: str = ""
    # Prefer the BCDN_APIKEY environment variable over storing the key here.
    api_key: str = ""
    # Regional hosts (e.g. https://ny.storage.bunnycdn.com) are accepted too.
    endpoint: str = "https://storage.bunnycdn.com"
    timeout_sec: int = Field(default=60, ge=1, le=3600)


class SyncConfig(BaseModel):
    local_root: str = ""
    # Remote directory the local root maps onto; empty means the zone root.
    sync_path: str = ""
    dry_run: bool = False
    # Compare by size instead of SHA-256. Same-length edits go unnoticed.
    size_only: bool = False
    # Upload files missing remotely, never touch existing ones.
    only_missing: bool = False
    delete_remote: bool = True
    concurrency: int = Field(default=5, ge=1, le=256)
    fetch_workers: int = Field(default=8, ge=1, le=64)
    fetch_timeout_sec: int = Field(default=600, ge=1, le=86400)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    # Empty means console only.
    file: str = ""


class AppConfig(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


PROJECT_ROOT = Path(os.environ.get(HOME_ENV) or "~/.bunnysync").expanduser()
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"
DEFAULT_CONFIG_TEMPLATE_PATH = PROJECT_ROOT / "config.yaml.example"


def ensure_runtime_dirs(cfg: AppConfig):
    if cfg.logging.file:
        Path(cfg.logging.file).expanduser().parent.mkdir(parents=True, exist_ok=True)


def apply_env_overrides(cfg: AppConfig) -> AppConfig:
    api_key = (os.environ.get(API_KEY_ENV) or "").strip()
    if api_key:
        cfg.storage.api_key = api_key
    return cfg


def load_config(path: Path = DEFAULT_CONFIG_PATH, apply_env: bool = True) -> AppConfig:
    import yaml

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        if DEFAULT_CONFIG_TEMPLATE_PATH.exists():
            try:
                template_text = DEFAULT_CONFIG_TEMPLATE_PATH.read_text(encoding="utf-8")
                data = yaml.safe_load(template_text) or {}
                cfg = AppConfig.model_validate(data)
                path.write_text(template_text, encoding="utf-8")
            except Exception as e:
                logger.warning(
                    "config_template_invalid %s",
                    json.dumps({"template": str(DEFAULT_CONFIG_TEMPLATE_PATH), "error": str(e)}, ensure_ascii=False),
                )
                cfg = AppConfig()
                path.write_text(yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False), encoding="utf-8")
        else:
            cfg = AppConfig()
            path.write_text(yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False), encoding="utf-8")
        ensure_runtime_dirs(cfg)
        return apply_env_overrides(cfg) if apply_env else cfg

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    cfg = AppConfig.model_validate(data)
    ensure_runtime_dirs(cfg)
    return apply_env_overrides(cfg) if apply_env else cfg


def save_config(cfg: AppConfig, path: Path = DEFAULT_CONFIG_PATH):
    import yaml

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False), encoding="utf-8")
