"""Runtime settings (args/calhub.yaml, overridden by environment variables).

These are settings for the calhub process itself: where the shared account
document lives, where credentials are kept, and how the admin server and
device-code flows behave. The account document is a separate JSON file that
other tools read too; see calhub.accounts.config_store.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from calhub import ARGS_DIR, PROJECT_ROOT

logger = logging.getLogger(__name__)


CONFIG_FILE_ENV = "CALHUB_CONFIG_FILE"
DATA_DIR_ENV = "CALHUB_DATA_DIR"
ADMIN_TOKEN_ENV = "CALHUB_ADMIN_TOKEN"
ENCRYPTION_KEY_ENV = "CALHUB_ENCRYPTION_KEY"


# =============================================================================
# Settings models (args/calhub.yaml)
# =============================================================================

class PathsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    config_file: str = Field(default="data/appsettings.json")
    data_dir: str = Field(default="data")


class AdminConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)
    token: Optional[str] = None
    allowed_origins: list[str] = Field(default_factory=list)


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    device_code_wait_seconds: float = Field(default=30.0, gt=0)
    device_code_expires_in: int = Field(default=900, ge=1)


class CalhubSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    paths: PathsConfig = Field(default_factory=PathsConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @property
    def config_file(self) -> Path:
        return _resolve(os.environ.get(CONFIG_FILE_ENV) or self.paths.config_file)

    @property
    def data_dir(self) -> Path:
        return _resolve(os.environ.get(DATA_DIR_ENV) or self.paths.data_dir)

    @property
    def admin_token(self) -> str | None:
        return os.environ.get(ADMIN_TOKEN_ENV) or self.admin.token or None

    @property
    def encryption_key(self) -> str | None:
        return os.environ.get(ENCRYPTION_KEY_ENV) or None


def _resolve(path: str) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = PROJECT_ROOT / p
    return p


def load_settings(path: Path | None = None) -> CalhubSettings:
    """Load settings from YAML, falling back to defaults on any problem."""
    yaml_path = path or ARGS_DIR / "calhub.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return CalhubSettings.model_validate(raw.get("calhub", raw))
    except Exception as e:
        logger.warning(f"Settings validation failed for {yaml_path}: {e}, using defaults")
        return CalhubSettings()
