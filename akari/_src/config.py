from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from akari._src.constants import ENVS_DIR, REGISTRY_FILE, SHIM_DIR
from akari._src.exceptions import AkariError


class Settings(BaseSettings):
    """akari settings, read from `AKARI_*` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AKARI_",
        case_sensitive=False,
        extra="ignore",
    )

    home: Path = Field(default_factory=lambda: Path.home() / ".akari")
    git: str = "git"
    branch: str = "main"
    remote_name: str = "origin"
    default_domain: str = "github.com"

    # identity recorded on snapshot commits, so that tagging works without
    # a global git config
    author_name: str = "akari"
    author_email: str = "akari@localhost"

    lock_timeout: float = 10.0
    log_level: str = "WARNING"

    @property
    def registry_path(self) -> Path:
        return self.home / REGISTRY_FILE

    @property
    def envs_dir(self) -> Path:
        return self.home / ENVS_DIR

    @property
    def shim_dir(self) -> Path:
        """Directory of the shims standing in for other environment tools"""
        return self.home / SHIM_DIR


def get_settings(**overrides) -> Settings:
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise AkariError(f"Invalid akari settings in the environment:\n{e}")
