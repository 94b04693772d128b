"""CLI settings.

The library takes explicit arguments; only the command line reads the
environment, through pydantic-settings (``SQLITE_OTEL_FORMULA_*``).
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

from .schema import AcquisitionStrategy


def default_prefix() -> Path:
    return Path.home() / ".local" / "share" / "sqlite-otel-formula"


class FormulaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SQLITE_OTEL_FORMULA_", extra="ignore")

    prefix: Path = Field(default_factory=default_prefix)
    manifest: Path | None = None
    strategy: AcquisitionStrategy = AcquisitionStrategy.RELEASE
    http_timeout_seconds: float = 300.0
