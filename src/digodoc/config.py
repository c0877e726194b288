"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments  (CLI flags such as --switch-prefix)
  2. Environment variables  (DIGODOC__SCAN__OBJINFO=false)
  3. digodoc.yaml           (searched in cwd, then the user config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CONFIG_DIR = platformdirs.user_config_dir("digodoc")
_DEFAULT_CACHE_PATH = str(Path("_digodoc") / "digodoc.state")
_DEFAULT_HTML_DIR = str(Path("_digodoc") / "html")


def _find_config_file() -> str | None:
    """Return the path of the first digodoc.yaml found, or None."""
    candidates = [
        Path("digodoc.yaml"),
        Path(_DEFAULT_CONFIG_DIR) / "digodoc.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ScanSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Attach modules to libraries by asking ocamlobjinfo which units an archive embeds.
    objinfo: bool = True
    objinfo_command: str = "ocamlobjinfo"


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = _DEFAULT_CACHE_PATH


class DocsSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    html_dir: str = _DEFAULT_HTML_DIR
    # argv prefix; the index export path and the html dir are appended
    generator: list[str] = []
    browser: str = "xdg-open"
    pager: str = "less"


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DIGODOC__CACHE__PATH=/tmp/state
        env_prefix="DIGODOC__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        extra="forbid",
    )

    switch_prefix: str | None = None
    scan: ScanSettings = ScanSettings()
    cache: CacheSettings = CacheSettings()
    docs: DocsSettings = DocsSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
