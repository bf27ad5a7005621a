"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (ZENCACHE__CACHE__VERSION=calmexec-v2)
  2. zencache.yaml          (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have defaults. Bumping
``cache.version`` on deploy is what makes activation discard older buckets.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from zencache.urls import origin_of

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("zencache")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")

DEFAULT_MANIFEST: tuple[str, ...] = (
    "./",
    "./index.html",
    "./index.tsx",
    "./manifest.json",
)

DEFAULT_LIBRARY_ORIGINS: tuple[str, ...] = (
    "https://cdn.tailwindcss.com",
    "https://esm.sh",
    "https://aistudiocdn.com",
    "https://fonts.googleapis.com",
    "https://fonts.gstatic.com",
)


def _find_config_file() -> str | None:
    """Return the path of the first zencache.yaml found, or None."""
    candidates = [
        Path("zencache.yaml"),
        Path(platformdirs.user_config_dir("zencache")) / "zencache.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8080
    # Deployment root the proxy forwards to
    upstream_url: str = "http://127.0.0.1:3000/"


class CacheSettings(BaseModel):
    version: str = "calmexec-v1"
    db_path: str = _DEFAULT_DB_PATH


class RoutingSettings(BaseModel):
    # Base that relative manifest entries resolve against. None follows
    # server.upstream_url; empty means "not attached yet" and only disables
    # manifest matching.
    deployment_root: str | None = None
    manifest: tuple[str, ...] = DEFAULT_MANIFEST
    library_origins: tuple[str, ...] = DEFAULT_LIBRARY_ORIGINS
    api_prefix: str = "/api/"
    streaming_segment: str = "/analysis/stream"
    static_extensions: tuple[str, ...] = (".js", ".mjs", ".jsx", ".ts", ".tsx")


class FetcherSettings(BaseModel):
    # None means no timeout: a hung fetch only stalls its own request
    timeout_seconds: float | None = None
    user_agent: str = "zencache/1.0"
    max_connections: int = 20
    max_keepalive_connections: int = 10


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: ZENCACHE__SERVER__PORT=9090
        env_prefix="ZENCACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    routing: RoutingSettings = RoutingSettings()
    fetcher: FetcherSettings = FetcherSettings()
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

    @model_validator(mode="after")
    def _align_deployment_root(self) -> Settings:
        """The proxy and the classifier must agree on one deployment root."""
        upstream_url = self.server.upstream_url
        deployment_root = self.routing.deployment_root
        if deployment_root is None:
            self.routing = self.routing.model_copy(update={"deployment_root": upstream_url})
        elif origin_of(deployment_root) != origin_of(upstream_url):
            raise ValueError(
                f"routing.deployment_root {deployment_root!r} is not on the origin of "
                f"server.upstream_url {upstream_url!r}"
            )
        return self
