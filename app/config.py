"""Application configuration loaded from a YAML file and environment variables.

The YAML file is located through the ``CONFIG`` environment variable.  Any
value can be overridden with a ``PRISM_``-prefixed variable, using ``__`` to
reach nested keys (``PRISM_CONCOURSE__AUTH__PASSWORD``).  Unknown keys are
rejected so typos surface at startup instead of being silently ignored.
"""

import os

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_PATH_ENV = "CONFIG"
DEFAULT_PORT = 4580


class ConfigError(Exception):
    """Raised when the loaded configuration cannot start the service."""


class ConcourseAuthSettings(BaseModel):
    """Credentials for the Concourse password grant."""

    model_config = ConfigDict(extra="forbid")

    username: str = ""
    password: str = ""


class ConcourseSettings(BaseModel):
    """Location of the Concourse server and how to talk to it."""

    model_config = ConfigDict(extra="forbid")

    url: str = ""
    insecure_skip_verify: bool = False
    timeout_seconds: float = 30.0
    auth: ConcourseAuthSettings = ConcourseAuthSettings()

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class TLSSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    certificate: str = ""
    private_key: str = ""


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    tls: TLSSettings = TLSSettings()


class Settings(BaseSettings):
    """Application settings with YAML file, environment and .env loading."""

    model_config = SettingsConfigDict(
        env_prefix="PRISM_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",
    )

    app_name: str = "prism"
    debug: bool = False
    log_level: str = "INFO"

    concourse: ConcourseSettings = ConcourseSettings()
    server: ServerSettings = ServerSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_settings = YamlConfigSettingsSource(
            settings_cls,
            yaml_file=os.environ.get(CONFIG_PATH_ENV) or None,
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def missing_fields(self) -> list[str]:
        """Return the dotted names of required settings that are still empty."""
        missing = []
        if not self.concourse.url:
            missing.append("concourse.url")
        if not self.concourse.auth.username:
            missing.append("concourse.auth.username")
        if not self.concourse.auth.password:
            missing.append("concourse.auth.password")
        if self.server.tls.enabled:
            if not self.server.tls.certificate:
                missing.append("server.tls.certificate")
            if not self.server.tls.private_key:
                missing.append("server.tls.private_key")
        return missing

    def require_complete(self) -> None:
        """Raise ConfigError if any required setting is missing.

        Raises:
            ConfigError: Listing every missing setting.
        """
        config_path = os.environ.get(CONFIG_PATH_ENV)
        if config_path and not os.path.isfile(config_path):
            raise ConfigError(f"config file {config_path!r} does not exist")

        missing = self.missing_fields()
        if missing:
            raise ConfigError(f"missing required settings: {', '.join(missing)}")


settings = Settings()
