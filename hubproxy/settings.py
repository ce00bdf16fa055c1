from enum import Enum

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormats(str, Enum):
    JSON = "json"
    CONSOLE = "console"


class GeneralConfig(BaseSettings):
    VERSION: str = "dev"
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""


class ServerConfig(BaseSettings):
    LISTEN: str = "0.0.0.0"
    PORT: int = 18826
    IDLE_TIMEOUT: int = 120


class LogConfig(BaseSettings):
    LOG_LEVEL: str = "info"
    LOG_FORMAT: LogFormats = LogFormats.CONSOLE


class UpstreamConfig(BaseSettings):
    UPSTREAM_SCHEME: str = "https"
    UPSTREAM_REGISTRY_HOST: str = "registry-1.docker.io"
    UPSTREAM_AUTH_REALM: str = "https://auth.docker.io/token"
    """Token realm used by /auth/token before any challenge has been seen"""

    REGISTRY_PATH_PREFIX: str = "/v2"
    UPSTREAM_TIMEOUT: float = 30.0
    TOKEN_TTL_SECONDS: float = 300.0
    MAX_REDIRECTS: int = 10
    BODY_SPOOL_MAX_MEMORY: int = 8 * 1024 * 1024


class DisguiseConfig(BaseSettings):
    DISGUISE: str = "www.bing.com"
    DISGUISE_SCHEME: str = "https"

    @computed_field
    @property
    def DISGUISE_URL(self) -> str:
        return f"{self.DISGUISE_SCHEME}://{self.DISGUISE}"


class Settings(
    GeneralConfig,
    ServerConfig,
    LogConfig,
    UpstreamConfig,
    DisguiseConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_prefix="HUBP_",
        env_file=".env",
        extra="allow",
    )


settings = Settings()
