from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    service_name: str = Field(default="service", alias="REQLOG_SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="REQLOG_LOG_LEVEL")
    max_caller_depth: int = Field(default=25, alias="REQLOG_MAX_CALLER_DEPTH")
    request_id_header: str = Field(default="X-Request-ID", alias="REQLOG_REQUEST_ID_HEADER")
    log_bodies: bool = Field(default=True, alias="REQLOG_LOG_BODIES")

    @field_validator("max_caller_depth")
    @classmethod
    def _positive_depth(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_caller_depth must be positive")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
