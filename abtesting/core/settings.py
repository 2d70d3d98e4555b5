from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service configuration, read from the environment and an optional .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = Field(default="sqlite:///./abtesting.db")

    # Bearer tokens accepted by the API
    TOKENS: List[str] = Field(default_factory=list, alias="API_TOKENS")

    LOG_LEVEL: str = "INFO"

    # Upper bound on a single store round trip; exceeding it is a StoreUnavailable
    STORE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    DEFINITION_CACHE_TTL_SECONDS: float = Field(default=30.0, ge=0)
    SESSION_CACHE_TTL_SECONDS: float = Field(default=60.0, ge=0)
    CACHE_MAX_ENTRIES: int = Field(default=10_000, ge=1)


config_settings = Settings()
