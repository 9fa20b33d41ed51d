from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

LogFormat = Literal['text', 'json']


class Settings(BaseSettings):
    model_config = {
        'extra': 'ignore',
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
        'frozen': True,
    }

    GCLOUD_PROJECT: str | None = None

    SERVICE_NAME: str = 'monitor'
    SERVICE_VERSION: str = '0.1.0'
    LOG_LEVEL: str = 'WARNING'
    LOG_FORMAT: LogFormat = 'text'

    DEFAULT_LOOKBACK_SECONDS: int = Field(default=20 * 60, gt=0)
    REQUEST_TIMEOUT: float | None = Field(default=None, gt=0)

    @field_validator('LOG_FORMAT', mode='before')
    @classmethod
    def _normalize_log_format(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


settings = Settings()
