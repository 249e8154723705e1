from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are ChatGPT, a large language model trained by OpenAI. "
    "Follow the user's instructions carefully. Respond using markdown."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_env: str = "dev"
    log_level: str = "INFO"
    openai_api_host: str = Field(
        default="https://api.openai.com", validation_alias="OPENAI_API_HOST"
    )
    openai_api_type: str = Field(default="openai", validation_alias="OPENAI_API_TYPE")
    openai_api_version: str = Field(default="2023-05-15", validation_alias="OPENAI_API_VERSION")
    openai_organization: str | None = Field(default=None, validation_alias="OPENAI_ORGANIZATION")
    azure_deployment_id: str | None = Field(default=None, validation_alias="AZURE_DEPLOYMENT_ID")
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_api_max_tokens: int = Field(default=1000, validation_alias="OPENAI_API_MAX_TOKENS")
    openai_timeout_seconds: int = Field(default=30, validation_alias="OPENAI_TIMEOUT_SECONDS")
    default_system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT, validation_alias="DEFAULT_SYSTEM_PROMPT"
    )
    default_temperature: float = Field(default=1.0, validation_alias="DEFAULT_TEMPERATURE")
    retry_after_fallback_seconds: int = Field(
        default=10, validation_alias="RETRY_AFTER_FALLBACK_SECONDS"
    )
    cancel_debounce_seconds: float = Field(
        default=1.0, validation_alias="CANCEL_DEBOUNCE_SECONDS"
    )
    privacy_preview_chars: int = Field(default=16, validation_alias="PRIVACY_PREVIEW_CHARS")

    @field_validator("openai_api_type")
    @classmethod
    def _validate_api_type(cls, value: str) -> str:
        value = value.lower()
        if value not in {"openai", "azure"}:
            raise ValueError("OPENAI_API_TYPE must be one of: openai, azure")
        return value

    @field_validator("openai_api_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("openai_api_max_tokens")
    @classmethod
    def _max_tokens_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("OPENAI_API_MAX_TOKENS must be positive")
        return value

    @field_validator("default_temperature")
    @classmethod
    def _temperature_in_range(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("DEFAULT_TEMPERATURE must be between 0 and 2")
        return value

    @field_validator("retry_after_fallback_seconds", "privacy_preview_chars")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
