"""Configuration helpers for the MyRSSPress backend."""

from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LOCALES = ("en", "ja")
DEFAULT_LOCALE = "en"

LANGUAGE_JP = "JP"
LANGUAGE_EN = "EN"

PRODUCTION_ORIGINS = [
    "https://my-rss-press.com",
    "https://www.my-rss-press.com",
]
DEVELOPMENT_ORIGINS = ["http://localhost:3000"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = Field(
        "development", description="Deployment environment name (development/production)."
    )
    aws_region: str = Field("ap-northeast-1", alias="AWS_REGION")
    dynamodb_table: str = Field(
        "newspapers-local", description="Single table holding every record type."
    )
    dynamodb_endpoint: str | None = Field(
        None, description="Override endpoint, e.g. http://localhost:8000 for DynamoDB Local."
    )
    enable_cache: bool = Field(True, description="Cache feed suggestions per theme/locale.")
    use_mock_ai: bool = Field(
        False, description="Return deterministic local output instead of calling the LLM."
    )

    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    editor_model: str = Field(
        "gpt-4.1-mini", description="Model for feed suggestions and editorial columns."
    )
    scoring_model: str = Field(
        "gpt-4.1-nano",
        description="Model for importance scoring, relevance filtering and summaries.",
    )
    max_tokens: int = Field(2000, description="Max output tokens per model call.")
    temperature: float = Field(0.3, description="Generation temperature.")

    admin_api_key_secret_name: str = Field(
        "myrsspress/admin-api-key",
        description="Secrets Manager secret holding {\"apiKey\": ...}.",
    )
    admin_api_key: str | None = Field(
        None,
        alias="ADMIN_API_KEY",
        description="Local override for the admin key; skips Secrets Manager when set.",
    )
    newspaper_timezone: str = Field(
        "Asia/Tokyo", description="Timezone used for date windows and retention."
    )
    retention_days: int = Field(7, description="Historical newspapers kept this many days.")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_local(self) -> bool:
        return bool(self.dynamodb_endpoint)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.newspaper_timezone)


def get_settings() -> Settings:
    """Return a settings instance read from the current environment."""
    return Settings()
