# pagebot/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # Store
    # "memory"   - process-local dict (dev, tests)
    # "postgres" - kv_store table via asyncpg
    store_backend: Literal["memory", "postgres"] = "memory"
    database_url: str | None = None
    pg_pool_min: int = 2
    pg_pool_max: int = 10

    # Campaign counters
    # True  - impressions/conversions are incremented through the store's atomic update
    # False - legacy read-modify-write (concurrent referrals may lose an increment)
    atomic_campaign_counters: bool = True

    # Messenger Platform (Graph API)
    graph_api_base_url: str = "https://graph.facebook.com"
    graph_api_version: str = "v18.0"
    default_verify_token: str = "my_verify_token"  # Used when api:settings has no facebookVerifyToken
    send_timeout_seconds: float = 25.0

    # LLM provider (OpenAI-compatible chat completions)
    openai_base_url: str = "https://api.openai.com"
    openai_default_model: str = "gpt-3.5-turbo"
    openai_default_temperature: float = 0.7
    openai_timeout_seconds: float = 30.0

    # Security
    admin_token: str | None = None
    allowed_origins: list[str] = ["*"]

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        required_fields = [
            ("admin_token", self.admin_token),
        ]
        if self.store_backend == "postgres":
            required_fields.append(("database_url", self.database_url))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    if s.is_production and s.store_backend == "memory":
        warnings.append("prod: store_backend=memory (campaigns and sessions are lost on restart).")

    if s.store_backend == "postgres" and not s.database_url:
        warnings.append("store_backend=postgres but database_url is not set.")

    if not s.atomic_campaign_counters:
        warnings.append(
            "atomic_campaign_counters=False: concurrent referrals for the same campaign can lose increments."
        )

    if not s.admin_token:
        warnings.append("admin_token is not set (admin endpoints will answer 503).")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
