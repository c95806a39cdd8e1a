"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load secret fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./north.db"
    DATABASE_TIMEOUT_SECONDS: int = 10

    # Plaid credentials (Link + transactions)
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = "sandbox"
    PLAID_WEBHOOK_URL: str = ""
    PLAID_COUNTRY_CODES: str = "US,CA"
    PROVIDER_TIMEOUT_SECONDS: int = 10

    # Auth
    JWT_SECRET: str = ""
    JWT_EXPIRES_HOURS: int = 24

    # Fernet key used to encrypt access tokens at rest
    TOKEN_ENCRYPTION_KEY: str = ""

    # Transaction sync window
    TRANSACTION_HISTORY_DAYS: int = 90
    TRANSACTION_SYNC_OVERLAP_DAYS: int = 7

    # Insights
    INSIGHT_MIN_TRANSACTIONS: int = 3

    @field_validator("PLAID_ENVIRONMENT", mode="before")
    @classmethod
    def validate_plaid_environment(cls, v: str) -> str:
        """Normalize PLAID_ENVIRONMENT and reject deprecated/unknown hosts."""
        valid = {"sandbox", "production"}
        if v.lower() not in valid:
            raise ValueError(f"PLAID_ENVIRONMENT must be one of {valid}, got {v!r}")
        return v.lower()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @property
    def plaid_country_codes(self) -> list[str]:
        """PLAID_COUNTRY_CODES as a list of upper-case ISO codes."""
        return [c.strip().upper() for c in self.PLAID_COUNTRY_CODES.split(",") if c.strip()]

    @property
    def cors_origins(self) -> list[str]:
        """CORS_ORIGINS as a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated


settings = Settings()
