from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    database_url: str = "sqlite:///./data/workspace_booking.db"

    # Bearer tokens are issued by the external identity provider. For an
    # OIDC provider put its public key here and switch the algorithm to RS256.
    jwt_secret_key: str = "secure-secret-key-1234567890"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None
    jwt_issuer: Optional[str] = None
    access_token_expire_minutes: int = 30

    log_level: str = "INFO"

    no_show_sweep_enabled: bool = True
    no_show_sweep_interval_minutes: int = 5
    no_show_grace_minutes: int = 120

    checkin_window_enforced: bool = True
    checkin_early_minutes: int = 30
    checkin_late_minutes: int = 60

    model_config = SettingsConfigDict(env_prefix="WORKSPACE_BOOKING_", env_file=".env")


settings = Settings()
