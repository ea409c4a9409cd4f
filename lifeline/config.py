import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    lifeline_host: str = "0.0.0.0"
    lifeline_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/lifeline.db"

    # Auth
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days
    admin_user_ids: str = ""  # Comma-separated user IDs with admin access

    # Screenshot enforcement
    three_strike_limit: int = 3

    # Content ledger
    ledger_mode: str = "simulated"  # simulated | http
    ledger_url: str = ""
    ledger_network: str = "Polygon"
    ledger_timeout_seconds: float = 5.0

    # Watermarks
    watermark_secret: str = "dev-watermark-secret-change-in-production"

    # Consent (NDA)
    consent_minimum_read_seconds: int = 30
    consent_default_version: str = "1.0"
    biometric_signing_secret: str = ""  # HMAC key shared with the mobile attestation relay

    # Account / subscription management
    account_service_mode: str = "simulated"  # simulated | http
    account_service_url: str = ""
    account_service_timeout_seconds: float = 5.0

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def admin_ids(self) -> set[str]:
        return {uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip()}


settings = Settings()

_logger = logging.getLogger("lifeline.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "dev-watermark-secret-change-in-production",
    "change-me-to-a-random-string",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    for name, value in (
        ("JWT_SECRET_KEY", cfg.jwt_secret_key),
        ("WATERMARK_SECRET", cfg.watermark_secret),
    ):
        if value not in _INSECURE_SECRETS:
            continue
        if is_prod:
            raise RuntimeError(
                f"FATAL: {name} is set to an insecure default. "
                f"Set a strong random secret via the {name} environment variable before deploying to production."
            )
        warnings.warn(
            f"{name} is set to the default insecure value. "
            f"Set a strong random secret via the {name} environment variable for production.",
            stacklevel=1,
        )

    if cfg.ledger_mode == "http" and not cfg.ledger_url:
        if is_prod:
            raise RuntimeError("FATAL: LEDGER_MODE=http requires LEDGER_URL to be set.")
        _logger.warning("LEDGER_MODE=http without LEDGER_URL; anchoring will always degrade to pending.")

    if cfg.account_service_mode == "http" and not cfg.account_service_url:
        if is_prod:
            raise RuntimeError("FATAL: ACCOUNT_SERVICE_MODE=http requires ACCOUNT_SERVICE_URL to be set.")
        _logger.warning("ACCOUNT_SERVICE_MODE=http without ACCOUNT_SERVICE_URL; notifications will fail.")

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )
