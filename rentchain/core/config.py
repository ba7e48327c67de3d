from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "RentChain Booking API"
    # Comma-separated origins for CORS (e.g. https://rentchain.ma,https://admin.rentchain.ma). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Booking negotiation
    NEGOTIATION_TTL_HOURS: int = 24
    PLATFORM_FEE_PERCENT: int = 10  # kept from guest refunds on resolved reclamations

    @field_validator("PLATFORM_FEE_PERCENT")
    @classmethod
    def fee_in_range(cls, v: int) -> int:
        if not 0 <= v < 100:
            raise ValueError("PLATFORM_FEE_PERCENT must be between 0 and 99")
        return v

    # Reclamation uploads
    RECLAMATION_UPLOAD_DIR: str = "./data/reclamations"
    RECLAMATION_MAX_FILES: int = 5

    # Settlement layer (escrow payout on checkout confirmation)
    SETTLEMENT_API_URL: str = "http://localhost:8545/api"
    SETTLEMENT_API_KEY: str = ""
    SETTLEMENT_TIMEOUT_SECONDS: int = 20
    SETTLEMENT_MAX_ATTEMPTS: int = 10
    SETTLEMENT_CLAIM_TIMEOUT_SECONDS: int = 300  # a "sending" claim older than this is picked up again
    SETTLEMENT_SANDBOX: bool = False  # If True, skip the real call and return a mock tx hash (for dev without a chain node)


settings = Settings()
