from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class _Server(BaseSettings):
    """Server class to handle the server constant variables."""

    model_config = SettingsConfigDict(
        validate_default=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # "development" switches logging to colourised debug output
    ENVIRONMENT: str = "production"
    DEBUG: bool = False
    PORT: int = 5001

    # Database connection
    DB_HOST: str = "localhost"
    DB_NAME: str = "theoffice"
    DB_PORT: int = 5432
    DB_PASSWORD: str = ""
    DB_USER: str = "postgres"
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 10
    # seconds a single line query may run before it is cancelled
    QUERY_TIMEOUT: float = 5.0

    # front-end bundle, served as static files when the directory exists
    STATIC_DIR: Path = Path("../client/dist")

    # requests per client address, applied to every route
    RATE_LIMIT: str = "100 per 15 minutes"

    CORS_ORIGINS: list[str] = ["*"]
    CSP_CONNECT_SRC: list[str] = ["'self'", "https://www.theofficescript.com"]
    CSP_SCRIPT_SRC: list[str] = [
        "'self'",
        "www.googletagmanager.com",
        "www.google-analytics.com",
    ]

    # Google Analytics measurement protocol, disabled unless both are set
    GA_MEASUREMENT_ID: str | None = None
    GA_API_SECRET: str | None = None
    GA_ENDPOINT: str = "https://www.google-analytics.com/mp/collect"
    APP_NAME: str = "theofficescript"
    APP_VERSION: str = "1.0.0"

    LOG_FILE: Path | None = None

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


Server = _Server()
