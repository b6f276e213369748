from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    DB_CREATE_TABLES: bool = True
    PROJECT_NAME: str = "SecurBank Payments API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"  # "development" disables Secure cookies
    ALLOWED_ORIGINS: list[str] = ["https://localhost:8080"]
    HTTPS_ONLY: bool = False
    TRUST_PROXY_HEADERS: bool = False
    MAX_REQUEST_BODY_BYTES: int = 100 * 1024

    # Logging configuration
    LOG_MAX_FILES: int = 5
    LOG_MAX_SIZE_MB: int = 5
    LOG_EXCLUDED_PATHS: list[str] = [
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]
    LOG_LEVEL: str = "INFO"

    # Session configuration
    SESSION_COOKIE_NAME: str = "sid"
    SESSION_TTL_MINUTES: int = 60

    # CSRF configuration (double-submit cookie, token signed as a JWT)
    CSRF_SECRET_KEY: str  # Required, generate with: openssl rand -hex 32
    CSRF_ALGORITHM: str = "HS256"
    CSRF_COOKIE_NAME: str = "csrf_token"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"
    CSRF_TOKEN_EXPIRY_MINUTES: int = 60

    # Per-identity login lockout
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_WINDOW_SECONDS: int = 900

    # Per-IP request budgets
    AUTH_RATE_LIMIT_REQUESTS: int = 20
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 60
    GLOBAL_RATE_LIMIT_REQUESTS: int = 100
    GLOBAL_RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_EXEMPT_PATHS: list[str] = ["/docs", "/redoc", "/openapi.json"]

    # Employee provisioned at startup when all three are set
    BOOTSTRAP_EMPLOYEE_NUMBER: str | None = None
    BOOTSTRAP_EMPLOYEE_NAME: str | None = None
    BOOTSTRAP_EMPLOYEE_PASSWORD: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def COOKIE_SECURE(self) -> bool:
        return self.ENVIRONMENT.lower() != "development"


settings = Settings()
