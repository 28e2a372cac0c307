import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Process-wide configuration read from the environment (and .env if present).

    Secrets have no fallback values. Code that needs one calls ``require()`` so a
    missing key fails the operation instead of silently using a default.
    """

    def __init__(self):
        # --- Database ---
        db_user = os.getenv("POSTGRES_USER", "postgres")
        db_password = os.getenv("POSTGRES_PASSWORD", "postgres")
        db_host = os.getenv("POSTGRES_HOST", "localhost")
        db_port = os.getenv("POSTGRES_PORT", "5432")
        db_name = os.getenv("POSTGRES_DB", "ergiva")
        self.database_url = os.getenv(
            "DATABASE_URL",
            f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}",
        )
        self.db_timeout_seconds = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))
        self.db_echo = _flag("DB_ECHO")

        # --- HTTP surface ---
        self.api_prefix = os.getenv("API_PREFIX", "/api")
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        self.backend_url = os.getenv("BACKEND_URL", "http://localhost:5000").rstrip("/")

        # --- Auth ---
        self.jwt_secret_key = os.getenv("JWT_SECRET_KEY", "")
        self.jwt_expire_minutes = int(os.getenv("JWT_EXPIRE_MINUTES", str(60 * 24 * 7)))

        # --- Payment gateway ---
        self.payment_gateway = os.getenv("PAYMENT_GATEWAY", "instamojo").lower()
        self.instamojo_base_url = os.getenv(
            "INSTAMOJO_BASE_URL", "https://www.instamojo.com/api/1.1"
        ).rstrip("/")
        self.instamojo_api_key = os.getenv("INSTAMOJO_API_KEY", "")
        self.instamojo_auth_token = os.getenv("INSTAMOJO_AUTH_TOKEN", "")
        self.instamojo_private_salt = os.getenv("INSTAMOJO_PRIVATE_SALT", "")
        self.gateway_timeout_seconds = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

        # --- Email ---
        self.email_enabled = _flag("EMAIL_ENABLED", "true")
        self.smtp_host = os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_timeout_seconds = float(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))
        self.email_from = os.getenv("EMAIL_FROM", self.smtp_user)
        self.admin_email = os.getenv("ADMIN_EMAIL", "admin@ergiva.com")

        # --- Session booking (prices are set here, never by the client) ---
        self.home_visit_price = Decimal(os.getenv("HOME_VISIT_PRICE", "1500.00"))
        self.online_consultation_price = Decimal(os.getenv("ONLINE_CONSULTATION_PRICE", "800.00"))

        # --- Rate limiting ---
        self.rate_limit_enabled = _flag("RATE_LIMIT_ENABLED", "true")
        self.order_rate_limit = os.getenv("ORDER_RATE_LIMIT", "20/minute")
        self.auth_rate_limit = os.getenv("AUTH_RATE_LIMIT", "10/minute")

        # --- Observability ---
        self.service_name = os.getenv("SERVICE_NAME", "ergiva_backend")
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.otlp_endpoint = os.getenv("OTLP_ENDPOINT", "")

    def require(self, attr: str) -> str:
        """Return a secret setting, raising ConfigurationError when it is unset."""
        from shared.errors import ConfigurationError

        value = getattr(self, attr, "")
        if not value:
            raise ConfigurationError(f"{attr.upper()} is not configured")
        return value


settings = Settings()
