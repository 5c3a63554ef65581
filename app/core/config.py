"""
Application configuration.
Everything is read from environment variables or a local .env file. Provider
credentials are passed explicitly into the adapters built from these settings;
nothing else in the app reads os.environ directly.
"""
import logging
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    APP_ENV: str = "development"
    DATABASE_URL: str
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"

    # Shared secret for cron / operator endpoints (x-automation-secret).
    # Empty disables the check.
    AUTOMATION_SECRET: str = ""

    # Queue behaviour
    AUTOMATOR_MAX_ATTEMPTS: int = 5
    AUTOMATOR_BASE_DELAY_MS: int = 30000
    FUNCTION_TIMEOUT_MS: int = 15000
    AUTOMATION_BATCH_LIMIT: int = 10
    AUTOMATION_MAX_BATCH_LIMIT: int = 100
    WORKER_POLL_MS: int = 2000

    # Admin access
    ADMIN_ROLES: list[str] = ["admin", "superadmin", "owner"]
    MANUAL_SEND_DAILY_LIMIT: int = 500

    # Email transport: "emailjs" or "sendgrid"
    EMAIL_PROVIDER: str = "emailjs"

    # EmailJS
    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_TEMPLATE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""
    EMAILJS_PRIVATE_KEY: str = ""
    EMAILJS_API_URL: str = "https://api.emailjs.com/api/v1.0/email/send"

    # SendGrid Email
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "noreply@example.com"
    SENDGRID_FROM_NAME: str = "Automation System"

    # Twilio WhatsApp
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_WHATSAPP_FROM: str = ""
    DEFAULT_COUNTRY_CODE: str = "91"

    class Config:
        env_file = ".env"

    @property
    def function_timeout_seconds(self) -> float:
        return self.FUNCTION_TIMEOUT_MS / 1000


settings = Settings()

# Validate critical security settings
if not settings.JWT_SECRET_KEY:
    raise ValueError(
        "JWT_SECRET_KEY is not set. Export it as an environment variable or add it to .env. "
        "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )

if not settings.AUTOMATION_SECRET:
    logger.warning("AUTOMATION_SECRET is not set; automation endpoints accept unauthenticated calls")
