import os

from pydantic import BaseModel, ConfigDict, Field

from rifafacil.brcode import PixScheme
from rifafacil.qr import DEFAULT_QR_SERVICE_URL, DEFAULT_QR_SIZE

ENV_PREFIX = "RIFAFACIL_"
DEFAULT_DATABASE_URL = "sqlite:///./rifafacil.db"
DEFAULT_MERCHANT_CITY = "CUIABA"
RESERVATION_TIMEOUT_SECONDS = 10 * 60


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str = DEFAULT_DATABASE_URL
    admin_password: str | None = None
    merchant_city: str = DEFAULT_MERCHANT_CITY
    notification_url: str | None = None
    qr_service_url: str = DEFAULT_QR_SERVICE_URL
    qr_size: int = Field(DEFAULT_QR_SIZE, gt=0)
    reservation_timeout_seconds: int = Field(RESERVATION_TIMEOUT_SECONDS, gt=0)
    pix_scheme: PixScheme = PixScheme()

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from RIFAFACIL_* variables; unset ones keep defaults."""
        env = os.environ if environ is None else environ
        mapping = {
            "DATABASE_URL": "database_url",
            "ADMIN_PASSWORD": "admin_password",
            "MERCHANT_CITY": "merchant_city",
            "NTFY_URL": "notification_url",
            "QR_SERVICE_URL": "qr_service_url",
            "QR_SIZE": "qr_size",
            "RESERVATION_TIMEOUT": "reservation_timeout_seconds",
        }
        values = {
            field: env[ENV_PREFIX + name]
            for name, field in mapping.items()
            if env.get(ENV_PREFIX + name)
        }
        return cls(**values)
