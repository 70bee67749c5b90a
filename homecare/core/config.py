import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    if isinstance(v, list | str):
        return v
    raise ValueError(v)


def parse_port(v: Any) -> int:
    if isinstance(v, str):
        if ":" in v:
            v = v.split(":")[0]
        return int(v)
    return v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    API_V1_STR: str = "/api/v1"
    FRONTEND_HOST: str = "http://localhost:5173"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    PROJECT_NAME: str = "Homecare Marketplace"

    # A full SQLAlchemy URL wins over the POSTGRES_* parts (sqlite:// in tests)
    DATABASE_URL: str | None = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: Annotated[int, BeforeValidator(parse_port)] = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "homecare"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(
            PostgresDsn.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # Redis configuration
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery configuration
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def celery_broker(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @computed_field  # type: ignore[prop-decorator]
    @property
    def celery_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL

    # Booking outbox (spreadsheet web-app endpoint)
    OUTBOX_SINK_URL: str = ""
    OUTBOX_DESTINATION: str = "google_sheets"
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_BACKOFF_BASE: int = 2
    OUTBOX_SEND_TIMEOUT_SECONDS: float = 10.0
    OUTBOX_DISPATCH_INTERVAL_SECONDS: float = 60.0

    # Late check-in monitor
    LATE_CHECKIN_MINUTES: int = 15
    LATE_CHECKIN_INTERVAL_SECONDS: float = 300.0

    # Provider matching
    NEAREST_PROVIDER_LIMIT: int = 10

    # Geocoding (Nominatim)
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODER_COUNTRY_CODES: str = "jo"
    GEOCODER_USER_AGENT: str = "HomecareMarketplace/1.0"

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        return self

    @model_validator(mode="after")
    def _check_outbox_policy(self) -> Self:
        if self.OUTBOX_BACKOFF_BASE < 2:
            raise ValueError("OUTBOX_BACKOFF_BASE must be at least 2")
        if self.OUTBOX_BATCH_SIZE < 1:
            raise ValueError("OUTBOX_BATCH_SIZE must be positive")
        return self


settings = Settings()  # type: ignore
