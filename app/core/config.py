from typing import List, Union, Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "OTP Auth Service"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./auth.db"

    @model_validator(mode="after")
    def assemble_db_connection(self) -> "Settings":
        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite:///"):
            self.DATABASE_URL = self.DATABASE_URL.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        # asyncpg takes ssl=, not sslmode=
        self.DATABASE_URL = self.DATABASE_URL.replace("sslmode=require", "ssl=require")
        return self

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # OTP / credentials
    OTP_EXPIRE_MINUTES: int = 5
    OTP_SUPERSEDE_PENDING: bool = False
    PASSWORD_HASH_ROUNDS: int = 10
    TEMPORARY_PASSWORD_LENGTH: int = 12

    # Email
    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None
    EMAIL_USE_TLS: bool = True
    EMAIL_TIMEOUT_SECONDS: float = 30.0
    APP_FROM_EMAIL: str = "no-reply@example.com"
    APP_TO_EMAIL: Optional[str] = None

    # Contact
    CONTACT_ATTACHMENT_MAX_BYTES: int = 1 * 1024 * 1024

    @property
    def smtp_configured(self) -> bool:
        return all([self.EMAIL_HOST, self.EMAIL_USER, self.EMAIL_PASS])

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
