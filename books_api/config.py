import os

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .vault import fetch_vault_secret

load_dotenv(".env")

DEMO_SIGNING_KEY = "change-me-demo-signing-key-not-for-production"


def _default_db_url() -> str:
    env_url = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL") or os.getenv("DB_CONNECTION_STRING")
    if env_url:
        return env_url

    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_name = os.getenv("POSTGRES_DB", "books")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{db_name}"


class Settings(BaseSettings):
    app_name: str = "Books API"
    version: str = "1.0.0"
    database_url: str = Field(default_factory=_default_db_url)
    jwt_secret_key: str = DEMO_SIGNING_KEY
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "books-api"
    jwt_audience: str = "books-api"
    token_ttl_seconds: int = Field(default=3600, gt=0)
    clock_skew_seconds: int = Field(default=30, ge=0)
    # Single accepted login; a stand-in for a real identity provider.
    demo_username: str = "test"
    demo_password: str = "password"
    max_page_size: int = Field(default=100, ge=1)
    log_level: str = "INFO"
    otel_enabled: bool = False
    strict_security: bool = False
    vault_addr: str | None = None
    vault_token: str | None = None
    vault_kv_mount: str = "kv"
    vault_secret_path: str = "books-api/config"

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


def get_settings() -> Settings:
    settings = Settings()
    if settings.vault_addr and settings.vault_token:
        secret = fetch_vault_secret(
            addr=settings.vault_addr,
            token=settings.vault_token,
            mount=settings.vault_kv_mount,
            path=settings.vault_secret_path,
        )
        if secret.get("database_url"):
            settings.database_url = secret["database_url"]
        if secret.get("jwt_secret_key"):
            settings.jwt_secret_key = secret["jwt_secret_key"]
    if settings.strict_security:
        insecure_markers = ("postgres:postgres@", "changeme", "change-me", "replace-me", "root@")
        if settings.database_url and any(marker in settings.database_url for marker in insecure_markers):
            raise RuntimeError("Insecure database credentials detected")
        if any(marker in settings.jwt_secret_key for marker in insecure_markers) or len(settings.jwt_secret_key) < 32:
            raise RuntimeError("Insecure JWT signing key detected")
        if settings.demo_password == "password":
            raise RuntimeError("Default demo password detected")
        if settings.vault_token and settings.vault_token.lower() == "root":
            raise RuntimeError("Insecure Vault token detected")
    return settings
