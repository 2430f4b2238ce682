from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

_PROGRESS_STORE_TYPES = {"redis", "memory", "none"}


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Document store (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Fernet master key for alternate-credential secrets
    ENCRYPTION_KEY: str | None = None

    # Gmail OAuth settings
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None

    # =================================================================
    # SCANNER SETTINGS
    # =================================================================
    IMAP_HOST: str = "imap.gmail.com"
    IMAP_PORT: int = 993
    IMAP_TIMEOUT: float = 60.0

    SCAN_PROGRESS_BACKEND: str = "redis"  # redis | memory | none
    SCAN_LOCK_TTL_SECONDS: int = 6 * 60 * 60  # a full-mailbox IMAP scan can take hours
    GMAIL_FETCH_STAGGER_SECONDS: float = 0.01

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_progress_store_type(self) -> str:
        """
        Effective scan progress store type.

        Tests never talk to Redis, so the test environment always gets the
        in-memory store regardless of SCAN_PROGRESS_BACKEND.
        """
        if self.environment == "test":
            return "memory"

        store_type = self.SCAN_PROGRESS_BACKEND.strip().lower()
        if store_type not in _PROGRESS_STORE_TYPES:
            raise ValueError(
                f"Unknown SCAN_PROGRESS_BACKEND '{store_type}'. "
                f"Expected one of: {', '.join(sorted(_PROGRESS_STORE_TYPES))}"
            )
        return store_type


settings = Settings()
