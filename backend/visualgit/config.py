"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

DEFAULT_ACCESS_SECRET = "dev-access-secret"
DEFAULT_REFRESH_SECRET = "dev-refresh-secret"
DEFAULT_ADMIN_PASSWORD = "admin123"


class Settings:
    ENV: str
    LOG_LEVEL: str
    DB_DIALECT: str
    DB_HOST: str
    DB_PORT: int
    DB_USER: str
    DB_PASSWORD: str
    DB_NAME: str
    DB_SQLITE_DIR: Path
    DB_ECHO: bool
    MIGRATIONS_RUN: bool
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str
    JWT_ACCESS_TTL_MINUTES: int
    JWT_REFRESH_TTL_DAYS: int
    MAX_UPLOAD_BYTES: int
    PDF_TEXT_BACKEND: str
    ALLOW_DEV_CORS: bool
    ADMIN_EMAIL: str
    ADMIN_PASSWORD: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.DB_DIALECT = os.getenv("DB_DIALECT", "sqlite").lower()
        self.DB_HOST = os.getenv("DB_HOST", "localhost")
        self.DB_PORT = int(os.getenv("DB_PORT", "5432"))
        self.DB_USER = os.getenv("DB_USER", "admin")
        self.DB_PASSWORD = os.getenv("DB_PASSWORD", "admin")
        default_name = "app" if self.DB_DIALECT == "sqlite" else "postgres"
        self.DB_NAME = os.getenv("DB_NAME", default_name)
        self.DB_SQLITE_DIR = Path(os.getenv("DB_SQLITE_DIR", str(BASE)))
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"
        self.MIGRATIONS_RUN = os.getenv("MIGRATIONS_RUN", "false").lower() == "true"
        self._database_url = os.getenv("DATABASE_URL", "").strip()
        self.JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", DEFAULT_ACCESS_SECRET)
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", DEFAULT_REFRESH_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ACCESS_TTL_MINUTES = int(os.getenv("JWT_ACCESS_TTL_MINUTES", "15"))
        self.JWT_REFRESH_TTL_DAYS = int(os.getenv("JWT_REFRESH_TTL_DAYS", "14"))
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.PDF_TEXT_BACKEND = os.getenv("PDF_TEXT_BACKEND", "pdfplumber").lower()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        # the default admin is created at start-up; an empty ADMIN_EMAIL disables it
        self.ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com").strip().lower()
        self.ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
        self._validate()

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured database.

        `DATABASE_URL` wins when set; otherwise the URL is assembled from the
        `DB_*` variables. SQLite databases live in `DB_SQLITE_DIR` as
        `<DB_NAME>.db`.
        """
        if self._database_url:
            return self._database_url
        if self.DB_DIALECT == "sqlite":
            return f"sqlite:///{self.DB_SQLITE_DIR / (self.DB_NAME + '.db')}"
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    def _validate(self):
        if self.DB_DIALECT not in ("sqlite", "postgresql"):
            raise RuntimeError(f"unsupported DB_DIALECT: {self.DB_DIALECT}")
        if self.ENV not in ("dev", "test") and (
            self.JWT_ACCESS_SECRET == DEFAULT_ACCESS_SECRET
            or self.JWT_REFRESH_SECRET == DEFAULT_REFRESH_SECRET
        ):
            raise RuntimeError("JWT secrets must be set to non-default values outside dev/test")


settings = Settings()
