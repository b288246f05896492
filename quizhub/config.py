"""
Configuration module for the application.
All configuration values are read from environment variables
(a .env file is loaded by the application factory).
"""
import os
import secrets
import warnings


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    return int(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name, "")
    return value.lower() == "true" if value else default


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        # Flask Configuration
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "")
        self.FLASK_ENV: str = os.getenv("FLASK_ENV", "")
        self.FLASK_DEBUG: bool = _env_bool("FLASK_DEBUG", False)
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Generate a development SECRET_KEY if not set and in development mode
        if not self.SECRET_KEY and self.FLASK_ENV != "production":
            self.SECRET_KEY = secrets.token_urlsafe(32)
            warnings.warn(
                "SECRET_KEY not set. Generated a temporary key for development. "
                "Set SECRET_KEY in your .env file for production!",
                UserWarning
            )

        # Bearer token signing
        self.JWT_SECRET: str = os.getenv("JWT_SECRET", "") or self.SECRET_KEY
        self.JWT_EXPIRES_MINUTES: int = _env_int("JWT_EXPIRES_MINUTES", 24 * 60)

        # Database Configuration
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.DB_USER: str = os.getenv("DB_USER", "root")
        self.DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
        self.DB_HOST: str = os.getenv("DB_HOST", "localhost")
        self.DB_PORT: str = os.getenv("DB_PORT", "3306")
        self.DB_NAME: str = os.getenv("DB_NAME", "quiz_management")
        self.SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
        self.SQLALCHEMY_ECHO: bool = _env_bool("SQLALCHEMY_ECHO", False)

        # Password Validation
        self.MIN_PASSWORD_LENGTH: int = _env_int("MIN_PASSWORD_LENGTH", 6)
        self.BCRYPT_ROUNDS: int = _env_int("BCRYPT_ROUNDS", 12)

        # Quiz policy
        self.DEFAULT_TIME_LIMIT_MINUTES: int = _env_int("DEFAULT_TIME_LIMIT_MINUTES", 30)
        self.MAX_TIME_LIMIT_MINUTES: int = _env_int("MAX_TIME_LIMIT_MINUTES", 120)
        self.MAX_QUESTIONS_PER_QUIZ: int = _env_int("MAX_QUESTIONS_PER_QUIZ", 50)
        self.WEIGHTED_SCORING: bool = _env_bool("WEIGHTED_SCORING", False)
        # case_insensitive_trim or exact
        self.TEXT_MATCH_POLICY: str = os.getenv("TEXT_MATCH_POLICY", "case_insensitive_trim")

        # Classes
        self.ENROLLMENT_CODE_LENGTH: int = _env_int("ENROLLMENT_CODE_LENGTH", 8)

        # Admin views
        self.AUDIT_LOG_LIMIT: int = _env_int("AUDIT_LOG_LIMIT", 200)

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Database URI, either DATABASE_URL or a MySQL URI built from DB_* variables."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?charset=utf8mb4"
        )

    def to_flask_config(self) -> dict:
        """Settings copied onto ``app.config`` by the application factory."""
        return {
            "SECRET_KEY": self.SECRET_KEY,
            "SQLALCHEMY_DATABASE_URI": self.SQLALCHEMY_DATABASE_URI,
            "SQLALCHEMY_TRACK_MODIFICATIONS": self.SQLALCHEMY_TRACK_MODIFICATIONS,
            "SQLALCHEMY_ECHO": self.SQLALCHEMY_ECHO,
            "JWT_SECRET": self.JWT_SECRET,
            "JWT_EXPIRES_MINUTES": self.JWT_EXPIRES_MINUTES,
            "MIN_PASSWORD_LENGTH": self.MIN_PASSWORD_LENGTH,
            "BCRYPT_ROUNDS": self.BCRYPT_ROUNDS,
            "DEFAULT_TIME_LIMIT_MINUTES": self.DEFAULT_TIME_LIMIT_MINUTES,
            "MAX_TIME_LIMIT_MINUTES": self.MAX_TIME_LIMIT_MINUTES,
            "MAX_QUESTIONS_PER_QUIZ": self.MAX_QUESTIONS_PER_QUIZ,
            "WEIGHTED_SCORING": self.WEIGHTED_SCORING,
            "TEXT_MATCH_POLICY": self.TEXT_MATCH_POLICY,
            "ENROLLMENT_CODE_LENGTH": self.ENROLLMENT_CODE_LENGTH,
            "AUDIT_LOG_LIMIT": self.AUDIT_LOG_LIMIT,
            "LOG_LEVEL": self.LOG_LEVEL,
        }

    def validate(self) -> None:
        """
        Validate required configuration values.
        Only enforces secrets in production environment.
        """
        if self.FLASK_ENV != "production":
            return
        missing = [
            name for name in ("SECRET_KEY", "JWT_SECRET", "DB_PASSWORD")
            if not os.getenv(name)
        ]
        if missing and not (self.DATABASE_URL and missing == ["DB_PASSWORD"]):
            raise ValueError(
                f"Missing required environment variables in production: {', '.join(missing)}"
            )
