"""
Security helpers for the API: response headers and security event logging.
"""
from flask import Flask

from .security_headers import SecurityHeaders
from .security_logger import SecurityLogger

__all__ = [
    'SecurityHeaders',
    'SecurityLogger',
    'init_security',
]


def init_security(app: Flask) -> None:
    """Install response headers and warn about weak signing keys."""
    SecurityHeaders.init_app(app)
    if len(app.config.get('JWT_SECRET') or '') < 32:
        app.logger.warning("JWT_SECRET is shorter than 32 characters")
    app.logger.info("Security features initialized")
