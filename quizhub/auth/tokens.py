"""Bearer token issuing and resolution."""
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from quizhub import db

ALGORITHM = "HS256"


def create_token(user) -> str:
    now = datetime.now(timezone.utc)
    ttl = current_app.config.get("JWT_EXPIRES_MINUTES", 24 * 60)
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def load_user_from_request(request):
    """
    Flask-Login request loader: resolve ``Authorization: Bearer <token>``
    to an active User, or None.
    """
    from quizhub.auth.models import User

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None

    payload = decode_token(token.strip())
    if not payload:
        return None

    try:
        user = db.session.get(User, int(payload["sub"]))
    except (KeyError, ValueError, TypeError):
        return None
    if user is None or not user.is_active:
        return None
    return user
