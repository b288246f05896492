from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from quizhub import db
from quizhub.access import Capability
from quizhub.audit import AuditRecorder, RequestContext
from quizhub.auth import auth_bp
from quizhub.auth.models import ROLE_ADMIN, ROLE_STUDENT, User
from quizhub.auth.tokens import create_token
from quizhub.auth.utils import (
    hash_password,
    is_valid_email,
    is_valid_username,
    require_fields,
    validate_password,
    verify_password,
)
from quizhub.common.decorators import capability_required, json_body
from quizhub.common.timeutils import utcnow
from quizhub.errors import Conflict, NotFound, Unauthorized, ValidationError
from quizhub.security import SecurityLogger


def _audit(actor_id, action, record_id=None, before=None, after=None) -> None:
    AuditRecorder(db.session).record(
        actor_id, action, User.__tablename__, record_id, before, after,
        RequestContext.from_request(request),
    )


def _check_password(password) -> str:
    if not isinstance(password, str):
        raise ValidationError("Password must be a string")
    ok, message = validate_password(password)
    if not ok:
        raise ValidationError(message)
    return password


def _check_email(email) -> str:
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    if not is_valid_email(email):
        raise ValidationError("Please provide a valid email address")
    return email


@auth_bp.route("", methods=["GET"])
def auth_root():
    """Simple endpoint to verify the auth blueprint is registered."""
    return jsonify({"success": True, "message": "Auth API is available"}), 200


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Register a new account. The very first account becomes the admin;
    every later one is a student until an admin changes its role.
    """
    data = json_body()
    require_fields(data, ["username", "email", "password", "first_name", "last_name"])

    username = str(data["username"]).strip().lower()
    if not is_valid_username(username):
        raise ValidationError("Username must be 3-50 characters: letters, digits, '.', '_' or '-'")
    email = _check_email(data["email"])
    password = _check_password(data["password"])

    existing = User.query.filter(or_(User.username == username, User.email == email)).first()
    if existing:
        raise Conflict("Username or email already taken")

    is_first_user = db.session.query(func.count(User.id)).scalar() == 0
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=str(data["first_name"]).strip(),
        last_name=str(data["last_name"]).strip(),
        role=ROLE_ADMIN if is_first_user else ROLE_STUDENT,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Username or email already taken")

    current_app.logger.info(f"User {user.id} registered as {user.role}")
    _audit(user.id, "REGISTER", user.id, None, {"role": user.role, "is_first_user": is_first_user})

    return jsonify({
        "success": True,
        "message": "User registered successfully",
        "token": create_token(user),
        "user": user.to_dict(),
    }), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """Log in with username or email. Returns a bearer token."""
    data = json_body()
    identifier = data.get("username") or data.get("email") or data.get("identifier")
    password = data.get("password")
    if not isinstance(identifier, str) or not identifier.strip() or not isinstance(password, str) or not password:
        raise ValidationError("Username or email and password are required")

    identifier = identifier.strip().lower()
    user = User.query.filter(or_(User.username == identifier, User.email == identifier)).first()

    if user is None or not verify_password(password, user.password_hash):
        SecurityLogger.log_failed_login(identifier)
        if user is not None:
            _audit(user.id, "LOGIN_FAILED", user.id, None, {"reason": "invalid_password"})
        raise Unauthorized("Invalid credentials")

    if not user.is_active:
        SecurityLogger.log_failed_login(identifier, "Account deactivated")
        _audit(user.id, "LOGIN_FAILED", user.id, None, {"reason": "inactive"})
        raise Unauthorized("Account is deactivated")

    user.last_login = utcnow()
    db.session.commit()

    SecurityLogger.log_successful_login(user.id, user.username)
    _audit(user.id, "LOGIN", user.id)

    return jsonify({
        "success": True,
        "message": "Login successful",
        "token": create_token(user),
        "user": user.to_dict(),
    }), 200


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout_route():
    """
    Tokens are stateless; logging out is recorded and the client discards
    its token.
    """
    _audit(current_user.id, "LOGOUT", current_user.id)
    return jsonify({"success": True, "message": "Logout successful"}), 200


@auth_bp.route("/verify", methods=["GET"])
@login_required
def verify():
    return jsonify({"success": True, "message": "Token is valid", "user": current_user.to_dict()}), 200


@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return jsonify({"success": True, "user": current_user.to_dict()}), 200


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    data = json_body()
    require_fields(data, ["first_name", "last_name", "email"])
    email = _check_email(data["email"])

    taken = User.query.filter(User.email == email, User.id != current_user.id).first()
    if taken:
        raise Conflict("Email already taken")

    user = current_user._get_current_object()
    before = {"first_name": user.first_name, "last_name": user.last_name, "email": user.email}
    user.first_name = str(data["first_name"]).strip()
    user.last_name = str(data["last_name"]).strip()
    user.email = email
    db.session.commit()

    _audit(user.id, "PROFILE_UPDATE", user.id, before,
           {"first_name": user.first_name, "last_name": user.last_name, "email": user.email})
    return jsonify({"success": True, "message": "Profile updated successfully", "user": user.to_dict()}), 200


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    data = json_body()
    require_fields(data, ["current_password", "new_password"])
    new_password = _check_password(data["new_password"])

    user = current_user._get_current_object()
    if not verify_password(str(data["current_password"]), user.password_hash):
        raise Unauthorized("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    SecurityLogger.log_password_change(user.id, user.id)
    _audit(user.id, "PASSWORD_CHANGE", user.id)
    return jsonify({"success": True, "message": "Password changed successfully"}), 200


@auth_bp.route("/reset-password", methods=["POST"])
@login_required
@capability_required(Capability.MANAGE_USERS)
def reset_password():
    """Admin sets a new password for another account."""
    data = json_body()
    require_fields(data, ["user_id", "new_password"])
    new_password = _check_password(data["new_password"])

    try:
        target = db.session.get(User, int(data["user_id"]))
    except (TypeError, ValueError):
        raise ValidationError("user_id must be an integer")
    if target is None:
        raise NotFound("User not found")

    target.password_hash = hash_password(new_password)
    db.session.commit()

    SecurityLogger.log_password_change(current_user.id, target.id)
    _audit(current_user.id, "PASSWORD_RESET", target.id, None, {"target_user": target.username})
    return jsonify({"success": True, "message": "Password reset successfully"}), 200
