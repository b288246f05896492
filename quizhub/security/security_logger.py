"""
Security logging module.

This module provides specialized logging for security events
such as failed logins and access outside a caller's scope.
"""

from flask import request, current_app

from quizhub.common.timeutils import utcnow


class SecurityLogger:
    """
    Security event logger.

    Logs security-related events for monitoring and auditing.
    """

    @staticmethod
    def log_failed_login(identifier: str, reason: str = "Invalid credentials"):
        """
        Log a failed login attempt.

        Args:
            identifier: Username or email used in login attempt
            reason: Reason for failure
        """
        current_app.logger.warning(
            f"SECURITY: Failed login attempt - Identifier: {identifier}, "
            f"IP: {request.remote_addr}, Reason: {reason}, "
            f"Time: {utcnow().isoformat()}"
        )

    @staticmethod
    def log_successful_login(user_id: int, username: str):
        current_app.logger.info(
            f"SECURITY: Successful login - User ID: {user_id}, "
            f"Username: {username}, IP: {request.remote_addr}, "
            f"Time: {utcnow().isoformat()}"
        )

    @staticmethod
    def log_forbidden(user_id: int | None, resource: str, capability: str | None = None):
        """
        Log an access attempt outside the caller's permissions.

        Args:
            user_id: User ID if authenticated
            resource: Resource that was accessed
            capability: Missing capability, when known
        """
        user_info = f"User ID: {user_id}" if user_id else "Unauthenticated"
        missing = f", Missing: {capability}" if capability else ""
        current_app.logger.warning(
            f"SECURITY: Forbidden access - {user_info}, "
            f"Resource: {resource}{missing}, IP: {request.remote_addr}, "
            f"Time: {utcnow().isoformat()}"
        )

    @staticmethod
    def log_password_change(user_id: int, target_user_id: int):
        """
        Log password change or reset.

        Args:
            user_id: User performing the change
            target_user_id: User whose password changed
        """
        current_app.logger.info(
            f"SECURITY: Password changed - By User ID: {user_id}, "
            f"Target User ID: {target_user_id}, IP: {request.remote_addr}, "
            f"Time: {utcnow().isoformat()}"
        )
