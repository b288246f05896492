"""
Security headers module.

Adds security headers to every API response.
"""

from flask import current_app


class SecurityHeaders:
    """
    Security headers middleware.

    The application only serves JSON, so the policy forbids framing and
    any active content.
    """

    @staticmethod
    def init_app(app):
        """
        Initialize security headers for the Flask app.

        Args:
            app: Flask application instance
        """
        @app.after_request
        def add_security_headers(response):
            """Add security headers to all responses."""
            response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
            # Prevent MIME type sniffing
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            response.headers['Referrer-Policy'] = 'no-referrer'
            # Responses carry per-user data
            response.headers['Cache-Control'] = 'no-store'

            if current_app.config.get('SESSION_COOKIE_SECURE', False):
                response.headers['Strict-Transport-Security'] = (
                    'max-age=31536000; includeSubDomains'
                )

            if 'Server' in response.headers:
                del response.headers['Server']

            return response
