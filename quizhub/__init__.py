import logging

from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_compress import Compress
from dotenv import load_dotenv

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
compress = Compress()


def create_app(test_config: dict | None = None) -> Flask:
    """
    Application factory for the Flask app.
    Loads environment variables, configures the database,
    and registers blueprints.
    """
    # Load .env before reading configuration
    load_dotenv()
    from quizhub.config import Config

    config = Config()
    config.validate()

    app = Flask(__name__)
    app.config.update(config.to_flask_config())
    if test_config:
        app.config.update(test_config)

    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    # Connection pooling only applies to server databases
    if db_uri.startswith("mysql"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_size": 10,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
            "max_overflow": 20,
            "connect_args": {
                "connect_timeout": 5,
                "read_timeout": 10,
                "write_timeout": 10,
                "charset": "utf8mb4",
            },
        })

    # Response compression settings
    app.config["COMPRESS_MIMETYPES"] = ["application/json"]
    app.config["COMPRESS_LEVEL"] = 6
    app.config["COMPRESS_MIN_SIZE"] = 500

    app.logger.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    compress.init_app(app)

    from quizhub.auth.tokens import load_user_from_request
    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'error': 'Authentication required',
            'code': 'Unauthorized'
        }), 401

    from quizhub.security import init_security
    init_security(app)

    from quizhub.errors import register_error_handlers
    register_error_handlers(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    @app.route("/api")
    def api_index():
        """List the API groups served by this application."""
        return jsonify({
            "message": "Quiz Management System API",
            "endpoints": {
                "auth": "/api/auth",
                "classes": "/api/classes",
                "quizzes": "/api/quizzes",
                "submissions": "/api/submissions",
                "admin": "/api/admin",
            },
        }), 200

    @app.errorhandler(404)
    def handle_404(e):
        """Return JSON for unknown routes."""
        app.logger.warning(f"404 error: {request.method} {request.path}")
        return jsonify({
            'success': False,
            'error': f'Route not found: {request.method} {request.path}',
            'code': 'NotFound'
        }), 404

    @app.errorhandler(405)
    def handle_405(e):
        """Return JSON for Method Not Allowed."""
        app.logger.warning(f"405 error: {request.method} {request.path}")
        return jsonify({
            'success': False,
            'error': f'Method not allowed: {request.method} {request.path}',
            'code': 'MethodNotAllowed'
        }), 405

    # Register blueprints
    from quizhub.auth import auth_bp
    app.register_blueprint(auth_bp)

    from quizhub.classes import classes_bp
    app.register_blueprint(classes_bp)

    from quizhub.quiz import quiz_bp, submissions_bp
    app.register_blueprint(quiz_bp)
    app.register_blueprint(submissions_bp)

    from quizhub.admin import admin_bp
    app.register_blueprint(admin_bp)

    # Create tables if they do not exist
    with app.app_context():
        from quizhub import models  # noqa: F401
        db.create_all()

    return app
