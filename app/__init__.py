from flask import Flask, jsonify
from flask_cors import CORS

from app.api import api_bp
from app.config import Config
from app.logging_config import configure_logging, get_logger

# database imports
from app.models import db

# Configure logging
configure_logging(log_level=Config.LOG_LEVEL, log_file=Config.LOG_FILE)
logger = get_logger(__name__)


def create_app(config_overrides=None):
    """
    Build the Flask app.

    Args:
        config_overrides: Optional dict applied after the environment config
                          and before the database is bound (tests pass an
                          in-memory SQLALCHEMY_DATABASE_URI here).
    """
    # Import config after dotenv is loaded
    from app.config import get_config
    from app.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    # Configure database separately
    configure_database(app)

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    # The dashboard polls the job readback endpoints
    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Hook-Secret"],
         methods=["GET", "POST", "OPTIONS"])

    # Initialize database
    db.init_app(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    # Register blueprints
    app.register_blueprint(api_bp, url_prefix="/api")

    # Global error handler so every failure comes back as JSON
    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle all exceptions and return a JSON body"""
        if hasattr(e, 'code') and isinstance(e.code, int):
            status_code = e.code
        else:
            status_code = 500

        if status_code >= 500:
            logger.error("Unhandled exception", error=str(e), exc_info=True)

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    return app
