"""
TicketGate Backend - Flask Application
Event Ticketing Payments (eSewa ePay v2)
"""

import os
import logging
from flask import Flask
from dotenv import load_dotenv

from extensions import db, migrate, cors

# Load environment variables
load_dotenv()

# Import models for Flask-Migrate
import models  # noqa: F401

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///ticketgate.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['FRONTEND_URL'] = os.environ.get('FRONTEND_URL', 'http://localhost:5173')

    # eSewa ePay v2 (secret has no default: it must come from the environment)
    app.config['ESEWA_PRODUCT_CODE'] = os.environ.get('ESEWA_PRODUCT_CODE', 'EPAYTEST')
    app.config['ESEWA_SECRET_KEY'] = os.environ.get('ESEWA_SECRET_KEY')
    app.config['ESEWA_FORM_URL'] = os.environ.get(
        'ESEWA_FORM_URL', 'https://rc-epay.esewa.com.np/api/epay/main/v2/form'
    )
    app.config['ESEWA_STATUS_URL'] = os.environ.get(
        'ESEWA_STATUS_URL', 'https://rc.esewa.com.np/api/epay/transaction/status/'
    )
    app.config['ESEWA_SUCCESS_URL'] = os.environ.get(
        'ESEWA_SUCCESS_URL', f"{app.config['FRONTEND_URL']}/payment/verify"
    )
    app.config['ESEWA_FAILURE_URL'] = os.environ.get(
        'ESEWA_FAILURE_URL', f"{app.config['FRONTEND_URL']}/payment/failure"
    )
    app.config['ESEWA_TIMEOUT'] = int(os.environ.get('ESEWA_TIMEOUT', 10))

    if test_config:
        app.config.update(test_config)

    if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
            'pool_size': 10,
            'pool_recycle': 300,
            'pool_pre_ping': True,
            'max_overflow': 20,
            'pool_timeout': 30,
        }

    if not app.config['ESEWA_SECRET_KEY']:
        logger.warning("ESEWA_SECRET_KEY is not set; eSewa payments are disabled")

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Add teardown handler
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        db.session.remove()

    cors.init_app(app, resources={r"/api/*": {
        "origins": [app.config['FRONTEND_URL']],
        "supports_credentials": True,
        "allow_headers": ["Content-Type", "Authorization"],
        "methods": ["GET", "POST", "OPTIONS"]
    }})

    # Register blueprints
    from routes.esewa import esewa_bp

    app.register_blueprint(esewa_bp, url_prefix='/api/esewa')

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Resource not found'}, 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return {'error': 'Method not allowed'}, 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        logger.error("500 Error: %s", error)
        return {'error': 'Internal server error'}, 500

    # Health check
    @app.route('/api/health')
    def health_check():
        return {
            'status': 'ok',
            'message': 'TicketGate API is running',
            'esewa_configured': bool(app.config['ESEWA_SECRET_KEY']),
        }

    # Root endpoint to prevent 404s
    @app.route('/')
    def root():
        return {'status': 'ok', 'message': 'TicketGate Backend is running. Access API at /api'}

    return app


# Create app instance
app = create_app()


if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'))
    app.run(host='0.0.0.0', port=5000, debug=os.environ.get('FLASK_ENV') == 'development')
