import logging
import sys
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from config import Config

# Initialize SQLAlchemy (master tables + engine shared by tenant connections)
db = SQLAlchemy()

logger = logging.getLogger(__name__)


def configure_logging(level='INFO'):
    """Configure root logging to write to stdout"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True
    )


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize SQLAlchemy with app
    db.init_app(app)

    # Enable CORS for device API endpoints
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Create master tables
    with app.app_context():
        from .models import init_db
        init_db()

    if app.config.get('LOG_DEVICE_REQUESTS', True):
        @app.before_request
        def log_request():
            """Log incoming device request details including the raw command"""
            if request.path.startswith('/api'):
                input_string = request.args.get('InputString')
                if input_string is None and request.method == 'POST':
                    body = request.get_json(silent=True)
                    if isinstance(body, dict):
                        input_string = body.get('InputString')
                    else:
                        input_string = request.form.get('InputString')
                logger.info(f"INCOMING REQUEST: {request.method} {request.full_path.rstrip('?')}")
                logger.info(f"InputString: {input_string!r}")

        @app.after_request
        def log_response(response):
            """Log response status and a prefix of the body"""
            if request.path.startswith('/api'):
                status_prefix = "[SUCCESS]" if 200 <= response.status_code < 300 else "[FAILED]"
                body = ''
                if not response.direct_passthrough:
                    body = response.get_data(as_text=True)
                logger.info(f"{status_prefix} RESPONSE: {response.status_code} {request.method} {request.path}")
                logger.info(f"BODY: {body[:100]}{'...' if len(body) > 100 else ''}")
            return response

    # Register blueprints
    from .routes.device_routes import device_bp
    app.register_blueprint(device_bp, url_prefix='/api')

    # Health check endpoint
    @app.route('/health')
    def health():
        """API health check endpoint"""
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({
                'status': 'healthy',
                'service': 'dairylink-device-api',
                'database': 'connected'
            }), 200
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'service': 'dairylink-device-api',
                'database': 'disconnected',
                'error': str(e)
            }), 500

    return app
