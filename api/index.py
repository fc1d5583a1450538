"""
Vercel serverless function entry point for the device API.
Vercel expects a module-level WSGI application named 'app'.
"""
import logging
import traceback
from flask import Flask, Response

logger = logging.getLogger(__name__)

app = None

try:
    from dairylink import create_app

    app = create_app()

    if not isinstance(app, Flask):
        raise TypeError(f"create_app() returned {type(app)}, expected Flask instance")

except Exception as e:
    # If app creation fails, serve a minimal app so the failure is visible
    logger.error(f"Failed to create Flask app: {e}")
    traceback.print_exc()
    startup_error = f"{type(e).__name__}: {e}"

    app = Flask(__name__)

    # Devices parse text bodies only, so the failure is reported as plain text
    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def error_handler(path):
        return Response(f"Internal server error ({startup_error})", status=500, content_type='text/plain')

if app is None or not isinstance(app, Flask):
    raise RuntimeError(f"Failed to initialize Flask app. Got: {type(app)}")

__all__ = ['app']
