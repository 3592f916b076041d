import logging
from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

socketio = SocketIO()

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Initialize Firebase
    from app.firebase_init import init_firebase
    init_firebase(app.config)

    # CORS origins
    allowed_origins = []
    cors_origins = app.config.get('CORS_ALLOWED_ORIGINS', '')
    if cors_origins:
        for origin in cors_origins.split(','):
            origin = origin.strip()
            if origin:
                allowed_origins.append(origin)

    CORS(app, origins=allowed_origins or '*')

    # Handlers must be declared before init_app so every server instance gets them
    from app import events  # noqa: F401
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins if allowed_origins else '*',
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE'),
    )

    from app.errors import FamilyLinkError

    @app.errorhandler(FamilyLinkError)
    def handle_family_link_error(error):
        if error.status_code >= 500:
            app.logger.error('%s: %s', error.__class__.__name__, error.message)
        return jsonify({'success': False, **error.to_dict()}), error.status_code

    # Register blueprints
    from app.routes import main, devices, notifications, limits
    app.register_blueprint(main.bp)
    app.register_blueprint(devices.bp)
    app.register_blueprint(notifications.bp)
    app.register_blueprint(limits.bp)

    return app
