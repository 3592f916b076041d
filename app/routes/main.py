from datetime import datetime, timezone
from flask import Blueprint, jsonify

bp = Blueprint('main', __name__)

@bp.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}), 200

@bp.route('/')
def index():
    return jsonify({
        'service': 'familylink',
        'status': 'running',
        'endpoints': {
            'devices': '/api/devices',
            'notifications': '/api/notifications',
            'limits': '/api/device/<device_id>',
        },
    })
