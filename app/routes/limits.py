from flask import Blueprint, jsonify, request
from app.errors import ValidationFailure
from app.forms import AppLimitForm, PullLimitForm, RemoteCommandForm, validated
from app.services import notifications, usage_limits

bp = Blueprint('limits', __name__, url_prefix='/api/device')


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# -- Remote commands ---------------------------------------------------------

@bp.route('/remote-lock', methods=['POST'])
def remote_lock():
    form = validated(RemoteCommandForm)
    result = notifications.remote_lock(form.parent_id.data, form.child_id.data)
    payload = {'success': True, 'message': 'Device lock command sent successfully'}
    payload.update(result.to_dict())
    return jsonify(payload)


@bp.route('/remote-unlock', methods=['POST'])
def remote_unlock():
    form = validated(RemoteCommandForm)
    result = notifications.remote_unlock(form.parent_id.data, form.child_id.data)
    payload = {'success': True, 'message': 'Device unlock command sent successfully'}
    payload.update(result.to_dict())
    return jsonify(payload)


# -- Embedded limits ---------------------------------------------------------

@bp.route('/<device_id>/app-limit', methods=['POST'])
def set_app_limit(device_id):
    form = validated(AppLimitForm)
    entry = usage_limits.set_app_limit(device_id, form.app_name.data, _body().get('limit'),
                                       form.package_name.data or None)
    return jsonify({
        'success': True,
        'message': 'App limit updated successfully',
        'device_id': device_id,
        'app': entry.to_dict(),
    })


@bp.route('/<device_id>/screen-time-limit', methods=['POST'])
def set_screen_time_limit(device_id):
    screen_time = usage_limits.set_screen_time_limit(device_id, _body().get('limit'))
    return jsonify({
        'success': True,
        'message': 'Screen time limit updated successfully',
        'device_id': device_id,
        'screen_time': screen_time.to_dict(),
    })


@bp.route('/<device_id>/usage')
def get_usage(device_id):
    state = usage_limits.get_usage_state(device_id)
    screen_time = state['screen_time']
    return jsonify({
        'success': True,
        'device_id': device_id,
        'apps': [entry.to_dict() for entry in state['apps']],
        'screen_time': screen_time.to_dict() if screen_time else None,
    })


# -- Package -> minutes map --------------------------------------------------

@bp.route('/<device_id>/app-usage-limits', methods=['GET'])
def get_app_usage_limits(device_id):
    apps = usage_limits.get_pull_limits(device_id)
    return jsonify({'success': True, 'device_id': device_id, 'apps': apps})


@bp.route('/<device_id>/app-usage-limits', methods=['POST'])
def set_app_usage_limit(device_id):
    form = validated(PullLimitForm)
    apps = usage_limits.set_pull_limit(device_id, form.package_name.data, _body().get('limit_minutes'))
    return jsonify({
        'success': True,
        'message': 'App usage limit updated successfully',
        'device_id': device_id,
        'package_name': form.package_name.data,
        'limit_minutes': apps.get(form.package_name.data),
        'total_apps_with_limits': len(apps),
    })


@bp.route('/<device_id>/app-usage-limits/batch', methods=['POST'])
def batch_set_app_usage_limits(device_id):
    apps = _body().get('apps')
    if not isinstance(apps, dict):
        raise ValidationFailure('Missing or invalid apps object')
    stored = usage_limits.batch_set_pull_limits(device_id, apps)
    return jsonify({
        'success': True,
        'message': 'App usage limits updated successfully',
        'device_id': device_id,
        'apps': stored,
        'total_apps_with_limits': len(stored),
    })


@bp.route('/<device_id>/app-usage-limits', methods=['DELETE'])
def clear_app_usage_limits(device_id):
    usage_limits.clear_all_pull_limits(device_id)
    return jsonify({'success': True, 'message': 'All app usage limits removed', 'device_id': device_id})
