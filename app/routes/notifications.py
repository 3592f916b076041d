from flask import Blueprint, current_app, jsonify, request
from app.errors import ValidationFailure
from app.forms import (
    SendNotificationForm, ChildEventForm, ChildMessageForm, ChildAppForm, GeofenceForm,
    ChildTaskForm, LimitSetForm, AppBlockedForm, TaskAssignedForm, validated,
)
from app.services import device_links, notifications

bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _partition(user_id=None):
    """Partition from ?partition= / ?device_type= / body, else from the user's registration."""
    value = (request.args.get('partition')
             or request.args.get('device_type')
             or _body().get('partition')
             or _body().get('device_type'))
    if value:
        return notifications.parse_partition(value)
    if user_id is None:
        raise ValidationFailure('partition is required')
    return notifications.partition_for(device_links.resolve_device_type(user_id))


def _sent(result, **extra):
    payload = {'success': True}
    payload.update(result.to_dict())
    payload.update(extra)
    return jsonify(payload)


# -- Generic dispatch --------------------------------------------------------

@bp.route('/send', methods=['POST'])
def send():
    form = validated(SendNotificationForm)
    data = _body().get('data') or {}
    if not isinstance(data, dict):
        raise ValidationFailure('data must be an object')
    result = notifications.send(
        form.target_user_id.data,
        form.title.data,
        form.body.data,
        form.type.data or data.get('type') or 'info',
        data,
        form.priority.data or 'normal',
        form.from_user_id.data or None,
    )
    return _sent(result)


@bp.route('/send-to-parent', methods=['POST'])
def send_to_parent():
    form = validated(ChildMessageForm)
    data = _body().get('data') or {}
    if not isinstance(data, dict):
        raise ValidationFailure('data must be an object')
    result = notifications.notify_parent(form.child_id.data, form.title.data, form.body.data, data)
    return _sent(result)


# -- Child -> parent ---------------------------------------------------------

@bp.route('/sos', methods=['POST'])
def sos():
    form = validated(ChildEventForm)
    result = notifications.sos(form.child_id.data, _body().get('location'))
    return _sent(result, message='SOS alert sent successfully')


@bp.route('/app-installed', methods=['POST'])
def app_installed():
    form = validated(ChildAppForm)
    result = notifications.app_installed(form.child_id.data, form.app_name.data, form.package_name.data)
    return _sent(result)


@bp.route('/app-limit-exceeded', methods=['POST'])
def app_limit_exceeded():
    form = validated(ChildAppForm)
    body = _body()
    result = notifications.app_limit_exceeded(form.child_id.data, form.app_name.data,
                                              body.get('usage'), body.get('limit'))
    return _sent(result)


@bp.route('/battery-low', methods=['POST'])
def battery_low():
    form = validated(ChildEventForm)
    battery_level = _body().get('battery_level')
    if battery_level is None:
        raise ValidationFailure('battery_level is required')
    result = notifications.battery_low(form.child_id.data, battery_level)
    return _sent(result)


@bp.route('/geofence-alert', methods=['POST'])
def geofence_alert():
    form = validated(GeofenceForm)
    result = notifications.geofence_alert(form.child_id.data, form.alert_type.data,
                                          _body().get('location'), form.zone_name.data or None)
    return _sent(result)


@bp.route('/task-completed', methods=['POST'])
def task_completed():
    form = validated(ChildTaskForm)
    result = notifications.task_completed(form.child_id.data, form.task_text.data)
    return _sent(result)


# -- Parent -> child ---------------------------------------------------------

@bp.route('/limit-set', methods=['POST'])
def limit_set():
    form = validated(LimitSetForm)
    limit_value = _body().get('limit_value')
    if limit_value is None:
        raise ValidationFailure('limit_value is required')
    result = notifications.limit_set(form.parent_id.data, form.limit_type.data, limit_value,
                                     form.child_id.data or None)
    return _sent(result)


@bp.route('/app-blocked', methods=['POST'])
def app_blocked():
    form = validated(AppBlockedForm)
    result = notifications.app_blocked(form.parent_id.data, form.app_name.data, form.child_id.data or None)
    return _sent(result)


@bp.route('/task-assigned', methods=['POST'])
def task_assigned():
    form = validated(TaskAssignedForm)
    result = notifications.task_assigned(form.parent_id.data, form.task_text.data, form.child_id.data or None)
    return _sent(result)


# -- Reading and retention ---------------------------------------------------

@bp.route('/<user_id>')
def list_notifications(user_id):
    limit = request.args.get('limit', type=int)
    if limit is None:
        limit = current_app.config['NOTIFICATION_PAGE_SIZE']
    elif limit < 1:
        raise ValidationFailure('limit must be a positive integer')
    items = notifications.list_notifications(user_id, _partition(user_id), limit)
    return jsonify({'success': True, 'notifications': [n.to_api() for n in items]})


@bp.route('/<user_id>/unread-count')
def unread_count(user_id):
    count = notifications.unread_count(user_id, _partition(user_id))
    return jsonify({'success': True, 'count': count})


@bp.route('/<notification_id>/read', methods=['PUT'])
def mark_read(notification_id):
    notifications.mark_read(notification_id, _partition())
    return jsonify({'success': True, 'message': 'Notification marked as read'})


@bp.route('/<user_id>/read-all', methods=['PUT'])
def mark_all_read(user_id):
    count = notifications.mark_all_read(user_id, _partition(user_id))
    return jsonify({'success': True, 'message': f'{count} notifications marked as read', 'count': count})


@bp.route('/<user_id>/cleanup', methods=['POST'])
def cleanup(user_id):
    result = notifications.cleanup(user_id, _partition(user_id), current_app.config['NOTIFICATION_RETENTION'])
    return jsonify({'success': True, **result})


@bp.route('/<notification_id>', methods=['DELETE'])
def delete_notification(notification_id):
    notifications.delete_notification(notification_id, _partition())
    return jsonify({'success': True, 'message': 'Notification deleted successfully'})
