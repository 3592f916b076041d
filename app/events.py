import logging

from flask_socketio import emit, join_room, leave_room

from app import socketio
from app.errors import FamilyLinkError
from app.services import device_links, notifications

logger = logging.getLogger(__name__)


def device_room(device_id):
    return f'device_{device_id}'


@socketio.on('join_device')
def handle_join_device(data):
    data = data or {}
    device_id = data.get('device_id')
    if not device_id:
        emit('error', {'message': 'Device ID required'})
        return

    try:
        partition = data.get('partition') or notifications.partition_for(
            device_links.resolve_device_type(device_id))
        count = notifications.unread_count(device_id, partition)
    except FamilyLinkError as e:
        emit('error', {'message': e.message})
        return

    join_room(device_room(device_id))
    logger.info('Device %s joined its live notification feed', device_id)
    emit('unread_count', {
        'device_id': device_id,
        'partition': notifications.parse_partition(partition),
        'count': count,
    })


@socketio.on('leave_device')
def handle_leave_device(data):
    device_id = (data or {}).get('device_id')
    if not device_id:
        emit('error', {'message': 'Device ID required'})
        return
    leave_room(device_room(device_id))
