"""
Notification routing and dispatch.

Every notification is first persisted in the recipient's partition
(`parentNotifications` or `childNotifications`), which is the source of
truth for history and unread counts. Only then is a best-effort FCM push
attempted and the notification emitted on the recipient's Socket.IO room.
Neither of those can fail the call; their outcome is reported on the
returned SendResult.
"""

import logging
from datetime import datetime, timezone

from app import socketio
from app import firestore_dao as dao
from app.errors import (
    DeliveryFailure, NotificationNotFound, TargetNotFound, UnroutableDevice,
    ValidationFailure, store_errors,
)
from app.firestore_models import (
    DELIVERY_DELIVERED, DELIVERY_FAILED, DELIVERY_SKIPPED,
    DEVICE_CHILD, DEVICE_PARENT, PARTITION_TO_CHILD, PARTITION_TO_PARENT,
    PRIORITIES, PRIORITY_HIGH, PRIORITY_NORMAL,
    Delivery, Notification, SendResult, normalize_device_type,
)
from app.services import device_links
from app.services.push import send_push

logger = logging.getLogger(__name__)

RETENTION = 30

PARTITION_COLLECTIONS = {
    PARTITION_TO_PARENT: 'parentNotifications',
    PARTITION_TO_CHILD: 'childNotifications',
}

_PARTITION_ALIASES = {
    PARTITION_TO_PARENT: PARTITION_TO_PARENT,
    PARTITION_TO_CHILD: PARTITION_TO_CHILD,
    DEVICE_PARENT: PARTITION_TO_PARENT,
    DEVICE_CHILD: PARTITION_TO_CHILD,
}


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def partition_for(device_type):
    """Map a recipient's device type to its notification partition."""
    kind = normalize_device_type(device_type)
    if kind == DEVICE_PARENT:
        return PARTITION_TO_PARENT
    if kind == DEVICE_CHILD:
        return PARTITION_TO_CHILD
    raise UnroutableDevice(f'Cannot route a notification to device type {device_type!r}')


def parse_partition(value):
    """Accept 'to-parent'/'to-child' or the bare device types."""
    partition = _PARTITION_ALIASES.get((value or '').strip().lower())
    if partition is None:
        raise ValidationFailure(f'Unknown notification partition: {value!r}')
    return partition


def collection_for(partition):
    return PARTITION_COLLECTIONS[parse_partition(partition)]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def _sender_fields(from_id, recipient_partition):
    if not from_id:
        return {}
    sender = device_links.get_registration(from_id)
    kind = sender.kind if sender else None
    if kind == DEVICE_PARENT:
        return {'from_parent_id': from_id}
    if kind == DEVICE_CHILD:
        return {'from_child_id': from_id}
    # Unregistered senders take the opposite role of the recipient
    if recipient_partition == PARTITION_TO_CHILD:
        return {'from_parent_id': from_id}
    return {'from_child_id': from_id}


def _deliver(registration, notification_id, title, body, type_, data, priority):
    if not registration.push_token:
        logger.info('No push token for %s, push skipped', registration.id)
        return Delivery(status=DELIVERY_SKIPPED, reason='no push token')

    payload = dict(data or {})
    payload.update({
        'notification_id': notification_id,
        'type': type_,
        'user_id': registration.id,
        'priority': priority,
    })
    try:
        push_id = send_push(registration.push_token, title, body, payload, priority)
    except DeliveryFailure as e:
        logger.warning('Push to %s failed for notification %s: %s',
                       registration.id, notification_id, e)
        return Delivery(status=DELIVERY_FAILED, reason=str(e))
    logger.info('Push sent to %s: %s', registration.id, push_id)
    return Delivery(status=DELIVERY_DELIVERED, push_id=push_id)


def _broadcast(user_id, notification):
    if socketio.server is None:
        return
    try:
        socketio.emit('notification', notification.to_api(), to=f'device_{user_id}')
    except Exception as e:
        logger.warning('Live feed emit to %s failed: %s', user_id, e)


def send(target_id, title, body, type_='info', data=None, priority=PRIORITY_NORMAL, from_id=None):
    """Persist a notification for `target_id`, then try to push it.

    Returns:
        SendResult with the persisted ID and the push delivery outcome.

    Raises:
        ValidationFailure: missing title/body or bad priority
        TargetNotFound: target is not registered
        UnroutableDevice: target's device type is neither parent nor child
        PersistenceFailure: the notification could not be stored
    """
    if not target_id or not title or not body:
        raise ValidationFailure('target_id, title and body are required')
    if priority not in PRIORITIES:
        raise ValidationFailure(f'priority must be one of {", ".join(PRIORITIES)}')

    registration = device_links.get_registration(target_id)
    if registration is None:
        raise TargetNotFound(f'Target device not found: {target_id}')
    partition = partition_for(registration.device_type)

    notification = Notification(
        user_id=target_id,
        title=title,
        body=body,
        type=type_ or 'info',
        priority=priority,
        data=dict(data or {}),
        timestamp=datetime.now(timezone.utc),
        **_sender_fields(from_id, partition),
    )
    with store_errors('Failed to store notification'):
        notification.id = dao.create_notification(PARTITION_COLLECTIONS[partition], notification.to_dict())
    logger.info('Notification %s (%s) stored in %s for %s',
                notification.id, notification.type, partition, target_id)

    delivery = _deliver(registration, notification.id, title, body,
                        notification.type, notification.data, priority)
    _broadcast(target_id, notification)
    return SendResult(notification_id=notification.id, partition=partition, delivery=delivery)


# ---------------------------------------------------------------------------
# Child -> parent events
# ---------------------------------------------------------------------------

def _format_location(location):
    """Return (latitude, longitude), or None when there is no usable fix."""
    if not location:
        return None
    try:
        latitude = float(location['latitude'])
        longitude = float(location['longitude'])
    except (KeyError, TypeError, ValueError):
        logger.info('Ignoring incomplete location %r', location)
        return None
    return latitude, longitude


def sos(child_id, location=None):
    parent_id = device_links.require_peer(child_id)
    coords = _format_location(location)
    if coords:
        location_text = f'Location: {coords[0]:.4f}, {coords[1]:.4f}'
    else:
        location_text = 'Location not available'
    logger.warning('SOS from %s (%s)', child_id, location_text)
    return send(
        parent_id,
        '🚨 EMERGENCY SOS ALERT',
        f'Your child needs immediate help! {location_text}',
        'sos',
        {
            'child_id': child_id,
            'latitude': str(coords[0]) if coords else '',
            'longitude': str(coords[1]) if coords else '',
        },
        PRIORITY_HIGH,
        child_id,
    )


def notify_parent(child_id, title, body, data=None):
    parent_id = device_links.require_peer(child_id)
    data = dict(data or {})
    return send(parent_id, title, body, data.get('type') or 'info', data, PRIORITY_HIGH, child_id)


def app_installed(child_id, app_name, package_name=None):
    parent_id = device_links.require_peer(child_id)
    return send(
        parent_id,
        '📱 New App Installed',
        f"{app_name} was installed on your child's device",
        'app_installed',
        {'app_name': app_name, 'package_name': package_name or ''},
        PRIORITY_NORMAL,
        child_id,
    )


def app_limit_exceeded(child_id, app_name, usage=None, limit=None):
    parent_id = device_links.require_peer(child_id)
    return send(
        parent_id,
        '⏱️ App Limit Reached',
        f'{app_name} has reached its {limit} minute daily limit',
        'app_limit_exceeded',
        {'app_name': app_name, 'usage': usage, 'limit': limit},
        PRIORITY_NORMAL,
        child_id,
    )


def battery_low(child_id, battery_level):
    parent_id = device_links.require_peer(child_id)
    return send(
        parent_id,
        '🔋 Low Battery Alert',
        f"Child's device battery is at {battery_level}%",
        'battery_low',
        {'battery_level': battery_level},
        PRIORITY_HIGH,
        child_id,
    )


def geofence_alert(child_id, alert_type, location=None, zone_name=None):
    parent_id = device_links.require_peer(child_id)
    action = 'entered' if alert_type == 'entered' else 'left'
    return send(
        parent_id,
        '📍 Geofence Alert',
        f'Your child {action} {zone_name or "a safe zone"}',
        'geofence_alert',
        {'alert_type': alert_type, 'location': location, 'zone_name': zone_name},
        PRIORITY_HIGH,
        child_id,
    )


def task_completed(child_id, task_text):
    parent_id = device_links.require_peer(child_id)
    return send(
        parent_id,
        '✅ Task Completed',
        f'Your child completed: {task_text}',
        'task_completed',
        {'task_text': task_text},
        PRIORITY_NORMAL,
        child_id,
    )


# ---------------------------------------------------------------------------
# Parent -> child events
# ---------------------------------------------------------------------------

def _child_of(parent_id, child_id=None):
    if child_id:
        device_links.verify_link(parent_id, child_id)
        return child_id
    return device_links.require_peer(parent_id)


def limit_set(parent_id, limit_type, limit_value, child_id=None):
    child_id = _child_of(parent_id, child_id)
    return send(
        child_id,
        '⏱️ New Limit Set',
        f'Your parent set a {limit_type} limit: {limit_value}',
        'limit_set',
        {'limit_type': limit_type, 'limit_value': limit_value},
        PRIORITY_NORMAL,
        parent_id,
    )


def app_blocked(parent_id, app_name, child_id=None):
    child_id = _child_of(parent_id, child_id)
    return send(
        child_id,
        '🔒 App Blocked',
        f'{app_name} has been blocked by your parent',
        'app_blocked',
        {'app_name': app_name},
        PRIORITY_HIGH,
        parent_id,
    )


def task_assigned(parent_id, task_text, child_id=None):
    child_id = _child_of(parent_id, child_id)
    return send(
        child_id,
        '✅ New Task Assigned',
        f'Your parent assigned you a task: {task_text}',
        'task_assigned',
        {'task_text': task_text},
        PRIORITY_NORMAL,
        parent_id,
    )


def _remote_command(parent_id, child_id, action):
    device_links.verify_link(parent_id, child_id)
    verb = 'locked' if action == 'lock' else 'unlocked'
    return send(
        child_id,
        '🔒 Device Locked' if action == 'lock' else '🔓 Device Unlocked',
        f'Your device has been remotely {verb} by your parent',
        f'device_{action}',
        {
            'action': action,
            'parent_id': parent_id,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        },
        PRIORITY_HIGH,
        parent_id,
    )


def remote_lock(parent_id, child_id):
    return _remote_command(parent_id, child_id, 'lock')


def remote_unlock(parent_id, child_id):
    return _remote_command(parent_id, child_id, 'unlock')


# ---------------------------------------------------------------------------
# Reading and retention
# ---------------------------------------------------------------------------

def list_notifications(user_id, partition, limit=15):
    collection = collection_for(partition)
    with store_errors('Failed to fetch notifications'):
        docs = dao.get_notifications(collection, user_id, limit)
    return [Notification.from_dict(d, d['id']) for d in docs]


def mark_read(notification_id, partition):
    collection = collection_for(partition)
    with store_errors('Failed to mark notification as read'):
        if dao.get_notification(collection, notification_id) is None:
            raise NotificationNotFound(f'Notification not found: {notification_id}')
        dao.mark_notification_read(collection, notification_id)


def mark_all_read(user_id, partition):
    """Mark every unread notification as read in one batch. Returns the count."""
    collection = collection_for(partition)
    with store_errors('Failed to mark notifications as read'):
        count = dao.mark_all_read(collection, user_id)
    logger.info('Marked %d notifications read for %s in %s', count, user_id, partition)
    return count


def unread_count(user_id, partition):
    collection = collection_for(partition)
    with store_errors('Failed to count unread notifications'):
        return dao.count_unread(collection, user_id)


def delete_notification(notification_id, partition):
    collection = collection_for(partition)
    with store_errors('Failed to delete notification'):
        if dao.get_notification(collection, notification_id) is None:
            raise NotificationNotFound(f'Notification not found: {notification_id}')
        dao.delete_notification(collection, notification_id)


def _sort_key(notification):
    return notification.timestamp.timestamp() if notification.timestamp else 0


def cleanup(user_id, partition, keep=RETENTION):
    """Delete everything beyond the `keep` most recent notifications.

    Returns:
        dict with deleted_count and remaining_count
    """
    collection = collection_for(partition)
    with store_errors('Failed to clean up notifications'):
        docs = dao.get_all_notifications(collection, user_id)
        notifications = [Notification.from_dict(d, d['id']) for d in docs]
        notifications.sort(key=_sort_key, reverse=True)
        stale = [n.id for n in notifications[keep:]]
        dao.delete_notifications(collection, stale)
    if stale:
        logger.info('Deleted %d old notifications for %s in %s', len(stale), user_id, partition)
    return {
        'deleted_count': len(stale),
        'remaining_count': min(len(notifications), keep),
    }
