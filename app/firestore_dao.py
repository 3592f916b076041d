"""
Firestore Data Access Object (DAO) layer.

Services call functions from this module instead of touching the
Firestore client directly. Every function is a single store round trip
(or one atomic batch commit) and returns plain dicts.
"""

from datetime import datetime, timezone

from google.cloud.firestore_v1 import FieldFilter

from app.firebase_init import get_db


REGISTRATIONS = 'deviceRegistrations'
LINKS = 'deviceLinks'
DEVICES = 'devices'
APP_USAGE_LIMITS = 'appUsageLimits'


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _doc_to_dict(doc_snapshot):
    """Convert a Firestore DocumentSnapshot to a dict with 'id' field."""
    if not doc_snapshot.exists:
        return None
    d = doc_snapshot.to_dict()
    d['id'] = doc_snapshot.id
    return d


def _query_to_list(query_ref):
    """Run a query and return a list of dicts."""
    return [_doc_to_dict(doc) for doc in query_ref.stream()]


def _now():
    return datetime.now(timezone.utc)


# ========================================================================
# Device registrations  (collection: deviceRegistrations)
# ========================================================================

def get_registration(device_id):
    """Get a device registration by device ID. Returns dict or None."""
    doc = get_db().collection(REGISTRATIONS).document(device_id).get()
    return _doc_to_dict(doc)


def save_registration(device_id, data):
    """Merge fields into a device registration, creating it if absent."""
    data.setdefault('updated_at', _now())
    get_db().collection(REGISTRATIONS).document(device_id).set(data, merge=True)


# ========================================================================
# Device links  (collection: deviceLinks)
# ========================================================================

def link_devices(link_id, link_data, parent_id, child_id):
    """Write the link edge and both back-references in one atomic batch."""
    db = get_db()
    now = _now()
    batch = db.batch()
    link_data.setdefault('linked_at', now)
    batch.set(db.collection(LINKS).document(link_id), link_data)
    batch.set(db.collection(REGISTRATIONS).document(parent_id),
              {'linked_to': child_id, 'updated_at': now}, merge=True)
    batch.set(db.collection(REGISTRATIONS).document(child_id),
              {'linked_to': parent_id, 'updated_at': now}, merge=True)
    batch.commit()


def unlink_devices(link_id, parent_id, child_id):
    """Delete the link edge and clear both back-references in one batch."""
    db = get_db()
    now = _now()
    batch = db.batch()
    batch.delete(db.collection(LINKS).document(link_id))
    batch.set(db.collection(REGISTRATIONS).document(parent_id),
              {'linked_to': None, 'updated_at': now}, merge=True)
    batch.set(db.collection(REGISTRATIONS).document(child_id),
              {'linked_to': None, 'updated_at': now}, merge=True)
    batch.commit()


def get_link(link_id):
    """Get a link edge by ID. Returns dict or None."""
    doc = get_db().collection(LINKS).document(link_id).get()
    return _doc_to_dict(doc)


def get_links_for_device(device_id):
    """Get every link edge where the device is either the parent or the child."""
    links = _query_to_list(
        get_db().collection(LINKS)
        .where(filter=FieldFilter('parent_id', '==', device_id))
    )
    links.extend(_query_to_list(
        get_db().collection(LINKS)
        .where(filter=FieldFilter('child_id', '==', device_id))
    ))
    return links


# ========================================================================
# Notifications  (collections: parentNotifications / childNotifications)
# ========================================================================

def create_notification(collection, data):
    """Create a notification. Returns doc ID."""
    data.setdefault('timestamp', _now())
    data.setdefault('is_read', False)
    _, doc_ref = get_db().collection(collection).add(data)
    return doc_ref.id


def get_notification(collection, notification_id):
    """Get a notification by ID. Returns dict or None."""
    doc = get_db().collection(collection).document(notification_id).get()
    return _doc_to_dict(doc)


def get_notifications(collection, user_id, limit=15):
    """Get notifications for a user, newest first."""
    return _query_to_list(
        get_db().collection(collection)
        .where(filter=FieldFilter('user_id', '==', user_id))
        .order_by('timestamp', direction='DESCENDING')
        .limit(limit)
    )


def get_all_notifications(collection, user_id):
    """Get every notification for a user, unordered."""
    return _query_to_list(
        get_db().collection(collection)
        .where(filter=FieldFilter('user_id', '==', user_id))
    )


def mark_notification_read(collection, notification_id):
    """Mark a single notification as read."""
    get_db().collection(collection).document(notification_id).update({
        'is_read': True,
        'read_at': _now(),
    })


def mark_all_read(collection, user_id):
    """Mark all unread notifications for a user as read in one batch.

    Returns the number of notifications updated.
    """
    docs = (
        get_db().collection(collection)
        .where(filter=FieldFilter('user_id', '==', user_id))
        .where(filter=FieldFilter('is_read', '==', False))
        .stream()
    )
    batch = get_db().batch()
    now = _now()
    count = 0
    for doc in docs:
        batch.update(doc.reference, {'is_read': True, 'read_at': now})
        count += 1
    if count:
        batch.commit()
    return count


def count_unread(collection, user_id):
    """Count unread notifications for a user."""
    docs = (
        get_db().collection(collection)
        .where(filter=FieldFilter('user_id', '==', user_id))
        .where(filter=FieldFilter('is_read', '==', False))
        .stream()
    )
    return sum(1 for _ in docs)


def delete_notification(collection, notification_id):
    """Delete a notification."""
    get_db().collection(collection).document(notification_id).delete()


def delete_notifications(collection, notification_ids):
    """Delete several notifications in one atomic batch."""
    if not notification_ids:
        return
    db = get_db()
    batch = db.batch()
    for notification_id in notification_ids:
        batch.delete(db.collection(collection).document(notification_id))
    batch.commit()


# ========================================================================
# Usage state  (collections: devices, appUsageLimits)
# ========================================================================

def get_device_usage(device_id):
    """Get the embedded usage document (apps list + screen_time). Returns dict or None."""
    doc = get_db().collection(DEVICES).document(device_id).get()
    return _doc_to_dict(doc)


def get_app_usage_limits(device_id):
    """Get the package -> minutes limits document. Returns dict or None."""
    doc = get_db().collection(APP_USAGE_LIMITS).document(device_id).get()
    return _doc_to_dict(doc)


def save_usage_state(device_id, usage=None, limit_apps=None, clear_limits=False):
    """Write the usage document and/or the limits document in one atomic batch.

    `usage` is merged into devices/<id>; `limit_apps` replaces
    appUsageLimits/<id>; `clear_limits` deletes it instead.
    """
    db = get_db()
    now = _now()
    batch = db.batch()
    writes = 0
    if usage is not None:
        usage = dict(usage)
        usage['last_synced'] = now
        batch.set(db.collection(DEVICES).document(device_id), usage, merge=True)
        writes += 1
    if clear_limits:
        batch.delete(db.collection(APP_USAGE_LIMITS).document(device_id))
        writes += 1
    elif limit_apps is not None:
        batch.set(db.collection(APP_USAGE_LIMITS).document(device_id), {
            'apps': limit_apps,
            'updated_at': now,
        })
        writes += 1
    if writes:
        batch.commit()
