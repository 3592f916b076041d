"""Device registration and parent <-> child pairing.

A pairing is one edge document in `deviceLinks`; the `linked_to` field on
each registration is its read projection. Both are written in the same
atomic batch, so a failed link leaves neither side changed.
"""

import logging

from app import firestore_dao as dao
from app.errors import (
    DeviceNotFound, LinkFailure, LinkMismatch, PeerNotFound, ValidationFailure,
    store_errors,
)
from app.firestore_models import DeviceLink, DeviceRegistration, _now

logger = logging.getLogger(__name__)


def _mask(token):
    if not token:
        return 'missing'
    return f'{token[:12]}...'


def get_registration(device_id):
    """Return the DeviceRegistration for a device, or None."""
    with store_errors('Failed to read device registration'):
        data = dao.get_registration(device_id)
    if data is None:
        return None
    return DeviceRegistration.from_dict(data, device_id)


def register(device_id, device_type, push_token=None, family_id=None):
    """Create or refresh a device registration and return the merged snapshot.

    `push_token` and `family_id` are kept from the stored record when
    omitted; `linked_to` is never taken from the caller.
    """
    if not device_id or not device_type:
        raise ValidationFailure('device_id and device_type are required')

    with store_errors('Failed to read device registration'):
        existing = dao.get_registration(device_id) or {}

    now = _now()
    update = {
        'device_type': device_type.strip().lower(),
        'updated_at': now,
    }
    if push_token:
        update['push_token'] = push_token
    elif not existing:
        update['push_token'] = None
    if family_id is not None:
        update['family_id'] = family_id
    elif existing.get('family_id'):
        update['family_id'] = existing['family_id']
    if existing.get('linked_to'):
        update['linked_to'] = existing['linked_to']
    if not existing:
        update['registered_at'] = now

    with store_errors('Failed to register device'):
        dao.save_registration(device_id, dict(update))

    merged = {k: v for k, v in existing.items() if k != 'id'}
    merged.update(update)
    registration = DeviceRegistration.from_dict(merged, device_id)
    logger.info('Registered %s device %s (push token %s)',
                registration.kind, device_id, _mask(registration.push_token))
    return registration


def link(parent_id, child_id):
    """Pair a parent and a child device. Returns the DeviceLink edge."""
    if not parent_id or not child_id:
        raise ValidationFailure('parent_id and child_id are required')
    if parent_id == child_id:
        raise ValidationFailure('A device cannot be linked to itself')

    edge = DeviceLink(
        id=DeviceLink.make_id(parent_id, child_id),
        parent_id=parent_id,
        child_id=child_id,
        linked_at=_now(),
    )
    with store_errors('Failed to link devices', LinkFailure):
        dao.link_devices(edge.id, edge.to_dict(), parent_id, child_id)
    logger.info('Linked %s (parent) <-> %s (child)', parent_id, child_id)
    return edge


def unlink(parent_id, child_id):
    """Remove a pairing and clear both back-references."""
    if not parent_id or not child_id:
        raise ValidationFailure('parent_id and child_id are required')
    link_id = DeviceLink.make_id(parent_id, child_id)
    with store_errors('Failed to read device link'):
        existing = dao.get_link(link_id)
    if existing is None:
        raise LinkMismatch(f'{parent_id} is not linked to {child_id}')
    with store_errors('Failed to unlink devices', LinkFailure):
        dao.unlink_devices(link_id, parent_id, child_id)
    logger.info('Unlinked %s <-> %s', parent_id, child_id)


def reconcile_link(device_id):
    """Re-derive both back-references from the newest edge touching a device.

    Repairs registrations left half-linked by older writers. Returns the
    peer ID, or None when the device has no edge.
    """
    with store_errors('Failed to read device links'):
        edges = [DeviceLink.from_dict(d, d['id']) for d in dao.get_links_for_device(device_id)]
    if not edges:
        return None
    edges.sort(key=lambda e: e.linked_at.timestamp() if e.linked_at else 0, reverse=True)
    newest = edges[0]
    with store_errors('Failed to reconcile device link', LinkFailure):
        dao.link_devices(newest.id, newest.to_dict(), newest.parent_id, newest.child_id)
    return newest.peer_of(device_id)


def resolve_peer(device_id):
    """Return the linked peer's device ID, or None when unlinked."""
    registration = get_registration(device_id)
    if registration is None:
        raise DeviceNotFound(f'Device not found: {device_id}')
    return registration.linked_to or None


def require_peer(device_id):
    peer_id = resolve_peer(device_id)
    if not peer_id:
        raise PeerNotFound(f'No device linked to {device_id}')
    return peer_id


def resolve_device_type(device_id):
    """Return 'parent', 'child' or 'unknown' for a registered device."""
    registration = get_registration(device_id)
    if registration is None:
        raise DeviceNotFound(f'Device not found: {device_id}')
    return registration.kind


def verify_link(parent_id, child_id):
    """Raise unless the child's registration points back at the parent."""
    peer_id = resolve_peer(child_id)
    if peer_id != parent_id:
        raise LinkMismatch(f'{parent_id} is not linked to {child_id}')
