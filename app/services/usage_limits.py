"""
Screen-time limits with lazy daily resets.

A per-app limit is one value exposed through two projections:

  - the embedded `apps` list on devices/<id>, which also carries today's
    usage and the blocked flag (read by dashboards)
  - the appUsageLimits/<id> map of package name -> minutes (polled by the
    child device)

Every write goes through both projections in a single batch so they never
drift apart. Apps without a package name only exist in the embedded list.

Usage counters roll over lazily: the first write touching an entry on a
new calendar day zeroes its usage and clears `blocked`. There is no
background sweep.
"""

import logging
from datetime import datetime, timezone

from google.api_core.exceptions import GoogleAPIError

from app import firestore_dao as dao
from app.errors import FamilyLinkError, ValidationFailure, store_errors
from app.firestore_models import AppUsageEntry, ScreenTime, PRIORITY_HIGH
from app.services import device_links, notifications

logger = logging.getLogger(__name__)


def _today():
    return datetime.now(timezone.utc).date().isoformat()


def normalize_limit(value):
    """Return a positive minute count, or None for "unlimited".

    None, zero and negative values all mean no limit.
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationFailure(f'Invalid limit: {value!r}')
    try:
        minutes = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationFailure(f'Invalid limit: {value!r}')
    if minutes != float(value):
        raise ValidationFailure(f'Limit must be a whole number of minutes: {value!r}')
    return minutes if minutes > 0 else None


def _limit_text(limit):
    return f'{limit} minutes per day' if limit is not None else 'removed'


def _notify_device(device_id, title, body, type_, data):
    """Tell the device its limits changed. Never fails the caller."""
    try:
        if device_links.get_registration(device_id) is None:
            return
        notifications.send(device_id, title, body, type_, data, PRIORITY_HIGH)
    except (FamilyLinkError, GoogleAPIError) as e:
        logger.warning('Could not notify %s about %s: %s', device_id, type_, e)


def _load(device_id):
    with store_errors('Failed to read usage state'):
        usage = dao.get_device_usage(device_id)
        limits = dao.get_app_usage_limits(device_id)
    entries = [AppUsageEntry.from_dict(a) for a in (usage or {}).get('apps') or []]
    limit_apps = dict((limits or {}).get('apps') or {})
    return entries, limit_apps


def _project_onto_entries(entries, limit_apps, today, packages=None):
    """Apply the map's caps to matching entries. Returns True when any changed."""
    changed = False
    for entry in entries:
        if not entry.package_name:
            continue
        if packages is not None and entry.package_name not in packages:
            continue
        limit = limit_apps.get(entry.package_name)
        if entry.limit_minutes != limit:
            entry.apply_limit(limit, today)
            changed = True
    return changed


# ---------------------------------------------------------------------------
# Embedded per-app and aggregate limits
# ---------------------------------------------------------------------------

def set_app_limit(device_id, app_name, limit_minutes=None, package_name=None):
    """Set (or clear) the daily limit for one app, matched by display name.

    Usage is kept when the limit changes within the same day and reset
    when the entry was last touched on an earlier day.

    Returns:
        The updated AppUsageEntry
    """
    if not device_id or not app_name:
        raise ValidationFailure('device_id and app_name are required')
    limit = normalize_limit(limit_minutes)
    today = _today()

    entries, limit_apps = _load(device_id)
    previous_package = None
    entry = next((e for e in entries if e.name == app_name), None)
    if entry is None:
        entry = AppUsageEntry(
            name=app_name,
            package_name=package_name or '',
            limit_minutes=limit,
            usage_minutes=0,
            blocked=False,
            last_reset_date=today,
        )
        entries.append(entry)
    else:
        if package_name and package_name != entry.package_name:
            previous_package = entry.package_name
            entry.package_name = package_name
        entry.apply_limit(limit, today)

    new_limits = None
    if entry.package_name:
        new_limits = dict(limit_apps)
        if previous_package:
            new_limits.pop(previous_package, None)
        if limit is None:
            new_limits.pop(entry.package_name, None)
        else:
            new_limits[entry.package_name] = limit

    with store_errors('Failed to update app limit'):
        dao.save_usage_state(
            device_id,
            usage={'apps': [e.to_dict() for e in entries]},
            limit_apps=new_limits,
        )
    logger.info('App limit for %s on %s set to %s (usage %d min)',
                app_name, device_id, limit, entry.usage_minutes)

    _notify_device(
        device_id,
        '📱 App Limit Updated',
        f'{app_name} limit has been set to {_limit_text(limit)}',
        'app_limit_updated',
        {'app_name': app_name, 'limit': limit, 'package_name': entry.package_name},
    )
    return entry


def set_screen_time_limit(device_id, limit_minutes=None):
    """Set (or clear) the aggregate daily screen-time limit.

    Returns:
        The updated ScreenTime
    """
    if not device_id:
        raise ValidationFailure('device_id is required')
    limit = normalize_limit(limit_minutes)
    today = _today()

    with store_errors('Failed to read usage state'):
        usage = dao.get_device_usage(device_id) or {}
    screen_time = ScreenTime.from_dict(usage.get('screen_time'))
    screen_time.apply_limit(limit, today)

    with store_errors('Failed to update screen time limit'):
        dao.save_usage_state(device_id, usage={'screen_time': screen_time.to_dict()})
    logger.info('Screen time limit on %s set to %s (used %d min today)',
                device_id, limit, screen_time.total_minutes)

    _notify_device(
        device_id,
        '⏱️ Screen Time Limit Updated',
        f'Total screen time limit has been set to {_limit_text(limit)}',
        'screen_time_limit_updated',
        {'limit': limit},
    )
    return screen_time


def get_usage_state(device_id):
    """Return the embedded apps list and aggregate screen time for a device."""
    with store_errors('Failed to read usage state'):
        usage = dao.get_device_usage(device_id)
    if usage is None:
        return {'apps': [], 'screen_time': None}
    return {
        'apps': [AppUsageEntry.from_dict(a) for a in usage.get('apps') or []],
        'screen_time': ScreenTime.from_dict(usage['screen_time']) if usage.get('screen_time') else None,
    }


# ---------------------------------------------------------------------------
# Package -> minutes map
# ---------------------------------------------------------------------------

def set_pull_limit(device_id, package_name, limit_minutes=None):
    """Set one package's cap; a missing or non-positive limit removes it.

    Returns:
        The full package -> minutes map after the write
    """
    if not device_id or not package_name:
        raise ValidationFailure('device_id and package_name are required')
    limit = normalize_limit(limit_minutes)
    today = _today()

    entries, limit_apps = _load(device_id)
    if limit is None:
        limit_apps.pop(package_name, None)
    else:
        limit_apps[package_name] = limit
    changed = _project_onto_entries(entries, limit_apps, today, packages={package_name})

    with store_errors('Failed to update app usage limit'):
        dao.save_usage_state(
            device_id,
            usage={'apps': [e.to_dict() for e in entries]} if changed else None,
            limit_apps=limit_apps,
        )
    logger.info('Usage limit for %s on %s set to %s (%d apps limited)',
                package_name, device_id, limit, len(limit_apps))
    return limit_apps


def batch_set_pull_limits(device_id, apps):
    """Replace the whole package -> minutes map, dropping non-positive entries.

    Returns:
        The stored map
    """
    if not device_id or not isinstance(apps, dict):
        raise ValidationFailure('device_id and an apps object are required')
    today = _today()

    filtered = {}
    for package_name, value in apps.items():
        limit = normalize_limit(value)
        if limit is not None:
            filtered[package_name] = limit

    entries, _ = _load(device_id)
    changed = _project_onto_entries(entries, filtered, today)

    with store_errors('Failed to batch update app usage limits'):
        dao.save_usage_state(
            device_id,
            usage={'apps': [e.to_dict() for e in entries]} if changed else None,
            limit_apps=filtered,
        )
    logger.info('Replaced usage limits on %s (%d apps limited)', device_id, len(filtered))
    return filtered


def clear_all_pull_limits(device_id):
    """Delete the package -> minutes map and lift every package cap."""
    if not device_id:
        raise ValidationFailure('device_id is required')
    today = _today()

    entries, _ = _load(device_id)
    changed = _project_onto_entries(entries, {}, today)

    with store_errors('Failed to delete app usage limits'):
        dao.save_usage_state(
            device_id,
            usage={'apps': [e.to_dict() for e in entries]} if changed else None,
            clear_limits=True,
        )
    logger.info('Cleared all usage limits on %s', device_id)


def get_pull_limits(device_id):
    """Return the package -> minutes map; empty means every app is unlimited."""
    with store_errors('Failed to fetch app usage limits'):
        data = dao.get_app_usage_limits(device_id)
    if data is None:
        return {}
    return dict(data.get('apps') or {})
