import pytest

from app.errors import PersistenceFailure, ValidationFailure
from app.services import usage_limits
from tests.conftest import TODAY, YESTERDAY


def _apps(db, device_id):
    return {a['name']: a for a in db.doc('devices', device_id)['apps']}


@pytest.mark.parametrize('value, expected', [
    (None, None), ('', None), (0, None), (-5, None), (45, 45), ('30', 30), (60.0, 60),
])
def test_normalize_limit(value, expected):
    assert usage_limits.normalize_limit(value) == expected


@pytest.mark.parametrize('value', ['soon', 12.5, True, [30], float('inf'), float('-inf'), float('nan')])
def test_normalize_limit_rejects(value):
    with pytest.raises(ValidationFailure):
        usage_limits.normalize_limit(value)


def test_new_app_entry(db, today):
    entry = usage_limits.set_app_limit('c1', 'YouTube', 60, 'com.google.youtube')

    assert entry.usage_minutes == 0
    assert entry.blocked is False
    assert entry.last_reset_date == TODAY
    assert _apps(db, 'c1')['YouTube']['limit_minutes'] == 60
    assert db.doc('appUsageLimits', 'c1')['apps'] == {'com.google.youtube': 60}


def test_stale_entry_is_reset(db, today):
    db.put('devices', 'c1', {'apps': [{
        'name': 'YouTube', 'package_name': 'com.google.youtube', 'limit_minutes': 60,
        'usage_minutes': 59, 'blocked': True, 'last_reset_date': YESTERDAY,
    }]})

    entry = usage_limits.set_app_limit('c1', 'YouTube', 30)

    assert (entry.usage_minutes, entry.blocked, entry.last_reset_date) == (0, False, TODAY)
    stored = _apps(db, 'c1')['YouTube']
    assert stored['usage_minutes'] == 0
    assert stored['blocked'] is False
    assert stored['last_reset_date'] == TODAY


def test_same_day_keeps_usage_and_recomputes_blocked(db, today):
    db.put('devices', 'c1', {'apps': [{
        'name': 'TikTok', 'package_name': 'com.tiktok', 'limit_minutes': 90,
        'usage_minutes': 45, 'blocked': False, 'last_reset_date': TODAY,
    }]})

    entry = usage_limits.set_app_limit('c1', 'TikTok', 30)
    assert entry.usage_minutes == 45
    assert entry.blocked is True

    entry = usage_limits.set_app_limit('c1', 'TikTok', None)
    assert entry.blocked is False
    assert entry.limit_minutes is None
    assert db.doc('appUsageLimits', 'c1')['apps'] == {}


def test_same_day_is_idempotent(db, today):
    usage_limits.set_app_limit('c1', 'Chrome', 20, 'com.android.chrome')
    first = db.docs('devices')['c1']['apps']
    usage_limits.set_app_limit('c1', 'Chrome', 20, 'com.android.chrome')
    assert db.docs('devices')['c1']['apps'] == first


def test_app_without_package_only_in_embedded_list(db, today):
    usage_limits.set_app_limit('c1', 'Sideloaded', 15)
    assert _apps(db, 'c1')['Sideloaded']['limit_minutes'] == 15
    assert db.doc('appUsageLimits', 'c1') is None


def test_package_rename_moves_map_entry(db, today):
    usage_limits.set_app_limit('c1', 'Chat', 20, 'com.chat.old')
    usage_limits.set_app_limit('c1', 'Chat', 25, 'com.chat.new')
    assert db.doc('appUsageLimits', 'c1')['apps'] == {'com.chat.new': 25}


def test_app_limit_write_failure(db, today):
    db.fail_commits = True
    with pytest.raises(PersistenceFailure):
        usage_limits.set_app_limit('c1', 'YouTube', 60, 'com.google.youtube')
    assert db.doc('devices', 'c1') is None
    assert db.doc('appUsageLimits', 'c1') is None


def test_screen_time_limit_resets_on_new_day(db, today):
    db.put('devices', 'c1', {'screen_time': {
        'limit': 120, 'total_minutes': 100, 'last_reset_date': YESTERDAY,
    }})

    screen_time = usage_limits.set_screen_time_limit('c1', 180)

    assert screen_time.total_minutes == 0
    assert screen_time.limit == 180
    assert db.doc('devices', 'c1')['screen_time']['last_reset_date'] == TODAY


def test_screen_time_limit_same_day(db, today):
    db.put('devices', 'c1', {'screen_time': {
        'limit': 120, 'total_minutes': 100, 'last_reset_date': TODAY,
    }})
    screen_time = usage_limits.set_screen_time_limit('c1', 0)
    assert screen_time.total_minutes == 100
    assert screen_time.limit is None


def test_limit_change_notifies_registered_device(db, fcm, today, family):
    usage_limits.set_app_limit('c1', 'YouTube', 60, 'com.google.youtube')

    sent = list(db.docs('childNotifications').values())
    assert len(sent) == 1
    assert sent[0]['type'] == 'app_limit_updated'
    assert sent[0]['body'] == 'YouTube limit has been set to 60 minutes per day'


def test_limit_change_on_unregistered_device_still_succeeds(db, today):
    usage_limits.set_screen_time_limit('ghost', 30)
    assert db.docs('childNotifications') == {}
    assert db.doc('devices', 'ghost')['screen_time']['limit'] == 30


def test_notification_failure_does_not_fail_limit(db, fcm, today, family):
    db.fail_writes_to = {'childNotifications'}
    entry = usage_limits.set_app_limit('c1', 'YouTube', 60)
    assert entry.limit_minutes == 60


def test_get_usage_state(db, today):
    assert usage_limits.get_usage_state('c1') == {'apps': [], 'screen_time': None}
    usage_limits.set_app_limit('c1', 'YouTube', 60)
    state = usage_limits.get_usage_state('c1')
    assert [a.name for a in state['apps']] == ['YouTube']
    assert state['screen_time'] is None


def test_pull_limits_set_and_remove(db, today):
    assert usage_limits.get_pull_limits('c1') == {}

    assert usage_limits.set_pull_limit('c1', 'com.game', 30) == {'com.game': 30}
    assert usage_limits.set_pull_limit('c1', 'com.video', 45) == {'com.game': 30, 'com.video': 45}
    assert usage_limits.set_pull_limit('c1', 'com.game', 0) == {'com.video': 45}
    assert usage_limits.get_pull_limits('c1') == {'com.video': 45}


def test_batch_pull_limits_filters_non_positive(db, today):
    stored = usage_limits.batch_set_pull_limits('c1', {'a': 10, 'b': 0, 'c': -1, 'd': None, 'e': 5})
    assert stored == {'a': 10, 'e': 5}
    assert usage_limits.get_pull_limits('c1') == {'a': 10, 'e': 5}


def test_batch_pull_limits_requires_object(db, today):
    with pytest.raises(ValidationFailure):
        usage_limits.batch_set_pull_limits('c1', ['a'])


def test_clear_pull_limits(db, today):
    usage_limits.set_pull_limit('c1', 'com.game', 30)
    usage_limits.clear_all_pull_limits('c1')
    assert db.doc('appUsageLimits', 'c1') is None
    assert usage_limits.get_pull_limits('c1') == {}


def test_map_writes_update_embedded_entries(db, today):
    db.put('devices', 'c1', {'apps': [
        {'name': 'Game', 'package_name': 'com.game', 'limit_minutes': None,
         'usage_minutes': 40, 'last_reset_date': TODAY},
        {'name': 'Video', 'package_name': 'com.video', 'limit_minutes': 90,
         'usage_minutes': 10, 'last_reset_date': TODAY},
    ]})

    usage_limits.set_pull_limit('c1', 'com.game', 30)
    apps = _apps(db, 'c1')
    assert apps['Game']['limit_minutes'] == 30
    assert apps['Game']['blocked'] is True
    assert apps['Video']['limit_minutes'] == 90

    usage_limits.batch_set_pull_limits('c1', {'com.video': 20})
    apps = _apps(db, 'c1')
    assert apps['Game']['limit_minutes'] is None
    assert apps['Video']['limit_minutes'] == 20

    usage_limits.clear_all_pull_limits('c1')
    apps = _apps(db, 'c1')
    assert apps['Video']['limit_minutes'] is None
    assert apps['Video']['usage_minutes'] == 10
