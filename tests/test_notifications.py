from datetime import datetime, timedelta, timezone

import pytest

from app.errors import (
    LinkMismatch, NotificationNotFound, PeerNotFound, PersistenceFailure, TargetNotFound,
    UnroutableDevice, ValidationFailure,
)
from app.services import device_links, notifications


def test_partition_for_known_types():
    assert notifications.partition_for('parent') == 'to-parent'
    assert notifications.partition_for('Child') == 'to-child'


def test_partition_for_unknown_type_is_rejected():
    with pytest.raises(UnroutableDevice):
        notifications.partition_for('unknown')
    with pytest.raises(UnroutableDevice):
        notifications.partition_for(None)


def test_parse_partition_aliases():
    assert notifications.parse_partition('parent') == 'to-parent'
    assert notifications.parse_partition('TO-CHILD') == 'to-child'
    with pytest.raises(ValidationFailure):
        notifications.parse_partition('sideways')


def test_send_without_push_token_is_stored_and_skipped(db, fcm, family):
    result = notifications.send('c1', 'Limit', 'Set 60 min', 'limit_set',
                                {'limit_type': 'daily', 'limit_value': 60}, 'normal', 'p1')

    assert result.push_id is None
    assert result.delivery.status == 'skipped'
    assert result.partition == 'to-child'
    assert fcm.sent == []
    assert notifications.unread_count('c1', 'to-child') == 1

    stored = db.doc('childNotifications', result.notification_id)
    assert stored['from_parent_id'] == 'p1'
    assert 'from_child_id' not in stored
    assert stored['is_read'] is False
    assert stored['data']['limit_value'] == 60


def test_send_pushes_when_token_present(db, fcm, family):
    result = notifications.send('p1', 'Hello', 'World', 'info', {'count': 3}, 'high', 'c1')

    assert result.delivery.status == 'delivered'
    assert result.push_id == 'projects/test-project/messages/1'
    message = fcm.sent[0]
    assert message.token == 'parent-token'
    assert message.data['notification_id'] == result.notification_id
    assert message.data['count'] == '3'
    assert message.android.priority == 'high'
    assert message.android.notification.channel_id == 'high_priority'


def test_push_failure_is_not_fatal(db, fcm, family):
    fcm.fail = True

    result = notifications.send('p1', 'Hello', 'World')

    assert result.delivery.status == 'failed'
    assert result.push_id is None
    assert 'FCM unavailable' in result.delivery.reason
    assert db.doc('parentNotifications', result.notification_id) is not None


def test_send_store_failure_raises_and_skips_push(db, fcm, family):
    db.fail_writes_to = {'parentNotifications'}

    with pytest.raises(PersistenceFailure):
        notifications.send('p1', 'Hello', 'World')
    assert fcm.sent == []


def test_send_to_unregistered_target(db, fcm):
    with pytest.raises(TargetNotFound):
        notifications.send('nobody', 'Hello', 'World')


def test_send_to_untyped_target(db, fcm):
    db.put('deviceRegistrations', 'legacy', {'push_token': 'tok'})
    with pytest.raises(UnroutableDevice):
        notifications.send('legacy', 'Hello', 'World')
    assert db.docs('parentNotifications') == {}
    assert db.docs('childNotifications') == {}


def test_send_validates_input(db, fcm, family):
    with pytest.raises(ValidationFailure):
        notifications.send('p1', '', 'body')
    with pytest.raises(ValidationFailure):
        notifications.send('p1', 'title', 'body', priority='urgent')


def test_unregistered_sender_takes_opposite_role(db, fcm, family):
    result = notifications.send('c1', 'Hi', 'From the web', from_id='dashboard')
    stored = db.doc('childNotifications', result.notification_id)
    assert stored['from_parent_id'] == 'dashboard'


def test_sos_without_location(db, fcm, family):
    result = notifications.sos('c1')

    stored = db.doc('parentNotifications', result.notification_id)
    assert stored['user_id'] == 'p1'
    assert stored['type'] == 'sos'
    assert stored['priority'] == 'high'
    assert stored['body'] == 'Your child needs immediate help! Location not available'
    assert stored['from_child_id'] == 'c1'
    assert fcm.sent[0].token == 'parent-token'


def test_sos_with_location(db, fcm, family):
    result = notifications.sos('c1', {'latitude': 37.56651, 'longitude': 126.97801})

    stored = db.doc('parentNotifications', result.notification_id)
    assert stored['body'].endswith('Location: 37.5665, 126.9780')
    assert stored['data']['latitude'] == '37.56651'


@pytest.mark.parametrize('location', [
    {'latitude': 'north'},
    {'latitude': None},
    {'latitude': 37.5, 'longitude': None},
])
def test_sos_with_incomplete_location(db, fcm, family, location):
    result = notifications.sos('c1', location)

    stored = db.doc('parentNotifications', result.notification_id)
    assert stored['body'] == 'Your child needs immediate help! Location not available'
    assert stored['data']['latitude'] == ''


def test_child_event_without_peer(db, fcm):
    device_links.register('lonely', 'child', None)
    with pytest.raises(PeerNotFound):
        notifications.battery_low('lonely', 12)


def test_child_event_helpers(db, fcm, family):
    notifications.app_installed('c1', 'Game', 'com.game')
    notifications.battery_low('c1', 9)
    notifications.geofence_alert('c1', 'exited', zone_name='School')
    notifications.task_completed('c1', 'Homework')

    bodies = sorted(n['body'] for n in db.docs('parentNotifications').values())
    assert bodies == sorted([
        "Game was installed on your child's device",
        "Child's device battery is at 9%",
        'Your child left School',
        'Your child completed: Homework',
    ])


def test_parent_helpers_default_to_linked_child(db, fcm, family):
    result = notifications.task_assigned('p1', 'Clean room')

    stored = db.doc('childNotifications', result.notification_id)
    assert stored['user_id'] == 'c1'
    assert stored['body'] == 'Your parent assigned you a task: Clean room'


def test_parent_helpers_accept_linked_child(db, fcm, family):
    result = notifications.limit_set('p1', 'daily', 60, child_id='c1')
    assert db.doc('childNotifications', result.notification_id)['user_id'] == 'c1'


@pytest.mark.parametrize('helper, args', [
    (notifications.limit_set, ('daily', 60)),
    (notifications.app_blocked, ('TikTok',)),
    (notifications.task_assigned, ('Clean room',)),
])
def test_parent_helpers_reject_unlinked_child(db, fcm, family, helper, args):
    device_links.register('stranger', 'child', 'stranger-token')

    with pytest.raises(LinkMismatch):
        helper('p1', *args, child_id='stranger')
    assert db.docs('childNotifications') == {}
    assert fcm.sent == []


def test_remote_lock(db, fcm, family):
    result = notifications.remote_lock('p1', 'c1')

    stored = db.doc('childNotifications', result.notification_id)
    assert stored['type'] == 'device_lock'
    assert stored['data']['action'] == 'lock'
    assert stored['data']['parent_id'] == 'p1'


def test_remote_lock_requires_link(db, fcm, family):
    device_links.register('p2', 'parent', None)
    with pytest.raises(LinkMismatch):
        notifications.remote_unlock('p2', 'c1')
    assert db.docs('childNotifications') == {}


def test_mark_read_and_mark_all_read(db, fcm, family):
    first = notifications.send('c1', 'One', 'Body')
    notifications.send('c1', 'Two', 'Body')
    notifications.send('c1', 'Three', 'Body')

    notifications.mark_read(first.notification_id, 'to-child')
    assert notifications.unread_count('c1', 'to-child') == 2
    assert db.doc('childNotifications', first.notification_id)['read_at'] is not None

    commits = db.commits
    assert notifications.mark_all_read('c1', 'to-child') == 2
    assert db.commits == commits + 1
    assert notifications.unread_count('c1', 'to-child') == 0
    assert notifications.mark_all_read('c1', 'to-child') == 0


def test_mark_read_missing(db, fcm):
    with pytest.raises(NotificationNotFound):
        notifications.mark_read('nope', 'to-parent')


def test_list_notifications_newest_first(db, fcm, family):
    base = datetime(2026, 10, 1, tzinfo=timezone.utc)
    for i in range(20):
        db.put('parentNotifications', f'n{i:02d}', {
            'user_id': 'p1', 'title': f't{i}', 'body': 'b', 'is_read': False,
            'timestamp': base + timedelta(minutes=i),
        })

    items = notifications.list_notifications('p1', 'to-parent', limit=15)

    assert len(items) == 15
    assert items[0].id == 'n19'
    assert items[-1].id == 'n05'


def test_delete_notification(db, fcm, family):
    result = notifications.send('p1', 'Hello', 'World')
    notifications.delete_notification(result.notification_id, 'to-parent')
    assert db.doc('parentNotifications', result.notification_id) is None
    with pytest.raises(NotificationNotFound):
        notifications.delete_notification(result.notification_id, 'to-parent')


def test_cleanup_keeps_most_recent(db):
    base = datetime(2026, 10, 1, tzinfo=timezone.utc)
    for i in range(35):
        db.put('parentNotifications', f'n{i:02d}', {
            'user_id': 'p1', 'title': 't', 'body': 'b', 'is_read': False,
            'timestamp': base + timedelta(minutes=i),
        })
    db.put('parentNotifications', 'other', {'user_id': 'p2', 'timestamp': base})

    result = notifications.cleanup('p1', 'to-parent')

    assert result == {'deleted_count': 5, 'remaining_count': 30}
    remaining = db.docs('parentNotifications')
    assert 'other' in remaining
    for i in range(5):
        assert f'n{i:02d}' not in remaining
    assert 'n05' in remaining

    assert notifications.cleanup('p1', 'to-parent') == {'deleted_count': 0, 'remaining_count': 30}


def test_cleanup_under_retention(db):
    db.put('childNotifications', 'a', {'user_id': 'c1', 'timestamp': datetime.now(timezone.utc)})
    assert notifications.cleanup('c1', 'to-child') == {'deleted_count': 0, 'remaining_count': 1}
