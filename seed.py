from app import create_app
from app.firebase_init import get_db
from app import firestore_dao as dao
from app.firestore_models import AppUsageEntry, ScreenTime
from app.services import device_links, notifications, usage_limits


PARENT_ID = 'demo-parent'
CHILD_ID = 'demo-child'


def seed_database():
    app = create_app()
    with app.app_context():
        db = get_db()
        today = usage_limits._today()

        print("Registering devices...")
        device_links.register(PARENT_ID, 'parent', None, family_id='demo-family')
        device_links.register(CHILD_ID, 'child', None, family_id='demo-family')

        print("Linking devices...")
        device_links.link(PARENT_ID, CHILD_ID)

        print("Writing sample usage...")
        apps = [
            AppUsageEntry(name='YouTube', package_name='com.google.android.youtube',
                          usage_minutes=45, last_reset_date=today),
            AppUsageEntry(name='TikTok', package_name='com.zhiliaoapp.musically',
                          usage_minutes=70, last_reset_date=today),
            AppUsageEntry(name='Chrome', package_name='com.android.chrome',
                          usage_minutes=12, last_reset_date=today),
            AppUsageEntry(name='Minecraft', usage_minutes=30, last_reset_date=today),
        ]
        screen_time = ScreenTime(total_minutes=157, last_reset_date=today)
        dao.save_usage_state(CHILD_ID, usage={
            'apps': [a.to_dict() for a in apps],
            'screen_time': screen_time.to_dict(),
        })

        print("Setting limits...")
        usage_limits.set_app_limit(CHILD_ID, 'TikTok', 60, 'com.zhiliaoapp.musically')
        usage_limits.set_pull_limit(CHILD_ID, 'com.google.android.youtube', 90)
        usage_limits.set_screen_time_limit(CHILD_ID, 240)

        print("Sending sample notifications...")
        notifications.app_installed(CHILD_ID, 'Minecraft', 'com.mojang.minecraftpe')
        notifications.battery_low(CHILD_ID, 15)
        notifications.geofence_alert(CHILD_ID, 'left', zone_name='School')
        notifications.task_assigned(PARENT_ID, 'Finish homework before 6pm')

        print("\n" + "=" * 60)
        print("Demo family ready")
        print(f"  Parent device: {PARENT_ID}")
        print(f"  Child device:  {CHILD_ID}")
        print(f"  Unread for parent: {notifications.unread_count(PARENT_ID, 'to-parent')}")
        print(f"  Unread for child:  {notifications.unread_count(CHILD_ID, 'to-child')}")
        print(f"  Package limits:    {usage_limits.get_pull_limits(CHILD_ID)}")
        print(f"  Project: {db.project}")
        print("=" * 60)


if __name__ == '__main__':
    seed_database()
