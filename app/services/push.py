import json

from app.errors import DeliveryFailure
from app.firebase_init import get_messaging


def stringify_data(data):
    """Coerce a payload into the str -> str map FCM requires."""
    result = {}
    for key, value in (data or {}).items():
        if value is None:
            result[str(key)] = ''
        elif isinstance(value, str):
            result[str(key)] = value
        else:
            result[str(key)] = json.dumps(value, default=str)
    return result


def send_push(token, title, body, data=None, priority='normal'):
    """Send one push message through Firebase Cloud Messaging.

    Args:
        token: device registration token
        title: notification title
        body: notification body
        data: str -> str payload
        priority: 'normal' or 'high'

    Returns:
        The FCM message ID

    Raises:
        DeliveryFailure: on any gateway error
    """
    messaging = get_messaging()
    high = priority == 'high'
    message = messaging.Message(
        token=token,
        notification=messaging.Notification(title=title, body=body),
        data=stringify_data(data),
        android=messaging.AndroidConfig(
            priority='high' if high else 'normal',
            notification=messaging.AndroidNotification(
                sound='default',
                channel_id='high_priority' if high else 'default',
            ),
        ),
    )
    try:
        return messaging.send(message)
    except Exception as e:
        raise DeliveryFailure(str(e)) from e
