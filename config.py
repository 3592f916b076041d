import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    GOOGLE_APPLICATION_CREDENTIALS = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json')
    FIREBASE_SERVICE_ACCOUNT_BASE64 = os.environ.get('FIREBASE_SERVICE_ACCOUNT_BASE64')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    NOTIFICATION_RETENTION = int(os.environ.get('NOTIFICATION_RETENTION', 30))
    NOTIFICATION_PAGE_SIZE = int(os.environ.get('NOTIFICATION_PAGE_SIZE', 15))
    # Devices post plain JSON without a session, so form CSRF tokens are off
    WTF_CSRF_ENABLED = False
