import os
import json
import base64
import firebase_admin
from firebase_admin import credentials, firestore, messaging

_app = None
_db = None


def _load_credentials(app_config=None):
    encoded = ''
    cred_path = ''
    if app_config:
        encoded = app_config.get('FIREBASE_SERVICE_ACCOUNT_BASE64') or ''
        cred_path = app_config.get('GOOGLE_APPLICATION_CREDENTIALS') or ''
    if not encoded:
        encoded = os.environ.get('FIREBASE_SERVICE_ACCOUNT_BASE64', '')
    if not cred_path:
        cred_path = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json')

    if encoded:
        service_account = json.loads(base64.b64decode(encoded).decode('utf-8'))
        return credentials.Certificate(service_account)
    if os.path.exists(cred_path):
        return credentials.Certificate(cred_path)
    return credentials.ApplicationDefault()


def init_firebase(app_config=None):
    global _app, _db

    if _app is not None:
        return

    _app = firebase_admin.initialize_app(_load_credentials(app_config))
    _db = firestore.client()


def get_db():
    global _db
    if _db is None:
        init_firebase()
    return _db


def get_messaging():
    if _app is None:
        init_firebase()
    return messaging
