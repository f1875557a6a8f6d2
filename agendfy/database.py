import json
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

from .config import FIREBASE_PROJECT_ID, FIREBASE_SERVICE_ACCOUNT

logger = logging.getLogger(__name__)

# Collection names shared with the web client
USERS_COLLECTION = "users"
SERVICES_COLLECTION = "services"
APPOINTMENTS_COLLECTION = "appointments"

_client = None


def init_firebase_app() -> firebase_admin.App:
    """Initialize Firebase Admin SDK (only once)"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None
    if FIREBASE_SERVICE_ACCOUNT:
        try:
            cred = credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT))
        except ValueError as e:
            logger.error(f"❌ FIREBASE_SERVICE_ACCOUNT is not valid JSON: {e}")
            raise
        app = firebase_admin.initialize_app(cred, options)
        logger.info("✅ Firebase Admin initialized with service account")
        return app

    # Application Default Credentials (Cloud Run, GOOGLE_APPLICATION_CREDENTIALS, emulator)
    app = firebase_admin.initialize_app(credentials.ApplicationDefault(), options)
    logger.info("✅ Firebase Admin initialized with default credentials")
    return app


def get_firestore_client(app: Optional[firebase_admin.App] = None):
    """Return the shared Firestore client, creating it on first use"""
    global _client
    if _client is None:
        _client = firestore.client(app or init_firebase_app())
        logger.info("📊 Firestore client created")
    return _client


def get_db():
    yield get_firestore_client()
