"""
CareLink's handle on the Firebase project.

Accounts (doctors and patients alike) belong to Firebase Authentication;
rosters, appointments, notes and chat messages are Firestore documents.
The server keeps no records of its own, so ``db`` is the only state here.
"""

import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore

from carelink.core.config import settings

logger = logging.getLogger(__name__)

# Set by init_firebase(); DocumentStore wraps db
_firebase_app = None
db = None


def init_firebase():
    """
    Initialize the Firebase Admin SDK once per process.

    The service-account path comes from FIREBASE_CREDENTIALS (environment
    or .env), defaulting to carelink/core/firebase_key.json for local dev.
    Safe to call again, e.g. under Uvicorn reload.
    """

    global _firebase_app, db

    if firebase_admin._apps:
        if db is None:
            db = firestore.client()
        return

    cred_path = os.environ.get("FIREBASE_CREDENTIALS", settings.FIREBASE_CREDENTIALS)

    if not os.path.exists(cred_path):
        raise RuntimeError(
            f"No service-account key at {cred_path}. "
            "Point FIREBASE_CREDENTIALS at the CareLink project's key file."
        )

    cred = credentials.Certificate(cred_path)
    options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
    _firebase_app = firebase_admin.initialize_app(cred, options)

    db = firestore.client()

    logger.info("Firebase Admin initialized for project %s", settings.FIREBASE_PROJECT_ID or "(default)")


def get_db():
    """Return the Firestore client, or None before init_firebase() ran."""
    return db
