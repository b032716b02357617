"""
Firebase initialization.
Single source of truth for the Firestore client, the Realtime Database root
reference and the Cloud Messaging module used by CityFlux.
"""

import json
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, db as rtdb, firestore, initialize_app, messaging

from cityflux.core.settings import settings

logger = logging.getLogger(__name__)

_db: Optional[firestore.Client] = None

REQUIRED_CREDENTIAL_FIELDS = ["type", "project_id", "private_key", "client_email"]


def _load_certificate(cred_path: str) -> credentials.Certificate:
    if not os.path.exists(cred_path):
        raise FileNotFoundError(
            f"Firebase credentials file not found: {cred_path}\n"
            f"Current working directory: {os.getcwd()}"
        )

    try:
        with open(cred_path, "r") as f:
            cred_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Firebase credentials file is not valid JSON: {e}")

    missing_fields = [field for field in REQUIRED_CREDENTIAL_FIELDS if field not in cred_data]
    if missing_fields:
        raise ValueError(f"Firebase credentials file is missing required fields: {missing_fields}")

    logger.info(f"Credentials file validated: {cred_path} (project {cred_data.get('project_id', 'N/A')})")
    return credentials.Certificate(cred_path)


def initialize_firebase() -> firebase_admin.App:
    """
    Initialize the default Firebase app once.

    Uses the service account at FIREBASE_CREDENTIALS_PATH when set, otherwise
    Application Default Credentials. FIREBASE_DATABASE_URL is required for the
    Realtime Database mirrors (traffic/, parking_live/).
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options = {}
    if settings.FIREBASE_DATABASE_URL:
        options["databaseURL"] = settings.FIREBASE_DATABASE_URL
    if settings.FIREBASE_PROJECT_ID:
        options["projectId"] = settings.FIREBASE_PROJECT_ID

    try:
        if settings.FIREBASE_CREDENTIALS_PATH:
            cred = _load_certificate(settings.FIREBASE_CREDENTIALS_PATH)
            app = initialize_app(cred, options or None)
            logger.info("Firebase Admin SDK initialized with service account")
        else:
            logger.info("No credentials path set, using Application Default Credentials")
            app = initialize_app(options=options or None)
    except FileNotFoundError as e:
        raise RuntimeError(
            f"Firebase initialization FAILED - credentials file not found.\n{e}\n"
            f"SOLUTION: point FIREBASE_CREDENTIALS_PATH at a valid service account JSON file."
        )
    except ValueError as e:
        raise RuntimeError(
            f"Firebase initialization FAILED - invalid credentials.\n{e}\n"
            f"SOLUTION: generate a new private key under Project Settings > Service Accounts."
        )

    if not settings.FIREBASE_DATABASE_URL:
        logger.warning("FIREBASE_DATABASE_URL is not set; Realtime Database access will fail")

    return app


def get_db() -> firestore.Client:
    """
    Get the Firestore client, initializing Firebase on first use.

    Raises RuntimeError if initialization fails.
    """
    global _db
    if _db is None:
        try:
            initialize_firebase()
            _db = firestore.client()
        except Exception as e:
            raise RuntimeError(
                f"Firestore not initialized and initialization failed: {e}. "
                "Please check your Firebase credentials and configuration."
            )
    return _db


def get_rtdb() -> rtdb.Reference:
    """Get the root reference of the Realtime Database."""
    try:
        initialize_firebase()
        return rtdb.reference("/")
    except Exception as e:
        raise RuntimeError(
            f"Realtime Database not available: {e}. "
            "Please check FIREBASE_DATABASE_URL and your credentials."
        )


def get_messaging():
    """Get the Cloud Messaging module bound to the default app."""
    initialize_firebase()
    return messaging
