"""
Firebase Admin SDK bootstrap
"""

import os
import logging

from firebase_admin import initialize_app, get_app, credentials

logger = logging.getLogger(__name__)


def init_firebase(config):
    """
    Return the default Firebase app, initializing it on first use
    """
    try:
        return get_app()
    except ValueError:
        pass

    options = {}
    if config.database_url:
        options['databaseURL'] = config.database_url

    # For local development, use service account key
    cred_path = config.credentials_path
    if cred_path and os.path.exists(cred_path):
        cred = credentials.Certificate(cred_path)
        app = initialize_app(cred, options)
        logger.info(f"Firebase initialized with service account {cred_path}")
    else:
        # Use default credentials in production
        app = initialize_app(options=options)
        logger.info("Firebase initialized with default credentials")
    return app
