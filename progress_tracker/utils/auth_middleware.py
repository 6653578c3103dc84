"""
Authentication Middleware for the Progress Tracker
Session checks for API endpoints
"""

from functools import wraps
from flask import current_app, request
import logging

from progress_tracker.services.auth_service import ROLE_ADMIN
from progress_tracker.utils.error_handler import (
    AuthenticationError,
    AuthorizationError,
    handle_error,
)

logger = logging.getLogger(__name__)


def get_auth_service():
    return current_app.extensions['progress_tracker']['auth_service']


def require_auth(f):
    """
    Decorator to require a logged-in session for API endpoints
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current = get_auth_service().get_current_session()
        if current is None:
            return handle_error(AuthenticationError())

        request.current_user = current
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Decorator to require admin privileges
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current = get_auth_service().get_current_session()
        if current is None:
            return handle_error(AuthenticationError())

        if current.get('role') != ROLE_ADMIN:
            logger.warning(f"Non-admin user attempted admin action: {current['uid']}")
            return handle_error(AuthorizationError())

        request.current_user = current
        return f(*args, **kwargs)

    return decorated_function
