"""
Authentication Service for the Progress Tracker
Handles allow-list checks, login, registration and the local session pointer
"""

import logging
import time

from progress_tracker.config import normalize_email
from progress_tracker.services.record_store import user_path
from progress_tracker.services.session_store import MemorySessionStore
from progress_tracker.utils.error_handler import (
    NotAuthorizedError,
    ProfileNotFoundError,
    ProgressTrackerError,
    ValidationError,
    error_result,
)

logger = logging.getLogger(__name__)

ROLE_ADMIN = 'admin'
ROLE_STUDENT = 'student'


def now_ms():
    return int(time.time() * 1000)


class AuthService:
    def __init__(self, identity_provider, store, config, session_store=None, clock=None):
        self.identity_provider = identity_provider
        self.store = store
        self.config = config
        self.session_store = session_store or MemorySessionStore()
        # Unmirrored sessions end with the browser session instead of persisting
        self.persist_session = config.mirror_session_locally
        self.clock = clock or now_ms

    def login(self, email, password):
        """
        Verify credentials and return the user's record, creating it on first login
        """
        email = normalize_email(email)
        try:
            self._check_credentials_present(email, password)
            if self.config.enforce_allow_list and not self.config.is_permitted(email):
                logger.warning(f"Login attempt with unauthorized email: {email}")
                raise NotAuthorizedError()

            identity = self.identity_provider.verify_credentials(email, password)
            uid = identity['uid']
            logger.info(f"Auth login successful for {email}, UID: {uid}")

            user_data, created = self._ensure_user_record(uid, email, identity.get('display_name'))
            role = user_data.get('role') or self.derive_role(email)
            self._publish_session(uid, email, role, user_data)

            logger.info(f"User logged in: {email} | Stars: {user_data.get('stars', 0)} "
                        f"| Lessons: {user_data.get('lessons', 0)}")
            return {
                'success': True,
                'user': user_data,
                'role': role,
                'uid': uid,
                'created': created
            }
        except ProgressTrackerError as e:
            logger.warning(f"Login failed for {email}: {e.error_code}")
            return error_result(e)

    def register(self, email, password, name=None, phone='', standard=''):
        """
        Create an account for an allow-listed email and its initial record
        """
        email = normalize_email(email)
        try:
            self._check_credentials_present(email, password)
            if not self.config.is_permitted(email) and not self.config.directory_entry(email):
                logger.warning(f"Registration attempt with unauthorized email: {email}")
                raise NotAuthorizedError()

            identity = self.identity_provider.create_account(email, password, name)
            uid = identity['uid']
            profile = dict(self.config.directory_entry(email) or {})
            profile.update({k: v for k, v in (('name', name), ('phone', phone), ('standard', standard)) if v})
            user_data, created = self._create_user_record(uid, email, profile)
            role = user_data.get('role') or self.derive_role(email)
            self._publish_session(uid, email, role, user_data)

            return {
                'success': True,
                'user': user_data,
                'role': role,
                'uid': uid,
                'created': created
            }
        except ProgressTrackerError as e:
            logger.warning(f"Registration failed for {email}: {e.error_code}")
            return error_result(e)

    def logout(self):
        """
        End the provider session and clear the session pointer
        """
        current = self.get_current_session()
        try:
            if current:
                self.identity_provider.end_session(current['uid'])
            return {'success': True}
        except ProgressTrackerError as e:
            return error_result(e)
        finally:
            self.session_store.clear()
            logger.info("Logout complete")

    def get_current_session(self):
        uid = self.session_store.get('uid')
        email = self.session_store.get('user_email')
        if not uid or not email:
            return None

        return {
            'uid': uid,
            'email': email,
            'role': self.session_store.get('user_role'),
            'name': self.session_store.get('user_name')
        }

    def is_authenticated(self):
        return self.get_current_session() is not None

    def get_user_data(self, uid):
        """
        Get the stored user record by UID
        """
        try:
            return self.store.read_record(user_path(uid))
        except ProgressTrackerError as e:
            logger.error(f"Error getting user data for {uid}: {e.message}")
            return None

    def derive_role(self, email):
        return ROLE_ADMIN if self.config.is_admin(email) else ROLE_STUDENT

    def _check_credentials_present(self, email, password):
        if not email or not password:
            raise ValidationError("Email and password required")

    def _ensure_user_record(self, uid, email, display_name):
        existing = self.store.read_record(user_path(uid))
        if existing is not None:
            # Progress is preserved as stored
            logger.info(f"Existing user found: {uid}")
            return existing, False

        entry = self.config.directory_entry(email)
        if entry is None and not self.config.enforce_allow_list:
            logger.warning(f"No directory entry for authenticated user: {email}")
            raise ProfileNotFoundError()

        profile = dict(entry or {})
        profile.setdefault('name', display_name)
        return self._create_user_record(uid, email, profile)

    def _create_user_record(self, uid, email, profile):
        now = self.clock()
        user_data = {
            'name': profile.get('name') or email.split('@')[0],
            'email': email,
            'phone': profile.get('phone') or '',
            'standard': profile.get('standard') or '',
            'role': self.derive_role(email),
            'stars': 0,
            'lessons': 0,
            'completedTopics': {},
            'completedQuizzes': {},
            'createdAt': now,
            'lastUpdated': now
        }
        record, created = self.store.create_if_absent(user_path(uid), user_data)
        if created:
            logger.info(f"New user created: {email} with ID: {uid}")
        else:
            logger.info(f"User record for {uid} was created concurrently, keeping it")
        return record, created

    def _publish_session(self, uid, email, role, user_data):
        self.session_store.set_many({
            'uid': uid,
            'user_name': user_data.get('name', ''),
            'user_email': email,
            'user_role': role,
            'user_phone': user_data.get('phone') or '',
            'user_standard': user_data.get('standard') or ''
        }, permanent=self.persist_session)
