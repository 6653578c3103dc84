"""
Record Store for the Progress Tracker
Path-addressed access to user records in the Firebase Realtime Database
"""

import logging

from firebase_admin import db, exceptions

from progress_tracker.utils.error_handler import StoreUnavailableError, ValidationError

logger = logging.getLogger(__name__)

USERS_PATH = 'users'

# Characters the Realtime Database does not accept in keys
FORBIDDEN_KEY_CHARS = '.#$[]/'


def validate_key(key, field='id'):
    """
    Reject ids that cannot be used as a database key
    """
    if not isinstance(key, str) or not key.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    if any(ch in key for ch in FORBIDDEN_KEY_CHARS):
        raise ValidationError(f"{field} contains characters not allowed in keys: {key}", field=field)
    return key


def user_path(uid):
    return f"{USERS_PATH}/{validate_key(uid, 'uid')}"


class AbortTransaction(Exception):
    """
    Raised from an update function to leave the document untouched.
    RecordStore.apply returns ``current`` without sending a write.
    """

    def __init__(self, current):
        super().__init__("transaction aborted")
        self.current = current


class RecordStore:
    def __init__(self, reference=None):
        # reference(path) -> firebase_admin.db.Reference; replaceable in tests
        self._reference = reference or db.reference

    def read_record(self, path):
        """
        Read the document at path, None when absent
        """
        try:
            return self._reference(path).get()
        except exceptions.FirebaseError as e:
            logger.error(f"Error reading {path}: {str(e)}")
            raise StoreUnavailableError() from e

    def create_if_absent(self, path, document):
        """
        Write document at path only if nothing is stored there yet.

        Returns (stored_record, created). When a concurrent writer got there
        first, their record is returned and created is False.
        """
        state = {'created': False}

        def _create(current):
            state['created'] = current is None
            return document if current is None else current

        try:
            record = self._reference(path).transaction(_create)
        except exceptions.FirebaseError as e:
            logger.error(f"Error creating {path}: {str(e)}")
            raise StoreUnavailableError() from e

        if state['created']:
            logger.info(f"Created record at {path}")
        return record, state['created']

    def patch_fields(self, path, fields):
        """
        Overwrite the given top-level fields, leaving the rest of the document
        """
        try:
            self._reference(path).update(fields)
        except exceptions.FirebaseError as e:
            logger.error(f"Error updating {path}: {str(e)}")
            raise StoreUnavailableError() from e

    def apply(self, path, update_fn):
        """
        Atomically replace the document with update_fn(current).

        update_fn may be called several times when the document changes
        between read and write, so anything it records outside its return
        value must be overwritten on every call. Raising AbortTransaction
        from update_fn skips the write and returns the document it carries;
        other exceptions abort the write and propagate unchanged.
        """
        try:
            return self._reference(path).transaction(update_fn)
        except AbortTransaction as e:
            logger.debug(f"Transaction on {path} left the record unchanged")
            return e.current
        except exceptions.FirebaseError as e:
            logger.error(f"Transaction on {path} failed: {str(e)}")
            raise StoreUnavailableError() from e
