import copy

import pytest

from progress_tracker.config import Config
from progress_tracker.services.auth_service import AuthService
from progress_tracker.services.progress_service import ProgressCache, ProgressService
from progress_tracker.services.record_store import RecordStore
from progress_tracker.services.session_store import MemorySessionStore
from progress_tracker.utils.error_handler import (
    AccountDisabledError,
    EmailAlreadyInUseError,
    InvalidCredentialsError,
    UnknownIdentityError,
    WeakPasswordError,
)

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeDatabase:
    """In-memory stand-in for the Realtime Database tree"""

    def __init__(self):
        self.root = {}
        self.fail_with = None
        # Called with the path right before a transaction reads its data
        self.before_transaction = None
        # Writes committed by transactions
        self.transaction_writes = 0

    def reference(self, path):
        return FakeReference(self, path)

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def read(self, path):
        node = self.root
        for part in path.split('/'):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def write(self, path, value):
        parts = path.split('/')
        node = self.root
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = copy.deepcopy(value)


class FakeReference:
    def __init__(self, database, path):
        self.database = database
        self.path = path

    def get(self):
        self.database._check()
        return self.database.read(self.path)

    def set(self, value):
        self.database._check()
        self.database.write(self.path, value)

    def update(self, value):
        self.database._check()
        current = self.database.read(self.path) or {}
        current.update(value)
        self.database.write(self.path, current)

    def transaction(self, transaction_update):
        self.database._check()
        if self.database.before_transaction:
            self.database.before_transaction(self.path)
        new_value = transaction_update(self.database.read(self.path))
        self.database.write(self.path, new_value)
        self.database.transaction_writes += 1
        return copy.deepcopy(new_value)


class FakeIdentityProvider:
    def __init__(self):
        self.accounts = {}
        self.ended_sessions = []

    def add_account(self, email, password, uid, disabled=False, display_name=''):
        self.accounts[email] = {
            'password': password, 'uid': uid, 'disabled': disabled, 'display_name': display_name
        }

    def verify_credentials(self, email, password):
        account = self.accounts.get(email)
        if account is None:
            raise UnknownIdentityError()
        if account['disabled']:
            raise AccountDisabledError()
        if account['password'] != password:
            raise InvalidCredentialsError()
        return {'uid': account['uid'], 'display_name': account['display_name']}

    def end_session(self, uid):
        self.ended_sessions.append(uid)

    def create_account(self, email, password, display_name=None):
        if email in self.accounts:
            raise EmailAlreadyInUseError()
        if len(password) < 6:
            raise WeakPasswordError()
        uid = f'uid-{len(self.accounts) + 1}'
        self.add_account(email, password, uid, display_name=display_name or '')
        return {'uid': uid, 'display_name': display_name or ''}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def store(database):
    return RecordStore(reference=database.reference)


@pytest.fixture
def config():
    return Config(
        allowed_emails=['student1@beautifulmind.com', 'student3@beautifulmind.com'],
        admin_emails=['admin2@beautifulmind.com'],
        secret_key='test-secret'
    )


@pytest.fixture
def identity_provider():
    provider = FakeIdentityProvider()
    provider.add_account('student1@beautifulmind.com', 'secret123', 'uid-student1')
    provider.add_account('student3@beautifulmind.com', 'secret123', 'uid-student3')
    provider.add_account('admin2@beautifulmind.com', 'admin123', 'uid-admin2')
    return provider


@pytest.fixture
def auth_service(identity_provider, store, config, clock):
    return AuthService(identity_provider, store, config, session_store=MemorySessionStore(), clock=clock)


@pytest.fixture
def progress_service(store, clock):
    return ProgressService(store, cache=ProgressCache(ttl_ms=2000, clock=clock), clock=clock)


@pytest.fixture
def sample_user_record():
    """Stored record of a student partway through lesson 1"""
    return {
        'name': 'student1',
        'email': 'student1@beautifulmind.com',
        'phone': '',
        'standard': '8',
        'role': 'student',
        'stars': 15,
        'lessons': 0,
        'completedTopics': {
            'l1topic1': {'completed': True, 'completedAt': START_MS - 3000, 'starsEarned': 5},
            'l1topic2': {'completed': True, 'completedAt': START_MS - 2000, 'starsEarned': 5},
            'l1topic3': {'completed': True, 'completedAt': START_MS - 1000, 'starsEarned': 5},
        },
        'createdAt': START_MS - 10000,
        'lastUpdated': START_MS - 1000
    }
