"""
Configuration for the Progress Tracker
Allow-lists, cache policy and Firebase settings, loaded from the environment
"""

import json
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_MS = 2000

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def normalize_email(email):
    return (email or '').strip().lower()


def _parse_bool(value, default):
    if value is None or value == '':
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_email_list(value):
    if not value:
        return []
    return [normalize_email(item) for item in value.split(',') if item.strip()]


class Config:
    """
    Runtime configuration shared by the auth and progress services.

    The four behavioral switches cover the deployment variants of the site:
    ``enforce_allow_list`` (reject emails outside the student/admin lists, or
    rely on the seed directory instead), ``cache_ttl_ms`` (progress read cache
    lifetime), ``mirror_session_locally`` (keep the per-browser session
    cookie across browser restarts, or end it with the browser session) and
    ``seed_directory`` (email -> profile fields used when a record is first
    created).
    """

    def __init__(self, allowed_emails=(), admin_emails=(), enforce_allow_list=True,
                 cache_ttl_ms=DEFAULT_CACHE_TTL_MS, mirror_session_locally=True,
                 seed_directory=None, database_url=None, web_api_key=None,
                 credentials_path=None, secret_key=None, log_level='INFO',
                 allowed_origins=()):
        self.allowed_emails = frozenset(normalize_email(e) for e in allowed_emails)
        self.admin_emails = frozenset(normalize_email(e) for e in admin_emails)
        self.enforce_allow_list = enforce_allow_list
        if cache_ttl_ms < 0:
            raise ValueError("cache_ttl_ms must not be negative")
        self.cache_ttl_ms = cache_ttl_ms
        self.mirror_session_locally = mirror_session_locally
        self.seed_directory = {
            normalize_email(email): dict(entry)
            for email, entry in (seed_directory or {}).items()
        }
        self.database_url = database_url
        self.web_api_key = web_api_key
        self.credentials_path = credentials_path
        self.secret_key = secret_key
        self.log_level = log_level
        # Browser origins allowed to send credentialed cross-origin requests
        self.allowed_origins = [o.strip().rstrip('/') for o in allowed_origins if o.strip()]

    @property
    def permitted_emails(self):
        """Students and admins together"""
        return self.allowed_emails | self.admin_emails

    def is_admin(self, email):
        return normalize_email(email) in self.admin_emails

    def is_permitted(self, email):
        return normalize_email(email) in self.permitted_emails

    def directory_entry(self, email):
        return self.seed_directory.get(normalize_email(email))

    @classmethod
    def from_env(cls, environ=None, dotenv=True):
        """
        Build a Config from environment variables (and a .env file when present)
        """
        if dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ

        students = _parse_email_list(env.get('ALLOWED_EMAILS'))
        admins = _parse_email_list(env.get('ADMIN_EMAILS'))
        directory = {}

        allow_list_file = env.get('ALLOW_LIST_FILE')
        if allow_list_file:
            with open(allow_list_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            students += [normalize_email(e) for e in data.get('students', [])]
            admins += [normalize_email(e) for e in data.get('admins', [])]
            directory.update(data.get('directory', {}))
            logger.info(f"Loaded allow-list file {allow_list_file}: "
                        f"{len(students)} students, {len(admins)} admins, {len(directory)} directory entries")

        return cls(
            allowed_emails=students,
            admin_emails=admins,
            enforce_allow_list=_parse_bool(env.get('ENFORCE_ALLOW_LIST'), True),
            cache_ttl_ms=int(env.get('CACHE_TTL_MS') or DEFAULT_CACHE_TTL_MS),
            mirror_session_locally=_parse_bool(env.get('MIRROR_SESSION_LOCALLY'), True),
            seed_directory=directory,
            database_url=env.get('FIREBASE_DATABASE_URL'),
            web_api_key=env.get('FIREBASE_WEB_API_KEY'),
            credentials_path=env.get('GOOGLE_APPLICATION_CREDENTIALS'),
            secret_key=env.get('SECRET_KEY'),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            allowed_origins=(env.get('ALLOWED_ORIGINS') or '').split(','),
        )
