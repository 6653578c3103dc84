"""
Identity Provider for the Progress Tracker
Password verification through the Identity Toolkit REST API and account
management through the Firebase Admin SDK
"""

import logging

import requests
from firebase_admin import auth, exceptions

from progress_tracker.utils.error_handler import (
    AccountDisabledError,
    EmailAlreadyInUseError,
    InvalidCredentialsError,
    ProviderUnavailableError,
    RateLimitedError,
    UnknownIdentityError,
    WeakPasswordError,
)

logger = logging.getLogger(__name__)

SIGN_IN_URL = 'https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword'
REQUEST_TIMEOUT_SECONDS = 10

# REST error messages and web SDK codes, normalized to UPPER_SNAKE
PROVIDER_ERRORS = {
    'INVALID_PASSWORD': InvalidCredentialsError,
    'INVALID_LOGIN_CREDENTIALS': InvalidCredentialsError,
    'INVALID_CREDENTIAL': InvalidCredentialsError,
    'WRONG_PASSWORD': InvalidCredentialsError,
    'INVALID_EMAIL': InvalidCredentialsError,
    'EMAIL_NOT_FOUND': UnknownIdentityError,
    'USER_NOT_FOUND': UnknownIdentityError,
    'USER_DISABLED': AccountDisabledError,
    'TOO_MANY_ATTEMPTS_TRY_LATER': RateLimitedError,
    'TOO_MANY_REQUESTS': RateLimitedError,
    'WEAK_PASSWORD': WeakPasswordError,
    'EMAIL_EXISTS': EmailAlreadyInUseError,
    'EMAIL_ALREADY_IN_USE': EmailAlreadyInUseError,
}


def normalize_provider_code(code):
    """
    'auth/user-not-found' -> 'USER_NOT_FOUND', 'WEAK_PASSWORD : Password ...' -> 'WEAK_PASSWORD'
    """
    code = (code or '').strip()
    if code.startswith('auth/'):
        code = code[len('auth/'):]
    code = code.split(':', 1)[0].strip()
    return code.replace('-', '_').upper()


def map_provider_error(code):
    """
    Map a provider error code onto one of our error instances
    """
    error_class = PROVIDER_ERRORS.get(normalize_provider_code(code), ProviderUnavailableError)
    return error_class()


class FirebaseIdentityProvider:
    def __init__(self, api_key, http=None, timeout=REQUEST_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.http = http or requests.Session()
        self.timeout = timeout

    def verify_credentials(self, email, password):
        """
        Check email/password and return the identity behind them
        """
        try:
            response = self.http.post(
                SIGN_IN_URL,
                params={'key': self.api_key},
                json={'email': email, 'password': password, 'returnSecureToken': True},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Identity provider unreachable: {str(e)}")
            raise ProviderUnavailableError() from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code != 200:
            code = payload.get('error', {}).get('message', '')
            logger.warning(f"Sign-in rejected for {email}: {code or response.status_code}")
            raise map_provider_error(code)

        return {
            'uid': payload['localId'],
            'display_name': payload.get('displayName') or '',
            'id_token': payload.get('idToken'),
            'refresh_token': payload.get('refreshToken')
        }

    def end_session(self, uid):
        """
        Revoke the refresh tokens issued to uid
        """
        try:
            auth.revoke_refresh_tokens(uid)
            logger.info(f"Revoked refresh tokens for {uid}")
        except auth.UserNotFoundError:
            logger.warning(f"Session end requested for unknown user: {uid}")
        except exceptions.FirebaseError as e:
            logger.error(f"Error revoking tokens for {uid}: {str(e)}")
            raise ProviderUnavailableError() from e

    def create_account(self, email, password, display_name=None):
        """
        Create a new account and return its identity
        """
        try:
            user_record = auth.create_user(
                email=email,
                password=password,
                display_name=display_name or None
            )
        except auth.EmailAlreadyExistsError as e:
            logger.warning(f"Attempt to register existing email: {email}")
            raise EmailAlreadyInUseError() from e
        except ValueError as e:
            # The Admin SDK validates arguments locally before any call
            if 'password' in str(e).lower():
                raise WeakPasswordError() from e
            raise InvalidCredentialsError('Please enter a valid email address.') from e
        except exceptions.FirebaseError as e:
            logger.error(f"Error creating account for {email}: {str(e)}")
            raise ProviderUnavailableError() from e

        logger.info(f"Created account {email} with ID: {user_record.uid}")
        return {
            'uid': user_record.uid,
            'display_name': user_record.display_name or ''
        }
