"""
Error Handler for the Progress Tracker
Centralized error types, result formatting and logging
"""

from flask import jsonify
import logging
import traceback

logger = logging.getLogger(__name__)

class ProgressTrackerError(Exception):
    """Base exception class for the progress tracker"""
    default_message = 'Something went wrong'
    status_code = 500
    error_code = 'INTERNAL_ERROR'

    def __init__(self, message=None, status_code=None, error_code=None):
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code

class ValidationError(ProgressTrackerError):
    """Raised when input validation fails"""
    default_message = 'Invalid input'
    status_code = 400
    error_code = 'VALIDATION_ERROR'

    def __init__(self, message=None, field=None):
        super().__init__(message)
        self.field = field

class NotAuthorizedError(ProgressTrackerError):
    """Raised when an email is not on the allow-list"""
    default_message = 'Email not authorized. Access denied.'
    status_code = 403
    error_code = 'NOT_AUTHORIZED'

class InvalidCredentialsError(ProgressTrackerError):
    default_message = 'Incorrect email or password.'
    status_code = 401
    error_code = 'INVALID_CREDENTIALS'

class AccountDisabledError(ProgressTrackerError):
    default_message = 'This account has been disabled. Contact your administrator.'
    status_code = 403
    error_code = 'ACCOUNT_DISABLED'

class RateLimitedError(ProgressTrackerError):
    default_message = 'Too many attempts. Please try again later.'
    status_code = 429
    error_code = 'RATE_LIMITED'

class UnknownIdentityError(ProgressTrackerError):
    default_message = 'No account exists for this email.'
    status_code = 404
    error_code = 'UNKNOWN_IDENTITY'

class ProfileNotFoundError(ProgressTrackerError):
    """Raised when an authenticated user has no provisioned profile"""
    default_message = 'No student profile has been set up for this account.'
    status_code = 404
    error_code = 'PROFILE_NOT_FOUND'

class WeakPasswordError(ProgressTrackerError):
    default_message = 'Password should be at least 6 characters.'
    status_code = 400
    error_code = 'WEAK_PASSWORD'

class EmailAlreadyInUseError(ProgressTrackerError):
    default_message = 'An account already exists for this email.'
    status_code = 409
    error_code = 'EMAIL_ALREADY_IN_USE'

class StoreUnavailableError(ProgressTrackerError):
    """Raised when a database read or write fails"""
    default_message = 'Progress storage is temporarily unavailable.'
    status_code = 503
    error_code = 'STORE_UNAVAILABLE'

class ProviderUnavailableError(ProgressTrackerError):
    """Raised when the identity provider cannot be reached"""
    default_message = 'Sign-in service is temporarily unavailable.'
    status_code = 503
    error_code = 'PROVIDER_UNAVAILABLE'

class AuthenticationError(ProgressTrackerError):
    """Raised when a request has no active session"""
    default_message = 'Login required'
    status_code = 401
    error_code = 'AUTH_REQUIRED'

class AuthorizationError(ProgressTrackerError):
    """Raised when user lacks required permissions"""
    default_message = 'Admin privileges required'
    status_code = 403
    error_code = 'PERMISSION_ERROR'

STATUS_BY_ERROR_CODE = {
    cls.error_code: cls.status_code
    for cls in (
        ValidationError, NotAuthorizedError, InvalidCredentialsError,
        AccountDisabledError, RateLimitedError, UnknownIdentityError,
        ProfileNotFoundError, WeakPasswordError, EmailAlreadyInUseError,
        StoreUnavailableError, ProviderUnavailableError,
        AuthenticationError, AuthorizationError,
    )
}

def error_result(error):
    """
    Convert a ProgressTrackerError into the failure dict returned by services
    """
    return {
        'success': False,
        'error': error.message,
        'error_code': error.error_code
    }

def status_for_result(result):
    """
    HTTP status for a service result dict
    """
    if result.get('success', True):
        return 200
    return STATUS_BY_ERROR_CODE.get(result.get('error_code'), 500)

def handle_error(error):
    """
    Central error handler that converts exceptions to JSON responses
    """
    if isinstance(error, ProgressTrackerError):
        logger.warning(f"Progress tracker error: {error.message}")
        return jsonify({
            'error': error.message,
            'error_code': error.error_code,
            'status': 'error'
        }), error.status_code

    if isinstance(error, KeyError):
        logger.warning(f"Missing key error: {str(error)}")
        return jsonify({
            'error': f'Missing required field: {str(error)}',
            'error_code': 'MISSING_FIELD',
            'status': 'error'
        }), 400

    logger.error(f"Unhandled error: {str(error)}")
    logger.error(traceback.format_exc())
    return jsonify({
        'error': 'An unexpected error occurred',
        'error_code': 'INTERNAL_ERROR',
        'status': 'error'
    }), 500

def validate_request_data(data, required_fields, optional_fields=None):
    """
    Validate request data against required and optional fields
    """
    if not data:
        raise ValidationError("Request body cannot be empty")

    missing_fields = [
        field for field in required_fields
        if field not in data or data[field] is None
    ]
    if missing_fields:
        raise ValidationError(f"Missing required fields: {', '.join(missing_fields)}")

    # bool is an int subclass, reject it explicitly for numeric fields
    if optional_fields:
        for field, expected_type in optional_fields.items():
            value = data.get(field)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, expected_type):
                raise ValidationError(f"Field '{field}' has the wrong type", field=field)

    return True

def format_success_response(data, message=None):
    """
    Format successful API response
    """
    response = {
        'status': 'success',
        'data': data
    }

    if message:
        response['message'] = message

    return response
