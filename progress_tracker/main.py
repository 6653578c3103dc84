"""
Progress Tracker Backend - Learning progress for the Beautiful Mind site
Firebase Auth + Realtime Database behind a small Flask API

Main entry point for the Flask API wrapped as a Firebase Function
"""

import logging
import secrets

from flask import Flask, request, jsonify
from flask_cors import CORS
from firebase_functions import https_fn

from progress_tracker.config import Config
from progress_tracker.firebase_app import init_firebase
from progress_tracker.services.auth_service import AuthService
from progress_tracker.services.identity_provider import FirebaseIdentityProvider
from progress_tracker.services.progress_service import ProgressCache, ProgressService
from progress_tracker.services.record_store import RecordStore
from progress_tracker.services.session_store import FlaskSessionStore
from progress_tracker.utils.auth_middleware import require_auth, require_admin
from progress_tracker.utils.error_handler import (
    format_success_response,
    handle_error,
    status_for_result,
    validate_request_data,
)

logger = logging.getLogger(__name__)


def build_services(config):
    """
    Wire the services against the live Firebase project
    """
    init_firebase(config)
    store = RecordStore()
    identity_provider = FirebaseIdentityProvider(config.web_api_key)
    auth_service = AuthService(identity_provider, store, config, session_store=FlaskSessionStore())
    progress_service = ProgressService(store, cache=ProgressCache(ttl_ms=config.cache_ttl_ms))
    return auth_service, progress_service


def create_app(config=None, auth_service=None, progress_service=None):
    config = config or Config.from_env()

    # Configure logging
    logging.basicConfig(level=config.log_level)

    app = Flask(__name__)
    if config.secret_key:
        app.secret_key = config.secret_key
    else:
        logger.warning("SECRET_KEY not set, sessions will not survive a restart")
        app.secret_key = secrets.token_hex(32)

    # Without configured origins no cross-origin request is answered
    CORS(app, origins=config.allowed_origins, supports_credentials=True)

    if auth_service is None or progress_service is None:
        auth_service, progress_service = build_services(config)

    app.extensions['progress_tracker'] = {
        'config': config,
        'auth_service': auth_service,
        'progress_service': progress_service
    }
    register_routes(app, auth_service, progress_service)
    return app


def _respond(result):
    return jsonify(result), status_for_result(result)


def register_routes(app, auth_service, progress_service):

    # Health check endpoint
    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'service': 'progress-tracker',
            'version': '1.0.0'
        })

    # ============= AUTH ENDPOINTS =============

    @app.route('/auth/login', methods=['POST'])
    def login():
        """Login with email and password"""
        try:
            data = request.get_json(silent=True)
            validate_request_data(data, ['email', 'password'])
            return _respond(auth_service.login(data['email'], data['password']))
        except Exception as e:
            return handle_error(e)

    @app.route('/auth/register', methods=['POST'])
    def register():
        """Register an allow-listed student"""
        try:
            data = request.get_json(silent=True)
            validate_request_data(data, ['email', 'password'])
            result = auth_service.register(
                email=data['email'],
                password=data['password'],
                name=data.get('name'),
                phone=data.get('phone', ''),
                standard=data.get('standard', '')
            )
            status = 201 if result['success'] else status_for_result(result)
            return jsonify(result), status
        except Exception as e:
            return handle_error(e)

    @app.route('/auth/logout', methods=['POST'])
    def logout():
        """Logout the current session"""
        return _respond(auth_service.logout())

    @app.route('/auth/session', methods=['GET'])
    @require_auth
    def current_session():
        """Session pointer of the logged-in user"""
        return jsonify(request.current_user)

    # ============= PROGRESS ENDPOINTS =============

    @app.route('/progress', methods=['GET'])
    @require_auth
    def get_progress():
        """Progress snapshot and summary"""
        uid = request.current_user['uid']
        return jsonify(format_success_response({
            'progress': progress_service.get_progress(uid),
            'summary': progress_service.get_current_progress(uid)
        }))

    @app.route('/progress/topics/<topic_id>/complete', methods=['POST'])
    @require_auth
    def complete_topic(topic_id):
        """Mark a topic completed"""
        try:
            data = request.get_json(silent=True)
            validate_request_data(data, ['stars_earned'], {'stars_earned': int})
            result = progress_service.complete_topic(
                request.current_user['uid'], topic_id, data['stars_earned']
            )
            return _respond(result)
        except Exception as e:
            return handle_error(e)

    @app.route('/progress/quizzes/<quiz_id>/complete', methods=['POST'])
    @require_auth
    def complete_quiz(quiz_id):
        """Mark a quiz completed with its score"""
        try:
            data = request.get_json(silent=True)
            validate_request_data(
                data, ['stars_earned', 'score'], {'stars_earned': int, 'score': (int, float)}
            )
            result = progress_service.complete_quiz(
                request.current_user['uid'], quiz_id, data['stars_earned'], data['score']
            )
            return _respond(result)
        except Exception as e:
            return handle_error(e)

    @app.route('/progress/topics/<topic_id>', methods=['GET'])
    @require_auth
    def topic_status(topic_id):
        completed = progress_service.is_topic_completed(request.current_user['uid'], topic_id)
        return jsonify({'topic_id': topic_id, 'completed': completed})

    @app.route('/progress/quizzes/<quiz_id>', methods=['GET'])
    @require_auth
    def quiz_status(quiz_id):
        completed = progress_service.is_quiz_completed(request.current_user['uid'], quiz_id)
        return jsonify({'quiz_id': quiz_id, 'completed': completed})

    @app.route('/progress/lessons/<int:lesson_num>', methods=['GET'])
    @require_auth
    def lesson_status(lesson_num):
        return jsonify(progress_service.get_lesson_status(request.current_user['uid'], lesson_num))

    # ============= ADMIN ENDPOINTS =============

    @app.route('/admin/users/<uid>/reset-progress', methods=['POST'])
    @require_admin
    def reset_progress(uid):
        """Admin resets a user's progress"""
        logger.info(f"Admin {request.current_user['uid']} resetting progress for {uid}")
        return _respond(progress_service.reset_progress(uid))

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405


_app = None


def get_app():
    global _app
    if _app is None:
        _app = create_app()
    return _app


# Firebase Cloud Function wrapper, CORS is answered by the Flask app
@https_fn.on_request()
def api(req):
    """Main Cloud Function entry point"""
    app = get_app()
    with app.request_context(req.environ):
        return app.full_dispatch_request()


# For local development
if __name__ == '__main__':
    get_app().run(debug=True, host='0.0.0.0', port=8080)
