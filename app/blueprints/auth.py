"""
Authentication blueprint.
Handles platform login/logout and email verification codes.
"""

from flask import Blueprint, request, session, g, jsonify, current_app, Response
from typing import Tuple
from app.database import get_session
from app.exceptions import BusinessLogicError, ExpiredOrInvalidError, RateLimitedError, UnauthenticatedError
from app.services import auth_service
from app.services.email_service import send_otp_email
from app.services.otp_service import OneTimeCodeStore
from app.services.rate_limit_service import RateLimitOperation, get_rate_limiter, client_ip
from app.blueprints.metrics import record_auth_event
import re
import logging

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__)


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _code_store() -> OneTimeCodeStore:
    db_session = get_session()
    return OneTimeCodeStore(
        db_session,
        get_rate_limiter(db_session),
        ttl_minutes=current_app.config.get('OTP_TTL_MINUTES', 10),
        code_length=current_app.config.get('OTP_CODE_LENGTH', 6),
    )


@auth_bp.route('/auth/login', methods=['POST'])
def login() -> Tuple[Response, int]:
    """Platform login - validates email + password and starts a cookie session."""
    ip = client_ip(request, current_app.config.get('TRUST_PROXY_HEADERS', False))
    get_rate_limiter(get_session()).enforce(RateLimitOperation.PLATFORM_LOGIN, ip)

    data = _json_body()
    email = str(data.get('email', '')).strip()
    password = str(data.get('password', ''))

    if not email or not password:
        raise BusinessLogicError('Email and password are required')

    try:
        user = auth_service.authenticate_user(get_session(), email, password)
    except UnauthenticatedError:
        record_auth_event('platform_login', False)
        raise

    # Authentication successful
    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    record_auth_event('platform_login', True)

    return jsonify({
        'success': True,
        'user': {
            'id': user.id,
            'email': user.email,
            'full_name': user.full_name,
            'email_verified': user.email_verified,
        },
    }), 200


@auth_bp.route('/auth/logout', methods=['POST'])
def logout() -> Tuple[Response, int]:
    """Logout - clear the session and expire the cached profile cookie."""
    if g.get('user') is not None:
        logger.info(f"[AUTH] User {g.user.id} logged out")
        record_auth_event('platform_logout', True)

    session.clear()
    response = jsonify({'success': True})
    response.delete_cookie(
        current_app.config.get('SESSION_CACHE_COOKIE', 'agency_profile_cache'),
        path='/',
        secure=current_app.config.get('SESSION_COOKIE_SECURE', False),
        httponly=True,
        samesite=current_app.config.get('SESSION_COOKIE_SAMESITE', 'Lax'),
    )
    return response, 200


@auth_bp.route('/api/auth/otp/send', methods=['POST'])
def send_otp() -> Tuple[Response, int]:
    """
    Email a verification code.

    The response is the same whether or not the address exists, was rate
    limited, or the email could be delivered.
    """
    email = str(_json_body().get('email', '')).strip().lower()
    if not email or not is_valid_email(email):
        raise BusinessLogicError('A valid email is required')

    try:
        code = _code_store().issue(email)
    except RateLimitedError:
        logger.info(f"[OTP] Send limited for {email}")
        return jsonify({'success': True}), 200

    send_otp_email(email, code, current_app.config.get('OTP_TTL_MINUTES', 10))
    return jsonify({'success': True}), 200


@auth_bp.route('/api/auth/otp/verify', methods=['POST'])
def verify_otp() -> Tuple[Response, int]:
    """
    Verify an emailed code.

    429 with Retry-After once the attempt limit is reached; every other
    failure is the same 400 "Invalid or expired code".
    """
    data = _json_body()
    email = str(data.get('email', '')).strip().lower()
    code = str(data.get('otp', '')).strip()

    if not email or not code:
        raise BusinessLogicError('Email and code are required')

    if not _code_store().verify(email, code):
        record_auth_event('otp_verify', False)
        raise ExpiredOrInvalidError()

    auth_service.mark_email_verified(get_session(), email)
    record_auth_event('otp_verify', True)
    return jsonify({'success': True, 'verified': True}), 200
