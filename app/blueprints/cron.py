"""
Scheduled job endpoints.

Called by the platform scheduler with Authorization: Bearer <CRON_SECRET>.
Without a configured secret every call is rejected.
"""
import hmac
import logging
from flask import Blueprint, request, jsonify, current_app

from app.database import get_session
from app.exceptions import UnauthenticatedError
from app.services.cleanup_service import run_cleanup

logger = logging.getLogger(__name__)

cron_bp = Blueprint('cron', __name__, url_prefix='/api/cron')


def _check_cron_secret():
    secret = current_app.config.get('CRON_SECRET')
    if not secret:
        logger.error("[CLEANUP] CRON_SECRET is not configured; rejecting cron call")
        raise UnauthenticatedError()

    header = request.headers.get('Authorization', '')
    expected = f'Bearer {secret}'
    if not hmac.compare_digest(header.encode('utf-8'), expected.encode('utf-8')):
        logger.warning("[CLEANUP] Cron call with invalid credentials")
        raise UnauthenticatedError()


@cron_bp.route('/cleanup', methods=['GET', 'POST'])
def cleanup():
    """Purge expired one-time codes and stale rate-limit windows."""
    _check_cron_secret()
    deleted = run_cleanup(get_session())
    return jsonify({'success': True, 'deleted': deleted}), 200
