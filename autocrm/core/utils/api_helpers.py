"""Shared API utilities: auth decorators, error helpers, rate limiter."""
import hmac
import os
import time
import logging
from collections import defaultdict
from functools import wraps

from flask import jsonify, request

logger = logging.getLogger('autocrm.api')


# ============== Decorators ==============

def bearer_token_required(env_var):
    """Decorator requiring `Authorization: Bearer <token>` matching os.environ[env_var].

    Returns JSON 503 when the secret is not configured and 401 on mismatch.
    Used by the cron and operator endpoints, which are called by machines
    and back-office tooling rather than logged-in users.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            expected = os.environ.get(env_var, '')
            if not expected:
                logger.error(f'{env_var} is not configured, rejecting {request.path}')
                return jsonify({'success': False, 'error': 'Endpoint not configured'}), 503

            header = request.headers.get('Authorization', '')
            token = header[7:] if header.startswith('Bearer ') else ''
            if not token or not hmac.compare_digest(token, expected):
                return jsonify({'success': False, 'error': 'Unauthorized'}), 401
            return f(*args, **kwargs)
        return decorated
    return decorator


# ============== Request Validation ==============

def get_json_or_error():
    """Get JSON from request body with null check.

    Returns (data, error_response) tuple. Caller pattern:
        data, error = get_json_or_error()
        if error:
            return error
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, (jsonify({
            'success': False,
            'error': 'Invalid or missing JSON body',
        }), 400)
    return data, None


# ============== Error Handling ==============

def error_response(message, status_code=400):
    """Standard JSON error body."""
    return jsonify({'success': False, 'error': message}), status_code


def safe_error_response(e, status_code=500):
    """Return error response without leaking DB internals.

    - ValueError/KeyError: returns str(e) as 400 (business validation, safe to expose)
    - Everything else: logs full exception, returns generic message
    """
    if isinstance(e, (ValueError, KeyError)):
        return jsonify({'success': False, 'error': str(e)}), 400

    logger.exception('Unhandled error in API route')
    return jsonify({'success': False, 'error': 'An internal error occurred'}), status_code


# ============== Rate Limiter ==============

class RateLimiter:
    """Simple in-memory rate limiter.

    Per-worker state (3 gunicorn workers = 3 separate states).
    """

    def __init__(self):
        self._requests = defaultdict(list)

    def is_allowed(self, key, max_requests=10, window_seconds=60):
        """Check if request is allowed.

        Args:
            key: String identifier (lead id, IP address, etc.)
            max_requests: Max requests per window
            window_seconds: Window duration in seconds

        Returns:
            (is_allowed: bool, retry_after: int) tuple
        """
        now = time.time()
        window_start = now - window_seconds

        self._requests[key] = [ts for ts in self._requests[key] if ts > window_start]

        if len(self._requests[key]) >= max_requests:
            oldest = min(self._requests[key])
            retry_after = int(oldest + window_seconds - now) + 1
            return False, max(1, retry_after)

        self._requests[key].append(now)
        return True, 0
