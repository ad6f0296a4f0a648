"""
Sales Bot Routes

WhatsApp webhook, the cron trigger for the follow-up sweep and the
operator endpoint for manual follow-ups.
"""

from flask import request, jsonify, Response

from core.utils.logging_config import get_logger
from core.utils.api_helpers import (
    bearer_token_required, get_json_or_error, error_response, safe_error_response, RateLimiter,
)
from . import sales_bot_bp
from .services import ConversationService, FollowUpService

logger = get_logger('autocrm.sales_bot.routes')

# Manual follow-ups per lead, guards against double clicks in the back office
_manual_limiter = RateLimiter()

_conversation_service = None
_follow_up_service = None


def get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service


def get_follow_up_service() -> FollowUpService:
    global _follow_up_service
    if _follow_up_service is None:
        _follow_up_service = FollowUpService()
    return _follow_up_service


# ============== WhatsApp Webhook ==============

@sales_bot_bp.route('/webhooks/whatsapp', methods=['GET'])
def whatsapp_verify():
    """Meta subscription handshake."""
    mode = request.args.get('hub.mode')
    token = request.args.get('hub.verify_token')
    challenge = request.args.get('hub.challenge', '')

    if get_conversation_service().verify_subscription(mode, token):
        return Response(challenge, status=200, mimetype='text/plain')
    return Response('Forbidden', status=403, mimetype='text/plain')


@sales_bot_bp.route('/webhooks/whatsapp', methods=['POST'])
def whatsapp_webhook():
    data, error = get_json_or_error()
    if error:
        return error

    try:
        get_conversation_service().handle_webhook(data)
    except Exception as e:
        logger.exception(f"Error processing WhatsApp webhook: {e}")
        return Response('Internal Server Error', status=500, mimetype='text/plain')
    return Response('OK', status=200, mimetype='text/plain')


# ============== Follow-ups ==============

@sales_bot_bp.route('/api/cron/follow-ups', methods=['GET', 'POST'])
@bearer_token_required('CRON_SECRET')
def cron_follow_ups():
    """Run one follow-up sweep (external cron)."""
    try:
        result = get_follow_up_service().process_follow_ups()
    except Exception as e:
        return safe_error_response(e)

    return jsonify({'success': True, **result.to_dict()})


@sales_bot_bp.route('/api/leads/<lead_id>/send-followup', methods=['POST'])
@bearer_token_required('OPERATOR_TOKEN')
def send_manual_follow_up(lead_id):
    allowed, retry_after = _manual_limiter.is_allowed(lead_id, max_requests=1, window_seconds=10)
    if not allowed:
        response = error_response('Too many requests', 429)
        response[0].headers['Retry-After'] = str(retry_after)
        return response

    result = get_follow_up_service().send_manual_follow_up(lead_id)
    if result.success:
        return jsonify({'success': True, **result.data})

    if result.error == 'Lead not found':
        return error_response(result.error, 404)
    if result.error == 'Failed to send follow-up':
        return error_response(result.error, 500)
    return error_response(result.error, 400)
