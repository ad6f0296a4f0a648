"""
Reply Parser

Splits raw model output into the text sent to the lead and the
structured update block that ends it:

    <reply text>
    LEAD_UPDATE_JSON: {"status": "activo", "budget": "15.000€"}

The block may be wrapped in a ```json fence. Everything from the marker
onward is removed from the visible reply whatever the parse outcome.
parse_reply() never raises; it reports ABSENT, MALFORMED or VALID.
"""

import json
import re
from datetime import datetime
from typing import Optional, Dict, Any

from core.utils.logging_config import get_logger
from ..config import UPDATE_MARKER, EMPTY_REPLY_FALLBACK
from ..models import (
    ParsedReply, ParseState, LeadUpdate, LeadStatus,
    LEAD_STATUSES, PURCHASE_TIMEFRAMES, LEAD_TYPES,
)

logger = get_logger('autocrm.sales_bot.services.reply_parser')

# Optional markdown emphasis or inline code around the marker belongs to it
_MARKER_RE = re.compile(
    r"(?:\*{1,2}|_{1,2}|`)?" + re.escape(UPDATE_MARKER) + r"(?:\*{1,2}|_{1,2}|`(?!``))?",
    re.IGNORECASE,
)
_FENCE_OPEN_RE = re.compile(r'\s*```(?:json)?\s*', re.IGNORECASE)
# Fenced object with a status key and no marker in front of it
_STRAY_BLOCK_RE = re.compile(r'```(?:json)?\s*\{[^`]*?"status"[^`]*?\}\s*```', re.IGNORECASE)
_DANGLING_FENCE_RE = re.compile(r"\s*```(?:json)?\s*$", re.IGNORECASE)

_decoder = json.JSONDecoder()

# camelCase key -> lead_preferences column, value coercion
PREFERENCE_KEYS = {
    'preferredVehicleType': ('preferred_vehicle_type', str),
    'preferredBrand': ('preferred_brand', str),
    'preferredFuelType': ('preferred_fuel_type', str),
    'preferredTransmission': ('preferred_transmission', str),
    'maxKilometers': ('max_kilometers', int),
    'minYear': ('min_year', int),
    'maxYear': ('max_year', int),
    'needsFinancing': ('needs_financing', bool),
}


def _clean_reply(text: str) -> str:
    text = _STRAY_BLOCK_RE.sub('', text)
    text = _DANGLING_FENCE_RE.sub('', text)
    return text.strip() or EMPTY_REPLY_FALLBACK


def parse_reply(raw: Optional[str]) -> ParsedReply:
    """Total function from raw model text to (visible reply, update payload)."""
    text = raw if isinstance(raw, str) else ''

    match = _MARKER_RE.search(text)
    if not match:
        return ParsedReply(reply=_clean_reply(text), state=ParseState.ABSENT)

    reply = _clean_reply(text[:match.start()])
    tail = text[match.end():]

    fence = _FENCE_OPEN_RE.match(tail)
    position = fence.end() if fence else len(tail) - len(tail.lstrip())

    if position >= len(tail) or tail[position] != '{':
        return ParsedReply(reply=reply, state=ParseState.MALFORMED,
                           error="No JSON object after marker")

    try:
        payload, _ = _decoder.raw_decode(tail, position)
    except ValueError as e:
        logger.warning(f"Malformed lead update block: {e}")
        return ParsedReply(reply=reply, state=ParseState.MALFORMED, error=str(e))

    if not isinstance(payload, dict):
        return ParsedReply(reply=reply, state=ParseState.MALFORMED,
                           error="Update block is not an object")

    return ParsedReply(reply=reply, state=ParseState.VALID, payload=payload)


def _text(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    return value or None


def _coerce(value, kind):
    if value is None or value == '':
        return None
    try:
        if kind is bool:
            if isinstance(value, bool):
                return value
            lowered = str(value).strip().lower()
            if lowered in ('true', 'si', 'sí', 'yes', '1'):
                return True
            if lowered in ('false', 'no', '0'):
                return False
            return None
        if kind is int:
            if isinstance(value, bool):
                return None
            digits = re.sub(r'[^\d]', '', str(value))
            return int(digits) if digits else None
        return _text(value)
    except (TypeError, ValueError):
        return None


def payload_to_update(payload: Dict[str, Any]) -> LeadUpdate:
    """Map recognized keys of a VALID payload. Unknown keys and bad enum values are dropped."""
    update = LeadUpdate()

    status = _text(payload.get('status'))
    if status in LEAD_STATUSES:
        update.status = status
    elif status:
        logger.info(f"Ignoring unknown status from model: {status!r}")

    update.budget = _text(payload.get('budget'))

    timeframe = _text(payload.get('expectedPurchaseTimeframe'))
    if timeframe in PURCHASE_TIMEFRAMES:
        update.expected_purchase_timeframe = timeframe

    lead_type = _text(payload.get('type'))
    if lead_type in LEAD_TYPES:
        update.type = lead_type

    update.should_escalate = payload.get('shouldEscalate') is True

    for key, (column, kind) in PREFERENCE_KEYS.items():
        value = _coerce(payload.get(key), kind)
        if value is not None:
            update.preferences[column] = value

    return update


def build_lead_update(parsed: ParsedReply, escalate: bool,
                      now: Optional[datetime] = None) -> Optional[LeadUpdate]:
    """
    Turn a parsed reply into the patch to apply.

    A VALID block always yields an update. Otherwise an update exists only
    when escalation is forced. Escalation (from the classifier or the
    model's own shouldEscalate flag) always sets status to manager.
    """
    now = now or datetime.now().astimezone()

    if parsed.state == ParseState.VALID:
        update = payload_to_update(parsed.payload or {})
    elif escalate:
        update = LeadUpdate()
    else:
        return None

    if escalate or update.should_escalate:
        update.status = LeadStatus.MANAGER.value
        update.should_escalate = True

    update.last_contacted_at = now
    update.last_message_at = now
    return update
