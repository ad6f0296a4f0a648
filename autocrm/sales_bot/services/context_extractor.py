"""
Context Extractor

Derives a ConversationContext from the tail of a lead's message log:
which vehicles the bot has already surfaced (read from the selectedCars
metadata of outbound messages) and a coarse funnel stage inferred from
the recent text. Also holds the small text detectors used to decide
whether the lead is talking about those vehicles.
"""

import json
import re
from datetime import datetime
from typing import Optional, List, Dict, Any, Sequence

from core.utils.logging_config import get_logger
from ..config import SalesBotConfig, get_config
from ..models import (
    ConversationContext, ConversationStage, CarInformationRequest,
    WhatsAppMessage, Vehicle,
)
from ..repositories import MessageRepository, VehicleRepository

logger = get_logger('autocrm.sales_bot.services.context_extractor')

# Whole words only: 'vale' and 'ver' are everyday filler ("vale", "verde")
PHOTO_PATTERN = re.compile(r'\b(fotos?|imagen|imágenes|imagenes|enseñ\w+|verl[oa]s?)\b')
PRICING_PATTERN = re.compile(r'\b(precios?|costar?|cuesta|euros?|financ\w*|pagar)\b|€')
INTEREST_PATTERN = re.compile(r'\b(gusta|interesa|quiero|me parece|perfecto|genial)\b')
NEGOTIATION_PATTERN = re.compile(r'\b(financ\w*|pagar|cu[aá]nto)\b')

REFERENCE_PATTERN = re.compile(
    r'\b(ese|esa|eso|este|esta|esto|esos|esas|el anterior|la anterior|el de antes|'
    r'el que me (enseñaste|mandaste|dijiste)|el mismo|la misma)\b'
)
QUESTION_PATTERN = re.compile(
    r'\b(fotos?|imagen|precio|cu[aá]nto|más info|detalles?|kil[oó]metros|km|color|año)\b'
)
# Stock-search phrasing, never a question about a car already shown
SEARCH_PATTERN = re.compile(r'\b(ten[eé]is|tienes|hay|busco|algo|alg[uú]n\w*|otros?|otras?)\b')
SHORT_QUESTION_LENGTH = 50

# Request type detectors, later matches win
REQUEST_PATTERNS = (
    ('photos', PHOTO_PATTERN),
    ('price', re.compile(r'\b(precios?|costar?|cuesta|cu[aá]nto|euros?)\b|€')),
    ('details', re.compile(r'\b(detalles?|información|info|especificaci\w+|caracter[ií]stic\w+)\b')),
    ('availability', re.compile(r'\b(disponibles?|disponibilidad|apart\w+|reserv\w+|libre)\b')),
)
URGENCY_PATTERN = re.compile(r'\b(urgente|r[aá]pido|ahora|hoy|ya)\b')
SPECIFIC_CAR_PATTERN = re.compile(r'\b(ese|este|el anterior|el que|ese coche)\b')

# Manager summary
ESCALATION_REASONS = (
    (re.compile(r'financ|credito|prestamo|cuotas'), "Lead interested in financing options"),
    (re.compile(r'tasar|valorar|cambio|mi coche'), "Lead wants to trade in their current vehicle"),
    (re.compile(r'precio|descuento|negociar'), "Lead interested in price negotiation"),
    (re.compile(r'comprar|decidir|reservar'), "Lead ready to make purchase decision"),
)
DEFAULT_ESCALATION_REASON = "Lead escalated to manager for advanced assistance"


def parse_metadata(raw: Any) -> Optional[Dict[str, Any]]:
    """Metadata bag as a dict, or None if absent or unreadable."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def selected_car_ids(raw_metadata: Any) -> List[str]:
    """selectedCars of one metadata bag. Malformed entries yield []."""
    metadata = parse_metadata(raw_metadata)
    if not metadata:
        return []
    cars = metadata.get('selectedCars')
    if not isinstance(cars, list):
        return []
    return [str(c) for c in cars if isinstance(c, (str, int)) and str(c)]


def infer_stage(conversation_text: str, has_vehicles: bool) -> ConversationStage:
    """Fixed priority: negotiation > consideration > presentation > discovery."""
    text = conversation_text.lower()
    if PRICING_PATTERN.search(text) or NEGOTIATION_PATTERN.search(text):
        return ConversationStage.NEGOTIATION
    if PHOTO_PATTERN.search(text):
        return ConversationStage.CONSIDERATION
    if has_vehicles:
        return ConversationStage.PRESENTATION
    return ConversationStage.DISCOVERY


def is_asking_about_previous_cars(message: str) -> bool:
    """Deictic reference to a shown car, or a short detail question."""
    lowered = (message or '').lower()
    if REFERENCE_PATTERN.search(lowered):
        return True
    return (
        len(lowered) < SHORT_QUESTION_LENGTH
        and bool(QUESTION_PATTERN.search(lowered))
        and not SEARCH_PATTERN.search(lowered)
    )


def extract_car_information_request(message: str) -> CarInformationRequest:
    lowered = (message or '').lower()

    request_type = 'general'
    for name, pattern in REQUEST_PATTERNS:
        if pattern.search(lowered):
            request_type = name

    return CarInformationRequest(
        request_type=request_type,
        is_urgent=bool(URGENCY_PATTERN.search(lowered)),
        specific_car=bool(SPECIFIC_CAR_PATTERN.search(lowered)),
    )


def build_car_context_metadata(car_ids: Sequence[str],
                               stage: Optional[ConversationStage] = None,
                               user_request: Optional[str] = None,
                               bot_action: Optional[str] = None,
                               now: Optional[datetime] = None) -> Dict[str, Any]:
    """Metadata bag stored with an outbound reply so the next turn can find its cars."""
    now = now or datetime.now().astimezone()
    ids = [str(c) for c in car_ids]
    return {
        'selectedCars': ids,
        'carCount': len(ids),
        'conversationStage': stage.value if stage else None,
        'userRequest': user_request,
        'botAction': bot_action,
        'timestamp': now.isoformat(),
        'enhanced': True,
    }


class ContextExtractor:
    """Builds the per-turn ConversationContext. Never raises."""

    def __init__(self, config: Optional[SalesBotConfig] = None,
                 message_repo: Optional[MessageRepository] = None,
                 vehicle_repo: Optional[VehicleRepository] = None):
        self.config = config or get_config()
        self.message_repo = message_repo or MessageRepository()
        self.vehicle_repo = vehicle_repo or VehicleRepository()

    def extract(self, lead_id: str, messages: Optional[List[WhatsAppMessage]] = None,
                limit: Optional[int] = None) -> ConversationContext:
        """
        Args:
            lead_id: Lead whose log is scanned
            messages: Pre-loaded tail (oldest first); read from the store if None
            limit: Number of messages scanned (default CONTEXT_MESSAGE_LIMIT)
        """
        limit = limit or self.config.CONTEXT_MESSAGE_LIMIT
        try:
            if messages is None:
                messages = self.message_repo.get_recent(lead_id, limit)
            else:
                messages = list(messages)[-limit:]
        except Exception as e:
            logger.error(f"Failed to read messages for lead {lead_id}: {e}")
            return ConversationContext()

        return self.extract_from_messages(messages)

    def extract_from_messages(self, messages: Sequence[WhatsAppMessage]) -> ConversationContext:
        # Newest first so the most recent mention leads
        unique_ids: List[str] = []
        mentions: List[List[str]] = []
        for message in reversed(messages):
            if not message.is_outbound:
                continue
            ids = selected_car_ids(message.metadata)
            if not ids:
                continue
            mentions.append(ids)
            for car_id in ids:
                if car_id not in unique_ids:
                    unique_ids.append(car_id)

        recent_ids: List[str] = []
        for ids in mentions[:self.config.RECENT_CAR_MENTIONS]:
            for car_id in ids:
                if car_id not in recent_ids:
                    recent_ids.append(car_id)

        selected: List[Vehicle] = []
        if recent_ids:
            try:
                selected = self.vehicle_repo.get_unsold_by_ids(recent_ids)
            except Exception as e:
                logger.warning(f"Could not resolve {len(recent_ids)} surfaced vehicles: {e}")

        conversation_text = ' '.join((m.content or '').lower() for m in messages)

        return ConversationContext(
            selected_cars=selected,
            unique_car_ids=unique_ids,
            conversation_stage=infer_stage(conversation_text, bool(unique_ids)),
            has_seen_photos=bool(PHOTO_PATTERN.search(conversation_text)),
            has_discussed_pricing=bool(PRICING_PATTERN.search(conversation_text)),
            has_shown_interest=bool(INTEREST_PATTERN.search(conversation_text)),
        )


def summarize_for_manager(context: ConversationContext,
                          messages: Sequence[WhatsAppMessage]) -> Dict[str, Any]:
    """Escalation reason, key interactions and next steps for the manager email."""
    text = ' '.join(m.content or '' for m in messages).lower()

    reason = DEFAULT_ESCALATION_REASON
    for pattern, label in ESCALATION_REASONS:
        if pattern.search(text):
            reason = label
            break

    interactions = []
    if context.total_cars_shown > 0:
        interactions.append(f"Shown {context.total_cars_shown} vehicles")
    if context.has_seen_photos:
        interactions.append("Requested and received vehicle photos")
    if context.has_discussed_pricing:
        interactions.append("Discussed pricing information")
    if context.has_shown_interest:
        interactions.append("Expressed interest in vehicles")

    next_steps = []
    if context.selected_cars:
        next_steps.append("Follow up on specific vehicles shown")
    if 'financ' in text:
        next_steps.append("Discuss financing options and rates")
    if 'tasar' in text:
        next_steps.append("Arrange vehicle trade-in valuation")
    next_steps.append("Schedule in-person visit or test drive")
    next_steps.append("Provide detailed quote with final pricing")

    return {
        'cars_shown': list(context.selected_cars),
        'key_interactions': interactions,
        'escalation_reason': reason,
        'next_steps': next_steps,
    }
