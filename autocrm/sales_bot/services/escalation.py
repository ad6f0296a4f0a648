"""
Escalation Classifier

Decides whether a human must take over the conversation. Pure keyword
matching over the current message and a short window of prior turns,
no I/O and no LLM call.

Two named predicates are OR-ed together:

- keyword: the current message touches financing, trade-in, paperwork,
  price negotiation or a purchase decision.
- contextual: the lead has already been shown photos, prices or mileage
  in the recent window and now asks a logistics question (when, where,
  visit, test drive). A lead asking how to come and see a car they
  already know the details of is treated as ready to buy.
"""

from typing import Optional, Sequence, Tuple, Union

from core.utils.logging_config import get_logger
from ..models import EscalationVerdict, WhatsAppMessage

logger = get_logger('autocrm.sales_bot.services.escalation')

# Keyword groups (case-insensitive substrings)
ESCALATION_KEYWORDS = {
    'financing': (
        'financ', 'crédito', 'credito', 'préstamo', 'prestamo', 'cuota',
        'mensualidad', 'a plazos', 'leasing', 'renting',
    ),
    'trade_in': (
        'tasar', 'tasación', 'tasacion', 'tasarme', 'valorar mi', 'mi coche actual',
        'entregar mi coche', 'dar mi coche', 'vender mi coche', 'a cambio de mi',
        'dejar mi coche',
    ),
    'legal': (
        'contrato', 'papeles', 'papeleo', 'documentación', 'documentacion',
        'transferencia', 'cambio de nombre', 'factura',
    ),
    'negotiation': (
        'descuento', 'rebaja', 'negociar', 'negociable', 'último precio',
        'ultimo precio', 'mejor precio', 'precio final', 'me lo dejas', 'regatear',
    ),
    'purchase': (
        'lo compro', 'quiero comprar', 'quiero comprarlo', 'me lo quedo', 'reservar',
        'reserva', 'apartar', 'señal', 'cerrar el trato', 'comprarlo ya',
    ),
}

# Evidence the lead has seen concrete details of a vehicle
EXPOSURE_KEYWORDS = (
    'foto', 'imagen', 'http', '€', 'euros', 'precio', ' km', 'kilómetros',
    'kilometros', 'kilometraje',
)

# Questions about coming in or arranging something
LOGISTICS_KEYWORDS = (
    'cuándo', 'cuando', 'dónde', 'donde', 'horario', 'a qué hora', 'a que hora',
    'visita', 'visitar', 'ir a ver', 'pasar a ver', 'pasarme', 'probar',
    'prueba', 'cita', 'quedamos', 'dirección', 'direccion', 'ubicación', 'ubicacion',
)

Turn = Union[WhatsAppMessage, str]


def _turn_text(turn: Turn) -> str:
    if isinstance(turn, WhatsAppMessage):
        return turn.content or ''
    return turn or ''


def _first_match(text: str, keywords: Sequence[str]) -> Optional[str]:
    for keyword in keywords:
        if keyword in text:
            return keyword
    return None


def keyword_escalation(text: str) -> Optional[Tuple[str, str]]:
    """Return (group, keyword) for the first keyword hit, or None."""
    lowered = (text or '').lower()
    for group, keywords in ESCALATION_KEYWORDS.items():
        matched = _first_match(lowered, keywords)
        if matched:
            return group, matched
    return None


def has_detail_exposure(history: Sequence[Turn]) -> bool:
    """True if any turn in the window shows photos, prices or mileage."""
    window_text = ' '.join(_turn_text(t) for t in history).lower()
    return _first_match(window_text, EXPOSURE_KEYWORDS) is not None


def asks_logistics(text: str) -> Optional[str]:
    return _first_match((text or '').lower(), LOGISTICS_KEYWORDS)


def contextual_escalation(text: str, history: Sequence[Turn]) -> Optional[str]:
    """Logistics keyword of the current message when the window shows exposure."""
    matched = asks_logistics(text)
    if matched and has_detail_exposure(history):
        return matched
    return None


def classify(text: str, history: Sequence[Turn] = (), window: int = 6) -> EscalationVerdict:
    """
    Decide whether the lead must be handed to a manager.

    Args:
        text: Current inbound message
        history: Prior turns, oldest first (messages or plain strings)
        window: How many of the latest prior turns the contextual rule sees

    Returns:
        EscalationVerdict, truthy when escalation is required
    """
    hit = keyword_escalation(text)
    if hit:
        group, matched = hit
        logger.info(f"Escalation by keyword group '{group}' ({matched!r})")
        return EscalationVerdict(escalate=True, rule='keyword', group=group, matched=matched)

    recent = list(history)[-window:] if window > 0 else []
    matched = contextual_escalation(text, recent)
    if matched:
        logger.info(f"Escalation by logistics question after detail exposure ({matched!r})")
        return EscalationVerdict(escalate=True, rule='contextual', group='logistics', matched=matched)

    return EscalationVerdict()


def should_escalate(text: str, history: Sequence[Turn] = (), window: int = 6) -> bool:
    return bool(classify(text, history, window))
