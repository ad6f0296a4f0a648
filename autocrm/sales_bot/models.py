"""
Sales Bot Data Models

Data classes for leads, messages, inventory and the transient objects
that flow through one conversation turn.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any


class LeadStatus(Enum):
    """Funnel and off-ramp statuses of a lead."""
    NUEVO = "nuevo"
    CONTACTADO = "contactado"
    ACTIVO = "activo"
    CALIFICADO = "calificado"
    PROPUESTA = "propuesta"
    EVALUANDO = "evaluando"
    MANAGER = "manager"
    # Off-ramps
    INICIADO = "iniciado"
    DOCUMENTACION = "documentacion"
    COMPRADOR = "comprador"
    DESCARTADO = "descartado"
    SIN_INTERES = "sin_interes"
    INACTIVO = "inactivo"
    PERDIDO = "perdido"
    RECHAZADO = "rechazado"
    SIN_OPCIONES = "sin_opciones"


# Statuses in which the follow-up scheduler may act (ordered funnel)
BOT_MANAGED_STATUSES = (
    "nuevo", "contactado", "activo", "calificado", "propuesta", "evaluando",
)

OFF_RAMP_STATUSES = (
    "iniciado", "documentacion", "comprador", "descartado", "sin_interes",
    "inactivo", "perdido", "rechazado", "sin_opciones",
)

LEAD_STATUSES = frozenset(s.value for s in LeadStatus)

PURCHASE_TIMEFRAMES = frozenset({
    "inmediato", "esta_semana", "proxima_semana", "dos_semanas", "un_mes",
    "1-3 meses", "3-6 meses", "6+ meses", "indefinido",
})

LEAD_TYPES = frozenset({"autonomo", "empresa", "particular", "pensionista"})


def is_bot_managed(status: Optional[str]) -> bool:
    return status in BOT_MANAGED_STATUSES


class MessageDirection(Enum):
    """Direction of a WhatsApp message relative to the dealership."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ConversationStage(Enum):
    """Coarse funnel position inferred from recent messages."""
    DISCOVERY = "discovery"
    PRESENTATION = "presentation"
    CONSIDERATION = "consideration"
    NEGOTIATION = "negotiation"
    CLOSING = "closing"


class ContextTag(Enum):
    """Marker attached to a vehicle when rendering the prompt."""
    PREVIOUSLY_MENTIONED = "previously_mentioned"
    NEW = "new"


class ParseState(Enum):
    """Outcome of extracting the structured update block from a reply."""
    ABSENT = "absent"
    MALFORMED = "malformed"
    VALID = "valid"


@dataclass
class Lead:
    """Prospective customer tracked through the funnel."""
    id: Optional[str] = None
    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    status: str = LeadStatus.NUEVO.value
    type: Optional[str] = None
    budget: Optional[str] = None
    expected_purchase_timeframe: Optional[str] = None

    last_contacted_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    next_follow_up_date: Optional[datetime] = None
    follow_up_count: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def first_name(self) -> str:
        parts = (self.name or "").strip().split(" ")
        return parts[0] if parts and parts[0] else ""


@dataclass
class WhatsAppMessage:
    """Stored inbound/outbound message. Immutable apart from delivery status."""
    id: Optional[str] = None
    lead_id: Optional[str] = None
    direction: MessageDirection = MessageDirection.INBOUND
    content: str = ""
    whatsapp_message_id: Optional[str] = None
    phone_number: Optional[str] = None
    status: str = "received"
    metadata: Optional[Dict[str, Any]] = None
    whatsapp_timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Convert string direction to enum if needed."""
        if isinstance(self.direction, str):
            self.direction = MessageDirection(self.direction)

    @property
    def is_outbound(self) -> bool:
        return self.direction == MessageDirection.OUTBOUND


@dataclass
class Vehicle:
    """Inventory row (car_stock)."""
    id: str
    marca: Optional[str] = None
    modelo: Optional[str] = None
    version: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    precio_venta: Optional[float] = None
    kilometros: Optional[int] = None
    color: Optional[str] = None
    motor: Optional[str] = None
    transmision: Optional[str] = None
    matricula: Optional[str] = None
    url: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    vendido: bool = False

    # Set by similarity search
    similarity: float = 0.0

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.marca, self.modelo, self.version) if p)
        return name or "Vehículo sin nombre"


@dataclass
class KnowledgeDocument:
    """Dealership knowledge-base entry (bot_documents)."""
    id: str
    title: str = ""
    category: Optional[str] = None
    content: str = ""
    similarity: float = 0.0


@dataclass
class TaggedVehicle:
    """Vehicle plus its prompt context marker."""
    vehicle: Vehicle
    tag: ContextTag = ContextTag.NEW

    @property
    def previously_mentioned(self) -> bool:
        return self.tag == ContextTag.PREVIOUSLY_MENTIONED


@dataclass
class ConversationContext:
    """Derived per turn from the message tail. Never cached."""
    selected_cars: List[Vehicle] = field(default_factory=list)
    unique_car_ids: List[str] = field(default_factory=list)
    conversation_stage: ConversationStage = ConversationStage.DISCOVERY
    has_seen_photos: bool = False
    has_discussed_pricing: bool = False
    has_shown_interest: bool = False

    @property
    def last_mentioned_car(self) -> Optional[Vehicle]:
        return self.selected_cars[0] if self.selected_cars else None

    @property
    def selected_car_ids(self) -> List[str]:
        return [car.id for car in self.selected_cars]

    @property
    def total_cars_shown(self) -> int:
        return len(self.unique_car_ids)


@dataclass
class CarInformationRequest:
    """What the lead is asking about the vehicles in play."""
    request_type: str = "general"   # photos | price | details | availability | general
    is_urgent: bool = False
    specific_car: bool = False


@dataclass
class EscalationVerdict:
    """Classifier outcome. Truthy when a human must take over."""
    escalate: bool = False
    rule: Optional[str] = None          # 'keyword' | 'contextual'
    group: Optional[str] = None         # keyword theme, or 'logistics'
    matched: Optional[str] = None

    def __bool__(self) -> bool:
        return self.escalate


@dataclass
class RetrievalResult:
    """Vehicles and documents selected for one turn."""
    vehicles: List[TaggedVehicle] = field(default_factory=list)
    documents: List[KnowledgeDocument] = field(default_factory=list)
    reused_context: bool = False

    @property
    def vehicle_ids(self) -> List[str]:
        return [tv.vehicle.id for tv in self.vehicles]


@dataclass
class LeadUpdate:
    """Sparse patch for a lead. None means 'leave unchanged'."""
    status: Optional[str] = None
    budget: Optional[str] = None
    expected_purchase_timeframe: Optional[str] = None
    type: Optional[str] = None
    preferences: Dict[str, Any] = field(default_factory=dict)
    should_escalate: bool = False
    last_contacted_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None

    def lead_fields(self) -> Dict[str, Any]:
        """Column -> value for every field present on the patch."""
        candidates = {
            'status': self.status,
            'budget': self.budget,
            'expected_purchase_timeframe': self.expected_purchase_timeframe,
            'type': self.type,
            'last_contacted_at': self.last_contacted_at,
            'last_message_at': self.last_message_at,
        }
        return {k: v for k, v in candidates.items() if v is not None}


@dataclass
class ParsedReply:
    """Output of the reply parser. Always produced, never raised."""
    reply: str
    state: ParseState = ParseState.ABSENT
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class BotReply:
    """Result of one conversation turn."""
    reply: str
    update: Optional[LeadUpdate] = None
    escalated: bool = False
    parse_state: ParseState = ParseState.ABSENT
    retrieval: RetrievalResult = field(default_factory=RetrievalResult)
    context: ConversationContext = field(default_factory=ConversationContext)
    model_failed: bool = False


@dataclass
class FollowUpCandidate:
    """Read-only projection of a lead used by the scheduler."""
    id: str
    name: str = ""
    phone: Optional[str] = None
    status: str = LeadStatus.NUEVO.value
    last_message_at: Optional[datetime] = None
    next_follow_up_date: Optional[datetime] = None
    follow_up_count: int = 0


@dataclass
class FollowUpRunResult:
    """Summary of one scheduler sweep."""
    due: int = 0
    sent: int = 0
    inactivated: int = 0
    failed: int = 0
    swept_inactive: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'due': self.due,
            'sent': self.sent,
            'inactivated': self.inactivated,
            'failed': self.failed,
            'swept_inactive': self.swept_inactive,
            'skipped': self.skipped,
            'errors': self.errors,
        }


@dataclass
class LLMResponse:
    """Response from LLM provider."""
    content: str
    input_tokens: int
    output_tokens: int
    model: str
    finish_reason: Optional[str] = None


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    data: Any = None
    error: Optional[str] = None
