"""
Prompt Builder

Renders the context block (knowledge documents, tagged vehicles, lead
snapshot), embeds it in the persona system prompt, and lays out the
turn history sent to the model.
"""

from typing import Optional, List, Dict, Sequence

from ..config import (
    SalesBotConfig, get_config, SYSTEM_PROMPT_TEMPLATE, MODEL_ACKNOWLEDGEMENT, UPDATE_MARKER,
)
from ..models import (
    Lead, Vehicle, TaggedVehicle, ConversationContext,
    RetrievalResult, WhatsAppMessage,
)

NOT_SPECIFIED = "No especificado"


def format_es_number(value, max_decimals: int = 2) -> str:
    """Spanish grouping: 18000 -> '18.000', 1234.5 -> '1.234,5'."""
    number = float(value)
    text = f"{number:,.{max_decimals}f}"
    whole, _, fraction = text.partition('.')
    fraction = fraction.rstrip('0')
    whole = whole.replace(',', '.')
    return f"{whole},{fraction}" if fraction else whole


def format_price(price: Optional[float]) -> str:
    if not price:
        return "Precio a consultar"
    return f"{format_es_number(price)}€"


def format_kilometers(km: Optional[int]) -> str:
    if not km:
        return "Kilometraje no especificado"
    return f"{format_es_number(km, 0)} km"


def photo_link(vehicle: Vehicle) -> Optional[str]:
    if vehicle.url:
        return vehicle.url
    return vehicle.image_urls[0] if vehicle.image_urls else None


def render_vehicle(tagged: TaggedVehicle) -> str:
    car = tagged.vehicle
    header = f"VEHÍCULO: {car.display_name}"
    if tagged.previously_mentioned:
        header += " [YA MENCIONADO]"

    lines = [
        header,
        f"ID: {car.id}",
        f"TIPO: {car.type or NOT_SPECIFIED}",
        f"PRECIO: {format_price(car.precio_venta)}",
        f"KILÓMETROS: {format_kilometers(car.kilometros)}",
    ]
    if car.color:
        lines.append(f"COLOR: {car.color}")
    if car.motor:
        lines.append(f"MOTOR: {car.motor}")
    if car.transmision:
        lines.append(f"TRANSMISIÓN: {car.transmision}")
    if car.matricula:
        lines.append(f"MATRÍCULA: {car.matricula}")
    lines.append(f"DESCRIPCIÓN: {car.description or 'Sin descripción disponible'}")

    link = photo_link(car)
    lines.append(f"FOTOS: {link}" if link else "FOTOS: No disponibles")
    return '\n'.join(lines)


def render_lead(lead: Lead, context: ConversationContext) -> str:
    return '\n'.join([
        f"ESTADO ACTUAL: {lead.status}",
        f"NOMBRE: {lead.name or NOT_SPECIFIED}",
        f"TELÉFONO: {lead.phone or NOT_SPECIFIED}",
        f"EMAIL: {lead.email or NOT_SPECIFIED}",
        f"PRESUPUESTO: {lead.budget or NOT_SPECIFIED}",
        f"PLAZO DE COMPRA: {lead.expected_purchase_timeframe or NOT_SPECIFIED}",
        f"TIPO DE CLIENTE: {lead.type or NOT_SPECIFIED}",
        f"ETAPA DE LA CONVERSACIÓN: {context.conversation_stage.value}",
        f"VEHÍCULOS YA VISTOS: {context.total_cars_shown}",
    ])


def build_context_block(lead: Lead, retrieval: RetrievalResult,
                        context: ConversationContext) -> str:
    sections = []

    if retrieval.documents:
        docs = '\n\n'.join(doc.content for doc in retrieval.documents)
        sections.append(f"### Información relevante de la empresa:\n\n{docs}")

    if retrieval.vehicles:
        cars = '\n\n'.join(render_vehicle(tv) for tv in retrieval.vehicles)
        sections.append(f"### Vehículos disponibles:\n\n{cars}")

    sections.append(f"### Información actual del lead:\n\n{render_lead(lead, context)}")
    return '\n\n'.join(sections) + '\n'


def build_system_prompt(context_block: str, config: Optional[SalesBotConfig] = None) -> str:
    config = config or get_config()
    return SYSTEM_PROMPT_TEMPLATE.format(
        persona_name=config.PERSONA_NAME,
        dealership=config.DEALERSHIP_NAME,
        marker=UPDATE_MARKER,
        context=context_block,
    )


def build_messages(system_prompt: str, history: Sequence[WhatsAppMessage], query: str,
                   config: Optional[SalesBotConfig] = None) -> List[Dict[str, str]]:
    """
    Turn list for the provider, oldest first.

    The system prompt goes in as the opening user turn followed by a model
    acknowledgement, then the stored history (inbound -> user, outbound ->
    assistant), then the new query.
    """
    config = config or get_config()
    messages = [
        {'role': 'user', 'content': f"Sistema: {system_prompt}"},
        {'role': 'assistant', 'content': MODEL_ACKNOWLEDGEMENT.format(persona_name=config.PERSONA_NAME)},
    ]

    turns = list(history)
    # The inbound message being answered is usually already stored
    if turns and not turns[-1].is_outbound and turns[-1].content == query:
        turns = turns[:-1]

    for msg in turns:
        if not msg.content:
            continue
        messages.append({
            'role': 'assistant' if msg.is_outbound else 'user',
            'content': msg.content,
        })

    messages.append({'role': 'user', 'content': query})
    return messages
