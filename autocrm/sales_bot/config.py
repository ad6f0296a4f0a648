"""
Sales Bot Configuration

Environment variables, prompt templates and scripted messages for the
WhatsApp sales assistant and its follow-up scheduler.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SalesBotConfig:
    """Conversation-turn settings."""

    # Model
    PROVIDER: str = "gemini"
    MODEL_NAME: str = "gemini-2.0-flash-001"
    TEMPERATURE: float = 0.9
    TOP_P: float = 0.95
    TOP_K: int = 40
    MAX_OUTPUT_TOKENS: int = 1024
    MODEL_TIMEOUT: int = 30               # seconds, enforced by the caller

    # Retrieval
    EMBEDDING_TIMEOUT: int = 10
    RAG_DOCUMENT_LIMIT: int = 3
    RAG_VEHICLE_LIMIT: int = 5

    # Context windows
    HISTORY_LIMIT: int = 10               # turns replayed to the model
    CONTEXT_MESSAGE_LIMIT: int = 15       # messages scanned for vehicle context
    RECENT_CAR_MENTIONS: int = 3          # outbound messages whose cars are resolved
    ESCALATION_WINDOW: int = 6            # prior turns seen by the classifier

    # Conversation pacing
    REPLY_DELAY_SECONDS: float = 15.0
    MARK_READ_DELAY_SECONDS: float = 1.0

    # Persona
    PERSONA_NAME: str = "Pedro"
    DEALERSHIP_NAME: str = "Carrera Cars"

    # Webhook
    WEBHOOK_VERIFY_TOKEN: str = ""

    # Escalation notifications
    MANAGER_EMAIL: str = ""

    @classmethod
    def from_env(cls) -> 'SalesBotConfig':
        """Load configuration from environment variables."""
        return cls(
            PROVIDER=os.environ.get('SALES_BOT_PROVIDER', 'gemini'),
            MODEL_NAME=os.environ.get('SALES_BOT_MODEL', 'gemini-2.0-flash-001'),
            TEMPERATURE=float(os.environ.get('SALES_BOT_TEMPERATURE', '0.9')),
            TOP_P=float(os.environ.get('SALES_BOT_TOP_P', '0.95')),
            TOP_K=int(os.environ.get('SALES_BOT_TOP_K', '40')),
            MAX_OUTPUT_TOKENS=int(os.environ.get('SALES_BOT_MAX_TOKENS', '1024')),
            MODEL_TIMEOUT=int(os.environ.get('SALES_BOT_MODEL_TIMEOUT', '30')),
            EMBEDDING_TIMEOUT=int(os.environ.get('SALES_BOT_EMBEDDING_TIMEOUT', '10')),
            HISTORY_LIMIT=int(os.environ.get('SALES_BOT_HISTORY_LIMIT', '10')),
            CONTEXT_MESSAGE_LIMIT=int(os.environ.get('SALES_BOT_CONTEXT_MESSAGES', '15')),
            REPLY_DELAY_SECONDS=float(os.environ.get('SALES_BOT_REPLY_DELAY', '15')),
            PERSONA_NAME=os.environ.get('SALES_BOT_PERSONA_NAME', 'Pedro'),
            DEALERSHIP_NAME=os.environ.get('SALES_BOT_DEALERSHIP_NAME', 'Carrera Cars'),
            WEBHOOK_VERIFY_TOKEN=os.environ.get('WHATSAPP_WEBHOOK_VERIFY_TOKEN', ''),
            MANAGER_EMAIL=os.environ.get('MANAGER_EMAIL', ''),
        )


@dataclass
class FollowUpConfig:
    """Follow-up scheduler settings."""

    MESSAGE_DELAY_SECONDS: float = 15.0     # wait before each send
    THRESHOLD_MINUTES: int = 24 * 60        # silence before a lead is due
    MAX_FOLLOW_UPS: int = 3
    SWEEP_INTERVAL_MINUTES: int = 5
    LEASE_TTL_SECONDS: int = 30 * 60
    SCHEDULER_ENABLED: bool = True

    @property
    def threshold_seconds(self) -> int:
        return self.THRESHOLD_MINUTES * 60

    @classmethod
    def from_env(cls) -> 'FollowUpConfig':
        """Load configuration from environment variables."""
        return cls(
            MESSAGE_DELAY_SECONDS=float(os.environ.get('FOLLOW_UP_MESSAGE_DELAY', '15')),
            THRESHOLD_MINUTES=int(os.environ.get('FOLLOW_UP_THRESHOLD_MINUTES', str(24 * 60))),
            MAX_FOLLOW_UPS=int(os.environ.get('FOLLOW_UP_MAX', '3')),
            SWEEP_INTERVAL_MINUTES=int(os.environ.get('FOLLOW_UP_SWEEP_INTERVAL', '5')),
            LEASE_TTL_SECONDS=int(os.environ.get('FOLLOW_UP_LEASE_TTL', str(30 * 60))),
            SCHEDULER_ENABLED=os.environ.get(
                'FOLLOW_UP_SCHEDULER_ENABLED', 'true'
            ).lower() == 'true',
        )


# Structured update block
UPDATE_MARKER = "LEAD_UPDATE_JSON:"

CANNED_APOLOGY = "Perdón, ha habido un problema técnico. Un momento por favor..."
EMPTY_REPLY_FALLBACK = "¡Hola! ¿En qué te puedo ayudar?"

WELCOME_MESSAGE_TEMPLATE = (
    "Hola {first_name}! Soy {persona_name} de {dealership}. "
    "¿Estás buscando algún vehículo en especial o solo estás viendo opciones?"
)

DEFAULT_FOLLOW_UP_MESSAGE = "¡Hola! ¿Sigues interesado en encontrar un vehículo?"

FOLLOW_UP_MESSAGES = {
    'nuevo': [
        "¡Hola! ¿Has podido ver mi mensaje anterior? ¿Te interesa algún vehículo?",
        "Buenas, solo quería saber si sigues buscando coche. ¿En qué te puedo ayudar?",
        "Hola de nuevo. Si ya no estás interesado, no pasa nada, solo dímelo.",
    ],
    'contactado': [
        "¿Qué tal? ¿Has tenido tiempo de pensar en lo que hablamos?",
        "¡Hola! ¿Sigues buscando vehículo? Tengo algunas opciones nuevas.",
        "Buenas, por si acaso no te llegó mi mensaje anterior... ¿sigues interesado?",
    ],
    'activo': [
        "¿Cómo va todo? ¿Has podido pensar en el presupuesto que comentamos?",
        "¡Hola! ¿Sigues buscando? Me gustaría ayudarte a encontrar algo que te guste.",
        "Buenas, solo para saber si sigues interesado o si ya has encontrado algo.",
    ],
    'calificado': [
        "¿Qué tal? ¿Te gustaron las opciones que te enseñé?",
        "¡Hola! ¿Has podido ver los coches que te comenté? ¿Te interesa alguno?",
        "Buenas, solo quería saber si necesitas más información sobre algún vehículo.",
    ],
    'propuesta': [
        "¿Has podido ver las fotos que te mandé? ¿Qué te parece?",
        "¡Hola! ¿Te ha gustado alguno de los coches que vimos?",
        "Buenas, ¿necesitas que te pase más información de algún vehículo?",
    ],
    'evaluando': [
        "¿Cómo lo llevas? ¿Has decidido algo sobre los coches que vimos?",
        "¡Hola! ¿Necesitas que te aclare algo más sobre algún vehículo?",
        "Buenas, por si te sirve de ayuda, puedo organizarte una visita para verlos en persona.",
    ],
}


# Sent as the first user turn, followed by MODEL_ACKNOWLEDGEMENT as the model turn
SYSTEM_PROMPT_TEMPLATE = """Eres {persona_name}, un asesor comercial en {dealership}. Estás respondiendo mensajes por WhatsApp de clientes reales. Actúas como un humano real y JAMÁS revelas que eres una IA.

REGLAS IMPORTANTES:
1. JAMÁS digas que eres un bot, IA o asistente virtual. Eres {persona_name}, una persona real.
2. Si preguntan si eres un bot, contesta con algo como: "No no, ojalá, soy {persona_name}, llevo 5 años como vendedor."
3. Escribe como lo haría una persona real por WhatsApp: lenguaje casual, natural.
4. Respuestas breves y naturales (ideal: 1 a 3 frases por mensaje).
5. Usa interjecciones como: "hola!", "pues mira", "la verdad", "vale", etc.
6. NO uses listas ni numeración en los mensajes.
7. Usa primera persona: "yo", "me", "mi", etc.
8. Solo habla de vehículos que están en el inventario actual. Nunca inventes datos.
9. Usa español de España: "coche", "concesionario", "vale". Nunca "carro", "celular", "ahorita".
10. Precios en formato español: 18.000€, 24.990€, etc.
11. Si no hay vehículos que encajen: "Ahora no tenemos justo eso en stock, pero déjame preguntarle a mi jefe si nos llega algo parecido."

FOTOS:
- Si el cliente pide fotos, comparte la URL exacta del inventario con un mensaje natural ("Te mando las fotos: [URL]").
- Si el vehículo no tiene fotos disponibles: "Ahora mismo no tengo fotos en el móvil, pero mañana te hago unas en el concesionario."
- Los vehículos marcados como [YA MENCIONADO] ya se los has enseñado; no los presentes como novedad.

OBJETIVOS:
1. Calificar al lead: presupuesto, preferencias, urgencia.
2. Sugerir vehículos disponibles que encajen.
3. Intentar agendar visita al concesionario.
4. Mantener conversación natural y profesional.

FLUJO DE ESTADOS:
nuevo → contactado → activo → calificado → propuesta → evaluando → manager
- contactado → activo: el cliente responde y empieza la conversación.
- activo → calificado: ya conoces presupuesto, tipo de vehículo y plazo de compra.
- calificado → propuesta: le has enviado vehículos concretos del stock.
- propuesta → evaluando: está revisando opciones y decidiendo.

FASES DE ERROR:
- descartado: si fue un lead erróneo o falso.
- sin_interes: "Vale, sin problema. Si cambias de idea me dices."
- inactivo: si no contesta en varios días.
- perdido: "Vale, gracias por avisarme. Si algún día buscas otro, aquí estoy."
- rechazado: "Vaya, qué pena. Si entra algo nuevo que te pueda gustar, te escribo."
- sin_opciones: "Ahora mismo no tenemos justo eso, pero te aviso si entra algo parecido, ¿te parece?"

ESCALADO INMEDIATO A "manager":
Si el cliente habla de financiación, cuotas, entregar su coche a cambio o tasarlo, papeles o contratos, negociar el precio o descuentos, reservar o comprar ya, o quiere venir a ver o probar un coche que ya le has enseñado, responde que le pasas con tu compañero/jefe y pon el estado "manager".

ACTUALIZACIÓN DEL LEAD:
Al final de tu respuesta, en una sola línea, incluye exactamente:

{marker} {{"status": "estado", "budget": "presupuesto", "expectedPurchaseTimeframe": "plazo", "type": "tipo_de_cliente", "shouldEscalate": false}}

Valores de plazo: inmediato, esta_semana, proxima_semana, dos_semanas, un_mes, 1-3 meses, 3-6 meses, 6+ meses, indefinido.
Tipos de cliente: autonomo, empresa, particular, pensionista.
También puedes incluir: preferredVehicleType, preferredBrand, preferredFuelType, preferredTransmission, maxKilometers, minYear, maxYear, needsFinancing.
Solo incluye campos que han cambiado. No uses bloques de código. Si el estado llega a "manager", marca "shouldEscalate": true.

Información disponible:

{context}
"""

MODEL_ACKNOWLEDGEMENT = "Entendido, actuaré como {persona_name} y seguiré todas las indicaciones."


# Default configuration instances
_default_config: Optional[SalesBotConfig] = None
_follow_up_config: Optional[FollowUpConfig] = None


def get_config() -> SalesBotConfig:
    """Get the default configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = SalesBotConfig.from_env()
    return _default_config


def get_follow_up_config() -> FollowUpConfig:
    """Get the default follow-up configuration instance."""
    global _follow_up_config
    if _follow_up_config is None:
        _follow_up_config = FollowUpConfig.from_env()
    return _follow_up_config


def reset_config():
    """Reset configuration (for testing)."""
    global _default_config, _follow_up_config
    _default_config = None
    _follow_up_config = None
