"""
Sales Bot Clients

Outbound transport used by the conversation pipeline and the scheduler.
"""

from .whatsapp_client import WhatsAppClient, WhatsAppConfig, get_whatsapp_client
from .exceptions import TransportError, TransportConfigurationError

__all__ = [
    'WhatsAppClient',
    'WhatsAppConfig',
    'get_whatsapp_client',
    'TransportError',
    'TransportConfigurationError',
]
