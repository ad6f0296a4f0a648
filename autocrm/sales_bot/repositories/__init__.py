"""
Sales Bot Repositories

Database access layer for the sales assistant.
"""

from .lead_repository import LeadRepository
from .message_repository import MessageRepository
from .vehicle_repository import VehicleRepository
from .knowledge_document_repository import KnowledgeDocumentRepository
from .lead_preferences_repository import LeadPreferencesRepository
from .webhook_log_repository import WebhookLogRepository
from .lease_repository import LeaseRepository

__all__ = [
    'LeadRepository',
    'MessageRepository',
    'VehicleRepository',
    'KnowledgeDocumentRepository',
    'LeadPreferencesRepository',
    'WebhookLogRepository',
    'LeaseRepository',
]
