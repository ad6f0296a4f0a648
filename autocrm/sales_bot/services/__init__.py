"""
Sales Bot Services

Business logic layer for the sales assistant.
"""

from .sales_bot_service import SalesBotService
from .conversation_service import ConversationService
from .followup_service import FollowUpService
from .lead_state_service import LeadStateService
from .retrieval_service import RetrievalService
from .embedding_service import EmbeddingService
from .context_extractor import ContextExtractor
from .preferences_service import PreferencesService

__all__ = [
    'SalesBotService',
    'ConversationService',
    'FollowUpService',
    'LeadStateService',
    'RetrievalService',
    'EmbeddingService',
    'ContextExtractor',
    'PreferencesService',
]
