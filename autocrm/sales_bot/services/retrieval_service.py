"""
Retrieval Service

Chooses the vehicles and knowledge documents placed in front of the model
for one turn. When the lead is clearly talking about cars already shown,
those cars are reused verbatim; otherwise the query is embedded and the
inventory and knowledge base are searched by similarity.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional, List

from core.utils.logging_config import get_logger
from ..config import SalesBotConfig, get_config
from ..exceptions import EmbeddingError, ConfigurationError
from ..models import (
    ConversationContext, RetrievalResult, TaggedVehicle, ContextTag, Vehicle,
)
from ..repositories import VehicleRepository, KnowledgeDocumentRepository
from .embedding_service import EmbeddingService
from .context_extractor import is_asking_about_previous_cars, extract_car_information_request

logger = get_logger('autocrm.sales_bot.services.retrieval')

CONTINUATION_REQUESTS = ('photos', 'price')


def is_continuation(query: str, context: ConversationContext) -> bool:
    """True when the query refers back to vehicles the context already holds."""
    if not context.selected_cars:
        return False
    if is_asking_about_previous_cars(query):
        return True
    return extract_car_information_request(query).request_type in CONTINUATION_REQUESTS


def tag_vehicles(vehicles: List[Vehicle], context: ConversationContext) -> List[TaggedVehicle]:
    seen = set(context.unique_car_ids) | set(context.selected_car_ids)
    return [
        TaggedVehicle(
            vehicle=v,
            tag=ContextTag.PREVIOUSLY_MENTIONED if v.id in seen else ContextTag.NEW,
        )
        for v in vehicles
    ]


class RetrievalService:
    """Continuation reuse or fresh similarity search. Never raises."""

    def __init__(self, config: Optional[SalesBotConfig] = None,
                 embedding_service: Optional[EmbeddingService] = None,
                 vehicle_repo: Optional[VehicleRepository] = None,
                 document_repo: Optional[KnowledgeDocumentRepository] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.config = config or get_config()
        self.embedding_service = embedding_service or EmbeddingService()
        self.vehicle_repo = vehicle_repo or VehicleRepository()
        self.document_repo = document_repo or KnowledgeDocumentRepository()
        self._executor = executor or ThreadPoolExecutor(max_workers=2)

    def retrieve(self, query: str, context: ConversationContext) -> RetrievalResult:
        if is_continuation(query, context):
            logger.debug(f"Continuation query, reusing {len(context.selected_cars)} vehicles")
            return RetrievalResult(
                vehicles=[TaggedVehicle(v, ContextTag.PREVIOUSLY_MENTIONED)
                          for v in context.selected_cars],
                reused_context=True,
            )

        embedding = self._embed(query)
        if embedding is None:
            return RetrievalResult()

        try:
            documents = self.document_repo.search_similar(
                embedding, limit=self.config.RAG_DOCUMENT_LIMIT
            )
        except Exception as e:
            logger.warning(f"Knowledge document search failed: {e}")
            documents = []

        try:
            vehicles = self.vehicle_repo.search_similar(
                embedding, limit=self.config.RAG_VEHICLE_LIMIT
            )
        except Exception as e:
            logger.warning(f"Vehicle search failed: {e}")
            vehicles = []

        # Inventory search already filters sold cars; guard against stale rows
        vehicles = [v for v in vehicles if not v.vendido]

        logger.debug(f"Fresh search: {len(documents)} documents, {len(vehicles)} vehicles")
        return RetrievalResult(
            vehicles=tag_vehicles(vehicles, context),
            documents=documents,
        )

    def _embed(self, query: str) -> Optional[List[float]]:
        if not query or not query.strip():
            return None
        future = self._executor.submit(self.embedding_service.generate_embedding, query)
        try:
            return future.result(timeout=self.config.EMBEDDING_TIMEOUT)
        except FutureTimeoutError:
            logger.warning(f"Embedding timed out after {self.config.EMBEDDING_TIMEOUT}s")
        except (EmbeddingError, ConfigurationError) as e:
            logger.warning(f"Embedding unavailable, skipping retrieval: {e}")
        except Exception as e:
            logger.error(f"Unexpected embedding failure: {e}")
        return None
