"""Knowledge Document Repository, similarity search over bot_documents."""

from typing import List

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger
from ..models import KnowledgeDocument

logger = get_logger('autocrm.sales_bot.repo.knowledge_document')


class KnowledgeDocumentRepository(BaseRepository):

    def search_similar(self, embedding: List[float], limit: int = 3) -> List[KnowledgeDocument]:
        """Top documents by cosine similarity, best first."""
        rows = self.query_all('''
            SELECT id::text AS id, title, category, content,
                   1 - (embedding <=> %s::vector) AS similarity
            FROM bot_documents
            WHERE embedding IS NOT NULL
            ORDER BY embedding <=> %s::vector
            LIMIT %s
        ''', (embedding, embedding, limit))

        documents = [
            KnowledgeDocument(
                id=r['id'],
                title=r.get('title') or '',
                category=r.get('category'),
                content=r.get('content') or '',
                similarity=float(r['similarity']) if r.get('similarity') is not None else 0.0,
            )
            for r in rows
        ]
        logger.debug(f"Document search found {len(documents)} matches")
        return documents
