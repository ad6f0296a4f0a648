"""Webhook Log Repository, audit trail of raw webhook payloads."""

from typing import Optional

from psycopg2.extras import Json

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger

logger = get_logger('autocrm.sales_bot.repo.webhook_log')


class WebhookLogRepository(BaseRepository):

    def log(self, event_type: str, payload, status: str = 'received') -> Optional[int]:
        row = self.execute('''
            INSERT INTO webhook_logs (event_type, payload, status)
            VALUES (%s, %s, %s)
            RETURNING id
        ''', (event_type, Json(payload), status), returning=True)
        return row['id'] if row else None
