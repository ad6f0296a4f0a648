"""
Message Repository

Database operations for stored WhatsApp messages.
"""

import json
from datetime import datetime
from typing import Optional, List

from psycopg2.extras import Json

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger
from ..models import WhatsAppMessage
from .lead_repository import is_valid_uuid

logger = get_logger('autocrm.sales_bot.repo.message')


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class MessageRepository(BaseRepository):
    """Repository for WhatsAppMessage entities.

    Messages are append-only. The delivery status is the only column
    written after insert.
    """

    def create(self, message: WhatsAppMessage) -> Optional[WhatsAppMessage]:
        """
        Store a message.

        Duplicate transport ids (webhook retries) are ignored.

        Returns:
            The stored message with id and created_at, or None on duplicate
        """
        row = self.execute('''
            INSERT INTO whatsapp_messages (
                lead_id, whatsapp_message_id, direction, content,
                phone_number, status, metadata, whatsapp_timestamp
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (whatsapp_message_id) DO NOTHING
            RETURNING id, created_at
        ''', (
            str(message.lead_id),
            message.whatsapp_message_id,
            message.direction.value,
            message.content,
            message.phone_number,
            message.status,
            Json(message.metadata) if message.metadata is not None else None,
            message.whatsapp_timestamp,
        ), returning=True)

        if row is None:
            logger.info(f"Duplicate WhatsApp message {message.whatsapp_message_id} ignored")
            return None

        message.id = str(row['id'])
        message.created_at = _parse_ts(row.get('created_at'))
        return message

    def get_recent(self, lead_id: str, limit: int = 10) -> List[WhatsAppMessage]:
        """Last `limit` messages of a lead, oldest first."""
        if not is_valid_uuid(lead_id):
            return []
        rows = self.query_all('''
            SELECT * FROM (
                SELECT * FROM whatsapp_messages
                WHERE lead_id = %s
                ORDER BY created_at DESC
                LIMIT %s
            ) recent
            ORDER BY created_at ASC
        ''', (str(lead_id), limit))
        return [self._row_to_message(r) for r in rows]

    def update_status(self, whatsapp_message_id: str, status: str) -> int:
        """Apply a delivery receipt (sent/delivered/read/failed)."""
        return self.execute(
            'UPDATE whatsapp_messages SET status = %s WHERE whatsapp_message_id = %s',
            (status, whatsapp_message_id),
        )

    def _row_to_message(self, row: dict) -> WhatsAppMessage:
        metadata = row.get('metadata')
        # Legacy rows stored the bag as a JSON string
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                logger.debug(f"Unparseable metadata on message {row.get('id')}")
        return WhatsAppMessage(
            id=str(row['id']),
            lead_id=str(row['lead_id']),
            direction=row.get('direction') or 'inbound',
            content=row.get('content') or '',
            whatsapp_message_id=row.get('whatsapp_message_id'),
            phone_number=row.get('phone_number'),
            status=row.get('status') or 'received',
            metadata=metadata,
            whatsapp_timestamp=_parse_ts(row.get('whatsapp_timestamp')),
            created_at=_parse_ts(row.get('created_at')),
        )
