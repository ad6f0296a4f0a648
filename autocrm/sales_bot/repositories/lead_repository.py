"""
Lead Repository

Database operations for leads, including the follow-up scheduler queries.
"""

import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any, Sequence

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger
from ..models import Lead, FollowUpCandidate, BOT_MANAGED_STATUSES

logger = get_logger('autocrm.sales_bot.repo.lead')

# Columns the engine is allowed to patch
UPDATABLE_COLUMNS = frozenset({
    'name', 'email', 'status', 'type', 'budget', 'expected_purchase_timeframe',
    'last_contacted_at', 'last_message_at', 'next_follow_up_date', 'follow_up_count',
})

_CANDIDATE_COLUMNS = '''
    id::text AS id, name, phone, status, last_message_at, next_follow_up_date,
    COALESCE(follow_up_count, 0) AS follow_up_count
'''


def is_valid_uuid(value) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except (ValueError, TypeError, AttributeError):
        return False


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class LeadRepository(BaseRepository):
    """Repository for Lead entities."""

    def get_by_id(self, lead_id: str) -> Optional[Lead]:
        if not is_valid_uuid(lead_id):
            return None
        row = self.query_one('SELECT * FROM leads WHERE id = %s', (str(lead_id),))
        return self._row_to_lead(row) if row else None

    def get_by_phone(self, phone: str) -> Optional[Lead]:
        row = self.query_one('SELECT * FROM leads WHERE phone = %s', (phone,))
        return self._row_to_lead(row) if row else None

    def create(self, name: str, phone: str, status: str = 'nuevo',
               now: Optional[datetime] = None) -> Lead:
        """Insert a lead. If the phone already exists, returns the existing lead."""
        now = now or datetime.now().astimezone()
        row = self.execute('''
            INSERT INTO leads (name, phone, status, last_contacted_at, follow_up_count)
            VALUES (%s, %s, %s, %s, 0)
            ON CONFLICT (phone) DO NOTHING
            RETURNING *
        ''', (name, phone, status, now), returning=True)

        if row is None:
            logger.debug(f"Lead already exists for phone {phone}")
            return self.get_by_phone(phone)

        logger.info(f"Created lead {row['id']} for phone {phone}")
        return self._row_to_lead(row)

    def update_fields(self, lead_id: str, fields: Dict[str, Any]) -> int:
        """Patch only the given columns. Unknown columns raise ValueError."""
        if not fields:
            return 0
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update lead columns: {', '.join(sorted(unknown))}")

        columns = sorted(fields)
        assignments = ', '.join(f'{col} = %s' for col in columns)
        params = [fields[col] for col in columns] + [str(lead_id)]

        return self.execute(
            f'UPDATE leads SET {assignments}, updated_at = NOW() WHERE id = %s',
            tuple(params),
        )

    def record_inbound(self, lead_id: str, now: datetime, next_follow_up_date: datetime) -> int:
        """Stamp an inbound reply.

        Bot-managed leads get follow_up_count reset and a fresh follow-up
        date; any other status only gets last_message_at and keeps a null date.
        """
        statuses = list(BOT_MANAGED_STATUSES)
        return self.execute('''
            UPDATE leads SET
                last_message_at = %s,
                follow_up_count = CASE WHEN status = ANY(%s) THEN 0 ELSE COALESCE(follow_up_count, 0) END,
                next_follow_up_date = CASE WHEN status = ANY(%s) THEN %s ELSE NULL END,
                updated_at = NOW()
            WHERE id = %s
        ''', (now, statuses, statuses, next_follow_up_date, str(lead_id)))

    # ── Follow-up scheduler ─────────────────────────────────────

    def get_due_follow_ups(self, now: datetime,
                           statuses: Sequence[str] = BOT_MANAGED_STATUSES) -> List[FollowUpCandidate]:
        """Bot-managed leads with a phone whose follow-up date has elapsed.

        Includes leads already at the retry limit so the caller can retire them.
        """
        rows = self.query_all(f'''
            SELECT {_CANDIDATE_COLUMNS}
            FROM leads
            WHERE phone IS NOT NULL AND phone != ''
              AND status = ANY(%s)
              AND next_follow_up_date < %s
            ORDER BY next_follow_up_date ASC
        ''', (list(statuses), now))
        return [self._row_to_candidate(r) for r in rows]

    def get_follow_up_candidate(self, lead_id: str) -> Optional[FollowUpCandidate]:
        if not is_valid_uuid(lead_id):
            return None
        row = self.query_one(
            f'SELECT {_CANDIDATE_COLUMNS} FROM leads WHERE id = %s', (str(lead_id),)
        )
        return self._row_to_candidate(row) if row else None

    def record_follow_up_sent(self, lead_id: str, follow_up_count: int,
                              next_follow_up_date: Optional[datetime], now: datetime) -> int:
        if next_follow_up_date is None:
            return self.execute('''
                UPDATE leads SET follow_up_count = %s, last_contacted_at = %s, updated_at = NOW()
                WHERE id = %s
            ''', (follow_up_count, now, str(lead_id)))
        return self.execute('''
            UPDATE leads SET follow_up_count = %s, next_follow_up_date = %s,
                             last_contacted_at = %s, updated_at = NOW()
            WHERE id = %s
        ''', (follow_up_count, next_follow_up_date, now, str(lead_id)))

    def mark_inactive(self, lead_id: str) -> int:
        return self.execute('''
            UPDATE leads SET status = 'inactivo', next_follow_up_date = NULL, updated_at = NOW()
            WHERE id = %s
        ''', (str(lead_id),))

    def mark_stale_exhausted_inactive(self, cutoff: datetime, max_follow_ups: int,
                                      statuses: Sequence[str] = BOT_MANAGED_STATUSES) -> List[str]:
        """Retire exhausted leads silent since before `cutoff`. Returns their ids."""
        def _work(cursor):
            cursor.execute('''
                UPDATE leads SET status = 'inactivo', next_follow_up_date = NULL, updated_at = NOW()
                WHERE status = ANY(%s)
                  AND COALESCE(follow_up_count, 0) >= %s
                  AND last_message_at < %s
                RETURNING id::text AS id
            ''', (list(statuses), max_follow_ups, cutoff))
            return [r['id'] for r in cursor.fetchall()]
        return self.execute_many(_work)

    # ── Row mapping ─────────────────────────────────────────────

    def _row_to_lead(self, row: dict) -> Lead:
        return Lead(
            id=str(row["id"]),
            name=row.get("name") or "",
            phone=row.get("phone"),
            email=row.get('email'),
            status=row.get('status') or 'nuevo',
            type=row.get('type'),
            budget=row.get('budget'),
            expected_purchase_timeframe=row.get('expected_purchase_timeframe'),
            last_contacted_at=_parse_ts(row.get('last_contacted_at')),
            last_message_at=_parse_ts(row.get('last_message_at')),
            next_follow_up_date=_parse_ts(row.get('next_follow_up_date')),
            follow_up_count=row.get('follow_up_count') or 0,
            created_at=_parse_ts(row.get('created_at')),
            updated_at=_parse_ts(row.get('updated_at')),
        )

    def _row_to_candidate(self, row: dict) -> FollowUpCandidate:
        return FollowUpCandidate(
            id=row['id'],
            name=row.get('name') or '',
            phone=row.get('phone'),
            status=row.get('status'),
            last_message_at=_parse_ts(row.get('last_message_at')),
            next_follow_up_date=_parse_ts(row.get('next_follow_up_date')),
            follow_up_count=row.get('follow_up_count') or 0,
        )
