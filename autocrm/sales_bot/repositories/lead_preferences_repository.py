"""
Lead Preferences Repository

One row per lead in lead_preferences, upserted from the model's
preference keys and the parsed budget range.
"""

from typing import Dict, Any

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger

logger = get_logger('autocrm.sales_bot.repo.lead_preferences')

PREFERENCE_COLUMNS = (
    'preferred_vehicle_type', 'preferred_brand', 'preferred_fuel_type',
    'preferred_transmission', 'max_kilometers', 'min_year', 'max_year',
    'needs_financing', 'min_budget', 'max_budget',
)


class LeadPreferencesRepository(BaseRepository):

    def upsert(self, lead_id: str, preferences: Dict[str, Any]) -> int:
        """
        Insert or patch the preference row of a lead.

        Only the given columns are written; existing values for other
        columns are kept. Unknown columns are ignored.
        """
        values = {k: v for k, v in preferences.items() if k in PREFERENCE_COLUMNS and v is not None}
        if not values:
            return 0

        columns = sorted(values)
        insert_cols = ', '.join(['lead_id'] + columns)
        placeholders = ', '.join(['%s'] * (len(columns) + 1))
        updates = ', '.join(f'{c} = EXCLUDED.{c}' for c in columns)

        rowcount = self.execute(f'''
            INSERT INTO lead_preferences ({insert_cols})
            VALUES ({placeholders})
            ON CONFLICT (lead_id) DO UPDATE SET {updates}, updated_at = NOW()
        ''', tuple([str(lead_id)] + [values[c] for c in columns]))

        logger.debug(f"Preferences upserted for lead {lead_id}: {', '.join(columns)}")
        return rowcount
