"""
Preferences Service

Keeps lead_preferences in sync with what the lead tells the bot: the
preference keys of a LeadUpdate and the min/max parsed out of the free
text budget.
"""

import re
from typing import Optional, Dict, Any

from core.utils.logging_config import get_logger
from ..models import LeadUpdate
from ..repositories import LeadPreferencesRepository

logger = get_logger('autocrm.sales_bot.services.preferences')

# Tried in order on the normalized budget text
BUDGET_PATTERNS = (
    re.compile(r'(\d+)\s*-\s*(\d+)'),
    re.compile(r'entre\s*(\d+)\s*y\s*(\d+)'),
    re.compile(r'hasta\s*(\d+)'),
    re.compile(r'máximo\s*(\d+)'),
    re.compile(r'menos\s*de\s*(\d+)'),
    re.compile(r'alrededor\s*de\s*(\d+)'),
    re.compile(r'unos?\s*(\d+)'),
    re.compile(r'(\d+)'),
)
APPROXIMATE_MARGIN = 0.2


def parse_budget_range(budget: Optional[str]) -> Dict[str, float]:
    """
    Extract {'min': .., 'max': ..} from a Spanish budget phrase.

    '10.000-15.000€' -> min 10000, max 15000
    'hasta 15k'      -> max 15000
    'unos 12000'     -> min 9600, max 14400
    '18000'          -> max 18000
    Unparseable text -> {}
    """
    if not budget:
        return {}

    lowered = budget.lower()
    clean = re.sub(r'[€$,.]', '', lowered).replace('k', '000').strip()

    for pattern in BUDGET_PATTERNS:
        match = pattern.search(clean)
        if not match:
            continue
        if match.lastindex and match.lastindex >= 2:
            return {'min': float(match.group(1)), 'max': float(match.group(2))}

        value = float(match.group(1))
        if any(word in lowered for word in ('hasta', 'máximo', 'menos')):
            return {'max': value}
        if any(word in lowered for word in ('alrededor', 'unos')):
            return {
                'min': value * (1 - APPROXIMATE_MARGIN),
                'max': value * (1 + APPROXIMATE_MARGIN),
            }
        return {'max': value}

    return {}


class PreferencesService:
    """Best-effort preference upserts. Failures are logged, not raised."""

    def __init__(self, repo: Optional[LeadPreferencesRepository] = None):
        self.repo = repo or LeadPreferencesRepository()

    def collect(self, update: LeadUpdate) -> Dict[str, Any]:
        values = dict(update.preferences)
        budget_range = parse_budget_range(update.budget)
        if budget_range.get('min'):
            values['min_budget'] = budget_range['min']
        if budget_range.get('max'):
            values['max_budget'] = budget_range['max']
        return values

    def apply_update(self, lead_id: str, update: LeadUpdate) -> bool:
        values = self.collect(update)
        if not values:
            return False
        try:
            self.repo.upsert(lead_id, values)
            logger.info(f"Updated preferences for lead {lead_id}: {', '.join(sorted(values))}")
            return True
        except Exception as e:
            logger.error(f"Error updating preferences for lead {lead_id}: {e}")
            return False
