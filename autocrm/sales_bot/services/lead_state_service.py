"""
Lead State Service

Applies a LeadUpdate to the lead row as a sparse patch. Keeps the
follow-up date consistent with the status in the same write, routes
preference keys to lead_preferences, and notifies the manager when a
lead is handed over.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Callable, List

from core.services.notification_service import send_manager_escalation_email, is_smtp_configured
from core.utils.logging_config import get_logger
from ..config import SalesBotConfig, FollowUpConfig, get_config, get_follow_up_config
from ..models import (
    Lead, LeadUpdate, LeadStatus, ConversationContext, WhatsAppMessage, is_bot_managed,
)
from ..repositories import LeadRepository
from .preferences_service import PreferencesService
from .context_extractor import summarize_for_manager

logger = get_logger('autocrm.sales_bot.services.lead_state')

ManagerNotifier = Callable[[Lead, ConversationContext, List[WhatsAppMessage]], None]


class LeadStateService:
    """Lead State Mutator."""

    def __init__(self, config: Optional[SalesBotConfig] = None,
                 follow_up_config: Optional[FollowUpConfig] = None,
                 lead_repo: Optional[LeadRepository] = None,
                 preferences_service: Optional[PreferencesService] = None,
                 notifier: Optional[ManagerNotifier] = None):
        self.config = config or get_config()
        self.follow_up_config = follow_up_config or get_follow_up_config()
        self.lead_repo = lead_repo or LeadRepository()
        self.preferences_service = preferences_service or PreferencesService()
        self.notifier = notifier or self._email_manager

    def patch_fields(self, lead: Lead, update: LeadUpdate, now: Optional[datetime] = None) -> dict:
        """Columns written for `update`, including the follow-up date rule."""
        now = now or datetime.now().astimezone()
        fields = update.lead_fields()

        new_status = fields.get('status')
        if new_status and new_status != lead.status:
            if not is_bot_managed(new_status):
                fields['next_follow_up_date'] = None
            elif lead.next_follow_up_date is None:
                fields['next_follow_up_date'] = now + timedelta(seconds=self.follow_up_config.threshold_seconds)
        return fields

    def apply_update(self, lead: Lead, update: Optional[LeadUpdate],
                     context: Optional[ConversationContext] = None,
                     messages: Optional[List[WhatsAppMessage]] = None,
                     now: Optional[datetime] = None) -> Lead:
        """
        Write the patch and return the lead as it now stands.

        Only fields present on the update change. Moving into manager from
        any other status triggers the manager notification.
        """
        if update is None:
            return lead

        fields = self.patch_fields(lead, update, now)
        if fields:
            self.lead_repo.update_fields(lead.id, fields)
            logger.info(f"Lead {lead.id} updated: {', '.join(sorted(fields))}")

        self.preferences_service.apply_update(lead.id, update)

        updated = replace(lead, **fields)

        if updated.status == LeadStatus.MANAGER.value and lead.status != LeadStatus.MANAGER.value:
            logger.info(f"Lead {lead.id} escalated to manager")
            try:
                self.notifier(updated, context or ConversationContext(), list(messages or []))
            except Exception as e:
                logger.error(f"Manager notification failed for lead {lead.id}: {e}")

        return updated

    def _email_manager(self, lead: Lead, context: ConversationContext,
                       messages: List[WhatsAppMessage]) -> None:
        if not self.config.MANAGER_EMAIL or not is_smtp_configured():
            logger.debug("Manager email not configured, skipping escalation notification")
            return

        summary = summarize_for_manager(context, messages)
        success, error = send_manager_escalation_email(
            self.config.MANAGER_EMAIL,
            lead.name,
            lead.phone or '',
            lead.email,
            summary,
            dealership=self.config.DEALERSHIP_NAME,
        )
        if not success:
            logger.warning(f"Escalation email for lead {lead.id} not sent: {error}")
