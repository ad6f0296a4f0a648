"""
Follow-up Service

Scheduled nudges for silent leads. A sweep picks every bot-managed lead
whose follow-up date has passed, sends the scripted message for its
status and attempt number, and retires leads that already used all their
attempts. Leads are handled one at a time with a fixed delay before each
send. Each sweep holds a TTL lease so overlapping runs skip instead of
double-sending.
"""

import logging
import os
import socket
import time
import uuid
from datetime import datetime, timedelta
from typing import Optional, Callable

from core.utils.logging_config import get_logger, log_with_context
from ..config import (
    FollowUpConfig, get_follow_up_config, FOLLOW_UP_MESSAGES, DEFAULT_FOLLOW_UP_MESSAGE,
)
from ..exceptions import FollowUpDivergenceError
from ..models import (
    FollowUpCandidate, FollowUpRunResult, WhatsAppMessage, MessageDirection,
    ServiceResult, is_bot_managed,
)
from ..repositories import LeadRepository, MessageRepository, LeaseRepository
from ..clients import WhatsAppClient, get_whatsapp_client

logger = get_logger('autocrm.sales_bot.services.followup')

LEASE_NAME = 'follow_up_sweep'


def get_follow_up_message(status: str, follow_up_count: int) -> str:
    """Scripted message for a status. Past the end of the list the last one repeats."""
    messages = FOLLOW_UP_MESSAGES.get(status)
    if not messages:
        return DEFAULT_FOLLOW_UP_MESSAGE
    index = min(max(follow_up_count, 0), len(messages) - 1)
    return messages[index]


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class FollowUpService:
    """Follow-up scheduler: automatic sweep and manual single-lead trigger."""

    def __init__(self, config: Optional[FollowUpConfig] = None,
                 lead_repo: Optional[LeadRepository] = None,
                 message_repo: Optional[MessageRepository] = None,
                 lease_repo: Optional[LeaseRepository] = None,
                 client: Optional[WhatsAppClient] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Optional[Callable[[], datetime]] = None,
                 holder: Optional[str] = None):
        self.config = config or get_follow_up_config()
        self.lead_repo = lead_repo or LeadRepository()
        self.message_repo = message_repo or MessageRepository()
        self.lease_repo = lease_repo or LeaseRepository()
        self._client = client
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.holder = holder or _default_holder()

    @property
    def client(self) -> WhatsAppClient:
        if self._client is None:
            self._client = get_whatsapp_client()
        return self._client

    def next_follow_up_date(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.config.threshold_seconds)

    # ── Inbound replies ─────────────────────────────────────────

    def record_inbound(self, lead_id: str, now: Optional[datetime] = None) -> int:
        """Reset the follow-up episode of a lead that just wrote to us."""
        now = now or self.clock()
        return self.lead_repo.record_inbound(lead_id, now, self.next_follow_up_date(now))

    # ── Automatic sweep ─────────────────────────────────────────

    def process_follow_ups(self, include_inactivity_sweep: bool = True) -> FollowUpRunResult:
        """
        One scheduler run. Skipped when another worker holds the lease.

        Returns:
            FollowUpRunResult with per-outcome counts
        """
        result = FollowUpRunResult()
        ttl = self.config.LEASE_TTL_SECONDS

        if not self.lease_repo.acquire(LEASE_NAME, self.holder, ttl):
            result.skipped = True
            return result

        try:
            now = self.clock()
            due = self.lead_repo.get_due_follow_ups(now)
            result.due = len(due)
            if due:
                logger.info(f"Processing {len(due)} due follow-ups")

            for candidate in due:
                self.lease_repo.renew(LEASE_NAME, self.holder, ttl)
                try:
                    self._process_candidate(candidate, result)
                except Exception as e:
                    result.failed += 1
                    result.errors.append(f"{candidate.id}: {e}")
                    logger.error(f"Error sending follow-up to lead {candidate.id}: {e}")

            if include_inactivity_sweep:
                result.swept_inactive = len(self.mark_stale_inactive())

            if result.due:
                logger.info(
                    f"Follow-up run done: sent={result.sent} inactivated={result.inactivated} "
                    f"failed={result.failed}"
                )
            return result
        finally:
            self.lease_repo.release(LEASE_NAME, self.holder)

    def _process_candidate(self, candidate: FollowUpCandidate, result: FollowUpRunResult):
        if candidate.follow_up_count >= self.config.MAX_FOLLOW_UPS:
            self.lead_repo.mark_inactive(candidate.id)
            result.inactivated += 1
            logger.info(
                f"Lead {candidate.id} exhausted {candidate.follow_up_count} follow-ups, marked inactivo"
            )
            return

        self.sleep(self.config.MESSAGE_DELAY_SECONDS)
        self._send(candidate, manual=False)
        result.sent += 1

    def mark_stale_inactive(self, now: Optional[datetime] = None) -> list:
        """Retire exhausted leads silent for THRESHOLD x MAX x 2."""
        now = now or self.clock()
        window = self.config.threshold_seconds * self.config.MAX_FOLLOW_UPS * 2
        cutoff = now - timedelta(seconds=window)
        ids = self.lead_repo.mark_stale_exhausted_inactive(cutoff, self.config.MAX_FOLLOW_UPS)
        if ids:
            logger.info(f"Marked {len(ids)} stale leads inactivo")
        return ids

    # ── Manual trigger ──────────────────────────────────────────

    def send_manual_follow_up(self, lead_id: str) -> ServiceResult:
        """Send the next follow-up now, ignoring the follow-up date."""
        candidate = self.lead_repo.get_follow_up_candidate(lead_id)
        if candidate is None:
            return ServiceResult(success=False, error="Lead not found")
        if not candidate.phone:
            return ServiceResult(success=False, error="Lead has no phone number")
        if candidate.follow_up_count >= self.config.MAX_FOLLOW_UPS:
            return ServiceResult(success=False, error="Maximum follow-ups reached")
        if not is_bot_managed(candidate.status):
            return ServiceResult(success=False, error="Lead status doesn't allow follow-ups")

        try:
            message_id, new_count = self._send(candidate, manual=True)
        except Exception as e:
            logger.error(f"Error sending manual follow-up to lead {lead_id}: {e}")
            return ServiceResult(success=False, error="Failed to send follow-up")

        return ServiceResult(success=True, data={
            'follow_up_count': new_count,
            'message_id': message_id,
        })

    # ── Shared send path ────────────────────────────────────────

    def _send(self, candidate: FollowUpCandidate, manual: bool):
        """Send, store the message, update the lead. Returns (message_id, new_count)."""
        body = get_follow_up_message(candidate.status, candidate.follow_up_count)
        message_id = self.client.send_text(candidate.phone, body)

        new_count = candidate.follow_up_count + 1
        now = self.clock()

        metadata = {'isFollowUp': True, 'followUpCount': new_count}
        if manual:
            metadata['isManual'] = True

        try:
            self.message_repo.create(WhatsAppMessage(
                lead_id=candidate.id,
                direction=MessageDirection.OUTBOUND,
                content=body,
                whatsapp_message_id=message_id,
                phone_number=candidate.phone,
                status='sent',
                metadata=metadata,
            ))
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Follow-up divergence: message not stored: {e}",
                lead_id=candidate.id, provider_message_id=message_id, follow_up_count=new_count,
            )

        # Manual sends keep the scheduled date
        next_date = None if manual else self.next_follow_up_date(now)
        try:
            self.lead_repo.record_follow_up_sent(candidate.id, new_count, next_date, now)
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Follow-up divergence: follow_up_count not updated: {e}",
                lead_id=candidate.id, provider_message_id=message_id, follow_up_count=new_count,
            )
            raise FollowUpDivergenceError(candidate.id, message_id, str(e)) from e

        logger.info(f"Follow-up {new_count} sent to lead {candidate.id} ({message_id})")
        return message_id, new_count
