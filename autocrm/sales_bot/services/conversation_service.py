"""
Conversation Service

Handles WhatsApp webhook deliveries: welcomes new contacts, answers
inbound text messages through the sales bot, and applies delivery
receipts to stored messages.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Callable, Dict, Any

from core.utils.logging_config import get_logger, LogContext
from ..config import (
    SalesBotConfig, FollowUpConfig, get_config, get_follow_up_config,
    WELCOME_MESSAGE_TEMPLATE, CANNED_APOLOGY,
)
from ..models import Lead, LeadStatus, WhatsAppMessage, MessageDirection
from ..repositories import LeadRepository, MessageRepository, WebhookLogRepository
from ..clients import WhatsAppClient, get_whatsapp_client
from .context_extractor import build_car_context_metadata, extract_car_information_request
from .followup_service import FollowUpService
from .lead_state_service import LeadStateService
from .sales_bot_service import SalesBotService

logger = get_logger('autocrm.sales_bot.services.conversation')

WEBHOOK_OBJECT = 'whatsapp_business_account'
DEFAULT_LEAD_NAME = 'WhatsApp User'


def _phone_from_wa_id(wa_id: str) -> str:
    return f"+{wa_id}"


def _parse_epoch(value) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class ConversationService:
    """Webhook entry point for the WhatsApp channel."""

    def __init__(self, config: Optional[SalesBotConfig] = None,
                 follow_up_config: Optional[FollowUpConfig] = None,
                 lead_repo: Optional[LeadRepository] = None,
                 message_repo: Optional[MessageRepository] = None,
                 webhook_log_repo: Optional[WebhookLogRepository] = None,
                 bot_service: Optional[SalesBotService] = None,
                 lead_state: Optional[LeadStateService] = None,
                 follow_up_service: Optional[FollowUpService] = None,
                 client: Optional[WhatsAppClient] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config or get_config()
        self.follow_up_config = follow_up_config or get_follow_up_config()
        self.lead_repo = lead_repo or LeadRepository()
        self.message_repo = message_repo or MessageRepository()
        self.webhook_log_repo = webhook_log_repo or WebhookLogRepository()
        self.bot_service = bot_service or SalesBotService(self.config, message_repo=self.message_repo)
        self.lead_state = lead_state or LeadStateService(
            self.config, self.follow_up_config, lead_repo=self.lead_repo,
        )
        self.follow_up_service = follow_up_service or FollowUpService(
            self.follow_up_config, lead_repo=self.lead_repo, message_repo=self.message_repo,
            client=client, sleep=sleep,
        )
        self._client = client
        self.sleep = sleep

    @property
    def client(self) -> WhatsAppClient:
        if self._client is None:
            self._client = get_whatsapp_client()
        return self._client

    # ── Webhook dispatch ────────────────────────────────────────

    def verify_subscription(self, mode: Optional[str], token: Optional[str]) -> bool:
        expected = self.config.WEBHOOK_VERIFY_TOKEN
        return mode == 'subscribe' and bool(expected) and token == expected

    def handle_webhook(self, payload: Dict[str, Any]) -> None:
        """
        Process one webhook delivery.

        Contacts are handled before messages so a first message from a new
        number finds the lead created for it.
        """
        try:
            self.webhook_log_repo.log('whatsapp_incoming', payload)
        except Exception as e:
            logger.error(f"Error logging webhook event: {e}")

        if not isinstance(payload, dict) or payload.get('object') != WEBHOOK_OBJECT:
            return

        for entry in payload.get('entry') or []:
            for change in entry.get('changes') or []:
                if change.get('field') != 'messages':
                    continue
                value = change.get('value') or {}

                for contact in value.get('contacts') or []:
                    self.handle_new_contact(contact)
                for message in value.get('messages') or []:
                    self.handle_incoming_message(message)
                for status in value.get('statuses') or []:
                    self.handle_status(status)

    # ── Contacts ────────────────────────────────────────────────

    def handle_new_contact(self, contact: Dict[str, Any]) -> Optional[Lead]:
        """Create and welcome a lead for an unknown number. Returns the new lead."""
        try:
            phone = _phone_from_wa_id(contact['wa_id'])
            name = (contact.get('profile') or {}).get('name') or DEFAULT_LEAD_NAME

            if self.lead_repo.get_by_phone(phone):
                logger.debug(f"Lead already exists for phone {phone}")
                return None

            lead = self.lead_repo.create(name, phone, LeadStatus.NUEVO.value)
            self.send_welcome(lead)

            # Initial follow-up date, set even when the welcome failed
            next_date = self.follow_up_service.next_follow_up_date(datetime.now().astimezone())
            self.lead_repo.update_fields(lead.id, {'next_follow_up_date': next_date})
            return lead
        except Exception as e:
            logger.error(f"Error handling new contact: {e}")
            return None

    def send_welcome(self, lead: Lead) -> Optional[str]:
        try:
            self.sleep(self.follow_up_config.MESSAGE_DELAY_SECONDS)
            body = WELCOME_MESSAGE_TEMPLATE.format(
                first_name=lead.first_name,
                persona_name=self.config.PERSONA_NAME,
                dealership=self.config.DEALERSHIP_NAME,
            )
            message_id = self.client.send_text(lead.phone, body)

            self.message_repo.create(WhatsAppMessage(
                lead_id=lead.id,
                direction=MessageDirection.OUTBOUND,
                content=body,
                whatsapp_message_id=message_id,
                phone_number=lead.phone,
                status='sent',
                metadata={'isWelcomeMessage': True},
            ))
            self.lead_repo.update_fields(lead.id, {
                'status': LeadStatus.CONTACTADO.value,
                'last_contacted_at': datetime.now().astimezone(),
            })
            logger.info(f"Welcome message sent to lead {lead.id}")
            return message_id
        except Exception as e:
            logger.error(f"Error sending welcome message to lead {lead.id}: {e}")
            return None

    # ── Inbound messages ────────────────────────────────────────

    def handle_incoming_message(self, message: Dict[str, Any]) -> None:
        try:
            text = (message.get('text') or {}).get('body')
            if not text:
                return

            phone = _phone_from_wa_id(message['from'])
            lead = self.lead_repo.get_by_phone(phone)
            if lead is None:
                lead = self.lead_repo.create(DEFAULT_LEAD_NAME, phone, LeadStatus.NUEVO.value)

            stored = self.message_repo.create(WhatsAppMessage(
                lead_id=lead.id,
                direction=MessageDirection.INBOUND,
                content=text,
                whatsapp_message_id=message.get('id'),
                phone_number=phone,
                status='received',
                whatsapp_timestamp=_parse_epoch(message.get('timestamp')),
            ))
            if stored is None:
                # Webhook retry of a message already answered
                return

            with LogContext(logger, lead_id=lead.id, whatsapp_message_id=message.get('id')):
                self.process_message(lead, text, message.get('id'))
        except Exception as e:
            logger.error(f"Error handling incoming message: {e}")

    def process_message(self, lead: Lead, text: str, inbound_id: Optional[str]) -> Optional[str]:
        """
        Answer one stored inbound message.

        Returns the transport id of the reply, or None if only the apology
        (or nothing) went out.
        """
        try:
            logger.info(f"Processing message for lead {lead.id}")

            self.follow_up_service.record_inbound(lead.id)
            lead = self.lead_repo.get_by_id(lead.id) or lead

            history = self.bot_service.load_history(lead.id)
            bot_reply = self.bot_service.generate_reply(lead, text, history)

            self.lead_state.apply_update(lead, bot_reply.update, bot_reply.context, history)

            self.sleep(self.config.REPLY_DELAY_SECONDS)
            reply_id = self.client.send_text(lead.phone, bot_reply.reply)

            car_ids = bot_reply.retrieval.vehicle_ids
            request = extract_car_information_request(text)
            metadata = build_car_context_metadata(
                car_ids,
                stage=bot_reply.context.conversation_stage,
                user_request=request.request_type,
                bot_action='reply',
            )
            metadata['respondingToMessage'] = inbound_id
            metadata['hasCarContext'] = bool(car_ids)

            self.message_repo.create(WhatsAppMessage(
                lead_id=lead.id,
                direction=MessageDirection.OUTBOUND,
                content=bot_reply.reply,
                whatsapp_message_id=reply_id,
                phone_number=lead.phone,
                status='sent',
                metadata=metadata,
            ))
            logger.info(f"Reply sent to lead {lead.id} ({len(car_ids)} vehicles in context)")

            self._mark_read(inbound_id)
            return reply_id
        except Exception as e:
            logger.error(f"Error processing message for lead {lead.id}: {e}")
            self._send_apology(lead)
            return None

    def _mark_read(self, inbound_id: Optional[str]):
        if not inbound_id:
            return
        self.sleep(self.config.MARK_READ_DELAY_SECONDS)
        try:
            self.client.mark_as_read(inbound_id)
        except Exception as e:
            logger.warning(f"Error marking message {inbound_id} as read: {e}")

    def _send_apology(self, lead: Lead):
        try:
            self.sleep(self.follow_up_config.MESSAGE_DELAY_SECONDS)
            self.client.send_text(lead.phone, CANNED_APOLOGY)
        except Exception as e:
            logger.error(f"Error sending fallback message to lead {lead.id}: {e}")

    # ── Delivery receipts ───────────────────────────────────────

    def handle_status(self, status: Dict[str, Any]) -> None:
        try:
            self.message_repo.update_status(status['id'], status['status'])
        except Exception as e:
            logger.error(f"Error handling message status: {e}")
