"""WhatsApp Cloud API client.

Sends text messages and read receipts through the Graph API
(POST /{phone_number_id}/messages, Bearer token auth).

The client is built from an explicit WhatsAppConfig value and validates it
at construction, so missing credentials fail when the app wires its
services rather than on the first send.
"""

import os
import re
from dataclasses import dataclass
from typing import Optional

import requests

from core.utils.logging_config import get_logger
from .exceptions import (
    TransportConfigurationError, NetworkError, RequestTimeoutError, APIError, ParseError,
)

logger = get_logger('autocrm.sales_bot.whatsapp')

GRAPH_BASE_URL = 'https://graph.facebook.com'
DEFAULT_API_VERSION = 'v21.0'
DEFAULT_TIMEOUT = 15


@dataclass(frozen=True)
class WhatsAppConfig:
    access_token: str = ''
    phone_number_id: str = ''
    api_version: str = DEFAULT_API_VERSION
    base_url: str = GRAPH_BASE_URL
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> 'WhatsAppConfig':
        return cls(
            access_token=os.environ.get('WHATSAPP_ACCESS_TOKEN', ''),
            phone_number_id=os.environ.get('WHATSAPP_PHONE_NUMBER_ID', ''),
            api_version=os.environ.get('WHATSAPP_API_VERSION', DEFAULT_API_VERSION),
            timeout=int(os.environ.get('WHATSAPP_TIMEOUT', str(DEFAULT_TIMEOUT))),
        )

    def validate(self):
        """Raise TransportConfigurationError naming every missing credential."""
        missing = []
        if not self.access_token:
            missing.append('access_token')
        if not self.phone_number_id:
            missing.append('phone_number_id')
        if missing:
            raise TransportConfigurationError(
                f"WhatsApp API credentials missing: {', '.join(missing)}",
                details={'missing': missing},
            )

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"


class WhatsAppClient:
    """Client for the WhatsApp Business Cloud API."""

    def __init__(self, config: WhatsAppConfig, session: Optional[requests.Session] = None):
        config.validate()
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update({
            'Authorization': f'Bearer {config.access_token}',
            'Content-Type': 'application/json',
        })
        logger.info(f"WhatsApp client ready (phone_number_id={config.phone_number_id}, api={config.api_version})")

    @staticmethod
    def format_phone_number(phone: str) -> str:
        """Strip everything but digits ('+34 600 11 22 33' -> '34600112233')."""
        return re.sub(r'\D', '', phone or '')

    def send_text(self, to: str, body: str) -> str:
        """Send a text message. Returns the provider message id."""
        recipient = self.format_phone_number(to)
        if not recipient:
            raise APIError(f"Invalid destination phone number: {to!r}")

        data = self._post({
            'messaging_product': 'whatsapp',
            'to': recipient,
            'type': 'text',
            'text': {'body': body},
        })

        try:
            message_id = data['messages'][0]['id']
        except (KeyError, IndexError, TypeError):
            raise ParseError(f"Send response has no message id: {data}")

        logger.debug(f"WhatsApp message sent to {recipient}: id={message_id}")
        return message_id

    def mark_as_read(self, message_id: str) -> dict:
        """Mark an inbound message as read."""
        return self._post({
            'messaging_product': 'whatsapp',
            'status': 'read',
            'message_id': message_id,
        })

    def _post(self, payload: dict) -> dict:
        url = self.config.messages_url
        try:
            resp = self._session.post(url, json=payload, timeout=self.config.timeout)
        except requests.exceptions.Timeout:
            raise RequestTimeoutError(f"Timeout after {self.config.timeout}s: POST {url}")
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Cannot connect to {self.config.base_url}: {e}")

        body = self._parse_json(resp)

        if resp.status_code >= 400:
            error = body.get('error', {}) if isinstance(body, dict) else {}
            msg = error.get('message') or f'HTTP {resp.status_code}'
            logger.error(f"WhatsApp API error {resp.status_code}: {msg}")
            raise APIError(
                f"WhatsApp API Error: {msg}",
                status_code=resp.status_code,
                code=error.get('code'),
                details=error,
            )

        return body

    def _parse_json(self, resp):
        """Parse JSON response, raise ParseError on failure."""
        try:
            return resp.json()
        except (ValueError, TypeError) as e:
            raise ParseError(f"Invalid JSON response (HTTP {resp.status_code}): {e}")


_default_client: Optional[WhatsAppClient] = None


def get_whatsapp_client() -> WhatsAppClient:
    """Build (once) the client from environment configuration."""
    global _default_client
    if _default_client is None:
        _default_client = WhatsAppClient(WhatsAppConfig.from_env())
    return _default_client


def reset_whatsapp_client():
    """Drop the cached client (for testing)."""
    global _default_client
    _default_client = None
