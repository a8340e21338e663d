"""
Webhook notifier for record-change events.
Posts ServiceNow-style change envelopes to the downstream receiver.
"""

from typing import Any, Dict, Optional
import logging
import httpx

from ..models.payloads import WebhookEnvelope
from ..models.records import Record

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Sends record-change webhooks.

    Features:
    - Envelope shape {sys_id, table_name, action_type, data}
    - One POST per event, no retries
    - Failures reported in the result, never raised
    """

    def __init__(self, config: Dict[str, Any], transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize webhook notifier.

        Args:
            config: Configuration including:
                - url: Downstream webhook receiver
                - enabled: Whether change webhooks are sent at all
                - timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.url = config.get("url", "")
        self.enabled = config.get("enabled", True) and bool(self.url)
        self.timeout = config.get("timeout", 10.0)
        self._transport = transport

    def build_envelope(self, table_name: str, record: Record, action_type: str) -> Dict[str, Any]:
        """Build the change envelope for a record."""
        return WebhookEnvelope(
            sys_id=record.get("sys_id"),
            table_name=table_name,
            action_type=action_type,
            data=dict(record),
        ).model_dump()

    async def send(self, envelope: Dict[str, Any], url: Optional[str] = None) -> Dict[str, Any]:
        """
        POST an envelope.

        Args:
            envelope: Webhook payload
            url: Override for the configured receiver

        Returns:
            Dict with success flag and status code or error
        """
        target = url or self.url
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(target, json=envelope, timeout=self.timeout)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Webhook %s/%s to %s failed: %s",
                envelope.get("table_name"), envelope.get("action_type"), target, e,
            )
            return {"success": False, "url": target, "error": str(e)}

        logger.info(
            "Webhook %s/%s sent to %s (status %d)",
            envelope.get("table_name"), envelope.get("action_type"), target, response.status_code,
        )
        return {"success": True, "url": target, "status_code": response.status_code}
