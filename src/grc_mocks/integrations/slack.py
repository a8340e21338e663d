"""
Slack Notifier for announcing new GRC records.
Builds block-kit messages per record type and posts them to the mock chat service.
"""

from typing import Any, Dict, List, Optional
import logging
import httpx

from ..commands.actions import actions_for
from ..models.records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    RISKS,
    VENDOR_RISKS,
    Record,
    TableSpec,
    get_table,
    risk_severity,
)

logger = logging.getLogger(__name__)

# (field, label) pairs shown in the fields section, per table
TABLE_FIELDS = {
    RISKS.name: [
        ("number", "Risk ID"), ("category", "Category"),
        ("severity", "Severity"), ("owner", "Owner"),
    ],
    COMPLIANCE_TASKS.name: [
        ("number", "Task ID"), ("compliance_framework", "Framework"),
        ("regulation", "Regulation"), ("due_date", "Due Date"),
    ],
    INCIDENTS.name: [
        ("number", "Incident ID"), ("priority", "Priority"),
        ("severity", "Severity"), ("category", "Category"),
    ],
    CONTROL_TESTS.name: [
        ("number", "Test ID"), ("control_name", "Control"),
        ("test_status", "Test Status"), ("due_date", "Due Date"),
    ],
    AUDIT_FINDINGS.name: [
        ("number", "Finding ID"), ("audit_name", "Audit"),
        ("severity", "Severity"), ("due_date", "Due Date"),
    ],
    VENDOR_RISKS.name: [
        ("number", "Vendor Risk ID"), ("vendor_name", "Vendor"),
        ("risk_level", "Risk Level"), ("status", "Status"),
    ],
    REGULATORY_CHANGES.name: [
        ("number", "Change ID"), ("regulation", "Regulation"),
        ("effective_date", "Effective Date"), ("status", "Status"),
    ],
}

TABLE_EMOJI = {
    RISKS.name: ":warning:",
    COMPLIANCE_TASKS.name: ":clipboard:",
    INCIDENTS.name: ":rotating_light:",
    CONTROL_TESTS.name: ":test_tube:",
    AUDIT_FINDINGS.name: ":mag:",
    VENDOR_RISKS.name: ":office:",
    REGULATORY_CHANGES.name: ":scales:",
}

SEVERITY_EMOJI = {
    "critical": ":red_circle:",
    "high": ":large_orange_circle:",
    "medium": ":large_yellow_circle:",
    "low": ":large_green_circle:",
}


def record_severity(record: Record) -> str:
    """Severity label from the record, falling back to its risk score."""
    severity = record.display("severity") or record.display("risk_level")
    if severity:
        return severity

    score = record.display("risk_score")
    if score:
        try:
            return risk_severity(float(score))
        except ValueError:
            logger.debug("Ignoring non-numeric risk_score %r", score)
    return "Unknown"


class SlackNotifier:
    """
    Posts GRC record notifications to the mock Slack workspace.

    Features:
    - One channel per record type (configurable)
    - Header, type-specific fields, description and context blocks
    - Action buttons whose values carry the record number
    """

    def __init__(self, config: Dict[str, Any], transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize Slack notifier.

        Args:
            config: Configuration including:
                - url: chat.postMessage endpoint of the chat service
                - enabled: Whether chat notifications are sent
                - servicenow_url: Base URL used for "View in ServiceNow" links
                - channels: Table name to channel id mapping
                - timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.url = config.get("url", "")
        self.enabled = config.get("enabled", True) and bool(self.url)
        self.servicenow_url = config.get("servicenow_url", "http://localhost:3000").rstrip("/")
        self.channels = config.get("channels", {})
        self.timeout = config.get("timeout", 10.0)
        self._transport = transport

    def channel_for(self, table: TableSpec) -> Optional[str]:
        return self.channels.get(table.name)

    def build_message(self, table_name: str, record: Record) -> Dict[str, Any]:
        """
        Build the chat.postMessage body for a record.

        Args:
            table_name: ServiceNow table the record belongs to
            record: The record to announce

        Returns:
            Dict with channel, text and blocks
        """
        table = get_table(table_name)
        record = Record(record)
        number = record.number
        title = record.display("title") or record.display("short_description") or "Untitled"
        severity = record_severity(record)
        emoji = TABLE_EMOJI.get(table.name, ":bell:")
        severity_emoji = SEVERITY_EMOJI.get(severity.lower(), ":white_circle:")

        blocks: List[Dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} New {table.label}: {title}"[:150],
                    "emoji": True,
                },
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"{severity_emoji} *Severity:* {severity}"},
                "fields": self._build_fields(table, record),
            },
        ]

        description = record.display("description")
        if description:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Description:*\n{description[:2000]}"},
            })

        blocks.append({"type": "actions", "elements": self._build_buttons(table, record)})
        blocks.append({
            "type": "context",
            "elements": [{
                "type": "mrkdwn",
                "text": f"{table.label} {number} | Created {record.display('created_on')}",
            }],
        })

        return {
            "channel": self.channel_for(table),
            "text": f"New {table.label} {number}: {title}",
            "blocks": blocks,
        }

    def _build_fields(self, table: TableSpec, record: Record) -> List[Dict[str, Any]]:
        fields = []
        for field, label in TABLE_FIELDS.get(table.name, []):
            value = record.display(field, "N/A")
            fields.append({"type": "mrkdwn", "text": f"*{label}:*\n{value}"})
        return fields

    def _build_buttons(self, table: TableSpec, record: Record) -> List[Dict[str, Any]]:
        buttons = []
        for action in actions_for(table):
            buttons.append({
                "type": "button",
                "text": {"type": "plain_text", "text": action.label},
                "action_id": action.action_id,
                "value": action.button_value(record.number),
            })

        buttons.append({
            "type": "button",
            "text": {"type": "plain_text", "text": "View in ServiceNow"},
            "action_id": "view_in_servicenow",
            "url": f"{self.servicenow_url}/nav_to.do?uri={table.name}.do?sys_id={record.sys_id}",
        })
        return buttons

    async def post(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Post a message to the chat service.

        Returns:
            Dict with success flag and the message ts or error
        """
        if not message.get("channel"):
            logger.warning("No channel configured for message: %s", message.get("text"))
            return {"success": False, "error": "no channel"}

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(self.url, json=message, timeout=self.timeout)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Slack notification to %s failed: %s", message.get("channel"), e)
            return {"success": False, "error": str(e)}

        if not body.get("ok", False):
            logger.warning("Slack rejected notification: %s", body.get("error"))
            return {"success": False, "error": body.get("error", "unknown")}

        logger.info("Slack notification posted to %s (ts: %s)", message["channel"], body.get("ts"))
        return {"success": True, "channel": message["channel"], "ts": body.get("ts")}
