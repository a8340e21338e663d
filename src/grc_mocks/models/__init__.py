"""
Models Package.

Data models for the mock servers:
- TableSpec / RecordRef / Record: GRC tables and their records
- WebhookEnvelope, SlashCommand, InteractionPayload, JiraWebhookEvent: wire shapes
"""

from .payloads import (
    InteractionAction,
    InteractionPayload,
    JiraIssue,
    JiraWebhookEvent,
    SlashCommand,
    TriggerCommandRequest,
    TriggerInteractionRequest,
    WebhookEnvelope,
)
from .records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    RISKS,
    TABLES,
    VENDOR_RISKS,
    Record,
    RecordRef,
    TableSpec,
    extract_record_numbers,
    get_table,
    get_table_by_alias,
    risk_severity,
    table_for_prefix,
)

__all__ = [
    "AUDIT_FINDINGS",
    "COMPLIANCE_TASKS",
    "CONTROL_TESTS",
    "INCIDENTS",
    "REGULATORY_CHANGES",
    "RISKS",
    "TABLES",
    "VENDOR_RISKS",
    "InteractionAction",
    "InteractionPayload",
    "JiraIssue",
    "JiraWebhookEvent",
    "Record",
    "RecordRef",
    "SlashCommand",
    "TableSpec",
    "TriggerCommandRequest",
    "TriggerInteractionRequest",
    "WebhookEnvelope",
    "extract_record_numbers",
    "get_table",
    "get_table_by_alias",
    "risk_severity",
    "table_for_prefix",
]
