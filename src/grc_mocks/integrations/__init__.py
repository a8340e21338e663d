"""
Integrations Package.

Outbound notifications and inbound reconciliation:
- WebhookNotifier: record-change webhooks
- SlackNotifier: block-kit notifications to the chat service
- NotificationDispatcher: bounded queue and worker pool for both
- JiraSync: issue status reconciliation
"""

from .dispatcher import DispatchJob, NotificationDispatcher
from .jira import JiraSync, map_status
from .slack import SlackNotifier, record_severity
from .webhooks import WebhookNotifier

__all__ = [
    "DispatchJob",
    "JiraSync",
    "NotificationDispatcher",
    "SlackNotifier",
    "WebhookNotifier",
    "map_status",
    "record_severity",
]
