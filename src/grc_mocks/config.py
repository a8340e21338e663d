"""
Configuration management for the mock GRC and Slack servers.
"""

import os
from typing import Any, Dict, Optional
import yaml


DEFAULT_CHANNELS = {
    "sn_risk_risk": "C67890",            # risk-management
    "sn_compliance_task": "C11111",      # compliance-team
    "sn_si_incident": "C22222",          # incident-response
    "sn_policy_control_test": "C66666",  # control-testing
    "sn_audit_finding": "C54321",        # audit
    "sn_vendor_risk": "C33333",          # vendor-risk
    "sn_regulatory_change": "C44444",    # regulatory-updates
}


class Config:
    """Configuration loaded from environment and an optional YAML file."""

    def __init__(self, path: Optional[str] = None):
        # ServiceNow mock
        self.servicenow_host = os.getenv("SERVICENOW_HOST", "0.0.0.0")
        self.servicenow_port = int(os.getenv("SERVICENOW_PORT", "3000"))
        self.servicenow_url = os.getenv("SERVICENOW_URL", "http://localhost:3000")

        # Slack mock
        self.slack_host = os.getenv("SLACK_HOST", "0.0.0.0")
        self.slack_port = int(os.getenv("SLACK_PORT", "3002"))
        self.slack_url = os.getenv("SLACK_URL", "http://localhost:3002")

        # Downstream receivers
        self.webhook_url = os.getenv(
            "WEBHOOK_URL", "http://localhost:8080/api/webhooks/servicenow"
        )
        self.command_url = os.getenv("SLACK_COMMAND_URL", "")
        self.interaction_url = os.getenv("SLACK_INTERACTION_URL", "")
        self.app_command_url = os.getenv(
            "APP_COMMAND_URL", "http://localhost:8081/api/slack/commands"
        )
        self.app_interaction_url = os.getenv(
            "APP_INTERACTION_URL", "http://localhost:8081/api/slack/interactions"
        )

        # Notification Configuration
        self.webhook_enabled = os.getenv("WEBHOOK_ENABLED", "true").lower() == "true"
        self.slack_notifications_enabled = (
            os.getenv("SLACK_NOTIFICATIONS_ENABLED", "true").lower() == "true"
        )
        self.channels = dict(DEFAULT_CHANNELS)

        # Dispatcher Configuration
        self.dispatch_queue_size = int(os.getenv("DISPATCH_QUEUE_SIZE", "100"))
        self.dispatch_workers = int(os.getenv("DISPATCH_WORKERS", "4"))
        self.dispatch_timeout = float(os.getenv("DISPATCH_TIMEOUT", "10"))
        self.drain_timeout = float(os.getenv("DRAIN_TIMEOUT", "5"))

        # Application Configuration
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        path = path or os.getenv("GRC_MOCKS_CONFIG", "")
        if path:
            self.load_file(path)

    def load_file(self, path: str) -> None:
        """Overlay values from a YAML file onto the current settings."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        channels = data.pop("channels", None)
        if channels:
            self.channels.update(channels)

        for key, value in data.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to per-component sections."""
        servicenow_url = self.servicenow_url.rstrip("/")
        slack_url = self.slack_url.rstrip("/")

        return {
            "servicenow": {
                "host": self.servicenow_host,
                "port": self.servicenow_port,
                "url": servicenow_url,
            },
            "slack": {
                "host": self.slack_host,
                "port": self.slack_port,
                "url": slack_url,
                "command_url": self.command_url or f"{servicenow_url}/api/slack/commands",
                "interaction_url": (
                    self.interaction_url or f"{servicenow_url}/api/slack/interactions"
                ),
                "app_command_url": self.app_command_url,
                "app_interaction_url": self.app_interaction_url,
                "timeout": self.dispatch_timeout,
            },
            "webhook": {
                "enabled": self.webhook_enabled,
                "url": self.webhook_url,
            },
            "notifications": {
                "enabled": self.slack_notifications_enabled,
                "url": f"{slack_url}/api/chat.postMessage",
                "servicenow_url": servicenow_url,
                "channels": dict(self.channels),
            },
            "dispatch": {
                "queue_size": self.dispatch_queue_size,
                "workers": self.dispatch_workers,
                "timeout": self.dispatch_timeout,
                "drain_timeout": self.drain_timeout,
            },
        }


_config: Config = None


def get_config() -> Config:
    """Get configuration singleton."""
    global _config
    if _config is None:
        _config = Config()
    return _config
