"""
Wire models for webhooks, Slack commands and interactions.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEnvelope(BaseModel):
    """Record-change notification sent to the downstream webhook receiver."""
    sys_id: Optional[str] = None
    table_name: str
    action_type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class SlashCommand(BaseModel):
    """Slash command as Slack posts it (form fields)."""
    command: str = ""
    text: str = ""
    user_id: str = ""
    user_name: str = ""
    channel_id: str = ""
    channel_name: str = ""
    team_id: str = ""
    team_domain: str = ""
    response_url: str = ""
    trigger_id: str = ""
    token: str = ""


class InteractionAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    action_id: str = ""
    value: str = ""
    block_id: str = ""
    type: str = "button"


class InteractionPayload(BaseModel):
    """Slack block_actions payload (the JSON inside the `payload` form field)."""
    model_config = ConfigDict(extra="allow")

    type: str = "block_actions"
    user: Dict[str, Any] = Field(default_factory=dict)
    channel: Dict[str, Any] = Field(default_factory=dict)
    message: Dict[str, Any] = Field(default_factory=dict)
    actions: List[InteractionAction] = Field(default_factory=list)
    trigger_id: str = ""
    response_url: str = ""

    @property
    def user_id(self) -> str:
        return str(self.user.get("id", ""))

    @property
    def channel_id(self) -> str:
        return str(self.channel.get("id", ""))

    @property
    def message_ts(self) -> str:
        return str(self.message.get("ts", ""))


class JiraIssue(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str = ""
    fields: Dict[str, Any] = Field(default_factory=dict)


class JiraWebhookEvent(BaseModel):
    """Issue-tracker webhook; only the issue key and fields are used."""
    model_config = ConfigDict(extra="allow")

    webhookEvent: str = "jira:issue_updated"
    issue: JiraIssue
    comment: Optional[Dict[str, Any]] = None


class TriggerCommandRequest(BaseModel):
    command: str = "/grc"
    text: str = ""
    user_id: str = "U12345"
    user_name: str = ""
    channel_id: str = "C12345"
    webhook_url: str = ""


class TriggerInteractionRequest(BaseModel):
    type: str = "block_actions"
    action_id: str = "mock_action"
    value: str = ""
    user_id: str = "U12345"
    channel_id: str = "C12345"
    message_ts: str = ""
    webhook_url: str = ""
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    custom_data: Dict[str, Any] = Field(default_factory=dict)
