"""
Button actions offered on GRC notifications.

The same catalogue drives the buttons the Slack notifier renders and the
record updates the interaction router applies when one is clicked.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..models.records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    RISKS,
    VENDOR_RISKS,
    TableSpec,
)


@dataclass(frozen=True)
class ButtonAction:
    """A notification button and the record update it performs."""
    action_id: str
    table: TableSpec
    label: str
    reply: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def button_value(self, number: str) -> str:
        return f"{self.action_id}_{number}"

    def render_fields(self, user_id: str) -> Dict[str, Any]:
        """Field updates with the clicking user substituted in."""
        rendered = {}
        for key, value in self.fields.items():
            rendered[key] = value.format(user=user_id) if isinstance(value, str) else value
        rendered["updated_by"] = user_id
        return rendered

    def render_reply(self, number: str, user_id: str) -> str:
        return self.reply.format(number=number, user=user_id, label=self.table.label)


_ACTIONS = [
    # Risk Management
    ButtonAction("discuss_risk", RISKS, "Discuss Mitigation",
                 "💬 <@{user}> opened a mitigation discussion for {number}.",
                 {"status": "Under Discussion"}),
    ButtonAction("assign_risk", RISKS, "Assign Owner",
                 "👤 {label} {number} assigned to <@{user}>.",
                 {"assigned_to": "{user}", "status": "Assigned"}),

    # Compliance Tasks
    ButtonAction("upload_evidence", COMPLIANCE_TASKS, "Upload Evidence",
                 "📎 <@{user}> started an evidence upload for {number}.",
                 {"evidence_requested": True}),
    ButtonAction("assign_task", COMPLIANCE_TASKS, "Assign Task",
                 "👤 {label} {number} assigned to <@{user}>.",
                 {"assigned_to": "{user}", "status": "Assigned"}),

    # Incident Response
    ButtonAction("acknowledge_incident", INCIDENTS, "Acknowledge",
                 "👀 <@{user}> acknowledged {number}.",
                 {"status": "Acknowledged", "acknowledged_by": "{user}"}),
    ButtonAction("update_incident", INCIDENTS, "Post Update",
                 "✏️ <@{user}> is working on {number}.",
                 {"status": "In Progress"}),
    ButtonAction("resolve_incident", INCIDENTS, "Resolve",
                 "✅ {number} resolved by <@{user}>.",
                 {"status": "Resolved", "resolved_by": "{user}"}),

    # Control Testing
    ButtonAction("submit_test_results", CONTROL_TESTS, "Submit Test Results",
                 "🧪 <@{user}> started submitting results for {number}.",
                 {"status": "In Progress"}),

    # Audit Management
    ButtonAction("assign_finding", AUDIT_FINDINGS, "Assign Owner",
                 "👤 {label} {number} assigned to <@{user}>.",
                 {"assigned_to": "{user}", "status": "Assigned"}),
    ButtonAction("resolve_finding", AUDIT_FINDINGS, "Resolve Finding",
                 "✅ {label} {number} resolved by <@{user}>.",
                 {"status": "Resolved", "resolved_by": "{user}"}),

    # Vendor Risk Management
    ButtonAction("request_compliance_report", VENDOR_RISKS, "Request Compliance Report",
                 "📄 <@{user}> requested a compliance report for {number}.",
                 {"compliance_report_requested": True}),
    ButtonAction("update_vendor_status", VENDOR_RISKS, "Update Status",
                 "🔄 <@{user}> put {number} under review.",
                 {"status": "Under Review"}),

    # Regulatory Change Management
    ButtonAction("add_impact_assessment", REGULATORY_CHANGES, "Add Impact Assessment",
                 "📝 <@{user}> started the impact assessment for {number}.",
                 {"status": "Impact Assessment"}),
    ButtonAction("create_implementation_plan", REGULATORY_CHANGES, "Create Implementation Plan",
                 "🗺️ <@{user}> started the implementation plan for {number}.",
                 {"status": "Implementation Planning"}),
]

ACTIONS: Dict[str, ButtonAction] = {action.action_id: action for action in _ACTIONS}


def actions_for(table: TableSpec) -> List[ButtonAction]:
    """Buttons shown on a notification for this table, in display order."""
    return [action for action in _ACTIONS if action.table == table]
