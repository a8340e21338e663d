"""
Slash command and button interaction router.

Commands and button clicks become record updates plus a human-readable
acknowledgement. Usage mistakes and unknown commands are answered with a
message rather than an HTTP error.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

from ..models.payloads import InteractionPayload, SlashCommand
from ..models.records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    VENDOR_RISKS,
    Record,
    RecordRef,
    TableSpec,
)
from ..store.tables import RecordStore
from .actions import ACTIONS

logger = logging.getLogger(__name__)

USAGE = {
    "/upload-evidence": "Usage: /upload-evidence TASK_ID EVIDENCE_URL",
    "/incident-update": "Usage: /incident-update INCIDENT_ID UPDATE_TEXT",
    "/resolve-incident": "Usage: /resolve-incident INCIDENT_ID RESOLUTION_NOTES",
    "/submit-test": "Usage: /submit-test TEST_ID PASS|FAIL Notes about the test",
    "/resolve-finding": "Usage: /resolve-finding FINDING_ID Resolution notes",
    "/update-vendor": "Usage: /update-vendor RISK_ID STATUS Notes about the update",
    "/assess-impact": "Usage: /assess-impact CHANGE_ID Impact assessment details",
    "/plan-implementation": "Usage: /plan-implementation CHANGE_ID Implementation plan details",
    "/assign-owner": "Usage: /assign-owner RECORD_NUMBER @user",
}


@dataclass
class CommandResult:
    """Outcome of a command or interaction."""
    text: str
    handled: bool = True
    table: Optional[TableSpec] = None
    record: Optional[Record] = None

    @property
    def response_type(self) -> str:
        return "in_channel" if self.handled else "ephemeral"

    def to_response(self) -> Dict[str, Any]:
        return {"response_type": self.response_type, "text": self.text}


def split_args(text: str, parts: int) -> List[str]:
    """
    Split command text into at most `parts` whitespace-separated pieces.

    The last piece keeps its inner whitespace; one pair of matching quotes
    around it is removed.
    """
    pieces = text.strip().split(None, parts - 1)
    if pieces:
        last = pieces[-1]
        if len(last) >= 2 and last[0] == last[-1] and last[0] in "\"'":
            pieces[-1] = last[1:-1]
    return pieces


def _mention(user: str) -> str:
    user = user.strip()
    if user.startswith("<@") and user.endswith(">"):
        user = user[2:-1].split("|", 1)[0]
    return user.lstrip("@")


class CommandRouter:
    """
    Routes Slack commands and button clicks to record updates.

    Features:
    - One handler per slash command
    - Catalogue-driven button actions
    - Every update announced through the dispatcher as an update webhook
    """

    def __init__(self, store: RecordStore, dispatcher=None):
        """
        Initialize router.

        Args:
            store: Record store the updates are applied to
            dispatcher: Optional NotificationDispatcher for update webhooks
        """
        self.store = store
        self.dispatcher = dispatcher
        self._commands: Dict[str, Callable[[SlashCommand], CommandResult]] = {
            "/upload-evidence": self._upload_evidence,
            "/incident-update": self._incident_update,
            "/resolve-incident": self._resolve_incident,
            "/submit-test": self._submit_test,
            "/resolve-finding": self._resolve_finding,
            "/update-vendor": self._update_vendor,
            "/assess-impact": self._assess_impact,
            "/plan-implementation": self._plan_implementation,
            "/grc-status": self._grc_status,
            "/assign-owner": self._assign_owner,
        }

    @property
    def commands(self) -> List[str]:
        return list(self._commands)

    def handle_command(self, command: SlashCommand) -> CommandResult:
        """Run a slash command."""
        logger.info("Slash command %s %r from %s", command.command, command.text, command.user_id)
        name = command.command.strip()
        handler = self._commands.get(name)
        if handler is None:
            logger.info("Unknown command: %s", command.command)
            return CommandResult(
                "Unknown command. Available commands: " + ", ".join(self._commands),
                handled=False,
            )
        return handler(command.model_copy(update={"command": name}))

    def handle_interaction(self, payload: InteractionPayload) -> CommandResult:
        """Run the first action of a block_actions payload."""
        if not payload.actions:
            return CommandResult("No actions in payload", handled=False)

        action = payload.actions[0]
        spec = ACTIONS.get(action.action_id)
        if spec is None:
            logger.info("Unhandled action: %s", action.action_id)
            return CommandResult(f"Unhandled action: {action.action_id}", handled=False)

        if "_" not in action.value:
            return CommandResult(f"Invalid value for {action.action_id}: {action.value!r}", handled=False)

        # Item id is the last underscore-delimited segment of the value.
        item_id = action.value.split("_")[-1]
        user_id = payload.user_id
        logger.info("Action %s on %s by %s", action.action_id, item_id, user_id)

        record = self.store.resolve(spec.table.name, item_id)
        record = self._apply(spec.table, record, spec.render_fields(user_id))
        return CommandResult(
            spec.render_reply(record.number, user_id), table=spec.table, record=record,
        )

    def _apply(self, table: TableSpec, record: Record, fields: Dict[str, Any]) -> Record:
        updated = self.store.update(table.name, record.sys_id, fields)
        if self.dispatcher is not None:
            self.dispatcher.notify_updated(table.name, updated)
        return updated

    def _update_record(
        self,
        command: SlashCommand,
        table: TableSpec,
        raw_id: str,
        fields: Dict[str, Any],
    ) -> Record:
        record = self.store.resolve(table.name, raw_id)
        fields = dict(fields, updated_by=command.user_id or command.user_name)
        return self._apply(table, record, fields)

    def _upload_evidence(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, COMPLIANCE_TASKS, args[0], {
            "evidence_url": args[1],
            "status": "Evidence Submitted",
        })
        return CommandResult(
            f"📎 Evidence for {record.number} uploaded by <@{command.user_id}>: {args[1]}",
            table=COMPLIANCE_TASKS, record=record,
        )

    def _incident_update(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, INCIDENTS, args[0], {
            "last_update": args[1],
            "status": "In Progress",
        })
        return CommandResult(
            f"✏️ Update on {record.number} from <@{command.user_id}>: {args[1]}",
            table=INCIDENTS, record=record,
        )

    def _resolve_incident(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, INCIDENTS, args[0], {
            "resolution_notes": args[1],
            "status": "Resolved",
        })
        return CommandResult(
            f"✅ Incident {record.number} resolved by <@{command.user_id}>: {args[1]}",
            table=INCIDENTS, record=record,
        )

    def _submit_test(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 3)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        result = args[1].upper()
        if result not in ("PASS", "FAIL"):
            return CommandResult("Test status must be either PASS or FAIL", handled=False)
        notes = args[2] if len(args) > 2 else ""

        record = self._update_record(command, CONTROL_TESTS, args[0], {
            "test_status": result,
            "notes": notes,
            "status": "Completed",
        })
        emoji = "✅" if result == "PASS" else "❌"
        text = f"{emoji} Control test {record.number} marked {result} by <@{command.user_id}>"
        if notes:
            text += f": {notes}"
        return CommandResult(text, table=CONTROL_TESTS, record=record)

    def _resolve_finding(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, AUDIT_FINDINGS, args[0], {
            "resolution": args[1],
            "status": "Resolved",
        })
        return CommandResult(
            f"✅ Audit finding {record.number} resolved by <@{command.user_id}>: {args[1]}",
            table=AUDIT_FINDINGS, record=record,
        )

    def _update_vendor(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 3)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        fields = {"status": args[1]}
        if len(args) > 2:
            fields["notes"] = args[2]

        record = self._update_record(command, VENDOR_RISKS, args[0], fields)
        return CommandResult(
            f"🔄 Vendor risk {record.number} set to {args[1]} by <@{command.user_id}>",
            table=VENDOR_RISKS, record=record,
        )

    def _assess_impact(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, REGULATORY_CHANGES, args[0], {
            "impact_assessment": args[1],
            "status": "Impact Assessed",
        })
        return CommandResult(
            f"📝 Impact assessment added to {record.number} by <@{command.user_id}>",
            table=REGULATORY_CHANGES, record=record,
        )

    def _plan_implementation(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        record = self._update_record(command, REGULATORY_CHANGES, args[0], {
            "implementation_plan": args[1],
            "status": "Implementation Planned",
        })
        return CommandResult(
            f"🗺️ Implementation plan added to {record.number} by <@{command.user_id}>",
            table=REGULATORY_CHANGES, record=record,
        )

    def _assign_owner(self, command: SlashCommand) -> CommandResult:
        args = split_args(command.text, 2)
        if len(args) < 2:
            return CommandResult(USAGE[command.command], handled=False)

        ref = RecordRef.parse(args[0])
        if ref is None:
            return CommandResult(
                f"Could not tell which record {args[0]} is. {USAGE[command.command]}",
                handled=False,
            )

        assignee = _mention(args[1])
        record = self._update_record(command, ref.table, ref.number, {"assigned_to": assignee})
        return CommandResult(
            f"👤 {ref.table.label} {record.number} assigned to <@{assignee}>",
            table=ref.table, record=record,
        )

    def _grc_status(self, command: SlashCommand) -> CommandResult:
        counts = self.store.counts()
        lines = ["*GRC Status*"]
        for table in self.store.tables():
            lines.append(f"• {table.label}s: {counts.get(table.name, 0)}")
        return CommandResult("\n".join(lines))
