"""
Jira webhook reconciliation.
Maps issue status changes back onto the linked GRC record.
"""

from typing import Any, Dict, Optional
import logging

from ..errors import RecordNotFoundError
from ..models.payloads import JiraWebhookEvent
from ..models.records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    TABLES,
    VENDOR_RISKS,
    RecordRef,
    TableSpec,
)
from ..store.tables import RecordStore

logger = logging.getLogger(__name__)

LINK_FIELD = "customfield_servicenow_id"

# Checked in order against the issue summary
SUMMARY_KEYWORDS = [
    ("vendor risk", VENDOR_RISKS),
    ("test control", CONTROL_TESTS),
    ("control test", CONTROL_TESTS),
    ("regulatory change", REGULATORY_CHANGES),
    ("audit finding", AUDIT_FINDINGS),
    ("compliance task", COMPLIANCE_TASKS),
    ("incident", INCIDENTS),
]

DEFAULT_STATUS_MAP = {
    "to do": "Open",
    "open": "Open",
    "in progress": "In Progress",
    "in review": "In Review",
    "done": "Resolved",
    "resolved": "Resolved",
    "closed": "Closed",
}

STATUS_OVERRIDES = {
    CONTROL_TESTS.name: {"done": "Completed"},
    REGULATORY_CHANGES.name: {"done": "Implemented"},
    COMPLIANCE_TASKS.name: {"done": "Completed"},
}


def map_status(table: TableSpec, jira_status: str) -> Optional[str]:
    """Record status for a Jira status name, or None if it has no mapping."""
    key = jira_status.strip().lower()
    overrides = STATUS_OVERRIDES.get(table.name, {})
    return overrides.get(key) or DEFAULT_STATUS_MAP.get(key)


class JiraSync:
    """
    Reconciles Jira issue updates into GRC records.

    Features:
    - Linked record found from the ServiceNow id custom field
    - Table inferred from the number prefix, the summary, or the project key
    - Per-table status mapping
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def reconcile(self, event: JiraWebhookEvent) -> Dict[str, Any]:
        """
        Apply an issue update to its linked record.

        Args:
            event: Parsed Jira webhook

        Returns:
            Dict describing what was updated or why the event was ignored
        """
        issue = event.issue
        fields = issue.fields
        linked_id = str(fields.get(LINK_FIELD) or "").strip()
        if not linked_id:
            logger.info("Jira issue %s has no linked record, ignoring", issue.key)
            return {"status": "ignored", "reason": "issue not linked to a record"}

        table = self._infer_table(linked_id, str(fields.get("summary") or ""), issue.key)
        if table is None:
            logger.info("Could not determine table for %s (issue %s)", linked_id, issue.key)
            return {"status": "ignored", "reason": f"no table for {linked_id}"}

        try:
            record = self.store.resolve(table.name, linked_id, synthesize=False)
        except RecordNotFoundError:
            logger.info("Linked %s %s not found (issue %s)", table.label, linked_id, issue.key)
            return {"status": "ignored", "reason": f"{linked_id} not found"}

        jira_status = _status_name(fields.get("status"))
        updates: Dict[str, Any] = {"jira_key": issue.key, "jira_status": jira_status}

        new_status = map_status(table, jira_status) if jira_status else None
        if new_status:
            updates["status"] = new_status

        if event.comment and event.comment.get("body"):
            updates["jira_comment"] = event.comment["body"]

        record = self.store.update(table.name, record.sys_id, updates)
        logger.info(
            "Jira %s (%s) reconciled into %s %s: status=%s",
            issue.key, jira_status, table.label, record.number, record.get("status"),
        )
        return {
            "status": "updated",
            "table": table.name,
            "sys_id": record.sys_id,
            "number": record.number,
            "record_status": record.get("status"),
        }

    def _infer_table(self, linked_id: str, summary: str, issue_key: str) -> Optional[TableSpec]:
        ref = RecordRef.parse(linked_id)
        if ref is not None:
            return ref.table

        for table in TABLES:
            try:
                self.store.get(table.name, linked_id)
                return table
            except RecordNotFoundError:
                continue

        lowered = summary.lower()
        for keyword, table in SUMMARY_KEYWORDS:
            if keyword in lowered:
                return table

        project = issue_key.split("-", 1)[0].upper()
        for table in TABLES:
            if table.jira_project == project:
                return table
        return None


def _status_name(status: Any) -> str:
    if isinstance(status, dict):
        return str(status.get("name") or "")
    return str(status or "")
