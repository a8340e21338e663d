"""
Record and table models for the mock GRC system.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import json
import re

from ..errors import FieldTypeError, UnknownTableError


@dataclass(frozen=True)
class TableSpec:
    """A GRC table: where it lives, how its numbers look, where it is announced."""
    name: str            # ServiceNow table name, e.g. sn_risk_risk
    alias: str           # legacy collection alias, e.g. risks
    slug: str            # sys_id prefix
    prefix: str          # number prefix, e.g. RISK
    label: str           # human-readable kind
    jira_project: str    # issue-tracker project key


RISKS = TableSpec("sn_risk_risk", "risks", "risk", "RISK", "Risk", "RISK")
COMPLIANCE_TASKS = TableSpec(
    "sn_compliance_task", "compliance_tasks", "task", "COMP", "Compliance Task", "COMP"
)
INCIDENTS = TableSpec("sn_si_incident", "incidents", "incident", "INC", "Incident", "INC")
CONTROL_TESTS = TableSpec(
    "sn_policy_control_test", "control_tests", "test", "TEST", "Control Test", "TEST"
)
AUDIT_FINDINGS = TableSpec(
    "sn_audit_finding", "audit_findings", "finding", "AUDIT-", "Audit Finding", "AUDIT"
)
VENDOR_RISKS = TableSpec("sn_vendor_risk", "vendor_risks", "vendor", "VR", "Vendor Risk", "VEN")
REGULATORY_CHANGES = TableSpec(
    "sn_regulatory_change", "regulatory_changes", "reg", "REG", "Regulatory Change", "REG"
)

TABLES = (
    RISKS,
    COMPLIANCE_TASKS,
    INCIDENTS,
    CONTROL_TESTS,
    AUDIT_FINDINGS,
    VENDOR_RISKS,
    REGULATORY_CHANGES,
)

_BY_NAME = {t.name: t for t in TABLES}
_BY_ALIAS = {t.alias: t for t in TABLES}

# Longest first so AUDIT- wins over a bare AUDIT.
_PREFIXES = sorted(
    [(t.prefix, t) for t in TABLES] + [("AUDIT", AUDIT_FINDINGS), ("CTRL", CONTROL_TESTS)],
    key=lambda item: len(item[0]),
    reverse=True,
)

_REF_PATTERN = re.compile(r"^([A-Za-z]+-?)?(\d+)$")
_NUMBER_IN_TEXT = re.compile(r"\b(RISK|COMP|INC|TEST|AUDIT-|VR|REG)(\d+)\b")


def get_table(name: str) -> TableSpec:
    """Look up a table by ServiceNow name."""
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownTableError(name) from None


def get_table_by_alias(alias: str) -> TableSpec:
    """Look up a table by its legacy collection alias (risks, incidents, ...)."""
    try:
        return _BY_ALIAS[alias]
    except KeyError:
        raise UnknownTableError(alias) from None


def table_for_prefix(prefix: str) -> Optional[TableSpec]:
    """Return the table owning a number prefix, if any."""
    prefix = prefix.upper()
    for known, table in _PREFIXES:
        if prefix == known:
            return table
    return None


@dataclass(frozen=True)
class RecordRef:
    """
    Structured record identifier: table tag plus numeric suffix.

    Parsed once from user-supplied text so "TEST1001", "test1001" and a bare
    "1001" resolve to the same control test.
    """
    table: TableSpec
    suffix: int

    @property
    def number(self) -> str:
        return f"{self.table.prefix}{self.suffix}"

    @classmethod
    def parse(cls, text: str, table: Optional[TableSpec] = None) -> Optional["RecordRef"]:
        """
        Parse a record reference.

        Args:
            text: Raw identifier text
            table: Target table; when given, any known prefix is replaced
                by this table's prefix

        Returns:
            RecordRef, or None if the text is not a number-style reference
        """
        match = _REF_PATTERN.match(text.strip())
        if not match:
            return None

        prefix, digits = match.group(1), match.group(2)
        owner = table_for_prefix(prefix) if prefix else None
        if prefix and owner is None:
            return None

        target = table or owner
        if target is None:
            return None

        return cls(table=target, suffix=int(digits))

    def __str__(self) -> str:
        return self.number


def extract_record_numbers(text: str) -> List[str]:
    """Find record numbers (RISK1001, AUDIT-1002, ...) mentioned in free text."""
    return [prefix + digits for prefix, digits in _NUMBER_IN_TEXT.findall(text or "")]


def risk_severity(score: float) -> str:
    """Map a numeric risk score to a severity label."""
    if score >= 15:
        return "Critical"
    if score >= 10:
        return "High"
    if score >= 5:
        return "Medium"
    return "Low"


class Record(dict):
    """
    A schema-less GRC record.

    Values are plain JSON; the accessors check types so a bad stored value
    fails with FieldTypeError instead of surfacing as a stray exception.
    """

    @property
    def sys_id(self) -> str:
        return self.text("sys_id", "")

    @property
    def number(self) -> str:
        return self.text("number", "")

    def text(self, field: str, default: Optional[str] = None) -> Optional[str]:
        """Get a string field."""
        value = self.get(field)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise FieldTypeError(field, "string", value)
        return str(value)

    def mapping(self, field: str) -> Dict[str, Any]:
        """Get a nested mapping field, empty if absent."""
        value = self.get(field)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise FieldTypeError(field, "mapping", value)
        return value

    def display(self, field: str, default: str = "") -> str:
        """
        Render any field value as text for humans.

        Reference fields ({"value": ..., "display_value": ...}) show their
        display value; other containers are rendered as JSON.
        """
        value = self.get(field)
        if value is None or value == "":
            return default
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, dict):
            ref = self.mapping(field)
            shown = ref.get("display_value") or ref.get("value")
            if isinstance(shown, (str, int, float)) and not isinstance(shown, bool):
                return str(shown)
            return json.dumps(value, sort_keys=True)
        if isinstance(value, list):
            return json.dumps(value)
        return str(value)
