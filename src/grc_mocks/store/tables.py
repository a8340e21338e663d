"""
In-memory GRC record store.

One dict per table, keyed by sys_id, each guarded by its own lock. Callers
only ever get copies back, so nothing outside the store can mutate a stored
record without going through update().
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import copy
import logging
import threading
import uuid

from ..errors import InvalidBodyError, RecordNotFoundError, UnknownTableError
from ..models.records import TABLES, Record, RecordRef, TableSpec, get_table

logger = logging.getLogger(__name__)

NUMBER_OFFSET = 1001


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class _Table:
    def __init__(self, spec: TableSpec):
        self.spec = spec
        self.rows: Dict[str, Record] = {}
        self.lock = threading.Lock()


class RecordStore:
    """
    Keyed record store for the mock ServiceNow tables.

    Features:
    - Generated sys_id, number and timestamps on create
    - Shallow-merge updates that always refresh updated_on
    - Number-or-sys_id resolution for command-driven updates
    """

    def __init__(
        self,
        tables: Iterable[TableSpec] = TABLES,
        clock: Callable[[], str] = utc_now,
    ):
        self._tables = {spec.name: _Table(spec) for spec in tables}
        self._clock = clock

    def _table(self, name: str) -> _Table:
        table = self._tables.get(name)
        if table is None:
            raise UnknownTableError(name)
        return table

    def tables(self) -> List[TableSpec]:
        return [t.spec for t in self._tables.values()]

    def list(self, table: str) -> List[Record]:
        """List every record in a table, oldest first."""
        t = self._table(table)
        with t.lock:
            return [Record(copy.deepcopy(row)) for row in t.rows.values()]

    def get(self, table: str, record_id: str) -> Record:
        t = self._table(table)
        with t.lock:
            row = t.rows.get(record_id)
            if row is None:
                raise RecordNotFoundError(table, record_id)
            return Record(copy.deepcopy(row))

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """
        Insert a record.

        Args:
            table: ServiceNow table name
            fields: Caller-supplied fields; sys_id, number and timestamps
                are generated when missing

        Returns:
            Copy of the stored record
        """
        t = self._table(table)
        record = Record(copy.deepcopy(dict(fields)))

        sys_id = record.get("sys_id")
        if sys_id is not None and not isinstance(sys_id, str):
            raise InvalidBodyError("sys_id must be a string")

        now = self._clock()
        with t.lock:
            if not sys_id:
                record["sys_id"] = f"{t.spec.slug}_{uuid.uuid4().hex}"
            if not record.get("number"):
                # Display convenience only: reuses numbers after a delete or reset.
                record["number"] = f"{t.spec.prefix}{len(t.rows) + NUMBER_OFFSET}"
            record.setdefault("created_on", now)
            record.setdefault("updated_on", now)

            t.rows[record["sys_id"]] = record
            return Record(copy.deepcopy(record))

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Shallow-merge fields into an existing record."""
        t = self._table(table)
        now = self._clock()
        with t.lock:
            row = t.rows.get(record_id)
            if row is None:
                raise RecordNotFoundError(table, record_id)

            for key, value in fields.items():
                if key == "sys_id":
                    continue
                row[key] = copy.deepcopy(value)
            row["updated_on"] = now

            return Record(copy.deepcopy(row))

    def delete(self, table: str, record_id: str) -> None:
        t = self._table(table)
        with t.lock:
            if t.rows.pop(record_id, None) is None:
                raise RecordNotFoundError(table, record_id)

    def reset(self) -> None:
        """Empty every table."""
        for t in self._tables.values():
            with t.lock:
                t.rows.clear()
        logger.info("Record store reset")

    def counts(self) -> Dict[str, int]:
        """Row count per table."""
        result = {}
        for name, t in self._tables.items():
            with t.lock:
                result[name] = len(t.rows)
        return result

    def find(self, table: str, criteria: Mapping[str, str]) -> List[Record]:
        """Records whose fields equal every criterion (compared as strings)."""
        return [
            record for record in self.list(table)
            if all(_matches(record.get(k), v) for k, v in criteria.items())
        ]

    def find_by_number(self, table: str, number: str) -> Optional[Record]:
        number = number.upper()
        for record in self.list(table):
            if str(record.get("number", "")).upper() == number:
                return record
        return None

    def resolve(self, table: str, raw_id: str, synthesize: bool = True) -> Record:
        """
        Find a record from user-supplied text.

        Accepts a sys_id, a fully-qualified number (TEST1001), a number
        carrying another table's prefix, or a bare numeric suffix. When
        nothing matches and synthesize is set, a new record carrying the
        normalized number is created.
        """
        spec = get_table(table)
        raw_id = raw_id.strip()

        try:
            return self.get(table, raw_id)
        except RecordNotFoundError:
            pass

        ref = RecordRef.parse(raw_id, spec)
        number = ref.number if ref else raw_id
        record = self.find_by_number(table, number)
        if record is not None:
            return record

        if not synthesize:
            raise RecordNotFoundError(table, raw_id)

        logger.info("No %s matches %s, synthesizing %s", spec.label, raw_id, number)
        return self.create(table, {"number": number})


def _matches(value: Any, expected: str) -> bool:
    if value is None:
        return expected == ""
    if isinstance(value, bool):
        return str(value).lower() == expected.lower()
    return str(value) == expected
