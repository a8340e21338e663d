"""Tests for the in-memory record store."""

import re

import pytest

from grc_mocks.errors import InvalidBodyError, RecordNotFoundError, UnknownTableError
from grc_mocks.models import CONTROL_TESTS, INCIDENTS, RISKS, TABLES
from grc_mocks.store import RecordStore


class TestCreate:

    def test_generates_identity(self, store):
        record = store.create(RISKS.name, {"title": "Unpatched servers", "severity": "High"})

        assert re.fullmatch(r"risk_[0-9a-f]{32}", record.sys_id)
        assert record.number == "RISK1001"
        assert record["created_on"] == record["updated_on"]
        assert record["title"] == "Unpatched servers"
        assert record["severity"] == "High"

    def test_numbers_follow_table_size(self, store):
        store.create(INCIDENTS.name, {})
        second = store.create(INCIDENTS.name, {})
        assert second.number == "INC1002"

    def test_explicit_identity_preserved(self, store):
        record = store.create(RISKS.name, {"sys_id": "risk_custom", "number": "RISK9000"})
        assert record.sys_id == "risk_custom"
        assert record.number == "RISK9000"
        assert store.get(RISKS.name, "risk_custom")["number"] == "RISK9000"

    def test_duplicate_explicit_sys_id_overwrites(self, store):
        store.create(RISKS.name, {"sys_id": "risk_dup", "title": "first"})
        store.create(RISKS.name, {"sys_id": "risk_dup", "title": "second"})
        assert [r["title"] for r in store.list(RISKS.name)] == ["second"]

    def test_non_string_sys_id_rejected(self, store):
        with pytest.raises(InvalidBodyError):
            store.create(RISKS.name, {"sys_id": 42})

    def test_unknown_table(self, store):
        with pytest.raises(UnknownTableError):
            store.create("sn_unknown", {})

    def test_returns_copies(self, store):
        record = store.create(RISKS.name, {"tags": ["a"]})
        record["tags"].append("b")
        record["title"] = "changed"

        stored = store.get(RISKS.name, record.sys_id)
        assert stored["tags"] == ["a"]
        assert "title" not in stored


class TestUpdate:

    def test_shallow_merge(self, store):
        record = store.create(RISKS.name, {"title": "t", "severity": "High"})
        updated = store.update(RISKS.name, record.sys_id, {"status": "Resolved"})

        assert updated["status"] == "Resolved"
        assert updated["title"] == "t"
        assert updated["severity"] == "High"
        assert updated["updated_on"] != record["updated_on"]
        assert updated["created_on"] == record["created_on"]

    def test_sys_id_in_patch_ignored(self, store):
        record = store.create(RISKS.name, {})
        updated = store.update(RISKS.name, record.sys_id, {"sys_id": "other", "owner": "jane"})
        assert updated.sys_id == record.sys_id
        assert updated["owner"] == "jane"

    def test_empty_patch_refreshes_timestamp(self, store):
        record = store.create(RISKS.name, {})
        updated = store.update(RISKS.name, record.sys_id, {})
        assert updated["updated_on"] != record["updated_on"]

    def test_missing(self, store):
        with pytest.raises(RecordNotFoundError) as exc:
            store.update(RISKS.name, "nope", {"status": "x"})
        assert exc.value.status_code == 404


class TestDeleteAndReset:

    def test_delete(self, store):
        record = store.create(RISKS.name, {})
        store.delete(RISKS.name, record.sys_id)
        assert store.list(RISKS.name) == []
        with pytest.raises(RecordNotFoundError):
            store.get(RISKS.name, record.sys_id)

    def test_delete_missing_in_every_table(self, store):
        for table in TABLES:
            with pytest.raises(RecordNotFoundError):
                store.delete(table.name, "missing")

    def test_reset(self, store):
        for table in TABLES:
            store.create(table.name, {})
        store.reset()
        assert set(store.counts().values()) == {0}

    def test_numbers_restart_after_reset(self, store):
        store.create(RISKS.name, {})
        store.reset()
        assert store.create(RISKS.name, {}).number == "RISK1001"


class TestQueries:

    def test_find(self, store):
        store.create(RISKS.name, {"category": "Security", "active": True})
        store.create(RISKS.name, {"category": "Financial", "active": False})

        assert len(store.find(RISKS.name, {"category": "Security"})) == 1
        assert len(store.find(RISKS.name, {"active": "true"})) == 1
        assert len(store.find(RISKS.name, {"owner": ""})) == 2
        assert store.find(RISKS.name, {"category": "Strategic"}) == []

    def test_find_by_number_is_case_insensitive(self, store):
        record = store.create(RISKS.name, {})
        assert store.find_by_number(RISKS.name, "risk1001").sys_id == record.sys_id
        assert store.find_by_number(RISKS.name, "RISK2000") is None

    def test_counts(self, store):
        store.create(RISKS.name, {})
        store.create(RISKS.name, {})
        counts = store.counts()
        assert counts[RISKS.name] == 2
        assert counts[INCIDENTS.name] == 0
        assert len(store.tables()) == len(TABLES)


class TestResolve:

    def test_by_sys_id(self, store):
        record = store.create(CONTROL_TESTS.name, {})
        assert store.resolve(CONTROL_TESTS.name, record.sys_id).sys_id == record.sys_id

    def test_number_forms_resolve_to_same_record(self, store):
        record = store.create(CONTROL_TESTS.name, {})
        for raw in ("TEST1001", "test1001", "1001", "RISK1001", " 1001 "):
            assert store.resolve(CONTROL_TESTS.name, raw).sys_id == record.sys_id

    def test_synthesizes_missing_record(self, store):
        record = store.resolve(CONTROL_TESTS.name, "2001")
        assert record.number == "TEST2001"
        assert store.counts()[CONTROL_TESTS.name] == 1

    def test_no_synthesis(self, store):
        with pytest.raises(RecordNotFoundError):
            store.resolve(CONTROL_TESTS.name, "TEST2001", synthesize=False)
        assert store.counts()[CONTROL_TESTS.name] == 0


def test_custom_table_set():
    store = RecordStore(tables=[RISKS])
    assert store.tables() == [RISKS]
    with pytest.raises(UnknownTableError):
        store.list(INCIDENTS.name)
