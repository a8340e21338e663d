"""Tests for the mock ServiceNow HTTP surface."""

import json
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from grc_mocks.models import CONTROL_TESTS, INCIDENTS, RISKS, TABLES
from grc_mocks.servers import servicenow

from conftest import Recorder


def _create(client, table, body):
    response = client.post(f"/api/now/table/{table}", json=body)
    assert response.status_code == 200
    return response.json()["result"]


class TestTableCrud:

    def test_create_risk(self, sn_client):
        body = {"title": "Unpatched servers", "severity": "High"}
        result = _create(sn_client, RISKS.name, body)

        assert result["sys_id"]
        assert re.fullmatch(r"RISK\d+", result["number"])
        assert result["created_on"] and result["updated_on"]
        assert result["title"] == "Unpatched servers"
        assert result["severity"] == "High"

    def test_create_with_explicit_sys_id(self, sn_client):
        result = _create(sn_client, RISKS.name, {"sys_id": "risk_fixed"})
        assert result["sys_id"] == "risk_fixed"

    def test_created_records_are_listed(self, sn_client):
        ids = set()
        for table in TABLES:
            ids.add(_create(sn_client, table.name, {"title": table.label})["sys_id"])

        for table in TABLES:
            listed = sn_client.get(f"/api/now/table/{table.name}").json()["result"]
            assert len(listed) == 1
            assert listed[0]["sys_id"] in ids

    def test_get(self, sn_client):
        created = _create(sn_client, RISKS.name, {"title": "t"})
        response = sn_client.get(f"/api/now/table/{RISKS.name}/{created['sys_id']}")
        assert response.status_code == 200
        assert response.json()["result"] == created

    def test_patch_merges(self, sn_client):
        created = _create(sn_client, RISKS.name, {"title": "Unpatched servers", "severity": "High"})
        response = sn_client.patch(
            f"/api/now/table/{RISKS.name}/{created['sys_id']}", json={"status": "Resolved"}
        )
        assert response.status_code == 200

        result = response.json()["result"]
        assert result["status"] == "Resolved"
        assert result["title"] == "Unpatched servers"
        assert result["severity"] == "High"
        assert result["number"] == created["number"]
        assert result["updated_on"] != created["updated_on"]

    def test_delete(self, sn_client):
        created = _create(sn_client, RISKS.name, {})
        response = sn_client.delete(f"/api/now/table/{RISKS.name}/{created['sys_id']}")
        assert response.status_code == 204

        assert sn_client.get(f"/api/now/table/{RISKS.name}").json()["result"] == []
        again = sn_client.delete(f"/api/now/table/{RISKS.name}/{created['sys_id']}")
        assert again.status_code == 404

    @pytest.mark.parametrize("table", [t.name for t in TABLES])
    def test_missing_item(self, sn_client, table):
        assert sn_client.delete(f"/api/now/table/{table}/nope").status_code == 404
        response = sn_client.get(f"/api/now/table/{table}/nope")
        assert response.status_code == 404
        assert response.text == "Item not found"


class TestErrors:

    def test_unknown_table(self, sn_client):
        response = sn_client.get("/api/now/table/sn_nope")
        assert response.status_code == 400
        assert response.text == "Unknown table: sn_nope"

    def test_collection_patch_rejected(self, sn_client):
        response = sn_client.patch(f"/api/now/table/{RISKS.name}", json={"status": "x"})
        assert response.status_code == 405
        assert response.text == "PATCH not allowed on collection"

    def test_malformed_json(self, sn_client):
        response = sn_client.post(
            f"/api/now/table/{RISKS.name}",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.text == "Invalid request body"

    def test_non_object_body(self, sn_client):
        response = sn_client.post(f"/api/now/table/{RISKS.name}", json=["a", "b"])
        assert response.status_code == 400

    def test_malformed_patch_to_missing_item(self, sn_client):
        response = sn_client.patch(
            f"/api/now/table/{RISKS.name}/nope",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 404

    def test_malformed_patch_to_existing_item(self, sn_client, store):
        record = store.create(RISKS.name, {})
        response = sn_client.patch(
            f"/api/now/table/{RISKS.name}/{record.sys_id}",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400

    def test_bad_limit(self, sn_client):
        response = sn_client.get(f"/api/now/table/{RISKS.name}?sysparm_limit=lots")
        assert response.status_code == 400

    def test_stored_type_error_is_500(self, sn_client, store):
        store.create("sn_si_incident", {"sys_id": "incident_bad", "number": {"broken": True}})
        response = sn_client.post(
            "/api/slack/commands",
            data={"command": "/resolve-incident", "text": "incident_bad fixed", "user_id": "U12345"},
        )
        assert response.status_code == 500
        assert "number" in response.text


class TestQuery:

    @pytest.fixture
    def seeded(self, sn_client):
        for title, category in [("b", "Security"), ("a", "Financial"), ("c", "Security")]:
            _create(sn_client, RISKS.name, {"title": title, "category": category})
        return sn_client

    def test_filter(self, seeded):
        result = seeded.get(
            f"/api/now/table/{RISKS.name}", params={"sysparm_query": "category=Security"}
        ).json()["result"]
        assert sorted(r["title"] for r in result) == ["b", "c"]

    def test_filter_and_order(self, seeded):
        result = seeded.get(
            f"/api/now/table/{RISKS.name}",
            params={"sysparm_query": "category=Security^ORDERBYDESCtitle"},
        ).json()["result"]
        assert [r["title"] for r in result] == ["c", "b"]

    def test_order_and_limit(self, seeded):
        result = seeded.get(
            f"/api/now/table/{RISKS.name}",
            params={"sysparm_query": "ORDERBYtitle", "sysparm_limit": 2},
        ).json()["result"]
        assert [r["title"] for r in result] == ["a", "b"]

    def test_invalid_term(self, seeded):
        response = seeded.get(f"/api/now/table/{RISKS.name}", params={"sysparm_query": "garbage"})
        assert response.status_code == 400

    def test_parse_query(self):
        criteria, ordering = servicenow.parse_query("a=1^b=x=y^ORDERBYc^ORDERBYDESCd^")
        assert criteria == {"a": "1", "b": "x=y"}
        assert ordering == [("c", False), ("d", True)]


class TestDashboard:

    def test_summary(self, sn_client):
        _create(sn_client, RISKS.name, {})
        _create(sn_client, RISKS.name, {})
        _create(sn_client, CONTROL_TESTS.name, {})

        summary = sn_client.get("/api/now/table/sn_grc_summary").json()["result"]
        assert summary["open_risks"] == 2
        assert summary["control_tests_in_progress"] == 1
        assert summary["open_incidents"] == 0
        assert summary["overdue_items"] == 3
        assert summary["compliance_score"] == 85

    def test_risk_by_category(self, sn_client):
        for category in ["Security", "Security", "Financial", None]:
            _create(sn_client, RISKS.name, {"category": category} if category else {})

        result = sn_client.get("/api/now/table/sn_risk_by_category").json()["result"]
        assert result == [
            {"category": "Financial", "count": 1},
            {"category": "Security", "count": 2},
            {"category": "Uncategorized", "count": 1},
        ]

    def test_reset(self, sn_client, store):
        for table in TABLES:
            _create(sn_client, table.name, {})
        response = sn_client.post("/api/now/reset")
        assert response.status_code == 200
        assert set(store.counts().values()) == {0}

    def test_health(self, sn_client):
        body = sn_client.get("/health").json()
        assert body["status"] == "ok"
        assert body["records"][RISKS.name] == 0

    def test_create_risk_alias(self, sn_client, store):
        response = sn_client.post("/servicenow/create_risk", json={"title": "Legacy"})
        assert response.status_code == 200
        assert response.json()["result"]["number"] == "RISK1001"
        assert store.counts()[RISKS.name] == 1


class TestTriggerWebhook:

    def _client(self, quiet_config, store, handler):
        app = servicenow.create_app(quiet_config, store=store, transport=httpx.MockTransport(handler))
        return TestClient(app)

    def test_sends_envelope(self, quiet_config, store):
        recorder = Recorder(json={})
        client = self._client(quiet_config, store, recorder)

        response = client.post(
            "/trigger_webhook/risks/insert",
            params={"webhook_url": "http://receiver.test/hook"},
            json={"sys_id": "risk_1", "title": "t"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["table_name"] == RISKS.name
        assert body["action_type"] == "insert"
        assert body["webhook_id"].startswith("mock-webhook-")

        sent = json.loads(recorder.requests[0].content)
        assert str(recorder.requests[0].url) == "http://receiver.test/hook"
        assert sent == {
            "sys_id": "risk_1",
            "table_name": RISKS.name,
            "action_type": "insert",
            "data": {"sys_id": "risk_1", "title": "t"},
        }

    def test_unknown_alias(self, quiet_config, store):
        client = self._client(quiet_config, store, Recorder())
        response = client.post("/trigger_webhook/widgets/insert", json={})
        assert response.status_code == 400

    def test_receiver_error(self, quiet_config, store):
        client = self._client(quiet_config, store, Recorder(status_code=503))
        response = client.post("/trigger_webhook/incidents/update", json={"sys_id": "incident_1"})
        assert response.status_code == 500
        assert response.text.startswith("Error sending webhook")

    def test_unreachable_receiver(self, quiet_config, store):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(quiet_config, store, refuse)
        response = client.post("/trigger_webhook/risks/insert", json={})
        assert response.status_code == 500


class TestNotificationsOnCreate:

    def test_create_fans_out(self, live_config, store, recorder):
        app = servicenow.create_app(live_config, store=store, transport=recorder.transport)
        with TestClient(app) as client:
            created = _create(client, RISKS.name, {"title": "Unpatched servers", "risk_score": 16})

        webhook = recorder.to("receiver.test")
        chat = recorder.to("slack.test")
        assert len(webhook) == 1
        assert len(chat) == 1

        envelope = json.loads(webhook[0].content)
        assert envelope["action_type"] == "insert"
        assert envelope["sys_id"] == created["sys_id"]

        message = json.loads(chat[0].content)
        assert message["channel"] == "C67890"
        assert "RISK1001" in message["text"]

    def test_patch_does_not_dispatch(self, live_config, store, recorder):
        record = store.create(RISKS.name, {})
        app = servicenow.create_app(live_config, store=store, transport=recorder.transport)
        with TestClient(app) as client:
            client.patch(f"/api/now/table/{RISKS.name}/{record.sys_id}", json={"status": "x"})
        assert recorder.requests == []

    def test_failed_delivery_does_not_fail_request(self, live_config, store):
        recorder = Recorder(status_code=500)
        app = servicenow.create_app(live_config, store=store, transport=recorder.transport)
        with TestClient(app) as client:
            response = client.post(f"/api/now/table/{RISKS.name}", json={"title": "t"})
            assert response.status_code == 200
        assert len(recorder.requests) == 2
        assert app.state.dispatcher.stats["failed"] == 2

    def test_nested_and_boolean_fields(self, live_config, store, recorder):
        app = servicenow.create_app(live_config, store=store, transport=recorder.transport)
        with TestClient(app) as client:
            risk = client.post(f"/api/now/table/{RISKS.name}", json={
                "title": {"en": "Unpatched"},
                "severity": "High",
                "owner": {"value": "user_1", "display_value": "Jane Smith"},
            })
            incident = client.post(f"/api/now/table/{INCIDENTS.name}", json={
                "title": "t", "severity": True,
            })
            assert risk.status_code == 200
            assert incident.status_code == 200

        assert store.counts()[RISKS.name] == 1
        assert store.counts()[INCIDENTS.name] == 1
        assert app.state.dispatcher.stats["failed"] == 0

        messages = [json.loads(r.content) for r in recorder.to("slack.test")]
        risk_message = [m for m in messages if m["channel"] == "C67890"][0]
        assert risk_message["text"] == 'New Risk RISK1001: {"en": "Unpatched"}'
        fields = [f["text"] for f in risk_message["blocks"][1]["fields"]]
        assert "*Owner:*\nJane Smith" in fields

        incident_message = [m for m in messages if m["channel"] != "C67890"][0]
        assert "*Severity:* true" in incident_message["blocks"][1]["text"]["text"]

    def test_unrenderable_record_is_logged_not_raised(self, live_config, store, recorder):
        app = servicenow.create_app(live_config, store=store, transport=recorder.transport)
        with TestClient(app) as client:
            response = client.post(f"/api/now/table/{RISKS.name}", json={"number": ["RISK1"]})
            assert response.status_code == 200
        assert app.state.dispatcher.stats["failed"] == 1
        assert len(recorder.to("receiver.test")) == 1
