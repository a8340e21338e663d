"""
FastAPI application for the mock ServiceNow GRC server.
"""

from collections import Counter
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple
import logging
import time

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import ValidationError

from ..commands.router import CommandRouter
from ..config import get_config
from ..errors import InvalidBodyError
from ..integrations.dispatcher import NotificationDispatcher
from ..integrations.jira import JiraSync
from ..integrations.slack import SlackNotifier
from ..integrations.webhooks import WebhookNotifier
from ..models.payloads import InteractionPayload, JiraWebhookEvent, SlashCommand
from ..models.records import (
    AUDIT_FINDINGS,
    COMPLIANCE_TASKS,
    CONTROL_TESTS,
    INCIDENTS,
    REGULATORY_CHANGES,
    RISKS,
    VENDOR_RISKS,
    Record,
    get_table,
    get_table_by_alias,
)
from ..store.tables import RecordStore
from .common import add_cors, configure_logging, install_error_handlers, read_json_object

logger = logging.getLogger(__name__)

# Summary key per table, as the GRC dashboard reads them
SUMMARY_KEYS = [
    ("open_risks", RISKS),
    ("open_compliance_tasks", COMPLIANCE_TASKS),
    ("open_incidents", INCIDENTS),
    ("control_tests_in_progress", CONTROL_TESTS),
    ("open_audit_findings", AUDIT_FINDINGS),
    ("open_vendor_risks", VENDOR_RISKS),
    ("pending_regulatory_changes", REGULATORY_CHANGES),
]


def parse_query(query: str) -> Tuple[Dict[str, str], List[Tuple[str, bool]]]:
    """
    Parse a sysparm_query string.

    Supports field=value terms joined by ^ plus ORDERBY<field> and
    ORDERBYDESC<field>.

    Returns:
        (equality criteria, [(field, descending), ...])
    """
    criteria: Dict[str, str] = {}
    ordering: List[Tuple[str, bool]] = []
    for term in query.split("^"):
        term = term.strip()
        if not term:
            continue
        if term.startswith("ORDERBYDESC"):
            ordering.append((term[len("ORDERBYDESC"):], True))
        elif term.startswith("ORDERBY"):
            ordering.append((term[len("ORDERBY"):], False))
        elif "=" in term:
            field, value = term.split("=", 1)
            criteria[field] = value
        else:
            raise InvalidBodyError(f"Invalid sysparm_query term: {term}")
    return criteria, ordering


def build_dispatcher(
    config: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NotificationDispatcher:
    timeout = config["dispatch"]["timeout"]
    webhook = WebhookNotifier(dict(config["webhook"], timeout=timeout), transport=transport)
    slack = SlackNotifier(dict(config["notifications"], timeout=timeout), transport=transport)
    return NotificationDispatcher(config["dispatch"], webhook, slack)


def create_app(
    config: Optional[Dict[str, Any]] = None,
    store: Optional[RecordStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the mock ServiceNow application.

    Args:
        config: Config sections as returned by Config.to_dict()
        store: Record store (a fresh one if omitted)
        dispatcher: Notification dispatcher (built from config if omitted)
        transport: httpx transport for outbound calls (tests)
    """
    config = config or get_config().to_dict()
    store = store if store is not None else RecordStore()
    dispatcher = dispatcher or build_dispatcher(config, transport)
    router = CommandRouter(store, dispatcher)
    jira = JiraSync(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting mock ServiceNow GRC server")
        await dispatcher.start()
        yield
        logger.info("Shutting down mock ServiceNow GRC server")
        await dispatcher.stop()

    app = FastAPI(
        title="Mock ServiceNow GRC",
        description="In-memory ServiceNow GRC tables with webhook and Slack notifications",
        version="1.0.0",
        lifespan=lifespan,
    )
    add_cors(app)
    install_error_handlers(app)

    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.router = router

    def create(table: str, fields: Dict[str, Any]) -> Record:
        record = store.create(table, fields)
        logger.info("Created %s %s (%s)", table, record.get("number"), record.get("sys_id"))
        dispatcher.notify_created(table, record)
        return record

    # Health and test helpers

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "mock-servicenow",
            "records": store.counts(),
            "dispatch": dict(dispatcher.stats),
        }

    @app.post("/api/now/reset")
    async def reset():
        store.reset()
        return {"status": "ok", "message": "All tables cleared"}

    # Dashboard endpoints (declared before the generic table routes)

    @app.get("/api/now/table/sn_grc_summary")
    async def grc_summary():
        counts = store.counts()
        summary = {key: counts.get(table.name, 0) for key, table in SUMMARY_KEYS}
        # Placeholders; not derived from record state.
        summary["overdue_items"] = 3
        summary["compliance_score"] = 85
        return {"result": summary}

    @app.get("/api/now/table/sn_risk_by_category")
    async def risks_by_category():
        categories = Counter(
            record.text("category") or "Uncategorized" for record in store.list(RISKS.name)
        )
        return {
            "result": [
                {"category": category, "count": count}
                for category, count in sorted(categories.items())
            ]
        }

    # Table API

    @app.get("/api/now/table/{table}")
    async def list_records(table: str, sysparm_query: str = "", sysparm_limit: Optional[int] = None):
        get_table(table)
        criteria, ordering = parse_query(sysparm_query)
        records = store.find(table, criteria) if criteria else store.list(table)

        for field, descending in reversed(ordering):
            records.sort(key=lambda r: str(r.get(field, "")), reverse=descending)

        if sysparm_limit is not None:
            records = records[:max(sysparm_limit, 0)]
        return {"result": records}

    @app.post("/api/now/table/{table}")
    async def create_record(table: str, request: Request):
        get_table(table)
        fields = await read_json_object(request)
        return {"result": create(table, fields)}

    @app.patch("/api/now/table/{table}")
    async def patch_collection(table: str):
        get_table(table)
        raise HTTPException(status_code=405, detail="PATCH not allowed on collection")

    @app.get("/api/now/table/{table}/{record_id}")
    async def get_record(table: str, record_id: str):
        return {"result": store.get(table, record_id)}

    @app.patch("/api/now/table/{table}/{record_id}")
    async def update_record(table: str, record_id: str, request: Request):
        store.get(table, record_id)
        fields = await read_json_object(request)
        record = store.update(table, record_id, fields)
        logger.info("Updated %s %s: %s", table, record.get("number"), sorted(fields))
        return {"result": record}

    @app.delete("/api/now/table/{table}/{record_id}")
    async def delete_record(table: str, record_id: str):
        store.delete(table, record_id)
        logger.info("Deleted %s %s", table, record_id)
        return Response(status_code=204)

    @app.post("/servicenow/create_risk")
    async def create_risk(request: Request):
        fields = await read_json_object(request)
        return {"result": create(RISKS.name, fields)}

    # Webhook trigger

    @app.post("/trigger_webhook/{alias}/{action_type}")
    async def trigger_webhook(alias: str, action_type: str, request: Request, webhook_url: str = ""):
        table = get_table_by_alias(alias)
        data = await read_json_object(request)
        if data.get("sys_id") is not None and not isinstance(data["sys_id"], str):
            raise InvalidBodyError("sys_id must be a string")

        webhook = dispatcher.webhook
        envelope = webhook.build_envelope(table.name, Record(data), action_type)
        result = await webhook.send(envelope, url=webhook_url or None)
        if not result["success"]:
            raise HTTPException(status_code=500, detail=f"Error sending webhook: {result['error']}")

        return {
            "status": "success",
            "message": f"Webhook sent to {result['url']}",
            "webhook_id": f"mock-webhook-{time.time_ns()}",
            "table_name": table.name,
            "action_type": action_type,
        }

    # Slack-facing endpoints

    @app.post("/api/slack/commands")
    async def slack_command(request: Request):
        form = await request.form()
        command = SlashCommand(**{k: v for k, v in form.items() if isinstance(v, str)})
        return router.handle_command(command).to_response()

    @app.post("/api/slack/interactions")
    async def slack_interaction(request: Request):
        form = await request.form()
        raw = form.get("payload")
        if not raw or not isinstance(raw, str):
            raise InvalidBodyError("Missing payload")
        try:
            payload = InteractionPayload.model_validate_json(raw)
        except ValidationError:
            raise InvalidBodyError("Invalid payload") from None
        return router.handle_interaction(payload).to_response()

    # Issue tracker

    @app.post("/api/webhooks/jira")
    async def jira_webhook(request: Request):
        body = await read_json_object(request)
        try:
            event = JiraWebhookEvent.model_validate(body)
        except ValidationError:
            raise InvalidBodyError("Missing issue") from None
        return jira.reconcile(event)

    return app


app = create_app()


def main():
    config = get_config()
    configure_logging(config.log_level, debug=config.debug)

    import uvicorn
    uvicorn.run(
        create_app(config.to_dict()),
        host=config.servicenow_host,
        port=config.servicenow_port,
    )


if __name__ == "__main__":
    main()
