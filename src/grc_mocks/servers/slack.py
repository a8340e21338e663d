"""
FastAPI application for the mock Slack workspace.

Implements the slice of the Slack Web API the GRC demo uses, and forwards
slash commands and button clicks to the GRC server the way Slack would.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import json
import logging
import time

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, ValidationError

from ..config import get_config
from ..errors import InvalidBodyError
from ..models.payloads import TriggerCommandRequest, TriggerInteractionRequest
from ..models.records import extract_record_numbers
from ..store.workspace import BOT_ID, BOT_USER_ID, SlackWorkspace
from .common import add_cors, configure_logging, install_error_handlers, read_body, read_json_object

logger = logging.getLogger(__name__)

TEAM = {"id": "T12345", "domain": "mockteam"}


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _validate(model: type, body: Dict[str, Any]) -> BaseModel:
    try:
        return model.model_validate(body)
    except ValidationError:
        raise InvalidBodyError("Invalid request body") from None


def _float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidBodyError(f"Invalid timestamp: {value}") from None


def create_app(
    config: Optional[Dict[str, Any]] = None,
    workspace: Optional[SlackWorkspace] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the mock Slack application.

    Args:
        config: Config sections as returned by Config.to_dict()
        workspace: Workspace state (a fresh one if omitted)
        transport: httpx transport for forwarded requests (tests)
    """
    config = config or get_config().to_dict()
    slack_config = config["slack"]
    servicenow_url = config["servicenow"]["url"]
    timeout = slack_config.get("timeout", 10.0)
    workspace = workspace if workspace is not None else SlackWorkspace()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting mock Slack server")
        logger.info("Commands forwarded to %s", slack_config["command_url"])
        yield
        logger.info("Shutting down mock Slack server")

    app = FastAPI(
        title="Mock Slack",
        description="In-memory Slack workspace for the GRC integration demo",
        version="1.0.0",
        lifespan=lifespan,
    )
    add_cors(app)
    install_error_handlers(app)
    app.state.workspace = workspace

    async def post_form(url: str, data: Dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(transport=transport) as client:
            return await client.post(url, data=data, timeout=timeout)

    def require_channel(body: Dict[str, Any]) -> str:
        channel = str(body.get("channel") or "")
        if not channel:
            raise InvalidBodyError("Missing required field: channel")
        return channel

    # Web API: messages

    @app.post("/api/chat.postMessage")
    async def post_message(request: Request):
        body = await read_body(request)
        channel = require_channel(body)
        channel_id = workspace.resolve_channel(channel)
        if channel_id is None:
            return {"ok": False, "error": "channel_not_found"}

        blocks = body.get("blocks")
        if blocks is not None and not isinstance(blocks, list):
            raise InvalidBodyError("blocks must be a list")

        message = workspace.post(
            channel_id,
            str(body.get("text") or ""),
            thread_ts=str(body.get("thread_ts") or ""),
            blocks=blocks,
        )
        return {
            "ok": True,
            "channel": channel_id,
            "ts": message.ts,
            "message": {
                "text": message.text,
                "user": BOT_USER_ID,
                "bot_id": BOT_ID,
                "ts": message.ts,
            },
        }

    @app.post("/api/chat.update")
    async def update_message(request: Request):
        body = await read_body(request)
        channel, ts = body.get("channel"), body.get("ts")
        if not channel or not ts:
            raise InvalidBodyError("Missing required fields: channel and ts")

        blocks = body.get("blocks")
        if blocks is not None and not isinstance(blocks, list):
            raise InvalidBodyError("blocks must be a list")

        message = workspace.update(str(ts), str(body.get("text") or ""), blocks)
        if message is None:
            raise HTTPException(status_code=404, detail="Message not found")

        logger.info("Message updated in %s (ts: %s)", channel, ts)
        return {"ok": True, "channel": message.channel_id, "ts": message.ts, "text": message.text}

    @app.post("/api/chat.postEphemeral")
    async def post_ephemeral(request: Request):
        body = await read_body(request)
        channel, user = body.get("channel"), body.get("user")
        if not channel or not user:
            raise InvalidBodyError("Missing required fields: channel and user")

        # Ephemeral messages are not stored.
        message_ts = f"{time.time():.6f}"
        logger.info("Ephemeral message to %s in %s: %s", user, channel, body.get("text", ""))
        return {"ok": True, "message_ts": message_ts}

    @app.post("/api/reactions.add")
    async def add_reaction(request: Request):
        body = await read_body(request)
        name, channel, ts = body.get("name"), body.get("channel"), body.get("timestamp")
        if not name or not channel or not ts:
            raise InvalidBodyError("Missing required fields: name, channel, and timestamp")

        if not workspace.add_reaction(str(ts), str(name)):
            raise HTTPException(status_code=404, detail="Message not found")
        return {"ok": True}

    # Web API: conversations and users

    @app.api_route("/api/conversations.list", methods=["GET", "POST"])
    async def list_channels():
        return {
            "ok": True,
            "channels": [workspace.channel_info(channel_id) for channel_id in workspace.channels],
        }

    @app.api_route("/api/conversations.history", methods=["GET", "POST"])
    async def channel_history(request: Request):
        if request.method == "GET":
            params: Dict[str, Any] = dict(request.query_params)
        else:
            params = await read_body(request)

        channel = require_channel(params)
        channel_id = workspace.resolve_channel(channel) or channel
        limit = _int(params.get("limit"), 100)
        if limit <= 0:
            limit = 100

        thread_ts = params.get("thread_ts")
        if thread_ts:
            replies = workspace.thread(str(thread_ts))
            return {"ok": True, "messages": replies[:limit], "has_more": len(replies) > limit}

        messages = workspace.history(
            channel_id,
            oldest=_float(params.get("oldest")),
            latest=_float(params.get("latest")),
            limit=0,
        )
        return {"ok": True, "messages": messages[:limit], "has_more": len(messages) > limit}

    @app.api_route("/api/users.list", methods=["GET", "POST"])
    async def list_users():
        return {
            "ok": True,
            "members": [workspace.user_profile(user_id) for user_id in workspace.users],
        }

    @app.api_route("/api/users.info", methods=["GET", "POST"])
    async def user_info(request: Request):
        if request.method == "GET":
            user_id = request.query_params.get("user", "")
        else:
            user_id = str((await read_body(request)).get("user") or "")

        if not user_id:
            raise InvalidBodyError("Missing required field: user")

        profile = workspace.user_profile(user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {"ok": True, "user": profile}

    # Forwarding to the GRC server

    @app.post("/api/slack/commands")
    async def receive_command(request: Request):
        form = await request.form()
        fields = {k: v for k, v in form.items() if isinstance(v, str)}
        logger.info(
            "Received command %s %r from %s in %s",
            fields.get("command"), fields.get("text"), fields.get("user_id"), fields.get("channel_id"),
        )

        try:
            response = await post_form(slack_config["command_url"], fields)
        except httpx.HTTPError as e:
            logger.warning("Error forwarding command: %s", e)
            raise HTTPException(status_code=500, detail=f"Error forwarding command: {e}") from None

        logger.info("GRC server replied %d: %s", response.status_code, response.text[:200])
        _post_in_channel_reply(response, fields)
        return Response(
            content=response.content,
            status_code=response.status_code,
            media_type=response.headers.get("content-type", "application/json"),
        )

    def _post_in_channel_reply(response: httpx.Response, fields: Dict[str, str]) -> None:
        try:
            reply = response.json()
        except ValueError:
            return
        if not isinstance(reply, dict) or reply.get("response_type") != "in_channel":
            return

        text = reply.get("text")
        channel = fields.get("channel_id", "")
        if not isinstance(text, str) or not channel:
            return

        channel_id = workspace.resolve_channel(channel) or channel
        thread_ts = ""
        for number in extract_record_numbers(fields.get("text", "")):
            thread_ts = workspace.thread_for_record(number) or ""
            if thread_ts:
                break
        workspace.post(channel_id, text, thread_ts=thread_ts)

    @app.post("/api/slack/interactions")
    async def receive_interaction(request: Request):
        form = await request.form()
        payload = form.get("payload")
        if not payload or not isinstance(payload, str):
            raise InvalidBodyError("Missing payload")

        try:
            response = await post_form(slack_config["interaction_url"], {"payload": payload})
        except httpx.HTTPError as e:
            logger.warning("Error forwarding interaction: %s", e)
            raise HTTPException(status_code=500, detail="Error forwarding interaction") from None

        return Response(
            content=response.content,
            status_code=response.status_code,
            media_type=response.headers.get("content-type", "application/json"),
        )

    @app.post("/mock_response")
    async def mock_response(request: Request):
        body = await read_json_object(request)
        logger.info("response_url received: %s", body)
        return {"ok": True}

    # Simulators: send Slack-shaped payloads to an application under test

    @app.post("/trigger_command")
    async def trigger_command(request: Request):
        trigger = _validate(TriggerCommandRequest, await read_json_object(request))
        form = {
            "command": trigger.command or "/grc",
            "text": trigger.text,
            "user_id": trigger.user_id or "U12345",
            "user_name": workspace.users.get(trigger.user_id, "unknown-user"),
            "channel_id": trigger.channel_id or "C12345",
            "channel_name": workspace.channels.get(trigger.channel_id, "unknown-channel"),
            "team_id": TEAM["id"],
            "team_domain": TEAM["domain"],
            "response_url": f"{slack_config['url']}/mock_response",
            "trigger_id": f"trigger.{int(time.time())}",
        }
        url = trigger.webhook_url or slack_config["app_command_url"]

        try:
            response = await post_form(url, form)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=500, detail=f"Error sending webhook: {e}") from None

        return {
            "status": "success",
            "message": f"Slack command sent to {url}",
            "command": form["command"],
            "text": trigger.text,
            "response": response.text,
            "webhook_id": f"mock-slack-command-{time.time_ns()}",
        }

    @app.post("/trigger_interaction")
    async def trigger_interaction(request: Request):
        trigger = _validate(TriggerInteractionRequest, await read_json_object(request))
        payload = _build_interaction(trigger)
        url = trigger.webhook_url or slack_config["app_interaction_url"]

        try:
            response = await post_form(url, {"payload": json.dumps(payload)})
        except httpx.HTTPError as e:
            raise HTTPException(status_code=500, detail=f"Error sending webhook: {e}") from None

        return {
            "status": "success",
            "message": f"Slack interaction sent to {url}",
            "type": payload["type"],
            "action_id": trigger.action_id,
            "response": response.text,
            "webhook_id": f"mock-slack-interaction-{time.time_ns()}",
        }

    def _build_interaction(trigger: TriggerInteractionRequest) -> Dict[str, Any]:
        now = time.time()
        payload: Dict[str, Any] = {
            "type": trigger.type or "block_actions",
            "user": {"id": trigger.user_id, "name": workspace.users.get(trigger.user_id, "")},
            "channel": {"id": trigger.channel_id, "name": workspace.channels.get(trigger.channel_id, "")},
            "team": dict(TEAM),
            "api_app_id": "A12345",
            "token": "mock_token",
            "trigger_id": f"trigger.{int(now)}",
            "response_url": f"{slack_config['url']}/mock_response",
        }

        if payload["type"] == "block_actions":
            blocks = trigger.blocks or [
                {"type": "section", "text": {"type": "mrkdwn", "text": "Mock message text"}},
                {
                    "type": "actions",
                    "elements": [{
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Mock Button"},
                        "action_id": trigger.action_id,
                        "value": trigger.value,
                    }],
                },
            ]
            payload["message"] = {
                "ts": trigger.message_ts or f"{now - 100:.6f}",
                "text": "Mock message text",
                "blocks": blocks,
            }
            payload["actions"] = [{
                "action_id": trigger.action_id,
                "block_id": "mock_block",
                "value": trigger.value,
                "type": "button",
                "action_ts": f"{now:.6f}",
            }]
        elif payload["type"] in ("view_submission", "view_closed"):
            view = {
                "id": "V12345",
                "type": "modal",
                "title": {"type": "plain_text", "text": "Mock Modal"},
            }
            if payload["type"] == "view_submission":
                view["state"] = {"values": trigger.custom_data}
            payload["view"] = view

        payload.update(trigger.custom_data)
        return payload

    @app.post("/test_servicenow_integration")
    async def test_servicenow_integration(request: Request):
        body = await read_json_object(request)
        try:
            async with httpx.AsyncClient(transport=transport) as client:
                response = await client.post(
                    f"{servicenow_url}/servicenow/create_risk", json=body, timeout=timeout,
                )
        except httpx.HTTPError as e:
            raise HTTPException(status_code=500, detail=f"Error forwarding to ServiceNow: {e}") from None

        return Response(
            content=response.content,
            status_code=response.status_code,
            media_type=response.headers.get("content-type", "application/json"),
        )

    # Housekeeping

    @app.post("/api/reset")
    async def reset():
        workspace.reset()
        return {"ok": True}

    @app.get("/test_connectivity")
    async def test_connectivity():
        return {"status": "ok", "message": "Slack mock server is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "mock-slack", "messages": workspace.message_count()}

    return app


app = create_app()


def main():
    config = get_config()
    configure_logging(config.log_level, debug=config.debug)

    import uvicorn
    uvicorn.run(create_app(config.to_dict()), host=config.slack_host, port=config.slack_port)


if __name__ == "__main__":
    main()
