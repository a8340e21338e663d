"""Shared fixtures for the mock server tests."""

import itertools
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from grc_mocks.config import Config
from grc_mocks.servers import servicenow, slack
from grc_mocks.store import RecordStore, SlackWorkspace

ENV_VARS = [
    "GRC_MOCKS_CONFIG",
    "SERVICENOW_HOST", "SERVICENOW_PORT", "SERVICENOW_URL",
    "SLACK_HOST", "SLACK_PORT", "SLACK_URL",
    "WEBHOOK_URL", "SLACK_COMMAND_URL", "SLACK_INTERACTION_URL",
    "APP_COMMAND_URL", "APP_INTERACTION_URL",
    "WEBHOOK_ENABLED", "SLACK_NOTIFICATIONS_ENABLED",
    "DISPATCH_QUEUE_SIZE", "DISPATCH_WORKERS", "DISPATCH_TIMEOUT", "DRAIN_TIMEOUT",
    "LOG_LEVEL", "DEBUG",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def quiet_config(clean_env):
    """Config sections with outbound notifications switched off."""
    config = Config()
    config.servicenow_url = "http://servicenow.test"
    config.slack_url = "http://slack.test"
    config.webhook_enabled = False
    config.slack_notifications_enabled = False
    return config.to_dict()


@pytest.fixture
def live_config(clean_env):
    """Config sections pointing notifications at test hosts."""
    config = Config()
    config.servicenow_url = "http://servicenow.test"
    config.slack_url = "http://slack.test"
    config.webhook_url = "http://receiver.test/api/webhooks/servicenow"
    config.dispatch_workers = 2
    config.drain_timeout = 2.0
    return config.to_dict()


@pytest.fixture
def clock():
    ticks = itertools.count(1)
    return lambda: f"2024-01-01T00:00:{next(ticks):02d}+00:00"


@pytest.fixture
def store(clock):
    return RecordStore(clock=clock)


@pytest.fixture
def workspace():
    return SlackWorkspace()


@pytest.fixture
def sn_client(quiet_config, store):
    return TestClient(servicenow.create_app(quiet_config, store=store))


@pytest.fixture
def slack_client(quiet_config, workspace):
    return TestClient(slack.create_app(quiet_config, workspace=workspace))


class Recorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, status_code: int = 200, json=None):
        self.requests: List[httpx.Request] = []
        self.status_code = status_code
        self.json = json if json is not None else {"ok": True, "ts": "1700000000.000001"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.json)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


@pytest.fixture
def recorder():
    return Recorder()
