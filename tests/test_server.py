"""Tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from copilot_agent import __version__
from copilot_agent.errors import MissingCredentialError
from copilot_agent.server import create_app
from copilot_agent.types.tool import ToolCallRequest

from conftest import FakeLLM, text_reply, tool_reply


def frames(body):
    parsed = []
    for frame in body.split("\n\n"):
        if not frame.strip():
            continue
        event_line, data_line = frame.split("\n")
        parsed.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return parsed


@pytest.fixture
def scripted_client(registry, settings):
    def build(scripts):
        llm = FakeLLM(scripts)
        app = create_app(registry, settings, llm_factory=lambda provider, model, **kw: llm)
        return TestClient(app), llm

    return build


def test_health(registry, settings):
    client = TestClient(create_app(registry, settings))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_chat_streams_events(scripted_client):
    client, llm = scripted_client(
        [
            tool_reply(ToolCallRequest(id="t1", name="get_weather", arguments={"city": "Oslo"})),
            text_reply("Sunny", thinking="Checking"),
        ]
    )

    response = client.post(
        "/api/copilot/chat",
        json={"message": "Weather?", "workflowId": "wf-1", "userId": "user-1"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"

    events = frames(response.text)
    assert [kind for kind, _ in events] == [
        "start",
        "tool_call",
        "tool_result",
        "reasoning",
        "reasoning",
        "reasoning",
        "content",
        "done",
    ]
    assert events[0][1]["model"] == "fake-model"
    assert events[2][1]["result"] == {"temp": 21, "city": "Oslo"}
    assert events[-1][1]["stopReason"] == "end_turn"
    assert events[-1][1]["usage"] == {"input_tokens": 20, "output_tokens": 10}
    assert llm.closed


def test_unsupported_provider_is_rejected(scripted_client):
    client, llm = scripted_client([text_reply("x")])

    response = client.post("/api/copilot/chat", json={"message": "hi", "provider": "mistral"})

    assert response.status_code == 400
    assert "mistral" in response.json()["detail"]
    assert llm.calls == []


def test_missing_credential_is_unavailable(registry, settings):
    def llm_factory(provider, model, **kwargs):
        raise MissingCredentialError("ANTHROPIC_API_KEY not configured")

    client = TestClient(create_app(registry, settings, llm_factory=llm_factory))
    response = client.post("/api/copilot/chat", json={"message": "hi"})

    assert response.status_code == 503
    assert response.json()["detail"] == "ANTHROPIC_API_KEY not configured"


def test_invalid_body(registry, settings):
    client = TestClient(create_app(registry, settings))
    response = client.post("/api/copilot/chat", json={"workflowId": "wf-1"})
    assert response.status_code == 422


@pytest.mark.parametrize("bad_schema", ["bogus", ["type", "object"], True])
def test_malformed_tool_schema_does_not_reject_request(scripted_client, bad_schema):
    client, llm = scripted_client([text_reply("ok")])

    response = client.post(
        "/api/copilot/chat",
        json={
            "message": "hi",
            "tools": [
                {"name": "broken_tool", "input_schema": bad_schema},
                {"name": "good_tool", "input_schema": {"type": "object"}},
            ],
        },
    )

    assert response.status_code == 200
    assert frames(response.text)[-1][0] == "done"
    schemas = {tool.name: tool.input_schema for tool in llm.calls[0]["tools"]}
    assert schemas["broken_tool"] == {"type": "object", "properties": {}}
    assert schemas["good_tool"]["type"] == "object"
