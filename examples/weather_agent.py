from __future__ import annotations

import argparse
import asyncio
import logging

from copilot_agent import (
    AgentRequest,
    AgentSettings,
    Provider,
    ToolRegistry,
    encode_event,
    handle_request,
    register_function_execute,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

WEATHER_TOOL: dict[str, object] = {
    "name": "get_weather",
    "description": "Get the current weather in a given location",
    "input_schema": {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "City and state, e.g. San Francisco, CA",
            },
            "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
        },
        "required": ["location"],
    },
}


def build_registry(with_code: bool) -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool("get_weather", description=WEATHER_TOOL["description"])
    def get_weather(tool_input, context):
        """Stub implementation of get_weather."""
        # imagine we call a real weather API here
        return {"location": tool_input.get("location"), "forecast": "15 °C, mostly cloudy"}

    if with_code:
        register_function_execute(registry)
    return registry


async def run_agent(provider: Provider, model: str | None, message: str, with_code: bool) -> None:
    """
    Run one request end to end and print the SSE frames a client would receive.

    The model may call get_weather (and function_execute with --code) any
    number of times before answering.
    """
    registry = build_registry(with_code)
    tools = [WEATHER_TOOL] + ([t.spec().model_dump() for t in registry if t.name == "function_execute"])
    request = AgentRequest.model_validate(
        {
            "message": message,
            "workflowId": "example-workflow",
            "userId": "example-user",
            "tools": tools,
            "provider": {"provider": provider.value, "model": model},
        }
    )

    events = handle_request(request, registry, settings=AgentSettings.from_env())
    async for event in events:
        print(encode_event(event), end="", flush=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=Provider.ANTHROPIC.value,
    )
    parser.add_argument("--model", default=None)  # provider default when omitted
    parser.add_argument("--code", action="store_true", help="also offer function_execute")
    parser.add_argument("message", nargs="?", default="What's the weather in San Francisco?")
    args = parser.parse_args()

    asyncio.run(run_agent(Provider(args.provider), args.model, args.message, args.code))
