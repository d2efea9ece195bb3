"""Run the agent server under uvicorn (``python -m copilot_agent``)."""

import logging

import uvicorn

from copilot_agent.server import create_app
from copilot_agent.settings import AgentSettings


def main() -> None:
    settings = AgentSettings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
