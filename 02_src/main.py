"""Main entry point for the sales bot."""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from salesbot.api import create_fastapi_app
from salesbot.api.routes import control
from salesbot.app import Application
from salesbot.config import Settings
from salesbot.logging_config import setup_logging
from sim import Sim


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    settings = Settings.from_env()
    api_url = f"http://{settings.api_host}:{settings.api_port}"

    # SIM drives the loopback session over HTTP
    control.set_sim_instance(Sim(api_url=api_url))

    app = create_fastapi_app(Application(settings=settings))

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
