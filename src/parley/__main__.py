"""Run the chat server: ``python -m parley``."""

import logging

import uvicorn

from parley.config import ServerConfig
from parley.server import create_app


def main() -> None:
    """Serve the app with settings from the environment."""
    logging.basicConfig(level=logging.INFO)
    config = ServerConfig.from_env()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
