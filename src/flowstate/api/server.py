"""
ASGI Entry Point for the FlowState API.

Environment variables are loaded from `.env` before the application factory
runs, so the engine settings see them.

Usage
-----
    $ python -m flowstate.api.server

Or via uvicorn directly:
    $ uvicorn flowstate.api.server:app --reload
"""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(".env"))

from flowstate.api.app import create_app  # noqa: E402

app = create_app()


def main() -> None:
    """Run the API server locally for development."""
    uvicorn.run(
        "flowstate.api.server:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
