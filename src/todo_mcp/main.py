"""Command-line entrypoint."""

import uvicorn

from todo_mcp.config import Settings


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = Settings()
    uvicorn.run(
        "todo_mcp.api.asgi:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
