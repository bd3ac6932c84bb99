"""SupportDesk entrypoint."""

import uvicorn

from supportdesk.config.settings import get_settings


def cli() -> None:
    """CLI entrypoint."""
    settings = get_settings()
    uvicorn.run(
        "supportdesk.web.app:create_app",
        factory=True,
        host="0.0.0.0",  # nosec B104
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    cli()
