"""Run the photobooth server."""

import uvicorn

from event_photobooth.api.app import create_app
from event_photobooth.config import Settings
from event_photobooth.containers import build_container


def main() -> None:
    """Build the application from the environment and serve it."""
    settings = Settings()
    app = create_app(build_container(settings))
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
