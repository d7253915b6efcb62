"""
Server entrypoint for the tattoo design generation service.

Architectural role:
- Resolves settings once, configures logging and serves the FastAPI app
  built by `tattoo_discovery.api.http_api.create_app` with uvicorn.

Configuration:
- `HOST` / `PORT` select the bind address (default `127.0.0.1:8000`).
- Everything else comes from `tattoo_discovery.config`.
"""

import os

import uvicorn

from tattoo_discovery.config import configure_logging, load_settings


def main():
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "tattoo_discovery.api.http_api:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
