"""
PubHub connection manager — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from config.settings import config
from connectors.encryption import TokenCipher
from connectors.probe import CredentialProbe
from connectors.registry import ConnectorRegistry
from connectors.routes import router as connections_router
from database.session import init_db

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "hpack"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="PubHub Connection Manager",
        version="1.0.0",
        description="OAuth connections between projects and social platforms.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(connections_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup():
        logger.info("Creating tables…")
        await init_db()

        TokenCipher.from_settings(config)  # warns when tokens would be stored as plaintext
        registry = ConnectorRegistry(config)
        probe = CredentialProbe(registry)
        for provider in registry.list_providers():
            if not provider["configured"]:
                logger.info(
                    "%s not configured (missing %s)",
                    provider["display_name"],
                    ", ".join(probe.list_missing(provider["provider"])),
                )

        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
