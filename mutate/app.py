import logging
import os

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from mutate.routes import receiver
from mutate.routes.receiver import WebhookHistory


def create_app(*, secret: str | None = None, history_limit: int = 100) -> FastAPI:
    app = FastAPI(title="Mutate Webhook Receiver", version="0.1.0")

    app.state.receiver_secret = secret if secret is not None else os.getenv("RECEIVER_WEBHOOK_SECRET") or None
    app.state.webhook_history = WebhookHistory(limit=history_limit)
    if app.state.receiver_secret is None:
        logging.getLogger(__name__).info("RECEIVER_WEBHOOK_SECRET not set, signatures are not verified")

    app.include_router(receiver.router)

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Mutate Webhook Receiver",
                "docs": "/docs",
                "health": "/health",
            }
        )

    return app


app = create_app()
