"""FastAPI application for the resumable chat stream server.

  - Session registry lifecycle (sweep task started / stopped with the app)
  - OpenTelemetry setup
  - Router mounting
  - CORS middleware
  - Health endpoint
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from stream_relay.configs.settings import Settings, settings as default_settings
from stream_relay.logger import setup_logging
from stream_relay.observability import configure_opentelemetry, shutdown_opentelemetry
from stream_relay.server.routes.chat import router as chat_router
from stream_relay.server.schemas import HealthOut
from stream_relay.streaming import ProducerFactory, SessionRegistry, SimulatedProducer

logger = logging.getLogger(__name__)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    producer_factory: Optional[ProducerFactory] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        settings: Defaults to the environment-driven settings.
        producer_factory: Builds the producer of every new conversation.
            Defaults to a ``SimulatedProducer`` paced by ``PRODUCER_DELAY``.
    """
    cfg = settings or default_settings
    factory = producer_factory or partial(SimulatedProducer, delay=cfg.PRODUCER_DELAY)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""

        # ---------- STARTUP ----------
        setup_logging(level=cfg.LOG_LEVEL.upper())
        if cfg.OTEL_ENABLED:
            configure_opentelemetry(
                service_name="stream-relay",
                otlp_trace_endpoint=cfg.OTLP_TRACE_ENDPOINT or None,
            )

        # Injected into routes via app.state
        registry = SessionRegistry(
            producer_factory=factory,
            sweep_interval=cfg.SWEEP_INTERVAL,
            idle_timeout=cfg.SESSION_IDLE_TIMEOUT,
        )
        await registry.start()
        app.state.registry = registry

        # Quiet noisy loggers
        for name in ("httpx", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.WARNING)

        yield

        # ---------- SHUTDOWN ----------
        await registry.stop()
        if cfg.OTEL_ENABLED:
            shutdown_opentelemetry()

    app = FastAPI(
        title="Stream Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS – allow all for dev, tighten in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)

    # Health check
    @app.get("/health", tags=["infra"], response_model=HealthOut)
    async def health(request: Request):
        return HealthOut(
            active_sessions=request.app.state.registry.session_count,
            timestamp=datetime.now(timezone.utc),
        )

    if cfg.OTEL_ENABLED:
        FastAPIInstrumentor.instrument_app(app)

    return app


# ── Module-level app (for `uvicorn stream_relay.server.app:app`) ─────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
